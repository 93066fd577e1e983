import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from roomkeeper.core.config import settings
from roomkeeper.core.database import bootstrap_tables, get_pool_status
from roomkeeper.core.errors import ReservationError, translate_store_error
from roomkeeper.routers.reservations import router as reservations_router

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("roomkeeper.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s starting", settings.PROJECT_NAME, extra={"env": settings.ENV})
    await bootstrap_tables()
    yield


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)
app.include_router(reservations_router)


def _error_response(error: ReservationError) -> JSONResponse:
    headers = {"Retry-After": "1"} if error.retryable else None
    return JSONResponse(
        status_code=error.status_code,
        content={"code": error.code, "detail": error.message},
        headers=headers,
    )


@app.exception_handler(ReservationError)
async def reservation_error_handler(request: Request, exc: ReservationError):
    return _error_response(exc)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store error on %s", request.url.path, extra={"error": str(exc)})
    return _error_response(translate_store_error(exc))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed or missing input is reported as invalid_input / 400."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"code": "invalid_input", "detail": "; ".join(messages)},
    )


@app.get("/")
async def health_check():
    return {"status": f"{settings.PROJECT_NAME} online", "database": get_pool_status()}
