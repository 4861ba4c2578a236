import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from campusfix.api.v1.router import api_router
from campusfix.cache.client import close_cache
from campusfix.core.config import settings
from campusfix.core.exceptions import AppError, UnauthorizedError
from campusfix.core.logging import setup_logging
from campusfix.messaging.consumers import start_consumers
from campusfix.messaging.producers import close_kafka_producer, create_topics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    consumers_task = None
    if settings.KAFKA_ENABLED and not settings.TESTING:
        await create_topics()
        consumers_task = asyncio.create_task(start_consumers())
    logger.info(f"{settings.PROJECT_NAME} started ({settings.ENVIRONMENT})")
    yield
    if consumers_task is not None:
        consumers_task.cancel()
        with suppress(asyncio.CancelledError):
            await consumers_task
    await close_kafka_producer()
    await close_cache()


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def error_response(status_code: int, message: str, errors=None, headers=None) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return error_response(exc.status_code, exc.message, exc.errors, headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        # Первый элемент loc - источник данных (body, query, path)
        loc = [str(part) for part in error.get("loc", ())[1:]]
        errors.append({"field": ".".join(loc) or "request", "message": error.get("msg", "")})
    return error_response(status.HTTP_400_BAD_REQUEST, "Ошибка валидации данных", errors)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Внутренняя ошибка сервера")


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": "CampusFix defect tracking API"}


@app.get("/health")
@app.get(f"{settings.API_V1_STR}/health")
def health():
    return {"status": "ok"}
