import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from upload_service.api.endpoints.upload import router as upload_router
from upload_service.core.config import Settings, settings
from upload_service.core.exceptions import UploadError
from upload_service.schemas.upload import ErrorResponse
from upload_service.services.session_store.base import SessionStore
from upload_service.services.session_store.factory import get_session_store
from upload_service.services.storage.base import BaseStorage
from upload_service.services.storage.factory import get_storage
from upload_service.services.upload_coordinator import UploadCoordinator

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def sweep_expired_sessions(coordinator: UploadCoordinator, interval: int):
    while True:
        await asyncio.sleep(interval)
        try:
            await coordinator.sweep_expired()
        except Exception as e:
            logger.exception(f"Session sweep failed: {str(e)}")


def create_app(
    app_settings: Settings = settings,
    store: Optional[SessionStore] = None,
    storage: Optional[BaseStorage] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session_store = store or get_session_store(app_settings)
        coordinator = UploadCoordinator(
            store=session_store,
            storage=storage or get_storage(app_settings),
            settings=app_settings,
        )
        app.state.coordinator = coordinator

        sweeper = None
        if app_settings.SESSION_SWEEP_INTERVAL_SECONDS > 0:
            await coordinator.sweep_expired()
            sweeper = asyncio.create_task(
                sweep_expired_sessions(coordinator, app_settings.SESSION_SWEEP_INTERVAL_SECONDS)
            )
        logger.info(f"Upload service started (storage={app_settings.STORAGE_BACKEND}, sessions={app_settings.SESSION_STORE})")
        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.cancel()
                try:
                    await sweeper
                except asyncio.CancelledError:
                    pass
            session_store.close()
            logger.info("Upload service stopped")

    app = FastAPI(
        title="Chunked Upload Service",
        version="1.0.0",
        lifespan=lifespan,
        openapi_url=None if app_settings.ENV == "production" else "/openapi.json",
        docs_url=None if app_settings.ENV == "production" else "/docs",
        redoc_url=None if app_settings.ENV == "production" else "/redoc"
    )
    app.state.settings = app_settings

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        origin = request.headers.get("origin")
        logger.debug(f"{request.method} {request.url.path} (origin: {origin or '-'})")
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=[
            "Accept",
            "Content-Type",
            "Origin",
            "Authorization",
            "X-Requested-With",
            "Access-Control-Request-Method",
            "Access-Control-Request-Headers"
        ],
    )

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError):
        message = exc.message
        if app_settings.ENV == "production" and exc.status_code >= 500:
            message = "Internal Server Error"
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        body = ErrorResponse(
            status="fail" if exc.status_code < 500 else "error",
            message=message,
            missing_chunks=exc.missing_chunks,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(by_alias=True, exclude_none=True),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        body = ErrorResponse(
            status="fail" if exc.status_code < 500 else "error",
            message=str(exc.detail),
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=body.model_dump(by_alias=True, exclude_none=True),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message = "Invalid request"
        errors = exc.errors()
        if errors:
            location = ".".join(str(p) for p in errors[0].get("loc", ()))
            message = f"Invalid request: {location}: {errors[0].get('msg')}"
        body = ErrorResponse(status="fail", message=message)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(by_alias=True, exclude_none=True),
        )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    app.include_router(upload_router, prefix="/api/upload", tags=["upload"])
    return app


app = create_app()
