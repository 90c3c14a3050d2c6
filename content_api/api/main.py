import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from content_api.core.config import APP_VERSION, get_settings
from content_api.core.errors import ApiError
from content_api.core.observability import configure_logging
from content_api.routers import health, users
from content_api.web.server import ErrorResponse, error_fields

log = structlog.get_logger(__name__)


def _error(
    status_code: int,
    message: str,
    fields: dict | None = None,
    headers: dict | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=message, fields=fields or {})
    return JSONResponse(status_code=status_code, content=body.to_body(), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    """Render every escaped exception as an ErrorResponse."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        log.warning("api_error", path=request.url.path, status=exc.status_code, error=exc.message)
        return _error(exc.status_code, exc.message, getattr(exc, "fields", None))

    # Ensure standard HTTP exceptions keep their status and headers (e.g. Allow on 405)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        log.warning("http_error", path=request.url.path, status=exc.status_code)
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log.warning("validation_error", path=request.url.path)
        return _error(status.HTTP_400_BAD_REQUEST, "request failed validation", error_fields(exc))

    # Catch-all for truly unhandled exceptions only; never leaks details
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.error("unhandled_exception", path=request.url.path, exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "internal server error")


# PUBLIC_INTERFACE
def create_app() -> FastAPI:
    """Build the application from current settings."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Content API",
        description="User registration, session and profile APIs.",
        version=APP_VERSION,
        openapi_tags=[
            {"name": "health", "description": "Service health"},
            {"name": "user", "description": "Users and authentication"},
        ],
    )

    # Install CORS middleware early so that OPTIONS preflight is handled
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,  # Authorization headers from the browser client
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(users.public_router)
    app.include_router(users.router)
    return app


app = create_app()
