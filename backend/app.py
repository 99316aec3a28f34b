import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.core.config import load_settings
from backend.core.errors import RateLimitedError, RecordCheckError
from backend.core.logsetup import configure_logging
from backend.routes import reports, sessions, validation

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    settings = load_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="School Record Checker API", version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RecordCheckError)
    async def handle_record_check_error(request: Request, exc: RecordCheckError) -> JSONResponse:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            headers["Retry-After"] = str(max(1, round(exc.retry_after)))
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=exc.status_code, headers=headers)

    app.include_router(sessions.router, prefix="/api")
    app.include_router(validation.router, prefix="/api")
    app.include_router(reports.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "School Record Checker API",
                "docs": "/docs",
                "health": "/api/validations",
            }
        )

    return app


app = create_app()
