"""
FastAPI application entry point for the Ngage backend.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ngage.config import get_settings
from ngage.errors import NgageError, handle_error
from ngage.log_buffer import configure_logging
from ngage.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    app = FastAPI(title="Ngage Backend (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)

    @app.exception_handler(NgageError)
    async def ngage_error_handler(request: Request, exc: NgageError) -> JSONResponse:
        detail = handle_error(exc, context=f"{request.method} {request.url.path}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": detail, "code": exc.code, "errorType": exc.error_type.value},
        )

    return app


app = create_app()
