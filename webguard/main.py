"""FastAPI application entrypoint for webguard."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from webguard.api.news import router as news_router
from webguard.api.news import validator
from webguard.core.config import AppSettings
from webguard.core.config import get_app_settings
from webguard.core.errors import register_error_handlers
from webguard.core.handler import ErrorNormalizer
from webguard.validation.validator import PreviousURLMiddleware

logger = logging.getLogger(__name__)


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Build the app with session, error normalizer and previous-URL middleware."""
    settings = settings or get_app_settings()
    logger.info("Creating webguard app with settings=%s", settings.safe_for_logging())

    app = FastAPI(title="webguard", debug=False)
    register_error_handlers(app, settings.handler)

    # Added last runs first: session, then error normalizer, then URL recording.
    app.add_middleware(PreviousURLMiddleware, validator=validator)
    app.add_middleware(ErrorNormalizer, settings=settings.handler)
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)

    app.include_router(news_router)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check stub endpoint for service readiness."""
        return {"status": "ok"}

    return app


app = create_app()
