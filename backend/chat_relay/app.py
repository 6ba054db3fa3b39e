import os
import logging
from typing import Optional

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException
from dotenv import load_dotenv

from .config import Settings, load_settings
from .errors import RelayError, relay_error_handler
from .logging_setup import setup_logging
from .security import http_error_handler
from .routes.chat import router as chat_router
from .routes.fetch import router as fetch_router
from .routes.health import router as health_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    if settings is None:
        # Load environment variables from .env if present
        if os.getenv("DOTENV_DISABLED", "false").lower() not in {"1", "true", "yes"}:
            load_dotenv()
        settings = load_settings()
        setup_logging(settings.log_level)

    app = FastAPI(title="Coze Chat Relay", version="0.1.0")
    app.state.settings = settings

    # CORS is computed per handler from the allow-list, not by middleware
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # Routers
    app.include_router(health_router, prefix="/api")
    app.include_router(chat_router, prefix="/api")
    app.include_router(fetch_router, prefix="/api")

    if not settings.shared_secret:
        logger.warning("APP_SHARED_SECRET not set; relay endpoints accept unauthenticated requests")
    if not settings.coze_api_key:
        logger.warning("COZE_API_KEY not set; relay endpoints will answer 500")

    return app
