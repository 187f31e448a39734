import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import (
    ALLOWED_ORIGINS,
    HOST,
    LOG_LEVEL,
    PORT,
    SECURITY_HEADERS_ENABLED,
    MailerConfig,
    load_mailer_config,
)
from .email_templates import TemplateRenderer
from .routes.confirmation import router as confirmation_router
from .security_headers import SecurityHeadersMiddleware
from .services.gmail_transport import GmailOAuth2Transport, MailTransport

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def create_app(
    config: Optional[MailerConfig] = None,
    transport: Optional[MailTransport] = None,
    renderer: Optional[TemplateRenderer] = None,
    security_headers_enabled: bool = SECURITY_HEADERS_ENABLED,
    allowed_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Build the confirmation mailer application.

    Configuration is read once here; credentials are not checked until the
    first email is sent.
    """
    mailer_config = config or load_mailer_config()
    origins = allowed_origins if allowed_origins is not None else ALLOWED_ORIGINS

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        if not mailer_config.account_email or not mailer_config.refresh_token:
            logger.warning("Gmail credentials are incomplete - sends will fail until they are set")
        yield
        logger.info("Application shutting down...")

    # Every path is relayed, so the interactive docs are not mounted
    app = FastAPI(
        title="Registration Confirmation Mailer",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.state.mailer_config = mailer_config
    app.state.mail_transport = transport or GmailOAuth2Transport(mailer_config)
    app.state.template_renderer = renderer or TemplateRenderer()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
            raise

    if security_headers_enabled:
        app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health"])
        logger.info("Security headers enabled")
    else:
        logger.warning("Security headers DISABLED - only use in development!")

    logger.info(f"CORS allowed origins: {origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    # Catch-all: must be registered after every other route
    app.include_router(confirmation_router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=HOST, port=PORT)
