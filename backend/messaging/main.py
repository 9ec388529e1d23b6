"""Folio Messaging Application.

This is the main entry point for the real-time messaging backend of the Folio
portfolio platform. Users chat 1:1 from any number of devices; each server
instance holds some of those sockets and coordinates with the others through
a shared registry (Redis).

Modules:
    - chat: WebSocket lifecycle, registration, rate limiting and message fan-out
    - registry: Shared key/set store (Redis or in-process)
    - store: DuckDB message persistence and history endpoints
    - auth: Session token resolution for bound registration
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from messaging.auth.service import TokenService
from messaging.chat.router import router as chat_router
from messaging.chat.service import build_chat_service, get_chat_service, set_chat_service
from messaging.config import AppConfig, get_config, set_config
from messaging.registry import build_registry
from messaging.store.router import router as messages_router
from messaging.store.service import MessageStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "asyncio",
    "redis",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Explicit configuration (tests). When omitted, the config is
                loaded from YAML at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        app_config = config or get_config()
        set_config(app_config)

        configured_level = getattr(logging, app_config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", app_config.logging.level.upper())

        registry = build_registry(app_config)
        if not await registry.ping():
            logger.warning("Shared registry is not reachable; sockets will fail to register")

        store = MessageStore.get_instance(db_path=app_config.store.db_path)
        token_service = TokenService(
            app_config.secrets.jwt.secret_key,
            algorithm=app_config.secrets.jwt.algorithm,
        )
        chat = build_chat_service(app_config, registry, store, token_service)
        set_chat_service(chat)
        logger.info(
            "Messaging ready: registry=%s store=%s bind_registration=%s",
            app_config.registry.backend,
            app_config.store.db_path,
            app_config.auth.bind_registration,
        )

        yield  # Application runs here

        # Shutdown
        logger.info("Cleaning up socket connections...")
        await chat.lifecycle.shutdown()
        await registry.close()
        set_chat_service(None)
        MessageStore.reset_instance()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Folio Messaging API",
        description="Real-time 1:1 messaging backend for the Folio portfolio platform",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Register all routers
    app.include_router(chat_router)
    app.include_router(messages_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object with shared registry reachability.
        """
        chat = get_chat_service()
        registry_ok = bool(chat) and await chat.registry.ping()
        return {"status": "ok", "registry": registry_ok}

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host/port."""
    import uvicorn

    server = get_config().server
    uvicorn.run("messaging.main:app", host=server.host, port=server.port)
