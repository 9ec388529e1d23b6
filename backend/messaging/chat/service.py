"""Assembly of the chat components shared by every socket handler."""
import logging
from dataclasses import dataclass
from typing import Optional

from messaging.auth.service import TokenService
from messaging.config import AppConfig
from messaging.registry import SharedRegistry
from messaging.store.service import MessageStore

from .dispatcher import MessageDispatcher
from .hub import ConnectionHub
from .lifecycle import ConnectionLifecycleManager
from .rate_limiter import RateLimiter
from .registrar import ConnectionRegistrar

logger = logging.getLogger(__name__)


@dataclass
class ChatService:
    registry: SharedRegistry
    hub: ConnectionHub
    registrar: ConnectionRegistrar
    rate_limiter: RateLimiter
    dispatcher: MessageDispatcher
    lifecycle: ConnectionLifecycleManager


def build_chat_service(
    config: AppConfig,
    registry: SharedRegistry,
    store: MessageStore,
    token_service: Optional[TokenService] = None,
) -> ChatService:
    hub = ConnectionHub()
    registrar = ConnectionRegistrar(
        registry, hub, socket_ttl_seconds=config.registry.socket_ttl_seconds
    )
    rate_limiter = RateLimiter(
        registry,
        max_messages=config.rate_limit.max_messages,
        window_seconds=config.rate_limit.window_seconds,
    )
    dispatcher = MessageDispatcher(registrar, rate_limiter, store, hub)
    lifecycle = ConnectionLifecycleManager(
        registry,
        registrar,
        hub,
        token_service=token_service,
        bind_registration=config.auth.bind_registration,
        heartbeat_interval=config.heartbeat.interval_seconds,
    )
    return ChatService(
        registry=registry,
        hub=hub,
        registrar=registrar,
        rate_limiter=rate_limiter,
        dispatcher=dispatcher,
        lifecycle=lifecycle,
    )


_service: Optional[ChatService] = None


def get_chat_service() -> Optional[ChatService]:
    return _service


def set_chat_service(service: Optional[ChatService]) -> None:
    global _service
    _service = service
