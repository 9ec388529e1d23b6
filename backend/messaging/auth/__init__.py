"""Session token resolution for socket registration."""

from .service import TokenService

__all__ = ["TokenService"]
