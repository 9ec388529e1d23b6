"""Exceptions raised inside the register and send pipelines.

Both are caught at the handler boundary and turned into an ``error`` frame
for the originating connection; neither is allowed to end the socket loop.
"""
from .schemas import ErrorCode


class RegistrationError(Exception):
    """Registering a connection failed (bad input, bad token or registry down)."""


class SendMessageError(Exception):
    """A send attempt was rejected.

    Attributes:
        code: RATE_LIMITED for rate-limit rejections, MESSAGE_FAILED otherwise.
        message: Human-readable reason shown to the sender.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.MESSAGE_FAILED) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
