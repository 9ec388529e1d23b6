"""Wire schemas for the messaging WebSocket protocol.

Every frame is a JSON object with a ``type`` discriminator; the payload keys
are spread at the top level next to it.

Client -> server:
    - register: {userIdentity, token?}
    - sendMessage: {to, text}
    - pong: heartbeat reply

Server -> client:
    - connected: {connectionId}
    - registered: {userIdentity}
    - receiveMessage: {text, sender, recipient, conversationIdentity, id}
    - revalidateConversations: {with}
    - error: {code, message}
    - ping: heartbeat
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ClientEvent(str, Enum):
    REGISTER = "register"
    SEND_MESSAGE = "sendMessage"
    PONG = "pong"


class ServerEvent(str, Enum):
    CONNECTED = "connected"
    REGISTERED = "registered"
    RECEIVE_MESSAGE = "receiveMessage"
    REVALIDATE_CONVERSATIONS = "revalidateConversations"
    ERROR = "error"
    PING = "ping"


class ErrorCode(str, Enum):
    """Error codes sent to the originating connection.

    Attributes:
        RATE_LIMITED: The sender exceeded the per-user send rate; back off.
        MESSAGE_FAILED: Any other failure in the register or send path.
    """
    RATE_LIMITED = "RATE_LIMITED"
    MESSAGE_FAILED = "MESSAGE_FAILED"


class RegisterInput(BaseModel):
    userIdentity: Optional[str] = Field(default=None, description="Client-supplied user identity")
    token: Optional[str] = Field(default=None, description="Session token (when registration is bound)")


class SendMessageInput(BaseModel):
    to: Optional[str] = Field(default=None, description="Recipient user identity")
    text: Optional[str] = Field(default=None, description="Message text")


class DeliveryPayload(BaseModel):
    """The receiveMessage payload.

    Deliberately excludes the stored soft-delete and read-status fields.
    """
    text: str
    sender: str
    recipient: str
    conversationIdentity: str
    id: str


class RevalidatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    with_: str = Field(..., alias="with", description="The other participant")


class ErrorPayload(BaseModel):
    code: ErrorCode
    message: str
