"""Session token handling.

Token issuance and verification belong to the account subsystem; this
module only consumes the capability "given a credential, resolve a user
identity" so the messaging service can bind socket registration to an
authenticated session when ``auth.bind_registration`` is enabled.

Tokens are HS256 JWTs carrying the user identity in ``sub`` (or, for tokens
minted by the legacy account API, in ``userId``).
"""
import logging
import time
from typing import Optional

import jwt

logger = logging.getLogger(__name__)


class TokenService:
    """Resolves user identities from signed session tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256") -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm

    def resolve_identity(self, token: str) -> Optional[str]:
        """Return the user identity in token, or None if it is missing or invalid."""
        if not token:
            return None
        try:
            claims = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.PyJWTError as exc:
            logger.warning("JWT decode failed: %s", exc)
            return None

        user_id = claims.get("sub") or claims.get("userId")
        if not user_id or not isinstance(user_id, str):
            logger.warning("JWT carries no user identity claim")
            return None
        return user_id

    def issue_token(self, user_id: str, expires_in: int = 3600) -> str:
        """Mint a token for user_id (development and tests)."""
        now = int(time.time())
        return jwt.encode(
            {"sub": user_id, "iat": now, "exp": now + expires_in},
            self._secret_key,
            algorithm=self._algorithm,
        )
