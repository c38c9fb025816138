"""Bearer-token identity resolution.

Tokens are issued by the marketplace's account service; this module only
verifies them and extracts the identity the chat core acts on.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from estate_chat.config import JWT_ALGORITHM, JWT_SECRET

DEFAULT_TOKEN_TTL = timedelta(hours=12)
# Matches the width of the identity columns in the store
MAX_IDENTITY_LENGTH = 128


class InvalidToken(Exception):
    """The token is missing, malformed, expired or names no identity."""


def create_access_token(
    identity: str,
    expires_delta: Optional[timedelta] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Issue a signed token for an identity (local development and tests)."""
    to_encode: Dict[str, Any] = dict(extra_claims or {})
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    to_encode.update({"sub": identity, "exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_identity(token: Optional[str]) -> str:
    """Verify a token and return the identity it was issued for."""
    if not token:
        raise InvalidToken("No token provided")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        raise InvalidToken("Invalid token") from e

    # Older marketplace tokens carry "userId" instead of "sub"
    identity = payload.get("sub") or payload.get("userId")
    if not identity:
        raise InvalidToken("Token does not name an identity")
    identity = str(identity)
    if len(identity) > MAX_IDENTITY_LENGTH:
        raise InvalidToken("Token identity is too long")
    return identity
