"""Common FastAPI dependencies."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from estate_chat.auth import InvalidToken, decode_identity
from estate_chat.realtime.broadcast import BroadcastRouter

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Resolve the caller's identity from the Authorization header."""
    try:
        return decode_identity(credentials.credentials if credentials else None)
    except InvalidToken as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_broadcaster(request: Request) -> BroadcastRouter:
    """The process-wide broadcast router created at startup."""
    broadcaster: BroadcastRouter = request.app.state.broadcaster
    return broadcaster
