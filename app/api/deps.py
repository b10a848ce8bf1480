from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_token
from app.utils.exceptions import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """Authenticated caller's user id from the bearer token"""
    if credentials is None:
        raise AuthenticationError("Access token required")

    payload = decode_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    # Older tokens carry the id as userId instead of sub
    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        raise AuthenticationError("Token has no subject")
    return str(user_id)
