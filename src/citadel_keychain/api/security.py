# API Security - Session token for the local keychain API
#
# Generates a random session token on startup.
# All keychain endpoints require this token, so other local processes
# cannot read credentials through the API without it.

import secrets
from typing import Optional
from fastapi import Header, HTTPException, status

# Global session token (generated once per backend instance)
_SESSION_TOKEN: Optional[str] = None


def initialize_session_token() -> str:
    """
    Generate a new session token for this backend instance.

    Returns:
        The generated session token (256 bits, URL-safe)
    """
    global _SESSION_TOKEN
    _SESSION_TOKEN = secrets.token_urlsafe(32)
    return _SESSION_TOKEN


async def verify_session_token(x_session_token: str = Header(None)) -> str:
    """
    FastAPI dependency to verify the X-Session-Token header.

    Raises:
        HTTPException: 503 if no token was generated, 401 if the header is
            missing or wrong
    """
    if _SESSION_TOKEN is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session token not initialized"
        )

    if x_session_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Session-Token header"
        )

    # Constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(x_session_token, _SESSION_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token"
        )

    return x_session_token
