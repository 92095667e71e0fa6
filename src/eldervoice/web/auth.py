"""
Request authentication for the onboarding routes.

Accounts are created by phone or email verification, so a caller may have
either contact (or both) on their Supabase user.
"""

import logging

from fastapi import HTTPException, Header
from pydantic import BaseModel

from eldervoice.db.client import get_service_client

logger = logging.getLogger(__name__)


class AuthenticatedUser(BaseModel):
    """The account holder behind a request."""
    id: str
    email: str | None = None
    phone: str | None = None
    access_token: str


def bearer_token(authorization: str | None) -> str:
    """Pull the token out of "Bearer <token>", or 401."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization format")

    token = token.strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return token


async def get_current_user(authorization: str | None = Header(None)) -> AuthenticatedUser:
    access_token = bearer_token(authorization)

    try:
        response = get_service_client().auth.get_user(access_token)
    except Exception as e:
        logger.warning(f"Session check failed: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    account = response.user if response else None
    if account is None:
        logger.info("Rejected request with unknown session token")
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return AuthenticatedUser(
        id=account.id,
        email=account.email or None,
        phone=account.phone or None,
        access_token=access_token,
    )
