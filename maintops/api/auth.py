"""
Identity resolution for FastAPI dependency injection.

The bearer credential is verified here and turned into an Identity once per
request. Token issuance belongs to the auth service and is not done here.
"""
import logging
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError

from maintops import config
from maintops.services.errors import UnauthorizedError
from maintops.services.policy import Identity

logger = logging.getLogger(__name__)

# auto_error=False so a missing header reaches our own UnauthorizedError
security = HTTPBearer(auto_error=False)


def verify_token(token: str) -> dict:
    """
    Verify a bearer token and return its claims.

    Raises:
        UnauthorizedError: If the token is expired or invalid
    """
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


def identity_from_claims(claims: dict) -> Identity:
    """Claims: sub (user id), role, site_ids."""
    try:
        return Identity(
            user_id=str(claims["sub"]),
            role=claims["role"],
            site_ids=claims.get("site_ids", []),
        )
    except (KeyError, ValidationError) as exc:
        logger.info("Rejected token with malformed claims: %s", exc)
        raise UnauthorizedError("Invalid token")


def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Identity:
    if credentials is None:
        raise UnauthorizedError()
    return identity_from_claims(verify_token(credentials.credentials))
