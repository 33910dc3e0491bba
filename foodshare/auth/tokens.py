"""Signed session tokens issued by the identity service.

A token carries the identity's role-independent claims only: the identity
key (`sub`) and the sign-in email. The role is read from the profile on every
request, so a role change never waits for a token to expire.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from dotenv import load_dotenv

from foodshare.models.user import Identity

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))
TOKEN_ISSUER = "foodshare"

_REQUIRED_CLAIMS = ["sub", "email", "iss", "iat", "exp"]


@dataclass(frozen=True)
class TokenClaims:
    identity_id: str
    email: str
    expires_at: datetime


def issue_token(identity: Identity) -> str:
    """Sign a bearer token for `identity`, valid for JWT_EXPIRATION_HOURS."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": identity.id,
        "email": identity.email,
        "iss": TOKEN_ISSUER,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def read_token(token: str) -> Optional[TokenClaims]:
    """Verify a bearer token.

    Returns:
        The token's claims, or None if the signature, issuer or expiry does
        not check out or a claim is missing
    """
    try:
        payload = jwt.decode(
            token,
            JWT_SECRET_KEY,
            algorithms=[JWT_ALGORITHM],
            issuer=TOKEN_ISSUER,
            options={"require": _REQUIRED_CLAIMS},
        )
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {type(e).__name__}")
        return None
    return TokenClaims(
        identity_id=payload["sub"],
        email=payload["email"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
