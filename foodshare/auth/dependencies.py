"""FastAPI dependencies for authentication and the per-request session."""

import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from foodshare.auth.tokens import read_token
from foodshare.database.database import get_db
from foodshare.database.user_repository import IdentityRepository, UserRepository
from foodshare.engine.access import require_session
from foodshare.engine.errors import AuthRequiredError, ProviderError
from foodshare.engine.session import SessionContext, resolve_session
from foodshare.models.user import Identity

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


@contextmanager
def session_setup_errors(identity: Optional[Identity]):
    """Turn a failed profile read or profile setup into `AuthRequiredError`.

    The session is cleared: the request is answered 401 and the client is
    sent back to login.
    """
    try:
        yield
    except ProviderError as e:
        logger.warning(f"Session resolution failed for {identity.id if identity else None}: {e.message}")
        raise AuthRequiredError(e.message) from e


def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Identity]:
    """Identity behind the bearer token, or None when no token was sent.

    Raises:
        HTTPException: If a token was sent but is invalid, expired, or names no identity
    """
    if not credentials:
        return None

    claims = read_token(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = IdentityRepository(db).get(claims.identity_id)
    if not identity or identity.email != claims.email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def get_optional_session(
    identity: Optional[Identity] = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Optional[SessionContext]:
    """Resolve the request's session; None when signed out."""
    with session_setup_errors(identity):
        return resolve_session(UserRepository(db), identity)


def get_session(session: Optional[SessionContext] = Depends(get_optional_session)) -> SessionContext:
    """Require a resolved session."""
    return require_session(session)
