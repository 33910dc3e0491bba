"""Session resolution for foodshare.

A session is an explicit `SessionContext` value built once per request from
the authenticated identity. Nothing here keeps global session state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from foodshare.database.user_repository import UserRepository
from foodshare.engine.errors import ProfileSetupError, ProviderError, ValidationError
from foodshare.models.constants import (
    DEFAULT_ROLE,
    ENTRY_PATHS,
    HOME_PATH,
    LANDING_PATHS,
    LOGIN_PATH,
    PUBLIC_PATHS,
    SELF_SERVICE_ROLES,
)
from foodshare.models.user import Identity, Role, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionContext:
    """The signed-in principal as seen by every operation."""
    identity_key: str
    email: str
    name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def email_local_part(email: str) -> str:
    return (email or "").split("@")[0]


def ensure_profile(users: UserRepository, identity: Identity) -> User:
    """Return the identity's profile, creating a default `donor` profile if missing.

    Idempotent: a concurrent creation of the same profile is treated as success.

    Raises:
        ProfileSetupError: The profile could not be created
    """
    existing = users.get(identity.id)
    if existing:
        return existing

    logger.warning(f"Profile not found for identity {identity.id}; creating default profile")
    now = datetime.utcnow()
    profile = User(
        id=identity.id,
        email=identity.email,
        name=email_local_part(identity.email),
        role=DEFAULT_ROLE,
        created_at=now,
        updated_at=now,
    )
    try:
        return users.create(profile)
    except IntegrityError as e:
        # Lost a creation race; the other writer's profile wins.
        existing = users.get(identity.id)
        if existing:
            return existing
        raise ProfileSetupError(
            "Failed to set up your user profile. Please log out and back in."
        ) from e
    except SQLAlchemyError as e:
        raise ProfileSetupError(
            "Failed to set up your user profile. Please log out and back in."
        ) from e


def resolve_session(users: UserRepository, identity: Optional[Identity]) -> Optional[SessionContext]:
    """Resolve an authenticated identity to a session.

    Returns:
        SessionContext, or None when there is no identity

    Raises:
        ProviderError: The profile could not be read
        ProfileSetupError: The profile was missing and could not be created
    """
    if identity is None:
        return None

    try:
        profile = ensure_profile(users, identity)
    except ProfileSetupError:
        logger.error(f"Profile setup failed for identity {identity.id}")
        raise
    except SQLAlchemyError as e:
        logger.error(f"Failed to load profile for identity {identity.id}: {type(e).__name__}: {str(e)}")
        raise ProviderError("Failed to load your profile. Please log in again.") from e

    email = profile.email or identity.email
    return SessionContext(
        identity_key=identity.id,
        email=email,
        name=profile.name or email_local_part(email),
        role=Role(profile.role),
    )


def landing_path(role: Optional[Role]) -> str:
    """Role-specific dashboard; home for anything unrecognized."""
    try:
        return LANDING_PATHS[Role(role)]
    except (ValueError, KeyError):
        return HOME_PATH


def redirect_after_resolve(current_path: Optional[str], role: Role) -> Optional[str]:
    """Where to send a freshly resolved session, if anywhere.

    Only callers sitting on an entry page (home or login) are redirected.
    """
    if current_path in ENTRY_PATHS:
        return landing_path(role)
    return None


def redirect_after_logout(current_path: Optional[str]) -> Optional[str]:
    """After sign-out, leave public pages alone and send everything else to login."""
    if current_path in PUBLIC_PATHS:
        return None
    return LOGIN_PATH


def validate_signup_role(role: Role) -> Role:
    """Admin can never be self-selected at sign-up."""
    try:
        role = Role(role)
    except ValueError:
        role = None
    if role not in SELF_SERVICE_ROLES:
        raise ValidationError("Invalid role. Please register as a donor or an NGO.")
    return role


def create_signup_profile(users: UserRepository, identity: Identity, name: Optional[str], role: Role) -> User:
    """Create the profile for a fresh sign-up with the role the user picked.

    Raises:
        ValidationError: `role` is not one a user may pick for themselves
        ProfileSetupError: The profile could not be stored
    """
    role = validate_signup_role(role)

    now = datetime.utcnow()
    profile = User(
        id=identity.id,
        email=identity.email,
        name=(name or "").strip() or email_local_part(identity.email),
        role=role,
        created_at=now,
        updated_at=now,
    )
    try:
        return users.create(profile)
    except SQLAlchemyError as e:
        raise ProfileSetupError("Failed to set up your user profile. Please log in to retry.") from e
