"""Self-service profiles and admin user management."""

import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from foodshare.database.donation_repository import DonationRepository
from foodshare.database.user_repository import PROFILE_FIELDS, UserRepository
from foodshare.engine.access import Permission, has_permission, require_permission, require_session
from foodshare.engine.errors import NotFoundError, PermissionDeniedError, ValidationError, provider_errors
from foodshare.engine.session import SessionContext
from foodshare.models.user import Role, User
from foodshare.realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)

_INVALID_ROLE_MESSAGE = "Invalid role. Please enter 'donor', 'ngo', or 'admin'."


def parse_role(value) -> Role:
    """Parse a role typed by an admin; case and surrounding space are ignored."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value or "").strip().lower())
    except ValueError as e:
        raise ValidationError(_INVALID_ROLE_MESSAGE) from e


class ProfileService:
    """The caller's own profile."""

    def __init__(self, users: UserRepository):
        self.users = users

    def get_profile(self, session: Optional[SessionContext]) -> User:
        session = require_session(session, "Please log in to view your profile.")
        with provider_errors("load profile"):
            profile = self.users.get(session.identity_key)
        if profile is None:
            raise NotFoundError("Your profile could not be found.")
        return profile

    def update_profile(self, session: Optional[SessionContext], **changes) -> User:
        """Update name, contact info and (NGOs only) organization name.

        Keyword arguments are any of PROFILE_FIELDS. Omitted or None fields are
        left unchanged and a blank value clears the field. Role and email are
        not self-service fields. For roles without an organization,
        `organization_name` is ignored.

        Raises:
            ValidationError: A field outside PROFILE_FIELDS was given
        """
        session = require_session(session, "Please log in to update your profile.")
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        if not has_permission(session.role, Permission.SET_ORGANIZATION):
            changes.pop("organization_name", None)

        values = {name: value.strip() or None for name, value in changes.items() if value is not None}
        with provider_errors("update profile"):
            if values:
                updated = self.users.update_profile(session.identity_key, values)
            else:
                updated = self.users.get(session.identity_key)
        if updated is None:
            raise NotFoundError("Your profile could not be found.")
        logger.info(f"Profile {session.identity_key} updated")
        return updated


class UserAdministration:
    """Admin-only management of every profile."""

    def __init__(self, users: UserRepository, donations: DonationRepository):
        self.users = users
        self.donations = donations

    @classmethod
    def for_db(cls, db: Session, change_feed: Optional[ChangeFeed] = None) -> "UserAdministration":
        return cls(UserRepository(db, change_feed), DonationRepository(db, change_feed))

    def list_users(self, session: Optional[SessionContext]) -> List[User]:
        require_permission(session, Permission.MANAGE_USERS, "Only admins can manage users.")
        with provider_errors("load users"):
            return self.users.list_all()

    def change_role(self, session: Optional[SessionContext], target_id: str, role) -> User:
        """Set another user's role.

        Raises:
            PermissionDeniedError: Caller is not an admin, or targets themselves
            ValidationError: `role` is not donor, ngo or admin
            NotFoundError: No such profile
        """
        session = require_permission(session, Permission.MANAGE_USERS, "Only admins can manage users.")
        if target_id == session.identity_key:
            raise PermissionDeniedError("You cannot change your own role.")
        new_role = parse_role(role)

        with provider_errors("update user role"):
            updated = self.users.set_role(target_id, new_role)
        if updated is None:
            raise NotFoundError("User not found.")
        logger.info(f"Admin {session.identity_key} set role of {target_id} to {new_role.value}")
        return updated

    def delete_user(self, session: Optional[SessionContext], target_id: str) -> None:
        """Delete another user's profile. Their identity-service account remains."""
        session = require_permission(session, Permission.MANAGE_USERS, "Only admins can manage users.")
        if target_id == session.identity_key:
            raise PermissionDeniedError("You cannot delete your own account.")

        with provider_errors("delete user"):
            deleted = self.users.delete(target_id)
        if not deleted:
            raise NotFoundError("User not found.")
        logger.info(f"Admin {session.identity_key} deleted profile {target_id}")

    def dashboard_stats(self, session: Optional[SessionContext]) -> Dict[str, Dict[str, int]]:
        """Donation counts per status and profile counts per role."""
        require_permission(session, Permission.MANAGE_USERS, "Only admins can view statistics.")
        with provider_errors("load statistics"):
            return {
                "donations": self.donations.count_by_status(),
                "users": self.users.count_by_role(),
            }
