"""Repositories for user profiles and identity-service accounts."""

import logging
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from foodshare.models.user import Identity, Role, User
from foodshare.database.models import IdentityDB, UserDB, enum_to_value
from foodshare.realtime.change_feed import ChangeFeed, ChangeType, Collection, change_feed

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "contact_info", "organization_name")


class UserRepository:
    """Repository for User profile database operations."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed or change_feed

    def _publish(self, change: ChangeType, user_id: str, user: Optional[User] = None) -> None:
        data = user.model_dump(mode="json") if user else None
        self.feed.emit(Collection.USERS, change, user_id, data)

    def get(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        return user_db.to_pydantic() if user_db else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        user_db = self.db.query(UserDB).filter(UserDB.email == email).first()
        return user_db.to_pydantic() if user_db else None

    def list_all(self) -> List[User]:
        """All profiles, newest first."""
        users_db = self.db.query(UserDB).order_by(UserDB.created_at.desc()).all()
        return [user_db.to_pydantic() for user_db in users_db]

    def create(self, user: User) -> User:
        """Create a new profile."""
        try:
            user_db = UserDB.from_pydantic(user)
            self.db.add(user_db)
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Created user {user.id}: {user.email}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create user {user.id}: {type(e).__name__}: {str(e)}")
            raise
        created = user_db.to_pydantic()
        self._publish(ChangeType.CREATED, created.id, created)
        return created

    def update_profile(self, user_id: str, changes: Dict[str, Optional[str]]) -> Optional[User]:
        """Update self-service profile fields.

        Only the keys present in `changes` are written; other columns keep
        their stored values.
        """
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            return None

        for field in PROFILE_FIELDS:
            if field in changes:
                setattr(user_db, field, changes[field])
        user_db.updated_at = datetime.utcnow()
        try:
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Updated profile {user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update profile {user_id}: {type(e).__name__}: {str(e)}")
            raise
        updated = user_db.to_pydantic()
        self._publish(ChangeType.UPDATED, user_id, updated)
        return updated

    def set_role(self, user_id: str, role: Role) -> Optional[User]:
        """Change a profile's role."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            return None

        user_db.role = enum_to_value(role)
        user_db.updated_at = datetime.utcnow()
        try:
            self.db.commit()
            self.db.refresh(user_db)
            logger.debug(f"Set role of {user_id} to {user_db.role}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to set role of {user_id}: {type(e).__name__}: {str(e)}")
            raise
        updated = user_db.to_pydantic()
        self._publish(ChangeType.UPDATED, user_id, updated)
        return updated

    def delete(self, user_id: str) -> bool:
        """Delete a profile record. The identity-service account is untouched."""
        user_db = self.db.query(UserDB).filter(UserDB.id == user_id).first()
        if not user_db:
            return False

        try:
            self.db.delete(user_db)
            self.db.commit()
            logger.debug(f"Deleted profile {user_id}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete profile {user_id}: {type(e).__name__}: {str(e)}")
            raise
        self._publish(ChangeType.DELETED, user_id)
        return True

    def count_by_role(self) -> Dict[str, int]:
        """Profile counts keyed by role value; every role is present."""
        counts = {role.value: 0 for role in Role}
        rows = self.db.query(UserDB.role, func.count(UserDB.id)).group_by(UserDB.role).all()
        for role, count in rows:
            counts[role] = int(count)
        return counts


class IdentityRepository:
    """Repository for identity-service accounts."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, identity_id: str) -> Optional[Identity]:
        identity_db = self.db.query(IdentityDB).filter(IdentityDB.id == identity_id).first()
        return identity_db.to_pydantic() if identity_db else None

    def get_record_by_email(self, email: str) -> Optional[IdentityDB]:
        """Raw record lookup (includes the password hash); never expose to clients."""
        return self.db.query(IdentityDB).filter(IdentityDB.email == email).first()

    def create(self, email: str, password_hash: str) -> Identity:
        try:
            identity_db = IdentityDB(email=email, password_hash=password_hash, created_at=datetime.utcnow())
            self.db.add(identity_db)
            self.db.commit()
            self.db.refresh(identity_db)
            logger.debug(f"Created identity {identity_db.id}: {email}")
            return identity_db.to_pydantic()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create identity for {email}: {type(e).__name__}: {str(e)}")
            raise
