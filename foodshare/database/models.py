"""SQLAlchemy database models for foodshare."""

from datetime import datetime
import uuid
from sqlalchemy import Column, String, Boolean, Date, DateTime

from typing import Union, TypeVar, Type
from foodshare.database.database import Base
from foodshare.models.donation import DonationStatus
from foodshare.models.user import Role

T = TypeVar('T')


def enum_to_value(enum_obj: Union[str, T]) -> str:
    """Convert enum to string value (handles both enum and string).

    Args:
        enum_obj: Enum instance or string value

    Returns:
        String value of the enum, or the string itself if already a string
    """
    if hasattr(enum_obj, 'value'):
        return enum_obj.value
    return str(enum_obj)


def value_to_enum(value: str, enum_class: Type[T], default: T) -> T:
    """Convert string to enum with fallback to default.

    Args:
        value: String value to convert
        enum_class: Enum class to convert to
        default: Default enum value if conversion fails

    Returns:
        Enum instance, or default if conversion fails
    """
    if not value:
        return default
    try:
        return enum_class(value.lower())
    except (ValueError, AttributeError):
        return default


class IdentityDB(Base):
    """Database model for an identity-service account."""

    __tablename__ = "identities"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from foodshare.models.user import Identity
        return Identity(id=self.id, email=self.email)


class UserDB(Base):
    """Database model for a user profile."""

    __tablename__ = "users"

    # Primary key (identity key)
    id = Column(String, primary_key=True)

    # Profile
    email = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.DONOR.value, index=True)
    contact_info = Column(String, nullable=True)
    organization_name = Column(String, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from foodshare.models.user import User
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            role=value_to_enum(self.role, Role, Role.DONOR),
            contact_info=self.contact_info,
            organization_name=self.organization_name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_pydantic(cls, user):
        """Create database model from Pydantic model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=enum_to_value(user.role),
            contact_info=user.contact_info,
            organization_name=user.organization_name,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class DonationDB(Base):
    """Database model for Donation."""

    __tablename__ = "donations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Donor (denormalized at creation; profiles may be deleted independently)
    donor_id = Column(String, nullable=False, index=True)
    donor_name = Column(String, nullable=True)
    donor_email = Column(String, nullable=True)

    # Listing fields
    food_item = Column(String, nullable=False)
    category = Column(String, nullable=False, index=True)
    quantity = Column(String, nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)
    pickup_location = Column(String, nullable=False)
    contact_info = Column(String, nullable=False)
    notes = Column(String, nullable=True)

    status = Column(String, nullable=False, default=DonationStatus.AVAILABLE.value, index=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Claim metadata
    claimed_by = Column(String, nullable=True, index=True)
    claimed_by_name = Column(String, nullable=True)
    claimed_by_email = Column(String, nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    # Collection metadata
    collected_by = Column(String, nullable=True)
    collected_by_name = Column(String, nullable=True)
    collected_by_email = Column(String, nullable=True)
    collected_at = Column(DateTime, nullable=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from foodshare.models.donation import Donation
        return Donation(
            id=self.id,
            donor_id=self.donor_id,
            donor_name=self.donor_name,
            donor_email=self.donor_email,
            food_item=self.food_item,
            category=self.category,
            quantity=self.quantity,
            expiry_date=self.expiry_date,
            pickup_location=self.pickup_location,
            contact_info=self.contact_info,
            notes=self.notes,
            status=value_to_enum(self.status, DonationStatus, DonationStatus.AVAILABLE),
            created_at=self.created_at,
            updated_at=self.updated_at,
            claimed_by=self.claimed_by,
            claimed_by_name=self.claimed_by_name,
            claimed_by_email=self.claimed_by_email,
            claimed_at=self.claimed_at,
            collected_by=self.collected_by,
            collected_by_name=self.collected_by_name,
            collected_by_email=self.collected_by_email,
            collected_at=self.collected_at,
        )

    @classmethod
    def from_pydantic(cls, donation):
        """Create database model from Pydantic model."""
        return cls(
            id=donation.id,
            donor_id=donation.donor_id,
            donor_name=donation.donor_name,
            donor_email=donation.donor_email,
            food_item=donation.food_item,
            category=donation.category,
            quantity=donation.quantity,
            expiry_date=donation.expiry_date,
            pickup_location=donation.pickup_location,
            contact_info=donation.contact_info,
            notes=donation.notes,
            status=enum_to_value(donation.status),
            created_at=donation.created_at,
            updated_at=donation.updated_at,
            claimed_by=donation.claimed_by,
            claimed_by_name=donation.claimed_by_name,
            claimed_by_email=donation.claimed_by_email,
            claimed_at=donation.claimed_at,
            collected_by=donation.collected_by,
            collected_by_name=donation.collected_by_name,
            collected_by_email=donation.collected_by_email,
            collected_at=donation.collected_at,
        )


class NotificationDB(Base):
    """Database model for Notification."""

    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    message = Column(String, nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    donation_id = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from foodshare.models.notification import Notification
        return Notification(
            id=self.id,
            user_id=self.user_id,
            message=self.message,
            read=self.read,
            donation_id=self.donation_id,
            created_at=self.created_at,
        )

    @classmethod
    def from_pydantic(cls, notification):
        """Create database model from Pydantic model."""
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            message=notification.message,
            read=notification.read,
            donation_id=notification.donation_id,
            created_at=notification.created_at,
        )
