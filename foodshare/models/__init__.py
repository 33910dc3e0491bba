"""Data models for foodshare."""

from foodshare.models.user import User, Identity, Role
from foodshare.models.donation import Donation, DonationStatus, DonationCategory, DonationSort
from foodshare.models.notification import Notification

__all__ = [
    "User",
    "Identity",
    "Role",
    "Donation",
    "DonationStatus",
    "DonationCategory",
    "DonationSort",
    "Notification",
]
