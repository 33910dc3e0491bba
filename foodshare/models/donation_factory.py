"""Donation creation factory for foodshare.

Centralizes how a new donation record is built so every creation path
gets the same initial status and denormalized donor fields.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from foodshare.models.donation import Donation, DonationStatus
from foodshare.models.user import User


def donor_display_name(user: User) -> str:
    """Display name for a profile, falling back to the email local part."""
    if user.name:
        return user.name
    return user.email.split("@")[0]


def create_donation_base(
    donor: User,
    food_item: str,
    category: str,
    quantity: str,
    expiry_date: date,
    pickup_location: str,
    contact_info: str,
    notes: Optional[str] = None,
) -> Donation:
    """Create a new available donation owned by `donor`.

    Args:
        donor: Profile of the donating user
        food_item: Food item name
        category: Category value (known or free-form)
        quantity: Quantity as free text
        expiry_date: Expiry date
        pickup_location: Pickup location
        contact_info: Contact info
        notes: Optional notes

    Returns:
        Donation object in the AVAILABLE state
    """
    now = datetime.utcnow()
    return Donation(
        id=str(uuid.uuid4()),
        donor_id=donor.id,
        donor_name=donor_display_name(donor),
        donor_email=donor.email,
        food_item=food_item,
        category=category,
        quantity=quantity,
        expiry_date=expiry_date,
        pickup_location=pickup_location,
        contact_info=contact_info,
        notes=notes if notes and notes.strip() else None,
        status=DonationStatus.AVAILABLE,
        created_at=now,
        updated_at=now,
    )
