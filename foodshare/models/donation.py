"""Donation data model for foodshare."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class DonationStatus(str, Enum):
    """Donation lifecycle status.

    Only ever advances AVAILABLE -> CLAIMED -> COLLECTED.
    """
    AVAILABLE = "available"
    CLAIMED = "claimed"
    COLLECTED = "collected"


class DonationCategory(str, Enum):
    """Known donation categories. Free-form values are also accepted."""
    COOKED = "cooked"
    RAW_PRODUCE = "raw_produce"
    PACKAGED = "packaged"
    BAKED = "baked"
    DAIRY = "dairy"
    MEAT = "meat"
    OTHER = "other"


class DonationSort(str, Enum):
    """Sort orders supported by donation listings."""
    CREATED_DESC = "createdAt_desc"
    CREATED_ASC = "createdAt_asc"
    EXPIRY_ASC = "expiryDate_asc"
    EXPIRY_DESC = "expiryDate_desc"


class Donation(BaseModel):
    """Canonical Donation model."""

    id: str = Field(..., description="Unique donation identifier (UUID v4)")
    donor_id: str = Field(..., description="Identity key of the donor")
    donor_name: Optional[str] = Field(None, description="Donor display name at creation time")
    donor_email: Optional[str] = Field(None, description="Donor email at creation time")
    food_item: str = Field(..., description="Food item name")
    category: str = Field(..., description="Category (known value or free-form)")
    quantity: str = Field(..., description="Quantity (free text)")
    expiry_date: date = Field(..., description="Expiry date")
    pickup_location: str = Field(..., description="Pickup location (free text)")
    contact_info: str = Field(..., description="Contact info (free text)")
    notes: Optional[str] = Field(None, description="Optional notes")
    status: DonationStatus = Field(DonationStatus.AVAILABLE, description="Lifecycle status")
    created_at: datetime = Field(..., description="Creation timestamp (server-assigned)")
    updated_at: datetime = Field(..., description="Last update timestamp")

    claimed_by: Optional[str] = Field(None, description="Identity key of the claimer")
    claimed_by_name: Optional[str] = None
    claimed_by_email: Optional[str] = None
    claimed_at: Optional[datetime] = None

    collected_by: Optional[str] = Field(None, description="Identity key of whoever marked it collected")
    collected_by_name: Optional[str] = None
    collected_by_email: Optional[str] = None
    collected_at: Optional[datetime] = None

    class Config:
        """Pydantic configuration."""
        use_enum_values = True
