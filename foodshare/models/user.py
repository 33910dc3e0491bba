"""User profile and identity data models for foodshare."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    """Role enumeration. Governs permitted operations."""
    DONOR = "donor"
    NGO = "ngo"
    ADMIN = "admin"


class User(BaseModel):
    """User profile, keyed by the identity key issued at sign-up."""

    id: str = Field(..., description="Identity key (stable, issued by the identity service)")
    email: str = Field(..., description="User email address")
    name: Optional[str] = Field(None, description="User display name")
    role: Role = Field(Role.DONOR, description="User role")
    contact_info: Optional[str] = Field(None, description="Optional contact details")
    organization_name: Optional[str] = Field(None, description="Organization name (NGOs only)")
    created_at: datetime = Field(..., description="Profile creation timestamp")
    updated_at: datetime = Field(..., description="Profile last update timestamp")

    class Config:
        """Pydantic configuration."""
        use_enum_values = True


class Identity(BaseModel):
    """An authenticated principal as known to the identity service."""

    id: str = Field(..., description="Identity key")
    email: str = Field(..., description="Sign-in email address")
