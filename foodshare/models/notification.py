"""Notification data model for foodshare."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Notification(BaseModel):
    """A user-directed message. Only `read` changes after creation."""

    id: str = Field(..., description="Unique notification identifier")
    user_id: str = Field(..., description="Identity key of the recipient")
    message: str = Field(..., description="Message text")
    read: bool = Field(False, description="Whether the recipient has read it")
    donation_id: Optional[str] = Field(None, description="Related donation, if any")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
