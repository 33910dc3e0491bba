"""Request/response models for authentication endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from foodshare.models.constants import LOGIN_PATH
from foodshare.models.user import Role


class SignUpRequest(BaseModel):
    """Request model for email/password sign-up."""
    email: str = Field(..., description="Account email address")
    password: str = Field(..., description="Account password (at least 6 characters)")
    name: Optional[str] = Field(None, description="Display name; defaults to the email's local part")
    role: str = Field(Role.DONOR.value, description="'donor' or 'ngo'; admin cannot be self-selected")


class LoginRequest(BaseModel):
    """Request model for email/password sign-in."""
    email: str
    password: str
    path: str = Field(LOGIN_PATH, description="Client path the sign-in happened on")


class AuthResponse(BaseModel):
    """Response model for authentication."""
    access_token: str
    token_type: str = "bearer"
    user: dict
    redirect: Optional[str] = None


class SessionResponse(BaseModel):
    """Current session, if any, and where the client should go next."""
    user: Optional[dict] = None
    redirect: Optional[str] = None


class LogoutResponse(BaseModel):
    redirect: Optional[str] = None
