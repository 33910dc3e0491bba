"""Domain operations: sessions, access control, donations, notifications and profiles."""

from foodshare.engine.access import (
    Permission,
    ViewOutcome,
    gate_path,
    gate_view,
    has_permission,
    navigation_for,
)
from foodshare.engine.errors import (
    AuthRequiredError,
    FoodShareError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ProfileSetupError,
    ProviderError,
)
from foodshare.engine.lifecycle import ALLOWED_TRANSITIONS, DonationLifecycle
from foodshare.engine.notifications import MarkAllResult, NotificationFeed
from foodshare.engine.profiles import ProfileService, UserAdministration
from foodshare.engine.session import SessionContext, ensure_profile, resolve_session

__all__ = [
    "Permission",
    "ViewOutcome",
    "gate_path",
    "gate_view",
    "has_permission",
    "navigation_for",
    "AuthRequiredError",
    "FoodShareError",
    "InvalidStateError",
    "NotFoundError",
    "PermissionDeniedError",
    "ProfileSetupError",
    "ProviderError",
    "ALLOWED_TRANSITIONS",
    "DonationLifecycle",
    "MarkAllResult",
    "NotificationFeed",
    "ProfileService",
    "UserAdministration",
    "SessionContext",
    "ensure_profile",
    "resolve_session",
]
