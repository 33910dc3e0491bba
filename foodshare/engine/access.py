"""Role-based access control for foodshare.

Two concerns live here:

1. Operation permissions. Each `Permission` maps to a table covering every
   `Role`; the tables are checked for completeness at import time, so adding
   a role without deciding its permissions fails loudly.
2. View gating. `gate_view` decides whether a view renders, shows "access
   denied", or sends the caller to the login view. The route table mirrors
   the pages the web client offers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, TYPE_CHECKING

from foodshare.engine.errors import AuthRequiredError, NotFoundError, PermissionDeniedError
from foodshare.models.constants import HOME_PATH, LANDING_PATHS, LOGIN_PATH, PUBLIC_PATHS
from foodshare.models.user import Role

if TYPE_CHECKING:
    from foodshare.engine.session import SessionContext


class Permission(str, Enum):
    """Operations gated by role alone (ownership is checked by the caller)."""
    CREATE_DONATION = "create_donation"
    CLAIM_DONATION = "claim_donation"
    COLLECT_ANY_DONATION = "collect_any_donation"
    MODERATE_DONATIONS = "moderate_donations"
    MANAGE_USERS = "manage_users"
    SEND_NOTIFICATIONS = "send_notifications"
    SET_ORGANIZATION = "set_organization"


PERMISSIONS: Dict[Permission, Dict[Role, bool]] = {
    Permission.CREATE_DONATION: {Role.DONOR: True, Role.NGO: False, Role.ADMIN: True},
    Permission.CLAIM_DONATION: {Role.DONOR: False, Role.NGO: True, Role.ADMIN: True},
    Permission.COLLECT_ANY_DONATION: {Role.DONOR: False, Role.NGO: False, Role.ADMIN: True},
    Permission.MODERATE_DONATIONS: {Role.DONOR: False, Role.NGO: False, Role.ADMIN: True},
    Permission.MANAGE_USERS: {Role.DONOR: False, Role.NGO: False, Role.ADMIN: True},
    Permission.SEND_NOTIFICATIONS: {Role.DONOR: False, Role.NGO: False, Role.ADMIN: True},
    Permission.SET_ORGANIZATION: {Role.DONOR: False, Role.NGO: True, Role.ADMIN: False},
}


def _check_exhaustive(tables: Dict[Permission, Dict[Role, bool]]) -> None:
    missing_permissions = set(Permission) - set(tables)
    if missing_permissions:
        raise RuntimeError(f"No role table for permissions: {sorted(p.value for p in missing_permissions)}")
    for permission, table in tables.items():
        missing_roles = set(Role) - set(table)
        if missing_roles:
            raise RuntimeError(
                f"Permission {permission.value} does not cover roles: {sorted(r.value for r in missing_roles)}"
            )


_check_exhaustive(PERMISSIONS)


def has_permission(role: Role, permission: Permission) -> bool:
    return PERMISSIONS[permission][Role(role)]


def require_session(session: Optional["SessionContext"], message: str = "You must be logged in.") -> "SessionContext":
    """Return `session`, or raise AuthRequiredError if there is none."""
    if session is None:
        raise AuthRequiredError(message)
    return session


def require_permission(session: Optional["SessionContext"], permission: Permission, message: str) -> "SessionContext":
    """Require a session whose role grants `permission`.

    Raises:
        AuthRequiredError: No session
        PermissionDeniedError: Role does not grant the permission
    """
    session = require_session(session)
    if not has_permission(session.role, permission):
        raise PermissionDeniedError(message)
    return session


# ---------------------------------------------------------------------------
# View gating
# ---------------------------------------------------------------------------

class ViewOutcome(str, Enum):
    RENDER = "render"
    ACCESS_DENIED = "access_denied"
    LOGIN = "login"


ALL_ROLES: FrozenSet[Role] = frozenset(Role)

ROUTES: Dict[str, FrozenSet[Role]] = {
    "/donate": frozenset({Role.DONOR, Role.ADMIN}),
    "/view-donations": ALL_ROLES,
    "/my-donations": frozenset({Role.DONOR, Role.ADMIN}),
    "/profile": ALL_ROLES,
    "/notifications": ALL_ROLES,
    "/donor-dashboard": frozenset({Role.DONOR, Role.ADMIN}),
    "/ngo-dashboard": frozenset({Role.NGO, Role.ADMIN}),
    "/admin-dashboard": frozenset({Role.ADMIN}),
    "/admin/users": frozenset({Role.ADMIN}),
}


def gate_view(role: Optional[Role], required_roles: FrozenSet[Role]) -> ViewOutcome:
    """Decide how a protected view renders.

    Args:
        role: Role of the signed-in user, or None when there is no session
        required_roles: Roles allowed to see the view

    Returns:
        LOGIN without a session, RENDER when the role is allowed, ACCESS_DENIED otherwise
    """
    if role is None:
        return ViewOutcome.LOGIN
    if Role(role) in required_roles:
        return ViewOutcome.RENDER
    return ViewOutcome.ACCESS_DENIED


def gate_path(path: str, role: Optional[Role]) -> ViewOutcome:
    """Gate a client route by path. Public pages always render.

    Raises:
        NotFoundError: Unknown path
    """
    if path in PUBLIC_PATHS:
        return ViewOutcome.RENDER
    required_roles = ROUTES.get(path)
    if required_roles is None:
        raise NotFoundError(f"Page not found: {path}")
    return gate_view(role, required_roles)


@dataclass(frozen=True)
class NavLink:
    path: str
    label: str


_NAV_LINKS = [
    NavLink("/profile", "My Profile"),
    NavLink("/notifications", "Notifications"),
    NavLink("/donate", "Donate Food"),
    NavLink("/view-donations", "View Donations"),
    NavLink("/my-donations", "My Donations"),
]

_DASHBOARD_LABELS = {
    Role.DONOR: "Donor Dashboard",
    Role.NGO: "NGO Dashboard",
    Role.ADMIN: "Admin Dashboard",
}


def navigation_for(role: Optional[Role]) -> List[NavLink]:
    """Sidebar links for a role: only views the role can render, plus its own dashboard."""
    links = [NavLink(HOME_PATH, "Home")]
    if role is None:
        links.append(NavLink(LOGIN_PATH, "Login / Sign Up"))
        return links

    role = Role(role)
    links.extend(link for link in _NAV_LINKS if gate_path(link.path, role) == ViewOutcome.RENDER)
    links.append(NavLink(LANDING_PATHS[role], _DASHBOARD_LABELS[role]))
    if role == Role.ADMIN:
        links.append(NavLink("/admin/users", "User Management"))
    return links
