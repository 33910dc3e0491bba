"""Constants for foodshare.

This module centralizes default values and fixed paths used throughout the application.
"""

from foodshare.models.user import Role


# Profiles
DEFAULT_ROLE = Role.DONOR
SELF_SERVICE_ROLES = (Role.DONOR, Role.NGO)  # roles a user may pick at sign-up

# Identity service
MIN_PASSWORD_LENGTH = 6

# Views
HOME_PATH = "/"
LOGIN_PATH = "/auth"
ENTRY_PATHS = (HOME_PATH, LOGIN_PATH)
PUBLIC_PATHS = (HOME_PATH, LOGIN_PATH)

LANDING_PATHS = {
    Role.DONOR: "/donor-dashboard",
    Role.NGO: "/ngo-dashboard",
    Role.ADMIN: "/admin-dashboard",
}

# Donations
REQUIRED_DONATION_FIELDS = (
    "food_item",
    "category",
    "quantity",
    "expiry_date",
    "pickup_location",
    "contact_info",
)
