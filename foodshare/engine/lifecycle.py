"""Donation lifecycle engine.

States and the only legal transitions:

    available --claim--> claimed --mark collected--> collected

There is no cancellation or reversal. Every transition is written as a
compare-and-swap on the stored status, so when two actors race for the same
transition exactly one of them wins and the other gets InvalidStateError.
Edits and deletes are likewise conditioned on the donation still being
available.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from foodshare.database.donation_repository import DonationRepository
from foodshare.database.notification_repository import NotificationRepository
from foodshare.database.user_repository import UserRepository
from foodshare.engine.access import Permission, has_permission, require_permission, require_session
from foodshare.engine.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
    provider_errors,
)
from foodshare.engine.notifications import NotificationFeed
from foodshare.engine.session import SessionContext
from foodshare.models.constants import REQUIRED_DONATION_FIELDS
from foodshare.models.donation import Donation, DonationSort, DonationStatus
from foodshare.models.donation_factory import create_donation_base
from foodshare.realtime.change_feed import ChangeFeed

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[DonationStatus, Set[DonationStatus]] = {
    DonationStatus.AVAILABLE: {DonationStatus.CLAIMED},
    DonationStatus.CLAIMED: {DonationStatus.COLLECTED},
    DonationStatus.COLLECTED: set(),
}

EDITABLE_FIELDS = (
    "food_item",
    "category",
    "quantity",
    "expiry_date",
    "pickup_location",
    "contact_info",
    "notes",
)

_MISSING_FIELDS_MESSAGE = "Please fill in all required fields."


def can_transition(current: DonationStatus, target: DonationStatus) -> bool:
    return DonationStatus(target) in ALLOWED_TRANSITIONS[DonationStatus(current)]


def parse_expiry_date(value: Union[date, str, None]) -> date:
    """Accept a date or an ISO `YYYY-MM-DD` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not str(value).strip():
        raise ValidationError(_MISSING_FIELDS_MESSAGE)
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise ValidationError("Expiry date must be a valid date (YYYY-MM-DD).") from e


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class DonationLifecycle:
    """Create, edit, delete, claim and collect donations."""

    def __init__(
        self,
        donations: DonationRepository,
        users: UserRepository,
        feed: NotificationFeed,
    ):
        self.donations = donations
        self.users = users
        self.feed = feed

    @classmethod
    def for_db(cls, db: Session, change_feed: Optional[ChangeFeed] = None) -> "DonationLifecycle":
        users = UserRepository(db, change_feed)
        return cls(
            donations=DonationRepository(db, change_feed),
            users=users,
            feed=NotificationFeed(NotificationRepository(db, change_feed), users),
        )

    def _load(self, donation_id: str) -> Donation:
        donation = self.donations.get(donation_id)
        if donation is None:
            raise NotFoundError("Donation not found.")
        return donation

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def browse(
        self,
        session: Optional[SessionContext],
        status: Optional[DonationStatus] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort: DonationSort = DonationSort.CREATED_DESC,
    ) -> List[Donation]:
        """All donations, filtered and sorted for the listing view."""
        require_session(session, "Please log in to view donations.")
        with provider_errors("load donations"):
            return self.donations.find(
                status=status,
                category=category or None,
                search=(search or "").strip() or None,
                sort=sort,
            )

    def mine(self, session: Optional[SessionContext]) -> List[Donation]:
        """Donations created by the caller, newest first."""
        session = require_session(session, "Please log in to view your donations.")
        with provider_errors("load donations"):
            return self.donations.list_by_donor(session.identity_key)

    def get(self, session: Optional[SessionContext], donation_id: str) -> Donation:
        require_session(session, "Please log in to view donations.")
        with provider_errors("load donation"):
            return self._load(donation_id)

    def categories(self, session: Optional[SessionContext]) -> List[str]:
        require_session(session)
        with provider_errors("load categories"):
            return self.donations.categories()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        session: Optional[SessionContext],
        food_item: Optional[str],
        category: Optional[str],
        quantity: Optional[str],
        expiry_date: Union[date, str, None],
        pickup_location: Optional[str],
        contact_info: Optional[str],
        notes: Optional[str] = None,
    ) -> Donation:
        """Create an available donation owned by the caller.

        Raises:
            AuthRequiredError: No session
            PermissionDeniedError: Caller's role may not donate
            ValidationError: A required field is empty or malformed
        """
        session = require_session(session, "You must be logged in to donate food.")
        require_permission(session, Permission.CREATE_DONATION, "Only donors or admins can donate food.")

        values = {
            "food_item": food_item,
            "category": category,
            "quantity": quantity,
            "expiry_date": expiry_date,
            "pickup_location": pickup_location,
            "contact_info": contact_info,
        }
        if any(_is_blank(values[name]) for name in REQUIRED_DONATION_FIELDS):
            raise ValidationError(_MISSING_FIELDS_MESSAGE)
        expiry = parse_expiry_date(expiry_date)

        with provider_errors("add donation"):
            donor = self.users.get(session.identity_key)
            if donor is None:
                raise NotFoundError("Your profile could not be found.")
            donation = create_donation_base(
                donor=donor,
                food_item=food_item,
                category=category,
                quantity=quantity,
                expiry_date=expiry,
                pickup_location=pickup_location,
                contact_info=contact_info,
                notes=notes,
            )
            created = self.donations.create(donation)

        logger.info(f"Donation {created.id} created by {session.identity_key}")
        return created

    def edit(self, session: Optional[SessionContext], donation_id: str, **changes) -> Donation:
        """Edit an available donation's listing fields. Donor only.

        Keyword arguments are any of EDITABLE_FIELDS; omitted or None fields
        are left unchanged. Status and donor identity never change here.

        Raises:
            PermissionDeniedError: Caller is not the donor, or the donation is no longer available
            ValidationError: A required field was set empty
        """
        session = require_session(session, "You must be logged in to edit donations.")

        with provider_errors("update donation"):
            donation = self._load(donation_id)
            self._require_owner_while_available(session, donation, "edit", "edited")

            unknown = set(changes) - set(EDITABLE_FIELDS)
            if unknown:
                raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

            values = {}
            for name, value in changes.items():
                if value is None:
                    continue
                if name == "notes":
                    values[name] = None if _is_blank(value) else value
                    continue
                if _is_blank(value):
                    raise ValidationError(_MISSING_FIELDS_MESSAGE)
                values[name] = parse_expiry_date(value) if name == "expiry_date" else value

            if not values:
                return donation

            updated = self.donations.update_if_status(donation_id, DonationStatus.AVAILABLE, values)
            if updated is None:
                self._raise_lost_available(donation_id, "edited")

        logger.info(f"Donation {donation_id} edited by {session.identity_key}")
        return updated

    def delete(self, session: Optional[SessionContext], donation_id: str) -> None:
        """Delete an available donation. Donor only."""
        session = require_session(session, "You must be logged in to delete donations.")
        with provider_errors("delete donation"):
            donation = self._load(donation_id)
            self._require_owner_while_available(session, donation, "delete", "deleted")
            if not self.donations.delete(donation_id, expected_status=DonationStatus.AVAILABLE):
                self._raise_lost_available(donation_id, "deleted")
        logger.info(f"Donation {donation_id} deleted by {session.identity_key}")

    def claim(self, session: Optional[SessionContext], donation_id: str) -> Donation:
        """Claim an available donation for the caller's organization.

        Raises:
            PermissionDeniedError: Caller is not an NGO/admin, or is the donor
            InvalidStateError: Donation is not available (including losing a race)
        """
        session = require_session(session, "You must be logged in to claim a donation.")
        with provider_errors("claim donation"):
            donation = self._load(donation_id)
            if not has_permission(session.role, Permission.CLAIM_DONATION):
                raise PermissionDeniedError("Only NGOs or admins can claim donations.")
            if donation.donor_id == session.identity_key:
                raise PermissionDeniedError("You cannot claim your own donation.")

            updated = self._transition(
                donation,
                DonationStatus.CLAIMED,
                {
                    "claimed_by": session.identity_key,
                    "claimed_by_name": session.name,
                    "claimed_by_email": session.email,
                    "claimed_at": datetime.utcnow(),
                },
            )

        self._notify(
            updated.donor_id,
            f"Your donation '{updated.food_item}' was claimed by {session.name}.",
            updated.id,
        )
        return updated

    def mark_collected(self, session: Optional[SessionContext], donation_id: str) -> Donation:
        """Mark a claimed donation collected. Donor or admin only.

        Raises:
            InvalidStateError: Donation is not in the claimed state
            PermissionDeniedError: Caller is neither the donor nor an admin
        """
        session = require_session(session, "You must be logged in.")
        with provider_errors("mark donation as collected"):
            donation = self._load(donation_id)
            if donation.status != DonationStatus.CLAIMED:
                raise InvalidStateError("Only claimed donations can be marked as collected.")
            is_donor = donation.donor_id == session.identity_key
            if not is_donor and not has_permission(session.role, Permission.COLLECT_ANY_DONATION):
                raise PermissionDeniedError("Only the donor or an admin can mark this donation as collected.")

            updated = self._transition(
                donation,
                DonationStatus.COLLECTED,
                {
                    "collected_by": session.identity_key,
                    "collected_by_name": session.name,
                    "collected_by_email": session.email,
                    "collected_at": datetime.utcnow(),
                },
            )

        if updated.claimed_by:
            self._notify(
                updated.claimed_by,
                f"Donation '{updated.food_item}' has been marked as collected.",
                updated.id,
            )
        return updated

    def remove(self, session: Optional[SessionContext], donation_id: str) -> None:
        """Moderation: admin removal of a donation in any status."""
        require_permission(session, Permission.MODERATE_DONATIONS, "Only admins can moderate donations.")
        with provider_errors("remove donation"):
            if not self.donations.delete(donation_id):
                raise NotFoundError("Donation not found.")
        logger.info(f"Donation {donation_id} removed by admin {session.identity_key}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, donation: Donation, target: DonationStatus, metadata: Dict) -> Donation:
        current = DonationStatus(donation.status)
        if not can_transition(current, target):
            logger.warning(f"Rejected {current.value} -> {target.value} for donation {donation.id}")
            raise InvalidStateError(
                f"Donation is already {current.value} and cannot be {target.value}."
            )

        values = {"status": target.value, **metadata}
        updated = self.donations.update_if_status(donation.id, current, values)
        if updated is None:
            # Status changed between our read and the conditional write.
            logger.warning(f"Lost race moving donation {donation.id} {current.value} -> {target.value}")
            raise InvalidStateError(f"Donation is no longer {current.value}.")

        logger.info(f"Donation {donation.id}: {current.value} -> {target.value}")
        return updated

    def _require_owner_while_available(self, session: SessionContext, donation: Donation, action: str, done: str) -> None:
        if donation.donor_id != session.identity_key:
            raise PermissionDeniedError(f"You can only {action} your own donations.")
        if donation.status != DonationStatus.AVAILABLE:
            raise PermissionDeniedError(f"Only 'available' donations can be {done}.")

    def _raise_lost_available(self, donation_id: str, action: str) -> None:
        if self.donations.get(donation_id) is None:
            raise NotFoundError("Donation not found.")
        raise PermissionDeniedError(f"Only 'available' donations can be {action}.")

    def _notify(self, user_id: str, message: str, donation_id: str) -> None:
        # The transition is already committed; a failed notification must not report it as failed.
        try:
            self.feed.notify(user_id, message, donation_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to notify {user_id} about donation {donation_id}: {type(e).__name__}: {str(e)}")
