"""Tests for the donation lifecycle engine."""

import pytest
from datetime import date
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from foodshare.engine.errors import (
    AuthRequiredError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ProviderError,
    ValidationError,
)
from foodshare.engine.lifecycle import ALLOWED_TRANSITIONS, can_transition, parse_expiry_date
from foodshare.models.donation import DonationSort, DonationStatus


class TestTransitionTable:
    """The lifecycle graph is a single forward chain."""

    def test_only_forward_transitions(self):
        assert ALLOWED_TRANSITIONS[DonationStatus.AVAILABLE] == {DonationStatus.CLAIMED}
        assert ALLOWED_TRANSITIONS[DonationStatus.CLAIMED] == {DonationStatus.COLLECTED}
        assert ALLOWED_TRANSITIONS[DonationStatus.COLLECTED] == set()

    @pytest.mark.parametrize("current,target", [
        (DonationStatus.CLAIMED, DonationStatus.AVAILABLE),
        (DonationStatus.COLLECTED, DonationStatus.CLAIMED),
        (DonationStatus.AVAILABLE, DonationStatus.COLLECTED),
        (DonationStatus.COLLECTED, DonationStatus.AVAILABLE),
    ])
    def test_backward_and_skipping_transitions_rejected(self, current, target):
        assert can_transition(current, target) is False


class TestCreate:
    """Creating donations."""

    def test_round_trip_preserves_submitted_fields(self, lifecycle, donor_session):
        created = lifecycle.create(
            donor_session,
            food_item=" Rice",
            category="Grains & Bread",
            quantity="5kg ",
            expiry_date="2025-01-01",
            pickup_location="123 Main St,  Unit 4",
            contact_info="555-0100",
            notes="  Leave at the side door",
        )

        read_back = lifecycle.get(donor_session, created.id)
        assert read_back.status == DonationStatus.AVAILABLE.value
        assert read_back.food_item == " Rice"
        assert read_back.category == "Grains & Bread"
        assert read_back.quantity == "5kg "
        assert read_back.expiry_date == date(2025, 1, 1)
        assert read_back.pickup_location == "123 Main St,  Unit 4"
        assert read_back.contact_info == "555-0100"
        assert read_back.notes == "  Leave at the side door"
        assert read_back.donor_id == donor_session.identity_key
        assert read_back.donor_name == "Asha"
        assert read_back.donor_email == "asha@example.com"
        assert read_back.claimed_by is None
        assert read_back.collected_by is None

    def test_admin_may_donate(self, make_donation, admin_session):
        donation = make_donation(session=admin_session)
        assert donation.donor_id == admin_session.identity_key

    def test_ngo_may_not_donate(self, make_donation, ngo_session):
        with pytest.raises(PermissionDeniedError):
            make_donation(session=ngo_session)

    def test_requires_session(self, lifecycle, donation_fields):
        with pytest.raises(AuthRequiredError):
            lifecycle.create(None, **donation_fields)

    @pytest.mark.parametrize("field", [
        "food_item", "category", "quantity", "expiry_date", "pickup_location", "contact_info",
    ])
    def test_blank_required_field_rejected(self, make_donation, field):
        with pytest.raises(ValidationError):
            make_donation(**{field: "  "})

    def test_malformed_expiry_rejected(self, make_donation):
        with pytest.raises(ValidationError):
            make_donation(expiry_date="next tuesday")

    def test_notes_are_optional(self, make_donation):
        assert make_donation(notes="").notes is None
        assert make_donation(notes=" Fresh today ").notes == " Fresh today "
        assert make_donation(notes="   ").notes is None


class TestClaimAndCollect:
    """The available -> claimed -> collected chain."""

    def test_full_scenario(self, lifecycle, make_donation, donor_session, ngo_session, admin_session):
        donation = make_donation()
        assert donation.status == DonationStatus.AVAILABLE.value

        claimed = lifecycle.claim(ngo_session, donation.id)
        assert claimed.status == DonationStatus.CLAIMED.value
        assert claimed.claimed_by == ngo_session.identity_key
        assert claimed.claimed_by_name == "City Food Bank"
        assert claimed.claimed_at is not None

        collected = lifecycle.mark_collected(donor_session, donation.id)
        assert collected.status == DonationStatus.COLLECTED.value
        assert collected.collected_by == donor_session.identity_key
        assert collected.claimed_by == ngo_session.identity_key

        for session in (ngo_session, admin_session):
            with pytest.raises(InvalidStateError):
                lifecycle.claim(session, donation.id)

    def test_donor_cannot_claim_own_donation(self, lifecycle, make_donation, admin_session):
        donation = make_donation(session=admin_session)
        with pytest.raises(PermissionDeniedError):
            lifecycle.claim(admin_session, donation.id)
        assert lifecycle.get(admin_session, donation.id).status == DonationStatus.AVAILABLE.value

    def test_donor_role_cannot_claim(self, lifecycle, make_donation, other_donor_session):
        donation = make_donation()
        with pytest.raises(PermissionDeniedError):
            lifecycle.claim(other_donor_session, donation.id)

    def test_admin_can_claim_and_collect(self, lifecycle, make_donation, admin_session):
        donation = make_donation()
        lifecycle.claim(admin_session, donation.id)
        collected = lifecycle.mark_collected(admin_session, donation.id)
        assert collected.collected_by == admin_session.identity_key

    def test_second_claim_fails(self, lifecycle, make_donation, ngo_session, admin_session):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        with pytest.raises(InvalidStateError):
            lifecycle.claim(admin_session, donation.id)
        assert lifecycle.get(ngo_session, donation.id).claimed_by == ngo_session.identity_key

    def test_claim_losing_race_fails(self, lifecycle, make_donation, ngo_session, admin_session):
        """A claim decided on a stale read still loses at write time."""
        donation = make_donation()
        stale = lifecycle.get(ngo_session, donation.id)
        lifecycle.claim(ngo_session, donation.id)

        with patch.object(lifecycle.donations, "get", return_value=stale):
            with pytest.raises(InvalidStateError):
                lifecycle.claim(admin_session, donation.id)

        current = lifecycle.donations.find()[0]
        assert current.claimed_by == ngo_session.identity_key

    @pytest.mark.parametrize("advance", [0, 2])
    def test_collect_requires_claimed(self, lifecycle, make_donation, donor_session, ngo_session, advance):
        donation = make_donation()
        if advance:
            lifecycle.claim(ngo_session, donation.id)
            lifecycle.mark_collected(donor_session, donation.id)
        with pytest.raises(InvalidStateError):
            lifecycle.mark_collected(donor_session, donation.id)

    def test_collect_by_claimer_or_stranger_denied(
        self, lifecycle, make_donation, ngo_session, other_donor_session
    ):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        for session in (ngo_session, other_donor_session):
            with pytest.raises(PermissionDeniedError):
                lifecycle.mark_collected(session, donation.id)

    def test_claim_unknown_donation(self, lifecycle, ngo_session):
        with pytest.raises(NotFoundError):
            lifecycle.claim(ngo_session, "missing")

    def test_claim_and_collect_notify(self, lifecycle, make_donation, donor_session, ngo_session, notification_feed):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        donor_inbox = notification_feed.list(donor_session)
        assert len(donor_inbox) == 1
        assert "claimed" in donor_inbox[0].message
        assert donor_inbox[0].donation_id == donation.id

        lifecycle.mark_collected(donor_session, donation.id)
        ngo_inbox = notification_feed.list(ngo_session)
        assert len(ngo_inbox) == 1
        assert "collected" in ngo_inbox[0].message

    def test_notification_failure_does_not_undo_claim(self, lifecycle, make_donation, ngo_session):
        donation = make_donation()
        with patch.object(
            lifecycle.feed, "notify", side_effect=OperationalError("INSERT", {}, Exception("locked"))
        ):
            claimed = lifecycle.claim(ngo_session, donation.id)
        assert claimed.status == DonationStatus.CLAIMED.value


class TestEditAndDelete:
    """Edits and deletes are for the donor while the donation is available."""

    def test_donor_edits_available_donation(self, lifecycle, make_donation, donor_session):
        donation = make_donation()
        edited = lifecycle.edit(donor_session, donation.id, quantity="12 loaves", expiry_date="2030-05-01")
        assert edited.quantity == "12 loaves"
        assert edited.expiry_date == date(2030, 5, 1)
        assert edited.food_item == donation.food_item
        assert edited.status == DonationStatus.AVAILABLE.value

    def test_edit_to_blank_required_field_rejected(self, lifecycle, make_donation, donor_session):
        donation = make_donation()
        with pytest.raises(ValidationError):
            lifecycle.edit(donor_session, donation.id, food_item="")

    def test_edit_stores_values_as_submitted(self, lifecycle, make_donation, donor_session):
        donation = make_donation()
        lifecycle.edit(donor_session, donation.id, food_item="Brown rice ", notes=" Bring bags")
        read_back = lifecycle.get(donor_session, donation.id)
        assert read_back.food_item == "Brown rice "
        assert read_back.notes == " Bring bags"

        lifecycle.edit(donor_session, donation.id, notes="  ")
        assert lifecycle.get(donor_session, donation.id).notes is None

    def test_status_is_not_editable(self, lifecycle, make_donation, donor_session):
        donation = make_donation()
        with pytest.raises(ValidationError):
            lifecycle.edit(donor_session, donation.id, status="collected")

    def test_unknown_field_on_claimed_donation_is_permission_denied(
        self, lifecycle, make_donation, donor_session, ngo_session
    ):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        with pytest.raises(PermissionDeniedError):
            lifecycle.edit(donor_session, donation.id, status="collected")

    def test_non_donor_cannot_edit_or_delete(self, lifecycle, make_donation, admin_session, other_donor_session):
        donation = make_donation()
        for session in (admin_session, other_donor_session):
            with pytest.raises(PermissionDeniedError):
                lifecycle.edit(session, donation.id, quantity="1")
            with pytest.raises(PermissionDeniedError):
                lifecycle.delete(session, donation.id)

    @pytest.mark.parametrize("collect", [False, True])
    def test_edit_and_delete_denied_after_claim_for_everyone(
        self, lifecycle, make_donation, donor_session, ngo_session, admin_session, collect
    ):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        if collect:
            lifecycle.mark_collected(donor_session, donation.id)

        for session in (donor_session, ngo_session, admin_session):
            with pytest.raises(PermissionDeniedError):
                lifecycle.edit(session, donation.id, quantity="1")
            with pytest.raises(PermissionDeniedError):
                lifecycle.delete(session, donation.id)

    def test_edit_losing_race_to_claim(self, lifecycle, make_donation, donor_session, ngo_session):
        donation = make_donation()
        stale = lifecycle.get(donor_session, donation.id)
        lifecycle.claim(ngo_session, donation.id)

        with patch.object(lifecycle.donations, "get", side_effect=[stale, lifecycle.donations.get(donation.id)]):
            with pytest.raises(PermissionDeniedError):
                lifecycle.edit(donor_session, donation.id, quantity="1")
        assert lifecycle.get(donor_session, donation.id).quantity == donation.quantity

    def test_donor_deletes_available_donation(self, lifecycle, make_donation, donor_session):
        donation = make_donation()
        lifecycle.delete(donor_session, donation.id)
        with pytest.raises(NotFoundError):
            lifecycle.get(donor_session, donation.id)


class TestModeration:
    """Admin removal of donations in any status."""

    def test_admin_removes_claimed_donation(self, lifecycle, make_donation, ngo_session, admin_session):
        donation = make_donation()
        lifecycle.claim(ngo_session, donation.id)
        lifecycle.remove(admin_session, donation.id)
        with pytest.raises(NotFoundError):
            lifecycle.get(admin_session, donation.id)

    @pytest.mark.parametrize("session_fixture", ["donor_session", "ngo_session"])
    def test_non_admin_cannot_moderate(self, request, lifecycle, make_donation, session_fixture):
        donation = make_donation()
        with pytest.raises(PermissionDeniedError):
            lifecycle.remove(request.getfixturevalue(session_fixture), donation.id)

    def test_remove_missing(self, lifecycle, admin_session):
        with pytest.raises(NotFoundError):
            lifecycle.remove(admin_session, "missing")


class TestQueries:
    """Browsing and filtering donations."""

    def test_browse_filters_and_search(self, lifecycle, make_donation, ngo_session):
        bread = make_donation(food_item="Sourdough bread")
        make_donation(food_item="Curry", category="cooked", notes="Vegetarian, mild")
        lifecycle.claim(ngo_session, bread.id)

        assert [d.id for d in lifecycle.browse(ngo_session, status=DonationStatus.CLAIMED)] == [bread.id]
        assert len(lifecycle.browse(ngo_session, category="cooked")) == 1
        assert len(lifecycle.browse(ngo_session, search="VEGETARIAN")) == 1
        assert len(lifecycle.browse(ngo_session, search="bread")) == 1
        assert len(lifecycle.browse(ngo_session, search="   ")) == 2

    def test_browse_sort_by_expiry(self, lifecycle, make_donation, ngo_session):
        late = make_donation(expiry_date="2031-01-01")
        early = make_donation(expiry_date="2030-01-01")

        ascending = lifecycle.browse(ngo_session, sort=DonationSort.EXPIRY_ASC)
        assert [d.id for d in ascending] == [early.id, late.id]
        descending = lifecycle.browse(ngo_session, sort=DonationSort.EXPIRY_DESC)
        assert [d.id for d in descending] == [late.id, early.id]

    def test_browse_requires_session(self, lifecycle):
        with pytest.raises(AuthRequiredError):
            lifecycle.browse(None)

    def test_mine_only_lists_own(self, lifecycle, make_donation, donor_session, other_donor_session):
        make_donation()
        make_donation(session=other_donor_session)
        mine = lifecycle.mine(donor_session)
        assert len(mine) == 1
        assert mine[0].donor_id == donor_session.identity_key

    def test_categories(self, lifecycle, make_donation, donor_session):
        make_donation(category="cooked")
        make_donation()
        assert lifecycle.categories(donor_session) == ["Grains & Bread", "cooked"]

    def test_store_failure_surfaces_as_provider_error(self, lifecycle, ngo_session):
        with patch.object(
            lifecycle.donations, "find", side_effect=OperationalError("SELECT", {}, Exception("down"))
        ):
            with pytest.raises(ProviderError):
                lifecycle.browse(ngo_session)


def test_parse_expiry_date_accepts_date_and_iso_string():
    assert parse_expiry_date(date(2025, 1, 1)) == date(2025, 1, 1)
    assert parse_expiry_date(" 2025-01-01 ") == date(2025, 1, 1)
    with pytest.raises(ValidationError):
        parse_expiry_date("")
