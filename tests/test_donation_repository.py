"""Tests for DonationRepository storage operations."""

import pytest
from datetime import date, datetime, timedelta

from foodshare.models.donation import Donation, DonationStatus
from foodshare.realtime.change_feed import ChangeType, Collection


@pytest.fixture
def donation_base():
    now = datetime.utcnow()
    return {
        "donor_id": "donor-a",
        "donor_name": "Asha",
        "donor_email": "asha@example.com",
        "food_item": "Apples",
        "category": "raw_produce",
        "quantity": "3 crates",
        "expiry_date": date(2030, 1, 1),
        "pickup_location": "Market Sq",
        "contact_info": "555-0100",
        "status": DonationStatus.AVAILABLE,
        "created_at": now,
        "updated_at": now,
    }


class TestDonationRepository:
    """Test DonationRepository operations."""

    def test_create_and_get(self, donation_repository, donation_base):
        created = donation_repository.create(Donation(id="d-1", **donation_base))
        fetched = donation_repository.get("d-1")
        assert fetched == created
        assert fetched.status == "available"

    def test_get_nonexistent(self, donation_repository):
        assert donation_repository.get("nonexistent-id") is None

    def test_find_sorted_newest_first(self, donation_repository, donation_base):
        now = datetime.utcnow()
        for i, age in enumerate([2, 0, 1]):
            donation_repository.create(
                Donation(id=f"d-{i}", **{**donation_base, "created_at": now - timedelta(minutes=age)})
            )
        assert [d.id for d in donation_repository.find()] == ["d-1", "d-2", "d-0"]

    def test_update_if_status_matches(self, donation_repository, donation_base):
        donation_repository.create(Donation(id="d-1", **donation_base))
        updated = donation_repository.update_if_status(
            "d-1", DonationStatus.AVAILABLE, {"status": "claimed", "claimed_by": "ngo-b"}
        )
        assert updated.status == "claimed"
        assert updated.claimed_by == "ngo-b"
        assert updated.updated_at >= donation_base["updated_at"]

    def test_update_if_status_mismatch_writes_nothing(self, donation_repository, donation_base):
        donation_repository.create(Donation(id="d-1", **{**donation_base, "status": DonationStatus.CLAIMED}))
        result = donation_repository.update_if_status(
            "d-1", DonationStatus.AVAILABLE, {"status": "claimed", "claimed_by": "intruder"}
        )
        assert result is None
        assert donation_repository.get("d-1").claimed_by is None

    def test_conditional_delete(self, donation_repository, donation_base):
        donation_repository.create(Donation(id="d-1", **{**donation_base, "status": DonationStatus.CLAIMED}))
        assert donation_repository.delete("d-1", expected_status=DonationStatus.AVAILABLE) is False
        assert donation_repository.get("d-1") is not None
        assert donation_repository.delete("d-1") is True
        assert donation_repository.delete("d-1") is False

    def test_count_by_status_includes_every_status(self, donation_repository, donation_base):
        donation_repository.create(Donation(id="d-1", **donation_base))
        assert donation_repository.count_by_status() == {"available": 1, "claimed": 0, "collected": 0}

    def test_writes_publish_change_events(self, donation_repository, donation_base, feed):
        events = []
        feed.subscribe(Collection.DONATIONS, events.append)

        donation_repository.create(Donation(id="d-1", **donation_base))
        donation_repository.update_if_status("d-1", DonationStatus.AVAILABLE, {"quantity": "4 crates"})
        donation_repository.update_if_status("d-1", DonationStatus.CLAIMED, {"quantity": "nope"})
        donation_repository.delete("d-1")

        assert [e.change for e in events] == [ChangeType.CREATED, ChangeType.UPDATED, ChangeType.DELETED]
        assert events[1].data["quantity"] == "4 crates"
        assert events[2].data is None
