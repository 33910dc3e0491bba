"""Repository for Donation database operations."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.orm import Session

from foodshare.models.donation import Donation, DonationSort, DonationStatus
from foodshare.database.models import DonationDB, enum_to_value
from foodshare.realtime.change_feed import ChangeFeed, ChangeType, Collection, change_feed

logger = logging.getLogger(__name__)


_SORT_COLUMNS = {
    DonationSort.CREATED_DESC: desc(DonationDB.created_at),
    DonationSort.CREATED_ASC: asc(DonationDB.created_at),
    DonationSort.EXPIRY_ASC: asc(DonationDB.expiry_date),
    DonationSort.EXPIRY_DESC: desc(DonationDB.expiry_date),
}


class DonationRepository:
    """Repository for Donation database operations."""

    def __init__(self, db: Session, feed: Optional[ChangeFeed] = None):
        self.db = db
        self.feed = feed or change_feed

    def _publish(self, change: ChangeType, donation_id: str, donation: Optional[Donation] = None) -> None:
        data = donation.model_dump(mode="json") if donation else None
        self.feed.emit(Collection.DONATIONS, change, donation_id, data)

    def create(self, donation: Donation) -> Donation:
        """Create a new donation."""
        try:
            donation_db = DonationDB.from_pydantic(donation)
            self.db.add(donation_db)
            self.db.commit()
            self.db.refresh(donation_db)
            logger.debug(f"Created donation {donation.id}: {donation.food_item[:50]}")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create donation {donation.id}: {type(e).__name__}: {str(e)}")
            raise
        created = donation_db.to_pydantic()
        self._publish(ChangeType.CREATED, created.id, created)
        return created

    def get(self, donation_id: str) -> Optional[Donation]:
        """Get donation by ID."""
        donation_db = self.db.query(DonationDB).filter(DonationDB.id == donation_id).first()
        return donation_db.to_pydantic() if donation_db else None

    def find(
        self,
        status: Optional[DonationStatus] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort: DonationSort = DonationSort.CREATED_DESC,
    ) -> List[Donation]:
        """List donations with optional filters.

        Args:
            status: Only donations in this status
            category: Only donations with this exact category value
            search: Case-insensitive substring match on food item or notes
            sort: Sort order (newest first by default)
        """
        query = self.db.query(DonationDB)
        if status is not None:
            query = query.filter(DonationDB.status == enum_to_value(status))
        if category:
            query = query.filter(DonationDB.category == category)
        if search:
            term = f"%{search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(DonationDB.food_item).like(term),
                    func.lower(DonationDB.notes).like(term),
                )
            )
        order = _SORT_COLUMNS[DonationSort(sort)]
        donations_db = query.order_by(order, desc(DonationDB.id)).all()
        return [donation_db.to_pydantic() for donation_db in donations_db]

    def list_by_donor(self, donor_id: str) -> List[Donation]:
        """Donations created by `donor_id`, newest first."""
        donations_db = (
            self.db.query(DonationDB)
            .filter(DonationDB.donor_id == donor_id)
            .order_by(desc(DonationDB.created_at))
            .all()
        )
        return [donation_db.to_pydantic() for donation_db in donations_db]

    def update_if_status(
        self,
        donation_id: str,
        expected_status: DonationStatus,
        values: Dict[str, Any],
    ) -> Optional[Donation]:
        """Compare-and-swap update.

        Applies `values` only if the stored status still equals `expected_status`
        at write time, in a single UPDATE statement.

        Returns:
            The updated donation, or None when no row matched
        """
        columns = {getattr(DonationDB, key): value for key, value in values.items()}
        columns[DonationDB.updated_at] = datetime.utcnow()
        try:
            affected = (
                self.db.query(DonationDB)
                .filter(
                    DonationDB.id == donation_id,
                    DonationDB.status == enum_to_value(expected_status),
                )
                .update(columns, synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update donation {donation_id}: {type(e).__name__}: {str(e)}")
            raise

        if not affected:
            logger.debug(f"Conditional update of donation {donation_id} matched no row (expected {enum_to_value(expected_status)})")
            return None

        # Bulk update bypasses the identity map; reload from the database.
        self.db.expire_all()
        updated = self.get(donation_id)
        logger.debug(f"Updated donation {donation_id}")
        self._publish(ChangeType.UPDATED, donation_id, updated)
        return updated

    def delete(self, donation_id: str, expected_status: Optional[DonationStatus] = None) -> bool:
        """Delete a donation, optionally only while it is in `expected_status`."""
        query = self.db.query(DonationDB).filter(DonationDB.id == donation_id)
        if expected_status is not None:
            query = query.filter(DonationDB.status == enum_to_value(expected_status))
        try:
            affected = query.delete(synchronize_session=False)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to delete donation {donation_id}: {type(e).__name__}: {str(e)}")
            raise

        if not affected:
            return False
        logger.debug(f"Deleted donation {donation_id}")
        self._publish(ChangeType.DELETED, donation_id)
        return True

    def count_by_status(self) -> Dict[str, int]:
        """Donation counts keyed by status value; every status is present."""
        counts = {status.value: 0 for status in DonationStatus}
        rows = self.db.query(DonationDB.status, func.count(DonationDB.id)).group_by(DonationDB.status).all()
        for status, count in rows:
            counts[status] = int(count)
        return counts

    def categories(self) -> List[str]:
        """Distinct category values in use, alphabetically."""
        rows = self.db.query(DonationDB.category).distinct().order_by(DonationDB.category).all()
        return [row[0] for row in rows]
