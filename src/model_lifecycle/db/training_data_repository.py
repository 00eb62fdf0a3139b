"""
Training Data Repository - Database operations for training data persistence.

This repository handles all database interactions for training data records
and labelled training examples. Uses the Repository pattern to keep the
service layer database-agnostic.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from .models import (
    SOURCE_LEARNED,
    SOURCE_NEGATIVE_FEEDBACK,
    TRAINING_SOURCES,
    TrainingDataRecord,
    TrainingExample,
)
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


def _to_utc(value: Union[datetime, int, float]) -> datetime:
    """Accept a datetime or epoch milliseconds and return an aware UTC datetime."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TrainingDataRepository:
    """
    Repository for training data records and training examples.

    Usage:
        with db.session_scope() as session:
            repo = TrainingDataRepository(session)

            # Write
            repo.create_or_update("clf-123", "text,label\\n", kind="classifier")

            # Query
            record = repo.get("clf-123")
    """

    def __init__(self, session: Session):
        """
        Initialize repository with a database session.

        Args:
            session: SQLAlchemy Session instance
        """
        self.session = session

    # ========== TRAINING DATA RECORDS ==========

    def create_or_update(
        self,
        instance_id: str,
        trained_data: str,
        kind: str = "classifier",
    ) -> TrainingDataRecord:
        """
        Upsert the training data record for *instance_id*.

        An existing record (even a soft-deleted one) is overwritten and
        revived.
        """
        record = self.session.get(TrainingDataRecord, instance_id)
        if record is None:
            record = TrainingDataRecord(
                instance_id=instance_id,
                kind=kind,
                trained_data=trained_data,
            )
            self.session.add(record)
            logger.debug("Inserted training data record for %s", instance_id)
        else:
            record.kind = kind
            record.trained_data = trained_data
            record.deleted = False
            record.deleted_at = None
            logger.debug("Updated training data record for %s", instance_id)

        self.session.flush()
        return record

    def get(self, instance_id: str, include_deleted: bool = False) -> Optional[TrainingDataRecord]:
        """
        Retrieve the record for *instance_id*.

        Returns:
            The record, or None if absent (or soft-deleted, unless
            ``include_deleted`` is set)
        """
        record = self.session.get(TrainingDataRecord, instance_id)
        if record is None or (record.deleted and not include_deleted):
            return None
        return record

    def mark_deleted(self, instance_id: str) -> bool:
        """
        Soft-delete the record for *instance_id*.

        Returns:
            True if a live record was marked, False if none existed
        """
        record = self.session.get(TrainingDataRecord, instance_id)
        if record is None or record.deleted:
            return False
        record.deleted = True
        record.deleted_at = datetime.now(timezone.utc)
        self.session.flush()
        logger.debug("Marked training data record %s as deleted", instance_id)
        return True

    def list_records(
        self,
        kind: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[TrainingDataRecord]:
        """List records, newest first."""
        query = self.session.query(TrainingDataRecord)
        if kind:
            query = query.filter(TrainingDataRecord.kind == kind)
        if not include_deleted:
            query = query.filter(TrainingDataRecord.deleted.is_(False))
        return query.order_by(TrainingDataRecord.created_at.desc()).all()

    # ========== TRAINING EXAMPLES ==========

    def add_example(
        self,
        text: str,
        label: str,
        kind: str = "classifier",
        approved: bool = True,
        approved_at: Optional[datetime] = None,
    ) -> int:
        """
        Insert one labelled example.

        Returns:
            The ID of the inserted example
        """
        if approved and approved_at is None:
            approved_at = datetime.now(timezone.utc)
        example = TrainingExample(
            kind=kind,
            label=label,
            text=text,
            approved=approved,
            approved_at=_to_utc(approved_at) if approved_at else None,
        )
        self.session.add(example)
        self.session.flush()
        return example.id

    def add_examples(self, rows: Iterable[Dict[str, Any]]) -> List[int]:
        """
        Batch insert examples.

        Args:
            rows: Dicts with ``text``, ``label`` and optionally ``kind``,
                ``approved``, ``approved_at``.

        Returns:
            List of inserted IDs in input order
        """
        return [self.add_example(**row) for row in rows]

    def query_examples(
        self,
        kind: str = "classifier",
        approved_after: Optional[Union[datetime, int, float]] = None,
        include_unapproved: bool = True,
        sources: Optional[Sequence[str]] = TRAINING_SOURCES,
    ) -> List[TrainingExample]:
        """
        Query training examples ordered by label, then insertion order.

        Args:
            kind: 'classifier' or 'ranker'
            approved_after: Keep only examples approved at or after this
                datetime (or epoch milliseconds). Implies approved-only.
            include_unapproved: When False, unapproved examples are skipped.
            sources: Example sources to include; ``None`` for every source.
                Negative feedback is excluded by default.

        Returns:
            List of TrainingExample objects
        """
        query = self.session.query(TrainingExample).filter(TrainingExample.kind == kind)

        if sources is not None:
            query = query.filter(TrainingExample.source.in_(list(sources)))
        if approved_after is not None:
            query = query.filter(
                TrainingExample.approved.is_(True),
                TrainingExample.approved_at.isnot(None),
                TrainingExample.approved_at >= _to_utc(approved_after),
            )
        elif not include_unapproved:
            query = query.filter(TrainingExample.approved.is_(True))

        return query.order_by(TrainingExample.label, TrainingExample.id).all()

    def count_examples(self, kind: str = "classifier") -> int:
        """Count examples of a kind."""
        return self.session.query(TrainingExample).filter(TrainingExample.kind == kind).count()

    # ========== FEEDBACK ==========

    def record_feedback(
        self,
        text: str,
        feedback_type: str,
        label: Optional[str] = None,
        kind: str = "classifier",
        auto_approve: bool = False,
    ) -> int:
        """
        Record user feedback on a classification.

        ``learned`` feedback stores *text* under the class the user selected.
        It is approved on the spot (method 'auto') when *auto_approve* is
        set, otherwise it waits for ``approve_example()``. ``negative_fb``
        feedback is kept for review and never used for training.

        Returns:
            The ID of the inserted example

        Raises:
            ValueError: Unknown feedback type, or learned feedback without
                a selected class
        """
        if feedback_type not in (SOURCE_LEARNED, SOURCE_NEGATIVE_FEEDBACK):
            raise ValueError(f"Unknown feedback type: {feedback_type}")
        if feedback_type == SOURCE_LEARNED and not label:
            raise ValueError("Learned feedback needs the selected class")

        approved = feedback_type == SOURCE_LEARNED and auto_approve
        example = TrainingExample(
            kind=kind,
            label=label or "",
            text=text,
            source=feedback_type,
            approved=approved,
            approved_at=datetime.now(timezone.utc) if approved else None,
            approved_method="auto" if approved else None,
        )
        self.session.add(example)
        self.session.flush()
        logger.debug(
            "Recorded %s feedback %s (approved=%s)", feedback_type, example.id, approved
        )
        return example.id

    def approve_example(self, example_id: int, method: str = "manual") -> bool:
        """
        Approve one example for training.

        Returns:
            True if the example was approved now, False if it does not
            exist, is already approved, or is negative feedback
        """
        example = self.session.get(TrainingExample, example_id)
        if example is None or example.approved or example.source == SOURCE_NEGATIVE_FEEDBACK:
            return False
        example.approved = True
        example.approved_at = datetime.now(timezone.utc)
        example.approved_method = method
        self.session.flush()
        return True
