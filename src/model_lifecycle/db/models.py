"""
Database Models - Training data persistence schema.

Two tables:
- ``training_data_records``: the exact payload each remote instance was
  trained with, keyed by the instance id, kept for later inspection/replay.
- ``training_examples``: the labelled rows new training jobs are built
  from when the caller supplies no explicit training data, including
  classification feedback recorded by users.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import declarative_base

# Where a training example came from. Negative feedback is kept for review
# and never becomes a training row.
SOURCE_SEED = 'seed'
SOURCE_LEARNED = 'learned'
SOURCE_NEGATIVE_FEEDBACK = 'negative_fb'
TRAINING_SOURCES = (SOURCE_SEED, SOURCE_LEARNED)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrainingDataRecord(Base):
    """
    Persisted copy of the data used to train one remote instance.

    Rows are soft-deleted (``deleted=True``) when their instance is pruned,
    so that history is kept until an explicit purge.

    Attributes:
        instance_id: Id issued by the training service (primary key)
        kind: 'classifier' or 'ranker'
        trained_data: Training payload exactly as submitted
        created_at: When the record was first written
        updated_at: When the record was last written
        deleted: Soft-delete marker
        deleted_at: When the soft-delete marker was set
    """
    __tablename__ = 'training_data_records'

    instance_id = Column(String(255), primary_key=True)
    kind = Column(String(20), nullable=False, default='classifier', index=True)
    trained_data = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<TrainingDataRecord(instance_id={self.instance_id}, kind={self.kind}, "
            f"deleted={self.deleted}, created_at={self.created_at})>"
        )

    def to_dict(self) -> dict:
        """Convert model instance to dictionary."""
        return {
            'instance_id': self.instance_id,
            'kind': self.kind,
            'trained_data': self.trained_data,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'deleted': self.deleted,
            'deleted_at': self.deleted_at.isoformat() if self.deleted_at else None,
        }


class TrainingExample(Base):
    """
    One labelled training row.

    For classifiers ``text`` is the utterance and ``label`` its class. For
    rankers ``label`` is the question and ``text`` a ground-truth answer
    reference; examples sharing a question are joined into one row.

    Attributes:
        id: Primary key
        kind: 'classifier' or 'ranker'
        label: Class name (classifier) or question (ranker)
        text: Utterance (classifier) or ground-truth reference (ranker)
        source: 'seed', 'learned' or 'negative_fb'
        approved: Whether the example was approved for training
        approved_at: When it was approved
        approved_method: 'auto' or 'manual' for approved feedback
        created_at: When it was recorded
    """
    __tablename__ = 'training_examples'

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(20), nullable=False, default='classifier')
    label = Column(String(255), nullable=False)
    text = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default=SOURCE_SEED, index=True)
    approved = Column(Boolean, nullable=False, default=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_method = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_training_examples_kind_label', 'kind', 'label'),
    )

    def __repr__(self) -> str:
        return (
            f"<TrainingExample(id={self.id}, kind={self.kind}, "
            f"label={self.label}, source={self.source}, approved={self.approved})>"
        )

    def to_dict(self) -> dict:
        """Convert model instance to dictionary."""
        return {
            'id': self.id,
            'kind': self.kind,
            'label': self.label,
            'text': self.text,
            'source': self.source,
            'approved': self.approved,
            'approved_at': self.approved_at.isoformat() if self.approved_at else None,
            'approved_method': self.approved_method,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
