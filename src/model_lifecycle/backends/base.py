"""
Base classes for the remote training service abstraction.

This module defines the domain ``Instance`` record and the interface that
every backend (classifier or ranker) must implement, so that the lifecycle
manager can drive either kind of remote model without knowing which one it
talks to.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..utils.csv_utils import encode_rows


class InstanceStatus(str, Enum):
    """Domain vocabulary for instance status, independent of the service spelling."""

    TRAINING = "Training"
    AVAILABLE = "Available"
    FAILED = "Failed"
    UNAVAILABLE = "Unavailable"

    def __str__(self) -> str:
        return self.value


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a service timestamp into a timezone-aware ``datetime``.

    Accepts ``datetime`` objects, ISO-8601 strings (including a trailing
    ``Z``) and epoch seconds / milliseconds. Naive values are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unsupported timestamp value: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Instance:
    """
    One trained model (or search cluster) hosted by the remote service.

    Attributes:
        id: Opaque identifier issued by the service (globally unique)
        name: Logical name supplied at creation; shared by successive generations
        status: Normalised ``InstanceStatus``
        created_at: Creation time, used for recency ordering
        kind: 'classifier', 'ranker' or 'cluster'
        language: Training language, when the service reports it
        status_description: Human-readable status detail from the service
        url: Resource URL, when the service reports it
        raw: The unmodified service payload
    """
    id: str
    name: str
    status: InstanceStatus
    created_at: datetime
    kind: str = "classifier"
    language: Optional[str] = None
    status_description: Optional[str] = None
    url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_available(self) -> bool:
        return self.status is InstanceStatus.AVAILABLE

    @property
    def is_training(self) -> bool:
        return self.status is InstanceStatus.TRAINING

    @property
    def training_duration_minutes(self) -> Optional[int]:
        """Whole minutes since creation while training, otherwise ``None``."""
        if not self.is_training:
            return None
        elapsed = datetime.now(timezone.utc) - self.created_at
        return max(0, int(elapsed.total_seconds() // 60))

    def to_dict(self) -> dict:
        """Convert instance to a JSON-friendly dictionary."""
        data = {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "created": self.created_at.isoformat(),
            "kind": self.kind,
        }
        if self.language:
            data["language"] = self.language
        if self.status_description:
            data["status_description"] = self.status_description
        if self.url:
            data["url"] = self.url
        duration = self.training_duration_minutes
        if duration is not None:
            data["training_duration_minutes"] = duration
        return data


@dataclass
class TrainingJob:
    """Parameters used to create an instance. Never persisted on its own."""
    name: str
    data: str
    language: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class RemoteResourceBackend(ABC):
    """
    Listing, status and deletion of named resources on a remote service.

    Implementations translate between the service's wire vocabulary and the
    domain ``Instance`` record. All methods are coroutines; failures must be
    raised as ``RemoteServiceError`` (or a subclass).
    """

    kind: str = ""

    # Maps the service's status spellings to the domain vocabulary.
    # Lookup is case-sensitive first, then case-insensitive.
    STATUS_MAP: Mapping[str, InstanceStatus] = {
        "Training": InstanceStatus.TRAINING,
        "Available": InstanceStatus.AVAILABLE,
        "Failed": InstanceStatus.FAILED,
        "Unavailable": InstanceStatus.UNAVAILABLE,
    }

    @abstractmethod
    async def list_instances(self) -> List[Instance]:
        """Return every instance known to the service, regardless of name."""

    @abstractmethod
    async def get_status(self, instance_id: str) -> Instance:
        """Return a fresh status snapshot of one instance."""

    @abstractmethod
    async def delete_instance(self, instance_id: str) -> None:
        """Delete one instance from the service."""

    def get_backend_name(self) -> str:
        """Return a short label for logging (e.g. 'http_classifier')."""
        return type(self).__name__

    async def close(self) -> None:
        """Release network resources. No-op by default."""

    @classmethod
    def normalize_status(cls, raw_status: Optional[str]) -> InstanceStatus:
        """Map a service status string onto ``InstanceStatus``."""
        if raw_status is None:
            return InstanceStatus.UNAVAILABLE
        if raw_status in cls.STATUS_MAP:
            return cls.STATUS_MAP[raw_status]
        lowered = raw_status.strip().lower()
        for key, value in cls.STATUS_MAP.items():
            if key.lower() == lowered:
                return value
        return InstanceStatus.UNAVAILABLE


class BaseInstanceBackend(RemoteResourceBackend):
    """
    Abstract base class for remote training service backends.

    Adds training and querying on top of the shared listing / status /
    deletion interface.
    """

    @abstractmethod
    async def create_instance(self, job: TrainingJob) -> Instance:
        """Submit a training job and return the newly created instance."""

    @abstractmethod
    async def query(self, instance: Instance, text: str) -> dict:
        """Classify or rank *text* with *instance*."""

    @abstractmethod
    async def encode_training_rows(self, rows: Sequence[Sequence[str]]) -> str:
        """Turn config rows into the training payload the service expects."""


class ClassifierBackend(BaseInstanceBackend):
    """Backend variant for text classifiers trained from CSV."""

    kind = "classifier"

    async def encode_training_rows(self, rows: Sequence[Sequence[str]]) -> str:
        return encode_rows(rows)


# Header of the relevance-feature training file expected by rankers.
RANKER_FEATURE_HEADER = (
    "question_id,f0,f1,f2,f3,f4,f5,f6,f7,f8,f9,f10,f11,f12,r1,r2,s,ground_truth\n"
)


class RankerBackend(BaseInstanceBackend):
    """
    Backend variant for learning-to-rank models.

    Ranker training data is not the raw question / answer rows: each row is
    sent through the service's feature extractor and the returned feature
    lines are concatenated under ``RANKER_FEATURE_HEADER``.
    """

    kind = "ranker"

    STATUS_MAP: Mapping[str, InstanceStatus] = {
        "Training": InstanceStatus.TRAINING,
        "TRAINING": InstanceStatus.TRAINING,
        "Available": InstanceStatus.AVAILABLE,
        "AVAILABLE": InstanceStatus.AVAILABLE,
        "READY": InstanceStatus.AVAILABLE,
        "Failed": InstanceStatus.FAILED,
        "FAILED": InstanceStatus.FAILED,
        "Unavailable": InstanceStatus.UNAVAILABLE,
        "NOT_AVAILABLE": InstanceStatus.UNAVAILABLE,
        "Non Existent": InstanceStatus.UNAVAILABLE,
    }

    # Search cluster hosting the collection; set by the owning manager.
    cluster_id: Optional[str] = None

    def use_cluster(self, cluster_id: str) -> None:
        """Point ranking and feature extraction at *cluster_id*."""
        self.cluster_id = cluster_id

    @abstractmethod
    async def extract_features(self, question: str, ground_truth: str) -> str:
        """Return the feature lines for one question / ground-truth pair."""

    async def encode_training_rows(self, rows: Sequence[Sequence[str]]) -> str:
        """
        Build the ranker training file, one feature query per row.

        Queries run concurrently; a failure on any row aborts the whole
        encoding with that error.
        """
        features = await asyncio.gather(
            *(self.extract_features(row[0], row[1]) for row in rows)
        )
        body = ""
        for chunk in features:
            if chunk and not chunk.endswith("\n"):
                chunk += "\n"
            body += chunk
        return RANKER_FEATURE_HEADER + body


class ClusterBackend(RemoteResourceBackend):
    """
    Search clusters that host the document collections rankers score.

    Clusters are reported as ``Instance`` records of kind 'cluster'. A
    cluster that is still being provisioned is reported as Training.
    """

    kind = "cluster"

    STATUS_MAP: Mapping[str, InstanceStatus] = {
        "READY": InstanceStatus.AVAILABLE,
        "NOT_AVAILABLE": InstanceStatus.TRAINING,
    }

    @abstractmethod
    async def create_cluster(self, name: str, size: Optional[int] = None) -> Instance:
        """Request a new cluster and return it (normally still initializing)."""

    @abstractmethod
    async def upload_config(self, cluster_id: str, config_name: str, config_zip: bytes) -> None:
        """Upload a zipped search configuration under *config_name*."""

    @abstractmethod
    async def create_collection(
        self, cluster_id: str, config_name: str, collection_name: str
    ) -> None:
        """Create *collection_name* from an uploaded configuration."""

    @abstractmethod
    async def add_documents(
        self, cluster_id: str, collection_name: str, documents: Sequence[Dict[str, Any]]
    ) -> None:
        """Index *documents* into the collection and commit them."""
