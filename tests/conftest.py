"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test modules.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from model_lifecycle.backends.base import (
    ClassifierBackend,
    ClusterBackend,
    Instance,
    InstanceStatus,
    RankerBackend,
)
from model_lifecycle.config import ClusterConfig, ManagerConfig
from model_lifecycle.db.connection import DatabaseConnection
from model_lifecycle.exceptions import RemoteServiceError
from model_lifecycle.services.training_data_store import TrainingDataStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_instance(
    instance_id: str,
    name: str = "faq",
    status: InstanceStatus = InstanceStatus.AVAILABLE,
    minutes: int = 0,
    kind: str = "classifier",
) -> Instance:
    """Build an Instance created ``minutes`` after a fixed reference time."""
    return Instance(
        id=instance_id,
        name=name,
        status=status,
        created_at=T0 + timedelta(minutes=minutes),
        kind=kind,
    )


class _InMemoryService:
    """
    Scripted in-memory stand-in for the remote training service.

    ``instances`` holds the service state. ``status_scripts`` maps an id to
    a list of statuses returned by successive ``get_status`` calls (the last
    one repeats). ``failures`` maps a method name, or a ``(method, id)``
    pair, to the exception that call raises. Every call is recorded in
    ``calls`` as ``(method, argument)``.
    """

    def __init__(self, instances=()):
        self.instances = {instance.id: instance for instance in instances}
        self.status_scripts = {}
        self.failures = {}
        self.calls = []
        self.created_jobs = []
        self.undeletable = set()
        self.closed = False
        self._counter = 0

    def _record(self, method, arg=None):
        self.calls.append((method, arg))
        exc = self.failures.get((method, arg)) or self.failures.get(method)
        if exc is not None:
            raise exc

    def count(self, method):
        return sum(1 for called, _ in self.calls if called == method)

    def args(self, method):
        return [arg for called, arg in self.calls if called == method]

    async def create_instance(self, job):
        self._record("create_instance", job.name)
        self._counter += 1
        instance = make_instance(
            f"new-{self._counter}",
            name=job.name,
            status=InstanceStatus.TRAINING,
            minutes=1000 + self._counter,
            kind=self.kind,
        )
        self.instances[instance.id] = instance
        self.created_jobs.append(job)
        return instance

    async def list_instances(self):
        self._record("list_instances")
        # Listings carry no trustworthy status; callers must poll.
        return [
            replace(instance, status=InstanceStatus.UNAVAILABLE)
            for instance in self.instances.values()
        ]

    async def get_status(self, instance_id):
        self._record("get_status", instance_id)
        if instance_id not in self.instances:
            raise RemoteServiceError(f"Unknown instance {instance_id}", status_code=404)
        script = self.status_scripts.get(instance_id)
        if script:
            status = script.pop(0) if len(script) > 1 else script[0]
            self.instances[instance_id] = replace(self.instances[instance_id], status=status)
        return self.instances[instance_id]

    async def delete_instance(self, instance_id):
        self._record("delete_instance", instance_id)
        if instance_id not in self.undeletable:
            self.instances.pop(instance_id, None)

    async def query(self, instance, text):
        self._record("query", text)
        return {"instance_id": instance.id, "text": text, "top_class": "c1"}

    async def close(self):
        self.closed = True


class FakeClassifierBackend(_InMemoryService, ClassifierBackend):
    """In-memory classifier service."""


class FakeRankerBackend(_InMemoryService, RankerBackend):
    """In-memory ranker service with a scripted feature extractor."""

    def __init__(self, instances=()):
        super().__init__(instances)
        self.failing_questions = set()

    async def extract_features(self, question, ground_truth):
        self._record("extract_features", question)
        if question in self.failing_questions:
            raise RemoteServiceError(f"fcselect failed for {question}", status_code=500)
        return f"{question},{ground_truth},0.5"


class FakeClusterBackend(_InMemoryService, ClusterBackend):
    """In-memory search cluster service recording what each cluster holds."""

    def __init__(self, instances=()):
        super().__init__(instances)
        self.configs = {}
        self.collections = {}
        self.documents = {}

    async def create_cluster(self, name, size=None):
        self._record("create_cluster", name)
        self._counter += 1
        cluster = make_instance(
            f"sc-{self._counter}",
            name=name,
            status=InstanceStatus.TRAINING,
            minutes=1000 + self._counter,
            kind="cluster",
        )
        self.instances[cluster.id] = cluster
        return cluster

    async def upload_config(self, cluster_id, config_name, config_zip):
        self._record("upload_config", cluster_id)
        self.configs[cluster_id] = (config_name, config_zip)

    async def create_collection(self, cluster_id, config_name, collection_name):
        self._record("create_collection", cluster_id)
        self.collections[cluster_id] = (collection_name, config_name)

    async def add_documents(self, cluster_id, collection_name, documents):
        self._record("add_documents", cluster_id)
        self.documents[(cluster_id, collection_name)] = list(documents)


class RecordingSleep:
    """Replacement for ``asyncio.sleep`` that records delays without waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def classifier_backend():
    """Factory fixture for a fake classifier service seeded with instances."""
    def _make(*instances):
        return FakeClassifierBackend(instances)
    return _make


@pytest.fixture
def ranker_backend():
    """Factory fixture for a fake ranker service seeded with instances."""
    def _make(*instances):
        return FakeRankerBackend(instances)
    return _make


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def manager_config():
    """Factory fixture for ManagerConfig with test-friendly defaults."""
    def _make(kind="classifier", **overrides):
        settings = dict(
            kind=kind,
            instance_name="faq",
            max_instances=3,
            poll_interval_seconds=60.0,
            training_data="t1,c1\nt2,c1\nt3,c2\n",
        )
        settings.update(overrides)
        return ManagerConfig(**settings)
    return _make


@pytest.fixture
def db_connection():
    """Fixture for in-memory SQLite database."""
    db = DatabaseConnection("sqlite:///:memory:")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def training_store(db_connection):
    return TrainingDataStore(db_connection)


@pytest.fixture
def cluster_backend():
    """Factory fixture for a fake search cluster service seeded with clusters."""
    def _make(*clusters):
        return FakeClusterBackend(clusters)
    return _make


@pytest.fixture
def cluster_config(tmp_path):
    """Factory fixture for ClusterConfig backed by real config and documents files."""
    config_zip = tmp_path / "solr-config.zip"
    config_zip.write_bytes(b"PK\x03\x04fake-config")
    documents = tmp_path / "documents.json"
    documents.write_text(
        '[{"id": "doc1", "body": "Reset your password"}, {"id": "doc2", "body": "Track a parcel"}]',
        encoding="utf-8",
    )

    def _make(**overrides):
        settings = dict(
            cluster_name="kb",
            config_name="kb-config",
            collection_name="docs",
            config_zip_path=config_zip,
            documents_path=documents,
            poll_interval_seconds=30.0,
        )
        settings.update(overrides)
        return ClusterConfig(**settings)
    return _make
