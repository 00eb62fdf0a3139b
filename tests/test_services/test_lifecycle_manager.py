"""
Tests for LifecycleManager and its classifier / ranker variants.

End-to-end behaviour of the manager against the in-memory training service:
resolution, idempotent train_if_needed, listing order, process() cache
invalidation, retention after training, training data lookup, classification
feedback and the ranker's search cluster selection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from model_lifecycle.backends.base import InstanceStatus
from model_lifecycle.config import Config
from model_lifecycle.exceptions import (
    ClusterSetupError,
    ConfigurationError,
    InstanceNotFoundError,
    QueryError,
    TrainingDataNotFoundError,
)
from model_lifecycle.services.cluster_manager import ClusterManager
from model_lifecycle.services.lifecycle_manager import (
    ClassifierManager,
    LifecycleManager,
    RankerManager,
    build_manager,
)
from model_lifecycle.services.training_rows import (
    DatabaseTrainingRowSource,
    StaticTrainingRowSource,
)
from tests.conftest import make_instance


@pytest.fixture
def make_manager(manager_config, fake_sleep, training_store):
    """Factory fixture wiring a ClassifierManager to a fake backend."""
    def _make(backend, manager_cls=ClassifierManager, **overrides):
        kind = overrides.pop("kind", backend.kind)
        return manager_cls(
            backend,
            manager_config(kind, **overrides),
            store=training_store,
            sleep=fake_sleep,
        )
    return _make


def test_kind_mismatch_rejected(ranker_backend, manager_config):
    with pytest.raises(ConfigurationError):
        LifecycleManager(ranker_backend(), manager_config("classifier"))


# ============================================================================
# Resolution
# ============================================================================


@pytest.mark.asyncio
async def test_current_is_served_from_cache(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("a"))
    manager = make_manager(backend)

    first = await manager.current()
    calls = len(backend.calls)
    second = await manager.current()

    assert second.id == first.id
    assert len(backend.calls) == calls


@pytest.mark.asyncio
async def test_newest_available_wins(classifier_backend, make_manager):
    backend = classifier_backend(
        make_instance("A", minutes=1),
        make_instance("B", minutes=2),
    )
    manager = make_manager(backend)

    assert (await manager.current()).id == "B"


@pytest.mark.asyncio
async def test_training_instance_preferred_over_new_job(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A", status=InstanceStatus.TRAINING))
    manager = make_manager(backend)

    instance = await manager.train_if_needed()

    assert instance.id == "A"
    assert backend.count("create_instance") == 0


@pytest.mark.asyncio
async def test_train_if_needed_is_idempotent(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A"))
    manager = make_manager(backend)

    first = await manager.train_if_needed()
    second = await manager.train_if_needed()

    assert first.id == second.id == "A"
    assert backend.count("create_instance") == 0


@pytest.mark.asyncio
async def test_current_with_no_instances_raises_not_found(
    classifier_backend, make_manager
):
    backend = classifier_backend()
    manager = make_manager(backend, instance_name="x")

    with pytest.raises(InstanceNotFoundError):
        await manager.current()
    assert backend.count("create_instance") == 0


# ============================================================================
# Training
# ============================================================================


@pytest.mark.asyncio
async def test_train_always_creates_new_instance(
    classifier_backend, make_manager, training_store
):
    backend = classifier_backend(make_instance("A"))
    manager = make_manager(backend)

    instance = await manager.train("x1,c1\n")

    assert instance.id == "new-1"
    assert instance.status is InstanceStatus.TRAINING
    record = await training_store.get(instance.id)
    assert record.trained_data == "x1,c1\n"


@pytest.mark.asyncio
async def test_train_then_monitor_then_prune(classifier_backend, make_manager):
    """Five instances with a limit of three: the two oldest are deleted."""
    backend = classifier_backend(
        *(make_instance(f"i{n}", minutes=n) for n in range(1, 5))
    )
    manager = make_manager(backend, max_instances=3)

    started = await manager.train()
    backend.status_scripts = {
        started.id: [InstanceStatus.TRAINING, InstanceStatus.AVAILABLE]
    }
    finished = await manager.monitor_training(started.id)

    assert finished.id == started.id
    assert backend.args("delete_instance") == ["i1", "i2"]
    assert sorted(backend.instances) == ["i3", "i4", started.id]
    assert (await manager.current()).id == started.id


# ============================================================================
# Status and listing
# ============================================================================


@pytest.mark.asyncio
async def test_list_orders_available_then_training(classifier_backend, make_manager):
    backend = classifier_backend(
        make_instance("t1", minutes=1, status=InstanceStatus.AVAILABLE),
        make_instance("t2", minutes=2, status=InstanceStatus.TRAINING),
        make_instance("t3", minutes=3, status=InstanceStatus.AVAILABLE),
        make_instance("t4", minutes=4, status=InstanceStatus.TRAINING),
        make_instance("t5", minutes=5, status=InstanceStatus.AVAILABLE),
        make_instance("f0", minutes=6, status=InstanceStatus.FAILED),
        make_instance("other", name="billing", minutes=7),
    )
    manager = make_manager(backend, instance_name="faq")

    listed = await manager.list_instances()

    assert [i.id for i in listed] == ["t5", "t3", "t1", "t4", "t2", "f0"]


@pytest.mark.asyncio
async def test_status_of_explicit_id(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A", status=InstanceStatus.TRAINING))
    manager = make_manager(backend)

    instance = await manager.status("A")

    assert instance.status is InstanceStatus.TRAINING
    assert backend.args("get_status") == ["A"]


@pytest.mark.asyncio
async def test_status_without_id_checks_current_again(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A"))
    manager = make_manager(backend)
    await manager.current()
    backend.status_scripts = {"A": [InstanceStatus.UNAVAILABLE]}

    instance = await manager.status()

    assert instance.id == "A"
    assert instance.status is InstanceStatus.UNAVAILABLE


# ============================================================================
# process()
# ============================================================================


@pytest.mark.asyncio
async def test_classify_queries_current_instance(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A"))
    manager = make_manager(backend)

    result = await manager.classify("where is my order")

    assert result == {"instance_id": "A", "text": "where is my order", "top_class": "c1"}


@pytest.mark.asyncio
async def test_process_returns_training_instance_without_querying(
    classifier_backend, make_manager
):
    backend = classifier_backend(make_instance("A", status=InstanceStatus.TRAINING))
    manager = make_manager(backend)

    result = await manager.process("hello")

    assert result.id == "A"
    assert backend.count("query") == 0


@pytest.mark.asyncio
async def test_process_failure_invalidates_cache(classifier_backend, make_manager):
    backend = classifier_backend(make_instance("A"))
    manager = make_manager(backend)
    await manager.current()
    backend.failures["query"] = QueryError("instance gone", status_code=404)

    with pytest.raises(QueryError):
        await manager.process("hello")

    assert manager.cache.current is None

    del backend.failures["query"]
    calls = backend.count("list_instances")
    await manager.process("hello")
    assert backend.count("list_instances") == calls + 1


@pytest.mark.asyncio
async def test_rank_uses_ranker_backend(ranker_backend, make_manager):
    backend = ranker_backend(make_instance("R", kind="ranker"))
    manager = make_manager(backend, manager_cls=RankerManager)

    result = await manager.rank("how do I reset my password")

    assert result["instance_id"] == "R"


# ============================================================================
# Training data
# ============================================================================


@pytest.mark.asyncio
async def test_get_instance_data_groups_by_label(
    classifier_backend, make_manager, training_store
):
    instance = make_instance("A")
    await training_store.save(instance, "t1,c1\nt2,c1\nt3,c2")
    manager = make_manager(classifier_backend(instance))

    data = await manager.get_instance_data("A")

    assert data == {"c1": ["t1", "t2"], "c2": ["t3"]}


@pytest.mark.asyncio
async def test_get_instance_data_missing(classifier_backend, make_manager):
    manager = make_manager(classifier_backend())

    with pytest.raises(TrainingDataNotFoundError):
        await manager.get_instance_data("nope")


@pytest.mark.asyncio
async def test_get_instance_data_requires_store(classifier_backend, manager_config):
    manager = ClassifierManager(classifier_backend(), manager_config())

    with pytest.raises(ConfigurationError):
        await manager.get_instance_data("A")


@pytest.mark.asyncio
async def test_context_manager_closes_backend(classifier_backend, make_manager):
    backend = classifier_backend()

    async with make_manager(backend):
        pass

    assert backend.closed is True


# ============================================================================
# Classification feedback
# ============================================================================


@pytest.mark.asyncio
async def test_auto_approved_feedback_feeds_next_training(
    classifier_backend, manager_config, fake_sleep, db_connection, training_store
):
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=1)
    backend = classifier_backend()
    manager = ClassifierManager(
        backend,
        manager_config(training_data=None, auto_approve=True),
        store=training_store,
        row_source=DatabaseTrainingRowSource(db_connection, approved_after=cutoff),
        sleep=fake_sleep,
    )

    await manager.record_feedback("where is my parcel", selected_class="shipping")
    rows = await manager.launcher.row_source.get_training_rows()
    await manager.train()

    assert rows == [["where is my parcel", "shipping"]]
    assert backend.created_jobs[0].data == "where is my parcel,shipping\n"


@pytest.mark.asyncio
async def test_feedback_waits_for_approval_without_auto_approve(
    classifier_backend, make_manager, db_connection
):
    manager = make_manager(classifier_backend())
    source = DatabaseTrainingRowSource(db_connection)

    example_id = await manager.record_feedback("hi there", selected_class="greeting")
    pending = await source.get_training_rows()
    await manager.store.approve_example(example_id)

    assert pending == []
    assert await source.get_training_rows() == [["hi there", "greeting"]]


@pytest.mark.asyncio
async def test_negative_feedback_never_trains(classifier_backend, make_manager, db_connection):
    manager = make_manager(classifier_backend(), auto_approve=True)

    await manager.record_feedback("wrong answer", feedback_type="negative_fb")

    rows = await DatabaseTrainingRowSource(
        db_connection, include_unapproved=True
    ).get_training_rows()
    assert rows == []


@pytest.mark.asyncio
async def test_learned_feedback_needs_selected_class(classifier_backend, make_manager):
    manager = make_manager(classifier_backend())

    with pytest.raises(ValueError):
        await manager.record_feedback("hi there")


@pytest.mark.asyncio
async def test_feedback_requires_store(classifier_backend, manager_config):
    manager = ClassifierManager(classifier_backend(), manager_config())

    with pytest.raises(ConfigurationError):
        await manager.record_feedback("hi", selected_class="greeting")


@pytest.mark.parametrize(
    "value, expected",
    [(True, True), (False, False), ("true", False), (1, False), (None, False)],
)
def test_set_auto_approve_accepts_only_bools(classifier_backend, make_manager, value, expected):
    manager = make_manager(classifier_backend(), auto_approve=True)

    assert manager.set_auto_approve(value) is expected
    assert manager.get_auto_approve() is expected


# ============================================================================
# build_manager
# ============================================================================


def test_build_manager_wires_variant(classifier_backend, ranker_backend, db_connection):
    classifier = build_manager(
        "classifier", db=db_connection, backend=classifier_backend(), instance_name="faq"
    )
    ranker = build_manager(
        "ranker", db=db_connection, backend=ranker_backend(), max_instances=2
    )

    assert isinstance(classifier, ClassifierManager)
    assert classifier.instance_name == "faq"
    assert isinstance(ranker, RankerManager)
    assert ranker.config.max_instances == 2
    assert ranker.store is not None


def test_build_manager_passes_collection_to_backend(monkeypatch, db_connection):
    monkeypatch.setenv("RANKER_URL", "https://rr.example.com/api")
    monkeypatch.delenv("RANKER_COLLECTION", raising=False)

    ranker = build_manager("ranker", Config(), db_connection, collection_name="docs")

    assert ranker.config.collection_name == "docs"
    assert ranker.backend.collection_name == "docs"
    assert ranker.clusters.config.collection_name == "docs"


def test_build_manager_keeps_explicit_backend_without_clusters(ranker_backend, db_connection):
    ranker = build_manager("ranker", db=db_connection, backend=ranker_backend())

    assert ranker.clusters is None


# ============================================================================
# Ranker search clusters
# ============================================================================


@pytest.fixture
def make_ranker(manager_config, fake_sleep, cluster_config):
    """Factory fixture wiring a RankerManager to fake ranker and cluster services."""
    def _make(backend, clusters_backend, **overrides):
        clusters = ClusterManager(clusters_backend, cluster_config(), sleep=fake_sleep)
        return RankerManager(
            backend,
            manager_config("ranker", **overrides),
            sleep=fake_sleep,
            clusters=clusters,
        )
    return _make


def _ready_cluster(cluster_id="sc-A", status=InstanceStatus.AVAILABLE):
    return make_instance(cluster_id, name="kb", status=status, kind="cluster")


@pytest.mark.asyncio
async def test_rank_selects_ready_cluster(ranker_backend, cluster_backend, make_ranker):
    backend = ranker_backend(make_instance("R", kind="ranker"))
    manager = make_ranker(backend, cluster_backend(_ready_cluster()))

    result = await manager.rank("how do I reset my password")

    assert result["instance_id"] == "R"
    assert backend.cluster_id == "sc-A"


@pytest.mark.asyncio
async def test_rank_refuses_initializing_cluster(ranker_backend, cluster_backend, make_ranker):
    backend = ranker_backend(make_instance("R", kind="ranker"))
    manager = make_ranker(
        backend, cluster_backend(_ready_cluster(status=InstanceStatus.TRAINING))
    )

    with pytest.raises(ClusterSetupError, match="still initializing"):
        await manager.rank("how do I reset my password")
    assert backend.count("query") == 0
    assert backend.cluster_id is None


@pytest.mark.asyncio
async def test_feature_training_selects_cluster_first(
    ranker_backend, cluster_backend, make_ranker
):
    backend = ranker_backend()
    manager = make_ranker(backend, cluster_backend(_ready_cluster()), training_data=None)
    manager.launcher.row_source = StaticTrainingRowSource([["q1", "doc1"]])

    instance = await manager.train()

    assert instance.is_training
    assert backend.cluster_id == "sc-A"
    assert backend.args("extract_features") == ["q1"]


@pytest.mark.asyncio
async def test_explicit_training_data_needs_no_cluster(
    ranker_backend, cluster_backend, make_ranker
):
    clusters_backend = cluster_backend()
    backend = ranker_backend()
    manager = make_ranker(backend, clusters_backend)

    await manager.train("question_id,f0\nq1,0.5\n")

    assert clusters_backend.calls == []


@pytest.mark.asyncio
async def test_setup_cluster_if_needed_selects_cluster(
    ranker_backend, cluster_backend, make_ranker
):
    backend = ranker_backend()
    manager = make_ranker(backend, cluster_backend(_ready_cluster()))

    cluster = await manager.setup_cluster_if_needed()

    assert cluster.id == "sc-A"
    assert backend.cluster_id == "sc-A"


@pytest.mark.asyncio
async def test_delete_cluster_unselects_it(ranker_backend, cluster_backend, make_ranker):
    backend = ranker_backend()
    clusters_backend = cluster_backend(_ready_cluster())
    manager = make_ranker(backend, clusters_backend)
    await manager.setup_cluster_if_needed()

    await manager.delete_cluster()

    assert backend.cluster_id is None
    assert clusters_backend.args("delete_instance") == ["sc-A"]


@pytest.mark.asyncio
async def test_cluster_operations_require_cluster_manager(ranker_backend, make_manager):
    manager = make_manager(ranker_backend(), manager_cls=RankerManager)

    with pytest.raises(ConfigurationError):
        await manager.setup_cluster()


@pytest.mark.asyncio
async def test_close_closes_cluster_backend(ranker_backend, cluster_backend, make_ranker):
    clusters_backend = cluster_backend()
    manager = make_ranker(ranker_backend(), clusters_backend)

    async with manager:
        pass

    assert clusters_backend.closed is True
