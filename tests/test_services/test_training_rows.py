"""
Tests for training row sources.
"""

from datetime import datetime, timezone

import pytest

from model_lifecycle.db.training_data_repository import TrainingDataRepository
from model_lifecycle.services.training_rows import (
    DatabaseTrainingRowSource,
    RankerTrainingRowSource,
    StaticTrainingRowSource,
    TrainingRowSource,
)


def _seed(db, rows):
    with db.session_scope() as session:
        TrainingDataRepository(session).add_examples(rows)


def test_sources_satisfy_protocol(db_connection):
    assert isinstance(StaticTrainingRowSource([]), TrainingRowSource)
    assert isinstance(DatabaseTrainingRowSource(db_connection), TrainingRowSource)
    assert isinstance(RankerTrainingRowSource(db_connection), TrainingRowSource)


@pytest.mark.asyncio
async def test_static_source_returns_copies():
    source = StaticTrainingRowSource([("a", "x")])

    rows = await source.get_training_rows()
    rows[0][0] = "changed"

    assert await source.get_training_rows() == [["a", "x"]]


@pytest.mark.asyncio
async def test_database_source_reads_classifier_rows(db_connection):
    _seed(
        db_connection,
        [
            {"text": "where is my parcel", "label": "shipping"},
            {"text": "hi", "label": "greeting"},
            {"text": "q?", "label": "question", "kind": "ranker"},
        ],
    )

    rows = await DatabaseTrainingRowSource(db_connection).get_training_rows()

    assert rows == [["hi", "greeting"], ["where is my parcel", "shipping"]]


@pytest.mark.asyncio
async def test_database_source_filters_by_approval(db_connection):
    _seed(
        db_connection,
        [
            {
                "text": "old",
                "label": "c1",
                "approved_at": datetime(2020, 1, 1, tzinfo=timezone.utc),
            },
            {
                "text": "recent",
                "label": "c1",
                "approved_at": datetime(2024, 6, 1, tzinfo=timezone.utc),
            },
            {"text": "draft", "label": "c1", "approved": False},
        ],
    )

    recent = await DatabaseTrainingRowSource(
        db_connection, approved_after=datetime(2024, 1, 1, tzinfo=timezone.utc)
    ).get_training_rows()
    approved = await DatabaseTrainingRowSource(
        db_connection, include_unapproved=False
    ).get_training_rows()

    assert recent == [["recent", "c1"]]
    assert [row[0] for row in approved] == ["old", "recent"]


@pytest.mark.asyncio
async def test_ranker_source_joins_references_per_question(db_connection):
    _seed(
        db_connection,
        [
            {"text": "doc1", "label": "how to reset", "kind": "ranker"},
            {"text": "doc7", "label": "billing cycle", "kind": "ranker"},
            {"text": "doc2", "label": "how to reset", "kind": "ranker"},
        ],
    )

    rows = await RankerTrainingRowSource(db_connection).get_training_rows()

    assert rows == [["billing cycle", "doc7"], ["how to reset", "doc1,doc2"]]


@pytest.mark.asyncio
async def test_database_source_skips_unapproved_by_default(db_connection):
    _seed(
        db_connection,
        [
            {"text": "hi", "label": "greeting"},
            {"text": "draft", "label": "greeting", "approved": False},
        ],
    )

    default = await DatabaseTrainingRowSource(db_connection).get_training_rows()
    everything = await DatabaseTrainingRowSource(
        db_connection, include_unapproved=True
    ).get_training_rows()

    assert default == [["hi", "greeting"]]
    assert [row[0] for row in everything] == ["hi", "draft"]
