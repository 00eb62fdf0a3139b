"""
Training row sources.

When a manager is given no explicit training data, the launcher asks a
``TrainingRowSource`` for ``[text, label]`` rows and lets the backend
encode them (CSV for classifiers, extracted relevance features for
rankers).
"""

import asyncio
from datetime import datetime
from typing import List, Optional, Protocol, Sequence, Union, runtime_checkable

from ..db.connection import DatabaseConnection
from ..db.training_data_repository import TrainingDataRepository
from ..utils.logging_config import get_logger

logger = get_logger(__name__)


@runtime_checkable
class TrainingRowSource(Protocol):
    """Structural interface for anything that supplies training rows."""

    async def get_training_rows(self) -> List[List[str]]: ...


class StaticTrainingRowSource:
    """Serves a fixed, in-memory list of rows."""

    def __init__(self, rows: Sequence[Sequence[str]]):
        self._rows = [list(row) for row in rows]

    async def get_training_rows(self) -> List[List[str]]:
        return [list(row) for row in self._rows]


class DatabaseTrainingRowSource:
    """
    Reads classifier rows ``[text, label]`` from the ``training_examples`` table.

    ``approved_after`` keeps only examples approved at or after the given
    datetime (epoch milliseconds are accepted too), which lets a caller
    retrain from recently curated data only. Unapproved feedback is skipped
    unless ``include_unapproved`` is set; negative feedback never becomes a
    row.
    """

    kind = "classifier"

    def __init__(
        self,
        db: DatabaseConnection,
        approved_after: Optional[Union[datetime, int, float]] = None,
        include_unapproved: bool = False,
    ):
        self.db = db
        self.approved_after = approved_after
        self.include_unapproved = include_unapproved

    def _load(self) -> List[List[str]]:
        with self.db.session_scope() as session:
            examples = TrainingDataRepository(session).query_examples(
                kind=self.kind,
                approved_after=self.approved_after,
                include_unapproved=self.include_unapproved,
            )
            return self._to_rows(examples)

    def _to_rows(self, examples) -> List[List[str]]:
        return [[example.text, example.label] for example in examples]

    async def get_training_rows(self) -> List[List[str]]:
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, self._load)
        logger.info("Loaded %d %s training rows from the database", len(rows), self.kind)
        return rows


class RankerTrainingRowSource(DatabaseTrainingRowSource):
    """
    Reads ranker rows ``[question, "ref1,ref2"]`` from ``training_examples``.

    Ranker examples store the question as ``label`` and one ground-truth
    reference per row as ``text``; consecutive rows of the same question
    are joined with commas.
    """

    kind = "ranker"

    def _to_rows(self, examples) -> List[List[str]]:
        rows: List[List[str]] = []
        for example in examples:
            if rows and rows[-1][0] == example.label:
                rows[-1][1] = f"{rows[-1][1]},{example.text}"
            else:
                rows.append([example.label, example.text])
        return rows
