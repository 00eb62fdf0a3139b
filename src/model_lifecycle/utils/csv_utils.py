"""CSV helpers for classifier training data."""

import csv
import io
from collections import defaultdict
from typing import Dict, Iterable, List, Sequence


def encode_rows(rows: Iterable[Sequence[str]]) -> str:
    """Encode ``[text, label, ...]`` rows as CSV text (``\\n`` line endings)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    for row in rows:
        writer.writerow([str(value) for value in row])
    return buffer.getvalue()


def decode_rows(text: str) -> List[List[str]]:
    """Decode CSV text into rows, skipping blank lines."""
    reader = csv.reader(io.StringIO(text))
    return [row for row in reader if row and any(cell.strip() for cell in row)]


def group_by_label(rows: Iterable[Sequence[str]]) -> Dict[str, List[str]]:
    """
    Regroup ``[text, label1, label2, ...]`` rows as ``{label: [texts]}``.

    A row may carry several labels; its text is listed under each of them.
    Insertion order of labels and texts is preserved.
    """
    grouped: Dict[str, List[str]] = defaultdict(list)
    for row in rows:
        if len(row) < 2:
            continue
        text = row[0]
        for label in row[1:]:
            grouped[label].append(text)
    return dict(grouped)
