"""Utility modules for Model Lifecycle."""

from .logging_config import get_logger, setup_logging
from .csv_utils import encode_rows, decode_rows, group_by_label

__all__ = [
    "get_logger",
    "setup_logging",
    "encode_rows",
    "decode_rows",
    "group_by_label",
]
