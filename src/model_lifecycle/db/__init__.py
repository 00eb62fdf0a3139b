"""
Database Layer - Models, connections, and repositories.

This package provides persistence for training data records and labelled
training examples using SQLAlchemy.
Supports both SQLite (development) and PostgreSQL (production).
"""

from .models import Base, TrainingDataRecord, TrainingExample
from .connection import DatabaseConnection
from .training_data_repository import TrainingDataRepository

__all__ = [
    "Base",
    "TrainingDataRecord",
    "TrainingExample",
    "DatabaseConnection",
    "TrainingDataRepository",
]
