#!/usr/bin/env python3
"""
Command line entry point for Model Lifecycle.

Examples:
    model-lifecycle init-db
    model-lifecycle --kind classifier seed training.csv
    model-lifecycle --kind classifier train-if-needed
    model-lifecycle --kind classifier monitor <instance_id>
    model-lifecycle --kind classifier classify "Where is my order?"
    model-lifecycle --kind ranker list
    model-lifecycle --kind ranker cluster-setup-if-needed
    model-lifecycle --kind classifier feedback "Where is my order?" --label shipping

Results are printed to stdout as JSON. Lifecycle errors are printed to
stderr as JSON and exit with status 1.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional

from .backends.base import Instance
from .config import config
from .db.connection import DatabaseConnection
from .db.models import SOURCE_LEARNED, SOURCE_NEGATIVE_FEEDBACK
from .db.training_data_repository import TrainingDataRepository
from .exceptions import ConfigurationError, LifecycleError
from .services.lifecycle_manager import (
    ClassifierManager,
    LifecycleManager,
    RankerManager,
    build_manager,
)
from .utils.csv_utils import decode_rows
from .utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def _to_json(value: Any) -> Any:
    if isinstance(value, Instance):
        return value.to_dict()
    if isinstance(value, list):
        return [_to_json(item) for item in value]
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="model-lifecycle",
        description="Keep one current classifier or ranker in sync with a remote training service",
    )
    parser.add_argument(
        "--kind",
        choices=["classifier", "ranker"],
        default="classifier",
        help="Instance kind to manage (default: classifier)",
    )
    parser.add_argument("--name", default=None, help="Logical instance name (overrides env)")
    parser.add_argument(
        "--max-instances", type=int, default=None, help="Retention limit (overrides env)"
    )
    parser.add_argument("--log-level", default=None, help="Log level (default: LOG_LEVEL or INFO)")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    seed = sub.add_parser("seed", help="Load text,label rows from a CSV file into the database")
    seed.add_argument("csv_path", type=Path)

    train = sub.add_parser("train", help="Start training a new instance")
    train.add_argument(
        "--data", type=Path, default=None, help="Training data file (default: database examples)"
    )

    sub.add_parser("train-if-needed", help="Resolve the current instance, training one if needed")

    monitor = sub.add_parser("monitor", help="Wait for an instance to finish training")
    monitor.add_argument("instance_id")

    status = sub.add_parser("status", help="Status of an instance (default: current)")
    status.add_argument("instance_id", nargs="?", default=None)

    sub.add_parser("list", help="List instances under the name")
    sub.add_parser("current", help="Show the current instance without training")

    for command in ("query", "classify", "rank"):
        query = sub.add_parser(command, help="Classify or rank text with the current instance")
        query.add_argument("text")

    data = sub.add_parser("data", help="Show the data an instance was trained with")
    data.add_argument("instance_id")

    feedback = sub.add_parser(
        "feedback", help="Record feedback on a classification (classifier only)"
    )
    feedback.add_argument("text")
    feedback.add_argument(
        "--type",
        dest="feedback_type",
        choices=[SOURCE_LEARNED, SOURCE_NEGATIVE_FEEDBACK],
        default=SOURCE_LEARNED,
    )
    feedback.add_argument("--label", default=None, help="Class the text should have had")
    feedback.add_argument(
        "--auto-approve", action="store_true", help="Approve learned feedback for training now"
    )

    sub.add_parser("cluster-setup", help="Provision a new search cluster (ranker only)")
    sub.add_parser(
        "cluster-setup-if-needed", help="Find or provision the search cluster (ranker only)"
    )
    cluster_monitor = sub.add_parser(
        "cluster-monitor", help="Wait for a search cluster to be READY"
    )
    cluster_monitor.add_argument("cluster_id")
    cluster_status = sub.add_parser("cluster-status", help="Status of a search cluster")
    cluster_status.add_argument("cluster_id", nargs="?", default=None)
    sub.add_parser("cluster-list", help="List search clusters under the cluster name")
    sub.add_parser("cluster-delete", help="Delete the current search cluster")

    return parser


def _seed(db: DatabaseConnection, kind: str, csv_path: Path) -> dict:
    rows = decode_rows(csv_path.read_text(encoding="utf-8"))
    if kind == "ranker":
        # question,ref1,ref2,... -> one example per reference
        examples = [
            {"text": ref, "label": row[0], "kind": kind}
            for row in rows
            for ref in row[1:]
        ]
    else:
        examples = [
            {"text": row[0], "label": label, "kind": kind}
            for row in rows
            for label in row[1:]
        ]
    with db.session_scope() as session:
        ids = TrainingDataRepository(session).add_examples(examples)
    logger.info("Seeded %d %s examples from %s", len(ids), kind, csv_path)
    return {"inserted": len(ids)}


async def _run_cluster_command(manager: LifecycleManager, args: argparse.Namespace) -> Any:
    if not isinstance(manager, RankerManager):
        raise ConfigurationError(f"{args.command} needs --kind ranker")
    if args.command == "cluster-setup":
        return await manager.setup_cluster()
    if args.command == "cluster-setup-if-needed":
        return await manager.setup_cluster_if_needed()
    if args.command == "cluster-monitor":
        return await manager.monitor_cluster(args.cluster_id)
    if args.command == "cluster-status":
        return await manager.cluster_status(args.cluster_id)
    if args.command == "cluster-list":
        return await manager.list_clusters()
    return await manager.delete_cluster()


async def _record_feedback(manager: LifecycleManager, args: argparse.Namespace) -> dict:
    if not isinstance(manager, ClassifierManager):
        raise ConfigurationError("feedback needs --kind classifier")
    if args.auto_approve:
        manager.set_auto_approve(True)
    example_id = await manager.record_feedback(args.text, args.feedback_type, args.label)
    return {
        "id": example_id,
        "type": args.feedback_type,
        "auto_approve": manager.get_auto_approve(),
    }


async def _run_manager_command(manager: LifecycleManager, args: argparse.Namespace) -> Any:
    async with manager:
        if args.command.startswith("cluster-"):
            return await _run_cluster_command(manager, args)
        if args.command == "feedback":
            return await _record_feedback(manager, args)
        if args.command == "train":
            data = args.data.read_text(encoding="utf-8") if args.data else None
            return await manager.train(data)
        if args.command == "train-if-needed":
            return await manager.train_if_needed()
        if args.command == "monitor":
            return await manager.monitor_training(args.instance_id)
        if args.command == "status":
            return await manager.status(args.instance_id)
        if args.command == "list":
            return await manager.list_instances()
        if args.command == "current":
            return await manager.current()
        if args.command in ("query", "classify", "rank"):
            return await manager.process(args.text)
        if args.command == "data":
            return await manager.get_instance_data(args.instance_id)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "feedback" and args.feedback_type == SOURCE_LEARNED and not args.label:
        parser.error("learned feedback needs --label")
    setup_logging(level=args.log_level, log_file=args.log_file)

    db = DatabaseConnection(config.database.connection_string)
    try:
        db.init_db()
        if args.command == "init-db":
            result: Any = {"database": "initialized"}
        elif args.command == "seed":
            result = _seed(db, args.kind, args.csv_path)
        else:
            manager = build_manager(
                args.kind,
                db=db,
                instance_name=args.name,
                max_instances=args.max_instances,
            )
            result = asyncio.run(_run_manager_command(manager, args))
    except LifecycleError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1
    finally:
        db.dispose()

    print(json.dumps(_to_json(result), indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
