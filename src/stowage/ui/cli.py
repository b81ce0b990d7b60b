# ruff: noqa: T201

from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from stowage.app import open_dataset
from stowage.config import ConfigurationError, configure_logging, get_datastore_config
from stowage.domain.errors import UsageError
from stowage.domain.model import Entity, Key, Query

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from stowage.domain.dataset import Dataset
    from stowage.domain.model import Identifier, Value

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Read and write stowage entities")
    parser.add_argument(
        "--namespace",
        type=str,
        help="Namespace for keys and queries (defaults to STOWAGE_NAMESPACE)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    get = subparsers.add_parser("get", help="Print one entity")
    get.add_argument("kind", type=str)
    get.add_argument("identifier", type=str, help="Numeric id or name")

    put = subparsers.add_parser("put", help="Save an entity")
    put.add_argument("kind", type=str)
    put.add_argument(
        "identifier",
        type=str,
        nargs="?",
        help="Numeric id or name; omit to let the store generate an id",
    )
    put.add_argument(
        "--set",
        dest="assignments",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Property assignment; VALUE is parsed as JSON when possible",
    )

    delete = subparsers.add_parser("delete", help="Delete entities")
    delete.add_argument("kind", type=str)
    delete.add_argument("identifiers", type=str, nargs="+")

    query = subparsers.add_parser("query", help="Run a kind query")
    query.add_argument("kind", type=str)
    query.add_argument(
        "--where",
        nargs=3,
        action="append",
        default=[],
        metavar=("PROPERTY", "OPERATOR", "VALUE"),
        help="Filter; VALUE is parsed as JSON when possible",
    )
    query.add_argument(
        "--order",
        action="append",
        default=[],
        help="Order by property; prefix with '-' for descending",
    )
    query.add_argument("--limit", type=int, help="Maximum number of results")
    query.add_argument("--cursor", type=str, help="Cursor returned by a previous query")

    allocate = subparsers.add_parser("allocate-ids", help="Reserve ids for a kind")
    allocate.add_argument("kind", type=str)
    allocate.add_argument("--count", type=int, default=1, help="Number of ids (default: 1)")

    return parser.parse_args(list(argv))


def _parse_identifier(value: str) -> Identifier:
    return int(value) if value.isdigit() else value


def _parse_value(raw: str) -> Value:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_assignment(assignment: str) -> tuple[str, Value]:
    name, sep, raw = assignment.partition("=")
    if not sep or not name:
        raise ValueError(f"Invalid assignment {assignment!r}; expected NAME=VALUE")
    return name, _parse_value(raw)


def _json_default(value: object) -> object:
    if isinstance(value, Key):
        return _key_json(value)
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def _key_json(key: Key) -> list[list[Any]]:
    return [[kind, identifier] for kind, identifier in key.path]


def _entity_json(entity: Entity) -> str:
    payload = {"key": _key_json(entity.key), "properties": entity.properties}
    return json.dumps(payload, default=_json_default, sort_keys=True)


def _run_command(args: argparse.Namespace, dataset: Dataset, namespace: str | None) -> int:
    if args.command == "get":
        entity = dataset.find(Key(args.kind, _parse_identifier(args.identifier), namespace=namespace))
        if entity is None:
            log.warning("No %s entity with identifier %s", args.kind, args.identifier)
            return 1
        print(_entity_json(entity))
    elif args.command == "put":
        identifier = _parse_identifier(args.identifier) if args.identifier else None
        properties = dict(_parse_assignment(item) for item in args.assignments)
        entity = Entity(Key(args.kind, identifier, namespace=namespace), properties)
        dataset.save(entity)
        print(_entity_json(entity))
    elif args.command == "delete":
        keys = [Key(args.kind, _parse_identifier(item), namespace=namespace) for item in args.identifiers]
        dataset.delete(*keys)
        log.info("Deleted %s %s entities", len(keys), args.kind)
    elif args.command == "query":
        query = Query(args.kind, namespace=namespace)
        for prop, op, raw in args.where:
            query = query.where(prop, op, _parse_value(raw))
        for order in args.order:
            query = query.order(order)
        if args.limit is not None:
            query = query.limit(args.limit)
        if args.cursor:
            query = query.start(args.cursor)
        results = dataset.run(query)
        for entity in results:
            print(_entity_json(entity))
        log.info("Query returned %s entities; cursor=%s", len(results), results.cursor)
    elif args.command == "allocate-ids":
        for key in dataset.allocate_ids(Key(args.kind, namespace=namespace), args.count):
            print(json.dumps(_key_json(key)))
    else:
        raise ValueError(f"Unsupported command: {args.command}")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
        config = get_datastore_config()
    except (ValueError, ConfigurationError):
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    namespace = parsed_args.namespace or config.namespace
    try:
        dataset = open_dataset(config)
        status = _run_command(parsed_args, dataset, namespace)
    except (ValueError, UsageError):
        log.exception("Invalid arguments")
        sys.exit(2)
    except Exception:
        log.exception("Fatal error")
        sys.exit(1)
    if status:
        sys.exit(status)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    """Console script entry point."""
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
