"""Beaver CLI - keep the Neo4j graph in step with the record store."""

import argparse
import dataclasses
import json
import logging
import os
import sys
import time
from typing import Any, Callable

from beaver_core.models.types import EntityType

logger = logging.getLogger("beaver.cli")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the Beaver CLI."""
    parser = argparse.ArgumentParser(
        prog="beaver",
        description="Relational catalogue with a synchronized Neo4j graph",
    )
    parser.add_argument(
        "--db",
        help="Record store database file (default: $BEAVER_DB_PATH or beaver.db)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BEAVER_LOG_LEVEL", "WARNING"),
        help="Log level (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=os.environ.get("BEAVER_LOG_FORMAT", "text"),
        help="Log output format (default: text)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Full sync of the graph from the record store")
    sync_parser.add_argument(
        "--entity",
        "-e",
        choices=[e.value for e in EntityType],
        help="Sync one entity type only",
    )

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Compare the record store with the graph")
    validate_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    # Repair command
    repair_parser = subparsers.add_parser("repair", help="Validate and correct every discrepancy")
    repair_parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop at the first failing corrective action",
    )
    repair_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    # Reconcile command
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Validate and repair only when needed, optionally on a schedule"
    )
    reconcile_parser.add_argument(
        "--interval",
        type=float,
        default=300.0,
        help="Seconds between runs (default: 300)",
    )
    reconcile_parser.add_argument(
        "--iterations",
        type=int,
        default=1,
        help="Number of runs, 0 to run until interrupted (default: 1)",
    )

    # Migrate command
    migrate_parser = subparsers.add_parser("migrate", help="Run the v2 migration")
    migrate_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start HTTP API server")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Server host (default: 0.0.0.0)")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Server port (default: 8080)",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    from beaver_core.utils import setup_logging

    setup_logging(level=args.log_level, json_format=args.log_format == "json")
    _configure(args)

    if args.command == "serve":
        from beaver_api.app import run_server

        run_server(host=args.host, port=args.port)
        return 0

    commands: dict[str, Callable[[argparse.Namespace], int]] = {
        "sync": _cmd_sync,
        "validate": _cmd_validate,
        "repair": _cmd_repair,
        "reconcile": _cmd_reconcile,
        "migrate": _cmd_migrate,
    }
    return _run(commands[args.command], args)


def _configure(args: argparse.Namespace) -> None:
    """Apply command line overrides to the container's configuration."""
    from beaver_core.container import get_container

    container = get_container()
    if args.db:
        config = dataclasses.replace(container.get_config(), db_path=args.db)
        container.register_instance("config", config)
        os.environ["BEAVER_DB_PATH"] = args.db


def _run(command: Callable[[argparse.Namespace], int], args: argparse.Namespace) -> int:
    from beaver_core.container import get_container
    from beaver_core.storage.graph_store import GraphStoreError
    from beaver_core.storage.sqlite_store import RecordStoreError

    config = get_container().get_config()
    for error in config.get_validation_errors():
        print(f"Configuration error: {error}", file=sys.stderr)
        return 2

    if args.command != "migrate" and not os.path.exists(config.db_path):
        print(f"Database not found: {config.db_path} (run 'beaver migrate' first)", file=sys.stderr)
        return 2

    try:
        return command(args)
    except GraphStoreError as e:
        logger.error(f"Graph store error: {e}")
        print(f"Graph store error: {e}", file=sys.stderr)
        return 2
    except RecordStoreError as e:
        logger.error(f"Record store error: {e}")
        print(f"Record store error: {e}", file=sys.stderr)
        return 2
    finally:
        get_container().clear()


def _reconciler(store: Any, fail_fast: bool = False) -> Any:
    from beaver_core.container import get_container
    from beaver_core.services.reconcile import Reconciler

    container = get_container()
    return Reconciler(store, container.get_graph_store(), container.get_config(), fail_fast=fail_fast)


def _open_store(apply_schema: bool = True) -> Any:
    from beaver_core.container import get_container
    from beaver_core.storage.sqlite_store import RecordStore

    return RecordStore(get_container().get_config().db_path, apply_schema=apply_schema)


def _print_validation(report: dict[str, Any]) -> None:
    if report["valid"]:
        print("Graph is consistent with the record store.")
        return

    print(f"Found {len(report['discrepancies'])} discrepancy(ies):")
    for d in report["discrepancies"]:
        if "difference" in d:
            print(f"  {d['entity']:24} relational={d['relational']} graph={d['graph']} difference={d['difference']:+d}")
        else:
            print(f"  {d['entity']:24} {d['count']} {d['description']}")


def _print_repair(report: dict[str, Any]) -> None:
    if not report["corrections"]:
        print("Nothing to repair.")
        return

    for c in report["corrections"]:
        line = f"  [{c['status'].upper():7}] {c['action']:6} {c['entity']}"
        if c.get("error"):
            line += f": {c['error']}"
        print(line)
    print("Repair converged." if report["fixed"] else "Repair did not converge.")
    final = report.get("finalReport")
    if final and not final["valid"]:
        _print_validation(final)


def _cmd_sync(args: argparse.Namespace) -> int:
    """Full sync, or one entity type with --entity."""
    with _open_store() as store:
        result = _reconciler(store).sync(args.entity)

    for stats in result["synced"]:
        line = f"  {stats['entity']:24} rows={stats['rows']} relationships={stats['relationships']}"
        if stats["derived"]:
            line += f" derived={stats['derived']}"
        print(line)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    """Validate; exits 1 when the graph has drifted."""
    with _open_store() as store:
        report = _reconciler(store).validate()["validation"]

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        _print_validation(report)
    return 0 if report["valid"] else 1


def _cmd_repair(args: argparse.Namespace) -> int:
    """Repair; exits 1 when discrepancies remain."""
    with _open_store() as store:
        report = _reconciler(store, fail_fast=args.fail_fast).repair()["repair"]

    if args.json:
        print(json.dumps(report, indent=2))
    else:
        _print_repair(report)
    return 0 if report["fixed"] else 1


def _cmd_reconcile(args: argparse.Namespace) -> int:
    """Validate and repair when needed, repeating every --interval seconds."""
    healthy = True
    iteration = 0

    while args.iterations == 0 or iteration < args.iterations:
        if iteration:
            time.sleep(args.interval)
        iteration += 1

        with _open_store() as store:
            result = _reconciler(store).reconcile()

        repair = result.get("repair")
        healthy = repair["fixed"] if repair is not None else result["validation"]["valid"]
        logger.info(
            f"Reconcile run {iteration} {'healthy' if healthy else 'not converged'}",
            extra={"event": "reconcile_run", "iteration": iteration, "healthy": healthy},
        )
        if repair is None:
            _print_validation(result["validation"])
        else:
            _print_repair(repair)

    return 0 if healthy else 1


def _cmd_migrate(args: argparse.Namespace) -> int:
    """Run the v2 migration; exits 1 when a required step fails."""
    from beaver_core.container import get_container
    from beaver_core.migration import MigrationRunner

    container = get_container()
    # The runner applies the schema itself, after taking its backup
    with _open_store(apply_schema=False) as store:
        report = MigrationRunner(container.get_config(), store, container.get_graph_store()).run()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        for step in report.steps:
            line = f"  [{step.status.upper():7}] {step.name}"
            if step.error:
                line += f": {step.error}"
            print(line)
        print("Migration completed." if report.success else "Migration aborted.")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
