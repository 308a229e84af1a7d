# =============================================================================
# joconde_sync/cli/sync.py -- Catalog import and synchronization CLI
# =============================================================================
#
# Subcommands:
#
#   parse   Parse a local XML/JSON export (optionally .gz / .zip) and print
#           what it contains, without touching the catalog.
#   import  Parse a local export and merge it into the catalog database.
#   sync    Download the remote export and import it when it changed.
#   check   Ask the remote source whether it changed since the last import.
#   cancel  Close a RUNNING synchronization whose process is gone.
#   status  Show recent synchronization runs and catalog counts.
#
# Progress lines are printed to stderr so stdout stays parseable.  Ctrl-C
# during a sync requests cooperative cancellation: batches already
# committed stay in the catalog and the run is logged as CANCELED.
#
# Usage examples:
#   python -m joconde_sync.cli parse --file base-joconde-extrait.xml
#   python -m joconde_sync.cli import --file joconde.json.gz
#   python -m joconde_sync.cli sync --force
#   python -m joconde_sync.cli status --limit 5
#   python -m joconde_sync.cli cancel 3f2a9c1e-...
# =============================================================================

"""Command-line entry point for joconde-sync."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys

from joconde_sync.config.settings import Settings
from joconde_sync.models.reports import ImportReport, SyncLog, SyncStatus, SyncType
from joconde_sync.utils.errors import JocondeSyncError


def _print_progress(stage: str, current: int, total: int) -> None:
    if total > 0:
        print(f"  {stage:<11} {current}/{total}", file=sys.stderr)
    else:
        print(f"  {stage:<11} {current}", file=sys.stderr)


def _print_report(report: ImportReport) -> None:
    print(f"Import report: {report.file_name}")
    print("=" * 40)
    print(f"  Success:        {report.success}")
    if report.canceled:
        print("  Canceled:       True")
    if report.error_message:
        print(f"  Error:          {report.error_message}")
    print(f"  Duration:       {report.duration_seconds:.1f}s")
    print(f"  Skipped records: {report.skipped_records}")
    print()
    print(f"  {'kind':<11} {'parsed':>8} {'new':>8} {'updated':>8} {'skipped':>8} {'errors':>8}")
    for kind in ("artworks", "artists", "domains", "techniques", "periods", "museums"):
        counts = report.counts_for(kind)
        total = getattr(report, f"total_{kind}")
        print(
            f"  {kind:<11} {total:>8} {counts.imported:>8} {counts.updated:>8}"
            f" {counts.skipped:>8} {counts.errors:>8}"
        )


def _print_run(run: SyncLog) -> None:
    duration = f"{run.duration_seconds:.1f}s" if run.duration_seconds is not None else "-"
    line = (
        f"  {run.started_at:%Y-%m-%d %H:%M:%S}  {run.sync_type.value:<9}"
        f" {run.status.value:<9} items={run.items_processed:<7} {duration}"
    )
    if run.error_message:
        line += f"  ({run.error_message})"
    print(line)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_parse(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.parsers import parser_for_path

    parser = parser_for_path(
        args.file,
        progress_every=app_settings.progress_every,
        parse_batch_size=app_settings.parse_batch_size,
    )

    async def _on_progress(processed: int, total: int) -> None:
        _print_progress("parsing", processed, total)

    result = await parser.parse(args.file, on_progress=_on_progress)

    print(f"Parsed {args.file} ({parser.format_name})")
    print("=" * 40)
    print(f"  Records seen:   {result.records_seen}")
    print(f"  Skipped:        {result.skipped_records}")
    print(f"  Artworks:       {len(result.artworks)}")
    print(f"  Artists:        {len(result.artists)}")
    print(f"  Domains:        {len(result.domains)}")
    print(f"  Techniques:     {len(result.techniques)}")
    print(f"  Periods:        {len(result.periods)}")
    print(f"  Museums:        {len(result.museums)}")
    return 0


async def _handle_import(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.main import open_components

    async with open_components(app_settings) as components:
        report = await components["import_engine"].import_from_source(
            args.file, on_progress=_print_progress
        )
    _print_report(report)
    return 0 if report.success and not report.canceled else 1


async def _handle_sync(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.main import open_components

    sync_type = SyncType.AUTOMATIC if args.automatic else SyncType.MANUAL
    async with open_components(app_settings) as components:
        orchestrator = components["orchestrator"]
        run = await orchestrator.start_in_background(sync_type=sync_type, force=args.force)
        if run is None:
            print("Source unchanged since the last import; nothing to do.")
            return 0

        print(f"Synchronization {run.id} started.", file=sys.stderr)
        orchestrator.tracker.register_listener(
            run.id, lambda _run_id, stage, current, total: _print_progress(stage, current, total)
        )
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signal.SIGINT, orchestrator.cancel, run.id)

        closed = await orchestrator.wait_for(run.id)

    if closed is None:
        return 1
    print("Synchronization")
    print("=" * 40)
    _print_run(closed)
    return 0 if closed.status == SyncStatus.COMPLETED else 1


async def _handle_check(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.main import open_components

    async with open_components(app_settings) as components:
        changed = await components["orchestrator"].check_for_update()
    print("Source changed: yes" if changed else "Source changed: no")
    return 0


async def _handle_cancel(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.main import open_components

    async with open_components(app_settings) as components:
        canceled = await components["orchestrator"].cancel_run(args.run_id)
        run = await components["sync_log"].get_run(args.run_id)

    if not canceled:
        print(f"No running synchronization {args.run_id}.")
        return 1
    print(f"Synchronization {args.run_id} canceled.")
    if run is not None:
        _print_run(run)
    return 0


async def _handle_status(args: argparse.Namespace, app_settings: Settings) -> int:
    from joconde_sync.main import open_components

    async with open_components(app_settings) as components:
        runs = await components["sync_log"].list_runs(limit=args.limit)
        counts = await components["catalog_store"].count_entities()

    print("Recent synchronizations")
    print("=" * 40)
    if not runs:
        print("  (none)")
    for run in runs:
        _print_run(run)

    print()
    print("Catalog")
    print("=" * 40)
    for table, count in counts.items():
        print(f"  {table:<20} {count}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the joconde-sync CLI."""
    parser = argparse.ArgumentParser(
        prog="joconde-sync",
        description="Import and synchronize the Joconde museum catalog.",
    )
    parser.add_argument(
        "--config",
        default="config/config.yaml",
        help="YAML configuration file (default: config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # -- parse --
    parse_parser = subparsers.add_parser("parse", help="Parse a local export without importing")
    parse_parser.add_argument("--file", required=True, help="XML or JSON export (.gz/.zip ok)")

    # -- import --
    import_parser = subparsers.add_parser("import", help="Import a local export into the catalog")
    import_parser.add_argument("--file", required=True, help="XML or JSON export (.gz/.zip ok)")

    # -- sync --
    sync_parser = subparsers.add_parser("sync", help="Download and import the remote export")
    sync_parser.add_argument(
        "--force", action="store_true", help="Import even when the source looks unchanged"
    )
    sync_parser.add_argument(
        "--automatic",
        action="store_true",
        help="Log the run as AUTOMATIC (scheduled) instead of MANUAL",
    )

    # -- check --
    subparsers.add_parser("check", help="Check whether the remote export changed")

    # -- cancel --
    cancel_parser = subparsers.add_parser(
        "cancel", help="Close a RUNNING synchronization left by a stopped process"
    )
    cancel_parser.add_argument("run_id", help="Id of the RUNNING synchronization")

    # -- status --
    status_parser = subparsers.add_parser("status", help="Show recent runs and catalog counts")
    status_parser.add_argument(
        "--limit", type=int, default=10, help="Number of runs to show (default: 10)"
    )

    return parser


_HANDLERS = {
    "parse": _handle_parse,
    "import": _handle_import,
    "sync": _handle_sync,
    "check": _handle_check,
    "cancel": _handle_cancel,
    "status": _handle_status,
}


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: resolve settings, dispatch, exit with the handler's code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    from joconde_sync.main import load_settings

    try:
        app_settings = load_settings(args.config)
        exit_code = asyncio.run(_HANDLERS[args.command](args, app_settings))
    except JocondeSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
