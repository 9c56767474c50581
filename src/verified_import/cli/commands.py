"""
CLI command implementations.

- cursor show / list / resync: RowID cursor maintenance
- report: report generation from a saved session outcome
"""

import argparse
import json
import logging
from typing import Any

from ..config import ImportSettings
from ..cursor.state import RowCursorStore
from ..errors import LocalPreconditionError, TableLeaseError
from ..report import export_report_csv, export_report_json, format_report_console, generate_report
from ..rollback.executor import RollbackResult
from ..verification.models import VerificationResult

logger = logging.getLogger(__name__)

CLI_LEASE_OWNER = "verified-import-cli"


def _store(args: argparse.Namespace) -> RowCursorStore:
    state_dir = args.state_dir or ImportSettings.from_env().state_dir
    return RowCursorStore(state_dir)


def cmd_cursor(args: argparse.Namespace) -> int:
    """
    Run a cursor subcommand

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    store = _store(args)

    if args.cursor_command == 'show':
        cursor = store.get(args.table_id)
        if cursor is None:
            logger.error(f"No RowID cursor stored for {args.table_id}")
            return 1
        print(json.dumps(cursor.to_dict(), indent=2))
        return 0

    if args.cursor_command == 'list':
        for table_id in store.list_tables():
            cursor = store.get(table_id)
            if cursor is not None:
                print(
                    f"{table_id}\t{cursor.estimated_max_row_id}\t"
                    f"{cursor.confidence.value}\t{cursor.last_verified_at or '-'}"
                )
        return 0

    if args.cursor_command == 'resync':
        try:
            lease = store.acquire_lease(args.table_id, CLI_LEASE_OWNER, ttl_seconds=60)
        except TableLeaseError as e:
            logger.error(f"Cannot resync while an import is running: {e}")
            return 1
        try:
            cursor = store.manual_resync(args.table_id, args.row_id)
        except LocalPreconditionError as e:
            logger.error(f"Resync rejected: {e}")
            return 1
        finally:
            store.release_lease(lease)
        print(json.dumps(cursor.to_dict(), indent=2))
        return 0

    logger.error("Missing cursor command (show, list or resync)")
    return 1


def load_report_input(data: dict[str, Any]) -> dict[str, Any]:
    """
    Build a report from a saved session outcome or verification result

    Raises:
        ValueError: If the document holds no verification result
    """
    if "performed" in data:
        return generate_report(VerificationResult.from_dict(data))

    verification = data.get("verification")
    if not verification:
        raise ValueError("Input holds no verification result")
    rollback = RollbackResult.from_dict(data["rollback"]) if data.get("rollback") else None
    return generate_report(
        VerificationResult.from_dict(verification),
        rollback=rollback,
        table_id=data.get("table_id"),
    )


def cmd_report(args: argparse.Namespace) -> int:
    """
    Generate a report from a saved session outcome

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code
    """
    logger.info(f"Loading session outcome from {args.input}")

    if args.format in ("csv", "json") and not args.output:
        logger.error(f"Output file required for {args.format.upper()} format")
        return 1

    try:
        with open(args.input) as f:
            report = load_report_input(json.load(f))
    except (OSError, ValueError, KeyError) as e:
        logger.error(f"Failed to process report: {e}")
        return 1

    if args.format == "console":
        print(format_report_console(report))
    elif args.format == "csv":
        export_report_csv(report, args.output)
        logger.info(f"Report exported to {args.output}")
    else:
        export_report_json(report, args.output)
        logger.info(f"Report exported to {args.output}")
    return 0
