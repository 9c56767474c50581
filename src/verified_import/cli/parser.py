"""
Command-line argument parser configuration.

Defines the ``verified-import`` commands and their options.
"""

import argparse


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="verified-import",
        description="RowID cursor maintenance and verification reports for verified imports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the RowID cursor of a table
  verified-import cursor show sales_2024

  # List tables with a stored cursor
  verified-import cursor list --state-dir /var/lib/verified-import

  # Resync a cursor after the probe gave up (last RowID read in the destination)
  verified-import cursor resync sales_2024 18250

  # Print the verification report of a saved session outcome
  verified-import report --input session.json --format console

  # Export the anomalies as CSV
  verified-import report --input session.json --format csv --output anomalies.csv
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: LOG_LEVEL or INFO)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Cursor command ==========
    cursor_parser = subparsers.add_parser('cursor', help='Inspect or resync RowID cursors')
    cursor_parser.add_argument(
        '--state-dir',
        help='Cursor state directory (default: VERIFIED_IMPORT_STATE_DIR or ./import_state)'
    )
    cursor_sub = cursor_parser.add_subparsers(dest='cursor_command', help='Cursor commands')

    show_parser = cursor_sub.add_parser('show', help='Show the cursor of a table')
    show_parser.add_argument('table_id', help='Destination table')

    cursor_sub.add_parser('list', help='List tables with a stored cursor')

    resync_parser = cursor_sub.add_parser('resync', help='Set the last RowID of a table by hand')
    resync_parser.add_argument('table_id', help='Destination table')
    resync_parser.add_argument('row_id', type=int, help='Last existing RowID in the destination')

    # ========== Report command ==========
    report_parser = subparsers.add_parser('report', help='Generate report from a saved session')
    report_parser.add_argument(
        '--input',
        required=True,
        help='Session outcome or verification result JSON file'
    )
    report_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )
    report_parser.add_argument(
        '--output',
        help='Output file path (required for json and csv formats)'
    )

    return parser
