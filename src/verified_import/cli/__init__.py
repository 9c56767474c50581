"""
Command-line interface for verified imports.

Available commands:
- cursor: show, list or resync RowID cursors
- report: generate reports from saved session outcomes
"""

import sys

from utils.logging import configure_from_env, setup_logging

from .commands import cmd_cursor, cmd_report
from .parser import create_parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the verified-import CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        setup_logging(level=args.log_level)
    else:
        configure_from_env()

    if args.command == 'cursor':
        sys.exit(cmd_cursor(args))
    elif args.command == 'report':
        sys.exit(cmd_report(args))
    else:
        parser.print_help()
        sys.exit(1)


__all__ = [
    'main',
    'cmd_cursor',
    'cmd_report',
    'create_parser',
]


if __name__ == '__main__':
    main()
