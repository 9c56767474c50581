"""
Verification report generation and formatting.
"""

from .formatters import export_report_csv, export_report_json, format_report_console
from .generator import STATUS_FAIL, STATUS_NOT_VERIFIED, STATUS_PASS, format_timestamp, generate_report

__all__ = [
    "STATUS_FAIL",
    "STATUS_NOT_VERIFIED",
    "STATUS_PASS",
    "export_report_csv",
    "export_report_json",
    "format_report_console",
    "format_timestamp",
    "generate_report",
]
