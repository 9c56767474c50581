"""
Report formatting and export utilities.

Exports verification reports as JSON, as CSV (one line per anomaly) and
as console text.
"""

import csv
import json
from typing import Any


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export report to JSON file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """
    Export the anomalies of a report to a CSV file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["Table", "Row", "Column", "Type", "Level", "Sent", "Received", "Message"])

        for anomaly in report.get("anomalies", []):
            writer.writerow([
                report.get("table_id") or "",
                anomaly.get("row_index") if anomaly.get("row_index") is not None else "",
                anomaly.get("column") or "",
                anomaly.get("type", ""),
                anomaly.get("level", ""),
                _cell(anomaly.get("sent_value")),
                _cell(anomaly.get("received_value")),
                anomaly.get("message", ""),
            ])


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format report for console output

    Args:
        report: Report dictionary

    Returns:
        Formatted string for console display
    """
    lines = []

    lines.append("=" * 80)
    lines.append("IMPORT VERIFICATION REPORT")
    lines.append("=" * 80)
    if report.get("table_id"):
        lines.append(f"Table: {report['table_id']}")
    lines.append(f"Status: {report['status']}")
    lines.append(f"Severity: {report['severity']}")
    lines.append(f"Timestamp: {report['timestamp']}")
    lines.append(f"Matching Column: {report.get('matching_column') or '-'}")
    lines.append(f"Rows Checked: {report['checked_rows']:,}")
    lines.append(f"Rows Matched: {report['matched_rows']:,}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    lines.append(report["summary"])
    lines.append("")

    if report["anomalies"]:
        lines.append("ANOMALIES")
        lines.append("-" * 80)
        for anomaly_type, count in report["anomalies_by_type"].items():
            lines.append(f"  {anomaly_type}: {count}")
        lines.append("")
        for anomaly in report["anomalies"]:
            row = anomaly.get("row_index")
            where = f"row {row}" if row is not None else "unexpected row"
            if anomaly.get("column"):
                where += f", column {anomaly['column']}"
            lines.append(f"[{anomaly['level'].upper()}] {anomaly['type']} ({where})")
            lines.append(f"  Sent: {_cell(anomaly.get('sent_value'))!r}")
            lines.append(f"  Received: {_cell(anomaly.get('received_value'))!r}")
        lines.append("")

    rollback = report.get("rollback")
    if rollback:
        lines.append("ROLLBACK")
        lines.append("-" * 80)
        lines.append(f"Success: {rollback['success']}")
        lines.append(f"Deleted Rows: {rollback['deleted_rows']}")
        if rollback.get("error_message"):
            lines.append(f"Error: {rollback['error_message']}")
        if rollback.get("remaining_values"):
            lines.append(f"Remaining Values: {len(rollback['remaining_values'])}")
        lines.append("")

    if report["recommendations"]:
        lines.append("RECOMMENDATIONS")
        lines.append("-" * 80)
        for i, rec in enumerate(report["recommendations"], 1):
            lines.append(f"{i}. {rec}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


def _cell(value: Any) -> str:
    return "" if value is None else str(value)
