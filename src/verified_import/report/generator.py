"""
Report generation for import verification results.

Turns a VerificationResult (and the rollback that may have followed it)
into a flat dictionary with an anomaly breakdown and recommended actions.
"""

from collections import Counter
from datetime import UTC, datetime
from typing import Any

from ..rollback.executor import RollbackResult
from ..verification.anomalies import AnomalyLevel, AnomalyType
from ..verification.models import VerificationResult

STATUS_PASS = "PASS"
STATUS_FAIL = "FAIL"
STATUS_NOT_VERIFIED = "NOT_VERIFIED"

_ANOMALY_ADVICE = {
    AnomalyType.MISSING_ROW: (
        "{count} sent row(s) not found in the destination. "
        "Check the import job errors and the matching column values."
    ),
    AnomalyType.EXTRA_ROW: (
        "{count} unexpected row(s) share a matching value with the sent rows. "
        "Look for duplicate keys or a previous import of the same file."
    ),
    AnomalyType.TRUNCATION: (
        "{count} value(s) were truncated. Widen the destination column or shorten the values."
    ),
    AnomalyType.TYPE_COERCION: (
        "{count} value(s) changed type. Check the destination column types against the file."
    ),
    AnomalyType.DATE_SHIFT: (
        "{count} date(s) shifted. Check the file date format and the destination timezone."
    ),
    AnomalyType.VALUE_MISMATCH: (
        "{count} value(s) differ. Compare the file encoding and the column mapping."
    ),
}


def format_timestamp(timestamp: datetime) -> str:
    """ISO 8601 timestamp for reports."""
    return timestamp.isoformat()


def generate_report(
    verification: VerificationResult,
    rollback: RollbackResult | None = None,
    table_id: str | None = None,
) -> dict[str, Any]:
    """
    Generate a verification report

    Args:
        verification: Result of the trial verification
        rollback: Result of the rollback that followed, if any
        table_id: Destination table

    Returns:
        Dictionary containing:
        - status: PASS, FAIL, or NOT_VERIFIED
        - severity: CRITICAL, WARNING, or NONE
        - checked_rows / matched_rows / unverified_rows
        - anomalies_by_type / anomalies_by_level: counts
        - anomalies: anomaly details
        - rollback: rollback details or None
        - summary: human-readable summary
        - recommendations: list of recommended actions
        - timestamp: report generation timestamp
    """
    by_type = Counter(a.type.value for a in verification.anomalies)
    by_level = Counter(a.level.value for a in verification.anomalies)

    if not verification.performed:
        status = STATUS_NOT_VERIFIED
    elif verification.success:
        status = STATUS_PASS
    else:
        status = STATUS_FAIL

    return {
        "status": status,
        "table_id": table_id,
        "severity": _calculate_severity(verification),
        "matching_column": verification.matching_column,
        "checked_rows": verification.checked_rows,
        "matched_rows": verification.matched_rows,
        "unverified_rows": list(verification.unverified_rows),
        "anomalies_by_type": dict(sorted(by_type.items())),
        "anomalies_by_level": {
            AnomalyLevel.CRITICAL.value: by_level.get(AnomalyLevel.CRITICAL.value, 0),
            AnomalyLevel.WARNING.value: by_level.get(AnomalyLevel.WARNING.value, 0),
        },
        "anomalies": [a.to_dict() for a in verification.anomalies],
        "rollback": rollback.to_dict() if rollback else None,
        "warnings": list(verification.warnings),
        "duration": verification.duration,
        "summary": _generate_summary(verification, rollback),
        "recommendations": _generate_recommendations(verification, rollback),
        "timestamp": format_timestamp(datetime.now(UTC)),
    }


def _calculate_severity(verification: VerificationResult) -> str:
    if verification.critical_anomalies:
        return "CRITICAL"
    if verification.anomalies or not verification.performed:
        return "WARNING"
    return "NONE"


def _generate_summary(verification: VerificationResult, rollback: RollbackResult | None) -> str:
    if not verification.performed:
        return "Verification could not run: no matching column identifies the imported rows."

    critical = verification.summary["critical"]
    warnings = verification.summary["warning"]
    summary = (
        f"{verification.matched_rows} of {verification.checked_rows} row(s) verified, "
        f"{critical} critical and {warnings} warning anomaly(ies)."
    )
    if rollback is not None:
        if rollback.success:
            summary += f" Trial rolled back ({rollback.deleted_rows} row(s) deleted)."
        else:
            summary += " Trial rollback FAILED: manual cleanup required."
    return summary


def _generate_recommendations(
    verification: VerificationResult,
    rollback: RollbackResult | None,
) -> list[str]:
    recommendations = []

    if not verification.performed:
        recommendations.append(
            "Add a column with unique values (an identifier or reference) to the file "
            "so that imports can be verified and rolled back."
        )
        return recommendations

    if not verification.anomalies:
        recommendations.append("Import verified. No action required.")
        return recommendations

    counts = Counter(a.type for a in verification.anomalies)
    for anomaly_type, template in _ANOMALY_ADVICE.items():
        if counts.get(anomaly_type):
            recommendations.append(template.format(count=counts[anomaly_type]))

    if verification.unverified_rows:
        recommendations.append(
            f"{len(verification.unverified_rows)} row(s) have an empty matching value "
            "and were not verified."
        )

    if rollback is not None and not rollback.success:
        recommendations.append(
            f"Delete the {len(rollback.remaining_values)} remaining trial row(s) by hand"
            + (f" with filter {rollback.filter_expression}" if rollback.filter_expression else "")
            + "."
        )

    return recommendations
