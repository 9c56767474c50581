"""
Post-import verification: cell values, anomaly classification and the
sent-versus-received reconciler.
"""

from .anomalies import Anomaly, AnomalyLevel, AnomalyThresholds, AnomalyType
from .models import (
    ComparedColumn,
    ComparedRow,
    ReceivedRow,
    SentRow,
    VerificationConfig,
    VerificationResult,
    build_sent_rows,
)
from .reconciler import Reconciler, classify_cell, match_key
from .values import CellValue, ValueKind, parse_date

__all__ = [
    "Anomaly",
    "AnomalyLevel",
    "AnomalyThresholds",
    "AnomalyType",
    "CellValue",
    "ComparedColumn",
    "ComparedRow",
    "ReceivedRow",
    "Reconciler",
    "SentRow",
    "ValueKind",
    "VerificationConfig",
    "VerificationResult",
    "build_sent_rows",
    "classify_cell",
    "match_key",
    "parse_date",
]
