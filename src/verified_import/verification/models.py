"""
Data carried through a verification run.
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .anomalies import Anomaly, AnomalyLevel

ROW_ID_KEYS = ("RowID", "rowid", "ROWID", "rowId", "row_id")


@dataclass(frozen=True)
class SentRow:
    """A row as sent, with its 1-based position in the source file."""

    index: int
    data: Mapping[str, Any]

    def __post_init__(self):
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


def build_sent_rows(rows: Iterable[Mapping[str, Any]], offset: int = 0) -> list[SentRow]:
    """
    Number rows from ``offset + 1``

    Args:
        rows: Rows in file order
        offset: Rows of the file that precede ``rows``
    """
    return [SentRow(index=offset + i, data=row) for i, row in enumerate(rows, start=1)]


@dataclass
class ReceivedRow:
    """A row read back from the destination and its RowID, if reported."""

    data: dict[str, Any]
    row_id: int | None = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "ReceivedRow":
        data = dict(mapping)
        row_id = None
        for key in ROW_ID_KEYS:
            if key in data:
                raw = data.pop(key)
                try:
                    row_id = int(str(raw).strip())
                except ValueError:
                    row_id = None
                break
        return cls(data=data, row_id=row_id)


FetchReceived = Callable[[Sequence[str]], Awaitable[Sequence[ReceivedRow | Mapping[str, Any]]]]


@dataclass
class VerificationConfig:
    """
    Inputs of Reconciler.verify

    Attributes:
        sent_rows: Rows sent in the import being verified
        matching_column: Identity key, or None when none was found
        fetch_received: Coroutine returning the destination rows whose
            matching value is in the given keys
        table_id: Destination table, used for logs and metrics
    """

    sent_rows: Sequence[SentRow]
    matching_column: str | None
    fetch_received: FetchReceived
    table_id: str | None = None


@dataclass
class ComparedColumn:
    name: str
    sent_value: Any
    received_value: Any
    match: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "sent_value": self.sent_value,
            "received_value": self.received_value,
            "match": self.match,
        }


@dataclass
class ComparedRow:
    row_index: int
    found: bool
    matching_value: str | None = None
    received_row_id: int | None = None
    columns: list[ComparedColumn] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "found": self.found,
            "matching_value": self.matching_value,
            "received_row_id": self.received_row_id,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass
class VerificationResult:
    """
    Aggregate outcome of a verification run

    ``success`` is True iff no anomaly is critical. ``performed`` is False
    when verification could not run (no matching column).
    """

    performed: bool
    success: bool
    checked_rows: int = 0
    matched_rows: int = 0
    anomalies: list[Anomaly] = field(default_factory=list)
    compared_rows: list[ComparedRow] = field(default_factory=list)
    duration: float = 0.0
    matching_column: str | None = None
    unverified_rows: list[int] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        critical = sum(1 for a in self.anomalies if a.level is AnomalyLevel.CRITICAL)
        return {"critical": critical, "warning": len(self.anomalies) - critical}

    @property
    def critical_anomalies(self) -> list[Anomaly]:
        return [a for a in self.anomalies if a.is_critical]

    def to_dict(self) -> dict[str, Any]:
        return {
            "performed": self.performed,
            "success": self.success,
            "checked_rows": self.checked_rows,
            "matched_rows": self.matched_rows,
            "summary": self.summary,
            "duration": self.duration,
            "matching_column": self.matching_column,
            "unverified_rows": list(self.unverified_rows),
            "warnings": list(self.warnings),
            "anomalies": [a.to_dict() for a in self.anomalies],
            "compared_rows": [r.to_dict() for r in self.compared_rows],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VerificationResult":
        compared = [
            ComparedRow(
                row_index=r["row_index"],
                found=r["found"],
                matching_value=r.get("matching_value"),
                received_row_id=r.get("received_row_id"),
                columns=[ComparedColumn(**c) for c in r.get("columns", [])],
            )
            for r in data.get("compared_rows", [])
        ]
        return cls(
            performed=data["performed"],
            success=data["success"],
            checked_rows=data.get("checked_rows", 0),
            matched_rows=data.get("matched_rows", 0),
            anomalies=[Anomaly.from_dict(a) for a in data.get("anomalies", [])],
            compared_rows=compared,
            duration=data.get("duration", 0.0),
            matching_column=data.get("matching_column"),
            unverified_rows=list(data.get("unverified_rows", [])),
            warnings=list(data.get("warnings", [])),
        )
