"""
Anomaly types, severity levels and thresholds.

The level of an anomaly follows from its type alone, except for truncation
and date-shift whose level depends on the size of the discrepancy.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class AnomalyType(str, Enum):
    MISSING_ROW = "missing-row"
    VALUE_MISMATCH = "value-mismatch"
    TYPE_COERCION = "type-coercion"
    TRUNCATION = "truncation"
    DATE_SHIFT = "date-shift"
    EXTRA_ROW = "extra-row"


class AnomalyLevel(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"


@dataclass(frozen=True)
class AnomalyThresholds:
    """
    Size above which a discrepancy becomes critical

    Attributes:
        truncation_chars: Characters lost to truncation
        date_shift_days: Absolute shift in days between sent and received dates
    """

    truncation_chars: int = 10
    date_shift_days: float = 1.0

    def level_for(self, anomaly_type: AnomalyType, delta: float = 0.0) -> AnomalyLevel:
        """
        Severity of an anomaly

        Args:
            anomaly_type: Classified type
            delta: Characters lost (truncation) or days shifted (date-shift)
        """
        if anomaly_type is AnomalyType.TRUNCATION:
            return AnomalyLevel.CRITICAL if delta > self.truncation_chars else AnomalyLevel.WARNING
        if anomaly_type is AnomalyType.DATE_SHIFT:
            return AnomalyLevel.CRITICAL if abs(delta) > self.date_shift_days else AnomalyLevel.WARNING
        return AnomalyLevel.CRITICAL


@dataclass(frozen=True)
class Anomaly:
    """
    One discrepancy between a sent and a received row

    ``row_index`` is the 1-based position in the source file; it is None
    for received rows no sent row accounts for (extra-row).
    """

    row_index: int | None
    column: str | None
    sent_value: Any
    received_value: Any
    type: AnomalyType
    level: AnomalyLevel
    message: str = ""

    @property
    def is_critical(self) -> bool:
        return self.level is AnomalyLevel.CRITICAL

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["level"] = self.level.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Anomaly":
        return cls(
            row_index=data.get("row_index"),
            column=data.get("column"),
            sent_value=data.get("sent_value"),
            received_value=data.get("received_value"),
            type=AnomalyType(data["type"]),
            level=AnomalyLevel(data["level"]),
            message=data.get("message", ""),
        )
