"""
Sent-versus-received reconciliation.

Aligns the rows sent in an import with the rows the destination reports
back and classifies every cell-level discrepancy. Classification order
matters: formatting artifacts (truncation, date-shift) are recognized
before the generic mismatch fallback so they are not over-reported as
critical.
"""

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from opentelemetry import trace

from utils.metrics import ImportMetrics
from utils.tracing import add_span_attributes, trace_operation

from ..errors import LocalPreconditionError
from .anomalies import Anomaly, AnomalyThresholds, AnomalyType
from .models import (
    ComparedColumn,
    ComparedRow,
    ReceivedRow,
    SentRow,
    VerificationConfig,
    VerificationResult,
)
from .values import CellValue, ValueKind

logger = logging.getLogger(__name__)

# Widest clock difference still read as a timezone shift
TIMEZONE_WINDOW_DAYS = 1.0


def match_key(value: Any) -> str:
    """Matching-column value as compared: string form, trimmed."""
    return "" if value is None else str(value).strip()


def classify_cell(sent_raw: Any, received_raw: Any) -> tuple[AnomalyType, float, str] | None:
    """
    Classify one cell

    Severity is applied by the caller from the returned delta.

    Args:
        sent_raw: Value as sent
        received_raw: Value as read back

    Returns:
        None when the cells match, else (type, delta, message) where delta
        is characters lost for truncation and days shifted for date-shift
    """
    sent = CellValue.parse(sent_raw)
    received = CellValue.parse(received_raw)

    if sent.equivalent(received):
        return None

    if received.is_empty or sent.is_empty:
        side = "received" if received.is_empty else "sent"
        return AnomalyType.VALUE_MISMATCH, 0.0, f"Value empty on {side} side"

    if (
        sent.kind is ValueKind.TEXT
        and len(received.text) < len(sent.text)
        and sent.text.casefold().startswith(received.text.casefold())
    ):
        lost = len(sent.text) - len(received.text)
        return AnomalyType.TRUNCATION, float(lost), f"{lost} character(s) truncated"

    if sent.kind is ValueKind.DATE and received.kind is ValueKind.DATE:
        shift = _date_shift(sent, received)
        if shift is not None:
            return AnomalyType.DATE_SHIFT, shift[0], shift[1]

    if sent.kind is not received.kind:
        return (
            AnomalyType.TYPE_COERCION,
            0.0,
            f"Sent {sent.kind.value}, received {received.kind.value}",
        )

    return AnomalyType.VALUE_MISMATCH, 0.0, "Values differ"


def _date_shift(sent: CellValue, received: CellValue) -> tuple[float, str] | None:
    delta_days = (received.moment - sent.moment).total_seconds() / 86400

    if sent.moment.date() == received.moment.date():
        if sent.has_time and not received.has_time:
            return delta_days, "Time of day lost"
        if delta_days == 0:
            return 0.0, "Same date in a different format"
        return delta_days, "Time of day shifted"

    if sent.moment.day == received.moment.month and sent.moment.month == received.moment.day:
        return delta_days, "Day and month swapped"

    if abs(delta_days) <= TIMEZONE_WINDOW_DAYS:
        return delta_days, f"Shifted by {delta_days * 24:+.1f}h (timezone)"

    return None


class Reconciler:
    """
    Compares sent rows with the rows read back from the destination.

    Stateless between calls: identical inputs with the same clock readings
    produce identical results.
    """

    def __init__(
        self,
        thresholds: AnomalyThresholds | None = None,
        clock: Callable[[], float] = time.monotonic,
        metrics: ImportMetrics | None = None,
    ):
        """
        Initialize reconciler.

        Args:
            thresholds: Severity thresholds (default: AnomalyThresholds())
            clock: Monotonic clock used to measure duration
            metrics: Metrics sink (default: global registry)
        """
        self.thresholds = thresholds or AnomalyThresholds()
        self._clock = clock
        self.metrics = metrics or ImportMetrics()

    async def verify(self, config: VerificationConfig) -> VerificationResult:
        """
        Verify an import by matching-column lookup.

        Returns:
            VerificationResult; ``performed`` is False without a matching column

        Raises:
            LocalPreconditionError: If ``sent_rows`` is empty
        """
        if not config.matching_column:
            logger.warning("No matching column: verification skipped")
            return VerificationResult(
                performed=False,
                success=False,
                warnings=["No matching column: rows cannot be re-identified in the destination"],
            )

        if not config.sent_rows:
            raise LocalPreconditionError("Nothing to verify: no rows were sent")

        column = config.matching_column
        table_label = config.table_id or "unknown"

        with trace_operation(
            "verification.verify",
            kind=trace.SpanKind.INTERNAL,
            table_id=config.table_id,
            matching_column=column,
            sent_rows=len(config.sent_rows),
        ):
            started = self._clock()

            keyed: list[tuple[SentRow, str]] = []
            unverified: list[int] = []
            for row in config.sent_rows:
                key = match_key(row.data.get(column))
                keyed.append((row, key))
                if not key:
                    unverified.append(row.index)

            if unverified:
                logger.warning(
                    f"{len(unverified)} sent row(s) have an empty {column!r} and cannot be verified"
                )

            keys = list(dict.fromkeys(key for _, key in keyed if key))
            received = [_as_received(r) for r in await config.fetch_received(keys)] if keys else []

            pool: dict[str, deque[ReceivedRow]] = defaultdict(deque)
            for row in received:
                pool[match_key(row.data.get(column))].append(row)

            pairs = [
                (sent, pool[key].popleft() if key and pool[key] else None) for sent, key in keyed
            ]
            leftovers = [row for key in pool for row in pool[key]]

            result = self._build_result(
                pairs,
                leftovers,
                column=column,
                started=started,
                unverified=unverified,
            )

            self._record(table_label, result)
            return result

    async def verify_by_row_id(
        self,
        sent_rows: Sequence[SentRow],
        start_row_id: int,
        fetch_by_row_ids: Callable[[Sequence[int]], Any],
        table_id: str | None = None,
    ) -> VerificationResult:
        """
        Verify an append import positionally, by RowID.

        The i-th sent row is expected at RowID ``start_row_id + i``; used
        when no matching column exists but the cursor is trusted.

        Args:
            sent_rows: Rows sent, in order
            start_row_id: RowID the first sent row was expected to receive
            fetch_by_row_ids: Coroutine returning the rows with those RowIDs
            table_id: Destination table, for logs and metrics

        Raises:
            LocalPreconditionError: If ``sent_rows`` is empty or start_row_id < 1
        """
        if not sent_rows:
            raise LocalPreconditionError("Nothing to verify: no rows were sent")
        if start_row_id < 1:
            raise LocalPreconditionError(f"start_row_id must be >= 1, got {start_row_id}")

        with trace_operation(
            "verification.verify_by_row_id",
            kind=trace.SpanKind.INTERNAL,
            table_id=table_id,
            start_row_id=start_row_id,
            sent_rows=len(sent_rows),
        ):
            started = self._clock()
            expected = [start_row_id + i for i in range(len(sent_rows))]
            received = [_as_received(r) for r in await fetch_by_row_ids(expected)]

            by_row_id: dict[int, ReceivedRow] = {}
            leftovers: list[ReceivedRow] = []
            for row in sorted(received, key=lambda r: (r.row_id is None, r.row_id or 0)):
                if row.row_id in expected and row.row_id not in by_row_id:
                    by_row_id[row.row_id] = row
                else:
                    leftovers.append(row)

            pairs = [(sent, by_row_id.get(row_id)) for sent, row_id in zip(sent_rows, expected)]
            result = self._build_result(pairs, leftovers, column=None, started=started, unverified=[])

            self._record(table_id or "unknown", result)
            return result

    def _build_result(
        self,
        pairs: list[tuple[SentRow, ReceivedRow | None]],
        leftovers: list[ReceivedRow],
        column: str | None,
        started: float,
        unverified: list[int],
    ) -> VerificationResult:
        anomalies: list[Anomaly] = []
        compared_rows: list[ComparedRow] = []
        warnings: list[str] = []

        received_columns = set()
        for _, received in pairs:
            if received is not None:
                received_columns.update(received.data)

        unidentifiable = set(unverified)
        skipped_columns = set()
        for sent, received in pairs:
            matching_value = match_key(sent.data.get(column)) if column else None

            if received is None:
                anomalies.append(
                    Anomaly(
                        row_index=sent.index,
                        column=column,
                        sent_value=matching_value,
                        received_value=None,
                        type=AnomalyType.MISSING_ROW,
                        level=self.thresholds.level_for(AnomalyType.MISSING_ROW),
                        message=(
                            "Empty matching value: row cannot be identified in destination"
                            if sent.index in unidentifiable
                            else "Row not found in destination"
                        ),
                    )
                )
                compared_rows.append(
                    ComparedRow(row_index=sent.index, found=False, matching_value=matching_value)
                )
                continue

            compared_columns = []
            for name, sent_value in sent.data.items():
                if name not in received_columns:
                    skipped_columns.add(name)
                    continue
                received_value = received.data.get(name)
                if name == column:
                    outcome = None if match_key(sent_value) == match_key(received_value) else (
                        AnomalyType.VALUE_MISMATCH, 0.0, "Matching value differs"
                    )
                else:
                    outcome = classify_cell(sent_value, received_value)

                compared_columns.append(
                    ComparedColumn(
                        name=name,
                        sent_value=sent_value,
                        received_value=received_value,
                        match=outcome is None,
                    )
                )
                if outcome is not None:
                    anomaly_type, delta, message = outcome
                    anomalies.append(
                        Anomaly(
                            row_index=sent.index,
                            column=name,
                            sent_value=sent_value,
                            received_value=received_value,
                            type=anomaly_type,
                            level=self.thresholds.level_for(anomaly_type, delta),
                            message=message,
                        )
                    )

            compared_rows.append(
                ComparedRow(
                    row_index=sent.index,
                    found=True,
                    matching_value=matching_value,
                    received_row_id=received.row_id,
                    columns=compared_columns,
                )
            )

        for extra in leftovers:
            key = match_key(extra.data.get(column)) if column else extra.row_id
            anomalies.append(
                Anomaly(
                    row_index=None,
                    column=column,
                    sent_value=None,
                    received_value=key,
                    type=AnomalyType.EXTRA_ROW,
                    level=self.thresholds.level_for(AnomalyType.EXTRA_ROW),
                    message="Row in destination not accounted for by any sent row",
                )
            )

        if skipped_columns:
            warnings.append(
                "Columns not returned by the destination were not compared: "
                + ", ".join(sorted(skipped_columns))
            )
        if unverified:
            warnings.append(
                f"{len(unverified)} row(s) with an empty matching value could not be verified"
            )

        critical = sum(1 for a in anomalies if a.is_critical)
        result = VerificationResult(
            performed=True,
            success=critical == 0,
            checked_rows=len(pairs),
            matched_rows=sum(1 for r in compared_rows if r.found),
            anomalies=anomalies,
            compared_rows=compared_rows,
            duration=self._clock() - started,
            matching_column=column,
            unverified_rows=unverified,
            warnings=warnings,
        )

        add_span_attributes(
            checked_rows=result.checked_rows,
            matched_rows=result.matched_rows,
            critical=critical,
            success=result.success,
        )
        logger.info(
            f"Verification: {result.matched_rows}/{result.checked_rows} rows found, "
            f"{critical} critical, {len(anomalies) - critical} warning anomaly(ies)"
        )
        return result

    def _record(self, table_id: str, result: VerificationResult) -> None:
        self.metrics.record_verification(table_id, result.duration)
        for anomaly in result.anomalies:
            self.metrics.record_anomaly(table_id, anomaly.type.value, anomaly.level.value)


def _as_received(row: ReceivedRow | Mapping[str, Any]) -> ReceivedRow:
    return row if isinstance(row, ReceivedRow) else ReceivedRow.from_mapping(row)
