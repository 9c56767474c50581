"""
Persistent RowID cursor per destination table.

The cursor records the last known RowID high-water mark of a destination
table so a later session can locate the rows it adds without scanning the
whole table. One JSON file per table, written atomically.
"""

import json
import logging
import os
import secrets
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import quote

from opentelemetry import trace

from utils.metrics import ImportMetrics
from utils.tracing import trace_operation

from ..errors import LocalPreconditionError, TableLeaseError

logger = logging.getLogger(__name__)

_CURSOR_SUFFIX = "_cursor.json"
_LEASE_SUFFIX = "_lease.json"


class CursorConfidence(str, Enum):
    """How much the stored RowID can be trusted, weakest first."""

    ESTIMATED = "estimated"
    PROBED = "probed"
    EXACT = "exact"


@dataclass
class TableRowCursor:
    table_id: str
    estimated_max_row_id: int
    last_verified_at: datetime | None
    confidence: CursorConfidence
    source: str = "import"
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_id": self.table_id,
            "estimated_max_row_id": self.estimated_max_row_id,
            "last_verified_at": self.last_verified_at.isoformat() if self.last_verified_at else None,
            "confidence": self.confidence.value,
            "source": self.source,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TableRowCursor":
        last_verified = data.get("last_verified_at")
        updated = data.get("updated_at")
        return cls(
            table_id=data["table_id"],
            estimated_max_row_id=int(data["estimated_max_row_id"]),
            last_verified_at=datetime.fromisoformat(last_verified) if last_verified else None,
            confidence=CursorConfidence(data["confidence"]),
            source=data.get("source", "import"),
            updated_at=datetime.fromisoformat(updated) if updated else None,
        )


@dataclass(frozen=True)
class TableLease:
    """Token proving a session owns a destination table."""

    table_id: str
    owner: str
    token: str
    expires_at: datetime


class RowCursorStore:
    """
    File-backed store of TableRowCursor records.

    Writes are last-write-wins per table. Cursors are never removed
    automatically; ``clear`` exists for explicit operator use.
    """

    def __init__(
        self,
        state_dir: str | Path = "./import_state",
        clock: Callable[[], datetime] | None = None,
        metrics: ImportMetrics | None = None,
    ):
        """
        Initialize the cursor store.

        Args:
            state_dir: Directory holding cursor and lease files
            clock: Returns the current UTC time (injectable for tests)
            metrics: Metrics sink (default: global registry)
        """
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.metrics = metrics or ImportMetrics()
        logger.info(f"Initialized RowID cursor store in {self.state_dir}")

    def get(self, table_id: str) -> TableRowCursor | None:
        """
        Load the cursor of a table.

        Returns:
            The cursor, or None if the table was never imported to (or the
            state file is unreadable)
        """
        state_file = self._state_file(table_id, _CURSOR_SUFFIX)
        if not state_file.exists():
            logger.debug(f"No RowID cursor for table {table_id}")
            return None

        try:
            with open(state_file, encoding="utf-8") as f:
                cursor = TableRowCursor.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Failed to load RowID cursor for {table_id}: {e}")
            return None

        if cursor.table_id != table_id:
            logger.warning(f"Cursor file {state_file} belongs to {cursor.table_id}, not {table_id}")
            return None
        return cursor

    def estimate_start(self, table_id: str) -> int | None:
        """
        First RowID the next import is expected to receive.

        Returns:
            ``estimated_max_row_id + 1``, or None when the cursor is unknown
            and the boundary must be probed or resynced manually
        """
        cursor = self.get(table_id)
        if cursor is None:
            return None
        return cursor.estimated_max_row_id + 1

    def record_after_import(
        self,
        table_id: str,
        new_max_row_id: int,
        confidence: CursorConfidence = CursorConfidence.ESTIMATED,
        source: str = "import",
    ) -> TableRowCursor:
        """
        Upsert the cursor after an import or a probe.

        An estimated write always stores ``estimated``, whatever the previous
        confidence, and keeps the previous ``last_verified_at``. Probed and
        exact writes set the confidence and refresh ``last_verified_at``.

        Args:
            table_id: Destination table
            new_max_row_id: New RowID high-water mark
            confidence: Confidence of ``new_max_row_id``
            source: Who produced the value (import, probe, manual)

        Returns:
            The stored cursor
        """
        with trace_operation(
            "cursor.record",
            kind=trace.SpanKind.INTERNAL,
            table_id=table_id,
            row_id=new_max_row_id,
            confidence=confidence.value,
        ):
            if new_max_row_id < 0:
                raise LocalPreconditionError(f"RowID must be >= 0, got {new_max_row_id}")

            now = self._clock()
            previous = self.get(table_id)

            if confidence is CursorConfidence.ESTIMATED:
                stored_confidence = CursorConfidence.ESTIMATED
                last_verified_at = previous.last_verified_at if previous else None
            else:
                stored_confidence = confidence
                last_verified_at = now

            cursor = TableRowCursor(
                table_id=table_id,
                estimated_max_row_id=new_max_row_id,
                last_verified_at=last_verified_at,
                confidence=stored_confidence,
                source=source,
                updated_at=now,
            )
            self._write_json(self._state_file(table_id, _CURSOR_SUFFIX), cursor.to_dict())
            self.metrics.record_cursor(table_id, new_max_row_id)

            logger.info(
                f"RowID cursor for {table_id}: {new_max_row_id} "
                f"(confidence={stored_confidence.value}, source={source})"
            )
            return cursor

    def manual_resync(self, table_id: str, row_id: int) -> TableRowCursor:
        """
        Overwrite the cursor with an operator-supplied RowID.

        Used when probing fails or disagrees beyond tolerance.
        """
        return self.record_after_import(
            table_id, row_id, confidence=CursorConfidence.EXACT, source="manual"
        )

    def clear(self, table_id: str) -> None:
        state_file = self._state_file(table_id, _CURSOR_SUFFIX)
        if state_file.exists():
            state_file.unlink()
            logger.info(f"Cleared RowID cursor for table {table_id}")

    def list_tables(self) -> list[str]:
        """
        List tables with a stored cursor.

        Returns:
            Sorted table ids
        """
        tables = []
        for state_file in self.state_dir.glob(f"*{_CURSOR_SUFFIX}"):
            try:
                with open(state_file, encoding="utf-8") as f:
                    tables.append(json.load(f)["table_id"])
            except (json.JSONDecodeError, KeyError) as e:
                logger.warning(f"Skipping unreadable cursor file {state_file}: {e}")
        return sorted(tables)

    def acquire_lease(self, table_id: str, owner: str, ttl_seconds: int = 3600) -> TableLease:
        """
        Take ownership of a destination table for one session.

        A free table is claimed by creating the lease file exclusively, so two
        sessions can never both claim it. An expired lease is replaced and
        then read back; the session whose token is on disk owns the table.

        Args:
            table_id: Destination table
            owner: Human-readable owner (user, host, session id)
            ttl_seconds: Lease lifetime; an expired lease can be taken over

        Returns:
            TableLease to pass back to release_lease

        Raises:
            TableLeaseError: If another live lease exists
        """
        now = self._clock()
        lease_file = self._state_file(table_id, _LEASE_SUFFIX)
        lease = TableLease(
            table_id=table_id,
            owner=owner,
            token=secrets.token_hex(16),
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        payload = {
            "table_id": lease.table_id,
            "owner": lease.owner,
            "token": lease.token,
            "expires_at": lease.expires_at.isoformat(),
        }

        if self._create_json(lease_file, payload):
            logger.debug(f"Lease acquired on {table_id} by {owner}")
            return lease

        current = self._read_lease(lease_file)
        if current is not None and current.expires_at > now:
            raise TableLeaseError(table_id, current.owner, current.expires_at.isoformat())
        holder = current.owner if current is not None else "unknown"
        logger.warning(f"Taking over expired lease on {table_id} held by {holder}")

        self._write_json(lease_file, payload)
        confirmed = self._read_lease(lease_file)
        if confirmed is None or confirmed.token != lease.token:
            winner = confirmed.owner if confirmed is not None else "unknown"
            expires = confirmed.expires_at.isoformat() if confirmed is not None else "unknown"
            raise TableLeaseError(table_id, winner, expires)

        logger.debug(f"Lease acquired on {table_id} by {owner}")
        return lease

    def release_lease(self, lease: TableLease) -> bool:
        """
        Release a lease if it is still held by ``lease``.

        Returns:
            True if the lease file was removed
        """
        lease_file = self._state_file(lease.table_id, _LEASE_SUFFIX)
        current = self._read_lease(lease_file)
        if current is None or current.token != lease.token:
            logger.warning(f"Lease on {lease.table_id} no longer held by {lease.owner}")
            return False
        lease_file.unlink(missing_ok=True)
        logger.debug(f"Lease released on {lease.table_id}")
        return True

    @staticmethod
    def _read_lease(lease_file: Path) -> TableLease | None:
        try:
            with open(lease_file, encoding="utf-8") as f:
                data = json.load(f)
            return TableLease(
                table_id=data["table_id"],
                owner=data["owner"],
                token=data["token"],
                expires_at=datetime.fromisoformat(data["expires_at"]),
            )
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable lease file {lease_file}: {e}")
            return None

    def _write_json(self, path: Path, payload: dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.state_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, path)
        except Exception:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _create_json(self, path: Path, payload: dict[str, Any]) -> bool:
        """Write ``path`` only if it does not exist yet; False if it does."""
        fd, tmp_path = tempfile.mkstemp(dir=self.state_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.link(tmp_path, path)
            return True
        except FileExistsError:
            return False
        finally:
            Path(tmp_path).unlink(missing_ok=True)

    def _state_file(self, table_id: str, suffix: str) -> Path:
        return self.state_dir / f"{quote(table_id, safe='-_.')}{suffix}"
