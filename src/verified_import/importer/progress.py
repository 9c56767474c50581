"""
Progress and state of a chunked import.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SessionState(str, Enum):
    IDLE = "idle"
    CHUNK_SENDING = "chunk-sending"
    CHUNK_SUCCESS = "chunk-success"
    CHUNK_FAILED = "chunk-failed"
    RETRYING = "retrying"
    DONE = "done"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({SessionState.DONE, SessionState.ABORTED, SessionState.CANCELLED})


@dataclass(frozen=True)
class ChunkPosition:
    current: int
    total: int


@dataclass(frozen=True)
class ChunkProgress:
    """
    Snapshot pushed to progress listeners

    ``current`` counts rows confirmed committed; it never decreases.
    """

    phase: str
    current: int
    total: int
    chunk: ChunkPosition | None = None
    percentage: float = 0.0

    @classmethod
    def snapshot(cls, phase: str, current: int, total: int, chunk: ChunkPosition | None = None) -> "ChunkProgress":
        percentage = 100.0 if total == 0 else round(current / total * 100, 2)
        return cls(phase=phase, current=current, total=total, chunk=chunk, percentage=percentage)

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase,
            "current": self.current,
            "total": self.total,
            "chunk": {"current": self.chunk.current, "total": self.chunk.total} if self.chunk else None,
            "percentage": self.percentage,
        }
