"""
Chunked import orchestration and the verified import session.
"""

from .orchestrator import ChunkedImportOrchestrator, ChunkFailure, ImportSessionResult, split_chunks
from .progress import TERMINAL_STATES, ChunkPosition, ChunkProgress, SessionState
from .session import ImportSession, SessionOutcome, SessionStatus

__all__ = [
    "ChunkFailure",
    "ChunkPosition",
    "ChunkProgress",
    "ChunkedImportOrchestrator",
    "ImportSession",
    "ImportSessionResult",
    "SessionOutcome",
    "SessionState",
    "SessionStatus",
    "TERMINAL_STATES",
    "split_chunks",
]
