"""
Matching-column selection for verification and rollback.
"""

from .selector import (
    ColumnCandidate,
    ColumnMeta,
    MatchingColumnResult,
    MatchingColumnSelector,
    identifier_weight,
)

__all__ = [
    "ColumnCandidate",
    "ColumnMeta",
    "MatchingColumnResult",
    "MatchingColumnSelector",
    "identifier_weight",
]
