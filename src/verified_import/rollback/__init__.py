"""
Rollback of trial imports and per-mode rollback rules.
"""

from .executor import RollbackExecutor, RollbackResult
from .rules import CorrectionMethod, RollbackInfo, can_rollback, get_rollback_info

__all__ = [
    "CorrectionMethod",
    "RollbackExecutor",
    "RollbackInfo",
    "RollbackResult",
    "can_rollback",
    "get_rollback_info",
]
