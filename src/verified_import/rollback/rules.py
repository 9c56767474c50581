"""
Which imports can be undone automatically.

Only insert-only modes can be rolled back by deleting the inserted rows;
every other mode overwrites or removes existing data and needs a re-import.
"""

from dataclasses import dataclass
from enum import Enum

from ..remote.client import ImportMode


class CorrectionMethod(str, Enum):
    ROLLBACK = "rollback"
    REIMPORT_PERIOD = "reimport_period"
    REIMPORT_FULL = "reimport_full"


@dataclass(frozen=True)
class RollbackInfo:
    can_rollback: bool
    correction_method: CorrectionMethod
    severity: str | None = None
    message: str | None = None


ROLLBACKABLE_MODES = frozenset({ImportMode.APPEND, ImportMode.ONLY_ADD})

_RULES = {
    ImportMode.APPEND: RollbackInfo(True, CorrectionMethod.ROLLBACK),
    ImportMode.ONLY_ADD: RollbackInfo(True, CorrectionMethod.ROLLBACK),
    ImportMode.UPDATE_ADD: RollbackInfo(
        False,
        CorrectionMethod.REIMPORT_PERIOD,
        severity="info",
        message="Re-import the affected period with corrected values",
    ),
    ImportMode.TRUNCATE_ADD: RollbackInfo(
        False,
        CorrectionMethod.REIMPORT_FULL,
        severity="warning",
        message="Re-import the complete table, including its full history",
    ),
    ImportMode.DELETE_UPSERT: RollbackInfo(
        False,
        CorrectionMethod.REIMPORT_FULL,
        severity="error",
        message="Re-import the complete table; deleted rows cannot be recovered",
    ),
}


def get_rollback_info(mode: ImportMode | str) -> RollbackInfo:
    """
    Rollback capability and recommended correction for an import mode

    Unknown modes are treated as not rollbackable.
    """
    try:
        return _RULES[ImportMode(mode)]
    except ValueError:
        return RollbackInfo(
            False,
            CorrectionMethod.REIMPORT_FULL,
            severity="error",
            message=f"Unknown import mode {mode!r}",
        )


def can_rollback(mode: ImportMode | str, row_id_before: int | None = None, row_id_after: int | None = None) -> tuple[bool, str | None]:
    """
    Whether a recorded import can be undone

    When RowIDs are given, an import that added no rows has nothing to undo.

    Returns:
        (allowed, reason when not allowed)
    """
    info = get_rollback_info(mode)
    if not info.can_rollback:
        return False, info.message
    if row_id_before is not None and row_id_after is not None and row_id_after <= row_id_before:
        return False, "No rows to delete: RowID unchanged by the import"
    return True, None
