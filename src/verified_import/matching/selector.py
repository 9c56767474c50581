"""
Matching-column selection.

Picks the column used to re-identify sent rows in the destination for
verification and rollback, and scores every other column as an
alternative for manual selection.
"""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

RECOMMENDED_UNIQUE_PERCENTAGE = 95.0
MINIMUM_UNIQUE_PERCENTAGE = 50.0
ACCEPTABLE_UNIQUE_PERCENTAGE = 90.0
NON_EMPTY_RATIO = 0.9

SOURCE_PROFILE = "profile"
SOURCE_SCHEMA = "schema"
SOURCE_PATTERN = "pattern"
SOURCE_CONTENT = "content"
SOURCE_NONE = "none"

_SOURCE_RANK = {SOURCE_SCHEMA: 0, SOURCE_PATTERN: 1, SOURCE_CONTENT: 2}

# Identifier-like column names, with the confidence they lend a candidate
IDENTIFIER_PATTERNS: tuple[tuple[re.Pattern, int], ...] = (
    (re.compile(r"^id$", re.IGNORECASE), 100),
    (re.compile(r"^_id$", re.IGNORECASE), 100),
    (re.compile(r"^uuid$", re.IGNORECASE), 100),
    (re.compile(r"num[eé]ro.*quittance", re.IGNORECASE), 95),
    (re.compile(r"quittance", re.IGNORECASE), 90),
    (re.compile(r"^n°", re.IGNORECASE), 85),
    (re.compile(r"code.*unique", re.IGNORECASE), 85),
    (re.compile(r"num[eé]ro", re.IGNORECASE), 80),
    (re.compile(r"^code$", re.IGNORECASE), 75),
    (re.compile(r"r[eé]f[eé]rence", re.IGNORECASE), 70),
    (re.compile(r"^ref$", re.IGNORECASE), 70),
    (re.compile(r"matricule", re.IGNORECASE), 65),
    (re.compile(r"identifiant", re.IGNORECASE), 60),
    (re.compile(r"^sku$", re.IGNORECASE), 60),
)

AUTO_NUMBER_TYPES = frozenset({"AUTO_NUMBER", "AUTONUMBER"})


@dataclass(frozen=True)
class ColumnMeta:
    """Remote column metadata as reported by the destination."""

    name: str
    data_type: str | None = None
    is_unique: bool = False

    @property
    def is_identity(self) -> bool:
        return self.is_unique or (self.data_type or "").upper() in AUTO_NUMBER_TYPES


@dataclass
class ColumnCandidate:
    name: str
    total_count: int
    non_empty_count: int
    unique_percentage: float
    is_recommended: bool
    reason: str
    source: str = SOURCE_CONTENT
    pattern_weight: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MatchingColumnResult:
    """
    Outcome of matching-column selection

    ``column`` is None when no column qualifies; verification and rollback
    are then unavailable and ``warnings`` says so.
    """

    column: str | None
    source: str
    confidence: float
    candidates: list[ColumnCandidate] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_column(self) -> bool:
        return self.column is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "column": self.column,
            "source": self.source,
            "confidence": self.confidence,
            "candidates": [c.to_dict() for c in self.candidates],
            "warnings": list(self.warnings),
        }


def is_empty_value(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def identifier_weight(column: str) -> int:
    """Confidence an identifier-like name lends a column (0 when none matches)."""
    for pattern, weight in IDENTIFIER_PATTERNS:
        if pattern.search(column):
            return weight
    return 0


class MatchingColumnSelector:
    """
    Scores sample columns and selects the identity key for a session

    Selection order: profile-preferred column, then the highest-ranked
    candidate that clears the minimal uniqueness bar.
    """

    def __init__(self, minimum_unique_percentage: float = MINIMUM_UNIQUE_PERCENTAGE):
        self.minimum_unique_percentage = minimum_unique_percentage

    def select(
        self,
        sample_rows: Sequence[Mapping[str, Any]],
        remote_columns: Sequence[ColumnMeta] | None = None,
        preferred_column: str | None = None,
    ) -> MatchingColumnResult:
        """
        Select the matching column for a sample

        Args:
            sample_rows: Rows about to be imported (or a sample of them)
            remote_columns: Destination column metadata; when given, only
                columns present on both sides are considered
            preferred_column: Matching key recorded by the import profile

        Returns:
            MatchingColumnResult; ``column`` is None when nothing qualifies
        """
        if not sample_rows:
            logger.warning("Empty sample, no matching column can be selected")
            return MatchingColumnResult(
                column=None,
                source=SOURCE_NONE,
                confidence=0.0,
                warnings=["Empty sample: verification and rollback are unavailable"],
            )

        columns = self._candidate_columns(sample_rows, remote_columns)
        meta_by_name = {m.name: m for m in remote_columns or ()}
        candidates = self.rank(
            [self._score(sample_rows, col, order, meta_by_name.get(col)) for order, col in enumerate(columns)]
        )

        preferred = self._preferred_candidate(candidates, preferred_column)
        if preferred is not None:
            warnings = self._uniqueness_warnings(preferred)
            logger.info(
                f"Using profile matching column {preferred.name!r} "
                f"({preferred.unique_percentage:.1f}% unique)"
            )
            return MatchingColumnResult(
                column=preferred.name,
                source=SOURCE_PROFILE,
                confidence=100.0 if not warnings else preferred.unique_percentage,
                candidates=candidates,
                warnings=warnings,
            )

        warnings: list[str] = []
        if preferred_column:
            warnings.append(
                f"Profile matching column {preferred_column!r} is missing or empty in the sample"
            )

        best = next(
            (c for c in candidates
             if c.non_empty_count > 0 and c.unique_percentage >= self.minimum_unique_percentage),
            None,
        )
        if best is None:
            warnings.append(
                "No column is unique enough to identify rows: "
                "verification and rollback are unavailable for this import"
            )
            logger.warning(warnings[-1])
            return MatchingColumnResult(
                column=None,
                source=SOURCE_NONE,
                confidence=0.0,
                candidates=candidates,
                warnings=warnings,
            )

        warnings.extend(self._uniqueness_warnings(best))
        confidence = best.unique_percentage
        if best.source == SOURCE_PATTERN and best.unique_percentage == 100.0:
            confidence = float(max(best.pattern_weight, 50))

        logger.info(
            f"Selected matching column {best.name!r} "
            f"(source={best.source}, {best.unique_percentage:.1f}% unique)"
        )
        return MatchingColumnResult(
            column=best.name,
            source=best.source,
            confidence=confidence,
            candidates=candidates,
            warnings=warnings,
        )

    @staticmethod
    def rank(candidates: list[ColumnCandidate]) -> list[ColumnCandidate]:
        """
        Order candidates deterministically

        Uniqueness descending, then recommended first, then schema over
        pattern over content, then identifier weight; sample column order
        breaks the remaining ties (stable sort).
        """
        return sorted(
            candidates,
            key=lambda c: (
                -c.unique_percentage,
                not c.is_recommended,
                _SOURCE_RANK.get(c.source, len(_SOURCE_RANK)),
                -c.pattern_weight,
            ),
        )

    @staticmethod
    def _candidate_columns(
        sample_rows: Sequence[Mapping[str, Any]],
        remote_columns: Sequence[ColumnMeta] | None,
    ) -> list[str]:
        sample_columns: list[str] = []
        seen = set()
        for row in sample_rows:
            for name in row:
                if name not in seen:
                    seen.add(name)
                    sample_columns.append(name)

        if not remote_columns:
            return sample_columns

        remote_names = {m.name for m in remote_columns}
        return [name for name in sample_columns if name in remote_names]

    @staticmethod
    def _score(
        sample_rows: Sequence[Mapping[str, Any]],
        column: str,
        order: int,
        meta: ColumnMeta | None,
    ) -> ColumnCandidate:
        total = len(sample_rows)
        values = [row.get(column) for row in sample_rows]
        non_empty = [str(v).strip().casefold() for v in values if not is_empty_value(v)]
        non_empty_count = len(non_empty)

        if non_empty_count == 0:
            unique_percentage = 0.0
        else:
            unique_percentage = round(len(set(non_empty)) / non_empty_count * 100, 2)

        is_recommended = (
            non_empty_count > 0
            and unique_percentage >= RECOMMENDED_UNIQUE_PERCENTAGE
            and non_empty_count >= max(1, NON_EMPTY_RATIO * total)
        )

        weight = identifier_weight(column)
        if meta is not None and meta.is_identity:
            source = SOURCE_SCHEMA
            reason = "Auto-numbered in destination" if not meta.is_unique else "Marked unique in destination"
        elif weight:
            source = SOURCE_PATTERN
            reason = "Identifier-like column name"
        else:
            source = SOURCE_CONTENT
            reason = f"{unique_percentage:g}% unique values"

        if non_empty_count == 0:
            reason = "No values in sample"
        elif non_empty_count < NON_EMPTY_RATIO * total:
            reason += f", only {non_empty_count}/{total} populated"

        return ColumnCandidate(
            name=column,
            total_count=total,
            non_empty_count=non_empty_count,
            unique_percentage=unique_percentage,
            is_recommended=is_recommended,
            reason=reason,
            source=source,
            pattern_weight=weight,
        )

    @staticmethod
    def _preferred_candidate(
        candidates: list[ColumnCandidate], preferred_column: str | None
    ) -> ColumnCandidate | None:
        if not preferred_column:
            return None
        for candidate in candidates:
            if candidate.name == preferred_column and candidate.non_empty_count > 0:
                return candidate
        return None

    @staticmethod
    def _uniqueness_warnings(candidate: ColumnCandidate) -> list[str]:
        if candidate.unique_percentage >= 100.0:
            return []
        if candidate.unique_percentage >= ACCEPTABLE_UNIQUE_PERCENTAGE:
            return [
                f"Matching column {candidate.name!r} is {candidate.unique_percentage:g}% unique: "
                f"duplicate keys will surface as extra rows"
            ]
        return [
            f"Matching column {candidate.name!r} is only {candidate.unique_percentage:g}% unique: "
            f"verification results will be degraded"
        ]
