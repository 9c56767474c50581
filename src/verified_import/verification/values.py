"""
Typed cell values.

Sent and received cells arrive as loosely typed scalars (CSV strings,
JSON numbers, booleans, None). CellValue.parse turns each into exactly one
kind so every comparison below is a total function over (kind, kind).
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any


class ValueKind(str, Enum):
    NULL = "null"
    TEXT = "text"
    NUMBER = "number"
    BOOL = "bool"
    DATE = "date"


_TRUE_WORDS = frozenset({"true", "yes", "oui", "vrai"})
_FALSE_WORDS = frozenset({"false", "no", "non", "faux"})

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"^[+-]?(?:\d{1,3}(?:[ \u00a0\u202f]\d{3})+|\d+)(?:[.,]\d+)?$")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
    "janv": 1, "fev": 2, "févr": 2, "mars": 3, "avr": 4, "mai": 5, "juin": 6,
    "juil": 7, "aout": 8, "août": 8, "sept": 9,
}

_TIME = r"(?:[ T](?P<h>\d{1,2}):(?P<mi>\d{2})(?::(?P<s>\d{2})(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?"
_ISO_DATE = re.compile(r"^(?P<y>\d{4})-(?P<m>\d{1,2})-(?P<d>\d{1,2})" + _TIME + "$")
_DMY_DATE = re.compile(r"^(?P<d>\d{1,2})[/.-](?P<m>\d{1,2})[/.-](?P<y>\d{4})" + _TIME + "$")
_NAMED_MONTH_DATE = re.compile(
    r"^(?P<d>\d{1,2})[ -](?P<mon>[^\W\d_]+)\.?,?[ -](?P<y>\d{4})" + _TIME + "$"
)


def normalize_text(value: str) -> str:
    """Strip and collapse internal whitespace runs to one space."""
    return _WHITESPACE.sub(" ", value).strip()


def _parse_number(text: str) -> Decimal | None:
    if not _NUMBER.match(text):
        return None
    cleaned = re.sub(r"[ \u00a0\u202f]", "", text).replace(",", ".")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def _build_datetime(match: re.Match, month: int) -> tuple[datetime, bool] | None:
    groups = match.groupdict()
    has_time = groups.get("h") is not None
    try:
        value = datetime(
            int(groups["y"]),
            month,
            int(groups["d"]),
            int(groups["h"] or 0),
            int(groups["mi"] or 0),
            int(groups["s"] or 0),
        )
    except ValueError:
        return None
    return value, has_time


def parse_date(text: str) -> tuple[datetime, bool] | None:
    """
    Parse the date representations seen in imports

    Supports ISO (``2024-03-01``, optional time), day-first numeric
    (``01/03/2024``, ``01-03-2024``, ``01.03.2024``) and named-month
    (``01 Mar 2024``, ``01 Mar, 2024``) forms.

    Returns:
        (datetime, has_time), or None when ``text`` is not a date
    """
    match = _ISO_DATE.match(text)
    if match:
        return _build_datetime(match, int(match.group("m")))

    match = _DMY_DATE.match(text)
    if match:
        return _build_datetime(match, int(match.group("m")))

    match = _NAMED_MONTH_DATE.match(text)
    if match:
        month = _MONTHS.get(match.group("mon").lower().rstrip("."))
        if month is None:
            month = _MONTHS.get(match.group("mon").lower()[:3])
        if month is None:
            return None
        return _build_datetime(match, month)

    return None


@dataclass(frozen=True)
class CellValue:
    """
    One cell, reduced to a kind and a canonical value

    ``text`` keeps the whitespace-normalized original for display and
    prefix checks.
    """

    kind: ValueKind
    text: str
    number: Decimal | None = None
    flag: bool | None = None
    moment: datetime | None = None
    has_time: bool = False

    @classmethod
    def parse(cls, raw: Any) -> "CellValue":
        if raw is None:
            return cls(ValueKind.NULL, "")

        if isinstance(raw, bool):
            return cls(ValueKind.BOOL, str(raw).lower(), flag=raw)

        if isinstance(raw, (int, float, Decimal)):
            try:
                number = Decimal(str(raw))
            except InvalidOperation:
                return cls(ValueKind.TEXT, str(raw))
            if not number.is_finite():
                return cls(ValueKind.TEXT, str(raw))
            return cls(ValueKind.NUMBER, str(raw), number=number)

        if isinstance(raw, datetime):
            return cls(ValueKind.DATE, raw.isoformat(), moment=raw.replace(tzinfo=None), has_time=True)

        if isinstance(raw, date):
            return cls(ValueKind.DATE, raw.isoformat(), moment=datetime(raw.year, raw.month, raw.day))

        text = normalize_text(str(raw))
        if not text:
            return cls(ValueKind.NULL, "")

        lowered = text.lower()
        if lowered in _TRUE_WORDS or lowered in _FALSE_WORDS:
            return cls(ValueKind.BOOL, text, flag=lowered in _TRUE_WORDS)

        number = _parse_number(text)
        if number is not None:
            return cls(ValueKind.NUMBER, text, number=number)

        parsed = parse_date(text)
        if parsed is not None:
            moment, has_time = parsed
            return cls(ValueKind.DATE, text, moment=moment, has_time=has_time)

        return cls(ValueKind.TEXT, text)

    @property
    def is_empty(self) -> bool:
        return self.kind is ValueKind.NULL

    def equivalent(self, other: "CellValue") -> bool:
        """
        Equality after whitespace, case, numeric and boolean normalization

        Dates compare by their text: a date written differently is a
        date-shift, not a match.
        """
        if self.kind is not other.kind:
            return False
        if self.kind is ValueKind.NULL:
            return True
        if self.kind is ValueKind.NUMBER:
            return self.number == other.number
        if self.kind is ValueKind.BOOL:
            return self.flag == other.flag
        return self.text.casefold() == other.text.casefold()
