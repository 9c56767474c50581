"""
Filter expressions sent to the destination.

Only two shapes exist: one column equal to a value, or one column in a set
of values. Identifiers are double-quoted and values single-quoted with the
quote character doubled, so no caller ever assembles free-form SQL.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from ..errors import LocalPreconditionError

ROW_ID_COLUMN = "RowID"


def quote_identifier(identifier: str) -> str:
    """
    Quote a column name for a filter expression

    Raises:
        LocalPreconditionError: If the identifier is empty or contains
            control characters
    """
    if not identifier or not identifier.strip():
        raise LocalPreconditionError("Filter column name must not be empty")
    if any(ord(ch) < 32 for ch in identifier):
        raise LocalPreconditionError(f"Invalid filter column name: {identifier!r}")
    return '"' + identifier.replace('"', '""') + '"'


def quote_value(value) -> str:
    return "'" + str(value).strip().replace("'", "''") + "'"


@dataclass(frozen=True)
class FilterExpression:
    """
    ``column = value`` or ``column IN (values...)`` over a single column
    """

    column: str
    values: tuple[str, ...]

    def __post_init__(self):
        if not self.values:
            raise LocalPreconditionError("Filter expression needs at least one value")
        if any(not str(v).strip() for v in self.values):
            raise LocalPreconditionError("Filter values must not be blank")
        quote_identifier(self.column)

    @property
    def is_equality(self) -> bool:
        return len(self.values) == 1

    def to_sql(self) -> str:
        column = quote_identifier(self.column)
        if self.is_equality:
            return f"{column} = {quote_value(self.values[0])}"
        joined = ",".join(quote_value(v) for v in self.values)
        return f"{column} IN ({joined})"

    def __str__(self) -> str:
        return self.to_sql()


def equals_filter(column: str, value) -> FilterExpression:
    return FilterExpression(column, (str(value),))


def in_filter(column: str, values: Iterable) -> FilterExpression:
    """
    Build a set-membership filter, dropping duplicate and blank values in order

    A blank literal would match every row with an empty column, so blank
    values never reach the expression.
    """
    trimmed = (str(v).strip() for v in values if v is not None)
    unique = tuple(dict.fromkeys(v for v in trimmed if v))
    return FilterExpression(column, unique)


def row_id_filter(row_id: int) -> FilterExpression:
    return equals_filter(ROW_ID_COLUMN, int(row_id))
