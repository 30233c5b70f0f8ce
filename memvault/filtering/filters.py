"""Boolean filter expressions over metadata mappings.

Filter values are plain Python values. Their kind decides which operators
can match them:

    STRING     str
    NUMBER     int or float (bool excluded)
    BOOL       bool
    TIMESTAMP  datetime (naive values are read as UTC)
    LIST       list or tuple of the above

Comparing values of different kinds never matches. Queries are immutable
and are checked once, by validate(), before any record is scanned.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Sequence, Union

from memvault.errors import EmptyQueryError, InvalidQueryError

FilterValue = Union[str, int, float, bool, datetime, list, tuple]


class ValueKind(str, Enum):
    """Kinds a filter or metadata value can take."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    TIMESTAMP = "timestamp"
    LIST = "list"
    UNSUPPORTED = "unsupported"


def kind_of(value: Any) -> ValueKind:
    """Classify a value for filter comparisons."""
    # bool is a subclass of int, so test it first
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, datetime):
        return ValueKind.TIMESTAMP
    if isinstance(value, (list, tuple)):
        return ValueKind.LIST
    return ValueKind.UNSUPPORTED


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are assumed to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _comparable(value: Any, kind: ValueKind) -> Any:
    return as_utc(value) if kind is ValueKind.TIMESTAMP else value


def values_equal(left: Any, right: Any) -> bool:
    """Kind-aware equality; lists compare element by element."""
    kind = kind_of(left)
    if kind is not kind_of(right) or kind is ValueKind.UNSUPPORTED:
        return False
    if kind is ValueKind.LIST:
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    return _comparable(left, kind) == _comparable(right, kind)


def format_value(value: Any) -> str:
    """Render a filter value for query descriptions."""
    kind = kind_of(value)
    if kind is ValueKind.STRING:
        return f'"{value}"'
    if kind is ValueKind.BOOL:
        return "true" if value else "false"
    if kind is ValueKind.TIMESTAMP:
        return as_utc(value).isoformat()
    if kind is ValueKind.LIST:
        return "[" + ", ".join(format_value(v) for v in value) + "]"
    return str(value)


class FilterOperator(str, Enum):
    """Comparison operators for a single condition."""

    EQ = "=="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


_ORDERED_KINDS = (ValueKind.NUMBER, ValueKind.TIMESTAMP)

_ORDERING = {
    FilterOperator.GT: lambda a, b: a > b,
    FilterOperator.GTE: lambda a, b: a >= b,
    FilterOperator.LT: lambda a, b: a < b,
    FilterOperator.LTE: lambda a, b: a <= b,
}

_MISSING = object()


@dataclass(frozen=True)
class FilterCondition:
    """A single (field, operator, value) predicate."""

    field: str
    operator: FilterOperator
    value: Any = None

    @classmethod
    def eq(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.EQ, value)

    @classmethod
    def ne(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.NE, value)

    @classmethod
    def gt(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.GT, value)

    @classmethod
    def gte(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.GTE, value)

    @classmethod
    def lt(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.LT, value)

    @classmethod
    def lte(cls, field: str, value: Any) -> "FilterCondition":
        return cls(field, FilterOperator.LTE, value)

    @classmethod
    def contains(cls, field: str, value: str) -> "FilterCondition":
        return cls(field, FilterOperator.CONTAINS, value)

    @classmethod
    def in_(cls, field: str, values: Sequence[Any]) -> "FilterCondition":
        return cls(field, FilterOperator.IN, tuple(values))

    @classmethod
    def not_in(cls, field: str, values: Sequence[Any]) -> "FilterCondition":
        return cls(field, FilterOperator.NOT_IN, tuple(values))

    @classmethod
    def between(cls, field: str, start: Any, end: Any) -> "FilterCondition":
        return cls(field, FilterOperator.BETWEEN, (start, end))

    @classmethod
    def exists(cls, field: str) -> "FilterCondition":
        return cls(field, FilterOperator.EXISTS)

    @classmethod
    def not_exists(cls, field: str) -> "FilterCondition":
        return cls(field, FilterOperator.NOT_EXISTS)

    def validate(self) -> None:
        """Check the condition is well formed.

        Raises:
            InvalidQueryError: If the operator cannot take this value.
        """
        if not isinstance(self.operator, FilterOperator):
            raise InvalidQueryError("Unknown filter operator", self.field, self.operator)
        if not self.field:
            raise InvalidQueryError("Filter condition needs a field name", operator=self.operator)

        op = self.operator
        if op in (FilterOperator.IN, FilterOperator.NOT_IN):
            if kind_of(self.value) is not ValueKind.LIST:
                raise InvalidQueryError("Membership test needs a list value", self.field, op)
        elif op is FilterOperator.BETWEEN:
            if kind_of(self.value) is not ValueKind.LIST or len(self.value) != 2:
                raise InvalidQueryError("Between needs a (start, end) pair", self.field, op)
            start, end = self.value
            start_kind, end_kind = kind_of(start), kind_of(end)
            if start_kind is not end_kind or start_kind not in _ORDERED_KINDS:
                raise InvalidQueryError(
                    "Between bounds must both be numbers or both be timestamps",
                    self.field,
                    op,
                )
            if _comparable(start, start_kind) > _comparable(end, end_kind):
                raise InvalidQueryError(
                    f"Between start {format_value(start)} is after end {format_value(end)}",
                    self.field,
                    op,
                )
        elif op not in (FilterOperator.EXISTS, FilterOperator.NOT_EXISTS):
            if kind_of(self.value) is ValueKind.UNSUPPORTED:
                raise InvalidQueryError(
                    f"Unsupported filter value type {type(self.value).__name__}",
                    self.field,
                    op,
                )

    def matches(self, fields: Mapping[str, Any]) -> bool:
        """Evaluate the condition against one record's fields."""
        op = self.operator
        actual = fields.get(self.field, _MISSING)

        if op is FilterOperator.EXISTS:
            return actual is not _MISSING
        if op is FilterOperator.NOT_EXISTS:
            return actual is _MISSING
        if actual is _MISSING:
            # absent != value
            return op is FilterOperator.NE

        actual_kind = kind_of(actual)

        if op is FilterOperator.EQ:
            return values_equal(actual, self.value)
        if op is FilterOperator.NE:
            if actual_kind is not kind_of(self.value):
                return False
            return not values_equal(actual, self.value)
        if op in _ORDERING:
            if actual_kind not in _ORDERED_KINDS or actual_kind is not kind_of(self.value):
                return False
            return _ORDERING[op](
                _comparable(actual, actual_kind), _comparable(self.value, actual_kind)
            )
        if op is FilterOperator.CONTAINS:
            if actual_kind is not ValueKind.STRING or kind_of(self.value) is not ValueKind.STRING:
                return False
            return self.value in actual
        if op is FilterOperator.IN:
            return any(values_equal(actual, candidate) for candidate in self.value)
        if op is FilterOperator.NOT_IN:
            return not any(values_equal(actual, candidate) for candidate in self.value)
        if op is FilterOperator.BETWEEN:
            start, end = self.value
            if actual_kind is not kind_of(start):
                return False
            value = _comparable(actual, actual_kind)
            return _comparable(start, actual_kind) <= value <= _comparable(end, actual_kind)
        return False

    def describe(self) -> str:
        if self.operator in (FilterOperator.EXISTS, FilterOperator.NOT_EXISTS):
            return f"{self.field} {self.operator.value}"
        return f"{self.field} {self.operator.value} {format_value(self.value)}"


class LogicalOperator(str, Enum):
    """How the children of a FilterQuery combine."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


@dataclass(frozen=True)
class FilterQuery:
    """A boolean combination of conditions and nested queries.

    Construction never fails; call validate() (QueryBuilder.build and the
    engine do this) to reject malformed trees at one point.

    Example:
        >>> q = FilterQuery.and_(
        ...     FilterCondition.eq("status", "active"),
        ...     FilterQuery.or_(FilterCondition.gt("score", 50), FilterCondition.exists("pinned")),
        ... )
    """

    operator: LogicalOperator = LogicalOperator.AND
    children: tuple[Union[FilterCondition, "FilterQuery"], ...] = field(default_factory=tuple)

    @classmethod
    def and_(cls, *children: Union[FilterCondition, "FilterQuery"]) -> "FilterQuery":
        return cls(LogicalOperator.AND, tuple(children))

    @classmethod
    def or_(cls, *children: Union[FilterCondition, "FilterQuery"]) -> "FilterQuery":
        return cls(LogicalOperator.OR, tuple(children))

    @classmethod
    def not_(cls, child: Union[FilterCondition, "FilterQuery"]) -> "FilterQuery":
        return cls(LogicalOperator.NOT, (child,))

    def with_condition(self, condition: FilterCondition) -> "FilterQuery":
        """Return a copy with one more condition."""
        return FilterQuery(self.operator, self.children + (condition,))

    def with_nested(self, query: "FilterQuery") -> "FilterQuery":
        """Return a copy with one more nested query."""
        return FilterQuery(self.operator, self.children + (query,))

    def validate(self) -> None:
        """Check the whole tree is well formed.

        Raises:
            EmptyQueryError: If an AND/OR node has no children.
            InvalidQueryError: For any other malformed node or condition.
        """
        if not isinstance(self.operator, LogicalOperator):
            raise InvalidQueryError("Unknown logical operator", operator=self.operator)
        if self.operator is LogicalOperator.NOT:
            if len(self.children) != 1:
                raise InvalidQueryError(
                    f"NOT takes exactly one child, got {len(self.children)}",
                    operator=self.operator,
                )
        elif not self.children:
            raise EmptyQueryError(
                f"{self.operator.value} query has no conditions", operator=self.operator
            )

        for child in self.children:
            if not isinstance(child, (FilterCondition, FilterQuery)):
                raise InvalidQueryError(
                    f"Unsupported filter node {type(child).__name__}", operator=self.operator
                )
            child.validate()

    def matches(self, fields: Mapping[str, Any]) -> bool:
        """Evaluate against one record's fields, short-circuiting left to right."""
        if self.operator is LogicalOperator.AND:
            return all(child.matches(fields) for child in self.children)
        if self.operator is LogicalOperator.OR:
            return any(child.matches(fields) for child in self.children)
        return not self.children[0].matches(fields)

    def describe(self) -> str:
        """Readable rendering, e.g. ``status == "active" AND (score > 50)``."""
        parts = [
            child.describe() if isinstance(child, FilterCondition) else f"({child.describe()})"
            for child in self.children
        ]
        if self.operator is LogicalOperator.NOT:
            return f"NOT {parts[0]}" if parts else "NOT"
        return f" {self.operator.value} ".join(parts)
