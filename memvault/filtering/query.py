"""Composite queries: filters, time windows, aggregation and paging."""

from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any, Callable, Generic, Iterable, Mapping, Optional, TypeVar

from memvault.errors import InvalidQueryError
from memvault.filtering.aggregation import AggregationQuery, AggregationResult, aggregate
from memvault.filtering.filters import (
    FilterCondition,
    FilterOperator,
    FilterQuery,
    LogicalOperator,
    ValueKind,
    as_utc,
    kind_of,
)
from memvault.utils.concurrency import Deadline, check_deadline
from memvault.utils.logging import get_logger

logger = get_logger("filtering.query")

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TimeFilter:
    """Inclusive time range on a timestamp field.

    Either give explicit `start`/`end`, or use today() / last_n_days(),
    whose bounds are resolved against the clock at evaluation time.
    """

    field: str = "created_at"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    days: Optional[int] = None
    calendar_day: bool = False

    @classmethod
    def today(cls, field: str = "created_at") -> "TimeFilter":
        return cls(field=field, calendar_day=True)

    @classmethod
    def last_n_days(cls, days: int, field: str = "created_at") -> "TimeFilter":
        return cls(field=field, days=days)

    def validate(self) -> None:
        relative = self.calendar_day or self.days is not None
        explicit = self.start is not None or self.end is not None
        if relative and explicit:
            raise InvalidQueryError("Time filter mixes a relative window with explicit bounds", self.field)
        if self.days is not None and self.days < 0:
            raise InvalidQueryError(f"last_n_days needs a non-negative count, got {self.days}", self.field)
        if not relative:
            if self.start is None or self.end is None:
                raise InvalidQueryError("Time filter needs both start and end", self.field)
            if kind_of(self.start) is not ValueKind.TIMESTAMP or kind_of(self.end) is not ValueKind.TIMESTAMP:
                raise InvalidQueryError("Time filter bounds must be datetimes", self.field)
            if as_utc(self.start) > as_utc(self.end):
                raise InvalidQueryError(
                    "Time filter start is after end", self.field, FilterOperator.BETWEEN
                )

    def bounds(self, now: datetime) -> tuple[datetime, datetime]:
        """Resolve the window against `now`."""
        now = as_utc(now)
        if self.calendar_day:
            start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
            end = datetime.combine(now.date(), time.max, tzinfo=timezone.utc)
            return start, end
        if self.days is not None:
            return now - timedelta(days=self.days), now
        return as_utc(self.start), as_utc(self.end)

    def to_condition(self, now: datetime) -> FilterCondition:
        start, end = self.bounds(now)
        return FilterCondition.between(self.field, start, end)


@dataclass(frozen=True)
class Query:
    """Immutable, validated query produced by QueryBuilder.build()."""

    filter: Optional[FilterQuery] = None
    time_filter: Optional[TimeFilter] = None
    aggregation: Optional[AggregationQuery] = None
    limit: Optional[int] = None
    offset: int = 0

    def validate(self) -> None:
        if self.filter is not None:
            self.filter.validate()
        if self.time_filter is not None:
            self.time_filter.validate()
        if self.aggregation is not None:
            self.aggregation.validate()
        if self.limit is not None and self.limit < 0:
            raise InvalidQueryError(f"limit must be non-negative, got {self.limit}")
        if self.offset < 0:
            raise InvalidQueryError(f"offset must be non-negative, got {self.offset}")


class QueryBuilder:
    """Fluent construction of a Query.

    Chained calls only collect parts; build() validates everything at once.

    Example:
        >>> query = (
        ...     QueryBuilder()
        ...     .filter(FilterQuery.and_(FilterCondition.eq("status", "active")))
        ...     .time_filter(TimeFilter.last_n_days(7))
        ...     .limit(10)
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._filters: list[FilterQuery] = []
        self._time_filter: Optional[TimeFilter] = None
        self._aggregation: Optional[AggregationQuery] = None
        self._limit: Optional[int] = None
        self._offset: int = 0

    def filter(self, query: FilterQuery) -> "QueryBuilder":
        """Add a filter; several filters are ANDed together."""
        self._filters.append(query)
        return self

    def time_filter(self, time_filter: TimeFilter) -> "QueryBuilder":
        self._time_filter = time_filter
        return self

    def aggregate(self, aggregation: AggregationQuery) -> "QueryBuilder":
        self._aggregation = aggregation
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        self._limit = limit
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._offset = offset
        return self

    def build(self) -> Query:
        """Assemble and validate the query.

        Raises:
            InvalidQueryError: If any part is malformed.
        """
        combined: Optional[FilterQuery] = None
        if len(self._filters) == 1:
            combined = self._filters[0]
        elif self._filters:
            combined = FilterQuery(LogicalOperator.AND, tuple(self._filters))

        query = Query(
            filter=combined,
            time_filter=self._time_filter,
            aggregation=self._aggregation,
            limit=self._limit,
            offset=self._offset,
        )
        query.validate()
        return query


@dataclass
class QueryResult(Generic[T]):
    """Result of FilterEngine.execute().

    Attributes:
        items: The requested page of matching items (empty when aggregating).
        total: Number of items matching the filters before paging.
        aggregation: Aggregate over all matching items, if requested.
    """

    items: list[T] = field(default_factory=list)
    total: int = 0
    aggregation: Optional[AggregationResult] = None


def _identity(item: Any) -> Mapping[str, Any]:
    return item


class FilterEngine:
    """Evaluates filters, time windows and aggregations over records.

    The engine holds no state besides its clock. Records are any objects;
    `fields` maps a record to the mapping conditions are evaluated against
    (records are assumed to be mappings when it is omitted).

    Args:
        clock: Returns the evaluation-time "now" for relative time filters.
    """

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def compile(
        self,
        filter: Optional[FilterQuery] = None,
        time_filter: Optional[TimeFilter] = None,
    ) -> Optional[FilterQuery]:
        """Validate and merge a filter and a time window into one predicate."""
        if filter is not None:
            filter.validate()
        if time_filter is None:
            return filter
        time_filter.validate()
        window = time_filter.to_condition(self.now())
        if filter is None:
            return FilterQuery.and_(window)
        return FilterQuery.and_(window, filter)

    def matches(self, filter: Optional[FilterQuery], fields: Mapping[str, Any]) -> bool:
        """Evaluate one validated filter against one record's fields."""
        return True if filter is None else filter.matches(fields)

    def select(
        self,
        items: Iterable[T],
        filter: Optional[FilterQuery] = None,
        time_filter: Optional[TimeFilter] = None,
        fields: Callable[[T], Mapping[str, Any]] = _identity,
        deadline: Optional[Deadline] = None,
    ) -> list[T]:
        """Return the items satisfying the filter and time window.

        Raises:
            InvalidQueryError: Before scanning, if the query is malformed.
            OperationCancelledError: If the deadline expires mid-scan.
        """
        predicate = self.compile(filter, time_filter)
        selected = []
        for index, item in enumerate(items):
            check_deadline(deadline, index, "filter scan")
            if predicate is None or predicate.matches(fields(item)):
                selected.append(item)
        return selected

    def aggregate(
        self,
        aggregation: AggregationQuery,
        items: Iterable[T],
        fields: Callable[[T], Mapping[str, Any]] = _identity,
    ) -> AggregationResult:
        aggregation.validate()
        return aggregate(aggregation, (fields(item) for item in items))

    def execute(
        self,
        query: Query,
        items: Iterable[T],
        fields: Callable[[T], Mapping[str, Any]] = _identity,
        deadline: Optional[Deadline] = None,
    ) -> QueryResult[T]:
        """Run a full query.

        The time window and filter select records first. With an
        aggregation, it is computed over the whole selection and paging is
        ignored; otherwise offset/limit select the returned page.
        """
        query.validate()
        selected = self.select(
            items,
            filter=query.filter,
            time_filter=query.time_filter,
            fields=fields,
            deadline=deadline,
        )

        if query.aggregation is not None:
            result = self.aggregate(query.aggregation, selected, fields)
            logger.debug(
                f"Aggregated {len(selected)} records with {query.aggregation.function.value}"
            )
            return QueryResult(items=[], total=len(selected), aggregation=result)

        end = None if query.limit is None else query.offset + query.limit
        page = selected[query.offset:end]
        logger.debug(f"Query selected {len(selected)} records, returning {len(page)}")
        return QueryResult(items=page, total=len(selected))
