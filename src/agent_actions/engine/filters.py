"""Record filter evaluation for schedule steps.

Evaluation is total: an unknown operator or a value that cannot be coerced
makes that filter false rather than raising.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Callable, Iterable, Mapping, TypeVar

from ..schemas.records import RecordSchema
from ..schemas.schedules import (
    FilterExpression,
    FilterLogic,
    FilterOperator,
    RecordQuery,
    ScheduleFilter,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Predicate = Callable[[Any, Any], bool]

_LEGACY_EQUALS = re.compile(r"(\w+)\s+equals\s+['\"](.*?)['\"]", re.IGNORECASE)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _number(value: Any) -> float:
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    return math.nan


def _equals(actual: Any, expected: Any) -> bool:
    if actual == expected:
        return True
    if actual is None or expected is None:
        return False
    return _text(actual) == _text(expected)


def _is_empty(actual: Any, _expected: Any = None) -> bool:
    return actual is None or actual == ""


def _compare(check: Callable[[float, float], bool]) -> Predicate:
    def predicate(actual: Any, expected: Any) -> bool:
        left, right = _number(actual), _number(expected)
        if math.isnan(left) or math.isnan(right):
            return False
        return check(left, right)

    return predicate


def _member(actual: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple, set)) and actual in expected


_PREDICATES: dict[str, Predicate] = {
    FilterOperator.EQUALS.value: _equals,
    FilterOperator.NOT_EQUALS.value: lambda actual, expected: not _equals(actual, expected),
    FilterOperator.CONTAINS.value: lambda actual, expected: (
        _text(expected).lower() in _text(actual).lower()
    ),
    FilterOperator.NOT_CONTAINS.value: lambda actual, expected: (
        _text(expected).lower() not in _text(actual).lower()
    ),
    FilterOperator.STARTS_WITH.value: lambda actual, expected: (
        _text(actual).lower().startswith(_text(expected).lower())
    ),
    FilterOperator.ENDS_WITH.value: lambda actual, expected: (
        _text(actual).lower().endswith(_text(expected).lower())
    ),
    FilterOperator.IS_EMPTY.value: _is_empty,
    FilterOperator.IS_NOT_EMPTY.value: lambda actual, expected: not _is_empty(actual),
    FilterOperator.GREATER_THAN.value: _compare(lambda left, right: left > right),
    FilterOperator.LESS_THAN.value: _compare(lambda left, right: left < right),
    FilterOperator.GREATER_OR_EQUAL.value: _compare(lambda left, right: left >= right),
    FilterOperator.LESS_OR_EQUAL.value: _compare(lambda left, right: left <= right),
    FilterOperator.IN.value: _member,
    FilterOperator.NOT_IN.value: lambda actual, expected: (
        isinstance(expected, (list, tuple, set)) and actual not in expected
    ),
}


def _record_data(record: RecordSchema | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(record, RecordSchema):
        return record.data
    return record


def matches_filter(data: Mapping[str, Any], flt: ScheduleFilter) -> bool:
    predicate = _PREDICATES.get(flt.operator)
    if predicate is None:
        logger.warning(
            "Unknown filter operator",
            extra={"operator": flt.operator, "field": flt.field},
        )
        return False
    return predicate(data.get(flt.field), flt.value)


def evaluate_filter(
    record: RecordSchema | Mapping[str, Any], expression: FilterExpression
) -> bool:
    """True when ``record`` satisfies ``expression``.

    Without filters, AND matches every record and OR matches none.
    """

    data = _record_data(record)
    results = (matches_filter(data, flt) for flt in expression.filters)
    if expression.logic is FilterLogic.OR:
        return any(results)
    return all(results)


def filter_records(records: Iterable[T], expression: FilterExpression) -> list[T]:
    return [record for record in records if evaluate_filter(record, expression)]  # type: ignore[arg-type]


def parse_string_query(query: str) -> FilterExpression | None:
    """Turn a legacy ``field equals 'value'`` query into an expression."""

    match = _LEGACY_EQUALS.search(query)
    if match is None:
        return None
    field, value = match.groups()
    return FilterExpression(
        filters=[ScheduleFilter(field=field, operator=FilterOperator.EQUALS.value, value=value)]
    )


def keyword_match(record: RecordSchema | Mapping[str, Any], query: str) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    return any(needle in _text(value).lower() for value in _record_data(record).values())


def select_records(records: Iterable[T], query: RecordQuery) -> list[T]:
    """Apply a structured or legacy free-text query; no query selects everything."""

    items = list(records)
    if query is None:
        return items
    if isinstance(query, FilterExpression):
        return filter_records(items, query)
    if not query.strip():
        return items
    parsed = parse_string_query(query)
    if parsed is not None:
        return filter_records(items, parsed)
    return [item for item in items if keyword_match(item, query)]  # type: ignore[arg-type]


_DESCRIPTIONS: dict[str, str] = {
    FilterOperator.EQUALS.value: "{field} equals '{value}'",
    FilterOperator.NOT_EQUALS.value: "{field} does not equal '{value}'",
    FilterOperator.CONTAINS.value: "{field} contains '{value}'",
    FilterOperator.NOT_CONTAINS.value: "{field} does not contain '{value}'",
    FilterOperator.STARTS_WITH.value: "{field} starts with '{value}'",
    FilterOperator.ENDS_WITH.value: "{field} ends with '{value}'",
    FilterOperator.IS_EMPTY.value: "{field} is empty",
    FilterOperator.IS_NOT_EMPTY.value: "{field} is not empty",
    FilterOperator.GREATER_THAN.value: "{field} > {value}",
    FilterOperator.LESS_THAN.value: "{field} < {value}",
    FilterOperator.GREATER_OR_EQUAL.value: "{field} >= {value}",
    FilterOperator.LESS_OR_EQUAL.value: "{field} <= {value}",
    FilterOperator.IN.value: "{field} is one of [{value}]",
    FilterOperator.NOT_IN.value: "{field} is not one of [{value}]",
}


def describe_filter(flt: ScheduleFilter) -> str:
    if isinstance(flt.value, (list, tuple, set)):
        value = ", ".join(_text(item) for item in flt.value)
    else:
        value = _text(flt.value)
    template = _DESCRIPTIONS.get(flt.operator, "{field} {operator} {value}")
    return template.format(field=flt.field, value=value, operator=flt.operator)


def describe_query(query: RecordQuery) -> str:
    """Human readable rendering of a query."""

    if query is None:
        return "All records"
    if isinstance(query, str):
        return query.strip() or "All records"
    if not query.filters:
        return "All records"
    return f" {query.logic.value} ".join(describe_filter(flt) for flt in query.filters)


__all__ = [
    "describe_filter",
    "describe_query",
    "evaluate_filter",
    "filter_records",
    "keyword_match",
    "matches_filter",
    "parse_string_query",
    "select_records",
]
