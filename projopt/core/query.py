"""
Structured query model

These dataclasses represent a query request with filter, sort, join and
projection sections. Raw JSON-shaped requests are normalized with to_query().
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from projopt.core.descriptor import Descriptor, to_descriptor
from projopt.core.errors import ValidationError

OPERATORS = ("=", ">", "<", ">=", "<=", "!=", "IN")

# Mongo-style aliases accepted in filter sections
OPERATOR_ALIASES = {
    "$eq": "=",
    "$gt": ">",
    "$lt": "<",
    "$gte": ">=",
    "$lte": "<=",
    "$ne": "!=",
    "$in": "IN",
    "==": "=",
    "<>": "!=",
    "in": "IN",
}

JOIN_TYPES = ("INNER", "LEFT", "RIGHT")


@dataclass(frozen=True)
class Condition:
    """A single filter condition: column operator value"""

    column: str
    operator: str  # '=', '>', '<', '>=', '<=', '!=', 'IN'
    value: Any

    def __repr__(self) -> str:
        return f"{self.column} {self.operator} {self.value!r}"


@dataclass(frozen=True)
class OrderByColumn:
    """
    A sort key

    Examples:
        name ASC, age DESC
    """

    column: str
    direction: str = "ASC"  # 'ASC' or 'DESC'

    def __repr__(self) -> str:
        return f"{self.column} {self.direction}"


@dataclass(frozen=True)
class JoinClause:
    """
    A join against another source

    Examples:
        INNER JOIN orders ON id = customer_id
    """

    right_source: str
    on_left: str
    on_right: str
    join_type: str = "INNER"

    def __repr__(self) -> str:
        return f"{self.join_type} JOIN {self.right_source} ON {self.on_left} = {self.on_right}"


@dataclass(frozen=True)
class Query:
    """
    A complete structured query

    hints carries rewrite annotations such as {"index": "customer_id"};
    they never change the query's result.
    """

    source: Optional[str] = None
    filters: Tuple[Condition, ...] = ()
    sort: Tuple[OrderByColumn, ...] = ()
    joins: Tuple[JoinClause, ...] = ()
    projection: Optional[Descriptor] = None
    limit: Optional[int] = None
    hints: Dict[str, Any] = field(default_factory=dict)

    def with_hints(self, **hints) -> "Query":
        merged = dict(self.hints)
        merged.update(hints)
        return replace(self, hints=merged)

    def to_dict(self) -> Dict[str, Any]:
        """Render as JSON-compatible data accepted back by to_query()"""
        data: Dict[str, Any] = {}
        if self.source is not None:
            data["source"] = self.source
        if self.filters:
            data["filter"] = [
                {
                    "column": c.column,
                    "operator": c.operator,
                    "value": list(c.value) if isinstance(c.value, tuple) else c.value,
                }
                for c in self.filters
            ]
        if self.sort:
            data["sort"] = [{"column": s.column, "direction": s.direction} for s in self.sort]
        if self.joins:
            data["join"] = [
                {
                    "source": j.right_source,
                    "on_left": j.on_left,
                    "on_right": j.on_right,
                    "type": j.join_type,
                }
                for j in self.joins
            ]
        if self.projection is not None:
            data["projection"] = self.projection.to_dict()
        if self.limit is not None:
            data["limit"] = self.limit
        if self.hints:
            data["hints"] = dict(self.hints)
        return data

    def __repr__(self) -> str:
        parts = [f"FROM {self.source or '?'}"]
        for join in self.joins:
            parts.append(str(join))
        if self.filters:
            parts.append("WHERE " + " AND ".join(repr(c) for c in self.filters))
        if self.sort:
            parts.append("ORDER BY " + ", ".join(repr(s) for s in self.sort))
        if self.limit is not None:
            parts.append(f"LIMIT {self.limit}")
        return " ".join(parts)


_SECTION_ALIASES = {
    "source": "source",
    "from": "source",
    "filter": "filters",
    "filters": "filters",
    "where": "filters",
    "sort": "sort",
    "order_by": "sort",
    "orderBy": "sort",
    "join": "joins",
    "joins": "joins",
    "projection": "projection",
    "select": "projection",
    "limit": "limit",
    "hints": "hints",
}


def to_query(raw: Any) -> Query:
    """
    Normalize a raw query request into a Query

    Args:
        raw: Query instance (returned unchanged) or a mapping of sections

    Returns:
        Canonical query

    Raises:
        ValidationError: On unknown sections or malformed entries
    """
    if isinstance(raw, Query):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Query must be a mapping, got {type(raw).__name__}")

    sections: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in _SECTION_ALIASES:
            raise ValidationError(f"Unknown query section: {key}")
        target = _SECTION_ALIASES[key]
        if target in sections:
            raise ValidationError(f"Query section given twice: {target}")
        sections[target] = value

    source = sections.get("source")
    if source is not None and not isinstance(source, str):
        raise ValidationError("Query source must be a string")

    projection = sections.get("projection")

    return Query(
        source=source,
        filters=_parse_filters(sections.get("filters")),
        sort=_parse_sort(sections.get("sort")),
        joins=_parse_joins(sections.get("joins")),
        projection=to_descriptor(projection) if projection is not None else None,
        limit=_parse_limit(sections.get("limit")),
        hints=dict(sections.get("hints") or {}),
    )


def _parse_operator(op: Any) -> str:
    if not isinstance(op, str):
        raise ValidationError(f"Invalid operator: {op!r}")
    op = OPERATOR_ALIASES.get(op, op).upper()
    if op not in OPERATORS:
        raise ValidationError(f"Invalid operator: {op}")
    return op


SCALAR_TYPES = (str, int, float, bool, type(None))


def _make_condition(column: Any, operator: Any, value: Any) -> Condition:
    if not isinstance(column, str) or not column:
        raise ValidationError(f"Invalid filter column: {column!r}")
    operator = _parse_operator(operator)
    if operator == "IN":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValidationError(f"IN filter on '{column}' needs a list of values")
        members = tuple(value)
        for member in members:
            if not isinstance(member, SCALAR_TYPES):
                raise ValidationError(f"IN filter on '{column}' has a non-scalar value: {member!r}")
        return Condition(column=column, operator=operator, value=members)
    # Conditions are compared as sets, so values must be hashable scalars
    if not isinstance(value, SCALAR_TYPES):
        raise ValidationError(f"Filter on '{column}' needs a scalar value, got {value!r}")
    return Condition(column=column, operator=operator, value=value)


def _parse_filters(raw: Any) -> Tuple[Condition, ...]:
    if raw is None:
        return ()

    conditions = []
    if isinstance(raw, Mapping):
        # {"age": {"$gt": 30}, "city": "NYC"}
        for column, value in raw.items():
            if isinstance(value, Mapping):
                for op, operand in value.items():
                    conditions.append(_make_condition(column, op, operand))
            else:
                conditions.append(_make_condition(column, "=", value))
        return tuple(conditions)

    if isinstance(raw, (list, tuple)):
        for entry in raw:
            if isinstance(entry, Condition):
                conditions.append(_make_condition(entry.column, entry.operator, entry.value))
            elif isinstance(entry, Mapping):
                column = entry.get("column", entry.get("field"))
                operator = entry.get("operator", entry.get("op", "="))
                if "value" not in entry:
                    raise ValidationError(f"Filter on '{column}' has no value")
                conditions.append(_make_condition(column, operator, entry["value"]))
            else:
                raise ValidationError(f"Invalid filter entry: {entry!r}")
        return tuple(conditions)

    raise ValidationError(f"Invalid filter section: {raw!r}")


def _parse_direction(direction: Any) -> str:
    if direction in (1, "1", "asc", "ASC"):
        return "ASC"
    if direction in (-1, "-1", "desc", "DESC"):
        return "DESC"
    raise ValidationError(f"Invalid sort direction: {direction!r}")


def _parse_sort(raw: Any) -> Tuple[OrderByColumn, ...]:
    if raw is None:
        return ()

    keys = []
    if isinstance(raw, Mapping):
        for column, direction in raw.items():
            keys.append(OrderByColumn(column, _parse_direction(direction)))
        return tuple(keys)

    if isinstance(raw, str):
        raw = [raw]

    for entry in raw:
        if isinstance(entry, OrderByColumn):
            keys.append(entry)
        elif isinstance(entry, str) and entry:
            if entry.startswith("-"):
                keys.append(OrderByColumn(entry[1:], "DESC"))
            else:
                keys.append(OrderByColumn(entry.lstrip("+"), "ASC"))
        elif isinstance(entry, Mapping) and isinstance(entry.get("column"), str) and entry["column"]:
            keys.append(
                OrderByColumn(entry["column"], _parse_direction(entry.get("direction", "ASC")))
            )
        else:
            raise ValidationError(f"Invalid sort entry: {entry!r}")
    return tuple(keys)


def _parse_joins(raw: Any) -> Tuple[JoinClause, ...]:
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        raw = [raw]

    joins = []
    for entry in raw:
        if isinstance(entry, JoinClause):
            joins.append(entry)
            continue
        if not isinstance(entry, Mapping):
            raise ValidationError(f"Invalid join entry: {entry!r}")
        try:
            right = entry.get("source", entry.get("right_source"))
            on_left = entry["on_left"]
            on_right = entry["on_right"]
        except KeyError as e:
            raise ValidationError(f"Join entry is missing {e}") from e
        join_type = str(entry.get("type", entry.get("join_type", "INNER"))).upper()
        if join_type not in JOIN_TYPES:
            raise ValidationError(f"Unsupported join type: {join_type}")
        if not right:
            raise ValidationError("Join entry is missing its source")
        for value in (right, on_left, on_right):
            if not isinstance(value, str) or not value:
                raise ValidationError(f"Join sources and keys must be names, got {value!r}")
        joins.append(JoinClause(right, on_left, on_right, join_type))
    return tuple(joins)


def _parse_limit(raw: Any) -> Optional[int]:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError(f"LIMIT must be an integer, got {raw!r}")
    if raw < 0:
        raise ValidationError(f"LIMIT must be non-negative, got {raw}")
    return raw
