"""
Query dialects a filter expression can be compiled into.

FilterExpressionConverter walks an expression tree and calls one QueryBackend
method per primitive. Each backend returns its own structured fragment type;
values are never spliced into query text.

- MappingQueryBackend: nested operator mappings in document-database style
  ({"metadata.author": {"$eq": "A"}}), evaluated by the in-memory store
- SqlQueryBackend: SqlPredicate objects over a JSONB metadata column,
  rendered with asyncpg-style positional parameters by the pgvector store

Both dialects share the same semantics:
- NE and NIN also match documents that do not have the field
- Range operators only compare values of the same kind (number vs string)
- Booleans never compare equal to numbers
"""

import json
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from docvector.filters.expression import ComparisonOperator, Scalar

F = TypeVar("F")

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")


class QueryBackend(ABC, Generic[F]):
    """
    Target dialect for compiled filters.

    One method per primitive. Implementations must be pure: the same input
    always yields an equal (and identically serialized) fragment.
    """

    name: str = "abstract"

    @abstractmethod
    def equality(self, field: str, value: Scalar, negate: bool = False) -> F:
        """field == value, or field != value when negate is set."""

    @abstractmethod
    def range(self, field: str, op: ComparisonOperator, value: Scalar) -> F:
        """field <op> value for LT, LTE, GT, GTE."""

    @abstractmethod
    def membership(self, field: str, values: Sequence[Scalar], negate: bool = False) -> F:
        """field in values, or field not in values when negate is set."""

    @abstractmethod
    def conjunction(self, parts: Sequence[F]) -> F:
        """All parts match."""

    @abstractmethod
    def disjunction(self, parts: Sequence[F]) -> F:
        """At least one part matches."""


def value_kind(value: Any) -> str:
    """Classify a scalar the way JSON does: boolean, number or string."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "other"


# ── Mapping dialect ──────────────────────────────────────────────────

_MAPPING_RANGE_OPS = {
    ComparisonOperator.LT: "$lt",
    ComparisonOperator.LTE: "$lte",
    ComparisonOperator.GT: "$gt",
    ComparisonOperator.GTE: "$gte",
}


class MappingQueryBackend(QueryBackend[dict[str, Any]]):
    """
    Compile to nested operator mappings.

    Field paths are prefixed with the metadata key ("metadata.author") so the
    fragment addresses the stored document shape directly.
    """

    name = "mapping"

    def __init__(self, field_prefix: str = "metadata."):
        self._prefix = field_prefix

    def _path(self, field: str) -> str:
        return f"{self._prefix}{field}"

    def equality(self, field: str, value: Scalar, negate: bool = False) -> dict[str, Any]:
        return {self._path(field): {"$ne" if negate else "$eq": value}}

    def range(self, field: str, op: ComparisonOperator, value: Scalar) -> dict[str, Any]:
        return {self._path(field): {_MAPPING_RANGE_OPS[op]: value}}

    def membership(
        self, field: str, values: Sequence[Scalar], negate: bool = False
    ) -> dict[str, Any]:
        return {self._path(field): {"$nin" if negate else "$in": list(values)}}

    def conjunction(self, parts: Sequence[dict[str, Any]]) -> dict[str, Any]:
        return {"$and": list(parts)}

    def disjunction(self, parts: Sequence[dict[str, Any]]) -> dict[str, Any]:
        return {"$or": list(parts)}


_MISSING = object()


def _resolve_path(document: Mapping[str, Any], path: str) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _same_kind(left: Any, right: Any) -> bool:
    return value_kind(left) == value_kind(right) and value_kind(left) != "other"


def _values_equal(left: Any, right: Any) -> bool:
    return _same_kind(left, right) and left == right


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if actual is _MISSING or not _same_kind(actual, expected):
        return False
    if value_kind(actual) == "boolean":
        return False
    if op == "$lt":
        return actual < expected
    if op == "$lte":
        return actual <= expected
    if op == "$gt":
        return actual > expected
    if op == "$gte":
        return actual >= expected
    raise ValueError(f"Unknown range operator: {op}")


def matches_fragment(fragment: Mapping[str, Any], document: Mapping[str, Any]) -> bool:
    """
    Evaluate a MappingQueryBackend fragment against a document mapping.

    Args:
        fragment: Compiled mapping fragment
        document: Stored document shape, e.g. {"id": ..., "metadata": {...}}

    Returns:
        True if the document satisfies the fragment
    """
    for key, condition in fragment.items():
        if key == "$and":
            if not all(matches_fragment(part, document) for part in condition):
                return False
            continue
        if key == "$or":
            if not any(matches_fragment(part, document) for part in condition):
                return False
            continue

        actual = _resolve_path(document, key)
        for op, expected in condition.items():
            if op == "$eq":
                ok = actual is not _MISSING and _values_equal(actual, expected)
            elif op == "$ne":
                ok = actual is _MISSING or not _values_equal(actual, expected)
            elif op == "$in":
                ok = actual is not _MISSING and any(_values_equal(actual, v) for v in expected)
            elif op == "$nin":
                ok = actual is _MISSING or not any(_values_equal(actual, v) for v in expected)
            else:
                ok = _compare(op, actual, expected)
            if not ok:
                return False
    return True


# ── SQL dialect ──────────────────────────────────────────────────────

_SQL_RANGE_OPS = {
    ComparisonOperator.LT: "<",
    ComparisonOperator.LTE: "<=",
    ComparisonOperator.GT: ">",
    ComparisonOperator.GTE: ">=",
}


@dataclass(frozen=True)
class SqlPredicate:
    """
    A WHERE-clause fragment with positional parameter slots.

    The sql template uses "{}" for every bound parameter, in the same order
    as params. render() numbers the slots starting at a given index so
    fragments compose without knowing where they end up in the statement.
    """

    sql: str
    params: tuple[Any, ...] = ()

    def render(self, start: int = 1) -> tuple[str, list[Any]]:
        """
        Number the parameter slots.

        Args:
            start: Index of the first placeholder ($start)

        Returns:
            (sql with $n placeholders, parameter list)
        """
        placeholders = [f"${i}" for i in range(start, start + len(self.params))]
        return self.sql.format(*placeholders), list(self.params)


def quote_literal(text: str) -> str:
    """Quote a string as a SQL literal."""
    return "'" + text.replace("'", "''") + "'"


def _encode_json(value: Scalar) -> str:
    return json.dumps(value, separators=(",", ":"))


class SqlQueryBackend(QueryBackend[SqlPredicate]):
    """
    Compile to SqlPredicate fragments over a JSONB metadata column.

    Field names must be plain identifiers; they are validated and emitted as
    quoted JSON keys. Values are always bound parameters (JSON-encoded text
    cast to jsonb).
    """

    name = "sql"

    def __init__(self, metadata_column: str = "metadata"):
        if not IDENTIFIER_RE.match(metadata_column):
            raise ValueError(f"Invalid metadata column name: {metadata_column!r}")
        self._column = metadata_column

    def _path(self, field: str) -> str:
        if not IDENTIFIER_RE.match(field):
            raise ValueError(f"Invalid metadata field name: {field!r}")
        return f"({self._column} -> {quote_literal(field)})"

    def equality(self, field: str, value: Scalar, negate: bool = False) -> SqlPredicate:
        clause = f"{self._path(field)} = {{}}::jsonb"
        if negate:
            clause = f"NOT COALESCE({clause}, FALSE)"
        return SqlPredicate(clause, (_encode_json(value),))

    def range(self, field: str, op: ComparisonOperator, value: Scalar) -> SqlPredicate:
        path = self._path(field)
        kind = value_kind(value)
        clause = (
            f"(jsonb_typeof({path}) = {quote_literal(kind)} "
            f"AND {path} {_SQL_RANGE_OPS[op]} {{}}::jsonb)"
        )
        return SqlPredicate(clause, (_encode_json(value),))

    def membership(
        self, field: str, values: Sequence[Scalar], negate: bool = False
    ) -> SqlPredicate:
        clause = f"{self._path(field)} = ANY({{}}::jsonb[])"
        if negate:
            clause = f"NOT COALESCE({clause}, FALSE)"
        return SqlPredicate(clause, ([_encode_json(v) for v in values],))

    def conjunction(self, parts: Sequence[SqlPredicate]) -> SqlPredicate:
        return self._join(" AND ", parts)

    def disjunction(self, parts: Sequence[SqlPredicate]) -> SqlPredicate:
        return self._join(" OR ", parts)

    @staticmethod
    def _join(separator: str, parts: Sequence[SqlPredicate]) -> SqlPredicate:
        sql = "(" + separator.join(part.sql for part in parts) + ")"
        params: tuple[Any, ...] = ()
        for part in parts:
            params += part.params
        return SqlPredicate(sql, params)
