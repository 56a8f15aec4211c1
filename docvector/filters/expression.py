"""
Backend-agnostic filter expression tree.

A filter is either a Comparison of one metadata field against a value or a
Logical combination of nested filters. Nodes are immutable values: they are
built once by the caller (via the builder functions or parse_filter()) and
compiled per search by FilterExpressionConverter.

Usage:
    from docvector.filters import and_, eq, in_

    expr = and_(eq("author", "A"), in_("type", ["post", "page"]))
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

Scalar = Union[str, int, float, bool]


class ComparisonOperator(str, Enum):
    """Operators comparing a metadata field against a value."""

    EQ = "EQ"
    NE = "NE"
    LT = "LT"
    LTE = "LTE"
    GT = "GT"
    GTE = "GTE"
    IN = "IN"
    NIN = "NIN"

    @property
    def is_range(self) -> bool:
        return self in (
            ComparisonOperator.LT,
            ComparisonOperator.LTE,
            ComparisonOperator.GT,
            ComparisonOperator.GTE,
        )

    @property
    def is_membership(self) -> bool:
        return self in (ComparisonOperator.IN, ComparisonOperator.NIN)


class LogicalOperator(str, Enum):
    """Operators combining nested filter expressions."""

    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Comparison:
    """
    Comparison of a metadata field against a value.

    Attributes:
        field: Metadata field name
        op: Comparison operator
        value: Scalar for EQ..GTE, tuple of scalars for IN/NIN
    """

    field: str
    op: ComparisonOperator
    value: Any


@dataclass(frozen=True)
class Logical:
    """
    Conjunction or disjunction of nested expressions, in caller order.

    Attributes:
        op: AND or OR
        operands: Nested expressions (at least one)
    """

    op: LogicalOperator
    operands: tuple["FilterExpression", ...]

    def __post_init__(self) -> None:
        """Validate operands are present."""
        if not self.operands:
            raise ValueError(f"{self.op.value} requires at least one operand")
        for operand in self.operands:
            if not isinstance(operand, (Comparison, Logical)):
                raise TypeError(
                    f"{self.op.value} operands must be filter expressions, "
                    f"got {type(operand).__name__}"
                )


FilterExpression = Union[Comparison, Logical]


def _normalize_values(values: Any) -> Any:
    """
    Freeze a membership value into a tuple.

    Sets have no stable iteration order across processes, so they are sorted
    to keep compiled filters deterministic. Scalars are returned unchanged
    and rejected later by the converter.
    """
    if isinstance(values, (set, frozenset)):
        return tuple(sorted(values, key=lambda v: (type(v).__name__, v)))
    if isinstance(values, (list, tuple)):
        return tuple(values)
    return values


def _comparison(field: str, op: ComparisonOperator, value: Any) -> Comparison:
    if not isinstance(field, str) or not field:
        raise ValueError("Filter field must be a non-empty string")
    return Comparison(field=field, op=op, value=value)


def eq(field: str, value: Scalar) -> Comparison:
    """field == value"""
    return _comparison(field, ComparisonOperator.EQ, value)


def ne(field: str, value: Scalar) -> Comparison:
    """field != value (also matches documents without the field)"""
    return _comparison(field, ComparisonOperator.NE, value)


def lt(field: str, value: Scalar) -> Comparison:
    """field < value"""
    return _comparison(field, ComparisonOperator.LT, value)


def lte(field: str, value: Scalar) -> Comparison:
    """field <= value"""
    return _comparison(field, ComparisonOperator.LTE, value)


def gt(field: str, value: Scalar) -> Comparison:
    """field > value"""
    return _comparison(field, ComparisonOperator.GT, value)


def gte(field: str, value: Scalar) -> Comparison:
    """field >= value"""
    return _comparison(field, ComparisonOperator.GTE, value)


def in_(field: str, values: Any) -> Comparison:
    """field is one of values"""
    return _comparison(field, ComparisonOperator.IN, _normalize_values(values))


def nin(field: str, values: Any) -> Comparison:
    """field is none of values (also matches documents without the field)"""
    return _comparison(field, ComparisonOperator.NIN, _normalize_values(values))


def and_(*operands: FilterExpression) -> Logical:
    """All operands must match."""
    return Logical(op=LogicalOperator.AND, operands=tuple(operands))


def or_(*operands: FilterExpression) -> Logical:
    """At least one operand must match."""
    return Logical(op=LogicalOperator.OR, operands=tuple(operands))


class FilterExpressionBuilder:
    """
    Method-style access to the builder functions.

    Usage:
        b = FilterExpressionBuilder()
        expr = b.and_(b.eq("author", "A"), b.gte("year", 2020))
    """

    eq = staticmethod(eq)
    ne = staticmethod(ne)
    lt = staticmethod(lt)
    lte = staticmethod(lte)
    gt = staticmethod(gt)
    gte = staticmethod(gte)
    in_ = staticmethod(in_)
    nin = staticmethod(nin)
    and_ = staticmethod(and_)
    or_ = staticmethod(or_)


def referenced_fields(expr: FilterExpression) -> list[str]:
    """Return the field names an expression references, in first-use order."""
    if isinstance(expr, Comparison):
        return [expr.field]
    seen: list[str] = []
    for operand in expr.operands:
        for name in referenced_fields(operand):
            if name not in seen:
                seen.append(name)
    return seen
