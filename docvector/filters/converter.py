"""
Filter expression compiler.

Translates a FilterExpression into the native fragment of a QueryBackend,
after checking every referenced field is declared filterable and every
operator is applied to a compatible value.
"""

import math
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

from docvector.exceptions import InvalidOperatorError, UnsupportedFieldError
from docvector.filters.backends import QueryBackend, value_kind
from docvector.filters.expression import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    Logical,
    LogicalOperator,
)

F = TypeVar("F")


class FilterExpressionConverter(Generic[F]):
    """
    Deterministic, side-effect-free FilterExpression compiler.

    The converter holds only immutable configuration, so a single instance
    can be shared across concurrent searches. Operand order is preserved:
    identical expressions always compile to identical fragments.

    Usage:
        converter = FilterExpressionConverter({"author", "type"}, MappingQueryBackend())
        fragment = converter.convert(and_(eq("author", "A"), eq("type", "post")))
        # {"$and": [{"metadata.author": {"$eq": "A"}}, {"metadata.type": {"$eq": "post"}}]}
    """

    def __init__(self, filterable_fields: Iterable[str], backend: QueryBackend[F]):
        """
        Initialize the converter.

        Args:
            filterable_fields: Metadata fields that may appear in filters
            backend: Target dialect
        """
        self._fields = frozenset(filterable_fields)
        self._backend = backend

    @property
    def filterable_fields(self) -> frozenset[str]:
        return self._fields

    @property
    def backend(self) -> QueryBackend[F]:
        return self._backend

    def convert(self, expression: FilterExpression) -> F:
        """
        Compile an expression into the backend dialect.

        Args:
            expression: Filter expression tree

        Returns:
            Backend fragment

        Raises:
            UnsupportedFieldError: If a field is not declared filterable
            InvalidOperatorError: If an operator is applied to an incompatible value
        """
        if isinstance(expression, Comparison):
            return self._convert_comparison(expression)
        if isinstance(expression, Logical):
            return self._convert_logical(expression)
        raise InvalidOperatorError(
            f"Unsupported filter node: {type(expression).__name__}"
        )

    def _convert_logical(self, expression: Logical) -> F:
        if not expression.operands:
            raise InvalidOperatorError(f"{expression.op.value} requires at least one operand")
        parts = [self.convert(operand) for operand in expression.operands]
        if expression.op == LogicalOperator.AND:
            return self._backend.conjunction(parts)
        if expression.op == LogicalOperator.OR:
            return self._backend.disjunction(parts)
        raise InvalidOperatorError(f"Unsupported logical operator: {expression.op}")

    def _convert_comparison(self, expression: Comparison) -> F:
        if expression.field not in self._fields:
            raise UnsupportedFieldError(expression.field, self._fields)

        try:
            op = ComparisonOperator(expression.op)
        except ValueError as exc:
            raise InvalidOperatorError(f"Unknown comparison operator: {expression.op!r}") from exc
        value = expression.value

        if op.is_membership:
            values = self._check_membership(expression.field, op, value)
            return self._backend.membership(
                expression.field, values, negate=op == ComparisonOperator.NIN
            )

        self._check_scalar(expression.field, op, value)
        if op.is_range:
            if value_kind(value) == "boolean":
                raise InvalidOperatorError(
                    f"{op.value} on '{expression.field}' cannot compare booleans"
                )
            return self._backend.range(expression.field, op, value)
        return self._backend.equality(
            expression.field, value, negate=op == ComparisonOperator.NE
        )

    @staticmethod
    def _check_scalar(field: str, op: ComparisonOperator, value: Any) -> None:
        if isinstance(value, (list, tuple, set, frozenset, dict)):
            raise InvalidOperatorError(
                f"{op.value} on '{field}' expects a single value, "
                f"got {type(value).__name__}"
            )
        if value_kind(value) == "other":
            raise InvalidOperatorError(
                f"{op.value} on '{field}' expects a string, number or boolean, "
                f"got {type(value).__name__}"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidOperatorError(f"{op.value} on '{field}' expects a finite number, got {value}")

    @classmethod
    def _check_membership(cls, field: str, op: ComparisonOperator, value: Any) -> tuple:
        if isinstance(value, (set, frozenset)):
            value = tuple(sorted(value, key=lambda v: (type(v).__name__, v)))
        if not isinstance(value, (list, tuple)):
            raise InvalidOperatorError(
                f"{op.value} on '{field}' expects a collection of values, "
                f"got {type(value).__name__}"
            )
        if not value:
            raise InvalidOperatorError(f"{op.value} on '{field}' requires at least one value")
        for item in value:
            if isinstance(item, (list, tuple, set, frozenset, dict)) or value_kind(item) == "other":
                raise InvalidOperatorError(
                    f"{op.value} on '{field}' values must be strings, numbers or booleans, "
                    f"got {type(item).__name__}"
                )
            if isinstance(item, float) and not math.isfinite(item):
                raise InvalidOperatorError(
                    f"{op.value} on '{field}' values must be finite numbers, got {item}"
                )
        return tuple(value)
