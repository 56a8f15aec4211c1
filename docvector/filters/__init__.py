"""
Filter expressions over document metadata.

Main components:
- Comparison / Logical: immutable expression tree nodes
- eq, ne, lt, lte, gt, gte, in_, nin, and_, or_: builder functions
- parse_filter: textual syntax ("author == 'A' && year >= 2020")
- FilterExpressionConverter: compiles an expression into a QueryBackend dialect
- MappingQueryBackend / SqlQueryBackend: the supported dialects
"""

from docvector.filters.backends import (
    MappingQueryBackend,
    QueryBackend,
    SqlPredicate,
    SqlQueryBackend,
    matches_fragment,
)
from docvector.filters.converter import FilterExpressionConverter
from docvector.filters.expression import (
    Comparison,
    ComparisonOperator,
    FilterExpression,
    FilterExpressionBuilder,
    Logical,
    LogicalOperator,
    and_,
    eq,
    gt,
    gte,
    in_,
    lt,
    lte,
    ne,
    nin,
    or_,
)
from docvector.filters.parser import parse_filter

__all__ = [
    "Comparison",
    "ComparisonOperator",
    "FilterExpression",
    "FilterExpressionBuilder",
    "FilterExpressionConverter",
    "Logical",
    "LogicalOperator",
    "MappingQueryBackend",
    "QueryBackend",
    "SqlPredicate",
    "SqlQueryBackend",
    "and_",
    "eq",
    "gt",
    "gte",
    "in_",
    "lt",
    "lte",
    "matches_fragment",
    "ne",
    "nin",
    "or_",
    "parse_filter",
]
