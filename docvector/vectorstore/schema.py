"""
Collection schema, similarity metrics and score normalization.

A CollectionSchema names the table, vector column and vector index of one
collection together with its dimensionality, metric and filterable fields.
Stores are bound to exactly one schema for their lifetime.
"""

import math
from dataclasses import dataclass, field
from enum import Enum

from docvector.filters.backends import IDENTIFIER_RE


class SimilarityMetric(str, Enum):
    """Vector similarity functions supported by the index."""

    COSINE = "cosine"
    DOT_PRODUCT = "dotProduct"
    EUCLIDEAN = "euclidean"

    @classmethod
    def parse(cls, value: "str | SimilarityMetric") -> "SimilarityMetric":
        """Accept enum members, canonical names, or snake/lower-case spellings."""
        if isinstance(value, cls):
            return value
        normalized = str(value).replace("_", "").lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        raise ValueError(
            f"Unknown similarity metric {value!r}; "
            f"expected one of {', '.join(m.value for m in cls)}"
        )


# pgvector distance operators per metric
DISTANCE_OPERATORS = {
    SimilarityMetric.COSINE: "<=>",
    SimilarityMetric.DOT_PRODUCT: "<#>",
    SimilarityMetric.EUCLIDEAN: "<->",
}

# pgvector HNSW operator classes per metric
INDEX_OPCLASSES = {
    SimilarityMetric.COSINE: "vector_cosine_ops",
    SimilarityMetric.DOT_PRODUCT: "vector_ip_ops",
    SimilarityMetric.EUCLIDEAN: "vector_l2_ops",
}


_EXACT_TOLERANCE = 1e-9


def _clamp(score: float) -> float:
    if math.isnan(score):
        return 0.0
    # Float rounding on identical vectors lands a hair off 1.0
    if abs(score - 1.0) < _EXACT_TOLERANCE:
        return 1.0
    return min(1.0, max(0.0, score))


def score_from_similarity(metric: SimilarityMetric, similarity: float) -> float:
    """
    Map a raw cosine similarity or dot product to a score in [0, 1].

    Not valid for euclidean, which is distance based.
    """
    if metric == SimilarityMetric.EUCLIDEAN:
        raise ValueError("euclidean scores are derived from distances")
    return _clamp((1.0 + similarity) / 2.0)


def score_from_distance(metric: SimilarityMetric, distance: float) -> float:
    """
    Map a pgvector operator result to a score in [0, 1].

    <=> returns 1 - cos, <#> returns -(a . b), <-> returns the L2 distance.
    """
    if metric == SimilarityMetric.COSINE:
        return score_from_similarity(metric, 1.0 - distance)
    if metric == SimilarityMetric.DOT_PRODUCT:
        return score_from_similarity(metric, -distance)
    return _clamp(1.0 / (1.0 + max(0.0, distance)))


def _check_identifier(kind: str, name: str) -> None:
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        raise ValueError(
            f"Invalid {kind} {name!r}: must match [A-Za-z_][A-Za-z0-9_]* "
            f"and be at most 63 characters"
        )


@dataclass(frozen=True)
class CollectionSchema:
    """
    Immutable description of one collection and its vector index.

    Attributes:
        collection_name: Table holding the documents
        vector_path_name: Column holding the embedding
        vector_index_name: Name of the ANN index on vector_path_name
        dimensions: Embedding length the index accepts
        similarity_metric: Similarity function of the index
        filterable_fields: Metadata fields that may appear in filters
    """

    collection_name: str = "vector_store"
    vector_path_name: str = "embedding"
    vector_index_name: str = "vector_index"
    dimensions: int = 384
    similarity_metric: SimilarityMetric = SimilarityMetric.COSINE
    filterable_fields: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        _check_identifier("collection name", self.collection_name)
        _check_identifier("vector path name", self.vector_path_name)
        _check_identifier("vector index name", self.vector_index_name)
        if isinstance(self.dimensions, bool) or not isinstance(self.dimensions, int):
            raise ValueError(f"dimensions must be an integer, got {self.dimensions!r}")
        if self.dimensions <= 0:
            raise ValueError(f"dimensions must be positive, got {self.dimensions}")
        # Frozen: normalize through object.__setattr__
        object.__setattr__(
            self, "similarity_metric", SimilarityMetric.parse(self.similarity_metric)
        )
        fields = frozenset(self.filterable_fields)
        for name in fields:
            _check_identifier("filterable field", name)
        object.__setattr__(self, "filterable_fields", fields)

    @property
    def distance_operator(self) -> str:
        return DISTANCE_OPERATORS[self.similarity_metric]

    @property
    def index_opclass(self) -> str:
        return INDEX_OPCLASSES[self.similarity_metric]


class BootstrapAction(str, Enum):
    """What ensure_schema did for one object."""

    CREATED = "created"
    FOUND_EXISTING = "found_existing"


@dataclass
class SchemaBootstrapResult:
    """
    Outcome of ensure_schema.

    Attributes:
        collection: Whether the collection was created or already present
        index: Whether the vector index was created or already present
        warnings: Mismatches between the live index and the configured schema
    """

    collection: BootstrapAction
    index: BootstrapAction
    warnings: list[str] = field(default_factory=list)

    @property
    def created_anything(self) -> bool:
        return BootstrapAction.CREATED in (self.collection, self.index)
