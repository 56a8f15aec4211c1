"""
Configuration for vector store operations.

Uses Pydantic BaseSettings for environment variable support.
"""

import json
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from docvector.vectorstore.schema import CollectionSchema, SimilarityMetric


class VectorStoreConfig(BaseSettings):
    """
    Configuration for document stores and the similarity search engine.

    All settings can be overridden via environment variables with
    VECTORSTORE_ prefix (e.g., VECTORSTORE_DEFAULT_TOP_K=20).
    """

    model_config = SettingsConfigDict(
        env_prefix="VECTORSTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Backend selection
    backend: Literal["pgvector", "memory"] = Field(
        default="pgvector",
        description="Storage backend for documents and vectors",
    )

    # Collection schema
    collection_name: str = Field(
        default="vector_store",
        description="Table holding the documents",
    )
    path_name: str = Field(
        default="embedding",
        description="Column holding the embedding vector",
    )
    index_name: str = Field(
        default="vector_index",
        description="Name of the vector index",
    )
    dimensions: int = Field(
        default=384,
        ge=1,
        le=16000,
        description="Embedding dimensionality of the collection",
    )
    similarity_metric: SimilarityMetric = Field(
        default=SimilarityMetric.COSINE,
        description="Similarity function: cosine, dotProduct or euclidean",
    )
    metadata_fields_to_filter: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Metadata fields allowed in filters (JSON list or comma-separated)",
    )
    initialize_schema: bool = Field(
        default=False,
        description="Create the collection and vector index at startup",
    )

    # Search defaults
    default_top_k: int = Field(
        default=4,
        ge=1,
        le=1000,
        description="Default number of results to return",
    )
    default_similarity_threshold: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Default minimum similarity score",
    )
    num_candidates_multiplier: int = Field(
        default=10,
        ge=1,
        le=100,
        description="ANN candidate list size as a multiple of top_k",
    )

    @field_validator("similarity_metric", mode="before")
    @classmethod
    def _parse_metric(cls, value: object) -> SimilarityMetric:
        return SimilarityMetric.parse(value)  # type: ignore[arg-type]

    @field_validator("metadata_fields_to_filter", mode="before")
    @classmethod
    def _parse_fields(cls, value: object) -> object:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return []
            if text.startswith("["):
                return json.loads(text)
            return [part.strip() for part in text.split(",") if part.strip()]
        return value

    def to_schema(self) -> CollectionSchema:
        """Build the CollectionSchema these settings describe."""
        return CollectionSchema(
            collection_name=self.collection_name,
            vector_path_name=self.path_name,
            vector_index_name=self.index_name,
            dimensions=self.dimensions,
            similarity_metric=self.similarity_metric,
            filterable_fields=frozenset(self.metadata_fields_to_filter),
        )
