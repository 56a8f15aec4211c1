"""
Local embedding provider using HuggingFace transformer models.

Provides async embedding generation with:
- Lazy model loading for efficient resource usage
- Automatic device detection (GPU/CPU/MPS)
- Chunking with mean pooling for texts longer than the model context
- Optional Redis caching to avoid recomputation
- FP16 support for GPU acceleration
"""

import asyncio
import hashlib
import json
import threading
import time
from typing import Any

import numpy as np
import redis.asyncio as redis
import structlog
import torch
from transformers import AutoModel, AutoTokenizer

from docvector.embedding.base import EmbeddingGateway, register_embedding_provider
from docvector.embedding.config import EmbeddingConfig
from docvector.exceptions import EmbeddingProviderError
from docvector.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


@register_embedding_provider("transformers")
class TransformersEmbeddingGateway(EmbeddingGateway):
    """
    Embedding gateway backed by a local transformer model.

    Uses lazy initialization to defer model loading until first use,
    which matters for processes that only read or delete documents.

    Features:
    - Automatic device selection (CUDA > MPS > CPU)
    - FP16 inference for GPU acceleration
    - Chunking for texts exceeding the model's token limit
    - Redis caching using content hash keys (per model)

    Usage:
        gateway = TransformersEmbeddingGateway()
        embedding = await gateway.embed("Quarterly report for the storage team")
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        redis_client: redis.Redis | None = None,
    ):
        """
        Initialize the gateway.

        Model loading is deferred until first embed call.

        Args:
            config: Embedding configuration (uses defaults if None)
            redis_client: Redis client for caching (optional)
        """
        self._config = config or EmbeddingConfig()
        self._redis = redis_client
        if self._redis is None and self._config.cache_enabled:
            self._redis = redis.from_url(
                self._config.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            self._owns_redis = True
        else:
            self._owns_redis = False

        self._model: Any = None
        self._tokenizer: Any = None
        self._device: torch.device | None = None
        self._initialized = False
        self._load_lock = threading.Lock()

        logger.info(
            "TransformersEmbeddingGateway created",
            model=self._config.model_name,
            cache_enabled=self._config.cache_enabled,
        )

    @property
    def dimensions(self) -> int:
        return self._config.embedding_dim

    @property
    def is_initialized(self) -> bool:
        """Check if the model is loaded."""
        return self._initialized

    def _detect_device(self) -> torch.device:
        """Detect the best available device for inference."""
        if self._device is not None:
            return self._device

        if self._config.device != "auto":
            self._device = torch.device(self._config.device)
            return self._device

        if torch.cuda.is_available():
            logger.info("Using CUDA device for embeddings")
            self._device = torch.device("cuda")
        elif torch.backends.mps.is_available():
            logger.info("Using MPS device for embeddings")
            self._device = torch.device("mps")
        else:
            logger.info("Using CPU for embeddings")
            self._device = torch.device("cpu")

        return self._device

    def _initialize(self) -> None:
        """Load model and tokenizer on first use, once across worker threads."""
        if self._initialized:
            return
        with self._load_lock:
            if not self._initialized:
                self._load_model()

    def _load_model(self) -> None:
        device = self._detect_device()
        model_name = self._config.model_name
        logger.info("Loading embedding model", model=model_name)

        try:
            tokenizer = AutoTokenizer.from_pretrained(
                model_name,
                model_max_length=self._config.max_sequence_length,
            )
            model = AutoModel.from_pretrained(model_name)
        except Exception as e:
            raise EmbeddingProviderError(
                f"Failed to load embedding model {model_name}: {e}",
                reason="model",
                provider=self.provider_name,
            ) from e

        model.to(device)
        model.eval()

        if self._config.use_fp16 and device.type == "cuda":
            model = model.half()
            logger.info("FP16 inference enabled", model=model_name)

        self._model = model
        self._tokenizer = tokenizer
        self._initialized = True

        logger.info(
            "Embedding model loaded",
            model=model_name,
            device=str(device),
            fp16=self._config.use_fp16 and device.type == "cuda",
        )

    def _make_cache_key(self, text: str) -> str:
        """Create cache key with model prefix to avoid collisions."""
        content_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]
        return f"{self._config.cache_key_prefix}{self._config.model_name}:{content_hash}"

    async def _get_cached_embedding(self, text: str) -> list[float] | None:
        """Try to retrieve embedding from cache."""
        if not self._config.cache_enabled or not self._redis:
            return None

        cache_key = self._make_cache_key(text)

        try:
            cached = await self._redis.get(cache_key)
        except Exception as e:
            logger.warning("Cache retrieval failed", error=str(e))
            return None

        get_metrics().record_embedding_cache(hit=bool(cached))
        if cached:
            return json.loads(cached)
        return None

    async def _cache_embedding(self, text: str, embedding: list[float]) -> None:
        """Store embedding in cache."""
        if not self._config.cache_enabled or not self._redis:
            return

        try:
            await self._redis.setex(
                self._make_cache_key(text),
                self._config.cache_ttl_seconds,
                json.dumps(embedding),
            )
        except Exception as e:
            logger.warning("Cache storage failed", error=str(e))

    def _chunk_text(self, text: str) -> list[str]:
        """
        Split text into overlapping chunks that fit within model context.

        Uses the tokenizer so chunks respect token limits.
        """
        self._initialize()
        tokenizer = self._tokenizer

        tokens = tokenizer.encode(text, add_special_tokens=False)
        # Reserve room for [CLS] and [SEP]
        max_tokens = self._config.max_sequence_length - 2

        if len(tokens) <= max_tokens:
            return [text]

        chunks = []
        stride = max(1, max_tokens - self._config.chunk_overlap)
        start = 0

        while start < len(tokens):
            end = min(start + max_tokens, len(tokens))
            chunks.append(tokenizer.decode(tokens[start:end], skip_special_tokens=True))
            if end >= len(tokens):
                break
            start += stride

        logger.debug("Split text into chunks", chunks=len(chunks))
        return chunks

    def _embed_single(self, text: str) -> np.ndarray:
        """Generate embedding for a single chunk (synchronous)."""
        self._initialize()
        device = self._detect_device()

        inputs = self._tokenizer(
            text,
            return_tensors="pt",
            truncation=True,
            max_length=self._config.max_sequence_length,
            padding=True,
        )
        inputs = {k: v.to(device) for k, v in inputs.items()}

        with torch.no_grad():
            outputs = self._model(**inputs)

        # Mean pool over the sequence, ignoring padding
        attention_mask = inputs["attention_mask"]
        token_embeddings = outputs.last_hidden_state
        input_mask_expanded = (
            attention_mask.unsqueeze(-1).expand(token_embeddings.size()).float()
        )
        sum_embeddings = torch.sum(token_embeddings * input_mask_expanded, dim=1)
        sum_mask = torch.clamp(input_mask_expanded.sum(dim=1), min=1e-9)
        embedding = sum_embeddings / sum_mask

        return embedding.cpu().numpy()[0]

    def _embed_text(self, text: str) -> list[float]:
        """Chunk, embed and mean pool one text (synchronous)."""
        chunks = self._chunk_text(text)
        if len(chunks) == 1:
            embedding = self._embed_single(chunks[0])
        else:
            embedding = np.mean(
                np.array([self._embed_single(chunk) for chunk in chunks]), axis=0
            )
        return [float(x) for x in embedding]

    async def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for one text.

        Long texts are chunked and mean pooled. Empty text maps to the zero vector.

        Raises:
            EmbeddingProviderError: If the model cannot be loaded or inference fails
        """
        if not text.strip():
            return [0.0] * self.dimensions

        cached = await self._get_cached_embedding(text)
        if cached is not None:
            return cached

        start = time.perf_counter()
        try:
            result = await asyncio.to_thread(self._embed_text, text)
        except EmbeddingProviderError as e:
            get_metrics().record_embedding_error(self.provider_name, e.reason)
            raise
        except Exception as e:
            get_metrics().record_embedding_error(self.provider_name, "model")
            raise EmbeddingProviderError(
                f"Embedding inference failed: {e}",
                reason="model",
                provider=self.provider_name,
            ) from e
        get_metrics().record_embedding_latency(
            self.provider_name, "single", time.perf_counter() - start
        )

        await self._cache_embedding(text, result)
        return result

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for multiple texts, checking the cache for each.

        Args:
            texts: Texts to embed

        Returns:
            Embeddings in input order
        """
        if not texts:
            return []

        results: list[list[float] | None] = [None] * len(texts)
        to_embed: list[tuple[int, str]] = []

        for i, text in enumerate(texts):
            if not text.strip():
                results[i] = [0.0] * self.dimensions
                continue
            cached = await self._get_cached_embedding(text)
            if cached is not None:
                results[i] = cached
            else:
                to_embed.append((i, text))

        logger.debug(
            "Embedding batch",
            texts=len(texts),
            cached=len(texts) - len(to_embed),
            to_generate=len(to_embed),
        )

        start = time.perf_counter()
        batch_size = self._config.batch_size
        for batch_start in range(0, len(to_embed), batch_size):
            for idx, text in to_embed[batch_start : batch_start + batch_size]:
                try:
                    embedding = await asyncio.to_thread(self._embed_text, text)
                except EmbeddingProviderError as e:
                    get_metrics().record_embedding_error(self.provider_name, e.reason)
                    raise
                except Exception as e:
                    get_metrics().record_embedding_error(self.provider_name, "model")
                    raise EmbeddingProviderError(
                        f"Embedding inference failed: {e}",
                        reason="model",
                        provider=self.provider_name,
                    ) from e
                results[idx] = embedding
                await self._cache_embedding(text, embedding)

        if to_embed:
            get_metrics().record_embedding_latency(
                self.provider_name, "batch", time.perf_counter() - start
            )
        return results  # type: ignore[return-value]

    async def close(self) -> None:
        """Release the model and any Redis client this gateway created."""
        self._model = None
        self._tokenizer = None
        self._initialized = False
        if self._owns_redis and self._redis is not None:
            await self._redis.aclose()
            self._redis = None
        logger.info("TransformersEmbeddingGateway closed")
