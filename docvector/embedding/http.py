"""
Remote embedding provider for OpenAI-compatible HTTP endpoints.

Posts {"model": ..., "input": [...]} to {base_url}/embeddings and reads
data[i].embedding from the response. Works against OpenAI, Ollama,
vLLM and text-embeddings-inference servers.

Failures are mapped to EmbeddingProviderError reason codes:
- timeout: the request exceeded request_timeout
- auth: HTTP 401/403
- quota: HTTP 429
- upstream: any other HTTP error status or a malformed payload
- transport: connection-level failures
"""

import time
from typing import Any

import httpx
import structlog

from docvector.embedding.base import EmbeddingGateway, register_embedding_provider
from docvector.embedding.config import EmbeddingConfig
from docvector.exceptions import EmbeddingProviderError
from docvector.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


@register_embedding_provider("http")
class HttpEmbeddingGateway(EmbeddingGateway):
    """
    Embedding gateway calling a remote embeddings API.

    Does not retry: a failed call surfaces as EmbeddingProviderError with a
    reason code, and the caller applies its own retry policy.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._config = config or EmbeddingConfig()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._config.request_timeout,
        )
        self._url = self._config.base_url.rstrip("/") + "/embeddings"

    @property
    def dimensions(self) -> int:
        return self._config.embedding_dim

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _fail(self, message: str, reason: str, status_code: int | None = None) -> EmbeddingProviderError:
        get_metrics().record_embedding_error(self.provider_name, reason)
        logger.warning(
            "Embedding request failed",
            provider=self.provider_name,
            reason=reason,
            status_code=status_code,
            error=message,
        )
        return EmbeddingProviderError(
            message,
            reason=reason,
            provider=self.provider_name,
            status_code=status_code,
        )

    async def _request(self, texts: list[str]) -> list[list[float]]:
        payload = {"model": self._config.model_name, "input": texts}

        start = time.perf_counter()
        try:
            response = await self._client.post(
                self._url,
                json=payload,
                headers=self._headers(),
                timeout=self._config.request_timeout,
            )
        except httpx.TimeoutException as e:
            raise self._fail(f"Embedding request timed out: {e}", "timeout") from e
        except httpx.HTTPError as e:
            raise self._fail(f"Embedding request failed: {e}", "transport") from e

        status = response.status_code
        if status in (401, 403):
            raise self._fail(f"Embedding API rejected credentials (HTTP {status})", "auth", status)
        if status == 429:
            raise self._fail("Embedding API quota exceeded (HTTP 429)", "quota", status)
        if status >= 400:
            raise self._fail(f"Embedding API returned HTTP {status}", "upstream", status)

        try:
            data: list[dict[str, Any]] = response.json()["data"]
            # Some servers return items out of order; "index" is authoritative
            if all("index" in item for item in data):
                data = sorted(data, key=lambda item: item["index"])
            embeddings = [[float(x) for x in item["embedding"]] for item in data]
        except (ValueError, KeyError, TypeError) as e:
            raise self._fail(f"Malformed embedding response: {e}", "upstream", status) from e

        if len(embeddings) != len(texts):
            raise self._fail(
                f"Embedding API returned {len(embeddings)} vectors for {len(texts)} inputs",
                "upstream",
                status,
            )

        get_metrics().record_embedding_latency(
            self.provider_name,
            "single" if len(texts) == 1 else "batch",
            time.perf_counter() - start,
        )
        return embeddings

    async def embed(self, text: str) -> list[float]:
        if not text.strip():
            return [0.0] * self.dimensions
        embeddings = await self._request([text])
        return embeddings[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in chunks of batch_size, preserving input order."""
        results: list[list[float]] = [[0.0] * self.dimensions for _ in texts]
        pending = [(i, text) for i, text in enumerate(texts) if text.strip()]

        batch_size = self._config.batch_size
        for start in range(0, len(pending), batch_size):
            chunk = pending[start : start + batch_size]
            embeddings = await self._request([text for _, text in chunk])
            for (idx, _), embedding in zip(chunk, embeddings):
                results[idx] = embedding

        return results

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
