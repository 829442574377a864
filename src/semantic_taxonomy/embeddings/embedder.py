"""
Embedding Client

This module implements the embedding provider adapter used for every topic
and query vector in the hierarchy. It talks to the Generative Language
``embedContent`` endpoint and is responsible for:

- Task-type hints (document vs. query embeddings)
- Configurable output dimensionality
- Bounded exponential backoff on quota / rate-limit responses
- Strict response validation

The adapter is the only component allowed to wait on the network; callers
treat ``embed`` as a blocking, retryable, ultimately fallible operation.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import settings

logger = logging.getLogger("taxonomy.embedder")


class EmbeddingError(RuntimeError):
    """Raised when embedding generation fails."""

    retryable = False


class EmbeddingRateLimitError(EmbeddingError):
    """Raised when the provider rejects a call for quota / rate reasons."""

    retryable = True


class TaskType(str, enum.Enum):
    """Embedding intent. Stored vectors use DOCUMENT, incoming text uses QUERY."""

    DOCUMENT = "RETRIEVAL_DOCUMENT"
    QUERY = "RETRIEVAL_QUERY"


SleepFn = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before retry number ``attempt`` (0-based)."""
    return (2 ** attempt * 1000 + 1000) / 1000.0


class Embedder:
    """
    Asynchronous single-text embedding generator.

    This class performs no caching; one HTTP call is made per ``embed``
    invocation (plus retries).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        sleep: SleepFn = asyncio.sleep,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Override for the provider API key. Defaults to settings.gemini_api_key.

        model : Optional[str]
            Override for the embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            API root. Defaults to settings.embedding_base_url.

        dimension : Optional[int]
            Default output dimensionality. Defaults to settings.embedding_dimension.

        timeout : Optional[float]
            HTTP timeout for each request.

        max_retries : Optional[int]
            Retries allowed after a rate-limit response before giving up.

        sleep : SleepFn
            Coroutine used to wait between retries. Tests inject a no-op.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom httpx transport (used by tests to stub the provider).
        """
        self.api_key = api_key if api_key is not None else settings.gemini_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.base_url = (base_url or settings.embedding_base_url).rstrip("/")
        self.dimension = dimension or settings.embedding_dimension
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self.max_retries = max_retries if max_retries is not None else settings.embedding_max_retries
        self._sleep = sleep
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        text: str,
        task_type: TaskType = TaskType.DOCUMENT,
        output_dimension: Optional[int] = None,
    ) -> List[float]:
        """
        Generate one embedding vector for ``text``.

        Rate-limit failures are retried with exponential backoff; after
        ``max_retries`` retries the last EmbeddingRateLimitError propagates.

        Raises
        ------
        EmbeddingError
            If the request fails for any other reason or the response is malformed.
        """
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text.")

        dimension = output_dimension or self.dimension
        attempt = 0

        while True:
            try:
                return await self._request(text, task_type, dimension)
            except EmbeddingRateLimitError:
                if attempt >= self.max_retries:
                    logger.error(
                        "Embedding quota still exhausted after %d retries, giving up",
                        attempt,
                    )
                    raise

                delay = backoff_delay(attempt)
                logger.warning(
                    "Embedding quota exhausted (retry %d/%d), waiting %.1fs",
                    attempt + 1,
                    self.max_retries,
                    delay,
                )
                await self._sleep(delay)
                attempt += 1

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        text: str,
        task_type: TaskType,
        dimension: int,
    ) -> List[float]:
        url = f"{self.base_url}/models/{self.model}:embedContent"
        payload = {
            "model": f"models/{self.model}",
            "content": {"parts": [{"text": text}]},
            "taskType": task_type.value,
            "outputDimensionality": dimension,
        }
        headers = {"x-goog-api-key": self.api_key}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): %s",
                    type(exc).__name__,
                    str(exc),
                )
                raise EmbeddingError(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

        if self._is_rate_limited(response):
            raise EmbeddingRateLimitError(
                f"Embedding provider quota exhausted (HTTP {response.status_code})"
            )

        if response.is_error:
            logger.error(
                "Embedding provider returned HTTP %d: %s",
                response.status_code,
                response.text[:200],
            )
            raise EmbeddingError(
                f"Embedding generation failed: HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        return self._extract_values(data, dimension)

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        if response.status_code < 400:
            return False
        try:
            status = response.json().get("error", {}).get("status")
        except ValueError:
            return False
        return status == "RESOURCE_EXHAUSTED"

    @staticmethod
    def _extract_values(data: dict, dimension: int) -> List[float]:
        """
        Parse and validate the provider output.

        The provider returns:
            { "embedding": { "values": [...] } }

        Raises
        ------
        EmbeddingError
            If the structure or dimensionality is unexpected.
        """
        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not isinstance(embedding, dict) or "values" not in embedding:
            raise EmbeddingError("Embedding response missing 'embedding.values' field.")

        values = embedding["values"]
        if not isinstance(values, list) or not all(
            isinstance(x, (float, int)) for x in values
        ):
            raise EmbeddingError("Invalid embedding vector: must be float list.")

        if len(values) != dimension:
            raise EmbeddingError(
                f"Embedding has {len(values)} dimensions, expected {dimension}."
            )

        return [float(x) for x in values]
