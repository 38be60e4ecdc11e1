"""
Embedding generation collaborators.

Two providers implement the same ``EmbeddingService`` contract:

* ``HttpEmbeddingService`` posts ``{"texts": [...]}`` to an external
  embedding endpoint and expects ``{"embeddings": [[...], ...]}`` back.
* ``SentenceTransformerEmbeddingService`` runs a sentence-transformers
  model in-process, loaded lazily on first use.

``embed`` is the single-item path used by search and propagates failures
as ``ServiceError``. ``embed_batch`` is the bulk path: results are
order-aligned with the input and a ``None`` entry marks a per-item
failure without aborting the rest of the batch.
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from ..exceptions import InvalidVector, ServiceError
from .vector import EmbeddingVector

# Import sentence transformers with fallback
try:
    from sentence_transformers import SentenceTransformer

    SENTENCE_TRANSFORMERS_AVAILABLE = True
except ImportError:
    SENTENCE_TRANSFORMERS_AVAILABLE = False

logger = logging.getLogger(__name__)

# Requests slower than this are logged as a performance warning
SLOW_REQUEST_SECONDS = 5.0


class EmbeddingService(ABC):
    """Turns text into fixed-dimension embedding vectors."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Name of the model producing the vectors."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Dimension every produced vector has."""

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingVector:
        """Embed one text; raises ServiceError on failure."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingVector | None]:
        """Embed many texts in as few collaborator calls as possible."""

    def _to_vector(self, values: Any) -> EmbeddingVector:
        vector = EmbeddingVector(values)
        if vector.dimension != self.dimensions:
            raise InvalidVector(f"Expected {self.dimensions} dimensions, got {vector.dimension}")
        return vector

    def _to_vector_or_none(self, values: Any, index: int) -> EmbeddingVector | None:
        try:
            return self._to_vector(values)
        except InvalidVector as e:
            logger.warning(f"Discarding embedding for batch item {index}: {e}")
            return None


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if an HTTP failure is worth retrying.

    Connection problems and timeouts are transient, as are 5xx responses.
    4xx responses mean a bad request or bad credentials and are NOT retried.
    """
    if isinstance(exception, httpx.TransportError):
        return True
    if isinstance(exception, httpx.HTTPStatusError):
        return 500 <= exception.response.status_code < 600
    return False


class HttpEmbeddingService(EmbeddingService):
    """Calls an external embedding endpoint over HTTP."""

    def __init__(
        self,
        endpoint: str,
        model_name: str,
        dimensions: int,
        api_key: str | None = None,
        batch_size: int = 32,
        timeout: float = 30.0,
        max_retries: int = 3,
        wait: wait_base | None = None,
    ):
        """
        Args:
            endpoint: URL accepting POST {"texts": [...]}
            model_name: Model the endpoint serves (reported, not sent)
            dimensions: Expected vector dimension; other sizes are rejected
            api_key: Optional bearer token
            batch_size: Maximum texts per request
            timeout: Per-request timeout in seconds
            max_retries: Attempts per request for transient failures
            wait: Tenacity wait strategy between attempts
        """
        self.endpoint = endpoint
        self._model_name = model_name
        self._dimensions = dimensions
        self._api_key = api_key
        self.batch_size = batch_size
        self.timeout = timeout
        self.max_retries = max_retries
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=5)

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    async def embed(self, text: str) -> EmbeddingVector:
        embeddings = await self._call_api([text])
        if not embeddings:
            raise ServiceError("No embedding returned for text")
        try:
            return self._to_vector(embeddings[0])
        except InvalidVector as e:
            raise ServiceError(f"Embedding service returned an invalid vector: {e}") from e

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingVector | None]:
        if not texts:
            return []

        results: list[EmbeddingVector | None] = [None] * len(texts)
        for start in range(0, len(texts), self.batch_size):
            chunk = texts[start : start + self.batch_size]
            try:
                embeddings = await self._call_api(chunk)
            except ServiceError as e:
                logger.error(f"Embedding batch {start}-{start + len(chunk) - 1} failed: {e}")
                continue

            if len(embeddings) != len(chunk):
                logger.warning(f"Embedding service returned {len(embeddings)} vectors for {len(chunk)} texts")
            for offset, values in enumerate(embeddings[: len(chunk)]):
                results[start + offset] = self._to_vector_or_none(values, start + offset)

        return results

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _call_api(self, texts: list[str]) -> list[Any]:
        """POST texts to the endpoint, retrying transient failures."""
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async for attempt in AsyncRetrying(
                    retry=retry_if_exception(is_retryable_error),
                    stop=stop_after_attempt(self.max_retries),
                    wait=self._wait,
                    reraise=True,
                ):
                    with attempt:
                        response = await client.post(self.endpoint, json={"texts": texts}, headers=self._headers())
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ServiceError(f"Embedding service returned status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ServiceError(f"Embedding service unavailable: {e.__class__.__name__}: {e}") from e

        duration = time.monotonic() - started
        if duration > SLOW_REQUEST_SECONDS:
            logger.warning(f"Slow embedding request: {duration * 1000:.2f}ms for {len(texts)} texts")

        try:
            data = response.json()
        except ValueError as e:
            raise ServiceError("Invalid response from embedding service") from e

        embeddings = data.get("embeddings") if isinstance(data, dict) else None
        if not isinstance(embeddings, list):
            raise ServiceError("Invalid response from embedding service")
        return embeddings


class SentenceTransformerEmbeddingService(EmbeddingService):
    """Runs a sentence-transformers model in-process."""

    def __init__(self, model_name: str, dimensions: int, device: str | None = None):
        self._model_name = model_name
        self._dimensions = dimensions
        self.device = device
        self._model = None
        # Thread-safe model loading (prevents loading the model twice)
        self._model_lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _ensure_model_loaded(self):
        if not SENTENCE_TRANSFORMERS_AVAILABLE:
            raise ServiceError("sentence_transformers not installed. Install with: pip install sentence-transformers")

        if self._model is None:
            with self._model_lock:
                # Double-check after acquiring lock (another thread may have loaded it)
                if self._model is None:
                    logger.info(f"Loading embedding model: {self._model_name}")
                    self._model = SentenceTransformer(self._model_name, device=self.device)
                    logger.info(f"Loaded model: {self._model_name}")
        return self._model

    async def _encode(self, payload: str | list[str]) -> Any:
        model = self._ensure_model_loaded()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: model.encode(payload, convert_to_tensor=False))

    async def embed(self, text: str) -> EmbeddingVector:
        try:
            values = await self._encode(text)
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to generate embedding: {e.__class__.__name__}: {e}")
            raise ServiceError(f"Embedding model failed: {e}") from e
        try:
            return self._to_vector(values)
        except InvalidVector as e:
            raise ServiceError(f"Embedding model produced an invalid vector: {e}") from e

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingVector | None]:
        if not texts:
            return []
        try:
            encoded = await self._encode(texts)
        except Exception as e:
            logger.error(f"Batch embedding failed for {len(texts)} texts: {e.__class__.__name__}: {e}")
            return [None] * len(texts)
        return [self._to_vector_or_none(values, i) for i, values in enumerate(encoded)]
