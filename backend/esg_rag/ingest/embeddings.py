"""Embedding providers.

Two variants share one contract: ``embed(texts)`` returns one vector per input,
in input order, all of the provider's fixed dimension.

* :class:`HashedEmbeddingProvider` is local and deterministic. It hashes tokens
  into a fixed number of slots, so it never fails and needs no network; the
  vectors are lower fidelity than a trained model's.
* :class:`RemoteEmbeddingProvider` talks to an OpenAI-compatible
  ``/embeddings`` endpoint and maps transport and HTTP failures onto
  :class:`TransientProviderError` (worth retrying) or
  :class:`PermanentProviderError` (not).
"""

from __future__ import annotations

import hashlib
import math
import re
import threading
from typing import Any, Sequence

import requests

from esg_rag.core.config import Settings
from esg_rag.core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    PermanentProviderError,
    TransientProviderError,
)
from esg_rag.core.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"\w+")
DIMENSION_PROBE_TEXT = "dimension probe"
DEFAULT_HASHED_DIMENSION = 384
_TRANSIENT_STATUS = {408, 409, 429}
_MAX_INPUT_CHARS = 8192


class EmbeddingProvider:
    """Common provider interface."""

    name: str = "base"
    max_batch_size: int = 1

    def __init__(self, dimension: int | None = None) -> None:
        self._dimension = dimension
        self._dimension_lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        """Vector size; ``None`` until configured or seen in a response."""
        return self._dimension

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        if len(texts) > self.max_batch_size:
            raise PermanentProviderError(
                f"Batch of {len(texts)} exceeds {self.name} limit of {self.max_batch_size}"
            )
        vectors = self._embed_batch([_preprocess(text) for text in texts])
        if len(vectors) != len(texts):
            raise PermanentProviderError(
                f"{self.name} returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        with self._dimension_lock:
            if self._dimension is None:
                self._dimension = len(vectors[0])
            expected = self._dimension
        for vector in vectors:
            if len(vector) != expected:
                raise DimensionMismatchError(expected, len(vector), detail=f"provider {self.name}")
        return vectors

    def close(self) -> None:
        """Release provider resources."""

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:  # pragma: no cover - interface
        raise NotImplementedError


class HashedEmbeddingProvider(EmbeddingProvider):
    """Lightweight hashed embedding model with deterministic output."""

    max_batch_size = 1024

    def __init__(self, model_name: str = "hashed", dimension: int = DEFAULT_HASHED_DIMENSION) -> None:
        if dimension <= 0:
            raise ConfigurationError(f"Embedding dimension must be positive, got {dimension}")
        super().__init__(dimension=dimension)
        self.name = model_name

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        dim = self._dimension
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * dim
            for token in _tokenize(text):
                vector[_hash_token(token, dim)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


class RemoteEmbeddingProvider(EmbeddingProvider):
    """Client for an OpenAI-compatible embeddings endpoint."""

    def __init__(
        self,
        model: str,
        api_url: str,
        api_key: str | None,
        dimension: int | None = None,
        timeout: float = 30.0,
        max_batch_size: int = 96,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("An API key is required for remote embeddings")
        if max_batch_size <= 0:
            raise ConfigurationError(f"maxBatchSize must be positive, got {max_batch_size}")
        super().__init__(dimension=dimension)
        self.name = model
        self.model = model
        self.endpoint = f"{api_url.rstrip('/')}/embeddings"
        self.timeout = timeout
        self.max_batch_size = max_batch_size
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def close(self) -> None:
        self._session.close()

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        body: dict[str, Any] = {"model": self.model, "input": texts, "encoding_format": "float"}
        try:
            resp = self._session.post(self.endpoint, json=body, timeout=self.timeout)
        except requests.Timeout as exc:
            raise TransientProviderError(f"Embedding request timed out after {self.timeout}s") from exc
        except requests.ConnectionError as exc:
            raise TransientProviderError(f"Embedding endpoint unreachable: {exc}") from exc
        except requests.exceptions.ChunkedEncodingError as exc:
            raise TransientProviderError(f"Embedding response interrupted: {exc}") from exc
        except requests.RequestException as exc:
            raise PermanentProviderError(f"Embedding request failed: {exc}") from exc
        if resp.status_code in _TRANSIENT_STATUS or resp.status_code >= 500:
            raise TransientProviderError(
                f"Embedding API error {resp.status_code}: {_error_detail(resp)}",
                retry_after=_retry_after(resp),
            )
        if not resp.ok:
            raise PermanentProviderError(f"Embedding API error {resp.status_code}: {_error_detail(resp)}")
        try:
            payload = resp.json()
            items = sorted(payload["data"], key=lambda item: item["index"])
            return [[float(value) for value in item["embedding"]] for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise PermanentProviderError(f"Malformed embedding response: {exc}") from exc


def build_provider(settings: Settings) -> EmbeddingProvider:
    """Select the provider variant named by ``embeddings.model``."""
    selector = settings.embedding_model.strip()
    kind, _, model = selector.partition(":")
    kind = kind.lower()
    if kind in {"hashed", "local"}:
        dimension = settings.embedding_dim or DEFAULT_HASHED_DIMENSION
        return HashedEmbeddingProvider(model_name=selector, dimension=dimension)
    if kind in {"openai", "remote"}:
        if not model:
            raise ConfigurationError(f"Remote embedding selector '{selector}' names no model")
        return RemoteEmbeddingProvider(
            model=model,
            api_url=settings.embedding_api_url,
            api_key=settings.embedding_api_key,
            dimension=settings.embedding_dim,
            timeout=settings.embedding_timeout,
            max_batch_size=settings.embedding_max_batch_size,
        )
    raise ConfigurationError(f"Unknown embedding provider '{selector}'")


def _preprocess(text: str) -> str:
    return " ".join(text.split())[:_MAX_INPUT_CHARS]


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


def _retry_after(resp: requests.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def _error_detail(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("message", payload["error"]))
    return str(payload)[:200]


__all__ = [
    "DEFAULT_HASHED_DIMENSION",
    "DIMENSION_PROBE_TEXT",
    "EmbeddingProvider",
    "HashedEmbeddingProvider",
    "RemoteEmbeddingProvider",
    "build_provider",
]
