"""In-test embedding providers and HTTP doubles."""

from __future__ import annotations

import re
import threading
from typing import Any, Callable, Sequence

from esg_rag.ingest.embeddings import EmbeddingProvider
from esg_rag.retrieval import VectorIndex

KEYWORDS = ("carbon", "water", "diversity", "governance")
_WORD_RE = re.compile(r"\w+")


def keyword_vector(text: str) -> list[float]:
    """One axis per ESG keyword, weighted by occurrence count."""
    words = _WORD_RE.findall(text.lower())
    return [float(words.count(keyword)) for keyword in KEYWORDS]


class ScriptedProvider(EmbeddingProvider):
    """Keyword embeddings with scripted failures.

    ``errors`` is consumed one entry per call (``None`` means succeed);
    ``fail_markers`` raises the mapped error whenever a batch contains the marker.
    """

    name = "scripted"

    def __init__(
        self,
        max_batch_size: int = 64,
        errors: Sequence[Exception | None] = (),
        fail_markers: dict[str, Exception] | None = None,
        hook: Callable[[list[str]], None] | None = None,
        dimension: int | None = len(KEYWORDS),
    ) -> None:
        super().__init__(dimension=dimension)
        self.max_batch_size = max_batch_size
        self.errors = list(errors)
        self.fail_markers = fail_markers or {}
        self.hook = hook
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    @property
    def embedded_texts(self) -> list[str]:
        return [text for call in self.calls for text in call]

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        with self._lock:
            self.calls.append(list(texts))
            error = self.errors.pop(0) if self.errors else None
        if self.hook is not None:
            self.hook(texts)
        if error is not None:
            raise error
        for marker, marker_error in self.fail_markers.items():
            if any(marker in text for text in texts):
                raise marker_error
        return [keyword_vector(text) for text in texts]


class NarrowProvider(ScriptedProvider):
    """Keyword embeddings without the last axis, standing in for a swapped model."""

    name = "narrow"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(dimension=len(KEYWORDS) - 1, **kwargs)

    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [vector[:-1] for vector in super()._embed_batch(texts)]


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        headers: dict[str, str] | None = None,
        text: str = "",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Stands in for ``requests.Session``; replays responses or raises errors."""

    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self.responses = list(responses)
        self.headers: dict[str, str] = {}
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


class KeywordSession(FakeSession):
    """Answers every POST with keyword embeddings, raising ``errors[marker]`` for matching inputs."""

    def __init__(self, errors: dict[str, Exception] | None = None) -> None:
        super().__init__()
        self.errors = errors or {}
        self._lock = threading.Lock()

    def post(self, url: str, json: Any = None, timeout: float | None = None) -> FakeResponse:
        with self._lock:
            self.requests.append({"url": url, "json": json, "timeout": timeout})
        texts = json["input"]
        for marker, error in self.errors.items():
            if any(marker in text for text in texts):
                raise error
        return FakeResponse(payload=embedding_payload([keyword_vector(text) for text in texts]))


def embedding_payload(vectors: Sequence[Sequence[float]], reverse: bool = False) -> dict[str, Any]:
    data = [{"index": idx, "embedding": list(vector)} for idx, vector in enumerate(vectors)]
    if reverse:
        data.reverse()
    return {"data": data, "model": "test-embed"}


def indexed_document_ids(index: VectorIndex) -> list[str]:
    """Distinct document IDs in an index snapshot, in insertion order."""
    return list(dict.fromkeys(chunk.document_id for chunk in index.all_vectors()))
