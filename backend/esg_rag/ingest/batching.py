"""Batched embedding generation with bounded concurrency and retries."""

from __future__ import annotations

import contextvars
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from functools import partial
from typing import Sequence

from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from esg_rag.core.errors import ConfigurationError, PermanentProviderError, TransientProviderError
from esg_rag.core.logging import get_logger
from esg_rag.core.metrics import EMBEDDING_RETRIES
from esg_rag.ingest.embeddings import EmbeddingProvider

logger = get_logger(__name__)

CANCELLED = "cancelled"
_POLL_INTERVAL = 0.05


class _Interrupted(Exception):
    """Raised inside a retry loop once the job is cancelled or halted."""


@dataclass(slots=True)
class EmbeddingOutcome:
    """Result for one input text: a vector or the reason it has none."""

    index: int
    vector: list[float] | None = None
    error: str | None = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.vector is not None


class BatchOrchestrator:
    """Drive an embedding provider over many texts.

    Texts are partitioned into ordered groups; at most ``max_concurrency``
    groups are in flight. A group that keeps failing only fails its own texts.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        batch_size: int,
        max_concurrency: int = 2,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError(f"batchSize must be at least 1, got {batch_size}")
        if max_concurrency < 1:
            raise ConfigurationError(f"max concurrency must be at least 1, got {max_concurrency}")
        if max_attempts < 1:
            raise ConfigurationError(f"max attempts must be at least 1, got {max_attempts}")
        if backoff_base < 0 or backoff_max < 0:
            raise ConfigurationError("backoff delays must not be negative")
        self.provider = provider
        self.batch_size = batch_size
        self.group_size = min(batch_size, provider.max_batch_size)
        self.max_concurrency = max_concurrency
        self.max_attempts = max_attempts
        self._backoff = wait_exponential(multiplier=backoff_base, max=backoff_max)

    def partition(self, count: int) -> list[range]:
        return [range(start, min(start + self.group_size, count)) for start in range(0, count, self.group_size)]

    def embed_all(
        self,
        texts: Sequence[str],
        cancel_event: threading.Event | None = None,
    ) -> list[EmbeddingOutcome]:
        """Embed ``texts``, returning one outcome per text in input order."""
        if not texts:
            return []
        cancel_event = cancel_event or threading.Event()
        halt = threading.Event()
        groups = self.partition(len(texts))
        outcomes: list[EmbeddingOutcome | None] = [None] * len(texts)
        workers = min(self.max_concurrency, len(groups))

        if workers == 1:
            for group in groups:
                for outcome in self._run_group(texts, group, cancel_event, halt):
                    outcomes[outcome.index] = outcome
            return outcomes  # type: ignore[return-value]

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="embed")
        try:
            futures = [
                executor.submit(contextvars.copy_context().run, self._run_group, texts, group, cancel_event, halt)
                for group in groups
            ]
            for future in as_completed(futures):
                for outcome in future.result():
                    outcomes[outcome.index] = outcome
        except BaseException:
            halt.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
        return outcomes  # type: ignore[return-value]

    def _run_group(
        self,
        texts: Sequence[str],
        group: range,
        cancel_event: threading.Event,
        halt: threading.Event,
    ) -> list[EmbeddingOutcome]:
        batch = [texts[idx] for idx in group]
        attempts = 0

        def attempt() -> list[list[float]]:
            nonlocal attempts
            if cancel_event.is_set() or halt.is_set():
                raise _Interrupted
            attempts += 1
            return self.provider.embed(batch)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(TransientProviderError),
            sleep=partial(_sleep_unless_cancelled, cancel_event, halt),
            before_sleep=partial(_log_retry, group),
            reraise=True,
        )
        try:
            vectors = retrying(attempt)
        except _Interrupted:
            return _failed(group, CANCELLED, attempts)
        except TransientProviderError as exc:
            logger.warning(
                "Embedding batch %s-%s failed after %s attempts: %s",
                group.start,
                group.stop,
                attempts,
                exc,
            )
            return _failed(group, f"transient failure after {attempts} attempts: {exc}", attempts)
        except PermanentProviderError as exc:
            logger.warning("Embedding batch %s-%s rejected: %s", group.start, group.stop, exc)
            return _failed(group, f"permanent failure: {exc}", attempts)
        return [
            EmbeddingOutcome(index=idx, vector=vector, attempts=attempts)
            for idx, vector in zip(group, vectors)
        ]

    def _wait(self, retry_state: RetryCallState) -> float:
        """Exponential backoff, stretched to the server's ``Retry-After``."""
        delay = self._backoff(retry_state)
        error = retry_state.outcome.exception() if retry_state.outcome else None
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            delay = max(delay, retry_after)
        return delay


def _failed(group: range, reason: str, attempts: int) -> list[EmbeddingOutcome]:
    return [EmbeddingOutcome(index=idx, error=reason, attempts=attempts) for idx in group]


def _log_retry(group: range, retry_state: RetryCallState) -> None:
    EMBEDDING_RETRIES.inc()
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.info(
        "Retrying embedding batch %s-%s in %.2fs: %s",
        group.start,
        group.stop,
        delay,
        retry_state.outcome.exception(),
    )


def _sleep_unless_cancelled(cancel_event: threading.Event, halt: threading.Event, seconds: float) -> None:
    """Back off for ``seconds``, aborting the retry loop on cancellation."""
    deadline = time.monotonic() + seconds
    while not (cancel_event.is_set() or halt.is_set()):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return
        halt.wait(min(remaining, _POLL_INTERVAL))
    raise _Interrupted


__all__ = ["BatchOrchestrator", "EmbeddingOutcome", "CANCELLED"]
