"""Embedding adapter — batch texts through a provider with bounded retries.

``Embedder.embed`` returns exactly one vector per input, in input order, or
raises: a batch either fully succeeds or the whole call fails. Transient
provider errors are retried with exponential backoff (tenacity); malformed
input is never retried.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kbsync.errors import DimensionMismatch, ProviderTransientError
from kbsync.rag import llm_client

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """External embedding capability: N texts in, N vectors out (one call)."""

    @abstractmethod
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*.

        Raises:
            ProviderTransientError: Retryable failure.
            ProviderMalformedInput: The batch was rejected.
        """


class LiteLLMEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by ``litellm.embedding``."""

    def __init__(self, model: str, timeout: float = 30.0) -> None:
        self.model = model
        self.timeout = timeout

    def embed(self, texts: list[str]) -> list[list[float]]:
        return llm_client.embed_batch(self.model, texts, timeout=self.timeout)


class Embedder:
    """Batching, retrying front-end over an ``EmbeddingProvider``.

    Args:
        provider: The provider to call.
        dimensions: Expected vector width; None skips the check.
        batch_size: Maximum texts per provider call.
        max_attempts: Total attempts per batch for transient failures.
        backoff_min: Minimum wait between attempts (seconds).
        backoff_max: Maximum wait between attempts (seconds).
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        *,
        dimensions: int | None = None,
        batch_size: int = 64,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 20.0,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.provider = provider
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.max_attempts = max(1, max_attempts)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_config(cls, cfg, provider: EmbeddingProvider | None = None) -> Embedder:
        """Build from an ``EmbeddingCfg``; defaults to the LiteLLM provider."""
        return cls(
            provider or LiteLLMEmbeddingProvider(cfg.model, timeout=cfg.timeout),
            dimensions=cfg.dimensions,
            batch_size=cfg.batch_size,
            max_attempts=cfg.max_attempts,
            backoff_min=cfg.backoff_min,
            backoff_max=cfg.backoff_max,
        )

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in batches; returns ``len(texts)`` vectors in order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors.extend(self._embed_batch(batch))
        return vectors

    def embed_query(self, text: str) -> list[float]:
        return self.embed([text])[0]

    def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        retrying = Retrying(
            retry=retry_if_exception_type(ProviderTransientError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                result = self.provider.embed(batch)
                if len(result) != len(batch):
                    raise ProviderTransientError(
                        f"Embedding provider returned {len(result)} vectors for {len(batch)} inputs"
                    )

        if self.dimensions is not None:
            for vector in result:
                if len(vector) != self.dimensions:
                    raise DimensionMismatch(expected=self.dimensions, got=len(vector))
        return result
