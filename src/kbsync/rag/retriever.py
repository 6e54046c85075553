"""Retrieval filter: similarity search followed by a completeness gate.

The store is asked for ``fetch_k = top_k * candidate_multiplier`` candidates so
rejected records do not starve the context. Survivors keep their similarity
order and are truncated to ``top_k``.

Zero survivors is a normal outcome, returned as ``NoQualifyingResults`` and
never raised: store and provider errors propagate as exceptions instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from kbsync.db.models import SearchHit, VectorRecord
from kbsync.db.vectors import VectorStore
from kbsync.rag.completeness import CompletenessPolicy

logger = logging.getLogger(__name__)


@dataclass
class Rejection:
    """A candidate dropped by the completeness gate."""

    record_id: int | None
    identity: str
    reason: str


@dataclass
class GroundingContext:
    """Ranked, complete records handed to the response generator."""

    hits: list[SearchHit]
    rejected: list[Rejection] = field(default_factory=list)

    @property
    def records(self) -> list[VectorRecord]:
        return [h.record for h in self.hits]


@dataclass
class NoQualifyingResults:
    """No candidate passed the completeness gate."""

    candidates: int = 0
    rejected: list[Rejection] = field(default_factory=list)


RetrievalOutcome = GroundingContext | NoQualifyingResults


class RetrievalFilter:
    """Similarity search + completeness filtering over a ``VectorStore``.

    Args:
        store: Vector store to query.
        policy: Completeness rules; defaults to requiring price and URL.
        top_k: Maximum records in the grounding context.
        candidate_multiplier: Over-fetch factor for the similarity search.
    """

    def __init__(
        self,
        store: VectorStore,
        policy: CompletenessPolicy | None = None,
        *,
        top_k: int = 5,
        candidate_multiplier: int = 4,
    ) -> None:
        if top_k < 1:
            raise ValueError("top_k must be >= 1")
        self.store = store
        self.policy = policy or CompletenessPolicy.default()
        self.top_k = top_k
        self.fetch_k = top_k * max(1, candidate_multiplier)

    @classmethod
    def from_config(cls, store: VectorStore, cfg) -> RetrievalFilter:
        """Build from a ``RetrievalCfg``."""
        return cls(
            store,
            CompletenessPolicy.default(
                require_price=cfg.require_price, require_url=cfg.require_url
            ),
            top_k=cfg.top_k,
            candidate_multiplier=cfg.candidate_multiplier,
        )

    def retrieve(
        self,
        query_embedding: list[float],
        metadata_filter: dict[str, Any] | None = None,
    ) -> RetrievalOutcome:
        candidates = self.store.similarity_search(
            query_embedding, top_k=self.fetch_k, metadata_filter=metadata_filter
        )

        kept: list[SearchHit] = []
        rejected: list[Rejection] = []
        for hit in candidates:
            reason = self.policy.violation(hit.record)
            if reason is None:
                kept.append(hit)
                continue
            logger.debug(
                "Rejected record %s (%s): %s", hit.record.id, hit.record.metadata.identity, reason
            )
            rejected.append(Rejection(hit.record.id, hit.record.metadata.identity, reason))

        logger.info(
            "Retrieval: %d candidates, %d kept, %d rejected",
            len(candidates),
            len(kept),
            len(rejected),
        )
        if not kept:
            return NoQualifyingResults(candidates=len(candidates), rejected=rejected)
        return GroundingContext(hits=kept[: self.top_k], rejected=rejected)
