"""Response generator — turn a grounding context into a chat reply via LiteLLM."""

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

from kbsync.db.models import ConversationTurn
from kbsync.errors import ProviderTransientError
from kbsync.rag import llm_client
from kbsync.rag.retriever import GroundingContext, NoQualifyingResults, RetrievalOutcome

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a property listings assistant. Answer only from the numbered context "
    "records supplied with the question. Never invent listings, prices or URLs: "
    "quote prices and links exactly as they appear in the context, and always "
    "include the listing URL when you mention a listing. If the context does not "
    "answer the question, say so plainly."
)

NO_RESULTS_INSTRUCTION = (
    "No listing in the knowledge base has complete information (price and link) "
    "for this question. Tell the user you could not find a matching listing with "
    "verified details, and suggest they rephrase or broaden the request. Do not "
    "mention any specific listing, price or URL."
)


class ResponseGenerator(ABC):
    """External text-generation capability."""

    @abstractmethod
    def generate(
        self,
        query: str,
        context: RetrievalOutcome,
        history: list[ConversationTurn],
    ) -> str:
        """Produce the assistant reply for *query*."""


def format_context(context: GroundingContext) -> str:
    """Numbered context block: title, URL, then content, per record."""
    blocks = []
    for i, record in enumerate(context.records, start=1):
        meta = record.metadata
        header = f"[{i}] {meta.title or meta.identity}"
        if meta.url:
            header += f" ({meta.url})"
        lines = [header]
        if meta.schema:
            lines.append(f"Schema: {meta.schema}")
        lines.append(record.content)
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_messages(
    query: str,
    context: RetrievalOutcome,
    history: list[ConversationTurn],
) -> list[dict]:
    """OpenAI-style message list: system prompt, history, then the grounded question."""
    messages: list[dict] = [{"role": "system", "content": SYSTEM_PROMPT}]
    for turn in history:
        if turn.role in ("user", "assistant"):
            messages.append({"role": turn.role, "content": turn.content})

    if isinstance(context, NoQualifyingResults):
        user = f"{NO_RESULTS_INSTRUCTION}\n\nQuestion: {query}"
    else:
        user = f"Context:\n{format_context(context)}\n\nQuestion: {query}"
    messages.append({"role": "user", "content": user})
    return messages


class LiteLLMGenerator(ResponseGenerator):
    """Generator backed by ``litellm.completion`` with tenacity retries."""

    def __init__(
        self,
        model: str,
        *,
        max_tokens: int = 700,
        temperature: float = 0.2,
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff_min: float = 1.0,
        backoff_max: float = 20.0,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    @classmethod
    def from_config(cls, cfg) -> LiteLLMGenerator:
        """Build from a ``GenerationCfg``."""
        return cls(
            cfg.model,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            timeout=cfg.timeout,
            max_attempts=cfg.max_attempts,
        )

    def generate(
        self,
        query: str,
        context: RetrievalOutcome,
        history: list[ConversationTurn],
    ) -> str:
        messages = build_messages(query, context, history)
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
                answer = llm_client.complete(
                    self.model,
                    messages,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                    timeout=self.timeout,
                )
        return answer.strip()
