"""Chat service — the query flow behind the conversation channel.

history → embed query → retrieval filter → generator → record both turns.

Provider and store failures never reach the channel: the user gets the
configured fallback message, and both turns are still recorded.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from kbsync.chat.memory import ConversationMemory
from kbsync.errors import DimensionMismatch, ProviderError
from kbsync.ingest.embedder import Embedder
from kbsync.rag.generator import ResponseGenerator
from kbsync.rag.retriever import RetrievalFilter, RetrievalOutcome

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK = "Sorry, I can't look that up right now. Please try again in a moment."


@dataclass
class Reply:
    text: str
    outcome: RetrievalOutcome | None = None
    fallback: bool = False


class ChatService:
    """Answer one message of a session, grounded in the knowledge base.

    Args:
        memory: Conversation memory.
        retrieval: Retrieval filter over the vector store.
        embedder: Embeds the user's query (same model as ingestion).
        generator: Produces the reply text.
        window: Number of recent turns passed to the generator.
        fallback_message: Reply used when a provider or the store fails.
    """

    def __init__(
        self,
        memory: ConversationMemory,
        retrieval: RetrievalFilter,
        embedder: Embedder,
        generator: ResponseGenerator,
        *,
        window: int = 10,
        fallback_message: str = DEFAULT_FALLBACK,
    ) -> None:
        self.memory = memory
        self.retrieval = retrieval
        self.embedder = embedder
        self.generator = generator
        self.window = window
        self.fallback_message = fallback_message

    def answer(self, session_id: str, text: str) -> Reply:
        history = self.memory.history(session_id, limit=self.window)

        try:
            query_embedding = self.embedder.embed_query(text)
            outcome = self.retrieval.retrieve(query_embedding)
            reply = Reply(self.generator.generate(text, outcome, history), outcome=outcome)
        except (ProviderError, DimensionMismatch, sqlite3.Error) as exc:
            logger.warning("Answer failed for session %s: %s", session_id, exc)
            reply = Reply(self.fallback_message, fallback=True)

        self.memory.append(session_id, "user", text)
        self.memory.append(session_id, "assistant", reply.text)
        return reply
