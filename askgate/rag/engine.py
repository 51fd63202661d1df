"""
Text-level stores built on an embedding model and a vector store.

Callers deal in text; this layer embeds the text and hands vectors to the
ChromaDB collection.

- EmbeddedCollection: query / delete / clear shared by every store
- FactStore: facts and tool descriptors used to build prompt context
"""

from __future__ import annotations

import logging

from opentelemetry import trace

from askgate.rag.base import RetrievedFact
from askgate.rag.embeddings import EmbeddingModel
from askgate.rag.vector_store import ChromaVectorStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class EmbeddedCollection:
    """
    One vector collection addressed by text.

    Args:
        embedding_model: Initialized embedding model
        vector_store: Initialized vector store for the collection
    """

    def __init__(self, embedding_model: EmbeddingModel, vector_store: ChromaVectorStore):
        self.embedding_model = embedding_model
        self.vector_store = vector_store

    @property
    def name(self) -> str:
        return self.vector_store.collection_name

    async def _add(self, content: str, metadata: dict[str, str]) -> str:
        with tracer.start_as_current_span(f"{self.name}.add"):
            embedding = await self.embedding_model.embed_one(content)
            return await self.vector_store.add(content, metadata, embedding)

    async def query(self, text: str, include_embeddings: bool = False) -> list[RetrievedFact]:
        """
        Return stored entries ordered by decreasing similarity to ``text``.

        Embeddings are stripped from the results unless requested.
        """
        with tracer.start_as_current_span(f"{self.name}.query") as span:
            embedding = await self.embedding_model.embed_one(text)
            results = await self.vector_store.query(embedding, include_embeddings=include_embeddings)
            span.set_attribute("results", len(results))
            return results

    async def delete(self, entry_id: str) -> None:
        with tracer.start_as_current_span(f"{self.name}.delete"):
            await self.vector_store.delete(entry_id)

    async def clear(self) -> None:
        with tracer.start_as_current_span(f"{self.name}.clear"):
            await self.vector_store.clear()


class FactStore(EmbeddedCollection):
    """
    Facts and tool descriptors consulted for every uncached query.

    A plain fact is stored with arbitrary string metadata. A tool descriptor
    is a fact whose metadata contains ``type=TOOL`` and ``name=<tool>``; its
    content describes the questions that tool can answer.

    Example:
        >>> await facts.add("Questions about this machine's hostname",
        ...                 {"type": "TOOL", "name": "hostname"})
        >>> await facts.add("The VPN gateway is vpn.example.com", {})
    """

    async def add(self, content: str, metadata: dict[str, str] | None = None) -> str:
        """Store a fact and return its id."""
        entry_id = await self._add(content, dict(metadata or {}))
        logger.debug(f"Added fact {entry_id} ({len(content)} chars)")
        return entry_id
