"""
Retrieval layer.

Embeds text with a local Sentence Transformers model and stores or queries
it in ChromaDB collections.
"""

from askgate.rag.base import RetrievedFact, SimilarityStore, StoreError
from askgate.rag.embeddings import EmbeddingModel
from askgate.rag.engine import EmbeddedCollection, FactStore
from askgate.rag.vector_store import ChromaVectorStore

__all__ = [
    "ChromaVectorStore",
    "EmbeddedCollection",
    "EmbeddingModel",
    "FactStore",
    "RetrievedFact",
    "SimilarityStore",
    "StoreError",
]
