"""
Vector store implementation using ChromaDB.

One ChromaVectorStore wraps one collection. The semantic cache and the fact
store each get their own collection in the same persistent directory.

ChromaDB calls are synchronous, so every call is pushed to a worker thread
with ``asyncio.to_thread``.

Example:
    >>> async with ChromaVectorStore("./data/vector_db", "rag") as store:
    ...     fact_id = await store.add("The office opens at 9am", {}, embedding)
    ...     results = await store.query(query_embedding)
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from askgate.config.logging import get_logger
from askgate.rag.base import RetrievedFact, StoreError

logger = get_logger(__name__)

COLLECTION_METADATA = {"hnsw:space": "cosine"}


class ChromaVectorStore:
    """
    Wrapper for a single ChromaDB collection.

    Entries are identified by a UUID generated on insert. Similarity is
    derived from ChromaDB's cosine distance as ``1 - distance`` and clamped
    to [0, 1].

    Attributes:
        persist_directory: Path to ChromaDB storage directory
        collection_name: Name of the ChromaDB collection
        max_results: Upper bound on the number of results per query
    """

    def __init__(
        self,
        persist_directory: Path | str,
        collection_name: str,
        max_results: int = 25,
    ):
        self.persist_directory = Path(persist_directory)
        self.collection_name = collection_name
        self.max_results = max_results
        self._client: chromadb.ClientAPI | None = None
        self._collection: chromadb.Collection | None = None
        self._initialized = False

    def _require_collection(self) -> chromadb.Collection:
        if not self._initialized or self._collection is None:
            raise StoreError(
                "Vector store not initialized. "
                "Use 'async with ChromaVectorStore(...) as store:' or call await store.initialize()"
            )
        return self._collection

    async def initialize(self) -> None:
        """
        Open the persistent client and get or create the collection.

        Raises:
            StoreError: If ChromaDB initialization fails
        """
        logger.info(f"Initializing ChromaDB at {self.persist_directory}")

        try:
            self.persist_directory.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(
                path=str(self.persist_directory),
                settings=ChromaSettings(
                    anonymized_telemetry=False,
                    allow_reset=True,
                ),
            )
            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self.collection_name,
                metadata=COLLECTION_METADATA,
            )
            self._initialized = True
            logger.info(f"ChromaDB collection '{self.collection_name}' ready")

        except Exception as e:
            logger.error(f"Failed to initialize ChromaDB: {e}")
            raise StoreError(f"Could not initialize ChromaDB: {e}") from e

    async def add(
        self,
        content: str,
        metadata: dict[str, str],
        embedding: list[float],
    ) -> str:
        """
        Add one entry.

        Args:
            content: Text stored alongside the embedding
            metadata: String tags (may be empty)
            embedding: Vector for ``content``

        Returns:
            The generated entry id
        """
        collection = self._require_collection()
        entry_id = str(uuid.uuid4())

        try:
            await asyncio.to_thread(
                collection.add,
                ids=[entry_id],
                documents=[content],
                # ChromaDB rejects empty metadata dicts
                metadatas=[metadata] if metadata else None,
                embeddings=[embedding],
            )
        except Exception as e:
            logger.error(f"Failed to add entry to '{self.collection_name}': {e}")
            raise StoreError(f"Failed to add entry: {e}") from e

        logger.debug(f"Added entry {entry_id} to '{self.collection_name}'")
        return entry_id

    async def query(
        self,
        embedding: list[float],
        include_embeddings: bool = False,
    ) -> list[RetrievedFact]:
        """
        Return the entries most similar to ``embedding``.

        At most ``max_results`` entries are returned, clamped to the size of
        the collection. An empty collection yields an empty list.
        """
        collection = self._require_collection()

        try:
            count = await asyncio.to_thread(collection.count)
            if count < 1:
                return []

            include = ["documents", "metadatas", "distances"]
            if include_embeddings:
                include.append("embeddings")

            results = await asyncio.to_thread(
                collection.query,
                query_embeddings=[embedding],
                n_results=min(self.max_results, count),
                include=include,
            )
        except Exception as e:
            logger.error(f"Query on '{self.collection_name}' failed: {e}")
            raise StoreError(f"Query failed: {e}") from e

        return self._to_facts(results, include_embeddings)

    @staticmethod
    def _first(results: dict[str, Any], key: str) -> list[Any]:
        # ChromaDB nests results per query embedding; we always send one
        values = results.get(key)
        if values is None or len(values) == 0:
            return []
        return list(values[0])

    def _to_facts(self, results: dict[str, Any], include_embeddings: bool) -> list[RetrievedFact]:
        ids = self._first(results, "ids")
        documents = self._first(results, "documents")
        metadatas = self._first(results, "metadatas")
        distances = self._first(results, "distances")
        embeddings = self._first(results, "embeddings") if include_embeddings else []

        facts = []
        for i, entry_id in enumerate(ids):
            similarity = max(0.0, min(1.0, 1.0 - float(distances[i])))
            metadata = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
            facts.append(RetrievedFact(
                id=entry_id,
                content=documents[i] or "",
                similarity=similarity,
                metadata={key: str(value) for key, value in metadata.items()},
                embedding=[float(v) for v in embeddings[i]] if i < len(embeddings) else None,
            ))

        logger.debug(f"Found {len(facts)} results in '{self.collection_name}'")
        return facts

    async def delete(self, entry_id: str) -> None:
        """Delete one entry by id."""
        collection = self._require_collection()

        try:
            await asyncio.to_thread(collection.delete, ids=[entry_id])
        except Exception as e:
            logger.error(f"Failed to delete {entry_id} from '{self.collection_name}': {e}")
            raise StoreError(f"Failed to delete entry: {e}") from e

        logger.debug(f"Deleted entry {entry_id} from '{self.collection_name}'")

    async def clear(self) -> None:
        """Drop the collection and recreate it empty."""
        self._require_collection()
        logger.warning(f"Deleting collection '{self.collection_name}'")

        try:
            await asyncio.to_thread(self._client.delete_collection, name=self.collection_name)
            # Unusable until recreated
            self._collection = None
            self._initialized = False
            self._collection = await asyncio.to_thread(
                self._client.get_or_create_collection,
                name=self.collection_name,
                metadata=COLLECTION_METADATA,
            )
            self._initialized = True
        except Exception as e:
            logger.error(f"Failed to clear collection: {e}")
            raise StoreError(f"Failed to clear collection: {e}") from e

        logger.info(f"Recreated collection '{self.collection_name}'")

    async def shutdown(self) -> None:
        """Release the client. ChromaDB persists automatically."""
        self._collection = None
        self._client = None
        self._initialized = False
        logger.debug("ChromaDB shutdown complete")

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False
