"""
Embedding model wrapper using Sentence Transformers.

Embeddings are computed locally (no API keys required) and L2-normalised,
so cosine distance in the vector store maps directly onto similarity.

Example:
    >>> async with EmbeddingModel("all-MiniLM-L6-v2", device="cpu") as model:
    ...     vectors = await model.embed(["What is my hostname?"])
    ...     vectors.shape
    (1, 384)
"""

import asyncio
from typing import Literal

import numpy as np
from sentence_transformers import SentenceTransformer

from askgate.config.logging import get_logger

logger = get_logger(__name__)


class EmbeddingModel:
    """
    Wrapper for a Sentence Transformers model.

    The model is loaded on initialize() and released on shutdown(). Encoding
    runs in a worker thread so concurrent queries keep the event loop free.

    Attributes:
        model_name: Name of the Sentence Transformers model
        device: Device used for inference ('cpu' or 'cuda')
        batch_size: Batch size for encoding
    """

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        device: Literal["cpu", "cuda"] = "cpu",
        batch_size: int = 32,
    ):
        self.model_name = model_name
        self.device = device
        self.batch_size = batch_size
        self._model: SentenceTransformer | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """
        Load the embedding model, downloading weights if not cached.

        Raises:
            RuntimeError: If model loading fails
        """
        logger.info(f"Loading embedding model: {self.model_name} on {self.device}")

        try:
            self._model = await asyncio.to_thread(
                SentenceTransformer, self.model_name, device=self.device
            )
            self._initialized = True
            logger.info(
                f"Embedding model loaded "
                f"(dimension: {self._model.get_sentence_embedding_dimension()}, device: {self.device})"
            )
        except Exception as e:
            logger.error(f"Failed to load embedding model: {e}")
            raise RuntimeError(f"Could not load embedding model '{self.model_name}': {e}") from e

    async def embed(self, texts: list[str]) -> np.ndarray:
        """
        Embed a list of texts.

        Returns:
            Array of shape (len(texts), embedding_dim), rows L2-normalised

        Raises:
            RuntimeError: If the model is not initialized or encoding fails
            ValueError: If texts is empty
        """
        if not self._initialized or self._model is None:
            raise RuntimeError(
                "Embedding model not initialized. "
                "Use 'async with EmbeddingModel(...) as model:' or call await model.initialize()"
            )

        if not texts:
            raise ValueError("Cannot embed empty list of texts")

        logger.debug(f"Generating embeddings for {len(texts)} texts (batch_size={self.batch_size})")

        try:
            return await asyncio.to_thread(
                self._model.encode,
                texts,
                batch_size=self.batch_size,
                show_progress_bar=False,
                normalize_embeddings=True,
                convert_to_numpy=True,
            )
        except Exception as e:
            logger.error(f"Failed to generate embeddings: {e}")
            raise RuntimeError(f"Embedding generation failed: {e}") from e

    async def embed_one(self, text: str) -> list[float]:
        """Embed a single text and return it as a plain list."""
        vectors = await self.embed([text])
        return vectors[0].tolist()

    async def shutdown(self) -> None:
        if self._model is not None:
            logger.debug("Shutting down embedding model")
            self._model = None
        self._initialized = False

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False
