"""
Base classes and data structures for the similarity stores.

- RetrievedFact: one entry returned by a similarity query
- SimilarityStore: the interface the orchestrator queries (cache and facts)
- StoreError: vector store failure
"""

from typing import Protocol

from pydantic import BaseModel, Field

# Metadata conventions for fact entries
TYPE_KEY = "type"
NAME_KEY = "name"
TOOL_TYPE = "TOOL"


class StoreError(RuntimeError):
    """Raised when the vector store cannot complete an operation."""


class RetrievedFact(BaseModel):
    """
    An entry returned from a similarity query.

    For the fact store ``content`` is the fact text; entries whose
    ``metadata["type"]`` is ``"TOOL"`` describe a tool named by
    ``metadata["name"]``. For the semantic cache ``content`` is the cached
    question and ``metadata["RESPONSE"]`` holds the cached answer.
    """

    id: str = Field(description="Identifier assigned when the entry was added")
    content: str = Field(description="Stored text")
    similarity: float = Field(ge=0.0, le=1.0, description="Similarity to the query (1.0 = identical)")
    metadata: dict[str, str] = Field(default_factory=dict, description="String tags")
    embedding: list[float] | None = Field(
        default=None, description="Stored embedding, only when explicitly requested"
    )

    @property
    def is_tool(self) -> bool:
        return self.metadata.get(TYPE_KEY) == TOOL_TYPE

    @property
    def tool_name(self) -> str:
        return self.metadata.get(NAME_KEY, "")


class SimilarityStore(Protocol):
    async def query(self, text: str, include_embeddings: bool = False) -> list[RetrievedFact]:
        """Return entries ordered by decreasing similarity to ``text``."""
        ...
