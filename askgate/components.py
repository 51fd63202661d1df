"""
Component factory.

Builds stores, tools and the orchestrator from settings so every entry point
wires them the same way.
"""

from __future__ import annotations

from contextlib import AsyncExitStack

from askgate.cache.semantic_cache import SemanticCache
from askgate.config.settings import Settings
from askgate.llm.client import GenerativeClient
from askgate.llm.orchestrator import QueryOrchestrator
from askgate.llm.tokenizer import TokenCounter
from askgate.obs.metrics import QueryMetrics
from askgate.rag.embeddings import EmbeddingModel
from askgate.rag.engine import FactStore
from askgate.rag.vector_store import ChromaVectorStore
from askgate.tools.router import ToolRouter, builtin_tools
from askgate.tools.timeseries import TimeSeriesStore, TimeSeriesTool


class AppComponents:
    """
    Factory for building components from settings.

    Example::

        factory = AppComponents(settings)
        async with AsyncExitStack() as stack:
            orchestrator = await factory.open_orchestrator(stack)
            response = await orchestrator.query("what is my hostname?")
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def create_embedding_model(self) -> EmbeddingModel:
        store = self.settings.store
        return EmbeddingModel(
            model_name=store.embedding_model,
            device=store.embedding_device,
            batch_size=store.embedding_batch_size,
        )

    def create_vector_store(self, collection_name: str) -> ChromaVectorStore:
        return ChromaVectorStore(
            persist_directory=self.settings.store.vector_db_path,
            collection_name=collection_name,
            max_results=self.settings.store.max_results,
        )

    def create_timeseries_store(self) -> TimeSeriesStore:
        return TimeSeriesStore(self.settings.tools.database_url)

    def create_router(self, timeseries: TimeSeriesStore) -> ToolRouter:
        return ToolRouter(builtin_tools(), default=TimeSeriesTool(timeseries))

    async def open_cache(self, stack: AsyncExitStack, model: EmbeddingModel) -> SemanticCache:
        store = await stack.enter_async_context(
            self.create_vector_store(self.settings.store.cache_collection)
        )
        return SemanticCache(model, store)

    async def open_facts(self, stack: AsyncExitStack, model: EmbeddingModel) -> FactStore:
        store = await stack.enter_async_context(
            self.create_vector_store(self.settings.store.facts_collection)
        )
        return FactStore(model, store)

    async def open_orchestrator(
        self,
        stack: AsyncExitStack,
        metrics: QueryMetrics | None = None,
    ) -> QueryOrchestrator:
        """
        Initialize every dependency on ``stack`` and return a ready orchestrator.

        Resources are released when the stack closes.
        """
        model = await stack.enter_async_context(self.create_embedding_model())
        cache = await self.open_cache(stack, model)
        facts = await self.open_facts(stack, model)
        timeseries = await stack.enter_async_context(self.create_timeseries_store())

        return QueryOrchestrator(
            cache=cache,
            retriever=facts,
            router=self.create_router(timeseries),
            client=GenerativeClient(self.settings.llm),
            tokenizer=TokenCounter(self.settings.llm.tokenizer_encoding),
            gate=self.settings.gate,
            temperature=self.settings.llm.temperature,
            metrics=metrics,
        )
