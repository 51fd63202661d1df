"""
Unit tests for the Query Orchestrator.

Tests cover:
- Cache check (hit short-circuit, strict threshold, first qualifying entry)
- Fact classification (tool dispatch, context lines, header placement)
- Prompt assembly for the four resolution paths
- Post-processing (fallback sentinel, cache write rules, token counters)
- Failure propagation (cache, tool, decoding, token counting, cancellation)
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import ValidationError

from askgate.config.settings import GateSettings
from askgate.llm.models import Query, Response, ResponseDecodeError, ResponseType
from askgate.llm.orchestrator import (
    ANSWER_SUFFIX,
    CONTEXT_HEADER,
    TOOL_TEMPERATURE,
    QueryOrchestrator,
)
from askgate.llm.tokenizer import TokenCountError
from askgate.obs.metrics import InMemoryQueryMetrics
from askgate.rag.base import RetrievedFact, StoreError
from askgate.tools.base import ToolError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fact(content: str, similarity: float, **metadata: str) -> RetrievedFact:
    return RetrievedFact(id=f"id-{content[:8]}", content=content, similarity=similarity, metadata=metadata)


def _tool_fact(name: str, similarity: float) -> RetrievedFact:
    return _fact(f"Questions answered by {name}", similarity, type="TOOL", name=name)


def _cache_entry(question: str, answer: str, similarity: float) -> RetrievedFact:
    return _fact(question, similarity, RESPONSE=answer)


def _answer(text: str, confidence: float = 0.5) -> str:
    """Completion the model would return for the final answer."""
    return json.dumps({"type": "FINAL", "response": text, "tool": "", "params": {}, "confidence": confidence})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def gate():
    return GateSettings(min_confidence_rag=0.8, min_confidence_tool=0.6, min_confidence_cache=0.9)


@pytest.fixture
def cache():
    mock = AsyncMock()
    mock.query.return_value = []
    mock.add.return_value = "cache-id"
    return mock


@pytest.fixture
def retriever():
    mock = AsyncMock()
    mock.query.return_value = []
    return mock


@pytest.fixture
def router():
    mock = AsyncMock()
    mock.dispatch.return_value = "Your hostname is: box-01"
    return mock


@pytest.fixture
def client():
    mock = AsyncMock()
    mock.generate.return_value = _answer("An answer.")
    return mock


@pytest.fixture
def tokenizer():
    mock = MagicMock()
    mock.count.side_effect = lambda text: len(text.split())
    return mock


@pytest.fixture
def metrics():
    return InMemoryQueryMetrics()


@pytest.fixture
def orchestrator(cache, retriever, router, client, tokenizer, gate, metrics):
    return QueryOrchestrator(
        cache=cache,
        retriever=retriever,
        router=router,
        client=client,
        tokenizer=tokenizer,
        gate=gate,
        temperature=0.5,
        system_prompt="SYSTEM",
        tool_prompt="EXTRACT PARAMS FOR: ",
        metrics=metrics,
        clock=lambda: "2025-06-01T12:00:00+00:00",
    )


def _prompt_of(call) -> str:
    return call.args[0] if call.args else call.kwargs["prompt"]


# ---------------------------------------------------------------------------
# Test Classes
# ---------------------------------------------------------------------------

class TestOrchestratorInitialization:
    """Tests for QueryOrchestrator construction."""

    def test_loads_bundled_prompts_by_default(self, cache, retriever, router, client, tokenizer, gate):
        orch = QueryOrchestrator(
            cache=cache, retriever=retriever, router=router, client=client,
            tokenizer=tokenizer, gate=gate, temperature=0.5,
        )
        assert "JSON" in orch._system_prompt
        assert "RAG" in orch._system_prompt
        assert "ini" in orch._tool_prompt

    def test_gate_settings_are_immutable(self, gate):
        with pytest.raises(ValidationError):
            gate.min_confidence_cache = 0.1


class TestCacheCheck:
    """Tests for the cache path."""

    @pytest.mark.asyncio
    async def test_cache_hit_short_circuits(self, orchestrator, cache, retriever, client):
        cache.query.return_value = [_cache_entry("capital of France?", "Paris", 0.95)]

        result = await orchestrator.query("What is the capital of France?", use_cache=True)

        assert result == Response(type=ResponseType.FINAL, response="Paris")
        retriever.query.assert_not_awaited()
        client.generate.assert_not_awaited()
        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_hit_counts_cache_tokens(self, orchestrator, cache, metrics):
        cache.query.return_value = [_cache_entry("q", "the cached answer", 0.95)]

        await orchestrator.query("one two three", use_cache=True)

        snapshot = metrics.snapshot()
        assert snapshot["tokens_in_cache"] == 3
        assert snapshot["tokens_out_cache"] == 3
        assert snapshot["tokens_in_llm"] == 0

    @pytest.mark.asyncio
    async def test_similarity_equal_to_threshold_is_a_miss(self, orchestrator, cache, client):
        cache.query.return_value = [_cache_entry("q", "stale", 0.9)]

        result = await orchestrator.query("q", use_cache=True)

        assert result.response == "An answer."
        client.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_first_qualifying_entry_wins(self, orchestrator, cache):
        cache.query.return_value = [
            _cache_entry("a", "low", 0.5),
            _cache_entry("b", "first", 0.91),
            _cache_entry("c", "second", 0.99),
        ]

        result = await orchestrator.query("q", use_cache=True)

        assert result.response == "first"

    @pytest.mark.asyncio
    async def test_empty_cached_answer_is_a_miss(self, orchestrator, cache, client):
        cache.query.return_value = [_cache_entry("q", "", 0.99)]

        await orchestrator.query("q", use_cache=True)

        client.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_disabled_skips_lookup_and_write(self, orchestrator, cache, client):
        client.generate.return_value = _answer("Confident.", confidence=0.99)

        await orchestrator.query("q", use_cache=False)

        cache.query.assert_not_awaited()
        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_token_failure_aborts(self, orchestrator, cache, tokenizer):
        cache.query.return_value = [_cache_entry("q", "Paris", 0.95)]
        tokenizer.count.side_effect = TokenCountError("encoding unavailable")

        with pytest.raises(TokenCountError):
            await orchestrator.query("q", use_cache=True)


class TestFactClassification:
    """Tests for how retrieved facts shape the prompt."""

    @pytest.mark.asyncio
    async def test_tool_fact_dispatches_and_adds_result_line(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_tool_fact("hostname", 0.7)]
        client.generate.side_effect = ['```json\n{"Host": "local"}\n```', _answer("box-01")]

        await orchestrator.query("what is my hostname?", use_cache=False)

        router.dispatch.assert_awaited_once_with("hostname", {"host": "local"})
        final_call = client.generate.await_args_list[1]
        assert _prompt_of(final_call) == (
            " - Your hostname is: box-01\n" + ANSWER_SUFFIX + "what is my hostname?"
        )

    @pytest.mark.asyncio
    async def test_tool_extraction_call(self, orchestrator, retriever, client):
        retriever.query.return_value = [_tool_fact("hostname", 0.7)]
        client.generate.side_effect = ["{}", _answer("box-01")]

        await orchestrator.query("what is my hostname?", use_cache=False)

        extraction_call = client.generate.await_args_list[0]
        assert _prompt_of(extraction_call) == (
            "Consider that today's date is: 2025-06-01T12:00:00+00:00\n"
            "EXTRACT PARAMS FOR: what is my hostname?"
        )
        assert extraction_call.kwargs["temperature"] == TOOL_TEMPERATURE
        assert extraction_call.kwargs.get("system") is None

    @pytest.mark.asyncio
    async def test_tool_fact_at_threshold_is_dropped(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_tool_fact("hostname", 0.6)]

        await orchestrator.query("q", use_cache=False)

        router.dispatch.assert_not_awaited()
        assert _prompt_of(client.generate.await_args) == "q"

    @pytest.mark.asyncio
    async def test_tool_fact_above_context_threshold_still_dispatches(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_tool_fact("df", 0.95)]
        client.generate.side_effect = ["{}", _answer("ok")]

        await orchestrator.query("q", use_cache=False)

        router.dispatch.assert_awaited_once_with("df", {})
        assert CONTEXT_HEADER not in _prompt_of(client.generate.await_args_list[1])

    @pytest.mark.asyncio
    async def test_plain_fact_between_thresholds_is_dropped(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_fact("The office opens at 9am", 0.7)]

        await orchestrator.query("q", use_cache=False)

        router.dispatch.assert_not_awaited()
        assert _prompt_of(client.generate.await_args) == "q"

    @pytest.mark.asyncio
    async def test_context_fact_at_threshold_is_dropped(self, orchestrator, retriever, client):
        retriever.query.return_value = [_fact("borderline", 0.8)]

        await orchestrator.query("q", use_cache=False)

        assert _prompt_of(client.generate.await_args) == "q"

    @pytest.mark.asyncio
    async def test_header_written_once_before_first_context_fact(self, orchestrator, retriever, client):
        retriever.query.return_value = [
            _fact("The office opens at 9am", 0.92),
            _fact("The office closes at 6pm", 0.85),
        ]

        await orchestrator.query("When is the office open?", use_cache=False)

        assert _prompt_of(client.generate.await_args) == (
            CONTEXT_HEADER
            + " - The office opens at 9am\n"
            + " - The office closes at 6pm\n"
            + ANSWER_SUFFIX
            + "When is the office open?"
        )

    @pytest.mark.asyncio
    async def test_mixed_facts_keep_store_order(self, orchestrator, retriever, client):
        retriever.query.return_value = [
            _tool_fact("hostname", 0.9),
            _fact("Hosts are named after birds", 0.85),
        ]
        client.generate.side_effect = ["{}", _answer("ok")]

        await orchestrator.query("q", use_cache=False)

        assert _prompt_of(client.generate.await_args_list[1]) == (
            " - Your hostname is: box-01\n"
            + CONTEXT_HEADER
            + " - Hosts are named after birds\n"
            + ANSWER_SUFFIX
            + "q"
        )

    @pytest.mark.asyncio
    async def test_tool_after_context_fact(self, orchestrator, retriever, client):
        retriever.query.return_value = [
            _fact("Hosts are named after birds", 0.85),
            _tool_fact("hostname", 0.7),
        ]
        client.generate.side_effect = ["{}", _answer("ok")]

        await orchestrator.query("q", use_cache=False)

        assert _prompt_of(client.generate.await_args_list[1]) == (
            CONTEXT_HEADER
            + " - Hosts are named after birds\n"
            + " - Your hostname is: box-01\n"
            + ANSWER_SUFFIX
            + "q"
        )

    @pytest.mark.asyncio
    async def test_each_tool_fact_is_dispatched_in_order(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_tool_fact("hostname", 0.9), _tool_fact("date", 0.8)]
        router.dispatch.side_effect = ["host result", "date result"]
        client.generate.side_effect = ["{}", "{}", _answer("ok")]

        await orchestrator.query("q", use_cache=False)

        assert [c.args[0] for c in router.dispatch.await_args_list] == ["hostname", "date"]
        assert _prompt_of(client.generate.await_args_list[2]) == (
            " - host result\n - date result\n" + ANSWER_SUFFIX + "q"
        )


class TestResolutionPaths:
    """End-to-end behavior of the four resolution paths."""

    @pytest.mark.asyncio
    async def test_bare_generation_uses_system_prompt_and_temperature(self, orchestrator, client):
        result = await orchestrator.query("Tell me a joke", use_cache=False)

        call = client.generate.await_args
        assert _prompt_of(call) == "Tell me a joke"
        assert call.kwargs["temperature"] == 0.5
        assert call.kwargs["system"] == "SYSTEM"
        assert result.response == "An answer."

    @pytest.mark.asyncio
    async def test_empty_store_gives_bare_prompt(self, orchestrator, retriever, client):
        retriever.query.return_value = []

        await orchestrator.query("q", use_cache=True)

        assert _prompt_of(client.generate.await_args) == "q"

    @pytest.mark.asyncio
    async def test_context_generation_writes_confident_answer_to_cache(self, orchestrator, retriever, client, cache):
        retriever.query.return_value = [_fact("Lisbon is the capital of Portugal", 0.88)]
        client.generate.return_value = _answer("Lisbon.", confidence=0.95)

        result = await orchestrator.query("Capital of Portugal?", use_cache=True)

        assert result.response == "Lisbon."
        cache.add.assert_awaited_once_with("Capital of Portugal?", "Lisbon.")

    @pytest.mark.asyncio
    async def test_confidence_at_threshold_is_not_cached(self, orchestrator, client, cache):
        client.generate.return_value = _answer("Maybe.", confidence=0.9)

        await orchestrator.query("q", use_cache=True)

        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fallback_sentinel_counts_and_skips_cache(self, orchestrator, client, cache, metrics):
        client.generate.return_value = _answer("No data about that.\nRAG", confidence=0.99)

        result = await orchestrator.query("q", use_cache=True)

        assert result.response.endswith("\nRAG")
        cache.add.assert_not_awaited()
        assert metrics.snapshot()["cant_answer"] == 1

    @pytest.mark.asyncio
    async def test_generation_counts_llm_tokens(self, orchestrator, client, metrics):
        client.generate.return_value = _answer("four words right here")

        await orchestrator.query("two words", use_cache=False)

        snapshot = metrics.snapshot()
        assert snapshot["tokens_in_llm"] == 2
        assert snapshot["tokens_out_llm"] == 4
        assert snapshot["tokens_in_cache"] == 0


class TestFailurePropagation:
    """Errors abort the query without partial results."""

    @pytest.mark.asyncio
    async def test_tool_failure_aborts(self, orchestrator, retriever, router, client, cache):
        retriever.query.return_value = [_tool_fact("ifconfig", 0.9), _fact("unused", 0.95)]
        router.dispatch.side_effect = ToolError("ifconfig: not found")
        client.generate.side_effect = ["{}", _answer("never")]

        with pytest.raises(ToolError):
            await orchestrator.query("q", use_cache=True)

        assert client.generate.await_count == 1
        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_tool_params_abort(self, orchestrator, retriever, router, client):
        retriever.query.return_value = [_tool_fact("hostname", 0.9)]
        client.generate.side_effect = ["not json", _answer("never")]

        with pytest.raises(ResponseDecodeError):
            await orchestrator.query("q", use_cache=False)

        router.dispatch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_answer_aborts(self, orchestrator, client, cache):
        client.generate.return_value = "Sure! The answer is 42."

        with pytest.raises(ResponseDecodeError):
            await orchestrator.query("q", use_cache=True)

        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retriever_failure_aborts(self, orchestrator, retriever, client):
        retriever.query.side_effect = RuntimeError("store offline")

        with pytest.raises(RuntimeError, match="store offline"):
            await orchestrator.query("q", use_cache=False)

        client.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_lookup_failure_aborts(self, orchestrator, cache, retriever, client):
        cache.query.side_effect = StoreError("cache collection missing")

        with pytest.raises(StoreError, match="cache collection missing"):
            await orchestrator.query("q", use_cache=True)

        retriever.query.assert_not_awaited()
        client.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cache_write_failure_aborts_after_generation(self, orchestrator, client, cache):
        client.generate.return_value = _answer("Lisbon.", confidence=0.99)
        cache.add.side_effect = StoreError("read-only database")

        with pytest.raises(StoreError, match="read-only database"):
            await orchestrator.query("capital of Portugal?", use_cache=True)

        client.generate.assert_awaited_once()
        cache.add.assert_awaited_once_with("capital of Portugal?", "Lisbon.")

    @pytest.mark.asyncio
    async def test_generation_token_failure_aborts_without_counting(self, orchestrator, client, cache, tokenizer, metrics):
        client.generate.return_value = _answer("Confident.", confidence=0.99)
        tokenizer.count.side_effect = TokenCountError("encoding unavailable")

        with pytest.raises(TokenCountError):
            await orchestrator.query("q", use_cache=True)

        snapshot = metrics.snapshot()
        assert snapshot["tokens_in_llm"] == 0
        assert snapshot["tokens_out_llm"] == 0
        cache.add.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancellation_propagates_from_generation(self, orchestrator, client, cache, metrics):
        started = asyncio.Event()

        async def hang(*args, **kwargs):
            started.set()
            await asyncio.sleep(3600)

        client.generate.side_effect = hang
        task = asyncio.create_task(orchestrator.query("q", use_cache=True))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        cache.add.assert_not_awaited()
        assert metrics.snapshot()["tokens_in_llm"] == 0


class TestAnswer:
    """Tests for the Query-level entry point."""

    @pytest.mark.asyncio
    async def test_returns_text_without_details(self, orchestrator):
        result = await orchestrator.answer(Query(text="q", use_cache=False))
        assert result == "An answer."

    @pytest.mark.asyncio
    async def test_returns_response_with_details(self, orchestrator):
        result = await orchestrator.answer(Query(text="q", use_cache=False, want_details=True))
        assert isinstance(result, Response)
        assert result.confidence == 0.5

    @pytest.mark.asyncio
    async def test_passes_use_cache_through(self, orchestrator, cache):
        await orchestrator.answer(Query(text="q", use_cache=False))
        cache.query.assert_not_awaited()
