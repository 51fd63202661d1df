"""
Query Orchestrator - confidence-gated answer resolution.

Every query resolves through one of four paths, chosen by similarity scores
against fixed thresholds:

    query ──► semantic cache ──hit──► cached answer
                   │ miss (or cache disabled)
                   ▼
              fact store ──► for each fact, in store order:
                   │           tool descriptor above tool threshold ─► run tool, add result line
                   │           other fact above context threshold   ─► add fact line
                   ▼
     context + "Now answer: <query>"   (or the bare query when no line was added)
                   │
                   ▼
         generative model (system preamble, configured temperature)
                   │
                   ▼
          Response ──► cache write when the model is confident enough

Thresholds compare with strict ``>``: a score equal to its threshold never
qualifies. Tool parameters are extracted by a second, low-temperature model
call with no system preamble. Any failure on the way (store, model, tool,
decoding, token counting) aborts the query; nothing is retried and no
partial answer is returned.

The orchestrator keeps no per-query state, so one instance can serve any
number of concurrent queries.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Protocol

from opentelemetry import trace

from askgate.cache.semantic_cache import SemanticCache
from askgate.config.logging import get_logger
from askgate.config.settings import GateSettings
from askgate.llm.client import GenerativeClient
from askgate.llm.models import Query, Response, ResponseType
from askgate.llm.parsing import decode_params, decode_response
from askgate.obs.metrics import OtelQueryMetrics, QueryMetrics
from askgate.rag.base import SimilarityStore
from askgate.tools.router import ToolRouter

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

CONTEXT_HEADER = "Your context contains retrieved facts. Consider the following statements:\n"
ANSWER_SUFFIX = "Now answer: "
DATE_LINE = "Consider that today's date is: {now}\n"
FALLBACK_SENTINEL = "\nRAG"
TOOL_TEMPERATURE = 0.2


def load_prompt(name: str) -> str:
    """Read a bundled prompt template from the prompts directory."""
    return (PROMPTS_DIR / name).read_text(encoding="utf-8")


class Tokenizer(Protocol):
    def count(self, text: str) -> int: ...


def _local_now() -> str:
    return datetime.now().astimezone().isoformat()


class QueryOrchestrator:
    """
    Resolves queries through cache, tools, retrieved context and the model.

    Args:
        cache: Semantic cache of earlier answers
        retriever: Fact store holding facts and tool descriptors
        router: Tool dispatcher
        client: Generative model client
        tokenizer: Token counter used for the usage counters
        gate: Similarity thresholds (immutable)
        temperature: Sampling temperature for answers
        system_prompt: Preamble for answer generation (default: prompts/system.txt)
        tool_prompt: Parameter extraction template (default: prompts/tool_params.txt)
        metrics: Usage counter sink (default: OpenTelemetry counters)
        clock: Returns the current date/time text for the tool prompt
    """

    def __init__(
        self,
        cache: SemanticCache,
        retriever: SimilarityStore,
        router: ToolRouter,
        client: GenerativeClient,
        tokenizer: Tokenizer,
        gate: GateSettings,
        temperature: float,
        system_prompt: str | None = None,
        tool_prompt: str | None = None,
        metrics: QueryMetrics | None = None,
        clock: Callable[[], str] = _local_now,
    ):
        self._cache = cache
        self._retriever = retriever
        self._router = router
        self._client = client
        self._tokenizer = tokenizer
        self._gate = gate
        self._temperature = temperature
        self._system_prompt = system_prompt if system_prompt is not None else load_prompt("system.txt")
        self._tool_prompt = tool_prompt if tool_prompt is not None else load_prompt("tool_params.txt")
        self._metrics = metrics if metrics is not None else OtelQueryMetrics()
        self._clock = clock

    async def answer(self, query: Query) -> Response | str:
        """Resolve ``query``; the full Response if details were requested, else its text."""
        response = await self.query(query.text, use_cache=query.use_cache)
        return response if query.want_details else response.response

    async def query(self, text: str, use_cache: bool = True) -> Response:
        """
        Resolve one question.

        Args:
            text: The question
            use_cache: Consult the semantic cache first and allow caching the answer

        Returns:
            The structured answer. A cache hit yields a FINAL response with
            only the cached text set.
        """
        with tracer.start_as_current_span("orchestrator.query") as span:
            span.set_attribute("use_cache", use_cache)

            if use_cache:
                cached = await self._check_cache(text)
                if cached:
                    self._count_cache_tokens(span, text, cached)
                    return Response(type=ResponseType.FINAL, response=cached)

            response = await self._generate(text)

            if response.response.endswith(FALLBACK_SENTINEL):
                logger.debug("Model could not answer from the available context")
                self._metrics.add_cant_answer()
            elif use_cache and response.confidence > self._gate.min_confidence_cache:
                entry_id = await self._cache.add(text, response.response)
                logger.debug(f"Cached answer as {entry_id} (confidence {response.confidence:.2f})")

            return response

    async def _check_cache(self, text: str) -> str:
        """Cached answer of the first entry above the cache threshold, or ""."""
        with tracer.start_as_current_span("orchestrator.check_cache") as span:
            entries = await self._cache.query(text)

            max_similarity = 0.0
            for i, entry in enumerate(entries):
                max_similarity = max(max_similarity, entry.similarity)
                if entry.similarity > self._gate.min_confidence_cache:
                    span.add_event("using cache", {"index": i})
                    logger.debug(f"Cache hit {entry.id} (similarity {entry.similarity:.3f})")
                    return SemanticCache.response_of(entry)

            span.set_attribute("max_similarity", max_similarity)
            logger.debug(f"Cache miss (max similarity {max_similarity:.3f})")
            return ""

    async def _generate(self, text: str) -> Response:
        with tracer.start_as_current_span("orchestrator.generate") as span:
            prompt = await self._build_prompt(text)

            raw = await self._client.generate(
                prompt,
                temperature=self._temperature,
                system=self._system_prompt,
            )
            response = decode_response(raw)

            tokens_in = self._tokenizer.count(text)
            tokens_out = self._tokenizer.count(response.response)
            self._metrics.add_llm_tokens(tokens_in, tokens_out)
            span.set_attribute("tokens_in_llm", tokens_in)
            span.set_attribute("tokens_out_llm", tokens_out)

            return response

    async def _build_prompt(self, text: str) -> str:
        """
        Assemble the answer prompt from retrieved facts.

        Facts are visited once in store order. Tool descriptors are checked
        first against the tool threshold, everything else against the
        context threshold. The header line precedes the first context fact
        only; tool result lines never trigger it.
        """
        facts = await self._retriever.query(text)
        trace.get_current_span().add_event("facts retrieved", {"results": len(facts)})

        lines: list[str] = []
        header_written = False

        for fact in facts:
            if fact.similarity > self._gate.min_confidence_tool and fact.is_tool:
                result = await self._dispatch_tool(text, fact.tool_name)
                lines.append(f" - {result}\n")
                continue

            if fact.similarity > self._gate.min_confidence_rag:
                if not header_written:
                    lines.append(CONTEXT_HEADER)
                    header_written = True
                logger.debug(f"Adding fact {fact.id} (similarity {fact.similarity:.3f})")
                lines.append(f" - {fact.content}\n")

        if not lines:
            return text
        return "".join(lines) + ANSWER_SUFFIX + text

    async def _dispatch_tool(self, text: str, tool_name: str) -> str:
        """Extract parameters for ``tool_name`` from the question, then run it."""
        with tracer.start_as_current_span("orchestrator.dispatch_tool") as span:
            span.set_attribute("tool", tool_name)

            prompt = DATE_LINE.format(now=self._clock()) + self._tool_prompt + text
            raw = await self._client.generate(prompt, temperature=TOOL_TEMPERATURE)
            params = decode_params(raw)

            logger.debug(f"Dispatching tool '{tool_name}' with {params}")
            return await self._router.dispatch(tool_name, params)

    def _count_cache_tokens(self, span: trace.Span, text: str, cached: str) -> None:
        tokens_in = self._tokenizer.count(text)
        tokens_out = self._tokenizer.count(cached)
        self._metrics.add_cache_tokens(tokens_in, tokens_out)
        span.set_attribute("tokens_in_cache", tokens_in)
        span.set_attribute("tokens_out_cache", tokens_out)
