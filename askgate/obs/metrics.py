"""
Usage counters for the query path.

The orchestrator reports through the :class:`QueryMetrics` protocol so the
decision logic stays testable without a telemetry backend.

- OtelQueryMetrics: OpenTelemetry counters. With only ``opentelemetry-api``
  installed these are no-ops until an SDK meter provider is configured.
- InMemoryQueryMetrics: plain integers, for tests and the CLI summary.
"""

from __future__ import annotations

import threading
from typing import Protocol

from opentelemetry import metrics

TOKENS_IN_LLM = "tokens_in_llm"
TOKENS_OUT_LLM = "tokens_out_llm"
TOKENS_IN_CACHE = "tokens_in_cache"
TOKENS_OUT_CACHE = "tokens_out_cache"
CANT_ANSWER = "cant_answer"

COUNTER_NAMES = (TOKENS_IN_LLM, TOKENS_OUT_LLM, TOKENS_IN_CACHE, TOKENS_OUT_CACHE, CANT_ANSWER)


class QueryMetrics(Protocol):
    def add_llm_tokens(self, tokens_in: int, tokens_out: int) -> None: ...

    def add_cache_tokens(self, tokens_in: int, tokens_out: int) -> None: ...

    def add_cant_answer(self) -> None: ...


class OtelQueryMetrics:
    """Counters registered on an OpenTelemetry meter."""

    def __init__(self, meter: metrics.Meter | None = None):
        meter = meter or metrics.get_meter("askgate")
        self._counters = {
            TOKENS_IN_LLM: meter.create_counter(
                TOKENS_IN_LLM, unit="{token}", description="Prompt tokens sent to the model"
            ),
            TOKENS_OUT_LLM: meter.create_counter(
                TOKENS_OUT_LLM, unit="{token}", description="Answer tokens produced by the model"
            ),
            TOKENS_IN_CACHE: meter.create_counter(
                TOKENS_IN_CACHE, unit="{token}", description="Prompt tokens answered from the cache"
            ),
            TOKENS_OUT_CACHE: meter.create_counter(
                TOKENS_OUT_CACHE, unit="{token}", description="Answer tokens served from the cache"
            ),
            CANT_ANSWER: meter.create_counter(
                CANT_ANSWER, description="Answers where the model reported it could not answer"
            ),
        }

    def add_llm_tokens(self, tokens_in: int, tokens_out: int) -> None:
        self._counters[TOKENS_IN_LLM].add(tokens_in)
        self._counters[TOKENS_OUT_LLM].add(tokens_out)

    def add_cache_tokens(self, tokens_in: int, tokens_out: int) -> None:
        self._counters[TOKENS_IN_CACHE].add(tokens_in)
        self._counters[TOKENS_OUT_CACHE].add(tokens_out)

    def add_cant_answer(self) -> None:
        self._counters[CANT_ANSWER].add(1)


class InMemoryQueryMetrics:
    """Thread-safe in-process counters."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values = dict.fromkeys(COUNTER_NAMES, 0)

    def _add(self, name: str, amount: int) -> None:
        with self._lock:
            self._values[name] += amount

    def add_llm_tokens(self, tokens_in: int, tokens_out: int) -> None:
        self._add(TOKENS_IN_LLM, tokens_in)
        self._add(TOKENS_OUT_LLM, tokens_out)

    def add_cache_tokens(self, tokens_in: int, tokens_out: int) -> None:
        self._add(TOKENS_IN_CACHE, tokens_in)
        self._add(TOKENS_OUT_CACHE, tokens_out)

    def add_cant_answer(self) -> None:
        self._add(CANT_ANSWER, 1)

    def snapshot(self) -> dict[str, int]:
        """Return a copy of the current counter values."""
        with self._lock:
            return dict(self._values)
