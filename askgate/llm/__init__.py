"""
Query layer.

Decides how each question is answered and talks to the generative model:

    QueryOrchestrator.query(text, use_cache)
        ├─ SemanticCache          (earlier answers)
        ├─ FactStore              (facts and tool descriptors)
        ├─ ToolRouter             (deterministic tools)
        └─ GenerativeClient       (LiteLLM acompletion)
                 ↓
             Response
"""

from askgate.llm.client import GenerativeClient
from askgate.llm.models import LLMError, Query, Response, ResponseDecodeError, ResponseType
from askgate.llm.orchestrator import QueryOrchestrator
from askgate.llm.parsing import clean_json
from askgate.llm.tokenizer import TokenCounter, TokenCountError

__all__ = [
    "GenerativeClient",
    "LLMError",
    "Query",
    "QueryOrchestrator",
    "Response",
    "ResponseDecodeError",
    "ResponseType",
    "TokenCountError",
    "TokenCounter",
    "clean_json",
]
