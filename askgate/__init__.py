"""
AskGate - confidence-gated question answering.

Answers natural-language queries by layering a semantic cache, a retrieval
context builder, deterministic tools and a generative model fallback.
"""

__version__ = "0.1.0"
