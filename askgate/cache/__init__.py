"""Semantic cache of previously answered questions."""

from askgate.cache.semantic_cache import RESPONSE_KEY, SemanticCache, parse_tags

__all__ = ["RESPONSE_KEY", "SemanticCache", "parse_tags"]
