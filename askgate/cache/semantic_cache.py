"""Semantic cache of previously answered questions."""

from __future__ import annotations

from askgate.config.logging import get_logger
from askgate.rag.base import RetrievedFact
from askgate.rag.engine import EmbeddedCollection

logger = get_logger(__name__)

RESPONSE_KEY = "RESPONSE"
TAG_SEPARATOR = ","
KEY_VALUE_SEPARATOR = ":"


def parse_tags(meta: str) -> dict[str, str]:
    """
    Parse a ``KEY:VALUE,KEY:VALUE`` tag list.

    Pairs that do not split into exactly one key and one value are skipped.
    A ``RESPONSE`` tag is dropped because that key is reserved for the
    cached answer.

    >>> parse_tags("lang:en,bad,source:manual")
    {'lang': 'en', 'source': 'manual'}
    """
    tags: dict[str, str] = {}
    if not meta:
        return tags

    for pair in meta.split(TAG_SEPARATOR):
        parts = pair.split(KEY_VALUE_SEPARATOR)
        if len(parts) != 2:
            continue
        key, value = parts
        if key == RESPONSE_KEY:
            continue
        tags[key] = value
    return tags


class SemanticCache(EmbeddedCollection):
    """
    Question/answer pairs matched by question similarity.

    The question is embedded and stored as the entry content; the answer is
    kept in the ``RESPONSE`` metadata key next to any caller tags.
    """

    async def add(self, fact: str, response: str, meta: str = "") -> str:
        """Cache ``response`` as the answer to ``fact`` and return the entry id."""
        metadata = {RESPONSE_KEY: response, **parse_tags(meta)}
        entry_id = await self._add(fact, metadata)
        logger.debug(f"Cached answer {entry_id} ({len(metadata) - 1} tags)")
        return entry_id

    @staticmethod
    def response_of(entry: RetrievedFact) -> str:
        """Cached answer stored on a query result."""
        return entry.metadata.get(RESPONSE_KEY, "")
