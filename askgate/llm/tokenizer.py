"""Token counting for usage metrics."""

import tiktoken

from askgate.config.logging import get_logger

logger = get_logger(__name__)


class TokenCountError(RuntimeError):
    """Raised when text cannot be tokenized."""


class TokenCounter:
    """
    Counts tokens with a tiktoken encoding.

    The encoding is resolved lazily on first use so constructing the
    counter never touches the network.
    """

    def __init__(self, encoding_name: str = "cl100k_base"):
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    def count(self, text: str) -> int:
        try:
            if self._encoding is None:
                self._encoding = tiktoken.get_encoding(self.encoding_name)
            return len(self._encoding.encode(text, disallowed_special=()))
        except Exception as e:
            logger.error(f"Token counting failed: {e}")
            raise TokenCountError(f"Could not count tokens with '{self.encoding_name}': {e}") from e
