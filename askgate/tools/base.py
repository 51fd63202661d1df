"""
Base classes for deterministic tools.

A tool answers one narrow kind of question from string parameters the model
extracted from the user's query. Results are plain text that gets added to
the prompt context.
"""

from abc import ABC, abstractmethod


class ToolError(RuntimeError):
    """Raised when a tool cannot produce a result."""


class Tool(ABC):
    """Abstract base class for tools."""

    name: str = ""

    @abstractmethod
    async def query(self, params: dict[str, str]) -> str:
        """
        Run the tool.

        Args:
            params: Lower-cased parameter names mapped to values. The router
                always sets ``params["tool"]`` to the requested tool name.

        Returns:
            Result text for the prompt context

        Raises:
            ToolError: If the tool fails
        """
