"""Tool name to executor dispatch."""

from __future__ import annotations

from opentelemetry import trace

from askgate.config.logging import get_logger
from askgate.tools.base import Tool
from askgate.tools.os_tools import DateTool, DiskUsageTool, HostnameTool, NetworkConfigTool

logger = get_logger(__name__)
tracer = trace.get_tracer(__name__)

TOOL_PARAM = "tool"


def builtin_tools() -> dict[str, Tool]:
    """The host-information tools, keyed by the name the model uses."""
    tools: list[Tool] = [DateTool(), HostnameTool(), NetworkConfigTool(), DiskUsageTool()]
    return {tool.name: tool for tool in tools}


class ToolRouter:
    """
    Maps a tool name to its executor.

    Unknown names are not an error: they go to ``default`` with the name
    available as ``params["tool"]``. The time-series tool relies on this to
    treat the name as a series identifier.

    Args:
        tools: Executors keyed by tool name
        default: Executor for every other name
    """

    def __init__(self, tools: dict[str, Tool], default: Tool):
        self._tools = dict(tools)
        self._default = default

    @property
    def names(self) -> list[str]:
        return sorted(self._tools)

    async def dispatch(self, tool_name: str, params: dict[str, str]) -> str:
        """Run ``tool_name`` with a copy of ``params`` that carries the name."""
        params = {**params, TOOL_PARAM: tool_name}
        tool = self._tools.get(tool_name)

        with tracer.start_as_current_span("tool.dispatch") as span:
            span.set_attribute("tool", tool_name)
            span.set_attribute("default", tool is None)
            if tool is None:
                logger.debug(f"No tool named '{tool_name}', using {type(self._default).__name__}")
                tool = self._default
            return await tool.query(params)
