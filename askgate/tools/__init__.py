"""
Deterministic tools.

Host-information commands plus a time-series lookup, selected by name through
the ToolRouter.
"""

from askgate.tools.base import Tool, ToolError
from askgate.tools.os_tools import DateTool, DiskUsageTool, HostnameTool, NetworkConfigTool
from askgate.tools.router import ToolRouter, builtin_tools
from askgate.tools.timeseries import TimeSeriesStore, TimeSeriesTool

__all__ = [
    "DateTool",
    "DiskUsageTool",
    "HostnameTool",
    "NetworkConfigTool",
    "TimeSeriesStore",
    "TimeSeriesTool",
    "Tool",
    "ToolError",
    "ToolRouter",
    "builtin_tools",
]
