"""
Tools that report on the host by running a system command.

Each tool runs one command with stderr folded into stdout and prefixes the
trimmed output with a short description. Parameters are ignored.
"""

from __future__ import annotations

import asyncio

from askgate.config.logging import get_logger
from askgate.tools.base import Tool, ToolError

logger = get_logger(__name__)


class CommandTool(Tool):
    """Runs ``command`` and returns ``prefix`` followed by its output."""

    command: tuple[str, ...] = ()
    prefix: str = ""

    async def run(self) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ToolError(f"Could not run '{' '.join(self.command)}': {e}") from e

        try:
            stdout, _ = await process.communicate()
        except asyncio.CancelledError:
            process.kill()
            await process.wait()
            raise

        output = stdout.decode(errors="replace").strip()
        if process.returncode != 0:
            raise ToolError(
                f"'{' '.join(self.command)}' exited with status {process.returncode}: {output}"
            )
        return output

    async def query(self, params: dict[str, str]) -> str:
        logger.debug(f"Running {self.command!r} for tool '{self.name}'")
        return self.prefix + await self.run()


class DateTool(CommandTool):
    name = "date"
    command = ("date",)
    prefix = "The current date and time is: "


class HostnameTool(CommandTool):
    name = "hostname"
    command = ("hostname",)
    prefix = "Your hostname is: "


class NetworkConfigTool(CommandTool):
    name = "ifconfig"
    command = ("ifconfig",)
    prefix = "The network and IP settings are: "


class DiskUsageTool(CommandTool):
    name = "df"
    command = ("df", "-h")
    prefix = "Free disk information: "
