"""ToolGateway: validates, permission-checks and executes tool calls.

The gateway never touches the conversation. It returns a ToolResult
whose ``text`` the session wraps into a tool-result message, so every
failure (unknown tool, sandbox violation, handler error, timeout) ends
up in front of the model instead of crashing the process.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from clai.exceptions import SandboxViolationError
from clai.toolkit.models import ToolContext, ToolResult, ToolStatus

if TYPE_CHECKING:
    from clai.models.config import ClaiConfig
    from clai.protocols import ToolCall
    from clai.toolkit.permissions import PermissionState
    from clai.toolkit.registry import ToolRegistry

logger = logging.getLogger(__name__)


def unknown_tool_message(name: str, available: list[str]) -> str:
    return f"There is no tool named {name}, valid tools are: {', '.join(available)}"


class ToolGateway:
    """Dispatches tool calls to registered handlers.

    Usage::

        gateway = ToolGateway(registry, config)
        result = gateway.execute(call, permissions, workdir)
        if result.requires_permission:
            ...  # ask the user, then
            result = gateway.execute(call, permissions, workdir, granted=True)
    """

    def __init__(self, registry: ToolRegistry, config: ClaiConfig | None = None) -> None:
        self._registry = registry
        self._config = config

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def context_for(self, working_dir: str | Path) -> ToolContext:
        """Build the handler context for ``working_dir``."""
        if self._config is not None:
            return ToolContext.from_config(self._config, working_dir)
        return ToolContext(working_dir=Path(working_dir).resolve())

    def check(self, tool_call: ToolCall, permissions: PermissionState) -> ToolStatus:
        """Classify a call without running it: unknown, needs permission, or OK."""
        if tool_call.name not in self._registry:
            return ToolStatus.UNKNOWN_TOOL
        if not permissions.is_allowed(tool_call.name):
            return ToolStatus.PERMISSION_REQUIRED
        return ToolStatus.OK

    def execute(
        self,
        tool_call: ToolCall,
        permissions: PermissionState,
        working_dir: str | Path,
        *,
        granted: bool = False,
    ) -> ToolResult:
        """Execute a tool call.

        Args:
            tool_call: The model's request.
            permissions: Session allow-list.
            working_dir: Sandbox root for path arguments.
            granted: A one-off grant for this call from the user.

        Returns:
            ToolResult. PERMISSION_REQUIRED means nothing was executed.
        """
        name = tool_call.name
        tool = self._registry.get(name)
        if tool is None:
            available = self._registry.names()
            return ToolResult(
                tool_name=name,
                status=ToolStatus.UNKNOWN_TOOL,
                error=unknown_tool_message(name, available),
                available_tools=tuple(available),
            )
        if not granted and not permissions.is_allowed(name):
            return ToolResult(
                tool_name=name,
                status=ToolStatus.PERMISSION_REQUIRED,
                error=f"Permission required to run {name}",
            )
        if "_raw" in tool_call.arguments:
            return ToolResult(
                tool_name=name,
                status=ToolStatus.ERROR,
                error=f"Arguments are not valid JSON: {tool_call.arguments['_raw']}",
            )

        context = self.context_for(working_dir)
        logger.info("Running tool %s %s", name, tool_call.arguments)
        try:
            output = tool.handler(context, tool_call.arguments)
        except SandboxViolationError as exc:
            logger.warning("Sandbox violation by %s: %s", name, exc)
            return ToolResult(
                tool_name=name,
                status=ToolStatus.SANDBOX_VIOLATION,
                error=f"Access denied: {exc}",
            )
        except subprocess.TimeoutExpired:
            logger.warning("Tool %s timed out after %ss", name, context.timeout)
            return ToolResult(
                tool_name=name,
                status=ToolStatus.TIMEOUT,
                error=f"{name} timed out after {context.timeout:g} seconds",
            )
        except Exception as exc:
            logger.debug("Tool %s failed: %s", name, exc, exc_info=True)
            return ToolResult(
                tool_name=name,
                status=ToolStatus.ERROR,
                error=f"{type(exc).__name__}: {exc}",
            )
        return ToolResult(tool_name=name, status=ToolStatus.OK, output=str(output))
