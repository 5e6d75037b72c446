"""Tool layer: definitions, sandbox, permissions and the gateway."""

from clai.toolkit.definitions import get_builtin_tools
from clai.toolkit.gateway import ToolGateway
from clai.toolkit.models import ToolContext, ToolDefinition, ToolResult, ToolStatus
from clai.toolkit.permissions import PermissionState
from clai.toolkit.plugins import load_plugin, load_plugin_tools
from clai.toolkit.registry import ToolRegistry
from clai.toolkit.sandbox import is_excluded, resolve_in_workdir

__all__ = [
    "PermissionState",
    "ToolContext",
    "ToolDefinition",
    "ToolGateway",
    "ToolRegistry",
    "ToolResult",
    "ToolStatus",
    "get_builtin_tools",
    "is_excluded",
    "load_plugin",
    "load_plugin_tools",
    "resolve_in_workdir",
]
