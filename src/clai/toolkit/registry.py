"""Static tool registry: built-ins plus plugins discovered at startup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from clai.toolkit.definitions import get_builtin_tools
from clai.toolkit.plugins import load_plugin_tools

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from clai.models.config import ClaiConfig
    from clai.toolkit.models import ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Name -> ToolDefinition lookup, fixed once the session starts.

    Usage::

        registry = ToolRegistry.from_config(config)
        registry.get("read_file")
    """

    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            if tool.name in self._tools:
                logger.warning("Tool %s registered twice; keeping the first", tool.name)
                continue
            self._tools[tool.name] = tool

    @classmethod
    def from_config(cls, config: ClaiConfig) -> ToolRegistry:
        """Built-in tools followed by any plugins in ``config.plugin_dir``."""
        return cls([*get_builtin_tools(), *load_plugin_tools(config.plugin_dir)])

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
