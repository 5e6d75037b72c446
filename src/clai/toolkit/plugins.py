"""External executable tools.

Every executable file in the plugin directory is a tool. At startup it is
run with ``--describe`` and must print its definition as JSON, either in
OpenAI function-calling format (``{"type": "function", "function": {...}}``)
or as a bare ``{"name", "description", "parameters"}`` object.

To execute, the plugin is run with no arguments and a JSON envelope on
standard input::

    {"input": "<arguments as JSON text>", "cwd": "<working dir>", "config": {...}}

Its combined stdout and stderr is the tool output.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from clai.exceptions import PluginError, ToolError
from clai.toolkit.models import ToolDefinition

if TYPE_CHECKING:
    from clai.toolkit.models import ToolContext

logger = logging.getLogger(__name__)

DESCRIBE_FLAG = "--describe"


class PluginExecutor:
    """Tool handler that runs an external executable."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, context: ToolContext, arguments: dict) -> str:
        config = {}
        if context.config is not None:
            config = context.config.model_dump(mode="json", exclude={"api_key"})
        envelope = {
            "input": json.dumps(arguments),
            "cwd": str(context.working_dir),
            "config": config,
        }
        proc = subprocess.run(
            [str(self.path)],
            input=json.dumps(envelope),
            cwd=context.working_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=context.timeout,
            check=False,
        )
        if proc.returncode != 0:
            raise ToolError(
                f"{self.path.name} exited with status {proc.returncode}: {proc.stdout.strip()}"
            )
        return proc.stdout

    def __repr__(self) -> str:
        return f"PluginExecutor({str(self.path)!r})"


def load_plugin(path: str | Path, *, timeout: float = 5.0) -> ToolDefinition:
    """Ask one executable to describe itself.

    Raises:
        PluginError: If the executable fails, times out, or prints an
            unusable definition.
    """
    path = Path(path)
    try:
        proc = subprocess.run(
            [str(path), DESCRIBE_FLAG],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise PluginError(str(path), f"could not run {DESCRIBE_FLAG}: {exc}") from exc
    if proc.returncode != 0:
        raise PluginError(str(path), f"{DESCRIBE_FLAG} exited with status {proc.returncode}")

    try:
        data = json.loads(proc.stdout)
    except json.JSONDecodeError as exc:
        raise PluginError(str(path), f"invalid JSON definition: {exc}") from exc
    if not isinstance(data, dict):
        raise PluginError(str(path), "definition must be a JSON object")

    function = data.get("function", data)
    name = function.get("name") if isinstance(function, dict) else None
    if not name:
        raise PluginError(str(path), "definition has no name")
    return ToolDefinition(
        name=name,
        description=function.get("description", ""),
        parameters=function.get("parameters") or {"type": "object", "properties": {}},
        handler=PluginExecutor(path),
    )


def load_plugin_tools(plugin_dir: str | Path | None, *, timeout: float = 5.0) -> list[ToolDefinition]:
    """Discover plugin tools. Broken plugins are logged and skipped."""
    if not plugin_dir:
        return []
    directory = Path(plugin_dir).expanduser()
    if not directory.is_dir():
        logger.debug("Plugin directory %s does not exist", directory)
        return []

    tools: list[ToolDefinition] = []
    for entry in sorted(directory.iterdir()):
        if not entry.is_file() or not os.access(entry, os.X_OK):
            continue
        try:
            tools.append(load_plugin(entry, timeout=timeout))
        except PluginError as exc:
            logger.warning("Failed to load tool definition: %s", exc)
            continue
        logger.info("Loaded plugin tool %s from %s", tools[-1].name, entry)
    return tools
