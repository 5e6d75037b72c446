"""Tests for external executable tools."""

from __future__ import annotations

import json
import os
import stat
import sys

import pytest

from clai.exceptions import PluginError, ToolError
from clai.toolkit.models import ToolContext
from clai.toolkit.plugins import PluginExecutor, load_plugin, load_plugin_tools
from clai.toolkit.registry import ToolRegistry

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="plugins are shell scripts")

ECHO_PLUGIN = """\
#!/bin/sh
if [ "$1" = "--describe" ]; then
  echo '{"type": "function", "function": {"name": "echo_input", "description": "Echo the envelope", "parameters": {"type": "object", "properties": {"word": {"type": "string"}}}}}'
  exit 0
fi
cat
"""

BARE_PLUGIN = """\
#!/bin/sh
if [ "$1" = "--describe" ]; then
  echo '{"name": "bare", "description": "Bare definition"}'
  exit 0
fi
echo "bare ran"
"""

FAILING_PLUGIN = """\
#!/bin/sh
if [ "$1" = "--describe" ]; then
  echo '{"name": "fails"}'
  exit 0
fi
echo "something broke" >&2
exit 3
"""

BROKEN_DESCRIBE = """\
#!/bin/sh
echo 'not json'
"""


def _write_plugin(directory, name: str, body: str, executable: bool = True):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(body)
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class TestLoadPlugin:
    def test_openai_format(self, tmp_path):
        definition = load_plugin(_write_plugin(tmp_path, "echo", ECHO_PLUGIN))

        assert definition.name == "echo_input"
        assert definition.description == "Echo the envelope"
        assert "word" in definition.parameters["properties"]
        assert isinstance(definition.handler, PluginExecutor)

    def test_bare_format_gets_default_parameters(self, tmp_path):
        definition = load_plugin(_write_plugin(tmp_path, "bare", BARE_PLUGIN))

        assert definition.name == "bare"
        assert definition.parameters == {"type": "object", "properties": {}}

    def test_invalid_json(self, tmp_path):
        with pytest.raises(PluginError, match="invalid JSON"):
            load_plugin(_write_plugin(tmp_path, "broken", BROKEN_DESCRIBE))

    def test_missing_executable(self, tmp_path):
        with pytest.raises(PluginError):
            load_plugin(tmp_path / "nope")


class TestPluginExecutor:
    def test_envelope_on_stdin(self, tmp_path, workspace, config):
        definition = load_plugin(_write_plugin(tmp_path / "bin", "echo", ECHO_PLUGIN))
        context = ToolContext.from_config(config.model_copy(update={"api_key": "sk-secret"}), workspace)

        output = definition.handler(context, {"word": "hi"})

        envelope = json.loads(output)
        assert json.loads(envelope["input"]) == {"word": "hi"}
        assert envelope["cwd"] == str(workspace.resolve())
        assert envelope["config"]["model"] == config.model
        assert "api_key" not in envelope["config"]

    def test_nonzero_exit_raises(self, tmp_path, workspace):
        definition = load_plugin(_write_plugin(tmp_path, "fails", FAILING_PLUGIN))

        with pytest.raises(ToolError, match="status 3: something broke"):
            definition.handler(ToolContext(working_dir=workspace), {})


class TestDiscovery:
    def test_skips_broken_and_non_executable(self, tmp_path):
        plugins = tmp_path / "plugins"
        _write_plugin(plugins, "a_echo", ECHO_PLUGIN)
        _write_plugin(plugins, "b_broken", BROKEN_DESCRIBE)
        _write_plugin(plugins, "c_plain", BARE_PLUGIN, executable=False)
        (plugins / "subdir").mkdir()

        tools = load_plugin_tools(plugins)

        assert [t.name for t in tools] == ["echo_input"]

    def test_missing_directory(self, tmp_path):
        assert load_plugin_tools(tmp_path / "absent") == []
        assert load_plugin_tools(None) == []

    def test_registry_includes_plugins(self, config):
        _write_plugin(config.plugin_path, "bare", BARE_PLUGIN)

        registry = ToolRegistry.from_config(config)

        assert registry.names()[-1] == "bare"
        assert os.access(config.plugin_path / "bare", os.X_OK)
