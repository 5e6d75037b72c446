"""Tests for configuration loading and validation."""

from __future__ import annotations

import pytest
import yaml

from clai.exceptions import ConfigError
from clai.models.config import (
    DEFAULT_EXCLUDE_PATTERNS,
    ClaiConfig,
    default_config_text,
    load_config,
    mask_api_key,
    read_config_file,
    write_default_config,
)


@pytest.fixture
def config_file(tmp_path):
    def _write(text: str):
        path = tmp_path / "clai.yaml"
        path.write_text(text)
        return path

    return _write


class TestDefaults:
    def test_ollama_defaults(self, config_file):
        config = load_config(config_file(""), environ={})

        assert config.provider == "ollama"
        assert config.model == "gpt-oss:latest"
        assert config.base_url == "http://localhost:11434/v1"
        assert config.api_key == ""
        assert config.permitted_tools == ["list_files", "search_files"]
        assert config.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert config.max_tool_chain == 25

    def test_derived_paths(self, config_file, tmp_path):
        config = load_config(config_file(f"session_dir: {tmp_path}/state\n"), environ={})

        assert config.history_db_path == tmp_path / "state" / "history.db"
        assert config.log_path == tmp_path / "state" / "clai.log"


class TestPrecedence:
    def test_file_values(self, config_file):
        config = load_config(
            config_file("model: llama3\ntemperature: 0.2\npermitted_tools: [read_file]\n"),
            environ={},
        )

        assert config.model == "llama3"
        assert config.temperature == 0.2
        assert config.permitted_tools == ["read_file"]

    def test_env_overrides_file(self, config_file):
        config = load_config(
            config_file("model: llama3\n"),
            environ={"CLAI_MODEL": "qwen", "CLAI_EXCLUDE_PATTERNS": "a/, *.bak", "CLAI_MAX_TOOL_CHAIN": "5"},
        )

        assert config.model == "qwen"
        assert config.exclude_patterns == ["a/", "*.bak"]
        assert config.max_tool_chain == 5

    def test_overrides_win_and_none_ignored(self, config_file):
        config = load_config(
            config_file("model: llama3\n"),
            overrides={"model": "cli-model", "provider": None},
            environ={"CLAI_MODEL": "qwen"},
        )

        assert config.model == "cli-model"
        assert config.provider == "ollama"

    def test_openai_key_from_environment(self, config_file):
        config = load_config(config_file("provider: openai\n"), environ={"OPENAI_API_KEY": "sk-env"})

        assert config.api_key == "sk-env"
        assert config.base_url == "https://api.openai.com/v1"

    def test_explicit_base_url_kept(self, config_file):
        config = load_config(config_file("base_url: http://gpu-box:8000/v1\n"), environ={})

        assert config.base_url == "http://gpu-box:8000/v1"


class TestValidation:
    def test_openai_requires_key(self, config_file):
        with pytest.raises(ConfigError, match="API key not found"):
            load_config(config_file("provider: openai\n"), environ={})

    def test_custom_requires_base_url(self, config_file):
        with pytest.raises(ConfigError, match="base_url"):
            load_config(config_file("provider: custom\n"), environ={})

    @pytest.mark.parametrize(
        "text",
        ["max_tokens: 0\n", "temperature: 3\n", "max_tool_chain: -1\n", "tool_timeout: 0\n", "provider: bogus\n"],
    )
    def test_invalid_values(self, config_file, text):
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(config_file(text), environ={})

    def test_unknown_keys_ignored(self, config_file):
        config = load_config(config_file("colour: blue\n"), environ={})

        assert not hasattr(config, "colour")

    def test_not_a_mapping(self, config_file):
        with pytest.raises(ConfigError, match="mapping"):
            read_config_file(config_file("- a\n- b\n"))

    def test_invalid_yaml(self, config_file):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            read_config_file(config_file("model: [unclosed\n"))

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "absent.yaml", environ={})


class TestHelpers:
    @pytest.mark.parametrize(
        ("key", "masked"),
        [("", "(not set)"), ("short", "****"), ("sk-1234567890abcd", "sk-1...abcd")],
    )
    def test_mask_api_key(self, key, masked):
        assert mask_api_key(key) == masked

    def test_default_config_text_is_loadable(self):
        data = yaml.safe_load(default_config_text())

        config = ClaiConfig.model_validate(data)
        assert config.exclude_patterns == DEFAULT_EXCLUDE_PATTERNS
        assert config.permitted_tools == ["list_files", "search_files"]

    def test_write_default_config(self, tmp_path):
        path = write_default_config(tmp_path / "conf" / "clai.yaml")

        assert path.read_text() == default_config_text()
        with pytest.raises(ConfigError, match="already exists"):
            write_default_config(path)
