"""Configuration model and loader.

ClaiConfig holds every setting. ``load_config`` resolves it from, in
increasing priority: built-in defaults, the YAML config file, ``CLAI_*``
environment variables, then explicit overrides (CLI flags). Provider
defaults (base URL, API key from ``OPENAI_API_KEY``) are filled in last,
then the result is validated.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from clai.exceptions import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CLAI_"

Provider = Literal["openai", "ollama", "custom"]

DEFAULT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "ollama": "http://localhost:11434/v1",
}

DEFAULT_SYSTEM_PROMPT = """\
You are an expert coding assistant helping developers write, debug, and improve code.

Key responsibilities:
- Write clean, efficient, and well-documented code
- Explain technical concepts clearly
- Debug issues and propose fixes
- Refactor code for better maintainability

You can inspect and change files in the user's working directory with the
provided tools. Paths are relative to that directory. Prefer reading a file
before changing it, and keep existing code style and conventions."""

DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules/",
    ".git/",
    "*.log",
    "*.tmp",
    "vendor/",
    "dist/",
    "build/",
]


class ClaiConfig(BaseModel):
    """All clai settings. Field names are the YAML keys."""

    model_config = {"extra": "ignore"}

    # Provider
    provider: Provider = "ollama"
    model: str = "gpt-oss:latest"
    api_key: str = ""
    base_url: str = ""
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 4096
    temperature: float = 0.7

    # Files and tools
    exclude_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    max_file_size: int = 1024 * 1024
    permitted_tools: list[str] = Field(default_factory=lambda: ["list_files", "search_files"])
    plugin_dir: str = "~/.clai/plugins"
    tool_timeout: float = 30.0

    # Session
    session_dir: str = "~/.clai"
    save_history: bool = True
    max_tool_chain: int = 25
    event_buffer: int = 16
    show_thinking: bool = True
    verbose: bool = False

    @field_validator("max_tokens", "max_tool_chain", "event_buffer")
    @classmethod
    def _positive(cls, value: int, info: Any) -> int:
        if value < 1:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("temperature")
    @classmethod
    def _temperature_range(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        return value

    @field_validator("tool_timeout")
    @classmethod
    def _timeout_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("tool_timeout must be > 0")
        return value

    @model_validator(mode="after")
    def _provider_requirements(self) -> ClaiConfig:
        if not self.model:
            raise ValueError("model not specified")
        if self.provider == "openai" and not self.api_key:
            raise ValueError(
                "API key not found. Set api_key or the OPENAI_API_KEY environment variable"
            )
        if self.provider == "custom" and not self.base_url:
            raise ValueError("base_url must be set for the custom provider")
        return self

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def session_path(self) -> Path:
        return Path(self.session_dir).expanduser()

    @property
    def plugin_path(self) -> Path:
        return Path(self.plugin_dir).expanduser()

    @property
    def history_db_path(self) -> Path:
        return self.session_path / "history.db"

    @property
    def log_path(self) -> Path:
        return self.session_path / "clai.log"


def default_config_path() -> Path:
    return Path("~/.clai.yaml").expanduser()


def find_config_file() -> Path | None:
    """First existing config file among the standard locations."""
    xdg = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    for candidate in (default_config_path(), Path(xdg).expanduser() / "clai" / "config.yaml"):
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: str | Path) -> dict[str, Any]:
    """Parse a YAML config file into a mapping.

    Raises:
        ConfigError: If the file is unreadable or not a YAML mapping.
    """
    try:
        with open(Path(path).expanduser(), encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _env_overrides(environ: dict[str, str]) -> dict[str, Any]:
    """Collect ``CLAI_<FIELD>`` variables. List fields are comma separated."""
    overrides: dict[str, Any] = {}
    for name, field in ClaiConfig.model_fields.items():
        raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
        if raw is None:
            continue
        if field.annotation == list[str]:
            overrides[name] = [part.strip() for part in raw.split(",") if part.strip()]
        else:
            overrides[name] = raw
    return overrides


def load_config(
    path: str | Path | None = None,
    overrides: Optional[dict[str, Any]] = None,
    environ: Optional[dict[str, str]] = None,
) -> ClaiConfig:
    """Resolve the effective configuration.

    Args:
        path: Explicit config file. When None, the standard locations are
            searched and a missing file is not an error.
        overrides: Highest-priority values, e.g. from CLI flags. None
            values are ignored.
        environ: Environment mapping, defaults to ``os.environ``.

    Raises:
        ConfigError: If the file cannot be read or the result is invalid.
    """
    environ = dict(os.environ if environ is None else environ)
    data: dict[str, Any] = {}

    config_file = Path(path) if path is not None else find_config_file()
    if config_file is not None:
        data.update(read_config_file(config_file))
        logger.debug("Loaded config file %s", config_file)

    data.update(_env_overrides(environ))
    data.update({k: v for k, v in (overrides or {}).items() if v is not None})

    provider = data.get("provider", ClaiConfig.model_fields["provider"].default)
    if not data.get("api_key") and provider == "openai":
        data["api_key"] = environ.get("OPENAI_API_KEY", "")
    if not data.get("base_url"):
        data["base_url"] = DEFAULT_BASE_URLS.get(provider, "")

    try:
        return ClaiConfig.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from exc


def mask_api_key(key: str) -> str:
    if not key:
        return "(not set)"
    if len(key) < 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


def default_config_text() -> str:
    """Commented YAML written by ``clai config init``."""
    defaults = ClaiConfig.model_construct()
    excludes = "\n".join(f'  - "{p}"' for p in defaults.exclude_patterns)
    permitted = "\n".join(f"  - {t}" for t in defaults.permitted_tools)
    return f"""\
# clai configuration

# AI provider (openai, ollama, or custom)
provider: {defaults.provider}
model: {defaults.model}

# Base URL for the API endpoint (defaults per provider)
# base_url: http://localhost:11434/v1

# API key (or set OPENAI_API_KEY). Not required for ollama.
# api_key: your-api-key-here

# system_prompt: |
#   You are an expert coding assistant...

max_tokens: {defaults.max_tokens}
temperature: {defaults.temperature}

# Files and tools
exclude_patterns:
{excludes}
max_file_size: {defaults.max_file_size}
permitted_tools:  # run without asking
{permitted}
plugin_dir: {defaults.plugin_dir}
tool_timeout: {defaults.tool_timeout:g}

# Session
session_dir: {defaults.session_dir}
save_history: {str(defaults.save_history).lower()}
max_tool_chain: {defaults.max_tool_chain}
show_thinking: {str(defaults.show_thinking).lower()}
"""


def write_default_config(path: str | Path | None = None) -> Path:
    """Create a default config file.

    Raises:
        ConfigError: If the file already exists.
    """
    target = Path(path).expanduser() if path is not None else default_config_path()
    if target.exists():
        raise ConfigError(f"Config file already exists at {target}")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(default_config_text(), encoding="utf-8")
    return target
