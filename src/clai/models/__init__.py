"""Configuration models."""

from clai.models.config import ClaiConfig, load_config

__all__ = ["ClaiConfig", "load_config"]
