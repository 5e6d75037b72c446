"""Token counting engines."""

from clai.engine.tokens import ApproximateTokenCounter, TiktokenCounter

__all__ = ["ApproximateTokenCounter", "TiktokenCounter"]
