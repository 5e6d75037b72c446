"""Session-scoped tool allow-list.

Shared between the session coordinator (which grants) and the tool
gateway (which checks), so every access goes through one lock.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class PermissionState:
    """Set of tool names that run without asking.

    Usage::

        permissions = PermissionState(["list_files"])
        permissions.is_allowed("read_file")   # False
        permissions.allow("read_file")
    """

    def __init__(self, allowed: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._allowed: set[str] = set(allowed)

    def is_allowed(self, tool_name: str) -> bool:
        with self._lock:
            return tool_name in self._allowed

    def allow(self, tool_name: str) -> None:
        """Pre-approve ``tool_name`` for the rest of the session."""
        with self._lock:
            self._allowed.add(tool_name)
        logger.info("Tool %s allowed for this session", tool_name)

    def revoke(self, tool_name: str) -> None:
        with self._lock:
            self._allowed.discard(tool_name)
        logger.info("Tool %s permission revoked", tool_name)

    def allowed(self) -> frozenset[str]:
        """Snapshot of the allow-list."""
        with self._lock:
            return frozenset(self._allowed)

    def __contains__(self, tool_name: object) -> bool:
        return isinstance(tool_name, str) and self.is_allowed(tool_name)
