"""Path confinement for tool arguments.

Every path a model hands to a tool is resolved against the session's
working directory. Symlinks are followed before the containment check,
so a link pointing outside the directory is rejected like ``../``.
"""

from __future__ import annotations

import fnmatch
from pathlib import Path, PurePath
from typing import TYPE_CHECKING

from clai.exceptions import SandboxViolationError

if TYPE_CHECKING:
    from collections.abc import Iterable


def resolve_in_workdir(path: str | PurePath, working_dir: str | Path) -> Path:
    """Resolve ``path`` and check it stays inside ``working_dir``.

    Relative paths are joined onto the working directory; absolute paths
    are accepted only when they already point inside it.

    Returns:
        The resolved absolute path.

    Raises:
        SandboxViolationError: If the resolved path is outside the
            working directory.
    """
    root = Path(working_dir).resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    target = candidate.resolve()
    if target != root and root not in target.parents:
        raise SandboxViolationError(str(path), str(root))
    return target


def is_excluded(
    path: str | PurePath,
    patterns: Iterable[str],
    working_dir: str | Path | None = None,
) -> bool:
    """Check ``path`` against exclude patterns.

    A pattern ending in ``/`` names a directory and matches when any path
    component equals it. Other patterns are shell globs matched against
    the basename and against the path relative to ``working_dir``.
    """
    p = PurePath(path)
    if working_dir is not None:
        try:
            p = p.relative_to(Path(working_dir).resolve())
        except ValueError:
            pass
    parts = p.parts
    rel = p.as_posix()
    for pattern in patterns:
        if pattern.endswith("/"):
            if pattern.rstrip("/") in parts:
                return True
            continue
        if fnmatch.fnmatch(p.name, pattern) or fnmatch.fnmatch(rel, pattern):
            return True
    return False
