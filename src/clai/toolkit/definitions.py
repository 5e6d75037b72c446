"""Built-in tool definitions.

Each tool is a pure function from (context, arguments) to text. Paths go
through ``ToolContext.resolve`` so nothing escapes the working directory,
and excluded paths read as if they did not exist. Subprocess-based tools
run under the context's timeout; ``subprocess.TimeoutExpired`` propagates
to the gateway, which reports it as a timeout.
"""

from __future__ import annotations

import difflib
import json
import shlex
import subprocess
from typing import TYPE_CHECKING

from clai.exceptions import ToolError
from clai.toolkit.models import ToolDefinition

if TYPE_CHECKING:
    from pathlib import Path

    from clai.toolkit.models import ToolContext

NOT_FOUND = "ERROR: the requested path does not exist"

_FIND_FORBIDDEN = (
    "-exec", "-execdir", "-ok", "-okdir", "-delete",
    "-fprint", "-fprint0", "-fprintf", "-fls",
    "-follow", "-files0-from", "-L", "-H",
)


def _require(arguments: dict, key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value:
        raise ToolError(f"Missing required argument '{key}'")
    return value


def _run(command: list[str], context: ToolContext) -> dict:
    """Run a command in the working directory and capture its output."""
    proc = subprocess.run(
        command,
        cwd=context.working_dir,
        capture_output=True,
        text=True,
        timeout=context.timeout,
        check=False,
    )
    return {
        "stdout": proc.stdout,
        "stderr": proc.stderr,
        "exitstatus": proc.returncode,
    }


def _entry(context: ToolContext, path: Path) -> str:
    try:
        size = path.stat().st_size
    except OSError:
        return f"{context.relative(path)} (broken link)"
    kind = "directory" if path.is_dir() else "file"
    return f"{context.relative(path)} ({kind}, {size} bytes)"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def list_files(context: ToolContext, arguments: dict) -> str:
    target = context.resolve(arguments.get("path"))
    if context.excluded(target) or not target.is_dir():
        return NOT_FOUND

    lines: list[str] = []
    if arguments.get("recursive"):
        stack = [target]
        while stack:
            directory = stack.pop()
            for child in sorted(directory.iterdir()):
                if context.excluded(child):
                    continue
                lines.append(_entry(context, child))
                if child.is_dir() and not child.is_symlink():
                    stack.append(child)
    else:
        for child in sorted(target.iterdir()):
            if not context.excluded(child):
                lines.append(_entry(context, child))
    return "\n".join(lines)


def read_file(context: ToolContext, arguments: dict) -> str:
    target = context.resolve(_require(arguments, "path"))
    if context.excluded(target) or not target.is_file():
        return NOT_FOUND
    size = target.stat().st_size
    if size > context.max_file_size:
        raise ToolError(
            f"File is {size} bytes, larger than the {context.max_file_size} byte limit"
        )
    text = target.read_text(encoding="utf-8", errors="replace")
    return f"// {context.relative(target)}\n{text}"


def write_file(context: ToolContext, arguments: dict) -> str:
    path = _require(arguments, "path")
    content = arguments.get("content")
    if not isinstance(content, str):
        raise ToolError("Missing required argument 'content'")
    target = context.resolve(path)
    if context.excluded(target):
        raise ToolError(f"Writing to {path} is not allowed")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    return f"Successfully wrote {len(content.encode('utf-8'))} bytes to {path}"


def search_files(context: ToolContext, arguments: dict) -> str:
    pattern = _require(arguments, "pattern")
    base = context.resolve(arguments.get("path"))
    if context.excluded(base) or not base.is_dir():
        return NOT_FOUND

    results: list[str] = []
    for match in sorted(base.glob(pattern)):
        # a glob with ".." can still walk out; filter on the resolved path
        resolved = match.resolve()
        if resolved != context.working_dir and context.working_dir not in resolved.parents:
            continue
        if context.excluded(resolved) or not resolved.exists():
            continue
        results.append(f"{context.relative(resolved)} ({resolved.stat().st_size} bytes)")
    if not results:
        return "No files found matching pattern"
    return "\n".join(results)


def grep(context: ToolContext, arguments: dict) -> str:
    pattern = _require(arguments, "pattern")
    target = context.resolve(arguments.get("path"))
    if context.excluded(target) or not target.exists():
        return NOT_FOUND

    command = ["grep", "-n"]
    if arguments.get("recursive") or target.is_dir():
        # -r follows only the start path, never symlinks met while recursing
        command.append("-r")
        for exclude in context.exclude_patterns:
            if exclude.endswith("/"):
                command.append(f"--exclude-dir={exclude.rstrip('/')}")
            else:
                command.append(f"--exclude={exclude}")
    if arguments.get("case_insensitive"):
        command.append("-i")
    command.append("-P" if arguments.get("regex") else "-F")
    command.extend(["--", pattern, context.relative(target)])
    return json.dumps(_run(command, context), indent=2)


def find(context: ToolContext, arguments: dict) -> str:
    target = context.resolve(arguments.get("path"))
    if context.excluded(target) or not target.exists():
        return NOT_FOUND
    raw_args = arguments.get("raw_args") or ""
    extra = shlex.split(raw_args)
    if any(arg in _FIND_FORBIDDEN for arg in extra):
        return "ERROR: actions like -exec and -delete are not allowed"
    if extra and not extra[0].startswith(("-", "(", "!")):
        # further start points would search outside the working directory
        return "ERROR: raw_args must not contain additional paths"

    command = ["find", context.relative(target), *extra]
    result = _run(command, context)
    result["stdout"] = "\n".join(
        line
        for line in result["stdout"].splitlines()
        if line.strip() and not context.excluded(context.working_dir / line.strip())
    )
    result["cmd"] = shlex.join(command)
    return json.dumps(result, indent=2)


def mkdir(context: ToolContext, arguments: dict) -> str:
    target = context.resolve(_require(arguments, "path"))
    if context.excluded(target):
        return NOT_FOUND
    target.mkdir(parents=True, exist_ok=True)
    return "directory was created"


def diff(context: ToolContext, arguments: dict) -> str:
    first = context.resolve(_require(arguments, "file1"))
    second = context.resolve(_require(arguments, "file2"))
    for label, path in (("file1", first), ("file2", second)):
        if context.excluded(path) or not path.is_file():
            return f"ERROR: the requested path for {label} does not exist"

    a = first.read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
    b = second.read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
    lines = list(
        difflib.unified_diff(
            a, b, fromfile=context.relative(first), tofile=context.relative(second)
        )
    )
    if not lines:
        return "Files are identical"
    return "".join(lines)


def filetype(context: ToolContext, arguments: dict) -> str:
    target = context.resolve(_require(arguments, "path"))
    if context.excluded(target) or not target.exists():
        return NOT_FOUND
    try:
        result = _run(["file", "--brief", context.relative(target)], context)
    except FileNotFoundError:
        raise ToolError("The 'file' command is not installed") from None
    return result["stdout"].strip() or result["stderr"].strip()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _schema(properties: dict, required: list[str] | None = None) -> dict:
    return {
        "type": "object",
        "properties": properties,
        "required": required or [],
    }


_PATH = {"type": "string", "description": "Path relative to the working directory."}


def get_builtin_tools() -> list[ToolDefinition]:
    """Return all built-in tool definitions."""
    return [
        ToolDefinition(
            name="list_files",
            description=(
                "List files and directories in a given path. Returns file "
                "names, types (file/directory), and sizes."
            ),
            parameters=_schema(
                {
                    "path": {
                        "type": "string",
                        "description": "The directory to list. Use '.' for the working directory.",
                    },
                    "recursive": {
                        "type": "boolean",
                        "description": "Whether to list files recursively in subdirectories.",
                    },
                },
                ["path"],
            ),
            handler=list_files,
        ),
        ToolDefinition(
            name="read_file",
            description="Read the contents of a file. The first line of the output is the file path.",
            parameters=_schema({"path": _PATH}, ["path"]),
            handler=read_file,
        ),
        ToolDefinition(
            name="write_file",
            description="Write content to a file, creating parent directories if needed.",
            parameters=_schema(
                {
                    "path": _PATH,
                    "content": {"type": "string", "description": "The full file content."},
                },
                ["path", "content"],
            ),
            handler=write_file,
        ),
        ToolDefinition(
            name="search_files",
            description="Find files whose names match a glob pattern such as '*.py' or '**/*.md'.",
            parameters=_schema(
                {
                    "pattern": {"type": "string", "description": "Glob pattern."},
                    "path": {"type": "string", "description": "Directory to search. Defaults to '.'."},
                },
                ["pattern"],
            ),
            handler=search_files,
        ),
        ToolDefinition(
            name="grep",
            description="Find content inside of a file or files.",
            parameters=_schema(
                {
                    "pattern": {"type": "string", "description": "The pattern to match."},
                    "path": {"type": "string", "description": "The path to search."},
                    "regex": {"type": "boolean", "description": "Treat the pattern as PCRE."},
                    "recursive": {"type": "boolean", "description": "Search recursively."},
                    "case_insensitive": {"type": "boolean", "description": "Ignore case."},
                },
                ["pattern"],
            ),
            handler=grep,
        ),
        ToolDefinition(
            name="find",
            description="Find files using the find command. Actions such as -exec are not allowed.",
            parameters=_schema(
                {
                    "path": {"type": "string", "description": "The path to search in."},
                    "raw_args": {
                        "type": "string",
                        "description": "Extra find arguments, without the path.",
                    },
                },
                ["path"],
            ),
            handler=find,
        ),
        ToolDefinition(
            name="mkdir",
            description="Create a directory, including missing parents.",
            parameters=_schema({"path": _PATH}, ["path"]),
            handler=mkdir,
        ),
        ToolDefinition(
            name="diff",
            description="Show a unified diff between two files.",
            parameters=_schema(
                {
                    "file1": {"type": "string", "description": "The original file."},
                    "file2": {"type": "string", "description": "The changed file."},
                },
                ["file1", "file2"],
            ),
            handler=diff,
        ),
        ToolDefinition(
            name="filetype",
            description="Detect the type of a file using the file command.",
            parameters=_schema({"path": _PATH}, ["path"]),
            handler=filetype,
        ),
    ]
