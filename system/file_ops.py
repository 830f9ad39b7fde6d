"""
file_ops.py

File system tools for Persona Hub.
Every tool here is registered with the ToolRegistry, which runs the
guardrail checks before execute() is called.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import config
from tools.base import Tool, require_str

_log = logging.getLogger("persona.system")
_log_file = config.LOGS_DIR / "system.log"
_handler = logging.FileHandler(_log_file)
_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

MAX_READ_BYTES = 50_000


def _resolve(path: str) -> Path:
    """Expand ~ and resolve a path to absolute form."""
    return Path(path).expanduser().resolve()


def _string_param(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


class ReadFileTool(Tool):
    """Read a text file, truncating at MAX_READ_BYTES."""

    name = "readFile"
    description = "Read a file and return its text content. Text files only."
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("Absolute path of the file to read"),
            "encoding": _string_param("Text encoding (default: utf-8)"),
        },
        "required": ["path"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        path = _resolve(require_str(args, "path"))
        encoding = args.get("encoding") or "utf-8"

        with open(path, "rb") as f:
            data = f.read(MAX_READ_BYTES + 1)

        truncated = len(data) > MAX_READ_BYTES
        text = data[:MAX_READ_BYTES].decode(encoding, errors="replace")
        _log.info("FILE READ | path=%s | len=%d | truncated=%s", path, len(text), truncated)
        if truncated:
            return text + "\n...(truncated)"
        return text


class WriteFileTool(Tool):
    """Create or overwrite a text file."""

    name = "writeFile"
    description = "Write content to a file. Creates the file if missing, overwrites it otherwise."
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("Absolute path of the file to write"),
            "content": _string_param("Content to write"),
        },
        "required": ["path", "content"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        path = _resolve(require_str(args, "path"))
        content = args.get("content")
        if not isinstance(content, str):
            raise ValueError("Missing required argument 'content'")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

        size = len(content.encode("utf-8"))
        _log.info("FILE WRITE | path=%s | bytes=%d", path, size)
        return f"File written: {path} ({size} bytes)"


class ListDirectoryTool(Tool):
    """List the entries of a directory."""

    name = "listDirectory"
    description = "List the files and folders in a directory."
    parameters = {
        "type": "object",
        "properties": {
            "dirPath": _string_param("Directory to list"),
        },
        "required": ["dirPath"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        dir_path = _resolve(require_str(args, "dirPath"))
        if not dir_path.is_dir():
            raise NotADirectoryError(f"Not a directory: {dir_path}")

        lines = []
        for entry in sorted(dir_path.iterdir(), key=lambda p: p.name.lower()):
            marker = "[dir]" if entry.is_dir() else "[file]"
            lines.append(f"{marker} {entry.name}")

        _log.info("DIR LIST | path=%s | entries=%d", dir_path, len(lines))
        return "\n".join(lines) if lines else "(empty directory)"


class CreateDirectoryTool(Tool):
    name = "createDirectory"
    description = "Create a directory, including any missing parents."
    parameters = {
        "type": "object",
        "properties": {
            "dirPath": _string_param("Directory to create"),
        },
        "required": ["dirPath"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        dir_path = _resolve(require_str(args, "dirPath"))
        dir_path.mkdir(parents=True, exist_ok=True)
        _log.info("DIR CREATE | path=%s", dir_path)
        return f"Directory created: {dir_path}"


class DeleteFileTool(Tool):
    """Delete a file or an empty directory."""

    name = "deleteFile"
    description = "Delete a file or an empty directory."
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("File or empty directory to delete"),
        },
        "required": ["path"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        path = _resolve(require_str(args, "path"))
        if path.is_dir():
            path.rmdir()
        else:
            path.unlink()
        _log.info("FILE DELETE | path=%s", path)
        return f"Deleted: {path}"


class MoveFileTool(Tool):
    name = "moveFile"
    description = "Move or rename a file or directory."
    parameters = {
        "type": "object",
        "properties": {
            "sourcePath": _string_param("Source path"),
            "targetPath": _string_param("Destination path"),
        },
        "required": ["sourcePath", "targetPath"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        src = _resolve(require_str(args, "sourcePath"))
        dst = _resolve(require_str(args, "targetPath"))
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(src), str(dst))
        _log.info("FILE MOVE | %s -> %s", src, dst)
        return f"Moved: {src} -> {dst}"


class CopyFileTool(Tool):
    name = "copyFile"
    description = "Copy a file."
    parameters = {
        "type": "object",
        "properties": {
            "sourcePath": _string_param("Source file"),
            "targetPath": _string_param("Destination path"),
        },
        "required": ["sourcePath", "targetPath"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        src = _resolve(require_str(args, "sourcePath"))
        dst = _resolve(require_str(args, "targetPath"))
        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        _log.info("FILE COPY | %s -> %s", src, dst)
        return f"Copied: {src} -> {dst}"


class FileInfoTool(Tool):
    """Report size, type and timestamps for a path."""

    name = "fileInfo"
    description = "Return metadata (type, size, modification time) for a file or directory."
    parameters = {
        "type": "object",
        "properties": {
            "path": _string_param("File or directory to inspect"),
        },
        "required": ["path"],
    }

    def execute(self, args: dict[str, Any]) -> str:
        path = _resolve(require_str(args, "path"))
        stat = path.stat()
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()
        created = datetime.fromtimestamp(stat.st_ctime, tz=timezone.utc).isoformat()
        return "\n".join(
            [
                f"Path: {path}",
                f"Type: {'directory' if path.is_dir() else 'file'}",
                f"Size: {stat.st_size} bytes",
                f"Created: {created}",
                f"Modified: {modified}",
            ]
        )


def build_file_tools() -> list[Tool]:
    """
    Create one instance of every file system tool.

    Returns:
        List of Tool instances ready for registration.

    Example:
        registry.register_all(build_file_tools())
    """
    return [
        ReadFileTool(),
        WriteFileTool(),
        ListDirectoryTool(),
        CreateDirectoryTool(),
        DeleteFileTool(),
        MoveFileTool(),
        CopyFileTool(),
        FileInfoTool(),
    ]
