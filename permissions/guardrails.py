"""
guardrails.py

Pre-execution safety checks for tool calls.
Every tool call passes through ToolGuardrails.validate() before its
executor runs. Checks run in a fixed order: session call ceiling, path
blocklist, write size, then the confirmation flag.
All checks and results are logged to logs/permissions.log.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import logging
import threading
from pathlib import Path
from typing import Any, Optional

import config
from permissions import config_loader
from permissions.config_loader import GuardrailConfig
from permissions.permission_types import (
    CONTENT_WRITE_TOOLS,
    PATH_ARGUMENT_KEYS,
    GuardrailResult,
)

# ---------------------------------------------------------------------------
# Logger setup: writes to logs/permissions.log
# ---------------------------------------------------------------------------
_logger = logging.getLogger("persona.permissions")
_logger.setLevel(logging.DEBUG)

if not _logger.handlers:
    _file_handler = logging.FileHandler(config.LOGS_DIR / "permissions.log", encoding="utf-8")
    _file_handler.setLevel(logging.DEBUG)
    _formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _file_handler.setFormatter(_formatter)
    _logger.addHandler(_file_handler)


def load_default_config() -> GuardrailConfig:
    """
    Load guardrails.yaml from the configured path, falling back to defaults.

    Returns:
        The GuardrailConfig to use for the default registry.
    """
    try:
        return config_loader.load(config.GUARDRAILS_YAML_PATH)
    except (FileNotFoundError, ValueError) as exc:
        _logger.warning("Guardrail config unavailable, using defaults: %s", exc)
        return GuardrailConfig()


class ToolGuardrails:
    """
    Validates tool calls against a GuardrailConfig and counts allowed calls.

    The counter only advances for allowed calls, and is reset at the start
    of each orchestration turn via reset_session().

    Example:
        guard = ToolGuardrails(GuardrailConfig(max_tool_calls_per_session=3))
        result = guard.validate("readFile", {"path": "~/notes.txt"})
        if not result.allowed:
            print(result.reason)
    """

    def __init__(self, guardrail_config: Optional[GuardrailConfig] = None) -> None:
        self._config = guardrail_config or GuardrailConfig()
        self._call_count = 0
        self._lock = threading.Lock()

    @property
    def config(self) -> GuardrailConfig:
        """The active guardrail configuration."""
        return self._config

    @property
    def current_call_count(self) -> int:
        """Number of allowed calls in the current session."""
        return self._call_count

    def reset_session(self) -> None:
        """Reset the per-session call counter."""
        with self._lock:
            self._call_count = 0

    def validate(self, tool_name: str, args: dict[str, Any]) -> GuardrailResult:
        """
        Run every guardrail check for one tool call.

        Args:
            tool_name: Registered tool name.
            args: Argument map from the model.

        Returns:
            A GuardrailResult. The call counter is incremented only when
            the result is allowed.

        Example:
            result = guard.validate("writeFile", {"path": "/etc/hosts", "content": "x"})
            assert not result.allowed
        """
        with self._lock:
            result = self._check(tool_name, args)
            if result.allowed:
                self._call_count += 1
        _log_check(tool_name, args, result)
        return result

    # ------------------------------------------------------------------
    # Internal checks
    # ------------------------------------------------------------------

    def _check(self, tool_name: str, args: dict[str, Any]) -> GuardrailResult:
        limit = self._config.max_tool_calls_per_session
        if self._call_count >= limit:
            return GuardrailResult(
                False, False, f"Tool call limit per session ({limit}) exceeded.", tool_name
            )

        for key in PATH_ARGUMENT_KEYS:
            raw = args.get(key)
            if not isinstance(raw, str) or not raw:
                continue
            blocked = self._blocked_root(raw)
            if blocked:
                return GuardrailResult(
                    False, False, f"Access to this path is blocked: {blocked}", tool_name
                )

        if tool_name in CONTENT_WRITE_TOOLS:
            content = args.get("content")
            if isinstance(content, str):
                size = len(content.encode("utf-8"))
                if size > self._config.max_write_bytes:
                    return GuardrailResult(
                        False,
                        False,
                        f"Content size exceeds the limit ({_format_bytes(self._config.max_write_bytes)}).",
                        tool_name,
                    )

        needs_confirmation = tool_name in self._config.require_confirmation
        return GuardrailResult(
            allowed=True,
            needs_confirmation=needs_confirmation,
            reason="Tool call allowed." + (" Confirmation required." if needs_confirmation else ""),
            tool=tool_name,
        )

    def _blocked_root(self, raw_path: str) -> Optional[str]:
        """Return the blocked directory containing raw_path, if any."""
        target = Path(raw_path).expanduser().resolve()
        for blocked in self._config.blocked_paths:
            root = Path(blocked).expanduser()
            # Compare both the literal and the resolved root: /etc may be a symlink
            for candidate in {root, root.resolve()}:
                if target == candidate or candidate in target.parents:
                    return blocked
        return None


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def _log_check(tool_name: str, args: dict[str, Any], result: GuardrailResult) -> None:
    """
    Log every guardrail check and its result.

    Content arguments are logged by length only.

    Args:
        tool_name: The tool that was checked.
        args: The call arguments.
        result: The GuardrailResult.
    """
    parts = []
    for key, value in args.items():
        if key == "content" and isinstance(value, str):
            parts.append(f"content=<{len(value)} chars>")
        else:
            parts.append(f"{key}={value}")
    detail_str = ", ".join(parts) if parts else "(none)"
    status = "ALLOWED" if result.allowed else "DENIED"
    confirm = " [CONFIRM_REQUIRED]" if result.needs_confirmation else ""

    _logger.info(
        f"CHECK {status}{confirm} | {tool_name} | details: {detail_str} | reason: {result.reason}"
    )
