"""
registry.py

Tool registry and executor.
Maps tool names to Tool implementations, exposes their definitions to the
model, and runs calls through the guardrails under a per-tool timeout.
execute() never raises: unknown tools, guardrail denials, timeouts and
executor faults all come back as failed ToolResults.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Iterable, Optional

import config
from permissions.guardrails import ToolGuardrails
from tools.base import Tool, ToolCall, ToolResult

_log = logging.getLogger("persona.tools")
_handler = logging.FileHandler(config.LOGS_DIR / "tools.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


class ToolRegistry:
    """
    Name-keyed registry of tools with guarded, time-limited execution.

    Example:
        registry = ToolRegistry()
        registry.register_all(build_file_tools())
        result = registry.execute(ToolCall(id="c1", name="readFile", args={"path": "a.txt"}))
    """

    def __init__(
        self,
        guardrails: Optional[ToolGuardrails] = None,
        timeouts: Optional[dict[str, float]] = None,
        max_workers: int = 4,
    ) -> None:
        """
        Initialize the registry.

        Args:
            guardrails: Guardrail checker; defaults to built-in limits.
            timeouts: Seconds per timeout kind ("file", "spreadsheet").
            max_workers: Worker threads available to tool executors.
        """
        self._tools: dict[str, Tool] = {}
        self._guardrails = guardrails or ToolGuardrails()
        self._timeouts = {
            "file": config.TOOL_TIMEOUT_SECONDS,
            "spreadsheet": config.SPREADSHEET_TOOL_TIMEOUT_SECONDS,
        }
        if timeouts:
            self._timeouts.update(timeouts)
        self._max_workers = max_workers
        self._executor = self._new_executor()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: Tool) -> None:
        """Register a tool, replacing any tool with the same name."""
        self._tools[tool.name] = tool
        _log.debug("Tool registered: %s", tool.name)

    def register_all(self, tools: Iterable[Tool]) -> None:
        """Register several tools at once."""
        for tool in tools:
            self.register(tool)

    def definitions(self) -> list[dict]:
        """Return the definitions of every registered tool, for the model."""
        return [tool.definition() for tool in self._tools.values()]

    @property
    def registered_tool_names(self) -> list[str]:
        """Names of all registered tools, in registration order."""
        return list(self._tools.keys())

    @property
    def guardrails(self) -> ToolGuardrails:
        """The guardrail checker used by execute()."""
        return self._guardrails

    @property
    def current_call_count(self) -> int:
        """Allowed calls so far in this session."""
        return self._guardrails.current_call_count

    def reset_session(self) -> None:
        """Reset session counters at the start of a turn."""
        self._guardrails.reset_session()

    def timeout_for(self, tool: Tool) -> float:
        """Seconds a tool may run before its result is abandoned."""
        return self._timeouts.get(tool.timeout_kind, self._timeouts["file"])

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, call: ToolCall) -> ToolResult:
        """
        Execute one tool call.

        Args:
            call: The tool call requested by the model.

        Returns:
            A ToolResult; failures are reported in the result, never raised.

        Example:
            result = registry.execute(call)
            if not result.success:
                print(result.error)
        """
        tool = self._tools.get(call.name)
        if tool is None:
            _log.warning("Unknown tool requested: %s", call.name)
            return ToolResult(call.id, False, error=f"Unknown tool: {call.name}")

        verdict = self._guardrails.validate(call.name, call.args)
        if not verdict.allowed:
            return ToolResult(call.id, False, error=verdict.reason)

        # TODO: route needs_confirmation to an interactive approval hook once the session layer has one
        timeout = self.timeout_for(tool)
        future = self._executor.submit(tool.execute, dict(call.args))
        try:
            output = future.result(timeout=timeout)
        except FutureTimeoutError:
            _log.error("Tool timed out after %.0fs: %s", timeout, call.name)
            future.cancel()
            self._replace_executor()
            return ToolResult(
                call.id, False, error=f"Tool execution timed out ({timeout:g}s): {call.name}"
            )
        except Exception as exc:
            _log.error("Tool failed: %s — %s", call.name, exc)
            return ToolResult(call.id, False, error=str(exc) or type(exc).__name__)

        _log.info("Tool executed: %s | %d chars output", call.name, len(output or ""))
        return ToolResult(call.id, True, output=output or "")

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="tool")

    def _replace_executor(self) -> None:
        # The hung worker keeps its thread; later calls get a fresh pool
        abandoned, self._executor = self._executor, self._new_executor()
        abandoned.shutdown(wait=False)

    def shutdown(self) -> None:
        """Release worker threads without waiting for hung tools."""
        self._executor.shutdown(wait=False)


def build_default_registry(guardrails: Optional[ToolGuardrails] = None) -> ToolRegistry:
    """
    Build a registry with every file and spreadsheet tool registered.

    Args:
        guardrails: Optional guardrail checker; defaults to guardrails.yaml.

    Returns:
        A ready ToolRegistry.
    """
    from permissions.guardrails import load_default_config
    from system.excel_ops import build_excel_tools
    from system.file_ops import build_file_tools

    registry = ToolRegistry(guardrails or ToolGuardrails(load_default_config()))
    registry.register_all(build_file_tools())
    registry.register_all(build_excel_tools())
    return registry
