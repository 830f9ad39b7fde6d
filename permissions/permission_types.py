"""
permission_types.py

Defines the GuardrailResult dataclass returned by every tool guardrail
check, and the argument names treated as filesystem paths.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from dataclasses import dataclass

# Tool arguments whose values are resolved and checked against the blocklist
PATH_ARGUMENT_KEYS: tuple[str, ...] = (
    "path",
    "sourcePath",
    "targetPath",
    "dirPath",
    "outputPath",
)

# Tools whose "content" argument is written to disk and size-checked
CONTENT_WRITE_TOOLS: frozenset[str] = frozenset({"writeFile"})


@dataclass(frozen=True)
class GuardrailResult:
    """
    Result of a guardrail check on a tool call.

    Attributes:
        allowed: True if the call may run.
        needs_confirmation: True if the tool is destructive and should be
            confirmed by the user. Surfaced only, not enforced.
        reason: Human-readable explanation of the decision.
        tool: The tool name that was checked.

    Example:
        result = GuardrailResult(
            allowed=False,
            needs_confirmation=False,
            reason="Path is blocked: /etc",
            tool="readFile",
        )
        if not result.allowed:
            print(f"Blocked: {result.reason}")
    """

    allowed: bool
    needs_confirmation: bool
    reason: str
    tool: str

    def __str__(self) -> str:
        status = "ALLOWED" if self.allowed else "DENIED"
        confirm = " (confirm required)" if self.needs_confirmation else ""
        return f"[{status}{confirm}] {self.tool}: {self.reason}"
