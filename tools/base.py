"""
base.py

Abstract base class every callable tool implements, plus the call and
result records exchanged between the model, the registry and the loop.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class ToolCall:
    """
    A tool invocation requested by the model.

    Attributes:
        id: Provider-assigned call id, echoed back in the result.
        name: Registered tool name.
        args: Argument map decoded from the model's JSON.
    """

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    """
    Outcome of one tool call, fed back to the model as a tool turn.

    Attributes:
        tool_call_id: Id of the call this answers.
        success: True if the tool ran and returned normally.
        output: Tool output text (empty on failure).
        error: Error text when success is False.
    """

    tool_call_id: str
    success: bool
    output: str = ""
    error: Optional[str] = None

    def as_message_content(self) -> str:
        """Render the result as the text the model sees."""
        if self.success:
            return self.output
        return f"Error: {self.error or 'unknown error'}"


class Tool(ABC):
    """
    Abstract base class for a tool the model may call.

    Subclasses declare a name, a description, a JSON-schema parameter
    object and an execute() that returns output text or raises.

    Example:
        class EchoTool(Tool):
            name = "echo"
            description = "Echo the input back."
            parameters = {
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            }
            def execute(self, args):
                return args["text"]
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}
    # "file" or "spreadsheet" — selects the execution timeout
    timeout_kind: str = "file"

    @abstractmethod
    def execute(self, args: dict[str, Any]) -> str:
        """
        Run the tool.

        Args:
            args: Argument map from the model.

        Returns:
            Output text for the model.

        Raises:
            Exception: Any failure; the registry converts it to a failed result.
        """
        ...

    def definition(self) -> dict[str, Any]:
        """
        Return the definition passed to the model.

        Returns:
            Dict with name, description and parameters.
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


def require_str(args: dict[str, Any], key: str) -> str:
    """
    Fetch a required non-empty string argument.

    Args:
        args: Argument map.
        key: Argument name.

    Returns:
        The string value.

    Raises:
        ValueError: If missing or not a non-empty string.
    """
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing required argument '{key}'")
    return value
