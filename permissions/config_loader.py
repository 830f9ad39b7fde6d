"""
config_loader.py

Loads and parses guardrails.yaml using PyYAML.
Returns a typed GuardrailConfig with home-relative paths expanded.
Supports hot reload via reload() — re-reads the file without restarting.
Validates required fields on every load.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Fields that the "guardrails" mapping must have
_REQUIRED_FIELDS: list[str] = [
    "max_tool_calls_per_session",
    "max_write_bytes",
    "blocked_paths",
    "require_confirmation",
]

_DEFAULT_BLOCKED_PATHS: list[str] = [
    "/System",
    "/usr",
    "/bin",
    "/sbin",
    "/Library",
    "/private",
    "/var",
    "/etc",
    "~/.ssh",
    "~/.gnupg",
    "~/.aws",
]


@dataclass
class GuardrailConfig:
    """
    Guardrail settings for tool execution.

    Attributes:
        max_tool_calls_per_session: Calls allowed per orchestration turn.
        max_write_bytes: Largest content a write tool may persist.
        blocked_paths: Directories no tool may touch (expanded, absolute).
        require_confirmation: Tool names flagged as destructive.

    Example:
        cfg = GuardrailConfig(max_tool_calls_per_session=5)
    """

    max_tool_calls_per_session: int = 30
    max_write_bytes: int = 10 * 1024 * 1024
    blocked_paths: list[str] = field(
        default_factory=lambda: [str(Path(p).expanduser()) for p in _DEFAULT_BLOCKED_PATHS]
    )
    require_confirmation: list[str] = field(
        default_factory=lambda: ["deleteFile", "moveFile", "writeFile", "writeExcel"]
    )


class GuardrailConfigLoader:
    """
    Singleton loader for guardrails.yaml.

    Provides:
        - load(path) — initial load with validation
        - reload() — hot-reload from disk without restarting
        - get() — the current GuardrailConfig

    Thread-safe via a reentrant lock.

    Example:
        loader = GuardrailConfigLoader()
        loader.load("permissions/guardrails.yaml")
        cfg = loader.get()
    """

    def __init__(self) -> None:
        self._config: GuardrailConfig | None = None
        self._path: Path | None = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, path: str | Path) -> GuardrailConfig:
        """
        Load guardrails.yaml from disk, validate, and cache the result.

        Args:
            path: File path to guardrails.yaml (absolute or relative to cwd).

        Returns:
            The parsed GuardrailConfig.

        Raises:
            FileNotFoundError: If the YAML file does not exist.
            ValueError: If required fields are missing or mistyped.
            yaml.YAMLError: If the file contains invalid YAML.
        """
        resolved = Path(path).resolve()
        if not resolved.is_file():
            raise FileNotFoundError(
                f"[Persona Hub Guardrails] Config file not found: {resolved}\n"
                f"  → Ensure guardrails.yaml exists at the expected path."
            )

        with self._lock:
            self._path = resolved
            raw = self._read_yaml(resolved)
            self._config = self._validate(raw)
            return self._config

    def reload(self) -> GuardrailConfig:
        """
        Hot-reload guardrails.yaml from disk without restarting.

        Returns:
            The newly loaded GuardrailConfig.

        Raises:
            RuntimeError: If load() was never called first.
        """
        with self._lock:
            if self._path is None:
                raise RuntimeError(
                    "[Persona Hub Guardrails] Cannot reload — load() has not been called yet."
                )
            raw = self._read_yaml(self._path)
            self._config = self._validate(raw)
            return self._config

    def get(self) -> GuardrailConfig:
        """
        Return the loaded config, or the built-in defaults if nothing was loaded.

        Returns:
            The current GuardrailConfig.
        """
        with self._lock:
            if self._config is None:
                return GuardrailConfig()
            return self._config

    @property
    def path(self) -> Path | None:
        """Return the resolved path of the loaded YAML file."""
        return self._path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        """
        Read and parse a YAML file.

        Args:
            path: Resolved path to the YAML file.

        Returns:
            The parsed YAML content as a dict.
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(
                f"[Persona Hub Guardrails] Expected a YAML mapping at top level, got {type(data).__name__}."
            )
        return data

    @staticmethod
    def _validate(raw: dict[str, Any]) -> GuardrailConfig:
        """
        Validate the parsed YAML and convert it to a GuardrailConfig.

        Args:
            raw: The full parsed YAML dict (should contain a "guardrails" key).

        Returns:
            The typed config.

        Raises:
            ValueError: If any required field is missing or mistyped.
        """
        section = raw.get("guardrails")
        if not isinstance(section, dict):
            raise ValueError(
                "[Persona Hub Guardrails] YAML must have a top-level 'guardrails' mapping."
            )

        errors: list[str] = []
        for name in _REQUIRED_FIELDS:
            if name not in section:
                errors.append(f"  Missing required field '{name}'.")
        for name in ("max_tool_calls_per_session", "max_write_bytes"):
            if name in section and not isinstance(section[name], int):
                errors.append(f"  Field '{name}' must be an integer.")
        for name in ("blocked_paths", "require_confirmation"):
            if name in section and not isinstance(section[name], list):
                errors.append(f"  Field '{name}' must be a list.")

        if errors:
            joined = "\n".join(errors)
            raise ValueError(
                f"[Persona Hub Guardrails] Validation errors in guardrails.yaml:\n{joined}"
            )

        return GuardrailConfig(
            max_tool_calls_per_session=section["max_tool_calls_per_session"],
            max_write_bytes=section["max_write_bytes"],
            blocked_paths=[str(Path(str(p)).expanduser()) for p in section["blocked_paths"]],
            require_confirmation=[str(name) for name in section["require_confirmation"]],
        )


# ---------------------------------------------------------------------------
# Module-level singleton instance
# ---------------------------------------------------------------------------
_loader = GuardrailConfigLoader()


def load(path: str | Path) -> GuardrailConfig:
    """
    Load guardrails.yaml (module-level convenience function).

    Args:
        path: Path to guardrails.yaml.

    Returns:
        The validated GuardrailConfig.
    """
    return _loader.load(path)


def reload() -> GuardrailConfig:
    """Hot-reload guardrails.yaml from disk (module-level convenience function)."""
    return _loader.reload()


def get() -> GuardrailConfig:
    """Get the current GuardrailConfig (module-level convenience function)."""
    return _loader.get()
