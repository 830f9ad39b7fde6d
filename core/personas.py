"""
personas.py

Loads persona definitions from personas.yaml using PyYAML.
A persona carries its system prompt, specialty intents, user-facing
error messages and tool progress lines. Validated on every load and
hot-reloadable via reload().
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

import config
from core.types import IntentType

_log = logging.getLogger("persona.personas")
_handler = logging.FileHandler(config.LOGS_DIR / "orchestrator.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

_REQUIRED_FIELDS: list[str] = ["name", "system_prompt", "error_messages"]
_ERROR_CATEGORIES: tuple[str, ...] = ("quota", "network", "default")

GENERIC_SYSTEM_PROMPT = "You are a helpful assistant. Answer in the user's language."
GENERIC_ERROR_MESSAGES: dict[str, str] = {
    "quota": "The service is over its usage limit right now. Please try again later.",
    "network": "I can't reach the server. Please check your connection.",
    "default": "Something went wrong. Please try again.",
}


@dataclass
class Persona:
    """
    One agent identity.

    Attributes:
        id: Persona id, e.g. "pig".
        name: Display name.
        system_prompt: Instructions sent as the system message.
        specialties: Intent types this persona specialises in.
        error_messages: User-facing text per error category.
        tool_progress_messages: Progress lines per tool name, plus "default".
    """

    id: str
    name: str
    system_prompt: str
    specialties: list[IntentType] = field(default_factory=list)
    error_messages: dict[str, str] = field(default_factory=lambda: dict(GENERIC_ERROR_MESSAGES))
    tool_progress_messages: dict[str, list[str]] = field(default_factory=dict)

    def error_message(self, category: str) -> str:
        """Return the message for an error category, falling back to "default"."""
        return self.error_messages.get(category) or self.error_messages.get("default") or GENERIC_ERROR_MESSAGES["default"]

    def progress_message(self, tool_name: str, rng: Optional[random.Random] = None) -> Optional[str]:
        """
        Pick a progress line for a running tool.

        Args:
            tool_name: Tool being executed.
            rng: Optional random source.

        Returns:
            A line from the tool's list, else from "default", else None.
        """
        lines = self.tool_progress_messages.get(tool_name) or self.tool_progress_messages.get("default") or []
        if not lines:
            return None
        return (rng or random).choice(lines)


def generic_persona(persona_id: str) -> Persona:
    """Persona used for ids that are not configured: no specialties."""
    return Persona(id=persona_id, name=persona_id, system_prompt=GENERIC_SYSTEM_PROMPT)


class PersonaRegistry:
    """
    Loader and lookup for personas.yaml.

    Thread-safe via a reentrant lock.

    Example:
        registry = PersonaRegistry()
        registry.load(config.PERSONAS_YAML_PATH)
        pig = registry.get("pig")
    """

    def __init__(self, personas: Optional[dict[str, Persona]] = None) -> None:
        self._personas: dict[str, Persona] = dict(personas or {})
        self._path: Path | None = None
        self._lock = threading.RLock()

    def load(self, path: str | Path) -> dict[str, Persona]:
        """
        Load personas.yaml, validate and cache it.

        Args:
            path: Path to personas.yaml.

        Returns:
            Mapping of persona id to Persona.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If required fields are missing or mistyped.
        """
        resolved = Path(path).resolve()
        if not resolved.is_file():
            raise FileNotFoundError(f"[Persona Hub] Personas file not found: {resolved}")

        with self._lock:
            self._path = resolved
            self._personas = self._validate(self._read_yaml(resolved))
            _log.info("Loaded %d personas from %s", len(self._personas), resolved)
            return dict(self._personas)

    def reload(self) -> dict[str, Persona]:
        """Re-read the file given to load()."""
        with self._lock:
            if self._path is None:
                raise RuntimeError("[Persona Hub] Cannot reload personas: load() has not been called yet.")
            return self.load(self._path)

    def get(self, persona_id: str) -> Persona:
        """Return the persona, or a generic one for unknown ids."""
        with self._lock:
            persona = self._personas.get(persona_id)
        if persona is None:
            _log.warning("Unknown persona %s, using generic persona", persona_id)
            return generic_persona(persona_id)
        return persona

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._personas)

    def __contains__(self, persona_id: str) -> bool:
        with self._lock:
            return persona_id in self._personas

    @staticmethod
    def _read_yaml(path: Path) -> dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"[Persona Hub] Expected a YAML mapping at top level, got {type(data).__name__}.")
        return data

    @staticmethod
    def _validate(raw: dict[str, Any]) -> dict[str, Persona]:
        section = raw.get("personas")
        if not isinstance(section, dict) or not section:
            raise ValueError("[Persona Hub] personas.yaml must have a non-empty top-level 'personas' mapping.")

        errors: list[str] = []
        personas: dict[str, Persona] = {}
        for persona_id, entry in section.items():
            if not isinstance(entry, dict):
                errors.append(f"  Persona '{persona_id}' must be a mapping.")
                continue
            for name in _REQUIRED_FIELDS:
                if name not in entry:
                    errors.append(f"  Persona '{persona_id}' is missing '{name}'.")
            messages = entry.get("error_messages") or {}
            if not isinstance(messages, dict):
                errors.append(f"  Persona '{persona_id}': 'error_messages' must be a mapping.")
                continue
            for category in _ERROR_CATEGORIES:
                if category not in messages:
                    errors.append(f"  Persona '{persona_id}': error_messages lacks '{category}'.")
            try:
                specialties = [IntentType(s) for s in entry.get("specialties") or []]
            except ValueError as exc:
                errors.append(f"  Persona '{persona_id}': {exc}")
                continue
            progress = {
                str(tool): [str(line) for line in (lines or [])]
                for tool, lines in (entry.get("tool_progress_messages") or {}).items()
            }
            if any(name not in entry for name in _REQUIRED_FIELDS):
                continue
            personas[str(persona_id)] = Persona(
                id=str(persona_id),
                name=str(entry["name"]),
                system_prompt=str(entry["system_prompt"]).strip(),
                specialties=specialties,
                error_messages={k: str(v) for k, v in messages.items()},
                tool_progress_messages=progress,
            )

        if errors:
            joined = "\n".join(errors)
            raise ValueError(f"[Persona Hub] Validation errors in personas.yaml:\n{joined}")
        return personas


def load_default_registry() -> PersonaRegistry:
    """Load config.PERSONAS_YAML_PATH into a new registry."""
    registry = PersonaRegistry()
    registry.load(config.PERSONAS_YAML_PATH)
    return registry
