"""
Storage: small JSON-backed persistence for user data.

Everything lives in one key-value file (see PathConfig.store_path):
- saved automations
- the system prompt library and the current system prompt
- the active model and module selection
- the interaction log

Reads never raise: a missing or corrupt file is logged and yields defaults.
There are no transactions; each set() rewrites the file.
"""

import json
import os
import time
from dataclasses import asdict, dataclass
from typing import Any, Iterable

from automation import Automation
from logging_utils import get_logger

logger = get_logger(__name__)

AUTOMATIONS_KEY = "automations"
PROMPTS_KEY = "prompts"
SYSTEM_PROMPT_KEY = "system_prompt"
ACTIVE_MODEL_KEY = "active_model"
ACTIVE_MODULES_KEY = "active_modules"
LOGS_KEY = "logs"

DEFAULT_PROMPTS: dict[str, str] = {
    "default": (
        "You are an AI assistant specialized in helping with coding tasks. Provide clear, "
        "concise, and helpful responses. Follow SOLID principles and design patterns. "
        "Consider performance, security, and maintainability in your solutions."
    ),
    "javascript": (
        "You are a JavaScript expert. Provide modern, efficient JavaScript code with ES6+ "
        "features. Include explanations for complex parts."
    ),
    "python": (
        "You are a Python expert. Provide Pythonic code following PEP 8 guidelines. "
        "Focus on readability and best practices."
    ),
    "react": (
        "You are a React expert. Provide functional components with hooks. "
        "Follow React best practices and patterns."
    ),
    "debugging": (
        "You are a debugging expert. Analyze code carefully, identify issues, "
        "and suggest fixes with explanations."
    ),
}


class KeyValueStore:
    """
    JSON file of top-level keys, or a plain dict when path is None.

    Usage:
        store = KeyValueStore(config.paths.store_path)
        store.set("prompts", {...})
        store.get("prompts", {})
    """

    def __init__(self, path: str | None = None):
        self.path = path
        self._data: dict[str, Any] = self._load()

    @classmethod
    def in_memory(cls) -> "KeyValueStore":
        return cls(None)

    def _load(self) -> dict[str, Any]:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Store {self.path} is not a JSON object; ignoring it")
            return {}
        return data

    def _save(self) -> None:
        if not self.path:
            return
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()

    def __contains__(self, key: str) -> bool:
        return key in self._data


# =============================================================================
# Automations
# =============================================================================

class AutomationStore:
    """Saved automations, upserted by id."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def list(self) -> list[Automation]:
        raw = self.store.get(AUTOMATIONS_KEY, [])
        if not isinstance(raw, list):
            logger.warning("Stored automations are not a list; ignoring them")
            return []
        return [Automation.from_dict(item) for item in raw if isinstance(item, dict)]

    def get(self, automation_id: str) -> Automation | None:
        for automation in self.list():
            if automation.id == automation_id:
                return automation
        return None

    def find_by_name(self, name: str) -> Automation | None:
        for automation in self.list():
            if automation.name == name:
                return automation
        return None

    def save(self, automation: Automation) -> None:
        automations = self.list()
        for i, existing in enumerate(automations):
            if existing.id == automation.id:
                automations[i] = automation
                break
        else:
            automations.append(automation)
        self._write(automations)

    def delete(self, automation_id: str) -> None:
        self._write([a for a in self.list() if a.id != automation_id])

    def export_json(self) -> str:
        return json.dumps([a.to_dict() for a in self.list()], indent=2)

    def import_json(self, text: str) -> bool:
        """
        Replace all automations with the JSON list in text.

        Returns:
            False (store untouched) if text is not valid JSON or not a list.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Error importing automations: {e}")
            return False
        if not isinstance(data, list):
            logger.error("Error importing automations: expected a JSON list")
            return False
        self._write([Automation.from_dict(item) for item in data if isinstance(item, dict)])
        return True

    def _write(self, automations: Iterable[Automation]) -> None:
        self.store.set(AUTOMATIONS_KEY, [a.to_dict() for a in automations])


# =============================================================================
# System prompts
# =============================================================================

class PromptLibrary:
    """Built-in system prompts plus user-saved ones; built-ins cannot be deleted."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def all(self) -> dict[str, str]:
        custom = self.store.get(PROMPTS_KEY, {})
        if not isinstance(custom, dict):
            logger.warning("Stored prompts are not an object; using defaults")
            custom = {}
        return {**DEFAULT_PROMPTS, **custom}

    def save(self, name: str, prompt: str) -> None:
        """Save under name and make it the current system prompt."""
        custom = dict(self.store.get(PROMPTS_KEY, {}) or {})
        custom[name] = prompt
        self.store.set(PROMPTS_KEY, custom)
        self.store.set(SYSTEM_PROMPT_KEY, prompt)

    def current(self) -> str:
        return self.store.get(SYSTEM_PROMPT_KEY) or DEFAULT_PROMPTS["default"]

    def delete(self, name: str) -> bool:
        """Returns False for built-in names, which are left in place."""
        if name in DEFAULT_PROMPTS:
            return False
        custom = dict(self.store.get(PROMPTS_KEY, {}) or {})
        if custom.pop(name, None) is None:
            return False
        self.store.set(PROMPTS_KEY, custom)
        return True


# =============================================================================
# Model selection
# =============================================================================

def save_model_selection(store: KeyValueStore, model: dict, modules: Iterable[str]) -> None:
    store.set(ACTIVE_MODEL_KEY, model)
    store.set(ACTIVE_MODULES_KEY, sorted(modules))


def load_model_selection(store: KeyValueStore) -> tuple[dict | None, list[str]]:
    """Returns (model, module ids); (None, []) when nothing is saved."""
    model = store.get(ACTIVE_MODEL_KEY)
    modules = store.get(ACTIVE_MODULES_KEY, [])
    if model is not None and not isinstance(model, dict):
        logger.warning("Stored model selection is malformed; ignoring it")
        model = None
    if not isinstance(modules, list):
        modules = []
    return model, [str(m) for m in modules]


# =============================================================================
# Interaction log
# =============================================================================

@dataclass
class LogEntry:
    """One completed interaction."""
    prompt: str
    code: str | None
    validated: bool = False
    score: int = 0
    debugged: bool = False
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LogEntry":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


class InteractionLog:
    """Append-only log of interactions, with score overwrite of the latest entry."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def entries(self) -> list[LogEntry]:
        raw = self.store.get(LOGS_KEY, [])
        if not isinstance(raw, list):
            return []
        return [LogEntry.from_dict(item) for item in raw if isinstance(item, dict)]

    def log(
        self,
        prompt: str,
        code: str | None,
        validated: bool = False,
        score: int = 0,
        debugged: bool = False,
    ) -> LogEntry:
        entry = LogEntry(
            prompt=prompt,
            code=code,
            validated=validated,
            score=score,
            debugged=debugged,
            timestamp=time.time(),
        )
        self._write(self.entries() + [entry])
        return entry

    def set_latest_score(self, score: int) -> LogEntry | None:
        """Mark the latest entry validated with score; None if the log is empty."""
        entries = self.entries()
        if not entries:
            return None
        entries[-1].validated = True
        entries[-1].score = score
        self._write(entries)
        return entries[-1]

    def export_validated(self) -> str:
        """JSON list of validated entries only."""
        return json.dumps([e.to_dict() for e in self.entries() if e.validated], indent=2)

    def clear(self) -> None:
        self.store.delete(LOGS_KEY)

    def _write(self, entries: list[LogEntry]) -> None:
        self.store.set(LOGS_KEY, [e.to_dict() for e in entries])
