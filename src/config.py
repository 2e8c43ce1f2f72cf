"""
AppConfig: Immutable application configuration.

This module contains ONLY static configuration that doesn't change during a run.
All per-run state belongs in RunState (see state.py).

Design principles:
- Frozen dataclasses prevent accidental mutation
- Configuration loaded once at startup
- Environment variables can override config file values
- The active model/module selection is part of the config object and is
  passed explicitly to the orchestrator, never held in a module global
"""

import json
import os
from dataclasses import dataclass, field, replace
from typing import FrozenSet
from urllib.parse import urlparse

from logging_utils import get_logger

logger = get_logger(__name__)


class ConfigurationError(ValueError):
    """Raised when no usable model provider is configured."""


# Default endpoints for OpenAI-compatible providers
PROVIDER_ENDPOINTS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "lmstudio": "http://localhost:1234/v1",
    "ollama": "http://localhost:11434/v1",
}

# Providers that run on the local machine and need no API key
LOCAL_PROVIDERS: FrozenSet[str] = frozenset({"lmstudio", "ollama"})

SUPPORTED_PROVIDERS: FrozenSet[str] = frozenset({"workspace", *PROVIDER_ENDPOINTS})

ALL_MODULES: FrozenSet[str] = frozenset({"chat", "think", "code", "debug", "vector"})
STRUCTURED_MODULES: FrozenSet[str] = frozenset({"chat", "think", "code", "debug"})


@dataclass(frozen=True)
class LLMConfig:
    """Immutable transport configuration."""
    provider: str = "workspace"
    base_url: str = ""
    api_key: str = ""
    model: str = ""
    model_name: str = ""
    session_id: str = "code-editor-session"
    temperature: float = 0.7
    timeout_s: float = 120.0
    max_retries: int = 3
    retry_base_delay_s: float = 1.0

    @property
    def endpoint(self) -> str:
        """URL the transport talks to; falls back to the provider default."""
        return self.base_url or PROVIDER_ENDPOINTS.get(self.provider, "")

    @property
    def is_configured(self) -> bool:
        """True when enough is known to attempt a call."""
        if self.provider not in SUPPORTED_PROVIDERS or not self.endpoint:
            return False
        if self.provider in LOCAL_PROVIDERS:
            return True
        return bool(self.api_key)

    @classmethod
    def from_env(cls, defaults: "LLMConfig | None" = None) -> "LLMConfig":
        """Create LLMConfig from environment variables over the given defaults."""
        base = defaults or cls()
        return cls(
            provider=os.environ.get("LLM_PROVIDER", base.provider),
            base_url=os.environ.get("LLM_API_URL", base.base_url),
            api_key=os.environ.get("LLM_API_KEY", base.api_key),
            model=os.environ.get("LLM_MODEL", base.model),
            model_name=os.environ.get("LLM_MODEL_NAME", base.model_name),
            session_id=base.session_id,
            temperature=float(os.environ.get("LLM_TEMPERATURE", base.temperature)),
            timeout_s=base.timeout_s,
            max_retries=base.max_retries,
            retry_base_delay_s=base.retry_base_delay_s,
        )


@dataclass(frozen=True)
class ModuleSelection:
    """Which assistant modules are switched on for the active model."""
    enabled: FrozenSet[str] = field(default_factory=lambda: frozenset({"chat"}))

    def is_active(self, module_id: str) -> bool:
        return module_id in self.enabled

    @property
    def structured_workflow(self) -> bool:
        """The four-stage workflow runs only when all of its roles are on."""
        return STRUCTURED_MODULES <= self.enabled

    @classmethod
    def of(cls, *module_ids: str) -> "ModuleSelection":
        unknown = set(module_ids) - ALL_MODULES
        if unknown:
            raise ValueError(f"Unknown modules: {sorted(unknown)}")
        return cls(enabled=frozenset(module_ids))


@dataclass(frozen=True)
class WorkflowConfig:
    """Orchestration constants."""
    chunk_tokens: int = 128
    chars_per_token: int = 4
    default_token_limit: int = 4000
    default_steps: int = 1
    default_think_steps: int = 3
    automation_delay_s: float = 2.0

    @property
    def chunk_chars(self) -> int:
        return self.chunk_tokens * self.chars_per_token


@dataclass(frozen=True)
class PathConfig:
    """Immutable path configuration."""
    data_dir: str
    store_path: str
    llm_log_path: str

    @classmethod
    def from_defaults(cls, data_dir: str | None = None) -> "PathConfig":
        """Create PathConfig with default paths under the data directory."""
        if data_dir is None:
            data_dir = os.path.join(os.path.expanduser("~"), ".promptpilot")

        return cls(
            data_dir=data_dir,
            store_path=os.path.join(data_dir, "store.json"),
            llm_log_path=os.path.join(data_dir, "llm_logs.jsonl"),
        )


@dataclass(frozen=True)
class AppConfig:
    """
    Complete immutable application configuration.

    Create once at startup and pass to whatever needs it.
    """
    llm: LLMConfig = LLMConfig()
    modules: ModuleSelection = ModuleSelection()
    workflow: WorkflowConfig = WorkflowConfig()
    paths: PathConfig = field(default_factory=PathConfig.from_defaults)

    def with_modules(self, *module_ids: str) -> "AppConfig":
        """Copy of this config with a different module selection."""
        return replace(self, modules=ModuleSelection.of(*module_ids))

    def with_model(self, model: str, model_name: str = "", provider: str | None = None) -> "AppConfig":
        """Copy of this config pointed at another model."""
        llm = replace(
            self.llm,
            model=model,
            model_name=model_name or model,
            provider=provider or self.llm.provider,
        )
        return replace(self, llm=llm)


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from a JSON file and environment variables.

    Priority: Environment variables > Config file > Defaults

    Args:
        config_path: Path to JSON config file. If None, uses
            ``$PROMPTPILOT_CONFIG`` or ``~/.promptpilot/config.json``.

    Returns:
        Immutable AppConfig instance.
    """
    paths = PathConfig.from_defaults(os.environ.get("PROMPTPILOT_DATA_DIR"))

    if config_path is None:
        config_path = os.environ.get(
            "PROMPTPILOT_CONFIG", os.path.join(paths.data_dir, "config.json")
        )

    config_data = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")

    if "data_dir" in config_data:
        paths = PathConfig.from_defaults(config_data["data_dir"])

    file_llm = LLMConfig(
        provider=config_data.get("provider", "workspace"),
        base_url=config_data.get("api_url", ""),
        api_key=config_data.get("api_key", ""),
        model=config_data.get("model", ""),
        model_name=config_data.get("model_name", ""),
        session_id=config_data.get("session_id", "code-editor-session"),
        temperature=config_data.get("temperature", 0.7),
        timeout_s=config_data.get("timeout_s", 120.0),
        max_retries=config_data.get("max_retries", 3),
        retry_base_delay_s=config_data.get("retry_base_delay_s", 1.0),
    )

    modules = ModuleSelection.of(*config_data.get("modules", ["chat"]))

    workflow = WorkflowConfig(
        chunk_tokens=config_data.get("chunk_tokens", 128),
        chars_per_token=config_data.get("chars_per_token", 4),
        default_token_limit=config_data.get("default_token_limit", 4000),
        default_steps=config_data.get("default_steps", 1),
        default_think_steps=config_data.get("default_think_steps", 3),
        automation_delay_s=config_data.get("automation_delay_s", 2.0),
    )

    return AppConfig(
        llm=LLMConfig.from_env(file_llm),
        modules=modules,
        workflow=workflow,
        paths=paths,
    )


def validate_api_config(api_url: str, api_key: str) -> tuple[bool, str | None]:
    """
    Check a user-entered endpoint and key before saving them.

    Returns:
        (valid, error message or None)
    """
    if not api_url:
        return False, "API URL is required"

    parsed = urlparse(api_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False, "Invalid API URL format"

    if not api_key:
        return False, "API Key is required"

    if len(api_key) < 8:
        return False, "API Key is too short"

    return True, None


def ensure_directories(config: AppConfig) -> None:
    """Ensure the data directory exists."""
    if not os.path.exists(config.paths.data_dir):
        os.makedirs(config.paths.data_dir)
        logger.info(f"Created directory: {config.paths.data_dir}")
