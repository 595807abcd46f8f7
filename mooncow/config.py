"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from mooncow.types import ConfigError

DEFAULT_CONFIG_PATH = "~/.mooncow/config.yaml"


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------

@dataclass
class LLMConfig:
    model: str = "qwen-3-235b-a22b-thinking-2507"
    api_base: str = "https://api.cerebras.ai/v1"
    api_key_env: str = "CEREBRAS_API_KEY"
    temperature: float = 0.7
    timeout_seconds: int = 120
    max_retries: int = 2
    stream: bool = True


@dataclass
class BudgetConfig:
    max_total_chars: int = 25_000
    max_message_chars: int = 4_000
    max_tool_chars: int = 10_000
    max_blob_chars: int = 12_500


@dataclass
class OrchestratorConfig:
    max_tool_loops: int = 6
    tool_timeout_seconds: float = 60.0
    tools_enabled: bool = True
    think_open: str = "<think>"
    think_close: str = "</think>"
    default_search_tool: str = "multi_source_search"


@dataclass
class ToolsConfig:
    disabled: list[str] = field(default_factory=list)
    request_timeout_seconds: float = 8.0
    jina_api_key_env: str = "JINA_API_KEY"


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class MooncowConfig:
    llm: LLMConfig = field(default_factory=LLMConfig)
    budget: BudgetConfig = field(default_factory=BudgetConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def set(self, dotpath: str, value: Any) -> None:
        """Set a value using dot notation (e.g. 'llm.model')."""
        _apply_dotpath(self, dotpath, value)

    def to_dict(self) -> dict:
        return asdict(self)

    def api_key(self) -> str:
        """The completion API key, read from the configured env var."""
        key = os.environ.get(self.llm.api_key_env, "").strip()
        if not key:
            raise ConfigError(
                f"No API key found: set the {self.llm.api_key_env} environment variable"
            )
        return key

    def validate(self) -> list[str]:
        """Return a list of problems; empty when the config is usable."""
        problems: list[str] = []
        if not self.llm.model:
            problems.append("llm.model must not be empty")
        if not self.llm.api_base.startswith(("http://", "https://")):
            problems.append(f"llm.api_base is not an http(s) URL: {self.llm.api_base!r}")
        if not 0.0 <= self.llm.temperature <= 2.0:
            problems.append("llm.temperature must be between 0 and 2")
        b = self.budget
        if min(b.max_total_chars, b.max_message_chars, b.max_tool_chars) <= 0:
            problems.append("budget limits must be positive")
        if b.max_message_chars > b.max_total_chars:
            problems.append("budget.max_message_chars exceeds budget.max_total_chars")
        if self.orchestrator.max_tool_loops < 0:
            problems.append("orchestrator.max_tool_loops must not be negative")
        if not self.orchestrator.think_open or not self.orchestrator.think_close:
            problems.append("orchestrator think tags must not be empty")
        return problems


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise ConfigError(f"Unknown config key: {dotpath}")
    setattr(obj, parts[-1], value)


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay into base, returning a new dict."""
    merged = dict(base)
    for k, v in overlay.items():
        if k in merged and isinstance(merged[k], dict) and isinstance(v, dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _coerce(value: str, target_type: type) -> Any:
    """Coerce a string env value to the target type."""
    if target_type is bool:
        return value.lower() in ("1", "true", "yes", "on")
    try:
        if target_type is int:
            return int(value)
        if target_type is float:
            return float(value)
    except ValueError as e:
        raise ConfigError(f"Cannot read {value!r} as {target_type.__name__}") from e
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: Any) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    if not isinstance(raw, dict):
        raise ConfigError(f"Config section for {cls.__name__} must be a mapping")
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in raw.items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "MOONCOW_LLM_MODEL":                    ("llm.model", str),
    "MOONCOW_LLM_API_BASE":                 ("llm.api_base", str),
    "MOONCOW_LLM_API_KEY_ENV":              ("llm.api_key_env", str),
    "MOONCOW_LLM_TEMPERATURE":              ("llm.temperature", float),
    "MOONCOW_LLM_TIMEOUT":                  ("llm.timeout_seconds", int),
    "MOONCOW_LLM_MAX_RETRIES":              ("llm.max_retries", int),
    "MOONCOW_LLM_STREAM":                   ("llm.stream", bool),
    "MOONCOW_BUDGET_MAX_TOTAL_CHARS":       ("budget.max_total_chars", int),
    "MOONCOW_BUDGET_MAX_MESSAGE_CHARS":     ("budget.max_message_chars", int),
    "MOONCOW_BUDGET_MAX_TOOL_CHARS":        ("budget.max_tool_chars", int),
    "MOONCOW_BUDGET_MAX_BLOB_CHARS":        ("budget.max_blob_chars", int),
    "MOONCOW_ORCHESTRATOR_MAX_TOOL_LOOPS":  ("orchestrator.max_tool_loops", int),
    "MOONCOW_ORCHESTRATOR_TOOL_TIMEOUT":    ("orchestrator.tool_timeout_seconds", float),
    "MOONCOW_ORCHESTRATOR_TOOLS_ENABLED":   ("orchestrator.tools_enabled", bool),
    "MOONCOW_ORCHESTRATOR_DEFAULT_SEARCH":  ("orchestrator.default_search_tool", str),
    "MOONCOW_TOOLS_DISABLED":               ("tools.disabled", list),
    "MOONCOW_TOOLS_REQUEST_TIMEOUT":        ("tools.request_timeout_seconds", float),
    "MOONCOW_LOGGING_LEVEL":                ("logging.level", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> MooncowConfig:
    """
    Build a MooncowConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags

    Parameters
    ----------
    config_path : path to YAML config file (optional; a missing file is skipped)
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                try:
                    file_data = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ConfigError(f"Invalid YAML in {p}: {e}") from e
            if not isinstance(file_data, dict):
                raise ConfigError(f"Config file {p} must contain a mapping")
            raw = _deep_merge(raw, file_data)

    # --- Build sections from raw ---
    cfg = MooncowConfig(
        llm=_build_section(LLMConfig, raw.get("llm") or {}),
        budget=_build_section(BudgetConfig, raw.get("budget") or {}),
        orchestrator=_build_section(OrchestratorConfig, raw.get("orchestrator") or {}),
        tools=_build_section(ToolsConfig, raw.get("tools") or {}),
        logging=_build_section(LoggingConfig, raw.get("logging") or {}),
    )

    # --- 2. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 3. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg
