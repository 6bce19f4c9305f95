"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < env vars < CLI flags < per-session overrides
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from canvasai.host import CredentialStore

DEFAULT_TRUNCATION_PRIORITY = [
    "scene_description",
    "state_description",
    "custom_instructions",
]


# ---------------------------------------------------------------------------
# Provider sections
# ---------------------------------------------------------------------------

@dataclass
class AnthropicConfig:
    enabled: bool = True
    model: str = "claude-sonnet-4-20250514"
    base_url: str = "https://api.anthropic.com"
    api_key_env: str = "ANTHROPIC_API_KEY"
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout_seconds: int = 120


@dataclass
class OllamaConfig:
    enabled: bool = True
    endpoint: str = "http://localhost:11434"
    model: str = "llama3.1:8b"
    max_tokens: int = 2048
    temperature: float = 0.7
    keep_alive: str = "5m"
    timeout_seconds: int = 120


@dataclass
class LlamaCppConfig:
    enabled: bool = True
    endpoint: str = "http://localhost:8080"
    model: str = ""
    use_chat_api: bool = True
    max_tokens: int = 2048
    temperature: float = 0.7
    top_p: float = 0.9
    top_k: int = 40
    repeat_penalty: float = 1.1
    stop: list[str] = field(default_factory=lambda: ["</s>", "<|im_end|>", "<|end|>"])
    api_key_env: str = ""
    timeout_seconds: int = 120


# ---------------------------------------------------------------------------
# Core sections
# ---------------------------------------------------------------------------

@dataclass
class RegistryConfig:
    default_provider: str = "anthropic"
    fallback_chain: list[str] = field(default_factory=lambda: ["ollama", "llamacpp"])
    auto_connect: bool = False


@dataclass
class ConversationConfig:
    max_history: int = 50
    max_tokens: int = 100_000
    attachment_tokens: int = 1000
    history_window: int = 10


@dataclass
class ContextConfig:
    max_tokens: int = 100_000
    reserve_for_response: int = 4096
    truncation_priority: list[str] = field(
        default_factory=lambda: list(DEFAULT_TRUNCATION_PRIORITY)
    )
    include_scene_graph: bool = False
    max_nodes: int = 20
    max_selection: int = 5
    custom_instructions: str = ""
    project_name: str = ""
    tool_tier: str = ""
    application_name: str = "the design editor"
    cursor_tool: str = "look_at"


@dataclass
class EventsConfig:
    queue_size: int = 256


@dataclass
class LoggingConfig:
    level: str = "WARNING"


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------

@dataclass
class CanvasAIConfig:
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    llamacpp: LlamaCppConfig = field(default_factory=LlamaCppConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    events: EventsConfig = field(default_factory=EventsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    # ----- per-session overrides (applied last) ----
    _overrides: dict[str, Any] = field(default_factory=dict, repr=False)

    def set_override(self, dotpath: str, value: Any) -> None:
        """Set a per-session override using dot notation (e.g. 'ollama.model')."""
        self._overrides[dotpath] = value
        _apply_dotpath(self, dotpath, value)

    def get_override(self, dotpath: str) -> Any | None:
        return self._overrides.get(dotpath)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("_overrides", None)
        return d


_SECTIONS: dict[str, type] = {
    "anthropic": AnthropicConfig,
    "ollama": OllamaConfig,
    "llamacpp": LlamaCppConfig,
    "registry": RegistryConfig,
    "conversation": ConversationConfig,
    "context": ContextConfig,
    "events": EventsConfig,
    "logging": LoggingConfig,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _apply_dotpath(obj: Any, dotpath: str, value: Any) -> None:
    """Walk obj via dotpath and set the final attribute."""
    parts = dotpath.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    if not hasattr(obj, parts[-1]):
        raise AttributeError(f"Unknown config key: {dotpath}")
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
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    if target_type is list:
        return [s.strip() for s in value.split(",") if s.strip()]
    return value


def _build_section(cls: type, raw: dict) -> Any:
    """Build a dataclass section from a raw dict, ignoring unknown keys."""
    valid_fields = {f.name for f in fields(cls)}
    filtered = {k: v for k, v in (raw or {}).items() if k in valid_fields}
    return cls(**filtered)


# ---------------------------------------------------------------------------
# ENV var mapping
# ---------------------------------------------------------------------------

_ENV_MAP: dict[str, tuple[str, type]] = {
    "CANVASAI_ANTHROPIC_ENABLED":        ("anthropic.enabled", bool),
    "CANVASAI_ANTHROPIC_MODEL":          ("anthropic.model", str),
    "CANVASAI_ANTHROPIC_BASE_URL":       ("anthropic.base_url", str),
    "CANVASAI_ANTHROPIC_API_KEY_ENV":    ("anthropic.api_key_env", str),
    "CANVASAI_ANTHROPIC_MAX_TOKENS":     ("anthropic.max_tokens", int),
    "CANVASAI_ANTHROPIC_TEMPERATURE":    ("anthropic.temperature", float),
    "CANVASAI_OLLAMA_ENABLED":           ("ollama.enabled", bool),
    "CANVASAI_OLLAMA_ENDPOINT":          ("ollama.endpoint", str),
    "CANVASAI_OLLAMA_MODEL":             ("ollama.model", str),
    "CANVASAI_OLLAMA_MAX_TOKENS":        ("ollama.max_tokens", int),
    "CANVASAI_LLAMACPP_ENABLED":         ("llamacpp.enabled", bool),
    "CANVASAI_LLAMACPP_ENDPOINT":        ("llamacpp.endpoint", str),
    "CANVASAI_LLAMACPP_MODEL":           ("llamacpp.model", str),
    "CANVASAI_LLAMACPP_USE_CHAT_API":    ("llamacpp.use_chat_api", bool),
    "CANVASAI_LLAMACPP_MAX_TOKENS":      ("llamacpp.max_tokens", int),
    "CANVASAI_DEFAULT_PROVIDER":         ("registry.default_provider", str),
    "CANVASAI_FALLBACK_CHAIN":           ("registry.fallback_chain", list),
    "CANVASAI_AUTO_CONNECT":             ("registry.auto_connect", bool),
    "CANVASAI_MAX_HISTORY":              ("conversation.max_history", int),
    "CANVASAI_CONVERSATION_MAX_TOKENS":  ("conversation.max_tokens", int),
    "CANVASAI_HISTORY_WINDOW":           ("conversation.history_window", int),
    "CANVASAI_CONTEXT_MAX_TOKENS":       ("context.max_tokens", int),
    "CANVASAI_CONTEXT_RESERVE":          ("context.reserve_for_response", int),
    "CANVASAI_TRUNCATION_PRIORITY":      ("context.truncation_priority", list),
    "CANVASAI_INCLUDE_SCENE_GRAPH":      ("context.include_scene_graph", bool),
    "CANVASAI_MAX_NODES":                ("context.max_nodes", int),
    "CANVASAI_TOOL_TIER":                ("context.tool_tier", str),
    "CANVASAI_PROJECT_NAME":             ("context.project_name", str),
    "CANVASAI_EVENT_QUEUE_SIZE":         ("events.queue_size", int),
    "CANVASAI_LOG_LEVEL":                ("logging.level", str),
}


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> CanvasAIConfig:
    """
    Build a CanvasAIConfig by layering sources in precedence order:

        defaults  <  config file  <  env vars  <  CLI flags  <  per-session overrides

    Parameters
    ----------
    config_path : path to YAML config file (optional)
    profile : name of a profile to apply from the config file
    cli_overrides : dict of dotpath -> value CLI flag overrides
    """
    raw: dict[str, Any] = {}

    # --- 1. Config file ---
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.is_file():
            with p.open("r", encoding="utf-8") as f:
                file_data = yaml.safe_load(f) or {}
            raw = _deep_merge(raw, file_data)

    # --- 2. Profile overlay ---
    if profile:
        profile_data = raw.get("profiles", {}).get(profile, {})
        if profile_data:
            raw = _deep_merge(raw, profile_data)

    # --- Build sections from raw ---
    sections = {
        name: _build_section(cls, raw.get(name, {})) for name, cls in _SECTIONS.items()
    }
    cfg = CanvasAIConfig(**sections, profiles=raw.get("profiles", {}))

    # --- 3. Env var overrides ---
    for env_var, (dotpath, target_type) in _ENV_MAP.items():
        val = os.environ.get(env_var)
        if val is not None:
            _apply_dotpath(cfg, dotpath, _coerce(val, target_type))

    # --- 4. CLI flag overrides ---
    if cli_overrides:
        for dotpath, value in cli_overrides.items():
            _apply_dotpath(cfg, dotpath, value)

    return cfg


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

PROVIDER_NAMES = ("anthropic", "ollama", "llamacpp")

_PROVIDER_LABELS = {"anthropic": "Anthropic", "ollama": "Ollama", "llamacpp": "llama.cpp"}


def _in_range(value: Any, low: float, high: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return low <= value <= high


def _is_url(value: Any) -> bool:
    return isinstance(value, str) and value.startswith("http")


def validate_config(
    cfg: CanvasAIConfig,
    credentials: CredentialStore | None = None,
) -> tuple[list[str], list[str]]:
    """
    Check a loaded config for values the providers cannot work with.

    Returns ``(errors, warnings)``; the config is usable when *errors* is
    empty.  Without *credentials* the Anthropic key is looked up in the
    environment variable named by ``anthropic.api_key_env``.
    """
    errors: list[str] = []
    warnings: list[str] = []

    reg = cfg.registry
    if reg.default_provider and reg.default_provider not in PROVIDER_NAMES:
        errors.append(f"Invalid default provider: {reg.default_provider}")
    for name in reg.fallback_chain:
        if name not in PROVIDER_NAMES:
            errors.append(f"Invalid fallback provider: {name}")

    for name in PROVIDER_NAMES:
        section = getattr(cfg, name)
        if not _in_range(section.max_tokens, 1, 100_000):
            errors.append(f"{name}: max_tokens must be between 1 and 100000")
        if not _in_range(section.temperature, 0, 2):
            errors.append(f"{name}: temperature must be between 0 and 2")
        timeout = section.timeout_seconds
        if not _in_range(timeout, 0, float("inf")):
            errors.append(f"{name}: timeout_seconds must be a number of seconds")
        elif timeout < 1:
            warnings.append(f"{name}: timeout is very low ({timeout}s)")

    a = cfg.anthropic
    if a.enabled:
        if credentials is not None:
            key = credentials.get("anthropic")
        else:
            key = os.environ.get(a.api_key_env) if a.api_key_env else None
        if not key:
            warnings.append("Anthropic: API key is required when enabled")
    if a.base_url and not _is_url(a.base_url):
        errors.append("Anthropic: base_url must be a valid URL")

    for name in ("ollama", "llamacpp"):
        endpoint = getattr(cfg, name).endpoint
        if endpoint and not _is_url(endpoint):
            errors.append(f"{_PROVIDER_LABELS[name]}: endpoint must be a valid URL")

    if not _in_range(cfg.llamacpp.top_p, 0, 1):
        errors.append("llama.cpp: top_p must be between 0 and 1")

    return errors, warnings
