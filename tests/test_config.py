"""Tests for configuration loading and provider construction."""

from __future__ import annotations

import os

import pytest
import yaml

from canvasai.config import CanvasAIConfig, load_config, validate_config
from canvasai.host import EnvCredentialStore, StaticCredentialStore
from canvasai.llm.providers import (
    AnthropicProvider,
    LlamaCppProvider,
    OllamaProvider,
    build_providers,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in list(os.environ):
        if var.startswith("CANVASAI_"):
            monkeypatch.delenv(var)


def _write(tmp_path, data) -> str:
    path = tmp_path / "canvasai.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestLoadConfig:
    def test_defaults(self):
        cfg = load_config()
        assert cfg.registry.default_provider == "anthropic"
        assert cfg.registry.fallback_chain == ["ollama", "llamacpp"]
        assert cfg.conversation.max_history == 50
        assert cfg.context.reserve_for_response == 4096
        assert cfg.context.truncation_priority == [
            "scene_description",
            "state_description",
            "custom_instructions",
        ]

    def test_file_values_and_unknown_keys(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "ollama": {"model": "llava", "bogus": 1},
                "context": {"max_nodes": 40},
            },
        )
        cfg = load_config(path)
        assert cfg.ollama.model == "llava"
        assert cfg.context.max_nodes == 40
        assert cfg.ollama.endpoint == "http://localhost:11434"

    def test_missing_file_uses_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "nope.yaml")
        assert cfg.ollama.model == "llama3.1:8b"

    def test_profile_overlay(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "registry": {"default_provider": "anthropic"},
                "profiles": {"offline": {"registry": {"default_provider": "ollama"}}},
            },
        )
        assert load_config(path).registry.default_provider == "anthropic"
        assert load_config(path, profile="offline").registry.default_provider == "ollama"

    def test_env_beats_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"ollama": {"model": "from-file"}})
        monkeypatch.setenv("CANVASAI_OLLAMA_MODEL", "from-env")
        monkeypatch.setenv("CANVASAI_AUTO_CONNECT", "yes")
        monkeypatch.setenv("CANVASAI_FALLBACK_CHAIN", "llamacpp, ollama")
        cfg = load_config(path)
        assert cfg.ollama.model == "from-env"
        assert cfg.registry.auto_connect is True
        assert cfg.registry.fallback_chain == ["llamacpp", "ollama"]

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("CANVASAI_MAX_NODES", "30")
        cfg = load_config(cli_overrides={"context.max_nodes": 5})
        assert cfg.context.max_nodes == 5

    def test_unknown_override_key(self):
        with pytest.raises(AttributeError):
            load_config(cli_overrides={"context.nope": 1})

    def test_session_override(self):
        cfg = CanvasAIConfig()
        cfg.set_override("llamacpp.use_chat_api", False)
        assert cfg.llamacpp.use_chat_api is False
        assert cfg.get_override("llamacpp.use_chat_api") is False
        assert "_overrides" not in cfg.to_dict()


class TestBuildProviders:
    def test_all_enabled_in_order(self):
        providers = build_providers(
            CanvasAIConfig(), StaticCredentialStore({"anthropic": "sk-1"})
        )
        assert [p.name for p in providers] == ["anthropic", "ollama", "llamacpp"]
        assert isinstance(providers[0], AnthropicProvider)
        assert isinstance(providers[1], OllamaProvider)
        assert isinstance(providers[2], LlamaCppProvider)

    def test_disabled_providers_skipped(self):
        cfg = CanvasAIConfig()
        cfg.anthropic.enabled = False
        cfg.llamacpp.enabled = False
        assert [p.name for p in build_providers(cfg)] == ["ollama"]

    def test_config_values_reach_provider(self):
        cfg = CanvasAIConfig()
        cfg.ollama.model = "llava"
        ollama = build_providers(cfg, StaticCredentialStore())[1]
        assert ollama.model == "llava"


class TestCredentials:
    def test_env_store(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "secret")
        store = EnvCredentialStore({"anthropic": "MY_KEY"})
        assert store.get("anthropic") == "secret"
        assert store.get("ollama") is None

    def test_empty_env_value_is_none(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "")
        assert EnvCredentialStore().get("anthropic") is None

    def test_static_store(self):
        store = StaticCredentialStore()
        store.set("llamacpp", "k")
        assert store.get("llamacpp") == "k"


class TestValidateConfig:
    def test_defaults_are_valid(self):
        errors, warnings = validate_config(
            CanvasAIConfig(), StaticCredentialStore({"anthropic": "sk-1"})
        )
        assert errors == []
        assert warnings == []

    def test_missing_anthropic_key_warns(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        errors, warnings = validate_config(CanvasAIConfig())
        assert errors == []
        assert warnings == ["Anthropic: API key is required when enabled"]

    def test_disabled_anthropic_needs_no_key(self):
        cfg = CanvasAIConfig()
        cfg.anthropic.enabled = False
        assert validate_config(cfg, StaticCredentialStore()) == ([], [])

    def test_out_of_range_values(self):
        cfg = CanvasAIConfig()
        cfg.anthropic.temperature = 5
        cfg.ollama.max_tokens = 0
        cfg.llamacpp.max_tokens = 200_000
        cfg.llamacpp.top_p = 1.5
        cfg.ollama.timeout_seconds = 0.5
        errors, warnings = validate_config(cfg, StaticCredentialStore({"anthropic": "k"}))
        assert errors == [
            "anthropic: temperature must be between 0 and 2",
            "ollama: max_tokens must be between 1 and 100000",
            "llamacpp: max_tokens must be between 1 and 100000",
            "llama.cpp: top_p must be between 0 and 1",
        ]
        assert warnings == ["ollama: timeout is very low (0.5s)"]

    def test_urls_and_provider_names(self):
        cfg = CanvasAIConfig()
        cfg.anthropic.base_url = "api.anthropic.com"
        cfg.ollama.endpoint = "localhost:11434"
        cfg.registry.default_provider = "nosuch"
        cfg.registry.fallback_chain = ["ollama", "openai"]
        errors, _ = validate_config(cfg, StaticCredentialStore({"anthropic": "k"}))
        assert errors == [
            "Invalid default provider: nosuch",
            "Invalid fallback provider: openai",
            "Anthropic: base_url must be a valid URL",
            "Ollama: endpoint must be a valid URL",
        ]

    def test_non_numeric_value_is_an_error(self):
        cfg = CanvasAIConfig()
        cfg.ollama.temperature = "warm"
        errors, _ = validate_config(cfg, StaticCredentialStore({"anthropic": "k"}))
        assert errors == ["ollama: temperature must be between 0 and 2"]
