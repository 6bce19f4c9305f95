from __future__ import annotations

from canvasai.config import CanvasAIConfig
from canvasai.host import CredentialStore, EnvCredentialStore
from canvasai.llm.providers.anthropic import AnthropicProvider
from canvasai.llm.providers.base import Provider
from canvasai.llm.providers.llamacpp import LlamaCppProvider, build_prompt
from canvasai.llm.providers.ollama import OllamaProvider

__all__ = [
    "AnthropicProvider",
    "LlamaCppProvider",
    "OllamaProvider",
    "Provider",
    "build_prompt",
    "build_providers",
]


def build_providers(
    config: CanvasAIConfig,
    credentials: CredentialStore | None = None,
) -> list[Provider]:
    """Instantiate every enabled provider, in registration order."""
    if credentials is None:
        credentials = EnvCredentialStore(
            {"anthropic": config.anthropic.api_key_env, "llamacpp": config.llamacpp.api_key_env}
        )

    providers: list[Provider] = []
    if config.anthropic.enabled:
        a = config.anthropic
        providers.append(
            AnthropicProvider(
                api_key=credentials.get("anthropic") or "",
                model=a.model,
                base_url=a.base_url,
                max_tokens=a.max_tokens,
                temperature=a.temperature,
                timeout=a.timeout_seconds,
            )
        )
    if config.ollama.enabled:
        o = config.ollama
        providers.append(
            OllamaProvider(
                endpoint=o.endpoint,
                model=o.model,
                max_tokens=o.max_tokens,
                temperature=o.temperature,
                keep_alive=o.keep_alive,
                timeout=o.timeout_seconds,
            )
        )
    if config.llamacpp.enabled:
        lc = config.llamacpp
        providers.append(
            LlamaCppProvider(
                endpoint=lc.endpoint,
                model=lc.model,
                use_chat_api=lc.use_chat_api,
                max_tokens=lc.max_tokens,
                temperature=lc.temperature,
                top_p=lc.top_p,
                top_k=lc.top_k,
                repeat_penalty=lc.repeat_penalty,
                stop=lc.stop,
                api_key=credentials.get("llamacpp") or "",
                timeout=lc.timeout_seconds,
            )
        )
    return providers
