"""
Provider router -- the registry of adapters plus the fallback policy.

One provider is *active* at a time.  Non-streaming requests go to the active
provider first and, if it fails, walk ``fallback_chain`` in order.  Streaming
requests never fall back: chunks already handed to the caller cannot be
recalled, so a retry elsewhere could duplicate output.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Iterable

from canvasai.errors import NoActiveProviderError, ProviderNotFoundError
from canvasai.llm.providers.base import Provider
from canvasai.llm.types import AIResponse, ChatOptions, Message, StreamChunk

logger = logging.getLogger(__name__)


class ProviderRouter:
    """
    Holds every registered provider and routes requests to them.

    Parameters
    ----------
    default_provider:
        Name that becomes active on registration even if another provider
        is already active.
    fallback_chain:
        Ordered provider names tried when the active provider fails a
        non-streaming request.
    auto_connect:
        Default for ``register_provider(..., auto_connect=None)``.
    """

    def __init__(
        self,
        default_provider: str | None = None,
        fallback_chain: Iterable[str] = (),
        auto_connect: bool = False,
    ) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None
        self.default_provider = default_provider
        self.fallback_chain: list[str] = list(fallback_chain)
        self.auto_connect = auto_connect

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    async def register_provider(
        self, provider: Provider, auto_connect: bool | None = None
    ) -> None:
        """
        Register *provider* under its own name.  Overwrites any existing entry.

        A failed auto-connect is logged, never raised: the provider stays
        registered and can be connected later.
        """
        name = provider.name
        self._providers[name] = provider

        if self.auto_connect if auto_connect is None else auto_connect:
            try:
                await provider.connect()
            except Exception as exc:
                logger.warning("Auto-connect to %s failed: %s", name, exc)

        if self._active is None or name == self.default_provider:
            self._active = name
        logger.debug("Registered provider %s (active=%s)", name, self._active)

    def unregister_provider(self, name: str) -> None:
        provider = self._providers.pop(name, None)
        if provider is None:
            return
        provider.disconnect()
        if self._active == name:
            self._active = next(iter(self._providers), None)
            logger.info("Active provider %s removed; now %s", name, self._active)

    def set_active_provider(self, name: str) -> None:
        """
        Switch the active provider.

        Raises ``ProviderNotFoundError`` if *name* has not been registered;
        the active provider is left unchanged.
        """
        if name not in self._providers:
            raise ProviderNotFoundError(
                f"Unknown provider {name!r}. Registered: {list(self._providers)}",
                provider=name,
            )
        self._active = name

    def get_provider(self, name: str) -> Provider | None:
        return self._providers.get(name)

    @property
    def active_name(self) -> str | None:
        return self._active

    @property
    def active_provider(self) -> Provider:
        """
        Return the active ``Provider`` instance.

        Raises ``NoActiveProviderError`` if no provider is active.
        """
        if self._active is None or self._active not in self._providers:
            raise NoActiveProviderError("No active AI provider")
        return self._providers[self._active]

    @property
    def provider_names(self) -> list[str]:
        return list(self._providers)

    async def connect(self, name: str | None = None) -> None:
        """Connect the named provider, or the active one."""
        if name is None:
            provider = self.active_provider
        else:
            provider = self._providers.get(name)
            if provider is None:
                raise ProviderNotFoundError(f"Unknown provider {name!r}", provider=name)
        await provider.connect()

    def dispose(self) -> None:
        for provider in self._providers.values():
            provider.disconnect()
        self._providers.clear()
        self._active = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AIResponse:
        """
        Send to the active provider, falling back along ``fallback_chain``.

        If every fallback fails too, the active provider's error is raised.
        """
        provider = self.active_provider
        try:
            response = await provider.send(messages, options)
        except Exception as primary_error:
            logger.warning("Provider %s failed: %s", provider.name, primary_error)
            response = await self._try_fallbacks(provider.name, messages, options)
            if response is None:
                raise
        if response.provider is None:
            response.provider = provider.name
        return response

    async def stream_message(
        self,
        messages: list[Message],
        options: ChatOptions | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream from the active provider only."""
        provider = self.active_provider
        async for chunk in provider.stream(messages, options):
            yield chunk

    async def _try_fallbacks(
        self,
        failed: str,
        messages: list[Message],
        options: ChatOptions | None,
    ) -> AIResponse | None:
        for name in self.fallback_chain:
            if name == failed:
                continue
            provider = self._providers.get(name)
            if provider is None:
                continue
            try:
                if not provider.is_connected:
                    await provider.connect()
                response = await provider.send(messages, options)
            except Exception as exc:
                logger.warning("Fallback provider %s failed: %s", name, exc)
                continue
            logger.info("Fallback provider %s answered after %s failed", name, failed)
            response.provider = name
            return response
        return None
