"""
Orchestrator core -- wires one user turn through the assistant.

Per turn, with no phase overlap:

1. Calibrate coordinates against the host viewport
2. Build the token-budgeted context (system prompt, tools, state)
3. Optionally capture a screenshot (vision-capable providers only)
4. Append the user entry to the conversation
5. Request (with fallback) or stream (active provider only) a response
6. Append the assistant entry
7. Execute the response's tool calls sequentially

Only one turn runs at a time.  A second ``chat``/``stream_chat`` while a turn
is in flight raises ``TurnInProgressError`` before touching any state.  A
stream consumer that stops iterating ends the turn: the HTTP response is
closed, nothing is appended for the assistant, and status returns to idle.
"""

from __future__ import annotations

import inspect
import logging
import uuid
from dataclasses import dataclass, replace
from typing import AsyncIterator

from canvasai.config import CanvasAIConfig
from canvasai.errors import TurnInProgressError
from canvasai.host import (
    CredentialStore,
    HostState,
    Screenshot,
    ScreenshotSource,
    ToolExecutor,
)
from canvasai.llm.providers import build_providers
from canvasai.llm.providers.base import Provider
from canvasai.llm.router import ProviderRouter
from canvasai.llm.types import (
    AIResponse,
    ChatOptions,
    ChunkType,
    ImagePart,
    Message,
    StopReason,
    StreamChunk,
    ToolCall,
    Usage,
)
from canvasai.session.calibration import CalibrationResult, CoordinateCalibrator
from canvasai.session.channel import EventChannel
from canvasai.session.context import (
    AIContext,
    ContextAssembler,
    ContextOptions,
    TokenBudget,
)
from canvasai.session.conversation import ConversationStore
from canvasai.session.events import (
    cursor_move_event,
    status_change_event,
    stream_chunk_event,
    turn_complete_event,
    turn_error_event,
    turn_start_event,
)
from canvasai.tools.catalog import ToolCatalog
from canvasai.tools.pipeline import ToolPipeline
from canvasai.types import AIStatus

logger = logging.getLogger(__name__)


@dataclass
class _PreparedTurn:
    context: AIContext
    messages: list[Message]
    options: ChatOptions


class Orchestrator:
    """
    Per-conversation turn driver.

    Parameters
    ----------
    router : ProviderRouter
        Provider registry; may be shared between orchestrators.
    host : HostState
        Read-only host accessors.  If it also implements
        ``capture_screenshot`` it can supply screenshots.
    executor : ToolExecutor
        Host callback that runs one tool call.
    catalog : ToolCatalog
        Tools offered to the model.
    conversation : ConversationStore
        History for this conversation.
    channel : EventChannel
        Where turn, stream, tool, cursor and status events are published.
    context_options : ContextOptions
        Defaults for context assembly (budget, scene graph, tier, ...).
    history_window : int
        Messages of history sent per request, including the new one.
    cursor_tool : str
        Tool name whose successful calls move the assistant cursor.
    """

    def __init__(
        self,
        router: ProviderRouter,
        host: HostState,
        executor: ToolExecutor,
        catalog: ToolCatalog | None = None,
        conversation: ConversationStore | None = None,
        channel: EventChannel | None = None,
        context_options: ContextOptions | None = None,
        application_name: str = "the design editor",
        history_window: int = 10,
        cursor_tool: str | None = "look_at",
        tool_timeout: float | None = 30.0,
    ) -> None:
        self.router = router
        self.host = host
        self.catalog = catalog if catalog is not None else ToolCatalog()
        self.conversation = conversation if conversation is not None else ConversationStore()
        self.channel = channel if channel is not None else EventChannel()
        self.context_options = context_options or ContextOptions()
        self.history_window = history_window
        self.calibrator = CoordinateCalibrator(host)
        self.context = ContextAssembler(
            host,
            self.catalog,
            calibrator=self.calibrator,
            application_name=application_name,
            defaults=self.context_options,
        )
        self.pipeline = ToolPipeline(
            executor,
            channel=self.channel,
            catalog=self.catalog,
            cursor_tool=cursor_tool,
            tool_timeout=tool_timeout,
            on_cursor_move=self._set_cursor,
        )
        self._status = AIStatus.IDLE
        self._busy = False
        self._cursor = (0.0, 0.0)

    @classmethod
    async def from_config(
        cls,
        config: CanvasAIConfig,
        host: HostState,
        executor: ToolExecutor,
        catalog: ToolCatalog | None = None,
        credentials: CredentialStore | None = None,
        providers: list[Provider] | None = None,
        router: ProviderRouter | None = None,
    ) -> Orchestrator:
        """
        Build an orchestrator (and, unless one is given, its router) from
        configuration.  *providers* replaces the configured provider set.
        """
        if router is None:
            reg = config.registry
            router = ProviderRouter(
                default_provider=reg.default_provider or None,
                fallback_chain=reg.fallback_chain,
                auto_connect=reg.auto_connect,
            )
            if providers is None:
                providers = build_providers(config, credentials)
            for provider in providers:
                await router.register_provider(provider)

        conv = config.conversation
        ctx = config.context
        return cls(
            router,
            host,
            executor,
            catalog=catalog,
            conversation=ConversationStore(
                max_history=conv.max_history,
                max_tokens=conv.max_tokens,
                attachment_tokens=conv.attachment_tokens,
            ),
            channel=EventChannel(config.events.queue_size),
            context_options=ContextOptions(
                include_scene_graph=ctx.include_scene_graph,
                max_nodes=ctx.max_nodes,
                max_selection=ctx.max_selection,
                tool_tier=ctx.tool_tier or None,
                project_name=ctx.project_name or None,
                custom_instructions=ctx.custom_instructions or None,
                token_budget=TokenBudget(
                    max_tokens=ctx.max_tokens,
                    reserve_for_response=ctx.reserve_for_response,
                    truncation_priority=ctx.truncation_priority,
                ),
            ),
            application_name=ctx.application_name,
            history_window=conv.history_window,
            cursor_tool=ctx.cursor_tool or None,
        )

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def chat(
        self,
        message: str,
        screenshot: bool = False,
        include_scene_graph: bool | None = None,
    ) -> AIResponse:
        """Run one non-streaming turn and return the final response."""
        self._begin_turn()
        turn_id = uuid.uuid4().hex
        try:
            self.channel.publish(turn_start_event(turn_id, message))
            self._set_status(AIStatus.THINKING, turn_id)

            prepared = await self._prepare(message, screenshot, include_scene_graph)
            response = await self.router.send_message(prepared.messages, prepared.options)
            self.conversation.add_assistant_message(response.content)

            if response.tool_calls:
                self._set_status(AIStatus.EXECUTING, turn_id)
                await self.pipeline.execute(response.tool_calls, turn_id)

            self._set_status(AIStatus.IDLE, turn_id)
            self.channel.publish(turn_complete_event(turn_id, response))
            return response
        except Exception as exc:
            self._fail(turn_id, exc)
            raise
        finally:
            self._busy = False

    async def stream_chat(
        self,
        message: str,
        screenshot: bool = False,
        include_scene_graph: bool | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """
        Run one streaming turn, yielding chunks as the provider produces them.

        Tool calls run after the stream is drained.  Streams never fall back
        to another provider.
        """
        self._begin_turn()
        turn_id = uuid.uuid4().hex
        try:
            self.channel.publish(turn_start_event(turn_id, message))
            self._set_status(AIStatus.THINKING, turn_id)

            prepared = await self._prepare(message, screenshot, include_scene_graph)
            text_parts: list[str] = []
            tool_calls: list[ToolCall] = []
            stop_reason = StopReason.END_TURN
            usage = Usage()

            stream = self.router.stream_message(prepared.messages, prepared.options)
            try:
                async for chunk in stream:
                    self.channel.publish(stream_chunk_event(turn_id, chunk))
                    yield chunk
                    if chunk.type == ChunkType.TEXT:
                        text_parts.append(chunk.text)
                    elif chunk.type == ChunkType.TOOL_CALL_END and chunk.tool_call:
                        tool_calls.append(chunk.tool_call)
                    elif chunk.type == ChunkType.DONE:
                        stop_reason = chunk.stop_reason or stop_reason
                        usage = chunk.usage or usage
            finally:
                await stream.aclose()

            response = AIResponse(
                content="".join(text_parts),
                tool_calls=tool_calls,
                stop_reason=stop_reason,
                usage=usage,
                provider=self.router.active_name,
            )
            self.conversation.add_assistant_message(response.content)

            if tool_calls:
                self._set_status(AIStatus.EXECUTING, turn_id)
                await self.pipeline.execute(tool_calls, turn_id)

            self._set_status(AIStatus.IDLE, turn_id)
            self.channel.publish(turn_complete_event(turn_id, response))
        except Exception as exc:
            self._fail(turn_id, exc)
            raise
        finally:
            if self._status not in (AIStatus.IDLE, AIStatus.ERROR):
                # The consumer stopped iterating mid-turn.
                logger.info("Stream abandoned by consumer; turn %s dropped", turn_id)
                self._set_status(AIStatus.IDLE, turn_id)
            self._busy = False

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def set_provider(self, name: str) -> None:
        self.router.set_active_provider(name)

    @property
    def provider_name(self) -> str | None:
        return self.router.active_name

    @property
    def provider_names(self) -> list[str]:
        return self.router.provider_names

    async def connect(self, name: str | None = None) -> None:
        await self.router.connect(name)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def status(self) -> AIStatus:
        return self._status

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def cursor_position(self) -> tuple[float, float]:
        return self._cursor

    def move_cursor(self, x: float, y: float) -> None:
        self._set_cursor(x, y)
        self.channel.publish(cursor_move_event("", x, y))

    def calibrate(self) -> CalibrationResult:
        return self.calibrator.calibrate()

    def clear_conversation(self) -> None:
        self.conversation.clear()

    def conversation_summary(self) -> str:
        return self.conversation.summary()

    def dispose(self) -> None:
        self.router.dispose()
        self.conversation.clear()
        self.channel.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin_turn(self) -> None:
        if self._busy:
            raise TurnInProgressError("A turn is already in progress")
        self._busy = True

    def _set_status(self, status: AIStatus, turn_id: str = "") -> None:
        if status == self._status:
            return
        self._status = status
        self.channel.publish(status_change_event(turn_id, status))

    def _set_cursor(self, x: float, y: float) -> None:
        self._cursor = (x, y)

    def _fail(self, turn_id: str, exc: Exception) -> None:
        logger.error("Turn %s failed: %s", turn_id, exc)
        self._set_status(AIStatus.ERROR, turn_id)
        self.channel.publish(turn_error_event(turn_id, exc))

    async def _prepare(
        self,
        message: str,
        screenshot: bool,
        include_scene_graph: bool | None,
    ) -> _PreparedTurn:
        self.calibrator.calibrate()

        provider = self.router.active_provider
        options = replace(self.context_options, capabilities=provider.capabilities)
        if include_scene_graph is not None:
            options = replace(options, include_scene_graph=include_scene_graph)
        context = self.context.build(options)

        shot: Screenshot | None = None
        if screenshot:
            if context.include_images:
                shot = await self._capture()
            else:
                logger.debug("Provider %s has no vision; screenshot skipped", provider.name)

        self.conversation.add_user_message(message, has_attachment=shot is not None)

        images = [ImagePart(shot.data, shot.media_type)] if shot else None
        history = self.conversation.get_last_messages(self.history_window)[:-1]
        messages = history + [Message.user(message, images)]

        system_prompt = context.system_prompt
        if context.state_description:
            system_prompt += f"\n\nCURRENT STATE:\n{context.state_description}"

        return _PreparedTurn(
            context=context,
            messages=messages,
            options=ChatOptions(
                tools=context.tool_catalog if context.send_tools and context.tool_catalog else None,
                system_prompt=system_prompt,
            ),
        )

    async def _capture(self) -> Screenshot | None:
        if not isinstance(self.host, ScreenshotSource):
            logger.debug("Host cannot capture screenshots")
            return None
        shot = self.host.capture_screenshot()
        if inspect.isawaitable(shot):
            shot = await shot
        return shot
