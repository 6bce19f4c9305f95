"""Tests for the orchestrator core."""

from __future__ import annotations

import pytest

from canvasai.config import CanvasAIConfig
from canvasai.errors import BackendError, NoActiveProviderError, TurnInProgressError
from canvasai.llm.router import ProviderRouter
from canvasai.llm.types import AIResponse, ChunkType, ProviderCapabilities, ToolCall
from canvasai.orchestrator.core import Orchestrator
from canvasai.session.channel import EventChannel
from canvasai.session.conversation import ConversationStore
from canvasai.session.events import EventType
from canvasai.types import AIStatus
from tests.mock_host import RecordingExecutor, ScreenshotHost, make_catalog, make_host
from tests.mock_providers import (
    MockProvider,
    failing_provider,
    make_text_chunks,
    make_tool_call_chunks,
)


@pytest.fixture
def executor():
    return RecordingExecutor()


async def _make_orchestrator(*providers, host=None, executor=None, fallback=(), **kwargs):
    router = ProviderRouter(fallback_chain=fallback)
    for p in providers:
        await router.register_provider(p)
    return Orchestrator(
        router,
        host or make_host(),
        executor or RecordingExecutor(),
        catalog=make_catalog(),
        **kwargs,
    )


def _types(orch: Orchestrator) -> list[EventType]:
    return [e.type for e in orch.channel.drain()]


def _statuses(events) -> list[AIStatus]:
    return [e.payload["status"] for e in events if e.type == EventType.STATUS_CHANGE]


class TestChat:
    async def test_text_turn_events_and_history(self):
        orch = await _make_orchestrator(MockProvider("a", AIResponse(content="Hello!")))
        response = await orch.chat("hi")

        assert response.content == "Hello!"
        assert response.provider == "a"
        assert orch.status == AIStatus.IDLE
        assert not orch.is_busy
        assert [m.role for m in orch.conversation.messages] == ["user", "assistant"]

        events = orch.channel.drain()
        assert [e.type for e in events] == [
            EventType.TURN_START,
            EventType.STATUS_CHANGE,
            EventType.STATUS_CHANGE,
            EventType.TURN_COMPLETE,
        ]
        assert _statuses(events) == [AIStatus.THINKING, AIStatus.IDLE]
        assert len({e.turn_id for e in events}) == 1

    async def test_tool_calls_run_after_response(self, executor):
        response = AIResponse(
            content="Creating it.",
            tool_calls=[
                ToolCall("t1", "create_rectangle", {"x": 0, "y": 0, "width": 10, "height": 10}),
                ToolCall("t2", "look_at", {"x": 10, "y": 20}),
            ],
            stop_reason="tool_use",
        )
        orch = await _make_orchestrator(MockProvider("a", response), executor=executor)
        await orch.chat("make a square")

        assert [name for name, _ in executor.calls] == ["create_rectangle", "look_at"]
        assert orch.cursor_position == (10.0, 20.0)
        events = orch.channel.drain()
        assert [e.type for e in events] == [
            EventType.TURN_START,
            EventType.STATUS_CHANGE,
            EventType.STATUS_CHANGE,
            EventType.TOOL_START,
            EventType.TOOL_COMPLETE,
            EventType.TOOL_START,
            EventType.CURSOR_MOVE,
            EventType.TOOL_COMPLETE,
            EventType.STATUS_CHANGE,
            EventType.TURN_COMPLETE,
        ]
        assert _statuses(events) == [AIStatus.THINKING, AIStatus.EXECUTING, AIStatus.IDLE]

    async def test_request_carries_prompt_state_and_tools(self):
        provider = MockProvider("a")
        orch = await _make_orchestrator(provider, host=make_host(selected=["logo-0001"]))
        await orch.chat("hi")

        options = provider.last_options
        assert options.system_prompt.startswith("You are an AI design assistant")
        assert "\n\nCURRENT STATE:\nViewport: 100% zoom" in options.system_prompt
        assert '"Logo" (ellipse)' in options.system_prompt
        assert [t.name for t in options.tools] == ["create_rectangle", "look_at", "boolean_union"]

    async def test_no_tools_for_provider_without_function_calling(self):
        provider = MockProvider("a", capabilities=ProviderCapabilities(function_calling=False))
        orch = await _make_orchestrator(provider)
        await orch.chat("hi")
        assert provider.last_options.tools is None

    async def test_history_window(self):
        provider = MockProvider("a")
        orch = await _make_orchestrator(provider, history_window=3)
        for text in ("one", "two", "three"):
            await orch.chat(text)
        assert [m.text for m in provider.last_messages] == ["two", "ok", "three"]

    async def test_fallback_provider_answers(self):
        orch = await _make_orchestrator(
            failing_provider("a"), MockProvider("b", AIResponse(content="backup")), fallback=["b"]
        )
        response = await orch.chat("hi")
        assert response.provider == "b"
        assert orch.provider_name == "a"

    async def test_failure_sets_error_status(self):
        orch = await _make_orchestrator(failing_provider("a"))
        with pytest.raises(BackendError):
            await orch.chat("hi")

        assert orch.status == AIStatus.ERROR
        assert not orch.is_busy
        events = orch.channel.drain()
        assert events[-1].type == EventType.TURN_ERROR
        assert isinstance(events[-1].payload["error"], BackendError)
        # the user entry stays, nothing is recorded for the assistant
        assert [m.role for m in orch.conversation.messages] == ["user"]

    async def test_next_turn_after_error(self):
        provider = MockProvider("a")
        orch = await _make_orchestrator(failing_provider("broken"), provider)
        with pytest.raises(BackendError):
            await orch.chat("hi")
        orch.set_provider("a")
        await orch.chat("again")
        assert orch.status == AIStatus.IDLE

    async def test_no_active_provider(self):
        orch = await _make_orchestrator()
        with pytest.raises(NoActiveProviderError):
            await orch.chat("hi")
        assert orch.status == AIStatus.ERROR


class TestScreenshots:
    async def test_screenshot_attached_for_vision_provider(self):
        host = ScreenshotHost()
        provider = MockProvider("a")
        orch = await _make_orchestrator(provider, host=host)
        await orch.chat("what do you see?", screenshot=True)

        assert host.captures == 1
        assert provider.last_messages[-1].images[0].data == "aGVsbG8="
        assert orch.conversation.entries[0].has_attachment is True

    async def test_no_capture_without_vision(self):
        host = ScreenshotHost()
        provider = MockProvider("a", capabilities=ProviderCapabilities(vision=False))
        orch = await _make_orchestrator(provider, host=host)
        await orch.chat("what do you see?", screenshot=True)

        assert host.captures == 0
        assert provider.last_messages[-1].images == []
        assert orch.conversation.entries[0].has_attachment is False

    async def test_host_without_capture(self):
        provider = MockProvider("a")
        orch = await _make_orchestrator(provider)
        await orch.chat("look", screenshot=True)
        assert provider.last_messages[-1].images == []


class TestStreamChat:
    async def test_stream_text(self):
        chunks = make_text_chunks("Hello there friend")
        orch = await _make_orchestrator(MockProvider("a", chunks=chunks))
        received = [c async for c in orch.stream_chat("hi")]

        assert received == chunks
        assert orch.conversation.messages[-1].text == "Hello there friend"
        assert orch.status == AIStatus.IDLE
        types = _types(orch)
        assert types.count(EventType.STREAM_CHUNK) == len(chunks)
        assert types[-1] == EventType.TURN_COMPLETE

    async def test_stream_tool_call_executes_after_drain(self, executor):
        chunks = make_tool_call_chunks("look_at", {"x": 5, "y": 6}, content_prefix="Looking. ")
        orch = await _make_orchestrator(MockProvider("a", chunks=chunks), executor=executor)

        seen_calls_during_stream = []
        async for chunk in orch.stream_chat("where?"):
            seen_calls_during_stream.append(len(executor.calls))
        assert set(seen_calls_during_stream) == {0}
        assert executor.calls == [("look_at", {"x": 5, "y": 6})]
        assert orch.cursor_position == (5.0, 6.0)

        complete = [e for e in orch.channel.drain() if e.type == EventType.TURN_COMPLETE][0]
        response = complete.payload["response"]
        assert response.content == "Looking. "
        assert response.stop_reason == "tool_use"
        assert response.provider == "a"

    async def test_stream_never_falls_back(self):
        backup = MockProvider("b")
        orch = await _make_orchestrator(failing_provider("a"), backup, fallback=["b"])
        with pytest.raises(BackendError):
            async for _ in orch.stream_chat("hi"):
                pass
        assert backup.stream_count == 0
        assert orch.status == AIStatus.ERROR
        assert [m.role for m in orch.conversation.messages] == ["user"]

    async def test_abandoned_stream_returns_to_idle(self):
        orch = await _make_orchestrator(MockProvider("a", chunks=make_text_chunks("one two three")))
        stream = orch.stream_chat("hi")
        first = await stream.__anext__()
        assert first.type == ChunkType.TEXT
        assert orch.is_busy

        await stream.aclose()
        assert not orch.is_busy
        assert orch.status == AIStatus.IDLE
        assert [m.role for m in orch.conversation.messages] == ["user"]
        assert EventType.TURN_COMPLETE not in _types(orch)


class TestTurnExclusion:
    async def test_second_turn_rejected_while_streaming(self):
        orch = await _make_orchestrator(MockProvider("a", chunks=make_text_chunks("a b c")))
        stream = orch.stream_chat("first")
        await stream.__anext__()
        events_before = len(orch.channel)

        with pytest.raises(TurnInProgressError):
            await orch.chat("second")
        with pytest.raises(TurnInProgressError):
            await orch.stream_chat("third").__anext__()

        # the rejected turns touched nothing
        assert len(orch.channel) == events_before
        assert [m.text for m in orch.conversation.messages] == ["first"]
        assert orch.status == AIStatus.THINKING

        rest = [c async for c in stream]
        assert rest[-1].type == ChunkType.DONE
        assert orch.status == AIStatus.IDLE
        await orch.chat("now it works")


class TestStateAndLifecycle:
    async def test_uses_supplied_store_and_channel(self):
        conversation = ConversationStore(max_history=3)
        channel = EventChannel(16)
        router = ProviderRouter()
        await router.register_provider(MockProvider("a"))
        orch = Orchestrator(
            router,
            make_host(),
            RecordingExecutor(),
            conversation=conversation,
            channel=channel,
        )
        assert orch.conversation is conversation
        assert orch.channel is channel

        await orch.chat("hi")
        assert len(conversation) == 2
        assert [e.type for e in channel.drain()][0] == EventType.TURN_START

    async def test_move_cursor(self):
        orch = await _make_orchestrator(MockProvider("a"))
        orch.move_cursor(3, 4)
        assert orch.cursor_position == (3, 4)
        assert _types(orch) == [EventType.CURSOR_MOVE]

    async def test_calibrate_and_summary(self):
        orch = await _make_orchestrator(MockProvider("a"))
        assert orch.calibrate().zoom == 1.0
        assert orch.conversation_summary() == "No conversation history."
        await orch.chat("draw a circle")
        assert 'Last request: "draw a circle"' in orch.conversation_summary()
        orch.clear_conversation()
        assert len(orch.conversation) == 0

    async def test_provider_switching(self):
        orch = await _make_orchestrator(MockProvider("a"), MockProvider("b"))
        assert orch.provider_names == ["a", "b"]
        orch.set_provider("b")
        assert orch.provider_name == "b"

    async def test_dispose(self):
        provider = MockProvider("a")
        orch = await _make_orchestrator(provider)
        await orch.chat("hi")
        orch.dispose()
        assert orch.channel.closed
        assert len(orch.conversation) == 0
        assert provider.disconnect_count == 1
        assert orch.provider_names == []


class TestFromConfig:
    async def test_builds_router_and_sections(self):
        cfg = CanvasAIConfig()
        cfg.registry.default_provider = "b"
        cfg.conversation.max_history = 7
        cfg.context.project_name = "Poster"
        cfg.events.queue_size = 16
        a, b = MockProvider("a"), MockProvider("b")

        orch = await Orchestrator.from_config(
            cfg, make_host(), RecordingExecutor(), catalog=make_catalog(), providers=[a, b]
        )
        assert orch.provider_name == "b"
        assert orch.router.fallback_chain == ["ollama", "llamacpp"]
        assert orch.conversation.max_history == 7
        assert orch.channel.maxsize == 16

        await orch.chat("hi")
        assert "PROJECT: Poster" in b.last_options.system_prompt
