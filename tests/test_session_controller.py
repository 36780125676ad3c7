# Tests for SessionController
# Created: 2026-10-19
# Sending, streaming into the store, auto-rename, error recovery and busy exclusion

import asyncio
import json

import httpx
import pytest

from chatdeck.config import Settings
from chatdeck.errors import NotFoundError, RequestError
from chatdeck.llm.client import StreamingCompletionClient, TextDelta
from chatdeck.profile import ProfileContextProvider, StaticContextProvider
from chatdeck.profile.default_provider import GENERIC_PROMPT
from chatdeck.sessions import (
    DEFAULT_TITLE,
    ERROR_MESSAGE,
    MemorySnapshot,
    Role,
    SessionController,
    SessionStore,
)
from chatdeck.sessions.models import Message

# ============================================================================
# Fakes and fixtures
# ============================================================================


class FakeClient:
    """Completion client yielding canned deltas, optionally gated or failing."""

    def __init__(self, deltas=(), error: Exception | None = None, gate: asyncio.Event | None = None):
        self.deltas = list(deltas)
        self.error = error
        self.gate = gate
        self.calls = []

    def stream(self, history, new_user_message, system_context):
        self.calls.append(
            {
                "history": list(history),
                "user": new_user_message,
                "system_context": system_context,
            }
        )
        return self._deltas()

    async def _deltas(self):
        if self.gate is not None:
            await self.gate.wait()
        for text in self.deltas:
            yield TextDelta(text)
        if self.error is not None:
            raise self.error


class ClosingClient(FakeClient):
    """Fake client that records how far its stream got and whether it was closed."""

    def __init__(self, deltas=()):
        super().__init__(deltas)
        self.yielded = 0
        self.closed = False

    async def _deltas(self):
        try:
            for text in self.deltas:
                self.yielded += 1
                yield TextDelta(text)
        finally:
            self.closed = True


@pytest.fixture
def snapshot():
    return MemorySnapshot()


@pytest.fixture
def store(snapshot):
    return SessionStore(snapshot)


def make_controller(store, client, context="You are helpful."):
    return SessionController(store, client, StaticContextProvider(context))


# ============================================================================
# Sending
# ============================================================================


class TestSendMessage:
    """Tests for the happy path."""

    @pytest.mark.asyncio
    async def test_streams_reply_into_session(self, store):
        controller = make_controller(store, FakeClient(["Hello", " world"]))
        session = await controller.new_chat()

        reply = await controller.send_message(session.id, "Say hello")

        assert [(m.role, m.content) for m in session.messages] == [
            (Role.USER, "Say hello"),
            (Role.ASSISTANT, "Hello world"),
        ]
        assert reply is session.messages[-1]

    @pytest.mark.asyncio
    async def test_each_delta_updates_store(self, store):
        seen = []
        store.add_listener(lambda sid, message: seen.append(message.content))
        controller = make_controller(store, FakeClient(["a", "b", "c"]))
        session = await controller.new_chat()

        await controller.send_message(session.id, "go")

        assert seen == ["a", "ab", "abc"]

    @pytest.mark.asyncio
    async def test_client_receives_history_and_context(self, store):
        client = FakeClient(["ok"])
        controller = make_controller(store, client, context="Team: Ana, Bo")
        session = await controller.new_chat()
        await controller.send_message(session.id, "first")
        await controller.send_message(session.id, "second")

        call = client.calls[1]
        assert [m.content for m in call["history"]] == ["first", "ok"]
        assert call["user"].content == "second"
        assert call["system_context"] == "Team: Ana, Bo"

    @pytest.mark.asyncio
    async def test_per_call_context_provider(self, store):
        client = FakeClient(["ok"])
        controller = make_controller(store, client, context="default")
        session = await controller.new_chat()
        await controller.send_message(session.id, "hi", StaticContextProvider("override"))
        assert client.calls[0]["system_context"] == "override"

    @pytest.mark.asyncio
    async def test_empty_reply(self, store):
        controller = make_controller(store, FakeClient([]))
        session = await controller.new_chat()

        reply = await controller.send_message(session.id, "hi")

        assert reply.content == ""
        assert [m.content for m in session.messages] == ["hi", ""]

    @pytest.mark.asyncio
    async def test_reply_is_persisted(self, store, snapshot):
        controller = make_controller(store, FakeClient(["saved"]))
        session = await controller.new_chat()
        await controller.send_message(session.id, "persist me")

        [loaded] = snapshot.load()
        assert [m.content for m in loaded.messages] == ["persist me", "saved"]


class TestAutoRename:
    """Tests for renaming after the first reply."""

    @pytest.mark.asyncio
    async def test_renames_default_title(self, store):
        controller = make_controller(store, FakeClient(["ok"]))
        session = await controller.new_chat()
        text = "How do I bake sourdough bread at home without a starter?"

        await controller.send_message(session.id, text)

        assert session.title == text[:30]

    @pytest.mark.asyncio
    async def test_short_text_used_whole(self, store):
        controller = make_controller(store, FakeClient(["ok"]))
        session = await controller.new_chat()
        await controller.send_message(session.id, "Hi")
        assert session.title == "Hi"

    @pytest.mark.asyncio
    async def test_custom_title_never_changes(self, store):
        controller = make_controller(store, FakeClient(["ok"]))
        session = await controller.new_chat()
        await controller.rename(session.id, "My notes")

        await controller.send_message(session.id, "Something else entirely")

        assert session.title == "My notes"

    @pytest.mark.asyncio
    async def test_title_set_only_once(self, store):
        controller = make_controller(store, FakeClient(["ok"]))
        session = await controller.new_chat()
        await controller.send_message(session.id, "first question")
        await controller.send_message(session.id, "second question")
        assert session.title == "first question"

    @pytest.mark.asyncio
    async def test_no_rename_on_failure(self, store):
        controller = make_controller(store, FakeClient(error=RequestError("down")))
        session = await controller.new_chat()
        await controller.send_message(session.id, "hello?")
        assert session.title == DEFAULT_TITLE


class TestFailures:
    """Tests for error recovery."""

    @pytest.mark.asyncio
    async def test_error_appends_sentinel(self, store):
        controller = make_controller(store, FakeClient(error=RequestError("HTTP 500", 500)))
        session = await controller.new_chat()

        reply = await controller.send_message(session.id, "hi")

        assert reply.content == ERROR_MESSAGE
        assert [(m.role, m.content) for m in session.messages] == [
            (Role.USER, "hi"),
            (Role.ASSISTANT, ""),
            (Role.ASSISTANT, ERROR_MESSAGE),
        ]
        assert session.messages[1].id != session.messages[2].id

    @pytest.mark.asyncio
    async def test_mid_stream_error_keeps_partial_reply(self, store):
        controller = make_controller(store, FakeClient(["par", "tial"], error=RequestError("reset")))
        session = await controller.new_chat()

        await controller.send_message(session.id, "hi")

        assert [m.content for m in session.messages] == ["hi", "partial", ERROR_MESSAGE]

    @pytest.mark.asyncio
    async def test_busy_cleared_after_failure(self, store):
        controller = make_controller(store, FakeClient(error=RequestError("down")))
        session = await controller.new_chat()
        await controller.send_message(session.id, "hi")
        assert not controller.is_busy(session.id)

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_and_clears_busy(self, store):
        controller = make_controller(store, FakeClient(error=ValueError("bug")))
        session = await controller.new_chat()
        with pytest.raises(ValueError):
            await controller.send_message(session.id, "hi")
        assert not controller.is_busy(session.id)

    @pytest.mark.asyncio
    async def test_stream_closed_when_listener_fails(self, store):
        client = ClosingClient(["a", "b", "c"])
        controller = make_controller(store, client)
        session = await controller.new_chat()

        def listener(session_id, message):
            raise RuntimeError("render failed")

        store.add_listener(listener)
        with pytest.raises(RuntimeError):
            await controller.send_message(session.id, "hi")
        assert client.closed
        assert client.yielded == 1
        assert not controller.is_busy(session.id)

    @pytest.mark.asyncio
    async def test_unreadable_profile_does_not_break_send(self, store, tmp_path):
        profile = tmp_path / "profile.json"
        profile.write_bytes(b'{"name": "\xff"}')
        client = FakeClient(["ok"])
        controller = SessionController(store, client, ProfileContextProvider(profile))
        session = await controller.new_chat()

        reply = await controller.send_message(session.id, "hi")

        assert reply.content == "ok"
        assert client.calls[0]["system_context"] == GENERIC_PROMPT


class TestValidation:
    """Tests for silently rejected sends."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    async def test_blank_text(self, store, snapshot, text):
        client = FakeClient(["x"])
        controller = make_controller(store, client)
        session = await controller.new_chat()
        saves = snapshot.save_count

        assert await controller.send_message(session.id, text) is None
        assert session.messages == []
        assert client.calls == []
        assert snapshot.save_count == saves

    @pytest.mark.asyncio
    async def test_unknown_session(self, store):
        client = FakeClient(["x"])
        controller = make_controller(store, client)
        assert await controller.send_message("missing", "hi") is None
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_busy_session_rejects_second_send(self, store):
        gate = asyncio.Event()
        controller = make_controller(store, FakeClient(["answer"], gate=gate))
        session = await controller.new_chat()

        first = asyncio.create_task(controller.send_message(session.id, "first"))
        await asyncio.sleep(0)
        assert controller.is_busy(session.id)

        assert await controller.send_message(session.id, "second") is None
        assert controller.is_busy(session.id)

        gate.set()
        await first

        assert [m.content for m in session.messages] == ["first", "answer"]
        assert not controller.is_busy(session.id)

    @pytest.mark.asyncio
    async def test_other_sessions_not_blocked(self, store):
        gate = asyncio.Event()
        controller = make_controller(store, FakeClient(["ok"], gate=gate))
        a = await controller.new_chat()
        b = await controller.new_chat()

        first = asyncio.create_task(controller.send_message(a.id, "to a"))
        await asyncio.sleep(0)
        await controller.rename(b.id, "Renamed while a streams")
        second = asyncio.create_task(controller.send_message(b.id, "to b"))
        await asyncio.sleep(0)
        assert controller.is_busy(b.id)

        gate.set()
        await asyncio.gather(first, second)
        assert [m.content for m in a.messages] == ["to a", "ok"]
        assert [m.content for m in b.messages] == ["to b", "ok"]


class TestInFlightStreams:
    """Tests for streams outliving the active session."""

    @pytest.mark.asyncio
    async def test_switching_does_not_redirect_updates(self, store):
        gate = asyncio.Event()
        controller = make_controller(store, FakeClient(["reply"], gate=gate))
        origin = await controller.new_chat()

        task = asyncio.create_task(controller.send_message(origin.id, "question"))
        await asyncio.sleep(0)
        other = await controller.new_chat()
        assert controller.active_session_id == other.id

        gate.set()
        await task

        assert [m.content for m in origin.messages] == ["question", "reply"]
        assert other.messages == []

    @pytest.mark.asyncio
    async def test_deleted_mid_stream(self, store):
        gate = asyncio.Event()
        controller = make_controller(store, FakeClient(["late", " reply"], gate=gate))
        session = await controller.new_chat()

        task = asyncio.create_task(controller.send_message(session.id, "question"))
        await asyncio.sleep(0)
        await controller.delete_chat(session.id)

        gate.set()
        reply = await task

        assert reply is not None
        assert store.get_session(session.id) is None
        assert not controller.is_busy(session.id)

    @pytest.mark.asyncio
    async def test_deleted_mid_stream_then_failure(self, store):
        gate = asyncio.Event()
        controller = make_controller(store, FakeClient(error=RequestError("down"), gate=gate))
        session = await controller.new_chat()

        task = asyncio.create_task(controller.send_message(session.id, "question"))
        await asyncio.sleep(0)
        await controller.delete_chat(session.id)
        gate.set()

        reply = await task
        assert reply.content == ERROR_MESSAGE
        assert store.sessions == []


# ============================================================================
# Session lifecycle
# ============================================================================


class TestActiveSession:
    """Tests for active-session tracking."""

    def test_empty_store_has_no_active_session(self, snapshot):
        store = SessionStore(snapshot)
        assert make_controller(store, FakeClient()).active_session_id is None

    @pytest.mark.asyncio
    async def test_active_after_reload(self, store, snapshot):
        controller = make_controller(store, FakeClient())
        await controller.new_chat()
        newest = await controller.new_chat()

        reloaded = make_controller(SessionStore.load(snapshot), FakeClient())
        assert reloaded.active_session_id == newest.id

    @pytest.mark.asyncio
    async def test_new_chat_becomes_active(self, store):
        controller = make_controller(store, FakeClient())
        session = await controller.new_chat()
        assert controller.active_session is session

    @pytest.mark.asyncio
    async def test_select(self, store):
        controller = make_controller(store, FakeClient())
        first = await controller.new_chat()
        await controller.new_chat()
        assert controller.select(first.id) is first
        assert controller.active_session_id == first.id

    def test_select_unknown(self, store):
        controller = make_controller(store, FakeClient())
        with pytest.raises(NotFoundError):
            controller.select("missing")

    @pytest.mark.asyncio
    async def test_delete_active_picks_first_remaining(self, store):
        controller = make_controller(store, FakeClient())
        older = await controller.new_chat()
        newer = await controller.new_chat()

        await controller.delete_chat(newer.id)
        assert controller.active_session_id == older.id

        await controller.delete_chat(older.id)
        assert controller.active_session_id is None

    @pytest.mark.asyncio
    async def test_delete_inactive_keeps_active(self, store):
        controller = make_controller(store, FakeClient())
        older = await controller.new_chat()
        newer = await controller.new_chat()
        await controller.delete_chat(older.id)
        assert controller.active_session_id == newer.id


class TestSessionActions:
    """Tests for rename, duplicate and suggestions."""

    @pytest.mark.asyncio
    async def test_rename_trims(self, store):
        controller = make_controller(store, FakeClient())
        session = await controller.new_chat()
        await controller.rename(session.id, "  Budget  ")
        assert session.title == "Budget"

    @pytest.mark.asyncio
    async def test_rename_blank_is_untitled(self, store):
        controller = make_controller(store, FakeClient())
        session = await controller.new_chat()
        await controller.rename(session.id, "   ")
        assert session.title == "Untitled"

    @pytest.mark.asyncio
    async def test_duplicate(self, store):
        controller = make_controller(store, FakeClient(["pong"]))
        session = await controller.new_chat()
        await controller.send_message(session.id, "ping")

        copy = await controller.duplicate(session.id)

        assert copy.id != session.id
        assert [m.content for m in copy.messages] == ["ping", "pong"]
        assert {m.id for m in copy.messages}.isdisjoint({m.id for m in session.messages})

    @pytest.mark.asyncio
    async def test_suggestion_sends_immediately(self, store):
        controller = make_controller(store, FakeClient(["Sure!"]))

        session = await controller.start_from_suggestion("Draft an email")

        assert controller.active_session_id == session.id
        assert session.title == "Draft an email"
        assert [m.content for m in session.messages] == ["Draft an email", "Sure!"]

    @pytest.mark.asyncio
    async def test_suggestion_title_truncated_and_kept(self, store):
        controller = make_controller(store, FakeClient(["ok"]))
        text = "Improve communication with my distributed team"
        session = await controller.start_from_suggestion(text)
        assert session.title == text[:30]

    @pytest.mark.asyncio
    async def test_suggestion_without_send(self, store):
        client = FakeClient(["x"])
        controller = make_controller(store, client)
        session = await controller.start_from_suggestion("Get advice", send=False)
        assert session.messages == []
        assert client.calls == []


# ============================================================================
# End to end over a mocked HTTP transport
# ============================================================================


def sse_body(*contents: str) -> bytes:
    frames = [
        "data: " + json.dumps({"choices": [{"delta": {"content": c}}]}) + "\n\n"
        for c in contents
    ]
    return ("".join(frames) + "data: [DONE]\n\n").encode()


def http_controller(store, handler) -> SessionController:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = StreamingCompletionClient(
        Settings(endpoint_url="http://llm.test/v1/chat/completions"), http_client
    )
    return make_controller(store, client)


class TestEndToEnd:
    """Controller + real client + mocked transport."""

    @pytest.mark.asyncio
    async def test_hello_world(self, store):
        controller = http_controller(
            store, lambda r: httpx.Response(200, content=sse_body("Hello", " world"))
        )
        session = await controller.new_chat()

        await controller.send_message(session.id, "greet me")

        assert session.messages[-1].role == Role.ASSISTANT
        assert session.messages[-1].content == "Hello world"
        assert session.title == "greet me"

    @pytest.mark.asyncio
    async def test_only_done_gives_empty_reply(self, store):
        controller = http_controller(
            store, lambda r: httpx.Response(200, content=b"data: [DONE]\n\n")
        )
        session = await controller.new_chat()

        await controller.send_message(session.id, "anything")

        assert [m.content for m in session.messages] == ["anything", ""]
        assert ERROR_MESSAGE not in [m.content for m in session.messages]

    @pytest.mark.asyncio
    async def test_http_500_gives_one_sentinel(self, store):
        controller = http_controller(store, lambda r: httpx.Response(500))
        session = await controller.new_chat()

        await controller.send_message(session.id, "anything")

        contents = [m.content for m in session.messages]
        assert contents == ["anything", "", ERROR_MESSAGE]
        assert contents.count(ERROR_MESSAGE) == 1

    @pytest.mark.asyncio
    async def test_request_carries_system_context_and_history(self, store):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=sse_body("ok"))

        controller = http_controller(store, handler)
        session = await controller.new_chat()
        await store.append_message(session.id, Message(role=Role.USER, content="earlier"))
        await store.append_message(session.id, Message(role=Role.ASSISTANT, content="noted"))

        await controller.send_message(session.id, "now")

        assert bodies[0]["messages"] == [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "earlier"},
            {"role": "assistant", "content": "noted"},
            {"role": "user", "content": "now"},
        ]
