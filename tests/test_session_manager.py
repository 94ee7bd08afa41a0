import queue
import threading
import time

import pytest

from mcpserver.errors import (
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    SessionDoesNotSupportToolsError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
)
from mcpserver.hooks import Hooks
from mcpserver.options import with_hooks, with_tool_capabilities
from mcpserver.protocol import ServerTool, Tool, text_result
from mcpserver.session import (
    ClientSession,
    Context,
    SessionWithStreamableHTTPConfig,
    SessionWithTools,
    client_session_from_context,
)
from mcpserver.session_manager import SessionManagerMixin

TOOLS_CHANGED = "notifications/tools/list_changed"


class _Session(ClientSession):
    def __init__(self, session_id, channel=None, initialized=False):
        self._session_id = session_id
        self._channel = channel if channel is not None else queue.Queue(10)
        self._initialized = initialized

    @property
    def session_id(self):
        return self._session_id

    @property
    def notification_channel(self):
        return self._channel

    @property
    def initialized(self):
        return self._initialized

    def initialize(self):
        self._initialized = True


class _ToolSession(_Session, SessionWithTools):
    def __init__(self, session_id, channel=None, initialized=False, tools=None):
        super().__init__(session_id, channel, initialized)
        self._lock = threading.Lock()
        self._tools = dict(tools) if tools is not None else None

    @property
    def session_tools(self):
        with self._lock:
            return None if self._tools is None else dict(self._tools)

    @session_tools.setter
    def session_tools(self, tools):
        with self._lock:
            self._tools = None if tools is None else dict(tools)


class _StreamSession(_Session, SessionWithStreamableHTTPConfig):
    def __init__(self, session_id, channel=None, initialized=False):
        super().__init__(session_id, channel, initialized)
        self.upgraded = False

    def upgrade_to_sse_when_receive_notification(self):
        self.upgraded = True


class _ErrorRecorder:
    def __init__(self):
        self.calls = []
        self.event = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, ctx, request_id, method, message, error):
        with self._lock:
            self.calls.append((method, message, error))
        self.event.set()


def manager(*options):
    result = SessionManagerMixin()
    for option in options:
        option(result)
    return result


def recording_manager(*options):
    recorder = _ErrorRecorder()
    hooks = Hooks()
    hooks.add_on_error(recorder)
    return manager(with_hooks(hooks), *options), recorder


def drain(channel):
    items = []
    while True:
        try:
            items.append(channel.get_nowait())
        except queue.Empty:
            return items


def server_tool(name):
    return ServerTool(tool=Tool(name=name))


def test_with_context_carries_session():
    mgr = manager()
    session = _Session("test")
    ctx = mgr.with_context(Context(), session)
    assert client_session_from_context(ctx) is session


def test_register_duplicate_session_raises():
    mgr = manager()
    mgr.register_session(Context(), _Session("dup"))
    with pytest.raises(SessionExistsError):
        mgr.register_session(Context(), _Session("dup"))


def test_session_hooks_receive_context_and_session():
    events = []
    hooks = Hooks()
    hooks.add_on_register_session(lambda ctx, s: events.append(("register", ctx, s)))
    hooks.add_on_unregister_session(lambda ctx, s: events.append(("unregister", ctx, s)))
    mgr = manager(with_hooks(hooks))
    session = _Session("test-session-id", queue.Queue(5))
    ctx = Context()
    mgr.register_session(ctx, session)
    mgr.unregister_session(ctx, "test-session-id")
    assert [(kind, c, s.session_id) for kind, c, s in events] == [
        ("register", ctx, "test-session-id"),
        ("unregister", ctx, "test-session-id"),
    ]


def test_session_hooks_absent_still_register_and_unregister():
    mgr = manager()
    mgr.register_session(Context(), _Session("test-session-id", queue.Queue(5)))
    mgr.unregister_session(Context(), "test-session-id")
    with pytest.raises(SessionNotFoundError):
        mgr.send_notification_to_specific_client("test-session-id", "m", None)


def test_send_to_client_without_session_raises():
    with pytest.raises(NotificationNotInitializedError):
        manager().send_notification_to_client(Context(), "method", None)


def test_send_to_client_uninitialized_session_raises():
    mgr = manager()
    ctx = mgr.with_context(Context(), _Session("test"))
    with pytest.raises(NotificationNotInitializedError):
        mgr.send_notification_to_client(ctx, "method", None)
    assert isinstance(client_session_from_context(ctx), _Session)


def test_send_to_client_active_session():
    mgr = manager()
    session = _Session("test", queue.Queue(10), initialized=True)
    ctx = mgr.with_context(Context(), session)
    for _ in range(10):
        mgr.send_notification_to_client(ctx, "method", None)
    records = drain(session.notification_channel)
    assert [record.method for record in records] == ["method"] * 10


def test_send_to_client_blocked_channel():
    mgr = manager()
    ctx = mgr.with_context(Context(), _Session("test", queue.Queue(1), initialized=True))
    mgr.send_notification_to_client(ctx, "method", None)
    with pytest.raises(NotificationChannelBlockedError):
        mgr.send_notification_to_client(ctx, "method", None)


def test_send_to_client_upgrades_streamable_session():
    mgr = manager()
    session = _StreamSession("stream", initialized=True)
    mgr.send_notification_to_client(mgr.with_context(Context(), session), "method", None)
    assert session.upgraded is True


def test_send_to_all_clients_delivers_in_order():
    mgr = manager()
    sessions = [_Session(f"test{i}", queue.Queue(10), initialized=True) for i in range(5)]
    for session in sessions:
        mgr.register_session(Context(), session)
    for i in range(10):
        mgr.send_notification_to_all_clients("method", {"count": i})
    for session in sessions:
        records = drain(session.notification_channel)
        assert [r.method for r in records] == ["method"] * 10
        assert [r.params["count"] for r in records] == list(range(10))


def test_send_to_all_clients_skips_uninitialized():
    mgr = manager()
    shared = queue.Queue(100)
    for i in range(5):
        mgr.register_session(Context(), _Session(f"test{i}", shared, initialized=True))
    for i in range(5, 10):
        mgr.register_session(Context(), _Session(f"test{i}", shared, initialized=False))
    mgr.send_notification_to_all_clients(TOOLS_CHANGED, None)
    assert [r.method for r in drain(shared)] == [TOOLS_CHANGED] * 5


def test_send_to_specific_client():
    mgr = manager()
    first = _Session("session-1", queue.Queue(10))
    first.initialize()
    second = _Session("session-2", queue.Queue(10))
    second.initialize()
    third = _Session("session-3", queue.Queue(10))
    for session in (first, second, third):
        mgr.register_session(Context(), session)

    mgr.send_notification_to_specific_client("session-1", "test-method", {"data": "test-data"})
    records = drain(first.notification_channel)
    assert [r.method for r in records] == ["test-method"]
    assert records[0].params["data"] == "test-data"
    assert drain(second.notification_channel) == []

    with pytest.raises(SessionNotFoundError) as missing:
        mgr.send_notification_to_specific_client("non-existent", "test-method", None)
    assert "not found" in str(missing.value)

    with pytest.raises(SessionNotInitializedError) as uninit:
        mgr.send_notification_to_specific_client("session-3", "test-method", None)
    assert "not properly initialized" in str(uninit.value)


def test_notification_channel_blocked_reports_to_hooks():
    mgr, recorder = recording_manager()
    session = _Session("blocked-session", queue.Queue(1))
    session.initialize()
    mgr.register_session(Context(), session)

    mgr.send_notification_to_specific_client("blocked-session", "first-message", None)
    with pytest.raises(NotificationChannelBlockedError):
        mgr.send_notification_to_specific_client("blocked-session", "blocked-message", None)
    assert recorder.event.wait(1.0)
    method, message, error = recorder.calls[0]
    assert method == "notification"
    assert message == {"method": "blocked-message", "sessionID": "blocked-session"}
    assert isinstance(error, NotificationChannelBlockedError)

    recorder.event.clear()
    mgr.send_notification_to_all_clients("broadcast-message", None)
    assert recorder.event.wait(1.0)
    _, message, error = recorder.calls[1]
    assert message == {"method": "broadcast-message", "sessionID": "blocked-session"}
    assert isinstance(error, NotificationChannelBlockedError)


def test_add_session_tools_notifies_and_stores():
    mgr = manager(with_tool_capabilities(True))
    session = _ToolSession("session-1", queue.Queue(10), initialized=True)
    mgr.register_session(Context(), session)
    mgr.add_session_tools("session-1", server_tool("session-tool"))
    assert session.notification_channel.get(timeout=1).method == TOOLS_CHANGED
    assert list(session.session_tools) == ["session-tool"]


def test_add_session_tool_helper():
    mgr = manager(with_tool_capabilities(True))
    session = _ToolSession("session-1", queue.Queue(10), initialized=True)
    mgr.register_session(Context(), session)
    mgr.add_session_tool(
        "session-1",
        Tool(name="session-tool-helper"),
        lambda ctx, request: text_result("helper result"),
    )
    assert session.notification_channel.get(timeout=1).method == TOOLS_CHANGED
    tools = session.session_tools
    assert list(tools) == ["session-tool-helper"]
    assert tools["session-tool-helper"].handler(None, None).content[0].text == "helper result"


def test_add_session_tools_uninitialized():
    mgr, recorder = recording_manager(with_tool_capabilities(True))
    session = _ToolSession("uninitialized-session", queue.Queue(1))
    mgr.register_session(Context(), session)

    mgr.add_session_tools("uninitialized-session", server_tool("uninitialized-tool"))
    time.sleep(0.05)
    assert recorder.calls == []
    assert drain(session.notification_channel) == []
    assert list(session.session_tools) == ["uninitialized-tool"]

    session.initialize()
    mgr.add_session_tools("uninitialized-session", server_tool("initialized-tool"))
    assert session.notification_channel.get(timeout=1).method == TOOLS_CHANGED
    time.sleep(0.05)
    assert recorder.calls == []
    assert set(session.session_tools) == {"uninitialized-tool", "initialized-tool"}


def test_delete_session_tools_uninitialized():
    mgr, recorder = recording_manager(with_tool_capabilities(True))
    session = _ToolSession(
        "uninitialized-session",
        queue.Queue(1),
        tools={
            "tool-to-delete": server_tool("tool-to-delete"),
            "tool-to-keep": server_tool("tool-to-keep"),
        },
    )
    mgr.register_session(Context(), session)

    mgr.delete_session_tools("uninitialized-session", "tool-to-delete")
    time.sleep(0.05)
    assert recorder.calls == []
    assert drain(session.notification_channel) == []
    assert list(session.session_tools) == ["tool-to-keep"]

    session.initialize()
    mgr.delete_session_tools("uninitialized-session", "tool-to-keep")
    assert session.notification_channel.get(timeout=1).method == TOOLS_CHANGED
    time.sleep(0.05)
    assert recorder.calls == []
    assert session.session_tools == {}


def test_delete_session_tools():
    mgr = manager(with_tool_capabilities(True))
    session = _ToolSession(
        "session-1",
        queue.Queue(10),
        initialized=True,
        tools={
            "session-tool-1": server_tool("session-tool-1"),
            "session-tool-2": server_tool("session-tool-2"),
        },
    )
    mgr.register_session(Context(), session)
    mgr.delete_session_tools("session-1", "session-tool-1")
    assert session.notification_channel.get(timeout=1).method == TOOLS_CHANGED
    assert list(session.session_tools) == ["session-tool-2"]


def test_delete_session_tools_without_tools_is_noop():
    mgr = manager(with_tool_capabilities(True))
    session = _ToolSession("session-1", queue.Queue(10), initialized=True)
    mgr.register_session(Context(), session)
    mgr.delete_session_tools("session-1", "anything")
    assert session.session_tools is None
    assert drain(session.notification_channel) == []


def test_session_tools_errors():
    mgr = manager()
    mgr.register_session(Context(), _Session("plain", initialized=True))
    with pytest.raises(SessionNotFoundError):
        mgr.add_session_tools("missing", server_tool("x"))
    with pytest.raises(SessionDoesNotSupportToolsError):
        mgr.add_session_tools("plain", server_tool("x"))
    with pytest.raises(SessionDoesNotSupportToolsError):
        mgr.delete_session_tools("plain", "x")


@pytest.mark.parametrize(
    "options, expected",
    [((), True), ((with_tool_capabilities(False),), False)],
)
def test_session_tool_capabilities_behavior(options, expected):
    mgr = manager(*options)
    session = _ToolSession("test-session", queue.Queue(10), initialized=True)
    mgr.register_session(Context(), session)
    mgr.add_session_tool("test-session", Tool(name="test-tool"), None)
    assert mgr.capabilities.tools is not None
    assert mgr.capabilities.tools.list_changed is expected


def test_tool_notifications_disabled():
    mgr = manager(with_tool_capabilities(False))
    session = _ToolSession("session-1", queue.Queue(1), initialized=True)
    mgr.register_session(Context(), session)

    mgr.add_session_tools("session-1", server_tool("test-tool"))
    assert drain(session.notification_channel) == []
    assert list(session.session_tools) == ["test-tool"]

    mgr.delete_session_tools("session-1", "test-tool")
    assert drain(session.notification_channel) == []
    assert session.session_tools == {}


def test_failed_tool_notification_is_reported_not_raised():
    mgr, recorder = recording_manager(with_tool_capabilities(True))
    channel = queue.Queue(1)
    channel.put_nowait("filler")
    session = _ToolSession("full", channel, initialized=True)
    mgr.register_session(Context(), session)
    mgr.add_session_tools("full", server_tool("new-tool"))
    assert list(session.session_tools) == ["new-tool"]
    deadline = time.monotonic() + 1.0
    while len(recorder.calls) < 2 and time.monotonic() < deadline:
        time.sleep(0.01)
    messages = [str(error) for _, _, error in recorder.calls]
    assert any(m.startswith("failed to send notification after adding tools") for m in messages)
    assert all(isinstance(error, NotificationChannelBlockedError) for _, _, error in recorder.calls)