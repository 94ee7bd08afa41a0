"""Session registry and notification delivery shared by the server."""

from __future__ import annotations

import queue
import threading
from typing import Any, Dict, Optional

from .errors import (
    MCPServerError,
    NotificationChannelBlockedError,
    NotificationNotInitializedError,
    SessionDoesNotSupportToolsError,
    SessionExistsError,
    SessionNotFoundError,
    SessionNotInitializedError,
)
from .hooks import Hooks
from .options import _Capabilities, _ToolCapabilities
from .protocol import JSONRPCNotification, Method, ServerTool
from .session import (
    ClientSession,
    Context,
    SessionWithStreamableHTTPConfig,
    SessionWithTools,
    client_session_from_context,
)


class SessionManagerMixin:
    """Keeps track of client sessions and sends them notifications."""

    def __init__(self) -> None:
        self._sessions: Dict[str, ClientSession] = {}
        self._sessions_lock = threading.Lock()
        self._capabilities_lock = threading.Lock()
        self.hooks: Optional[Hooks] = None
        self.capabilities = _Capabilities()

    def with_context(self, ctx: Optional[Context], session: ClientSession) -> Context:
        """A context carrying the given session."""
        return (ctx or Context()).with_session(session)

    def register_session(self, ctx: Optional[Context], session: ClientSession) -> None:
        """Store a session so it receives notifications; duplicates are rejected."""
        session_id = session.session_id
        with self._sessions_lock:
            if session_id in self._sessions:
                raise SessionExistsError()
            self._sessions[session_id] = session
        if self.hooks is not None:
            self.hooks.register_session(ctx, session)

    def unregister_session(self, ctx: Optional[Context], session_id: str) -> None:
        """Forget a session that has shut down."""
        with self._sessions_lock:
            session = self._sessions.pop(session_id, None)
        if session is not None and self.hooks is not None:
            self.hooks.unregister_session(ctx, session)

    def send_notification_to_all_clients(
        self, method: str, params: Optional[dict]
    ) -> None:
        """Send a notification to every initialized session."""
        notification = _notification(method, params)
        with self._sessions_lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            if session.initialized and not _deliver(session, notification):
                session_id = session.session_id
                self._report_error(
                    Context(),
                    method,
                    session_id,
                    _blocked_error(session_id),
                )

    def send_notification_to_client(
        self, ctx: Optional[Context], method: str, params: Optional[dict]
    ) -> None:
        """Send a notification to the session carried by the context."""
        session = client_session_from_context(ctx)
        if session is None or not session.initialized:
            raise NotificationNotInitializedError()
        self._send_to(ctx, session, method, params)

    def send_notification_to_specific_client(
        self, session_id: str, method: str, params: Optional[dict]
    ) -> None:
        """Send a notification to the session with the given id."""
        session = self._lookup(session_id)
        if not session.initialized:
            raise SessionNotInitializedError()
        self._send_to(Context(), session, method, params)

    def add_session_tool(self, session_id: str, tool: Any, handler: Any) -> None:
        """Give one session a tool of its own."""
        self.add_session_tools(session_id, ServerTool(tool=tool, handler=handler))

    def add_session_tools(self, session_id: str, *tools: ServerTool) -> None:
        """Give one session tools of its own, replacing any with the same name."""
        session = self._lookup_with_tools(session_id)
        self._implicitly_register_tool_capabilities()
        updated = dict(session.session_tools or {})
        updated.update((entry.tool.name, entry) for entry in tools)
        session.session_tools = updated
        self._notify_session_tools_changed(session, session_id, "adding")

    def delete_session_tools(self, session_id: str, *names: str) -> None:
        """Remove tools from one session."""
        session = self._lookup_with_tools(session_id)
        existing = session.session_tools
        if existing is None:
            return
        session.session_tools = {
            name: entry for name, entry in existing.items() if name not in names
        }
        self._notify_session_tools_changed(session, session_id, "deleting")

    def _implicitly_register_tool_capabilities(self) -> None:
        with self._capabilities_lock:
            if self.capabilities.tools is None:
                self.capabilities.tools = _ToolCapabilities(list_changed=True)

    def _lookup(self, session_id: str) -> ClientSession:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError()
        return session

    def _lookup_with_tools(self, session_id: str) -> SessionWithTools:
        session = self._lookup(session_id)
        if not isinstance(session, SessionWithTools):
            raise SessionDoesNotSupportToolsError()
        return session

    def _send_to(
        self,
        ctx: Optional[Context],
        session: ClientSession,
        method: str,
        params: Optional[dict],
    ) -> None:
        if isinstance(session, SessionWithStreamableHTTPConfig):
            session.upgrade_to_sse_when_receive_notification()
        if not _deliver(session, _notification(method, params)):
            session_id = session.session_id
            self._report_error(ctx, method, session_id, _blocked_error(session_id))
            raise NotificationChannelBlockedError()

    def _notify_session_tools_changed(
        self, session: ClientSession, session_id: str, action: str
    ) -> None:
        tools_caps = self.capabilities.tools
        if not (session.initialized and tools_caps is not None and tools_caps.list_changed):
            return
        method = Method.NOTIFICATION_TOOLS_LIST_CHANGED
        try:
            self.send_notification_to_specific_client(session_id, method, None)
        except MCPServerError as err:
            wrapped = type(err)(f"failed to send notification after {action} tools: {err}")
            wrapped.__cause__ = err
            self._report_error(Context(), method, session_id, wrapped)

    def _report_error(
        self, ctx: Optional[Context], method: str, session_id: str, error: BaseException
    ) -> None:
        hooks = self.hooks
        if hooks is None or not hooks.has_error_hooks:
            return
        message = {"method": str(method), "sessionID": session_id}
        threading.Thread(
            target=hooks.on_error,
            args=(ctx, None, "notification", message, error),
            daemon=True,
        ).start()


def _notification(method: str, params: Optional[dict]) -> JSONRPCNotification:
    return JSONRPCNotification(method=method, params=dict(params or {}))


def _deliver(session: ClientSession, notification: JSONRPCNotification) -> bool:
    try:
        session.notification_channel.put_nowait(notification)
    except queue.Full:
        return False
    return True


def _blocked_error(session_id: str) -> NotificationChannelBlockedError:
    cause = NotificationChannelBlockedError()
    error = NotificationChannelBlockedError(
        f"notification channel blocked for session {session_id}: {cause}"
    )
    error.__cause__ = cause
    return error