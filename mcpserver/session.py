"""Client sessions and the request context that carries them."""

from __future__ import annotations

import queue
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


class ClientSession(ABC):
    """An active connection the server can send notifications to."""

    @property
    @abstractmethod
    def session_id(self) -> str:
        """Unique identifier of the session."""

    @property
    @abstractmethod
    def notification_channel(self) -> "queue.Queue":
        """Queue that notifications for the client are put on."""

    @property
    @abstractmethod
    def initialized(self) -> bool:
        """Whether the session is ready to accept notifications."""

    @abstractmethod
    def initialize(self) -> None:
        """Mark the session as fully initialized."""


class SessionWithLogging(ClientSession):
    """A session that keeps a minimum log level."""

    @property
    @abstractmethod
    def log_level(self) -> Any:
        """The minimum level of log messages sent to the client."""

    @log_level.setter
    @abstractmethod
    def log_level(self, level: Any) -> None:
        ...


class SessionWithTools(ClientSession):
    """A session with tools of its own; access must be thread-safe."""

    @property
    @abstractmethod
    def session_tools(self) -> Optional[Dict[str, Any]]:
        """A copy of the session's tools by name, or None if it has none."""

    @session_tools.setter
    @abstractmethod
    def session_tools(self, tools: Optional[Dict[str, Any]]) -> None:
        ...


class SessionWithClientInfo(ClientSession):
    """A session that remembers the client's name and version."""

    @property
    @abstractmethod
    def client_info(self) -> Any:
        """The client's Implementation record."""

    @client_info.setter
    @abstractmethod
    def client_info(self, info: Any) -> None:
        ...


class SessionWithStreamableHTTPConfig(ClientSession):
    """A session over streamable HTTP that can switch to an event stream."""

    @abstractmethod
    def upgrade_to_sse_when_receive_notification(self) -> None:
        """Switch the response to an SSE stream once notifications are sent."""


@dataclass(frozen=True)
class Context:
    """Immutable per-request context holding the current session and server."""

    session: Optional[ClientSession] = None
    server: Any = None

    def with_session(self, session: Optional[ClientSession]) -> "Context":
        """A copy of this context carrying the given session."""
        return replace(self, session=session)

    def with_server(self, server: Any) -> "Context":
        """A copy of this context carrying the given server."""
        return replace(self, server=server)


def client_session_from_context(ctx: Optional[Context]) -> Optional[ClientSession]:
    """The session stored in the context, or None."""
    if ctx is None:
        return None
    return ctx.session


def server_from_context(ctx: Optional[Context]) -> Any:
    """The server stored in the context, or None."""
    if ctx is None:
        return None
    return ctx.server