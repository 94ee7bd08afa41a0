"""Exceptions raised by the server and their JSON-RPC error form."""

from __future__ import annotations

from typing import Any, Optional

from .protocol import JSONRPCError


class MCPServerError(Exception):
    """Base class of all server errors."""

    default_message = "server error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)


class UnsupportedError(MCPServerError):
    default_message = "not supported"


class ToolNotFoundError(MCPServerError):
    default_message = "tool not found"


class PromptNotFoundError(MCPServerError):
    default_message = "prompt not found"


class ResourceNotFoundError(MCPServerError):
    default_message = "resource not found"


class SessionExistsError(MCPServerError):
    default_message = "session already exists"


class SessionNotFoundError(MCPServerError):
    default_message = "session not found"


class SessionNotInitializedError(MCPServerError):
    default_message = "session not properly initialized"


class SessionDoesNotSupportToolsError(MCPServerError):
    default_message = "session does not support per-session tools"


class SessionDoesNotSupportLoggingError(MCPServerError):
    default_message = "session does not support setting logging level"


class NotificationNotInitializedError(MCPServerError):
    default_message = "notification channel not initialized"


class NotificationChannelBlockedError(MCPServerError):
    default_message = "notification channel full or blocked"


class UnparsableMessageError(MCPServerError):
    """A request whose body could not be decoded for its method."""

    def __init__(self, message: str, method: str, cause: BaseException) -> None:
        self.message = message
        self.method = method
        self.cause = cause
        super().__init__(f"unparsable {method} request: {cause}")
        self.__cause__ = cause


class RequestError(MCPServerError):
    """An error tied to a request id and a JSON-RPC error code."""

    def __init__(self, request_id: Any, code: int, error: BaseException) -> None:
        self.request_id = request_id
        self.code = code
        self.error = error
        super().__init__(f"request error: {error}")
        self.__cause__ = error

    def to_jsonrpc_error(self) -> JSONRPCError:
        """The JSON-RPC error response for this failure."""
        return JSONRPCError(id=self.request_id, code=self.code, message=str(self.error))