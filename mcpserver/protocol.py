"""Message and data types of the Model Context Protocol carried over JSON-RPC 2.0."""

from __future__ import annotations

import json
import re
import string
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Optional, Union
from urllib.parse import unquote

JSONRPC_VERSION = "2.0"
LATEST_PROTOCOL_VERSION = "2025-03-26"
VALID_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26")


class ErrorCode(IntEnum):
    """JSON-RPC error codes used by the server."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    RESOURCE_NOT_FOUND = -32002


class _StrEnum(str, Enum):
    def __str__(self) -> str:
        return self.value

    def __format__(self, spec: str) -> str:
        return format(self.value, spec)


class Method(_StrEnum):
    """Request and notification method names."""

    INITIALIZE = "initialize"
    PING = "ping"
    SET_LOG_LEVEL = "logging/setLevel"
    RESOURCES_LIST = "resources/list"
    RESOURCES_TEMPLATES_LIST = "resources/templates/list"
    RESOURCES_READ = "resources/read"
    PROMPTS_LIST = "prompts/list"
    PROMPTS_GET = "prompts/get"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
    NOTIFICATION_PROMPTS_LIST_CHANGED = "notifications/prompts/list_changed"
    NOTIFICATION_TOOLS_LIST_CHANGED = "notifications/tools/list_changed"


class LoggingLevel(_StrEnum):
    """Syslog-style severity levels a client may request."""

    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    ALERT = "alert"
    EMERGENCY = "emergency"


def _serialize(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    return value


@dataclass
class Request:
    """The envelope of an incoming JSON-RPC message."""

    method: str = ""
    id: Any = None
    params: Any = None
    result: Any = None
    jsonrpc: str = ""
    raw: str = ""

    @classmethod
    def parse(cls, message: Union[str, bytes, bytearray]) -> "Request":
        """Parse a raw JSON-RPC message; raises ValueError if it is malformed."""
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode("utf-8")
        data = json.loads(message)
        if not isinstance(data, dict):
            raise ValueError("JSON-RPC message must be an object")
        jsonrpc = data.get("jsonrpc") or ""
        method = data.get("method") or ""
        if not isinstance(jsonrpc, str):
            raise ValueError("field 'jsonrpc' must be a string")
        if not isinstance(method, str):
            raise ValueError("field 'method' must be a string")
        return cls(
            method=method,
            id=data.get("id"),
            params=data.get("params"),
            result=data.get("result"),
            jsonrpc=jsonrpc,
            raw=message,
        )


@dataclass
class JSONRPCResponse:
    """A successful JSON-RPC response."""

    id: Any
    result: Any

    def to_dict(self) -> dict:
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "result": _serialize(self.result)}


@dataclass
class JSONRPCError:
    """A JSON-RPC error response."""

    id: Any
    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict:
        error: dict = {"code": int(self.code), "message": self.message}
        if self.data is not None:
            error["data"] = _serialize(self.data)
        return {"jsonrpc": JSONRPC_VERSION, "id": self.id, "error": error}


@dataclass
class JSONRPCNotification:
    """A JSON-RPC notification: a method call without an id."""

    method: str
    params: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict = {"jsonrpc": JSONRPC_VERSION, "method": str(self.method)}
        if self.params:
            data["params"] = _serialize(self.params)
        return data


@dataclass
class Implementation:
    """Name and version of a client or server."""

    name: str = ""
    version: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version}


def _default_schema() -> dict:
    return {"type": "object", "properties": {}}


@dataclass
class Tool:
    """A tool the server offers to clients."""

    name: str
    description: str = ""
    input_schema: dict = field(default_factory=_default_schema)
    annotations: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data: dict = {"name": self.name}
        if self.description:
            data["description"] = self.description
        data["inputSchema"] = _serialize(self.input_schema)
        if self.annotations:
            data["annotations"] = _serialize(self.annotations)
        return data


@dataclass
class PromptArgument:
    """An argument a prompt template accepts."""

    name: str
    description: str = ""
    required: bool = False

    def to_dict(self) -> dict:
        data: dict = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.required:
            data["required"] = True
        return data


@dataclass
class Prompt:
    """A prompt or prompt template the server offers."""

    name: str
    description: str = ""
    arguments: list = field(default_factory=list)

    def to_dict(self) -> dict:
        data: dict = {"name": self.name}
        if self.description:
            data["description"] = self.description
        if self.arguments:
            data["arguments"] = _serialize(self.arguments)
        return data


@dataclass
class TextContent:
    """Plain text content."""

    text: str
    type: str = "text"

    def to_dict(self) -> dict:
        return {"type": self.type, "text": self.text}


@dataclass
class PromptMessage:
    """A message returned as part of a prompt."""

    role: str
    content: Any

    def to_dict(self) -> dict:
        return {"role": str(self.role), "content": _serialize(self.content)}


@dataclass
class Resource:
    """A known resource the server can read."""

    uri: str
    name: str
    description: str = ""
    mime_type: str = ""

    def to_dict(self) -> dict:
        data: dict = {"uri": self.uri, "name": self.name}
        if self.description:
            data["description"] = self.description
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data


_UNRESERVED_CHARS = frozenset(string.ascii_letters + string.digits + "-._~")
_RESERVED_CHARS = frozenset(":/?#[]@!$&'()*+,;=")
_PCT = "%[0-9A-Fa-f]{2}"
_VARCHAR = f"(?:[A-Za-z0-9_]|{_PCT})"
_VARSPEC = re.compile(
    rf"(?P<name>{_VARCHAR}(?:\.?{_VARCHAR})*)(?:(?P<explode>\*)|:(?P<prefix>[1-9][0-9]{{0,3}}))?"
)


@dataclass(frozen=True)
class _Operator:
    first: str
    sep: str
    named: bool
    allow_reserved: bool


_OPERATORS = {
    "": _Operator("", ",", False, False),
    "+": _Operator("", ",", False, True),
    "#": _Operator("#", ",", False, True),
    ".": _Operator(".", ".", False, False),
    "/": _Operator("/", "/", False, False),
    ";": _Operator(";", ";", True, False),
    "?": _Operator("?", "&", True, False),
    "&": _Operator("&", "&", True, False),
}


@dataclass(frozen=True)
class _Variable:
    name: str
    explode: bool
    group: str
    operator: _Operator

    def values(self, captured: str) -> list:
        op = self.operator
        if op.named and not self.explode:
            parts = captured[1:].split(",") if captured.startswith("=") else [captured]
        elif op.named:
            parts = []
            for item in captured.split(op.sep):
                key, eq, value = item.partition("=")
                if eq and unquote(key) == self.name:
                    parts.append(value)
                elif eq:
                    parts.extend((key, value))
                else:
                    parts.append(key)
        else:
            parts = captured.split(op.sep if self.explode else ",")
        return [unquote(part) for part in parts]


def _value_pattern(allowed: frozenset) -> str:
    chars = "".join(re.escape(c) for c in sorted(allowed))
    return f"(?:[{chars}]|{_PCT})*"


@dataclass(frozen=True)
class URITemplate:
    """An RFC 6570 URI template that can match URIs and extract variables."""

    raw: str
    _regex: "re.Pattern[str]" = field(init=False, repr=False, compare=False)
    _variables: tuple = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        variables: list = []
        pattern = []
        for index, part in enumerate(re.split(r"\{([^{}]*)\}", self.raw)):
            if index % 2 == 0:
                if "{" in part or "}" in part:
                    raise ValueError(f"malformed URI template {self.raw!r}")
                pattern.append(re.escape(part))
            else:
                pattern.append(self._expression(part, variables))
        object.__setattr__(self, "_regex", re.compile("".join(pattern)))
        object.__setattr__(self, "_variables", tuple(variables))

    def _expression(self, expr: str, variables: list) -> str:
        if not expr:
            raise ValueError(f"empty expression in URI template {self.raw!r}")
        if expr[0] in "+#./;?&":
            op, body = _OPERATORS[expr[0]], expr[1:]
        else:
            op, body = _OPERATORS[""], expr
        allowed = _UNRESERVED_CHARS | (_RESERVED_CHARS if op.allow_reserved else frozenset())
        allowed = allowed - {op.sep, ","} - ({"="} if op.named else set())
        value = _value_pattern(allowed)
        sep = re.escape(op.sep)
        chunks = []
        for position, spec in enumerate(body.split(",")):
            match = _VARSPEC.fullmatch(spec)
            if match is None:
                raise ValueError(f"invalid variable {spec!r} in URI template {self.raw!r}")
            name = match.group("name")
            explode = match.group("explode") is not None
            group = f"v{len(variables)}"
            variables.append(_Variable(name, explode, group, op))
            if op.named and explode:
                item = f"{value}(?:={value})?"
                body_pattern = f"(?P<{group}>{item}(?:{sep}{item})*)"
            elif op.named:
                body_pattern = f"{re.escape(name)}(?P<{group}>(?:={value}(?:,{value})*)?)"
            else:
                joiner = sep if explode else ","
                body_pattern = f"(?P<{group}>{value}(?:{joiner}{value})*)"
            if position == 0:
                prefix = re.escape(op.first)
            elif op.first:
                prefix = f"(?:{re.escape(op.first)}|{sep})"
            else:
                prefix = f"(?:{sep})?"
            chunks.append(f"(?:{prefix}{body_pattern})?")
        return "".join(chunks)

    def matches(self, uri: str) -> bool:
        """Whether the URI fits this template."""
        return self._regex.fullmatch(uri) is not None

    def match(self, uri: str) -> Optional[dict]:
        """Variables extracted from the URI as lists of strings, or None."""
        found = self._regex.fullmatch(uri)
        if found is None:
            return None
        values = {}
        for variable in self._variables:
            captured = found.group(variable.group)
            if captured is not None:
                values[variable.name] = variable.values(captured)
        return values

    def __str__(self) -> str:
        return self.raw


@dataclass
class ResourceTemplate:
    """A parameterised family of resources."""

    uri_template: URITemplate
    name: str
    description: str = ""
    mime_type: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.uri_template, str):
            self.uri_template = URITemplate(self.uri_template)

    def to_dict(self) -> dict:
        data: dict = {"uriTemplate": self.uri_template.raw, "name": self.name}
        if self.description:
            data["description"] = self.description
        if self.mime_type:
            data["mimeType"] = self.mime_type
        return data


@dataclass
class TextResourceContents:
    """Text contents of a resource."""

    uri: str
    text: str
    mime_type: str = ""

    def to_dict(self) -> dict:
        data: dict = {"uri": self.uri}
        if self.mime_type:
            data["mimeType"] = self.mime_type
        data["text"] = self.text
        return data


@dataclass
class ServerCapabilities:
    """Capabilities announced in the initialize result; None means not offered."""

    resources: Optional[dict] = None
    prompts: Optional[dict] = None
    tools: Optional[dict] = None
    logging: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {}
        for key in ("resources", "prompts", "tools", "logging"):
            value = getattr(self, key)
            if value is not None:
                data[key] = {name: flag for name, flag in value.items() if flag}
        return data


@dataclass
class InitializeResult:
    """The server's answer to an initialize request."""

    protocol_version: str
    server_info: Implementation
    capabilities: ServerCapabilities = field(default_factory=ServerCapabilities)
    instructions: str = ""

    def to_dict(self) -> dict:
        data = {
            "protocolVersion": self.protocol_version,
            "capabilities": self.capabilities.to_dict(),
            "serverInfo": self.server_info.to_dict(),
        }
        if self.instructions:
            data["instructions"] = self.instructions
        return data


@dataclass
class EmptyResult:
    """A result that carries no data."""

    def to_dict(self) -> dict:
        return {}


def _paginated(data: dict, next_cursor: str) -> dict:
    if next_cursor:
        data["nextCursor"] = next_cursor
    return data


@dataclass
class ListResourcesResult:
    resources: list = field(default_factory=list)
    next_cursor: str = ""

    def to_dict(self) -> dict:
        return _paginated({"resources": _serialize(self.resources)}, self.next_cursor)


@dataclass
class ListResourceTemplatesResult:
    resource_templates: list = field(default_factory=list)
    next_cursor: str = ""

    def to_dict(self) -> dict:
        return _paginated(
            {"resourceTemplates": _serialize(self.resource_templates)}, self.next_cursor
        )


@dataclass
class ReadResourceResult:
    contents: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"contents": _serialize(self.contents)}


@dataclass
class ListPromptsResult:
    prompts: list = field(default_factory=list)
    next_cursor: str = ""

    def to_dict(self) -> dict:
        return _paginated({"prompts": _serialize(self.prompts)}, self.next_cursor)


@dataclass
class GetPromptResult:
    messages: list = field(default_factory=list)
    description: str = ""

    def to_dict(self) -> dict:
        data: dict = {}
        if self.description:
            data["description"] = self.description
        data["messages"] = _serialize(self.messages)
        return data


@dataclass
class ListToolsResult:
    tools: list = field(default_factory=list)
    next_cursor: str = ""

    def to_dict(self) -> dict:
        return _paginated({"tools": _serialize(self.tools)}, self.next_cursor)


@dataclass
class CallToolResult:
    content: list = field(default_factory=list)
    is_error: bool = False

    def to_dict(self) -> dict:
        data: dict = {"content": _serialize(self.content)}
        if self.is_error:
            data["isError"] = True
        return data


ToolHandler = Callable[[Any, Any], Any]
PromptHandler = Callable[[Any, Any], Any]
ResourceHandler = Callable[[Any, Any], Any]


@dataclass
class ServerTool:
    """A tool together with the handler that runs it."""

    tool: Tool
    handler: Optional[ToolHandler] = None


@dataclass
class ServerPrompt:
    """A prompt together with the handler that renders it."""

    prompt: Prompt
    handler: Optional[PromptHandler] = None


@dataclass
class ServerResource:
    """A resource together with the handler that reads it."""

    resource: Resource
    handler: Optional[ResourceHandler] = None


def text_result(text: str) -> CallToolResult:
    """A tool result holding a single piece of text."""
    return CallToolResult(content=[TextContent(text=text)])