"""The MCP server: registries of tools, prompts and resources, and request dispatch."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import (
    PromptNotFoundError,
    RequestError,
    ResourceNotFoundError,
    SessionDoesNotSupportLoggingError,
    SessionNotInitializedError,
    ToolNotFoundError,
    UnparsableMessageError,
    UnsupportedError,
)
from .hooks import Hooks
from .options import _PromptCapabilities, _ResourceCapabilities
from .pagination import list_by_pagination
from .protocol import (
    JSONRPC_VERSION,
    LATEST_PROTOCOL_VERSION,
    VALID_PROTOCOL_VERSIONS,
    EmptyResult,
    ErrorCode,
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCResponse,
    ListPromptsResult,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    LoggingLevel,
    Method,
    Prompt,
    ReadResourceResult,
    Request,
    Resource,
    ResourceTemplate,
    ServerCapabilities,
    ServerPrompt,
    ServerResource,
    ServerTool,
    Tool,
)
from .session import (
    Context,
    SessionWithClientInfo,
    SessionWithLogging,
    SessionWithTools,
    client_session_from_context,
)
from .session_manager import SessionManagerMixin

NotificationHandler = Callable[[Any, JSONRPCNotification], None]

# method -> (required capability, handler name, string-typed params)
_ROUTES = {
    Method.INITIALIZE: (None, "_handle_initialize", ("protocolVersion",)),
    Method.PING: (None, "_handle_ping", ()),
    Method.SET_LOG_LEVEL: ("logging", "_handle_set_level", ("level",)),
    Method.RESOURCES_LIST: ("resources", "_handle_list_resources", ("cursor",)),
    Method.RESOURCES_TEMPLATES_LIST: (
        "resources",
        "_handle_list_resource_templates",
        ("cursor",),
    ),
    Method.RESOURCES_READ: ("resources", "_handle_read_resource", ("uri",)),
    Method.PROMPTS_LIST: ("prompts", "_handle_list_prompts", ("cursor",)),
    Method.PROMPTS_GET: ("prompts", "_handle_get_prompt", ("name",)),
    Method.TOOLS_LIST: ("tools", "_handle_list_tools", ("cursor",)),
    Method.TOOLS_CALL: ("tools", "_handle_tool_call", ("name",)),
}


def _check_params(params: Any, fields: tuple) -> dict:
    if params is None:
        return {}
    if not isinstance(params, dict):
        raise TypeError("params must be an object")
    for name in fields:
        if name in params and params[name] is not None and not isinstance(params[name], str):
            raise TypeError(f"field {name!r} must be a string")
    if "arguments" in params and params["arguments"] is not None:
        if not isinstance(params["arguments"], dict):
            raise TypeError("field 'arguments' must be an object")
    return dict(params)


def _invoke(request_id: Any, handler: Callable, *args: Any) -> Any:
    try:
        return handler(*args)
    except RequestError:
        raise
    except Exception as exc:
        raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, exc) from exc


class MCPServer(SessionManagerMixin):
    """A Model Context Protocol server for resources, prompts and tools."""

    def __init__(self, name: str, version: str, *options: Callable[[Any], None]) -> None:
        super().__init__()
        self.name = name
        self.version = version
        self.instructions = ""
        self.pagination_limit: Optional[int] = None
        self.tool_handler_middlewares: List[Callable] = []
        self.tool_filters: List[Callable] = []
        self._lock = threading.RLock()
        self._resources: Dict[str, ServerResource] = {}
        self._resource_templates: Dict[str, tuple] = {}
        self._prompts: Dict[str, ServerPrompt] = {}
        self._tools: Dict[str, ServerTool] = {}
        self._notification_handlers: Dict[str, NotificationHandler] = {}
        for option in options:
            option(self)

    @property
    def _active_hooks(self) -> Hooks:
        return self.hooks if self.hooks is not None else Hooks()

    # -- registration -------------------------------------------------

    def _register_resource_capabilities(self) -> None:
        with self._capabilities_lock:
            if self.capabilities.resources is None:
                self.capabilities.resources = _ResourceCapabilities()

    def _register_prompt_capabilities(self) -> None:
        with self._capabilities_lock:
            if self.capabilities.prompts is None:
                self.capabilities.prompts = _PromptCapabilities()

    def add_resources(self, *resources: ServerResource) -> None:
        """Register several resources at once."""
        self._register_resource_capabilities()
        with self._lock:
            for entry in resources:
                self._resources[entry.resource.uri] = entry
        if self.capabilities.resources.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_RESOURCES_LIST_CHANGED, None
            )

    def add_resource(self, resource: Resource, handler: Callable) -> None:
        self.add_resources(ServerResource(resource=resource, handler=handler))

    def remove_resource(self, uri: str) -> None:
        with self._lock:
            existed = self._resources.pop(uri, None) is not None
        caps = self.capabilities.resources
        if existed and caps is not None and caps.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_RESOURCES_LIST_CHANGED, None
            )

    def add_resource_template(self, template: ResourceTemplate, handler: Callable) -> None:
        self._register_resource_capabilities()
        with self._lock:
            self._resource_templates[template.uri_template.raw] = (template, handler)
        if self.capabilities.resources.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_RESOURCES_LIST_CHANGED, None
            )

    def add_prompts(self, *prompts: ServerPrompt) -> None:
        self._register_prompt_capabilities()
        with self._lock:
            for entry in prompts:
                self._prompts[entry.prompt.name] = entry
        if self.capabilities.prompts.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_PROMPTS_LIST_CHANGED, None
            )

    def add_prompt(self, prompt: Prompt, handler: Optional[Callable]) -> None:
        self.add_prompts(ServerPrompt(prompt=prompt, handler=handler))

    def delete_prompts(self, *names: str) -> None:
        with self._lock:
            removed = [self._prompts.pop(name, None) for name in names]
        caps = self.capabilities.prompts
        if any(r is not None for r in removed) and caps is not None and caps.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_PROMPTS_LIST_CHANGED, None
            )

    def add_tool(self, tool: Tool, handler: Optional[Callable]) -> None:
        self.add_tools(ServerTool(tool=tool, handler=handler))

    def add_tools(self, *tools: ServerTool) -> None:
        self._implicitly_register_tool_capabilities()
        with self._lock:
            for entry in tools:
                self._tools[entry.tool.name] = entry
        if self.capabilities.tools.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_TOOLS_LIST_CHANGED, None
            )

    def set_tools(self, *tools: ServerTool) -> None:
        """Replace all tools with the given ones."""
        with self._lock:
            self._tools = {}
        self.add_tools(*tools)

    def delete_tools(self, *names: str) -> None:
        with self._lock:
            removed = [self._tools.pop(name, None) for name in names]
        caps = self.capabilities.tools
        if any(r is not None for r in removed) and caps is not None and caps.list_changed:
            self.send_notification_to_all_clients(
                Method.NOTIFICATION_TOOLS_LIST_CHANGED, None
            )

    def add_notification_handler(self, method: str, handler: NotificationHandler) -> None:
        with self._lock:
            self._notification_handlers[str(method)] = handler

    # -- dispatch -----------------------------------------------------

    def handle_message(
        self, ctx: Optional[Context], message: Union[str, bytes]
    ) -> Union[JSONRPCResponse, JSONRPCError, None]:
        """Handle one JSON-RPC message; notifications and responses yield None."""
        ctx = (ctx or Context()).with_server(self)
        try:
            request = Request.parse(message)
        except ValueError:
            return JSONRPCError(None, ErrorCode.PARSE_ERROR, "Failed to parse message")
        if request.jsonrpc != JSONRPC_VERSION:
            return JSONRPCError(request.id, ErrorCode.INVALID_REQUEST, "Invalid JSON-RPC version")
        if request.id is None:
            params = request.params if isinstance(request.params, dict) else {}
            with self._lock:
                handler = self._notification_handlers.get(request.method)
            if handler is not None:
                handler(ctx, JSONRPCNotification(method=request.method, params=params))
            return None
        if request.result is not None:
            return None

        hooks = self._active_hooks
        request_id = request.id
        try:
            hooks.request_initialization(ctx, request_id, request)
        except Exception as exc:
            return JSONRPCError(request_id, ErrorCode.INVALID_REQUEST, str(exc))

        route = _ROUTES.get(request.method)
        if route is None:
            return JSONRPCError(
                request_id, ErrorCode.METHOD_NOT_FOUND, f"Method {request.method} not found"
            )
        capability, handler_name, fields = route
        method = request.method
        try:
            if capability and getattr(self.capabilities, capability) is None:
                raise RequestError(
                    request_id,
                    ErrorCode.METHOD_NOT_FOUND,
                    UnsupportedError(f"{capability} {UnsupportedError.default_message}"),
                )
            try:
                request.params = _check_params(request.params, fields)
            except (TypeError, ValueError) as exc:
                raise RequestError(
                    request_id,
                    ErrorCode.INVALID_REQUEST,
                    UnparsableMessageError(request.raw, method, exc),
                ) from exc
            hooks.before(ctx, request_id, method, request)
            result = getattr(self, handler_name)(ctx, request_id, request)
        except RequestError as err:
            hooks.on_error(ctx, request_id, method, request, err)
            return err.to_jsonrpc_error()
        hooks.after(ctx, request_id, method, request, result)
        return JSONRPCResponse(request_id, result)

    # -- handlers -----------------------------------------------------

    def _handle_initialize(self, ctx: Context, request_id: Any, request: Request) -> InitializeResult:
        caps = self.capabilities
        capabilities = ServerCapabilities()
        if caps.resources is not None:
            capabilities.resources = {
                "subscribe": caps.resources.subscribe,
                "listChanged": caps.resources.list_changed,
            }
        if caps.prompts is not None:
            capabilities.prompts = {"listChanged": caps.prompts.list_changed}
        if caps.tools is not None:
            capabilities.tools = {"listChanged": caps.tools.list_changed}
        if caps.logging:
            capabilities.logging = {}
        client_version = request.params.get("protocolVersion") or ""
        version = (
            client_version if client_version in VALID_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        )
        result = InitializeResult(
            protocol_version=version,
            server_info=Implementation(self.name, self.version),
            capabilities=capabilities,
            instructions=self.instructions,
        )
        session = client_session_from_context(ctx)
        if session is not None:
            session.initialize()
            if isinstance(session, SessionWithClientInfo):
                info = request.params.get("clientInfo") or {}
                if not isinstance(info, dict):
                    info = {}
                session.client_info = Implementation(
                    name=str(info.get("name", "")), version=str(info.get("version", ""))
                )
        return result

    def _handle_ping(self, ctx: Context, request_id: Any, request: Request) -> EmptyResult:
        return EmptyResult()

    def _handle_set_level(self, ctx: Context, request_id: Any, request: Request) -> EmptyResult:
        session = client_session_from_context(ctx)
        if session is None or not session.initialized:
            raise RequestError(request_id, ErrorCode.INTERNAL_ERROR, SessionNotInitializedError())
        if not isinstance(session, SessionWithLogging):
            raise RequestError(
                request_id, ErrorCode.INTERNAL_ERROR, SessionDoesNotSupportLoggingError()
            )
        level = request.params.get("level") or ""
        try:
            parsed = LoggingLevel(level)
        except ValueError as exc:
            raise RequestError(
                request_id,
                ErrorCode.INVALID_PARAMS,
                ValueError(f"invalid logging level '{level}'"),
            ) from exc
        session.log_level = parsed
        return EmptyResult()

    def _paginate(self, request_id: Any, request: Request, items: list) -> tuple:
        try:
            return list_by_pagination(request.params.get("cursor"), items, self.pagination_limit)
        except ValueError as exc:
            raise RequestError(request_id, ErrorCode.INVALID_PARAMS, exc) from exc

    def _handle_list_resources(self, ctx, request_id, request) -> ListResourcesResult:
        with self._lock:
            resources = sorted((e.resource for e in self._resources.values()), key=lambda r: r.name)
        page, cursor = self._paginate(request_id, request, resources)
        return ListResourcesResult(resources=page, next_cursor=cursor)

    def _handle_list_resource_templates(self, ctx, request_id, request) -> ListResourceTemplatesResult:
        with self._lock:
            templates = sorted(
                (t for t, _ in self._resource_templates.values()), key=lambda t: t.name
            )
        page, cursor = self._paginate(request_id, request, templates)
        return ListResourceTemplatesResult(resource_templates=page, next_cursor=cursor)

    def _handle_read_resource(self, ctx, request_id, request) -> ReadResourceResult:
        uri = request.params.get("uri") or ""
        with self._lock:
            entry = self._resources.get(uri)
            templates = list(self._resource_templates.values())
        if entry is not None:
            contents = _invoke(request_id, entry.handler, ctx, request)
            return ReadResourceResult(contents=list(contents))
        for template, handler in templates:
            variables = template.uri_template.match(uri)
            if variables is not None:
                request.params["arguments"] = variables
                contents = _invoke(request_id, handler, ctx, request)
                return ReadResourceResult(contents=list(contents))
        raise RequestError(
            request_id,
            ErrorCode.RESOURCE_NOT_FOUND,
            ResourceNotFoundError(
                f"handler not found for resource URI '{uri}': "
                f"{ResourceNotFoundError.default_message}"
            ),
        )

    def _handle_list_prompts(self, ctx, request_id, request) -> ListPromptsResult:
        with self._lock:
            prompts = sorted((e.prompt for e in self._prompts.values()), key=lambda p: p.name)
        page, cursor = self._paginate(request_id, request, prompts)
        return ListPromptsResult(prompts=page, next_cursor=cursor)

    def _handle_get_prompt(self, ctx, request_id, request):
        name = request.params.get("name") or ""
        with self._lock:
            entry = self._prompts.get(name)
        if entry is None:
            raise RequestError(
                request_id,
                ErrorCode.INVALID_PARAMS,
                PromptNotFoundError(
                    f"prompt '{name}' not found: {PromptNotFoundError.default_message}"
                ),
            )
        request.params.setdefault("arguments", {})
        return _invoke(request_id, entry.handler, ctx, request)

    def _handle_list_tools(self, ctx, request_id, request) -> ListToolsResult:
        with self._lock:
            tools = [self._tools[name].tool for name in sorted(self._tools)]
        session = client_session_from_context(ctx)
        if isinstance(session, SessionWithTools):
            session_tools = session.session_tools
            if session_tools is not None:
                merged = {tool.name: tool for tool in tools}
                merged.update((name, entry.tool) for name, entry in session_tools.items())
                tools = sorted(merged.values(), key=lambda t: t.name)
        for tool_filter in list(self.tool_filters):
            tools = list(tool_filter(ctx, tools) or [])
        page, cursor = self._paginate(request_id, request, tools)
        return ListToolsResult(tools=page, next_cursor=cursor)

    def _handle_tool_call(self, ctx, request_id, request):
        name = request.params.get("name") or ""
        entry = None
        session = client_session_from_context(ctx)
        if isinstance(session, SessionWithTools):
            entry = (session.session_tools or {}).get(name)
        if entry is None:
            with self._lock:
                entry = self._tools.get(name)
        if entry is None:
            raise RequestError(
                request_id,
                ErrorCode.INVALID_PARAMS,
                ToolNotFoundError(f"tool '{name}' not found: {ToolNotFoundError.default_message}"),
            )
        request.params.setdefault("arguments", {})
        handler = entry.handler
        for middleware in reversed(list(self.tool_handler_middlewares)):
            handler = middleware(handler)
        return _invoke(request_id, handler, ctx, request)