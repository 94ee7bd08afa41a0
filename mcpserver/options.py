"""Configuration options applied to a server when it is created."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .errors import MCPServerError
from .hooks import Hooks

ServerOption = Callable[[Any], None]
ToolHandlerMiddleware = Callable[[Callable], Callable]
ToolFilter = Callable[[Any, list], list]


@dataclass
class _ResourceCapabilities:
    subscribe: bool = False
    list_changed: bool = False


@dataclass
class _PromptCapabilities:
    list_changed: bool = False


@dataclass
class _ToolCapabilities:
    list_changed: bool = False


@dataclass
class _Capabilities:
    """Features the server offers; None means the feature is not offered."""

    tools: Optional[_ToolCapabilities] = None
    resources: Optional[_ResourceCapabilities] = None
    prompts: Optional[_PromptCapabilities] = None
    logging: Optional[bool] = None


def with_pagination_limit(limit: int) -> ServerOption:
    """Limit list results to ``limit`` items per page."""

    def apply(server: Any) -> None:
        server.pagination_limit = limit

    return apply


def with_resource_capabilities(subscribe: bool, list_changed: bool) -> ServerOption:
    """Offer resources with the given subscribe and listChanged flags."""

    def apply(server: Any) -> None:
        server.capabilities.resources = _ResourceCapabilities(subscribe, list_changed)

    return apply


def with_tool_handler_middleware(middleware: ToolHandlerMiddleware) -> ServerOption:
    """Add a middleware to the tool handler call chain."""

    def apply(server: Any) -> None:
        server.tool_handler_middlewares.append(middleware)

    return apply


def with_tool_filter(tool_filter: ToolFilter) -> ServerOption:
    """Add a filter applied to the tool list before it is returned."""

    def apply(server: Any) -> None:
        server.tool_filters.append(tool_filter)

    return apply


def _tool_name(request: Any) -> str:
    params = getattr(request, "params", None)
    if isinstance(params, dict):
        return str(params.get("name", ""))
    return str(getattr(params, "name", ""))


def with_recovery() -> ServerOption:
    """Turn exceptions escaping tool handlers into a plain server error."""

    def middleware(next_handler: Callable) -> Callable:
        def recovering(ctx: Any, request: Any) -> Any:
            try:
                return next_handler(ctx, request)
            except Exception as exc:
                raise MCPServerError(
                    f"panic recovered in {_tool_name(request)} tool handler: {exc}"
                ) from exc

        return recovering

    return with_tool_handler_middleware(middleware)


def with_hooks(hooks: Hooks) -> ServerOption:
    """Use the given hooks around request handling."""

    def apply(server: Any) -> None:
        server.hooks = hooks

    return apply


def with_prompt_capabilities(list_changed: bool) -> ServerOption:
    """Offer prompts with the given listChanged flag."""

    def apply(server: Any) -> None:
        server.capabilities.prompts = _PromptCapabilities(list_changed)

    return apply


def with_tool_capabilities(list_changed: bool) -> ServerOption:
    """Offer tools with the given listChanged flag."""

    def apply(server: Any) -> None:
        server.capabilities.tools = _ToolCapabilities(list_changed)

    return apply


def with_logging() -> ServerOption:
    """Offer the logging capability."""

    def apply(server: Any) -> None:
        server.capabilities.logging = True

    return apply


def with_instructions(instructions: str) -> ServerOption:
    """Set the instructions returned to clients on initialize."""

    def apply(server: Any) -> None:
        server.instructions = instructions

    return apply