"""Callbacks run around request handling and session registration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

BeforeAnyHook = Callable[[Any, Any, str, Any], None]
OnSuccessHook = Callable[[Any, Any, str, Any, Any], None]
OnErrorHook = Callable[[Any, Any, str, Any, BaseException], None]
RequestInitializationHook = Callable[[Any, Any, Any], None]
SessionHook = Callable[[Any, Any], None]
BeforeHook = Callable[[Any, Any, Any], None]
AfterHook = Callable[[Any, Any, Any, Any], None]


@dataclass
class Hooks:
    """Registered callbacks, grouped by the moment they run.

    Every ``add_*`` method returns the hook it was given, so they can be
    used as decorators. A request-initialization hook rejects a request by
    raising an exception.
    """

    before_any_hooks: List[BeforeAnyHook] = field(default_factory=list)
    on_success_hooks: List[OnSuccessHook] = field(default_factory=list)
    on_error_hooks: List[OnErrorHook] = field(default_factory=list)
    on_request_initialization_hooks: List[RequestInitializationHook] = field(
        default_factory=list
    )
    on_register_session_hooks: List[SessionHook] = field(default_factory=list)
    on_unregister_session_hooks: List[SessionHook] = field(default_factory=list)
    before_hooks: Dict[str, List[BeforeHook]] = field(default_factory=dict)
    after_hooks: Dict[str, List[AfterHook]] = field(default_factory=dict)

    @property
    def has_error_hooks(self) -> bool:
        """Whether any error hook is registered."""
        return bool(self.on_error_hooks)

    def add_before_any(self, hook: BeforeAnyHook) -> BeforeAnyHook:
        self.before_any_hooks.append(hook)
        return hook

    def add_on_success(self, hook: OnSuccessHook) -> OnSuccessHook:
        self.on_success_hooks.append(hook)
        return hook

    def add_on_error(self, hook: OnErrorHook) -> OnErrorHook:
        self.on_error_hooks.append(hook)
        return hook

    def add_on_request_initialization(
        self, hook: RequestInitializationHook
    ) -> RequestInitializationHook:
        self.on_request_initialization_hooks.append(hook)
        return hook

    def add_on_register_session(self, hook: SessionHook) -> SessionHook:
        self.on_register_session_hooks.append(hook)
        return hook

    def add_on_unregister_session(self, hook: SessionHook) -> SessionHook:
        self.on_unregister_session_hooks.append(hook)
        return hook

    def add_before(self, method: str, hook: BeforeHook) -> BeforeHook:
        """Register a hook run before requests of one method."""
        self.before_hooks.setdefault(str(method), []).append(hook)
        return hook

    def add_after(self, method: str, hook: AfterHook) -> AfterHook:
        """Register a hook run after successful requests of one method."""
        self.after_hooks.setdefault(str(method), []).append(hook)
        return hook

    def before(self, ctx: Any, request_id: Any, method: str, message: Any) -> None:
        """Run the general and then the method-specific before hooks."""
        for hook in self.before_any_hooks:
            hook(ctx, request_id, method, message)
        for hook in self.before_hooks.get(str(method), ()):
            hook(ctx, request_id, message)

    def after(
        self, ctx: Any, request_id: Any, method: str, message: Any, result: Any
    ) -> None:
        """Run the success hooks and then the method-specific after hooks."""
        for hook in self.on_success_hooks:
            hook(ctx, request_id, method, message, result)
        for hook in self.after_hooks.get(str(method), ()):
            hook(ctx, request_id, message, result)

    def on_error(
        self,
        ctx: Any,
        request_id: Any,
        method: str,
        message: Any,
        error: BaseException,
    ) -> None:
        """Report an error to every error hook."""
        for hook in self.on_error_hooks:
            hook(ctx, request_id, method, message, error)

    def request_initialization(self, ctx: Any, request_id: Any, message: Any) -> None:
        """Run the request-initialization hooks; the first exception propagates."""
        for hook in self.on_request_initialization_hooks:
            hook(ctx, request_id, message)

    def register_session(self, ctx: Any, session: Any) -> None:
        for hook in self.on_register_session_hooks:
            hook(ctx, session)

    def unregister_session(self, ctx: Any, session: Any) -> None:
        for hook in self.on_unregister_session_hooks:
            hook(ctx, session)