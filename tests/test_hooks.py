import pytest

from mcpserver.hooks import Hooks
from mcpserver.protocol import Method


def test_before_runs_any_hooks_then_method_hooks():
    calls = []
    hooks = Hooks()
    hooks.add_before(Method.PING, lambda ctx, rid, msg: calls.append(("ping", rid, msg)))
    hooks.add_before_any(lambda ctx, rid, method, msg: calls.append(("any", method, msg)))

    hooks.before(None, 2, Method.PING, "request")

    assert calls == [("any", Method.PING, "request"), ("ping", 2, "request")]


def test_method_hooks_only_run_for_their_method():
    calls = []
    hooks = Hooks()
    hooks.add_before(Method.PING, lambda ctx, rid, msg: calls.append("ping"))
    hooks.add_after(Method.PING, lambda ctx, rid, msg, res: calls.append("after-ping"))

    hooks.before(None, 1, Method.TOOLS_LIST, "m")
    hooks.after(None, 1, Method.TOOLS_LIST, "m", "r")

    assert calls == []


def test_string_and_enum_method_keys_are_interchangeable():
    calls = []
    hooks = Hooks()
    hooks.add_before("tools/list", lambda ctx, rid, msg: calls.append(msg))

    hooks.before(None, 3, Method.TOOLS_LIST, "listing")

    assert calls == ["listing"]


def test_after_runs_success_hooks_then_method_hooks():
    calls = []
    hooks = Hooks()
    hooks.add_after(
        Method.PING, lambda ctx, rid, msg, res: calls.append(("after", msg, res))
    )
    hooks.add_on_success(
        lambda ctx, rid, method, msg, res: calls.append(("success", method, res))
    )

    hooks.after(None, 1, Method.PING, "msg", "result")

    assert calls == [("success", Method.PING, "result"), ("after", "msg", "result")]


def test_on_error_passes_the_error_to_every_hook():
    seen = []
    hooks = Hooks()
    hooks.add_on_error(lambda ctx, rid, method, msg, err: seen.append(err))
    hooks.add_on_error(lambda ctx, rid, method, msg, err: seen.append(method))
    error = ValueError("boom")

    hooks.on_error(None, 4, Method.TOOLS_CALL, "msg", error)

    assert seen == [error, Method.TOOLS_CALL]


def test_has_error_hooks_reflects_registration():
    hooks = Hooks()
    assert hooks.has_error_hooks is False
    hooks.add_on_error(lambda *args: None)
    assert hooks.has_error_hooks is True


def test_request_initialization_runs_all_hooks():
    seen = []
    hooks = Hooks()
    hooks.add_on_request_initialization(lambda ctx, rid, msg: seen.append(rid))
    hooks.add_on_request_initialization(lambda ctx, rid, msg: seen.append(msg))

    hooks.request_initialization(None, 7, "raw")

    assert seen == [7, "raw"]


def test_request_initialization_stops_at_first_exception():
    seen = []
    hooks = Hooks()

    def reject(ctx, rid, msg):
        raise PermissionError("rejected")

    hooks.add_on_request_initialization(reject)
    hooks.add_on_request_initialization(lambda ctx, rid, msg: seen.append(rid))

    with pytest.raises(PermissionError, match="rejected"):
        hooks.request_initialization(None, 1, "raw")
    assert seen == []


def test_session_hooks_receive_context_and_session():
    registered = []
    unregistered = []
    hooks = Hooks()
    hooks.add_on_register_session(lambda ctx, s: registered.append((ctx, s)))
    hooks.add_on_unregister_session(lambda ctx, s: unregistered.append((ctx, s)))
    ctx = object()
    session = object()

    hooks.register_session(ctx, session)
    assert registered == [(ctx, session)]
    assert unregistered == []

    hooks.unregister_session(ctx, session)
    assert unregistered == [(ctx, session)]


def test_add_methods_return_the_hook_for_decorator_use():
    hooks = Hooks()

    @hooks.add_before_any
    def hook(ctx, rid, method, msg):
        pass

    assert hooks.before_any_hooks == [hook]