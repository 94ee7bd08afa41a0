# mcpserver

The core of a Model Context Protocol (MCP) server. It takes JSON-RPC 2.0
messages, sends them to the tools, prompts and resources you register, and
returns JSON-RPC responses or errors. It can also push list-changed
notifications to client sessions. It has no dependencies outside the standard
library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## A minimal server

```python
from mcpserver.server import MCPServer
from mcpserver.options import with_tool_capabilities, with_instructions
from mcpserver.protocol import Tool, text_result
from mcpserver.session import Context

server = MCPServer(
    "demo-server",
    "1.0.0",
    with_tool_capabilities(True),
    with_instructions("Call the echo tool."),
)

def echo(ctx, request):
    return text_result(request.params["arguments"].get("text", ""))

server.add_tool(Tool(name="echo", description="Echo text back"), echo)

response = server.handle_message(
    Context(),
    '{"jsonrpc": "2.0", "id": 1, "method": "tools/call",'
    ' "params": {"name": "echo", "arguments": {"text": "hi"}}}',
)
print(response.to_dict())
```

Handlers are plain synchronous callables. Each takes `(ctx, request)`, where
`request` is a `mcpserver.protocol.Request` and `request.params` is a dict:

- A tool handler returns a `CallToolResult`.
- A prompt handler returns a `GetPromptResult`.
- A resource handler returns a list of contents, such as `TextResourceContents`.

`MCPServer.handle_message(ctx, message)` accepts a `str` or `bytes` message.
It returns one of the following:

- a `JSONRPCResponse` when the request succeeds,
- a `JSONRPCError` when it fails, with a code from `ErrorCode` (parse error,
  invalid request, method not found, invalid params, internal error or
  resource not found),
- `None` for notifications, and for messages that carry a `result`, which are
  responses to requests the server sent.

Both response types have a `to_dict()` method that gives the JSON-ready form.

Supported methods are `initialize`, `ping`, `logging/setLevel`,
`resources/list`, `resources/templates/list`, `resources/read`,
`prompts/list`, `prompts/get`, `tools/list` and `tools/call`. If a method
belongs to a capability the server does not offer, the reply is a
method-not-found error.

## Registering things

- Tools:
  - `add_tool(tool, handler)`
  - `add_tools(*server_tools)`
  - `set_tools(*server_tools)`, which replaces every existing tool
  - `delete_tools(*names)`
- Prompts: `add_prompt(prompt, handler)`, `add_prompts(*server_prompts)`,
  `delete_prompts(*names)`.
- Resources:
  - `add_resource(resource, handler)`
  - `add_resources(*server_resources)`
  - `remove_resource(uri)`
  - `add_resource_template(template, handler)`
- Notification handlers: `add_notification_handler(method, handler)`. The
  handler receives each incoming notification with that method as a
  `JSONRPCNotification`.

Adding a tool, prompt or resource turns on the matching capability if it was
not already set. For tools that means `listChanged` true; for prompts and
resources the flags are false. When `listChanged` is on, adding a tool, prompt
or resource sends a list-changed notification to every initialized session.
Deleting one that existed does the same.

## Options

Options are passed to `MCPServer(name, version, *options)`. They come from
`mcpserver.options`.

| Option | Effect |
|---|---|
| `with_resource_capabilities(subscribe, list_changed)` | offer resources with these flags |
| `with_prompt_capabilities(list_changed)` | offer prompts |
| `with_tool_capabilities(list_changed)` | offer tools |
| `with_logging()` | offer `logging/setLevel` |
| `with_instructions(text)` | instructions returned by `initialize` |
| `with_pagination_limit(n)` | at most `n` items per list page |
| `with_tool_handler_middleware(mw)` | wrap every tool handler; the first middleware added is the outermost |
| `with_recovery()` | re-raise an exception from a tool handler as `panic recovered in <tool> tool handler: <error>` |
| `with_tool_filter(f)` | `f(ctx, tools)` narrows the `tools/list` result |
| `with_hooks(hooks)` | use a `Hooks` object |

Any exception that a handler raises becomes an internal-error response.

`initialize` checks the protocol version the client asks for. If the version
is supported, the reply uses it; otherwise the reply uses the latest supported
version.

## Pagination

List results are sorted by name. With a pagination limit, the response
carries a `nextCursor` whenever the page is full. The cursor is the base64
encoding of the last name returned. `mcpserver.pagination.list_by_pagination`
does this paging on its own, and raises `ValueError` if the cursor is not
valid base64.

## Resource templates

`ResourceTemplate` takes an RFC 6570 URI template such as
`test://{a}/test-resource{/b*}`. A `resources/read` request for a URI that
matches no direct resource is tried against every template. When one matches,
the handler finds the extracted variables in `request.params["arguments"]`,
each as a list of strings. `URITemplate.match(uri)` and
`URITemplate.matches(uri)` can also be used directly.

## Hooks

Create a `mcpserver.hooks.Hooks` object and register callbacks on it:

- `add_before_any` and `add_before(method, hook)` run before a request is
  handled.
- `add_on_success` and `add_after(method, hook)` run after a request succeeds.
- `add_on_error` runs when a request fails. It also runs, on a background
  thread, when a notification cannot be delivered.
- `add_on_request_initialization` runs for every request before dispatch. If
  the hook raises, the request is rejected with an invalid-request error.
- `add_on_register_session` and `add_on_unregister_session` run when a session
  is registered or unregistered.

Each `add_*` method returns the hook, so it can also be used as a decorator.

## Sessions

Subclass `ClientSession` from `mcpserver.session` and implement these members:

- `session_id`,
- `notification_channel`, a `queue.Queue`,
- `initialized`,
- `initialize()`.

There are optional extensions:

- `SessionWithTools` gives a session its own tools. They override global tools
  of the same name.
- `SessionWithLogging` holds the level that `logging/setLevel` sets.
- `SessionWithClientInfo` stores the client info sent with `initialize`.
- `SessionWithStreamableHTTPConfig` is told before notifications are sent to
  it.

The current session travels in an immutable `Context`. Use
`server.with_context(ctx, session)` or `Context().with_session(session)` to
attach it.

These `MCPServer` methods work with sessions:

- `register_session`
- `unregister_session`
- `send_notification_to_all_clients`
- `send_notification_to_client`
- `send_notification_to_specific_client`
- `add_session_tool` and `add_session_tools`
- `delete_session_tools`

Notifications are put on the session's queue without blocking. If the queue
is full, `NotificationChannelBlockedError` is raised, except when sending to
all clients, where the failure is only reported to error hooks.

## Errors

Session and notification methods raise subclasses of `MCPServerError` from
`mcpserver.errors`. Examples are `SessionExistsError`, `SessionNotFoundError`,
`SessionNotInitializedError`, `SessionDoesNotSupportToolsError` and
`NotificationNotInitializedError`.

When request handling fails, the cause is wrapped in a `RequestError`. The
error hooks receive it, and `to_jsonrpc_error()` turns it into the response.
The cause can be one of the following:

- `ToolNotFoundError`
- `PromptNotFoundError`
- `ResourceNotFoundError`
- `UnsupportedError`
- `UnparsableMessageError`

## What this package does not do

This is the dispatch core only:

- It has no transport. It does not read stdio, serve HTTP or SSE, or open
  sockets. You feed it messages and send its replies yourself.
- It has no command-line program.
- It has no client side.
- It has no ready-made session class. You write your own `ClientSession`
  subclasses.