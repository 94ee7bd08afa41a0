"""Model Context Protocol server core: JSON-RPC dispatch, sessions, hooks and notifications."""

__version__ = "0.1.0"
__all__ = ["errors", "hooks", "options", "pagination", "protocol", "server", "session", "session_manager"]