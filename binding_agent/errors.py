"""Exception hierarchy shared by the agent modules."""
from __future__ import annotations

from typing import List, Optional


class DarkBindingError(Exception):
    """Base class for every error raised by the agent."""


class ConfigFormatError(DarkBindingError, ValueError):
    """Raised when a groups file, settings document or preferences file is malformed."""


class ConfigStoreError(DarkBindingError):
    """Raised when the live settings file cannot be brought into a consistent state."""


class ConfigStateError(ConfigStoreError):
    """Raised when an operation's expected state does not match what is on disk."""


class ClientNotFoundError(DarkBindingError):
    """Raised when no running client (or no usable credentials) can be located."""


class AuthenticationError(DarkBindingError):
    """Raised when the client rejects the session credentials."""


class SessionConnectionError(DarkBindingError):
    """Raised when the TLS/websocket connection fails or closes."""


def _next_cause(exc: BaseException) -> Optional[BaseException]:
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__context__ is not None and not exc.__suppress_context__:
        return exc.__context__
    return None


def format_error_chain(exc: BaseException) -> str:
    """Render ``exc`` and everything it was raised from, one line per link.

    The first line reads ``error: <message>``; each chained cause follows as
    ``caused by: <message>``.
    """

    lines: List[str] = [f"error: {exc}"]
    seen = {id(exc)}
    cause = _next_cause(exc)
    while cause is not None and id(cause) not in seen:
        seen.add(id(cause))
        message = str(cause) or cause.__class__.__name__
        lines.append(f"caused by: {message}")
        cause = _next_cause(cause)
    return "\n".join(lines)
