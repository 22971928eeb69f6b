from .commands import AgentCommand, CommandQueue
from .config_store import ConfigState, ConfigStore, LiveKind
from .errors import (
    AuthenticationError,
    ClientNotFoundError,
    ConfigFormatError,
    ConfigStateError,
    ConfigStoreError,
    DarkBindingError,
    SessionConnectionError,
)
from .session_dispatcher import SessionContext, SessionDispatcher

__all__ = [
    "AgentCommand",
    "CommandQueue",
    "ConfigState",
    "ConfigStore",
    "LiveKind",
    "SessionContext",
    "SessionDispatcher",
    "DarkBindingError",
    "ConfigFormatError",
    "ConfigStoreError",
    "ConfigStateError",
    "ClientNotFoundError",
    "AuthenticationError",
    "SessionConnectionError",
]
