"""Fire-and-forget commands sent from the tray (or signals) to the session loop."""
from __future__ import annotations

import enum
import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

LOGGER = logging.getLogger("DarkBinding.Commands")

Listener = Callable[[], None]


class AgentCommand(enum.Enum):
    BACKUP_CONFIG = "backup_config"
    RESTORE_CONFIG = "restore_config"
    RELOAD_GROUPS = "reload_groups"
    SHUTDOWN = "shutdown"


class CommandQueue:
    """Unbounded multi-producer FIFO drained by the session loop.

    Producers call :meth:`put` from any thread. The session loop attaches a
    listener that is invoked after every put so it can wake up; the listener
    must be thread-safe (the reactor uses ``loop.call_soon_threadsafe``).
    ``shutdown_requested`` stays set once a shutdown has been queued so the
    runtime can notice it between sessions too.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: Deque[AgentCommand] = deque()
        self._listener: Optional[Listener] = None
        self.shutdown_requested = threading.Event()

    def put(self, command: AgentCommand) -> None:
        with self._lock:
            self._items.append(command)
            listener = self._listener
        if command is AgentCommand.SHUTDOWN:
            self.shutdown_requested.set()
        if listener is not None:
            try:
                listener()
            except RuntimeError as exc:
                # The loop closed between attach and put; the command stays queued.
                LOGGER.debug("Command listener unavailable: %s", exc)

    def drain(self) -> List[AgentCommand]:
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def attach(self, listener: Listener) -> None:
        with self._lock:
            self._listener = listener

    def detach(self) -> None:
        with self._lock:
            self._listener = None

    def discard_pending(self) -> int:
        """Drop queued commands except shutdown; return how many were dropped."""

        with self._lock:
            kept = [item for item in self._items if item is AgentCommand.SHUTDOWN]
            dropped = len(self._items) - len(kept)
            self._items = deque(kept)
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
