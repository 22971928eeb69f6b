"""Launches the user's editor on the champion groups file and queues a reload when it exits."""
from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional

from binding_agent.commands import AgentCommand, CommandQueue
from binding_agent.group_resolver import ensure_groups_file

LOGGER = logging.getLogger("DarkBinding.Editor")

GroupsPathProvider = Callable[[], Optional[Path]]
EditorCommandProvider = Callable[[], List[str]]
ProcessFactory = Callable[[List[str]], "subprocess.Popen"]


def _spawn_editor(command: List[str]) -> "subprocess.Popen":
    return subprocess.Popen(command)


class GroupEditorLauncher:
    """Open the groups file in an external editor on a worker thread.

    When the editor exits cleanly a ``RELOAD_GROUPS`` command is queued so the
    session picks up the edits without reconnecting.
    """

    def __init__(
        self,
        commands: CommandQueue,
        groups_path: GroupsPathProvider,
        editor_command: EditorCommandProvider,
        *,
        process_factory: ProcessFactory = _spawn_editor,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._commands = commands
        self._groups_path = groups_path
        self._editor_command = editor_command
        self._process_factory = process_factory
        self._logger = logger or LOGGER
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._process: Optional[subprocess.Popen] = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def launch(self) -> threading.Thread:
        """Start the editor; raise ``RuntimeError`` when it cannot be opened now."""

        path = self._groups_path()
        if path is None:
            raise RuntimeError("No game client has been found yet; the groups file location is unknown.")
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise RuntimeError("The champion groups editor is already open.")
            ensure_groups_file(path)
            command = [*self._editor_command(), str(path)]
            self._logger.debug("Group editor launch requested: %s", command)
            thread = threading.Thread(
                target=self._editor_sequence,
                args=(command,),
                name="DarkBindingGroupEditor",
                daemon=True,
            )
            self._thread = thread
        thread.start()
        return thread

    def _editor_sequence(self, command: List[str]) -> None:
        try:
            process = self._process_factory(command)
        except OSError as exc:
            self._logger.error("Group editor launch failed: %s", exc, exc_info=exc)
            with self._lock:
                self._thread = None
            return

        with self._lock:
            self._process = process
        self._logger.debug("Group editor process started (pid=%s)", getattr(process, "pid", "?"))
        try:
            exit_code = process.wait()
        finally:
            with self._lock:
                self._process = None
                self._thread = None

        if exit_code == 0:
            self._logger.debug("Group editor closed; requesting a groups reload")
            self._commands.put(AgentCommand.RELOAD_GROUPS)
        else:
            self._logger.warning("Group editor exited with code %s; groups were not reloaded", exit_code)
