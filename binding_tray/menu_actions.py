"""Tray menu wiring, kept free of Qt so it can be exercised without a display."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

from binding_agent.commands import AgentCommand, CommandQueue

LOGGER = logging.getLogger("DarkBinding.Tray")

EDIT_GROUPS_LABEL = "Edit Champion Groups"
BACKUP_CONFIG_LABEL = "Backup Config"
RESTORE_CONFIG_LABEL = "Restore Config"
QUIT_LABEL = "Quit"

Notifier = Callable[[str], None]


class EditorLauncher(Protocol):
    def launch(self) -> object: ...


@dataclass(frozen=True)
class MenuEntry:
    label: Optional[str]
    callback: Optional[Callable[[], None]] = None

    @property
    def is_separator(self) -> bool:
        return self.label is None


SEPARATOR = MenuEntry(None)


class TrayActions:
    def __init__(
        self,
        commands: CommandQueue,
        editor: EditorLauncher,
        *,
        notify: Optional[Notifier] = None,
        quit_app: Optional[Callable[[], None]] = None,
    ) -> None:
        self._commands = commands
        self._editor = editor
        self.notify = notify
        self.quit_app = quit_app

    def _notify(self, message: str) -> None:
        if self.notify is not None:
            self.notify(message)

    def edit_groups(self) -> None:
        try:
            self._editor.launch()
        except (RuntimeError, OSError) as exc:
            LOGGER.warning("Cannot open champion groups: %s", exc)
            self._notify(str(exc))

    def backup_config(self) -> None:
        self._commands.put(AgentCommand.BACKUP_CONFIG)

    def restore_config(self) -> None:
        self._commands.put(AgentCommand.RESTORE_CONFIG)

    def quit(self) -> None:
        LOGGER.debug("Quit selected from the tray menu")
        self._commands.put(AgentCommand.SHUTDOWN)
        if self.quit_app is not None:
            self.quit_app()


def build_menu_entries(actions: TrayActions) -> List[MenuEntry]:
    return [
        MenuEntry(EDIT_GROUPS_LABEL, actions.edit_groups),
        MenuEntry(BACKUP_CONFIG_LABEL, actions.backup_config),
        MenuEntry(RESTORE_CONFIG_LABEL, actions.restore_config),
        SEPARATOR,
        MenuEntry(QUIT_LABEL, actions.quit),
    ]
