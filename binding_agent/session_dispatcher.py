"""Route champion-select updates and local commands to the config store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from binding_agent.commands import AgentCommand
from binding_agent.config_store import ConfigState, ConfigStore
from binding_agent.errors import DarkBindingError
from binding_agent.event_decoder import Frame, SessionUpdate, TimerPhase, decode_session_update
from binding_agent.group_resolver import build_index, load_groups, resolve

LOGGER = logging.getLogger("DarkBinding.Session")


@dataclass(frozen=True)
class SessionContext:
    """Everything the dispatcher knows about the current client session.

    Instances are never mutated; reloads build a new context and swap it in.
    """

    local_summoner_id: Optional[str]
    catalog: Mapping[str, int] = field(default_factory=dict)
    groups: Mapping[str, Sequence[str]] = field(default_factory=dict)
    index: Mapping[int, str] = field(default_factory=dict)
    region: Optional[str] = None

    @classmethod
    def build(
        cls,
        local_summoner_id: Optional[str],
        catalog: Mapping[str, int],
        groups: Mapping[str, Sequence[str]],
        region: Optional[str] = None,
    ) -> "SessionContext":
        return cls(
            local_summoner_id=local_summoner_id,
            catalog=dict(catalog),
            groups=dict(groups),
            index=build_index(catalog, groups),
            region=region,
        )

    def with_groups(self, groups: Mapping[str, Sequence[str]]) -> "SessionContext":
        return replace(self, groups=dict(groups), index=build_index(self.catalog, groups))

    def with_catalog(self, catalog: Mapping[str, int]) -> "SessionContext":
        return replace(self, catalog=dict(catalog), index=build_index(catalog, self.groups))


class SessionDispatcher:
    """Single consumer of decoded session updates and local commands.

    All store mutations happen through this object on the session loop's
    thread, so they run one after another. Store failures are logged and
    swallowed; the session keeps running.
    """

    def __init__(
        self,
        store: ConfigStore,
        context: SessionContext,
        groups_path: Optional[Path] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._context = context
        self._groups_path = groups_path or store.groups_path
        self._logger = logger or LOGGER
        self.last_state: Optional[ConfigState] = None

    @property
    def context(self) -> SessionContext:
        return self._context

    # Remote events ------------------------------------------------------

    def handle_frame(self, frame: Frame) -> Optional[str]:
        update = decode_session_update(frame)
        if update is None:
            return None
        return self.handle_session_update(update)

    def handle_session_update(self, update: SessionUpdate) -> Optional[str]:
        """Link the group for the local player's locked champion; return the group name."""

        if update.phase is not TimerPhase.FINALIZATION:
            return None
        context = self._context
        if context.local_summoner_id is None:
            self._logger.debug("Finalization seen before the local summoner is known; skipping")
            return None
        member = update.member(context.local_summoner_id)
        if member is None:
            return None
        group = resolve(context.index, member.champion_id)
        if group is None:
            self._logger.debug("Champion %s is not in any group", member.champion_id)
            return None
        self._logger.info("Champion %s locked in; loading group %s", member.champion_id, group)
        state = self._run_store_operation(f"load group {group}", lambda: self._store.load_group_config(group))
        return group if state is not None else None

    # Local commands -----------------------------------------------------

    def handle_command(self, command: AgentCommand) -> bool:
        """Apply ``command``; return False when the session loop should stop."""

        if command is AgentCommand.SHUTDOWN:
            self._logger.info("Shutdown requested; leaving live settings as they are")
            return False
        if command is AgentCommand.BACKUP_CONFIG:
            self._run_store_operation("backup", self._store.backup)
        elif command is AgentCommand.RESTORE_CONFIG:
            self._run_store_operation("restore", self._store.restore)
        elif command is AgentCommand.RELOAD_GROUPS:
            self.reload_groups()
        return True

    def reload_groups(self) -> bool:
        """Re-read the groups file; keep the current index when it is malformed."""

        try:
            groups = load_groups(self._groups_path)
        except (OSError, DarkBindingError) as exc:
            self._logger.warning("Keeping previous champion groups; reload failed: %s", exc)
            self._logger.debug("Group reload failure detail", exc_info=exc)
            return False
        self._context = self._context.with_groups(groups)
        self._logger.info(
            "Reloaded %d champion groups (%d champions mapped)",
            len(groups),
            len(self._context.index),
        )
        return True

    # Helpers ------------------------------------------------------------

    def _run_store_operation(self, label: str, operation: Callable[[], ConfigState]) -> Optional[ConfigState]:
        try:
            state = operation()
        except (OSError, DarkBindingError) as exc:
            self._logger.debug("Config %s failed: %s", label, exc, exc_info=exc)
            return None
        self.last_state = state
        self._logger.debug("Config %s finished; live settings are %s", label, state.describe())
        return state
