"""Backup / restore / link choreography for the live settings file.

The client reads ``<config_root>/PersistedSettings.json``. While a group is
active that path is a symlink into ``<config_root>/.dark-binding/`` and the
player's own settings sit in ``PersistedSettings.bak`` next to it. Every step
below is ordered so that an interruption at any point leaves a state that the
next :meth:`ConfigStore.restore` can reconcile:

* backup present, live missing: the swap died between unlink and link, so the
  backup is copied back.
* our link present, backup missing: the link target is the only copy left and
  becomes the live file.
* our link present, backup present: the normal case; the link target's
  ``Game.cfg`` entry is spliced into the backup, which then replaces the link.

The state is never cached. :meth:`ConfigStore.inspect` derives it from disk
and each mutating call returns the state it left behind.
"""
from __future__ import annotations

import enum
import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from binding_agent.errors import ConfigFormatError, ConfigStateError, ConfigStoreError
from binding_agent.group_resolver import GROUPS_FILE_NAME, validate_group_name
from binding_agent.settings_document import (
    GAME_CFG_NAME,
    PersistedSettingsDocument,
    dump_settings_text,
    parse_settings_text,
)

LOGGER = logging.getLogger("DarkBinding.ConfigStore")

LIVE_SETTINGS_NAME = "PersistedSettings.json"
BACKUP_SETTINGS_NAME = "PersistedSettings.bak"
SLOT_DIR_NAME = ".dark-binding"
SLOT_SUFFIX = ".json"


class FileSystem(Protocol):
    """The handful of filesystem primitives the store needs."""

    def lexists(self, path: Path) -> bool: ...
    def exists(self, path: Path) -> bool: ...
    def is_symlink(self, path: Path) -> bool: ...
    def readlink(self, path: Path) -> Path: ...
    def read_text(self, path: Path) -> str: ...
    def write_text(self, path: Path, text: str) -> None: ...
    def copy_file(self, src: Path, dst: Path) -> None: ...
    def remove(self, path: Path) -> None: ...
    def rename(self, src: Path, dst: Path) -> None: ...
    def symlink(self, target: Path, link: Path) -> None: ...
    def makedirs(self, path: Path) -> None: ...


class LocalFileSystem:
    """:class:`FileSystem` backed by the real disk."""

    def lexists(self, path: Path) -> bool:
        return os.path.lexists(path)

    def exists(self, path: Path) -> bool:
        return path.exists()

    def is_symlink(self, path: Path) -> bool:
        return path.is_symlink()

    def readlink(self, path: Path) -> Path:
        return Path(os.readlink(path))

    def read_text(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    def write_text(self, path: Path, text: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)

    def copy_file(self, src: Path, dst: Path) -> None:
        # Replace dst rather than writing through it in case it is a link.
        tmp_path = dst.with_name(dst.name + ".tmp")
        shutil.copyfile(src, tmp_path)
        os.replace(tmp_path, dst)

    def remove(self, path: Path) -> None:
        os.unlink(path)

    def rename(self, src: Path, dst: Path) -> None:
        os.replace(src, dst)

    def symlink(self, target: Path, link: Path) -> None:
        os.symlink(target, link)

    def makedirs(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)


class LiveKind(enum.Enum):
    REGULAR = "regular"
    LINKED = "linked"
    FOREIGN_LINK = "foreign_link"
    DANGLING_LINK = "dangling_link"
    MISSING = "missing"


@dataclass(frozen=True)
class ConfigState:
    """What the live settings path currently is, as observed on disk.

    ``group`` is set for links that point into the slot directory
    (``LINKED`` and ``DANGLING_LINK``).
    """

    live: LiveKind
    has_backup: bool = False
    group: Optional[str] = None

    @property
    def baseline(self) -> bool:
        return self.live is LiveKind.REGULAR

    @property
    def linked(self) -> bool:
        return self.live is LiveKind.LINKED

    def describe(self) -> str:
        text = self.live.value
        if self.group is not None:
            text += f"({self.group})"
        if self.has_backup:
            text += "+backup"
        return text


def _normalise(path: Path) -> Path:
    return Path(os.path.normpath(str(path)))


class ConfigStore:
    """Owns the live, backup and group slot files under one config root."""

    def __init__(
        self,
        config_root: Path,
        filesystem: Optional[FileSystem] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._root = _normalise(Path(os.path.abspath(config_root)))
        self._fs: FileSystem = filesystem or LocalFileSystem()
        self._logger = logger or LOGGER

    # Paths --------------------------------------------------------------

    @property
    def config_root(self) -> Path:
        return self._root

    @property
    def live_path(self) -> Path:
        return self._root / LIVE_SETTINGS_NAME

    @property
    def backup_path(self) -> Path:
        return self._root / BACKUP_SETTINGS_NAME

    @property
    def slot_dir(self) -> Path:
        return self._root / SLOT_DIR_NAME

    @property
    def groups_path(self) -> Path:
        return self.slot_dir / GROUPS_FILE_NAME

    def slot_path(self, group: str) -> Path:
        try:
            name = validate_group_name(group)
        except ConfigFormatError as exc:
            raise ConfigStoreError(f"cannot store settings for group {group!r}") from exc
        return self.slot_dir / f"{name}{SLOT_SUFFIX}"

    # State --------------------------------------------------------------

    def inspect(self) -> ConfigState:
        fs = self._fs
        has_backup = fs.lexists(self.backup_path)
        if fs.is_symlink(self.live_path):
            target = self._link_target()
            group = self._group_for_target(target)
            if group is None:
                return ConfigState(LiveKind.FOREIGN_LINK, has_backup)
            if not fs.exists(target):
                return ConfigState(LiveKind.DANGLING_LINK, has_backup, group)
            return ConfigState(LiveKind.LINKED, has_backup, group)
        if fs.lexists(self.live_path):
            return ConfigState(LiveKind.REGULAR, has_backup)
        return ConfigState(LiveKind.MISSING, has_backup)

    def _require(self, expected: Optional[ConfigState]) -> ConfigState:
        actual = self.inspect()
        if expected is not None and expected != actual:
            raise ConfigStateError(f"expected live settings to be {expected.describe()}, found {actual.describe()}")
        return actual

    def _link_target(self) -> Path:
        raw = self._fs.readlink(self.live_path)
        if not raw.is_absolute():
            raw = self.live_path.parent / raw
        return _normalise(raw)

    def _group_for_target(self, target: Path) -> Optional[str]:
        if target.parent != self.slot_dir or target.suffix != SLOT_SUFFIX:
            return None
        if target.name == GROUPS_FILE_NAME:
            return None
        return target.stem

    # Operations ---------------------------------------------------------

    def backup(self, expected: Optional[ConfigState] = None) -> ConfigState:
        """Copy the live file to the backup path unless the live path is one of our links."""

        state = self._require(expected)
        if state.live in (LiveKind.REGULAR, LiveKind.FOREIGN_LINK) and self._fs.exists(self.live_path):
            self._fs.copy_file(self.live_path, self.backup_path)
            self._logger.debug("Backed up %s to %s", self.live_path, self.backup_path)
        return self.inspect()

    def restore(self, expected: Optional[ConfigState] = None) -> ConfigState:
        """Return the live path to a regular file holding the player's baseline.

        Non-keybind settings changed while a group was active survive: the
        link target's ``Game.cfg`` entry replaces the backup's before the
        backup becomes the live file again.
        """

        fs = self._fs
        state = self._require(expected)

        if state.has_backup and state.live is LiveKind.MISSING:
            self._logger.info("Recovering %s from backup left by an interrupted swap", self.live_path)
            fs.copy_file(self.backup_path, self.live_path)
            fs.remove(self.backup_path)
            return self.inspect()

        if state.live in (LiveKind.REGULAR, LiveKind.MISSING, LiveKind.FOREIGN_LINK):
            return state

        if state.live is LiveKind.DANGLING_LINK:
            if not state.has_backup:
                raise ConfigStoreError(
                    f"{self.live_path} points at missing group file for {state.group!r} and no backup exists"
                )
            self._logger.warning("Group file for %s is gone; restoring backup without merging", state.group)
            fs.remove(self.live_path)
            fs.rename(self.backup_path, self.live_path)
            return self.inspect()

        target = self._link_target()
        if not state.has_backup:
            self._logger.warning("No backup found while linked to %s; keeping the group settings as baseline", state.group)
            fs.remove(self.live_path)
            fs.copy_file(target, self.live_path)
            return self.inspect()

        current = self._read_document(target)
        baseline = self._read_document(self.backup_path)
        merged = self._splice_game_cfg(baseline, current, str(target))
        fs.write_text(self.backup_path, dump_settings_text(merged))
        fs.remove(self.live_path)
        fs.rename(self.backup_path, self.live_path)
        self._logger.info("Restored baseline settings (was linked to %s)", state.group)
        return self.inspect()

    def load_group_config(self, group: str, expected: Optional[ConfigState] = None) -> ConfigState:
        """Point the live path at ``group``'s slot, seeding the slot on first use."""

        fs = self._fs
        slot = self.slot_path(group)
        state = self.restore(expected)

        if not fs.exists(slot):
            if not fs.exists(self.live_path):
                raise ConfigStoreError(f"no live settings to seed group {group!r} from")
            fs.makedirs(slot.parent)
            fs.copy_file(self.live_path, slot)
            self._logger.info("Created settings slot for group %s at %s", group, slot)
        elif fs.exists(self.live_path):
            self._refresh_slot(slot)

        state = self.backup(state)
        if fs.lexists(self.live_path):
            fs.remove(self.live_path)
        fs.symlink(slot, self.live_path)
        self._logger.info("Linked %s to group %s", self.live_path, group)
        return self.inspect()

    # Helpers ------------------------------------------------------------

    def _read_document(self, path: Path) -> PersistedSettingsDocument:
        try:
            text = self._fs.read_text(path)
        except UnicodeDecodeError as exc:
            raise ConfigFormatError(f"{path} is not UTF-8 encoded") from exc
        return parse_settings_text(text, str(path))

    def _splice_game_cfg(
        self,
        target: PersistedSettingsDocument,
        source: PersistedSettingsDocument,
        source_label: str,
    ) -> PersistedSettingsDocument:
        entry = source.game_cfg
        if entry is None:
            self._logger.warning("%s has no %s entry; keeping the existing one", source_label, GAME_CFG_NAME)
            return target
        return target.with_file(entry)

    def _refresh_slot(self, slot: Path) -> None:
        live = self._read_document(self.live_path)
        stored = self._read_document(slot)
        merged = self._splice_game_cfg(stored, live, str(self.live_path))
        if merged != stored:
            self._fs.write_text(slot, dump_settings_text(merged))
