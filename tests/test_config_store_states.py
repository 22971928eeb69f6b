"""State transitions of ConfigStore against an in-memory filesystem."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

import pytest

from binding_agent.config_store import ConfigState, ConfigStore, LiveKind
from binding_agent.settings_document import GAME_CFG_NAME

ROOT = Path("/games/League of Legends/Config")


class _MemoryFileSystem:
    def __init__(self) -> None:
        self.files: Dict[Path, str] = {}
        self.links: Dict[Path, Path] = {}
        self.fail_symlink = False

    def _follow(self, path: Path) -> Path:
        hops = 0
        while path in self.links:
            path = self.links[path]
            hops += 1
            if hops > 8:
                raise OSError("too many levels of symbolic links")
        return path

    def lexists(self, path: Path) -> bool:
        return path in self.files or path in self.links

    def exists(self, path: Path) -> bool:
        return self._follow(path) in self.files

    def is_symlink(self, path: Path) -> bool:
        return path in self.links

    def readlink(self, path: Path) -> Path:
        return self.links[path]

    def read_text(self, path: Path) -> str:
        target = self._follow(path)
        if target not in self.files:
            raise FileNotFoundError(str(path))
        return self.files[target]

    def write_text(self, path: Path, text: str) -> None:
        self.links.pop(path, None)
        self.files[path] = text

    def copy_file(self, src: Path, dst: Path) -> None:
        self.write_text(dst, self.read_text(src))

    def remove(self, path: Path) -> None:
        if path in self.links:
            del self.links[path]
        elif path in self.files:
            del self.files[path]
        else:
            raise FileNotFoundError(str(path))

    def rename(self, src: Path, dst: Path) -> None:
        if src in self.links:
            self.files.pop(dst, None)
            self.links[dst] = self.links.pop(src)
        else:
            self.links.pop(dst, None)
            self.files[dst] = self.files.pop(src)

    def symlink(self, target: Path, link: Path) -> None:
        if self.fail_symlink:
            raise OSError("symlink not permitted")
        if self.lexists(link):
            raise FileExistsError(str(link))
        self.links[link] = target

    def makedirs(self, path: Path) -> None:
        return None


def _doc(game_cfg: str, keys: str = "baseline") -> str:
    return json.dumps(
        {
            "description": "",
            "files": [
                {"name": "Input.ini", "sections": keys},
                {"name": GAME_CFG_NAME, "sections": game_cfg},
            ],
        }
    )


def _sections(fs: _MemoryFileSystem, path: Path) -> dict:
    payload = json.loads(fs.read_text(path))
    return {entry["name"]: entry["sections"] for entry in payload["files"]}


@pytest.fixture()
def fs() -> _MemoryFileSystem:
    fs = _MemoryFileSystem()
    fs.files[ROOT / "PersistedSettings.json"] = _doc("A")
    return fs


@pytest.fixture()
def store(fs) -> ConfigStore:
    return ConfigStore(ROOT, filesystem=fs)


def test_states_follow_the_documented_transitions(store):
    baseline = store.inspect()
    assert baseline == ConfigState(LiveKind.REGULAR)

    linked = store.load_group_config("aram", expected=baseline)
    assert linked == ConfigState(LiveKind.LINKED, has_backup=True, group="aram")

    relinked = store.load_group_config("ranked", expected=linked)
    assert relinked.group == "ranked"

    assert store.restore(expected=relinked) == baseline


def test_game_cfg_round_trip_through_link(fs, store):
    store.load_group_config("aram")
    fs.files[store.slot_path("aram")] = _doc("B", keys="aram")

    store.restore()

    assert _sections(fs, store.live_path) == {"Input.ini": "baseline", GAME_CFG_NAME: "B"}


def test_target_without_game_cfg_keeps_backup_entry(fs, store):
    store.load_group_config("aram")
    fs.files[store.slot_path("aram")] = json.dumps({"description": "", "files": [{"name": "Input.ini", "sections": "aram"}]})

    store.restore()

    assert _sections(fs, store.live_path) == {"Input.ini": "baseline", GAME_CFG_NAME: "A"}


def test_backup_without_game_cfg_gains_target_entry(fs, store):
    store.load_group_config("aram")
    fs.files[store.backup_path] = json.dumps({"description": "", "files": [{"name": "Input.ini", "sections": "baseline"}]})
    fs.files[store.slot_path("aram")] = _doc("B", keys="aram")

    store.restore()

    assert _sections(fs, store.live_path) == {"Input.ini": "baseline", GAME_CFG_NAME: "B"}


def test_interrupted_link_leaves_recoverable_state(fs, store):
    fs.fail_symlink = True
    with pytest.raises(OSError):
        store.load_group_config("aram")
    assert store.inspect() == ConfigState(LiveKind.MISSING, has_backup=True)

    fs.fail_symlink = False
    state = store.restore()

    assert state == ConfigState(LiveKind.REGULAR)
    assert _sections(fs, store.live_path)[GAME_CFG_NAME] == "A"


def test_relative_link_into_slot_dir_counts_as_ours(fs, store):
    fs.files[store.slot_path("aram")] = _doc("A", keys="aram")
    fs.files[store.backup_path] = _doc("A")
    del fs.files[store.live_path]
    fs.links[store.live_path] = Path(".dark-binding") / "aram.json"

    assert store.inspect() == ConfigState(LiveKind.LINKED, has_backup=True, group="aram")


def test_link_to_groups_file_is_foreign(fs, store):
    del fs.files[store.live_path]
    fs.files[store.groups_path] = "{}"
    fs.links[store.live_path] = store.groups_path

    assert store.inspect().live is LiveKind.FOREIGN_LINK


def test_describe_mentions_group_and_backup():
    assert ConfigState(LiveKind.LINKED, has_backup=True, group="aram").describe() == "linked(aram)+backup"
    assert ConfigState(LiveKind.REGULAR).describe() == "regular"
