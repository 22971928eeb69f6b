from __future__ import annotations

import json
import logging
import os
from pathlib import Path

import pytest

from binding_agent.commands import AgentCommand
from binding_agent.config_store import ConfigState, ConfigStore, LiveKind
from binding_agent.errors import ConfigStoreError
from binding_agent.event_decoder import CHAMP_SELECT_SESSION_URI, SessionUpdate, TeamMember, TimerPhase
from binding_agent.session_dispatcher import SessionContext, SessionDispatcher


class _RecordingStore:
    def __init__(self, root: Path, fail: bool = False) -> None:
        self.groups_path = root / ".dark-binding" / "groups.json"
        self.calls = []
        self.fail = fail

    def _record(self, *call):
        self.calls.append(call)
        if self.fail:
            raise ConfigStoreError("disk on fire")
        return ConfigState(LiveKind.REGULAR)

    def load_group_config(self, group):
        return self._record("load_group_config", group)

    def backup(self):
        return self._record("backup")

    def restore(self):
        return self._record("restore")


def _frame(phase: str, summoner_id=42, champion_id=22) -> str:
    data = {"myTeam": [{"summonerId": summoner_id, "championId": champion_id}], "timer": {"phase": phase}}
    return json.dumps([8, "OnJsonApiEvent", {"eventType": "Update", "uri": CHAMP_SELECT_SESSION_URI, "data": data}])


def _context(local="42") -> SessionContext:
    return SessionContext.build(local, {"ashe": 22, "lux": 99}, {"aram": ["Ashe"]}, region="EUW1")


def test_finalization_loads_group_exactly_once(tmp_path):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context())

    assert dispatcher.handle_frame(_frame("FINALIZATION")) == "aram"
    assert store.calls == [("load_group_config", "aram")]


def test_ban_pick_never_swaps(tmp_path):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context())

    assert dispatcher.handle_frame(_frame("BAN_PICK")) is None
    assert store.calls == []


@pytest.mark.parametrize(
    "update",
    [
        SessionUpdate((TeamMember("7", 22),), TimerPhase.FINALIZATION),
        SessionUpdate((TeamMember("42", 99),), TimerPhase.FINALIZATION),
        SessionUpdate((), TimerPhase.FINALIZATION),
    ],
)
def test_no_swap_without_local_member_or_group(tmp_path, update):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context())
    assert dispatcher.handle_session_update(update) is None
    assert store.calls == []


def test_unknown_local_summoner_skips(tmp_path):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context(local=None))
    assert dispatcher.handle_frame(_frame("FINALIZATION")) is None
    assert store.calls == []


def test_unknown_topic_does_nothing(tmp_path):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context())
    assert dispatcher.handle_frame(json.dumps([8, "OtherTopic", [1, 2, 3]])) is None
    assert store.calls == []


def test_store_failures_are_logged_not_raised(tmp_path, caplog):
    store = _RecordingStore(tmp_path, fail=True)
    dispatcher = SessionDispatcher(store, _context())

    with caplog.at_level(logging.DEBUG, logger="DarkBinding.Session"):
        assert dispatcher.handle_frame(_frame("FINALIZATION")) is None
        assert dispatcher.handle_command(AgentCommand.BACKUP_CONFIG) is True

    assert "disk on fire" in caplog.text
    assert dispatcher.last_state is None


def test_commands_route_to_store(tmp_path):
    store = _RecordingStore(tmp_path)
    dispatcher = SessionDispatcher(store, _context())

    assert dispatcher.handle_command(AgentCommand.BACKUP_CONFIG) is True
    assert dispatcher.handle_command(AgentCommand.RESTORE_CONFIG) is True
    assert dispatcher.handle_command(AgentCommand.SHUTDOWN) is False
    assert store.calls == [("backup",), ("restore",)]
    assert dispatcher.last_state == ConfigState(LiveKind.REGULAR)


def test_reload_swaps_whole_context(tmp_path):
    store = _RecordingStore(tmp_path)
    store.groups_path.parent.mkdir(parents=True)
    store.groups_path.write_text(json.dumps({"mages": ["Lux"]}), encoding="utf-8")
    original = _context()
    dispatcher = SessionDispatcher(store, original)

    assert dispatcher.handle_command(AgentCommand.RELOAD_GROUPS) is True

    assert dispatcher.context is not original
    assert dispatcher.context.index == {99: "mages"}
    assert dispatcher.context.region == "EUW1"
    assert original.index == {22: "aram"}


def test_malformed_reload_keeps_previous_index(tmp_path):
    store = _RecordingStore(tmp_path)
    store.groups_path.parent.mkdir(parents=True)
    store.groups_path.write_text("{oops", encoding="utf-8")
    original = _context()
    dispatcher = SessionDispatcher(store, original)

    assert dispatcher.reload_groups() is False
    assert dispatcher.context is original
    assert dispatcher.handle_frame(_frame("FINALIZATION")) == "aram"


def test_non_utf8_groups_file_keeps_previous_index(tmp_path):
    store = _RecordingStore(tmp_path)
    store.groups_path.parent.mkdir(parents=True)
    store.groups_path.write_bytes("{\"adc\": [\"Kai\u2019Sa\"]}".encode("cp1252"))
    original = _context()
    dispatcher = SessionDispatcher(store, original)

    assert dispatcher.handle_command(AgentCommand.RELOAD_GROUPS) is True
    assert dispatcher.context is original


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_restore_with_non_utf8_slot_is_logged_not_raised(tmp_path, caplog):
    store = ConfigStore(tmp_path / "Config")
    store.config_root.mkdir(parents=True)
    store.live_path.write_text(json.dumps({"description": "", "files": []}), encoding="utf-8")
    store.load_group_config("aram")
    store.slot_path("aram").write_bytes(b'{"description": "caf\xe9", "files": []}')
    dispatcher = SessionDispatcher(store, _context())

    with caplog.at_level(logging.DEBUG, logger="DarkBinding"):
        assert dispatcher.handle_command(AgentCommand.RESTORE_CONFIG) is True

    assert store.live_path.is_symlink()
    assert any(record.exc_info for record in caplog.records)


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unavailable")
def test_scenario_against_real_store(tmp_path):
    store = ConfigStore(tmp_path / "Config")
    store.config_root.mkdir(parents=True)
    store.live_path.write_text(json.dumps({"description": "", "files": []}), encoding="utf-8")
    dispatcher = SessionDispatcher(store, SessionContext.build("42", {"ashe": 22}, {"aram": ["Ashe"]}))

    assert dispatcher.handle_frame(_frame("FINALIZATION")) == "aram"

    assert store.live_path.is_symlink()
    assert Path(os.readlink(store.live_path)) == store.config_root / ".dark-binding" / "aram.json"
    assert store.backup_path.is_file()
    assert dispatcher.last_state == ConfigState(LiveKind.LINKED, has_backup=True, group="aram")
