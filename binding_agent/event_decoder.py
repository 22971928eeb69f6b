"""Decode the client's push-event frames into champion-select updates.

Frames arrive as JSON arrays ``[message_type, topic, body]``. Only the
``OnJsonApiEvent`` topic is subscribed to and, within it, only ``Update``
events for the champion-select session resource matter. Anything else,
including frames that fail to parse, is uninteresting rather than an error:
the decoder returns ``None`` and the caller moves on.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple, Union

LOGGER = logging.getLogger("DarkBinding.EventDecoder")

JSON_API_EVENT_TOPIC = "OnJsonApiEvent"
SUBSCRIBE_MESSAGE = json.dumps([5, JSON_API_EVENT_TOPIC], separators=(",", ":"))
CHAMP_SELECT_SESSION_URI = "/lol-champ-select/v1/session"

Frame = Union[str, bytes, bytearray, memoryview]


class EventType(enum.Enum):
    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"


class TimerPhase(enum.Enum):
    BAN_PICK = "BAN_PICK"
    FINALIZATION = "FINALIZATION"
    OTHER = "OTHER"

    @classmethod
    def from_wire(cls, value: str) -> "TimerPhase":
        # Unknown phases stay non-fatal so protocol additions do not break decoding.
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class ApiEvent:
    event_type: EventType
    uri: str
    data: Any


@dataclass(frozen=True)
class TeamMember:
    summoner_id: str
    champion_id: int


@dataclass(frozen=True)
class SessionUpdate:
    my_team: Tuple[TeamMember, ...]
    phase: TimerPhase

    def member(self, summoner_id: str) -> Optional[TeamMember]:
        for member in self.my_team:
            if member.summoner_id == summoner_id:
                return member
        return None


def coerce_summoner_id(value: Any) -> Optional[str]:
    """The client sends ids as numbers or strings; compare them as strings."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return None


def _load_frame(frame: Any) -> Any:
    if isinstance(frame, (bytes, bytearray, memoryview)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(frame, str):
        return None
    try:
        return json.loads(frame)
    except json.JSONDecodeError:
        return None


def _event_fields(body: Any) -> Optional[Tuple[Any, Any, Any]]:
    if isinstance(body, Mapping):
        if "eventType" not in body or "uri" not in body:
            return None
        return body.get("eventType"), body.get("uri"), body.get("data")
    if isinstance(body, Sequence) and not isinstance(body, str) and len(body) == 3:
        return body[0], body[1], body[2]
    return None


def parse_api_event(frame: Any) -> Optional[ApiEvent]:
    """Return the ``OnJsonApiEvent`` body carried by ``frame``, or ``None``."""

    message = _load_frame(frame)
    if not isinstance(message, list) or len(message) != 3:
        return None
    message_type, topic, body = message
    if isinstance(message_type, bool) or not isinstance(message_type, int):
        return None
    if topic != JSON_API_EVENT_TOPIC:
        return None
    fields = _event_fields(body)
    if fields is None:
        return None
    raw_type, uri, data = fields
    if not isinstance(uri, str):
        return None
    try:
        event_type = EventType(raw_type)
    except ValueError:
        return None
    return ApiEvent(event_type, uri, data)


def parse_session_update(data: Any) -> Optional[SessionUpdate]:
    """Build a :class:`SessionUpdate` from the champ-select session resource."""

    if not isinstance(data, Mapping):
        return None
    raw_team = data.get("myTeam")
    timer = data.get("timer")
    if not isinstance(raw_team, list) or not isinstance(timer, Mapping):
        return None
    phase_value = timer.get("phase")
    if not isinstance(phase_value, str):
        return None
    members = []
    for entry in raw_team:
        if not isinstance(entry, Mapping):
            return None
        summoner_id = coerce_summoner_id(entry.get("summonerId"))
        champion_id = entry.get("championId")
        if summoner_id is None:
            return None
        if isinstance(champion_id, bool) or not isinstance(champion_id, int) or champion_id < 0:
            return None
        members.append(TeamMember(summoner_id, champion_id))
    return SessionUpdate(tuple(members), TimerPhase.from_wire(phase_value))


def decode_session_update(frame: Frame) -> Optional[SessionUpdate]:
    """Return the champion-select update carried by ``frame``, if there is one."""

    event = parse_api_event(frame)
    if event is None:
        return None
    if event.uri != CHAMP_SELECT_SESSION_URI or event.event_type is not EventType.UPDATE:
        return None
    update = parse_session_update(event.data)
    if update is None:
        LOGGER.debug("Ignoring champ select update with unexpected shape")
    return update
