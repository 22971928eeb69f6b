"""Model for the client's ``PersistedSettings.json`` document."""
from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from binding_agent.errors import ConfigFormatError

GAME_CFG_NAME = "Game.cfg"


@dataclass(frozen=True)
class SettingsFile:
    """One named entry of the document; ``sections`` is carried, never interpreted."""

    name: str
    sections: Any = None

    def to_payload(self) -> Dict[str, Any]:
        return {"name": self.name, "sections": self.sections}


@dataclass(frozen=True)
class PersistedSettingsDocument:
    description: str
    files: Tuple[SettingsFile, ...]
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any, source: str = "<settings>") -> "PersistedSettingsDocument":
        if not isinstance(payload, Mapping):
            raise ConfigFormatError(f"{source} must contain a JSON object at the root")
        raw_files = payload.get("files")
        if not isinstance(raw_files, list):
            raise ConfigFormatError(f"{source} is missing the 'files' list")
        files = []
        for position, entry in enumerate(raw_files):
            if not isinstance(entry, Mapping) or not isinstance(entry.get("name"), str):
                raise ConfigFormatError(f"{source}: files[{position}] must be an object with a string 'name'")
            files.append(SettingsFile(entry["name"], entry.get("sections")))
        description = payload.get("description", "")
        if not isinstance(description, str):
            description = str(description)
        extra = {key: value for key, value in payload.items() if key not in {"description", "files"}}
        return cls(description=description, files=tuple(files), extra=extra)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"description": self.description}
        payload["files"] = [entry.to_payload() for entry in self.files]
        payload.update(self.extra)
        return payload

    def find(self, name: str) -> Optional[SettingsFile]:
        for entry in self.files:
            if entry.name == name:
                return entry
        return None

    @property
    def game_cfg(self) -> Optional[SettingsFile]:
        return self.find(GAME_CFG_NAME)

    def with_file(self, replacement: SettingsFile) -> "PersistedSettingsDocument":
        """Return a copy where the first entry named like ``replacement`` is swapped out.

        The replacement is appended when no entry carries that name.
        """

        files = list(self.files)
        for position, entry in enumerate(files):
            if entry.name == replacement.name:
                files[position] = replacement
                break
        else:
            files.append(replacement)
        return replace(self, files=tuple(files))


def parse_settings_text(text: str, source: str = "<settings>") -> PersistedSettingsDocument:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigFormatError(f"{source} is not valid JSON") from exc
    return PersistedSettingsDocument.from_payload(payload, source)


def dump_settings_text(document: PersistedSettingsDocument) -> str:
    return json.dumps(document.to_payload(), indent=2) + "\n"
