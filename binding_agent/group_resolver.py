"""Champion group definitions and the champion id -> group index.

Group definitions live in a user-editable ``groups.json`` inside the agent's
slot directory. They name champions the way a player would type them; the
client's catalog names them the way the client does. Both sides are reduced to
the same comparison key (case-folded, punctuation stripped) before joining, so
``"Kai'Sa"``, ``"kaisa"`` and ``"KAI SA"`` all land on the same catalog entry.

A malformed groups file never replaces a working index: :func:`load_groups`
raises :class:`ConfigFormatError` and callers keep whatever they had before.
"""
from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from binding_agent.errors import ConfigFormatError

LOGGER = logging.getLogger("DarkBinding.GroupResolver")

GROUPS_FILE_NAME = "groups.json"
DEFAULT_GROUPS_RESOURCE = "default_groups.json"
_RESERVED_GROUP_NAMES = {"groups"}
_PATH_SEPARATORS = ("/", "\\")

GroupDefinition = Dict[str, List[str]]
ChampionCatalog = Dict[str, int]
ChampionGroupIndex = Dict[int, str]


def normalise_champion_name(name: str) -> str:
    """Return the comparison key for a champion name."""

    return "".join(ch for ch in name.casefold() if ch.isalnum())


def validate_group_name(name: str) -> str:
    """Return ``name`` stripped, or raise when it cannot be used as a slot file stem."""

    if not isinstance(name, str):
        raise ConfigFormatError(f"group names must be strings, got {type(name).__name__}")
    text = name.strip()
    if not text:
        raise ConfigFormatError("group names must not be empty")
    if any(sep in text for sep in _PATH_SEPARATORS):
        raise ConfigFormatError(f"group name {text!r} must not contain path separators")
    if text.startswith("."):
        raise ConfigFormatError(f"group name {text!r} must not start with '.'")
    if text.casefold() in _RESERVED_GROUP_NAMES:
        raise ConfigFormatError(f"group name {text!r} is reserved")
    return text


def default_groups_text() -> str:
    """Return the bundled default groups file contents."""

    return resources.files("binding_agent").joinpath(DEFAULT_GROUPS_RESOURCE).read_text(encoding="utf-8")


def ensure_groups_file(path: Path) -> bool:
    """Write the bundled default to ``path`` if nothing is there; return True when written."""

    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(default_groups_text(), encoding="utf-8")
    LOGGER.info("Created default champion groups at %s", path)
    return True


def _read_json(path: Path) -> Any:
    # utf-8-sig accepts the BOM some Windows editors prepend.
    try:
        raw = path.read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        LOGGER.warning("%s is not UTF-8 encoded: %s", path, exc)
        raise ConfigFormatError(f"{path} is not UTF-8 encoded; save it as UTF-8") from exc
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Invalid JSON in %s: %s", path, exc)
        raise ConfigFormatError(f"{path} is not valid JSON") from exc


def parse_groups(data: Any, source: str = "<groups>") -> GroupDefinition:
    """Validate a decoded groups document and return the group definition."""

    if not isinstance(data, Mapping):
        raise ConfigFormatError(f"{source} must contain a JSON object at the root")
    groups: GroupDefinition = {}
    for raw_name, champions in data.items():
        # Leading underscore keys carry comments/metadata.
        if isinstance(raw_name, str) and raw_name.startswith("_"):
            continue
        name = validate_group_name(raw_name)
        if name in groups:
            raise ConfigFormatError(f"{source}: group {name!r} is defined more than once")
        if not isinstance(champions, list):
            raise ConfigFormatError(f"{source}: group {name!r} must map to a list of champion names")
        entries: List[str] = []
        for champion in champions:
            if not isinstance(champion, str):
                raise ConfigFormatError(f"{source}: group {name!r} contains a non-string entry {champion!r}")
            if champion.strip():
                entries.append(champion.strip())
        groups[name] = entries
    return groups


def load_groups(path: Path) -> GroupDefinition:
    """Read the groups file, materialising the bundled default once if it is missing."""

    try:
        data = _read_json(path)
    except FileNotFoundError:
        ensure_groups_file(path)
        data = _read_json(path)
    return parse_groups(data, str(path))


def catalog_from_inventory(entries: Iterable[Any]) -> ChampionCatalog:
    """Build a catalog from the client's ``champions-minimal`` payload.

    Every champion is indexed under its display name and, when present, its
    internal alias (``MonkeyKing`` for Wukong). Placeholder entries with a
    negative id are skipped.
    """

    catalog: ChampionCatalog = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        champion_id = entry.get("id")
        if isinstance(champion_id, bool) or not isinstance(champion_id, int) or champion_id < 0:
            continue
        for field in ("name", "alias"):
            value = entry.get(field)
            if not isinstance(value, str):
                continue
            key = normalise_champion_name(value)
            if key:
                catalog.setdefault(key, champion_id)
    return catalog


def build_index(catalog: Mapping[str, int], groups: Mapping[str, Iterable[str]]) -> ChampionGroupIndex:
    """Join group definitions with the catalog.

    Names without a catalog match are dropped; the catalog can lag behind a
    client patch. When a champion appears in more than one group the first
    group wins.
    """

    index: ChampionGroupIndex = {}
    for group_name, champions in groups.items():
        for champion in champions:
            champion_id = catalog.get(normalise_champion_name(champion))
            if champion_id is None:
                LOGGER.debug("Group %s: no catalog entry for %r", group_name, champion)
                continue
            existing = index.get(champion_id)
            if existing is not None:
                if existing != group_name:
                    LOGGER.info(
                        "Champion %r is listed in both %s and %s; keeping %s",
                        champion,
                        existing,
                        group_name,
                        existing,
                    )
                continue
            index[champion_id] = group_name
    return index


def resolve(index: Mapping[int, str], champion_id: int) -> Optional[str]:
    return index.get(champion_id)
