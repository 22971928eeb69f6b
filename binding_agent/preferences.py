"""Agent preferences persisted as JSON in the user's home directory."""
from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional

from binding_agent.discovery import DEFAULT_PROCESS_NAMES
from binding_agent.errors import ConfigFormatError

LOGGER = logging.getLogger("DarkBinding.Preferences")

PREFERENCES_FILE = "settings.json"
SETTINGS_ENV_VAR = "DARK_BINDING_SETTINGS"
AGENT_HOME_DIR_NAME = ".dark-binding"
DISCOVERY_INTERVAL_MIN = 1.0
DISCOVERY_INTERVAL_MAX = 3600.0
REQUEST_TIMEOUT_MIN = 0.5
REQUEST_TIMEOUT_MAX = 60.0
LOG_RETENTION_MIN = 1
LOG_RETENTION_MAX = 20


def agent_home() -> Path:
    return Path.home() / AGENT_HOME_DIR_NAME


def resolve_preferences_path(explicit: Optional[str] = None) -> Path:
    if explicit:
        return Path(explicit).expanduser().resolve()
    env_override = os.getenv(SETTINGS_ENV_VAR)
    if env_override:
        return Path(env_override).expanduser().resolve()
    return agent_home() / PREFERENCES_FILE


def _coerce_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        token = value.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
    return default


def _coerce_int(value: Any, default: int, *, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    try:
        numeric = int(value)
    except (TypeError, ValueError):
        numeric = default
    if minimum is not None:
        numeric = max(minimum, numeric)
    if maximum is not None:
        numeric = min(maximum, numeric)
    return numeric


def _coerce_float(value: Any, default: float, *, minimum: Optional[float] = None, maximum: Optional[float] = None) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        numeric = default
    if minimum is not None:
        numeric = max(minimum, numeric)
    if maximum is not None:
        numeric = min(maximum, numeric)
    return numeric


def _coerce_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_str_list(value: Any, default: List[str]) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return list(default)
    items = [str(item).strip() for item in value if str(item).strip()]
    return items or list(default)


@dataclass
class AgentPreferences:
    """User-tunable knobs for discovery, editing, TLS and logging."""

    discovery_interval_seconds: float = 60.0
    client_process_names: List[str] = field(default_factory=lambda: list(DEFAULT_PROCESS_NAMES))
    install_directory_override: Optional[str] = None
    editor_command: Optional[str] = None
    ca_bundle: Optional[str] = None
    request_timeout_seconds: float = 5.0
    log_retention: int = 5
    debug_logging: bool = False
    path: Optional[Path] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], path: Optional[Path] = None) -> "AgentPreferences":
        defaults = cls()
        return cls(
            discovery_interval_seconds=_coerce_float(
                data.get("discovery_interval_seconds"),
                defaults.discovery_interval_seconds,
                minimum=DISCOVERY_INTERVAL_MIN,
                maximum=DISCOVERY_INTERVAL_MAX,
            ),
            client_process_names=_coerce_str_list(data.get("client_process_names"), defaults.client_process_names),
            install_directory_override=_coerce_optional_str(data.get("install_directory_override")),
            editor_command=_coerce_optional_str(data.get("editor_command")),
            ca_bundle=_coerce_optional_str(data.get("ca_bundle")),
            request_timeout_seconds=_coerce_float(
                data.get("request_timeout_seconds"),
                defaults.request_timeout_seconds,
                minimum=REQUEST_TIMEOUT_MIN,
                maximum=REQUEST_TIMEOUT_MAX,
            ),
            log_retention=_coerce_int(
                data.get("log_retention"),
                defaults.log_retention,
                minimum=LOG_RETENTION_MIN,
                maximum=LOG_RETENTION_MAX,
            ),
            debug_logging=_coerce_bool(data.get("debug_logging"), defaults.debug_logging),
            path=path,
        )

    @classmethod
    def load(cls, path: Path) -> "AgentPreferences":
        """Read preferences from ``path``; a missing file yields defaults."""

        try:
            raw = path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            return cls(path=path)
        except UnicodeDecodeError as exc:
            raise ConfigFormatError(f"{path} is not UTF-8 encoded") from exc
        if not raw.strip():
            return cls(path=path)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigFormatError(f"{path} is not valid JSON") from exc
        if not isinstance(data, Mapping):
            raise ConfigFormatError(f"{path} must contain a JSON object at the root")
        LOGGER.debug("Loaded agent preferences from %s", path)
        return cls.from_mapping(data, path)

    def to_mapping(self) -> dict[str, Any]:
        payload = asdict(self)
        payload.pop("path", None)
        return payload

    def save(self) -> None:
        if self.path is None:
            raise ValueError("preferences have no backing path")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self.to_mapping(), indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def resolved_editor_command(self) -> List[str]:
        """Return the argv prefix used to open the groups file."""

        if self.editor_command:
            return self.editor_command.split()
        if sys.platform.startswith("win"):
            return ["notepad.exe"]
        for env_name in ("VISUAL", "EDITOR"):
            value = os.getenv(env_name)
            if value and value.strip():
                return value.split()
        return ["nano"]
