"""Locate the running game client and pull its API credentials off the command line."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import psutil

from binding_agent.errors import ClientNotFoundError
from binding_agent.lcu_api import Credentials

LOGGER = logging.getLogger("DarkBinding.Discovery")

DEFAULT_PROCESS_NAMES = ("LeagueClientUx.exe", "LeagueClientUx")
CONFIG_DIR_NAME = "Config"

_FLAG_PATTERNS = {
    "app-pid": re.compile(r'--app-pid=(\d+)'),
    "app-port": re.compile(r'--app-port=(\d+)'),
    "remoting-auth-token": re.compile(r'--remoting-auth-token=([^\s"]+)'),
    "install-directory": re.compile(r'--install-directory=([^"]+?)(?:"|\s--|$)'),
}


@dataclass(frozen=True)
class DiscoveredClient:
    credentials: Credentials
    install_directory: Path

    @property
    def config_root(self) -> Path:
        return self.install_directory / CONFIG_DIR_NAME


def _flag_value(args: Sequence[str], flag: str) -> Optional[str]:
    prefix = f"--{flag}="
    for arg in args:
        token = arg.strip().strip('"')
        if token.startswith(prefix):
            value = token[len(prefix):].strip('"')
            if value:
                return value
    joined = " ".join(args)
    match = _FLAG_PATTERNS[flag].search(joined)
    if match:
        return match.group(1).strip()
    return None


def parse_credentials(command_line: Union[str, Sequence[str]]) -> DiscoveredClient:
    """Extract credentials and install directory from the client's arguments.

    Accepts an argv list (as psutil reports it) or the single quoted string
    some platforms return.
    """

    args = [command_line] if isinstance(command_line, str) else list(command_line)
    values = {}
    for flag in _FLAG_PATTERNS:
        value = _flag_value(args, flag)
        if value is None:
            raise ClientNotFoundError(f"couldn't find --{flag} on the client command line")
        values[flag] = value
    try:
        pid = int(values["app-pid"])
    except ValueError as exc:
        raise ClientNotFoundError("couldn't parse --app-pid") from exc
    credentials = Credentials(pid=pid, port=values["app-port"], token=values["remoting-auth-token"])
    install_directory = Path(values["install-directory"])
    LOGGER.debug(
        "Obtained credentials: pid=%s port=%s install_directory=%s",
        credentials.pid,
        credentials.port,
        install_directory,
    )
    return DiscoveredClient(credentials, install_directory)


def find_client(process_names: Iterable[str] = DEFAULT_PROCESS_NAMES) -> DiscoveredClient:
    """Return the first running client process with usable credentials."""

    wanted = {name.lower() for name in process_names}
    last_error: Optional[ClientNotFoundError] = None
    for proc in psutil.process_iter(["name", "cmdline"]):
        name = (proc.info.get("name") or "").lower()
        if name not in wanted:
            continue
        cmdline = proc.info.get("cmdline") or []
        if not cmdline:
            continue
        try:
            return parse_credentials(cmdline)
        except ClientNotFoundError as exc:
            last_error = exc
    if last_error is not None:
        raise ClientNotFoundError("client process found but its credentials are incomplete") from last_error
    raise ClientNotFoundError("client process is not running")
