"""Process-level loop: find the client, run a session, wait, repeat."""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional

from binding_agent.commands import AgentCommand, CommandQueue
from binding_agent.config_store import ConfigStore
from binding_agent.discovery import DiscoveredClient, find_client
from binding_agent.errors import (
    AuthenticationError,
    ClientNotFoundError,
    DarkBindingError,
    SessionConnectionError,
)
from binding_agent.group_resolver import GroupDefinition, load_groups
from binding_agent.lcu_api import LcuApi
from binding_agent.preferences import AgentPreferences
from binding_agent.session_dispatcher import SessionContext, SessionDispatcher
from binding_agent.session_reactor import SessionReactor, run_event_channel

LOGGER = logging.getLogger("DarkBinding.Runtime")

Discoverer = Callable[..., DiscoveredClient]
ChannelRunner = Callable[..., None]


class AgentRuntime:
    """Owns the command queue and drives one session at a time.

    ``AuthenticationError`` is fatal and leaves :meth:`run`. Missing clients
    and dropped connections are logged, then discovery starts again after
    ``discovery_interval_seconds``.
    """

    def __init__(
        self,
        preferences: AgentPreferences,
        commands: Optional[CommandQueue] = None,
        *,
        discover: Discoverer = find_client,
        api_factory: Callable[..., Any] = LcuApi,
        channel_runner: ChannelRunner = run_event_channel,
        store_factory: Callable[[Path], ConfigStore] = ConfigStore,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._preferences = preferences
        self._commands = commands if commands is not None else CommandQueue()
        self._discover = discover
        self._api_factory = api_factory
        self._channel_runner = channel_runner
        self._store_factory = store_factory
        self._logger = logger or LOGGER
        self._lock = threading.Lock()
        self._groups_path: Optional[Path] = None
        self._thread: Optional[threading.Thread] = None
        self.error: Optional[BaseException] = None
        self.sessions_started = 0

    @property
    def commands(self) -> CommandQueue:
        return self._commands

    @property
    def preferences(self) -> AgentPreferences:
        return self._preferences

    def current_groups_path(self) -> Optional[Path]:
        """Groups file of the most recently discovered client, if any."""

        with self._lock:
            return self._groups_path

    def request_shutdown(self) -> None:
        self._commands.put(AgentCommand.SHUTDOWN)

    # Steps --------------------------------------------------------------

    def discover_client(self) -> DiscoveredClient:
        client = self._discover(self._preferences.client_process_names)
        override = self._preferences.install_directory_override
        if override:
            self._logger.debug("Using install directory override %s", override)
            client = replace(client, install_directory=Path(override).expanduser())
        return client

    def _load_session_groups(self, path: Path) -> GroupDefinition:
        try:
            return load_groups(path)
        except (OSError, DarkBindingError) as exc:
            self._logger.warning("Champion groups unavailable (%s); no configs will be swapped until they are fixed", exc)
            return {}

    def run_session(self, client: DiscoveredClient) -> None:
        """Authenticate, build the session context and serve the event channel.

        Returns when Shutdown is processed; connection failures raise.
        """

        prefs = self._preferences
        api = self._api_factory(
            client.credentials,
            ca_bundle=prefs.ca_bundle,
            timeout=prefs.request_timeout_seconds,
        )
        try:
            region = api.get_region()
            summoner = api.get_current_summoner()
            catalog = api.get_champion_catalog(summoner.summoner_id)
        finally:
            api.close()
        self._logger.info(
            "Logged in as %s (region %s); %d champion names known",
            summoner.display_name or summoner.summoner_id,
            region,
            len(catalog),
        )

        store = self._store_factory(client.config_root)
        with self._lock:
            self._groups_path = store.groups_path
        groups = self._load_session_groups(store.groups_path)
        context = SessionContext.build(summoner.summoner_id, catalog, groups, region)
        dispatcher = SessionDispatcher(store, context)

        # Reconcile whatever an earlier run left behind before any swap happens.
        dispatcher.handle_command(AgentCommand.RESTORE_CONFIG)

        dropped = self._commands.discard_pending()
        if dropped:
            self._logger.info("Discarded %d command(s) queued while no session was active", dropped)

        self.sessions_started += 1
        reactor = SessionReactor(dispatcher, self._commands)
        self._channel_runner(
            client.credentials,
            reactor,
            ca_bundle=prefs.ca_bundle,
            open_timeout=max(prefs.request_timeout_seconds, 1.0),
        )

    def run(self) -> None:
        shutdown = self._commands.shutdown_requested
        interval = self._preferences.discovery_interval_seconds
        while not shutdown.is_set():
            try:
                client = self.discover_client()
                self._logger.debug("Client found (pid=%s); starting session", client.credentials.pid)
                self.run_session(client)
            except ClientNotFoundError as exc:
                self._logger.info("Waiting for the game client: %s", exc)
            except SessionConnectionError as exc:
                self._logger.warning("Session ended: %s", exc)
                self._logger.debug("Session failure detail", exc_info=exc)
            if shutdown.wait(interval):
                break
        self._logger.info("Agent stopped")

    # Threading ----------------------------------------------------------

    def _thread_main(self) -> None:
        try:
            self.run()
        except AuthenticationError as exc:
            self.error = exc
            self._logger.error("Authentication failed: %s", exc)
        except Exception as exc:
            self.error = exc
            self._logger.exception("Agent loop crashed")

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self.error = None
        thread = threading.Thread(target=self._thread_main, name="DarkBindingAgent", daemon=True)
        self._thread = thread
        thread.start()
        return thread

    def join(self, timeout: Optional[float] = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
