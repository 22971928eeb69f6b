"""Event-channel loop: one thread, one socket, one command queue.

The reactor owns the websocket connection and is the only caller into the
:class:`~binding_agent.session_dispatcher.SessionDispatcher`. Each pass through
the loop first applies queued commands, then waits for whichever comes first:
the next frame or a wake-up from :class:`~binding_agent.commands.CommandQueue`.
"""
from __future__ import annotations

import asyncio
import logging
import ssl
from typing import Any, Optional, Protocol, Union

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from binding_agent.commands import CommandQueue
from binding_agent.errors import AuthenticationError, SessionConnectionError
from binding_agent.event_decoder import SUBSCRIBE_MESSAGE
from binding_agent.lcu_api import Credentials
from binding_agent.session_dispatcher import SessionDispatcher

LOGGER = logging.getLogger("DarkBinding.Reactor")

WAMP_SUBPROTOCOL = "wamp"
MAX_FRAME_BYTES = 16 * 1024 * 1024


class EventConnection(Protocol):
    async def send(self, message: Union[str, bytes]) -> None: ...
    async def recv(self) -> Union[str, bytes]: ...


def build_ssl_context(ca_bundle: Optional[str] = None) -> ssl.SSLContext:
    """TLS context for the loopback event channel.

    The client's certificate is not issued for ``127.0.0.1``, so hostname
    checks are always off. With ``ca_bundle`` the chain is still verified.
    """

    if ca_bundle:
        context = ssl.create_default_context(cafile=ca_bundle)
        context.check_hostname = False
        return context
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class SessionReactor:
    def __init__(
        self,
        dispatcher: SessionDispatcher,
        commands: CommandQueue,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._commands = commands
        self._logger = logger or LOGGER
        self.frames_seen = 0

    def _apply_commands(self) -> bool:
        for command in self._commands.drain():
            self._logger.debug("Applying command %s", command.value)
            if not self._dispatcher.handle_command(command):
                return False
        return True

    def _handle_frame(self, frame: Any) -> None:
        self.frames_seen += 1
        group = self._dispatcher.handle_frame(frame)
        if group is not None:
            self._logger.debug("Frame %d switched live settings to group %s", self.frames_seen, group)

    async def run(self, connection: EventConnection) -> None:
        """Subscribe on ``connection`` and process frames until shutdown.

        Returns normally on Shutdown. A closed connection raises
        :class:`SessionConnectionError`.
        """

        loop = asyncio.get_running_loop()
        wake = asyncio.Event()
        self._commands.attach(lambda: loop.call_soon_threadsafe(wake.set))
        recv_task: Optional[asyncio.Future] = None
        wake_task: Optional[asyncio.Future] = None
        try:
            await connection.send(SUBSCRIBE_MESSAGE)
            self._logger.debug("Subscribed to the client event channel")
            while True:
                wake.clear()
                if not self._apply_commands():
                    return
                if recv_task is None:
                    recv_task = asyncio.ensure_future(connection.recv())
                wake_task = asyncio.ensure_future(wake.wait())
                done, _pending = await asyncio.wait({recv_task, wake_task}, return_when=asyncio.FIRST_COMPLETED)
                if recv_task in done:
                    finished, recv_task = recv_task, None
                    self._handle_frame(finished.result())
                if wake_task not in done:
                    wake_task.cancel()
                wake_task = None
        except ConnectionClosed as exc:
            raise SessionConnectionError("event channel closed by the client") from exc
        finally:
            self._commands.detach()
            for task in (recv_task, wake_task):
                if task is not None and not task.done():
                    task.cancel()


async def serve_event_channel(
    credentials: Credentials,
    reactor: SessionReactor,
    *,
    ca_bundle: Optional[str] = None,
    open_timeout: float = 10.0,
) -> None:
    """Connect to the client's event channel and hand it to ``reactor``."""

    LOGGER.debug("Connecting to %s", credentials.redacted_websocket_url)
    try:
        async with connect(
            credentials.websocket_url,
            ssl=build_ssl_context(ca_bundle),
            subprotocols=[WAMP_SUBPROTOCOL],
            open_timeout=open_timeout,
            ping_interval=None,
            max_size=MAX_FRAME_BYTES,
        ) as connection:
            LOGGER.info("Connected to the client event channel on port %s", credentials.port)
            await reactor.run(connection)
    except InvalidStatus as exc:
        status = exc.response.status_code
        if status in (401, 403):
            raise AuthenticationError(f"client rejected the event channel credentials (HTTP {status})") from exc
        raise SessionConnectionError(f"event channel handshake failed (HTTP {status})") from exc
    except InvalidHandshake as exc:
        raise SessionConnectionError("event channel handshake failed") from exc
    except (OSError, asyncio.TimeoutError) as exc:
        raise SessionConnectionError(f"unable to connect to the client on port {credentials.port}") from exc


def run_event_channel(
    credentials: Credentials,
    reactor: SessionReactor,
    *,
    ca_bundle: Optional[str] = None,
    open_timeout: float = 10.0,
) -> None:
    """Blocking wrapper used by the runtime thread."""

    asyncio.run(serve_event_channel(credentials, reactor, ca_bundle=ca_bundle, open_timeout=open_timeout))
