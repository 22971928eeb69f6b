from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from binding_agent.config_store import ConfigStore
from binding_agent.editor_services import GroupEditorLauncher
from binding_agent.errors import DarkBindingError, format_error_chain
from binding_agent.logging_utils import configure_agent_logging, resolve_log_level, resolve_logs_dir
from binding_agent.preferences import AgentPreferences, agent_home, resolve_preferences_path
from binding_agent.runtime import AgentRuntime
from version import __version__, is_dev_build

LOGGER = logging.getLogger("DarkBinding.Launcher")

_POLL_INTERVAL_MS = 500
_SHUTDOWN_JOIN_SECONDS = 5.0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dark-binding",
        description="Swap League of Legends keybind settings per champion group",
    )
    parser.add_argument("--settings", help="Path to the agent settings.json")
    parser.add_argument("--headless", action="store_true", help="Run without a tray icon; stop with Ctrl+C")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--restore",
        metavar="CONFIG_ROOT",
        help="Restore the baseline settings under CONFIG_ROOT and exit",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _debug_enabled(args: argparse.Namespace, preferences: AgentPreferences) -> bool:
    return bool(args.debug or preferences.debug_logging or is_dev_build())


def run_restore(config_root: str) -> int:
    """One-shot restore against ``config_root``; prints the resulting state."""

    store = ConfigStore(Path(config_root).expanduser())
    try:
        state = store.restore()
    except (OSError, DarkBindingError) as exc:
        print(format_error_chain(exc), file=sys.stderr)
        return 1
    print(f"{store.live_path}: {state.describe()}")
    return 0


def _exit_code(runtime: AgentRuntime) -> int:
    error = runtime.error
    if error is None:
        return 0
    print(format_error_chain(error), file=sys.stderr)
    return 1


def run_headless(runtime: AgentRuntime) -> int:
    def _handle_signal(signum, _frame) -> None:
        LOGGER.info("Received signal %s; shutting down", signum)
        runtime.request_shutdown()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)
    runtime.start()
    # Short joins keep the main thread responsive to signals.
    while not runtime.join(_POLL_INTERVAL_MS / 1000.0):
        pass
    return _exit_code(runtime)


def run_tray(runtime: AgentRuntime, editor: GroupEditorLauncher) -> int:
    from PyQt6.QtCore import QTimer
    from PyQt6.QtWidgets import QApplication, QSystemTrayIcon

    from binding_tray.menu_actions import TrayActions
    from binding_tray.tray_icon import BindingTrayIcon

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)
    if not QSystemTrayIcon.isSystemTrayAvailable():
        LOGGER.warning("System tray unavailable; continuing without a tray icon")
        app.quit()
        return run_headless(runtime)

    actions = TrayActions(runtime.commands, editor, quit_app=app.quit)
    tray = BindingTrayIcon(actions)
    tray.show()

    def _check_runtime() -> None:
        if not runtime.alive:
            LOGGER.debug("Agent loop finished; closing the tray")
            app.quit()

    watchdog = QTimer()
    watchdog.setInterval(_POLL_INTERVAL_MS)
    watchdog.timeout.connect(_check_runtime)

    runtime.start()
    watchdog.start()
    exit_code = app.exec()
    watchdog.stop()
    tray.hide()
    runtime.request_shutdown()
    if not runtime.join(_SHUTDOWN_JOIN_SECONDS):
        LOGGER.warning("Agent loop still running after %.0fs; exiting anyway", _SHUTDOWN_JOIN_SECONDS)
    LOGGER.info("Tray exiting with code %s", exit_code)
    agent_code = _exit_code(runtime)
    return agent_code or int(exit_code)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.restore:
        configure_agent_logging(level=resolve_log_level(bool(args.debug)), logs_dir=None)
        return run_restore(args.restore)

    settings_path = resolve_preferences_path(args.settings)
    try:
        preferences = AgentPreferences.load(settings_path)
    except DarkBindingError as exc:
        print(format_error_chain(exc), file=sys.stderr)
        return 1

    debug = _debug_enabled(args, preferences)
    try:
        logs_dir: Optional[Path] = resolve_logs_dir(agent_home())
    except OSError as exc:
        print(f"warning: file logging disabled ({exc})", file=sys.stderr)
        logs_dir = None
    configure_agent_logging(
        level=resolve_log_level(debug),
        retention=preferences.log_retention,
        logs_dir=logs_dir,
        console=args.headless or debug,
    )
    LOGGER.info("Starting Dark Binding %s (pid=%s)", __version__, os.getpid())
    LOGGER.debug("Resolved settings path to %s", settings_path)

    runtime = AgentRuntime(preferences)
    editor = GroupEditorLauncher(
        runtime.commands,
        runtime.current_groups_path,
        preferences.resolved_editor_command,
    )
    if args.headless:
        return run_headless(runtime)
    return run_tray(runtime, editor)


if __name__ == "__main__":
    sys.exit(main())
