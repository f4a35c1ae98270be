# src/askloop/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import TYPE_CHECKING

from ..cli.commands import handle_line
from ..core.state import AppState

if TYPE_CHECKING:
    from ..cli.runtime import BackgroundRunner

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    if sys.stdout.isatty():
        sys.stdout.write("\033[1A\033[2K\r")
        sys.stdout.write(line + "\n")
        sys.stdout.flush()
    else:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class ConsoleMessenger:
    """Delivers task answers to the local terminal."""

    def __init__(self, app_name: str = "askloop") -> None:
        self.app_name = app_name

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
    ) -> None:
        _print_ts(f"<<< {self.app_name} (to {to_user_id or 'console'}):\n{text}\n")


def run_console_loop(state: AppState, runner: BackgroundRunner, *, user_id: str) -> None:
    """
    Blocking REPL. Commands are executed on the runtime's event loop, so the
    console shares the scheduler's worker, stores and messenger.
    """
    logger.info("Console connector started (user_id=%s).", user_id)
    _print_ts("[CONSOLE] Type commands. Use /help for the list. Use /exit to quit.\n")

    while True:
        try:
            user_input = input(">>> You: ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            user_input = f"/ask {user_input}"

        try:
            reply = runner.submit(handle_line(state, user_input, user_id=user_id)).result()
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply:
            _print_ts(reply + "\n")

    logger.info("Console connector finished.")
