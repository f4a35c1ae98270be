# src/askloop/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the runtime thread (scheduler + optional Matrix connector),
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..cli.runtime import start_background_runtime
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.matrix_connector import MatrixMessenger
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)
    if not settings.owner_id:
        logger.warning("ASKLOOP_OWNER_ID is not set; /botstats will be refused for everyone.")

    matrix = MatrixMessenger() if settings.matrix_enabled else None
    state = create_initial_state(settings=settings, matrix=matrix)
    runner = start_background_runtime(state, matrix=matrix)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        if settings.console_enabled:
            # The REPL handles Ctrl+C itself.
            signal.signal(signal.SIGINT, signal.default_int_handler)
            run_console_loop(state, runner, user_id=settings.console_user_id)
        else:
            logger.info("Console disabled. Running background services only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        runner.stop()
        runner.join(timeout=30.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
