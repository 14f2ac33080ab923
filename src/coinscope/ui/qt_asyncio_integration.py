import sys
from collections.abc import Coroutine
from typing import Any

from loguru import logger
from PySide6 import QtAsyncio
from PySide6.QtWidgets import QApplication


def run_with_asyncio(main_coro: Coroutine[Any, Any, int]) -> int:
    """Runs ``main_coro`` on an asyncio event loop driven by Qt.

    The QApplication must exist before any widget is created, so it is built
    here first. `QtAsyncio.run` then installs its Qt-backed event loop, runs
    the coroutine to completion and quits the application afterwards.

    Args:
        main_coro: The application coroutine. It should build the UI, wait for
            the main window to close, shut services down and return an exit
            code.

    Returns:
        The exit code returned by ``main_coro``.
    """
    app = QApplication.instance()
    if app is None:
        app = QApplication(sys.argv)

    logger.info("Starting the Qt-driven asyncio event loop.")
    exit_code = QtAsyncio.run(main_coro, keep_running=False, quit_qapp=True)
    logger.info("Qt-driven asyncio event loop has finished.")
    return int(exit_code or 0)
