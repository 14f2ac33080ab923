import asyncio
import sys
from pathlib import Path

from loguru import logger
from PySide6.QtCore import Qt, Slot
from PySide6.QtGui import QAction, QCloseEvent, QKeySequence, QResizeEvent
from PySide6.QtWidgets import QMainWindow, QSplitter, QStatusBar

from coinscope.client import MarketDataClient
from coinscope.config import Settings
from coinscope.logging_config import setup_logging
from coinscope.models import RequestStatus
from coinscope.session import MarketSession
from coinscope.ui.qt_asyncio_integration import run_with_asyncio
from coinscope.ui.views.asset_list import AssetListPanel
from coinscope.ui.views.detail_view import DetailView

ASSET_LIST_ERROR_MESSAGE = "Failed to load market data. Use File > Reload to retry."
HISTORY_ERROR_MESSAGE = "Failed to load price history. Use File > Reload to retry."


class MainWindow(QMainWindow):
    """The main application window: asset list on the left, details on the right."""

    def __init__(self, session: MarketSession, settings: Settings) -> None:
        super().__init__()
        self._session = session
        self._settings = settings
        self._closed = asyncio.Event()
        self._setup_ui()
        self._change_sub_id = session.changes.subscribe(self._on_session_changed)

    def _setup_ui(self) -> None:
        """Sets up the window, menus, and central widget."""
        self.setWindowTitle("coinscope")
        self.resize(self._settings.ui.window_width, self._settings.ui.window_height)
        currency = self._settings.api.vs_currency

        self._asset_list = AssetListPanel(currency, self)
        self._asset_list.asset_selected.connect(self._on_asset_selected)
        self._detail_view = DetailView(self._session, currency, self)

        splitter = QSplitter(Qt.Orientation.Horizontal, self)
        splitter.addWidget(self._asset_list)
        splitter.addWidget(self._detail_view)
        splitter.setStretchFactor(0, 2)
        splitter.setStretchFactor(1, 3)
        self.setCentralWidget(splitter)

        self.setStatusBar(QStatusBar(self))
        self.statusBar().showMessage("Loading market data...")

        menu_bar = self.menuBar()
        file_menu = menu_bar.addMenu("&File")

        reload_action = QAction("&Reload", self)
        reload_action.setShortcut(QKeySequence.StandardKey.Refresh)
        reload_action.triggered.connect(self._on_reload)
        file_menu.addAction(reload_action)

        file_menu.addSeparator()

        exit_action = QAction("E&xit", self)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        view_menu = menu_bar.addMenu("&View")
        self._toggle_list_action = QAction("Show Asset &List", self)
        self._toggle_list_action.setCheckable(True)
        self._toggle_list_action.setChecked(True)
        self._toggle_list_action.setShortcut(QKeySequence("Ctrl+L"))
        self._toggle_list_action.toggled.connect(self._on_toggle_list)
        view_menu.addAction(self._toggle_list_action)

    async def wait_closed(self) -> None:
        await self._closed.wait()

    def _on_session_changed(self, session: MarketSession) -> None:
        snapshot = session.snapshot()
        selection = snapshot.selection

        self._asset_list.show_assets(
            snapshot.assets_status, snapshot.assets, selection.selected_asset_id
        )
        self._asset_list.setVisible(selection.list_expanded)
        if self._toggle_list_action.isChecked() != selection.list_expanded:
            self._toggle_list_action.blockSignals(True)
            self._toggle_list_action.setChecked(selection.list_expanded)
            self._toggle_list_action.blockSignals(False)
        self._detail_view.show_snapshot(snapshot)

        if snapshot.assets_status is RequestStatus.ERROR:
            self.statusBar().showMessage(ASSET_LIST_ERROR_MESSAGE)
        elif snapshot.history_status is RequestStatus.ERROR:
            self.statusBar().showMessage(HISTORY_ERROR_MESSAGE)
        elif RequestStatus.LOADING in (
            snapshot.assets_status,
            snapshot.history_status,
        ):
            self.statusBar().showMessage("Loading...")
        else:
            self.statusBar().showMessage(f"{len(snapshot.assets)} assets loaded.", 5000)

    @Slot(str)
    def _on_asset_selected(self, asset_id: str) -> None:
        self._session.select_asset(asset_id)

    @Slot(bool)
    def _on_toggle_list(self, checked: bool) -> None:
        self._session.toggle_list(checked)

    @Slot()
    def _on_reload(self) -> None:
        logger.info("User requested a reload.")
        self._session.reload()

    def resizeEvent(self, event: QResizeEvent) -> None:  # noqa: N802
        """Feeds the new width to the session for the list-collapse rule."""
        self._session.set_viewport_width(event.size().width())
        super().resizeEvent(event)

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802
        """Releases the chart and lets `main_async` finish the shutdown."""
        logger.info("Close event triggered.")
        self._session.changes.unsubscribe(self._change_sub_id)
        self._detail_view.dispose()
        event.accept()
        self._closed.set()


async def main_async() -> int:
    """The main async entry point for the application."""
    settings = Settings.get_instance()
    log_dir = (
        Path(settings.general.log_directory)
        if settings.general.log_directory
        else None
    )
    setup_logging(
        console_level=settings.general.log_level_console,
        file_level=settings.general.log_level_file,
        log_dir=log_dir,
    )

    http_client = MarketDataClient.create_http_client(settings.api)
    session = MarketSession(
        MarketDataClient(http_client, settings.api),
        settings.ui,
        viewport_width=settings.ui.window_width,
    )
    try:
        main_window = MainWindow(session, settings)
        main_window.show()
        session.start()
        await main_window.wait_closed()
    finally:
        logger.info("Initiating graceful shutdown...")
        await session.aclose()
        await http_client.aclose()
        logger.success("Shutdown complete.")
    return 0


def main() -> None:
    """The synchronous entry point for the application."""
    try:
        exit_code = run_with_asyncio(main_async())
        sys.exit(exit_code)
    except Exception:
        logger.exception("An unhandled exception reached the top-level entry point.")
        sys.exit(1)


if __name__ == "__main__":
    main()
