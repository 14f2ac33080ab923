from collections.abc import Sequence

from loguru import logger
from PySide6.QtCore import Qt, Signal, Slot
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
    QAbstractItemView,
    QHeaderView,
    QLabel,
    QStackedWidget,
    QTableWidget,
    QTableWidgetItem,
    QVBoxLayout,
    QWidget,
)

from coinscope.chart import NEGATIVE_RGB, POSITIVE_RGB
from coinscope.formatting import format_compact, format_currency, format_percent
from coinscope.models import Asset, RequestStatus

COLUMNS = ("#", "Name", "Price", "24h", "Market Cap")


class AssetListPanel(QWidget):
    """The ranked asset table, with loading and error placeholders.

    Emits `asset_selected` with the asset id when the user clicks a row.
    """

    asset_selected = Signal(str)

    def __init__(self, currency: str = "usd", parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._currency = currency
        self._row_ids: list[str] = []
        self._shown: tuple[Asset, ...] = ()
        self._setup_ui()

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self._status_label = QLabel("Loading assets...")
        self._status_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._status_label.setWordWrap(True)

        self._table = QTableWidget(0, len(COLUMNS))
        self._table.setHorizontalHeaderLabels(list(COLUMNS))
        self._table.verticalHeader().hide()
        self._table.setSortingEnabled(False)
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setSelectionMode(QAbstractItemView.SelectionMode.SingleSelection)
        self._table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        header = self._table.horizontalHeader()
        header.setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        header.setSectionResizeMode(1, QHeaderView.ResizeMode.Stretch)
        self._table.cellClicked.connect(self._on_cell_clicked)

        self._stack = QStackedWidget()
        self._stack.addWidget(self._status_label)
        self._stack.addWidget(self._table)
        layout.addWidget(self._stack)

    def show_assets(
        self,
        status: RequestStatus,
        assets: Sequence[Asset],
        selected_id: str | None,
    ) -> None:
        """Shows the table on SUCCESS and a placeholder otherwise."""
        if status is not RequestStatus.SUCCESS:
            self._status_label.setText(
                "Failed to load market data.\nUse File > Reload to try again."
                if status is RequestStatus.ERROR
                else "Loading assets..."
            )
            self._stack.setCurrentWidget(self._status_label)
            return

        if tuple(assets) != self._shown:
            self._fill(assets)
        self._highlight(selected_id)
        self._stack.setCurrentWidget(self._table)

    def _fill(self, assets: Sequence[Asset]) -> None:
        self._table.setRowCount(len(assets))
        self._row_ids = [asset.id for asset in assets]
        self._shown = tuple(assets)
        for row, asset in enumerate(assets):
            self._set_row(row, asset)
        logger.debug(f"Asset table filled with {len(assets)} rows.")

    def _set_row(self, row: int, asset: Asset) -> None:
        change_rgb = POSITIVE_RGB if asset.change_24h >= 0 else NEGATIVE_RGB
        cells = (
            str(asset.rank),
            f"{asset.name} ({asset.symbol})",
            format_currency(asset.price, self._currency),
            format_percent(asset.change_24h),
            format_compact(asset.market_cap, self._currency),
        )
        for column, text in enumerate(cells):
            item = QTableWidgetItem(text)
            if column != 1:
                item.setTextAlignment(
                    Qt.AlignmentFlag.AlignRight | Qt.AlignmentFlag.AlignVCenter
                )
            if column == 3:  # noqa: PLR2004
                item.setForeground(QColor(*change_rgb))
            self._table.setItem(row, column, item)

    def _highlight(self, selected_id: str | None) -> None:
        if selected_id is None or selected_id not in self._row_ids:
            self._table.clearSelection()
            return
        row = self._row_ids.index(selected_id)
        if self._table.currentRow() != row:
            self._table.selectRow(row)

    @Slot(int, int)
    def _on_cell_clicked(self, row: int, _column: int) -> None:
        if 0 <= row < len(self._row_ids):
            self.asset_selected.emit(self._row_ids[row])
