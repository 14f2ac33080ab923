from PySide6.QtCore import Qt
from PySide6.QtGui import QCloseEvent
from PySide6.QtWidgets import (
    QFormLayout,
    QGraphicsOpacityEffect,
    QLabel,
    QVBoxLayout,
    QWidget,
)

from coinscope.chart import NEGATIVE_RGB, POSITIVE_RGB, ChartSyncEngine
from coinscope.formatting import (
    format_compact,
    format_currency,
    format_percent,
    format_supply,
)
from coinscope.models import RequestStatus
from coinscope.session import ChartBinding, MarketSession, SessionSnapshot
from coinscope.ui.views.chart_view import ChartContainer, SparklineRenderer
from coinscope.utils.time import describe_window

TRANSITION_OPACITY = 0.35


class DetailView(QWidget):
    """Detail panel for the displayed asset: headline figures and a sparkline.

    The view owns one chart engine for its whole lifetime. The engine is
    destroyed by `dispose`, which also runs when the widget is closed.
    """

    def __init__(
        self,
        session: MarketSession,
        currency: str = "usd",
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._session = session
        self._currency = currency
        self._setup_ui()
        engine = ChartSyncEngine(SparklineRenderer(), self._chart_container)
        self._binding: ChartBinding | None = ChartBinding(session, engine)

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)

        self._title_label = QLabel()
        self._title_label.setStyleSheet("font-size: 20px; font-weight: 600;")
        self._price_label = QLabel()
        self._price_label.setStyleSheet("font-size: 28px;")
        self._change_label = QLabel()

        stats = QFormLayout()
        self._market_cap_label = QLabel()
        self._volume_label = QLabel()
        self._supply_label = QLabel()
        self._updated_label = QLabel()
        stats.addRow("Market cap:", self._market_cap_label)
        stats.addRow("24h volume:", self._volume_label)
        stats.addRow("Circulating supply:", self._supply_label)
        stats.addRow("Last updated:", self._updated_label)

        self._chart_container = ChartContainer(self)
        self._chart_status_label = QLabel()
        self._chart_status_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self._range_label = QLabel()
        self._range_label.setAlignment(Qt.AlignmentFlag.AlignRight)

        layout.addWidget(self._title_label)
        layout.addWidget(self._price_label)
        layout.addWidget(self._change_label)
        layout.addLayout(stats)
        layout.addWidget(self._chart_container, stretch=1)
        layout.addWidget(self._chart_status_label)
        layout.addWidget(self._range_label)

        self._opacity = QGraphicsOpacityEffect(self)
        self._opacity.setOpacity(1.0)
        self.setGraphicsEffect(self._opacity)

    def show_snapshot(self, snapshot: SessionSnapshot) -> None:
        """Updates every label from ``snapshot``; the chart syncs itself."""
        self._opacity.setOpacity(
            TRANSITION_OPACITY if snapshot.selection.transitioning else 1.0
        )

        asset = snapshot.displayed_asset
        if asset is None:
            for label in (
                self._title_label,
                self._price_label,
                self._change_label,
                self._market_cap_label,
                self._volume_label,
                self._supply_label,
                self._updated_label,
                self._range_label,
            ):
                label.clear()
            self._chart_container.hide()
            self._chart_status_label.setText("Select an asset to see its details.")
            return

        change_rgb = POSITIVE_RGB if asset.change_24h >= 0 else NEGATIVE_RGB
        self._title_label.setText(f"#{asset.rank}  {asset.name} ({asset.symbol})")
        self._price_label.setText(format_currency(asset.price, self._currency))
        self._change_label.setText(f"{format_percent(asset.change_24h)} (24h)")
        red, green, blue = change_rgb
        self._change_label.setStyleSheet(f"color: rgb({red}, {green}, {blue});")
        self._market_cap_label.setText(
            format_compact(asset.market_cap, self._currency)
        )
        self._volume_label.setText(format_compact(asset.volume_24h, self._currency))
        self._supply_label.setText(
            f"{format_supply(asset.circulating_supply)} {asset.symbol}"
        )
        updated = asset.last_updated
        self._updated_label.setText(
            updated.strftime("%Y-%m-%d %H:%M UTC") if updated else "-"
        )

        history = snapshot.displayed_history
        if history:
            self._chart_container.show()
            self._chart_status_label.clear()
            self._range_label.setText(
                describe_window(history[0].timestamp, history[-1].timestamp)
            )
            return

        self._chart_container.hide()
        self._range_label.clear()
        if snapshot.history_status is RequestStatus.ERROR:
            self._chart_status_label.setText("Failed to load price history.")
        elif history is not None:
            self._chart_status_label.setText("No price history available.")
        else:
            self._chart_status_label.setText("Loading price history...")

    def dispose(self) -> None:
        """Destroys the chart. Safe to call more than once."""
        if self._binding is not None:
            self._binding.close()
            self._binding = None

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802
        self.dispose()
        super().closeEvent(event)
