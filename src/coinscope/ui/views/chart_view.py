from dataclasses import dataclass

import pyqtgraph as pg
from PySide6.QtWidgets import QVBoxLayout, QWidget

from coinscope.chart import ChartRenderer, ChartSeries

# Set pyqtgraph configuration options for better appearance and performance
pg.setConfigOptions(antialias=True, useOpenGL=False)
pg.setConfigOption("background", "#161A25")
pg.setConfigOption("foreground", "#D8D9DD")

LINE_WIDTH = 2


@dataclass
class SparklineHandle:
    """The live pyqtgraph objects behind one sparkline."""

    target: QWidget
    plot: pg.PlotWidget
    curve: pg.PlotDataItem


class ChartContainer(QWidget):
    """An empty widget the sparkline is mounted into."""

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        self.setMinimumHeight(220)


class SparklineRenderer(ChartRenderer[SparklineHandle]):
    """Draws a minimal filled price line with pyqtgraph.

    Axes, legend, grid and mouse interaction are all disabled: the chart
    shows the shape of the series, not exact values.
    """

    def create(self, target: QWidget, series: ChartSeries) -> SparklineHandle:
        plot = pg.PlotWidget(parent=target)
        plot.hideAxis("left")
        plot.hideAxis("bottom")
        plot.setMenuEnabled(False)
        plot.setMouseEnabled(x=False, y=False)
        plot.hideButtons()
        plot.getPlotItem().setClipToView(True)

        curve = pg.PlotDataItem(symbol=None)
        plot.addItem(curve)
        target.layout().addWidget(plot)

        handle = SparklineHandle(target=target, plot=plot, curve=curve)
        self._apply(handle, series)
        return handle

    def update(self, handle: SparklineHandle, series: ChartSeries) -> None:
        self._apply(handle, series)

    def destroy(self, handle: SparklineHandle) -> None:
        handle.plot.removeItem(handle.curve)
        handle.target.layout().removeWidget(handle.plot)
        handle.plot.close()
        handle.plot.deleteLater()

    @staticmethod
    def _apply(handle: SparklineHandle, series: ChartSeries) -> None:
        """Pushes data, colours and bounds into the existing plot items."""
        low, high = series.y_bounds
        handle.curve.setData(x=series.x, y=series.y)
        handle.curve.setPen(pg.mkPen(series.line_color, width=LINE_WIDTH))
        handle.curve.setBrush(pg.mkBrush(series.fill_color))
        handle.curve.setFillLevel(low)
        handle.plot.setXRange(*series.x_bounds, padding=0)
        handle.plot.setYRange(low, high, padding=0)
