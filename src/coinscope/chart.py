import abc
import types
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Generic, Self, TypeVar

import numpy as np
from loguru import logger

from coinscope.models import PricePoint

# --- Visual constants ---
LOWER_BOUND_FACTOR = 0.98
UPPER_BOUND_FACTOR = 1.02
# Half-width used when every price is zero and the factors cannot widen it.
ZERO_RANGE_PADDING = 1.0
# A single sample is plotted across this many seconds either side.
SINGLE_POINT_HALF_SPAN_S = 60.0

RGBA = tuple[int, int, int, int]

POSITIVE_RGB = (22, 199, 132)
NEGATIVE_RGB = (234, 57, 67)
STROKE_ALPHA = 255
FILL_ALPHA = 38  # ~15% opacity

SMOOTHING_SAMPLES = 4

H = TypeVar("H")


@dataclass(frozen=True)
class ChartSeries:
    """Everything a renderer needs to draw one sparkline."""

    x: np.ndarray  # seconds since the epoch
    y: np.ndarray
    line_color: RGBA
    fill_color: RGBA
    y_bounds: tuple[float, float]
    x_bounds: tuple[float, float]


def compute_axis_bounds(prices: Sequence[float]) -> tuple[float, float]:
    """Returns ``(min * 0.98, max * 1.02)``, never a zero-width range.

    Raises:
        ValueError: If ``prices`` is empty.
    """
    if len(prices) == 0:
        err_msg = "Cannot compute axis bounds without prices."
        raise ValueError(err_msg)
    low = min(prices) * LOWER_BOUND_FACTOR
    high = max(prices) * UPPER_BOUND_FACTOR
    if high <= low:
        centre = (low + high) / 2
        padding = abs(centre) * (UPPER_BOUND_FACTOR - 1) or ZERO_RANGE_PADDING
        low, high = centre - padding, centre + padding
    return low, high


def palette_for(change: float) -> tuple[RGBA, RGBA]:
    """Returns ``(stroke, fill)`` colours: green for change >= 0, red otherwise."""
    rgb = POSITIVE_RGB if change >= 0 else NEGATIVE_RGB
    return (*rgb, STROKE_ALPHA), (*rgb, FILL_ALPHA)


def smooth(
    x: np.ndarray, y: np.ndarray, samples: int = SMOOTHING_SAMPLES
) -> tuple[np.ndarray, np.ndarray]:
    """Interpolates a Catmull-Rom spline through the points.

    The curve passes through every input point; ``samples`` points are
    emitted per segment. Series shorter than three points are returned as is.
    """
    if len(x) < 3 or samples < 2:  # noqa: PLR2004
        return x, y

    points = np.column_stack((x, y))
    padded = np.vstack((points[0], points, points[-1]))
    p0, p1, p2, p3 = (padded[i : i + len(points) - 1, None, :] for i in range(4))
    t = np.linspace(0.0, 1.0, samples, endpoint=False)[None, :, None]

    curve = 0.5 * (
        2 * p1
        + (p2 - p0) * t
        + (2 * p0 - 5 * p1 + 4 * p2 - p3) * t**2
        + (3 * p1 - p0 - 3 * p2 + p3) * t**3
    )
    curve = np.vstack((curve.reshape(-1, 2), points[-1]))
    return curve[:, 0], curve[:, 1]


def build_series(points: Sequence[PricePoint], change: float) -> ChartSeries:
    """Computes the renderer payload for a price history.

    Raises:
        ValueError: If ``points`` is empty.
    """
    if not points:
        err_msg = "A chart needs at least one price point."
        raise ValueError(err_msg)

    count = len(points)
    x = np.fromiter((p.timestamp / 1000 for p in points), dtype=float, count=count)
    y = np.fromiter((p.price for p in points), dtype=float, count=count)
    x_bounds = (float(x[0]), float(x[-1]))
    if x_bounds[1] <= x_bounds[0]:
        centre = x_bounds[0]
        half_span = SINGLE_POINT_HALF_SPAN_S
        x_bounds = (centre - half_span, centre + half_span)

    line_color, fill_color = palette_for(change)
    smooth_x, smooth_y = smooth(x, y)
    return ChartSeries(
        x=smooth_x,
        y=smooth_y,
        line_color=line_color,
        fill_color=fill_color,
        y_bounds=compute_axis_bounds([p.price for p in points]),
        x_bounds=x_bounds,
    )


class ChartRenderer(abc.ABC, Generic[H]):
    """The drawing capability the sync engine drives.

    Implementations create a chart bound to a render target, mutate it in
    place and release it. They never decide *when* to do which; that belongs
    to `ChartSyncEngine`.
    """

    @abc.abstractmethod
    def create(self, target: Any, series: ChartSeries) -> H:
        """Creates a chart on ``target`` and returns its handle."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, handle: H, series: ChartSeries) -> None:
        """Replaces data, colours and bounds of ``handle`` and redraws it."""
        raise NotImplementedError

    @abc.abstractmethod
    def destroy(self, handle: H) -> None:
        """Releases every resource held by ``handle``."""
        raise NotImplementedError


class ChartSyncEngine(Generic[H]):
    """Owns the single chart of one mounted detail view.

    The first successful data set creates the chart; every later data or
    colour change updates it in place. `destroy` must run when the view goes
    away, which the context-manager protocol guarantees.
    """

    def __init__(self, renderer: ChartRenderer[H], target: Any) -> None:
        """Initializes the engine.

        Args:
            renderer: The drawing backend.
            target: The render target the chart is bound to.
        """
        self._renderer = renderer
        self._target = target
        self._handle: H | None = None
        self._destroyed = False

    @property
    def handle(self) -> H | None:
        return self._handle

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def sync(self, points: Sequence[PricePoint], change: float) -> None:
        """Draws the chart the first time, updates it in place afterwards."""
        if self._destroyed:
            logger.warning("Ignoring chart sync after the chart was destroyed.")
            return
        if not points:
            logger.warning("No price points to chart; leaving the chart unchanged.")
            return
        if self._handle is None:
            self.draw(points, change)
        else:
            self.update(points, change)

    def draw(self, points: Sequence[PricePoint], change: float) -> H:
        """Creates the chart. Allowed once per engine.

        Raises:
            RuntimeError: If the chart already exists or was destroyed.
            ValueError: If ``points`` is empty.
        """
        if self._destroyed or self._handle is not None:
            err_msg = "draw() may only be called once per mounted view."
            raise RuntimeError(err_msg)
        self._handle = self._renderer.create(self._target, build_series(points, change))
        logger.debug(f"Chart created with {len(points)} points.")
        return self._handle

    def update(self, points: Sequence[PricePoint], change: float) -> None:
        """Mutates the existing chart in place.

        Raises:
            RuntimeError: If the chart has not been drawn yet.
        """
        if self._handle is None:
            err_msg = "update() requires a chart created by draw()."
            raise RuntimeError(err_msg)
        self._renderer.update(self._handle, build_series(points, change))
        logger.debug(f"Chart updated in place with {len(points)} points.")

    def destroy(self) -> None:
        """Releases the chart. Safe to call more than once."""
        if self._destroyed:
            return
        self._destroyed = True
        handle, self._handle = self._handle, None
        if handle is not None:
            self._renderer.destroy(handle)
            logger.debug("Chart destroyed.")

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        self.destroy()
