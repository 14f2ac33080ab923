import asyncio
import functools
from dataclasses import dataclass

from loguru import logger

from coinscope.chart import ChartSyncEngine
from coinscope.client import MarketDataClient
from coinscope.config import UISettings
from coinscope.fetcher import FetchCoordinator
from coinscope.mapper import find_by_id
from coinscope.models import Asset, PricePoint, RequestStatus, SelectionState
from coinscope.selection import SelectionController
from coinscope.utils.listeners import ListenerRegistry

ASSET_LIST_KEY = "markets"


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of everything the presentation layer renders."""

    assets_status: RequestStatus
    assets: tuple[Asset, ...]
    history_status: RequestStatus
    selection: SelectionState
    displayed_asset: Asset | None
    displayed_history: tuple[PricePoint, ...] | None


class MarketSession:
    """Wires the client, both fetch concerns and the selection controller.

    One session is built at start-up and handed to the widgets that need it;
    nothing here is global. Any change in either concern or in the selection
    is re-broadcast on `changes`, and `snapshot` gives a consistent read of
    the combined state.
    """

    def __init__(
        self,
        client: MarketDataClient,
        ui: UISettings | None = None,
        viewport_width: int | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initializes the session.

        Args:
            client: The market-data client used by both fetch concerns.
            ui: Transition and layout settings; defaults apply when omitted.
            viewport_width: Initial width of the window's content area.
            loop: Loop for fetch tasks and timers. Defaults to the running loop.
        """
        ui = ui or UISettings()
        loop = loop or asyncio.get_running_loop()
        self.client = client
        self.changes: ListenerRegistry[MarketSession] = ListenerRegistry("session")
        self.assets: FetchCoordinator[list[Asset]] = FetchCoordinator("assets", loop)
        self.history: FetchCoordinator[list[PricePoint]] = FetchCoordinator(
            "history", loop
        )
        self.selection = SelectionController(
            transition_delay_s=ui.transition_delay_ms / 1000,
            collapse_breakpoint_px=ui.collapse_breakpoint_px,
            viewport_width=viewport_width,
            loop=loop,
        )
        self.assets.listeners.subscribe(self._on_assets_changed)
        self.history.listeners.subscribe(self._on_history_changed)
        self.selection.listeners.subscribe(self._on_selection_changed)

    def start(self) -> None:
        """Triggers the first asset-list fetch."""
        logger.info("Market session starting.")
        self.assets.request(ASSET_LIST_KEY, self.client.get_assets)

    def reload(self) -> None:
        """Manually re-fetches the asset list and the selected asset's history."""
        if not self.assets.refresh():
            self.start()
        self.history.refresh()

    def select_asset(self, asset_id: str) -> bool:
        return self.selection.select_asset(asset_id)

    def toggle_list(self, expanded: bool) -> None:
        self.selection.toggle_list(expanded)

    def set_viewport_width(self, width: int) -> None:
        self.selection.set_viewport_width(width)

    @property
    def displayed_asset(self) -> Asset | None:
        """The asset shown in the detail panel, or None.

        None covers every "nothing to show" case: no selection yet, the list
        is not loaded, or the displayed id has left the latest list.
        """
        return find_by_id(self.selection.displayed_asset_id, self.assets.result or [])

    @property
    def displayed_history(self) -> list[PricePoint] | None:
        """History of the displayed asset, or None while it is not loaded.

        The history concern follows the *selected* asset; its result only
        counts once the transition has caught up with it.
        """
        displayed_id = self.selection.displayed_asset_id
        if displayed_id is None or self.history.key != displayed_id:
            return None
        return self.history.result

    def snapshot(self) -> SessionSnapshot:
        history = self.displayed_history
        return SessionSnapshot(
            assets_status=self.assets.status,
            assets=tuple(self.assets.result or ()),
            history_status=self.history.status,
            selection=self.selection.state,
            displayed_asset=self.displayed_asset,
            displayed_history=tuple(history) if history is not None else None,
        )

    async def aclose(self) -> None:
        """Cancels the transition timer and any in-flight fetch."""
        logger.info("Closing market session...")
        self.selection.close()
        await self.history.aclose()
        await self.assets.aclose()
        self.changes = ListenerRegistry("session")
        logger.info("Market session closed.")

    def _on_assets_changed(self, coordinator: FetchCoordinator[list[Asset]]) -> None:
        if coordinator.status is RequestStatus.SUCCESS:
            self.selection.on_assets_loaded(coordinator.result or [])
        self.changes.notify(self)

    def _on_history_changed(self, _: FetchCoordinator[list[PricePoint]]) -> None:
        self.changes.notify(self)

    def _on_selection_changed(self, selection: SelectionController) -> None:
        asset_id = selection.state.selected_asset_id
        # Only a new selection triggers a fetch. Transitions, list toggles and
        # collapses re-notify with the same id; a failed fetch waits for reload.
        if asset_id is not None and asset_id != self.history.key:
            self.history.request(
                asset_id, functools.partial(self.client.get_price_history, asset_id)
            )
        self.changes.notify(self)


class ChartBinding:
    """Keeps one chart engine in sync with the session's displayed history.

    The engine is synced only when the displayed asset, the history fetch
    generation, or the direction of the 24h change differs from the last sync,
    so unrelated notifications never touch the chart.
    """

    def __init__(self, session: MarketSession, engine: ChartSyncEngine) -> None:
        self._session = session
        self._engine = engine
        self._last_synced: tuple[str, int, bool] | None = None
        self._sub_id: int | None = session.changes.subscribe(self._on_change)
        self._on_change(session)

    def close(self) -> None:
        """Stops listening and destroys the chart."""
        if self._sub_id is not None:
            self._session.changes.unsubscribe(self._sub_id)
            self._sub_id = None
        self._engine.destroy()

    def _on_change(self, session: MarketSession) -> None:
        asset = session.displayed_asset
        points = session.displayed_history
        if asset is None or not points:
            return
        marker = (asset.id, session.history.generation, asset.change_24h >= 0)
        if marker == self._last_synced:
            return
        self._last_synced = marker
        self._engine.sync(points, asset.change_24h)
