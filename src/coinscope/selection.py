import asyncio
from collections.abc import Sequence
from dataclasses import replace

from loguru import logger

from coinscope.mapper import find_by_id
from coinscope.models import Asset, SelectionState
from coinscope.utils.listeners import ListenerRegistry

DEFAULT_TRANSITION_DELAY_S = 0.5
DEFAULT_COLLAPSE_BREAKPOINT_PX = 800


class SelectionController:
    """Holds the selected asset and drives the detail panel's transitions.

    Two ids are tracked separately. ``state.selected_asset_id`` changes the
    moment the user picks an asset; `displayed_asset_id` only catches up when
    the transition timer fires. Every selection change restarts that timer,
    so a burst of selections lands only the last one.

    Listeners on `listeners` hear about every state change; listeners on
    `transitions` receive the asset id each time a transition completes.
    """

    def __init__(
        self,
        transition_delay_s: float = DEFAULT_TRANSITION_DELAY_S,
        collapse_breakpoint_px: int = DEFAULT_COLLAPSE_BREAKPOINT_PX,
        viewport_width: int | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """Initializes the controller.

        Args:
            transition_delay_s: How long the previous asset stays displayed.
            collapse_breakpoint_px: Viewports this wide or narrower collapse
                the list on selection.
            viewport_width: Initial viewport width; None behaves as wide.
            loop: Loop that schedules the transition timer. Defaults to the
                running loop.
        """
        self.transition_delay_s = transition_delay_s
        self.collapse_breakpoint_px = collapse_breakpoint_px
        self.listeners: ListenerRegistry[SelectionController] = ListenerRegistry(
            "selection"
        )
        self.transitions: ListenerRegistry[str] = ListenerRegistry("transition")
        self._loop = loop or asyncio.get_running_loop()
        self._viewport_width = viewport_width
        self._state = SelectionState()
        self._assets: list[Asset] = []
        self._displayed_asset_id: str | None = None
        self._timer: asyncio.TimerHandle | None = None

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def displayed_asset_id(self) -> str | None:
        """The asset the detail panel shows, lagging the selection while
        a transition is pending."""
        return self._displayed_asset_id

    def set_viewport_width(self, width: int) -> None:
        self._viewport_width = width

    def on_assets_loaded(self, assets: Sequence[Asset]) -> None:
        """Replaces the known asset list and auto-selects its first entry.

        Auto-selection only happens while nothing is selected, and does not
        collapse the list: the user has not interacted yet.
        """
        self._assets = list(assets)
        if self._state.selected_asset_id is None and self._assets:
            first = self._assets[0]
            logger.info(f"Auto-selecting '{first.id}' (rank {first.rank}).")
            self._apply_selection(first.id, collapse=False)

    def select_asset(self, asset_id: str) -> bool:
        """Selects ``asset_id`` if it is in the current list.

        Returns:
            False when the id is unknown; the state is then left untouched.
        """
        if find_by_id(asset_id, self._assets) is None:
            logger.debug(f"Ignoring selection of unknown asset '{asset_id}'.")
            return False
        self._apply_selection(asset_id, collapse=True)
        return True

    def toggle_list(self, expanded: bool) -> None:
        """Shows or hides the asset list on explicit user request."""
        if self._state.list_expanded == expanded:
            return
        self._state = replace(self._state, list_expanded=expanded)
        logger.debug(f"Asset list {'expanded' if expanded else 'collapsed'}.")
        self.listeners.notify(self)

    def close(self) -> None:
        """Cancels any pending transition."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_narrow(self) -> bool:
        return (
            self._viewport_width is not None
            and self._viewport_width <= self.collapse_breakpoint_px
        )

    def _apply_selection(self, asset_id: str, *, collapse: bool) -> None:
        list_expanded = self._state.list_expanded
        if collapse and self._is_narrow():
            list_expanded = False

        changed = asset_id != self._state.selected_asset_id
        if not changed and list_expanded == self._state.list_expanded:
            return

        self._state = replace(
            self._state,
            selected_asset_id=asset_id,
            list_expanded=list_expanded,
            transitioning=self._state.transitioning or changed,
        )
        if changed:
            self._schedule_transition(asset_id)
        self.listeners.notify(self)

    def _schedule_transition(self, asset_id: str) -> None:
        if self._timer is not None:
            self._timer.cancel()
            logger.debug("Pending transition superseded by a newer selection.")
        self._timer = self._loop.call_later(
            self.transition_delay_s, self._complete_transition, asset_id
        )
        logger.debug(f"Transition to '{asset_id}' scheduled.")

    def _complete_transition(self, asset_id: str) -> None:
        self._timer = None
        self._displayed_asset_id = asset_id
        self._state = replace(self._state, transitioning=False)
        logger.info(f"Displaying '{asset_id}'.")
        self.listeners.notify(self)
        self.transitions.notify(asset_id)
