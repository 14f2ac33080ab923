import enum
from dataclasses import dataclass
from datetime import datetime


class RequestStatus(enum.Enum):
    """Lifecycle of one fetch concern."""

    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


# Legal status changes. A superseding trigger while LOADING keeps the status
# LOADING rather than re-entering it, so LOADING never maps to itself.
ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.IDLE: frozenset({RequestStatus.LOADING}),
    RequestStatus.LOADING: frozenset({RequestStatus.SUCCESS, RequestStatus.ERROR}),
    RequestStatus.SUCCESS: frozenset({RequestStatus.LOADING}),
    RequestStatus.ERROR: frozenset({RequestStatus.LOADING}),
}


@dataclass(frozen=True, slots=True)
class Asset:
    """A tracked cryptocurrency and its market metrics for one fetch cycle."""

    id: str
    symbol: str
    name: str
    rank: int
    price: float
    change_24h: float
    market_cap: float
    volume_24h: float
    circulating_supply: float
    image: str
    last_updated: datetime | None = None


@dataclass(frozen=True, slots=True)
class PricePoint:
    """A single sample of an asset's price history."""

    timestamp: int  # epoch milliseconds
    price: float


@dataclass(frozen=True, slots=True)
class SelectionState:
    """What the user has selected and how the layout reacts to it."""

    selected_asset_id: str | None = None
    list_expanded: bool = True
    transitioning: bool = False
