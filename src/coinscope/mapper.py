"""Pure mapping from raw market-data payloads to domain records.

Nothing in this module performs I/O or keeps state. Malformed input raises
`MalformedPayload`; a failed lookup returns ``None``.
"""

import math
from collections.abc import Iterable
from typing import Any

from loguru import logger

from coinscope.errors import MalformedPayload
from coinscope.models import Asset, PricePoint
from coinscope.utils.time import parse_iso_timestamp


def _to_float(raw: dict[str, Any], key: str, *, required: bool) -> float:
    """Reads a finite number from ``raw[key]``.

    Optional fields that are missing or ``null`` read as ``0.0``. Values that
    are present but non-numeric or non-finite are always malformed.
    """
    value = raw.get(key)
    if value is None:
        if required:
            err_msg = f"Required field '{key}' is missing."
            raise MalformedPayload(err_msg)
        return 0.0
    if isinstance(value, bool):
        err_msg = f"Field '{key}' must be numeric, got a boolean."
        raise MalformedPayload(err_msg)
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        err_msg = f"Field '{key}' is not numeric: {value!r}"
        raise MalformedPayload(err_msg) from e
    if not math.isfinite(number):
        err_msg = f"Field '{key}' is not finite: {value!r}"
        raise MalformedPayload(err_msg)
    return number


def _to_text(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value:
        err_msg = f"Field '{key}' must be a non-empty string."
        raise MalformedPayload(err_msg)
    return value


def map_asset(raw: Any, fallback_rank: int | None = None) -> Asset:
    """Maps one entry of the markets endpoint into an `Asset`.

    Args:
        raw: A single decoded JSON object from the markets response.
        fallback_rank: Rank to use when the payload has no market-cap rank
            (newly listed coins). Without it a missing rank is malformed.

    Raises:
        MalformedPayload: If a required field is missing, non-numeric or
            non-finite.
    """
    if not isinstance(raw, dict):
        err_msg = f"Asset entry must be an object, got {type(raw).__name__}."
        raise MalformedPayload(err_msg)

    if raw.get("market_cap_rank") is None and fallback_rank is not None:
        rank_value = float(fallback_rank)
    else:
        rank_value = _to_float(raw, "market_cap_rank", required=True)
    if not rank_value.is_integer() or rank_value < 1:
        err_msg = f"Field 'market_cap_rank' must be a positive integer: {rank_value}"
        raise MalformedPayload(err_msg)

    last_updated = None
    if isinstance(raw.get("last_updated"), str):
        try:
            last_updated = parse_iso_timestamp(raw["last_updated"])
        except ValueError:
            logger.debug(f"Ignoring unparseable last_updated for '{raw.get('id')}'.")

    image = raw.get("image")
    return Asset(
        id=_to_text(raw, "id"),
        symbol=_to_text(raw, "symbol").upper(),
        name=_to_text(raw, "name"),
        rank=int(rank_value),
        price=_to_float(raw, "current_price", required=True),
        change_24h=_to_float(raw, "price_change_percentage_24h", required=False),
        market_cap=_to_float(raw, "market_cap", required=False),
        volume_24h=_to_float(raw, "total_volume", required=False),
        circulating_supply=_to_float(raw, "circulating_supply", required=False),
        image=image if isinstance(image, str) else "",
        last_updated=last_updated,
    )


def map_asset_list(raw_list: Any) -> list[Asset]:
    """Maps the markets response, preserving the API's rank order.

    Raises:
        MalformedPayload: If the payload is not a list or any entry is malformed.
    """
    if not isinstance(raw_list, list):
        err_msg = f"Asset list must be an array, got {type(raw_list).__name__}."
        raise MalformedPayload(err_msg)
    return [
        map_asset(raw, fallback_rank=position)
        for position, raw in enumerate(raw_list, start=1)
    ]


def map_price_history(raw: Any) -> list[PricePoint]:
    """Maps ``[timestamp_ms, price]`` pairs into ordered `PricePoint` records.

    Accepts either the market-chart object (its ``prices`` key is used) or the
    bare list of pairs. The output has one point per input pair, in input
    order; a timestamp that goes backwards is malformed.

    Raises:
        MalformedPayload: If the structure or any pair is invalid.
    """
    pairs = raw.get("prices") if isinstance(raw, dict) else raw
    if not isinstance(pairs, list):
        err_msg = "Price history must contain an array of [timestamp, price] pairs."
        raise MalformedPayload(err_msg)

    points: list[PricePoint] = []
    for index, pair in enumerate(pairs):
        if not isinstance(pair, list | tuple) or len(pair) < 2:  # noqa: PLR2004
            err_msg = f"Price history entry {index} is not a pair: {pair!r}"
            raise MalformedPayload(err_msg)
        fields = {"timestamp": pair[0], "price": pair[1]}
        timestamp = _to_float(fields, "timestamp", required=True)
        point = PricePoint(
            timestamp=int(timestamp),
            price=_to_float(fields, "price", required=True),
        )
        if points and point.timestamp < points[-1].timestamp:
            err_msg = f"Price history is not in ascending time order at entry {index}."
            raise MalformedPayload(err_msg)
        points.append(point)
    return points


def find_by_id(asset_id: str | None, assets: Iterable[Asset]) -> Asset | None:
    """Returns the asset whose id equals ``asset_id`` exactly, or ``None``."""
    if asset_id is None:
        return None
    return next((asset for asset in assets if asset.id == asset_id), None)

