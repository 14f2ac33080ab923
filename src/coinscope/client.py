import json
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from coinscope.config import APISettings
from coinscope.errors import MalformedPayload, NetworkFailure
from coinscope.mapper import map_asset_list, map_price_history
from coinscope.models import Asset, PricePoint


class MarketDataClient:
    """Async client for the CoinGecko-compatible market-data REST API.

    The client only translates HTTP into domain records: it does not retry,
    cache or track request status. Every failure surfaces as a
    `NetworkFailure` or a `MalformedPayload`.
    """

    def __init__(self, http_client: httpx.AsyncClient, api: APISettings) -> None:
        """Initializes the client.

        Args:
            http_client: A shared httpx.AsyncClient whose base URL is the API
                root, as built by `create_http_client`. The caller owns its
                lifecycle.
            api: Endpoint, currency and paging settings.
        """
        self.http_client = http_client
        self.api = api

    @classmethod
    def create_http_client(cls, api: APISettings) -> httpx.AsyncClient:
        """Builds the httpx client the application shares across requests."""
        return httpx.AsyncClient(
            base_url=api.base_url,
            http2=True,
            timeout=api.request_timeout_s,
            follow_redirects=True,
            headers={"Accept": "application/json"},
        )

    async def _get_json(self, path: str, params: dict[str, Any]) -> Any:
        """GETs ``path`` relative to the client's base URL; returns decoded JSON."""
        try:
            response = await self.http_client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            err_msg = f"GET {path} returned HTTP {status}"
            raise NetworkFailure(err_msg, status_code=status) from e
        except httpx.HTTPError as e:
            err_msg = f"GET {path} failed: {type(e).__name__}: {e}"
            raise NetworkFailure(err_msg) from e

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            err_msg = f"GET {path} returned a body that is not valid JSON."
            raise MalformedPayload(err_msg) from e

    async def get_assets(self) -> list[Asset]:
        """Fetches the market-cap ranked asset list."""
        params = {
            "vs_currency": self.api.vs_currency,
            "order": "market_cap_desc",
            "per_page": self.api.page_size,
            "page": 1,
            "price_change_percentage": "24h",
        }
        logger.info(f"Fetching top {self.api.page_size} assets...")
        data = await self._get_json("coins/markets", params)
        assets = map_asset_list(data)
        logger.success(f"Fetched {len(assets)} assets.")
        return assets

    async def get_price_history(
        self, asset_id: str, days: int | None = None
    ) -> list[PricePoint]:
        """Fetches the price series of one asset over the last ``days`` days.

        Args:
            asset_id: The API's stable asset key (e.g. 'bitcoin').
            days: Size of the window; defaults to the configured history window.
        """
        window = days if days is not None else self.api.history_days
        params = {"vs_currency": self.api.vs_currency, "days": window}
        logger.info(f"Fetching {window}d price history for '{asset_id}'...")
        data = await self._get_json(
            f"coins/{quote(asset_id, safe='')}/market_chart", params
        )
        points = map_price_history(data)
        logger.success(f"Fetched {len(points)} price points for '{asset_id}'.")
        return points
