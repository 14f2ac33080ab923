# src/coinscope/__init__.py
"""coinscope: a desktop client for live cryptocurrency market data.

The package fetches a ranked asset list from a public pricing API, keeps a
single selected asset in sync with its price history, and redraws a
sparkline chart in place as data arrives.

The application runs on one asyncio event loop driven by Qt, with the
state-synchronization core kept free of any GUI imports.

Key modules and sub-packages:
- `client`: Async HTTP client for the market-data REST endpoints.
- `mapper`: Pure mapping from raw payloads to domain records.
- `fetcher`: Per-concern request-status state machines.
- `selection`: Selected asset, debounced transitions and list layout.
- `chart`: Create-once / update-in-place chart synchronization.
- `session`: Wiring of the above into one injectable object.
- `ui`: The PySide6 + pyqtgraph graphical user interface.
"""

# The version is managed in pyproject.toml and is dynamically
# retrieved here using importlib.metadata.
import importlib.metadata

try:
    __version__: str = importlib.metadata.version("coinscope")
except importlib.metadata.PackageNotFoundError:
    # Development checkout that has not been installed yet.
    __version__ = "0.0.0-dev"
