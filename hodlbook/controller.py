"""Shared controller state and the interfaces it depends on."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol

from .errors import ConfigurationError, bad_request
from .models import Asset, AssetHistoricValue, Exchange, ImportLog, Price

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL_ID = re.compile(r"[+-]?[0-9]+")


class Repository(Protocol):
    """Storage used by the controllers.

    Lookups by id raise LookupError when the record does not exist.
    """

    def list_assets(self, filter: Any) -> Any: ...
    def get_asset_by_id(self, asset_id: int) -> Asset: ...
    def create_asset(self, asset: Asset) -> None: ...
    def update_asset(self, asset: Asset) -> None: ...
    def delete_asset(self, asset_id: int) -> None: ...
    def get_unique_symbols(self) -> list[str]: ...
    def get_all_assets(self) -> list[Asset]: ...
    def list_exchanges(self, filter: Any) -> Any: ...
    def get_exchange_by_id(self, exchange_id: int) -> Exchange: ...
    def create_exchange(self, exchange: Exchange) -> None: ...
    def update_exchange(self, exchange: Exchange) -> None: ...
    def delete_exchange(self, exchange_id: int) -> None: ...
    def get_all_exchanges(self) -> list[Exchange]: ...
    def create_price(self, price: Price) -> None: ...
    def select_all_by_symbol(self, symbol: str) -> list[AssetHistoricValue]: ...
    def create_import_log(self, log: ImportLog) -> None: ...
    def list_import_logs(self) -> list[ImportLog]: ...
    def get_import_log_by_id(self, log_id: int) -> ImportLog: ...
    def update_import_log(self, log: ImportLog) -> None: ...
    def delete_import_log(self, log_id: int) -> None: ...


@dataclass(frozen=True)
class PriceQuote:
    """A current price of one asset from a provider."""

    symbol: str
    name: str = ""
    value: float = 0.0


class PriceFetcher(Protocol):
    """A source of current prices."""

    def fetch_all(self) -> list[PriceQuote]: ...
    def fetch_by_source(self, source: str, symbol: str, name: str) -> float: ...
    def deep_search(
        self, query: str, name: str, network: str, providers: list[str]
    ) -> list[Any]: ...
    def deep_search_providers(self) -> list[str]: ...


class PriceCache(Protocol):
    """Latest prices by symbol; a plain dict satisfies this."""

    def get(self, key: str) -> Optional[float]: ...
    def keys(self) -> Iterable[str]: ...


class Publisher(Protocol):
    """Receives a JSON message whenever an asset is created."""

    def publish(self, data: bytes) -> None: ...


class Controller:
    """Holds the collaborators shared by the API controllers."""

    def __init__(
        self,
        repository: Repository,
        *,
        price_cache: Optional[PriceCache] = None,
        price_fetcher: Optional[PriceFetcher] = None,
        asset_created_pub: Optional[Publisher] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if repository is None:
            raise ConfigurationError("repository cannot be nil")
        self.repository = repository
        self.price_cache = price_cache
        self.price_fetcher = price_fetcher
        self.asset_created_pub = asset_created_pub
        self.logger = logger or logging.getLogger(__name__)

    def supported_symbols_with_prices(self) -> tuple[set[str], dict[str, float]]:
        """Symbols known to the price provider and their current prices.

        Both are empty when there is no provider or it fails.
        """
        if self.price_fetcher is None:
            return set(), {}
        try:
            quotes = self.price_fetcher.fetch_all()
        except Exception:
            self.logger.warning("fetching supported symbols failed", exc_info=True)
            return set(), {}
        prices = {quote.symbol.upper(): quote.value for quote in quotes}
        return set(prices), prices


def parse_id(raw: str, label: str) -> int:
    """Parse a decimal 64-bit id from a path, raising a 400 error if invalid."""
    message = f"invalid {label} id" if label else "invalid id"
    if not isinstance(raw, str) or _DECIMAL_ID.fullmatch(raw) is None:
        raise bad_request(message)
    value = int(raw)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise bad_request(message)
    return value