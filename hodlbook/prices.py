"""Current prices, price history, currency search and the live price stream."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Optional, Union

from .controller import Controller
from .errors import bad_request, internal_error, not_found, service_unavailable
from .models import AssetHistoricValue

MAX_CURRENCY_RESULTS = 50
PRICE_EVENT = "prices"


def _event_line(name: str) -> str:
    return name.replace("\n", "\\n").replace("\r", "\\r")


def _data_lines(data: str) -> str:
    return data.replace("\n", "\ndata:").replace("\r", "\\r")


def _format_event(name: str, data: str) -> str:
    return f"event:{_event_line(name)}\ndata:{_data_lines(data)}\n\n"


def sse_stream(
    messages: Iterable[Union[bytes, str]],
    stop: Optional[Callable[[], bool]] = None,
) -> Iterator[str]:
    """Yield each message as a server-sent "prices" event.

    The stream ends when the messages run out or when ``stop`` returns True.
    """
    if stop is not None and stop():
        return
    for message in messages:
        if stop is not None and stop():
            return
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode("utf-8", errors="replace")
        yield _format_event(PRICE_EVENT, message)


class PriceController(Controller):
    """Read access to prices and the currency providers."""

    def list_prices(self) -> dict[str, float]:
        cache = self.price_cache
        if cache is None:
            raise service_unavailable("price service not available")
        prices: dict[str, float] = {}
        for key in list(cache.keys()):
            value = cache.get(key)
            if value is not None:
                prices[key] = value
        return prices

    def get_price(self, symbol: str) -> dict[str, Any]:
        cache = self.price_cache
        if cache is None:
            raise service_unavailable("price service not available")
        price = cache.get(symbol)
        if price is None:
            raise not_found("price not found for symbol")
        return {"symbol": symbol, "price": price}

    def price_history(self, symbol: str) -> list[AssetHistoricValue]:
        try:
            return self.repository.select_all_by_symbol(symbol.upper())
        except Exception as exc:
            raise internal_error("failed to fetch price history") from exc

    def search_currencies(self, query: str = "") -> list[dict[str, Any]]:
        """Currencies whose symbol contains the query, at most 50 of them."""
        needle = (query or "").upper()
        if self.price_fetcher is None:
            raise internal_error("failed to fetch currencies")
        try:
            quotes = self.price_fetcher.fetch_all()
        except Exception as exc:
            raise internal_error("failed to fetch currencies") from exc
        results = [
            {"symbol": quote.symbol, "name": quote.name, "price": quote.value}
            for quote in quotes
            if not needle or needle in quote.symbol
        ]
        return results[:MAX_CURRENCY_RESULTS]

    def deep_search(
        self,
        query: str,
        name: str = "",
        network: str = "",
        providers: Optional[list[str]] = None,
    ) -> list[Any]:
        if not query:
            raise bad_request("query parameter 'q' is required")
        if self.price_fetcher is None:
            raise internal_error("deep search failed")
        try:
            return self.price_fetcher.deep_search(query, name or "", network or "", list(providers or []))
        except Exception as exc:
            raise internal_error("deep search failed") from exc

    def deep_search_providers(self) -> list[str]:
        if self.price_fetcher is None:
            return []
        return list(self.price_fetcher.deep_search_providers())