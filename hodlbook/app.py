"""HTTP routes of the portfolio API."""

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import datetime
from http import HTTPStatus
from typing import Any, Iterable, Iterator, Mapping, Optional, Protocol

from flask import Flask, Response, jsonify, request

from .assets import AssetController
from .controller import PriceCache, PriceFetcher, Publisher, Repository
from .errors import APIError, ConfigurationError
from .exchanges import ExchangeController
from .imports import ExportFile, ImportExportController
from .models import format_timestamp
from .portfolio import PortfolioController
from .prices import PriceController, sse_stream


class LivePriceService(Protocol):
    """The background service that keeps live prices up to date."""

    def get_custom_source_assets_with_prices(self) -> list[Any]: ...
    def force_sync(self) -> None: ...


def _jsonable(value: Any) -> Any:
    """Turn records, dataclasses and containers into JSON-ready values."""
    if not isinstance(value, type) and callable(getattr(value, "to_dict", None)):
        return _jsonable(value.to_dict())
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


def _json(value: Any, status: int = HTTPStatus.OK) -> tuple[Response, int]:
    return jsonify(_jsonable(value)), int(status)


def _no_content() -> tuple[str, int]:
    return "", int(HTTPStatus.NO_CONTENT)


def _file_response(export: ExportFile) -> Response:
    response = Response(export.body, status=int(HTTPStatus.OK), mimetype=export.content_type)
    response.headers["Content-Disposition"] = export.content_disposition
    return response


def _messages(channel: Any) -> Iterator[Any]:
    """Messages from a queue (ended by None) or from any iterable."""
    get = getattr(channel, "get", None)
    if callable(get) and not isinstance(channel, Mapping):
        return iter(get, None)
    return iter(channel)


def create_app(
    repository: Repository,
    price_cache: Optional[PriceCache] = None,
    price_fetcher: Optional[PriceFetcher] = None,
    price_channel: Optional[Iterable[Any]] = None,
    asset_created_pub: Optional[Publisher] = None,
    live_price_service: Optional[LivePriceService] = None,
) -> Flask:
    """Build the Flask application serving the /api routes.

    ``price_channel`` feeds the live price stream; a queue is read until it
    yields None. Without it the stream route is not registered.
    """
    if repository is None:
        raise ConfigurationError("repository is required")

    shared = {
        "price_cache": price_cache,
        "price_fetcher": price_fetcher,
        "asset_created_pub": asset_created_pub,
    }
    assets = AssetController(repository, **shared)
    exchanges = ExchangeController(repository, **shared)
    transfers = ImportExportController(repository, **shared)
    portfolio = PortfolioController(repository, **shared)
    prices = PriceController(repository, **shared)

    app = Flask(__name__)

    @app.errorhandler(APIError)
    def api_error(exc: APIError):
        return jsonify(exc.to_dict()), int(exc.status)

    # Assets

    @app.get("/api/assets")
    def list_assets():
        return _json(assets.list_assets(request.args))

    @app.post("/api/assets")
    def create_asset():
        return _json(assets.create_asset(request.get_data()), HTTPStatus.CREATED)

    @app.get("/api/assets/symbols")
    def unique_symbols():
        return _json(assets.unique_symbols())

    @app.get("/api/assets/export")
    def export_assets():
        return _file_response(transfers.export_assets(request.args.get("format")))

    @app.post("/api/assets/import")
    def import_assets():
        upload = request.files.get("file")
        filename = upload.filename if upload is not None else ""
        data = upload.read() if upload is not None else None
        result = transfers.import_assets(request.args.get("format"), filename or "", data)
        return _json(result)

    @app.get("/api/assets/<raw_id>")
    def get_asset(raw_id: str):
        return _json(assets.get_asset(raw_id))

    @app.put("/api/assets/<raw_id>")
    def update_asset(raw_id: str):
        return _json(assets.update_asset(raw_id, request.get_data()))

    @app.delete("/api/assets/<raw_id>")
    def delete_asset(raw_id: str):
        assets.delete_asset(raw_id)
        return _no_content()

    # Exchanges

    @app.get("/api/exchanges")
    def list_exchanges():
        return _json(exchanges.list_exchanges(request.args))

    @app.post("/api/exchanges")
    def create_exchange():
        return _json(exchanges.create_exchange(request.get_data()), HTTPStatus.CREATED)

    @app.get("/api/exchanges/export")
    def export_exchanges():
        return _file_response(transfers.export_exchanges(request.args.get("format")))

    @app.get("/api/exchanges/<raw_id>")
    def get_exchange(raw_id: str):
        return _json(exchanges.get_exchange(raw_id))

    @app.put("/api/exchanges/<raw_id>")
    def update_exchange(raw_id: str):
        return _json(exchanges.update_exchange(raw_id, request.get_data()))

    @app.delete("/api/exchanges/<raw_id>")
    def delete_exchange(raw_id: str):
        exchanges.delete_exchange(raw_id)
        return _no_content()

    # Import history

    @app.get("/api/imports")
    def list_import_logs():
        return _json(transfers.list_import_logs())

    @app.get("/api/imports/<raw_id>")
    def get_import_log(raw_id: str):
        return _json(transfers.get_import_log(raw_id))

    @app.post("/api/imports/<raw_id>/retry")
    def retry_import(raw_id: str):
        return _json(transfers.retry_import(raw_id, request.get_data()))

    @app.delete("/api/imports/<raw_id>")
    def delete_import_log(raw_id: str):
        transfers.delete_import_log(raw_id)
        return _no_content()

    # Portfolio

    @app.get("/api/portfolio/summary")
    def portfolio_summary():
        return _json(portfolio.summary())

    @app.get("/api/portfolio/allocation")
    def portfolio_allocation():
        return _json(portfolio.allocation())

    @app.get("/api/portfolio/performance")
    def portfolio_performance():
        return _json(portfolio.performance())

    @app.get("/api/portfolio/history")
    def portfolio_history():
        return _json(portfolio.history(request.args.get("days")))

    # Prices

    if price_channel is not None:

        @app.get("/api/prices/stream")
        def stream_prices():
            response = Response(sse_stream(_messages(price_channel)), mimetype="text/event-stream")
            response.headers["Cache-Control"] = "no-cache"
            return response

    @app.get("/api/prices")
    def list_prices():
        return _json(prices.list_prices())

    @app.get("/api/prices/currencies")
    def search_currencies():
        return _json(prices.search_currencies(request.args.get("q", "")))

    @app.get("/api/prices/deep-search")
    def deep_search():
        result = prices.deep_search(
            request.args.get("q", ""),
            request.args.get("name", ""),
            request.args.get("network", ""),
            request.args.getlist("providers"),
        )
        return _json(result)

    @app.get("/api/prices/deep-search/providers")
    def deep_search_providers():
        return _json(prices.deep_search_providers())

    if live_price_service is not None:

        @app.get("/api/prices/deep-search/debug")
        def debug_deep_search_assets():
            found = live_price_service.get_custom_source_assets_with_prices()
            return _json({"count": len(found), "assets": found})

        @app.post("/api/prices/sync")
        def sync_prices():
            try:
                live_price_service.force_sync()
            except Exception as exc:
                return _json({"error": str(exc)}, HTTPStatus.INTERNAL_SERVER_ERROR)
            return _json({"message": "prices synced"})

    @app.get("/api/prices/<symbol>")
    def get_price(symbol: str):
        return _json(prices.get_price(symbol))

    @app.get("/api/prices/history/<symbol>")
    def price_history(symbol: str):
        return _json(prices.price_history(symbol))

    return app