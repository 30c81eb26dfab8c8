"""Asset deposits and withdrawals: listing, lookup and editing."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from .controller import Controller, parse_id
from .errors import bad_request, internal_error, not_found
from .models import Asset, Price

_DAY = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_END_OF_DAY = timedelta(days=1) - timedelta(seconds=1)


def parse_day(value: str) -> datetime:
    """Parse a YYYY-MM-DD date as midnight UTC, raising ValueError if invalid."""
    match = _DAY.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"invalid date {value!r}: expected YYYY-MM-DD")
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, tzinfo=timezone.utc)
    except ValueError as exc:
        raise ValueError(f"invalid date {value!r}: {exc}") from exc


def _parse_int(text: str) -> Optional[int]:
    if _INTEGER.fullmatch(text) is None:
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def _query_value(query: Mapping[str, str], key: str) -> str:
    return query.get(key) or ""


@dataclass
class AssetFilter:
    """Criteria for listing assets; empty values match everything."""

    limit: int = 0
    offset: int = 0
    symbol: str = ""
    transaction_type: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "AssetFilter":
        """Build a filter from query parameters, ignoring malformed values."""
        result = cls()
        if (limit := _parse_int(_query_value(query, "limit"))) is not None:
            result.limit = limit
        if (offset := _parse_int(_query_value(query, "offset"))) is not None:
            result.offset = offset
        result.symbol = _query_value(query, "symbol")
        result.transaction_type = _query_value(query, "transaction_type")
        if start := _query_value(query, "start_date"):
            try:
                result.start_date = parse_day(start)
            except ValueError:
                pass
        if end := _query_value(query, "end_date"):
            try:
                result.end_date = parse_day(end) + _END_OF_DAY
            except ValueError:
                pass
        return result


def _decode(payload: Any) -> Any:
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            return json.loads(payload)
        except ValueError as exc:
            raise bad_request("invalid input", str(exc)) from exc
    return payload


def _bind_asset(payload: Any) -> Asset:
    data = _decode(payload)
    if data is None:
        return Asset()
    try:
        return Asset.from_dict(data)
    except ValueError as exc:
        raise bad_request("invalid input", str(exc)) from exc


class AssetController(Controller):
    """Operations on asset entries."""

    def list_assets(self, query: Optional[Mapping[str, str]] = None) -> Any:
        asset_filter = AssetFilter.from_query(query or {})
        try:
            return self.repository.list_assets(asset_filter)
        except Exception as exc:
            raise internal_error("failed to fetch assets") from exc

    def get_asset(self, raw_id: str) -> Asset:
        asset_id = parse_id(raw_id, "asset")
        try:
            return self.repository.get_asset_by_id(asset_id)
        except Exception as exc:
            raise not_found("asset not found") from exc

    def create_asset(self, payload: Any) -> Asset:
        asset = _bind_asset(payload)
        if asset.timestamp is None:
            asset.timestamp = datetime.now().astimezone()
        try:
            self.repository.create_asset(asset)
        except Exception as exc:
            raise internal_error("failed to create asset") from exc
        return asset

    def update_asset(self, raw_id: str, payload: Any) -> Asset:
        asset_id = parse_id(raw_id, "asset")
        try:
            self.repository.get_asset_by_id(asset_id)
        except Exception as exc:
            raise not_found("asset not found") from exc

        asset = _bind_asset(payload)
        asset.id = asset_id
        try:
            self.repository.update_asset(asset)
        except Exception as exc:
            raise internal_error("failed to update asset") from exc

        self._ensure_price_at_timestamp(asset)
        return asset

    def delete_asset(self, raw_id: str) -> None:
        asset_id = parse_id(raw_id, "asset")
        try:
            self.repository.delete_asset(asset_id)
        except LookupError:
            pass
        except Exception as exc:
            raise internal_error("failed to delete asset") from exc

    def unique_symbols(self) -> list[str]:
        try:
            return self.repository.get_unique_symbols()
        except Exception as exc:
            raise internal_error("failed to fetch symbols") from exc

    def _ensure_price_at_timestamp(self, asset: Asset) -> None:
        """Record the current USD price of the asset at its timestamp."""
        fetcher = self.price_fetcher
        if fetcher is None:
            return

        value = 0.0
        if asset.price_source:
            try:
                sourced = fetcher.fetch_by_source(asset.price_source, asset.symbol, asset.name)
            except Exception:
                self.logger.debug("price lookup by source failed", exc_info=True)
            else:
                if sourced > 0:
                    value = sourced

        if value == 0:
            try:
                quotes = fetcher.fetch_all()
            except Exception:
                self.logger.debug("fetching prices failed", exc_info=True)
                return
            value = next((q.value for q in quotes if q.symbol == asset.symbol), 0.0)

        if value == 0:
            return

        try:
            self.repository.create_price(
                Price(symbol=asset.symbol, currency="USD", price=value, timestamp=asset.timestamp)
            )
        except Exception:
            self.logger.warning("recording price for %s failed", asset.symbol, exc_info=True)