"""Swaps between assets: listing, lookup and editing."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from .assets import parse_day
from .controller import Controller, parse_id
from .errors import bad_request, internal_error, not_found
from .models import Exchange

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_END_OF_DAY = timedelta(days=1) - timedelta(seconds=1)
_SAME_SYMBOLS = "from and to symbols must be different"


def _parse_int(text: str) -> Optional[int]:
    if _INTEGER.fullmatch(text) is None:
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


@dataclass
class ExchangeFilter:
    """Criteria for listing exchanges; None matches everything."""

    limit: int = 0
    offset: int = 0
    symbol: Optional[str] = None
    from_symbol: Optional[str] = None
    to_symbol: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_query(cls, query: Mapping[str, str]) -> "ExchangeFilter":
        """Build a filter from query parameters, ignoring malformed values."""
        result = cls()
        if (limit := _parse_int(query.get("limit") or "")) is not None:
            result.limit = limit
        if (offset := _parse_int(query.get("offset") or "")) is not None:
            result.offset = offset
        result.symbol = query.get("symbol") or None
        result.from_symbol = query.get("from_symbol") or None
        result.to_symbol = query.get("to_symbol") or None
        if start := query.get("start_date"):
            try:
                result.start_date = parse_day(start)
            except ValueError:
                pass
        if end := query.get("end_date"):
            try:
                result.end_date = parse_day(end) + _END_OF_DAY
            except ValueError:
                pass
        return result


def _bind_exchange(payload: Any) -> Exchange:
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise bad_request("invalid input", str(exc)) from exc
    if payload is None:
        return Exchange()
    try:
        return Exchange.from_dict(payload)
    except ValueError as exc:
        raise bad_request("invalid input", str(exc)) from exc


class ExchangeController(Controller):
    """Operations on exchanges between assets."""

    def list_exchanges(self, query: Optional[Mapping[str, str]] = None) -> Any:
        exchange_filter = ExchangeFilter.from_query(query or {})
        try:
            return self.repository.list_exchanges(exchange_filter)
        except Exception as exc:
            raise internal_error("failed to fetch exchanges") from exc

    def get_exchange(self, raw_id: str) -> Exchange:
        exchange_id = parse_id(raw_id, "exchange")
        try:
            return self.repository.get_exchange_by_id(exchange_id)
        except Exception as exc:
            raise not_found("exchange not found") from exc

    def create_exchange(self, payload: Any) -> Exchange:
        exchange = _bind_exchange(payload)
        if exchange.from_symbol == exchange.to_symbol:
            raise bad_request(_SAME_SYMBOLS)
        if exchange.timestamp is None:
            exchange.timestamp = datetime.now().astimezone()
        try:
            self.repository.create_exchange(exchange)
        except Exception as exc:
            raise internal_error("failed to create exchange") from exc
        return exchange

    def update_exchange(self, raw_id: str, payload: Any) -> Exchange:
        exchange_id = parse_id(raw_id, "exchange")
        try:
            self.repository.get_exchange_by_id(exchange_id)
        except Exception as exc:
            raise not_found("exchange not found") from exc

        exchange = _bind_exchange(payload)
        if exchange.from_symbol == exchange.to_symbol:
            raise bad_request(_SAME_SYMBOLS)

        exchange.id = exchange_id
        try:
            self.repository.update_exchange(exchange)
        except Exception as exc:
            raise internal_error("failed to update exchange") from exc
        return exchange

    def delete_exchange(self, raw_id: str) -> None:
        exchange_id = parse_id(raw_id, "exchange")
        try:
            self.repository.delete_exchange(exchange_id)
        except LookupError:
            pass
        except Exception as exc:
            raise internal_error("failed to delete exchange") from exc