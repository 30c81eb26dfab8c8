"""Portfolio views: holdings, allocation, performance and value history."""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional, Union

from .controller import Controller
from .errors import internal_error
from .models import Asset, Exchange

DEFAULT_HISTORY_DAYS = 30
CURRENCY = "USD"

_ZERO_INSTANT = datetime(1, 1, 1, tzinfo=timezone.utc)
_INTEGER = re.compile(r"[+-]?[0-9]+")


@dataclass
class AssetHolding:
    """The amount held of one asset and its current value."""

    symbol: str
    amount: float
    price: float
    value: float


@dataclass
class AllocationEntry:
    """The share of one asset in the portfolio value."""

    symbol: str
    amount: float
    value: float
    percentage: float = 0.0


@dataclass
class PerformanceEntry:
    """Cost basis against current value of one asset."""

    symbol: str
    cost_basis: float
    current_value: float
    profit_loss: float
    profit_percentage: float


@dataclass
class HistoryPoint:
    """The portfolio value on one day."""

    date: str
    value: float


def _instant(value: Optional[datetime]) -> datetime:
    if value is None:
        return _ZERO_INSTANT
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _day(value: Optional[datetime]) -> str:
    if value is None:
        return "0001-01-01"
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def calculate_holdings(
    assets: Iterable[Asset],
    exchanges: Iterable[Exchange],
    at: Optional[datetime] = None,
) -> dict[str, float]:
    """Net amount per symbol from deposits, withdrawals and exchanges.

    With ``at`` given, records later than that instant are left out.
    """
    limit = _instant(at) if at is not None else None
    holdings: dict[str, float] = {}

    for asset in assets:
        if limit is not None and _instant(asset.timestamp) > limit:
            continue
        if asset.transaction_type == "deposit":
            holdings[asset.symbol] = holdings.get(asset.symbol, 0.0) + asset.amount
        elif asset.transaction_type == "withdraw":
            holdings[asset.symbol] = holdings.get(asset.symbol, 0.0) - asset.amount

    for exchange in exchanges:
        if limit is not None and _instant(exchange.timestamp) > limit:
            continue
        holdings[exchange.from_symbol] = holdings.get(exchange.from_symbol, 0.0) - exchange.from_amount
        holdings[exchange.to_symbol] = holdings.get(exchange.to_symbol, 0.0) + exchange.to_amount

    return holdings


def _parse_days(days: Union[int, str, None]) -> int:
    if days is None or isinstance(days, bool):
        return DEFAULT_HISTORY_DAYS
    if isinstance(days, str):
        if _INTEGER.fullmatch(days) is None:
            return DEFAULT_HISTORY_DAYS
        days = int(days)
    return days if days > 0 else DEFAULT_HISTORY_DAYS


class PortfolioController(Controller):
    """Aggregated views over all assets and exchanges."""

    def _current_price(self, symbol: str) -> float:
        if self.price_cache is None:
            return 0.0
        return self.price_cache.get(symbol) or 0.0

    def _records(self) -> tuple[list[Asset], list[Exchange]]:
        try:
            return list(self.repository.get_all_assets()), list(self.repository.get_all_exchanges())
        except Exception as exc:
            raise internal_error("failed to calculate holdings") from exc

    def _holdings(self) -> dict[str, float]:
        assets, exchanges = self._records()
        return calculate_holdings(assets, exchanges)

    def summary(self) -> dict[str, Any]:
        holdings = self._holdings()
        total = 0.0
        entries: list[AssetHolding] = []
        for symbol, amount in holdings.items():
            if amount <= 0:
                continue
            price = self._current_price(symbol)
            value = amount * price
            total += value
            entries.append(AssetHolding(symbol=symbol, amount=amount, price=price, value=value))
        return {
            "total_value": total,
            "currency": CURRENCY,
            "holdings": [asdict(entry) for entry in entries],
        }

    def allocation(self) -> dict[str, Any]:
        holdings = self._holdings()
        total = 0.0
        entries: list[AllocationEntry] = []
        for symbol, amount in holdings.items():
            if amount <= 0:
                continue
            value = amount * self._current_price(symbol)
            total += value
            entries.append(AllocationEntry(symbol=symbol, amount=amount, value=value))
        if total > 0:
            for entry in entries:
                entry.percentage = entry.value / total * 100
        entries.sort(key=lambda entry: entry.value, reverse=True)
        return {
            "total_value": total,
            "allocations": [asdict(entry) for entry in entries],
        }

    def performance(self) -> dict[str, Any]:
        holdings = self._holdings()
        try:
            assets = list(self.repository.get_all_assets())
        except Exception as exc:
            raise internal_error("failed to get assets") from exc
        try:
            symbols = list(self.repository.get_unique_symbols())
        except Exception as exc:
            raise internal_error("failed to get symbols") from exc

        history: dict[str, list[tuple[datetime, float]]] = {}
        for symbol in symbols:
            try:
                points = self.repository.select_all_by_symbol(symbol)
            except Exception:
                self.logger.debug("price history for %s unavailable", symbol, exc_info=True)
                continue
            history.setdefault(symbol, []).extend(
                (_instant(point.timestamp), point.value) for point in points
            )

        def price_at(symbol: str, moment: Optional[datetime]) -> float:
            target = _instant(moment)
            closest = 0.0
            best: Optional[timedelta] = None
            for when, price in history.get(symbol, ()):
                diff = abs(target - when)
                if best is None or diff < best:
                    best = diff
                    closest = price
            return closest

        cost_basis: dict[str, float] = {}
        running: dict[str, float] = {}
        for asset in sorted(assets, key=lambda a: _instant(a.timestamp)):
            symbol = asset.symbol
            if asset.transaction_type == "deposit":
                price = price_at(symbol, asset.timestamp)
                cost_basis[symbol] = cost_basis.get(symbol, 0.0) + asset.amount * price
                running[symbol] = running.get(symbol, 0.0) + asset.amount
            elif asset.transaction_type == "withdraw":
                held = running.get(symbol, 0.0)
                if held > 0:
                    average = cost_basis.get(symbol, 0.0) / held
                    cost_basis[symbol] = cost_basis.get(symbol, 0.0) - asset.amount * average
                running[symbol] = held - asset.amount

        total_cost = total_value = total_profit = 0.0
        entries: list[PerformanceEntry] = []
        for symbol, amount in holdings.items():
            if amount <= 0:
                continue
            current = amount * self._current_price(symbol)
            cost = cost_basis.get(symbol, 0.0)
            profit = current - cost
            percentage = profit / cost * 100 if cost > 0 else 0.0
            total_cost += cost
            total_value += current
            total_profit += profit
            entries.append(
                PerformanceEntry(
                    symbol=symbol,
                    cost_basis=cost,
                    current_value=current,
                    profit_loss=profit,
                    profit_percentage=percentage,
                )
            )

        total_percentage = total_profit / total_cost * 100 if total_cost > 0 else 0.0
        return {
            "total_cost_basis": total_cost,
            "total_current_value": total_value,
            "total_profit_loss": total_profit,
            "total_profit_percent": total_percentage,
            "assets": [asdict(entry) for entry in entries],
        }

    def history(
        self,
        days: Union[int, str, None] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Daily portfolio value for the last ``days`` days, oldest first."""
        days = _parse_days(days)
        try:
            symbols = list(self.repository.get_unique_symbols())
        except Exception as exc:
            raise internal_error("failed to get symbols") from exc

        daily_prices: dict[str, dict[str, float]] = {}
        for symbol in symbols:
            try:
                points = self.repository.select_all_by_symbol(symbol)
            except Exception:
                self.logger.debug("price history for %s unavailable", symbol, exc_info=True)
                continue
            daily_prices[symbol] = {_day(point.timestamp): point.value for point in points}

        if now is None:
            now = datetime.now().astimezone()

        try:
            assets, exchanges = self._records()
        except Exception:
            self.logger.warning("loading records for history failed", exc_info=True)
            return {"days": days, "history": []}

        points_out: list[HistoryPoint] = []
        for offset in range(days - 1, -1, -1):
            date = now - timedelta(days=offset)
            date_str = _day(date)
            end_of_day = date.replace(hour=23, minute=59, second=59, microsecond=0)
            holdings = calculate_holdings(assets, exchanges, end_of_day)

            value = 0.0
            for symbol, amount in holdings.items():
                if amount <= 0:
                    continue
                price = daily_prices.get(symbol, {}).get(date_str, 0.0)
                if price == 0:
                    price = self._current_price(symbol)
                value += amount * price
            points_out.append(HistoryPoint(date=date_str, value=value))

        return {"days": days, "history": [asdict(point) for point in points_out]}