from datetime import datetime, timedelta, timezone

import pytest

from hodlbook.errors import APIError
from hodlbook.models import Asset, AssetHistoricValue, Exchange
from hodlbook.portfolio import PortfolioController, calculate_holdings

UTC = timezone.utc
NOW = datetime(2024, 1, 10, 12, 0, tzinfo=UTC)


class FakeRepository:
    def __init__(self, assets=(), exchanges=(), history=None, fail_assets=False):
        self.assets = list(assets)
        self.exchanges = list(exchanges)
        self.history = history or {}
        self.fail_assets = fail_assets

    def get_all_assets(self):
        if self.fail_assets:
            raise RuntimeError("database down")
        return list(self.assets)

    def get_all_exchanges(self):
        return list(self.exchanges)

    def get_unique_symbols(self):
        return sorted({a.symbol for a in self.assets})

    def select_all_by_symbol(self, symbol):
        return list(self.history.get(symbol, []))


def deposit(symbol, amount, when=NOW, kind="deposit"):
    return Asset(symbol=symbol, name=symbol, amount=amount, transaction_type=kind, timestamp=when)


def controller(repo, cache=None):
    return PortfolioController(repo, price_cache=cache)


def suite_repository():
    return FakeRepository(
        assets=[deposit("BTC", 2.0), deposit("ETH", 10.0)],
        exchanges=[Exchange(from_symbol="BTC", to_symbol="ETH", from_amount=2.0, to_amount=30.0, timestamp=NOW)],
    )


def test_calculate_holdings_with_exchange():
    holdings = calculate_holdings(
        [deposit("BTC", 1.5), deposit("ETH", 10.0)],
        [Exchange(from_symbol="BTC", to_symbol="ETH", from_amount=1.0, to_amount=15.0, timestamp=NOW)],
    )
    assert holdings["BTC"] == pytest.approx(0.5)
    assert holdings["ETH"] == pytest.approx(25.0)


def test_calculate_holdings_counts_only_withdraw_keyword():
    holdings = calculate_holdings(
        [deposit("BTC", 3.0), deposit("BTC", 1.0, kind="withdraw"), deposit("BTC", 1.0, kind="withdrawal")],
        [],
    )
    assert holdings == {"BTC": 2.0}


def test_calculate_holdings_respects_cutoff():
    early = NOW - timedelta(days=2)
    holdings = calculate_holdings(
        [deposit("BTC", 1.0, early), deposit("BTC", 5.0, NOW)],
        [Exchange(from_symbol="BTC", to_symbol="ETH", from_amount=1.0, to_amount=10.0, timestamp=NOW)],
        at=NOW - timedelta(days=1),
    )
    assert holdings == {"BTC": 1.0}


def test_summary_contains_expected_keys():
    result = controller(suite_repository()).summary()
    assert set(result) == {"total_value", "currency", "holdings"}
    assert result["currency"] == "USD"


def test_summary_values_from_cache():
    repo = FakeRepository(assets=[deposit("BTC", 2.0), deposit("ETH", 1.0), deposit("XRP", 1.0, kind="withdraw")])
    result = controller(repo, {"BTC": 100.0}).summary()
    holdings = {h["symbol"]: h for h in result["holdings"]}
    assert set(holdings) == {"BTC", "ETH"}
    assert holdings["BTC"]["value"] == pytest.approx(200.0)
    assert holdings["ETH"]["price"] == 0.0
    assert result["total_value"] == pytest.approx(200.0)


def test_summary_empty_portfolio():
    result = controller(FakeRepository()).summary()
    assert result["total_value"] == 0.0
    assert result["holdings"] == []


def test_allocation_contains_expected_keys():
    result = controller(suite_repository()).allocation()
    assert set(result) == {"total_value", "allocations"}


def test_allocation_percentages_sorted_by_value():
    repo = FakeRepository(assets=[deposit("ETH", 1.0), deposit("BTC", 1.0)])
    result = controller(repo, {"BTC": 300.0, "ETH": 100.0}).allocation()
    assert [a["symbol"] for a in result["allocations"]] == ["BTC", "ETH"]
    assert result["allocations"][0]["percentage"] == pytest.approx(75.0)
    assert result["allocations"][1]["percentage"] == pytest.approx(25.0)
    assert result["total_value"] == pytest.approx(400.0)


def test_allocation_without_prices_has_zero_percentages():
    result = controller(FakeRepository(assets=[deposit("BTC", 1.0)])).allocation()
    assert result["allocations"][0]["percentage"] == 0.0


def test_performance_contains_expected_keys():
    result = controller(suite_repository()).performance()
    assert {"total_cost_basis", "total_current_value", "total_profit_loss"} <= set(result)


def test_performance_uses_closest_historic_price():
    t1 = NOW - timedelta(days=5)
    repo = FakeRepository(
        assets=[deposit("BTC", 2.0, t1)],
        history={
            "BTC": [
                AssetHistoricValue(symbol="BTC", value=100.0, timestamp=t1 + timedelta(hours=1)),
                AssetHistoricValue(symbol="BTC", value=999.0, timestamp=t1 + timedelta(days=3)),
            ]
        },
    )
    result = controller(repo, {"BTC": 150.0}).performance()
    entry = result["assets"][0]
    assert entry["cost_basis"] == pytest.approx(200.0)
    assert entry["current_value"] == pytest.approx(300.0)
    assert entry["profit_loss"] == pytest.approx(100.0)
    assert entry["profit_percentage"] == pytest.approx(50.0)
    assert result["total_profit_percent"] == pytest.approx(50.0)


def test_performance_withdraw_reduces_cost_at_average():
    t1 = NOW - timedelta(days=5)
    t2 = NOW - timedelta(days=1)
    repo = FakeRepository(
        assets=[deposit("BTC", 1.0, t2, kind="withdraw"), deposit("BTC", 2.0, t1)],
        history={"BTC": [AssetHistoricValue(symbol="BTC", value=100.0, timestamp=t1)]},
    )
    result = controller(repo, {"BTC": 150.0}).performance()
    entry = result["assets"][0]
    assert entry["cost_basis"] == pytest.approx(100.0)
    assert entry["current_value"] == pytest.approx(150.0)
    assert entry["profit_loss"] == pytest.approx(50.0)


def test_performance_without_cost_has_zero_percent():
    repo = FakeRepository(assets=[deposit("BTC", 1.0)])
    result = controller(repo, {"BTC": 10.0}).performance()
    assert result["total_cost_basis"] == 0.0
    assert result["total_profit_percent"] == 0.0
    assert result["total_profit_loss"] == pytest.approx(10.0)


def test_history_contains_expected_keys():
    result = controller(suite_repository()).history()
    assert result["days"] == 30
    assert len(result["history"]) == 30


def test_history_uses_daily_prices_then_cache():
    repo = FakeRepository(
        assets=[deposit("BTC", 1.0, datetime(2024, 1, 9, 10, 0, tzinfo=UTC))],
        history={"BTC": [AssetHistoricValue(symbol="BTC", value=100.0, timestamp=datetime(2024, 1, 9, 8, 0, tzinfo=UTC))]},
    )
    result = controller(repo, {"BTC": 50.0}).history(3, NOW)
    assert result["days"] == 3
    assert [(p["date"], p["value"]) for p in result["history"]] == [
        ("2024-01-08", 0.0),
        ("2024-01-09", 100.0),
        ("2024-01-10", 50.0),
    ]


@pytest.mark.parametrize("days, expected", [("5", 5), ("0", 30), ("abc", 30), (-3, 30), (7, 7)])
def test_history_days_parameter(days, expected):
    result = controller(FakeRepository()).history(days, NOW)
    assert result["days"] == expected
    assert len(result["history"]) == expected


def test_holdings_failure_is_internal_error():
    with pytest.raises(APIError) as info:
        controller(FakeRepository(fail_assets=True)).summary()
    assert info.value.status == 500
    assert info.value.message == "failed to calculate holdings"