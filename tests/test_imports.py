import json
from datetime import datetime, timezone
from http import HTTPStatus

import pytest

from hodlbook.controller import PriceQuote
from hodlbook.errors import APIError
from hodlbook.imports import ImportExportController, ImportResponse
from hodlbook.models import Asset, Exchange, ImportLog
from hodlbook.transfer import RowError


class MemoryRepository:
    def __init__(self):
        self.assets = []
        self.exchanges = []
        self.prices = []
        self.logs = {}
        self._next_id = 1

    def _new_id(self):
        value = self._next_id
        self._next_id += 1
        return value

    def create_asset(self, asset):
        asset.id = self._new_id()
        self.assets.append(asset)

    def get_all_assets(self):
        return list(self.assets)

    def get_all_exchanges(self):
        return list(self.exchanges)

    def create_price(self, price):
        self.prices.append(price)

    def create_import_log(self, log):
        log.id = self._new_id()
        self.logs[log.id] = log

    def list_import_logs(self):
        return list(self.logs.values())

    def get_import_log_by_id(self, log_id):
        try:
            return self.logs[log_id]
        except KeyError:
            raise LookupError(log_id) from None

    def update_import_log(self, log):
        self.logs[log.id] = log

    def delete_import_log(self, log_id):
        if log_id not in self.logs:
            raise LookupError(log_id)
        del self.logs[log_id]


class FakeFetcher:
    def __init__(self, prices):
        self.prices = prices

    def fetch_all(self):
        return [PriceQuote(symbol=s, name=s, value=v) for s, v in self.prices.items()]


class RecordingPublisher:
    def __init__(self):
        self.messages = []

    def publish(self, data):
        self.messages.append(data)


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def ctrl(repo, publisher):
    return ImportExportController(
        repo,
        price_fetcher=FakeFetcher({"BTC": 95000.0, "ETH": 3200.0}),
        asset_created_pub=publisher,
    )


def seed_assets(repo):
    now = datetime.now(timezone.utc)
    for asset in (
        Asset(symbol="BTC", name="Bitcoin", amount=1.5, transaction_type="deposit", timestamp=now),
        Asset(symbol="ETH", name="Ethereum", amount=10.0, transaction_type="deposit", timestamp=now),
        Asset(symbol="BTC", name="Bitcoin", amount=0.5, transaction_type="withdrawal", timestamp=now),
    ):
        repo.create_asset(asset)


def seed_exchanges(repo):
    now = datetime.now(timezone.utc)
    repo.exchanges.extend([
        Exchange(from_symbol="BTC", to_symbol="ETH", from_amount=0.1, to_amount=1.5, timestamp=now),
        Exchange(from_symbol="ETH", to_symbol="USDT", from_amount=5.0, to_amount=5000.0, timestamp=now),
    ])


def test_export_assets_csv(ctrl, repo):
    seed_assets(repo)
    exported = ctrl.export_assets("csv")
    assert exported.content_type == "text/csv"
    assert "attachment" in exported.content_disposition
    assert exported.filename.startswith("assets_") and exported.filename.endswith(".csv")
    body = exported.body.decode()
    assert "symbol;name;amount;transaction_type;timestamp;notes" in body
    assert "BTC;Bitcoin" in body
    assert "ETH;Ethereum" in body


def test_export_assets_json(ctrl, repo):
    seed_assets(repo)
    exported = ctrl.export_assets("json")
    assert "application/json" in exported.content_type
    assert len(json.loads(exported.body)) == 3


def test_export_assets_invalid_format(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.export_assets("xml")
    assert info.value.status == HTTPStatus.BAD_REQUEST


def test_export_format_is_case_insensitive(ctrl, repo):
    seed_assets(repo)
    assert ctrl.export_assets("JSON").filename.endswith(".json")


def test_export_exchanges_csv(ctrl, repo):
    seed_exchanges(repo)
    exported = ctrl.export_exchanges("csv")
    assert "text/csv" in exported.content_type
    body = exported.body.decode()
    assert "from_symbol;to_symbol;from_amount;to_amount;fee;fee_currency;timestamp;notes" in body
    assert "BTC;ETH" in body


def test_export_exchanges_json(ctrl, repo):
    seed_exchanges(repo)
    assert len(json.loads(ctrl.export_exchanges("json").body)) == 2


def test_import_json_all_valid(ctrl, repo):
    data = """[
        {"symbol": "BTC", "name": "Bitcoin", "amount": 1.0, "transaction_type": "deposit"},
        {"symbol": "ETH", "name": "Ethereum", "amount": 5.0, "transaction_type": "deposit"}
    ]"""
    result = ctrl.import_assets("json", "test.json", data.encode())
    assert result.imported == 2
    assert result.failed == 0
    assert result.status == "completed"
    assert len(repo.assets) == 2


def test_import_json_partial_valid(ctrl):
    data = """[
        {"symbol": "BTC", "name": "Bitcoin", "amount": 1.0, "transaction_type": "deposit"},
        {"symbol": "", "name": "Missing Symbol", "amount": 5.0, "transaction_type": "deposit"},
        {"symbol": "ETH", "name": "Ethereum", "amount": -1.0, "transaction_type": "deposit"}
    ]"""
    result = ctrl.import_assets("json", "test.json", data)
    assert result.imported == 1
    assert result.failed == 2
    assert result.status == "partial"
    assert len(result.errors) == 2


def test_import_json_all_invalid(ctrl):
    data = """[
        {"symbol": "", "amount": 1.0, "transaction_type": "deposit"},
        {"symbol": "BTC", "amount": -1.0, "transaction_type": "deposit"}
    ]"""
    result = ctrl.import_assets("json", "test.json", data)
    assert result.imported == 0
    assert result.failed == 2
    assert result.status == "failed"


def test_import_csv_valid(ctrl):
    data = (
        "symbol;name;amount;transaction_type;timestamp;notes\n"
        "BTC;Bitcoin;1.5;deposit;2024-01-15T10:30:00Z;Initial\n"
        "ETH;Ethereum;10.0;deposit;2024-01-16T11:00:00Z;Second"
    )
    result = ctrl.import_assets("csv", "test.csv", data.encode())
    assert result.imported == 2
    assert result.failed == 0
    assert result.status == "completed"


def test_import_csv_invalid_transaction(ctrl):
    data = "symbol;name;amount;transaction_type\nBTC;Bitcoin;1.5;invalid_type"
    result = ctrl.import_assets("csv", "test.csv", data)
    assert result.imported == 0
    assert result.failed == 1


def test_import_without_file(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.import_assets("json", "", None)
    assert info.value.status == HTTPStatus.BAD_REQUEST
    assert info.value.message == "file is required"


def test_import_invalid_format(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.import_assets("xml", "test.xml", b"<data/>")
    assert info.value.status == HTTPStatus.BAD_REQUEST


def test_import_rejects_unsupported_symbol(ctrl, repo):
    data = '[{"symbol": "DOGE", "amount": 3.0, "transaction_type": "deposit"}]'
    result = ctrl.import_assets("json", "test.json", data)
    assert result.imported == 0
    assert result.status == "failed"
    assert result.errors[0].field == "symbol"
    assert "not supported by price providers" in result.errors[0].message
    assert repo.assets == []


def test_import_records_notes_prices_and_events(ctrl, repo, publisher):
    data = '[{"symbol": "btc", "amount": 1.0, "transaction_type": "deposit", "notes": "cold"}]'
    result = ctrl.import_assets("json", "test.json", data)
    assert result.imported == 1
    stored = repo.assets[0]
    assert stored.symbol == "BTC"
    assert stored.notes == "cold (json imported)"
    assert stored.timestamp is not None
    assert [(p.symbol, p.currency, p.price) for p in repo.prices] == [("BTC", "USD", 95000.0)]
    assert json.loads(publisher.messages[0])["symbol"] == "BTC"


def test_import_response_omits_empty_errors():
    body = ImportResponse(id=1, imported=2, failed=0, total=2, status="completed").to_dict()
    assert "errors" not in body
    with_errors = ImportResponse(errors=[RowError(row=1, message="bad")]).to_dict()
    assert with_errors["errors"] == [{"row": 1, "data": None, "message": "bad"}]


def test_list_import_logs_empty(ctrl):
    assert ctrl.list_import_logs() == []


def test_list_import_logs_after_import(ctrl):
    data = '[{"symbol": "BTC", "amount": 1.0, "transaction_type": "deposit"}]'
    ctrl.import_assets("json", "test.json", data)
    logs = ctrl.list_import_logs()
    assert len(logs) == 1
    assert logs[0].filename == "test.json"
    assert logs[0].format == "json"
    assert logs[0].entity_type == "asset"


def test_get_import_log(ctrl, repo):
    log = ImportLog(filename="test.csv", format="csv", entity_type="asset", status="completed")
    repo.create_import_log(log)
    assert ctrl.get_import_log(str(log.id)).filename == "test.csv"


def test_get_import_log_not_found(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.get_import_log("999")
    assert info.value.status == HTTPStatus.NOT_FOUND


def test_get_import_log_invalid_id(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.get_import_log("abc")
    assert info.value.status == HTTPStatus.BAD_REQUEST


def test_delete_import_log(ctrl, repo):
    log = ImportLog(filename="test.csv", format="csv", entity_type="asset", status="completed")
    repo.create_import_log(log)
    ctrl.delete_import_log(str(log.id))
    assert repo.logs == {}


def test_delete_import_log_not_found(ctrl):
    with pytest.raises(APIError) as info:
        ctrl.delete_import_log("999")
    assert info.value.status == HTTPStatus.NOT_FOUND


def test_retry_import(ctrl, repo):
    log = ImportLog(
        filename="test.json",
        format="json",
        entity_type="asset",
        total_rows=1,
        imported_rows=0,
        failed_rows=1,
        status="failed",
        failed_data='[{"row":1,"data":{"symbol":"","amount":1},"message":"symbol is required"}]',
    )
    repo.create_import_log(log)
    body = json.dumps([{"symbol": "BTC", "name": "Bitcoin", "amount": 1.0, "transaction_type": "deposit"}])
    result = ctrl.retry_import(str(log.id), body)
    assert result.imported == 1
    assert result.failed == 0
    updated = repo.logs[log.id]
    assert updated.status == "completed"
    assert updated.imported_rows == 1
    assert updated.failed_data == "[]"


def test_retry_import_partial(ctrl, repo):
    log = ImportLog(filename="test.json", format="json", entity_type="asset", status="failed")
    repo.create_import_log(log)
    body = [
        {"symbol": "BTC", "amount": 1.0, "transaction_type": "withdraw"},
        {"symbol": "", "amount": 1.0, "transaction_type": "deposit"},
    ]
    result = ctrl.retry_import(str(log.id), body)
    assert result.imported == 1
    assert result.total == 2
    assert result.status == "partial"
    assert repo.assets[0].transaction_type == "withdrawal"
    failed = json.loads(repo.logs[log.id].failed_data)
    assert failed[0]["message"] == "symbol is required"


def test_retry_import_not_found(ctrl):
    body = json.dumps([{"symbol": "BTC", "amount": 1.0, "transaction_type": "deposit"}])
    with pytest.raises(APIError) as info:
        ctrl.retry_import("999", body)
    assert info.value.status == HTTPStatus.NOT_FOUND


def test_retry_import_invalid_input(ctrl, repo):
    log = ImportLog(filename="test.json", format="json", entity_type="asset", status="failed")
    repo.create_import_log(log)
    with pytest.raises(APIError) as info:
        ctrl.retry_import(str(log.id), b"not json")
    assert info.value.status == HTTPStatus.BAD_REQUEST
    assert info.value.message == "invalid input"