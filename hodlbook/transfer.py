"""CSV and JSON conversion of assets and exchanges for import and export."""

from __future__ import annotations

import csv
import io
import json
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from .models import Asset, Exchange, format_timestamp, parse_timestamp

ASSET_COLUMNS = ("symbol", "name", "amount", "transaction_type", "timestamp", "notes")
EXCHANGE_COLUMNS = (
    "from_symbol", "to_symbol", "from_amount", "to_amount",
    "fee", "fee_currency", "timestamp", "notes",
)
_DELIMITER = ";"
_FLOAT = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.IGNORECASE,
)


@dataclass
class RowError:
    """A row that could not be imported, with the data it held."""

    row: int
    data: Any = None
    field: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"row": self.row, "data": self.data}
        if self.field:
            body["field"] = self.field
        body["message"] = self.message
        return body


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _csv_field(value: str) -> str:
    needs_quotes = value != "" and (
        value == "\\."
        or any(ch in value for ch in (_DELIMITER, '"', "\r", "\n"))
        or value[0].isspace()
    )
    if needs_quotes:
        return '"' + value.replace('"', '""') + '"'
    return value


def _write_csv(header: Iterable[str], rows: Iterable[Iterable[str]]) -> bytes:
    lines = [header, *rows]
    text = "".join(_DELIMITER.join(_csv_field(cell) for cell in line) + "\n" for line in lines)
    return text.encode("utf-8")


def _seconds_timestamp(value) -> str:
    return format_timestamp(value.replace(microsecond=0) if value is not None else None)


def assets_to_csv(assets: Iterable[Asset]) -> bytes:
    """Semicolon-separated CSV of assets with a header row."""
    return _write_csv(
        ASSET_COLUMNS,
        (
            (
                a.symbol,
                a.name,
                _format_float(a.amount),
                a.transaction_type,
                _seconds_timestamp(a.timestamp),
                a.notes,
            )
            for a in assets
        ),
    )


def exchanges_to_csv(exchanges: Iterable[Exchange]) -> bytes:
    """Semicolon-separated CSV of exchanges with a header row."""
    return _write_csv(
        EXCHANGE_COLUMNS,
        (
            (
                e.from_symbol,
                e.to_symbol,
                _format_float(e.from_amount),
                _format_float(e.to_amount),
                _format_float(e.fee),
                e.fee_currency,
                _seconds_timestamp(e.timestamp),
                e.notes,
            )
            for e in exchanges
        ),
    )


def _parse_float(text: str) -> Optional[float]:
    if _FLOAT.fullmatch(text) is None:
        return None
    value = float(text)
    if math.isinf(value) and "inf" not in text.lower():
        return None
    return value


def _read_records(text: str) -> list[list[str]]:
    reader = csv.reader(
        io.StringIO(text, newline=""),
        delimiter=_DELIMITER,
        skipinitialspace=True,
        strict=True,
    )
    records: list[list[str]] = []
    for row in reader:
        if not row:
            continue
        if records and len(row) != len(records[0]):
            raise csv.Error(f"record on line {reader.line_num}: wrong number of fields")
        records.append(row)
    return records


def _as_text(data: Union[bytes, str]) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def parse_assets_from_csv(data: Union[bytes, str]) -> tuple[list[Asset], list[RowError]]:
    """Parse semicolon-separated CSV into valid assets and row errors."""
    try:
        records = _read_records(_as_text(data))
    except csv.Error as exc:
        return [], [RowError(row=0, message=f"invalid CSV format: {exc}")]

    if len(records) < 2:
        return [], [RowError(row=0, message="CSV file must have a header and at least one data row")]

    columns = {name.strip().lower(): index for index, name in enumerate(records[0])}

    def cell(row: list[str], column: str) -> Optional[str]:
        index = columns.get(column)
        if index is None or index >= len(row):
            return None
        return row[index].strip()

    assets: list[Asset] = []
    errors: list[RowError] = []
    for row_number, row in enumerate(records[1:], start=2):
        asset = Asset()
        row_data: dict[str, str] = {}

        if (value := cell(row, "symbol")) is not None:
            asset.symbol = row_data["symbol"] = value.upper()
        if (value := cell(row, "name")) is not None:
            asset.name = row_data["name"] = value
        if (value := cell(row, "amount")) is not None:
            row_data["amount"] = value
            amount = _parse_float(value)
            if amount is not None:
                asset.amount = amount
        if (value := cell(row, "transaction_type")) is not None:
            asset.transaction_type = row_data["transaction_type"] = value.lower()
        if (value := cell(row, "timestamp")) is not None:
            row_data["timestamp"] = value
            try:
                asset.timestamp = parse_timestamp(value)
            except ValueError:
                pass
        if (value := cell(row, "notes")) is not None:
            asset.notes = row_data["notes"] = value

        try:
            validate_asset_fields(asset)
        except ValueError as exc:
            errors.append(RowError(row=row_number, data=row_data, message=str(exc)))
            continue
        assets.append(asset)

    return assets, errors


def parse_assets_from_json(data: Union[bytes, str]) -> tuple[list[Asset], list[RowError]]:
    """Parse a JSON array into valid assets and row errors."""
    try:
        items = json.loads(data)
    except ValueError as exc:
        return [], [RowError(row=0, message=f"invalid JSON format: {exc}")]
    if items is None:
        return [], []
    if not isinstance(items, list):
        return [], [
            RowError(row=0, message=f"invalid JSON format: expected an array, got {type(items).__name__}")
        ]

    assets: list[Asset] = []
    errors: list[RowError] = []
    for row_number, raw in enumerate(items, start=1):
        try:
            asset = Asset() if raw is None else Asset.from_dict(raw)
        except ValueError as exc:
            errors.append(RowError(row=row_number, data=raw, message=f"invalid asset format: {exc}"))
            continue

        asset.symbol = asset.symbol.strip().upper()
        try:
            validate_asset_fields(asset)
        except ValueError as exc:
            errors.append(RowError(row=row_number, data=raw, message=str(exc)))
            continue
        assets.append(asset)

    return assets, errors


def validate_asset_fields(asset: Asset) -> None:
    """Check an asset for import; normalises "withdraw" to "withdrawal".

    Raises ValueError naming the offending field.
    """
    if not asset.symbol:
        raise ValueError("symbol is required")
    if not asset.amount > 0:
        raise ValueError("amount must be positive")
    kind = asset.transaction_type.lower()
    if kind not in ("deposit", "withdrawal", "withdraw"):
        raise ValueError("transaction_type must be deposit or withdrawal")
    if kind == "withdraw":
        asset.transaction_type = "withdrawal"