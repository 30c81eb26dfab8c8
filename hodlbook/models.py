"""Portfolio records: assets, exchanges, prices and import logs."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, ClassVar, Mapping, Optional

ZERO_TIME = "0001-01-01T00:00:00Z"

_ZERO = datetime(1, 1, 1)
_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(Z|[+-][0-9]{2}:[0-9]{2})"
)


def _is_zero(value: datetime) -> bool:
    offset = value.utcoffset() or timedelta(0)
    try:
        return value.replace(tzinfo=None) - offset == _ZERO
    except OverflowError:
        return False


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp; None and the zero instant give None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return None if _is_zero(value) else value
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, not {type(value).__name__}")
    match = _RFC3339.fullmatch(value)
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {value!r}")
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction = match.group(7) or ""
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    zone = match.group(8)
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours > 23 or minutes > 59:
            raise ValueError(f"invalid RFC 3339 timestamp: {value!r}")
        sign = 1 if zone[0] == "+" else -1
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    try:
        result = datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)
    except ValueError as exc:
        raise ValueError(f"invalid RFC 3339 timestamp: {value!r}") from exc
    return None if _is_zero(result) else result


def format_timestamp(value: Optional[datetime]) -> str:
    """Format a timestamp as RFC 3339; naive values are taken as UTC."""
    if value is None:
        return ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds()) // 60
    if total_minutes == 0:
        return text + "Z"
    sign = "+" if total_minutes > 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{text}{sign}{hours:02d}:{minutes:02d}"


def _require_mapping(data: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{kind} must be a JSON object, not {type(data).__name__}")
    return data


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _optional_text(data: Mapping[str, Any], key: str) -> Optional[str]:
    if data.get(key) is None:
        return None
    return _text(data, key)


def _number(data: Mapping[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _integer(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _time(data: Mapping[str, Any], key: str) -> Optional[datetime]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be an RFC 3339 string")
    return parse_timestamp(value)


@dataclass
class Asset:
    """A deposit or withdrawal of one asset."""

    TABLE_NAME: ClassVar[str] = "assets"

    id: int = 0
    symbol: str = ""
    name: str = ""
    amount: float = 0.0
    transaction_type: str = ""
    notes: str = ""
    price_source: Optional[str] = None
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "symbol": self.symbol,
            "name": self.name,
            "amount": self.amount,
            "transaction_type": self.transaction_type,
            "notes": self.notes,
        }
        if self.price_source is not None:
            data["price_source"] = self.price_source
        data["timestamp"] = format_timestamp(self.timestamp)
        data["created_at"] = format_timestamp(self.created_at)
        data["updated_at"] = format_timestamp(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Asset":
        """Build an asset from decoded JSON, raising ValueError on bad types."""
        data = _require_mapping(data, "asset")
        return cls(
            id=_integer(data, "id"),
            symbol=_text(data, "symbol"),
            name=_text(data, "name"),
            amount=_number(data, "amount"),
            transaction_type=_text(data, "transaction_type"),
            notes=_text(data, "notes"),
            price_source=_optional_text(data, "price_source"),
            timestamp=_time(data, "timestamp"),
            created_at=_time(data, "created_at"),
            updated_at=_time(data, "updated_at"),
        )


@dataclass
class AssetHistoricValue:
    """A historic price point of one asset."""

    TABLE_NAME: ClassVar[str] = "asset_historic_values"

    symbol: str = ""
    value: float = 0.0
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "value": self.value,
            "timestamp": format_timestamp(self.timestamp),
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Exchange:
    """A swap of one asset for another."""

    TABLE_NAME: ClassVar[str] = "exchanges"

    id: int = 0
    from_symbol: str = ""
    to_symbol: str = ""
    from_amount: float = 0.0
    to_amount: float = 0.0
    fee: float = 0.0
    fee_currency: str = ""
    notes: str = ""
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_symbol": self.from_symbol,
            "to_symbol": self.to_symbol,
            "from_amount": self.from_amount,
            "to_amount": self.to_amount,
            "fee": self.fee,
            "fee_currency": self.fee_currency,
            "notes": self.notes,
            "timestamp": format_timestamp(self.timestamp),
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Exchange":
        """Build an exchange from decoded JSON, raising ValueError on bad types."""
        data = _require_mapping(data, "exchange")
        return cls(
            id=_integer(data, "id"),
            from_symbol=_text(data, "from_symbol"),
            to_symbol=_text(data, "to_symbol"),
            from_amount=_number(data, "from_amount"),
            to_amount=_number(data, "to_amount"),
            fee=_number(data, "fee"),
            fee_currency=_text(data, "fee_currency"),
            notes=_text(data, "notes"),
            timestamp=_time(data, "timestamp"),
            created_at=_time(data, "created_at"),
            updated_at=_time(data, "updated_at"),
        )


@dataclass
class Price:
    """A recorded price of a symbol in a currency."""

    TABLE_NAME: ClassVar[str] = "prices"

    id: int = 0
    symbol: str = ""
    currency: str = ""
    price: float = 0.0
    timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "currency": self.currency,
            "price": self.price,
            "timestamp": format_timestamp(self.timestamp),
            "created_at": format_timestamp(self.created_at),
        }


@dataclass
class Setting:
    """A key/value setting."""

    id: int = 0
    key: str = ""
    value: str = ""


@dataclass
class ImportLog:
    """The record of one file import."""

    TABLE_NAME: ClassVar[str] = "import_logs"

    id: int = 0
    filename: str = ""
    format: str = ""
    entity_type: str = ""
    total_rows: int = 0
    imported_rows: int = 0
    failed_rows: int = 0
    status: str = ""
    failed_data: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filename": self.filename,
            "format": self.format,
            "entity_type": self.entity_type,
            "total_rows": self.total_rows,
            "imported_rows": self.imported_rows,
            "failed_rows": self.failed_rows,
            "status": self.status,
            "failed_data": self.failed_data,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }