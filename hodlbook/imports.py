"""Export of assets and exchanges, and asset import with its history."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .controller import Controller, parse_id
from .errors import bad_request, internal_error, not_found
from .models import Asset, ImportLog, Price
from .transfer import (
    RowError,
    assets_to_csv,
    exchanges_to_csv,
    parse_assets_from_csv,
    parse_assets_from_json,
    validate_asset_fields,
)

FORMATS = ("csv", "json")
_CONTENT_TYPES = {"csv": "text/csv", "json": "application/json"}


@dataclass
class ExportFile:
    """A file produced by an export."""

    filename: str
    content_type: str
    body: bytes

    @property
    def content_disposition(self) -> str:
        return f"attachment; filename={self.filename}"


@dataclass
class ImportResponse:
    """The outcome of an import or a retry."""

    id: int = 0
    imported: int = 0
    failed: int = 0
    total: int = 0
    status: str = ""
    errors: list[RowError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "id": self.id,
            "imported": self.imported,
            "failed": self.failed,
            "total": self.total,
            "status": self.status,
        }
        if self.errors:
            body["errors"] = [error.to_dict() for error in self.errors]
        return body


def _check_format(fmt: Optional[str]) -> str:
    fmt = "csv" if fmt is None else fmt.lower()
    if fmt not in FORMATS:
        raise bad_request("format must be csv or json")
    return fmt


def _unsupported(row: int, asset: Asset) -> RowError:
    return RowError(
        row=row,
        data=asset.to_dict(),
        field="symbol",
        message=f"symbol {json.dumps(asset.symbol)} is not supported by price providers",
    )


def _errors_json(errors: Sequence[RowError]) -> str:
    return json.dumps([error.to_dict() for error in errors])


def _bind_assets(payload: Any) -> list[Asset]:
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            payload = json.loads(payload)
        except ValueError as exc:
            raise bad_request("invalid input", str(exc)) from exc
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise bad_request("invalid input", f"expected an array, got {type(payload).__name__}")
    try:
        return [Asset() if item is None else Asset.from_dict(item) for item in payload]
    except ValueError as exc:
        raise bad_request("invalid input", str(exc)) from exc


class ImportExportController(Controller):
    """File export, asset import and the import history."""

    def export_assets(self, fmt: Optional[str] = "csv") -> ExportFile:
        fmt = _check_format(fmt)
        try:
            assets = self.repository.get_all_assets()
        except Exception as exc:
            raise internal_error("failed to fetch assets") from exc
        return self._export("assets", fmt, assets, assets_to_csv)

    def export_exchanges(self, fmt: Optional[str] = "csv") -> ExportFile:
        fmt = _check_format(fmt)
        try:
            exchanges = self.repository.get_all_exchanges()
        except Exception as exc:
            raise internal_error("failed to fetch exchanges") from exc
        return self._export("exchanges", fmt, exchanges, exchanges_to_csv)

    def import_assets(
        self,
        fmt: Optional[str],
        filename: str,
        data: Optional[Union[bytes, str]],
    ) -> ImportResponse:
        """Import the valid rows of a file and log the outcome."""
        fmt = _check_format(fmt)
        if data is None:
            raise bad_request("file is required")

        parse = parse_assets_from_json if fmt == "json" else parse_assets_from_csv
        valid, errors = parse(data)

        supported, prices = self.supported_symbols_with_prices()
        accepted: list[Asset] = []
        for row, asset in enumerate(valid, start=1):
            if asset.symbol.upper() in supported:
                accepted.append(asset)
            else:
                errors.append(_unsupported(row, asset))

        imported = self._store(accepted, f"{fmt} imported", prices)

        if imported == 0 and errors:
            status = "failed"
        elif errors:
            status = "partial"
        else:
            status = "completed"

        log = ImportLog(
            filename=filename or "",
            format=fmt,
            entity_type="asset",
            total_rows=len(valid) + len(errors),
            imported_rows=imported,
            failed_rows=len(errors),
            status=status,
            failed_data=_errors_json(errors) if errors else "null",
        )
        try:
            self.repository.create_import_log(log)
        except Exception:
            self.logger.warning("saving import log failed", exc_info=True)

        return ImportResponse(
            id=log.id,
            imported=imported,
            failed=len(errors),
            total=log.total_rows,
            status=status,
            errors=errors,
        )

    def list_import_logs(self) -> list[ImportLog]:
        try:
            return self.repository.list_import_logs()
        except Exception as exc:
            raise internal_error("failed to fetch import logs") from exc

    def get_import_log(self, raw_id: str) -> ImportLog:
        log_id = parse_id(raw_id, "")
        try:
            return self.repository.get_import_log_by_id(log_id)
        except Exception as exc:
            raise not_found("import log not found") from exc

    def retry_import(self, raw_id: str, payload: Any) -> ImportResponse:
        """Import corrected rows for an earlier import and update its log."""
        log_id = parse_id(raw_id, "")
        try:
            log = self.repository.get_import_log_by_id(log_id)
        except Exception as exc:
            raise not_found("import log not found") from exc

        assets = _bind_assets(payload)
        supported, prices = self.supported_symbols_with_prices()
        valid: list[Asset] = []
        errors: list[RowError] = []
        for row, asset in enumerate(assets, start=1):
            try:
                validate_asset_fields(asset)
            except ValueError as exc:
                errors.append(RowError(row=row, data=asset.to_dict(), message=str(exc)))
                continue
            if asset.symbol.upper() in supported:
                valid.append(asset)
            else:
                errors.append(_unsupported(row, asset))

        imported = self._store(valid, f"{log.format} imported", prices)

        log.imported_rows += imported
        log.failed_rows = len(errors)
        if errors:
            log.status = "partial"
            log.failed_data = _errors_json(errors)
        else:
            log.status = "completed"
            log.failed_data = "[]"
        try:
            self.repository.update_import_log(log)
        except Exception:
            self.logger.warning("updating import log failed", exc_info=True)

        return ImportResponse(
            id=log.id,
            imported=imported,
            failed=len(errors),
            total=len(assets),
            status=log.status,
            errors=errors,
        )

    def delete_import_log(self, raw_id: str) -> None:
        log_id = parse_id(raw_id, "")
        try:
            self.repository.delete_import_log(log_id)
        except Exception as exc:
            raise not_found("import log not found") from exc

    def _export(
        self,
        prefix: str,
        fmt: str,
        records: Iterable[Any],
        to_csv: Callable[[Any], bytes],
    ) -> ExportFile:
        records = list(records)
        filename = f"{prefix}_{datetime.now().strftime('%Y-%m-%d')}.{fmt}"
        if fmt == "json":
            body = json.dumps([record.to_dict() for record in records]).encode("utf-8")
        else:
            body = to_csv(records)
        return ExportFile(filename=filename, content_type=_CONTENT_TYPES[fmt], body=body)

    def _store(self, assets: Iterable[Asset], note: str, prices: dict[str, float]) -> int:
        """Create the assets, record their prices and announce them; count successes."""
        imported = 0
        for asset in assets:
            asset.symbol = asset.symbol.upper()
            if asset.timestamp is None:
                asset.timestamp = datetime.now().astimezone()
            asset.notes = f"{asset.notes} ({note})" if asset.notes else note
            try:
                self.repository.create_asset(asset)
            except Exception:
                self.logger.warning("importing asset %s failed", asset.symbol, exc_info=True)
                continue
            imported += 1

            price = prices.get(asset.symbol)
            if price is not None:
                try:
                    self.repository.create_price(
                        Price(symbol=asset.symbol, currency="USD", price=price, timestamp=asset.timestamp)
                    )
                except Exception:
                    self.logger.warning("recording price for %s failed", asset.symbol, exc_info=True)

            if self.asset_created_pub is not None:
                self.asset_created_pub.publish(json.dumps(asset.to_dict()).encode("utf-8"))
        return imported