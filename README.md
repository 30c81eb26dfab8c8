# hodlbook

A cryptocurrency portfolio tracking API. It records deposits and
withdrawals of assets, exchanges between assets and price snapshots, and
serves them over JSON with portfolio summaries, allocation, profit/loss and
daily value history, plus CSV/JSON import and export of assets.

## Building the application

`hodlbook.app.create_app` builds a Flask application serving the `/api`
routes. You supply the collaborators it works with; the interfaces they
must meet are the protocols `Repository`, `PriceFetcher`, `PriceCache` and
`Publisher` in `hodlbook.controller`, and `LivePriceService` in
`hodlbook.app`.

```python
from hodlbook.app import create_app

app = create_app(
    repository=my_repository,        # required; storage for all records
    price_cache={"BTC": 95000.0},    # optional; a plain dict of current prices works
    price_fetcher=my_price_fetcher,  # optional; current quotes and currency search
    price_channel=None,              # optional; feeds /api/prices/stream
    asset_created_pub=None,          # optional; told about each imported asset
    live_price_service=None,         # optional; enables the debug and sync routes
)
app.run(port=2008)
```

`create_app` raises `hodlbook.errors.ConfigurationError` when no repository
is given. Repository lookups by id are expected to raise `LookupError` when
the record does not exist; deleting a missing asset or exchange still
answers 204.

`price_channel` may be a queue, which is read until it yields `None`, or any
iterable. Each message becomes a server-sent event named `prices`
(`hodlbook.prices.sse_stream`). Without a channel the stream route is not
registered.

## API

| Method | Path | Purpose |
| --- | --- | --- |
| GET, POST | `/api/assets` | list (filters: `limit`, `offset`, `symbol`, `transaction_type`, `start_date`, `end_date` as `YYYY-MM-DD`) or create an asset |
| GET | `/api/assets/symbols` | unique asset symbols |
| GET | `/api/assets/export?format=csv\|json` | export assets (default `csv`) |
| POST | `/api/assets/import?format=csv\|json` | import assets from an uploaded form field `file` |
| GET, PUT, DELETE | `/api/assets/<id>` | read, update, delete an asset |
| GET, POST | `/api/exchanges` | list (filters also `symbol`, `from_symbol`, `to_symbol`) or create an exchange |
| GET | `/api/exchanges/export?format=csv\|json` | export exchanges |
| GET, PUT, DELETE | `/api/exchanges/<id>` | read, update, delete an exchange |
| GET | `/api/imports` | import history |
| GET, DELETE | `/api/imports/<id>` | one import log |
| POST | `/api/imports/<id>/retry` | import a JSON array of corrected assets against a log |
| GET | `/api/portfolio/summary` | total value and holdings |
| GET | `/api/portfolio/allocation` | holdings by share of value, largest first |
| GET | `/api/portfolio/performance` | cost basis and profit/loss per asset |
| GET | `/api/portfolio/history?days=30` | daily portfolio value, oldest first |
| GET | `/api/prices` | current cached prices |
| GET | `/api/prices/stream` | server-sent price events (with a price channel) |
| GET | `/api/prices/currencies?q=` | currencies whose symbol contains `q`, at most 50 |
| GET | `/api/prices/deep-search?q=` | search through the price fetcher (`name`, `network`, `providers`) |
| GET | `/api/prices/deep-search/providers` | the fetcher's deep-search providers |
| GET | `/api/prices/deep-search/debug` | assets with custom price sources (with a live price service) |
| POST | `/api/prices/sync` | force a price sync (with a live price service) |
| GET | `/api/prices/<symbol>` | one cached price |
| GET | `/api/prices/history/<symbol>` | stored price history |

Errors come back as `{"error": "..."}`, with a `"details"` entry when there
is more to say, and a matching HTTP status. An exchange whose from and to
symbols are equal is refused with 400. When an asset is updated and a price
fetcher is configured, its current USD price is recorded at the asset's
timestamp.

## Import and export format

CSV uses `;` as the separator. Asset files have the columns
`symbol;name;amount;transaction_type;timestamp;notes`, timestamps in
RFC 3339; exchange exports have
`from_symbol;to_symbol;from_amount;to_amount;fee;fee_currency;timestamp;notes`.
JSON files are arrays of asset objects.

An imported row needs a symbol, a positive amount and a transaction type of
`deposit` or `withdrawal` (`withdraw` is accepted and stored as
`withdrawal`). Its symbol must also be among those the price fetcher quotes,
so without a price fetcher every row is rejected as unsupported. Imported
rows get a note such as `csv imported`. Failed rows are reported with their
row number and kept in the import log for a retry.

The parsing and writing helpers are in `hodlbook.transfer`:
`parse_assets_from_csv`, `parse_assets_from_json`, `validate_asset_fields`,
`assets_to_csv` and `exchanges_to_csv`. Timestamps are read and written by
`hodlbook.models.parse_timestamp` and `format_timestamp`.

## Portfolio calculations

`hodlbook.portfolio.calculate_holdings(assets, exchanges, at=None)` nets
`deposit` and `withdraw` entries and exchanges into per-symbol amounts,
leaving out records later than `at` when it is given.
`PortfolioController` builds the summary, allocation, performance (average
cost basis from the stored historic price nearest each deposit) and daily
history on top of it, valuing holdings with the price cache.

## What this package does not do

It ships no storage, no price provider, no live price service and no
command to start a server. The repository, price fetcher, cache, publisher
and live price service are yours to supply; the package holds the API
logic and the Flask routes around them.