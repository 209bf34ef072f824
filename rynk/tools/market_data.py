"""Stock data from the Yahoo Finance chart API and crypto data from CoinGecko.

Every lookup goes through ``FinanceCache`` first. Upstream failures are logged
and reported as ``None`` / empty lists rather than raised.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from rynk.config import settings
from rynk.services.finance_cache import FinanceCache, finance_cache

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# range -> bar interval for the chart API
HISTORY_INTERVALS: dict[str, str] = {
    "1d": "5m",
    "5d": "15m",
    "1mo": "1d",
    "3mo": "1d",
    "6mo": "1d",
    "1y": "1wk",
    "5y": "1mo",
}

# user-facing aliases accepted by the finance endpoint
RANGE_ALIASES: dict[str, str] = {
    "1d": "1d",
    "5d": "5d",
    "1w": "5d",
    "1mo": "1mo",
    "1m": "1mo",
    "3mo": "3mo",
    "3m": "3mo",
    "6mo": "6mo",
    "1y": "1y",
    "5y": "5y",
}


@dataclass
class StockQuote:
    symbol: str
    name: str
    price: float
    change: float
    change_percent: float
    high: float
    low: float
    volume: int
    previous_close: float
    timestamp: str
    market_cap: float | None = None


@dataclass
class StockHistoryPoint:
    date: str
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass
class CryptoPrice:
    id: str
    symbol: str
    name: str
    price: float
    price_change_24h: float
    price_change_percent_24h: float
    market_cap: float
    volume_24h: float
    high_24h: float
    low_24h: float
    last_updated: str


def _utc_iso(ts: float | None = None) -> str:
    if ts is None:
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def _last(values: list[Any] | None) -> Any:
    return values[-1] if values else None


def _first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def normalize_range(history: str | None) -> str:
    return RANGE_ALIASES.get(history or "", "1mo")


def parse_chart_quote(symbol: str, payload: dict[str, Any]) -> StockQuote | None:
    """Build a quote from a ``/v8/finance/chart`` response body."""
    results = (payload.get("chart") or {}).get("result") or []
    if not results:
        return None
    result = results[0]
    meta = result.get("meta") or {}
    bars = ((result.get("indicators") or {}).get("quote") or [{}])[0] or {}

    last_close = _first_not_none(_last(bars.get("close")), meta.get("regularMarketPrice"))
    last_open = _first_not_none(_last(bars.get("open")), meta.get("chartPreviousClose"))
    price = _first_not_none(meta.get("regularMarketPrice"), last_close)
    if price is None:
        return None
    previous_close = _first_not_none(meta.get("chartPreviousClose"), meta.get("previousClose"), last_open) or 0
    change = price - previous_close
    change_percent = (change / previous_close) * 100 if previous_close else 0.0

    return StockQuote(
        symbol=symbol.upper(),
        name=meta.get("shortName") or meta.get("longName") or symbol,
        price=price,
        change=change,
        change_percent=change_percent,
        high=_first_not_none(meta.get("regularMarketDayHigh"), _last(bars.get("high")), price),
        low=_first_not_none(meta.get("regularMarketDayLow"), _last(bars.get("low")), price),
        volume=_first_not_none(meta.get("regularMarketVolume"), _last(bars.get("volume")), 0),
        previous_close=previous_close,
        market_cap=meta.get("marketCap"),
        timestamp=_utc_iso(),
    )


def parse_chart_history(payload: dict[str, Any]) -> list[StockHistoryPoint]:
    results = (payload.get("chart") or {}).get("result") or []
    if not results or not results[0].get("timestamp"):
        return []
    result = results[0]
    bars = ((result.get("indicators") or {}).get("quote") or [None])[0]
    if not bars:
        return []

    def at(key: str, i: int) -> Any:
        values = bars.get(key) or []
        return values[i] if i < len(values) else None

    history: list[StockHistoryPoint] = []
    for i, ts in enumerate(result["timestamp"]):
        close = at("close", i)
        if close is None:
            continue
        history.append(
            StockHistoryPoint(
                date=_utc_iso(ts),
                open=at("open", i) or 0,
                high=at("high", i) or 0,
                low=at("low", i) or 0,
                close=close,
                volume=at("volume", i) or 0,
            )
        )
    return history


class MarketDataClient:
    def __init__(self, cache: FinanceCache | None = finance_cache):
        self.cache = cache

    async def _get_json(self, url: str, params: dict[str, Any] | None = None, *, browser: bool = False) -> Any | None:
        headers = {"User-Agent": USER_AGENT} if browser else None
        async with httpx.AsyncClient(timeout=settings.search_timeout_seconds) as client:
            response = await client.get(url, params=params, headers=headers)
        if response.status_code != 200:
            logger.error(f"[MarketData] {url} failed: {response.status_code}")
            return None
        return response.json()

    async def get_stock_quote(self, symbol: str) -> StockQuote | None:
        if self.cache:
            cached = await self.cache.get("yahoo", symbol, "quote")
            if cached:
                return StockQuote(**cached)

        url = f"{settings.yahoo_finance_base_url}/v8/finance/chart/{quote(symbol, safe='')}"
        try:
            payload = await self._get_json(url, {"interval": "1d", "range": "1d"}, browser=True)
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error fetching stock quote for {symbol}: {exc}")
            return None
        stock_quote = parse_chart_quote(symbol, payload) if payload else None

        if stock_quote and self.cache:
            await self.cache.set("yahoo", symbol, "quote", asdict(stock_quote))
        return stock_quote

    async def get_stock_history(self, symbol: str, range_: str = "1mo") -> list[StockHistoryPoint]:
        if range_ not in HISTORY_INTERVALS:
            range_ = "1mo"
        data_type = f"history_{range_}"
        if self.cache:
            cached = await self.cache.get("yahoo", symbol, data_type)
            if cached:
                return [StockHistoryPoint(**p) for p in cached]

        url = f"{settings.yahoo_finance_base_url}/v8/finance/chart/{quote(symbol, safe='')}"
        params = {"interval": HISTORY_INTERVALS[range_], "range": range_}
        try:
            payload = await self._get_json(url, params, browser=True)
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error fetching stock history for {symbol}: {exc}")
            return []
        history = parse_chart_history(payload) if payload else []

        if history and self.cache:
            await self.cache.set("yahoo", symbol, data_type, [asdict(p) for p in history])
        return history

    async def search_symbols(self, query: str) -> list[dict[str, Any]]:
        url = f"{settings.yahoo_finance_base_url}/v1/finance/search"
        params = {"q": query, "quotesCount": 8, "newsCount": 0, "enableFuzzyQuery": "false"}
        try:
            payload = await self._get_json(url, params, browser=True)
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error searching stocks: {exc}")
            return []
        quotes = (payload or {}).get("quotes") or []
        return [
            {
                "symbol": q.get("symbol"),
                "name": q.get("shortname") or q.get("longname") or q.get("symbol"),
                "type": (q.get("quoteType") or "stock").lower(),
                "region": q.get("exchDisp") or "Unknown",
                "exchange": q.get("exchange") or "",
            }
            for q in quotes
            if q.get("quoteType") in ("EQUITY", "ETF")
        ]

    async def get_crypto_price(self, coin_id: str) -> CryptoPrice | None:
        if self.cache:
            cached = await self.cache.get("coingecko", coin_id, "quote")
            if cached:
                return CryptoPrice(**cached)

        url = f"{settings.coingecko_base_url}/coins/{quote(coin_id, safe='')}"
        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
        }
        try:
            payload = await self._get_json(url, params)
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error fetching crypto price for {coin_id}: {exc}")
            return None
        market = (payload or {}).get("market_data")
        if not market:
            return None

        def usd(key: str) -> float:
            return (market.get(key) or {}).get("usd") or 0

        price = CryptoPrice(
            id=payload.get("id") or coin_id,
            symbol=(payload.get("symbol") or coin_id).upper(),
            name=payload.get("name") or coin_id,
            price=usd("current_price"),
            price_change_24h=market.get("price_change_24h") or 0,
            price_change_percent_24h=market.get("price_change_percentage_24h") or 0,
            market_cap=usd("market_cap"),
            volume_24h=usd("total_volume"),
            high_24h=usd("high_24h"),
            low_24h=usd("low_24h"),
            last_updated=market.get("last_updated") or _utc_iso(),
        )
        if self.cache:
            await self.cache.set("coingecko", coin_id, "quote", asdict(price))
        return price

    async def get_crypto_history(self, coin_id: str, days: int = 30) -> list[dict[str, Any]]:
        data_type = "history_1d" if days <= 1 else "history_5d" if days <= 7 else "history_1mo"
        if self.cache:
            cached = await self.cache.get("coingecko", coin_id, data_type)
            if cached:
                return cached

        url = f"{settings.coingecko_base_url}/coins/{quote(coin_id, safe='')}/market_chart"
        try:
            payload = await self._get_json(url, {"vs_currency": "usd", "days": days})
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error fetching crypto history for {coin_id}: {exc}")
            return []
        history = [
            {"date": _utc_iso(point[0] / 1000), "price": point[1]}
            for point in (payload or {}).get("prices") or []
        ]
        if history and self.cache:
            await self.cache.set("coingecko", coin_id, data_type, history)
        return history

    async def search_crypto(self, query: str) -> list[dict[str, Any]]:
        try:
            payload = await self._get_json(f"{settings.coingecko_base_url}/search", {"query": query})
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error searching crypto: {exc}")
            return []
        return [
            {
                "id": coin.get("id"),
                "symbol": (coin.get("symbol") or "").upper(),
                "name": coin.get("name") or coin.get("id"),
                "market_cap_rank": coin.get("market_cap_rank"),
            }
            for coin in ((payload or {}).get("coins") or [])[:10]
        ]

    async def get_top_cryptos(self, limit: int = 10) -> list[CryptoPrice]:
        cache_symbol = f"top_{limit}"
        if self.cache:
            cached = await self.cache.get("coingecko", cache_symbol, "quote")
            if cached:
                return [CryptoPrice(**c) for c in cached]

        params = {
            "vs_currency": "usd",
            "order": "market_cap_desc",
            "per_page": limit,
            "page": 1,
            "sparkline": "false",
        }
        try:
            payload = await self._get_json(f"{settings.coingecko_base_url}/coins/markets", params)
        except httpx.HTTPError as exc:
            logger.error(f"[MarketData] Error fetching top cryptos: {exc}")
            return []
        coins = [
            CryptoPrice(
                id=coin.get("id"),
                symbol=(coin.get("symbol") or "").upper(),
                name=coin.get("name") or coin.get("id"),
                price=coin.get("current_price") or 0,
                price_change_24h=coin.get("price_change_24h") or 0,
                price_change_percent_24h=coin.get("price_change_percentage_24h") or 0,
                market_cap=coin.get("market_cap") or 0,
                volume_24h=coin.get("total_volume") or 0,
                high_24h=coin.get("high_24h") or 0,
                low_24h=coin.get("low_24h") or 0,
                last_updated=coin.get("last_updated") or _utc_iso(),
            )
            for coin in payload or []
        ]
        if coins and self.cache:
            await self.cache.set("coingecko", cache_symbol, "quote", [asdict(c) for c in coins])
        return coins

    async def search(self, query: str) -> dict[str, list[dict[str, Any]]]:
        stocks, cryptos = await asyncio.gather(self.search_symbols(query), self.search_crypto(query))
        return {"stocks": stocks, "cryptos": cryptos}

    async def fetch_market_data(self, symbols: list[str], kind: str = "stock") -> list[dict[str, Any]]:
        """Quotes for several symbols at once, as ``{"symbol", "data"}`` dicts."""
        fetch = self.get_crypto_price if kind == "crypto" else self.get_stock_quote
        quotes = await asyncio.gather(*(fetch(symbol) for symbol in symbols))
        return [
            {"symbol": symbol, "data": asdict(q) if q else None}
            for symbol, q in zip(symbols, quotes)
        ]


market_data = MarketDataClient()
