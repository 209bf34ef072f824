from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter

from rynk.errors import ApiError
from rynk.tools.market_data import market_data, normalize_range

router = APIRouter(prefix="/api/finance", tags=["finance"])

USAGE_EXAMPLES = [
    "/api/finance?type=stock&symbol=AAPL",
    "/api/finance?type=stock&symbol=AAPL&history=1mo",
    "/api/finance?type=crypto&symbol=bitcoin",
    "/api/finance?type=crypto&symbol=bitcoin&history=30",
    "/api/finance?type=search&q=apple",
    "/api/finance?type=top-crypto&limit=10",
]


@router.get("")
async def finance(
    type: str | None = None,
    symbol: str | None = None,
    q: str | None = None,
    history: str | None = None,
    limit: int = 10,
):
    """Stock and crypto quotes, price history, symbol search and top coins."""
    if type == "stock" and symbol:
        if history:
            range_ = normalize_range(history)
            points = await market_data.get_stock_history(symbol, range_)
            return {"success": True, "data": {"symbol": symbol, "range": range_, "data": [asdict(p) for p in points]}}
        quote = await market_data.get_stock_quote(symbol)
        if quote is None:
            raise ApiError(404, f"No data found for symbol: {symbol}")
        return {"success": True, "data": asdict(quote)}

    if type == "crypto" and symbol:
        coin_id = symbol.lower()
        if history:
            days = int(history) if history.isdigit() and int(history) > 0 else 30
            points = await market_data.get_crypto_history(coin_id, days)
            return {"success": True, "data": {"symbol": symbol, "days": days, "data": points}}
        price = await market_data.get_crypto_price(coin_id)
        if price is None:
            raise ApiError(404, f"No data found for coin: {symbol}")
        return {"success": True, "data": asdict(price)}

    if type == "search" and q:
        return {"success": True, "data": await market_data.search(q)}

    if type == "top-crypto":
        coins = await market_data.get_top_cryptos(max(1, min(limit, 50)))
        return {"success": True, "data": [asdict(c) for c in coins]}

    raise ApiError(
        400,
        "Invalid request. Required params: type=(stock|crypto|search|top-crypto)",
        examples=USAGE_EXAMPLES,
    )
