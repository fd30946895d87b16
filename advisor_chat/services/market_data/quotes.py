"""
Stock quote lookups for Alpha Vantage.
"""

from dataclasses import dataclass
from typing import Any

import structlog

from ...core.exceptions import ExternalServiceError
from .base import AlphaVantageBase

logger = structlog.get_logger()


@dataclass(frozen=True)
class StockQuote:
    """Latest daily quote for a symbol."""

    symbol: str
    price: float
    open: float
    high: float
    low: float
    volume: int
    previous_close: float
    change: float
    change_percent: str
    latest_trading_day: str


class QuotesMixin(AlphaVantageBase):
    """Methods for stock quotes."""

    async def get_quote(self, symbol: str) -> StockQuote:
        """
        Get latest quote using Alpha Vantage GLOBAL_QUOTE.

        Args:
            symbol: Stock symbol

        Returns:
            StockQuote with price, volume, change, etc.

        Raises:
            ExternalServiceError: If the API fails or returns no quote
        """
        data = await self._query("GLOBAL_QUOTE", symbol=symbol, entitlement="delayed")

        # Standard: "Global Quote"
        # Delayed: "Global Quote - DATA DELAYED BY 15 MINUTES"
        quote_key = next((key for key in data if key.startswith("Global Quote")), None)
        if not quote_key or not data[quote_key]:
            raise ExternalServiceError(
                f"No quote data for symbol: {symbol}",
                service="alpha_vantage",
                symbol=symbol,
            )

        quote: dict[str, Any] = data[quote_key]
        result = StockQuote(
            symbol=quote.get("01. symbol", symbol),
            open=float(quote.get("02. open", 0)),
            high=float(quote.get("03. high", 0)),
            low=float(quote.get("04. low", 0)),
            price=float(quote.get("05. price", 0)),
            volume=int(quote.get("06. volume", 0)),
            latest_trading_day=quote.get("07. latest trading day", ""),
            previous_close=float(quote.get("08. previous close", 0)),
            change=float(quote.get("09. change", 0)),
            change_percent=quote.get("10. change percent", "0%").rstrip("%"),
        )

        logger.info("Quote fetched", symbol=symbol, price=result.price)
        return result
