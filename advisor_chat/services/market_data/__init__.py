"""
Alpha Vantage market data service.

This module is organized into the following components:
- base: Initialization, HTTP client, and sanitization utilities
- quotes: Latest stock quotes
- fundamentals: Company overview data
- context: Ticker extraction and the market-data context block
"""

from .base import AlphaVantageBase
from .context import MarketContextService, extract_tickers
from .fundamentals import CompanyOverview, FundamentalsMixin
from .quotes import QuotesMixin, StockQuote


class AlphaVantageMarketDataService(QuotesMixin, FundamentalsMixin):
    """Alpha Vantage client combining quote and fundamentals lookups."""


__all__ = [
    "AlphaVantageBase",
    "AlphaVantageMarketDataService",
    "CompanyOverview",
    "MarketContextService",
    "StockQuote",
    "extract_tickers",
]
