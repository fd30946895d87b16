"""
Market-data context for chat requests.

Detects ticker symbols in the user's question and renders the latest quotes
and headline fundamentals as a system-instruction block.
"""

import asyncio
import re
from typing import TYPE_CHECKING

import structlog

from ...shared.sanitizers import sanitize_exception_message
from .fundamentals import CompanyOverview
from .quotes import StockQuote

if TYPE_CHECKING:
    from . import AlphaVantageMarketDataService

logger = structlog.get_logger()

_TICKER_PATTERNS = (
    re.compile(r"\$([A-Z]{1,5})\b"),  # $AAPL
    re.compile(r"\b([A-Z]{1,5})(?=')"),  # AAPL's
    re.compile(r"\b([A-Z]{2,5})\b"),  # AAPL
)

# Uppercase words that look like tickers but are finance/English vocabulary
_EXCLUDED_WORDS = frozenset(
    {
        "RSI", "MACD", "SMA", "EMA", "ETF", "IPO", "CEO", "CFO", "PE", "EPS",
        "ROI", "ROE", "ROA", "YOY", "QOQ", "TTM", "THE", "AND", "FOR", "HOW",
        "HAS", "WAS", "ARE", "CAN", "YOU", "IRS", "LLC", "USA", "US", "AGI",
        "IRA", "CPA", "SEC", "GDP", "FAQ", "OK", "AI", "I", "A",
        # Tax and accounting
        "AMT", "HSA", "FSA", "SEP", "QBI", "FICA", "RMD", "NOL", "EIN", "SSN",
        "MAGI", "NIIT", "FBAR", "ACA", "HOH", "MFJ", "MFS", "LTCG", "STCG", "COGS",
        "GAAP", "EBIT", "CPI", "SALT", "ITIN", "TIN", "UTMA", "HELOC", "CTC", "EITC",
    }
)


def extract_tickers(text: str, limit: int = 3) -> list[str]:
    """
    Extract likely ticker symbols from free text.

    Order of first appearance is preserved and duplicates removed.

    Args:
        text: User question
        limit: Maximum number of symbols returned

    Returns:
        Up to ``limit`` upper-case symbols
    """
    tickers: list[str] = []
    for pattern in _TICKER_PATTERNS:
        for match in pattern.finditer(text):
            symbol = match.group(1)
            if symbol in _EXCLUDED_WORDS or symbol in tickers:
                continue
            tickers.append(symbol)
    # Patterns run in priority order; re-sort by position in the text
    tickers.sort(key=lambda s: _first_position(text, s))
    return tickers[:limit]


def _first_position(text: str, symbol: str) -> int:
    match = re.search(rf"\b{re.escape(symbol)}\b", text)
    return match.start() if match else len(text)


def _format_market_cap(value: float | None) -> str:
    if value is None:
        return "N/A"
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M")):
        if value >= threshold:
            return f"${value / threshold:.2f}{suffix}"
    return f"${value:,.0f}"


def format_symbol_block(quote: StockQuote, overview: CompanyOverview | None) -> str:
    """Render one symbol's facts as plain text lines."""
    lines = [
        f"{quote.symbol}: ${quote.price:.2f} "
        f"({quote.change:+.2f}, {quote.change_percent}%) as of {quote.latest_trading_day}",
        f"  Open ${quote.open:.2f} | High ${quote.high:.2f} | Low ${quote.low:.2f} "
        f"| Prev close ${quote.previous_close:.2f} | Volume {quote.volume:,}",
    ]
    if overview:
        lines.append(
            f"  {overview.name} | {overview.sector or 'N/A'} / {overview.industry or 'N/A'} "
            f"| Market cap {_format_market_cap(overview.market_cap)} "
            f"| P/E {overview.pe_ratio if overview.pe_ratio is not None else 'N/A'}"
        )
        if overview.week_52_low is not None and overview.week_52_high is not None:
            lines.append(
                f"  52-week range ${overview.week_52_low:.2f} - ${overview.week_52_high:.2f}"
            )
    return "\n".join(lines)


class MarketContextService:
    """Builds the market-data instruction block for detected tickers."""

    def __init__(self, market_data: "AlphaVantageMarketDataService", max_symbols: int = 3):
        self.market_data = market_data
        self.max_symbols = max_symbols

    async def _fetch_symbol(self, symbol: str) -> str:
        quote, overview = await asyncio.gather(
            self.market_data.get_quote(symbol),
            self.market_data.get_company_overview(symbol),
            return_exceptions=True,
        )
        if isinstance(quote, BaseException):
            raise quote
        if isinstance(overview, BaseException):
            logger.info(
                "Company overview unavailable, using quote only",
                symbol=symbol,
                error=sanitize_exception_message(overview),
            )
            overview = None
        return format_symbol_block(quote, overview)

    async def fetch_market_context(self, question: str) -> str | None:
        """
        Fetch market facts for tickers mentioned in ``question``.

        Symbols that fail are dropped individually.

        Returns:
            Rendered block, or None when no ticker was found or every lookup failed
        """
        tickers = extract_tickers(question, limit=self.max_symbols)
        if not tickers:
            return None

        results = await asyncio.gather(
            *(self._fetch_symbol(symbol) for symbol in tickers),
            return_exceptions=True,
        )

        blocks: list[str] = []
        for symbol, result in zip(tickers, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Market data lookup failed for symbol",
                    symbol=symbol,
                    error=sanitize_exception_message(result),
                    error_type=type(result).__name__,
                )
                continue
            blocks.append(result)

        logger.info(
            "Market context fetched",
            tickers=tickers,
            succeeded=len(blocks),
        )

        if not blocks:
            return None
        return "\n".join(blocks)
