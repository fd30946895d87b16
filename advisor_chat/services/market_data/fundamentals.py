"""
Company overview lookups for Alpha Vantage.
"""

from dataclasses import dataclass

import structlog

from ...core.exceptions import ExternalServiceError
from .base import AlphaVantageBase

logger = structlog.get_logger()


def _safe_float(value: str | None) -> float | None:
    """Parse Alpha Vantage numeric strings ("None" and "-" mean missing)."""
    if value in (None, "", "None", "-"):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class CompanyOverview:
    """Headline fundamentals for a symbol."""

    symbol: str
    name: str
    sector: str
    industry: str
    market_cap: float | None
    pe_ratio: float | None
    dividend_yield: float | None
    week_52_high: float | None
    week_52_low: float | None


class FundamentalsMixin(AlphaVantageBase):
    """Methods for company fundamentals."""

    async def get_company_overview(self, symbol: str) -> CompanyOverview:
        """
        Get company overview using Alpha Vantage OVERVIEW.

        Raises:
            ExternalServiceError: If the API fails or the symbol is unknown
                (ETFs and indices return an empty object)
        """
        data = await self._query("OVERVIEW", symbol=symbol)
        if not data or "Symbol" not in data:
            raise ExternalServiceError(
                f"No overview data for symbol: {symbol}",
                service="alpha_vantage",
                symbol=symbol,
            )

        overview = CompanyOverview(
            symbol=data.get("Symbol", symbol),
            name=data.get("Name", symbol),
            sector=data.get("Sector", ""),
            industry=data.get("Industry", ""),
            market_cap=_safe_float(data.get("MarketCapitalization")),
            pe_ratio=_safe_float(data.get("PERatio")),
            dividend_yield=_safe_float(data.get("DividendYield")),
            week_52_high=_safe_float(data.get("52WeekHigh")),
            week_52_low=_safe_float(data.get("52WeekLow")),
        )
        logger.info("Company overview fetched", symbol=symbol, name=overview.name)
        return overview
