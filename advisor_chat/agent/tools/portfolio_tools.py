"""
LangChain tools for portfolio mode.

Tools raise on failure; the tool-calling loop converts any exception into a
structured ``{"error": reason}`` result for the model's next round.
"""

from dataclasses import asdict
from typing import TYPE_CHECKING, Any

import structlog
from langchain_core.tools import BaseTool, tool
from pydantic import BaseModel, Field

from ...core.exceptions import ValidationError

if TYPE_CHECKING:
    from ...services.market_data import AlphaVantageMarketDataService

logger = structlog.get_logger()

CONCENTRATION_WARNING_PCT = 25.0


class Holding(BaseModel):
    """One position in the user's portfolio."""

    symbol: str = Field(..., description="Ticker symbol, e.g. AAPL")
    shares: float = Field(..., gt=0, description="Number of shares held")
    price: float | None = Field(
        None, gt=0, description="Price per share; omit to use the latest quote"
    )


def create_portfolio_tools(
    market_data: "AlphaVantageMarketDataService | None",
) -> list[BaseTool]:
    """
    Create portfolio tools for the LLM agent.

    Args:
        market_data: Quote source; None disables live price lookups
            (tools then report an error for anything that needs a quote)

    Returns:
        List of LangChain tools
    """

    async def _latest_price(symbol: str) -> float:
        if market_data is None:
            raise ValidationError("Market data is not configured", symbol=symbol)
        quote = await market_data.get_quote(symbol)
        return quote.price

    @tool
    async def get_stock_quote(symbol: str) -> dict[str, Any]:
        """
        Get the latest daily quote for a stock symbol.

        Use this for current price, daily change, open/high/low and volume.

        Args:
            symbol: Ticker symbol (e.g., "AAPL", "MSFT")

        Returns:
            Quote fields: price, change, change_percent, volume, latest_trading_day
        """
        if market_data is None:
            raise ValidationError("Market data is not configured", symbol=symbol)
        quote = await market_data.get_quote(symbol.strip().upper())
        logger.info("Tool get_stock_quote", symbol=quote.symbol, price=quote.price)
        return asdict(quote)

    @tool
    async def calculate_portfolio_allocation(holdings: list[Holding]) -> dict[str, Any]:
        """
        Calculate position values, weights and concentration for a portfolio.

        Positions without a price are valued at the latest quote.

        Args:
            holdings: Positions with symbol, shares and optional price

        Returns:
            total_value, per-position value and weight_pct, and warnings for
            positions above the concentration threshold
        """
        if not holdings:
            raise ValidationError("At least one holding is required")

        positions = []
        for holding in holdings:
            # Tool args may arrive as dicts when invoked directly
            item = holding if isinstance(holding, Holding) else Holding.model_validate(holding)
            symbol = item.symbol.strip().upper()
            price = item.price if item.price is not None else await _latest_price(symbol)
            positions.append({"symbol": symbol, "shares": item.shares, "price": price,
                              "value": round(item.shares * price, 2)})

        total = sum(p["value"] for p in positions)
        if total <= 0:
            raise ValidationError("Portfolio total value must be positive")

        warnings = []
        for position in positions:
            position["weight_pct"] = round(position["value"] / total * 100, 2)
            if position["weight_pct"] > CONCENTRATION_WARNING_PCT:
                warnings.append(
                    f"{position['symbol']} is {position['weight_pct']}% of the portfolio "
                    f"(above {CONCENTRATION_WARNING_PCT:.0f}%)"
                )

        positions.sort(key=lambda p: p["value"], reverse=True)
        logger.info(
            "Tool calculate_portfolio_allocation",
            positions=len(positions),
            total_value=round(total, 2),
            warnings=len(warnings),
        )
        return {"total_value": round(total, 2), "positions": positions, "warnings": warnings}

    return [get_stock_quote, calculate_portfolio_allocation]
