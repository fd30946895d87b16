"""
Unit tests for the market data services.

Tests Alpha Vantage interactions with mocked HTTP responses and the
market-data context block built from them.
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from advisor_chat.core.exceptions import ConfigurationError, ExternalServiceError
from advisor_chat.services.market_data import (
    AlphaVantageMarketDataService,
    CompanyOverview,
    MarketContextService,
    StockQuote,
    extract_tickers,
)
from advisor_chat.services.market_data.context import format_symbol_block

# ===== Fixtures =====


@pytest.fixture
def mock_settings():
    """Mock Settings"""
    settings = Mock()
    settings.alpha_vantage_api_key = "test_api_key"
    return settings


@pytest.fixture
def market_service(mock_settings):
    """Create service with a mocked HTTP client"""
    with patch("advisor_chat.services.market_data.base.httpx.AsyncClient"):
        service = AlphaVantageMarketDataService(mock_settings)
        service.client = AsyncMock()
        return service


def _response(payload, status_code=200):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


@pytest.fixture
def quote_payload():
    return {
        "Global Quote - DATA DELAYED BY 15 MINUTES": {
            "01. symbol": "AAPL",
            "02. open": "150.00",
            "03. high": "152.50",
            "04. low": "149.50",
            "05. price": "151.75",
            "06. volume": "75000000",
            "07. latest trading day": "2025-01-10",
            "08. previous close": "149.00",
            "09. change": "2.75",
            "10. change percent": "1.85%",
        }
    }


def _quote(symbol="AAPL", price=151.75):
    return StockQuote(
        symbol=symbol, price=price, open=150.0, high=152.5, low=149.5, volume=75_000_000,
        previous_close=149.0, change=2.75, change_percent="1.85", latest_trading_day="2025-01-10",
    )


# ===== Ticker Extraction Tests =====


class TestExtractTickers:
    def test_dollar_and_possessive_forms(self):
        assert extract_tickers("Compare $TSLA with AAPL's margins") == ["TSLA", "AAPL"]

    def test_excluded_acronyms(self):
        assert extract_tickers("What does the IRS say about my IRA and CEO pay?") == []

    @pytest.mark.parametrize(
        "question",
        [
            "Does AMT apply to me?",
            "Can I fund an HSA and a SEP in the same year?",
            "How is the QBI deduction affected by FICA wages?",
            "When is my first RMD due, and does MAGI change the NIIT?",
            "Do I need an EIN or an FBAR filing?",
            "Is HOH or MFJ better with an ACA subsidy and an NOL carryforward?",
        ],
    )
    def test_tax_acronyms_are_not_tickers(self, question):
        assert extract_tickers(question) == []

    def test_tax_acronym_next_to_real_ticker(self):
        assert extract_tickers("Does AMT change how my $AAPL gains are taxed?") == ["AAPL"]

    def test_deduplicated_in_order_of_appearance(self):
        assert extract_tickers("MSFT vs NVDA, then MSFT again") == ["MSFT", "NVDA"]

    def test_limit(self):
        assert extract_tickers("AAPL MSFT NVDA AMZN", limit=2) == ["AAPL", "MSFT"]

    def test_lowercase_text_has_no_tickers(self):
        assert extract_tickers("how are my quarterly taxes computed?") == []


# ===== Quote Tests =====


class TestGetQuote:
    @pytest.mark.asyncio
    async def test_parses_delayed_quote_key(self, market_service, quote_payload):
        market_service.client.get.return_value = _response(quote_payload)

        quote = await market_service.get_quote("AAPL")

        assert quote.symbol == "AAPL"
        assert quote.price == 151.75
        assert quote.volume == 75_000_000
        assert quote.change_percent == "1.85"
        params = market_service.client.get.call_args.kwargs["params"]
        assert params["function"] == "GLOBAL_QUOTE"
        assert params["symbol"] == "AAPL"

    @pytest.mark.asyncio
    async def test_empty_quote_raises(self, market_service):
        market_service.client.get.return_value = _response({"Global Quote": {}})

        with pytest.raises(ExternalServiceError):
            await market_service.get_quote("ZZZZ")

    @pytest.mark.asyncio
    async def test_rate_limit_payload_raises(self, market_service):
        market_service.client.get.return_value = _response(
            {"Information": "Thank you for using Alpha Vantage! apikey=test_api_key limit"}
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            await market_service.get_quote("AAPL")

        assert "test_api_key" not in exc_info.value.message

    @pytest.mark.asyncio
    async def test_non_200_raises(self, market_service):
        market_service.client.get.return_value = _response({}, status_code=503)

        with pytest.raises(ExternalServiceError) as exc_info:
            await market_service.get_quote("AAPL")

        assert exc_info.value.context["status_code"] == 503

    @pytest.mark.asyncio
    async def test_missing_api_key(self, mock_settings):
        mock_settings.alpha_vantage_api_key = ""
        with patch("advisor_chat.services.market_data.base.httpx.AsyncClient"):
            service = AlphaVantageMarketDataService(mock_settings)

        with pytest.raises(ConfigurationError):
            await service.get_quote("AAPL")


class TestCompanyOverview:
    @pytest.mark.asyncio
    async def test_parses_overview(self, market_service):
        market_service.client.get.return_value = _response(
            {
                "Symbol": "AAPL",
                "Name": "Apple Inc",
                "Sector": "TECHNOLOGY",
                "Industry": "ELECTRONIC COMPUTERS",
                "MarketCapitalization": "3000000000000",
                "PERatio": "29.5",
                "DividendYield": "None",
                "52WeekHigh": "199.62",
                "52WeekLow": "164.08",
            }
        )

        overview = await market_service.get_company_overview("AAPL")

        assert overview.name == "Apple Inc"
        assert overview.market_cap == 3e12
        assert overview.dividend_yield is None

    @pytest.mark.asyncio
    async def test_etf_without_overview_raises(self, market_service):
        market_service.client.get.return_value = _response({})

        with pytest.raises(ExternalServiceError):
            await market_service.get_company_overview("SPY")


# ===== Market Context Tests =====


class TestMarketContextService:
    def test_symbol_block_formatting(self):
        overview = CompanyOverview(
            symbol="AAPL", name="Apple Inc", sector="TECHNOLOGY", industry="COMPUTERS",
            market_cap=3e12, pe_ratio=29.5, dividend_yield=None,
            week_52_high=199.62, week_52_low=164.08,
        )

        block = format_symbol_block(_quote(), overview)

        assert "AAPL: $151.75 (+2.75, 1.85%) as of 2025-01-10" in block
        assert "Market cap $3.00T" in block
        assert "52-week range $164.08 - $199.62" in block

    @pytest.mark.asyncio
    async def test_no_tickers_returns_none(self):
        market_data = Mock()
        market_data.get_quote = AsyncMock()
        service = MarketContextService(market_data)

        assert await service.fetch_market_context("What is a 1099?") is None
        market_data.get_quote.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_symbols_dropped(self):
        async def get_quote(symbol):
            if symbol == "MSFT":
                raise ExternalServiceError("rate limited", service="alpha_vantage")
            return _quote(symbol)

        market_data = Mock()
        market_data.get_quote = AsyncMock(side_effect=get_quote)
        market_data.get_company_overview = AsyncMock(
            side_effect=ExternalServiceError("no overview", service="alpha_vantage")
        )
        service = MarketContextService(market_data)

        block = await service.fetch_market_context("Compare AAPL and MSFT")

        assert "AAPL: $151.75" in block
        assert "MSFT" not in block

    @pytest.mark.asyncio
    async def test_all_symbols_failed_returns_none(self):
        market_data = Mock()
        market_data.get_quote = AsyncMock(
            side_effect=ExternalServiceError("down", service="alpha_vantage")
        )
        market_data.get_company_overview = AsyncMock(return_value=None)
        service = MarketContextService(market_data)

        assert await service.fetch_market_context("How is NVDA?") is None
