"""
FastAPI application entry point for the advisor chat service.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .agent.llm_client import BASE_SYSTEM_PROMPT, ChatModelFactory
from .agent.orchestrator import ChatOrchestrator
from .api.chat import router as chat_router
from .api.health import router as health_router
from .core.config import get_settings
from .core.exceptions import AppError
from .services.collaborators import CustomInstructionsClient, HistorySearchClient
from .services.context_assembler import ContextAssembler
from .services.market_data import AlphaVantageMarketDataService, MarketContextService

# Set the root logger level to INFO so we can see detailed logs
logging.basicConfig(level=logging.INFO)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create shared HTTP clients and the orchestrator; close clients on shutdown."""
    settings = get_settings()

    logger.info("Starting Advisor Chat service", environment=settings.environment)

    http_client = httpx.AsyncClient(
        timeout=15.0,
        limits=httpx.Limits(
            max_keepalive_connections=10,
            max_connections=20,
            keepalive_expiry=30.0,
        ),
    )
    market_data = AlphaVantageMarketDataService(settings, client=http_client)
    assembler = ContextAssembler(
        settings,
        base_instructions=BASE_SYSTEM_PROMPT,
        market_context=MarketContextService(market_data, settings.max_ticker_symbols),
        history_client=HistorySearchClient.from_settings(settings, http_client),
        instructions_client=CustomInstructionsClient.from_settings(settings, http_client),
    )
    app.state.orchestrator = ChatOrchestrator(
        settings,
        assembler=assembler,
        model_factory=ChatModelFactory(settings),
        market_data=market_data,
    )

    try:
        yield
    finally:
        await http_client.aclose()
        logger.info("Advisor Chat service stopped")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Advisor Chat API",
        description="LLM request orchestration for the business-assistant chat",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend communication
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Map AppError subclasses to their status code with an {"error"} body."""
        logger.error(
            "Application error occurred",
            path=request.url.path,
            method=request.method,
            **exc.to_dict(),
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_response_body())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed request bodies are 400s with the same error shape."""
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        logger.warning("Malformed chat request", path=request.url.path, details=details)
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {details}"})

    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(chat_router)

    return app


app = create_app()
