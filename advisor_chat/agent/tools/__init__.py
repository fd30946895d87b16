"""LangChain tools available to the tool-calling loop."""

from .portfolio_tools import create_portfolio_tools

__all__ = ["create_portfolio_tools"]
