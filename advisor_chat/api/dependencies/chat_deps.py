"""
Dependencies for chat API endpoints.
"""

from fastapi import Request

from ...agent.orchestrator import ChatOrchestrator


def get_orchestrator(request: Request) -> ChatOrchestrator:
    """Get the ChatOrchestrator created in the app lifespan."""
    orchestrator: ChatOrchestrator = request.app.state.orchestrator
    return orchestrator
