"""
FastAPI dependencies.

The container is attached to `app.state` once at startup; routes reach the
orchestrator and the SSE manager through these helpers.
"""

from fastapi import Request

from nivaran.alerting.orchestrator import EscalationOrchestrator
from nivaran.services.sse_manager import SSEManager


def get_orchestrator(request: Request) -> EscalationOrchestrator:
    return request.app.state.container.orchestrator


def get_sse_manager(request: Request) -> SSEManager:
    return request.app.state.sse_manager


__all__ = ["get_orchestrator", "get_sse_manager"]
