"""FastAPI dependency providers."""

from __future__ import annotations

from fastapi import Request

from salesflow.core.container import ServiceContainer


def get_service_container(request: Request) -> ServiceContainer:
    return request.app.state.container
