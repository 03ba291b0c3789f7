"""Root API router."""

from __future__ import annotations

from fastapi import APIRouter

from salesflow.api import health, webhook

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(webhook.router)


def get_api_router() -> APIRouter:
    return api_router
