"""Inbound WhatsApp webhook."""

from __future__ import annotations

import hmac
import json
import logging
from time import perf_counter

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from salesflow.api.dependencies import get_service_container
from salesflow.core.container import ServiceContainer
from salesflow.core.exceptions import AuthenticationError
from salesflow.core.schemas import InboundMessageJob, Unrecognized, decode_webhook

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])

SUPPORTED_PROVIDERS = {"whatsapp", "evolution"}


class WebhookResponse(BaseModel):
    success: bool
    message: str
    processed: bool
    job_id: str | None = None
    processing_time_ms: int | None = None


def _require_provider(provider: str) -> str:
    normalized = provider.strip().lower()
    if normalized not in SUPPORTED_PROVIDERS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"unknown provider {provider}")
    return normalized


def verify_webhook_secret(expected: str | None, headers) -> None:
    """Raise ``AuthenticationError`` when a configured secret does not match."""
    if not expected:
        return
    supplied = headers.get("x-webhook-secret") or headers.get("authorization") or ""
    if supplied.lower().startswith("bearer "):
        supplied = supplied[7:]
    if not hmac.compare_digest(supplied.strip().encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError("invalid webhook secret")


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


@router.get("/webhook/{provider}")
def webhook_liveness(provider: str) -> dict:
    provider = _require_provider(provider)
    return {"success": True, "message": "Webhook is active", "provider": provider}


@router.post("/webhook/{provider}", response_model=WebhookResponse)
async def receive_webhook(
    provider: str,
    request: Request,
    container: ServiceContainer = Depends(get_service_container),
) -> WebhookResponse:
    started = perf_counter()
    provider = _require_provider(provider)

    try:
        verify_webhook_secret(container.config.WEBHOOK_SECRET, request.headers)
    except AuthenticationError as exc:
        logger.warning(
            "webhook.auth.rejected",
            extra={"event": "webhook.auth.rejected", "provider": provider},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    try:
        raw = json.loads(await request.body() or b"null")
    except ValueError:
        raw = None
    decoded = decode_webhook(raw)

    if isinstance(decoded, Unrecognized):
        logger.warning(
            "webhook.payload.unrecognized",
            extra={"event": "webhook.payload.unrecognized", "provider": provider, "reason": decoded.reason[:500]},
        )
        return WebhookResponse(
            success=True,
            message="Payload not recognized",
            processed=False,
            processing_time_ms=_elapsed_ms(started),
        )

    if decoded.from_me:
        return WebhookResponse(
            success=True,
            message="Own message ignored",
            processed=False,
            processing_time_ms=_elapsed_ms(started),
        )

    if not decoded.text:
        logger.info(
            "webhook.message.no_text",
            extra={"event": "webhook.message.no_text", "job_id": decoded.message_id},
        )
        return WebhookResponse(
            success=True,
            message="Message without text ignored",
            processed=False,
            processing_time_ms=_elapsed_ms(started),
        )

    try:
        job = InboundMessageJob.from_webhook(decoded)
        result = await run_in_threadpool(container.inbound_queue().enqueue, job)
    except Exception as exc:
        logger.exception(
            "webhook.enqueue.failed",
            extra={"event": "webhook.enqueue.failed", "job_id": decoded.message_id, "error": str(exc)},
        )
        return WebhookResponse(
            success=True,
            message="Message could not be queued",
            processed=False,
            processing_time_ms=_elapsed_ms(started),
        )

    return WebhookResponse(
        success=True,
        message="Message queued" if result.created else "Message already queued",
        processed=True,
        job_id=result.job_id,
        processing_time_ms=_elapsed_ms(started),
    )
