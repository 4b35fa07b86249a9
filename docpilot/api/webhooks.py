"""GitHub webhook endpoint for issue-driven document automation."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from ..container import Services, get_services
from ..core.config import settings
from ..exceptions import ValidationError, WebhookValidationError
from ..schemas.webhook import WebhookInfo, WebhookReceipt
from ..services.webhook_router import SUPPORTED_EVENTS, WebhookRouter
from ..services.webhook_verifier import SIGNATURE_HEADER, require_valid_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhooks"])


async def _route_event(webhook_router: WebhookRouter, event: str, payload: dict) -> None:
    try:
        result = await webhook_router.handle(event, payload)
    except Exception as e:
        logger.error("Webhook event %s failed: %s", event, e, exc_info=True)
        return
    log = logger.info if result.success else logger.warning
    log("Webhook event %s handled: %s", event, result.message)


@router.post("/github", response_model=WebhookReceipt)
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    """
    Receive GitHub issue webhooks and route them to the issue scripts.

    Validates the signature using GITHUB_WEBHOOK_SECRET and requires the
    X-GitHub-Event header. Responds as soon as the delivery is accepted;
    the matching script runs in the background.
    """
    # Read raw body for signature verification
    body = await request.body()

    require_valid_signature(
        body,
        request.headers.get(SIGNATURE_HEADER, ""),
        settings.github_webhook_secret,
        settings.environment,
    )

    event = request.headers.get("X-GitHub-Event")
    if not event:
        raise WebhookValidationError("Missing X-GitHub-Event header")

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationError("Invalid JSON payload")
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    action = payload.get("action")
    delivery = request.headers.get("X-GitHub-Delivery")
    logger.info(
        "Webhook received: %s%s",
        event, f"/{action}" if action else "",
        extra={"event": event, "delivery": delivery},
    )

    background_tasks.add_task(_route_event, services.webhook_router, event, payload)

    return WebhookReceipt(event=event, action=action, delivery=delivery)


@router.get("/github", response_model=WebhookInfo)
def webhook_info():
    """Liveness check for the webhook endpoint."""
    return WebhookInfo(supported_events=list(SUPPORTED_EVENTS))
