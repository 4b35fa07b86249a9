"""Webhook schemas."""

from typing import List, Optional

from .common import CamelSchema


class WebhookReceipt(CamelSchema):
    """Immediate acknowledgement; the event is routed in the background."""
    received: bool = True
    event: str
    action: Optional[str] = None
    delivery: Optional[str] = None


class WebhookInfo(CamelSchema):
    status: str = "ok"
    message: str = "GitHub webhook endpoint"
    supported_events: List[str]
