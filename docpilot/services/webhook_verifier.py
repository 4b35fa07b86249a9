"""GitHub webhook signature verification."""

import hashlib
import hmac
import logging

from ..core.config import Environment
from ..exceptions import WebhookValidationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
_PREFIX = "sha256="


def verify_github_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify GitHub webhook HMAC-SHA256 signature.

    Args:
        payload: Raw request body bytes
        signature_header: Value of X-Hub-Signature-256 header
        secret: Webhook secret configured in GitHub

    Returns:
        True if signature is valid
    """
    if not signature_header or not signature_header.startswith(_PREFIX):
        return False

    expected_sig = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256
    ).hexdigest()

    received_sig = signature_header[len(_PREFIX):]
    return hmac.compare_digest(expected_sig, received_sig)


def require_valid_signature(
    payload: bytes,
    signature_header: str,
    secret: str,
    environment: Environment,
) -> None:
    """
    Reject the delivery unless its signature checks out.

    With no secret configured, verification is skipped in development and
    every delivery is rejected in production.

    Raises:
        WebhookValidationError: If the delivery must not be processed.
    """
    if not secret:
        if environment == Environment.PRODUCTION:
            logger.error("GITHUB_WEBHOOK_SECRET not configured in production, rejecting webhook")
            raise WebhookValidationError("Webhook secret not configured")
        logger.warning("GITHUB_WEBHOOK_SECRET not configured, skipping signature verification")
        return

    if not verify_github_signature(payload, signature_header, secret):
        logger.warning("Webhook signature verification failed")
        raise WebhookValidationError("Invalid webhook signature")
