import logging
from typing import Dict, Any
import httpx

from maintflow.platform.config import settings
from maintflow.triggers.schemas import HandlerResult
from .base import ActionHandler, ActionContext

logger = logging.getLogger(__name__)


class WebhookNotificationAction(ActionHandler):
    """
    Posts a notification to an HTTP endpoint (Slack/Teams incoming webhook,
    a ticketing system, ...).

    Parameters:
        url: target URL (required)
        message: text sent as {"text": message}
        payload: optional extra JSON fields merged into the body
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS

    @property
    def type_name(self) -> str:
        return "webhook"

    async def execute(self, parameters: Dict[str, Any], context: ActionContext) -> HandlerResult:
        url = parameters.get("url")
        if not url or not isinstance(url, str):
            return HandlerResult.failure(f"Webhook 'url' missing for rule '{context.rule_name}'")

        extra = parameters.get("payload") or {}
        if not isinstance(extra, dict):
            return HandlerResult.failure("Webhook 'payload' must be an object")

        body = {
            "text": parameters.get("message", f"Rule triggered: {context.rule_name}"),
            "rule": context.rule_name,
            "trigger": context.trigger,
            **extra,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body)
        except httpx.TransportError as e:
            logger.warning(f"Webhook transport error for rule '{context.rule_name}': {e}")
            return HandlerResult.failure(f"Webhook unreachable: {e}", transient=True)

        if response.status_code >= 500 or response.status_code == 429:
            return HandlerResult.failure(
                f"Webhook returned {response.status_code}", transient=True
            )
        if response.status_code >= 400:
            return HandlerResult.failure(f"Webhook rejected request with {response.status_code}")

        logger.info(f"Webhook notification sent for rule '{context.rule_name}'")
        return HandlerResult.ok(f"Delivered ({response.status_code})", status_code=response.status_code)
