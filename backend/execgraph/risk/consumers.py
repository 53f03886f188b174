"""Driver consumers shipped with the service."""

import hashlib
import hmac
import json
import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from execgraph.config import Settings
from execgraph.risk.schemas import Driver

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Execgraph-Signature"
EVENT_HEADER = "X-Execgraph-Event"


def sign_payload(secret: str, payload: Dict[str, Any], timestamp: Optional[str] = None) -> str:
    """Build the ``t=<ts>,v1=<hex>`` HMAC-SHA256 signature header value."""
    timestamp = timestamp or str(int(time.time()))
    payload_str = json.dumps(payload, sort_keys=True)
    signature_base = f"{timestamp}.{payload_str}"

    signature = hmac.new(
        secret.encode(),
        signature_base.encode(),
        hashlib.sha256
    ).hexdigest()

    return f"t={timestamp},v1={signature}"


class WebhookDriverConsumer:
    """Posts a run's drivers to an HTTP endpoint (auto-nudge, autopilot).

    Errors propagate so the orchestrator can record the failure.
    """

    def __init__(
        self,
        name: str,
        url: str,
        secret: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.name = name
        self.url = url
        self.secret = secret
        self.timeout = timeout
        self.transport = transport

    def build_payload(self, org_id: str, drivers: List[Driver], as_of_date: date) -> Dict[str, Any]:
        return {
            "event": f"risk.drivers.{self.name}",
            "org_id": org_id,
            "as_of_date": as_of_date.isoformat(),
            "drivers": [driver.model_dump(mode="json") for driver in drivers],
        }

    async def consume(self, org_id: str, drivers: List[Driver], as_of_date: date) -> None:
        payload = self.build_payload(org_id, drivers, as_of_date)

        headers = {
            "Content-Type": "application/json",
            EVENT_HEADER: payload["event"],
        }
        if self.secret:
            headers[SIGNATURE_HEADER] = sign_payload(self.secret, payload)

        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(
                self.url,
                json=payload,
                headers=headers,
                timeout=self.timeout
            )
            response.raise_for_status()

        logger.info(
            "driver_dispatch_sent",
            extra={"org_id": org_id, "consumer": self.name, "drivers_count": len(drivers)},
        )


def build_default_consumers(settings: Settings) -> List[WebhookDriverConsumer]:
    """Consumers enabled by configuration; an enabled flag without a URL is skipped."""
    consumers: List[WebhookDriverConsumer] = []
    if settings.risk_auto_nudges_enabled and settings.nudge_webhook_url:
        consumers.append(WebhookDriverConsumer("auto_nudge", settings.nudge_webhook_url, settings.webhook_secret))
    if settings.autopilot_enabled and settings.autopilot_webhook_url:
        consumers.append(WebhookDriverConsumer("autopilot", settings.autopilot_webhook_url, settings.webhook_secret))
    return consumers
