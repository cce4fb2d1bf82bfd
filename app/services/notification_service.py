"""Booking phase notifications.

Delivery belongs to an external notification system; this service only
hands it a "phase changed" event over an HTTP webhook. Delivery failures are
logged and never propagate to the caller.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Protocol

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhaseEvent:
    booking_id: str
    phase: str
    actor: str
    new_status: str
    both_confirmed: bool
    renter_id: str
    owner_id: str
    override: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_payload(self) -> dict:
        payload = asdict(self)
        payload["type"] = "booking_phase_changed"
        payload["occurred_at"] = self.occurred_at.isoformat()
        return payload


class PhaseNotifier(Protocol):
    async def publish_phase_changed(self, event: PhaseEvent) -> None: ...


class NotificationService:
    """Posts booking phase events to the configured webhook."""

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None) -> None:
        self._http_client: httpx.AsyncClient | None = None
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.timeout = timeout or settings.notification_timeout_seconds

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def publish_phase_changed(self, event: PhaseEvent) -> None:
        if not self.webhook_url:
            logger.debug(f"No notification webhook configured, dropping event for {event.booking_id}")
            return

        try:
            response = await self.http_client.post(self.webhook_url, json=event.to_payload())
            response.raise_for_status()
            logger.info(
                f"Published {event.phase} event for booking {event.booking_id} "
                f"(status={event.new_status})"
            )
        except httpx.HTTPError as e:
            logger.warning(f"Notification delivery failed for booking {event.booking_id}: {e}")


# Singleton instance
notification_service = NotificationService()
