"""Logging notifier: writes each notification to the structured log."""

from uuid import uuid4

import structlog

from dispatch.notifier.port import NotifierPort

logger = structlog.get_logger(__name__)


class LoggingNotifier(NotifierPort):
    def notify(self, recipient_type: str, recipient_id: str, event: str, payload: dict | None = None) -> dict:
        notification_id = f"ntf-{uuid4().hex[:12]}"
        logger.info(
            "Notification due",
            notification_id=notification_id,
            recipient_type=recipient_type,
            recipient_id=recipient_id,
            notification_event=event,
            **(payload or {}),
        )
        return {"notification_id": notification_id, "status": "sent"}
