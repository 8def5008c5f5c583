"""Fake notifier: records notifications in memory for test assertions."""

from uuid import uuid4

from dispatch.notifier.port import NotifierPort


class FakeNotifier(NotifierPort):
    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def notify(self, recipient_type: str, recipient_id: str, event: str, payload: dict | None = None) -> dict:
        if not self.should_succeed:
            return {"notification_id": None, "status": "failed", "error": self.failure_reason}

        notification_id = f"ntf-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "notification_id": notification_id,
                "recipient_type": recipient_type,
                "recipient_id": recipient_id,
                "event": event,
                "payload": payload or {},
            }
        )
        return {"notification_id": notification_id, "status": "sent"}

    def events_for(self, recipient_type: str, recipient_id: str | None = None) -> list[str]:
        return [
            n["event"]
            for n in self.sent
            if n["recipient_type"] == recipient_type and (recipient_id is None or n["recipient_id"] == recipient_id)
        ]

    def reset(self):
        """Clear sent notifications (useful between tests)."""
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
