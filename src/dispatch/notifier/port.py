"""Notifier port: abstract interface for human-facing notifications.

Dispatch only decides that a notification is due and to whom; message
content and delivery belong to the adapter.
"""

from abc import ABC, abstractmethod


class NotifierPort(ABC):
    """Abstract interface for notifier adapters."""

    @abstractmethod
    def notify(self, recipient_type: str, recipient_id: str, event: str, payload: dict | None = None) -> dict:
        """Send one notification.

        Returns:
            dict with keys: notification_id, status ("sent" or "failed"), error (optional)
        """
        ...
