"""Notifier abstraction: pluggable delivery of store, admin and customer notifications."""

import os

import structlog

logger = structlog.get_logger(__name__)

ADMIN_RECIPIENT = os.environ.get("ADMIN_RECIPIENT_ID", "admins")

_notifier_instance = None


def get_notifier():
    """Return the configured notifier adapter (singleton).

    Uses FakeNotifier by default. Configure via the NOTIFIER_ADAPTER
    environment variable (``fake`` or ``log``).
    """
    global _notifier_instance
    if _notifier_instance is None:
        adapter = os.environ.get("NOTIFIER_ADAPTER", "fake")
        if adapter == "fake":
            from dispatch.notifier.fake_adapter import FakeNotifier

            _notifier_instance = FakeNotifier()
        elif adapter == "log":
            from dispatch.notifier.log_adapter import LoggingNotifier

            _notifier_instance = LoggingNotifier()
        else:
            raise ValueError(f"Unknown notifier adapter: {adapter}")
    return _notifier_instance


def reset_notifier():
    """Reset the notifier singleton (useful for testing)."""
    global _notifier_instance
    _notifier_instance = None


def notify(recipient_type: str, recipient_id, event: str, **payload) -> bool:
    """Send a notification; failures are logged and never raised."""
    if not recipient_id:
        logger.warning("Notification skipped, no recipient", recipient_type=recipient_type, notification_event=event)
        return False
    try:
        result = get_notifier().notify(recipient_type, str(recipient_id), event, payload)
    except Exception as e:
        logger.error(
            "Notification dispatch failed",
            recipient_type=recipient_type,
            recipient_id=str(recipient_id),
            notification_event=event,
            error=str(e),
        )
        return False
    if result.get("status") != "sent":
        logger.error(
            "Notification not delivered",
            recipient_type=recipient_type,
            recipient_id=str(recipient_id),
            notification_event=event,
            error=result.get("error", "Unknown dispatch error"),
        )
        return False
    return True
