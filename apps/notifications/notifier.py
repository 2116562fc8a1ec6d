"""Publish negotiation and payment events to users.

Every ``publish`` writes a ``NotificationLog`` row first and then hands the
rendered message to each configured sink. A failing sink marks the row failed
so ``retry_notifications`` can dispatch it again; nothing here ever raises
back into the state change that triggered the event.
"""
import logging

from django.conf import settings
from django.db import DatabaseError
from django.utils.module_loading import import_string

from apps.users import directory
from core.exceptions import NotFound

from .messages import render
from .models import NotificationLog

logger = logging.getLogger(__name__)


def load_sinks(paths=None):
    paths = settings.NOTIFICATION_SINKS if paths is None else paths
    return [import_string(path)() for path in paths]


class Notifier:

    def __init__(self, sinks=None):
        self.sinks = load_sinks() if sinks is None else list(sinks)

    def publish(self, user_id, event_type, payload=None):
        payload = payload or {}
        try:
            recipient = directory.get_profile(user_id)
        except NotFound:
            logger.error(f"Cannot publish {event_type}: user {user_id} not found")
            return None

        subject, message = render(event_type, payload, recipient['name'])
        try:
            log = NotificationLog.objects.create(
                recipient_id=recipient['id'],
                event_type=event_type,
                payload=payload,
                subject=subject,
                message=message,
            )
        except DatabaseError as e:
            logger.error(f"Failed to record {event_type} notification for user {user_id}: {str(e)}")
            return None

        self.dispatch(log, recipient)
        return log

    def dispatch(self, log, recipient=None):
        """Send ``log`` through every sink. Returns True when all sinks succeeded."""
        recipient = recipient or directory.get_profile(log.recipient_id)
        log.attempts += 1
        errors = []
        for sink in self.sinks:
            try:
                sink.send(recipient, log.subject, log.message)
            except Exception as e:
                logger.error(f"Failed to send {log.event_type} via {getattr(sink, 'name', sink)} to user {log.recipient_id}: {str(e)}")
                errors.append(f"{getattr(sink, 'name', type(sink).__name__)}: {str(e)}")

        if errors:
            log.mark_as_failed('; '.join(errors))
            return False
        log.mark_as_sent()
        logger.info(f"Notification {log.event_type} delivered to user {log.recipient_id}")
        return True

    def retry_failed(self, max_attempts=5, limit=None):
        pending = NotificationLog.objects.filter(
            status__in=['pending', 'failed'], attempts__lt=max_attempts
        ).order_by('created_at')
        if limit:
            pending = pending[:limit]
        results = {'sent': 0, 'failed': 0}
        for log in pending:
            if self.dispatch(log):
                results['sent'] += 1
            else:
                results['failed'] += 1
        return results
