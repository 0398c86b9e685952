"""
Member notifications: in-app inbox plus an email outbox.

Rows are queued inside the caller's transaction and delivered after commit.
A delivery attempt never raises; undelivered rows are retried out of band by
deliver_pending (see scripts/deliver_notifications.py).
"""

from __future__ import annotations

import html
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.orm import Session

from careledger.core.config import get_settings
from careledger.core.mailer import send_email
from careledger.db.models import Member, Notification
from careledger.domain.errors import NotFoundError
from careledger.repositories.sql_repository import SQLRepository, new_id

logger = logging.getLogger(__name__)

TYPE_SETTLEMENT = "SETTLEMENT"
TYPE_SIGNATURE_REQUEST = "SIGNATURE_REQUEST"
TYPE_GENERAL = "GENERAL"

SENDER_NAME = "Wellness, The Hannam | Membership"

Sender = Callable[[str, str, str, str | None], bool]


class NotificationService:
    def __init__(self, repository: SQLRepository | None = None, sender: Sender | None = None) -> None:
        self.repository = repository or SQLRepository()
        self._sender = sender

    def _send(self, subject: str, to_email: str, html_body: str, text_body: str | None) -> bool:
        # Resolved at call time so tests can monkeypatch the module-level send_email.
        sender = self._sender or send_email
        return sender(subject, to_email, html_body, text_body)

    def queue(self, session: Session, member: Member, subject: str, body: str, *, kind: str = TYPE_GENERAL) -> Notification:
        entity = Notification(
            id=new_id("notif"),
            member_id=member.id,
            type=kind,
            recipient=(member.email or "").strip(),
            subject=subject,
            body=body,
            is_read=False,
            attempts=0,
            delivered_at=None,
            last_error=None,
            created_at=datetime.now(timezone.utc),
        )
        session.add(entity)
        return entity

    def deliver(self, notification_id: str) -> bool:
        entity = self.repository.get_notification(notification_id)
        if not entity:
            logger.warning("Notification %s vanished before delivery", notification_id)
            return False
        if entity.delivered_at:
            return True
        if not entity.recipient:
            logger.info("Notification %s has no email recipient; in-app only", notification_id)
            return False
        html_body = f"<p>{html.escape(entity.body)}</p><p>{html.escape(SENDER_NAME)}</p>"
        error = None
        try:
            delivered = bool(self._send(f"[{SENDER_NAME}] {entity.subject}", entity.recipient, html_body, entity.body))
        except Exception as exc:  # any sink failure counts as one failed attempt
            logger.warning("Sink raised while delivering notification %s", notification_id, exc_info=True)
            delivered = False
            error = str(exc) or type(exc).__name__
        self.repository.record_delivery_attempt(
            notification_id,
            delivered=delivered,
            error=None if delivered else (error or "delivery failed"),
        )
        if not delivered:
            logger.warning("Notification %s to %s not delivered", notification_id, entity.recipient)
        return delivered

    def deliver_pending(self, max_attempts: int | None = None) -> tuple[int, int]:
        """Retry undelivered outbox rows. Returns (delivered, failed)."""
        limit = max_attempts if max_attempts is not None else get_settings().notification_max_attempts
        delivered = failed = 0
        for entity in self.repository.get_undelivered_notifications(limit):
            if self.deliver(entity.id):
                delivered += 1
            else:
                failed += 1
        return delivered, failed

    def list_notifications(self, member_id: str) -> list[Notification]:
        return self.repository.get_member_notifications(member_id)

    def mark_read(self, notification_id: str) -> None:
        if not self.repository.mark_notification_read(notification_id):
            raise NotFoundError(f"Notification {notification_id} not found")
