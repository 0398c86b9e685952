from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from careledger.core import config as core_config  # noqa: E402
from careledger.db import models  # noqa: E402
from careledger.db import session as db_session  # noqa: E402
from careledger.domain.errors import NotFoundError  # noqa: E402
from careledger.repositories.sql_repository import SQLRepository  # noqa: E402
from careledger.services import notification_service as notification_module  # noqa: E402
from careledger.services.notification_service import NotificationService  # noqa: E402


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("NOTIFICATION_MAX_ATTEMPTS", "2")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]
    core_config.get_settings.cache_clear()


class FlakySender:
    """Fails the first `failures` sends, then succeeds."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.sent = []

    def __call__(self, subject, to_email, html_body, text_body=None):
        self.sent.append((subject, to_email, text_body))
        if self.failures > 0:
            self.failures -= 1
            return False
        return True


def _member(email: str = "lee@example.com") -> models.Member:
    member = models.Member(
        id="01012345678",
        name="Lee",
        phone="010-1234-5678",
        email=email,
        tier="SILVER",
        deposit=0,
        used=0,
        remaining=0,
        status="active",
    )
    with db_session.get_session() as session:
        session.add(member)
        session.commit()
    return member


def _queue(svc: NotificationService, member: models.Member, subject: str) -> str:
    with db_session.get_session() as session:
        entity = svc.queue(session, member, subject, f"{subject} body")
        session.commit()
        return entity.id


def test_deliver_marks_row_delivered(db_env):
    sender = FlakySender()
    svc = NotificationService(sender=sender)
    member = _member()
    notification_id = _queue(svc, member, "안내")

    assert svc.deliver(notification_id) is True
    # Already delivered rows are not sent twice.
    assert svc.deliver(notification_id) is True

    entity = svc.repository.get_notification(notification_id)
    assert entity.delivered_at is not None
    assert entity.attempts == 1
    assert len(sender.sent) == 1
    subject, to_email, text_body = sender.sent[0]
    assert to_email == "lee@example.com"
    assert "안내" in subject
    assert text_body == "안내 body"


def test_deliver_pending_retries_until_max_attempts(db_env):
    sender = FlakySender(failures=5)
    svc = NotificationService(sender=sender)
    member = _member()
    notification_id = _queue(svc, member, "retry")

    assert svc.deliver_pending() == (0, 1)
    assert svc.deliver_pending() == (0, 1)
    # NOTIFICATION_MAX_ATTEMPTS=2 exhausts the row.
    assert svc.deliver_pending() == (0, 0)

    entity = svc.repository.get_notification(notification_id)
    assert entity.attempts == 2
    assert entity.delivered_at is None
    assert entity.last_error == "delivery failed"


def test_deliver_pending_recovers_after_transient_failure(db_env):
    sender = FlakySender(failures=1)
    svc = NotificationService(sender=sender)
    member = _member()
    notification_id = _queue(svc, member, "transient")

    assert svc.deliver(notification_id) is False
    assert svc.deliver_pending(max_attempts=3) == (1, 0)
    entity = svc.repository.get_notification(notification_id)
    assert entity.delivered_at is not None
    assert entity.last_error is None


def test_member_without_email_stays_in_app(db_env):
    sender = FlakySender()
    svc = NotificationService(sender=sender)
    member = _member(email="")
    notification_id = _queue(svc, member, "inbox")

    assert svc.deliver(notification_id) is False
    assert svc.deliver_pending() == (0, 0)
    assert sender.sent == []
    assert [n.id for n in svc.list_notifications(member.id)] == [notification_id]


def test_default_sender_is_module_send_email(db_env, monkeypatch):
    calls = []
    monkeypatch.setattr(notification_module, "send_email", lambda *args: calls.append(args) or True)
    svc = NotificationService()
    member = _member()
    notification_id = _queue(svc, member, "patched")

    assert svc.deliver(notification_id) is True
    assert calls and calls[0][1] == "lee@example.com"


def test_mark_read_and_missing_notification(db_env):
    svc = NotificationService(sender=FlakySender())
    member = _member()
    notification_id = _queue(svc, member, "read me")

    svc.mark_read(notification_id)
    assert SQLRepository().get_notification(notification_id).is_read is True

    with pytest.raises(NotFoundError):
        svc.mark_read("notif_missing")


class SelectiveRaisingSender:
    """Raises for one subject, delivers everything else."""

    def __init__(self, bad_subject: str):
        self.bad_subject = bad_subject
        self.sent = []

    def __call__(self, subject, to_email, html_body, text_body=None):
        if self.bad_subject in subject:
            raise ConnectionResetError("smtp reset")
        self.sent.append(subject)
        return True


def test_raising_sink_counts_as_failed_attempt(db_env):
    sender = SelectiveRaisingSender("broken")
    svc = NotificationService(sender=sender)
    member = _member()
    broken_id = _queue(svc, member, "broken")
    fine_id = _queue(svc, member, "fine")

    assert svc.deliver(broken_id) is False
    assert svc.deliver_pending() == (1, 1)

    broken = svc.repository.get_notification(broken_id)
    assert broken.attempts == 2
    assert broken.last_error == "smtp reset"
    # Exhausted rows drop out of the retry loop.
    assert svc.deliver_pending() == (0, 0)
    assert svc.repository.get_notification(fine_id).delivered_at is not None
    assert len(sender.sent) == 1
