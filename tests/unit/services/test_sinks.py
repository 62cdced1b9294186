"""Tests for the notification inbox and the audit trail."""

import pytest
from sqlalchemy.exc import OperationalError

from medilocker.audit.audit_service import (
    AuditAction,
    AuditEvent,
    DatabaseAuditTrail,
    NullAuditSink,
)
from medilocker.core.database import session_scope
from medilocker.core.exceptions import NotFoundError
from medilocker.models.activity_log import ActivityLog
from medilocker.notifications.base import (
    NotificationMessage,
    NotificationType,
    NullNotificationSink,
)


def message(recipient_id="patient-1", title="Record updated"):
    """A record update notification."""
    return NotificationMessage(
        recipient_id=recipient_id,
        notification_type=NotificationType.RECORD_UPDATED,
        title=title,
        body="Dr. Rivera committed version 2.",
        metadata={"record_id": "rec-1"},
    )


class TestNotifications:
    """The in-app inbox."""

    def test_send_and_list(self, app, clock):
        """Delivered messages are listed newest first."""
        assert app.notifier.send(message(title="First")) is True
        clock.advance(minutes=1)
        app.notifier.send(message(title="Second"))
        app.notifier.send(message(recipient_id="patient-2"))

        inbox = app.notifier.list_for_recipient("patient-1")
        assert [n.title for n in inbox] == ["Second", "First"]
        assert inbox[0].payload == {"record_id": "rec-1"}
        assert inbox[0].is_read is False

    def test_mark_read(self, app, clock):
        """Read messages drop out of the unread view."""
        app.notifier.send(message())
        notification = app.notifier.list_for_recipient("patient-1")[0]

        app.notifier.mark_read(notification.id, "patient-1")

        assert app.notifier.list_for_recipient("patient-1", unread_only=True) == []
        assert app.notifier.list_for_recipient("patient-1")[0].read_at == clock.now

    def test_mark_read_other_recipient(self, app):
        """Recipients can only mark their own messages."""
        app.notifier.send(message())
        notification = app.notifier.list_for_recipient("patient-1")[0]

        with pytest.raises(NotFoundError):
            app.notifier.mark_read(notification.id, "patient-2")

    def test_mark_all_read(self, app):
        """Every unread message of one recipient is marked in one go."""
        app.notifier.send(message(title="First"))
        app.notifier.send(message(title="Second"))
        app.notifier.send(message(recipient_id="patient-2"))
        assert app.notifier.unread_count("patient-1") == 2

        assert app.notifier.mark_all_read("patient-1") == 2

        assert app.notifier.unread_count("patient-1") == 0
        assert app.notifier.unread_count("patient-2") == 1
        assert app.notifier.mark_all_read("patient-1") == 0

    def test_unread_count_without_messages(self, app):
        """An empty inbox has nothing unread."""
        assert app.notifier.unread_count("patient-1") == 0

    def test_failures_are_swallowed(self, app, monkeypatch):
        """A failed delivery reports False instead of raising."""

        def broken(msg):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(app.notifier, "_deliver", broken)
        assert app.notifier.send(message()) is False

    def test_null_sink(self):
        """The null sink accepts everything."""
        assert NullNotificationSink().send(message()) is True


@pytest.mark.audit_required
class TestAuditTrail:
    """Checksummed audit entries."""

    def event(self, clock, **overrides):
        values = {
            "actor_id": "patient-1",
            "actor_role": "patient",
            "action": AuditAction.RECORD_ARCHIVED,
            "resource_id": "rec-1",
            "details": {"patient_id": "patient-1", "record_type": "xray"},
            "occurred_at": clock.now,
        }
        values.update(overrides)
        return AuditEvent(**values)

    def test_record_and_verify(self, app, clock):
        """Stored entries verify against their checksum."""
        assert app.audit.record(self.event(clock)) is True

        entries = app.audit.list_for_resource("rec-1")
        assert len(entries) == 1
        assert entries[0].created_at == clock.now
        assert DatabaseAuditTrail.verify_integrity(entries[0])

    def test_tampering_is_detected(self, app, clock):
        """Editing a stored entry breaks its checksum."""
        app.audit.record(self.event(clock))
        with session_scope(app.session_factory) as session:
            entry = session.query(ActivityLog).filter_by(resource_id="rec-1").one()
            entry.details = {"patient_id": "patient-2", "record_type": "xray"}

        assert not DatabaseAuditTrail.verify_integrity(app.audit.list_for_resource("rec-1")[0])

    def test_list_for_actor(self, app, clock):
        """Entries are listed per actor, newest first."""
        app.audit.record(self.event(clock, resource_id="rec-1"))
        clock.advance(minutes=1)
        app.audit.record(self.event(clock, resource_id="rec-2"))
        app.audit.record(self.event(clock, actor_id="doctor-1", actor_role="doctor"))

        entries = app.audit.list_for_actor("patient-1")
        assert [e.resource_id for e in entries] == ["rec-2", "rec-1"]

    def test_failures_are_swallowed(self, app, clock, monkeypatch):
        """Audit failures never break the audited operation."""

        def broken(event):
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        monkeypatch.setattr(app.audit, "_persist", broken)
        assert app.audit.record(self.event(clock)) is False

    def test_null_sink(self, clock):
        """The null sink accepts everything."""
        assert NullAuditSink().record(self.event(clock)) is True
