import pytest
from django.core import mail

from accounts.models import User
from notifications.messages import get_template, render_line
from notifications.models import Notification
from notifications.services import (
    create_notification,
    mark_all_as_read,
    mark_as_read,
    notify_users_by_role,
    queue_member_messages,
    queue_message,
    run_after_commit,
)


def _notify(recipient, title="Hello"):
    return create_notification(
        recipient=recipient,
        type=Notification.Type.SYSTEM,
        title=title,
        message="Body",
    )


@pytest.mark.django_db
class TestNotifications:
    def test_create_defaults(self, member_user):
        note = _notify(member_user)
        assert note.priority == Notification.Priority.MEDIUM
        assert not note.is_read
        assert note.related_id == ""

    def test_notify_by_role_skips_other_roles(self, admin_user, member_user):
        created = notify_users_by_role(
            User.Role.ADMIN,
            type=Notification.Type.SYSTEM,
            title="Heads up",
            message="Body",
            related_id="abc",
        )
        assert [note.recipient for note in created] == [admin_user]
        assert created[0].related_id == "abc"

    def test_only_recipient_can_mark_read(self, member_user, other_member):
        note = _notify(member_user)

        with pytest.raises(PermissionError):
            mark_as_read(note, other_member)

        mark_as_read(note, member_user)
        note.refresh_from_db()
        assert note.is_read
        assert note.read_at is not None

    def test_mark_all_as_read(self, member_user, other_member):
        _notify(member_user, "One")
        _notify(member_user, "Two")
        _notify(other_member, "Three")

        assert mark_all_as_read(member_user) == 2
        assert Notification.objects.filter(recipient=other_member, is_read=False).count() == 1


@pytest.mark.django_db
class TestQueueMessages:
    def test_member_gets_email(self, member_user):
        queue_member_messages(
            member_user,
            "commitment_cancelled",
            {"deal_name": "Sparkling Water", "user_name": member_user.display_name},
        )
        assert len(mail.outbox) == 1
        assert mail.outbox[0].subject == "Commitment cancelled: Sparkling Water"

    def test_missing_destination_is_skipped(self):
        assert queue_message("email", "", "commitment_cancelled", {}) is False
        assert mail.outbox == []

    def test_unknown_channel(self):
        assert queue_message("fax", "123", "commitment_cancelled", {}) is False

    def test_broker_failure_is_swallowed(self, monkeypatch):
        class _Unreachable:
            def delay(self, **kwargs):
                raise ConnectionError("broker unreachable")

        monkeypatch.setattr("notifications.tasks.send_email_message", _Unreachable())
        assert queue_message("email", "someone@test.com", "commitment_cancelled", {}) is False


@pytest.mark.django_db
class TestRunAfterCommit:
    def test_effects_wait_for_commit(self, django_capture_on_commit_callbacks):
        ran = []
        with django_capture_on_commit_callbacks() as callbacks:
            run_after_commit(lambda: ran.append(True))

        assert ran == []
        assert len(callbacks) == 1

    def test_failing_effect_does_not_stop_the_others(self, caplog, django_capture_on_commit_callbacks):
        ran = []

        def _broken():
            raise RuntimeError("boom")

        with django_capture_on_commit_callbacks(execute=True):
            run_after_commit(_broken, lambda: ran.append(True))

        assert ran == [True]
        assert "boom" in caplog.text


class TestMessageTemplates:
    def test_unknown_key(self):
        with pytest.raises(ValueError):
            get_template("nope")

    def test_missing_values_render_empty(self):
        assert render_line("Hi {user_name}, {deal_name}", {"user_name": "Sam"}) == "Hi Sam, "


class TestBuildEmail:
    def test_multipart_message(self, settings):
        from notifications.email import build_email

        settings.CURRENCY_SYMBOL = "$"
        message = build_email(
            "commitment_created",
            {"deal_name": "Sparkling Water", "user_name": "Sam", "quantity": 60, "total_price": "600.00"},
            "sam@test.com",
        )

        assert message.to == ["sam@test.com"]
        assert message.subject == "Commitment received: Sparkling Water"
        assert message.extra_headers["X-Groupbuy-Template"] == "commitment_created"
        assert "$600.00" in message.body
        assert message.alternatives[0][1] == "text/html"
