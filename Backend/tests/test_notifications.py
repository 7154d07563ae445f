"""
Tests for notification settings, email templates and the outbound queue.
"""

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError

from portal.errors import ValidationError
from portal.services import email_templates as tpl
from portal.services.email_service import SMTPConfig, SMTPMailer
from portal.services.approval_service import ApprovalService
from portal.services.notification_service import (
    NotificationService,
    OutboundEmail,
    OutboundQueue,
    deliver,
    render,
)
from portal.services.settings_service import DEFAULT_SETTINGS, SettingsService

from conftest import RecordingMailer, make_user


class FlakyMailer(RecordingMailer):
    def __init__(self, failures):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    def send(self, to, subject, text, html):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("smtp down")
        super().send(to, subject, text, html)


def message(to="someone@example.com"):
    return OutboundEmail(to=to, subject="s", text="t", html="<p>h</p>", kind="test")


# =============================================================================
# RENDERING AND DELIVERY
# =============================================================================


class TestRender:
    def test_substitutes_and_escapes_html_only(self):
        out = render(
            {"subject": "Hi ${full_name}", "body_text": "${full_name} ${missing}", "body_html": "<b>${full_name}</b>"},
            {"full_name": "<Bob & Co>"},
        )

        assert out["subject"] == "Hi <Bob & Co>"
        assert out["text"] == "<Bob & Co> ${missing}"
        assert out["html"] == "<b>&lt;Bob &amp; Co&gt;</b>"

    def test_none_becomes_empty(self):
        out = render({"subject": "[${reason}]", "body_text": "", "body_html": ""}, {"reason": None})
        assert out["subject"] == "[]"


class TestDeliver:
    def test_retries_then_succeeds(self):
        mailer = FlakyMailer(failures=1)
        assert deliver(mailer, [message()], max_attempts=2) == 1
        assert mailer.attempts == 2

    def test_gives_up_without_raising(self):
        mailer = FlakyMailer(failures=10)
        assert deliver(mailer, [message("a@example.com"), message("b@example.com")], max_attempts=2) == 0
        assert mailer.attempts == 4

    def test_one_failure_does_not_stop_the_rest(self):
        mailer = FlakyMailer(failures=1)
        assert deliver(mailer, [message("a@example.com"), message("b@example.com")], max_attempts=1) == 1
        assert [m["to"] for m in mailer.sent] == ["b@example.com"]


class TestOutboundQueue:
    def test_single_background_task_drains_everything(self):
        mailer = RecordingMailer()
        tasks = BackgroundTasks()
        queue = OutboundQueue(mailer, tasks, max_attempts=1)

        queue.enqueue(message("a@example.com"))
        queue.enqueue(message("b@example.com"))

        assert len(tasks.tasks) == 1
        assert mailer.sent == []

        task = tasks.tasks[0]
        task.func(*task.args, **task.kwargs)
        assert [m["to"] for m in mailer.sent] == ["a@example.com", "b@example.com"]

    def test_without_background_tasks_sends_immediately(self):
        mailer = RecordingMailer()
        OutboundQueue(mailer, None, max_attempts=1).enqueue(message())
        assert len(mailer.sent) == 1


class TestSMTPMailer:
    def test_build_message_is_multipart_alternative(self):
        config = SMTPConfig(host="smtp.example.com", port=587, secure=False,
                            username="portal@example.com", password="pw", sender_name="Portal Team")
        msg = SMTPMailer(config).build_message("to@example.com", "Subject", "plain", "<p>html</p>")

        assert msg.get_content_subtype() == "alternative"
        assert msg["From"] == "Portal Team <portal@example.com>"
        assert [p.get_content_type() for p in msg.get_payload()] == ["text/plain", "text/html"]

    def test_unconfigured_mailer_raises(self):
        config = SMTPConfig(host="", port=587, secure=False, username="", password="", sender_name="x")
        with pytest.raises(RuntimeError):
            SMTPMailer(config).send("to@example.com", "s", "t", "h")


# =============================================================================
# SETTINGS
# =============================================================================


class TestSettings:
    def test_defaults_without_rows(self, db_session):
        assert SettingsService(db_session).effective() == DEFAULT_SETTINGS

    def test_personal_row_overrides_global_field_by_field(self, db_session, admin, super_admin):
        service = SettingsService(db_session)
        service.update({"notify_on_approve": False, "notify_on_reject": False}, scope="global")
        service.update({"notify_on_approve": True}, scope="personal", admin_id=admin.id)

        mine = service.effective(admin.id)
        assert mine["notify_on_approve"] is True
        assert mine["notify_on_reject"] is False
        assert mine["notify_on_delete"] is True

        theirs = service.effective(super_admin.id)
        assert theirs["notify_on_approve"] is False

    def test_update_without_toggles_is_rejected(self, db_session):
        with pytest.raises(ValidationError, match="No valid settings provided"):
            SettingsService(db_session).update({"notify_on_everything": True})

    def test_update_is_an_upsert(self, db_session):
        service = SettingsService(db_session)
        service.update({"notify_on_delete": False})
        service.update({"notify_on_delete": True})
        assert service.effective()["notify_on_delete"] is True


class TestTemplates:
    def test_defaults_cover_every_key(self, db_session):
        keys = [t["key"] for t in SettingsService(db_session).list_templates()]
        assert keys == sorted(tpl.DEFAULT_TEMPLATES)

    def test_unknown_key_is_rejected(self, db_session):
        with pytest.raises(ValidationError, match="Unknown template key"):
            SettingsService(db_session).upsert_template("nope", "s", "h", "t")

    def test_stored_template_replaces_default(self, db_session):
        service = SettingsService(db_session)
        service.upsert_template(tpl.APPROVAL, "Welcome aboard ${full_name}", "<p>${email}</p>", "${email}")

        assert service.get_template(tpl.APPROVAL)["subject"] == "Welcome aboard ${full_name}"

    def test_notification_uses_stored_template(self, db_session):
        SettingsService(db_session).upsert_template(tpl.APPROVAL, "Hello ${full_name}", "<p>${email}</p>", "${email}")
        member = make_user(db_session, "member@example.com", full_name="Mia Member")
        mailer = RecordingMailer()

        NotificationService(db_session, OutboundQueue(mailer, None, max_attempts=1)).approval(member)

        assert mailer.sent[0]["subject"] == "Hello Mia Member"
        assert mailer.sent[0]["text"] == "member@example.com"


class TestRegistrationAlert:
    def test_only_admins_with_the_toggle_on_are_alerted(self, db_session, admin, super_admin):
        SettingsService(db_session).update({"notify_on_registration": False}, scope="personal", admin_id=admin.id)
        member = make_user(db_session, "new@example.com")
        mailer = RecordingMailer()

        sent = NotificationService(db_session, OutboundQueue(mailer, None, max_attempts=1)).registration_alert(member)

        assert sent == 1
        assert [m["to"] for m in mailer.sent] == ["root@example.com"]


class TestRenderFailures:
    def test_decision_stands_when_template_lookup_fails(self, db_session, admin, monkeypatch):
        def broken(self, key):
            raise OperationalError("SELECT email_templates", {}, Exception("connection reset"))

        monkeypatch.setattr(SettingsService, "get_template", broken)
        member = make_user(db_session, "member@example.com")
        mailer = RecordingMailer()
        notifier = NotificationService(db_session, OutboundQueue(mailer, None, max_attempts=1))

        approved = ApprovalService(db_session, notifier=notifier).approve(member.id, admin.id)

        assert approved.approval_status == "approved"
        assert mailer.sent == []

    def test_settings_lookup_failure_keeps_defaults(self, db_session, monkeypatch):
        def broken(self, toggle, admin_id=None):
            raise OperationalError("SELECT notification_settings", {}, Exception("connection reset"))

        monkeypatch.setattr(SettingsService, "is_enabled", broken)
        notifier = NotificationService(db_session, OutboundQueue(RecordingMailer(), None, max_attempts=1))

        assert notifier.enabled("notify_on_reject", None) is True
