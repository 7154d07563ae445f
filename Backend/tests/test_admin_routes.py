"""
API tests for the admin dashboard surface: first-run setup, staff
accounts, notification settings, email templates and health endpoints.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portal.database import Base
from portal.middleware.audit_log import AuditLogger
from portal.schemas.audit_log import AuditLogResponse
from portal.services import email_templates as tpl

from conftest import auth_header, make_user


class TestSetup:
    def test_first_super_admin_then_locked(self, client):
        payload = {"email": "Owner@Example.com", "password": "OwnerPass123", "full_name": "Owner"}

        first = client.post("/api/admin/setup", json=payload)
        second = client.post("/api/admin/setup", json={**payload, "email": "other@example.com"})

        assert first.status_code == 201
        assert first.json()["role"] == "super_admin"
        assert first.json()["email"] == "owner@example.com"
        assert second.status_code == 403
        assert second.json()["error"] == "Setup has already been completed"


class TestAdminAccounts:
    def test_admin_cannot_manage_admins(self, client, admin):
        resp = client.get("/api/admin/admins", headers=auth_header(admin))

        assert resp.status_code == 403
        assert resp.json()["error"] == "Super admin access required"

    def test_create_list_delete(self, client, mailer, super_admin):
        headers = auth_header(super_admin)

        created = client.post("/api/admin/admins", json={
            "full_name": "Second Admin", "email": "second@example.com", "password": "SecondPass1",
        }, headers=headers)
        assert created.status_code == 201
        assert created.json()["role"] == "admin"
        assert created.json()["is_approved"] is True
        assert created.json()["approved_by"] == str(super_admin.id)
        assert mailer.to("second@example.com")[0]["subject"] == "Administrator Account Created - Welcome!"

        listed = client.get("/api/admin/admins", headers=headers).json()["admins"]
        assert sorted(a["email"] for a in listed) == ["root@example.com", "second@example.com"]

        deleted = client.delete(f"/api/admin/admins/{created.json()['id']}", headers=headers)
        assert deleted.status_code == 200
        assert client.delete(f"/api/admin/admins/{created.json()['id']}", headers=headers).status_code == 404

    def test_duplicate_email(self, client, super_admin, admin):
        resp = client.post("/api/admin/admins", json={
            "full_name": "Copy", "email": "admin@example.com", "password": "CopyPass123",
        }, headers=auth_header(super_admin))
        assert resp.status_code == 400

    def test_cannot_delete_self(self, client, super_admin):
        resp = client.delete(f"/api/admin/admins/{super_admin.id}", headers=auth_header(super_admin))
        assert resp.status_code == 400

    def test_members_are_not_admins(self, client, db_session, super_admin):
        member = make_user(db_session)
        resp = client.delete(f"/api/admin/admins/{member.id}", headers=auth_header(super_admin))
        assert resp.status_code == 404


class TestSettingsEndpoints:
    def test_defaults(self, client, admin):
        resp = client.get("/api/admin/settings", headers=auth_header(admin))
        assert resp.json() == {"settings": {
            "notify_on_approve": True,
            "notify_on_reject": True,
            "notify_on_delete": True,
            "notify_on_registration": True,
        }}

    def test_global_change_needs_super_admin(self, client, admin, super_admin):
        denied = client.post("/api/admin/settings", json={"notify_on_reject": False}, headers=auth_header(admin))
        allowed = client.post("/api/admin/settings", json={"notify_on_reject": False}, headers=auth_header(super_admin))

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert client.get("/api/admin/settings", headers=auth_header(admin)).json()["settings"]["notify_on_reject"] is False

    def test_personal_override(self, client, admin, super_admin):
        resp = client.post("/api/admin/settings", json={"notify_on_delete": False, "scope": "personal"},
                           headers=auth_header(admin))

        assert resp.status_code == 200
        assert resp.json()["settings"]["notify_on_delete"] is False
        root = client.get("/api/admin/settings", headers=auth_header(super_admin)).json()["settings"]
        assert root["notify_on_delete"] is True

    def test_empty_update(self, client, super_admin):
        resp = client.post("/api/admin/settings", json={}, headers=auth_header(super_admin))
        assert resp.status_code == 400
        assert resp.json()["error"] == "No valid settings provided"

    def test_reject_email_suppressed_when_disabled(self, client, db_session, mailer, admin):
        client.post("/api/admin/settings", json={"notify_on_reject": False, "scope": "personal"},
                    headers=auth_header(admin))
        member = make_user(db_session, "quiet@example.com")

        client.post("/api/admin/users", json={"userId": str(member.id), "action": "reject"},
                    headers=auth_header(admin))

        assert mailer.to("quiet@example.com") == []


class TestTemplateEndpoints:
    def test_list_and_update(self, client, admin):
        headers = auth_header(admin)

        keys = [t["key"] for t in client.get("/api/admin/email-templates", headers=headers).json()["templates"]]
        assert tpl.REJECTION in keys

        resp = client.put("/api/admin/email-templates", json={
            "key": tpl.REJECTION,
            "subject": "About your application",
            "body_html": "<p>${reason}</p>",
            "body_text": "${reason}",
        }, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["subject"] == "About your application"

    def test_missing_field(self, client, admin):
        resp = client.put("/api/admin/email-templates", json={"key": tpl.REJECTION, "subject": "x"},
                          headers=auth_header(admin))
        assert resp.status_code == 400


class TestAuditLogger:
    def test_stores_redacted_events(self):
        engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, expire_on_commit=False)
        logger = AuditLogger()
        logger.set_session_factory(Session)

        logger.log(
            action="auth.login",
            actor_id="someone@example.com",
            actor_type="anonymous",
            resource_type="auth",
            decision="denied",
            details={"password": "hunter22", "attempt": 1},
        )

        session = Session()
        try:
            logs = logger.get_logs(session, decision="denied")
            assert len(logs) == 1
            assert logs[0].details == {"password": "***REDACTED***", "attempt": 1}
            entry = AuditLogResponse.model_validate(logs[0])
            assert (entry.actor_type, entry.decision) == ("anonymous", "denied")
        finally:
            session.close()
            engine.dispose()

    def test_action_filter_is_a_prefix(self):
        engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(bind=engine, expire_on_commit=False)
        logger = AuditLogger()
        logger.set_session_factory(Session)

        for action in ("user.approve", "user.bulk_reject", "auth.login"):
            logger.log(action=action, actor_id="1", actor_type="user", resource_type="user")

        session = Session()
        try:
            actions = sorted(row.action for row in logger.get_logs(session, action="user."))
            assert actions == ["user.approve", "user.bulk_reject"]
        finally:
            session.close()
            engine.dispose()

    def test_storage_failure_does_not_raise(self):
        class BrokenSession:
            def add(self, obj):
                raise RuntimeError("db down")

            def rollback(self):
                pass

            def close(self):
                pass

        logger = AuditLogger()
        logger.set_session_factory(BrokenSession)
        event = logger.log(action="x", actor_id=None, actor_type="system", resource_type="test")
        assert event["action"] == "x"


class TestHealthEndpoints:
    def test_health(self, client):
        assert client.get("/api/health").json()["status"] == "healthy"

    def test_keepalive(self, client):
        body = client.get("/api/keepalive").json()
        assert body["status"] == "ok"
        assert body["db_queried"] is True
        assert body["latency_ms"] >= 0

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Not Found", "status_code": 404}
