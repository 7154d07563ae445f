"""Audit trail for administrative actions and authentication attempts.

Every event becomes one ``AUDIT`` log line. Once the app has started, it is
also stored in ``audit_logs`` so the dashboard can list who approved,
rejected or deleted which member.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Callable
import logging
import json
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from portal.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

REDACTED = "***REDACTED***"

# request fields that carry credentials or file payloads
SENSITIVE_FIELDS = frozenset({
    "password", "new_password", "current_password", "token",
    "access_token", "authorization", "recaptcha_token", "recaptchatoken",
    "file_base64", "filebase64",
})


def _redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {
            k: REDACTED if str(k).lower() in SENSITIVE_FIELDS else _redact(v)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [_redact(x) for x in obj]
    return obj


def _to_json(details: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # member ids arrive as UUIDs
    return json.loads(json.dumps(_redact(details or {}), default=str))


class AuditLogger:
    def __init__(self):
        self._session_factory: Optional[Callable[[], Session]] = None

    def set_session_factory(self, session_factory: Optional[Callable[[], Session]]):
        """Enable storage. Until this is called events are only logged."""
        self._session_factory = session_factory

    def log(
        self,
        action: str,
        actor_id: Optional[str],
        actor_type: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        decision: str = "allowed",
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Dict[str, Any]:
        event = dict(
            id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            action=action,
            actor_id=actor_id,
            actor_type=actor_type,
            resource_type=resource_type,
            resource_id=resource_id,
            decision=decision,
            reason=reason,
            details=_to_json(details),
            ip_address=ip_address,
            user_agent=user_agent,
        )

        denied = decision == "denied"
        logger.log(
            logging.WARNING if denied else logging.INFO,
            "AUDIT %s by %s:%s on %s:%s%s",
            action, actor_type, actor_id, resource_type, resource_id,
            f" denied ({reason})" if denied else "",
        )

        if self._session_factory is not None:
            self._store(event)
        return event

    def _store(self, event: Dict[str, Any]) -> None:
        db = self._session_factory()
        try:
            db.add(AuditLog(**event))
            db.commit()
        except Exception:
            # the action being audited has already happened
            logger.exception("Failed to store audit event %s", event["action"])
            db.rollback()
        finally:
            db.close()

    def get_logs(
        self,
        db: Session,
        actor_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        decision: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLog]:
        """Newest first. ``action`` matches as a prefix, so ``user.`` lists every member decision."""
        stmt = select(AuditLog)
        if actor_id:
            stmt = stmt.where(AuditLog.actor_id == actor_id)
        if resource_type:
            stmt = stmt.where(AuditLog.resource_type == resource_type)
        if action:
            stmt = stmt.where(AuditLog.action.startswith(action))
        if decision:
            stmt = stmt.where(AuditLog.decision == decision)
        if since is not None:
            stmt = stmt.where(AuditLog.timestamp >= since)

        stmt = stmt.order_by(AuditLog.timestamp.desc()).offset(offset).limit(limit)
        return list(db.execute(stmt).scalars())


audit_logger = AuditLogger()


def audit_log(
    action: str,
    actor_id: Any,
    actor_type: str,
    resource_type: str,
    resource_id: Any = None,
    decision: str = "allowed",
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request=None,
):
    """Record an event, taking the client address and user agent from ``request``."""
    client = getattr(request, "client", None)
    return audit_logger.log(
        action=action,
        actor_id=None if actor_id is None else str(actor_id),
        actor_type=actor_type,
        resource_type=resource_type,
        resource_id=None if resource_id is None else str(resource_id),
        decision=decision,
        reason=reason,
        details=details,
        ip_address=client.host if client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
