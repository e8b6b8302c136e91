"""Audit trail helpers shared by every app."""
from __future__ import annotations

import logging
from typing import Any

from core.models import AuditLog

logger = logging.getLogger("groupbuy")


def create_audit_log(
    actor,
    action: str,
    entity_type: str,
    entity_id,
    message: str = "",
    level: str = AuditLog.Level.INFO,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
) -> AuditLog:
    """Create and return a new :class:`~core.models.AuditLog` entry."""
    return AuditLog.objects.create(
        actor=actor,
        action=action,
        level=level,
        entity_type=entity_type,
        entity_id=str(entity_id),
        message=message,
        before_json=before,
        after_json=after,
    )


def safe_audit_log(**kwargs) -> AuditLog | None:
    """Like :func:`create_audit_log` but never raises.

    Used from side-effect paths where a failing audit write must not
    affect the caller.
    """
    try:
        return create_audit_log(**kwargs)
    except Exception:
        logger.warning(
            "Could not write audit log %s for %s %s",
            kwargs.get("action"), kwargs.get("entity_type"), kwargs.get("entity_id"),
            exc_info=True,
        )
        return None
