"""Fire-and-forget audit trail.

Audit failures are logged and swallowed so they never fail the primary
operation. The audit row is written in its own commit after the primary
change has been committed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.repositories.audit_repository import AuditQuery, AuditRepository
from app.repositories.terminology_repository import Page
from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

CRITICAL_ACTIONS = frozenset(
    {
        "MAPPING_CREATED",
        "MAPPINGS_IMPORTED",
        "MAPPINGS_AUTO_GENERATED",
        "MAPPINGS_EXPORTED",
        "NAMASTE_CODE_CREATED",
        "ICD11_CODE_CREATED",
        "ICD11_CODES_SYNCED",
    }
)

USAGE_WINDOW_DAYS = 30


class AuditService:
    def __init__(self, repository: AuditRepository) -> None:
        self.repository = repository

    def record(
        self,
        action: str,
        *,
        actor: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: object = None,
        before: Optional[dict[str, Any]] = None,
        after: Optional[dict[str, Any]] = None,
        info: Optional[dict[str, Any]] = None,
    ) -> None:
        try:
            self.repository.insert(
                user_id=actor,
                action=action,
                resource_type=resource_type,
                resource_id=str(resource_id) if resource_id is not None else None,
                old_values=before,
                new_values=after,
                additional_info=info,
            )
        except SQLAlchemyError:
            logger.exception("Failed to persist audit event action=%s resource_id=%s", action, resource_id)
            self.repository.db.rollback()
            return

        if action in CRITICAL_ACTIONS:
            logger.info(
                "audit action=%s actor=%s resource_type=%s resource_id=%s",
                action,
                actor,
                resource_type,
                resource_id,
            )

    def search(self, query: AuditQuery) -> Page:
        if query.start is not None and query.end is not None and query.start > query.end:
            raise ValidationError("start_date must not be after end_date")
        return self.repository.find(query)

    def usage(self, *, now: datetime | None = None) -> dict[str, Any]:
        since = (now or datetime.now(timezone.utc)) - timedelta(days=USAGE_WINDOW_DAYS)
        return {"window_days": USAGE_WINDOW_DAYS, **self.repository.usage(since)}
