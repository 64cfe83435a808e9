from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import distinct, func, select
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.repositories.terminology_repository import Page


@dataclass
class AuditQuery:
    user_id: str | None = None
    # Substring match on the action name
    action: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int = 100
    offset: int = 0


class AuditRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def insert(
        self,
        *,
        user_id: str | None,
        action: str,
        resource_type: str | None,
        resource_id: str | None,
        old_values: dict[str, Any] | None,
        new_values: dict[str, Any] | None,
        additional_info: dict[str, Any] | None,
    ) -> AuditLog:
        row = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
            additional_info=additional_info or {},
        )
        self.db.add(row)
        self.db.commit()
        return row

    def find(self, query: AuditQuery) -> Page:
        """Newest first."""
        stmt = select(AuditLog)
        if query.user_id:
            stmt = stmt.where(AuditLog.user_id == query.user_id)
        if query.action:
            stmt = stmt.where(AuditLog.action.ilike(f"%{query.action}%"))
        if query.start is not None:
            stmt = stmt.where(AuditLog.created_at >= query.start)
        if query.end is not None:
            stmt = stmt.where(AuditLog.created_at <= query.end)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        rows = self.db.execute(stmt.limit(query.limit).offset(query.offset)).scalars().all()
        return Page(total=int(total or 0), items=list(rows))

    def usage(self, since: datetime, *, top: int = 10) -> dict[str, Any]:
        recent = AuditLog.created_at >= since
        total = self.db.execute(select(func.count(AuditLog.id)).where(recent)).scalar_one()
        actors = self.db.execute(
            select(func.count(distinct(AuditLog.user_id))).where(recent, AuditLog.user_id.is_not(None))
        ).scalar_one()

        count_col = func.count(AuditLog.id).label("count")
        top_actions = self.db.execute(
            select(AuditLog.action, count_col)
            .where(recent)
            .group_by(AuditLog.action)
            .order_by(count_col.desc(), AuditLog.action.asc())
            .limit(top)
        ).all()

        return {
            "total_events": int(total or 0),
            "unique_actors": int(actors or 0),
            "top_actions": [{"action": row[0], "count": int(row[1])} for row in top_actions],
        }
