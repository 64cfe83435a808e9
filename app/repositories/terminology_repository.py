"""Repositories for the NAMASTE and ICD-11 vocabularies.

Lookups default to active entries. Filters are expressed through the typed
:class:`TerminologyQuery` rather than ad hoc predicates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import and_, case, func, literal, or_, select
from sqlalchemy.orm import Session

from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode


@dataclass
class TerminologyQuery:
    system_type: str | None = None
    module: str | None = None
    category: str | None = None
    level: int | None = None
    parent_code: str | None = None
    status: str | None = "active"
    limit: int = 100
    offset: int = 0


@dataclass
class Page:
    total: int
    items: list


class _BaseRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def add(self, row) -> None:
        self.db.add(row)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, row) -> None:
        self.db.refresh(row)

    def _page(self, stmt, *, limit: int, offset: int) -> Page:
        total = self.db.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
        rows = self.db.execute(stmt.limit(limit).offset(offset)).scalars().all()
        return Page(total=int(total or 0), items=list(rows))


def _token_conditions(columns: Sequence, terms: Sequence[str]) -> list:
    """One OR-over-columns condition per term (callers AND or OR them)."""
    return [or_(*[func.coalesce(col, "").ilike(f"%{term}%") for col in columns]) for term in terms if term]


class NamasteRepository(_BaseRepository):
    def get_active(self, code: str) -> NamasteCode | None:
        c = (code or "").strip()
        if not c:
            return None
        stmt = select(NamasteCode).where(NamasteCode.code == c, NamasteCode.status == "active")
        return self.db.execute(stmt).scalars().first()

    def find(self, query: TerminologyQuery) -> Page:
        stmt = select(NamasteCode)
        if query.status:
            stmt = stmt.where(NamasteCode.status == query.status)
        if query.system_type:
            stmt = stmt.where(NamasteCode.system_type == query.system_type)
        if query.category:
            stmt = stmt.where(NamasteCode.category == query.category)
        if query.level is not None:
            stmt = stmt.where(NamasteCode.level == query.level)
        if query.parent_code:
            stmt = stmt.where(NamasteCode.parent_code == query.parent_code)

        stmt = stmt.order_by(NamasteCode.system_type.asc(), NamasteCode.display_name.asc(), NamasteCode.code.asc())
        return self._page(stmt, limit=query.limit, offset=query.offset)

    def find_all_active(self, system_type: str | None = None) -> list[NamasteCode]:
        stmt = select(NamasteCode).where(NamasteCode.status == "active")
        if system_type:
            stmt = stmt.where(NamasteCode.system_type == system_type)
        stmt = stmt.order_by(NamasteCode.code.asc())
        return list(self.db.execute(stmt).scalars().all())

    def children(self, code: str) -> list[NamasteCode]:
        stmt = (
            select(NamasteCode)
            .where(NamasteCode.parent_code == code, NamasteCode.status == "active")
            .order_by(NamasteCode.display_name.asc(), NamasteCode.code.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def siblings(self, code: str, parent_code: str) -> list[NamasteCode]:
        stmt = (
            select(NamasteCode)
            .where(
                NamasteCode.parent_code == parent_code,
                NamasteCode.code != code,
                NamasteCode.status == "active",
            )
            .order_by(NamasteCode.display_name.asc(), NamasteCode.code.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def search(
        self,
        terms: Sequence[str],
        *,
        system_type: str | None = None,
        category: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page:
        conditions = _token_conditions(
            (NamasteCode.display_name, NamasteCode.code, NamasteCode.definition),
            terms,
        )
        if not conditions:
            return Page(total=0, items=[])

        stmt = select(NamasteCode).where(NamasteCode.status == "active", and_(*conditions))
        if system_type:
            stmt = stmt.where(NamasteCode.system_type == system_type)
        if category:
            stmt = stmt.where(NamasteCode.category == category)

        stmt = stmt.order_by(NamasteCode.display_name.asc(), NamasteCode.code.asc())
        return self._page(stmt, limit=limit, offset=offset)

    def prefix_matches(self, prefix: str, *, limit: int) -> list[NamasteCode]:
        display_l = func.lower(NamasteCode.display_name)
        stmt = (
            select(NamasteCode)
            .where(
                NamasteCode.status == "active",
                or_(display_l.like(f"{prefix}%"), func.lower(NamasteCode.code).like(f"{prefix}%")),
            )
            .order_by(NamasteCode.display_name.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def statistics(self) -> dict:
        active = NamasteCode.status == "active"
        total = self.db.execute(select(func.count()).select_from(NamasteCode).where(active)).scalar_one()

        by_system = self.db.execute(
            select(NamasteCode.system_type, func.count()).where(active).group_by(NamasteCode.system_type)
        ).all()
        by_level = self.db.execute(
            select(NamasteCode.level, func.count()).where(active).group_by(NamasteCode.level)
        ).all()
        count_col = func.count().label("count")
        top_categories = self.db.execute(
            select(NamasteCode.category, count_col)
            .where(active, NamasteCode.category.is_not(None))
            .group_by(NamasteCode.category)
            .order_by(count_col.desc(), NamasteCode.category.asc())
            .limit(10)
        ).all()

        return {
            "total": int(total or 0),
            "by_system": {row[0]: int(row[1]) for row in by_system},
            "by_level": {str(row[0]): int(row[1]) for row in by_level},
            "top_categories": [{"category": row[0], "count": int(row[1])} for row in top_categories],
        }


class ICD11Repository(_BaseRepository):
    def get_active(self, code_or_id: str) -> ICD11Code | None:
        """Resolve by primary ``icd_id`` or secondary ``code``; the primary id wins."""
        c = (code_or_id or "").strip()
        if not c:
            return None
        prefer_primary = case((ICD11Code.icd_id == c, literal(0)), else_=literal(1))
        stmt = (
            select(ICD11Code)
            .where(or_(ICD11Code.icd_id == c, ICD11Code.code == c), ICD11Code.status == "active")
            .order_by(prefer_primary.asc(), ICD11Code.icd_id.asc())
        )
        return self.db.execute(stmt).scalars().first()

    def get_by_icd_id(self, icd_id: str) -> ICD11Code | None:
        stmt = select(ICD11Code).where(ICD11Code.icd_id == icd_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def count_active(self) -> int:
        stmt = select(func.count()).select_from(ICD11Code).where(ICD11Code.status == "active")
        return int(self.db.execute(stmt).scalar_one() or 0)

    def get_active_many(self, codes: Sequence[str]) -> list[ICD11Code]:
        if not codes:
            return []
        stmt = select(ICD11Code).where(
            or_(ICD11Code.icd_id.in_(codes), ICD11Code.code.in_(codes)),
            ICD11Code.status == "active",
        )
        return list(self.db.execute(stmt).scalars().all())

    def find(self, query: TerminologyQuery) -> Page:
        stmt = select(ICD11Code)
        if query.status:
            stmt = stmt.where(ICD11Code.status == query.status)
        if query.module:
            stmt = stmt.where(ICD11Code.module == query.module)
        if query.level is not None:
            stmt = stmt.where(ICD11Code.level == query.level)
        if query.parent_code:
            stmt = stmt.where(ICD11Code.parent_id == query.parent_code)

        stmt = stmt.order_by(ICD11Code.module.asc(), ICD11Code.title.asc(), ICD11Code.icd_id.asc())
        return self._page(stmt, limit=query.limit, offset=query.offset)

    def find_all_active(self, module: str | None = None, *, limit: int | None = None) -> list[ICD11Code]:
        stmt = select(ICD11Code).where(ICD11Code.status == "active")
        if module:
            stmt = stmt.where(ICD11Code.module == module)
        stmt = stmt.order_by(ICD11Code.icd_id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def find_active_by_terms(self, terms: Sequence[str], *, module: str | None = None) -> list[ICD11Code]:
        """Active entries whose title contains ANY of ``terms``."""
        conditions = [ICD11Code.title.ilike(f"%{term}%") for term in terms if term]
        if not conditions:
            return []

        stmt = select(ICD11Code).where(ICD11Code.status == "active", or_(*conditions))
        if module:
            stmt = stmt.where(ICD11Code.module == module)
        stmt = stmt.order_by(ICD11Code.title.asc(), ICD11Code.icd_id.asc())
        return list(self.db.execute(stmt).scalars().all())

    def search(
        self,
        terms: Sequence[str],
        *,
        module: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Page:
        conditions = _token_conditions(
            (ICD11Code.title, ICD11Code.icd_id, ICD11Code.code, ICD11Code.definition),
            terms,
        )
        if not conditions:
            return Page(total=0, items=[])

        stmt = select(ICD11Code).where(ICD11Code.status == "active", and_(*conditions))
        if module:
            stmt = stmt.where(ICD11Code.module == module)

        stmt = stmt.order_by(ICD11Code.title.asc(), ICD11Code.icd_id.asc())
        return self._page(stmt, limit=limit, offset=offset)

    def prefix_matches(self, prefix: str, *, limit: int) -> list[ICD11Code]:
        title_l = func.lower(ICD11Code.title)
        stmt = (
            select(ICD11Code)
            .where(
                ICD11Code.status == "active",
                or_(title_l.like(f"{prefix}%"), func.lower(func.coalesce(ICD11Code.code, "")).like(f"{prefix}%")),
            )
            .order_by(ICD11Code.title.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())
