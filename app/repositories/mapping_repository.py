from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from app.models.code_mapping import CodeMapping
from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode
from app.repositories.terminology_repository import Page


@dataclass
class MappingQuery:
    namaste_code: str | None = None
    icd11_code: str | None = None
    mapping_type: str | None = None
    system_type: str | None = None
    verified_only: bool = False
    confidence_min: float | None = None
    confidence_max: float | None = None
    search: str | None = None
    limit: int | None = 20
    offset: int = 0


@dataclass
class MappingDetail:
    """A mapping together with its active source and target entries (None when missing or inactive)."""

    mapping: CodeMapping
    source: Optional[NamasteCode]
    target: Optional[ICD11Code]


_source_join = and_(NamasteCode.code == CodeMapping.namaste_code, NamasteCode.status == "active")
_target_join = and_(ICD11Code.icd_id == CodeMapping.icd11_code, ICD11Code.status == "active")


class MappingRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def add(self, row: CodeMapping) -> None:
        self.db.add(row)

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def refresh(self, row: CodeMapping) -> None:
        self.db.refresh(row)

    def get(self, mapping_id: int) -> CodeMapping | None:
        return self.db.get(CodeMapping, mapping_id)

    def get_detail(self, mapping_id: int) -> MappingDetail | None:
        stmt = self._detail_select().where(CodeMapping.id == mapping_id)
        row = self.db.execute(stmt).first()
        return MappingDetail(*row) if row else None

    def find_active_by_pair(self, namaste_code: str, icd_id: str) -> CodeMapping | None:
        stmt = select(CodeMapping).where(
            CodeMapping.namaste_code == namaste_code,
            CodeMapping.icd11_code == icd_id,
            CodeMapping.is_active.is_(True),
        )
        return self.db.execute(stmt).scalars().first()

    def find_active(self, query: MappingQuery) -> Page:
        stmt = self._detail_select().where(CodeMapping.is_active.is_(True))

        if query.namaste_code:
            stmt = stmt.where(CodeMapping.namaste_code == query.namaste_code)
        if query.icd11_code:
            stmt = stmt.where(CodeMapping.icd11_code == query.icd11_code)
        if query.mapping_type:
            stmt = stmt.where(CodeMapping.mapping_type == query.mapping_type)
        if query.verified_only:
            stmt = stmt.where(CodeMapping.verified_by.is_not(None))
        if query.confidence_min is not None:
            stmt = stmt.where(CodeMapping.confidence_score >= query.confidence_min)
        if query.confidence_max is not None:
            stmt = stmt.where(CodeMapping.confidence_score <= query.confidence_max)
        if query.system_type:
            stmt = stmt.where(NamasteCode.system_type == query.system_type)
        if query.search:
            stmt = stmt.where(
                or_(
                    NamasteCode.display_name.ilike(f"%{query.search}%"),
                    ICD11Code.title.ilike(f"%{query.search}%"),
                )
            )

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

        stmt = stmt.order_by(CodeMapping.created_at.desc(), CodeMapping.id.desc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        stmt = stmt.offset(query.offset)

        rows = self.db.execute(stmt).all()
        return Page(total=int(total or 0), items=[MappingDetail(*row) for row in rows])

    def all_active_details(self) -> list[MappingDetail]:
        stmt = (
            self._detail_select()
            .where(CodeMapping.is_active.is_(True))
            .order_by(CodeMapping.id.asc())
        )
        return [MappingDetail(*row) for row in self.db.execute(stmt).all()]

    def active_for_sources(self, codes: Sequence[str]) -> list[MappingDetail]:
        if not codes:
            return []
        stmt = (
            self._detail_select()
            .where(CodeMapping.namaste_code.in_(codes), CodeMapping.is_active.is_(True))
            .order_by(CodeMapping.confidence_score.desc(), CodeMapping.id.asc())
        )
        return [MappingDetail(*row) for row in self.db.execute(stmt).all()]

    def active_for_targets(self, icd_ids: Sequence[str]) -> list[MappingDetail]:
        if not icd_ids:
            return []
        stmt = (
            self._detail_select()
            .where(CodeMapping.icd11_code.in_(icd_ids), CodeMapping.is_active.is_(True))
            .order_by(CodeMapping.confidence_score.desc(), CodeMapping.id.asc())
        )
        return [MappingDetail(*row) for row in self.db.execute(stmt).all()]

    def statistics(self) -> dict:
        active = CodeMapping.is_active.is_(True)
        totals = self.db.execute(
            select(
                func.count(CodeMapping.id),
                func.count(CodeMapping.verified_by),
                func.avg(CodeMapping.confidence_score),
                func.min(CodeMapping.confidence_score),
                func.max(CodeMapping.confidence_score),
            ).where(active)
        ).one()

        by_type = self.db.execute(
            select(CodeMapping.mapping_type, func.count()).where(active).group_by(CodeMapping.mapping_type)
        ).all()

        by_system = self.db.execute(
            select(NamasteCode.system_type, func.count(CodeMapping.id))
            .select_from(CodeMapping)
            .join(NamasteCode, _source_join)
            .where(active)
            .group_by(NamasteCode.system_type)
        ).all()

        return {
            "total": {
                "mappings": int(totals[0] or 0),
                "verified": int(totals[1] or 0),
                "avg_confidence": round(float(totals[2] or 0.0), 2),
                "min_confidence": float(totals[3] or 0.0),
                "max_confidence": float(totals[4] or 0.0),
            },
            "by_type": {row[0]: int(row[1]) for row in by_type},
            "by_system": {row[0]: int(row[1]) for row in by_system},
        }

    @staticmethod
    def _detail_select():
        return (
            select(CodeMapping, NamasteCode, ICD11Code)
            .select_from(CodeMapping)
            .outerjoin(NamasteCode, _source_join)
            .outerjoin(ICD11Code, _target_join)
        )
