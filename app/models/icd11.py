"""SQLAlchemy model for ICD-11 codes (TM2 and biomedicine modules).

``icd_id`` is the WHO entity id and the primary identifier used by mappings.
``code`` is the optional secondary classification code; lookups accept both.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import CODE_STATUSES, ICD11_MODULES


class ICD11Code(Base):
    __tablename__ = "icd11_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    icd_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    module: Mapped[str] = mapped_column(Enum(*ICD11_MODULES, name="icd11_module"), nullable=False, index=True)
    parent_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    synonyms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        Enum(*CODE_STATUSES, name="code_status"), nullable=False, default="active", index=True
    )
    last_sync: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
