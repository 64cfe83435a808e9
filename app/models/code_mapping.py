"""SQLAlchemy model for NAMASTE -> ICD-11 code mappings.

``icd11_code`` always stores the resolved ICD-11 ``icd_id``. At most one
active mapping may exist per (namaste_code, icd11_code) pair; the partial
unique index closes the race between concurrent duplicate creates.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import MAPPING_TYPES


class CodeMapping(Base):
    __tablename__ = "code_mappings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    namaste_code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    icd11_code: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    mapping_type: Mapped[str] = mapped_column(
        Enum(*MAPPING_TYPES, name="mapping_type"), nullable=False, default="equivalent", index=True
    )
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "ux_code_mappings_active_pair",
            "namaste_code",
            "icd11_code",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    @property
    def is_verified(self) -> bool:
        return self.verified_by is not None
