"""SQLAlchemy model for NAMASTE traditional-medicine codes.

Codes are never hard-deleted; deactivation flips ``status`` to ``inactive``.
Only one active row may exist per code.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import CODE_STATUSES, SYSTEM_TYPES


class NamasteCode(Base):
    __tablename__ = "namaste_codes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    definition: Mapped[str | None] = mapped_column(Text, nullable=True)
    system_type: Mapped[str] = mapped_column(
        Enum(*SYSTEM_TYPES, name="namaste_system_type"), nullable=False, index=True
    )
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    synonyms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    parent_code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    status: Mapped[str] = mapped_column(
        Enum(*CODE_STATUSES, name="code_status"), nullable=False, default="active", index=True
    )
    version: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "ux_namaste_codes_active_code",
            "code",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
