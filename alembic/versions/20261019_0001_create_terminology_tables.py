"""Create terminology, mapping and audit tables.

Revision ID: 20261019_0001
Revises: 
Create Date: 2026-10-19

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


SYSTEM_TYPES = ("ayurveda", "siddha", "unani")
ICD11_MODULES = ("tm2", "biomedicine")
CODE_STATUSES = ("active", "inactive")
MAPPING_TYPES = ("equivalent", "broader", "narrower", "related")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()

    system_type = postgresql.ENUM(*SYSTEM_TYPES, name="namaste_system_type", create_type=False)
    icd11_module = postgresql.ENUM(*ICD11_MODULES, name="icd11_module", create_type=False)
    code_status = postgresql.ENUM(*CODE_STATUSES, name="code_status", create_type=False)
    mapping_type = postgresql.ENUM(*MAPPING_TYPES, name="mapping_type", create_type=False)
    for enum_type in (system_type, icd11_module, code_status, mapping_type):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "namaste_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("display_name", sa.String(500), nullable=False),
        sa.Column("definition", sa.Text(), nullable=True),
        sa.Column("system_type", system_type, nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("synonyms", sa.JSON(), nullable=False),
        sa.Column("parent_code", sa.String(50), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", code_status, nullable=False),
        sa.Column("version", sa.String(20), nullable=False),
        *_timestamps(),
    )
    for column in ("code", "display_name", "system_type", "category", "parent_code", "status"):
        op.create_index(op.f(f"ix_namaste_codes_{column}"), "namaste_codes", [column], unique=False)
    op.create_index(
        "ux_namaste_codes_active_code",
        "namaste_codes",
        ["code"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "icd11_codes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("icd_id", sa.String(100), nullable=False, unique=True),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("definition", sa.Text(), nullable=True),
        sa.Column("module", icd11_module, nullable=False),
        sa.Column("parent_id", sa.String(100), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("synonyms", sa.JSON(), nullable=False),
        sa.Column("status", code_status, nullable=False),
        sa.Column("last_sync", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    for column in ("code", "title", "module", "parent_id", "status"):
        op.create_index(op.f(f"ix_icd11_codes_{column}"), "icd11_codes", [column], unique=False)

    op.create_table(
        "code_mappings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("namaste_code", sa.String(50), nullable=False),
        sa.Column("icd11_code", sa.String(100), nullable=False),
        sa.Column("mapping_type", mapping_type, nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("verified_by", sa.String(128), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )
    for column in ("namaste_code", "icd11_code", "mapping_type"):
        op.create_index(op.f(f"ix_code_mappings_{column}"), "code_mappings", [column], unique=False)
    op.create_index(
        "ux_code_mappings_active_pair",
        "code_mappings",
        ["namaste_code", "icd11_code"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(50), nullable=True),
        sa.Column("resource_id", sa.String(100), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("additional_info", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    for column in ("user_id", "action", "resource_type", "created_at"):
        op.create_index(op.f(f"ix_audit_logs_{column}"), "audit_logs", [column], unique=False)


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_index("ux_code_mappings_active_pair", table_name="code_mappings")
    op.drop_table("code_mappings")
    op.drop_table("icd11_codes")
    op.drop_index("ux_namaste_codes_active_code", table_name="namaste_codes")
    op.drop_table("namaste_codes")

    bind = op.get_bind()
    for name in ("mapping_type", "code_status", "icd11_module", "namaste_system_type"):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
