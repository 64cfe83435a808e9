from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str | None = None
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    additional_info: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None


class AuditLogPage(BaseModel):
    total: int
    limit: int
    offset: int
    logs: list[AuditLogOut]


class ActionCount(BaseModel):
    action: str
    count: int


class UsageMetrics(BaseModel):
    window_days: int
    total_events: int
    unique_actors: int
    top_actions: list[ActionCount]


class DataMetrics(BaseModel):
    namaste_codes: int
    icd11_codes: int
    mappings: int
    verified_mappings: int


class MetricsOut(BaseModel):
    usage: UsageMetrics
    data: DataMetrics
