from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums import MappingType
from app.repositories.mapping_repository import MappingDetail


class MappingCreate(BaseModel):
    namaste_code: str = Field(..., min_length=1, max_length=50)
    icd11_code: str = Field(..., min_length=1, max_length=100)
    mapping_type: MappingType = MappingType.EQUIVALENT
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    notes: str | None = None

    @field_validator("namaste_code", "icd11_code", mode="before")
    @classmethod
    def _strip_code(cls, value: object) -> str:
        if value is None:
            raise ValueError("field is required")
        return str(value).strip()

    @field_validator("notes", mode="before")
    @classmethod
    def _strip_notes(cls, value: object) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None


class MappingUpdate(BaseModel):
    mapping_type: MappingType | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    notes: str | None = None
    is_active: bool | None = None


class MappingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    namaste_code: str
    icd11_code: str
    mapping_type: str
    confidence_score: float
    notes: str | None = None
    verified_by: str | None = None
    verified_at: datetime | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NamasteSummary(BaseModel):
    code: str
    display_name: str
    system_type: str
    category: str | None = None


class ICD11Summary(BaseModel):
    icd_id: str
    code: str | None = None
    title: str
    module: str


class MappingDetailOut(MappingOut):
    namaste: NamasteSummary | None = None
    icd11: ICD11Summary | None = None

    @classmethod
    def from_detail(cls, detail: MappingDetail) -> "MappingDetailOut":
        out = cls.model_validate(detail.mapping)
        if detail.source is not None:
            out.namaste = NamasteSummary(
                code=detail.source.code,
                display_name=detail.source.display_name,
                system_type=detail.source.system_type,
                category=detail.source.category,
            )
        if detail.target is not None:
            out.icd11 = ICD11Summary(
                icd_id=detail.target.icd_id,
                code=detail.target.code,
                title=detail.target.title,
                module=detail.target.module,
            )
        return out


class MappingPage(BaseModel):
    total: int
    limit: int
    offset: int
    items: list[MappingDetailOut]


class MappingImportRequest(BaseModel):
    # Rows stay loosely typed so a malformed row is reported per item, not as a 422
    mappings: list[dict[str, Any]] = Field(default_factory=list)


class BatchTranslateRequest(BaseModel):
    codes: list[str] = Field(default_factory=list)
    source_system: str = "namaste"
    target_system: str = "icd11"

    @field_validator("source_system", "target_system", mode="before")
    @classmethod
    def _normalize_system(cls, value: object) -> str:
        return str(value or "").strip().lower()


class BatchStatsOut(BaseModel):
    processed: int
    created: int
    skipped: int
    errors: int
    error_details: list[dict[str, Any]] = Field(default_factory=list)


class SuggestionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    target_code: str
    target_display: str
    confidence_score: float
    suggested_mapping_type: str


class SuggestionResponse(BaseModel):
    namaste_code: str
    suggestions: list[SuggestionOut]


class AutoMapRequest(BaseModel):
    threshold: float | None = None


class ValidationIssueOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mapping_id: int
    kind: str
    message: str
    namaste_code: str
    icd11_code: str
    current_score: float | None = None
    calculated_score: float | None = None


class ValidationReportOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    valid_count: int
    invalid_count: int
    issues: list[ValidationIssueOut]


class MappingValidationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    mapping_id: int
    is_valid: bool
    confidence_score: float
    issues: list[ValidationIssueOut]
