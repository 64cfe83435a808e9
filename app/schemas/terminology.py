from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.enums import CodeStatus, ICD11Module, SystemType


def _strip_required(value: object) -> str:
    if value is None:
        raise ValueError("field is required")
    cleaned = str(value).strip()
    if not cleaned:
        raise ValueError("field must not be empty")
    return cleaned


def _strip_optional(value: object) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


class NamasteCodeCreate(BaseModel):
    code: str = Field(..., max_length=50)
    display_name: str = Field(..., max_length=500)
    definition: str | None = None
    system_type: SystemType
    category: str | None = Field(default=None, max_length=100)
    synonyms: list[str] = Field(default_factory=list)
    parent_code: str | None = Field(default=None, max_length=50)
    level: int = Field(default=0, ge=0)
    version: str = Field(default="1.0", max_length=20)

    @field_validator("code", "display_name", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> str:
        return _strip_required(value)

    @field_validator("definition", "category", "parent_code", mode="before")
    @classmethod
    def _strip_optional_text(cls, value: object) -> str | None:
        return _strip_optional(value)


class NamasteCodeUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=500)
    definition: str | None = None
    system_type: SystemType | None = None
    category: str | None = Field(default=None, max_length=100)
    synonyms: list[str] | None = None
    parent_code: str | None = Field(default=None, max_length=50)
    level: int | None = Field(default=None, ge=0)
    status: CodeStatus | None = None
    version: str | None = Field(default=None, max_length=20)

    @field_validator("display_name", "definition", "category", mode="before")
    @classmethod
    def _strip_optional_text(cls, value: object) -> str | None:
        return _strip_optional(value)


class NamasteCodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    display_name: str
    definition: str | None = None
    system_type: str
    category: str | None = None
    synonyms: list[str] = Field(default_factory=list)
    parent_code: str | None = None
    level: int = 0
    status: str
    version: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ICD11CodeCreate(BaseModel):
    icd_id: str = Field(..., max_length=100)
    code: str | None = Field(default=None, max_length=50)
    title: str = Field(..., max_length=500)
    definition: str | None = None
    module: ICD11Module = ICD11Module.TM2
    parent_id: str | None = Field(default=None, max_length=100)
    level: int = Field(default=0, ge=0)
    synonyms: list[str] = Field(default_factory=list)

    @field_validator("icd_id", "title", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> str:
        return _strip_required(value)

    @field_validator("code", "definition", "parent_id", mode="before")
    @classmethod
    def _strip_optional_text(cls, value: object) -> str | None:
        return _strip_optional(value)


class ICD11CodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    icd_id: str
    code: str | None = None
    title: str
    definition: str | None = None
    module: str
    parent_id: str | None = None
    level: int = 0
    synonyms: list[str] = Field(default_factory=list)
    status: str
    last_sync: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BatchLookupRequest(BaseModel):
    codes: list[str] = Field(default_factory=list)


class BatchLookupResponse(BaseModel):
    requested: int
    found: list[ICD11CodeOut]
    not_found: list[str]


class ICD11SyncRequest(BaseModel):
    q: str = Field(..., min_length=2, max_length=200)
    module: ICD11Module = ICD11Module.TM2
    limit: int = Field(default=20, ge=1, le=50)


class ICD11SyncOut(BaseModel):
    query: str
    fetched: int
    created: list[str]
    skipped: int


class CodeHierarchyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: NamasteCodeOut
    parent: NamasteCodeOut | None = None
    children: list[NamasteCodeOut] = Field(default_factory=list)
    siblings: list[NamasteCodeOut] = Field(default_factory=list)
    ancestors: list[NamasteCodeOut] = Field(default_factory=list)
    descendants: list[NamasteCodeOut] = Field(default_factory=list)
