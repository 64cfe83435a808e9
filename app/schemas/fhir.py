from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class _OperationRequest(BaseModel):
    """Operation input given as plain JSON or as a FHIR ``Parameters`` resource."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _flatten_parameters(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("resourceType") != "Parameters":
            return data
        flat: dict[str, Any] = {}
        for param in data.get("parameter") or []:
            if not isinstance(param, dict) or "name" not in param:
                continue
            value = next((v for k, v in param.items() if k.startswith("value")), None)
            if value is not None:
                flat[param["name"]] = value
        return flat


class TranslateRequest(_OperationRequest):
    system: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    target: str | None = None
    concept_map: str | None = Field(default=None, alias="conceptMap")


class LookupRequest(_OperationRequest):
    system: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1)
    version: str | None = None
