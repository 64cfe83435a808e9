"""Resolution of FHIR ``system`` identifiers.

A system URI resolves to exactly one of two families:

* :class:`TraditionalMedicineSystem` - NAMASTE, optionally narrowed to a system type
* :class:`ClassificationSystem` - ICD-11, optionally narrowed to a module

Matching is exact (after trimming and dropping a trailing slash); anything
else raises :class:`UnsupportedSystemError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from app.core.fhir_config import (
    ICD11_CODE_SYSTEMS,
    ICD11_ENTITY_URL,
    NAMASTE_ALL_URL,
    NAMASTE_CODE_SYSTEMS,
)
from app.services.errors import UnsupportedSystemError


@dataclass(frozen=True)
class TraditionalMedicineSystem:
    system_type: Optional[str] = None

    family = "namaste"


@dataclass(frozen=True)
class ClassificationSystem:
    module: Optional[str] = None

    family = "icd11"


CodeSystemRef = Union[TraditionalMedicineSystem, ClassificationSystem]


def _build_registry() -> dict[str, CodeSystemRef]:
    registry: dict[str, CodeSystemRef] = {
        "namaste": TraditionalMedicineSystem(),
        NAMASTE_ALL_URL: TraditionalMedicineSystem(),
        "icd11": ClassificationSystem(),
        ICD11_ENTITY_URL: ClassificationSystem(),
    }
    for system_type, info in NAMASTE_CODE_SYSTEMS.items():
        registry[info.url] = TraditionalMedicineSystem(system_type)
    for module, info in ICD11_CODE_SYSTEMS.items():
        registry[info.url] = ClassificationSystem(module)
    return registry


_REGISTRY = _build_registry()


def resolve_system(uri: str | None) -> CodeSystemRef:
    key = (uri or "").strip().rstrip("/")
    try:
        return _REGISTRY[key]
    except KeyError:
        raise UnsupportedSystemError(uri or "") from None


def system_url(ref: CodeSystemRef) -> str:
    """Canonical URI for a resolved system."""
    if isinstance(ref, TraditionalMedicineSystem):
        if ref.system_type:
            return NAMASTE_CODE_SYSTEMS[ref.system_type].url
        return NAMASTE_ALL_URL
    if ref.module:
        return ICD11_CODE_SYSTEMS[ref.module].url
    return ICD11_ENTITY_URL
