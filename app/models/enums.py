"""Closed vocabularies shared by models, schemas and services."""

from __future__ import annotations

from enum import Enum


class SystemType(str, Enum):
    AYURVEDA = "ayurveda"
    SIDDHA = "siddha"
    UNANI = "unani"


class ICD11Module(str, Enum):
    TM2 = "tm2"
    BIOMEDICINE = "biomedicine"


class CodeStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class MappingType(str, Enum):
    EQUIVALENT = "equivalent"
    BROADER = "broader"
    NARROWER = "narrower"
    RELATED = "related"


SYSTEM_TYPES = tuple(s.value for s in SystemType)
ICD11_MODULES = tuple(m.value for m in ICD11Module)
CODE_STATUSES = tuple(s.value for s in CodeStatus)
MAPPING_TYPES = tuple(t.value for t in MappingType)
