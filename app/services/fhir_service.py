"""FHIR R4 projection of the terminology and mapping tables.

Builds plain ``dict`` resources (CodeSystem, ConceptMap, ValueSet, Parameters,
Bundle, OperationOutcome, CapabilityStatement) ready for JSON serialization.
Null-valued elements are omitted, as FHIR JSON does not carry nulls.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from typing import Any, Optional

from app.core.config import settings
from app.core.fhir_config import (
    CAPABILITY_STATEMENT_URL,
    CONCEPT_MAP_ID,
    CONCEPT_MAP_URL,
    FHIR_MAX_CONCEPTS,
    FHIR_VERSION,
    ICD11_CODE_SYSTEMS,
    ICD11_ENTITY_URL,
    ICD11_VERSION,
    LOOKUP_DEFINITION,
    NAMASTE_ALL_URL,
    NAMASTE_CODE_SYSTEMS,
    NAMASTE_PUBLISHER,
    PUBLISHER,
    TRANSLATE_DEFINITION,
    VALUE_SETS,
    WHO_PUBLISHER,
)
from app.models.enums import ICD11_MODULES, SYSTEM_TYPES
from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services.code_systems import (
    ClassificationSystem,
    TraditionalMedicineSystem,
    resolve_system,
    system_url,
)
from app.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class Coding:
    system: str
    code: str
    display: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        out = {"system": self.system, "code": self.code}
        if self.display is not None:
            out["display"] = self.display
        return out


@dataclass
class TranslationMatch:
    equivalence: str
    concept: Coding


@dataclass
class LookupResult:
    name: str
    display: str
    definition: Optional[str] = None
    properties: dict[str, Any] = field(default_factory=dict)


def _today() -> str:
    return date.today().isoformat()


def resource_id(prefix: str = "resource") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


def operation_outcome(severity: str, code: str, details: str) -> dict[str, Any]:
    return {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": severity, "code": code, "details": {"text": details}}],
    }


def translate_parameters(matches: list[TranslationMatch]) -> dict[str, Any]:
    parameter: list[dict[str, Any]] = [{"name": "result", "valueBoolean": bool(matches)}]
    for match in matches:
        parameter.append(
            {
                "name": "match",
                "part": [
                    {"name": "equivalence", "valueCode": match.equivalence},
                    {"name": "concept", "valueCoding": match.concept.as_dict()},
                ],
            }
        )
    return {"resourceType": "Parameters", "id": resource_id("translate-result"), "parameter": parameter}


def lookup_parameters(result: LookupResult) -> dict[str, Any]:
    parameter: list[dict[str, Any]] = [
        {"name": "name", "valueString": result.name},
        {"name": "display", "valueString": result.display},
    ]
    if result.definition:
        parameter.append({"name": "definition", "valueString": result.definition})
    return {"resourceType": "Parameters", "id": resource_id("lookup-result"), "parameter": parameter}


class FhirService:
    def __init__(
        self,
        namaste_repository: NamasteRepository,
        icd11_repository: ICD11Repository,
        mapping_repository: MappingRepository,
        base_url: str | None = None,
    ) -> None:
        self.namaste_repository = namaste_repository
        self.icd11_repository = icd11_repository
        self.mapping_repository = mapping_repository
        self.base_url = (base_url or settings.fhir_base_url).rstrip("/")

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def capability_statement(self) -> dict[str, Any]:
        return {
            "resourceType": "CapabilityStatement",
            "id": "namaste-icd11-api",
            "url": CAPABILITY_STATEMENT_URL,
            "version": "1.0.0",
            "name": "NAMASTE_ICD11_API",
            "title": "NAMASTE to ICD-11 Terminology Server",
            "status": "active",
            "date": _today(),
            "publisher": PUBLISHER,
            "description": "FHIR R4 Terminology Server for NAMASTE to ICD-11 code mapping",
            "kind": "instance",
            "implementation": {"description": "NAMASTE-ICD11 API Server", "url": self.base_url},
            "fhirVersion": FHIR_VERSION,
            "format": ["json"],
            "rest": [
                {
                    "mode": "server",
                    "resource": [
                        {
                            "type": "CodeSystem",
                            "interaction": [{"code": "read"}, {"code": "search-type"}],
                            "searchParam": [
                                {"name": "url", "type": "uri"},
                                {"name": "name", "type": "string"},
                            ],
                            "operation": [{"name": "lookup", "definition": LOOKUP_DEFINITION}],
                        },
                        {
                            "type": "ConceptMap",
                            "interaction": [{"code": "read"}, {"code": "search-type"}],
                            "operation": [{"name": "translate", "definition": TRANSLATE_DEFINITION}],
                        },
                        {
                            "type": "ValueSet",
                            "interaction": [{"code": "search-type"}],
                        },
                    ],
                }
            ],
        }

    # ------------------------------------------------------------------
    # CodeSystem
    # ------------------------------------------------------------------

    def code_system_namaste(self, system_type: str | None = None) -> dict[str, Any]:
        if system_type and system_type not in SYSTEM_TYPES:
            raise ValidationError(f"system_type must be one of {', '.join(SYSTEM_TYPES)}")

        entries = self.namaste_repository.find_all_active(system_type)
        info = NAMASTE_CODE_SYSTEMS.get(system_type or "")

        concepts = []
        for entry in entries:
            concept: dict[str, Any] = {"code": entry.code, "display": entry.display_name}
            if entry.definition:
                concept["definition"] = entry.definition
            properties = [{"code": "system", "valueString": entry.system_type}]
            if entry.category:
                properties.append({"code": "category", "valueString": entry.category})
            concept["property"] = properties
            concepts.append(concept)

        return {
            "resourceType": "CodeSystem",
            "id": info.id if info else "namaste-all",
            "url": info.url if info else NAMASTE_ALL_URL,
            "version": "1.0.0",
            "name": info.name if info else "NAMASTE_ALL",
            "title": info.title if info else "NAMASTE All Systems Terminology",
            "status": "active",
            "date": _today(),
            "publisher": NAMASTE_PUBLISHER,
            "description": info.description if info else "Standardized terminology for traditional medicine disorders and conditions",
            "caseSensitive": True,
            "content": "complete",
            "count": len(concepts),
            "concept": concepts,
        }

    def code_system_icd11(self, module: str = "tm2") -> dict[str, Any]:
        info = ICD11_CODE_SYSTEMS.get(module)
        if info is None:
            raise ValidationError(f"module must be one of {', '.join(ICD11_MODULES)}")

        entries = self.icd11_repository.find_all_active(module, limit=FHIR_MAX_CONCEPTS)
        concepts = []
        for entry in entries:
            concept: dict[str, Any] = {"code": entry.icd_id, "display": entry.title}
            if entry.definition:
                concept["definition"] = entry.definition
            properties = [{"code": "module", "valueString": entry.module}]
            if entry.code:
                properties.append({"code": "code", "valueString": entry.code})
            concept["property"] = properties
            concepts.append(concept)

        return {
            "resourceType": "CodeSystem",
            "id": info.id,
            "url": info.url,
            "version": ICD11_VERSION,
            "name": info.name,
            "title": info.title,
            "status": "active",
            "date": _today(),
            "publisher": WHO_PUBLISHER,
            "description": info.description,
            "caseSensitive": True,
            "content": "fragment",
            "count": len(concepts),
            "concept": concepts,
        }

    def code_system(self, cs_id: str) -> dict[str, Any]:
        for system_type, info in NAMASTE_CODE_SYSTEMS.items():
            if info.id == cs_id:
                return self.code_system_namaste(system_type)
        if cs_id == "namaste-all":
            return self.code_system_namaste(None)
        for module, info in ICD11_CODE_SYSTEMS.items():
            if info.id == cs_id:
                return self.code_system_icd11(module)
        raise NotFoundError("CodeSystem", cs_id)

    def list_code_systems(
        self,
        *,
        url: str | None = None,
        name: str | None = None,
        count: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        resources: list[dict[str, Any]] = []
        for system_type, info in NAMASTE_CODE_SYSTEMS.items():
            if self._matches(info.url, info.name, url, name):
                resources.append(self.code_system_namaste(system_type))
        for module, info in ICD11_CODE_SYSTEMS.items():
            if self._matches(info.url, info.name, url, name):
                resources.append(self.code_system_icd11(module))
        return self.search_bundle(resources[offset : offset + count], len(resources), offset)

    # ------------------------------------------------------------------
    # ConceptMap
    # ------------------------------------------------------------------

    def concept_map(self) -> dict[str, Any]:
        details = [
            d
            for d in self.mapping_repository.all_active_details()
            if d.source is not None and d.target is not None
        ]
        details.sort(key=lambda d: (d.source.system_type, d.source.code, d.target.icd_id))

        groups = []
        for system_type, in_group in groupby(details, key=lambda d: d.source.system_type):
            elements = []
            for code, rows in groupby(in_group, key=lambda d: d.source.code):
                rows = list(rows)
                targets = []
                for d in rows:
                    target: dict[str, Any] = {
                        "code": d.target.icd_id,
                        "display": d.target.title,
                        "equivalence": d.mapping.mapping_type,
                    }
                    if d.mapping.notes:
                        target["comment"] = d.mapping.notes
                    targets.append(target)
                elements.append({"code": code, "display": rows[0].source.display_name, "target": targets})

            groups.append(
                {
                    "source": system_url(TraditionalMedicineSystem(system_type)),
                    "target": ICD11_ENTITY_URL,
                    "element": elements,
                }
            )

        return {
            "resourceType": "ConceptMap",
            "id": CONCEPT_MAP_ID,
            "url": CONCEPT_MAP_URL,
            "version": "1.0.0",
            "name": "NAMASTE_to_ICD11",
            "title": "NAMASTE to ICD-11 Concept Map",
            "status": "active",
            "date": _today(),
            "publisher": PUBLISHER,
            "sourceUri": NAMASTE_ALL_URL,
            "targetUri": ICD11_ENTITY_URL,
            "group": groups,
        }

    def concept_map_by_id(self, map_id: str) -> dict[str, Any]:
        if map_id != CONCEPT_MAP_ID:
            raise NotFoundError("ConceptMap", map_id)
        return self.concept_map()

    def list_concept_maps(self, *, url: str | None = None, count: int = 20, offset: int = 0) -> dict[str, Any]:
        resources = [self.concept_map()] if not url or url in CONCEPT_MAP_URL else []
        return self.search_bundle(resources[offset : offset + count], len(resources), offset)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def translate(self, system: str, code: str, target_system: str | None = None) -> list[TranslationMatch]:
        source_ref = resolve_system(system)
        logger.debug("translate system=%s code=%s target=%s", system, code, target_system)
        if target_system:
            target_ref = resolve_system(target_system)
            if target_ref.family == source_ref.family:
                raise ValidationError(f"target system {target_system} is in the same family as {system}")

        if isinstance(source_ref, TraditionalMedicineSystem):
            entry = self.namaste_repository.get_active(code)
            if entry is None or (source_ref.system_type and entry.system_type != source_ref.system_type):
                raise NotFoundError("namaste", code)

            details = self.mapping_repository.active_for_sources([entry.code])
            return [
                TranslationMatch(
                    equivalence=d.mapping.mapping_type,
                    concept=Coding(
                        system=system_url(ClassificationSystem()),
                        code=d.target.icd_id,
                        display=d.target.title,
                    ),
                )
                for d in details
                if d.target is not None
            ]

        entry = self.icd11_repository.get_active(code)
        if entry is None or (source_ref.module and entry.module != source_ref.module):
            raise NotFoundError("icd11", code)

        details = self.mapping_repository.active_for_targets([entry.icd_id])
        return [
            TranslationMatch(
                equivalence=d.mapping.mapping_type,
                concept=Coding(
                    system=system_url(TraditionalMedicineSystem(d.source.system_type)),
                    code=d.source.code,
                    display=d.source.display_name,
                ),
            )
            for d in details
            if d.source is not None
        ]

    def lookup(self, system: str, code: str) -> LookupResult:
        ref = resolve_system(system)

        if isinstance(ref, TraditionalMedicineSystem):
            entry = self.namaste_repository.get_active(code)
            if entry is None or (ref.system_type and entry.system_type != ref.system_type):
                raise NotFoundError("namaste", code)
            return LookupResult(
                name=entry.display_name,
                display=entry.display_name,
                definition=entry.definition,
                properties={"system_type": entry.system_type, "category": entry.category},
            )

        entry = self.icd11_repository.get_active(code)
        if entry is None or (ref.module and entry.module != ref.module):
            raise NotFoundError("icd11", code)
        return LookupResult(
            name=entry.title,
            display=entry.title,
            definition=entry.definition,
            properties={"module": entry.module, "code": entry.code},
        )

    # ------------------------------------------------------------------
    # ValueSet / Bundle
    # ------------------------------------------------------------------

    def list_value_sets(
        self,
        *,
        url: str | None = None,
        name: str | None = None,
        count: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        resources = []
        for key, info in VALUE_SETS.items():
            if not self._matches(info.url, info.name, url, name):
                continue
            if key == "namaste-all":
                include = [{"system": cs.url} for cs in NAMASTE_CODE_SYSTEMS.values()]
            else:
                include = [{"system": ICD11_CODE_SYSTEMS["tm2"].url}]
            resources.append(
                {
                    "resourceType": "ValueSet",
                    "id": info.id,
                    "url": info.url,
                    "name": info.name,
                    "title": info.title,
                    "status": "active",
                    "description": info.description,
                    "compose": {"include": include},
                }
            )
        return self.search_bundle(resources[offset : offset + count], len(resources), offset)

    def search_bundle(self, resources: list[dict[str, Any]], total: int, offset: int = 0) -> dict[str, Any]:
        return {
            "resourceType": "Bundle",
            "id": resource_id("bundle"),
            "type": "searchset",
            "total": total,
            "entry": [
                {
                    "fullUrl": f"{self.base_url}/{resource['resourceType']}/{resource['id']}",
                    "resource": resource,
                    "search": {"mode": "match", "rank": index + offset + 1},
                }
                for index, resource in enumerate(resources)
            ],
        }

    @staticmethod
    def _matches(resource_url: str, resource_name: str, url: str | None, name: str | None) -> bool:
        if url and url not in resource_url:
            return False
        if name and name.lower() not in resource_name.lower():
            return False
        return True
