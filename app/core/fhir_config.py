"""FHIR R4 constants for the terminology projection.

Code-system URLs, resource metadata and headers used when rendering the
NAMASTE and ICD-11 vocabularies as FHIR resources.
"""

from __future__ import annotations

from dataclasses import dataclass

FHIR_VERSION = "4.0.1"
FHIR_CONTENT_TYPE = "application/fhir+json"
FHIR_MAX_CONCEPTS = 1000

NAMASTE_URL_PREFIX = "http://terminology.hl7.org/CodeSystem/namaste-"
NAMASTE_ALL_URL = f"{NAMASTE_URL_PREFIX}all"
ICD11_RELEASE_URL_PREFIX = "http://id.who.int/icd/release/11/2023-01/"
ICD11_ENTITY_URL = "http://id.who.int/icd/entity"
ICD11_VERSION = "2023-01"

CONCEPT_MAP_ID = "namaste-to-icd11"
CONCEPT_MAP_URL = "http://terminology.hl7.org/ConceptMap/namaste-to-icd11"
CAPABILITY_STATEMENT_URL = "http://terminology.hl7.org/CapabilityStatement/namaste-icd11-api"

PUBLISHER = "Healthcare API Team"
NAMASTE_PUBLISHER = "Ministry of AYUSH, Government of India"
WHO_PUBLISHER = "World Health Organization"

TRANSLATE_DEFINITION = "http://hl7.org/fhir/OperationDefinition/ConceptMap-translate"
LOOKUP_DEFINITION = "http://hl7.org/fhir/OperationDefinition/CodeSystem-lookup"


@dataclass(frozen=True)
class CodeSystemInfo:
    id: str
    url: str
    name: str
    title: str
    description: str


NAMASTE_CODE_SYSTEMS: dict[str, CodeSystemInfo] = {
    "ayurveda": CodeSystemInfo(
        id="namaste-ayurveda",
        url=f"{NAMASTE_URL_PREFIX}ayurveda",
        name="NAMASTE_Ayurveda",
        title="NAMASTE Ayurveda Terminology",
        description="Standardized terminology for Ayurveda disorders and conditions",
    ),
    "siddha": CodeSystemInfo(
        id="namaste-siddha",
        url=f"{NAMASTE_URL_PREFIX}siddha",
        name="NAMASTE_Siddha",
        title="NAMASTE Siddha Terminology",
        description="Standardized terminology for Siddha disorders and conditions",
    ),
    "unani": CodeSystemInfo(
        id="namaste-unani",
        url=f"{NAMASTE_URL_PREFIX}unani",
        name="NAMASTE_Unani",
        title="NAMASTE Unani Terminology",
        description="Standardized terminology for Unani disorders and conditions",
    ),
}

ICD11_CODE_SYSTEMS: dict[str, CodeSystemInfo] = {
    "tm2": CodeSystemInfo(
        id="icd11-tm2",
        url=f"{ICD11_RELEASE_URL_PREFIX}tm2",
        name="ICD11_TM2",
        title="ICD-11 Traditional Medicine Module 2",
        description="WHO ICD-11 Traditional Medicine Module 2 terminology",
    ),
    "biomedicine": CodeSystemInfo(
        id="icd11-biomedicine",
        url=f"{ICD11_RELEASE_URL_PREFIX}mms",
        name="ICD11_Biomedicine",
        title="ICD-11 Biomedicine Module",
        description="WHO ICD-11 Biomedicine terminology",
    ),
}

VALUE_SETS: dict[str, CodeSystemInfo] = {
    "namaste-all": CodeSystemInfo(
        id="namaste-all",
        url="http://terminology.hl7.org/ValueSet/namaste-all",
        name="NAMASTE_All",
        title="All NAMASTE Codes",
        description="Complete set of NAMASTE traditional medicine codes",
    ),
    "icd11-tm2-all": CodeSystemInfo(
        id="icd11-tm2-all",
        url="http://terminology.hl7.org/ValueSet/icd11-tm2-all",
        name="ICD11_TM2_All",
        title="All ICD-11 TM2 Codes",
        description="Complete set of ICD-11 Traditional Medicine Module 2 codes",
    ),
}
