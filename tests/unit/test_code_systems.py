# tests/unit/test_code_systems.py
"""
Unit tests for FHIR system URI resolution.
"""

import pytest

from app.core.fhir_config import ICD11_CODE_SYSTEMS, ICD11_ENTITY_URL, NAMASTE_ALL_URL, NAMASTE_CODE_SYSTEMS
from app.services.code_systems import (
    ClassificationSystem,
    TraditionalMedicineSystem,
    resolve_system,
    system_url,
)
from app.services.errors import UnsupportedSystemError, ValidationError


class TestResolveSystem:
    @pytest.mark.parametrize("uri", ["namaste", NAMASTE_ALL_URL, f" {NAMASTE_ALL_URL}/ "])
    def test_namaste_family(self, uri):
        assert resolve_system(uri) == TraditionalMedicineSystem()

    @pytest.mark.parametrize("system_type", ["ayurveda", "siddha", "unani"])
    def test_namaste_system_types(self, system_type):
        ref = resolve_system(NAMASTE_CODE_SYSTEMS[system_type].url)
        assert ref == TraditionalMedicineSystem(system_type)
        assert ref.family == "namaste"

    def test_icd11_family(self):
        assert resolve_system("icd11") == ClassificationSystem()
        assert resolve_system(ICD11_ENTITY_URL) == ClassificationSystem()
        assert resolve_system(ICD11_CODE_SYSTEMS["tm2"].url) == ClassificationSystem("tm2")
        assert resolve_system(ICD11_CODE_SYSTEMS["biomedicine"].url).family == "icd11"

    @pytest.mark.parametrize(
        "uri",
        [
            "",
            None,
            "http://loinc.org",
            f"{NAMASTE_ALL_URL}-extra",
            "http://example.org/namaste-ayurveda",
            NAMASTE_ALL_URL.upper(),
        ],
    )
    def test_unsupported(self, uri):
        with pytest.raises(UnsupportedSystemError):
            resolve_system(uri)

    def test_unsupported_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            resolve_system("http://snomed.info/sct")


class TestSystemUrl:
    def test_round_trip(self):
        for uri in [NAMASTE_ALL_URL, ICD11_ENTITY_URL, NAMASTE_CODE_SYSTEMS["unani"].url, ICD11_CODE_SYSTEMS["tm2"].url]:
            assert system_url(resolve_system(uri)) == uri

    def test_partition_urls(self):
        assert system_url(TraditionalMedicineSystem("siddha")) == NAMASTE_CODE_SYSTEMS["siddha"].url
        assert system_url(TraditionalMedicineSystem()) == NAMASTE_ALL_URL
        assert system_url(ClassificationSystem()) == ICD11_ENTITY_URL
