# tests/functional/test_fhir_api.py
"""
Functional tests for the FHIR R4 terminology endpoints.
"""

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.core.fhir_config import ICD11_ENTITY_URL, NAMASTE_CODE_SYSTEMS
from app.services.fhir_service import FhirService

from conftest import add_mapping

AYURVEDA_URL = NAMASTE_CODE_SYSTEMS["ayurveda"].url


def _is_fhir(response) -> bool:
    return response.headers["content-type"].startswith("application/fhir+json")


def test_metadata(test_client: TestClient):
    response = test_client.get("/fhir/metadata")

    assert response.status_code == 200
    assert _is_fhir(response)
    assert response.json()["resourceType"] == "CapabilityStatement"


def test_translate_plain_json(test_client: TestClient, vocabulary):
    add_mapping(vocabulary, "NAM001", "1435254666")

    response = test_client.post("/fhir/ConceptMap/$translate", json={"system": AYURVEDA_URL, "code": "NAM001"})

    assert response.status_code == 200
    assert _is_fhir(response)
    params = response.json()
    assert params["resourceType"] == "Parameters"
    assert params["parameter"][0] == {"name": "result", "valueBoolean": True}
    coding = params["parameter"][1]["part"][1]["valueCoding"]
    assert coding == {"system": ICD11_ENTITY_URL, "code": "1435254666", "display": "Vata Prakopa"}


def test_translate_parameters_resource(test_client: TestClient, vocabulary):
    body = {
        "resourceType": "Parameters",
        "parameter": [
            {"name": "system", "valueUri": AYURVEDA_URL},
            {"name": "code", "valueCode": "NAM002"},
            {"name": "target", "valueUri": ICD11_ENTITY_URL},
        ],
    }

    response = test_client.post(
        "/fhir/ConceptMap/$translate",
        json=body,
        headers={"Content-Type": "application/fhir+json"},
    )

    assert response.status_code == 200
    assert response.json()["parameter"] == [{"name": "result", "valueBoolean": False}]


def test_translate_unknown_code_is_operation_outcome(test_client: TestClient, vocabulary):
    response = test_client.post("/fhir/ConceptMap/$translate", json={"system": AYURVEDA_URL, "code": "NAM404"})

    assert response.status_code == 404
    assert _is_fhir(response)
    outcome = response.json()
    assert outcome["resourceType"] == "OperationOutcome"
    assert outcome["issue"][0]["code"] == "not-found"


def test_translate_unsupported_system(test_client: TestClient, vocabulary):
    response = test_client.post("/fhir/ConceptMap/$translate", json={"system": "http://loinc.org", "code": "1-8"})

    assert response.status_code == 422
    assert response.json()["issue"][0]["code"] == "invalid"


def test_translate_missing_code_is_operation_outcome(test_client: TestClient):
    response = test_client.post("/fhir/ConceptMap/$translate", json={"system": AYURVEDA_URL})

    assert response.status_code == 422
    assert _is_fhir(response)
    assert response.json()["resourceType"] == "OperationOutcome"


def test_lookup(test_client: TestClient, vocabulary):
    response = test_client.post("/fhir/CodeSystem/$lookup", json={"system": "icd11", "code": "SM2Y"})

    assert response.status_code == 200
    names = {p["name"]: p.get("valueString") for p in response.json()["parameter"]}
    assert names["display"] == "Vata Prakopa"
    assert names["definition"] == "Vata pattern disorder (TM2)"


def test_code_system_read_and_search(test_client: TestClient, vocabulary):
    read = test_client.get("/fhir/CodeSystem/namaste-ayurveda")
    assert read.status_code == 200
    assert read.json()["count"] == 3

    missing = test_client.get("/fhir/CodeSystem/loinc")
    assert missing.status_code == 404
    assert missing.json()["resourceType"] == "OperationOutcome"

    bundle = test_client.get("/fhir/CodeSystem", params={"url": AYURVEDA_URL}).json()
    assert bundle["total"] == 1


def test_concept_map(test_client: TestClient, vocabulary):
    add_mapping(vocabulary, "NAM001", "1435254666")

    cm = test_client.get("/fhir/ConceptMap/namaste-to-icd11").json()
    assert cm["group"][0]["element"][0]["target"][0]["code"] == "1435254666"

    bundle = test_client.get("/fhir/ConceptMap").json()
    assert bundle["total"] == 1
    assert test_client.get("/fhir/ConceptMap/other").status_code == 404


def test_value_sets(test_client: TestClient):
    bundle = test_client.get("/fhir/ValueSet").json()
    assert {e["resource"]["id"] for e in bundle["entry"]} == {"namaste-all", "icd11-tm2-all"}


class TestDatabaseFailures:
    """Database errors on the operation endpoints still come back as OperationOutcome."""

    @staticmethod
    def _fail(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("database unavailable"))

    def test_translate(self, test_client: TestClient, monkeypatch):
        monkeypatch.setattr(FhirService, "translate", self._fail)

        response = test_client.post("/fhir/ConceptMap/$translate", json={"system": AYURVEDA_URL, "code": "NAM001"})

        assert response.status_code == 500
        assert _is_fhir(response)
        assert response.json()["resourceType"] == "OperationOutcome"
        assert response.json()["issue"][0]["code"] == "exception"

    def test_lookup(self, test_client: TestClient, monkeypatch):
        monkeypatch.setattr(FhirService, "lookup", self._fail)

        response = test_client.post("/fhir/CodeSystem/$lookup", json={"system": AYURVEDA_URL, "code": "NAM001"})

        assert response.status_code == 500
        assert _is_fhir(response)
        assert response.json()["resourceType"] == "OperationOutcome"
