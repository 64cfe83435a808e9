# tests/functional/test_terminology_api.py
"""
Functional tests for NAMASTE / ICD-11 code management, search and health.
"""

from fastapi.testclient import TestClient

from conftest import add_namaste


def test_health(test_client: TestClient):
    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


class TestNamasteCodes:
    def test_list_filters_by_system_type(self, test_client: TestClient, vocabulary):
        data = test_client.get("/namaste/codes", params={"system_type": "siddha"}).json()

        assert data["total"] == 1
        assert data["items"][0]["code"] == "SID001"

    def test_list_rejects_unknown_status(self, test_client: TestClient, vocabulary):
        assert test_client.get("/namaste/codes", params={"status": "retired"}).status_code == 422

    def test_get_with_hierarchy(self, test_client: TestClient, vocabulary):
        data = test_client.get("/namaste/codes/NAM001", params={"include_hierarchy": True}).json()

        assert data["display_name"] == "Vata Prakopa"
        assert data["hierarchy"]["parent"]["code"] == "NAM000"
        assert [s["code"] for s in data["hierarchy"]["siblings"]] == ["NAM002"]

    def test_create_update_deactivate(self, test_client: TestClient, vocabulary):
        created = test_client.post(
            "/namaste/codes",
            json={"code": "NAM100", "display_name": "Kasa", "system_type": "ayurveda", "parent_code": "NAM000"},
            headers={"X-Actor-Id": "curator"},
        )
        assert created.status_code == 201

        duplicate = test_client.post(
            "/namaste/codes", json={"code": "NAM100", "display_name": "Kasa", "system_type": "ayurveda"}
        )
        assert duplicate.status_code == 409

        updated = test_client.put("/namaste/codes/NAM100", json={"display_name": "Kasa Roga", "parent_code": ""})
        assert updated.status_code == 200
        assert updated.json()["display_name"] == "Kasa Roga"
        assert updated.json()["parent_code"] is None

        assert test_client.delete("/namaste/codes/NAM100").status_code == 200
        assert test_client.get("/namaste/codes/NAM100").status_code == 404

    def test_update_rejects_cycle(self, test_client: TestClient, vocabulary):
        response = test_client.put("/namaste/codes/NAM000", json={"parent_code": "NAM001"})
        assert response.status_code == 422

    def test_stats(self, test_client: TestClient, vocabulary):
        data = test_client.get("/namaste/stats").json()
        assert data["total"] == 5
        assert data["by_system"]["ayurveda"] == 3


class TestICD11Codes:
    def test_get_by_secondary_code(self, test_client: TestClient, vocabulary):
        response = test_client.get("/icd11/codes/SM2Y")

        assert response.status_code == 200
        assert response.json()["icd_id"] == "1435254666"

    def test_get_unknown_without_upstream(self, test_client: TestClient, vocabulary):
        assert test_client.get("/icd11/codes/9999999999").status_code == 404

    def test_create_duplicate(self, test_client: TestClient, vocabulary):
        body = {"icd_id": "1435254666", "title": "Vata Prakopa", "module": "tm2"}
        assert test_client.post("/icd11/codes", json=body).status_code == 409

    def test_batch_lookup(self, test_client: TestClient, vocabulary):
        data = test_client.post("/icd11/batch-lookup", json={"codes": ["SM2Y", "1435254666", "XX00"]}).json()

        assert data["requested"] == 3
        assert [e["icd_id"] for e in data["found"]] == ["1435254666"]
        assert data["not_found"] == ["XX00"]

    def test_sync_without_upstream_is_bad_gateway(self, test_client: TestClient, vocabulary):
        response = test_client.post("/icd11/sync", json={"q": "vata"})

        assert response.status_code == 502
        assert test_client.post("/icd11/sync", json={"q": "v"}).status_code == 422


class TestSearch:
    def test_search_namaste_ranks_exact_first(self, test_client: TestClient, vocabulary):
        data = test_client.get("/search/namaste", params={"q": "prakopa"}).json()

        assert data["total"] == 2
        assert {r["code"] for r in data["results"]} == {"NAM001", "NAM002"}
        assert all(r["system"] == "namaste" for r in data["results"])

        exact = test_client.get("/search/namaste", params={"q": "Vata Prakopa"}).json()
        assert exact["results"][0]["code"] == "NAM001"
        assert exact["results"][0]["relevance_score"] == 1.0

    def test_search_icd11_by_module(self, test_client: TestClient, vocabulary):
        data = test_client.get("/search/icd11", params={"q": "vata", "module": "biomedicine"}).json()
        assert [r["code"] for r in data["results"]] == ["455013390"]

    def test_search_keeps_diacritics_in_query(self, test_client: TestClient, vocabulary):
        add_namaste(vocabulary, "NAM050", "Vātaprakopa Jvara")

        data = test_client.get("/search/namaste", params={"q": "vātaprakopa"}).json()

        assert [r["code"] for r in data["results"]] == ["NAM050"]
        assert data["results"][0]["relevance_score"] == 0.9

    def test_query_length_bounds(self, test_client: TestClient, vocabulary):
        assert test_client.get("/search/namaste", params={"q": "v"}).status_code == 422
        assert test_client.get("/search/namaste", params={"q": "v" * 201}).status_code == 422

    def test_search_all_includes_mappings(self, test_client: TestClient, vocabulary):
        test_client.post("/mappings", json={"namaste_code": "NAM001", "icd11_code": "1435254666"})

        data = test_client.get("/search/diseases", params={"q": "vata prakopa"}).json()

        assert data["results"]["namaste"][0]["code"] == "NAM001"
        assert data["mappings"]["namaste_to_icd11"][0]["target_code"] == "1435254666"

    def test_autocomplete(self, test_client: TestClient, vocabulary):
        response = test_client.get("/search/autocomplete", params={"q": "vat"})

        assert response.status_code == 200
        displays = [s["display"] for s in response.json()["suggestions"]]
        assert "Vata Prakopa" in displays
        assert "Vatham" in displays
