# tests/unit/test_mapping_service.py
"""
Unit tests for mapping creation, import, batch translation and export.
"""

import pytest
from sqlalchemy import select

from app.models.audit_log import AuditLog
from app.repositories.mapping_repository import MappingQuery
from app.services.errors import ConflictError, NotFoundError, ValidationError
from app.services.mapping_service import EXPORT_CSV_HEADER, OnDuplicate

from conftest import add_mapping, add_namaste


class TestCreateMapping:
    def test_create_computes_confidence(self, vocabulary, mapping_service):
        result = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)

        assert result.created is True
        assert result.mapping.id is not None
        assert result.mapping.confidence_score == 1.0
        assert result.mapping.mapping_type == "equivalent"
        assert result.mapping.is_active is True

    def test_create_resolves_secondary_code(self, vocabulary, mapping_service):
        result = mapping_service.create_mapping("NAM001", "SM2Y", on_duplicate=OnDuplicate.REJECT)
        assert result.mapping.icd11_code == "1435254666"

    def test_explicit_zero_confidence_is_stored(self, vocabulary, mapping_service):
        result = mapping_service.create_mapping("NAM001", "1435254666", confidence=0.0, on_duplicate=OnDuplicate.REJECT)
        assert result.mapping.confidence_score == 0.0

    def test_actor_marks_mapping_verified(self, vocabulary, mapping_service):
        result = mapping_service.create_mapping(
            "NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT, actor="dr.rao"
        )
        assert result.mapping.verified_by == "dr.rao"
        assert result.mapping.verified_at is not None

    def test_unverified_create_keeps_actor_for_audit_only(self, db, vocabulary, mapping_service):
        result = mapping_service.create_mapping(
            "NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT, actor="system", verify=False
        )

        assert result.mapping.verified_by is None
        assert result.mapping.verified_at is None
        audit = db.execute(select(AuditLog).where(AuditLog.action == "MAPPING_CREATED")).scalars().one()
        assert audit.user_id == "system"

    def test_duplicate_rejected(self, vocabulary, mapping_service):
        mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)
        with pytest.raises(ConflictError):
            mapping_service.create_mapping("NAM001", "SM2Y", on_duplicate=OnDuplicate.REJECT)

    def test_duplicate_skipped_returns_existing(self, vocabulary, mapping_service):
        first = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)
        second = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.SKIP)

        assert second.created is False
        assert second.mapping.id == first.mapping.id

    def test_deactivated_pair_can_be_mapped_again(self, vocabulary, mapping_service):
        first = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)
        mapping_service.deactivate_mapping(first.mapping.id)

        second = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)
        assert second.created is True
        assert second.mapping.id != first.mapping.id

    def test_unknown_source(self, vocabulary, mapping_service):
        with pytest.raises(NotFoundError):
            mapping_service.create_mapping("NAM999", "1435254666", on_duplicate=OnDuplicate.REJECT)

    def test_inactive_source(self, vocabulary, mapping_service):
        add_namaste(vocabulary, "NAM050", "Retired entry", status="inactive")
        with pytest.raises(NotFoundError):
            mapping_service.create_mapping("NAM050", "1435254666", on_duplicate=OnDuplicate.REJECT)

    def test_unknown_target(self, vocabulary, mapping_service):
        with pytest.raises(NotFoundError):
            mapping_service.create_mapping("NAM001", "0000000000", on_duplicate=OnDuplicate.REJECT)

    def test_invalid_type_checked_before_references(self, vocabulary, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.create_mapping("NAM999", "1435254666", "similar", on_duplicate=OnDuplicate.REJECT)

    def test_out_of_range_confidence(self, vocabulary, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.create_mapping("NAM001", "1435254666", confidence=1.5, on_duplicate=OnDuplicate.REJECT)

    def test_creation_is_audited(self, vocabulary, mapping_service):
        result = mapping_service.create_mapping(
            "NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT, actor="dr.rao"
        )
        rows = vocabulary.execute(select(AuditLog).where(AuditLog.action == "MAPPING_CREATED")).scalars().all()

        assert len(rows) == 1
        assert rows[0].user_id == "dr.rao"
        assert rows[0].resource_id == str(result.mapping.id)
        assert rows[0].new_values["icd11_code"] == "1435254666"


class TestUpdateAndDeactivate:
    def test_update_changes_fields(self, vocabulary, mapping_service):
        created = mapping_service.create_mapping("NAM001", "1435254669", on_duplicate=OnDuplicate.REJECT)

        detail = mapping_service.update_mapping(
            created.mapping.id,
            {"mapping_type": "broader", "confidence_score": 0.55, "notes": "reviewed"},
            actor="reviewer",
        )
        assert detail.mapping.mapping_type == "broader"
        assert detail.mapping.confidence_score == 0.55
        assert detail.mapping.notes == "reviewed"
        assert detail.mapping.verified_by == "reviewer"
        assert detail.target.icd_id == "1435254669"

    def test_update_clears_notes_and_ignores_null_required_fields(self, vocabulary, mapping_service):
        created = mapping_service.create_mapping(
            "NAM001", "1435254669", notes="draft", on_duplicate=OnDuplicate.REJECT
        )

        detail = mapping_service.update_mapping(created.mapping.id, {"notes": None, "mapping_type": None})

        assert detail.mapping.notes is None
        assert detail.mapping.mapping_type == "equivalent"

    def test_update_unknown_mapping(self, vocabulary, mapping_service):
        with pytest.raises(NotFoundError):
            mapping_service.update_mapping(404, {"notes": "x"})

    def test_update_rejects_invalid_type(self, vocabulary, mapping_service):
        created = mapping_service.create_mapping("NAM001", "1435254669", on_duplicate=OnDuplicate.REJECT)
        with pytest.raises(ValidationError):
            mapping_service.update_mapping(created.mapping.id, {"mapping_type": "similar"})

    def test_reactivating_duplicate_conflicts(self, vocabulary, mapping_service):
        old = add_mapping(vocabulary, "NAM001", "1435254666", is_active=False)
        mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)

        with pytest.raises(ConflictError):
            mapping_service.update_mapping(old.id, {"is_active": True})

    def test_deactivate_keeps_row(self, vocabulary, mapping_service):
        created = mapping_service.create_mapping("NAM001", "1435254666", on_duplicate=OnDuplicate.REJECT)
        mapping_service.deactivate_mapping(created.mapping.id)

        detail = mapping_service.get_mapping(created.mapping.id)
        assert detail.mapping.is_active is False

        page = mapping_service.list_mappings(MappingQuery())
        assert page.total == 0


class TestImport:
    def test_import_reports_per_row_outcomes(self, vocabulary, mapping_service):
        stats = mapping_service.import_mappings(
            [
                {"namaste_code": "NAM001", "icd11_code": "1435254666"},
                {"namaste_code": "NAM001", "icd11_code": "SM2Y"},
                {"namaste_code": "NAM999", "icd11_code": "1435254666"},
                {"namaste_code": "NAM002"},
            ]
        )

        assert stats.processed == 4
        assert stats.created == 1
        assert stats.skipped == 1
        assert stats.errors == 2
        assert {d["namaste_code"] for d in stats.error_details} == {"NAM999", "NAM002"}

    def test_import_is_idempotent(self, vocabulary, mapping_service):
        rows = [
            {"namaste_code": "NAM001", "icd11_code": "1435254666"},
            {"namaste_code": "SID001", "icd11_code": "1435254667", "mapping_type": "related", "confidence_score": 0.8},
        ]
        first = mapping_service.import_mappings(rows)
        second = mapping_service.import_mappings(rows)

        assert first.created == 2
        assert second.created == 0
        assert second.skipped == 2
        assert mapping_service.list_mappings(MappingQuery()).total == 2

    def test_csv_import(self, vocabulary, mapping_service):
        text = (
            "namaste_code,icd11_code,mapping_type,confidence_score,notes\n"
            "NAM001,1435254666,equivalent,0.9,direct\n"
            "\n"
            "NAM002,1435254666,,not-a-number,\n"
            "NAM999\n"
            "SID001,SM2Z,related,,\n"
        )
        stats = mapping_service.import_mappings_csv(text)

        assert stats.processed == 4
        assert stats.created == 2
        assert stats.errors == 2

        page = mapping_service.list_mappings(MappingQuery(namaste_code="NAM001"))
        mapping = page.items[0].mapping
        assert mapping.confidence_score == 0.9
        assert mapping.notes == "direct"

    def test_csv_import_empty_body(self, vocabulary, mapping_service):
        stats = mapping_service.import_mappings_csv("")
        assert stats.processed == 0


class TestBatchTranslate:
    def test_namaste_to_icd11(self, vocabulary, mapping_service):
        add_mapping(vocabulary, "NAM001", "1435254666")
        add_mapping(vocabulary, "NAM001", "1435254669", mapping_type="broader", confidence_score=0.3)

        result = mapping_service.batch_translate(["NAM001", "NAM002"], "namaste", "icd11")

        assert result["total_requested"] == 2
        assert result["total_mappings_found"] == 2
        assert [m["target_code"] for m in result["results"]["NAM001"]] == ["1435254666", "1435254669"]
        assert result["results"]["NAM002"] == []

    def test_icd11_to_namaste_accepts_secondary_code(self, vocabulary, mapping_service):
        add_mapping(vocabulary, "NAM001", "1435254666")

        result = mapping_service.batch_translate(["SM2Y"], "icd11", "namaste")

        assert result["results"]["SM2Y"][0]["target_code"] == "NAM001"
        assert result["results"]["SM2Y"][0]["target_system_type"] == "ayurveda"

    def test_empty_codes(self, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.batch_translate([], "namaste", "icd11")

    def test_too_many_codes(self, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.batch_translate([f"NAM{i:03d}" for i in range(51)], "namaste", "icd11")

    def test_invalid_direction(self, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.batch_translate(["NAM001"], "namaste", "namaste")


class TestExport:
    def test_json_export(self, vocabulary, mapping_service):
        add_mapping(vocabulary, "NAM001", "1435254666", notes="direct")

        rows = mapping_service.export("json")

        assert len(rows) == 1
        assert rows[0]["namaste"]["code"] == "NAM001"
        assert rows[0]["icd11"]["id"] == "1435254666"
        assert rows[0]["mapping"]["type"] == "equivalent"

    def test_csv_export(self, vocabulary, mapping_service):
        add_mapping(vocabulary, "NAM001", "1435254666", notes="direct")

        lines = mapping_service.export("csv").splitlines()

        assert lines[0] == ",".join(EXPORT_CSV_HEADER)
        assert lines[1].startswith("NAM001,Vata Prakopa,ayurveda,1435254666,Vata Prakopa,equivalent,1.0")

    def test_export_filters_system_type(self, vocabulary, mapping_service):
        add_mapping(vocabulary, "NAM001", "1435254666")
        add_mapping(vocabulary, "SID001", "1435254667", mapping_type="related")

        rows = mapping_service.export("json", system_type="siddha")
        assert [r["namaste"]["code"] for r in rows] == ["SID001"]

    def test_unknown_format(self, mapping_service):
        with pytest.raises(ValidationError):
            mapping_service.export("xml")


def test_statistics(vocabulary, mapping_service):
    add_mapping(vocabulary, "NAM001", "1435254666", verified_by="dr.rao")
    add_mapping(vocabulary, "SID001", "1435254667", mapping_type="related", confidence_score=0.8)

    stats = mapping_service.statistics()
    assert stats["total"]["mappings"] == 2
    assert stats["total"]["verified"] == 1
    assert stats["by_type"] == {"equivalent": 1, "related": 1}
    assert stats["by_system"] == {"ayurveda": 1, "siddha": 1}
