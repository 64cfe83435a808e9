# tests/unit/test_suggestion_service.py
"""
Unit tests for mapping suggestions and automatic mapping.
"""

import pytest
from sqlalchemy import select

from app.core.mapping_config import MappingPolicy
from app.models.audit_log import AuditLog
from app.repositories.mapping_repository import MappingQuery
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services.errors import NotFoundError, ValidationError
from app.services.suggestion_service import AUTO_NOTE_TEMPLATE, MappingSuggestionService

from conftest import add_icd11, add_namaste


@pytest.fixture
def suggestions(db, mapping_service) -> MappingSuggestionService:
    return MappingSuggestionService(
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        mapping_service=mapping_service,
    )


class TestSuggest:
    def test_ranked_tm2_candidates(self, vocabulary, suggestions):
        result = suggestions.suggest("NAM001")

        assert [s.target_code for s in result] == ["1435254666", "1435254669"]
        assert result[0].confidence_score == 1.0
        assert result[0].suggested_mapping_type == "equivalent"
        assert result[1].confidence_score == pytest.approx(0.3)
        assert result[1].suggested_mapping_type == "broader"

    def test_biomedicine_entries_are_not_candidates(self, vocabulary, suggestions):
        codes = [s.target_code for s in suggestions.suggest("NAM001", limit=50)]
        assert "455013390" not in codes

    def test_limit(self, vocabulary, suggestions):
        assert len(suggestions.suggest("NAM001", limit=1)) == 1

    @pytest.mark.parametrize("limit", [0, 51])
    def test_limit_out_of_range(self, vocabulary, suggestions, limit):
        with pytest.raises(ValidationError):
            suggestions.suggest("NAM001", limit=limit)

    def test_unknown_source(self, vocabulary, suggestions):
        with pytest.raises(NotFoundError):
            suggestions.suggest("NAM999")

    def test_short_display_has_no_terms(self, vocabulary, suggestions):
        add_namaste(vocabulary, "NAM090", "Ax")
        assert suggestions.suggest("NAM090") == []

    def test_ties_sorted_by_display(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000002", "Jwara pattern B")
        add_icd11(db, "2000000001", "Jwara pattern A")

        result = suggestions.suggest("NAM010")
        assert [s.target_display for s in result] == ["Jwara pattern A", "Jwara pattern B"]

    def test_accented_display_matches_accented_title(self, db, suggestions):
        add_namaste(db, "NAM050", "Vātaprakopa")
        add_icd11(db, "3000000001", "Vātaprakopa")

        result = suggestions.suggest("NAM050")

        assert [s.target_code for s in result] == ["3000000001"]
        assert result[0].confidence_score == 1.0


class TestAutoMap:
    def test_creates_best_match_above_threshold(self, db, mapping_service, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_namaste(db, "NAM011", "Kasa")
        add_icd11(db, "2000000001", "Jwara fever pattern")
        add_icd11(db, "2000000002", "Functional signs")

        stats = suggestions.auto_map(actor="system")

        assert stats.processed == 1
        assert stats.created == 1
        mapping = mapping_service.list_mappings(MappingQuery(namaste_code="NAM010")).items[0].mapping
        assert mapping.icd11_code == "2000000001"
        assert mapping.mapping_type == "equivalent"
        assert mapping.confidence_score == 0.9
        assert mapping.notes == AUTO_NOTE_TEMPLATE.format(score=0.9)

    def test_high_threshold_creates_nothing(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara fever pattern")

        stats = suggestions.auto_map(0.95)

        assert stats.processed == 0
        assert stats.created == 0

    def test_best_score_equal_to_threshold_creates_mapping(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara fever pattern")

        stats = suggestions.auto_map(0.9)

        assert stats.created == 1

    def test_best_score_just_below_threshold_creates_nothing(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara fever pattern")

        stats = suggestions.auto_map(0.91)

        assert stats.processed == 0
        assert stats.created == 0

    def test_substring_score_at_threshold(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Kapha Jwara")

        assert suggestions.auto_map(0.7).created == 1

    def test_generated_mappings_are_unverified(self, db, mapping_service, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara")

        suggestions.auto_map(actor="admin-42")

        mapping = mapping_service.list_mappings(MappingQuery(namaste_code="NAM010")).items[0].mapping
        assert mapping.verified_by is None
        assert mapping.verified_at is None
        assert mapping_service.list_mappings(MappingQuery(verified_only=True)).total == 0
        created = db.execute(select(AuditLog).where(AuditLog.action == "MAPPING_CREATED")).scalars().one()
        assert created.user_id == "admin-42"

    def test_rerun_skips_existing(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara")

        suggestions.auto_map()
        stats = suggestions.auto_map()

        assert stats.processed == 1
        assert stats.created == 0
        assert stats.skipped == 1

    def test_tie_keeps_lowest_icd_id(self, db, mapping_service, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000002", "Jwara")
        add_icd11(db, "2000000001", "Jwara")

        suggestions.auto_map()

        mapping = mapping_service.list_mappings(MappingQuery(namaste_code="NAM010")).items[0].mapping
        assert mapping.icd11_code == "2000000001"

    def test_ignores_biomedicine_targets(self, db, suggestions):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "455013390", "Jwara", module="biomedicine")

        assert suggestions.auto_map().created == 0

    @pytest.mark.parametrize("threshold", [-0.1, 1.1])
    def test_invalid_threshold(self, db, suggestions, threshold):
        with pytest.raises(ValidationError):
            suggestions.auto_map(threshold)

    def test_default_threshold_from_policy(self, db, mapping_service):
        add_namaste(db, "NAM010", "Jwara")
        add_icd11(db, "2000000001", "Jwara fever pattern")
        service = MappingSuggestionService(
            namaste_repository=NamasteRepository(db),
            icd11_repository=ICD11Repository(db),
            mapping_service=mapping_service,
            policy=MappingPolicy(auto_map_threshold=0.95),
        )

        assert service.auto_map().created == 0

    def test_run_is_audited(self, db, suggestions):
        suggestions.auto_map(actor="system")

        rows = db.execute(select(AuditLog).where(AuditLog.action == "MAPPINGS_AUTO_GENERATED")).scalars().all()
        assert len(rows) == 1
        assert rows[0].additional_info["threshold"] == 0.7
