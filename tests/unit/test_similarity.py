# tests/unit/test_similarity.py
"""
Unit tests for display-name similarity scoring.
"""

import pytest

from app.core.mapping_config import ScoringTiers
from app.services.search_normalization import fold_text, query_tokens, search_terms
from app.services.similarity import score, word_overlap_score


class TestScoreTiers:
    """Each tier of the scorer"""

    @pytest.mark.parametrize(
        "a, b",
        [
            ("", "Vata Prakopa"),
            ("Vata Prakopa", ""),
            (None, "Vata Prakopa"),
            ("   ", "Vata"),
        ],
    )
    def test_empty_input_scores_zero(self, a, b):
        assert score(a, b) == 0.0

    def test_exact_match(self):
        assert score("Vata Prakopa", "Vata Prakopa") == 1.0

    def test_exact_match_ignores_case_accents_and_spacing(self):
        assert score("VATA   prakopa", "  vāta Prakopa ") == 1.0

    def test_prefix_either_direction(self):
        assert score("Vata", "Vata Prakopa") == 0.9
        assert score("Vata Prakopa", "Vata") == 0.9

    def test_substring_either_direction(self):
        assert score("Prakopa", "Vata Prakopa") == 0.7
        assert score("Vata Prakopa", "Prakopa") == 0.7

    def test_word_overlap(self):
        # 2 of 3 tokens of the left side appear on the right
        assert score("Vata Pitta Kapha", "Vata Pitta disorder") == pytest.approx(0.4)

    def test_word_overlap_floor(self):
        assert score("Jwara", "Functional signs") == 0.3

    def test_word_overlap_is_directional(self):
        assert score("Kapha Vata Pitta Jwara", "Vata Pitta disorder") == pytest.approx(0.3)
        assert score("Vata Pitta disorder", "Kapha Vata Pitta Jwara") == pytest.approx(0.4)

    def test_tokens_match_by_containment(self):
        # "ta" is contained in "vata"
        assert word_overlap_score("ta xx", "vata") == pytest.approx(0.3)
        assert word_overlap_score("ta vat", "vata") == pytest.approx(0.6)

    def test_custom_tiers(self):
        tiers = ScoringTiers(exact=0.99, prefix=0.8, substring=0.5, word_weight=1.0, floor=0.1)
        assert score("Vata", "Vata", tiers=tiers) == 0.99
        assert score("Vata", "Vata Prakopa", tiers=tiers) == 0.8
        assert score("Kapha Vata", "Vata Pitta", tiers=tiers) == pytest.approx(0.5)


class TestNormalization:
    """Text folding used by the scorer and by candidate search"""

    def test_fold_text(self):
        assert fold_text("  Mizāj-e-Ḥār \t Tamas ") == "mizaj-e-har tamas"
        assert fold_text(None) == ""

    def test_query_tokens(self):
        assert query_tokens("Vata  Prakopa") == ["vata", "prakopa"]
        assert query_tokens("") == []

    def test_query_tokens_keep_diacritics(self):
        assert query_tokens("Vātaprakopa  Jvara") == ["vātaprakopa", "jvara"]
        assert search_terms("Vātaprakopa") == ["vātaprakopa"]

    def test_search_terms_drops_short_and_repeated_tokens(self):
        assert search_terms("Vata of Vata Prakopa in") == ["vata", "prakopa"]

    def test_search_terms_min_length(self):
        assert search_terms("Ama Vata", min_length=3) == ["vata"]
