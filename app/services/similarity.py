"""Display-name similarity scoring.

Tiered and deterministic:

1. empty input            -> 0.0
2. exact match            -> 1.0
3. prefix (either way)    -> 0.9
4. substring (either way) -> 0.7
5. word overlap           -> max(0.3, matched / len(tokens_a) * 0.6)

Comparison is case-insensitive, accent-insensitive and whitespace-normalized.
The word-overlap tier is directional (its denominator is the token count of
``a``), so ``score(a, b)`` and ``score(b, a)`` may differ.
"""

from __future__ import annotations

from app.core.mapping_config import ScoringTiers, scoring_tiers
from app.services.search_normalization import fold_text


def score(a: str | None, b: str | None, *, tiers: ScoringTiers = scoring_tiers) -> float:
    left = fold_text(a)
    right = fold_text(b)
    if not left or not right:
        return 0.0

    if left == right:
        return tiers.exact

    if left.startswith(right) or right.startswith(left):
        return tiers.prefix

    if left in right or right in left:
        return tiers.substring

    return word_overlap_score(left, right, tiers=tiers)


def word_overlap_score(left: str, right: str, *, tiers: ScoringTiers = scoring_tiers) -> float:
    left_tokens = left.split(" ")
    right_tokens = right.split(" ")

    matched = sum(1 for token in left_tokens if any(token in other for other in right_tokens))
    word_score = matched / len(left_tokens)
    return max(tiers.floor, word_score * tiers.word_weight)
