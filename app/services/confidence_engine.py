from __future__ import annotations

from typing import Optional

from app.core.mapping_config import MappingPolicy, mapping_policy
from app.models.enums import MappingType
from app.services import similarity


class MappingConfidenceEngine:
    """Confidence scoring and relation-kind heuristics for code mappings."""

    def __init__(self, policy: Optional[MappingPolicy] = None) -> None:
        self.policy = policy or mapping_policy

    def compute_confidence(self, source_display: str | None, target_display: str | None) -> float:
        # Definitions are not factored in; only display names are compared.
        return similarity.score(source_display, target_display)

    def resolve_confidence(
        self,
        explicit: float | None,
        source_display: str | None,
        target_display: str | None,
    ) -> float:
        """Explicit caller-supplied scores (including 0.0) win over computed ones."""
        if explicit is not None:
            return float(explicit)
        return self.compute_confidence(source_display, target_display)

    @staticmethod
    def suggest_mapping_type(source_display: str | None, target_display: str | None) -> MappingType:
        source = (source_display or "").lower()
        target = (target_display or "").lower()

        if source == target or target in source or source in target:
            return MappingType.EQUIVALENT

        source_words = len(source.split(" "))
        target_words = len(target.split(" "))

        # Source carries more qualifiers than the target: it is the more specific concept
        if source_words > target_words:
            return MappingType.NARROWER
        if target_words > source_words:
            return MappingType.BROADER
        return MappingType.RELATED

    def has_drifted(self, stored: float | None, recomputed: float) -> bool:
        return abs(float(stored or 0.0) - recomputed) > self.policy.drift_threshold
