"""Mapping policy configuration.

Centralizes the tunable thresholds used by the similarity scorer, the
confidence engine, the suggestion engine and the validator. All values are
loaded from environment variables with defaults matching the published
mapping policy.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


# ---------------------------------------------------------------------------
# Scoring tiers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringTiers:
    """Scores returned by each tier of the display-name similarity scorer."""

    exact: float = 1.0
    prefix: float = 0.9
    substring: float = 0.7
    # Multiplier applied to the fraction of matched words
    word_weight: float = 0.6
    # Minimum score for any non-empty comparison
    floor: float = 0.3


# ---------------------------------------------------------------------------
# Mapping policy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MappingPolicy:
    """Operational thresholds for mapping creation, suggestion and validation."""

    # Stored vs recomputed confidence difference that flags a mapping for review
    drift_threshold: float = field(
        default_factory=lambda: _env_float("MAPPING_DRIFT_THRESHOLD", 0.3),
    )
    auto_map_threshold: float = field(
        default_factory=lambda: _env_float("MAPPING_AUTO_THRESHOLD", 0.7),
    )
    suggestion_default_limit: int = field(
        default_factory=lambda: _env_int("MAPPING_SUGGESTION_DEFAULT_LIMIT", 5),
    )
    suggestion_max_limit: int = field(
        default_factory=lambda: _env_int("MAPPING_SUGGESTION_MAX_LIMIT", 50),
    )
    batch_max_codes: int = field(
        default_factory=lambda: _env_int("MAPPING_BATCH_MAX_CODES", 50),
    )
    # Display-name tokens shorter than or equal to this are ignored for candidate search
    min_term_length: int = field(
        default_factory=lambda: _env_int("MAPPING_MIN_TERM_LENGTH", 2),
    )


# ---------------------------------------------------------------------------
# Singleton instances (importable)
# ---------------------------------------------------------------------------

scoring_tiers = ScoringTiers()
mapping_policy = MappingPolicy()
