"""Mapping suggestions and bulk automatic mapping.

``suggest`` ranks ICD-11 TM2 candidates whose title shares a term with the
NAMASTE display name. ``auto_map`` is an exhaustive sources x targets scan;
it is intended for vocabularies of hundreds to low thousands of entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.mapping_config import MappingPolicy, mapping_policy
from app.models.enums import ICD11Module, MappingType
from app.models.icd11 import ICD11Code
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services import similarity
from app.services.confidence_engine import MappingConfidenceEngine
from app.services.errors import NotFoundError, TerminologyError, ValidationError
from app.services.mapping_service import BatchStats, MappingService, OnDuplicate
from app.services.search_normalization import search_terms

logger = logging.getLogger(__name__)

AUTO_NOTE_TEMPLATE = "Automatically generated mapping (confidence: {score:.2f})"


@dataclass
class MappingSuggestion:
    target_code: str
    target_display: str
    confidence_score: float
    suggested_mapping_type: str

    def as_dict(self) -> dict:
        return {
            "target_code": self.target_code,
            "target_display": self.target_display,
            "confidence_score": self.confidence_score,
            "suggested_mapping_type": self.suggested_mapping_type,
        }


class MappingSuggestionService:
    def __init__(
        self,
        namaste_repository: NamasteRepository,
        icd11_repository: ICD11Repository,
        mapping_service: MappingService,
        confidence_engine: Optional[MappingConfidenceEngine] = None,
        policy: Optional[MappingPolicy] = None,
    ) -> None:
        self.namaste_repository = namaste_repository
        self.icd11_repository = icd11_repository
        self.mapping_service = mapping_service
        self.confidence_engine = confidence_engine or MappingConfidenceEngine()
        self.policy = policy or mapping_policy

    def suggest(self, source_code: str, limit: int | None = None) -> list[MappingSuggestion]:
        limit = self.policy.suggestion_default_limit if limit is None else int(limit)
        if not 1 <= limit <= self.policy.suggestion_max_limit:
            raise ValidationError(f"limit must be between 1 and {self.policy.suggestion_max_limit}")

        source = self.namaste_repository.get_active(source_code)
        if source is None:
            raise NotFoundError("namaste", source_code)

        terms = search_terms(source.display_name, min_length=self.policy.min_term_length)
        if not terms:
            return []

        candidates = self.icd11_repository.find_active_by_terms(terms, module=ICD11Module.TM2.value)
        suggestions = [self._suggestion(source.display_name, candidate) for candidate in candidates]
        suggestions.sort(key=lambda s: (-s.confidence_score, s.target_display))

        logger.debug(
            "Suggestions for %s terms=%s candidates=%s returned=%s",
            source.code,
            terms,
            len(candidates),
            min(limit, len(suggestions)),
        )
        return suggestions[:limit]

    def _suggestion(self, source_display: str, candidate: ICD11Code) -> MappingSuggestion:
        return MappingSuggestion(
            target_code=candidate.icd_id,
            target_display=candidate.title,
            confidence_score=self.confidence_engine.compute_confidence(source_display, candidate.title),
            suggested_mapping_type=self.confidence_engine.suggest_mapping_type(source_display, candidate.title).value,
        )

    def auto_map(self, threshold: float | None = None, *, actor: str | None = None) -> BatchStats:
        threshold = self.policy.auto_map_threshold if threshold is None else float(threshold)
        if not 0.0 <= threshold <= 1.0:
            raise ValidationError("threshold must be between 0 and 1")

        sources = self.namaste_repository.find_all_active()
        targets = self.icd11_repository.find_all_active(ICD11Module.TM2.value)
        logger.info(
            "Auto-mapping %s NAMASTE codes against %s TM2 codes threshold=%.2f",
            len(sources),
            len(targets),
            threshold,
        )

        stats = BatchStats()
        for source in sources:
            best: ICD11Code | None = None
            best_score = 0.0
            for target in targets:
                value = similarity.score(source.display_name, target.title)
                # Strictly greater keeps the first candidate in icd_id order on ties
                if value > best_score:
                    best, best_score = target, value

            if best is None or best_score < threshold:
                continue

            stats.processed += 1
            try:
                result = self.mapping_service.create_mapping(
                    source.code,
                    best.icd_id,
                    MappingType.EQUIVALENT.value,
                    best_score,
                    AUTO_NOTE_TEMPLATE.format(score=best_score),
                    on_duplicate=OnDuplicate.SKIP,
                    actor=actor,
                    verify=False,
                )
            except (TerminologyError, SQLAlchemyError) as exc:
                if isinstance(exc, SQLAlchemyError):
                    self.mapping_service.repository.rollback()
                logger.warning("Error auto-mapping %s -> %s: %s", source.code, best.icd_id, exc)
                stats.errors += 1
                stats.error_details.append(
                    {"namaste_code": source.code, "icd11_code": best.icd_id, "error": str(exc)}
                )
                continue

            if result.created:
                stats.created += 1
                logger.info("Auto-mapped %s -> %s (%.2f)", source.code, best.icd_id, best_score)
            else:
                stats.skipped += 1

        logger.info(
            "Auto-mapping finished processed=%s created=%s skipped=%s errors=%s",
            stats.processed,
            stats.created,
            stats.skipped,
            stats.errors,
        )
        if self.mapping_service.audit is not None:
            self.mapping_service.audit.record(
                "MAPPINGS_AUTO_GENERATED",
                actor=actor,
                resource_type="code_mapping",
                info={"threshold": threshold, "created": stats.created, "skipped": stats.skipped, "errors": stats.errors},
            )
        return stats
