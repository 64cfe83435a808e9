"""Advisory validation of persisted mappings.

Problems are reported, never raised, and no mapping is ever deactivated here.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Optional

from app.repositories.mapping_repository import MappingDetail, MappingRepository
from app.services.confidence_engine import MappingConfidenceEngine
from app.services.errors import NotFoundError

logger = logging.getLogger(__name__)

SOURCE_INACTIVE = "source_inactive"
TARGET_INACTIVE = "target_inactive"
NEEDS_REVIEW = "needs_review"


@dataclass
class ValidationIssue:
    mapping_id: int
    kind: str
    message: str
    namaste_code: str
    icd11_code: str
    current_score: Optional[float] = None
    calculated_score: Optional[float] = None


@dataclass
class ValidationReport:
    valid_count: int = 0
    invalid_count: int = 0
    issues: list[ValidationIssue] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "valid_count": self.valid_count,
            "invalid_count": self.invalid_count,
            "issues": [asdict(issue) for issue in self.issues],
        }


@dataclass
class MappingValidation:
    mapping_id: int
    is_valid: bool
    confidence_score: float
    issues: list[ValidationIssue] = field(default_factory=list)


class MappingValidator:
    def __init__(
        self,
        repository: MappingRepository,
        confidence_engine: Optional[MappingConfidenceEngine] = None,
    ) -> None:
        self.repository = repository
        self.confidence_engine = confidence_engine or MappingConfidenceEngine()

    def validate_all(self) -> ValidationReport:
        report = ValidationReport()

        for detail in self.repository.all_active_details():
            reference_issue = self._reference_issues(detail)
            if reference_issue:
                # Only the first failing side is reported in the bulk run
                report.issues.append(reference_issue[0])
                report.invalid_count += 1
                continue

            drift = self._drift_issue(detail)
            if drift is not None:
                report.issues.append(drift)
            report.valid_count += 1

        logger.info(
            "Validated mappings valid=%s invalid=%s issues=%s",
            report.valid_count,
            report.invalid_count,
            len(report.issues),
        )
        return report

    def validate(self, mapping_id: int) -> MappingValidation:
        detail = self.repository.get_detail(mapping_id)
        if detail is None:
            raise NotFoundError("mapping", mapping_id)

        issues = self._reference_issues(detail)
        is_valid = not issues

        drift = self._drift_issue(detail)
        if drift is not None:
            issues.append(drift)

        return MappingValidation(
            mapping_id=detail.mapping.id,
            is_valid=is_valid,
            confidence_score=float(detail.mapping.confidence_score),
            issues=issues,
        )

    def _reference_issues(self, detail: MappingDetail) -> list[ValidationIssue]:
        mapping = detail.mapping
        issues: list[ValidationIssue] = []
        if detail.source is None:
            issues.append(
                ValidationIssue(
                    mapping_id=mapping.id,
                    kind=SOURCE_INACTIVE,
                    message=f"NAMASTE code {mapping.namaste_code} not found or inactive",
                    namaste_code=mapping.namaste_code,
                    icd11_code=mapping.icd11_code,
                )
            )
        if detail.target is None:
            issues.append(
                ValidationIssue(
                    mapping_id=mapping.id,
                    kind=TARGET_INACTIVE,
                    message=f"ICD-11 code {mapping.icd11_code} not found or inactive",
                    namaste_code=mapping.namaste_code,
                    icd11_code=mapping.icd11_code,
                )
            )
        return issues

    def _drift_issue(self, detail: MappingDetail) -> ValidationIssue | None:
        mapping = detail.mapping
        source_display = detail.source.display_name if detail.source else ""
        target_display = detail.target.title if detail.target else ""

        current = float(mapping.confidence_score)
        calculated = self.confidence_engine.compute_confidence(source_display, target_display)
        if not self.confidence_engine.has_drifted(current, calculated):
            return None

        return ValidationIssue(
            mapping_id=mapping.id,
            kind=NEEDS_REVIEW,
            message="Confidence score may need review",
            namaste_code=mapping.namaste_code,
            icd11_code=mapping.icd11_code,
            current_score=current,
            calculated_score=calculated,
        )
