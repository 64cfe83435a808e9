"""Mapping creation and maintenance.

Creation checks run in a fixed order (first failure wins):

1. mapping type / confidence are well-formed      -> ValidationError
2. source resolves to an active NAMASTE code      -> NotFoundError
3. target resolves to an active ICD-11 code       -> NotFoundError
   (by ``icd_id`` or by secondary ``code``)
4. no active mapping exists for the pair          -> OnDuplicate policy
5. confidence is computed when not supplied
6. the mapping is persisted active

Duplicate handling is explicit: interactive single-create callers pass
``OnDuplicate.REJECT`` and get a ConflictError; batch callers pass
``OnDuplicate.SKIP`` and get the existing mapping back with ``created=False``.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.mapping_config import MappingPolicy, mapping_policy
from app.models.code_mapping import CodeMapping
from app.models.enums import MAPPING_TYPES, SYSTEM_TYPES
from app.repositories.mapping_repository import MappingDetail, MappingQuery, MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository, Page
from app.services.audit_service import AuditService
from app.services.confidence_engine import MappingConfidenceEngine
from app.services.errors import ConflictError, NotFoundError, TerminologyError, ValidationError

logger = logging.getLogger(__name__)

EXPORT_CSV_HEADER = [
    "NAMASTE_Code",
    "NAMASTE_Display",
    "NAMASTE_System",
    "ICD11_ID",
    "ICD11_Title",
    "Mapping_Type",
    "Confidence_Score",
    "Verified_By",
    "Verified_At",
    "Notes",
]

UPDATABLE_FIELDS = ("mapping_type", "confidence_score", "notes", "is_active")
# Fields an update may set back to null
CLEARABLE_FIELDS = ("notes",)


class OnDuplicate(str, Enum):
    SKIP = "skip"
    REJECT = "reject"


@dataclass
class MappingResult:
    mapping: CodeMapping
    created: bool


@dataclass
class BatchStats:
    processed: int = 0
    created: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "created": self.created,
            "skipped": self.skipped,
            "errors": self.errors,
            "error_details": self.error_details,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_mapping_type(mapping_type: str | None) -> str:
    value = (mapping_type or "equivalent").strip().lower()
    if value not in MAPPING_TYPES:
        raise ValidationError(f"mapping_type must be one of {', '.join(MAPPING_TYPES)}")
    return value


def validate_confidence(confidence: float | None) -> float | None:
    if confidence is None:
        return None
    try:
        value = float(confidence)
    except (TypeError, ValueError) as exc:
        raise ValidationError("confidence_score must be a number") from exc
    if not 0.0 <= value <= 1.0:
        raise ValidationError("confidence_score must be between 0 and 1")
    return value


class MappingService:
    def __init__(
        self,
        repository: MappingRepository,
        namaste_repository: NamasteRepository,
        icd11_repository: ICD11Repository,
        audit: Optional[AuditService] = None,
        confidence_engine: Optional[MappingConfidenceEngine] = None,
        policy: Optional[MappingPolicy] = None,
    ) -> None:
        self.repository = repository
        self.namaste_repository = namaste_repository
        self.icd11_repository = icd11_repository
        self.audit = audit
        self.confidence_engine = confidence_engine or MappingConfidenceEngine()
        self.policy = policy or mapping_policy

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_mapping(
        self,
        source_code: str,
        target_code: str,
        mapping_type: str | None = "equivalent",
        confidence: float | None = None,
        notes: str | None = None,
        *,
        on_duplicate: OnDuplicate,
        actor: str | None = None,
        verify: bool = True,
    ) -> MappingResult:
        """Create one mapping.

        ``actor`` is always recorded in the audit trail; it is stamped as the
        verifier only when ``verify`` is true. Machine-generated mappings pass
        ``verify=False`` so they stay unverified until a reviewer updates them.
        """
        mapping_type = validate_mapping_type(mapping_type)
        confidence = validate_confidence(confidence)

        source = self.namaste_repository.get_active(source_code)
        if source is None:
            raise NotFoundError("namaste", source_code)

        target = self.icd11_repository.get_active(target_code)
        if target is None:
            raise NotFoundError("icd11", target_code)

        existing = self.repository.find_active_by_pair(source.code, target.icd_id)
        if existing is not None:
            return self._handle_duplicate(existing, on_duplicate)

        score = self.confidence_engine.resolve_confidence(confidence, source.display_name, target.title)
        mapping = CodeMapping(
            namaste_code=source.code,
            icd11_code=target.icd_id,
            mapping_type=mapping_type,
            confidence_score=score,
            notes=notes or None,
            verified_by=actor if verify else None,
            verified_at=_utcnow() if actor and verify else None,
            is_active=True,
        )

        try:
            self.repository.add(mapping)
            self.repository.commit()
        except IntegrityError:
            # A concurrent request created the same active pair between the read and the write.
            self.repository.rollback()
            existing = self.repository.find_active_by_pair(source.code, target.icd_id)
            if existing is None:
                raise
            return self._handle_duplicate(existing, on_duplicate)

        self.repository.refresh(mapping)
        logger.info(
            "Created mapping id=%s %s -> %s type=%s confidence=%.2f",
            mapping.id,
            mapping.namaste_code,
            mapping.icd11_code,
            mapping.mapping_type,
            mapping.confidence_score,
        )

        if self.audit is not None:
            self.audit.record(
                "MAPPING_CREATED",
                actor=actor,
                resource_type="code_mapping",
                resource_id=mapping.id,
                after=self._snapshot(mapping),
            )

        return MappingResult(mapping=mapping, created=True)

    def _handle_duplicate(self, existing: CodeMapping, on_duplicate: OnDuplicate) -> MappingResult:
        if on_duplicate is OnDuplicate.REJECT:
            raise ConflictError(
                f"Mapping already exists between {existing.namaste_code} and {existing.icd11_code}"
            )
        logger.info("Mapping already exists: %s -> %s", existing.namaste_code, existing.icd11_code)
        return MappingResult(mapping=existing, created=False)

    # ------------------------------------------------------------------
    # Read / update / deactivate
    # ------------------------------------------------------------------

    def get_mapping(self, mapping_id: int) -> MappingDetail:
        detail = self.repository.get_detail(mapping_id)
        if detail is None:
            raise NotFoundError("mapping", mapping_id)
        return detail

    def list_mappings(self, query: MappingQuery) -> Page:
        if query.mapping_type:
            query.mapping_type = validate_mapping_type(query.mapping_type)
        if query.system_type and query.system_type not in SYSTEM_TYPES:
            raise ValidationError(f"system_type must be one of {', '.join(SYSTEM_TYPES)}")
        return self.repository.find_active(query)

    def update_mapping(self, mapping_id: int, changes: dict[str, Any], *, actor: str | None = None) -> MappingDetail:
        mapping = self.repository.get(mapping_id)
        if mapping is None:
            raise NotFoundError("mapping", mapping_id)

        updates = {
            k: v
            for k, v in changes.items()
            if k in UPDATABLE_FIELDS and (v is not None or k in CLEARABLE_FIELDS)
        }
        if "mapping_type" in updates:
            updates["mapping_type"] = validate_mapping_type(updates["mapping_type"])
        if "confidence_score" in updates:
            updates["confidence_score"] = validate_confidence(updates["confidence_score"])

        if updates.get("is_active") and not mapping.is_active:
            duplicate = self.repository.find_active_by_pair(mapping.namaste_code, mapping.icd11_code)
            if duplicate is not None and duplicate.id != mapping.id:
                raise ConflictError(
                    f"Mapping already exists between {mapping.namaste_code} and {mapping.icd11_code}"
                )

        before = {k: getattr(mapping, k) for k in UPDATABLE_FIELDS}
        for key, value in updates.items():
            setattr(mapping, key, value)
        mapping.verified_by = actor
        mapping.verified_at = _utcnow()

        try:
            self.repository.commit()
        except IntegrityError as exc:
            self.repository.rollback()
            raise ConflictError(
                f"Mapping already exists between {mapping.namaste_code} and {mapping.icd11_code}"
            ) from exc

        if self.audit is not None:
            self.audit.record(
                "MAPPING_UPDATED",
                actor=actor,
                resource_type="code_mapping",
                resource_id=mapping.id,
                before=before,
                after=updates,
            )
        return self.get_mapping(mapping_id)

    def deactivate_mapping(self, mapping_id: int, *, actor: str | None = None) -> CodeMapping:
        mapping = self.repository.get(mapping_id)
        if mapping is None:
            raise NotFoundError("mapping", mapping_id)

        mapping.is_active = False
        mapping.verified_by = actor
        mapping.verified_at = _utcnow()
        self.repository.commit()

        if self.audit is not None:
            self.audit.record(
                "MAPPING_DELETED",
                actor=actor,
                resource_type="code_mapping",
                resource_id=mapping.id,
                before={"is_active": True},
                after={"is_active": False},
            )
        return mapping

    # ------------------------------------------------------------------
    # Batch import
    # ------------------------------------------------------------------

    def import_mappings(self, rows: Iterable[dict[str, Any]], *, actor: str | None = None) -> BatchStats:
        stats = BatchStats()
        for index, row in enumerate(rows):
            self._import_one(stats, index, row, actor=actor)

        logger.info(
            "Mapping import finished processed=%s created=%s skipped=%s errors=%s",
            stats.processed,
            stats.created,
            stats.skipped,
            stats.errors,
        )
        if self.audit is not None:
            self.audit.record(
                "MAPPINGS_IMPORTED",
                actor=actor,
                resource_type="code_mapping",
                info={k: v for k, v in stats.as_dict().items() if k != "error_details"},
            )
        return stats

    def import_mappings_csv(self, text: str, *, actor: str | None = None) -> BatchStats:
        reader = csv.reader(io.StringIO(text))
        header = next(reader, None)
        if header is None:
            return BatchStats()
        logger.info("CSV import header=%s", [h.strip() for h in header])

        stats = BatchStats()
        for line_no, values in enumerate(reader, start=2):
            values = [v.strip() for v in values]
            if not any(values):
                continue
            if len(values) < 2:
                stats.processed += 1
                stats.errors += 1
                stats.error_details.append({"row": line_no, "error": "expected at least namaste_code,icd11_code"})
                continue

            try:
                confidence = float(values[3]) if len(values) > 3 and values[3] else None
            except ValueError:
                stats.processed += 1
                stats.errors += 1
                stats.error_details.append({"row": line_no, "error": f"invalid confidence_score: {values[3]}"})
                continue

            row = {
                "namaste_code": values[0],
                "icd11_code": values[1],
                "mapping_type": values[2] if len(values) > 2 and values[2] else "equivalent",
                "confidence_score": confidence,
                "notes": values[4] if len(values) > 4 and values[4] else None,
            }
            self._import_one(stats, line_no, row, actor=actor)

        logger.info(
            "CSV mapping import finished processed=%s created=%s skipped=%s errors=%s",
            stats.processed,
            stats.created,
            stats.skipped,
            stats.errors,
        )
        return stats

    def _import_one(self, stats: BatchStats, row_ref: int, row: dict[str, Any], *, actor: str | None) -> None:
        source_code = str(row.get("namaste_code") or "").strip()
        target_code = str(row.get("icd11_code") or "").strip()
        try:
            if not source_code or not target_code:
                raise ValidationError("namaste_code and icd11_code are required")
            result = self.create_mapping(
                source_code,
                target_code,
                row.get("mapping_type") or "equivalent",
                row.get("confidence_score"),
                row.get("notes"),
                on_duplicate=OnDuplicate.SKIP,
                actor=actor,
            )
        except (TerminologyError, SQLAlchemyError) as exc:
            if isinstance(exc, SQLAlchemyError):
                self.repository.rollback()
            logger.warning("Error creating mapping %s -> %s: %s", source_code, target_code, exc)
            stats.errors += 1
            stats.error_details.append(
                {"row": row_ref, "namaste_code": source_code, "icd11_code": target_code, "error": str(exc)}
            )
        else:
            if result.created:
                stats.created += 1
            else:
                stats.skipped += 1
        finally:
            stats.processed += 1

    # ------------------------------------------------------------------
    # Batch translate
    # ------------------------------------------------------------------

    def batch_translate(self, codes: list[str], source_system: str, target_system: str) -> dict[str, Any]:
        codes = [str(c).strip() for c in codes or [] if str(c).strip()]
        if not codes:
            raise ValidationError("codes array is required")
        if len(codes) > self.policy.batch_max_codes:
            raise ValidationError(f"Maximum {self.policy.batch_max_codes} codes allowed per batch request")

        results: dict[str, list[dict[str, Any]]] = {}
        if source_system == "namaste" and target_system == "icd11":
            details = self.repository.active_for_sources(codes)
            for code in codes:
                results[code] = [
                    {
                        "target_code": d.mapping.icd11_code,
                        "target_display": d.target.title if d.target else None,
                        "target_module": d.target.module if d.target else None,
                        "mapping_type": d.mapping.mapping_type,
                        "confidence_score": float(d.mapping.confidence_score),
                        "verified": d.mapping.is_verified,
                    }
                    for d in details
                    if d.mapping.namaste_code == code
                ]
        elif source_system == "icd11" and target_system == "namaste":
            aliases: dict[str, str] = {code: code for code in codes}
            for entry in self.icd11_repository.get_active_many(codes):
                for code in codes:
                    if code in (entry.icd_id, entry.code):
                        aliases[code] = entry.icd_id

            details = self.repository.active_for_targets(sorted(set(aliases.values())))
            for code in codes:
                results[code] = [
                    {
                        "target_code": d.mapping.namaste_code,
                        "target_display": d.source.display_name if d.source else None,
                        "target_system_type": d.source.system_type if d.source else None,
                        "mapping_type": d.mapping.mapping_type,
                        "confidence_score": float(d.mapping.confidence_score),
                        "verified": d.mapping.is_verified,
                    }
                    for d in details
                    if d.mapping.icd11_code == aliases[code]
                ]
        else:
            raise ValidationError("Invalid source_system or target_system combination")

        found = sum(len(v) for v in results.values())
        return {
            "source_system": source_system,
            "target_system": target_system,
            "requested_codes": codes,
            "total_requested": len(codes),
            "total_mappings_found": found,
            "results": results,
        }

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def statistics(self) -> dict[str, Any]:
        return self.repository.statistics()

    def export(
        self,
        fmt: str = "json",
        *,
        system_type: str | None = None,
        mapping_type: str | None = None,
        verified_only: bool = False,
    ) -> list[dict[str, Any]] | str:
        if fmt not in ("json", "csv"):
            raise ValidationError("format must be json or csv")

        page = self.list_mappings(
            MappingQuery(
                system_type=system_type,
                mapping_type=mapping_type,
                verified_only=verified_only,
                limit=None,
            )
        )
        # Mappings whose source or target went inactive are left out of the export.
        details = [d for d in page.items if d.source is not None and d.target is not None]

        if fmt == "csv":
            return self._to_csv(details)
        return [self._export_row(d) for d in details]

    @staticmethod
    def _export_row(detail: MappingDetail) -> dict[str, Any]:
        mapping, source, target = detail.mapping, detail.source, detail.target
        return {
            "id": mapping.id,
            "namaste": {
                "code": source.code,
                "display": source.display_name,
                "definition": source.definition,
                "system_type": source.system_type,
                "category": source.category,
            },
            "icd11": {
                "id": target.icd_id,
                "code": target.code,
                "title": target.title,
                "definition": target.definition,
                "module": target.module,
            },
            "mapping": {
                "type": mapping.mapping_type,
                "confidence_score": float(mapping.confidence_score),
                "notes": mapping.notes,
                "verified_by": mapping.verified_by,
                "verified_at": mapping.verified_at.isoformat() if mapping.verified_at else None,
                "created_at": mapping.created_at.isoformat() if mapping.created_at else None,
            },
        }

    @staticmethod
    def _to_csv(details: list[MappingDetail]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(EXPORT_CSV_HEADER)
        for d in details:
            writer.writerow(
                [
                    d.source.code,
                    d.source.display_name,
                    d.source.system_type,
                    d.target.icd_id,
                    d.target.title,
                    d.mapping.mapping_type,
                    d.mapping.confidence_score,
                    d.mapping.verified_by or "",
                    d.mapping.verified_at.isoformat() if d.mapping.verified_at else "",
                    d.mapping.notes or "",
                ]
            )
        return buffer.getvalue()

    @staticmethod
    def _snapshot(mapping: CodeMapping) -> dict[str, Any]:
        return {
            "namaste_code": mapping.namaste_code,
            "icd11_code": mapping.icd11_code,
            "mapping_type": mapping.mapping_type,
            "confidence_score": float(mapping.confidence_score),
        }
