from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError

from app.core.mapping_config import MappingPolicy, mapping_policy
from app.models.enums import CODE_STATUSES, ICD11_MODULES, SYSTEM_TYPES
from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode
from app.repositories.mapping_repository import MappingDetail, MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository, Page, TerminologyQuery
from app.services.audit_service import AuditService
from app.services.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from app.services.hierarchy_service import CodeHierarchy, HierarchyService
from app.services.icd11_client import WhoIcdClient, entity_to_fields, search_result_to_fields

logger = logging.getLogger(__name__)

NAMASTE_UPDATABLE_FIELDS = (
    "display_name",
    "definition",
    "system_type",
    "category",
    "synonyms",
    "parent_code",
    "level",
    "status",
    "version",
)


def _require_choice(field_name: str, value: Any, choices: tuple[str, ...]) -> str:
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of {', '.join(choices)}")
    return value


def _require_text(field_name: str, value: Any) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    return text


def _require_level(value: Any) -> int:
    try:
        level = int(value or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError("level must be an integer") from exc
    if level < 0:
        raise ValidationError("level must be non-negative")
    return level


@dataclass
class NamasteDetail:
    entry: NamasteCode
    mappings: Optional[list[MappingDetail]] = None
    hierarchy: Optional[CodeHierarchy] = None


class NamasteService:
    def __init__(
        self,
        repository: NamasteRepository,
        mapping_repository: Optional[MappingRepository] = None,
        audit: Optional[AuditService] = None,
    ) -> None:
        self.repository = repository
        self.mapping_repository = mapping_repository
        self.audit = audit
        self.hierarchy_service = HierarchyService(repository)

    def list_codes(self, query: TerminologyQuery) -> Page:
        if query.system_type:
            _require_choice("system_type", query.system_type, SYSTEM_TYPES)
        if query.status:
            _require_choice("status", query.status, CODE_STATUSES)
        return self.repository.find(query)

    def get_code(self, code: str, *, include_mappings: bool = False, include_hierarchy: bool = False) -> NamasteDetail:
        entry = self.repository.get_active(code)
        if entry is None:
            raise NotFoundError("namaste", code)

        detail = NamasteDetail(entry=entry)
        if include_mappings and self.mapping_repository is not None:
            detail.mappings = self.mapping_repository.active_for_sources([entry.code])
        if include_hierarchy:
            detail.hierarchy = self.hierarchy_service.hierarchy(entry.code)
        return detail

    def hierarchy(self, code: str) -> CodeHierarchy:
        return self.hierarchy_service.hierarchy(code)

    def create_code(self, data: dict[str, Any], *, actor: str | None = None) -> NamasteCode:
        code = _require_text("code", data.get("code"))
        entry = NamasteCode(
            code=code,
            display_name=_require_text("display_name", data.get("display_name")),
            definition=data.get("definition"),
            system_type=_require_choice("system_type", data.get("system_type"), SYSTEM_TYPES),
            category=data.get("category"),
            synonyms=list(data.get("synonyms") or []),
            parent_code=data.get("parent_code") or None,
            level=_require_level(data.get("level")),
            status="active",
            version=data.get("version") or "1.0",
        )

        if self.repository.get_active(code) is not None:
            raise ConflictError(f"NAMASTE code {code} already exists")
        self.hierarchy_service.ensure_no_cycle(code, entry.parent_code)

        try:
            self.repository.add(entry)
            self.repository.commit()
        except IntegrityError as exc:
            self.repository.rollback()
            raise ConflictError(f"NAMASTE code {code} already exists") from exc

        self.repository.refresh(entry)
        logger.info("Created NAMASTE code %s (%s)", entry.code, entry.system_type)
        if self.audit is not None:
            self.audit.record(
                "NAMASTE_CODE_CREATED",
                actor=actor,
                resource_type="namaste_code",
                resource_id=entry.code,
                after={"code": entry.code, "display_name": entry.display_name, "system_type": entry.system_type},
            )
        return entry

    def update_code(self, code: str, changes: dict[str, Any], *, actor: str | None = None) -> NamasteCode:
        entry = self.repository.get_active(code)
        if entry is None:
            raise NotFoundError("namaste", code)

        updates = {k: v for k, v in changes.items() if k in NAMASTE_UPDATABLE_FIELDS and v is not None}
        if "display_name" in updates:
            updates["display_name"] = _require_text("display_name", updates["display_name"])
        if "system_type" in updates:
            _require_choice("system_type", updates["system_type"], SYSTEM_TYPES)
        if "status" in updates:
            _require_choice("status", updates["status"], CODE_STATUSES)
        if "level" in updates:
            updates["level"] = _require_level(updates["level"])
        if "parent_code" in updates:
            updates["parent_code"] = updates["parent_code"] or None
            self.hierarchy_service.ensure_no_cycle(entry.code, updates["parent_code"])

        before = {k: getattr(entry, k) for k in updates}
        for key, value in updates.items():
            setattr(entry, key, value)
        self.repository.commit()

        if self.audit is not None:
            self.audit.record(
                "NAMASTE_CODE_UPDATED",
                actor=actor,
                resource_type="namaste_code",
                resource_id=entry.code,
                before=before,
                after=updates,
            )
        return entry

    def deactivate_code(self, code: str, *, actor: str | None = None) -> NamasteCode:
        entry = self.repository.get_active(code)
        if entry is None:
            raise NotFoundError("namaste", code)

        entry.status = "inactive"
        self.repository.commit()
        logger.info("Deactivated NAMASTE code %s", entry.code)

        if self.audit is not None:
            self.audit.record(
                "NAMASTE_CODE_DEACTIVATED",
                actor=actor,
                resource_type="namaste_code",
                resource_id=entry.code,
                before={"status": "active"},
                after={"status": "inactive"},
            )
        return entry

    def statistics(self) -> dict[str, Any]:
        return self.repository.statistics()


class ICD11Service:
    def __init__(
        self,
        repository: ICD11Repository,
        audit: Optional[AuditService] = None,
        client: Optional[WhoIcdClient] = None,
        policy: Optional[MappingPolicy] = None,
    ) -> None:
        self.repository = repository
        self.audit = audit
        self.client = client
        self.policy = policy or mapping_policy

    def list_codes(self, query: TerminologyQuery) -> Page:
        if query.module:
            _require_choice("module", query.module, ICD11_MODULES)
        if query.status:
            _require_choice("status", query.status, CODE_STATUSES)
        return self.repository.find(query)

    def get_code(self, code: str, *, module: str | None = None) -> ICD11Code:
        """Local-first lookup, falling back to the WHO API when configured."""
        if module:
            _require_choice("module", module, ICD11_MODULES)

        entry = self.repository.get_active(code)
        if entry is not None and (not module or entry.module == module):
            return entry

        if entry is None and self.client is not None and self.client.enabled:
            fetched = self._fetch_upstream(code, module or "tm2")
            if fetched is not None:
                return fetched

        raise NotFoundError("icd11", code)

    def _fetch_upstream(self, code: str, module: str) -> ICD11Code | None:
        # Never shadow a local row, including an inactive one
        if self.repository.get_by_icd_id(code) is not None:
            return None

        try:
            data = self.client.get_entity(code)
        except UpstreamError as exc:
            logger.warning("WHO ICD-11 lookup failed for %s: %s", code, exc)
            return None

        fields = entity_to_fields(code, data, module=module)
        entry = ICD11Code(**fields, status="active", last_sync=datetime.now(timezone.utc))
        try:
            self.repository.add(entry)
            self.repository.commit()
        except IntegrityError:
            self.repository.rollback()
            logger.warning("ICD-11 entity %s was stored concurrently", code)
            return self.repository.get_active(code)

        self.repository.refresh(entry)
        logger.info("Cached ICD-11 entity %s from WHO API", code)
        return entry

    def create_code(self, data: dict[str, Any], *, actor: str | None = None) -> ICD11Code:
        icd_id = _require_text("icd_id", data.get("icd_id"))
        entry = ICD11Code(
            icd_id=icd_id,
            code=data.get("code") or None,
            title=_require_text("title", data.get("title")),
            definition=data.get("definition"),
            module=_require_choice("module", data.get("module") or "tm2", ICD11_MODULES),
            parent_id=data.get("parent_id") or None,
            level=_require_level(data.get("level")),
            synonyms=list(data.get("synonyms") or []),
            status="active",
        )

        if self.repository.get_by_icd_id(icd_id) is not None:
            raise ConflictError(f"ICD-11 code {icd_id} already exists")

        try:
            self.repository.add(entry)
            self.repository.commit()
        except IntegrityError as exc:
            self.repository.rollback()
            raise ConflictError(f"ICD-11 code {icd_id} already exists") from exc

        self.repository.refresh(entry)
        if self.audit is not None:
            self.audit.record(
                "ICD11_CODE_CREATED",
                actor=actor,
                resource_type="icd11_code",
                resource_id=entry.icd_id,
                after={"icd_id": entry.icd_id, "title": entry.title, "module": entry.module},
            )
        return entry

    def deactivate_code(self, code: str, *, actor: str | None = None) -> ICD11Code:
        entry = self.repository.get_active(code)
        if entry is None:
            raise NotFoundError("icd11", code)

        entry.status = "inactive"
        self.repository.commit()
        logger.info("Deactivated ICD-11 code %s", entry.icd_id)

        if self.audit is not None:
            self.audit.record(
                "ICD11_CODE_DEACTIVATED",
                actor=actor,
                resource_type="icd11_code",
                resource_id=entry.icd_id,
                before={"status": "active"},
                after={"status": "inactive"},
            )
        return entry

    def batch_lookup(self, codes: list[str]) -> dict[str, Any]:
        codes = [str(c).strip() for c in codes or [] if str(c).strip()]
        if not codes:
            raise ValidationError("codes array is required")
        if len(codes) > self.policy.batch_max_codes:
            raise ValidationError(f"Maximum {self.policy.batch_max_codes} codes allowed per batch request")

        entries = self.repository.get_active_many(codes)
        found: list[ICD11Code] = []
        not_found: list[str] = []
        for code in codes:
            match = next((e for e in entries if e.icd_id == code), None) or next(
                (e for e in entries if e.code == code), None
            )
            if match is None:
                not_found.append(code)
            elif match not in found:
                found.append(match)

        return {"requested": len(codes), "found": found, "not_found": not_found}

    def sync(
        self,
        q: str,
        *,
        module: str = "tm2",
        limit: int = 20,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """Store WHO search hits for ``q`` that are not yet known locally.

        Existing rows, active or not, are left untouched. Raises
        :class:`UpstreamError` when the WHO API is unavailable.
        """
        query = (q or "").strip()
        if not 2 <= len(query) <= 200:
            raise ValidationError("q must be between 2 and 200 characters")
        _require_choice("module", module, ICD11_MODULES)
        if not 1 <= limit <= self.policy.batch_max_codes:
            raise ValidationError(f"limit must be between 1 and {self.policy.batch_max_codes}")
        if self.client is None or not self.client.enabled:
            logger.warning("ICD-11 sync requested but the WHO API is not configured")
            raise UpstreamError("ICD-11 API credentials are not configured")

        try:
            hits = self.client.search(query, limit=limit)
        except UpstreamError as exc:
            logger.warning("ICD-11 sync search failed for %r: %s", query, exc)
            raise

        result = {"query": query, "fetched": len(hits), "created": [], "skipped": 0}
        synced_at = datetime.now(timezone.utc)
        for hit in hits:
            fields = search_result_to_fields(hit, module=module)
            if fields is None or self.repository.get_by_icd_id(fields["icd_id"]) is not None:
                result["skipped"] += 1
                continue

            try:
                self.repository.add(ICD11Code(**fields, status="active", last_sync=synced_at))
                self.repository.commit()
            except IntegrityError:
                self.repository.rollback()
                result["skipped"] += 1
                continue
            result["created"].append(fields["icd_id"])

        logger.info(
            "ICD-11 sync q=%r fetched=%s created=%s skipped=%s",
            query,
            result["fetched"],
            len(result["created"]),
            result["skipped"],
        )
        if self.audit is not None:
            self.audit.record(
                "ICD11_CODES_SYNCED",
                actor=actor,
                resource_type="icd11_code",
                info={"query": query, "module": module, "created": len(result["created"])},
            )
        return result
