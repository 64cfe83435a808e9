"""Mapping management router.

Single creates reject duplicates with 409; imports skip them and report
per-row outcomes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.repositories.mapping_repository import MappingQuery
from app.routers.deps import actor_id, http_error, mapping_service, mapping_validator, suggestion_service
from app.schemas.mapping import (
    BatchStatsOut,
    BatchTranslateRequest,
    MappingCreate,
    MappingDetailOut,
    MappingImportRequest,
    MappingOut,
    MappingPage,
    MappingUpdate,
    MappingValidationOut,
    SuggestionOut,
    SuggestionResponse,
)
from app.services.errors import TerminologyError
from app.services.mapping_service import OnDuplicate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mappings", tags=["mappings"])


def _database_error(db: Session, exc: SQLAlchemyError, message: str) -> HTTPException:
    db.rollback()
    logger.exception(message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.post("", response_model=MappingOut, status_code=status.HTTP_201_CREATED)
def create_mapping(
    payload: MappingCreate,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> MappingOut:
    service = mapping_service(db)
    try:
        result = service.create_mapping(
            payload.namaste_code,
            payload.icd11_code,
            payload.mapping_type.value,
            payload.confidence_score,
            payload.notes,
            on_duplicate=OnDuplicate.REJECT,
            actor=actor,
        )
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "failed to create mapping") from exc

    return MappingOut.model_validate(result.mapping)


@router.get("", response_model=MappingPage)
def list_mappings(
    namaste_code: str | None = Query(default=None),
    icd11_code: str | None = Query(default=None),
    mapping_type: str | None = Query(default=None),
    system_type: str | None = Query(default=None),
    verified_only: bool = Query(default=False),
    confidence_min: float | None = Query(default=None, ge=0.0, le=1.0),
    confidence_max: float | None = Query(default=None, ge=0.0, le=1.0),
    search: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> MappingPage:
    query = MappingQuery(
        namaste_code=namaste_code,
        icd11_code=icd11_code,
        mapping_type=mapping_type,
        system_type=system_type,
        verified_only=verified_only,
        confidence_min=confidence_min,
        confidence_max=confidence_max,
        search=search,
        limit=limit,
        offset=offset,
    )
    try:
        page = mapping_service(db).list_mappings(query)
    except TerminologyError as exc:
        raise http_error(exc) from exc

    return MappingPage(
        total=page.total,
        limit=limit,
        offset=offset,
        items=[MappingDetailOut.from_detail(d) for d in page.items],
    )


@router.get("/stats")
def mapping_statistics(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return mapping_service(db).statistics()


@router.get("/export")
def export_mappings(
    fmt: str = Query(default="json", alias="format", pattern="^(json|csv)$"),
    system_type: str | None = Query(default=None),
    mapping_type: str | None = Query(default=None),
    verified_only: bool = Query(default=False),
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
):
    service = mapping_service(db)
    try:
        exported = service.export(
            fmt,
            system_type=system_type,
            mapping_type=mapping_type,
            verified_only=verified_only,
        )
    except TerminologyError as exc:
        raise http_error(exc) from exc

    service.audit.record(
        "MAPPINGS_EXPORTED",
        actor=actor,
        resource_type="code_mapping",
        info={"format": fmt, "system_type": system_type, "mapping_type": mapping_type},
    )

    if fmt == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="namaste_icd11_mappings.csv"'},
        )
    return {"total": len(exported), "mappings": exported}


@router.get("/suggestions/{code}", response_model=SuggestionResponse)
def suggest_mappings(
    code: str,
    limit: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> SuggestionResponse:
    try:
        suggestions = suggestion_service(db).suggest(code, limit)
    except TerminologyError as exc:
        raise http_error(exc) from exc

    return SuggestionResponse(
        namaste_code=code,
        suggestions=[SuggestionOut.model_validate(s) for s in suggestions],
    )


@router.post("/batch-translate")
def batch_translate(payload: BatchTranslateRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        return mapping_service(db).batch_translate(payload.codes, payload.source_system, payload.target_system)
    except TerminologyError as exc:
        raise http_error(exc) from exc


@router.post("/import", response_model=BatchStatsOut)
def import_mappings(
    payload: MappingImportRequest,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> BatchStatsOut:
    if not payload.mappings:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="mappings array is required")

    stats = mapping_service(db).import_mappings(payload.mappings, actor=actor)
    return BatchStatsOut(**stats.as_dict())


@router.post("/import/csv", response_model=BatchStatsOut)
def import_mappings_csv(
    payload: str = Body(..., media_type="text/csv"),
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> BatchStatsOut:
    if not payload.strip():
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="CSV body is required")

    stats = mapping_service(db).import_mappings_csv(payload, actor=actor)
    return BatchStatsOut(**stats.as_dict())


@router.get("/{mapping_id}", response_model=MappingDetailOut)
def get_mapping(mapping_id: int, db: Session = Depends(get_db)) -> MappingDetailOut:
    try:
        detail = mapping_service(db).get_mapping(mapping_id)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return MappingDetailOut.from_detail(detail)


@router.put("/{mapping_id}", response_model=MappingDetailOut)
def update_mapping(
    mapping_id: int,
    payload: MappingUpdate,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> MappingDetailOut:
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("mapping_type") is not None:
        changes["mapping_type"] = payload.mapping_type.value
    try:
        detail = mapping_service(db).update_mapping(mapping_id, changes, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "failed to update mapping") from exc
    return MappingDetailOut.from_detail(detail)


@router.delete("/{mapping_id}")
def deactivate_mapping(
    mapping_id: int,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        mapping = mapping_service(db).deactivate_mapping(mapping_id, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "failed to deactivate mapping") from exc
    return {"message": "mapping deactivated", "id": mapping.id}


@router.get("/{mapping_id}/validate", response_model=MappingValidationOut)
def validate_mapping(mapping_id: int, db: Session = Depends(get_db)) -> MappingValidationOut:
    try:
        result = mapping_validator(db).validate(mapping_id)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return MappingValidationOut.model_validate(result)
