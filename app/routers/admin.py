"""Administrative operations: batch mapping jobs, the audit trail and usage metrics."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.repositories.audit_repository import AuditQuery
from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.routers.deps import actor_id, audit_service, http_error, mapping_validator, suggestion_service
from app.schemas.audit import AuditLogOut, AuditLogPage, DataMetrics, MetricsOut, UsageMetrics
from app.schemas.mapping import AutoMapRequest, BatchStatsOut, ValidationReportOut
from app.services.errors import TerminologyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/auto-map", response_model=BatchStatsOut)
def auto_map(
    payload: AutoMapRequest | None = None,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> BatchStatsOut:
    try:
        stats = suggestion_service(db).auto_map(payload.threshold if payload else None, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Automatic mapping failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="automatic mapping failed") from exc
    return BatchStatsOut(**stats.as_dict())


@router.post("/validate-mappings", response_model=ValidationReportOut)
def validate_mappings(db: Session = Depends(get_db)) -> ValidationReportOut:
    report = mapping_validator(db).validate_all()
    return ValidationReportOut.model_validate(report)


@router.get("/audit-logs", response_model=AuditLogPage)
def audit_logs(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    user_id: str | None = Query(default=None, max_length=128),
    action: str | None = Query(default=None, max_length=100),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
) -> AuditLogPage:
    query = AuditQuery(
        user_id=user_id,
        action=action,
        start=start_date,
        end=end_date,
        limit=limit,
        offset=offset,
    )
    try:
        page = audit_service(db).search(query)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Audit log query failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log query failed") from exc

    return AuditLogPage(
        total=page.total,
        limit=limit,
        offset=offset,
        logs=[AuditLogOut.model_validate(row) for row in page.items],
    )


@router.get("/metrics", response_model=MetricsOut)
def metrics(db: Session = Depends(get_db)) -> MetricsOut:
    try:
        usage = audit_service(db).usage()
        mapping_totals = MappingRepository(db).statistics()["total"]
        data = DataMetrics(
            namaste_codes=NamasteRepository(db).statistics()["total"],
            icd11_codes=ICD11Repository(db).count_active(),
            mappings=mapping_totals["mappings"],
            verified_mappings=mapping_totals["verified"],
        )
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Metrics query failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="metrics query failed") from exc
    return MetricsOut(usage=UsageMetrics(**usage), data=data)
