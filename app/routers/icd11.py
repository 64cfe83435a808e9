from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.repositories.terminology_repository import TerminologyQuery
from app.routers.deps import actor_id, get_icd11_client, http_error, icd11_service
from app.schemas.terminology import (
    BatchLookupRequest,
    BatchLookupResponse,
    ICD11CodeCreate,
    ICD11CodeOut,
    ICD11SyncRequest,
    ICD11SyncOut,
)
from app.services.errors import TerminologyError
from app.services.icd11_client import WhoIcdClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/icd11", tags=["icd11"])


@router.get("/codes")
def list_codes(
    module: str | None = Query(default=None),
    level: int | None = Query(default=None, ge=0),
    parent_id: str | None = Query(default=None),
    status_filter: str | None = Query(default="active", alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    query = TerminologyQuery(
        module=module,
        level=level,
        parent_code=parent_id,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    try:
        page = icd11_service(db).list_codes(query)
    except TerminologyError as exc:
        raise http_error(exc) from exc

    return {
        "total": page.total,
        "limit": limit,
        "offset": offset,
        "items": [ICD11CodeOut.model_validate(e) for e in page.items],
    }


@router.get("/codes/{code}", response_model=ICD11CodeOut)
def get_code(
    code: str,
    module: str | None = Query(default=None),
    client: WhoIcdClient = Depends(get_icd11_client),
    db: Session = Depends(get_db),
) -> ICD11CodeOut:
    try:
        entry = icd11_service(db, client).get_code(code, module=module)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return ICD11CodeOut.model_validate(entry)


@router.post("/codes", response_model=ICD11CodeOut, status_code=status.HTTP_201_CREATED)
def create_code(
    payload: ICD11CodeCreate,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> ICD11CodeOut:
    data = payload.model_dump()
    data["module"] = payload.module.value
    try:
        entry = icd11_service(db).create_code(data, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create ICD-11 code %s", payload.icd_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to create code") from exc
    return ICD11CodeOut.model_validate(entry)


@router.delete("/codes/{code}")
def deactivate_code(
    code: str,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        entry = icd11_service(db).deactivate_code(code, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return {"message": "code deactivated", "icd_id": entry.icd_id}


@router.post("/batch-lookup", response_model=BatchLookupResponse)
def batch_lookup(payload: BatchLookupRequest, db: Session = Depends(get_db)) -> BatchLookupResponse:
    try:
        result = icd11_service(db).batch_lookup(payload.codes)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return BatchLookupResponse(
        requested=result["requested"],
        found=[ICD11CodeOut.model_validate(e) for e in result["found"]],
        not_found=result["not_found"],
    )


@router.post("/sync", response_model=ICD11SyncOut)
def sync_codes(
    payload: ICD11SyncRequest,
    actor: str | None = Depends(actor_id),
    client: WhoIcdClient = Depends(get_icd11_client),
    db: Session = Depends(get_db),
) -> ICD11SyncOut:
    """Pull matching entities from the WHO API into the local table."""
    try:
        result = icd11_service(db, client).sync(
            payload.q,
            module=payload.module.value,
            limit=payload.limit,
            actor=actor,
        )
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("ICD-11 sync failed for %r", payload.q)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="sync failed") from exc
    return ICD11SyncOut(**result)
