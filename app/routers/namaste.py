from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.repositories.terminology_repository import TerminologyQuery
from app.routers.deps import actor_id, http_error, namaste_service
from app.schemas.mapping import MappingDetailOut
from app.schemas.terminology import CodeHierarchyOut, NamasteCodeCreate, NamasteCodeOut, NamasteCodeUpdate
from app.services.errors import TerminologyError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/namaste", tags=["namaste"])


@router.get("/codes")
def list_codes(
    system_type: str | None = Query(default=None),
    category: str | None = Query(default=None),
    level: int | None = Query(default=None, ge=0),
    parent_code: str | None = Query(default=None),
    status_filter: str | None = Query(default="active", alias="status"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    query = TerminologyQuery(
        system_type=system_type,
        category=category,
        level=level,
        parent_code=parent_code,
        status=status_filter,
        limit=limit,
        offset=offset,
    )
    try:
        page = namaste_service(db).list_codes(query)
    except TerminologyError as exc:
        raise http_error(exc) from exc

    return {
        "total": page.total,
        "limit": limit,
        "offset": offset,
        "items": [NamasteCodeOut.model_validate(e) for e in page.items],
    }


@router.get("/stats")
def statistics(db: Session = Depends(get_db)) -> Dict[str, Any]:
    return namaste_service(db).statistics()


@router.get("/codes/{code}")
def get_code(
    code: str,
    include_mappings: bool = Query(default=False),
    include_hierarchy: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        detail = namaste_service(db).get_code(
            code,
            include_mappings=include_mappings,
            include_hierarchy=include_hierarchy,
        )
    except TerminologyError as exc:
        raise http_error(exc) from exc

    body: Dict[str, Any] = NamasteCodeOut.model_validate(detail.entry).model_dump()
    if detail.mappings is not None:
        body["mappings"] = [MappingDetailOut.from_detail(d).model_dump() for d in detail.mappings]
    if detail.hierarchy is not None:
        body["hierarchy"] = CodeHierarchyOut.model_validate(detail.hierarchy).model_dump()
    return body


@router.get("/codes/{code}/hierarchy", response_model=CodeHierarchyOut)
def get_hierarchy(code: str, db: Session = Depends(get_db)) -> CodeHierarchyOut:
    try:
        hierarchy = namaste_service(db).hierarchy(code)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return CodeHierarchyOut.model_validate(hierarchy)


@router.post("/codes", response_model=NamasteCodeOut, status_code=status.HTTP_201_CREATED)
def create_code(
    payload: NamasteCodeCreate,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> NamasteCodeOut:
    data = payload.model_dump()
    data["system_type"] = payload.system_type.value
    try:
        entry = namaste_service(db).create_code(data, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to create NAMASTE code %s", payload.code)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to create code") from exc
    return NamasteCodeOut.model_validate(entry)


@router.put("/codes/{code}", response_model=NamasteCodeOut)
def update_code(
    code: str,
    payload: NamasteCodeUpdate,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> NamasteCodeOut:
    changes = payload.model_dump(exclude_unset=True, mode="json")
    try:
        entry = namaste_service(db).update_code(code, changes, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to update NAMASTE code %s", code)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="failed to update code") from exc
    return NamasteCodeOut.model_validate(entry)


@router.delete("/codes/{code}")
def deactivate_code(
    code: str,
    actor: str | None = Depends(actor_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        entry = namaste_service(db).deactivate_code(code, actor=actor)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return {"message": "code deactivated", "code": entry.code}
