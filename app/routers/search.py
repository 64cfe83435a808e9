"""Terminology search across NAMASTE and ICD-11."""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.routers.deps import http_error, search_service
from app.services.errors import TerminologyError
from app.services.search_service import MAX_QUERY_LENGTH, MIN_QUERY_LENGTH

router = APIRouter(prefix="/search", tags=["search"])


def _serialize(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {**payload, "results": [r.as_dict() for r in payload["results"]]}


@router.get("/namaste")
def search_namaste(
    q: str = Query(..., min_length=MIN_QUERY_LENGTH, max_length=MAX_QUERY_LENGTH),
    system_type: str | None = Query(default=None),
    category: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        result = search_service(db).search_namaste(
            q, system_type=system_type, category=category, limit=limit, offset=offset
        )
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return _serialize(result)


@router.get("/icd11")
def search_icd11(
    q: str = Query(..., min_length=MIN_QUERY_LENGTH, max_length=MAX_QUERY_LENGTH),
    module: str | None = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        result = search_service(db).search_icd11(q, module=module, limit=limit, offset=offset)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return _serialize(result)


@router.get("/diseases")
def search_all(
    q: str = Query(..., min_length=MIN_QUERY_LENGTH, max_length=MAX_QUERY_LENGTH),
    limit: int = Query(default=20, ge=2, le=100),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        result = search_service(db).search_all(q, limit=limit, offset=offset)
    except TerminologyError as exc:
        raise http_error(exc) from exc

    return {
        **result,
        "results": {system: [r.as_dict() for r in rows] for system, rows in result["results"].items()},
    }


@router.get("/autocomplete")
def autocomplete(
    q: str = Query(..., min_length=MIN_QUERY_LENGTH, max_length=MAX_QUERY_LENGTH),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    try:
        suggestions = search_service(db).autocomplete(q, limit=limit)
    except TerminologyError as exc:
        raise http_error(exc) from exc
    return {"query": q.strip(), "suggestions": suggestions}
