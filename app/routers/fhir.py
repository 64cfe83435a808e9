"""FHIR R4 terminology endpoints.

Responses use ``application/fhir+json``; failures are returned as
``OperationOutcome`` resources rather than the default error body.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.fhir_config import FHIR_CONTENT_TYPE
from app.db.session import get_db
from app.routers.deps import fhir_service
from app.schemas.fhir import LookupRequest, TranslateRequest
from app.services.errors import NotFoundError, TerminologyError, UpstreamError, ValidationError
from app.services.fhir_service import lookup_parameters, operation_outcome, translate_parameters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fhir", tags=["fhir"])


def _fhir(body: dict[str, Any], status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(content=body, status_code=status_code, media_type=FHIR_CONTENT_TYPE)


def _outcome(exc: TerminologyError) -> JSONResponse:
    if isinstance(exc, NotFoundError):
        return _fhir(operation_outcome("error", "not-found", str(exc)), status.HTTP_404_NOT_FOUND)
    if isinstance(exc, ValidationError):
        return _fhir(operation_outcome("error", "invalid", str(exc)), status.HTTP_422_UNPROCESSABLE_ENTITY)
    if isinstance(exc, UpstreamError):
        return _fhir(operation_outcome("error", "transient", str(exc)), status.HTTP_502_BAD_GATEWAY)
    return _fhir(operation_outcome("error", "conflict", str(exc)), status.HTTP_409_CONFLICT)


def _database_outcome(db: Session, message: str) -> JSONResponse:
    db.rollback()
    logger.exception(message)
    return _fhir(operation_outcome("error", "exception", message), status.HTTP_500_INTERNAL_SERVER_ERROR)


@router.get("/metadata")
def capability_statement(db: Session = Depends(get_db)) -> JSONResponse:
    return _fhir(fhir_service(db).capability_statement())


@router.get("/CodeSystem")
def list_code_systems(
    url: str | None = Query(default=None),
    name: str | None = Query(default=None),
    count: int = Query(default=20, alias="_count", ge=0, le=100),
    offset: int = Query(default=0, alias="_offset", ge=0),
    db: Session = Depends(get_db),
) -> JSONResponse:
    try:
        return _fhir(fhir_service(db).list_code_systems(url=url, name=name, count=count, offset=offset))
    except SQLAlchemyError:
        return _database_outcome(db, "failed to list CodeSystems")


@router.post("/CodeSystem/$lookup")
def lookup(payload: LookupRequest, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        result = fhir_service(db).lookup(payload.system, payload.code)
    except TerminologyError as exc:
        return _outcome(exc)
    except SQLAlchemyError:
        return _database_outcome(db, "failed to look up code")
    return _fhir(lookup_parameters(result))


@router.get("/CodeSystem/{cs_id}")
def get_code_system(cs_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        return _fhir(fhir_service(db).code_system(cs_id))
    except TerminologyError as exc:
        return _outcome(exc)
    except SQLAlchemyError:
        return _database_outcome(db, "failed to build CodeSystem")


@router.get("/ConceptMap")
def list_concept_maps(
    url: str | None = Query(default=None),
    count: int = Query(default=20, alias="_count", ge=0, le=100),
    offset: int = Query(default=0, alias="_offset", ge=0),
    db: Session = Depends(get_db),
) -> JSONResponse:
    try:
        return _fhir(fhir_service(db).list_concept_maps(url=url, count=count, offset=offset))
    except SQLAlchemyError:
        return _database_outcome(db, "failed to list ConceptMaps")


@router.post("/ConceptMap/$translate")
def translate(payload: TranslateRequest, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        matches = fhir_service(db).translate(payload.system, payload.code, payload.target)
    except TerminologyError as exc:
        return _outcome(exc)
    except SQLAlchemyError:
        return _database_outcome(db, "failed to translate code")
    logger.info("translate system=%s code=%s matches=%s", payload.system, payload.code, len(matches))
    return _fhir(translate_parameters(matches))


@router.get("/ConceptMap/{map_id}")
def get_concept_map(map_id: str, db: Session = Depends(get_db)) -> JSONResponse:
    try:
        return _fhir(fhir_service(db).concept_map_by_id(map_id))
    except TerminologyError as exc:
        return _outcome(exc)
    except SQLAlchemyError:
        return _database_outcome(db, "failed to build ConceptMap")


@router.get("/ValueSet")
def list_value_sets(
    url: str | None = Query(default=None),
    name: str | None = Query(default=None),
    count: int = Query(default=20, alias="_count", ge=0, le=100),
    offset: int = Query(default=0, alias="_offset", ge=0),
    db: Session = Depends(get_db),
) -> JSONResponse:
    return _fhir(fhir_service(db).list_value_sets(url=url, name=name, count=count, offset=offset))
