"""Shared router dependencies: acting user, service wiring and error translation."""

from __future__ import annotations

from functools import lru_cache

from fastapi import Header, HTTPException, status
from sqlalchemy.orm import Session

from app.repositories.audit_repository import AuditRepository
from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services.audit_service import AuditService
from app.services.errors import ConflictError, NotFoundError, TerminologyError, UpstreamError, ValidationError
from app.services.fhir_service import FhirService
from app.services.icd11_client import WhoIcdClient
from app.services.mapping_service import MappingService
from app.services.search_service import TerminologySearchService
from app.services.suggestion_service import MappingSuggestionService
from app.services.terminology_service import ICD11Service, NamasteService
from app.services.validation_service import MappingValidator


def actor_id(x_actor_id: str | None = Header(default=None, max_length=128)) -> str | None:
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None


@lru_cache(maxsize=1)
def get_icd11_client() -> WhoIcdClient:
    return WhoIcdClient()


def audit_service(db: Session) -> AuditService:
    return AuditService(repository=AuditRepository(db))


def mapping_service(db: Session) -> MappingService:
    return MappingService(
        repository=MappingRepository(db),
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        audit=audit_service(db),
    )


def suggestion_service(db: Session) -> MappingSuggestionService:
    return MappingSuggestionService(
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        mapping_service=mapping_service(db),
    )


def mapping_validator(db: Session) -> MappingValidator:
    return MappingValidator(repository=MappingRepository(db))


def namaste_service(db: Session) -> NamasteService:
    return NamasteService(
        repository=NamasteRepository(db),
        mapping_repository=MappingRepository(db),
        audit=audit_service(db),
    )


def icd11_service(db: Session, client: WhoIcdClient | None = None) -> ICD11Service:
    return ICD11Service(repository=ICD11Repository(db), audit=audit_service(db), client=client)


def search_service(db: Session) -> TerminologySearchService:
    return TerminologySearchService(
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        mapping_repository=MappingRepository(db),
    )


def fhir_service(db: Session) -> FhirService:
    return FhirService(
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        mapping_repository=MappingRepository(db),
    )


def http_error(exc: TerminologyError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    if isinstance(exc, UpstreamError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
