# tests/conftest.py
"""
Pytest configuration and shared fixtures for the terminology service tests.

Tests run against an in-memory SQLite database; the app's ``get_db``
dependency is overridden to hand out sessions bound to it.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db.models import Base
from app.db.session import get_db
from app.main import app
from app.models.code_mapping import CodeMapping
from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode
from app.repositories.audit_repository import AuditRepository
from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.routers.deps import get_icd11_client
from app.services.audit_service import AuditService
from app.services.icd11_client import WhoIcdClient
from app.services.mapping_service import MappingService


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def offline_client() -> WhoIcdClient:
    """WHO client with no credentials; upstream lookups stay disabled."""
    client = WhoIcdClient(Settings(icd11_client_id=None, icd11_client_secret=None))
    yield client
    client.close()


@pytest.fixture
def test_client(db: Session, offline_client: WhoIcdClient) -> Generator[TestClient, None, None]:
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_icd11_client] = lambda: offline_client
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def mapping_service(db: Session) -> MappingService:
    return MappingService(
        repository=MappingRepository(db),
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        audit=AuditService(AuditRepository(db)),
    )


def add_namaste(db: Session, code: str, display_name: str, system_type: str = "ayurveda", **fields) -> NamasteCode:
    entry = NamasteCode(
        code=code,
        display_name=display_name,
        system_type=system_type,
        definition=fields.pop("definition", None),
        category=fields.pop("category", None),
        parent_code=fields.pop("parent_code", None),
        level=fields.pop("level", 0),
        synonyms=fields.pop("synonyms", []),
        status=fields.pop("status", "active"),
        version="1.0",
    )
    db.add(entry)
    db.commit()
    return entry


def add_icd11(db: Session, icd_id: str, title: str, module: str = "tm2", **fields) -> ICD11Code:
    entry = ICD11Code(
        icd_id=icd_id,
        title=title,
        module=module,
        code=fields.pop("code", None),
        definition=fields.pop("definition", None),
        parent_id=fields.pop("parent_id", None),
        level=fields.pop("level", 0),
        synonyms=fields.pop("synonyms", []),
        status=fields.pop("status", "active"),
    )
    db.add(entry)
    db.commit()
    return entry


def add_mapping(db: Session, namaste_code: str, icd11_code: str, **fields) -> CodeMapping:
    mapping = CodeMapping(
        namaste_code=namaste_code,
        icd11_code=icd11_code,
        mapping_type=fields.pop("mapping_type", "equivalent"),
        confidence_score=fields.pop("confidence_score", 1.0),
        notes=fields.pop("notes", None),
        verified_by=fields.pop("verified_by", None),
        is_active=fields.pop("is_active", True),
    )
    db.add(mapping)
    db.commit()
    db.refresh(mapping)
    return mapping


@pytest.fixture
def vocabulary(db: Session) -> Session:
    """Small NAMASTE / ICD-11 vocabulary shared by service and route tests."""
    add_namaste(db, "NAM000", "Tridosha Vikara", category="Dosha Disorders")
    add_namaste(db, "NAM001", "Vata Prakopa", definition="Aggravation of Vata dosha", category="Dosha Disorders", parent_code="NAM000", level=1)
    add_namaste(db, "NAM002", "Pitta Prakopa", category="Dosha Disorders", parent_code="NAM000", level=1)
    add_namaste(db, "SID001", "Vatham", system_type="siddha", category="Humoral Disorders")
    add_namaste(db, "UNA001", "Mizaj-e-Har", system_type="unani", category="Temperament")

    add_icd11(db, "1435254666", "Vata Prakopa", code="SM2Y", definition="Vata pattern disorder (TM2)")
    add_icd11(db, "1435254667", "Functional signs", code="SM2Z")
    add_icd11(db, "1435254669", "Vata pattern disorder", code="SM31")
    add_icd11(db, "455013390", "Vata biomedical finding", module="biomedicine", code="MG26")
    return db
