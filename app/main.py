"""NAMASTE / ICD-11 terminology service.

Stores the NAMASTE traditional-medicine vocabulary and a subset of ICD-11,
maintains scored mappings between them, and exposes CRUD, search and a FHIR R4
terminology surface ($translate, $lookup, CodeSystem, ConceptMap).
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.fhir_config import FHIR_CONTENT_TYPE
from app.core.logging import configure_logging
from app.routers import admin, fhir, health, icd11, mappings, namaste, search
from app.services.fhir_service import operation_outcome


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    if request.url.path.startswith("/fhir"):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content=operation_outcome("error", "invalid", details),
            media_type=FHIR_CONTENT_TYPE,
        )
    return await request_validation_exception_handler(request, exc)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="NAMASTE ICD-11 Terminology Service",
        version="1.0.0",
        description="NAMASTE to ICD-11 terminology mapping with a FHIR R4 terminology surface.",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    app.include_router(health.router)
    app.include_router(namaste.router)
    app.include_router(icd11.router)
    app.include_router(mappings.router)
    app.include_router(search.router)
    app.include_router(admin.router)
    app.include_router(fhir.router)

    return app


app = create_app()
