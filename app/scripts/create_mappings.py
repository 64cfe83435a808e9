"""Mapping maintenance CLI.

Examples::

    python -m app.scripts.create_mappings sample
    python -m app.scripts.create_mappings auto --threshold 0.8
    python -m app.scripts.create_mappings csv mappings.csv
    python -m app.scripts.create_mappings validate
    python -m app.scripts.create_mappings single NAM001 1435254666 --type equivalent --confidence 0.95
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.repositories.audit_repository import AuditRepository
from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services.audit_service import AuditService
from app.services.errors import TerminologyError
from app.services.mapping_service import BatchStats, MappingService, OnDuplicate
from app.services.suggestion_service import MappingSuggestionService
from app.services.validation_service import MappingValidator

logger = logging.getLogger(__name__)

CLI_ACTOR = "cli"

SAMPLE_MAPPINGS = [
    {
        "namaste_code": "NAM001",
        "icd11_code": "1435254666",
        "mapping_type": "equivalent",
        "confidence_score": 0.95,
        "notes": "Direct mapping for Vata constitutional pattern",
    },
    {
        "namaste_code": "NAM002",
        "icd11_code": "1435254666",
        "mapping_type": "equivalent",
        "confidence_score": 0.95,
        "notes": "Direct mapping for Pitta constitutional pattern",
    },
    {
        "namaste_code": "NAM003",
        "icd11_code": "1435254666",
        "mapping_type": "equivalent",
        "confidence_score": 0.95,
        "notes": "Direct mapping for Kapha constitutional pattern",
    },
    {
        "namaste_code": "SID001",
        "icd11_code": "1435254667",
        "mapping_type": "related",
        "confidence_score": 0.8,
        "notes": "Siddha Vatham related to functional signs",
    },
    {
        "namaste_code": "UNA001",
        "icd11_code": "1435254668",
        "mapping_type": "related",
        "confidence_score": 0.85,
        "notes": "Unani Mizaj-e-Har related to therapeutic procedures",
    },
]


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _mapping_service(db: Session) -> MappingService:
    return MappingService(
        repository=MappingRepository(db),
        namaste_repository=NamasteRepository(db),
        icd11_repository=ICD11Repository(db),
        audit=AuditService(AuditRepository(db)),
    )


def _log_stats(stats: BatchStats) -> None:
    logger.info(
        "Processed=%s created=%s skipped=%s errors=%s",
        stats.processed,
        stats.created,
        stats.skipped,
        stats.errors,
    )
    for detail in stats.error_details:
        logger.warning("Row error: %s", detail)


def run(args: argparse.Namespace, db: Session) -> int:
    service = _mapping_service(db)

    if args.command == "sample":
        _log_stats(service.import_mappings(SAMPLE_MAPPINGS, actor=CLI_ACTOR))
        return 0

    if args.command == "auto":
        suggestions = MappingSuggestionService(
            namaste_repository=service.namaste_repository,
            icd11_repository=service.icd11_repository,
            mapping_service=service,
        )
        _log_stats(suggestions.auto_map(args.threshold, actor=CLI_ACTOR))
        return 0

    if args.command == "csv":
        path = Path(args.file)
        if not path.exists():
            logger.error("CSV file not found: %s", path.as_posix())
            return 1
        text = path.read_text(encoding="utf-8")
        _log_stats(service.import_mappings_csv(text, actor=CLI_ACTOR))
        return 0

    if args.command == "validate":
        report = MappingValidator(repository=service.repository).validate_all()
        logger.info("Valid mappings=%s invalid mappings=%s", report.valid_count, report.invalid_count)
        for issue in report.issues:
            logger.warning("Mapping %s [%s]: %s", issue.mapping_id, issue.kind, issue.message)
        return 0

    if args.command == "single":
        result = service.create_mapping(
            args.namaste_code,
            args.icd11_code,
            args.type,
            args.confidence,
            args.notes,
            on_duplicate=OnDuplicate.SKIP,
            actor=CLI_ACTOR,
        )
        if result.created:
            logger.info("Created mapping id=%s", result.mapping.id)
        else:
            logger.info("Mapping already exists id=%s", result.mapping.id)
        return 0

    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create and validate NAMASTE to ICD-11 mappings")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sample", help="Create the sample mappings")

    auto = sub.add_parser("auto", help="Create mappings by display-name similarity")
    auto.add_argument("--threshold", type=float, default=None, help="Minimum confidence (default 0.7)")

    csv_cmd = sub.add_parser("csv", help="Import mappings from a CSV file")
    csv_cmd.add_argument("file", help="CSV with namaste_code,icd11_code,mapping_type,confidence_score,notes")

    sub.add_parser("validate", help="Validate existing mappings")

    single = sub.add_parser("single", help="Create one mapping")
    single.add_argument("namaste_code")
    single.add_argument("icd11_code")
    single.add_argument("--type", default="equivalent", help="equivalent, broader, narrower or related")
    single.add_argument("--confidence", type=float, default=None)
    single.add_argument("--notes", default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    _configure_logging()
    args = build_parser().parse_args(argv)

    db: Session = SessionLocal()
    try:
        return run(args, db)
    except TerminologyError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
