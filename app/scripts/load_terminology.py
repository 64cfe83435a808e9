from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.models.enums import ICD11_MODULES, SYSTEM_TYPES
from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _synonyms(raw: str | None) -> list[str]:
    return [s.strip() for s in (raw or "").split("|") if s.strip()]


def _level(raw: str | None) -> int:
    try:
        return max(0, int(raw or 0))
    except ValueError:
        return 0


def load_namaste(db: Session, path: Path) -> int:
    """Insert NAMASTE rows whose code is not already active. Returns rows inserted."""
    repository = NamasteRepository(db)
    inserted = 0
    with open(path, encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            code = (row.get("code") or "").strip()
            display_name = (row.get("display_name") or "").strip()
            system_type = (row.get("system_type") or "").strip().lower()
            if not code or not display_name:
                continue
            if system_type not in SYSTEM_TYPES:
                logger.warning("Skipping %s: unknown system_type %r", code, system_type)
                continue
            if repository.get_active(code) is not None:
                continue

            repository.add(
                NamasteCode(
                    code=code,
                    display_name=display_name,
                    definition=(row.get("definition") or "").strip() or None,
                    system_type=system_type,
                    category=(row.get("category") or "").strip() or None,
                    synonyms=_synonyms(row.get("synonyms")),
                    parent_code=(row.get("parent_code") or "").strip() or None,
                    level=_level(row.get("level")),
                    status="active",
                )
            )
            # Flush so later rows in the same file see this code as existing
            db.flush()
            inserted += 1

    db.commit()
    return inserted


def load_icd11(db: Session, path: Path) -> int:
    """Insert ICD-11 rows whose icd_id is not already present. Returns rows inserted."""
    repository = ICD11Repository(db)
    inserted = 0
    with open(path, encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            icd_id = (row.get("icd_id") or "").strip()
            title = (row.get("title") or "").strip()
            module = (row.get("module") or "tm2").strip().lower()
            if not icd_id or not title:
                continue
            if module not in ICD11_MODULES:
                logger.warning("Skipping %s: unknown module %r", icd_id, module)
                continue
            if repository.get_by_icd_id(icd_id) is not None:
                continue

            repository.add(
                ICD11Code(
                    icd_id=icd_id,
                    code=(row.get("code") or "").strip() or None,
                    title=title,
                    definition=(row.get("definition") or "").strip() or None,
                    module=module,
                    parent_id=(row.get("parent_id") or "").strip() or None,
                    level=_level(row.get("level")),
                    synonyms=_synonyms(row.get("synonyms")),
                    status="active",
                )
            )
            db.flush()
            inserted += 1

    db.commit()
    return inserted


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Load NAMASTE and ICD-11 vocabularies from CSV")
    parser.add_argument(
        "--namaste",
        default=None,
        help="NAMASTE CSV (code,display_name,definition,system_type,category,synonyms,parent_code,level)",
    )
    parser.add_argument(
        "--icd11",
        default=None,
        help="ICD-11 CSV (icd_id,code,title,definition,module,parent_id,level,synonyms)",
    )
    parser.add_argument(
        "--sample",
        action="store_true",
        help="Load the bundled sample vocabularies from app/data",
    )
    args = parser.parse_args(argv)

    _configure_logging()

    namaste_path = Path(args.namaste) if args.namaste else (DATA_DIR / "namaste_sample.csv" if args.sample else None)
    icd11_path = Path(args.icd11) if args.icd11 else (DATA_DIR / "icd11_sample.csv" if args.sample else None)
    if namaste_path is None and icd11_path is None:
        parser.error("nothing to load: pass --namaste, --icd11 or --sample")

    for path in (namaste_path, icd11_path):
        if path is not None and not path.exists():
            logger.error("CSV file not found: %s", path.as_posix())
            return 1

    db: Session = SessionLocal()
    try:
        if namaste_path is not None:
            count = load_namaste(db, namaste_path)
            logger.info("Loaded NAMASTE codes from %s inserted=%s", namaste_path.as_posix(), count)
        if icd11_path is not None:
            count = load_icd11(db, icd11_path)
            logger.info("Loaded ICD-11 codes from %s inserted=%s", icd11_path.as_posix(), count)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Terminology load failed")
        return 1
    finally:
        db.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
