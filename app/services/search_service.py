from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.repositories.mapping_repository import MappingRepository
from app.repositories.terminology_repository import ICD11Repository, NamasteRepository
from app.services import similarity
from app.services.errors import ValidationError
from app.services.search_normalization import collapse_text, query_tokens

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 200


@dataclass
class RankedSearchResult:
    system: str
    code: str
    display: str
    definition: Optional[str]
    relevance_score: float
    system_type: Optional[str] = None
    category: Optional[str] = None
    module: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        out = {
            "system": self.system,
            "code": self.code,
            "display": self.display,
            "definition": self.definition,
            "relevance_score": self.relevance_score,
        }
        if self.system == "namaste":
            out["system_type"] = self.system_type
            out["category"] = self.category
        else:
            out["module"] = self.module
        return out


def validate_query(q: str | None) -> str:
    query = (q or "").strip()
    if not MIN_QUERY_LENGTH <= len(query) <= MAX_QUERY_LENGTH:
        raise ValidationError(
            f"Search query must be between {MIN_QUERY_LENGTH} and {MAX_QUERY_LENGTH} characters"
        )
    return query


def _rank(results: list[RankedSearchResult]) -> list[RankedSearchResult]:
    return sorted(results, key=lambda r: (-r.relevance_score, r.display.lower(), r.code))


class TerminologySearchService:
    def __init__(
        self,
        namaste_repository: NamasteRepository,
        icd11_repository: ICD11Repository,
        mapping_repository: Optional[MappingRepository] = None,
    ) -> None:
        self.namaste_repository = namaste_repository
        self.icd11_repository = icd11_repository
        self.mapping_repository = mapping_repository

    def search_namaste(
        self,
        q: str,
        *,
        system_type: str | None = None,
        category: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        query = validate_query(q)
        page = self.namaste_repository.search(
            query_tokens(query),
            system_type=system_type,
            category=category,
            limit=limit,
            offset=offset,
        )
        # Relevance ranking applies within the fetched page
        results = _rank(
            [
                RankedSearchResult(
                    system="namaste",
                    code=entry.code,
                    display=entry.display_name,
                    definition=entry.definition,
                    relevance_score=similarity.score(query, entry.display_name),
                    system_type=entry.system_type,
                    category=entry.category,
                )
                for entry in page.items
            ]
        )
        return {"query": query, "total": page.total, "results": results}

    def search_icd11(
        self,
        q: str,
        *,
        module: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        query = validate_query(q)
        page = self.icd11_repository.search(query_tokens(query), module=module, limit=limit, offset=offset)
        results = _rank(
            [
                RankedSearchResult(
                    system="icd11",
                    code=entry.icd_id,
                    display=entry.title,
                    definition=entry.definition,
                    relevance_score=similarity.score(query, entry.title),
                    module=entry.module,
                )
                for entry in page.items
            ]
        )
        return {"query": query, "total": page.total, "results": results}

    def search_all(self, q: str, *, limit: int = 20, offset: int = 0) -> dict[str, Any]:
        """Both vocabularies, half the limit each, with the mappings that link the hits."""
        per_system = max(1, limit // 2)
        namaste = self.search_namaste(q, limit=per_system, offset=offset)
        icd11 = self.search_icd11(q, limit=per_system, offset=offset)

        mappings: dict[str, list[dict[str, Any]]] = {"namaste_to_icd11": [], "icd11_to_namaste": []}
        if self.mapping_repository is not None:
            namaste_codes = [r.code for r in namaste["results"]]
            for d in self.mapping_repository.active_for_sources(namaste_codes):
                if d.target is None:
                    continue
                mappings["namaste_to_icd11"].append(
                    {
                        "source_code": d.mapping.namaste_code,
                        "target_code": d.mapping.icd11_code,
                        "target_display": d.target.title,
                        "mapping_type": d.mapping.mapping_type,
                        "confidence_score": float(d.mapping.confidence_score),
                    }
                )
            icd_ids = [r.code for r in icd11["results"]]
            for d in self.mapping_repository.active_for_targets(icd_ids):
                if d.source is None:
                    continue
                mappings["icd11_to_namaste"].append(
                    {
                        "source_code": d.mapping.icd11_code,
                        "target_code": d.mapping.namaste_code,
                        "target_display": d.source.display_name,
                        "target_system_type": d.source.system_type,
                        "mapping_type": d.mapping.mapping_type,
                        "confidence_score": float(d.mapping.confidence_score),
                    }
                )

        return {
            "query": namaste["query"],
            "total": len(namaste["results"]) + len(icd11["results"]),
            "results": {"namaste": namaste["results"], "icd11": icd11["results"]},
            "mappings": mappings,
        }

    def autocomplete(self, q: str, *, limit: int = 10) -> list[dict[str, Any]]:
        query = validate_query(q)
        prefix = collapse_text(query)

        suggestions: list[dict[str, Any]] = []
        for entry in self.namaste_repository.prefix_matches(prefix, limit=limit):
            suggestions.append(
                {"system": "namaste", "code": entry.code, "display": entry.display_name, "system_type": entry.system_type}
            )
        for entry in self.icd11_repository.prefix_matches(prefix, limit=limit):
            suggestions.append(
                {"system": "icd11", "code": entry.icd_id, "display": entry.title, "module": entry.module}
            )

        suggestions.sort(key=lambda s: (s["display"].lower(), s["system"]))
        logger.debug("autocomplete q=%s suggestions=%s", query, len(suggestions))
        return suggestions[:limit]
