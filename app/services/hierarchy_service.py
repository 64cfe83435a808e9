"""NAMASTE code hierarchy over ``parent_code``.

The stored tree has no structural guard against cycles, so every walk is
iterative with a visited set; a detected cycle is logged and the walk stops.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from app.models.namaste import NamasteCode
from app.repositories.terminology_repository import NamasteRepository
from app.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class CodeHierarchy:
    current: NamasteCode
    parent: Optional[NamasteCode] = None
    children: list[NamasteCode] = field(default_factory=list)
    siblings: list[NamasteCode] = field(default_factory=list)
    ancestors: list[NamasteCode] = field(default_factory=list)
    descendants: list[NamasteCode] = field(default_factory=list)


class HierarchyService:
    def __init__(self, repository: NamasteRepository) -> None:
        self.repository = repository

    def hierarchy(self, code: str) -> CodeHierarchy:
        current = self.repository.get_active(code)
        if current is None:
            raise NotFoundError("namaste", code)

        result = CodeHierarchy(current=current)
        if current.parent_code:
            result.parent = self.repository.get_active(current.parent_code)
            result.siblings = self.repository.siblings(current.code, current.parent_code)

        result.children = self.repository.children(current.code)
        result.ancestors = self.ancestors(current)
        result.descendants = self.descendants(current.code)
        return result

    def ancestors(self, entry: NamasteCode) -> list[NamasteCode]:
        """Ancestors ordered root first."""
        chain: list[NamasteCode] = []
        visited = {entry.code}
        parent_code = entry.parent_code

        while parent_code:
            if parent_code in visited:
                logger.warning("parent_code cycle detected at %s while walking ancestors of %s", parent_code, entry.code)
                break
            visited.add(parent_code)

            parent = self.repository.get_active(parent_code)
            if parent is None:
                break
            chain.append(parent)
            parent_code = parent.parent_code

        chain.reverse()
        return chain

    def descendants(self, code: str) -> list[NamasteCode]:
        """Descendants in breadth-first order."""
        out: list[NamasteCode] = []
        visited = {code}
        queue = deque([code])

        while queue:
            current = queue.popleft()
            for child in self.repository.children(current):
                if child.code in visited:
                    logger.warning("parent_code cycle detected at %s while walking descendants of %s", child.code, code)
                    continue
                visited.add(child.code)
                out.append(child)
                queue.append(child.code)

        return out

    def ensure_no_cycle(self, code: str, parent_code: str | None) -> None:
        """Reject a parent assignment that would make ``code`` its own ancestor."""
        if not parent_code:
            return
        if parent_code == code:
            raise ValidationError(f"NAMASTE code {code} cannot be its own parent")

        visited = {code}
        current = parent_code
        while current:
            if current == code:
                raise ValidationError(f"parent_code {parent_code} would create a cycle through {code}")
            if current in visited:
                # Pre-existing cycle above this code; not introduced by this assignment
                return
            visited.add(current)
            parent = self.repository.get_active(current)
            if parent is None:
                return
            current = parent.parent_code
