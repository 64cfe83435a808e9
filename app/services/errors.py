"""Error taxonomy for the terminology core.

Services raise these; routers translate them into HTTP (or FHIR
OperationOutcome) responses. Batch operations catch them per item.
"""

from __future__ import annotations


class TerminologyError(Exception):
    pass


class NotFoundError(TerminologyError, LookupError):
    def __init__(self, resource: str, key: object) -> None:
        self.resource = resource
        self.key = key
        super().__init__(f"{resource} '{key}' not found or inactive")


class ConflictError(TerminologyError):
    pass


class ValidationError(TerminologyError, ValueError):
    pass


class UnsupportedSystemError(ValidationError):
    def __init__(self, system: str) -> None:
        self.system = system
        super().__init__(f"Unsupported code system: {system}")


class UpstreamError(TerminologyError):
    pass
