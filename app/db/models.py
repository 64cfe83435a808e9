from app.db.base import Base

# Import all models here
from app.models.audit_log import AuditLog
from app.models.code_mapping import CodeMapping
from app.models.icd11 import ICD11Code
from app.models.namaste import NamasteCode

__all__ = ["Base", "AuditLog", "CodeMapping", "ICD11Code", "NamasteCode"]
