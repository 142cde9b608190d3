"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
This separation provides:
- Single source of truth for database operations
- Easier testing (repositories can be mocked)
- Reusable queries across services and maintenance scripts
"""

from repositories.audit_log_repository import AuditLogRepository
from repositories.utils import log_slow_query
from repositories.visibility_repository import VisibilityRepository

__all__ = [
    "AuditLogRepository",
    "VisibilityRepository",
    "log_slow_query",
]
