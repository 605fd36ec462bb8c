"""SQLAlchemy ORM Models."""

from beacon.models.ai_cache import AIAnalysisCache, AnalysisType
from beacon.models.ai_usage import (
    AICostConfig,
    AIOperation,
    AIUsage,
    AIUsageLimit,
    LimitPeriod,
)
from beacon.models.base import Base
from beacon.models.companies import Company
from beacon.models.documents import AIDocument
from beacon.models.error_events import ErrorEvent
from beacon.models.error_groups import ErrorGroup, ErrorGroupStatus
from beacon.models.projects import Project, ProjectStatus
from beacon.models.users import User, UserCompany, UserRole

__all__ = [
    "AIAnalysisCache",
    "AICostConfig",
    "AIDocument",
    "AIOperation",
    "AIUsage",
    "AIUsageLimit",
    "AnalysisType",
    "Base",
    "Company",
    "ErrorEvent",
    "ErrorGroup",
    "ErrorGroupStatus",
    "LimitPeriod",
    "Project",
    "ProjectStatus",
    "User",
    "UserCompany",
    "UserRole",
]
