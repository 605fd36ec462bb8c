"""Pydantic request and response schemas."""

from beacon.schemas.ai import (
    ApplyGroupingRequest,
    CacheFeedbackRequest,
    CachedAnalysisResponse,
    GroupAnalysisRequest,
    GroupSuggestion,
    SuggestGroupingRequest,
)
from beacon.schemas.ai_usage import (
    AIUsageResponse,
    CanMakeRequestResponse,
    CostConfigResponse,
    CostConfigUpdate,
    RecordUsageRequest,
    RecordUsageResponse,
    UsageLimitResponse,
    UsageLimitsRequest,
)
from beacon.schemas.companies import (
    CompanyPayload,
    CompanyResponse,
    CompanyWithMembers,
    M2MCompanyList,
    M2MCompanySummary,
)
from beacon.schemas.error_events import (
    DashboardResponse,
    ErrorEventResponse,
    ErrorListResponse,
    ProjectErrorsResponse,
    StoreEventPayload,
    StoreEventResponse,
)
from beacon.schemas.projects import (
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    ProjectWithStats,
)
from beacon.schemas.users import (
    AdminUserPayload,
    AdminUserResponse,
    M2MUserCompany,
    M2MUserDetail,
    M2MUserSummary,
    TokenRefresh,
    TokenResponse,
    UserLogin,
    UserRegister,
    UserResponse,
    UserUpdate,
    UserWithTokens,
)

__all__ = [
    "AIUsageResponse",
    "AdminUserPayload",
    "AdminUserResponse",
    "ApplyGroupingRequest",
    "CacheFeedbackRequest",
    "CachedAnalysisResponse",
    "CanMakeRequestResponse",
    "CompanyPayload",
    "CompanyResponse",
    "CompanyWithMembers",
    "CostConfigResponse",
    "CostConfigUpdate",
    "DashboardResponse",
    "ErrorEventResponse",
    "ErrorListResponse",
    "GroupAnalysisRequest",
    "GroupSuggestion",
    "M2MCompanyList",
    "M2MCompanySummary",
    "M2MUserCompany",
    "M2MUserDetail",
    "M2MUserSummary",
    "ProjectCreate",
    "ProjectErrorsResponse",
    "ProjectResponse",
    "ProjectUpdate",
    "ProjectWithStats",
    "RecordUsageRequest",
    "RecordUsageResponse",
    "StoreEventPayload",
    "StoreEventResponse",
    "SuggestGroupingRequest",
    "TokenRefresh",
    "TokenResponse",
    "UsageLimitResponse",
    "UsageLimitsRequest",
    "UserLogin",
    "UserRegister",
    "UserResponse",
    "UserUpdate",
    "UserWithTokens",
]
