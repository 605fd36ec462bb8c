"""Repositories wrapping SQLAlchemy sessions."""

from beacon.repositories.companies import CompanyRepository
from beacon.repositories.error_events import ErrorEventRepository
from beacon.repositories.error_groups import ErrorGroupRepository
from beacon.repositories.projects import ProjectRepository
from beacon.repositories.users import UserRepository

__all__ = [
    "CompanyRepository",
    "ErrorEventRepository",
    "ErrorGroupRepository",
    "ProjectRepository",
    "UserRepository",
]
