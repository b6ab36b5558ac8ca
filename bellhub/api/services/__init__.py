"""Services layer - Business logic

Services are initialized with their dependencies and accessed through dependency injection.
"""

from .auth_service import AuthService, Identity
from .query_service import QueryService
from .school_service import SchoolService
from .settings_service import SettingsService

__all__ = [
    "AuthService",
    "Identity",
    "QueryService",
    "SchoolService",
    "SettingsService",
]
