"""API Routers package

Routers are organized by feature domain.
"""

from . import (
    auth_router,
    bells_router,
    icoms_router,
    queries_router,
    school_router,
    settings_router,
    sounds_router,
)

__all__ = [
    "auth_router",
    "bells_router",
    "icoms_router",
    "queries_router",
    "school_router",
    "settings_router",
    "sounds_router",
]
