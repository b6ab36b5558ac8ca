"""Shared repository layer for the bellhub service."""

from .icom import IcomRepository, SoundRepository
from .school import SchoolRepository, TimetableRepository
from .settings import AccountRepository, ServiceSettingsRepository

__all__ = [
    "AccountRepository",
    "IcomRepository",
    "SchoolRepository",
    "ServiceSettingsRepository",
    "SoundRepository",
    "TimetableRepository",
]
