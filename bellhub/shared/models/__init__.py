"""Shared data models for the bellhub service."""

from .icom import Account, Icom, ServiceSettings, Sound
from .school import (
    BellLesson,
    BellSettings,
    Schedule,
    ScheduleAssignment,
    ScheduleLesson,
    ScheduleOverride,
)

__all__ = [
    "Account",
    "BellLesson",
    "BellSettings",
    "Icom",
    "Schedule",
    "ScheduleAssignment",
    "ScheduleLesson",
    "ScheduleOverride",
    "ServiceSettings",
    "Sound",
]
