"""Data models for icoms, sounds, accounts and service settings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Icom:
    """Addressable playback endpoint."""

    id: str
    name: str
    paused: bool = False
    created_at: datetime | None = None


@dataclass
class Sound:
    """Uploaded sound asset metadata."""

    name: str
    size: int = 0
    mime: str = "application/octet-stream"
    duration: float | None = None  # seconds, None when it could not be measured
    created_at: datetime | None = None


@dataclass
class Account:
    """Operator account record."""

    id: int
    name: str
    password: str
    deleted: bool = False
    created_at: datetime | None = None


@dataclass
class ServiceSettings:
    """Singleton settings row."""

    volume: int = 65
    updated_at: datetime | None = None
