"""Error taxonomy for the dispatch engine."""

from __future__ import annotations


class DispatchError(Exception):
    """Base class for errors surfaced to callers of the engine."""


class NotFoundError(DispatchError):
    """Unknown icom, query or sound."""


class InvalidRequestError(DispatchError):
    """Malformed payload, missing field or out-of-range value."""


class ConflictError(DispatchError):
    """A query id that is already known."""


class PlaybackFailure(DispatchError):
    """The playback backend could not render a sound."""
