"""Typed outcomes returned by every core operation.

Expected failures (bad input, a room taken by someone else, an illegal status
change) are values, not exceptions::

    result = await engine.find_available_rooms(stay)
    if isinstance(result, Failure):
        ...
    rooms = result.value

Inside a unit of work a failure is raised as :class:`DomainError` so the
transaction rolls back; the public operation catches it and returns the
wrapped :class:`Failure`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    ROOM_UNAVAILABLE = "ROOM_UNAVAILABLE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    EDIT_NOT_ALLOWED = "EDIT_NOT_ALLOWED"
    STALE_VERSION = "STALE_VERSION"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    code: ErrorCode
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    def raise_(self) -> None:
        """Abort the surrounding unit of work with this failure."""
        raise DomainError(self)


Result = Union[Ok[T], Failure]


def invalid_input(message: str, **context: Any) -> Failure:
    return Failure(ErrorCode.INVALID_INPUT, message, context)


def not_found(message: str, **context: Any) -> Failure:
    return Failure(ErrorCode.NOT_FOUND, message, context)


def room_unavailable(message: str, **context: Any) -> Failure:
    return Failure(ErrorCode.ROOM_UNAVAILABLE, message, context)


def invalid_transition(message: str, **context: Any) -> Failure:
    return Failure(ErrorCode.INVALID_TRANSITION, message, context)


def edit_not_allowed(message: str, **context: Any) -> Failure:
    return Failure(ErrorCode.EDIT_NOT_ALLOWED, message, context)


def stale_version(message: str = "Reservation was modified concurrently; refetch and retry.", **context: Any) -> Failure:
    return Failure(ErrorCode.STALE_VERSION, message, context)


PERSISTENCE_FAILURE = Failure(
    ErrorCode.PERSISTENCE_FAILURE,
    "The reservation service is temporarily unavailable. Please try again.",
)


class DomainError(Exception):
    """Carries an expected failure out of a unit of work so it rolls back."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(failure.message)
        self.failure = failure


class PersistenceError(Exception):
    """Opaque wrapper around any storage fault raised by a repository."""


class ConcurrentModification(PersistenceError):
    """The store detected a lost update on a versioned row."""


class HoldConflict(PersistenceError):
    """The store rejected an overlapping active room hold."""
