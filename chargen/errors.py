"""Exception hierarchy shared by the service, repository and presenters."""

from __future__ import annotations

__all__ = [
    "CharacterError",
    "NotFoundError",
    "PersistenceError",
    "RuleViolation",
    "ValidationError",
]


class CharacterError(RuntimeError):
    """Base class for errors surfaced to the caller of a service operation."""


class ValidationError(CharacterError, ValueError):
    """Raised when caller input is malformed or out of range."""


class NotFoundError(CharacterError, LookupError):
    """Raised when a character or catalog entry does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' not found")
        self.kind = kind
        self.name = name


class RuleViolation(CharacterError):
    """Raised when an operation would break a ruleset constraint."""


class PersistenceError(CharacterError):
    """Raised when the backing store cannot be read or written."""
