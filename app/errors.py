from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class RosterError(Exception):
    """Base class for errors raised by the roster core."""

    retriable = False


class ValidationError(RosterError):
    """Raised when input is missing or malformed; nothing has been written."""


class NotFoundError(RosterError):
    """Raised when an officer, shift type or record does not exist."""


class ConflictError(RosterError):
    """Raised when a write collides with an existing record."""

    def __init__(self, message: str, existing: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.existing = existing or {}


class InsufficientBalanceError(RosterError):
    """Raised when a PTO deduction would drive a balance negative."""

    def __init__(self, message: str, *, available: float, required: float) -> None:
        super().__init__(message)
        self.available = available
        self.required = required


class TransientStoreError(RosterError):
    """Raised when the store failed in a way that retrying may fix."""

    retriable = True

    def __init__(self, message: str = "The schedule store is temporarily unavailable. Please retry.") -> None:
        super().__init__(message)
        self.saga_log: list = []


@dataclass
class IntegrityWarning:
    """Non-fatal data problem found while reading the schedule."""

    kind: str
    message: str
    officer_id: Optional[int] = None
    date: Optional[datetime.date] = None
    shift_type_id: Optional[int] = None
    record_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "severity": "warning",
            "message": self.message,
            "officer_id": self.officer_id,
            "date": self.date.isoformat() if self.date else None,
            "shift_type_id": self.shift_type_id,
            "record_id": self.record_id,
            **self.details,
        }
