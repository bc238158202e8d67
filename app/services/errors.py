"""Error taxonomy shared by the console services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class FieldViolation:
    field: str
    message: str

    def dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class AdminError(Exception):
    """Base class for failures surfaced to console users."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(AdminError):
    """Unknown table or field reference; not recoverable by the user."""


class RecordValidationError(AdminError):
    def __init__(self, violations: Sequence[FieldViolation], message: str | None = None) -> None:
        self.violations = list(violations)
        if message is None:
            message = "; ".join(item.message for item in self.violations) or "Invalid record"
        super().__init__(message)


class RemoteOperationError(AdminError):
    """The record store rejected or failed a request."""


class DependencyConflictError(AdminError):
    def __init__(self, message: str, *, table_name: str, count: int) -> None:
        super().__init__(message)
        self.table_name = table_name
        self.count = count


class RecordNotFoundError(AdminError):
    pass


class OperationNotPermittedError(AdminError):
    pass
