"""
Domain exceptions with machine-readable error codes.

Every failure raised by the domain layer carries one of three codes so
that outer layers (HTTP, CLI, jobs) can map it without parsing messages:

- REQUIRED_FIELD: a mandatory value is missing
- INVALID_VALUE: a value is present but outside its domain
- BUSINESS_RULE_VIOLATION: the value is well-formed but the operation
  is not permitted in the current state
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Machine-readable code attached to every domain error."""
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_VALUE = "INVALID_VALUE"
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"


class DomainError(Exception):
    """Base class for all invoicing domain errors."""

    code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION

    def __init__(self, message: str, field: str | None = None) -> None:
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form for transport layers."""
        return {"code": self.code.value, "message": self.message, "field": self.field}


class RequiredFieldError(DomainError):
    """A mandatory value was not provided."""

    code = ErrorCode.REQUIRED_FIELD

    def __init__(self, field: str) -> None:
        super().__init__(f"{field} is required", field=field)


class InvalidValueError(DomainError):
    """A value was provided but is outside the allowed domain."""

    code = ErrorCode.INVALID_VALUE

    def __init__(self, field: str, value: Any) -> None:
        self.value = value
        super().__init__(f"Invalid value for {field}: {value}", field=field)


class BusinessRuleViolation(DomainError):
    """The operation is not permitted in the current state."""

    code = ErrorCode.BUSINESS_RULE_VIOLATION
