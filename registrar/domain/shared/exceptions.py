"""
Domain Exceptions

Custom exceptions for enrollment and schedule-change errors, discriminated by
``ErrorType`` so callers can map them to responses without isinstance chains.
"""

from enum import Enum
from uuid import UUID


class ErrorType(str, Enum):
    """Error type enumeration for discriminated unions."""

    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_CONFLICT = "resource_conflict"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"


class DomainError(Exception):
    """Base class for all domain errors with type discrimination."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.details = details or {}

    def to_dict(self) -> dict[str, str | dict[str, str | int | bool | None]]:
        """Convert error to dictionary for API responses."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainError):
    """Raised when a request is malformed; never retried."""

    def __init__(
        self,
        field_name: str,
        value: str | int | float | bool | None,
        message: str,
        error_code: str | None = None,
        details: dict[str, str | int | bool | None] | None = None,
    ) -> None:
        self.field_name = field_name
        self.value = value
        self.error_code = error_code or "VALIDATION_ERROR"

        full_message = f"Validation failed for field '{field_name}': {message}"
        details = details or {}
        details.update(
            {
                "field": field_name,
                "value": str(value) if value is not None else None,
                "error_code": self.error_code,
            }
        )

        super().__init__(full_message, ErrorType.VALIDATION, details)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "type": self.error_type.value,
            "field": self.field_name,
            "value": str(self.value) if self.value is not None else None,
            "message": self.message,
            "error_code": self.error_code,
        }


class MultipleValidationError(ValidationError):
    """Raised when multiple validation errors occur."""

    def __init__(self, validation_errors: list[ValidationError]) -> None:
        self.validation_errors = validation_errors
        messages = [error.message for error in validation_errors]
        combined_message = "Multiple validation errors: " + "; ".join(messages)

        details: dict[str, str | int | bool | None] = {
            "error_count": len(validation_errors),
            "errors": str([error.to_dict() for error in validation_errors]),
        }

        super().__init__(
            "multiple_fields",
            None,
            combined_message,
            "MULTIPLE_VALIDATION_ERRORS",
            details,
        )

    @property
    def error_count(self) -> int:
        return len(self.validation_errors)


class BusinessRuleError(DomainError):
    """Raised when business rules are violated."""

    def __init__(
        self, message: str, details: dict[str, str | int | bool | None] | None = None
    ) -> None:
        super().__init__(message, ErrorType.BUSINESS_RULE, details)


class InvalidStatusTransitionError(BusinessRuleError):
    """Raised when a request is moved between statuses the lifecycle forbids."""

    def __init__(
        self, entity_type: str, entity_id: UUID, current_status: str, attempted_status: str
    ) -> None:
        details = {
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "current_status": current_status,
            "attempted_status": attempted_status,
        }
        super().__init__(
            f"Cannot change {entity_type} {entity_id} from {current_status} to {attempted_status}",
            details,
        )
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted_status = attempted_status


class CapacityReductionError(BusinessRuleError):
    """Raised when a section capacity would drop below its enrolled count."""

    def __init__(self, section_id: UUID, enrolled: int, requested_capacity: int) -> None:
        super().__init__(
            f"Section {section_id} has {enrolled} enrolled; capacity cannot be {requested_capacity}",
            {
                "section_id": str(section_id),
                "enrolled": enrolled,
                "requested_capacity": requested_capacity,
            },
        )
        self.section_id = section_id


class ResourceConflictError(DomainError):
    """Raised when seat or request ownership conflicts occur."""

    def __init__(
        self, message: str, details: dict[str, str | int | bool | None] | None = None
    ) -> None:
        super().__init__(message, ErrorType.RESOURCE_CONFLICT, details)


class SeatNotHeldError(ResourceConflictError):
    """Raised when releasing a seat the request does not hold."""

    def __init__(self, section_id: UUID, request_id: UUID) -> None:
        super().__init__(
            f"Request {request_id} holds no seat in section {section_id}",
            {"section_id": str(section_id), "request_id": str(request_id)},
        )
        self.section_id = section_id
        self.request_id = request_id


class StudentNotEnrolledError(ResourceConflictError):
    """Raised when dropping a section the student holds no seat in."""

    def __init__(self, section_id: UUID, student_id: UUID) -> None:
        super().__init__(
            f"Student {student_id} is not enrolled in section {section_id}",
            {"section_id": str(section_id), "student_id": str(student_id)},
        )
        self.section_id = section_id
        self.student_id = student_id


class DuplicateRequestError(ResourceConflictError):
    """Raised when an equivalent request is already pending or already seated."""

    def __init__(self, message: str, request_id: UUID | None = None) -> None:
        super().__init__(
            message, {"request_id": str(request_id) if request_id else None}
        )
        self.request_id = request_id


class EntityNotFoundError(DomainError):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: UUID) -> None:
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            ErrorType.NOT_FOUND,
            {"entity_type": entity_type, "entity_id": str(entity_id)},
        )
        self.entity_type = entity_type
        self.entity_id = entity_id


class SectionNotFoundError(EntityNotFoundError):
    def __init__(self, section_id: UUID) -> None:
        super().__init__("Section", section_id)
        self.section_id = section_id


class RequestNotFoundError(EntityNotFoundError):
    def __init__(self, request_type: str, request_id: UUID) -> None:
        super().__init__(request_type, request_id)
        self.request_id = request_id


class DataIntegrityError(DomainError):
    """Raised when internal bookkeeping is inconsistent. Always fatal."""

    def __init__(
        self, message: str, details: dict[str, str | int | bool | None] | None = None
    ) -> None:
        super().__init__(message, ErrorType.INTEGRITY, details)


class WaitlistIntegrityError(DataIntegrityError):
    """Raised when a waitlist promotion references an unknown or non-waitlisted request."""

    def __init__(self, section_id: UUID, request_id: UUID, reason: str) -> None:
        super().__init__(
            f"Waitlist of section {section_id} promoted {request_id}: {reason}",
            {
                "section_id": str(section_id),
                "request_id": str(request_id),
                "reason": reason,
            },
        )
        self.section_id = section_id
        self.request_id = request_id
