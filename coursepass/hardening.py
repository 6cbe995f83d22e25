"""
coursepass Validation and Hardening Module

Input validation and invariant enforcement for the course registry:

1. Input validation with sanitization (accounts, ids, DNA, amounts)
2. Registry invariant checking across the three coupled collections

Security Model:
    - All inputs are untrusted until validated
    - All state mutations are atomic or compensated
    - Invariant breaches are raised, never repaired silently
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from coursepass.store import RegistryStore


# =============================================================================
# VALIDATION ERROR TYPES
# =============================================================================

class ValidationError(ValueError):
    """Base exception for validation failures."""

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")


class ValidationErrors(ValueError):
    """Collection of validation errors."""

    def __init__(self, errors: List[ValidationError]):
        self.errors = errors
        messages = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Validation failed: {messages}")


class InvariantViolation(Exception):
    """Registry invariant violated."""
    pass


# =============================================================================
# VALIDATION RESULT
# =============================================================================

@dataclass
class ValidationResult:
    """Result of a validation operation."""
    is_valid: bool
    errors: List[ValidationError] = field(default_factory=list)
    sanitized_value: Any = None

    def raise_if_invalid(self) -> None:
        """Raise the single error, or ValidationErrors for several."""
        if self.is_valid:
            return
        if len(self.errors) == 1:
            raise self.errors[0]
        raise ValidationErrors(self.errors)

    def unwrap(self) -> Any:
        """Return the sanitized value or raise."""
        self.raise_if_invalid()
        return self.sanitized_value

    @classmethod
    def success(cls, sanitized_value: Any = None) -> "ValidationResult":
        return cls(is_valid=True, sanitized_value=sanitized_value)

    @classmethod
    def failure(cls, errors: List[ValidationError]) -> "ValidationResult":
        return cls(is_valid=False, errors=errors)


# =============================================================================
# INPUT VALIDATORS
# =============================================================================

class Validators:
    """Collection of input validators."""

    COURSE_ID_PATTERN = re.compile(r'^[a-f0-9]{64}$')
    ACCOUNT_PATTERN = re.compile(r'^[A-Za-z0-9._:@-]{1,128}$')

    DNA_LENGTH = 16
    MAX_CREDITS = 255

    @classmethod
    def validate_account(cls, value: Any, field_name: str = "account") -> ValidationResult:
        """Validate an account identifier."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        sanitized = value.strip().replace('\x00', '')
        if not sanitized:
            return ValidationResult.failure([
                ValidationError(field_name, "Account cannot be empty", value)
            ])
        if not cls.ACCOUNT_PATTERN.match(sanitized):
            return ValidationResult.failure([
                ValidationError(field_name, "Does not match required pattern", value)
            ])
        return ValidationResult.success(sanitized)

    @classmethod
    def validate_course_id(cls, value: Any, field_name: str = "course_id") -> ValidationResult:
        """Validate a course id (64 lowercase hex characters)."""
        if not isinstance(value, str):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected string, got {type(value).__name__}", value)
            ])
        lower = value.strip().lower()
        if not cls.COURSE_ID_PATTERN.match(lower):
            return ValidationResult.failure([
                ValidationError(field_name, "Must be 64 lowercase hex characters", value)
            ])
        return ValidationResult.success(lower)

    @classmethod
    def validate_dna(cls, value: Any, field_name: str = "dna") -> ValidationResult:
        """Validate a 16-byte fingerprint given as bytes or hex."""
        if isinstance(value, str):
            text = value[2:] if value.startswith("0x") else value
            try:
                value = bytes.fromhex(text)
            except ValueError:
                return ValidationResult.failure([
                    ValidationError(field_name, "Invalid hex string", value)
                ])
        if isinstance(value, (bytearray, memoryview)):
            value = bytes(value)
        if not isinstance(value, bytes):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected bytes, got {type(value).__name__}", value)
            ])
        if len(value) != cls.DNA_LENGTH:
            return ValidationResult.failure([
                ValidationError(field_name, f"Must be exactly {cls.DNA_LENGTH} bytes, got {len(value)}", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_credits(cls, value: Any, field_name: str = "credits") -> ValidationResult:
        """Validate a credit count (an unsigned byte)."""
        if isinstance(value, bool) or not isinstance(value, int):
            return ValidationResult.failure([
                ValidationError(field_name, f"Expected int, got {type(value).__name__}", value)
            ])
        if not 0 <= value <= cls.MAX_CREDITS:
            return ValidationResult.failure([
                ValidationError(field_name, f"Must be between 0 and {cls.MAX_CREDITS}", value)
            ])
        return ValidationResult.success(value)

    @classmethod
    def validate_amount(
        cls,
        value: Any,
        field_name: str = "amount",
        min_value: Decimal = Decimal("0"),
        max_value: Optional[Decimal] = None,
    ) -> ValidationResult:
        """Validate a monetary amount."""
        errors = []

        try:
            if isinstance(value, bool):
                raise TypeError
            if isinstance(value, str):
                amount = Decimal(value)
            elif isinstance(value, (int, float)):
                amount = Decimal(str(value))
            elif isinstance(value, Decimal):
                amount = value
            else:
                raise TypeError
        except TypeError:
            errors.append(ValidationError(field_name, f"Cannot convert {type(value).__name__} to Decimal", value))
            return ValidationResult.failure(errors)
        except InvalidOperation:
            errors.append(ValidationError(field_name, "Invalid decimal value", value))
            return ValidationResult.failure(errors)

        if not amount.is_finite():
            errors.append(ValidationError(field_name, "Must be a finite number", value))
            return ValidationResult.failure(errors)

        if amount < min_value:
            errors.append(ValidationError(field_name, f"Below minimum ({min_value})", value))

        if max_value is not None and amount > max_value:
            errors.append(ValidationError(field_name, f"Exceeds maximum ({max_value})", value))

        if errors:
            return ValidationResult.failure(errors)

        return ValidationResult.success(amount)

    @classmethod
    def validate_optional_amount(cls, value: Any, field_name: str = "price") -> ValidationResult:
        """Validate an amount where None means absent."""
        if value is None:
            return ValidationResult.success(None)
        return cls.validate_amount(value, field_name)


# =============================================================================
# REGISTRY INVARIANTS
# =============================================================================

class InvariantChecker:
    """Enforces the registry's cross-collection invariants."""

    @staticmethod
    def registry_violations(store: "RegistryStore") -> List[str]:
        """Return a description of every invariant the store currently breaks."""
        problems: List[str] = []
        owners: Dict[str, str] = {}

        courses = dict(store.courses())
        for course_id, course in courses.items():
            owners[course_id] = course.owner

        seen: Dict[str, str] = {}
        for account in store.accounts():
            owned = store.owned(account)
            if len(owned) > store.max_courses_owned:
                problems.append(
                    f"{account} owns {len(owned)} courses, limit is {store.max_courses_owned}"
                )
            for course_id in owned:
                if course_id in seen:
                    problems.append(f"{course_id} indexed under {seen[course_id]} and {account}")
                    continue
                seen[course_id] = account
                if course_id not in courses:
                    problems.append(f"{course_id} indexed under {account} but not registered")
                elif owners[course_id] != account:
                    problems.append(
                        f"{course_id} indexed under {account} but owned by {owners[course_id]}"
                    )

        for course_id, owner in owners.items():
            if course_id not in seen:
                problems.append(f"{course_id} owned by {owner} but missing from its index")

        if store.count < len(courses):
            problems.append(f"course count {store.count} is below {len(courses)} registered courses")

        return problems

    @classmethod
    def check_registry(cls, store: "RegistryStore") -> None:
        """Raise InvariantViolation if the store is inconsistent."""
        problems = cls.registry_violations(store)
        if problems:
            raise InvariantViolation("; ".join(problems))


__all__ = [
    "ValidationError",
    "ValidationErrors",
    "InvariantViolation",
    "ValidationResult",
    "Validators",
    "InvariantChecker",
]
