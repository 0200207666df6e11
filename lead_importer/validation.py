"""Row level validation for parsed lead rows."""
from __future__ import annotations

import logging
import math
import re
from typing import Iterable, List

from .models import LEAD_PRIORITIES, LEAD_STATUSES, ParsedRow, Scalar, ValidationIssue, ValidationResult, as_text

LOGGER = logging.getLogger(__name__)

REQUIRED_FIELDS = ("name", "phone")
NUMERIC_FIELDS = {
    "estimated_value": "Estimated value must be a valid number",
    "asking_price": "Asking price must be a valid number",
}

_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-().]")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_phone(value: Scalar) -> bool:
    cleaned = _PHONE_SEPARATORS.sub("", as_text(value))
    return bool(_PHONE_PATTERN.match(cleaned))


def is_valid_email(value: Scalar) -> bool:
    return bool(_EMAIL_PATTERN.match(as_text(value)))


def is_numeric(value: Scalar) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        number = float(str(value))
    except ValueError:
        return False
    return math.isfinite(number)


def validate_rows(rows: Iterable[ParsedRow]) -> ValidationResult:
    """Check every row and collect blocking errors and soft warnings.

    Missing required fields and malformed phone, email or money values are
    errors. Status and priority values outside their enumerations are
    warnings; the transformer substitutes the configured default for them.
    """

    result = ValidationResult()
    for row in rows:
        result.errors.extend(_row_errors(row))
        result.warnings.extend(_row_warnings(row))

    LOGGER.debug(
        "Validation finished with %s errors and %s warnings",
        len(result.errors),
        len(result.warnings),
    )
    return result


def _row_errors(row: ParsedRow) -> List[ValidationIssue]:
    errors: List[ValidationIssue] = []
    for field_name in REQUIRED_FIELDS:
        value = row.get(field_name)
        if value is None or not as_text(value).strip():
            errors.append(
                ValidationIssue(
                    row=row.row_number,
                    field=field_name,
                    value=as_text(value),
                    message=f"Required field '{field_name}' is missing or empty",
                )
            )

    phone = row.get("phone")
    if phone is not None and not is_valid_phone(phone):
        errors.append(ValidationIssue(row.row_number, "phone", as_text(phone), "Invalid phone number format"))

    email = row.get("email")
    if email is not None and not is_valid_email(email):
        errors.append(ValidationIssue(row.row_number, "email", as_text(email), "Invalid email format"))

    for field_name, message in NUMERIC_FIELDS.items():
        value = row.get(field_name)
        if value is not None and not is_numeric(value):
            errors.append(ValidationIssue(row.row_number, field_name, as_text(value), message))

    return errors


def _row_warnings(row: ParsedRow) -> List[ValidationIssue]:
    warnings: List[ValidationIssue] = []

    status = row.get("status")
    if status is not None and as_text(status).strip().lower() not in LEAD_STATUSES:
        warnings.append(
            ValidationIssue(
                row=row.row_number,
                field="status",
                value=as_text(status),
                message=f"Status '{as_text(status)}' is not a standard value. The default status will be used instead.",
            )
        )

    priority = row.get("priority")
    if priority is not None and as_text(priority).strip().lower() not in LEAD_PRIORITIES:
        warnings.append(
            ValidationIssue(
                row=row.row_number,
                field="priority",
                value=as_text(priority),
                message=f"Priority '{as_text(priority)}' is not a standard value. The default priority will be used instead.",
            )
        )

    return warnings


__all__ = ["REQUIRED_FIELDS", "is_numeric", "is_valid_email", "is_valid_phone", "validate_rows"]
