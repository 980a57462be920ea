"""
Donor eligibility and field validation.

The field rules live on DonorCreate/DonorUpdate; this module runs them
over raw request payloads and reshapes pydantic errors into field-addressable
FieldErrors. Uniqueness lookups belong to the caller, which turns hits into
errors with duplicate_value_errors().
"""

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from donor_registry.schemas.donor import (
    BLOOD_GROUP_MESSAGE,
    INVALID_DATE_MESSAGE,
    DonorCreate,
    DonorUpdate,
    normalize_city,  # noqa: F401  part of this module's API
)

ELIGIBILITY_MONTHS = 3

# wire name -> attribute name, in form order
REQUIRED_FIELDS = {
    "name": "name",
    "fatherName": "father_name",
    "contactNumber": "contact_number",
    "cnicNumber": "cnic_number",
    "address": "address",
    "city": "city",
    "bloodGroup": "blood_group",
    "department": "department",
    "semester": "semester",
}
WIRE_NAMES = {
    **{attr: wire for wire, attr in REQUIRED_FIELDS.items()},
    **{wire: wire for wire in REQUIRED_FIELDS},
    "last_donation": "lastDonation",
    "lastDonation": "lastDonation",
}

# Messages for failures raised by pydantic's own type and constraint checks
FORMAT_MESSAGES = {
    "contactNumber": "Contact number must be in the format 03XX-XXXXXXX",
    "cnicNumber": "CNIC number must be in the format XXXXX-XXXXXXX-X",
    "bloodGroup": BLOOD_GROUP_MESSAGE,
    "lastDonation": INVALID_DATE_MESSAGE,
}

DUPLICATE_MESSAGES = {
    "contactNumber": "This contact number is already registered",
    "cnicNumber": "This CNIC number is already registered",
}

# Top-level message for the first failing check of a payload
SUMMARIES = {
    "lastDonation": "Invalid last donation date",
    "bloodGroup": "Invalid blood group",
    "contactNumber": "Invalid contact number",
    "cnicNumber": "Invalid CNIC number",
}
DUPLICATE_SUMMARIES = {
    "contactNumber": "Contact number already registered",
    "cnicNumber": "CNIC number already registered",
}


class ErrorKind(str, Enum):
    MISSING_FIELD = "MissingField"
    INVALID_FORMAT = "InvalidFormat"
    DUPLICATE_VALUE = "DuplicateValue"


@dataclass(frozen=True)
class FieldError:
    field: str
    kind: ErrorKind
    message: str


class DonorValidationError(Exception):
    """Aggregated, field-addressable validation failure for one payload."""

    def __init__(self, errors: Iterable[FieldError]):
        self.errors: List[FieldError] = list(errors)
        super().__init__(self.message)

    @property
    def missing_fields(self) -> List[str]:
        return [e.field for e in self.errors if e.kind == ErrorKind.MISSING_FIELD]

    @property
    def validation_errors(self) -> Dict[str, str]:
        result: Dict[str, str] = {}
        for error in self.errors:
            result.setdefault(error.field, error.message)
        return result

    @property
    def message(self) -> str:
        if not self.errors:
            return "Validation failed"
        if self.missing_fields:
            return "Missing required fields"

        duplicates = [e for e in self.errors if e.kind == ErrorKind.DUPLICATE_VALUE]
        if len(duplicates) > 1:
            return "Duplicate entry found"

        first = self.errors[0]
        if first.kind == ErrorKind.DUPLICATE_VALUE:
            return DUPLICATE_SUMMARIES.get(first.field, "Duplicate entry found")
        return SUMMARIES.get(first.field, "Validation failed")

    def to_response_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message}
        if self.missing_fields:
            body["missingFields"] = self.missing_fields
        body["validationErrors"] = self.validation_errors
        return body


def add_months(value: date, months: int) -> date:
    """
    Advance a date by calendar months without clamping.

    When the target month is shorter than the day of month, the surplus
    days spill into the following month: 2024-01-31 + 3 months is
    2024-05-01 (April 31 rolls to May 1).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = calendar.monthrange(year, month)[1]
    if value.day <= days_in_month:
        return date(year, month, value.day)
    return date(year, month, days_in_month) + timedelta(days=value.day - days_in_month)


def next_available_date(last_donation: Optional[date]) -> Optional[date]:
    if last_donation is None:
        return None
    return add_months(last_donation, ELIGIBILITY_MONTHS)


def duplicate_value_errors(fields: Iterable[str]) -> List[FieldError]:
    """Build DuplicateValue errors for fields found taken by the store."""
    return [
        FieldError(field, ErrorKind.DUPLICATE_VALUE, DUPLICATE_MESSAGES[field])
        for field in fields
    ]


def field_errors(error: ValidationError) -> List[FieldError]:
    """Missing fields first, then format failures, each in form order."""
    missing: List[FieldError] = []
    invalid: List[FieldError] = []
    for item in error.errors():
        loc = str(item["loc"][0]) if item["loc"] else "body"
        wire = WIRE_NAMES.get(loc, loc)
        if item["type"] == "missing":
            missing.append(
                FieldError(wire, ErrorKind.MISSING_FIELD, f"{wire} is required")
            )
        elif item["type"] == "value_error":
            invalid.append(
                FieldError(wire, ErrorKind.INVALID_FORMAT, str(item["ctx"]["error"]))
            )
        else:
            invalid.append(
                FieldError(
                    wire,
                    ErrorKind.INVALID_FORMAT,
                    FORMAT_MESSAGES.get(wire, f"{wire} is invalid"),
                )
            )
    return missing + invalid


def normalize_and_validate(
    raw: Mapping[str, Any], today: Optional[date] = None
) -> DonorCreate:
    """
    Validate and normalize a full donor payload.

    Every violated rule contributes one FieldError; the whole set is raised
    together as DonorValidationError.
    """
    try:
        return DonorCreate.model_validate(raw, context={"today": today or date.today()})
    except ValidationError as e:
        raise DonorValidationError(field_errors(e)) from e


def validate_partial(
    raw: Mapping[str, Any], today: Optional[date] = None
) -> DonorUpdate:
    """
    Same rules as normalize_and_validate, applied only to supplied fields.

    A null or blank lastDonation clears the donation history. Use
    model_dump(exclude_unset=True) on the result to get the changes.
    """
    try:
        return DonorUpdate.model_validate(raw, context={"today": today or date.today()})
    except ValidationError as e:
        raise DonorValidationError(field_errors(e)) from e
