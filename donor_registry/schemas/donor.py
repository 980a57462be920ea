from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, Optional
from uuid import UUID

from pydantic import (
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic_core import PydanticCustomError

from donor_registry.schemas.base_schema import BloodType, CamelSchema

CONTACT_NUMBER_PATTERN = r"^03\d{2}-\d{7}$"
CNIC_NUMBER_PATTERN = r"^\d{5}-\d{7}-\d$"

REQUIRED_TEXT_FIELDS = (
    "name",
    "father_name",
    "contact_number",
    "cnic_number",
    "address",
    "city",
    "department",
    "semester",
)

BLOOD_GROUP_MESSAGE = f"Blood group must be one of: {', '.join(BloodType.get_values())}"
INVALID_DATE_MESSAGE = "Last donation date must be a valid date"
FUTURE_DATE_MESSAGE = "Last donation date cannot be in the future"

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
ContactNumber = Annotated[
    str, StringConstraints(strip_whitespace=True, pattern=CONTACT_NUMBER_PATTERN)
]
CnicNumber = Annotated[
    str, StringConstraints(strip_whitespace=True, pattern=CNIC_NUMBER_PATTERN)
]

_datetime_adapter = TypeAdapter(datetime)


def normalize_city(city: str) -> str:
    """Title-case each space-separated word: "karachi CITY" -> "Karachi City"."""
    return " ".join(word[:1].upper() + word[1:] for word in city.lower().split(" "))


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _missing() -> PydanticCustomError:
    return PydanticCustomError("missing", "Field required")


class DonorInput(CamelSchema):
    """
    Field rules shared by donor creation and update.

    Blank or null required values fail as "missing". Pass
    context={"today": date} to model_validate to pin the date used by the
    future-donation check.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator(*REQUIRED_TEXT_FIELDS, mode="before", check_fields=False)
    @classmethod
    def require_value(cls, v: Any) -> Any:
        if _is_blank(v):
            raise _missing()
        return v

    @field_validator("blood_group", mode="before", check_fields=False)
    @classmethod
    def validate_blood_group(cls, v: Any) -> Any:
        if _is_blank(v):
            raise _missing()
        if isinstance(v, str):
            v = v.strip()
        if v not in BloodType.get_values():
            raise ValueError(BLOOD_GROUP_MESSAGE)
        return v

    @field_validator("city", check_fields=False)
    @classmethod
    def validate_city(cls, v: str) -> str:
        return normalize_city(v)

    @field_validator("last_donation", mode="before", check_fields=False)
    @classmethod
    def parse_last_donation(cls, v: Any) -> Any:
        """Accept a date, an ISO date string or an ISO datetime string."""
        if isinstance(v, datetime):
            return v.date()
        if v is None or isinstance(v, date):
            return v
        if not isinstance(v, str):
            raise ValueError(INVALID_DATE_MESSAGE)

        text = v.strip()
        if not text:
            return None
        if len(text) > 10:
            try:
                return _datetime_adapter.validate_python(text).date()
            except ValidationError as e:
                raise ValueError(INVALID_DATE_MESSAGE) from e
        return text

    @field_validator("last_donation", check_fields=False)
    @classmethod
    def validate_last_donation(
        cls, v: Optional[date], info: ValidationInfo
    ) -> Optional[date]:
        today = (info.context or {}).get("today") or date.today()
        if v is not None and v > today:
            raise ValueError(FUTURE_DATE_MESSAGE)
        return v


class DonorCreate(DonorInput):
    """
    Normalized donor input, ready for storage.

    next_available_date is not an input field; the model derives it from
    last_donation and unknown keys are dropped.
    """

    name: RequiredText
    father_name: RequiredText
    contact_number: ContactNumber
    cnic_number: CnicNumber
    address: RequiredText
    city: RequiredText
    blood_group: BloodType
    department: RequiredText
    semester: RequiredText
    last_donation: Optional[date] = None


class DonorUpdate(DonorInput):
    name: Optional[RequiredText] = None
    father_name: Optional[RequiredText] = None
    contact_number: Optional[ContactNumber] = None
    cnic_number: Optional[CnicNumber] = None
    address: Optional[RequiredText] = None
    city: Optional[RequiredText] = None
    blood_group: Optional[BloodType] = None
    department: Optional[RequiredText] = None
    semester: Optional[RequiredText] = None
    last_donation: Optional[date] = None


class DonorResponse(CamelSchema):
    id: UUID
    name: str
    father_name: str
    contact_number: str
    cnic_number: str
    address: str
    city: str
    blood_group: str
    department: str
    semester: str
    last_donation: Optional[date] = None
    next_available_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DonorFilterField(str, Enum):
    name = "name"
    city = "city"
    blood_group = "bloodGroup"
    department = "department"
    contact_number = "contactNumber"


class DonorSortField(str, Enum):
    name = "name"
    city = "city"
    blood_group = "bloodGroup"
    department = "department"
    semester = "semester"
    last_donation = "lastDonation"
    next_available_date = "nextAvailableDate"
    created_at = "createdAt"


class DonorStats(CamelSchema):
    total_donors: int = 0
    recent_donations: int = 0
    eligible_donors: int = 0
    blood_group_count: Dict[str, int] = Field(default_factory=dict)
    city_count: Dict[str, int] = Field(default_factory=dict)
