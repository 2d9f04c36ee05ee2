"""
presskit/models/contact.py
Contact inquiry models and the inquiry status vocabulary.
"""

from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BeforeValidator, EmailStr, Field

from presskit.models.base import ApiModel


class InquiryStatus(str, Enum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    ARCHIVED = "archived"


class InquiryType(str, Enum):
    BOOKING = "booking"
    PRESS = "press"
    COLLABORATION = "collaboration"
    LICENSING = "licensing"
    OTHER = "other"


class InquiryPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Legacy names accepted from older clients.
STATUS_ALIASES = {"pending": "new", "responded": "replied"}


def normalize_status(value):
    if isinstance(value, str):
        value = value.strip().lower()
        return STATUS_ALIASES.get(value, value)
    return value


def _length(low: int, high: int, label: str):
    def check(value: str) -> str:
        if not low <= len(value) <= high:
            raise ValueError(f"{label} must be between {low} and {high} characters")
        return value
    return AfterValidator(check)


InquiryStatusInput = Annotated[InquiryStatus, BeforeValidator(normalize_status)]


class ContactSubmission(ApiModel):
    name: Annotated[str, _length(2, 100, "Name")]
    email: EmailStr
    phone: Optional[str] = Field(default=None, max_length=30)
    company: Optional[str] = Field(default=None, max_length=100)
    role: Optional[str] = Field(default=None, max_length=100)
    subject: Annotated[str, _length(3, 200, "Subject")]
    message: Annotated[str, _length(10, 5000, "Message")]
    type: InquiryType = InquiryType.OTHER


class StatusUpdate(ApiModel):
    status: InquiryStatusInput
    note: Optional[str] = Field(default=None, max_length=2000)


class RespondRequest(ApiModel):
    message: Annotated[str, _length(1, 5000, "Response")]


