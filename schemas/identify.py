"""Request/response schemas for identity reconciliation."""
import re
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# local-part@domain.tld
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\d{1,20}$")


class IdentifyRequest(BaseModel):
    email: Optional[str] = None
    phone_number: Optional[str] = Field(default=None, alias="phoneNumber")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("Must be a valid email address")
        value = value.strip().lower()
        if not value:
            return None
        if not EMAIL_PATTERN.match(value):
            raise ValueError("Must be a valid email address")
        return value

    @field_validator("phone_number", mode="before")
    @classmethod
    def _normalize_phone(cls, value: Union[str, int, None]) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise ValueError("Must be a string")
        value = str(value).strip()
        if not value:
            return None
        if not PHONE_PATTERN.match(value):
            raise ValueError("Must contain only digits (1-20 characters)")
        return value

    def has_identifier(self) -> bool:
        return self.email is not None or self.phone_number is not None


class ConsolidatedIdentity(BaseModel):
    primary_contact_id: int = Field(alias="primaryContactId")
    emails: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list, alias="phoneNumbers")
    secondary_contact_ids: List[int] = Field(
        default_factory=list, alias="secondaryContactIds"
    )

    model_config = ConfigDict(populate_by_name=True)


class IdentifyResponse(BaseModel):
    contact: ConsolidatedIdentity


class ErrorResponse(BaseModel):
    error: str
