"""
Schemas for the Lifeware donor directory

Donor rows live in a Supabase table. Older revisions of the table used
``full_name`` / ``blood_type`` / ``last_donation_date`` where newer ones use
``name`` / ``blood_group`` / ``last_donated``; the read model accepts both and
always serializes with the newer names.
"""

from pydantic import BaseModel, Field, EmailStr, AliasChoices, ConfigDict, field_validator, model_validator
from typing import Optional, List, Literal, Union, Dict
from datetime import date, datetime

BLOOD_GROUPS = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]
BLOOD_GROUP_PATTERN = "^(A|B|AB|O)[+-]$"

MIN_DONOR_AGE = 18
MAX_DONOR_AGE = 65


# Donors
class Donor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[Union[int, str]] = Field(None, description="Assigned by the database")
    name: Optional[str] = Field(None, validation_alias=AliasChoices("name", "full_name"))
    blood_group: Optional[str] = Field(None, validation_alias=AliasChoices("blood_group", "blood_type"))
    age: Optional[int] = None
    location: Optional[str] = Field(None, description="City, State")
    email: Optional[str] = None
    phone_number: Optional[str] = None
    last_donated: Optional[date] = Field(
        None, validation_alias=AliasChoices("last_donated", "last_donation_date")
    )


class DonorRegistration(BaseModel):
    name: str
    blood_group: str = Field(..., pattern=BLOOD_GROUP_PATTERN)
    age: int
    location: str = Field(..., description="City, State")
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = None
    last_donated: Optional[date] = None

    @field_validator("email", "phone_number", "last_donated", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("name", "location")
    @classmethod
    def required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("This field is required")
        return v

    @field_validator("age")
    @classmethod
    def age_in_range(cls, v: int) -> int:
        if v < MIN_DONOR_AGE or v > MAX_DONOR_AGE:
            raise ValueError(f"Age must be between {MIN_DONOR_AGE} and {MAX_DONOR_AGE}")
        return v

    @model_validator(mode="after")
    def email_or_phone(self):
        if not self.email and not self.phone_number:
            raise ValueError("Either email or phone number is required")
        return self


class DonorList(BaseModel):
    donors: List[Donor]
    count: int = Field(..., description="Donors left after filtering")
    total: int = Field(..., description="Donors fetched before filtering")


# Chat assistant
class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatPayload(BaseModel):
    message: str
    history: List[ChatMessage] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message cannot be empty")
        return v


class ChatReply(BaseModel):
    reply: str
    created_at: datetime


class ChatIntro(BaseModel):
    greeting: str
    quick_questions: Dict[str, str]


# Setup gate
class SetupStatus(BaseModel):
    configured: bool
    supabase_url: str = Field(..., description="Set | Not Set")
    supabase_key: str = Field(..., description="Set | Not Set")
    donor_table: str
    steps: List[str] = Field(default_factory=list)
    env_example: Optional[str] = None
