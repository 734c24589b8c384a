from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from models import RequestStatus, UserRole


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class SignUpData(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: str
    full_name: str = Field(min_length=1)
    role: UserRole = UserRole.RECEIVER
    phone: Optional[str] = None
    address: Optional[str] = None

    @field_validator("phone", "address")
    @classmethod
    def _clean_optional(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class SignInData(BaseModel):
    email: EmailStr
    password: str


class ProfileRead(BaseModel):
    id: int
    full_name: str
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole

    model_config = ConfigDict(from_attributes=True)


class BookCreate(BaseModel):
    book_id: Optional[str] = None
    title: str
    author: str
    genre: Optional[str] = None
    edition: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None

    @field_validator("book_id", "genre", "edition", "publisher", "description")
    @classmethod
    def _clean_optional(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)

    @field_validator("title", "author")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        return value.strip()


class BookRead(BaseModel):
    id: int
    book_id: str
    title: str
    author: str
    genre: Optional[str] = None
    edition: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    donor_id: int
    is_available: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookListing(BookRead):
    donor_name: str


class RequestCreate(BaseModel):
    book_id: int
    message: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("message")
    @classmethod
    def _clean_message(cls, value: Optional[str]) -> Optional[str]:
        return _blank_to_none(value)


class RequestDecision(BaseModel):
    status: Literal["approved", "rejected"]


class BookRequestRead(BaseModel):
    id: int
    book_id: int
    donor_id: int
    receiver_id: int
    message: Optional[str] = None
    status: RequestStatus
    created_at: datetime
    decided_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RequestView(BaseModel):
    """A request as one side of it sees it.

    ``counterpart_*`` is the receiver for a donor and the donor for a
    receiver. Contact fields are ``None`` when the viewer may not see them.
    """

    id: int
    book_id: int
    book_title: str
    book_author: str
    status: RequestStatus
    message: Optional[str] = None
    created_at: datetime
    counterpart_name: str
    counterpart_email: Optional[str] = None
    counterpart_phone: Optional[str] = None
