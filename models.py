from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class UserRole(str, Enum):
    DONOR = "donor"
    RECEIVER = "receiver"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    full_name: str
    email: str = Field(index=True, unique=True)
    phone: Optional[str] = None
    address: Optional[str] = None
    role: UserRole  # fixed at signup
    password_hash: str
    email_confirmed: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class Book(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    donor_id: int = Field(foreign_key="profile.id", index=True)

    book_id: str = Field(index=True)  # display code, e.g. BOOK_1718000000000
    title: str
    author: str
    genre: Optional[str] = None
    edition: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    is_available: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class BookRequest(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("book_id", "receiver_id", name="uq_bookrequest_book_receiver"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    book_id: int = Field(foreign_key="book.id", index=True)
    # copied from the book when the request is made
    donor_id: int = Field(foreign_key="profile.id", index=True)
    receiver_id: int = Field(foreign_key="profile.id", index=True)

    message: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
