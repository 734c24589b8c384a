import time
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlmodel import Session, col, delete, select

from db import commit_or_fail
from errors import NotFound, PermissionDenied, ValidationError
from logs import get_logger
from models import Book, BookRequest, Profile, UserRole
from schemas import BookCreate

logger = get_logger("catalog")


@dataclass
class CatalogEntry:
    book: Book
    donor_name: str


def generate_book_code() -> str:
    return f"BOOK_{int(time.time() * 1000)}"


def _ensure_donor(profile: Profile) -> None:
    if profile.role != UserRole.DONOR:
        raise PermissionDenied("Only donors can manage books.")


def create_book(session: Session, donor: Profile, book_in: BookCreate) -> Book:
    _ensure_donor(donor)
    if not book_in.title or not book_in.author:
        raise ValidationError("Title and author are required.")

    book = Book(
        donor_id=donor.id,
        book_id=book_in.book_id or generate_book_code(),
        title=book_in.title,
        author=book_in.author,
        genre=book_in.genre,
        edition=book_in.edition,
        publisher=book_in.publisher,
        description=book_in.description,
        is_available=True,
    )
    session.add(book)
    commit_or_fail(session, "Failed to add book")
    session.refresh(book)
    logger.info("donor %s added book %s (%s)", donor.id, book.id, book.book_id)
    return book


def get_book(session: Session, book_id: int) -> Book:
    book = session.get(Book, book_id)
    if book is None:
        raise NotFound("Book not found")
    return book


def delete_book(session: Session, donor: Profile, book_id: int) -> None:
    """
    Delete one of the donor's own books together with every request
    made for it.
    """
    _ensure_donor(donor)
    book = get_book(session, book_id)
    if book.donor_id != donor.id:
        logger.warning("donor %s tried to delete book %s owned by %s", donor.id, book.id, book.donor_id)
        raise PermissionDenied("You can only delete books you donated.")

    session.exec(delete(BookRequest).where(BookRequest.book_id == book.id))
    session.delete(book)
    commit_or_fail(session, "Failed to delete book")
    logger.info("donor %s deleted book %s", donor.id, book_id)


def matches_donor_search(book: Book, search: str) -> bool:
    term = search.strip().casefold()
    if not term:
        return True
    return term in book.title.casefold() or term in book.author.casefold()


def matches_receiver_search(book: Book, search: str = "", genre: str = "") -> bool:
    term = search.strip().casefold()
    matches_search = (
        not term
        or term in book.title.casefold()
        or term in book.author.casefold()
        or term in (book.description or "").casefold()
    )
    matches_genre = not genre or book.genre == genre
    return matches_search and matches_genre


def filter_catalog(
    entries: Iterable[CatalogEntry], search: str = "", genre: str = ""
) -> List[CatalogEntry]:
    return [e for e in entries if matches_receiver_search(e.book, search, genre)]


def unique_genres(books: Iterable[Book]) -> List[str]:
    """Distinct non-empty genres in the order they first appear."""
    return list(dict.fromkeys(b.genre for b in books if b.genre))


def list_books_for_donor(session: Session, donor: Profile, search: str = "") -> List[Book]:
    stmt = (
        select(Book)
        .where(Book.donor_id == donor.id)
        .order_by(col(Book.created_at).desc(), col(Book.id).desc())
    )
    books = session.exec(stmt).all()
    return [b for b in books if matches_donor_search(b, search)]


def list_available_books(session: Session) -> List[CatalogEntry]:
    stmt = (
        select(Book, Profile.full_name)
        .join(Profile, Profile.id == Book.donor_id)
        .where(Book.is_available == True)  # noqa: E712
        .order_by(col(Book.created_at).desc(), col(Book.id).desc())
    )
    return [CatalogEntry(book=book, donor_name=name) for book, name in session.exec(stmt).all()]


def search_available_books(
    session: Session, search: str = "", genre: Optional[str] = None
) -> List[CatalogEntry]:
    return filter_catalog(list_available_books(session), search, genre or "")
