from typing import List, Optional

from fastapi import APIRouter, Response

import catalog
from db import SessionDep
from schemas import BookCreate, BookListing, BookRead
from .auth import CurrentProfileDep, DonorDep

router = APIRouter(tags=["books"])


def _listing(entry: catalog.CatalogEntry) -> BookListing:
    return BookListing(
        **BookRead.model_validate(entry.book).model_dump(),
        donor_name=entry.donor_name,
    )


@router.get("/", response_model=List[BookListing])
def list_available_books(
    session: SessionDep,
    current: CurrentProfileDep,
    q: str = "",
    genre: Optional[str] = None,
):
    """
    Books open for requests, optionally narrowed by a title/author/description
    search and an exact genre.
    """
    return [_listing(e) for e in catalog.search_available_books(session, q, genre)]


@router.get("/mine", response_model=List[BookRead])
def list_my_books(session: SessionDep, donor: DonorDep, q: str = ""):
    return catalog.list_books_for_donor(session, donor, q)


@router.get("/{book_id}", response_model=BookRead)
def get_book(book_id: int, session: SessionDep, current: CurrentProfileDep):
    return catalog.get_book(session, book_id)


@router.post("/", response_model=BookRead, status_code=201)
def create_book(book_in: BookCreate, session: SessionDep, donor: DonorDep):
    return catalog.create_book(session, donor, book_in)


@router.delete("/{book_id}", status_code=204)
def delete_book(book_id: int, session: SessionDep, donor: DonorDep):
    catalog.delete_book(session, donor, book_id)
    return Response(status_code=204)
