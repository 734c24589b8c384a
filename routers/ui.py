import json
from typing import List, Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError as SchemaError

import catalog
import config
import lifecycle
from db import SessionDep
from errors import BookShareError, NotFound
from models import Book, Profile
from schemas import BookCreate
from .auth import DonorDep, FLASH_ERROR, FLASH_SUCCESS, ReceiverDep

router = APIRouter(prefix="/ui", tags=["ui"])
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))

BOOK_FIELDS = (
    ("book_id", "Book ID"),
    ("title", "Title"),
    ("author", "Author"),
    ("genre", "Subject/Genre"),
    ("edition", "Edition"),
    ("publisher", "Publisher"),
    ("description", "Description"),
)
REQUIRED_BOOK_FIELDS = ("title", "author")


def _success(text: str, title: str = "Success") -> dict:
    return {"kind": FLASH_SUCCESS, "title": title, "text": text}


def _failure(exc: BookShareError) -> dict:
    return {"kind": FLASH_ERROR, "title": exc.title, "text": exc.message}


def _render(
    request: Request,
    template: str,
    context: dict,
    status_code: int = status.HTTP_200_OK,
    trigger: Optional[dict] = None,
) -> HTMLResponse:
    response = templates.TemplateResponse(request, template, context)
    response.status_code = status_code
    if trigger:
        response.headers["HX-Trigger"] = json.dumps(trigger)
    return response


# ---- donor


def _render_donor_books(
    request: Request,
    session: SessionDep,
    donor: Profile,
    search: str = "",
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
) -> HTMLResponse:
    books = catalog.list_books_for_donor(session, donor, search)
    return _render(
        request,
        "fragments/donor_books.html",
        {"books": books, "search": search, "flash_message": flash_message},
        status_code=status_code,
    )


def _render_donor_requests(
    request: Request,
    session: SessionDep,
    donor: Profile,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    trigger: Optional[dict] = None,
) -> HTMLResponse:
    requests_data = lifecycle.list_requests_for_donor(session, donor)
    return _render(
        request,
        "fragments/donor_requests.html",
        {"requests": requests_data, "flash_message": flash_message},
        status_code=status_code,
        trigger=trigger,
    )


def _render_book_form(
    request: Request,
    form_data: dict,
    errors: List[str],
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    trigger: Optional[dict] = None,
) -> HTMLResponse:
    return _render(
        request,
        "fragments/donor_book_form.html",
        {
            "fields": BOOK_FIELDS,
            "required": REQUIRED_BOOK_FIELDS,
            "form_data": form_data,
            "errors": errors,
            "flash_message": flash_message,
        },
        status_code=status_code,
        trigger=trigger,
    )


@router.get("/donor/books", response_class=HTMLResponse)
def donor_books_fragment(
    request: Request,
    session: SessionDep,
    donor: DonorDep,
    q: str = "",
):
    return _render_donor_books(request, session, donor, q)


@router.get("/donor/book-form", response_class=HTMLResponse)
def donor_book_form(request: Request, donor: DonorDep):
    return _render_book_form(request, {}, [])


@router.post("/donor/books", response_class=HTMLResponse)
async def donor_create_book(
    request: Request,
    session: SessionDep,
    donor: DonorDep,
):
    form = await request.form()
    form_data = {field: (form.get(field) or "").strip() for field, _ in BOOK_FIELDS}

    errors: List[str] = []
    for field, label in BOOK_FIELDS:
        if field in REQUIRED_BOOK_FIELDS and not form_data[field]:
            errors.append(f"{label} is required.")
    if errors:
        return _render_book_form(request, form_data, errors, status_code=status.HTTP_400_BAD_REQUEST)

    try:
        catalog.create_book(session, donor, BookCreate(**form_data))
    except SchemaError as exc:
        errors.extend(err["msg"] for err in exc.errors())
        return _render_book_form(request, form_data, errors, status_code=status.HTTP_400_BAD_REQUEST)
    except BookShareError as exc:
        return _render_book_form(
            request, form_data, [], _failure(exc), status_code=exc.status_code
        )

    return _render_book_form(
        request,
        {},
        [],
        _success("Book added successfully"),
        trigger={"donor-books-refresh": True, "close-book-modal": True},
    )


@router.post("/donor/books/{book_id}/delete", response_class=HTMLResponse)
def donor_delete_book(
    book_id: int,
    request: Request,
    session: SessionDep,
    donor: DonorDep,
):
    try:
        catalog.delete_book(session, donor, book_id)
    except BookShareError as exc:
        return _render_donor_books(
            request, session, donor, flash_message=_failure(exc), status_code=exc.status_code
        )
    return _render_donor_books(
        request, session, donor, flash_message=_success("Book deleted successfully")
    )


@router.get("/donor/requests", response_class=HTMLResponse)
def donor_requests_fragment(request: Request, session: SessionDep, donor: DonorDep):
    return _render_donor_requests(request, session, donor)


@router.post("/donor/requests/{request_id}/status", response_class=HTMLResponse)
async def donor_decide_request(
    request_id: int,
    http_request: Request,
    session: SessionDep,
    donor: DonorDep,
):
    form = await http_request.form()
    decision = (form.get("status") or "").strip()

    try:
        lifecycle.decide_request(session, donor, request_id, decision)
    except BookShareError as exc:
        return _render_donor_requests(
            http_request, session, donor, _failure(exc), status_code=exc.status_code
        )

    return _render_donor_requests(
        http_request,
        session,
        donor,
        _success(f"Request {decision} successfully"),
        trigger={"donor-books-refresh": True},
    )


# ---- receiver


def _render_receiver_books(
    request: Request,
    session: SessionDep,
    receiver: Profile,
    search: str = "",
    genre: str = "",
) -> HTMLResponse:
    entries = catalog.search_available_books(session, search, genre)
    return _render(
        request,
        "fragments/receiver_books.html",
        {
            "entries": entries,
            "requested_ids": lifecycle.requested_book_ids(session, receiver),
            "filtering": bool(search.strip() or genre),
        },
    )


def _render_receiver_requests(
    request: Request,
    session: SessionDep,
    receiver: Profile,
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    trigger: Optional[dict] = None,
) -> HTMLResponse:
    return _render(
        request,
        "fragments/receiver_requests.html",
        {
            "requests": lifecycle.list_requests_for_receiver(session, receiver),
            "flash_message": flash_message,
        },
        status_code=status_code,
        trigger=trigger,
    )


def _render_request_form(
    request: Request,
    book: Optional[Book],
    message: str = "",
    flash_message: Optional[dict] = None,
    status_code: int = status.HTTP_200_OK,
    trigger: Optional[dict] = None,
) -> HTMLResponse:
    return _render(
        request,
        "fragments/receiver_request_form.html",
        {"book": book, "message": message, "flash_message": flash_message},
        status_code=status_code,
        trigger=trigger,
    )


@router.get("/receiver/books", response_class=HTMLResponse)
def receiver_books_fragment(
    request: Request,
    session: SessionDep,
    receiver: ReceiverDep,
    q: str = "",
    genre: str = "",
):
    return _render_receiver_books(request, session, receiver, q, genre)


@router.get("/receiver/books/{book_id}/request-form", response_class=HTMLResponse)
def receiver_request_form(
    book_id: int,
    request: Request,
    session: SessionDep,
    receiver: ReceiverDep,
):
    try:
        book = catalog.get_book(session, book_id)
    except NotFound as exc:
        return _render_request_form(request, None, flash_message=_failure(exc), status_code=exc.status_code)
    return _render_request_form(request, book)


@router.post("/receiver/requests", response_class=HTMLResponse)
async def receiver_send_request(
    request: Request,
    session: SessionDep,
    receiver: ReceiverDep,
):
    form = await request.form()
    raw_book_id = (form.get("book_id") or "").strip()
    message = (form.get("message") or "").strip()

    book = None
    try:
        book = catalog.get_book(session, int(raw_book_id)) if raw_book_id.isdigit() else None
        if book is None:
            raise NotFound("Book not found")
        lifecycle.create_request(session, receiver, book.id, message)
    except BookShareError as exc:
        return _render_request_form(
            request, book, message, _failure(exc), status_code=exc.status_code
        )

    return _render_request_form(
        request,
        book,
        "",
        _success("Your book request has been sent to the donor", title="Request Sent"),
        trigger={
            "receiver-requests-refresh": True,
            "receiver-books-refresh": True,
            "close-request-modal": True,
        },
    )


@router.get("/receiver/requests", response_class=HTMLResponse)
def receiver_requests_fragment(request: Request, session: SessionDep, receiver: ReceiverDep):
    return _render_receiver_requests(request, session, receiver)


@router.post("/receiver/requests/{request_id}/withdraw", response_class=HTMLResponse)
def receiver_withdraw_request(
    request_id: int,
    request: Request,
    session: SessionDep,
    receiver: ReceiverDep,
):
    try:
        lifecycle.withdraw_request(session, receiver, request_id)
    except BookShareError as exc:
        return _render_receiver_requests(
            request, session, receiver, _failure(exc), status_code=exc.status_code
        )
    return _render_receiver_requests(
        request,
        session,
        receiver,
        _success("Request withdrawn"),
        trigger={"receiver-books-refresh": True},
    )
