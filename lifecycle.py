"""Request lifecycle between donors and receivers.

A request starts ``pending`` and is moved to ``approved`` or ``rejected`` by
the donor exactly once. Every transition is a conditional write against the
expected current state, so two concurrent decisions (or a decision racing a
withdrawal) cannot both succeed.

Approving a request also takes the book off the catalog and rejects every
other pending request for it, in the same transaction.
"""

from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import aliased
from sqlmodel import Session, col, delete, select, update

from db import commit_or_fail
from errors import (
    DuplicateRequest,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StoreError,
    ValidationError,
    is_unique_violation,
)
from logs import get_logger
from models import Book, BookRequest, Profile, RequestStatus, UserRole, utcnow
from schemas import RequestView

logger = get_logger("lifecycle")

DECISIONS = {RequestStatus.APPROVED: "approve", RequestStatus.REJECTED: "reject"}


def _ensure_role(profile: Profile, role: UserRole, action: str) -> None:
    if profile.role != role:
        raise PermissionDenied(f"Only {role.value}s can {action}.")


def create_request(
    session: Session,
    receiver: Profile,
    book_id: int,
    message: Optional[str] = None,
) -> BookRequest:
    _ensure_role(receiver, UserRole.RECEIVER, "request books")

    book = session.get(Book, book_id)
    if book is None:
        raise NotFound("Book not found")
    if not book.is_available:
        raise ValidationError("This book is no longer available.")

    book_request = BookRequest(
        book_id=book.id,
        donor_id=book.donor_id,
        receiver_id=receiver.id,
        message=(message or "").strip() or None,
        status=RequestStatus.PENDING,
    )
    session.add(book_request)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        if is_unique_violation(exc):
            logger.warning("receiver %s already requested book %s", receiver.id, book_id)
            raise DuplicateRequest("You have already requested this book") from exc
        logger.exception("request insert failed for book %s", book_id)
        raise StoreError("Failed to request book") from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("request insert failed for book %s", book_id)
        raise StoreError("Failed to request book") from exc

    session.refresh(book_request)
    logger.info(
        "receiver %s requested book %s from donor %s (request %s)",
        receiver.id, book.id, book.donor_id, book_request.id,
    )
    return book_request


def _parse_decision(decision) -> RequestStatus:
    try:
        status = RequestStatus(decision)
    except ValueError:
        raise ValidationError("Invalid status value.") from None
    if status not in DECISIONS:
        raise ValidationError("Invalid status value.")
    return status


def _is_pending(session: Session, request_id: int) -> bool:
    current = session.exec(
        select(BookRequest.status).where(BookRequest.id == request_id)
    ).first()
    return current == RequestStatus.PENDING


def _already_decided(session: Session, request_id: int) -> str:
    current = session.exec(
        select(BookRequest.status).where(BookRequest.id == request_id)
    ).first()
    if current is None:
        return "Request was withdrawn."
    return f"Request was already {current.value}."


def decide_request(session: Session, donor: Profile, request_id: int, decision) -> BookRequest:
    """
    Approve or reject a pending request addressed to ``donor``.

    Raises InvalidTransition when the request has already been decided or
    withdrawn, or when approving a book that has meanwhile gone to someone
    else. Nothing is written in that case.
    """
    _ensure_role(donor, UserRole.DONOR, "decide requests")
    status = _parse_decision(decision)

    book_request = session.get(BookRequest, request_id)
    if book_request is None:
        raise NotFound("Request not found")
    if book_request.donor_id != donor.id:
        raise PermissionDenied("You can only manage requests for your own books.")
    book_id = book_request.book_id
    decided_at = utcnow()

    try:
        # approvers lock the book row before any request row
        if status is RequestStatus.APPROVED:
            taken = session.exec(
                update(Book)
                .where(Book.id == book_id, Book.is_available == True)  # noqa: E712
                .values(is_available=False)
                .execution_options(synchronize_session=False)
            )
            if taken.rowcount != 1:
                session.rollback()
                if _is_pending(session, request_id):
                    raise InvalidTransition("This book is no longer available.")
                raise InvalidTransition(_already_decided(session, request_id))

        result = session.exec(
            update(BookRequest)
            .where(
                BookRequest.id == request_id,
                BookRequest.donor_id == donor.id,
                BookRequest.status == RequestStatus.PENDING,
            )
            .values(status=status, decided_at=decided_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise InvalidTransition(_already_decided(session, request_id))

        if status is RequestStatus.APPROVED:
            competing = session.exec(
                update(BookRequest)
                .where(
                    BookRequest.book_id == book_id,
                    BookRequest.id != request_id,
                    BookRequest.status == RequestStatus.PENDING,
                )
                .values(status=RequestStatus.REJECTED, decided_at=decided_at)
                .execution_options(synchronize_session=False)
            )
            if competing.rowcount:
                logger.info("auto-rejected %s competing request(s) for book %s", competing.rowcount, book_id)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("deciding request %s failed", request_id)
        raise StoreError(f"Failed to {DECISIONS[status]} request") from exc

    commit_or_fail(session, f"Failed to {DECISIONS[status]} request")
    session.refresh(book_request)
    logger.info("donor %s %s request %s", donor.id, status.value, request_id)
    return book_request


def withdraw_request(session: Session, receiver: Profile, request_id: int) -> None:
    """Delete the receiver's own request while it is still pending."""
    _ensure_role(receiver, UserRole.RECEIVER, "withdraw requests")

    book_request = session.get(BookRequest, request_id)
    if book_request is None:
        raise NotFound("Request not found")
    if book_request.receiver_id != receiver.id:
        raise PermissionDenied("You can only withdraw your own requests.")

    try:
        result = session.exec(
            delete(BookRequest)
            .where(
                BookRequest.id == request_id,
                BookRequest.receiver_id == receiver.id,
                BookRequest.status == RequestStatus.PENDING,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            session.rollback()
            raise InvalidTransition(_already_decided(session, request_id))
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("withdrawing request %s failed", request_id)
        raise StoreError("Failed to withdraw request") from exc

    commit_or_fail(session, "Failed to withdraw request")
    logger.info("receiver %s withdrew request %s", receiver.id, request_id)


def contact_visible(viewer_role: UserRole, status: RequestStatus) -> bool:
    """
    Donors always see who is asking. Receivers see the donor's email and
    phone only once the donor has approved.
    """
    if viewer_role == UserRole.DONOR:
        return True
    return status == RequestStatus.APPROVED


def _to_view(book_request: BookRequest, book: Book, counterpart: Profile, viewer_role: UserRole) -> RequestView:
    show_contact = contact_visible(viewer_role, book_request.status)
    return RequestView(
        id=book_request.id,
        book_id=book.id,
        book_title=book.title,
        book_author=book.author,
        status=book_request.status,
        message=book_request.message,
        created_at=book_request.created_at,
        counterpart_name=counterpart.full_name,
        counterpart_email=counterpart.email if show_contact else None,
        counterpart_phone=counterpart.phone if show_contact else None,
    )


def _list_requests(session: Session, profile: Profile, viewer_role: UserRole) -> List[RequestView]:
    counterpart = aliased(Profile)
    if viewer_role == UserRole.DONOR:
        owner_column, counterpart_column = BookRequest.donor_id, BookRequest.receiver_id
    else:
        owner_column, counterpart_column = BookRequest.receiver_id, BookRequest.donor_id

    stmt = (
        select(BookRequest, Book, counterpart)
        .join(Book, Book.id == BookRequest.book_id)
        .join(counterpart, counterpart.id == counterpart_column)
        .where(owner_column == profile.id)
        .order_by(col(BookRequest.created_at).desc(), col(BookRequest.id).desc())
    )
    return [
        _to_view(book_request, book, other, viewer_role)
        for book_request, book, other in session.exec(stmt).all()
    ]


def list_requests_for_donor(session: Session, donor: Profile) -> List[RequestView]:
    _ensure_role(donor, UserRole.DONOR, "view incoming requests")
    return _list_requests(session, donor, UserRole.DONOR)


def list_requests_for_receiver(session: Session, receiver: Profile) -> List[RequestView]:
    _ensure_role(receiver, UserRole.RECEIVER, "view their requests")
    return _list_requests(session, receiver, UserRole.RECEIVER)


def requested_book_ids(session: Session, receiver: Profile) -> Set[int]:
    stmt = select(BookRequest.book_id).where(BookRequest.receiver_id == receiver.id)
    return set(session.exec(stmt).all())
