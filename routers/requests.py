from typing import List

from fastapi import APIRouter, Response

import lifecycle
from db import SessionDep
from schemas import BookRequestRead, RequestCreate, RequestDecision, RequestView
from .auth import DonorDep, ReceiverDep

router = APIRouter(tags=["requests"])


@router.post("/", response_model=BookRequestRead, status_code=201)
def create_request(request_data: RequestCreate, session: SessionDep, receiver: ReceiverDep):
    return lifecycle.create_request(
        session, receiver, request_data.book_id, request_data.message
    )


@router.get("/incoming", response_model=List[RequestView])
def list_incoming_requests(session: SessionDep, donor: DonorDep):
    """Requests for the donor's books, with the receiver's contact details."""
    return lifecycle.list_requests_for_donor(session, donor)


@router.get("/mine", response_model=List[RequestView])
def list_my_requests(session: SessionDep, receiver: ReceiverDep):
    """
    The receiver's own requests. Donor email/phone are only filled in
    once a request is approved.
    """
    return lifecycle.list_requests_for_receiver(session, receiver)


@router.patch("/{request_id}", response_model=BookRequestRead)
def decide_request(
    request_id: int,
    update: RequestDecision,
    session: SessionDep,
    donor: DonorDep,
):
    return lifecycle.decide_request(session, donor, request_id, update.status)


@router.delete("/{request_id}", status_code=204)
def withdraw_request(request_id: int, session: SessionDep, receiver: ReceiverDep):
    lifecycle.withdraw_request(session, receiver, request_id)
    return Response(status_code=204)
