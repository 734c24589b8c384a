# routers/pages.py
from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

import catalog
import config
from db import SessionDep
from models import UserRole
from .auth import AuthSessionDep

router = APIRouter(tags=["pages"])
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))


def dashboard_url(role: UserRole) -> str:
    return "/donor" if role == UserRole.DONOR else "/receiver"


@router.get("/donor", response_class=HTMLResponse)
def donor_dashboard(request: Request, auth: AuthSessionDep):
    """Donor dashboard page; books and requests load as fragments."""
    if not auth.is_authenticated:
        return RedirectResponse(url="/auth", status_code=303)
    if auth.role != UserRole.DONOR:
        return RedirectResponse(url="/", status_code=303)

    return templates.TemplateResponse(
        request,
        "donor_dashboard.html",
        {"current_profile": auth.profile},
    )


@router.get("/receiver", response_class=HTMLResponse)
def receiver_dashboard(request: Request, session: SessionDep, auth: AuthSessionDep):
    """Receiver dashboard page"""
    if not auth.is_authenticated:
        return RedirectResponse(url="/auth", status_code=303)
    if auth.role != UserRole.RECEIVER:
        return RedirectResponse(url="/", status_code=303)

    # genre options come from the whole available set, not the filtered view
    entries = catalog.list_available_books(session)
    return templates.TemplateResponse(
        request,
        "receiver_dashboard.html",
        {
            "current_profile": auth.profile,
            "genres": catalog.unique_genres(e.book for e in entries),
        },
    )
