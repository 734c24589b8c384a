from typing import Annotated, Optional

from fastapi import APIRouter, Cookie, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError as SchemaError

import config
import identity
from db import SessionDep
from errors import AuthError, BookShareError, PermissionDenied, ValidationError
from identity import AuthSession
from models import Profile, UserRole
from schemas import ProfileRead, SignInData, SignUpData

router = APIRouter(tags=["auth"])
templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))

FLASH_SUCCESS = "success"
FLASH_ERROR = "error"


def get_auth_session(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=config.SESSION_COOKIE),
) -> AuthSession:
    """
    Resolve the signed 'session' cookie into an AuthSession.
    Never raises: an anonymous or failed session is a valid answer.
    """
    return identity.resolve_session(session, session_token)


AuthSessionDep = Annotated[AuthSession, Depends(get_auth_session)]


def require_profile(auth: AuthSessionDep) -> Profile:
    if not auth.is_authenticated:
        raise AuthError(auth.error or "Not logged in")
    return auth.profile


CurrentProfileDep = Annotated[Profile, Depends(require_profile)]


def require_donor(profile: CurrentProfileDep) -> Profile:
    if profile.role != UserRole.DONOR:
        raise PermissionDenied("Only donors can access this section.")
    return profile


def require_receiver(profile: CurrentProfileDep) -> Profile:
    if profile.role != UserRole.RECEIVER:
        raise PermissionDenied("Only receivers can access this section.")
    return profile


DonorDep = Annotated[Profile, Depends(require_donor)]
ReceiverDep = Annotated[Profile, Depends(require_receiver)]


def _wants_json(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith("application/json")


def _set_session_cookie(response, profile: Profile) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE,
        value=identity.create_session_token(profile.id),
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=config.SESSION_MAX_AGE,
    )


def _schema_message(exc: SchemaError) -> str:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first['msg']}" if field else first["msg"]


async def _read_payload(request: Request, fields: tuple) -> dict:
    if _wants_json(request):
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError("Request body is not valid JSON.") from None
        if not isinstance(payload, dict):
            raise ValidationError("Request body must be a JSON object.")
        return payload
    form = await request.form()
    payload = {}
    for field in fields:
        raw = form.get(field)
        if isinstance(raw, str) and raw.strip():
            payload[field] = raw.strip() if field not in ("password", "confirm_password") else raw
    return payload


def _render_auth_page(
    request: Request,
    auth: AuthSession,
    flash_message: Optional[dict] = None,
    active_tab: str = "login",
    form_data: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "auth.html",
        {
            "current_profile": auth.profile,
            "flash_message": flash_message,
            "active_tab": active_tab,
            "form_data": form_data or {},
        },
        status_code=status_code,
    )


@router.get("/auth", response_class=HTMLResponse)
def auth_page(request: Request, auth: AuthSessionDep):
    if auth.is_authenticated:
        return RedirectResponse(url="/", status_code=303)
    return _render_auth_page(request, auth)


@router.post("/auth/signup")
async def sign_up(request: Request, session: SessionDep, auth: AuthSessionDep):
    """
    Create an account. The role chosen here is permanent.
    Accepts either JSON (API) or form-data (from the HTML form).
    """
    payload = await _read_payload(
        request,
        ("email", "password", "confirm_password", "full_name", "role", "phone", "address"),
    )
    safe_form = {k: v for k, v in payload.items() if "password" not in k}

    try:
        try:
            data = SignUpData(**payload)
        except SchemaError as exc:
            raise ValidationError(_schema_message(exc)) from None
        profile = identity.sign_up(session, data)
    except BookShareError as exc:
        if _wants_json(request):
            raise
        return _render_auth_page(
            request,
            auth,
            {"kind": FLASH_ERROR, "title": "Signup Error", "text": exc.message},
            active_tab="signup",
            form_data=safe_form,
            status_code=exc.status_code,
        )

    if not profile.email_confirmed:
        if _wants_json(request):
            return JSONResponse(
                {"message": "Please check your email to verify your account.", "role": profile.role.value},
                status_code=201,
            )
        return _render_auth_page(
            request,
            auth,
            {
                "kind": FLASH_SUCCESS,
                "title": "Account Created!",
                "text": "Please check your email to verify your account.",
            },
        )

    identity.sign_in(session, auth, data.email, data.password)
    if _wants_json(request):
        resp = JSONResponse({"message": "Registration successful", "role": profile.role.value})
    else:
        resp = RedirectResponse(url="/", status_code=303)
    _set_session_cookie(resp, profile)
    return resp


@router.post("/auth/signin")
async def sign_in(request: Request, session: SessionDep, auth: AuthSessionDep):
    """
    Log in with email + password and set a signed cookie.
    The dashboard is picked from the stored role, not from the form.
    """
    payload = await _read_payload(request, ("email", "password"))

    try:
        try:
            data = SignInData(**payload)
        except SchemaError as exc:
            raise ValidationError(_schema_message(exc)) from None
        profile = identity.sign_in(session, auth, data.email, data.password)
    except BookShareError as exc:
        if _wants_json(request):
            raise
        return _render_auth_page(
            request,
            auth,
            {"kind": FLASH_ERROR, "title": "Login Error", "text": exc.message},
            form_data={"email": payload.get("email", "")},
            status_code=exc.status_code,
        )

    if _wants_json(request):
        resp = JSONResponse({"message": "Login successful", "role": profile.role.value})
    else:
        resp = RedirectResponse(url="/", status_code=303)
    _set_session_cookie(resp, profile)
    return resp


@router.post("/auth/signout")
def sign_out(auth: AuthSessionDep):
    """
    Clear the session cookie and redirect to home.
    """
    identity.sign_out(auth)
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(config.SESSION_COOKIE)
    return response


@router.get("/auth/verify", response_class=HTMLResponse)
def verify_email(token: str, request: Request, session: SessionDep, auth: AuthSessionDep):
    try:
        identity.confirm_email(session, token)
    except AuthError as exc:
        return _render_auth_page(
            request,
            auth,
            {"kind": FLASH_ERROR, "title": "Verification Error", "text": exc.message},
            status_code=exc.status_code,
        )
    return _render_auth_page(
        request,
        auth,
        {"kind": FLASH_SUCCESS, "title": "Email confirmed", "text": "You can now sign in."},
    )


@router.get("/me", response_model=ProfileRead)
def read_me(profile: CurrentProfileDep):
    """
    Get the profile of the currently logged-in user.
    """
    return profile
