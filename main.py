import time

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

import config
import identity
from db import create_db_and_tables
from errors import BookShareError
from logs import configure_logging, get_logger, set_request_id
from routers import auth, books, pages, requests, ui
from routers.auth import AuthSessionDep
from routers.pages import dashboard_url

configure_logging()
logger = get_logger("app")

app = FastAPI(title="BookShare")

templates = Jinja2Templates(directory=str(config.TEMPLATES_DIR))
app.mount("/static", StaticFiles(directory=str(config.STATIC_DIR)), name="static")


@app.on_event("startup")
def on_startup() -> None:
    create_db_and_tables()


def _log_auth_event(event: str, profile) -> None:
    logger.debug("auth event %s for profile %s", event, getattr(profile, "id", None))


identity.on_auth_state_change(_log_auth_event)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = set_request_id(request.headers.get("x-request-id"))
    start = time.monotonic()
    response = await call_next(request)
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "%s %s -> %s (%.1fms)",
        request.method, request.url.path, response.status_code, elapsed_ms,
    )
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(BookShareError)
async def bookshare_error_handler(request: Request, exc: BookShareError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.get("/", response_class=HTMLResponse)
def read_root(request: Request, current: AuthSessionDep):
    # signed in: straight to the dashboard for the stored role
    if current.is_authenticated:
        return RedirectResponse(url=dashboard_url(current.role), status_code=303)

    return templates.TemplateResponse(
        request,
        "index.html",
        {"current_profile": None},
    )


app.include_router(auth.router)
app.include_router(books.router, prefix="/books")
app.include_router(requests.router, prefix="/requests")

app.include_router(pages.router)
app.include_router(ui.router)
