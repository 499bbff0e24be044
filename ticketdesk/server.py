from __future__ import annotations
from typing import AsyncIterator, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Form, Request
from fastapi.responses import (
    HTMLResponse, PlainTextResponse, RedirectResponse
)
from fastapi.staticfiles import StaticFiles
from starlette.middleware.sessions import SessionMiddleware
from starlette.status import HTTP_303_SEE_OTHER

from .auth import AuthProvider, User, new_provider, safe_next
from .config import Settings
from .errors import TicketError
from .helpers import format_created_at, ticket_url
from .infra.logs import configure_logging, get_logger
from .infra.sql import GatedAsyncSession, open_database
from .model import tickets
from .model.ticket import Base
from .qr import qr_data_url
from .views import STATIC_DIR, templates

log = get_logger(__name__)

router = APIRouter()


# ----------------------------
# Dependencies
# ----------------------------
async def tickets_db(request: Request) -> AsyncIterator[GatedAsyncSession]:
    async with request.app.state.db.session() as db:
        yield db


def auth_provider(request: Request) -> AuthProvider:
    return request.app.state.auth


def require_user(request: Request) -> User:
    return request.app.state.auth.require_auth(request)


def settings_of(request: Request) -> Settings:
    return request.app.state.settings


# ----------------------------
# Landing page + form
# ----------------------------
@router.get("/", response_class=HTMLResponse)
async def landing_page(
    request: Request,
    db: GatedAsyncSession = Depends(tickets_db),
    auth: AuthProvider = Depends(auth_provider),
):
    total = await tickets.count_all(db)
    return templates.TemplateResponse(
        request, "index.html",
        {
            "total_tickets": total,
            "user": auth.current_user(request),
        },
    )


@router.get("/generate-ticket", response_class=HTMLResponse)
async def generate_ticket_page(
    request: Request,
    auth: AuthProvider = Depends(auth_provider),
):
    return templates.TemplateResponse(
        request, "generate-ticket.html",
        {"user": auth.current_user(request)},
    )


# ----------------------------
# Issuance
# ----------------------------
@router.post("/generate")
async def generate(
    taxpayer_id: str = Form("", alias="taxpayerId"),
    first_name: str = Form("", alias="firstName"),
    last_name: str = Form("", alias="lastName"),
    user: User = Depends(require_user),
    db: GatedAsyncSession = Depends(tickets_db),
):
    ticket = await tickets.issue(db, taxpayer_id, first_name, last_name)
    return RedirectResponse(
        url=f"/generate/{ticket.id}",
        status_code=HTTP_303_SEE_OTHER,
    )


# ----------------------------
# Lookup: QR code + full details
# ----------------------------
@router.get("/generate/{ticket_id}", response_class=HTMLResponse)
async def ticket_qr_page(
    request: Request,
    ticket_id: str,
    user: User = Depends(require_user),
    db: GatedAsyncSession = Depends(tickets_db),
    settings: Settings = Depends(settings_of),
):
    ticket = await tickets.get_by_id(db, ticket_id)
    link = ticket_url(settings.base_url, ticket.id)
    return templates.TemplateResponse(
        request, "ticket.html",
        {
            "qr_code": qr_data_url(link),
            "ticket_link": link,
            "user": user,
        },
    )


@router.get("/ticket/{ticket_id}", response_class=HTMLResponse)
async def ticket_details_page(
    request: Request,
    ticket_id: str,
    user: User = Depends(require_user),
    db: GatedAsyncSession = Depends(tickets_db),
):
    ticket = await tickets.get_by_id(db, ticket_id)
    return templates.TemplateResponse(
        request, "ticket-details.html",
        {
            "taxpayer_id": ticket.taxpayer_id,
            "first_name": ticket.first_name,
            "last_name": ticket.last_name,
            "created_at": format_created_at(ticket.created_at),
            "user": user,
        },
    )


# ----------------------------
# Login / logout
# ----------------------------
@router.get("/login")
async def login(
    request: Request,
    next: Optional[str] = "/",
    auth: AuthProvider = Depends(auth_provider),
):
    return await auth.login(request, safe_next(next))


@router.get("/callback")
async def callback():
    return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)


@router.get("/logout")
async def logout(
    request: Request,
    auth: AuthProvider = Depends(auth_provider),
):
    return await auth.logout(request)


async def _authenticate(
    request: Request,
    auth: AuthProvider = Depends(auth_provider),
):
    return await auth.authenticate(request)


# ----------------------------
# Errors
# ----------------------------
async def _ticket_error(request: Request, exc: TicketError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path,
                  exc.message)
    else:
        log.info("%s %s rejected: %s", request.method, request.url.path,
                 exc.message)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


# ----------------------------
# App factory
# ----------------------------
def create_app(
    settings: Optional[Settings] = None,
    auth: Optional[AuthProvider] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)
    db = open_database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        gate_limit=settings.db_gate_limit,
    )
    auth = auth or new_provider(settings)

    app = FastAPI(title="ticketdesk")
    app.state.settings = settings
    app.state.db = db
    app.state.auth = auth
    app.state.http = None

    app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret)
    app.include_router(router)
    app.add_api_route(auth.authenticate_path, _authenticate,
                      methods=["POST"])
    app.add_exception_handler(TicketError, _ticket_error)

    # ---
    # startup / shutdown
    # ---
    @app.on_event("startup")
    async def _say_hello():
        backend = db.engine.url.get_backend_name()
        log.info("ticketdesk is starting up (store: %s, gate: %d, auth: %s, "
                 "base: %s)", backend, db.gate_limit, auth.name,
                 settings.base_url)

    @app.on_event("startup")
    async def _db_init():
        # Create the tickets table + quota constraints
        async with db.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @app.on_event("startup")
    async def _http_client_start():
        app.state.http = httpx.AsyncClient(timeout=5.0)

    @app.on_event("shutdown")
    async def _http_client_stop():
        http = getattr(app.state, "http", None)
        if http is not None:
            await http.aclose()
            app.state.http = None

    @app.on_event("shutdown")
    async def _db_stop():
        await db.dispose()

    return app
