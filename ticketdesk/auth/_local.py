from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.responses import Response
from starlette.status import HTTP_303_SEE_OTHER

from ..helpers import ct_equal
from ..infra.logs import get_logger
from ..views import templates
from .base import AuthProvider, safe_next

log = get_logger(__name__)


class LocalProvider(AuthProvider):
    """
    Username/password staff login kept in the signed session cookie.
    Used when no OpenID Connect issuer is configured.
    """
    authenticate_path = "/login"
    name = "local"

    def __init__(self, *, username: str, password: str) -> None:
        self.username = username
        self.password = password

    async def login(self, request: Request, next: str) -> Response:
        return templates.TemplateResponse(
            request, "login.html",
            {"next": next, "error": None,
             "user": self.current_user(request)},
        )

    async def authenticate(self, request: Request) -> Response:
        form = await request.form()
        username = str(form.get("username") or "").strip()
        password = str(form.get("password") or "")
        next = safe_next(str(form.get("next") or "/"))

        ok_user = ct_equal(username, self.username)
        ok_pass = ct_equal(password, self.password)
        if ok_user and ok_pass:
            self.start_session(request, {"sub": f"local|{username}",
                                         "name": username})
            return RedirectResponse(url=next, status_code=HTTP_303_SEE_OTHER)

        log.warning("failed staff login for %r", username)
        return templates.TemplateResponse(
            request, "login.html",
            {"next": next,
             "error": "Invalid credentials.", "user": None},
            status_code=401,
        )

    async def logout(self, request: Request) -> Response:
        request.session.clear()
        return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)
