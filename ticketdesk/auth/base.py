from abc import ABC, abstractmethod
from typing import Optional, TypedDict
from urllib.parse import quote

from fastapi import HTTPException, Request
from starlette.responses import Response


class User(TypedDict):
    sub: str
    name: str


def safe_next(target: Optional[str], default: str = "/") -> str:
    # only same-site relative paths; no //host or scheme-relative tricks
    if not target or not target.startswith("/") or target.startswith("//"):
        return default
    return target


# ----------------------------
# Auth Provider Interface
# ----------------------------
class AuthProvider(ABC):
    # path the login form / identity provider POSTs back to
    authenticate_path: str = "/callback"
    name: str = "abstract"

    @abstractmethod
    async def login(self, request: Request, next: str) -> Response:
        """Start a login: show a form or redirect to the identity provider."""

    @abstractmethod
    async def authenticate(self, request: Request) -> Response:
        """Verify the login response and put the user into the session."""

    @abstractmethod
    async def logout(self, request: Request) -> Response: ...

    def current_user(self, request: Request) -> Optional[User]:
        return request.session.get("user")

    def require_auth(self, request: Request) -> User:
        user = self.current_user(request)
        if user is None:
            # preserve where we wanted to go
            dest = quote(request.url.path)
            # a form POST must not be replayed against the login endpoint
            status = 307 if request.method == "GET" else 303
            raise HTTPException(status_code=status, detail="redirect to login",
                                headers={"Location": f"/login?next={dest}"})
        return user

    def start_session(self, request: Request, user: User) -> None:
        request.session["user"] = dict(user)
