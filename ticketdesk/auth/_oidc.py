from __future__ import annotations
import secrets
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from fastapi import HTTPException, Request
from fastapi.responses import RedirectResponse
from jose import JWTError, jwt
from starlette.responses import Response
from starlette.status import HTTP_303_SEE_OTHER

from ..helpers import ct_equal
from ..infra.logs import get_logger
from .base import AuthProvider, safe_next

log = get_logger(__name__)

SCOPE = "openid profile email"
ASYMMETRIC_ALGS = ("RS", "PS", "ES")


class OIDCProvider(AuthProvider):
    """
    OpenID Connect login with the implicit `id_token` + `form_post` flow:

    - GET /login redirects to the provider with a fresh state and nonce
    - the provider POSTs `id_token` and `state` back to /callback
    - the token is verified against the provider's JWKS (signature,
      audience, issuer) and the nonce is compared with the session's
    """
    authenticate_path = "/callback"
    name = "oidc"

    def __init__(
        self, *,
        issuer_base_url: str,
        client_id: str,
        base_url: str,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.issuer_base_url = issuer_base_url.rstrip("/")
        self.client_id = client_id
        self.base_url = base_url.rstrip("/")
        self.http = http
        self._metadata: Optional[Dict[str, Any]] = None
        self._jwks: Optional[Dict[str, Any]] = None

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}{self.authenticate_path}"

    def _client(self, request: Request) -> httpx.AsyncClient:
        if self.http is not None:
            return self.http
        return request.app.state.http

    async def metadata(self, request: Request) -> Dict[str, Any]:
        if self._metadata is None:
            url = f"{self.issuer_base_url}/.well-known/openid-configuration"
            r = await self._client(request).get(url)
            r.raise_for_status()
            self._metadata = r.json()
        return self._metadata

    async def jwks(self, request: Request) -> Dict[str, Any]:
        if self._jwks is None:
            meta = await self.metadata(request)
            r = await self._client(request).get(meta["jwks_uri"])
            r.raise_for_status()
            self._jwks = r.json()
        return self._jwks

    def _algorithms(self, meta: Dict[str, Any]) -> List[str]:
        supported = meta.get("id_token_signing_alg_values_supported") or []
        algs = [a for a in supported if a.startswith(ASYMMETRIC_ALGS)]
        return algs or ["RS256"]

    def _decode(self, id_token: str, keys: Dict[str, Any],
                meta: Dict[str, Any]) -> Dict[str, Any]:
        return jwt.decode(
            id_token,
            keys,
            algorithms=self._algorithms(meta),
            audience=self.client_id,
            issuer=meta["issuer"],
        )

    async def login(self, request: Request, next: str) -> Response:
        meta = await self.metadata(request)
        state = secrets.token_urlsafe(24)
        nonce = secrets.token_urlsafe(24)
        request.session["oidc"] = {
            "state": state, "nonce": nonce, "next": safe_next(next)
        }
        params = {
            "client_id": self.client_id,
            "response_type": "id_token",
            "response_mode": "form_post",
            "scope": SCOPE,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "nonce": nonce,
        }
        return RedirectResponse(
            url=f"{meta['authorization_endpoint']}?{urlencode(params)}",
            status_code=302,
        )

    async def authenticate(self, request: Request) -> Response:
        form = await request.form()
        pending = request.session.pop("oidc", None)
        state = str(form.get("state") or "")
        id_token = str(form.get("id_token") or "")

        if not pending or not ct_equal(state, pending["state"]):
            log.warning("login callback with unknown state")
            raise HTTPException(400, detail="Invalid login response.")
        if not id_token:
            log.warning("login callback without id_token: %s",
                        form.get("error_description") or form.get("error"))
            raise HTTPException(400, detail="Invalid login response.")

        meta = await self.metadata(request)
        keys = await self.jwks(request)
        try:
            claims = self._decode(id_token, keys, meta)
        except JWTError as e:
            if _knows_kid(keys, id_token):
                log.warning("rejected id_token: %s", e)
                raise HTTPException(400, detail="Invalid login response.") from e
            # the provider rotated its signing keys; refetch once
            log.info("id_token signed with an unknown key, refreshing JWKS")
            self._jwks = None
            keys = await self.jwks(request)
            try:
                claims = self._decode(id_token, keys, meta)
            except JWTError as e:
                log.warning("rejected id_token: %s", e)
                raise HTTPException(400, detail="Invalid login response.") from e

        if not ct_equal(str(claims.get("nonce") or ""), pending["nonce"]):
            log.warning("id_token nonce mismatch")
            raise HTTPException(400, detail="Invalid login response.")

        sub = str(claims["sub"])
        name = (
            claims.get("name") or claims.get("nickname")
            or claims.get("email") or sub
        )
        self.start_session(request, {"sub": sub, "name": str(name)})
        return RedirectResponse(url=pending["next"],
                                status_code=HTTP_303_SEE_OTHER)

    async def logout(self, request: Request) -> Response:
        request.session.clear()
        try:
            meta = await self.metadata(request)
        except httpx.HTTPError as e:
            log.warning("identity provider unreachable on logout: %s", e)
            return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)
        end_session = meta.get("end_session_endpoint")
        if not end_session:
            return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)
        params = {
            "client_id": self.client_id,
            "post_logout_redirect_uri": self.base_url,
        }
        return RedirectResponse(url=f"{end_session}?{urlencode(params)}",
                                status_code=HTTP_303_SEE_OTHER)


def _knows_kid(keys: Dict[str, Any], id_token: str) -> bool:
    """False when the token names a key id the cached key set lacks."""
    try:
        kid = jwt.get_unverified_header(id_token).get("kid")
    except JWTError:
        return True
    if kid is None:
        return True
    return any(k.get("kid") == kid for k in keys.get("keys", []))
