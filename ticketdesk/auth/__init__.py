# auth/__init__.py
from typing import Optional

import httpx

from ..config import Settings
from .base import AuthProvider, User, safe_next
from ._local import LocalProvider
from ._oidc import OIDCProvider


# Factory keeps server.py provider-agnostic:
def new_provider(settings: Settings,
                 http: Optional[httpx.AsyncClient] = None) -> AuthProvider:
    if settings.uses_oidc:
        if not settings.auth_client_id:
            raise RuntimeError(
                "OIDC login requires AUTH_CLIENT_ID next to "
                "AUTH_ISSUER_BASE_URL"
            )
        return OIDCProvider(
            issuer_base_url=settings.auth_issuer_base_url,
            client_id=settings.auth_client_id,
            base_url=settings.base_url,
            http=http,
        )
    return LocalProvider(username=settings.staff_username,
                         password=settings.staff_password)


__all__ = [
    "AuthProvider", "User", "LocalProvider", "OIDCProvider", "new_provider",
    "safe_next",
]
