import re
from datetime import datetime, timezone
import hmac
from typing import Optional


# ----------------------------
# Helpers
# ----------------------------
TAXPAYER_ID_RE = re.compile(r"^[0-9]{11}$")
NAME_RE = re.compile(r"^[A-Za-z]+$")


def is_valid_taxpayer_id(value: Optional[str]) -> bool:
    if not value:
        return False
    return TAXPAYER_ID_RE.fullmatch(value) is not None


def is_valid_name(value: Optional[str]) -> bool:
    if not value:
        return False
    return NAME_RE.fullmatch(value) is not None


def as_utc(dt: datetime) -> datetime:
    # sqlite hands back naive UTC timestamps
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_created_at(dt: datetime) -> str:
    return as_utc(dt).strftime("%d/%m/%Y, %H:%M")


def ticket_url(base_url: str, ticket_id: str) -> str:
    return f"{base_url.rstrip('/')}/ticket/{ticket_id}"


def ct_equal(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode(), b.encode())
