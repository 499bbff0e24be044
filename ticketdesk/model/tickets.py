# model/tickets.py
"""
Ticket issuance and lookup on top of the ``tickets`` table.

- issue():     validate input, enforce the per-taxpayer quota, insert a ticket
- get_by_id(): exact lookup by ticket id
- count_all(), count_for(): aggregate counts

The quota is enforced by the store, not by the read-then-write below: every
ticket occupies one of MAX_TICKETS_PER_TAXPAYER slots of its taxpayer id and
(taxpayer_id, slot) is unique. Two issuers that read the same count pick the
same slot; the second insert fails on the constraint, rolls back, recounts and
tries again. Each conflict means one more slot is taken, so the loop in
issue() terminates after at most MAX_TICKETS_PER_TAXPAYER + 1 attempts.
"""

from __future__ import annotations
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import (
    InvalidName, InvalidTaxpayerId, NotFound, QuotaExceeded, StoreUnavailable
)
from ..helpers import as_utc, is_valid_name, is_valid_taxpayer_id
from ..infra.logs import get_logger
from ..infra.sql import GatedAsyncSession
from .ticket import MAX_TICKETS_PER_TAXPAYER

log = get_logger(__name__)


@dataclass(frozen=True)
class TicketRecord:
    id: str
    taxpayer_id: str
    first_name: str
    last_name: str
    created_at: datetime


# ------------------------------------------------------------------------------
# SQL
# ------------------------------------------------------------------------------

SQL_COUNT_ALL = text("SELECT COUNT(*) FROM tickets")

SQL_COUNT_FOR = text("""
    SELECT COUNT(*) FROM tickets WHERE taxpayer_id = :taxpayer_id
""")

SQL_INSERT = text("""
    INSERT INTO tickets (id, taxpayer_id, first_name, last_name, slot)
    VALUES (:id, :taxpayer_id, :first_name, :last_name, :slot)
""")

SQL_SELECT_BY_ID = text("""
    SELECT id, taxpayer_id, first_name, last_name, created_at
    FROM tickets WHERE id = :id
""").columns(created_at=DateTime(timezone=True))


# UN-GATED internal functions
async def _count_for(db: AsyncSession, taxpayer_id: str) -> int:
    res = await db.execute(SQL_COUNT_FOR, {"taxpayer_id": taxpayer_id})
    return int(res.scalar_one())


async def _select_by_id(
    db: AsyncSession, ticket_id: str
) -> Optional[TicketRecord]:
    row = (
        await db.execute(SQL_SELECT_BY_ID, {"id": ticket_id})
    ).mappings().first()
    if row is None:
        return None
    return TicketRecord(
        id=row["id"],
        taxpayer_id=row["taxpayer_id"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        created_at=as_utc(row["created_at"]),
    )


# ------------------------------------------------------------------------------
# Issuance
# ------------------------------------------------------------------------------

def validate(taxpayer_id: str, first_name: str, last_name: str) -> None:
    if not is_valid_taxpayer_id(taxpayer_id):
        raise InvalidTaxpayerId()
    if not is_valid_name(first_name) or not is_valid_name(last_name):
        raise InvalidName()


async def issue(
    db: GatedAsyncSession,
    taxpayer_id: str,
    first_name: str,
    last_name: str,
) -> TicketRecord:
    """
    Create one ticket for `taxpayer_id`.
    Raises InvalidTaxpayerId / InvalidName before touching the store,
    QuotaExceeded when all slots are taken, StoreUnavailable on store errors.
    """
    validate(taxpayer_id, first_name, last_name)

    for attempt in range(MAX_TICKETS_PER_TAXPAYER + 1):
        try:
            async with db.gated():
                async with db.session.begin():
                    issued = await _count_for(db.session, taxpayer_id)
                    if issued >= MAX_TICKETS_PER_TAXPAYER:
                        log.info("quota reached for taxpayer %s (%d tickets)",
                                 taxpayer_id, issued)
                        raise QuotaExceeded()

                    ticket_id = str(uuid.uuid4())
                    await db.session.execute(SQL_INSERT, {
                        "id": ticket_id,
                        "taxpayer_id": taxpayer_id,
                        "first_name": first_name,
                        "last_name": last_name,
                        "slot": issued + 1,
                    })
                    ticket = await _select_by_id(db.session, ticket_id)
        except IntegrityError:
            # someone else took that slot; recount
            log.debug("slot %d for taxpayer %s taken, retry #%d",
                      issued + 1, taxpayer_id, attempt + 1)
            continue
        except (SQLAlchemyError, OSError) as e:
            log.error("issuing ticket failed", exc_info=True)
            raise StoreUnavailable(f"Error generating ticket: {e}") from e

        log.info("issued ticket %s for taxpayer %s (slot %d)",
                 ticket.id, taxpayer_id, issued + 1)
        return ticket

    # every retry was caused by a slot being taken, so none are left
    raise QuotaExceeded()


# ------------------------------------------------------------------------------
# Read APIs
# ------------------------------------------------------------------------------

async def get_by_id(db: GatedAsyncSession, ticket_id: str) -> TicketRecord:
    try:
        async with db.gated():
            async with db.session.begin():
                ticket = await _select_by_id(db.session, ticket_id)
    except (SQLAlchemyError, OSError) as e:
        log.error("fetching ticket %s failed", ticket_id, exc_info=True)
        raise StoreUnavailable(f"Error fetching ticket details: {e}") from e
    if ticket is None:
        raise NotFound()
    return ticket


async def count_all(db: GatedAsyncSession) -> int:
    try:
        async with db.gated():
            async with db.session.begin():
                total = (await db.session.execute(SQL_COUNT_ALL)).scalar_one()
    except (SQLAlchemyError, OSError) as e:
        log.error("counting tickets failed", exc_info=True)
        raise StoreUnavailable(f"Error fetching total tickets: {e}") from e
    return int(total)


async def count_for(db: GatedAsyncSession, taxpayer_id: str) -> int:
    try:
        async with db.gated():
            async with db.session.begin():
                return await _count_for(db.session, taxpayer_id)
    except (SQLAlchemyError, OSError) as e:
        log.error("counting tickets for %s failed", taxpayer_id,
                  exc_info=True)
        raise StoreUnavailable(f"Error counting tickets: {e}") from e
