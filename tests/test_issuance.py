import asyncio

import pytest

from ticketdesk.errors import (
    InvalidName, InvalidTaxpayerId, QuotaExceeded, StoreUnavailable
)
from ticketdesk.infra.sql import open_database
from ticketdesk.model import tickets
from ticketdesk.model.ticket import MAX_TICKETS_PER_TAXPAYER

OIB = "12345678901"


@pytest.mark.asyncio
@pytest.mark.parametrize("taxpayer_id", [
    "123", "", "1234567890", "123456789012", "1234567890a", " 12345678901",
    "12345678901\n", "١٢٣٤٥٦٧٨٩٠١",
])
async def test_invalid_taxpayer_id_inserts_nothing(store, taxpayer_id):
    async with store.session() as db:
        with pytest.raises(InvalidTaxpayerId):
            await tickets.issue(db, taxpayer_id, "Ana", "Kovac")
        assert await tickets.count_all(db) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("first_name,last_name", [
    ("Ana1", "Kovac"),
    ("Ana", "Kovač"),
    ("Ana Marija", "Kovac"),
    ("Ana", "Kovac-Horvat"),
    ("", "Kovac"),
    ("Ana", ""),
])
async def test_invalid_name_inserts_nothing(store, first_name, last_name):
    async with store.session() as db:
        with pytest.raises(InvalidName):
            await tickets.issue(db, OIB, first_name, last_name)
        assert await tickets.count_all(db) == 0


@pytest.mark.asyncio
async def test_taxpayer_id_is_checked_before_names(store):
    async with store.session() as db:
        with pytest.raises(InvalidTaxpayerId):
            await tickets.issue(db, "123", "Ana1", "Kovac")


@pytest.mark.asyncio
async def test_quota_of_three_per_taxpayer(store):
    async with store.session() as db:
        for expected in range(1, MAX_TICKETS_PER_TAXPAYER + 1):
            ticket = await tickets.issue(db, OIB, "Ana", "Kovac")
            assert ticket.taxpayer_id == OIB
            assert await tickets.count_for(db, OIB) == expected

        with pytest.raises(QuotaExceeded):
            await tickets.issue(db, OIB, "Ana", "Kovac")
        assert await tickets.count_for(db, OIB) == 3

        # other taxpayers are unaffected
        await tickets.issue(db, "10987654321", "Ivo", "Horvat")
        assert await tickets.count_all(db) == 4


@pytest.mark.asyncio
async def test_issued_ids_are_unique(store):
    async with store.session() as db:
        ids = {
            (await tickets.issue(db, f"1000000000{i}", "Ana", "Kovac")).id
            for i in range(10)
        }
    assert len(ids) == 10


@pytest.mark.asyncio
async def test_quota_holds_under_concurrent_issuance(store):
    async def attempt():
        async with store.session() as db:
            try:
                await tickets.issue(db, OIB, "Ana", "Kovac")
            except QuotaExceeded:
                return "quota"
            return "ok"

    results = await asyncio.gather(*(attempt() for _ in range(6)))

    assert results.count("ok") == MAX_TICKETS_PER_TAXPAYER
    assert results.count("quota") == 6 - MAX_TICKETS_PER_TAXPAYER
    async with store.session() as db:
        assert await tickets.count_for(db, OIB) == MAX_TICKETS_PER_TAXPAYER


@pytest.mark.asyncio
async def test_store_constraint_rejects_a_fourth_slot(store):
    from sqlalchemy import text
    from sqlalchemy.exc import IntegrityError

    async with store.session() as db:
        with pytest.raises(IntegrityError):
            async with db.session.begin():
                await db.session.execute(text(
                    "INSERT INTO tickets "
                    "(id, taxpayer_id, first_name, last_name, slot) "
                    "VALUES ('x', :t, 'Ana', 'Kovac', 4)"
                ), {"t": OIB})


@pytest.mark.asyncio
async def test_unreachable_store_is_reported(tmp_path):
    store = open_database(
        f"sqlite:///{tmp_path / 'missing' / 'tickets.db'}"
    )
    try:
        async with store.session() as db:
            with pytest.raises(StoreUnavailable) as exc:
                await tickets.issue(db, OIB, "Ana", "Kovac")
    finally:
        await store.dispose()
    assert exc.value.message.startswith("Error generating ticket: ")
    assert exc.value.status_code == 500
