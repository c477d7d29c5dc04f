"""Tests for the record store and its timeout/retry guard."""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from invoice_chat.core.errors import Conflict, ExternalServiceError, RecordNotFound, ValidationError
from invoice_chat.services.records import GuardedRecordStore, RecordFilters, RecordStore


class FlakyStore(RecordStore):
    """Fails the first `failures` calls, then delegates."""

    def __init__(self, inner, failures=1, hang=False):
        self.inner = inner
        self.failures = failures
        self.hang = hang
        self.calls = 0

    async def _maybe_fail(self):
        self.calls += 1
        if self.calls <= self.failures:
            if self.hang:
                await asyncio.sleep(1)
            raise OperationalError("SELECT", {}, Exception("database is locked"))

    async def read(self, owner_id, record_ref):
        await self._maybe_fail()
        return await self.inner.read(owner_id, record_ref)

    async def search(self, owner_id, filters):
        await self._maybe_fail()
        return await self.inner.search(owner_id, filters)

    async def write(self, owner_id, record_id, patch, expected=None):
        await self._maybe_fail()
        return await self.inner.write(owner_id, record_id, patch, expected)


@pytest.mark.asyncio
async def test_read_by_id_or_invoice_number(records, invoices):
    assert (await records.read("user-1", "inv-101")).vendor == "Globex"
    assert (await records.read("user-1", "inv-101")).label == "INV-101"
    assert (await records.read("user-1", "INV-101")).id == "inv-101"


@pytest.mark.asyncio
async def test_read_is_owner_scoped(records, invoices):
    with pytest.raises(RecordNotFound):
        await records.read("user-1", "INV-900")


@pytest.mark.asyncio
async def test_search_orders_and_counts(records, invoices):
    page = await records.search("user-1", RecordFilters(status=["pending", "overdue"], limit=1))
    assert page.total == 2
    assert len(page.records) == 1


@pytest.mark.asyncio
async def test_only_status_and_notes_are_writable(records, invoices):
    with pytest.raises(ValidationError) as exc:
        await records.write("user-1", "inv-100", {"amount": 0})
    assert exc.value.field == "amount"


@pytest.mark.asyncio
async def test_guard_retries_once(records, invoices):
    flaky = FlakyStore(records, failures=1)
    guarded = GuardedRecordStore(flaky, timeout=1.0, backoff=0)

    record = await guarded.read("user-1", "INV-100")

    assert record.id == "inv-100"
    assert flaky.calls == 2


@pytest.mark.asyncio
async def test_guard_gives_up_after_second_failure(records, invoices):
    flaky = FlakyStore(records, failures=2)
    guarded = GuardedRecordStore(flaky, timeout=1.0, backoff=0)

    with pytest.raises(ExternalServiceError) as exc:
        await guarded.write("user-1", "inv-100", {"status": "paid"})

    assert exc.value.service == "invoice store"
    assert flaky.calls == 2
    assert (await records.read("user-1", "inv-100")).status == "approved"


@pytest.mark.asyncio
async def test_guard_times_out(records, invoices):
    flaky = FlakyStore(records, failures=2, hang=True)
    guarded = GuardedRecordStore(flaky, timeout=0.05, backoff=0)

    with pytest.raises(ExternalServiceError) as exc:
        await guarded.search("user-1", RecordFilters())
    assert "timed out" in exc.value.message


@pytest.mark.asyncio
async def test_guard_does_not_retry_domain_errors(records, invoices):
    flaky = FlakyStore(records, failures=0)
    guarded = GuardedRecordStore(flaky, timeout=1.0, backoff=0)

    with pytest.raises(RecordNotFound):
        await guarded.read("user-1", "INV-404")
    assert flaky.calls == 1


@pytest.mark.asyncio
async def test_conditional_write_applies_when_baseline_holds(records, invoices):
    record = await records.write("user-1", "INV-100", {"status": "paid"}, expected={"status": "approved"})
    assert record.status == "paid"


@pytest.mark.asyncio
async def test_conditional_write_conflicts_on_changed_baseline(records, invoices):
    await records.write("user-1", "inv-100", {"status": "in_review"})

    with pytest.raises(Conflict) as exc:
        await records.write("user-1", "inv-100", {"status": "paid"}, expected={"status": "approved"})

    assert exc.value.expected == "approved"
    assert exc.value.actual == "in_review"
    assert (await records.read("user-1", "inv-100")).status == "in_review"


@pytest.mark.asyncio
async def test_conditional_write_on_empty_notes(records, invoices):
    record = await records.write("user-1", "inv-101", {"notes": "first"}, expected={"notes": ""})
    assert record.notes == "first"

    with pytest.raises(Conflict):
        await records.write("user-1", "inv-101", {"notes": "second"}, expected={"notes": ""})


@pytest.mark.asyncio
async def test_guard_does_not_retry_timed_out_write(records, invoices):
    flaky = FlakyStore(records, failures=2, hang=True)
    guarded = GuardedRecordStore(flaky, timeout=0.05, backoff=0)

    with pytest.raises(ExternalServiceError) as exc:
        await guarded.write("user-1", "inv-100", {"status": "paid"})

    assert exc.value.message == "write timed out"
    assert flaky.calls == 1
