"""Record persistence contract and its default SQL implementation.

The chat pipeline only ever talks to a RecordStore. Every call is scoped to the
caller's identity; the store never returns another owner's invoices.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy import func, or_, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from invoice_chat.core.errors import Conflict, ExternalServiceError, RecordNotFound, ValidationError
from invoice_chat.models.invoice import Invoice

logger = logging.getLogger(__name__)

T = TypeVar("T")

WRITABLE_FIELDS = {"status", "notes"}

# Values a NULL column reads as, matching _to_record
FIELD_DEFAULTS = {"status": "pending", "notes": ""}


@dataclass
class InvoiceRecord:
    id: str
    invoice_number: str
    vendor: str
    amount: float
    status: str
    issue_date: date | None = None
    due_date: date | None = None
    description: str | None = None
    category: str | None = None
    notes: str = ""

    @property
    def label(self) -> str:
        return self.invoice_number or self.id

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("issue_date", "due_date"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass
class RecordFilters:
    status: list[str] = field(default_factory=list)
    vendor: list[str] = field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    amount_min: float | None = None
    amount_max: float | None = None
    search: str | None = None
    limit: int = 20


@dataclass
class RecordPage:
    records: list[InvoiceRecord]
    total: int


class RecordStore(ABC):
    @abstractmethod
    async def read(self, owner_id: str, record_ref: str) -> InvoiceRecord:
        """Read one invoice by id or invoice number. Raises RecordNotFound."""
        ...

    @abstractmethod
    async def search(self, owner_id: str, filters: RecordFilters) -> RecordPage:
        """Return the newest matching invoices and the total match count."""
        ...

    @abstractmethod
    async def write(
        self, owner_id: str, record_id: str, patch: dict[str, Any], expected: dict[str, Any] | None = None
    ) -> InvoiceRecord:
        """Apply a field patch and return the updated invoice.

        When expected is given the patch only applies if every listed field still
        holds that value at write time; otherwise nothing changes and Conflict is raised.
        """
        ...


def _to_record(row: Invoice) -> InvoiceRecord:
    return InvoiceRecord(
        id=row.id,
        invoice_number=row.invoice_number or row.id,
        vendor=row.vendor,
        amount=float(row.amount or 0),
        status=row.status or "pending",
        issue_date=row.issue_date,
        due_date=row.due_date,
        description=row.description,
        category=row.category,
        notes=row.notes or "",
    )


class SQLRecordStore(RecordStore):
    """RecordStore backed by the local Invoice table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    async def read(self, owner_id: str, record_ref: str) -> InvoiceRecord:
        return await asyncio.to_thread(self._read, owner_id, record_ref)

    async def search(self, owner_id: str, filters: RecordFilters) -> RecordPage:
        return await asyncio.to_thread(self._search, owner_id, filters)

    async def write(
        self, owner_id: str, record_id: str, patch: dict[str, Any], expected: dict[str, Any] | None = None
    ) -> InvoiceRecord:
        return await asyncio.to_thread(self._write, owner_id, record_id, patch, expected or {})

    def _find(self, session: Session, owner_id: str, record_ref: str) -> Invoice:
        row = session.exec(
            select(Invoice).where(
                Invoice.owner_id == owner_id,
                or_(
                    Invoice.id == record_ref,
                    func.lower(Invoice.invoice_number) == record_ref.lower(),
                ),
            )
        ).first()
        if row is None:
            raise RecordNotFound(record_ref)
        return row

    def _read(self, owner_id: str, record_ref: str) -> InvoiceRecord:
        with Session(self.engine) as session:
            return _to_record(self._find(session, owner_id, record_ref))

    def _search(self, owner_id: str, filters: RecordFilters) -> RecordPage:
        query = select(Invoice).where(Invoice.owner_id == owner_id)
        if filters.status:
            query = query.where(col(Invoice.status).in_(filters.status))
        if filters.vendor:
            query = query.where(or_(*[col(Invoice.vendor).ilike(f"%{v}%") for v in filters.vendor]))
        if filters.date_from:
            query = query.where(Invoice.issue_date >= filters.date_from)
        if filters.date_to:
            query = query.where(Invoice.issue_date <= filters.date_to)
        if filters.amount_min is not None:
            query = query.where(Invoice.amount >= filters.amount_min)
        if filters.amount_max is not None:
            query = query.where(Invoice.amount <= filters.amount_max)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(
                    col(Invoice.invoice_number).ilike(pattern),
                    col(Invoice.vendor).ilike(pattern),
                    col(Invoice.description).ilike(pattern),
                )
            )

        with Session(self.engine) as session:
            total = session.exec(select(func.count()).select_from(query.subquery())).one()
            rows = session.exec(
                query.order_by(col(Invoice.created_at).desc()).limit(filters.limit)
            ).all()
            return RecordPage(records=[_to_record(r) for r in rows], total=total)

    def _write(
        self, owner_id: str, record_id: str, patch: dict[str, Any], expected: dict[str, Any]
    ) -> InvoiceRecord:
        unknown = (set(patch) | set(expected)) - WRITABLE_FIELDS
        if unknown:
            raise ValidationError(sorted(unknown)[0], "field is not writable")

        with Session(self.engine) as session:
            row = self._find(session, owner_id, record_id)
            # Baseline check and write are one conditional UPDATE
            statement = update(Invoice).where(Invoice.id == row.id, Invoice.owner_id == owner_id)
            for key, value in expected.items():
                column = getattr(Invoice, key)
                statement = statement.where(func.coalesce(column, FIELD_DEFAULTS[key]) == value)
            statement = statement.values(**patch, updated_at=datetime.now(timezone.utc))
            result = session.execute(statement.execution_options(synchronize_session=False))

            if result.rowcount == 0:
                session.rollback()
                current = _to_record(self._find(session, owner_id, record_id))
                if not expected:
                    raise RecordNotFound(record_id)
                key = next((k for k, v in expected.items() if getattr(current, k) != v), next(iter(expected)))
                raise Conflict(current.label, expected[key], getattr(current, key))

            session.commit()
            session.refresh(row)
            return _to_record(row)


class GuardedRecordStore(RecordStore):
    """Bounds every call with a timeout and retries a failed call once.

    A write that times out is not retried: the worker thread may still have
    committed it, so its outcome is unknown and left to the caller to check.
    """

    def __init__(self, inner: RecordStore, timeout: float, backoff: float) -> None:
        self.inner = inner
        self.timeout = timeout
        self.backoff = backoff

    async def _call(
        self, operation: str, factory: Callable[[], Awaitable[T]], retry_timeout: bool = True
    ) -> T:
        last_error: Exception | None = None
        for attempt in range(2):
            try:
                return await asyncio.wait_for(factory(), timeout=self.timeout)
            except (asyncio.TimeoutError, SQLAlchemyError, OSError) as e:
                last_error = e
                logger.warning(f"Invoice store {operation} failed (attempt {attempt + 1}/2): {e!r}")
                if isinstance(e, asyncio.TimeoutError) and not retry_timeout:
                    break
                if attempt == 0:
                    await asyncio.sleep(self.backoff)
        reason = "timed out" if isinstance(last_error, asyncio.TimeoutError) else "storage error"
        raise ExternalServiceError("invoice store", f"{operation} {reason}")

    async def read(self, owner_id: str, record_ref: str) -> InvoiceRecord:
        return await self._call("read", lambda: self.inner.read(owner_id, record_ref))

    async def search(self, owner_id: str, filters: RecordFilters) -> RecordPage:
        return await self._call("search", lambda: self.inner.search(owner_id, filters))

    async def write(
        self, owner_id: str, record_id: str, patch: dict[str, Any], expected: dict[str, Any] | None = None
    ) -> InvoiceRecord:
        return await self._call(
            "write", lambda: self.inner.write(owner_id, record_id, patch, expected), retry_timeout=False
        )
