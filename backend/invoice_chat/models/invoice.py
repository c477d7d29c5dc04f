"""Invoice table backing the default SQL record store."""

from datetime import date, datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Invoice(SQLModel, table=True):
    id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    invoice_number: Optional[str] = Field(default=None, index=True)
    vendor: str = Field(default="Unknown", index=True)
    amount: float = Field(default=0.0)
    status: str = Field(default="pending", index=True)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    description: Optional[str] = None
    category: Optional[str] = None
    notes: str = Field(default="")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
