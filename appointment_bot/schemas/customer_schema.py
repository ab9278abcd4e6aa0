"""Tenant-scoped records: tenants, professionals, services and clients."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Tenant(BaseModel):
    """A company using the assistant through one messaging instance."""
    id: int
    name: str
    instance_name: str
    assistant_prompt: Optional[str] = None


class Professional(BaseModel):
    """
    Tenant-scoped worker with a weekly calendar.

    ``work_days`` uses Python weekday numbers (Monday=0 .. Sunday=6).
    """
    id: int
    tenant_id: int
    name: str
    active: bool = True
    work_days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5])
    work_start_time: str = "09:00"
    work_end_time: str = "18:00"


class Service(BaseModel):
    """Tenant-scoped offering."""
    id: int
    tenant_id: int
    name: str
    duration: int = 30
    price: Decimal = Decimal("0.00")


class Client(BaseModel):
    """Customer record, unique per tenant by normalized phone."""
    id: Optional[int] = None
    tenant_id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    notes: Optional[str] = None
