"""
Pydantic schemas for ServiceM8 API payloads.

ServiceM8 sends most optional attributes only when they are set, so every
non-key field is optional and unknown fields are preserved. ``model_fields_set``
tells the sync layer which attributes were actually present in a payload.
"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from fieldsync.integrations.servicem8.constants import JobStatus

T = TypeVar("T")


class ServiceM8Model(BaseModel):
    """Base for upstream entities: keeps unknown attributes."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class Company(ServiceM8Model):
    uuid: str
    name: str | None = None
    address: str | None = None
    email: str | None = None
    phone: str | None = None
    mobile: str | None = None
    website: str | None = None
    notes: str | None = None
    is_active: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class JobActivity(ServiceM8Model):
    uuid: str
    job_uuid: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    staff_uuid: str | None = None
    activity_was_scheduled: int | None = None
    activity_type: str | None = None
    notes: str | None = None


class Staff(ServiceM8Model):
    uuid: str
    name: str | None = None
    mobile: str | None = None
    email: str | None = None
    is_active: int | None = None
    staff_type: str | None = None
    skills: list[str] | None = None


class Material(ServiceM8Model):
    uuid: str
    job_uuid: str | None = None
    name: str | None = None
    description: str | None = None
    quantity: float | None = None
    unit_cost: float | None = None
    total_cost: float | None = None
    category: str | None = None


class Attachment(ServiceM8Model):
    uuid: str
    job_uuid: str | None = None
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    category: str | None = None
    description: str | None = None
    uploaded_by: str | None = None
    upload_date: str | None = None
    download_url: str | None = None


class ServiceAgreement(ServiceM8Model):
    uuid: str
    company_uuid: str | None = None
    name: str | None = None
    description: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    is_active: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class RecurringJob(ServiceM8Model):
    uuid: str
    company_uuid: str | None = None
    name: str | None = None
    description: str | None = None
    frequency: str | None = None
    next_due_date: str | None = None
    is_active: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


class QuoteLineItem(ServiceM8Model):
    id: str
    description: str | None = None
    quantity: float | None = None
    unit_price: float | None = None
    total: float | None = None
    category: str | None = None


class Job(ServiceM8Model):
    uuid: str
    company_uuid: str | None = None
    status: str | None = None
    job_address: str | None = None
    job_description: str | None = None
    date: str | None = None
    quote_sent: int | None = None
    job_is_quoted: int | None = None
    generated_job_id: str | None = None
    quote_date: str | None = None
    quote_total_amount: float | None = None
    quote_approved: int | None = None
    quote_approved_date: str | None = None
    staff_assigned: str | None = None
    job_priority: str | None = None


class JobWithDetails(Job):
    """A job with optionally expanded related collections."""

    activities: list[JobActivity] | None = None
    attachments: list[Attachment] | None = None
    materials: list[Material] | None = None
    staff: Staff | None = None
    company: Company | None = None
    quote_line_items: list[QuoteLineItem] | None = None


class ListMeta(BaseModel):
    total: int | None = None
    page: int | None = None
    per_page: int | None = None


class ServiceM8ListResponse(BaseModel, Generic[T]):
    """List envelope; bare JSON arrays from the API are wrapped into ``data``."""

    data: list[T] = Field(default_factory=list)
    meta: ListMeta | None = None


class DateRange(BaseModel):
    start: str
    end: str


class JobQueryOptions(BaseModel):
    """Filters, expansions and pagination for job queries."""

    include_activities: bool = False
    include_attachments: bool = False
    include_materials: bool = False
    include_staff: bool = False
    date_range: DateRange | None = None
    status: list[JobStatus] | None = None
    staff_assigned: list[str] | None = None
    limit: int | None = None
    offset: int | None = None


class RateLimitInfo(BaseModel):
    limit: int
    remaining: int
    reset: datetime


class CacheStats(BaseModel):
    size: int
    keys: list[str]


class ApiStats(BaseModel):
    rate_limit: RateLimitInfo | None
    cache_stats: CacheStats


class QuoteDecision(BaseModel):
    """Request body for approving or rejecting a quote."""

    approved_line_items: list[str] | None = None
    client_notes: str | None = None
    reason: str | None = None
