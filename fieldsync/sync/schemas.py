"""
Pydantic schemas for sync results.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from fieldsync.db.job_records.model import JobRecordKind
from fieldsync.sync.constants import SyncType


class SyncStatus(BaseModel):
    """Outcome of one batch sync."""

    last_sync: datetime = Field(default_factory=lambda: datetime.now(UTC))
    total_records: int = 0
    synced_records: int = 0
    failed_records: int = 0
    errors: list[str] = Field(default_factory=list)
    aborted: bool = Field(
        default=False, description="True when the batch could not be fetched at all"
    )

    def record_failure(self, message: str) -> None:
        self.failed_records += 1
        self.errors.append(message)

    def abort(self, message: str) -> None:
        self.aborted = True
        self.errors.append(message)

    @property
    def error_count(self) -> int:
        return self.failed_records + (1 if self.aborted else 0)


@dataclass(frozen=True)
class CompanyIndex:
    """Company UUIDs known locally once the company stage has completed.

    Job and quote stages take this as input, so they cannot run before
    companies have been synced.
    """

    company_uuids: tuple[str, ...]


class FullSyncResult(BaseModel):
    companies: SyncStatus
    jobs: list[SyncStatus] = Field(default_factory=list)
    quotes: list[SyncStatus] = Field(default_factory=list)

    def batches(self) -> list[SyncStatus]:
        return [self.companies, *self.jobs, *self.quotes]

    @property
    def processed(self) -> int:
        return sum(batch.synced_records for batch in self.batches())

    @property
    def errors(self) -> int:
        return sum(batch.error_count for batch in self.batches())


class SyncTriggerResult(BaseModel):
    type: SyncType
    processed: int
    errors: int


class CompanySyncStatus(BaseModel):
    """Local view of how a company's data was last synced."""

    company_uuid: str
    last_sync: datetime | None
    total_jobs: int
    total_quotes: int
    last_error: str | None


class SyncRequest(BaseModel):
    type: SyncType = SyncType.INCREMENTAL


class JobRecordResponse(BaseModel):
    """Stored activity, attachment or material."""

    model_config = ConfigDict(from_attributes=True)

    kind: JobRecordKind
    uuid: str
    job_uuid: str
    data: dict[str, Any]
    synced_at: datetime
