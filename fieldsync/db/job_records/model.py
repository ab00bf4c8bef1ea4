"""
SQLAlchemy model for per-job child records.

Activities, attachments and materials share one table and are told apart by
the ``kind`` discriminant.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fieldsync.db.database import Base


class JobRecordKind(str, Enum):
    """Discriminant for job child records."""

    ACTIVITY = "activity"
    ATTACHMENT = "attachment"
    MATERIAL = "material"


class JobRecord(Base):
    """A technician activity, uploaded file or billable material on a job."""

    __tablename__ = "job_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_uuid: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    uuid: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="ServiceM8 UUID of the child record"
    )
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    __table_args__ = (UniqueConstraint("kind", "uuid", name="uq_job_records_kind_uuid"),)

    def __repr__(self) -> str:
        return f"<JobRecord(id={self.id}, kind={self.kind}, uuid={self.uuid})>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "job_uuid": self.job_uuid,
            "kind": self.kind,
            "uuid": self.uuid,
            "data": self.data,
            "synced_at": self.synced_at.isoformat() if self.synced_at else None,
        }
