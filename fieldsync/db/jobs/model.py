"""
SQLAlchemy model for job records.
"""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fieldsync.db.database import Base


class Job(Base):
    """
    Local copy of a ServiceM8 job.

    Status transitions originate upstream; this table is only written by sync.
    """

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True, comment="ServiceM8 job UUID"
    )
    company_uuid: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True, comment="Owning ServiceM8 company UUID"
    )
    status: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    scheduled_date: Mapped[str | None] = mapped_column(
        String(32), nullable=True, comment="Upstream job date as sent by ServiceM8"
    )
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    quote_sent: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (Index("idx_jobs_company_status", "company_uuid", "status"),)

    def __repr__(self) -> str:
        return f"<Job(id={self.id}, uuid={self.uuid}, status={self.status})>"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "uuid": self.uuid,
            "company_uuid": self.company_uuid,
            "status": self.status,
            "description": self.description,
            "scheduled_date": self.scheduled_date,
            "address": self.address,
            "quote_sent": self.quote_sent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
