from fieldsync.db.job_records.model import JobRecord, JobRecordKind
from fieldsync.db.job_records.repository import JobRecordRepository

__all__ = ["JobRecord", "JobRecordKind", "JobRecordRepository"]
