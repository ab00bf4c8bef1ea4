from fieldsync.db.jobs.model import Job
from fieldsync.db.jobs.repository import JobRepository

__all__ = ["Job", "JobRepository"]
