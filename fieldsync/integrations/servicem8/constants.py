"""
ServiceM8 integration constants and enums.
"""

from enum import Enum


class ServiceM8Endpoint(str, Enum):
    """ServiceM8 REST endpoints (relative to the API base URL)."""

    JOBS = "/job.json"
    JOB = "/job/{uuid}.json"
    COMPANIES = "/company.json"
    COMPANY = "/company/{uuid}.json"
    JOB_ACTIVITIES = "/jobactivity.json"
    STAFF = "/staff.json"
    MATERIALS = "/material.json"
    ATTACHMENTS = "/attachment.json"
    SERVICE_AGREEMENTS = "/serviceagreement.json"
    RECURRING_JOBS = "/recurringjob.json"


class JobStatus(str, Enum):
    """Job lifecycle states reported by ServiceM8."""

    QUOTE = "Quote"
    WORK_ORDER = "Work Order"
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    EMERGENCY = "Emergency"
    ON_HOLD = "On Hold"


class ExpandRelation(str, Enum):
    """Related collections that can be expanded on a job query."""

    ACTIVITIES = "activities"
    ATTACHMENTS = "attachments"
    MATERIALS = "materials"
    STAFF = "staff"


RATE_LIMIT_LIMIT_HEADER = "X-RateLimit-Limit"
RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"

# Lowercased message fragments that mark an error as transient
RETRYABLE_MESSAGE_MARKERS = ("timeout", "rate limit", "network")
