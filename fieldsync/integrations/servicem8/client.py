"""ServiceM8 API client with caching, rate limit tracking and retries."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from fieldsync.integrations.servicem8.cache import InMemoryResponseCache, ResponseCache
from fieldsync.integrations.servicem8.config import ServiceM8Settings
from fieldsync.integrations.servicem8.constants import (
    ExpandRelation,
    JobStatus,
    ServiceM8Endpoint,
)
from fieldsync.integrations.servicem8.exceptions import (
    ServiceM8APIError,
    ServiceM8ConnectionError,
    ServiceM8NotFoundError,
    ServiceM8RateLimitError,
    ServiceM8TimeoutError,
    is_retryable_error,
)
from fieldsync.integrations.servicem8.rate_limit import InMemoryRateLimiter, RateLimiter
from fieldsync.integrations.servicem8.schemas import (
    ApiStats,
    Attachment,
    CacheStats,
    Company,
    Job,
    JobActivity,
    JobQueryOptions,
    JobWithDetails,
    Material,
    RecurringJob,
    ServiceAgreement,
    ServiceM8ListResponse,
    Staff,
)
from fieldsync.utils.logger import logger

ModelT = TypeVar("ModelT", bound=BaseModel)


class ServiceM8Client:
    """Async client for the ServiceM8 REST API.

    Every upstream call goes through ``request``, which applies the rate limit
    window, the response cache and exponential backoff for transient failures.
    The cache and rate limiter are injected so tests and multi-instance
    deployments can supply their own implementations.
    """

    def __init__(
        self,
        settings: ServiceM8Settings,
        cache: ResponseCache | None = None,
        rate_limiter: RateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize ServiceM8 client.

        Args:
            settings: ServiceM8 settings with credentials and retry policy
            cache: Response cache; defaults to an in-memory TTL cache when enabled
            rate_limiter: Rate limit tracker; defaults to an in-memory limiter
            transport: Optional httpx transport (used by tests)
            sleep: Coroutine used for backoff delays
        """
        self.settings = settings
        self._cache: ResponseCache | None = None
        if settings.cache_enabled:
            self._cache = cache or InMemoryResponseCache(
                ttl=settings.cache_ttl, maxsize=settings.cache_max_entries
            )
        self._rate_limiter = rate_limiter or InMemoryRateLimiter()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    def _auth_headers(self) -> dict[str, str]:
        if self.settings.api_key:
            return {"X-API-Key": self.settings.api_key}
        return {"Authorization": f"Bearer {self.settings.oauth_token}"}

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url,
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                    **self._auth_headers(),
                },
                timeout=self.settings.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _cache_key(
        method: str, endpoint: str, params: dict[str, Any] | None, body: Any
    ) -> str:
        query = json.dumps(params, sort_keys=True) if params else ""
        payload = json.dumps(body, sort_keys=True, default=str) if body is not None else ""
        return f"{method}:{endpoint}:{query}:{payload}"

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        use_cache: bool = True,
    ) -> Any:
        """Make a request to the ServiceM8 API.

        Args:
            endpoint: API path relative to the base URL
            method: HTTP method
            params: Query parameters
            json_body: Optional JSON request body
            use_cache: When False a GET skips the cache lookup; the fresh
                response still replaces the cached entry

        Returns:
            Decoded JSON response

        Raises:
            ServiceM8APIError: When the request fails after all permitted attempts
        """
        method = method.upper()
        cache_key: str | None = None
        if self._cache is not None and method == "GET":
            cache_key = self._cache_key(method, endpoint, params, json_body)
            cached = self._cache.get(cache_key) if use_cache else None
            if cached is not None:
                logger.debug("[ServiceM8Client] Cache hit", endpoint=endpoint)
                return cached

        max_attempts = self.settings.retry_attempts
        for attempt in range(1, max_attempts + 1):
            if self.settings.rate_limit_enabled:
                await self._rate_limiter.wait_if_exhausted()

            try:
                data = await self._send(method, endpoint, params, json_body)
            except ServiceM8APIError as e:
                if attempt >= max_attempts or not is_retryable_error(e):
                    raise
                delay = self.settings.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    "[ServiceM8Client] Retrying request",
                    endpoint=endpoint,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            if cache_key is not None:
                self._cache.set(cache_key, data)
            return data

        # range() above always returns or raises
        raise ServiceM8APIError("Request was not attempted")

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        json_body: Any,
    ) -> Any:
        client = await self._ensure_client()

        try:
            response = await client.request(method, endpoint, params=params, json=json_body)
        except httpx.TimeoutException as e:
            raise ServiceM8TimeoutError(
                f"Request timeout: {endpoint}", timeout_duration=self.settings.timeout
            ) from e
        except httpx.RequestError as e:
            raise ServiceM8ConnectionError(
                f"Network error: {e}", original_error=e
            ) from e

        self._rate_limiter.update_from_headers(response.headers)

        if response.is_error:
            raise self._parse_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise ServiceM8APIError(
                f"Invalid response format from {endpoint}",
                status_code=response.status_code,
            ) from e

    @staticmethod
    def _parse_error(response: httpx.Response) -> ServiceM8APIError:
        try:
            body = response.json()
        except ValueError:
            body = {"message": "Unknown error occurred"}
        if not isinstance(body, dict):
            body = {"message": str(body)}

        message = body.get("message") or f"HTTP {response.status_code}: {response.reason_phrase}"
        if response.status_code == 404:
            return ServiceM8NotFoundError(message, details=body)
        if response.status_code == 429:
            return ServiceM8RateLimitError(details=body)
        return ServiceM8APIError(
            message,
            status_code=response.status_code,
            error=body.get("error") or "API Error",
            details=body,
        )

    @staticmethod
    def _parse(model: type[ModelT], data: Any, endpoint: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(
                "[ServiceM8Client] Failed to parse response", endpoint=endpoint, error=str(e)
            )
            raise ServiceM8APIError(f"Invalid response format: {e}") from e

    async def _get_list(
        self,
        endpoint: str,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
        use_cache: bool = True,
    ) -> ServiceM8ListResponse[ModelT]:
        data = await self.request(endpoint, params=params, use_cache=use_cache)
        # The API returns bare arrays for list endpoints
        if isinstance(data, list):
            data = {"data": data}
        return self._parse(ServiceM8ListResponse[model], data, endpoint)

    # ===== Query building =====

    @staticmethod
    def build_job_query(company_uuid: str, options: JobQueryOptions) -> dict[str, str]:
        """Build OData query parameters for a company-scoped job listing."""
        job_filter = f"company_uuid eq '{company_uuid}'"

        if options.status:
            status_filter = " or ".join(f"status eq '{s.value}'" for s in options.status)
            job_filter = f"{job_filter} and ({status_filter})"

        if options.date_range:
            job_filter = (
                f"{job_filter} and (date ge '{options.date_range.start}'"
                f" and date le '{options.date_range.end}')"
            )

        if options.staff_assigned:
            staff_filter = " or ".join(
                f"staff_assigned eq '{s}'" for s in options.staff_assigned
            )
            job_filter = f"{job_filter} and ({staff_filter})"

        params = {"$filter": job_filter}

        expand = [
            relation.value
            for relation, enabled in (
                (ExpandRelation.ACTIVITIES, options.include_activities),
                (ExpandRelation.ATTACHMENTS, options.include_attachments),
                (ExpandRelation.MATERIALS, options.include_materials),
                (ExpandRelation.STAFF, options.include_staff),
            )
            if enabled
        ]
        if expand:
            params["$expand"] = ",".join(expand)

        if options.limit:
            params["$top"] = str(options.limit)
        if options.offset:
            params["$skip"] = str(options.offset)

        return params

    # ===== Entity methods =====

    async def get_jobs(
        self, company_uuid: str, options: JobQueryOptions | None = None
    ) -> ServiceM8ListResponse[JobWithDetails]:
        """Get jobs for a company."""
        params = self.build_job_query(company_uuid, options or JobQueryOptions())
        return await self._get_list(ServiceM8Endpoint.JOBS.value, JobWithDetails, params)

    async def get_quotes(
        self, company_uuid: str, options: JobQueryOptions | None = None
    ) -> ServiceM8ListResponse[JobWithDetails]:
        """Get quotes for a company (jobs in ``Quote`` status)."""
        options = (options or JobQueryOptions()).model_copy(
            update={"status": [JobStatus.QUOTE]}
        )
        return await self.get_jobs(company_uuid, options)

    async def get_clients(self) -> ServiceM8ListResponse[Company]:
        """Get all companies."""
        return await self._get_list(ServiceM8Endpoint.COMPANIES.value, Company)

    async def get_job(self, job_uuid: str, use_cache: bool = True) -> JobWithDetails:
        """Get a single job; raises ServiceM8NotFoundError when it no longer exists."""
        endpoint = ServiceM8Endpoint.JOB.value.format(uuid=job_uuid)
        data = await self.request(endpoint, use_cache=use_cache)
        return self._parse(JobWithDetails, data, endpoint)

    async def get_company(self, company_uuid: str, use_cache: bool = True) -> Company:
        """Get a single company; raises ServiceM8NotFoundError when it no longer exists."""
        endpoint = ServiceM8Endpoint.COMPANY.value.format(uuid=company_uuid)
        data = await self.request(endpoint, use_cache=use_cache)
        return self._parse(Company, data, endpoint)

    async def get_job_activities(
        self, job_uuid: str, use_cache: bool = True
    ) -> ServiceM8ListResponse[JobActivity]:
        return await self._get_list(
            ServiceM8Endpoint.JOB_ACTIVITIES.value,
            JobActivity,
            {"$filter": f"job_uuid eq '{job_uuid}'", "$expand": ExpandRelation.STAFF.value},
            use_cache=use_cache,
        )

    async def get_staff(self, use_cache: bool = True) -> ServiceM8ListResponse[Staff]:
        """Get active staff members."""
        return await self._get_list(
            ServiceM8Endpoint.STAFF.value,
            Staff,
            {"$filter": "is_active eq 1"},
            use_cache=use_cache,
        )

    async def get_job_materials(
        self, job_uuid: str, use_cache: bool = True
    ) -> ServiceM8ListResponse[Material]:
        return await self._get_list(
            ServiceM8Endpoint.MATERIALS.value,
            Material,
            {"$filter": f"job_uuid eq '{job_uuid}'"},
            use_cache=use_cache,
        )

    async def get_job_attachments(
        self, job_uuid: str, use_cache: bool = True
    ) -> ServiceM8ListResponse[Attachment]:
        return await self._get_list(
            ServiceM8Endpoint.ATTACHMENTS.value,
            Attachment,
            {"$filter": f"job_uuid eq '{job_uuid}'"},
            use_cache=use_cache,
        )

    async def get_service_agreements(
        self, company_uuid: str
    ) -> ServiceM8ListResponse[ServiceAgreement]:
        """Get service agreements for a company."""
        return await self._get_list(
            ServiceM8Endpoint.SERVICE_AGREEMENTS.value,
            ServiceAgreement,
            {"$filter": f"company_uuid eq '{company_uuid}'"},
        )

    async def get_recurring_jobs(self, company_uuid: str) -> ServiceM8ListResponse[RecurringJob]:
        """Get recurring job templates for a company."""
        return await self._get_list(
            ServiceM8Endpoint.RECURRING_JOBS.value,
            RecurringJob,
            {"$filter": f"company_uuid eq '{company_uuid}'"},
        )

    async def update_job_status(
        self,
        job_uuid: str,
        status: JobStatus,
        additional_data: dict[str, Any] | None = None,
    ) -> Job:
        """Update a job's status, optionally with extra job attributes."""
        endpoint = ServiceM8Endpoint.JOB.value.format(uuid=job_uuid)
        body = {"status": status.value, **(additional_data or {})}
        logger.info(
            "[ServiceM8Client] Updating job status", job_uuid=job_uuid, status=status.value
        )
        data = await self.request(endpoint, method="POST", json_body=body)
        if not isinstance(data, dict) or "uuid" not in data:
            # Write endpoints may acknowledge without echoing the job
            return Job(uuid=job_uuid, status=status.value)
        return self._parse(Job, data, endpoint)

    async def approve_quote(
        self,
        job_uuid: str,
        approved_line_items: list[str] | None = None,
        client_notes: str | None = None,
    ) -> Job:
        """Approve a quote, moving the job to ``Work Order``."""
        return await self.update_job_status(
            job_uuid,
            JobStatus.WORK_ORDER,
            {
                "quote_approved": 1,
                "quote_approved_date": datetime.now(UTC).isoformat(),
                "approved_line_items": approved_line_items,
                "client_approval_notes": client_notes,
            },
        )

    async def reject_quote(self, job_uuid: str, reason: str | None = None) -> Job:
        """Reject a quote, leaving the job in ``Quote`` status."""
        return await self.update_job_status(
            job_uuid,
            JobStatus.QUOTE,
            {"quote_approved": 0, "quote_rejection_reason": reason},
        )

    # ===== Diagnostics =====

    async def test_connection(self) -> bool:
        """Return True when a minimal authenticated request succeeds."""
        try:
            await self.request(ServiceM8Endpoint.COMPANIES.value, params={"$top": "1"})
            return True
        except ServiceM8APIError as e:
            logger.warning("[ServiceM8Client] Connection test failed", error=str(e))
            return False

    def clear_cache(self) -> None:
        if self._cache is not None:
            self._cache.clear()

    def get_api_stats(self) -> ApiStats:
        keys = self._cache.keys() if self._cache is not None else []
        return ApiStats(
            rate_limit=self._rate_limiter.info,
            cache_stats=CacheStats(size=len(keys), keys=keys),
        )
