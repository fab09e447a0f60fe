"""
Companies House API client.

Official API documentation:
https://developer-specs.company-information.service.gov.uk/

Provides:
- Company officer lists (paginated)
- Officer appointment histories (paginated, addressed by the opaque
  links.officer.appointments path returned with each officer)
- Company profiles (cached in-process)

Rate limits:
- 600 requests per 5 minute window per API key
- Enforced locally by the shared SlidingWindowRateLimiter
"""
import base64
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from app.core.api_errors import NotFoundError
from app.core.config import get_settings
from app.core.http_client import BaseAPIClient
from app.core.rate_limiter import SlidingWindowRateLimiter
from app.sources.companies_house import metadata
from app.sources.companies_house.types import (
    AppointmentRecord,
    CompanyRecord,
    OfficerRecord,
)

logger = logging.getLogger(__name__)


class CompaniesHouseClient(BaseAPIClient):
    """
    HTTP client for the Companies House public data API.

    Authentication is HTTP Basic with the API key as username and an
    empty password. Every call goes through the shared rate limiter.
    """

    SOURCE_NAME = "companies_house"
    BASE_URL = "https://api.company-information.service.gov.uk"

    # Safety cap on pagination (officer lists and histories are small)
    MAX_PAGES = 50

    def __init__(
        self,
        api_key: str,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        max_retries: int = 1,
        timeout: float = BaseAPIClient.DEFAULT_TIMEOUT,
        rate_limit_timeout: float = 30.0,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        company_cache_ttl: float = 300.0,
        items_per_page: int = metadata.DEFAULT_ITEMS_PER_PAGE,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """
        Initialize Companies House client.

        Args:
            api_key: Companies House API key
            rate_limiter: Shared limiter (defaults to the process-wide instance)
            max_retries: Attempts per request (1 = no retries)
            timeout: Request timeout in seconds
            rate_limit_timeout: Maximum seconds to wait for a rate limit slot
            base_url: Override for the API base URL
            http_client: Preconfigured httpx client
            company_cache_ttl: Seconds a company profile stays cached (0 disables)
            items_per_page: Page size for paginated endpoints
            clock: Time source for cache expiry
            sleep: Coroutine used to wait between retry attempts
        """
        super().__init__(
            api_key=api_key,
            rate_limiter=rate_limiter,
            max_retries=max_retries,
            timeout=timeout,
            rate_limit_timeout=rate_limit_timeout,
            base_url=base_url,
            http_client=http_client,
            sleep=sleep,
        )
        self.company_cache_ttl = company_cache_ttl
        self.items_per_page = items_per_page
        self._clock = clock or time.monotonic
        self._company_cache: Dict[str, Tuple[float, CompanyRecord]] = {}

    @classmethod
    def from_settings(
        cls,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "CompaniesHouseClient":
        """
        Build a client from application settings.

        Raises:
            MissingCompaniesHouseAPIKeyError: If no API key is configured
        """
        settings = get_settings()
        return cls(
            api_key=settings.require_companies_house_api_key(),
            rate_limiter=rate_limiter,
            max_retries=settings.registry_max_retries,
            timeout=settings.registry_timeout_seconds,
            rate_limit_timeout=settings.registry_rate_limit_timeout_seconds,
            base_url=settings.companies_house_base_url,
            http_client=http_client,
            company_cache_ttl=settings.company_cache_ttl_seconds,
        )

    def _build_headers(self) -> Dict[str, str]:
        """Add Basic auth (API key as username, empty password)."""
        headers = super()._build_headers()
        token = base64.b64encode(f"{self.api_key or ''}:".encode()).decode()
        headers["Authorization"] = f"Basic {token}"
        return headers

    async def _get_paginated(
        self, path: str, resource_id: str
    ) -> List[Dict[str, Any]]:
        """
        Read every page of a list endpoint.

        Returns:
            Raw items from all pages, in registry order
        """
        items: List[Dict[str, Any]] = []
        start_index = 0

        for _ in range(self.MAX_PAGES):
            data = await self.get(
                path,
                params={"items_per_page": self.items_per_page, "start_index": start_index},
                resource_id=resource_id,
            )
            page_items = data.get("items") or []
            items.extend(page_items)

            next_index = metadata.next_start_index(data, start_index, len(page_items))
            if next_index is None:
                break
            start_index = next_index
        else:
            logger.warning(
                f"[{self.SOURCE_NAME}] Stopped paging {resource_id} after {self.MAX_PAGES} pages"
            )

        return items

    async def get_officers(
        self, company_number: str, include_resigned: bool = False
    ) -> List[OfficerRecord]:
        """
        Fetch the officers of a company.

        Args:
            company_number: Registry company number
            include_resigned: Keep officers that have resigned

        Returns:
            Officers in registry order

        Raises:
            FetchError: On non-2xx responses or network failure
        """
        items = await self._get_paginated(
            f"/company/{company_number}/officers",
            resource_id=f"officers:{company_number}",
        )
        officers = metadata.parse_officers({"items": items})

        if not include_resigned:
            officers = [o for o in officers if o.is_active]

        logger.debug(
            f"[{self.SOURCE_NAME}] {len(officers)} officers for {company_number} "
            f"(include_resigned={include_resigned})"
        )
        return officers

    async def get_officer_appointments(self, appointments_ref: str) -> List[AppointmentRecord]:
        """
        Fetch an officer's appointment history.

        Args:
            appointments_ref: The officer's links.officer.appointments value,
                passed through unmodified

        Raises:
            FetchError: On non-2xx responses or network failure
        """
        items = await self._get_paginated(
            appointments_ref,
            resource_id=f"appointments:{appointments_ref}",
        )
        return metadata.parse_appointments({"items": items})

    async def get_company(self, company_number: str) -> CompanyRecord:
        """
        Fetch a company profile.

        Raises:
            NotFoundError: If the company does not exist
            FetchError: On other non-2xx responses or network failure
        """
        cached = self._company_cache.get(company_number)
        if cached and self._clock() - cached[0] < self.company_cache_ttl:
            logger.debug(f"[{self.SOURCE_NAME}] Cache hit for company {company_number}")
            return cached[1]

        try:
            data = await self.get(
                f"/company/{company_number}",
                resource_id=f"company:{company_number}",
            )
        except NotFoundError:
            logger.info(f"[{self.SOURCE_NAME}] Company {company_number} not found")
            raise

        company = metadata.parse_company(data, company_number)
        if self.company_cache_ttl > 0:
            self._company_cache[company_number] = (self._clock(), company)
        return company

    def clear_cache(self) -> None:
        """Drop cached company profiles."""
        self._company_cache.clear()
