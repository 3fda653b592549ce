"""
HubSpot Integration
====================

Async client for the HubSpot CRM v3 REST API:
- Authenticated GET/POST with retry on HTTP 429 (Retry-After honored)
- Search pagination drain with id de-duplication, cached per query
- Association lookups (deal -> company / contacts), throttled in small batches
- At most `concurrency` requests in flight across the whole client
- Deal property metadata

Setup:
1. Create a Private App in HubSpot -> Settings -> Integrations -> Private Apps
2. Set HUBSPOT_API_KEY in .env

Usage:
    client = HubSpotClient.from_settings(settings, cache=TTLCache())
    deals = await client.search_objects("deals", [], ["amount", "dealstage"])
    await client.close()
"""

import asyncio
import hashlib
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from lib.cache import TTLCache
from lib.config import HUBSPOT_API_URL, Settings
from lib.errors import (
    APIAuthError,
    APIError,
    APIRateLimitError,
    APIResponseError,
    APITimeoutError,
)
from lib.errors import HubError
from lib.logger import setup_logger
from lib.retry import RetryPolicy, parse_retry_after
from models.crm_models import SearchResult

logger = setup_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_PAGE_SIZE = 100
DEFAULT_CONCURRENCY = 3
DEFAULT_BATCH_DELAY_SECONDS = 0.4

# Ascending creation order keeps cursor pagination reproducible
DEFAULT_SORTS = [{"propertyName": "createdate", "direction": "ASCENDING"}]

OBJECT_TYPES = ("contacts", "companies", "deals", "tasks")


def search_cache_key(
    object_type: str,
    filter_groups: List[Dict[str, Any]],
    properties: List[str],
    sorts: List[Dict[str, Any]],
) -> str:
    """Stable cache key for one search query."""
    canonical = json.dumps(
        {
            "objectType": object_type,
            "filterGroups": filter_groups,
            "properties": properties,
            "sorts": sorts,
        },
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    digest = hashlib.sha256(canonical.encode()).hexdigest()
    return f"search:{object_type}:{digest}"


def _header(headers: Any, name: str) -> Optional[str]:
    if not headers:
        return None
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


class HubSpotClient:
    """HubSpot CRM connector."""

    def __init__(
        self,
        api_key: str,
        base_url: str = HUBSPOT_API_URL,
        cache: Optional[TTLCache] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        session: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = max(1, concurrency)
        self.batch_delay = batch_delay
        self.page_size = page_size
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        # Shared by every request, so nested lookups stay under the cap too
        self._limiter: Optional[asyncio.Semaphore] = None

    @classmethod
    def from_settings(cls, settings: Settings, cache: Optional[TTLCache] = None) -> "HubSpotClient":
        return cls(
            api_key=settings.hubspot_api_key,
            base_url=settings.hubspot_base_url,
            cache=cache,
            timeout=settings.request_timeout,
            retry_policy=RetryPolicy(
                max_retries=settings.max_retries,
                backoff_ms=settings.backoff_ms,
            ),
            concurrency=settings.concurrency,
            batch_delay=settings.batch_delay_ms / 1000.0,
            page_size=settings.page_size,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        """Build authorization headers."""
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _get_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ─── Low-level HTTP ──────────────────────────────────────

    async def _send(
        self,
        method: str,
        url: str,
        payload: Optional[dict],
        params: Optional[dict],
    ):
        session = await self._get_session()
        if self._limiter is None:
            self._limiter = asyncio.Semaphore(self.concurrency)
        try:
            async with self._limiter, session.request(
                method,
                url,
                headers=self._headers(),
                json=payload,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                return resp.status, resp.headers, text
        except asyncio.TimeoutError:
            logger.error("HubSpot API %s %s timed out after %ss", method, url, self.timeout)
            raise APITimeoutError(url, self.timeout)
        except aiohttp.ClientError as e:
            logger.error("HubSpot API %s %s connection error: %s", method, url, e)
            raise APIError(
                f"Connection to HubSpot failed: {e}", code="API_CONNECTION", url=url,
            )

    async def request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Dict[str, Any]:
        """
        Make an authenticated request to the HubSpot API and return the JSON body.

        HTTP 429 is retried per self.retry_policy, sleeping for the Retry-After
        header when present, otherwise an exponentially doubling backoff.
        Any other failure raises immediately.
        """
        url = f"{self.base_url}{endpoint}"
        if params:
            params = {k: str(v) for k, v in params.items() if v is not None}

        retry_index = 0
        while True:
            status, headers, text = await self._send(method, url, payload, params)
            if status != 429:
                return self._parse_response(method, endpoint, url, status, text)

            retry_after = _header(headers, "Retry-After")
            if not self.retry_policy.should_retry(retry_index):
                logger.error(
                    "HubSpot API %s %s still rate limited after %d attempts",
                    method, endpoint, retry_index + 1,
                )
                raise APIRateLimitError(
                    url, attempts=retry_index + 1, retry_after=parse_retry_after(retry_after),
                )

            wait = self.retry_policy.delay_seconds(retry_index, retry_after)
            retry_index += 1
            logger.warning(
                "HubSpot rate limited (%s %s). Retrying in %.1fs (retry %d/%d)",
                method, endpoint, wait, retry_index, self.retry_policy.max_retries,
            )
            await self._sleep(wait)

    def _parse_response(self, method: str, endpoint: str, url: str,
                        status: int, text: str) -> Dict[str, Any]:
        if status in (401, 403):
            logger.error("HubSpot API %s %s returned %s (auth)", method, endpoint, status)
            raise APIAuthError(url, status_code=status)
        if not 200 <= status < 300:
            logger.error("HubSpot API %s %s returned %s: %s", method, endpoint, status, text[:500])
            raise APIError(
                f"HubSpot API {method} {endpoint} returned {status}",
                status_code=status, url=url, body=text[:500],
            )
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as e:
            raise APIResponseError(url, f"invalid JSON ({e})")
        if not isinstance(data, dict):
            raise APIResponseError(url, f"expected an object, got {type(data).__name__}")
        return data

    async def get(self, endpoint: str, params: Optional[dict] = None) -> Dict[str, Any]:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, payload: dict) -> Dict[str, Any]:
        return await self.request("POST", endpoint, payload=payload)

    # ─── Search ─────────────────────────────────────────────

    async def search_objects(
        self,
        object_type: str,
        filter_groups: List[Dict[str, Any]],
        properties: Optional[List[str]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        force_refresh: bool = False,
        ttl: Optional[float] = None,
    ) -> SearchResult:
        """
        Fetch every record matching a search, draining all pages.

        filter_groups must be a list; [] matches all records. Results are
        de-duplicated by id and cached per (type, filters, properties, sorts).
        """
        if filter_groups is None:
            raise ValueError("filter_groups must be a list; pass [] to match all records")
        properties = list(properties or [])
        sorts = list(sorts) if sorts is not None else list(DEFAULT_SORTS)

        async def fetch() -> SearchResult:
            return await self._drain_search(object_type, filter_groups, properties, sorts)

        if self.cache is None:
            return await fetch()
        key = search_cache_key(object_type, filter_groups, properties, sorts)
        return await self.cache.cache_or_fetch(key, fetch, force_refresh=force_refresh, ttl=ttl)

    async def _drain_search(
        self,
        object_type: str,
        filter_groups: List[Dict[str, Any]],
        properties: List[str],
        sorts: List[Dict[str, Any]],
    ) -> SearchResult:
        endpoint = f"/crm/v3/objects/{object_type}/search"
        all_results: List[Dict[str, Any]] = []
        seen_cursors = set()
        after = None
        page = 0

        while True:
            page += 1
            body: Dict[str, Any] = {
                "filterGroups": filter_groups,
                "properties": properties,
                "limit": self.page_size,
                "sorts": sorts,
            }
            if after:
                body["after"] = after

            data = await self.post(endpoint, body)
            results = data.get("results") or []
            if not isinstance(results, list):
                raise APIResponseError(endpoint, "'results' is not a list")
            all_results.extend(r for r in results if isinstance(r, dict))
            logger.debug(
                "%s search page %d: %d records (total: %d)",
                object_type, page, len(results), len(all_results),
            )

            after = ((data.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                break
            if after in seen_cursors:
                logger.warning("%s search returned a repeated cursor %s, stopping", object_type, after)
                break
            seen_cursors.add(after)

        deduped: Dict[Any, Dict[str, Any]] = {}
        unidentified: List[Dict[str, Any]] = []
        for obj in all_results:
            obj_id = obj.get("id")
            if obj_id is None:
                unidentified.append(obj)
            else:
                deduped[str(obj_id)] = obj
        records = list(deduped.values()) + unidentified
        if len(records) != len(all_results):
            logger.debug("%s search dropped %d duplicate records", object_type, len(all_results) - len(records))
        logger.info("Fetched %d %s in %d page(s)", len(records), object_type, page)
        return SearchResult(total=len(records), results=records)

    # ─── Objects, associations, metadata ───────────────────

    async def list_objects(
        self, object_type: str, properties: List[str], limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """First page of the list endpoint (most recently touched records)."""
        data = await self.get(
            f"/crm/v3/objects/{object_type}",
            params={"limit": limit, "properties": ",".join(properties)},
        )
        return data.get("results") or []

    async def get_object(
        self, object_type: str, object_id: str, properties: List[str],
    ) -> Dict[str, Any]:
        return await self.get(
            f"/crm/v3/objects/{object_type}/{object_id}",
            params={"properties": ",".join(properties)},
        )

    async def get_associations(self, object_type: str, object_id: str, to_type: str) -> List[str]:
        data = await self.get(f"/crm/v3/objects/{object_type}/{object_id}/associations/{to_type}")
        ids = []
        for item in data.get("results") or []:
            assoc_id = item.get("id") or item.get("toObjectId")
            if assoc_id is not None:
                ids.append(str(assoc_id))
        return ids

    async def get_deal_properties(self) -> List[Dict[str, Any]]:
        """Property definitions for the deal object."""
        data = await self.get("/crm/v3/properties/deals")
        return data.get("results") or []

    async def throttled_batch(self, factories: List[Callable[[], Awaitable[Any]]]) -> List[Any]:
        """
        Run coroutine factories at most self.concurrency at a time, pausing
        self.batch_delay between groups. Results keep input order.
        """
        results: List[Any] = []
        for i in range(0, len(factories), self.concurrency):
            batch = factories[i:i + self.concurrency]
            results.extend(await asyncio.gather(*(fn() for fn in batch)))
            if i + self.concurrency < len(factories):
                await self._sleep(self.batch_delay)
        return results

    async def get_deal_company(self, deal_id: str) -> Optional[str]:
        """Name of the first company associated with a deal, or None."""
        try:
            company_ids = await self.get_associations("deals", deal_id, "companies")
            if not company_ids:
                return None
            company = await self.get_object("companies", company_ids[0], ["name"])
            return (company.get("properties") or {}).get("name") or None
        except HubError as e:
            logger.warning("Company lookup failed for deal %s: %s", deal_id, e)
            return None

    async def get_deal_contacts(self, deal_id: str) -> List[str]:
        """Full names of the contacts associated with a deal."""
        try:
            contact_ids = await self.get_associations("deals", deal_id, "contacts")
            if not contact_ids:
                return []
            contacts = await self.throttled_batch([
                (lambda cid=cid: self.get_object("contacts", cid, ["firstname", "lastname"]))
                for cid in contact_ids
            ])
        except HubError as e:
            logger.warning("Contact lookup failed for deal %s: %s", deal_id, e)
            return []

        names = []
        for contact in contacts:
            props = contact.get("properties") or {}
            name = f"{props.get('firstname') or ''} {props.get('lastname') or ''}".strip()
            if name:
                names.append(name)
        return names

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": "HubSpot",
            "configured": self.is_configured,
            "base_url": self.base_url,
            "features": list(OBJECT_TYPES) + ["associations", "properties"],
        }
