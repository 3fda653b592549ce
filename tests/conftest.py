"""Shared fixtures: record builders, a fake aiohttp session and a fake CRM client."""

import json
from datetime import datetime, timezone

import pytest

from lib.errors import APIError
from models.crm_models import SearchResult

DAY = 86_400_000
# 2024-06-10T15:30:00Z
NOW = int(datetime(2024, 6, 10, 15, 30, tzinfo=timezone.utc).timestamp() * 1000)


def iso(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.000Z")


def ms(*args) -> int:
    return int(round(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000))


def raw_deal(deal_id, created=None, closed=None, stage=None, amount=None, name=None, **props):
    properties = {
        "createdate": iso(created) if created is not None else None,
        "closedate": iso(closed) if closed is not None else None,
        "dealstage": stage,
        "amount": None if amount is None else str(amount),
        "dealname": name,
    }
    properties.update(props)
    return {"id": str(deal_id), "properties": properties}


def raw_record(record_id, **props):
    return {"id": str(record_id), "properties": props}


# ─── aiohttp-shaped fakes ────────────────────────────────────

class FakeResponse:
    def __init__(self, status=200, body=None, headers=None, text=None):
        self.status = status
        self.headers = headers or {}
        self._text = text if text is not None else json.dumps(body if body is not None else {})

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Replays queued responses (or raises queued exceptions) in order."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


# ─── Service-level fake ──────────────────────────────────────

class FakeCRM:
    """Stands in for HubSpotClient behind DashboardService."""

    def __init__(self, records=None, companies=None, contacts=None, fail=()):
        self.records = records or {}
        self.companies = companies or {}
        self.contacts = contacts or {}
        self.fail = set(fail)
        self.searches = []
        self.listed = []
        self.batches = []
        self.property_fetches = 0

    async def search_objects(self, object_type, filter_groups, properties=None, sorts=None,
                             force_refresh=False, ttl=None):
        self.searches.append({
            "type": object_type,
            "filter_groups": filter_groups,
            "properties": properties,
            "force_refresh": force_refresh,
        })
        if object_type in self.fail:
            raise APIError(f"{object_type} search failed", status_code=500)
        results = self.records.get(object_type, [])
        return SearchResult(total=len(results), results=results)

    async def list_objects(self, object_type, properties, limit=100):
        self.listed.append(object_type)
        if object_type in self.fail:
            raise APIError(f"{object_type} list failed", status_code=500)
        return self.records.get(object_type, [])[:limit]

    async def get_deal_company(self, deal_id):
        return self.companies.get(deal_id)

    async def get_deal_contacts(self, deal_id):
        return self.contacts.get(deal_id, [])

    async def throttled_batch(self, factories):
        self.batches.append(len(factories))
        return [await fn() for fn in factories]

    async def get_deal_properties(self):
        self.property_fetches += 1
        if "properties" in self.fail:
            raise APIError("properties failed", status_code=500)
        return [{"name": "amount", "type": "number"}]

    def get_status(self):
        return {"name": "HubSpot", "configured": True}

    def searches_for(self, object_type):
        return [s for s in self.searches if s["type"] == object_type]


@pytest.fixture
def sleep():
    return RecordingSleep()
