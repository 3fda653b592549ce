"""Route tests: FastAPI TestClient over a DashboardService with a fake CRM."""

import os
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from analytics.service import DashboardService
from conftest import DAY, NOW, FakeCRM, iso, ms, raw_deal, raw_record
from dashboard.api.deps import get_service
from dashboard.api.main import app, create_app
from dashboard.api.middleware import APIKeyMiddleware
from lib.cache import TTLCache
from lib.config import Settings
from lib.errors import ConfigError

RECORDS = {
    "contacts": [raw_record("c1", createdate=iso(NOW - DAY), firstname="Ada")],
    "companies": [raw_record("co1", createdate=iso(NOW - 2 * DAY), name="Acme")],
    "deals": [
        raw_deal("d1", created=NOW - 10 * DAY, closed=ms(2024, 7, 1), stage="appointmentscheduled", amount=100),
        raw_deal("d2", created=NOW - 5 * DAY, closed=NOW - 2 * DAY, stage="closedwon", amount=200, name="Won"),
    ],
    "tasks": [raw_record("t1", hs_task_status="COMPLETED", hs_task_completion_date=iso(NOW - DAY))],
}


@pytest.fixture
def crm():
    return FakeCRM(records=RECORDS, companies={"d2": "Acme"})


@pytest.fixture
def client(crm):
    service = DashboardService(crm, TTLCache(), clock=lambda: NOW)
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestMetricsRoutes:
    def test_dashboard_metrics(self, client):
        resp = client.get("/api/metrics", params={"days": 7})
        assert resp.status_code == 200
        body = resp.json()
        assert body["current"]["totalContacts"] == 1
        assert body["current"]["wonDeals"] == 1
        assert body["current"]["totalRevenue"] == 200
        assert "previous" in body

    def test_negative_days_rejected(self, client):
        assert client.get("/api/metrics", params={"days": -1}).status_code == 422

    def test_degrades_to_zeros(self, crm, client):
        crm.fail.add("contacts")
        resp = client.get("/api/metrics", params={"days": 30, "forceRefresh": "true"})
        assert resp.status_code == 200
        assert resp.json()["current"]["totalDeals"] == 0

    def test_trends(self, client):
        resp = client.get("/api/trends", params={"days": 3})
        assert resp.status_code == 200
        assert [p["date"] for p in resp.json()] == ["2024-06-07", "2024-06-08", "2024-06-09", "2024-06-10"]
        assert set(resp.json()[0]) == {"date", "contacts", "companies", "deals", "revenue", "lostRevenue"}

    def test_trends_empty_on_failure(self, crm, client):
        crm.fail.add("deals")
        resp = client.get("/api/trends", params={"days": 3})
        assert resp.status_code == 200
        assert resp.json() == []


class TestDealRoutes:
    def test_deal_metrics(self, client):
        resp = client.get("/api/deals/metrics", params={"days": 0})
        assert resp.status_code == 200
        assert resp.json()["totalDeals"] == 2
        assert resp.json()["openDeals"] == 1

    def test_deal_metrics_error_body(self, crm, client):
        crm.fail.add("deals")
        resp = client.get("/api/deals/metrics")
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Failed to fetch deal metrics"
        assert "deals search failed" in body["details"]

    def test_stage_metrics(self, client):
        resp = client.get("/api/deals/metrics/stages-metrics", params={"trendPeriod": 30})
        assert resp.status_code == 200
        stage = resp.json()["stages"][0]
        assert stage["stage"] == "appointmentscheduled"
        assert stage["trend"]["current"] == {"count": 1, "sum": 100}

    def test_fetch_properties(self, client):
        resp = client.get("/api/deals/metrics/fetch-properties")
        assert resp.status_code == 200
        assert resp.json()[0]["name"] == "amount"

    def test_forecast(self, client):
        resp = client.get("/api/deals/forecast")
        assert resp.status_code == 200
        assert resp.json()[0]["month"] == "2024-07"

    def test_top_won(self, client):
        resp = client.get("/api/deals/top-won", params={"start": 0, "end": NOW, "limit": 1})
        assert resp.status_code == 200
        assert resp.json() == [{"company": "Acme", "contacts": [], "name": "Won", "amount": 200}]

    @pytest.mark.parametrize("path", ["top-new", "top-open", "top-lost", "top-payed"])
    def test_other_top_lists(self, client, path):
        resp = client.get(f"/api/deals/{path}", params={"limit": 5})
        assert resp.status_code == 200
        assert isinstance(resp.json(), list)

    def test_limit_validated(self, client):
        assert client.get("/api/deals/top-won", params={"limit": 0}).status_code == 422


class TestCompanyRoutes:
    def test_top_won_entities(self, client):
        resp = client.get("/api/companies/top-won-entities", params={"start": 0, "end": NOW})
        assert resp.status_code == 200
        assert resp.json()[0] == {"label": "Acme", "sum": 200}

    def test_top_lost_entities_error(self, crm, client):
        crm.fail.add("deals")
        resp = client.get("/api/companies/top-lost-entities")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Failed to fetch top lost entities"


class TestActivityRoutes:
    def test_recent_activity(self, client):
        resp = client.get("/api/activity", params={"limit": 3})
        assert resp.status_code == 200
        assert len(resp.json()) == 3

    def test_task_metrics(self, client):
        resp = client.get("/api/activity/metrics", params={"days": 7})
        assert resp.status_code == 200
        assert resp.json()["completedInPeriod"] == 1

    def test_today(self, client):
        resp = client.get("/api/activity/today")
        assert resp.status_code == 200
        assert set(resp.json()) == {"closedTasks", "newContacts", "newCompanies", "newDeals"}

    def test_tasks_in_range(self, client):
        resp = client.get("/api/activity/tasks", params={"start": 0, "end": NOW})
        assert resp.status_code == 200
        assert resp.json()["totalTasks"] == 1
        assert resp.json()["tasks"][0]["status"] == "COMPLETED"

    def test_tasks_range_required(self, client):
        assert client.get("/api/activity/tasks").status_code == 422

    def test_completed_tasks_and_total(self, client):
        assert client.get("/api/activity/tasks/completed", params={"start": 0, "end": NOW}).status_code == 200
        assert client.get("/api/activity/tasks/total").json() == {"totalTasks": 1}


class TestAppWiring:
    def test_health_without_service(self):
        resp = TestClient(app).get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["service"] == "HubSpot Pulse"

    def test_hub_error_handler(self):
        def broken():
            raise ConfigError("HUBSPOT_API_KEY missing", variable="HUBSPOT_API_KEY")

        app.dependency_overrides[get_service] = broken
        try:
            resp = TestClient(app).get("/api/deals/forecast")
        finally:
            app.dependency_overrides.clear()
        assert resp.status_code == 500
        assert resp.json()["error"] == "CONFIG_ERROR"

    def test_service_missing_is_503(self):
        resp = TestClient(app).get("/api/deals/forecast")
        assert resp.status_code == 503


def make_guarded_app(require_auth, api_key="secret"):
    guarded = FastAPI()
    guarded.add_middleware(APIKeyMiddleware, require_auth=require_auth, api_key=api_key)

    @guarded.get("/api/health")
    async def health():
        return {"status": "healthy"}

    @guarded.get("/api/metrics")
    async def metrics():
        return {"ok": True}

    return TestClient(guarded)


class TestAPIKeyMiddleware:
    def test_open_when_auth_disabled(self):
        assert make_guarded_app(False).get("/api/metrics").status_code == 200

    def test_missing_key(self):
        resp = make_guarded_app(True).get("/api/metrics")
        assert resp.status_code == 401
        assert resp.json()["details"] == "Missing X-API-Key header"

    def test_wrong_key(self):
        resp = make_guarded_app(True).get("/api/metrics", headers={"X-API-Key": "nope"})
        assert resp.status_code == 403

    def test_right_key(self):
        resp = make_guarded_app(True).get("/api/metrics", headers={"X-API-Key": "secret"})
        assert resp.status_code == 200

    def test_health_is_public(self):
        assert make_guarded_app(True).get("/api/health").status_code == 200

    def test_no_configured_key_rejects_everything(self):
        resp = make_guarded_app(True, api_key="").get("/api/metrics", headers={"X-API-Key": "x"})
        assert resp.status_code == 403


def settings_from(**env):
    with patch.dict(os.environ, env, clear=True):
        return Settings.from_env(load_dotenv_file=False, require_hubspot_key=False)


class TestCreateApp:
    def test_auth_flag_parsed_like_every_other_bool(self):
        guarded = TestClient(create_app(settings_from(REQUIRE_API_KEY="1", DASHBOARD_API_KEY="secret")))

        assert guarded.get("/api/deals/forecast").status_code == 401
        assert guarded.get("/api/deals/forecast", headers={"X-API-Key": "wrong"}).status_code == 403
        # key accepted: request reaches the route, which has no service before startup
        assert guarded.get("/api/deals/forecast", headers={"X-API-Key": "secret"}).status_code == 503
        assert guarded.get("/api/health").status_code == 200

    def test_auth_off_by_default(self):
        open_app = TestClient(create_app(settings_from()))
        assert open_app.get("/api/deals/forecast").status_code == 503

    def test_cors_origins_from_settings(self):
        web = TestClient(create_app(settings_from(CORS_ORIGINS="https://dash.example")))

        allowed = web.get("/api/health", headers={"Origin": "https://dash.example"})
        other = web.get("/api/health", headers={"Origin": "https://evil.example"})

        assert allowed.headers.get("access-control-allow-origin") == "https://dash.example"
        assert "access-control-allow-origin" not in other.headers

    def test_settings_kept_on_app_state(self):
        settings = settings_from(DASHBOARD_TIMEZONE="Europe/Berlin")
        assert create_app(settings).state.settings is settings

    def test_startup_requires_hubspot_key(self):
        with pytest.raises(ConfigError):
            with TestClient(create_app(settings_from())):
                pass
