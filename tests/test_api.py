import csv
import io
import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from devinsight.api.main import create_app
from devinsight.errors import DeliveryError, TransportError, UpstreamError
from devinsight.reports import ReportRenderer
from devinsight.scheduler import ReportDispatcher
from devinsight.service import DevInsightService


@pytest.fixture
def github(fake_github):
    return fake_github(weekly=(5, 5, 5, 5, 5, 0))


@pytest.fixture
def sender():
    return MagicMock()


@pytest.fixture
def service(store, github, sender):
    service = DevInsightService(store, github)
    service.dispatcher = ReportDispatcher(store, ReportRenderer(), sender, refresher=service.refresh_if_stale)
    return service


@pytest.fixture
def client(service):
    return TestClient(create_app(service=service))


@pytest.fixture
def user_id(client):
    response = client.post("/users", json={"access_token": "tok-a"})
    assert response.status_code == 200
    return response.json()["id"]


@pytest.fixture
def headers(user_id):
    return {"X-User-Id": str(user_id)}


@pytest.fixture
def repo_id(client, headers):
    response = client.post("/repos/connect", json={"owner": "octo", "name": "widgets"}, headers=headers)
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def other_headers(store):
    bob = store.upsert_user("2", "bob", "tok-b", email="bob@example.com")
    return {"X-User-Id": str(bob.id)}


def test_root_and_health(client):
    assert client.get("/").json()["service"] == "DevInsight API"
    assert client.get("/health").json() == {"status": "healthy", "database": "connected"}


def test_missing_user_header(client):
    assert client.get("/users/me").status_code == 401


def test_unknown_user(client):
    assert client.get("/users/me", headers={"X-User-Id": "999"}).status_code == 404


def test_profile(client, headers):
    response = client.get("/users/me", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["username"] == "octocat"
    assert "access_token" not in body


def test_list_github_repos(client, headers, repo_id):
    response = client.get("/repos", headers=headers)
    assert response.status_code == 200
    assert response.json()[0]["full_name"] == "octo/widgets"
    assert response.json()[0]["connected"] is True


def test_connect_twice(client, headers, repo_id):
    response = client.post("/repos/connect", json={"owner": "octo", "name": "widgets"}, headers=headers)
    assert response.status_code == 400


def test_repository_details_refresh_when_stale(client, headers, repo_id):
    response = client.get(f"/repos/{repo_id}", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["metrics"]["commits"]["total"] == 25
    assert body["alerts"] == {"noActivity": True, "longOpenPRs": False, "commitDrops": True}
    assert body["thresholds"] == {"noActivityDays": 7, "longOpenPRsDays": 14, "commitDropPercentage": 70}
    assert body["last_fetched"] is not None

    connected = client.get("/repos/connected", headers=headers).json()
    assert [r["id"] for r in connected] == [repo_id]


def test_repository_access_control(client, headers, other_headers, repo_id):
    assert client.get(f"/repos/{repo_id}", headers=other_headers).status_code == 403
    assert client.delete(f"/repos/{repo_id}", headers=other_headers).status_code == 403
    assert client.get("/repos/4242", headers=headers).status_code == 404


def test_refresh_errors_are_mapped(client, github, headers, repo_id):
    github.get_contributors.side_effect = UpstreamError(403, "API rate limit exceeded")
    response = client.post(f"/repos/{repo_id}/refresh", headers=headers)
    assert response.status_code == 502
    assert response.json()["upstream_status"] == 403

    github.get_contributors.side_effect = TransportError("timed out")
    assert client.post(f"/repos/{repo_id}/refresh", headers=headers).status_code == 504


def test_refresh(client, headers, repo_id):
    response = client.post(f"/repos/{repo_id}/refresh", headers=headers)
    assert response.status_code == 200
    assert response.json()["metrics"]["pullRequests"] == {"open": 0, "closed": 0, "merged": 0}


def test_disconnect(client, headers, repo_id):
    response = client.delete(f"/repos/{repo_id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["repository_deleted"] is True
    assert client.get("/repos/connected", headers=headers).json() == []


def test_alert_lifecycle(client, headers, other_headers, repo_id):
    client.post(f"/repos/{repo_id}/refresh", headers=headers)
    alerts = client.get("/alerts", headers=headers).json()
    assert {a["type"] for a in alerts} == {"noActivity", "commitDrops"}
    alert_id = alerts[0]["id"]

    assert client.get(f"/alerts/{alert_id}", headers=other_headers).status_code == 403

    response = client.put(f"/alerts/{alert_id}", json={"status": "dismissed"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "dismissed"
    assert response.json()["resolved_at"] is not None

    assert client.put(f"/alerts/{alert_id}", json={"status": "active"}, headers=headers).status_code == 400
    assert len(client.get("/alerts", headers=headers).json()) == 1
    assert len(client.get("/alerts?status=all", headers=headers).json()) == 2


def test_configure_thresholds(client, headers, repo_id):
    response = client.put(f"/alerts/config/{repo_id}", json={"noActivityDays": 14, "longOpenPRsDays": 3},
                          headers=headers)
    assert response.status_code == 200
    assert response.json() == {"noActivityDays": 14, "longOpenPRsDays": 3, "commitDropPercentage": 70}

    bad = client.put(f"/alerts/config/{repo_id}", json={"commitDropPercentage": 101}, headers=headers)
    assert bad.status_code == 400


def test_report_settings(client, headers):
    assert client.get("/reports/settings", headers=headers).json() == {
        "enabled": False, "frequency": "weekly", "last_sent": None}

    response = client.put("/reports/settings", json={"enabled": True, "frequency": "daily"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["frequency"] == "daily"

    assert client.put("/reports/settings", json={"frequency": "hourly"}, headers=headers).status_code == 400


def test_generate_and_export_report(client, sender, headers, other_headers, repo_id):
    client.post(f"/repos/{repo_id}/refresh", headers=headers)
    response = client.post(f"/reports/generate/{repo_id}", headers=headers)
    assert response.status_code == 200
    report = response.json()
    assert report["status"] == "sent"
    sender.send.assert_called_once()

    assert [r["id"] for r in client.get("/reports", headers=headers).json()] == [report["id"]]
    assert client.get(f"/reports/{report['id']}", headers=headers).json()["report_type"] == "weekly"
    assert client.get(f"/reports/{report['id']}", headers=other_headers).status_code == 403

    export = client.get(f"/reports/{report['id']}/export", headers=headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "octo-widgets-report-" in export.headers["content-disposition"]
    values = {row[0]: row[1] for row in csv.reader(io.StringIO(export.text)) if len(row) >= 2}
    assert int(values["Total Commits"]) == 25


def test_generate_report_delivery_failure(client, sender, headers, repo_id):
    sender.send.side_effect = DeliveryError("SMTP down")
    response = client.post(f"/reports/generate/{repo_id}", json={"report_type": "daily"}, headers=headers)
    assert response.status_code == 502
    reports = client.get("/reports", headers=headers).json()
    assert reports[0]["status"] == "failed"
    assert reports[0]["report_type"] == "daily"


def test_delete_account(client, headers, repo_id):
    response = client.delete("/users/me", headers=headers)
    assert response.status_code == 200
    assert response.json()["deleted_repositories"] == ["octo/widgets"]
    assert client.get("/users/me", headers=headers).status_code == 404
