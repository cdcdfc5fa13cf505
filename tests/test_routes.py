import pytest
from fastapi.testclient import TestClient

from aggregation_engine.main import create_application

JOB_PAYLOAD = {
    "name": "Terminal TEU totals",
    "type": "scheduled",
    "schedule": {"type": "cron", "expression": "0 2 * * *", "priority": 6},
    "source": {"kind": "columnar_store", "table": "operations"},
    "target": {"kind": "columnar_store", "table": "aggregated_data"},
    "transformation": {
        "operations": [{"type": "sum", "field": "teu_count", "alias": "total_teu"}],
        "groupBy": ["terminal"],
    },
}


@pytest.fixture
def client(service):
    app = create_application(service=service, start_background=False)
    with TestClient(app) as client:
        yield client


def _create_job(client, **overrides):
    response = client.post("/aggregation/jobs", json={**JOB_PAYLOAD, **overrides}, headers={"X-User-Id": "ops"})
    assert response.status_code == 201, response.text
    return response.json()


def test_create_and_get_job(client):
    job = _create_job(client)

    assert job["status"] == "pending"
    assert job["createdBy"] == "ops"
    assert job["nextRun"] is not None
    assert job["transformation"]["groupBy"] == ["terminal"]

    response = client.get(f"/aggregation/jobs/{job['id']}")
    assert response.status_code == 200
    assert response.json()["name"] == JOB_PAYLOAD["name"]


def test_create_rejects_invalid_schedule(client):
    response = client.post("/aggregation/jobs", json={**JOB_PAYLOAD, "schedule": {"type": "cron"}})

    assert response.status_code == 422
    assert response.json()["error_code"] == "VALIDATION_ERROR"


def test_unknown_job_returns_404(client):
    response = client.get("/aggregation/jobs/missing")

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


def test_list_jobs_paginates(client):
    for index in range(3):
        _create_job(client, name=f"Terminal job {index}")
    _create_job(client, name="Revenue job", type="on_demand")

    body = client.get("/aggregation/jobs", params={"search": "terminal", "limit": 2}).json()
    assert body["total"] == 3
    assert len(body["items"]) == 2
    assert body["hasNext"] is True

    body = client.get("/aggregation/jobs", params={"type": "on_demand"}).json()
    assert [item["name"] for item in body["items"]] == ["Revenue job"]


def test_patch_job(client):
    job = _create_job(client)
    response = client.patch(f"/aggregation/jobs/{job['id']}", json={"isActive": False, "schedule": {"priority": 2}})

    assert response.status_code == 200
    assert response.json()["isActive"] is False
    assert response.json()["schedule"]["priority"] == 2


def test_run_cancel_and_delete(client, service):
    job = _create_job(client)

    response = client.post(f"/aggregation/jobs/{job['id']}/run", json={"parameters": {"day": "2024-01-01"}, "highPriority": True})
    assert response.status_code == 202
    assert service.dispatcher.stats()["queues"]["high"] == 1

    response = client.post(f"/aggregation/jobs/{job['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert service.dispatcher.stats()["queued"] == 0

    response = client.delete(f"/aggregation/jobs/{job['id']}")
    assert response.status_code == 200
    assert client.get(f"/aggregation/jobs/{job['id']}").status_code == 404


def test_delete_running_job_conflicts(client, service):
    job = _create_job(client)
    service.registry.mark_running(job["id"])

    response = client.delete(f"/aggregation/jobs/{job['id']}")
    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"


def test_templates(client):
    response = client.post("/aggregation/templates", json={"name": "Revenue by day", "category": "financial"})
    assert response.status_code == 201

    templates = client.get("/aggregation/templates").json()
    assert {template["id"] for template in templates} >= {"operational-daily", response.json()["id"]}


def test_statistics_and_service_stats(client):
    _create_job(client)

    statistics = client.get("/aggregation/statistics").json()
    assert statistics["totalJobs"] == 1
    assert statistics["jobsByCategory"] == [{"category": "operational", "count": 1, "percentage": 100.0}]

    stats = client.get("/aggregation/stats").json()
    assert stats["totalJobs"] == 1
    assert stats["templates"] == 1
    assert stats["maxConcurrentJobs"] == 5
    assert stats["memoryUsage"]["rss"] > 0


def test_get_template_by_id(client):
    response = client.get("/aggregation/templates/operational-daily")
    assert response.status_code == 200
    assert response.json()["isDefault"] is True

    assert client.get("/aggregation/templates/unknown").status_code == 404
