"""HTTP surface tests."""

from fastapi.testclient import TestClient

from stepflow.runtime.api import create_app
from tests.fixtures.fakes import make_runtime


def get_client():
    return TestClient(create_app(make_runtime()))


def test_fetch_route_returns_pipeline_id():
    with get_client() as client:
        r = client.post("/pipeline/fetch", json={"source": "s1", "batchSize": 3})

    assert r.status_code == 200
    body = r.json()
    assert body["pipelineId"].startswith("pipeline-")
    assert body["status"] == "processing"
    assert body["message"] == "Fetched 3 records from s1"


def test_schedule_route_rejects_bad_input():
    with get_client() as client:
        r = client.post("/campaign/schedule", json={"campaignName": "Launch", "recipients": []})

    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "validation_error"
    fields = body["details"]["fieldErrors"]
    assert "recipients" in fields
    assert "subject" in fields
    assert "template" in fields


def test_invalid_json_is_bad_input():
    with get_client() as client:
        r = client.post(
            "/campaign/schedule",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


def test_schedule_route_accepts_campaign():
    with get_client() as client:
        r = client.post(
            "/campaign/schedule",
            json={
                "campaignName": "Launch",
                "recipients": ["a@example.com", "b@example.com"],
                "subject": "Hello",
                "template": "welcome",
            },
        )

    assert r.status_code == 200
    body = r.json()
    assert body["campaignId"].startswith("campaign-")
    assert body["recipientCount"] == 2
    assert body["message"] == 'Campaign "Launch" scheduled for 2 recipients'


def test_steps_listing():
    with get_client() as client:
        r = client.get("/steps")

    assert r.status_code == 200
    names = {row["name"] for row in r.json()}
    assert names == {
        "FetchData",
        "TransformData",
        "ValidateData",
        "StoreData",
        "ScheduleCampaign",
        "GenerateContent",
        "SendEmails",
        "TrackEngagement",
        "CleanupOldData",
        "DailyReportGenerator",
        "SystemHealthCheck",
    }


def test_declared_responses_appear_in_openapi():
    with get_client() as client:
        schema = client.get("/openapi.json").json()

    responses = schema["paths"]["/campaign/schedule"]["post"]["responses"]
    ok = responses["200"]["content"]["application/json"]["schema"]["$ref"]
    bad = responses["400"]["content"]["application/json"]["schema"]["$ref"]
    assert ok.endswith("/ScheduleCampaignResponse")
    assert bad.endswith("/ErrorResponse")
    assert "campaignId" in schema["components"]["schemas"]["ScheduleCampaignResponse"]["properties"]
