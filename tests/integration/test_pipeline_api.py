from __future__ import annotations

from unittest.mock import patch

from cloudstream.errors import EnrichmentError
from cloudstream.models.asset import AssetRecord


def test_process_pending(client, services, wait_for):
    services.pipeline.store.add(AssetRecord(id="p1", source_name="p1.mp4", original_size_bytes=10))

    resp = client.post("/api/pipeline/process")

    assert resp.status_code == 200
    assert resp.get_json() == {"started": ["p1"]}
    assert wait_for(lambda: services.pipeline.get("p1").is_published)
    assert client.post("/api/pipeline/process").get_json() == {"started": []}


def test_stats_after_publish(client, wait_for):
    created = client.post(
        "/api/assets", json={"source_name": "clip.mp4", "original_size_bytes": 130547712}
    ).get_json()
    assert wait_for(lambda: client.get("/api/stats").get_json()["count"] == 1)

    stats = client.get("/api/stats").get_json()
    assert stats["used_bytes"] == 26109542
    assert stats["quota_bytes"] == 10 * 1024**3
    assert stats["percentage"] == 0.2

    client.delete(f"/api/assets/{created['id']}")
    assert client.get("/api/stats").get_json()["count"] == 0


def test_categories(client):
    data = client.get("/api/categories").get_json()
    assert len(data["categories"]) == 8
    assert data["categories"][0] == {
        "id": "horror_attacks",
        "label": "هجمات مرعبة",
        "folder": "هجمات_مرعبة",
    }


def test_notifications(client):
    client.post("/api/assets", json={"source_name": "clip.mp4", "original_size_bytes": 10})

    events = client.get("/api/notifications").get_json()["notifications"]

    assert events[0]["message"] == 'Video "clip.mp4" sent for processing'
    assert events[0]["kind"] == "success"


def test_activity(client, wait_for):
    created = client.post(
        "/api/assets", json={"source_name": "clip.mp4", "original_size_bytes": 10}
    ).get_json()
    assert wait_for(
        lambda: len(client.get(f"/api/activity?asset_id={created['id']}").get_json()["events"]) == 2
    )

    events = client.get(f"/api/activity?asset_id={created['id']}").get_json()["events"]
    assert [e["action"] for e in events] == ["published", "submitted"]
    assert events[1]["detail"]["source_name"] == "clip.mp4"
    assert client.get("/api/activity?asset_id=bad.id").status_code == 400
    assert len(client.get("/api/activity?limit=1").get_json()["events"]) == 1


def test_enrich_local(client):
    resp = client.post("/api/enrich", json={"source_name": "night_walk.mp4"})
    assert resp.status_code == 200
    assert resp.get_json()["title"] == "Night walk"


def test_enrich_requires_name(client):
    assert client.post("/api/enrich", json={}).status_code == 400
    assert client.post("/api/enrich", json=["x"]).status_code == 400


def test_enrich_failure_maps_to_bad_gateway(client, services):
    with patch.object(
        services.pipeline.enricher,
        "enrich",
        side_effect=EnrichmentError("Enrichment failed after 3 attempts: HTTP 503", attempts=3),
    ):
        resp = client.post("/api/enrich", json={"source_name": "clip.mp4"})

    assert resp.status_code == 502
    assert resp.get_json()["attempts"] == 3
