from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
import pytest

from api.router import api_router
from pipelines.mapping.frame.pipeline import FramePipeline, SceneInputs
from pipelines.mapping.projection.transformer import ProjectionAdapter
from services.scene.load_coordinator import LoadCoordinator

OSM = b"""<osm>
  <node id="1"><tag k="local_x" v="0"/><tag k="local_y" v="0"/></node>
  <node id="2"><tag k="local_x" v="10"/><tag k="local_y" v="0"/></node>
  <way id="lane"><nd ref="1"/><nd ref="2"/></way>
</osm>"""


async def _fetch(source: str) -> bytes:
    from services.scene.sources import SourceFetchError

    if source == "map.osm":
        return OSM
    if source == "broken.osm":
        return b"<not-osm/>"
    raise SourceFetchError(f"missing {source}")


@pytest.fixture
def client(monkeypatch):
    coordinator = LoadCoordinator(
        pipeline=FramePipeline(adapter=ProjectionAdapter(project_fn=lambda s, t, p: p)),
        fetcher=_fetch,
    )
    coordinator._inputs = SceneInputs()
    monkeypatch.setattr("services.scene._coordinator", coordinator)
    app = FastAPI()
    app.include_router(api_router)
    return TestClient(app)


def test_load_and_read_scene(client) -> None:
    response = client.post("/api/scene/load", json={"vector_source": "map.osm"})
    assert response.status_code == 200
    assert response.json()["success"] is True

    scene = client.get("/api/scene").json()
    assert scene["status"] == "Vector map loaded."
    assert scene["layers"]["vector"]["polylines"] == 1
    assert scene["diagnostics"]["coordinate_flavor"] == "all_local"

    layer = client.get("/api/scene/layers/vector").json()
    assert layer["polylines"][0]["way_id"] == "lane"


def test_load_requires_a_source(client) -> None:
    assert client.post("/api/scene/load", json={}).status_code == 400


def test_failed_load_is_unprocessable(client) -> None:
    response = client.post("/api/scene/load", json={"vector_source": "broken.osm"})
    assert response.status_code == 422


def test_config_and_visibility(client) -> None:
    client.post("/api/scene/load", json={"vector_source": "map.osm"})

    response = client.post("/api/scene/config", json={"show_directions": True})
    assert response.status_code == 200
    assert response.json()["config"]["show_directions"] is True
    indicators = client.get("/api/scene/layers/indicators").json()["indicators"]
    assert len(indicators) == 1

    response = client.post("/api/scene/visibility", json={"layer": "indicators", "visible": False})
    assert response.json()["visibility"]["indicators"] is False

    assert client.post("/api/scene/config", json={"projection_mode": "sideways"}).status_code == 422


def test_unknown_layer_is_404(client) -> None:
    assert client.get("/api/scene/layers/terrain").status_code == 404
    assert client.delete("/api/scene/layers/terrain").status_code == 404
    assert client.post("/api/scene/visibility", json={"layer": "terrain", "visible": True}).status_code == 404


def test_clear_layer(client) -> None:
    client.post("/api/scene/load", json={"vector_source": "map.osm"})

    response = client.delete("/api/scene/layers/vector")

    assert response.status_code == 200
    assert client.get("/api/scene").json()["layers"]["vector"]["loaded"] is False


def test_health_and_logs(client) -> None:
    health = client.get("/api/health")
    assert health.status_code == 200
    assert health.json()["status"] == "success"

    logs = client.get("/api/logs/recent", params={"limit": 10})
    assert logs.status_code == 200
    assert "logs" in logs.json()
