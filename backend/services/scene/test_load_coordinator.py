from __future__ import annotations

import asyncio
from typing import Dict, Optional

import numpy as np

from pipelines.mapping.frame.models import OriginSource
from pipelines.mapping.frame.pipeline import FramePipeline
from pipelines.mapping.projection.transformer import ProjectionAdapter

from .layer_store import LAYER_CLOUD, LAYER_INDICATORS, LAYER_VECTOR
from .load_coordinator import LoadCoordinator
from .sources import SourceFetchError


def _osm(way_id: str, offset: float = 0.0) -> bytes:
    return f"""<osm>
  <node id="1"><tag k="local_x" v="{offset}"/><tag k="local_y" v="0"/></node>
  <node id="2"><tag k="local_x" v="{offset + 10}"/><tag k="local_y" v="0"/></node>
  <node id="3"><tag k="local_x" v="{offset + 10}"/><tag k="local_y" v="10"/></node>
  <way id="{way_id}"><nd ref="1"/><nd ref="2"/><nd ref="3"/></way>
</osm>""".encode()


GEO_OSM = b"""<osm>
  <node id="1" lat="35.00" lon="139.00"><tag k="ele" v="2"/></node>
  <node id="2" lat="35.01" lon="139.00"><tag k="ele" v="2"/></node>
  <node id="3" lat="35.01" lon="139.02"><tag k="ele" v="2"/></node>
  <way id="geo"><nd ref="1"/><nd ref="2"/><nd ref="3"/></way>
</osm>"""

PCD = (
    b"VERSION 0.7\nFIELDS x y z\nSIZE 4 4 4\nTYPE F F F\nCOUNT 1 1 1\n"
    b"WIDTH 100\nHEIGHT 1\nPOINTS 100\nDATA ascii\n"
    + b"".join(f"{i} {i % 7} 1\n".encode() for i in range(100))
)

ABSOLUTE_PCD = (
    b"VERSION 0.7\nFIELDS x y z\nSIZE 8 8 8\nTYPE F F F\nCOUNT 1 1 1\n"
    b"WIDTH 1\nHEIGHT 1\nPOINTS 1\nDATA ascii\n139005 35006 3\n"
)


class FakeFetcher:
    """Serves canned payloads; sources listed in `gates` wait for their event."""

    def __init__(self, payloads: Dict[str, bytes], gates: Optional[Dict[str, asyncio.Event]] = None) -> None:
        self.payloads = payloads
        self.gates = gates or {}
        self.requested = []

    async def __call__(self, source: str) -> bytes:
        self.requested.append(source)
        gate = self.gates.get(source)
        if gate is not None:
            await gate.wait()
        if source not in self.payloads:
            raise SourceFetchError(f"missing {source}")
        return self.payloads[source]


def _fake_projection(source: str, target: str, point):
    lon, lat = point
    return (lon * 1000.0, lat * 1000.0)


def _coordinator(fetcher: FakeFetcher) -> LoadCoordinator:
    pipeline = FramePipeline(adapter=ProjectionAdapter(project_fn=_fake_projection))
    coordinator = LoadCoordinator(pipeline=pipeline, fetcher=fetcher)
    coordinator._inputs = type(coordinator._inputs)()
    return coordinator


def _way_ids(coordinator: LoadCoordinator):
    return [line["way_id"] for line in coordinator.layer_geometry(LAYER_VECTOR)["polylines"]]


def test_vector_and_cloud_load() -> None:
    fetcher = FakeFetcher({"map.osm": _osm("lane"), "cloud.pcd": PCD})
    coordinator = _coordinator(fetcher)

    result = asyncio.run(coordinator.load(vector_source="map.osm", pointcloud_source="cloud.pcd"))

    assert result["success"]
    assert result["status"] == "Vector map loaded. Point cloud loaded."
    snapshot = coordinator.snapshot()
    assert snapshot["layers"][LAYER_VECTOR]["polylines"] == 1
    assert snapshot["layers"][LAYER_CLOUD]["points"] == 100
    assert snapshot["camera"] is not None
    assert snapshot["committed_token"] == result["token"]
    assert _way_ids(coordinator) == ["lane"]


def test_superseded_sequence_leaves_no_trace() -> None:
    async def scenario():
        gate = asyncio.Event()
        fetcher = FakeFetcher({"slow.osm": _osm("A"), "fast.osm": _osm("B", 50.0)}, gates={"slow.osm": gate})
        coordinator = _coordinator(fetcher)

        task_a = asyncio.create_task(coordinator.load(vector_source="slow.osm"))
        while "slow.osm" not in fetcher.requested:
            await asyncio.sleep(0)

        result_b = await coordinator.load(vector_source="fast.osm")
        status_after_b = coordinator.store.status
        frame_after_b = coordinator.store.frame

        gate.set()
        result_a = await task_a
        return coordinator, result_a, result_b, status_after_b, frame_after_b

    coordinator, result_a, result_b, status_after_b, frame_after_b = asyncio.run(scenario())

    assert result_a["superseded"]
    assert not result_a["success"]
    assert result_b["success"]
    assert result_b["token"] > result_a["token"]
    assert coordinator.store.state.committed_token == result_b["token"]
    assert coordinator.store.status == status_after_b
    assert coordinator.store.frame is frame_after_b
    assert _way_ids(coordinator) == ["B"]


def test_superseded_during_indicator_placement() -> None:
    async def scenario():
        fetcher = FakeFetcher({"map.osm": _osm("lane")})
        coordinator = _coordinator(fetcher)
        coordinator.pipeline.arrow_placer.batch_size = 1
        await coordinator.load(vector_source="map.osm")

        task_a = asyncio.create_task(coordinator.update_config(show_directions=True))
        await asyncio.sleep(0)
        result_b = await coordinator.update_config(flip_y=False)
        result_a = await task_a
        return coordinator, result_a, result_b

    coordinator, result_a, result_b = asyncio.run(scenario())

    assert result_a["superseded"]
    assert result_b["success"]
    assert coordinator.store.state.committed_token == result_b["token"]
    # B ran with show_directions already on
    assert len(coordinator.layer_geometry(LAYER_INDICATORS)["indicators"]) == 1


def test_vector_parse_failure_keeps_previous_inputs() -> None:
    fetcher = FakeFetcher({"good.osm": _osm("good"), "bad.osm": b"<osm><node></osm>"})
    coordinator = _coordinator(fetcher)
    asyncio.run(coordinator.load(vector_source="good.osm"))
    previous_inputs = coordinator.inputs

    result = asyncio.run(coordinator.load(vector_source="bad.osm"))

    assert not result["success"]
    assert not result["superseded"]
    assert "error" in result
    assert coordinator.store.status.startswith("Failed to parse vector map")
    assert coordinator.inputs is previous_inputs


def test_missing_cloud_is_fatal() -> None:
    coordinator = _coordinator(FakeFetcher({}))

    result = asyncio.run(coordinator.load(pointcloud_source="nowhere.pcd"))

    assert not result["success"]
    assert coordinator.store.status.startswith("Failed to load point cloud")


def test_bad_projector_degrades_to_mgrs_with_warning() -> None:
    fetcher = FakeFetcher({"map.osm": GEO_OSM, "projector.yaml": b"vertical_datum: WGS84\n"})
    coordinator = _coordinator(fetcher)

    result = asyncio.run(coordinator.load(vector_source="map.osm", projector_source="projector.yaml"))

    assert result["success"]
    codes = [w["code"] for w in result["diagnostics"]["warnings"]]
    assert "projector_metadata_invalid" in codes
    assert coordinator.inputs.projector.is_mgrs
    assert result["diagnostics"]["projection_id"] == "EPSG:32654"


def test_origin_file_is_a_user_override_and_cloud_aligns() -> None:
    fetcher = FakeFetcher({
        "map.osm": GEO_OSM,
        "cloud.pcd": ABSOLUTE_PCD,
        "map_config.yaml": b"map_origin:\n  latitude: 35.0\n  longitude: 139.0\n  elevation: 2.0\n",
    })
    coordinator = _coordinator(fetcher)

    result = asyncio.run(coordinator.load(
        vector_source="map.osm",
        pointcloud_source="cloud.pcd",
        origin_source="map_config.yaml",
    ))
    asyncio.run(coordinator.update_config(density_percent=100.0))

    assert result["success"]
    assert result["diagnostics"]["origin"]["source"] == OriginSource.USER_OVERRIDE.value
    assert coordinator.inputs.explicit_origin is None
    snapshot = coordinator.snapshot()
    assert snapshot["alignment_offset"]["applied"]
    assert snapshot["alignment_offset"]["dx"] == -139000.0
    positions = np.array(coordinator.layer_geometry(LAYER_CLOUD)["positions"])
    np.testing.assert_allclose(positions, [[5.0, 1.0, -6.0]], atol=1e-6)


def test_map_origin_source_sets_the_explicit_origin() -> None:
    fetcher = FakeFetcher({
        "map.osm": GEO_OSM,
        "map_config.yaml": b"map_origin:\n  latitude: 35.0\n  longitude: 139.0\n  elevation: 2.0\n",
    })
    coordinator = _coordinator(fetcher)

    result = asyncio.run(coordinator.load(vector_source="map.osm", explicit_origin_source="map_config.yaml"))

    assert result["success"]
    assert result["diagnostics"]["origin"]["source"] == OriginSource.EXPLICIT_CONFIG.value
    assert coordinator.inputs.override_origin is None


def test_display_changes_do_not_start_a_sequence() -> None:
    fetcher = FakeFetcher({"cloud.pcd": PCD})
    coordinator = _coordinator(fetcher)
    asyncio.run(coordinator.load(pointcloud_source="cloud.pcd"))
    token = coordinator.token

    result = asyncio.run(coordinator.update_config(density_percent=40.0, point_size=5.0))

    assert result["success"]
    assert coordinator.token == token
    geometry = coordinator.layer_geometry(LAYER_CLOUD)
    assert geometry["total"] == 100
    assert geometry["count"] == 40
    assert geometry["point_size"] == 2.0


def test_clearing_cloud_clears_alignment_offset() -> None:
    fetcher = FakeFetcher({"map.osm": GEO_OSM, "cloud.pcd": ABSOLUTE_PCD})
    coordinator = _coordinator(fetcher)
    asyncio.run(coordinator.load(vector_source="map.osm", pointcloud_source="cloud.pcd"))
    assert coordinator.snapshot()["alignment_offset"]["applied"]

    result = asyncio.run(coordinator.clear_layer(LAYER_CLOUD))

    assert result["success"]
    snapshot = coordinator.snapshot()
    assert not snapshot["alignment_offset"]["applied"]
    assert not snapshot["layers"][LAYER_CLOUD]["loaded"]
    assert snapshot["layers"][LAYER_VECTOR]["loaded"]


def test_visibility_toggle_does_not_recompute() -> None:
    fetcher = FakeFetcher({"map.osm": _osm("lane")})
    coordinator = _coordinator(fetcher)
    asyncio.run(coordinator.load(vector_source="map.osm"))
    frame = coordinator.store.frame
    token = coordinator.token

    visibility = coordinator.set_visibility(LAYER_VECTOR, False)

    assert visibility[LAYER_VECTOR] is False
    assert coordinator.store.frame is frame
    assert coordinator.token == token
    assert coordinator.layer_geometry(LAYER_VECTOR)["visible"] is False


def test_status_events_are_published() -> None:
    async def scenario():
        fetcher = FakeFetcher({"map.osm": _osm("lane")})
        coordinator = _coordinator(fetcher)
        queue = await coordinator.event_bus.subscribe()
        await coordinator.load(vector_source="map.osm")
        events = []
        while not queue.empty():
            events.append(queue.get_nowait())
        return events

    events = asyncio.run(scenario())

    assert any("Loading vector map: map.osm" in e for e in events)
    assert '"committed": true' in events[-1]


def test_config_change_during_load_keeps_the_requested_map() -> None:
    async def scenario():
        gate = asyncio.Event()
        fetcher = FakeFetcher({"old.osm": _osm("OLD"), "new.osm": _osm("NEW")}, gates={"new.osm": gate})
        coordinator = _coordinator(fetcher)
        await coordinator.load(vector_source="old.osm")

        task_load = asyncio.create_task(coordinator.load(vector_source="new.osm"))
        while "new.osm" not in fetcher.requested:
            await asyncio.sleep(0)

        task_config = asyncio.create_task(coordinator.update_config(flip_y=False))
        while fetcher.requested.count("new.osm") < 2:
            await asyncio.sleep(0)
        gate.set()
        return coordinator, await task_load, await task_config

    coordinator, result_load, result_config = asyncio.run(scenario())

    assert result_load["superseded"]
    assert result_config["success"]
    assert result_config["status"] == "Vector map loaded."
    assert coordinator.config.flip_y is False
    assert _way_ids(coordinator) == ["NEW"]

    # Committed, so a further change does not fetch again
    fetched = len(coordinator.fetcher.requested)
    asyncio.run(coordinator.update_config(flip_y=True))
    assert len(coordinator.fetcher.requested) == fetched
    assert _way_ids(coordinator) == ["NEW"]


def test_clearing_vector_drops_its_pending_load() -> None:
    async def scenario():
        gate = asyncio.Event()
        fetcher = FakeFetcher({"slow.osm": _osm("SLOW")}, gates={"slow.osm": gate})
        coordinator = _coordinator(fetcher)

        task_load = asyncio.create_task(coordinator.load(vector_source="slow.osm"))
        while "slow.osm" not in fetcher.requested:
            await asyncio.sleep(0)
        result_clear = await coordinator.clear_layer(LAYER_VECTOR)
        gate.set()
        return coordinator, await task_load, result_clear

    coordinator, result_load, result_clear = asyncio.run(scenario())

    assert result_load["superseded"]
    assert result_clear["success"]
    assert coordinator.fetcher.requested == ["slow.osm"]
    assert not coordinator.snapshot()["layers"][LAYER_VECTOR]["loaded"]


def test_unbuildable_crs_pair_is_rejected_and_config_kept() -> None:
    fetcher = FakeFetcher({"local.osm": _osm("lane")})
    coordinator = LoadCoordinator(fetcher=fetcher)
    coordinator._inputs = type(coordinator._inputs)()
    token = coordinator.token

    rejected = asyncio.run(coordinator.update_config(projection_mode="proj", proj_to="EPSG:not-a-crs"))

    assert not rejected["success"]
    assert not rejected["superseded"]
    assert "EPSG:not-a-crs" in rejected["error"]
    assert coordinator.token == token
    assert coordinator.config.proj_to != "EPSG:not-a-crs"

    result = asyncio.run(coordinator.load(vector_source="local.osm"))

    assert result["success"]
    assert _way_ids(coordinator) == ["lane"]
