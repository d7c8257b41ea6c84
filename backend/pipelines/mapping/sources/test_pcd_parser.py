from __future__ import annotations

import numpy as np
import pytest

from .pcd_parser import PointCloudParseError, parse_pcd


def _header(fields, sizes, types, count: int, data: str) -> bytes:
    n = len(fields)
    lines = [
        "# .PCD v0.7 - Point Cloud Data file format",
        "VERSION 0.7",
        f"FIELDS {' '.join(fields)}",
        f"SIZE {' '.join(map(str, sizes))}",
        f"TYPE {' '.join(types)}",
        f"COUNT {' '.join(['1'] * n)}",
        f"WIDTH {count}",
        "HEIGHT 1",
        "VIEWPOINT 0 0 0 1 0 0 0",
        f"POINTS {count}",
        f"DATA {data}",
    ]
    return ("\n".join(lines) + "\n").encode("ascii")


def test_ascii_xyz() -> None:
    payload = _header(["x", "y", "z"], [4, 4, 4], ["F", "F", "F"], 3, "ascii") + b"1 2 3\n4 5 6\nnan 0 0\n"
    cloud = parse_pcd(payload)

    assert cloud.positions.tolist() == [[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]]
    assert cloud.colors is None
    assert cloud.count == 2


def test_ascii_separate_rgb_channels() -> None:
    payload = _header(
        ["x", "y", "z", "r", "g", "b"], [4, 4, 4, 1, 1, 1], ["F", "F", "F", "U", "U", "U"], 1, "ascii"
    ) + b"0 0 0 255 0 51\n"
    cloud = parse_pcd(payload)

    np.testing.assert_allclose(cloud.colors, [[1.0, 0.0, 0.2]], rtol=1e-6)


def test_binary_with_packed_rgb() -> None:
    dtype = np.dtype([("x", "<f4"), ("y", "<f4"), ("z", "<f4"), ("rgb", "<u4")])
    rows = np.zeros(3, dtype=dtype)
    rows["x"] = [1.0, np.nan, 3.0]
    rows["y"] = [2.0, 0.0, 4.0]
    rows["z"] = [0.5, 0.0, 1.5]
    rows["rgb"] = [0x00FF0000, 0x0000FF00, 0x000000FF]
    payload = _header(["x", "y", "z", "rgb"], [4, 4, 4, 4], ["F", "F", "F", "U"], 3, "binary") + rows.tobytes()

    cloud = parse_pcd(payload)

    assert cloud.positions.tolist() == [[1.0, 2.0, 0.5], [3.0, 4.0, 1.5]]
    assert cloud.colors.tolist() == [[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]]


def test_binary_float_packed_rgb_keeps_bits() -> None:
    dtype = np.dtype([("x", "<f4"), ("y", "<f4"), ("z", "<f4"), ("rgb", "<f4")])
    rows = np.zeros(1, dtype=dtype)
    rows["rgb"] = np.array([0x0000FF00], dtype="<u4").view("<f4")
    payload = _header(["x", "y", "z", "rgb"], [4, 4, 4, 4], ["F", "F", "F", "F"], 1, "binary") + rows.tobytes()

    assert parse_pcd(payload).colors.tolist() == [[0.0, 1.0, 0.0]]


def test_truncated_binary_raises() -> None:
    payload = _header(["x", "y", "z"], [4, 4, 4], ["F", "F", "F"], 10, "binary") + b"\x00" * 12
    with pytest.raises(PointCloudParseError):
        parse_pcd(payload)


def test_compressed_is_rejected() -> None:
    payload = _header(["x", "y", "z"], [4, 4, 4], ["F", "F", "F"], 1, "binary_compressed") + b"\x00" * 16
    with pytest.raises(PointCloudParseError):
        parse_pcd(payload)


def test_missing_axis_raises() -> None:
    payload = _header(["x", "y"], [4, 4], ["F", "F"], 1, "ascii") + b"1 2\n"
    with pytest.raises(PointCloudParseError):
        parse_pcd(payload)


def test_missing_data_line_raises() -> None:
    with pytest.raises(PointCloudParseError):
        parse_pcd(b"VERSION 0.7\nFIELDS x y z\n")
