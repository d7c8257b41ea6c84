"""
PCD point cloud reader
ASCII and binary PCD v0.7 into (N, 3) positions and optional [0, 1] RGB
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from pipelines.mapping.frame.models import PointCloudRecord

logger = logging.getLogger(__name__)

_TYPE_MAP = {
    ("F", 4): "f4",
    ("F", 8): "f8",
    ("I", 1): "i1",
    ("I", 2): "i2",
    ("I", 4): "i4",
    ("I", 8): "i8",
    ("U", 1): "u1",
    ("U", 2): "u2",
    ("U", 4): "u4",
    ("U", 8): "u8",
}

_HEADER_KEYS = ("VERSION", "FIELDS", "SIZE", "TYPE", "COUNT", "WIDTH", "HEIGHT", "VIEWPOINT", "POINTS", "DATA")


class PointCloudParseError(ValueError):
    """The point cloud payload is not a supported PCD file."""


def _read_header(payload: bytes) -> Tuple[Dict[str, List[str]], int]:
    """Header fields and the byte offset where data starts."""
    header: Dict[str, List[str]] = {}
    offset = 0
    while True:
        end = payload.find(b"\n", offset)
        if end < 0:
            raise PointCloudParseError("PCD header is truncated (no DATA line)")
        line = payload[offset:end].decode("ascii", errors="replace").strip()
        offset = end + 1
        if not line or line.startswith("#"):
            continue
        key, *values = line.split()
        key = key.upper()
        if key not in _HEADER_KEYS:
            raise PointCloudParseError(f"Unexpected PCD header entry: {key}")
        header[key] = values
        if key == "DATA":
            return header, offset


def _build_dtype(header: Dict[str, List[str]]) -> np.dtype:
    fields = header.get("FIELDS")
    if not fields:
        raise PointCloudParseError("PCD header has no FIELDS")
    sizes = header.get("SIZE") or ["4"] * len(fields)
    types = header.get("TYPE") or ["F"] * len(fields)
    counts = header.get("COUNT") or ["1"] * len(fields)
    if not (len(fields) == len(sizes) == len(types) == len(counts)):
        raise PointCloudParseError("PCD FIELDS/SIZE/TYPE/COUNT lengths differ")

    descr = []
    for i, (name, size, typ, count) in enumerate(zip(fields, sizes, types, counts)):
        try:
            code = _TYPE_MAP[(typ.upper(), int(size))]
            n = int(count)
        except (KeyError, ValueError) as e:
            raise PointCloudParseError(f"Unsupported PCD field {name}: type={typ} size={size}") from e
        # "_" padding fields may repeat
        field_name = name if name != "_" else f"_pad{i}"
        descr.append((field_name, "<" + code) if n == 1 else (field_name, "<" + code, (n,)))
    return np.dtype(descr)


def _point_count(header: Dict[str, List[str]]) -> int:
    try:
        if "POINTS" in header:
            return int(header["POINTS"][0])
        return int(header["WIDTH"][0]) * int(header.get("HEIGHT", ["1"])[0])
    except (KeyError, IndexError, ValueError) as e:
        raise PointCloudParseError("PCD header has no usable POINTS/WIDTH") from e


def _unpack_rgb(values: np.ndarray) -> np.ndarray:
    """Packed 0x00RRGGBB (stored as float32 or uint32) → (N, 3) in [0, 1]."""
    if values.dtype.kind == "f":
        packed = np.ascontiguousarray(values.astype("<f4")).view("<u4")
    else:
        packed = values.astype(np.uint32)
    r = (packed >> 16) & 0xFF
    g = (packed >> 8) & 0xFF
    b = packed & 0xFF
    return np.stack([r, g, b], axis=1).astype(np.float32) / 255.0


def _extract_colors(data: np.ndarray, names: Tuple[str, ...]) -> Optional[np.ndarray]:
    for key in ("rgb", "rgba"):
        if key in names:
            return _unpack_rgb(np.asarray(data[key]).reshape(-1))
    if all(c in names for c in ("r", "g", "b")):
        rgb = np.stack([np.asarray(data[c], dtype=np.float64) for c in ("r", "g", "b")], axis=1)
        scale = 255.0 if rgb.size and rgb.max() > 1.0 else 1.0
        return np.clip(rgb / scale, 0.0, 1.0).astype(np.float32)
    return None


def parse_pcd(payload: bytes) -> PointCloudRecord:
    """
    Parse a PCD file. Rows with a non-finite coordinate are dropped.

    Raises:
        PointCloudParseError: unreadable header, missing x/y/z, unsupported
            encoding (binary_compressed) or truncated data
    """
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    header, data_offset = _read_header(payload)
    dtype = _build_dtype(header)
    names = dtype.names or ()
    if not all(axis in names for axis in ("x", "y", "z")):
        raise PointCloudParseError("PCD must carry x, y and z fields")

    count = _point_count(header)
    encoding = header["DATA"][0].lower() if header["DATA"] else ""

    if encoding == "ascii":
        text = payload[data_offset:].decode("ascii", errors="replace")
        rows = [line.split() for line in text.splitlines() if line.strip()]
        width = sum(int(np.prod(dtype[name].shape)) if dtype[name].shape else 1 for name in names)
        rows = [row for row in rows if len(row) == width][:count]
        flat = np.asarray(rows, dtype=np.float64).reshape(-1, width) if rows else np.empty((0, width))
        data = np.zeros(len(flat), dtype=dtype)
        col = 0
        for name in names:
            n = int(np.prod(dtype[name].shape)) if dtype[name].shape else 1
            if name in ("rgb", "rgba") and dtype[name].kind == "f":
                # float-packed colours must keep their bit pattern
                data[name] = flat[:, col].astype("<f4")
            else:
                data[name] = flat[:, col:col + n].reshape(data[name].shape)
            col += n
    elif encoding == "binary":
        needed = count * dtype.itemsize
        available = len(payload) - data_offset
        if available < needed:
            raise PointCloudParseError(f"PCD binary data truncated: need {needed} bytes, have {available}")
        data = np.frombuffer(payload, dtype=dtype, count=count, offset=data_offset)
    elif encoding == "binary_compressed":
        raise PointCloudParseError("binary_compressed PCD is not supported")
    else:
        raise PointCloudParseError(f"Unknown PCD DATA encoding: {encoding!r}")

    positions = np.stack([np.asarray(data[a], dtype=np.float64) for a in ("x", "y", "z")], axis=1)
    colors = _extract_colors(data, names)

    finite = np.all(np.isfinite(positions), axis=1)
    dropped = int(len(positions) - finite.sum())
    if dropped:
        logger.info(f"☁️ Dropped {dropped} non-finite points")
    positions = positions[finite]
    if colors is not None:
        colors = colors[finite]

    logger.info(f"☁️ Parsed point cloud: {len(positions)} points ({encoding}), colors={'yes' if colors is not None else 'no'}")
    return PointCloudRecord(positions=positions, colors=colors)
