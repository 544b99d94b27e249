"""Google 折线（Encoded Polyline）编解码

每个坐标分量先乘以 1e5 取整，与上一个点做差分，
差值左移一位并对负数取反（zig-zag），再按 5 bit 分组、
低位在前，除最后一组外都置 0x20 续位标志，最后加 63 转成可打印字符。
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

Coordinate = Tuple[float, float]

_PRECISION = 1e5


def _read_varint(encoded: str, index: int) -> Tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError(f"Truncated polyline at offset {index}")
        b = ord(encoded[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break

    delta = ~(result >> 1) if result & 1 else result >> 1
    return delta, index


def decode_polyline(encoded: str) -> List[Coordinate]:
    """解码折线字符串

    Args:
        encoded: 折线字符串，例如 Directions API 的 overview_polyline.points

    Returns:
        按顺序排列的 (lat, lng) 列表

    Raises:
        ValueError: 字符串在某个坐标分量中途截断
    """
    points: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        dlat, index = _read_varint(encoded, index)
        dlng, index = _read_varint(encoded, index)
        lat += dlat
        lng += dlng
        points.append((lat / _PRECISION, lng / _PRECISION))

    return points


def _write_varint(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Iterable[Coordinate]) -> str:
    """将 (lat, lng) 序列编码为折线字符串"""
    parts = []
    prev_lat = 0
    prev_lng = 0

    for lat, lng in points:
        ilat = int(round(lat * _PRECISION))
        ilng = int(round(lng * _PRECISION))
        parts.append(_write_varint(ilat - prev_lat))
        parts.append(_write_varint(ilng - prev_lng))
        prev_lat, prev_lng = ilat, ilng

    return "".join(parts)
