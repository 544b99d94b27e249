"""Google Directions / Geocoding 客户端

把 (起点, 终点, 出行方式, 规避选项) 请求转换为候选路线列表，
屏蔽上游服务的各种怪癖：
- 文本地址查不到路线时，先地理编码再用坐标重试一次
- 规避高速/收费只在驾车模式下发送
- 驾车模式请求实时路况时长，并优先使用
- 区分“没有路线”、可重试错误与致命配置错误
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ..config.settings import DirectionsConfig
from .base import (
    DirectionsConfigurationError,
    DirectionsError,
    DirectionsRetryableError,
    Route,
    RouteOptions,
    RoutePreview,
    TravelMode,
)
from .polyline import decode_polyline

logger = logging.getLogger("routewatch.directions")

_COORDINATE_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")

# 这两种状态表示“没有路线”，不是错误
_NO_ROUTE_STATUSES = {"ZERO_RESULTS", "NOT_FOUND"}
_RETRYABLE_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}
_FATAL_STATUSES = {"REQUEST_DENIED", "OVER_DAILY_LIMIT"}


def parse_coordinate_pair(value: Optional[str]) -> Optional[Tuple[float, float]]:
    """识别 "lat,lng" 形式的输入

    Returns:
        (lat, lng)，不是合法坐标对时返回 None
    """
    if not value:
        return None
    match = _COORDINATE_RE.match(value)
    if not match:
        return None
    lat, lng = float(match.group(1)), float(match.group(2))
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        return None
    return lat, lng


def _value(entry: Optional[Dict[str, Any]]) -> Optional[int]:
    if not entry:
        return None
    value = entry.get("value")
    return int(value) if value is not None else None


def _latlng(entry: Optional[Dict[str, Any]]) -> Optional[Tuple[float, float]]:
    if not entry or "lat" not in entry or "lng" not in entry:
        return None
    return float(entry["lat"]), float(entry["lng"])


class DirectionsClient:
    """Google Directions API 的异步客户端"""

    def __init__(
        self,
        config: DirectionsConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """初始化客户端

        Args:
            config: 路线服务配置（API key、URL、超时、路线数量上限）
            http_client: 可注入的 httpx 客户端，测试时配合 MockTransport 使用
        """
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=config.timeout_seconds)

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def ensure_configured(self) -> None:
        """API key 缺失或为占位值时立即失败

        Raises:
            DirectionsConfigurationError: 未配置 GOOGLE_MAPS_API_KEY
        """
        if not self._config.is_configured:
            raise DirectionsConfigurationError(
                "GOOGLE_MAPS_API_KEY not configured; route collection is unavailable"
            )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def fetch_primary_route(
        self,
        origin: str,
        destination: str,
        options: Optional[RouteOptions] = None,
    ) -> Optional[RoutePreview]:
        """获取单条最佳路线，用于地图预览

        Returns:
            RoutePreview，找不到路线时返回 None
        """
        options = options or RouteOptions()
        data = await self._request_with_fallback(
            origin, destination, options, alternatives=False
        )
        if data is None:
            return None

        raw = data["routes"][0]
        encoded = (raw.get("overview_polyline") or {}).get("points")
        if not encoded:
            return None

        points = decode_polyline(encoded)
        leg = (raw.get("legs") or [{}])[0]
        route = self._parse_route(0, raw)
        return RoutePreview(
            points=points,
            start=_latlng(leg.get("start_location")) or (points[0] if points else None),
            end=_latlng(leg.get("end_location")) or (points[-1] if points else None),
            duration_seconds=route.duration_seconds,
            distance_meters=route.distance_meters,
        )

    async def fetch_routes_for_collection(
        self,
        origin: str,
        destination: str,
        options: Optional[RouteOptions] = None,
    ) -> List[Route]:
        """获取主路线（以及按需的备选路线），包含逐步导航信息

        Returns:
            候选路线列表；服务方报告无路线时为空列表

        Raises:
            DirectionsRetryableError: 网络或服务端临时错误
            DirectionsConfigurationError: API key 缺失或被拒绝
        """
        options = options or RouteOptions()
        wanted = min(1 + max(0, options.alternatives), self._config.max_routes)

        data = await self._request_with_fallback(
            origin, destination, options, alternatives=wanted > 1
        )
        if data is None:
            return []

        return [
            self._parse_route(index, raw)
            for index, raw in enumerate(data["routes"][:wanted])
        ]

    async def geocode(self, address: str) -> Optional[Tuple[float, float]]:
        """把文本地址解析为坐标，找不到时返回 None"""
        data = await self._get_json(
            self._config.geocode_url,
            {"address": address, "key": self._config.api_key},
        )
        status = data.get("status")
        results = data.get("results") or []
        if status == "OK" and results:
            return _latlng((results[0].get("geometry") or {}).get("location"))
        if status in _NO_ROUTE_STATUSES or status == "OK":
            return None
        raise self._classify(status, data.get("error_message"))

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[str]:
        """把坐标解析为可读地址，找不到时返回 None"""
        data = await self._get_json(
            self._config.geocode_url,
            {"latlng": f"{lat},{lng}", "key": self._config.api_key},
        )
        status = data.get("status")
        results = data.get("results") or []
        if status == "OK" and results:
            return results[0].get("formatted_address")
        if status in _NO_ROUTE_STATUSES or status == "OK":
            return None
        raise self._classify(status, data.get("error_message"))

    async def _request_with_fallback(
        self,
        origin: str,
        destination: str,
        options: RouteOptions,
        *,
        alternatives: bool,
    ) -> Optional[Dict[str, Any]]:
        data = await self._request_directions(origin, destination, options, alternatives)
        if data is not None:
            return data

        if parse_coordinate_pair(origin) and parse_coordinate_pair(destination):
            return None

        resolved_origin = await self._resolve(origin)
        resolved_destination = await self._resolve(destination)
        if resolved_origin is None or resolved_destination is None:
            logger.info(
                "地理编码失败，放弃回退: origin=%s destination=%s", origin, destination
            )
            return None

        logger.info(
            "文本地址无路线，改用坐标重试: %s -> %s", resolved_origin, resolved_destination
        )
        return await self._request_directions(
            resolved_origin, resolved_destination, options, alternatives
        )

    async def _resolve(self, location: str) -> Optional[str]:
        if parse_coordinate_pair(location):
            return location.strip()
        coords = await self.geocode(location)
        if coords is None:
            return None
        return f"{coords[0]},{coords[1]}"

    async def _request_directions(
        self,
        origin: str,
        destination: str,
        options: RouteOptions,
        alternatives: bool,
    ) -> Optional[Dict[str, Any]]:
        params = self._build_params(origin, destination, options, alternatives)
        data = await self._get_json(self._config.directions_url, params)

        status = data.get("status")
        if status == "OK" and data.get("routes"):
            return data
        if status in _NO_ROUTE_STATUSES or status == "OK":
            logger.debug("无路线: status=%s %s -> %s", status, origin, destination)
            return None
        raise self._classify(status, data.get("error_message"))

    def _build_params(
        self,
        origin: str,
        destination: str,
        options: RouteOptions,
        alternatives: bool,
    ) -> Dict[str, str]:
        params = {
            "origin": origin,
            "destination": destination,
            "mode": options.mode.value,
            "alternatives": "true" if alternatives else "false",
            "key": self._config.api_key,
        }

        if options.mode is TravelMode.DRIVING:
            avoid = []
            if options.avoid_highways:
                avoid.append("highways")
            if options.avoid_tolls:
                avoid.append("tolls")
            if avoid:
                params["avoid"] = "|".join(avoid)
            # 请求实时路况，响应中会带 duration_in_traffic
            params["departure_time"] = "now"

        return params

    async def _get_json(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        self.ensure_configured()

        try:
            response = await self._http.get(url, params=params)
        except httpx.HTTPError as e:
            raise DirectionsRetryableError(f"Directions transport error: {e}") from e

        code = response.status_code
        if code == 429 or code >= 500:
            raise DirectionsRetryableError(f"Directions provider returned HTTP {code}")
        if code in (401, 403):
            raise DirectionsConfigurationError(
                f"Directions provider rejected credentials (HTTP {code})"
            )
        if code >= 400:
            raise DirectionsError(f"Directions provider returned HTTP {code}")

        try:
            data = response.json()
        except ValueError as e:
            raise DirectionsRetryableError("Directions provider returned invalid JSON") from e

        if not isinstance(data, dict):
            raise DirectionsRetryableError("Directions provider returned unexpected payload")
        return data

    @staticmethod
    def _classify(status: Optional[str], message: Optional[str]) -> DirectionsError:
        text = message or status or "Directions API error"
        if status in _FATAL_STATUSES:
            return DirectionsConfigurationError(text, provider_status=status)
        if status in _RETRYABLE_STATUSES:
            return DirectionsRetryableError(text, provider_status=status)
        return DirectionsError(text, provider_status=status)

    @staticmethod
    def _parse_route(index: int, raw: Dict[str, Any]) -> Route:
        leg = (raw.get("legs") or [{}])[0]
        static_duration = _value(leg.get("duration"))
        traffic_duration = _value(leg.get("duration_in_traffic"))

        steps = [
            {
                "instruction": step.get("html_instructions"),
                "duration": _value(step.get("duration")),
                "distance": _value(step.get("distance")),
                "travel_mode": step.get("travel_mode"),
            }
            for step in leg.get("steps") or []
        ]

        return Route(
            route_index=index,
            duration_seconds=traffic_duration if traffic_duration is not None else static_duration,
            distance_meters=_value(leg.get("distance")),
            summary=raw.get("summary"),
            steps=steps,
            polyline=(raw.get("overview_polyline") or {}).get("points"),
            static_duration_seconds=static_duration,
        )
