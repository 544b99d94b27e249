"""路线服务组件集合

- DirectionsClient: Google Directions / Geocoding 异步客户端
- Route / RoutePreview / RouteOptions: 请求与结果的数据类型
- decode_polyline / encode_polyline: 折线编解码
- DirectionsError 及其子类: 可重试错误与致命配置错误
"""

from .base import (
    DirectionsConfigurationError,
    DirectionsError,
    DirectionsRetryableError,
    Route,
    RouteOptions,
    RoutePreview,
    TravelMode,
)
from .client import DirectionsClient, parse_coordinate_pair
from .polyline import decode_polyline, encode_polyline

__all__ = [
    "DirectionsClient",
    "DirectionsConfigurationError",
    "DirectionsError",
    "DirectionsRetryableError",
    "Route",
    "RouteOptions",
    "RoutePreview",
    "TravelMode",
    "decode_polyline",
    "encode_polyline",
    "parse_coordinate_pair",
]
