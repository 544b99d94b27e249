from __future__ import annotations

import logging

_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def setup_logging(level: int | str = logging.INFO):
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # httpx 默认会在 INFO 级别打印每一次请求，其中包含带 key 的完整 URL
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("routewatch")
