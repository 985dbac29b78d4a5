"""共享工具函数（消除跨模块重复）。"""
from __future__ import annotations

import time
from datetime import datetime, timezone


def now_utc() -> datetime:
    """返回当前 UTC 时间（带时区）。"""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """返回当前 epoch 毫秒数。"""
    return int(time.time() * 1000)
