"""
Timestamp decoding.

文档里的时间字段历史上有多种写法，这里统一解成 aware UTC datetime：
  - datetime / date（naive 视为 UTC）
  - ISO-8601 字符串（"2024-03-01T10:00:00Z" / "2024-03-01"）
  - 导出格式 {"_seconds": 1709287200, "_nanoseconds": 0}
  - 备份格式 {"_firestore_timestamp": "2024-03-01T10:00:00Z"}
  - Mongo extended JSON {"$date": ...}
  - epoch 秒（或毫秒）数字

无法识别的一律返回 None，不抛异常。
"""

from collections.abc import Mapping
from datetime import date, datetime, time, timezone

from django.utils.dateparse import parse_date, parse_datetime

# 超过这个值的 epoch 数字按毫秒处理
_EPOCH_MS_THRESHOLD = 10 ** 11


def ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return ensure_aware(value)

    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        return _parse_string(value)

    if isinstance(value, Mapping):
        if "_seconds" in value or "seconds" in value:
            seconds = value.get("_seconds", value.get("seconds"))
            nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
            if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
                return None
            if not isinstance(nanos, (int, float)):
                nanos = 0
            return parse_timestamp(seconds + nanos / 1_000_000_000)
        if "_firestore_timestamp" in value:
            return parse_timestamp(value["_firestore_timestamp"])
        if "$date" in value:
            return parse_timestamp(value["$date"])

    return None


def _parse_string(raw: str) -> datetime | None:
    text = raw.strip()
    if not text:
        return None
    try:
        parsed = parse_datetime(text)
        if parsed is not None:
            return ensure_aware(parsed)
        day = parse_date(text)
    except ValueError:
        return None
    if day is not None:
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return None
