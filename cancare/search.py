"""
列表搜索 / 年龄计算。纯函数，不做 I/O，不修改输入。
"""

from collections.abc import Mapping, Sequence
from datetime import date, datetime
from enum import Enum
from typing import Any

from .timestamps import parse_timestamp


def _field_value(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _as_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def search_list(query: str, items: Sequence, fields: Sequence[str]) -> Sequence:
    """
    不区分大小写的子串过滤。

    - query 为空：原样返回 items（同一个对象）
    - 否则：任一字段 str(value).lower() 包含 query.lower() 即保留，保持输入顺序

    items 可以是 dict，也可以是 dataclass 等带属性的对象。
    """
    if not query:
        return items

    needle = query.lower()
    return [
        item for item in items
        if any(
            value is not None and needle in _as_text(value).lower()
            for value in (_field_value(item, name) for name in fields)
        )
    ]


def calculate_age(dob: Any, today: date | None = None) -> int | None:
    """dob 可以是 date / datetime / "YYYY-MM-DD" 等可解析时间；无法解析返回 None。"""
    if isinstance(dob, datetime):
        born = dob.date()
    elif isinstance(dob, date):
        born = dob
    else:
        parsed = parse_timestamp(dob)
        if parsed is None:
            return None
        born = parsed.date()

    today = today or date.today()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))
