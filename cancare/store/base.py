"""
BaseDocumentStore — 所有文档存储 backend 的抽象基类。

每个新 backend 只需：
1. 继承 BaseDocumentStore
2. 实现 get / query / add / set / update
3. 在 factory.py 的 _build_registry 注册一行

services 层完全不知道背后是内存、Django ORM 还是 MongoDB。

模块下半部分是 Python 侧的查询求值（过滤 / 排序 / limit），
内存 backend 全部用它，Django backend 用它处理 SQL 推不下去的部分，
services 的 index fallback 也复用 sort_documents，两条路径顺序一致。
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from ..timestamps import parse_timestamp
from .types import SERVER_TIMESTAMP, Document, Filter, PreconditionFailed, Query


class BaseDocumentStore(ABC):

    # 子类声明自己对应的 backend 标识符（与 factory 注册键一致）
    name: str = ""

    # ── 必须实现 ───────────────────────────────────────────────────────────

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Document | None:
        """按文档 id 读取，不存在返回 None。"""

    @abstractmethod
    def query(self, query: Query) -> list[Document]:
        """
        执行过滤查询。

        Raises:
            IndexRequiredError: 带排序的查询缺少索引
            StoreError:         其他 backend 故障
        """

    @abstractmethod
    def add(self, collection: str, data: dict) -> str:
        """插入新文档，id 由 backend 生成并返回。"""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict, merge: bool = True) -> None:
        """按已知 id 写入；merge=True 只覆盖给出的字段，不存在则创建。"""

    @abstractmethod
    def update(self, collection: str, doc_id: str, data: dict, expect: dict | None = None) -> None:
        """
        局部更新已存在的文档。

        Args:
            expect: 可选前置条件 {field: value}，全部匹配才写入（compare-and-set）

        Raises:
            DocumentNotFound:   文档不存在
            PreconditionFailed: expect 不匹配，什么都没写
        """

    # ── 提供默认实现，子类可 override ──────────────────────────────────────

    def count(self, query: Query) -> int:
        return len(self.query(query.without_order()))


# ── Python 侧查询求值 ──────────────────────────────────────────────────────

def resolve_server_timestamps(data: Mapping, now: datetime) -> dict:
    return {key: (now if value is SERVER_TIMESTAMP else value) for key, value in data.items()}


def check_expectations(collection: str, doc_id: str, current: Mapping, expect: Mapping | None) -> None:
    for field, expected in (expect or {}).items():
        actual = current.get(field)
        if actual != expected:
            raise PreconditionFailed(collection, doc_id, field, expected, actual)


def _comparable(value: Any, reference: Any) -> Any:
    # 过滤值是时间时，把文档里的旧格式时间也解出来再比较
    if isinstance(reference, datetime):
        return parse_timestamp(value)
    return value


def matches_filter(data: Mapping, flt: Filter) -> bool:
    value = data.get(flt.field)

    if flt.op == "is_null":
        return value is None
    if flt.op == "==":
        return _comparable(value, flt.value) == flt.value
    if flt.op == "in":
        return value in (flt.value or ())
    if flt.op == "array_contains":
        return isinstance(value, list) and flt.value in value

    left = _comparable(value, flt.value)
    if left is None:
        return False
    try:
        if flt.op == ">=":
            return left >= flt.value
        return left <= flt.value
    except TypeError:
        return False


def matches(data: Mapping, filters: Iterable[Filter]) -> bool:
    return all(matches_filter(data, flt) for flt in filters)


def sort_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return parse_timestamp(value)
    if isinstance(value, datetime):
        return parse_timestamp(value)
    return value


def _kind(value: Any) -> type:
    if isinstance(value, bool):
        return bool
    if isinstance(value, (int, float)):
        return float
    return type(value)


def sort_keys(values: Iterable[Any]) -> list:
    """
    一列字段值 → 排序 key。

    同一列混了多种写法（datetime / ISO 字符串 / epoch 数字）时整列按时间解析，
    解不出来的当 null；只有一种写法时按原值比较。
    """
    keys = [sort_value(value) for value in values]
    kinds = {_kind(key) for key in keys if key is not None}
    if len(kinds) > 1:
        return [parse_timestamp(key) for key in keys]
    return keys


def sort_documents(documents: Iterable[Document], field: str, descending: bool = False) -> list[Document]:
    documents = list(documents)
    keyed = list(zip(sort_keys(doc.data.get(field) for doc in documents), documents))
    ranked = sort_nulls_last(keyed, key=lambda pair: pair[0], descending=descending)
    return [doc for _, doc in ranked]


def sort_nulls_last(items: Iterable, key: Callable[[Any], Any], descending: bool = False) -> list:
    """
    稳定排序，key 为 None 的元素无论升降序都排在最后。

    相同 key 的元素保持输入顺序（reverse=True 的 sort 也是稳定的）。
    """
    keyed = [(key(item), item) for item in items]
    ranked = [pair for pair in keyed if pair[0] is not None]
    missing = [item for value, item in keyed if value is None]
    try:
        ranked.sort(key=lambda pair: pair[0], reverse=descending)
    except TypeError:
        # 同一字段混了不同类型，退化成按字符串比较
        ranked.sort(key=lambda pair: str(pair[0]), reverse=descending)
    return [item for _, item in ranked] + missing


def apply_query(documents: Iterable[Document], query: Query) -> list[Document]:
    result = [doc for doc in documents if matches(doc.data, query.filters)]
    if query.order_by is not None:
        result = sort_documents(result, query.order_by.field, descending=query.order_by.descending)
    if query.limit is not None:
        result = result[:query.limit]
    return result
