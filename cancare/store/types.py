"""
Document store 的标准类型。

所有 backend 只认识这些类型；services 层用 Query 描述「查什么」，
backend 决定「怎么查」。上层永远不碰 pymongo / ORM 的原生对象。
"""

from dataclasses import dataclass, replace
from typing import Any

FILTER_OPS = ("==", ">=", "<=", "in", "array_contains", "is_null")


class _ServerTimestamp:
    """写入时由 backend 替换成自己的时钟，客户端时钟不参与排序。"""

    def __repr__(self):
        return "SERVER_TIMESTAMP"

    # 单例：backend 用 `is SERVER_TIMESTAMP` 识别，拷贝后必须还是同一个对象
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op!r}. Known ops: {list(FILTER_OPS)}")


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class Query:
    collection: str
    filters: tuple[Filter, ...] = ()
    order_by: OrderBy | None = None
    limit: int | None = None

    def where(self, field: str, op: str, value: Any = None) -> "Query":
        return replace(self, filters=self.filters + (Filter(field, op, value),))

    def ordered(self, field: str, descending: bool = False) -> "Query":
        return replace(self, order_by=OrderBy(field, descending))

    def limited(self, limit: int) -> "Query":
        return replace(self, limit=limit)

    def without_order(self) -> "Query":
        return replace(self, order_by=None)


@dataclass
class Document:
    id: str
    data: dict

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


# ── Errors ─────────────────────────────────────────────────────────────────

class StoreError(Exception):
    """Backend 操作失败（网络、权限、连接）。"""


class IndexRequiredError(StoreError):
    """带排序的查询缺少索引。services 层会去掉排序重试一次。"""


class DocumentNotFound(StoreError):

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} does not exist")


class PreconditionFailed(StoreError):
    """update(expect=...) 的前置条件不满足，什么都没写。"""

    def __init__(self, collection: str, doc_id: str, field: str, expected: Any, actual: Any):
        self.collection = collection
        self.doc_id = doc_id
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{collection}/{doc_id}: expected {field}={expected!r}, found {actual!r}"
        )
