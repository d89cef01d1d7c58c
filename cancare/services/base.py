"""
BaseDataService — 所有角色 service 的公共底座。

读操作统一形状：
  解析 owner id（显式参数 → 当前身份 → 安全默认值）
  → scoped query → decode → 可选的二次查询（id → 显示名）→ 返回

错误策略：
  - 读：@fail_soft 捕获异常，记 WARNING 日志，写入 ReadErrorLog，返回默认值
  - 写：异常原样抛给调用方（NotAuthenticated / NotFoundError / ConflictError / StoreError）

ReadErrorLog 是可选的错误通道：调用方检查 service.errors
就能区分「确实为空」和「读失败了」。
"""

import functools
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from django.conf import settings
from django.utils import timezone

from ..exceptions import ConflictError, NotAuthenticated, NotFoundError
from ..identity import BaseIdentityProvider
from ..store.base import BaseDocumentStore, sort_documents
from ..store.types import DocumentNotFound, IndexRequiredError, PreconditionFailed, Query, StoreError

logger = logging.getLogger(__name__)

# ── Collections ────────────────────────────────────────────────────────────
USERS = "users"
DOCTORS = "doctors"
NURSES = "nurses"
PATIENTS = "patients"
LAB_TEST_REQUESTS = "mobile_lab_test_requests"
LAB_RESULTS = "mobile_lab_results"
PRESCRIPTIONS = "mobile_prescriptions"
MEDICAL_RECORDS = "mobile_medical_records"
OVERRIDE_REQUESTS = "mobile_override_requests"
MEDICATION_ORDERS = "mobile_medication_orders"
MEDICATIONS = "medications"
APPOINTMENTS = "appointments"
TRANSPORTATION_REQUESTS = "transportation_requests"
POSTS = "web_posts"
GROUP_CHATS = "group_chats"
GROUP_CHAT_MESSAGES = "group_chat_messages"

UNKNOWN_NAME = "Unknown"

# 托管存储对 "in" 查询的取值个数有上限，超出时分批查
IN_QUERY_LIMIT = 10


# ── Error channel ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReadError:
    operation: str
    error_type: str
    message: str


class ReadErrorLog:
    """线程安全的读错误记录。二次查询在线程池里跑，也会往这里写。"""

    def __init__(self):
        self._errors: list[ReadError] = []
        self._lock = threading.Lock()

    def record(self, operation: str, exc: BaseException) -> ReadError:
        error = ReadError(operation=operation, error_type=type(exc).__name__, message=str(exc))
        with self._lock:
            self._errors.append(error)
        return error

    def clear(self) -> None:
        with self._lock:
            self._errors.clear()

    def __iter__(self):
        with self._lock:
            return iter(list(self._errors))

    def __len__(self):
        with self._lock:
            return len(self._errors)

    def __bool__(self):
        return len(self) > 0


def _none():
    return None


def fail_soft(default_factory: Callable[[], Any] = _none):
    """
    读操作装饰器：任何异常 → 日志 + 记录到 self.errors + 返回 default_factory()。

    每次调用都生成新的默认值，调用方拿到的空 list 可以随便改。
    """

    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, *args, **kwargs):
            try:
                return method(self, *args, **kwargs)
            except Exception as exc:
                operation = f"{type(self).__name__}.{method.__name__}"
                logger.warning("[%s] read failed, returning default: %s", operation, exc)
                self.errors.record(operation, exc)
                return default_factory()
        return wrapper

    return decorator


def _is_index_error(exc: StoreError) -> bool:
    if isinstance(exc, IndexRequiredError):
        return True
    message = str(exc)
    return "index" in message.lower() or "FAILED_PRECONDITION" in message


class BaseDataService:

    def __init__(
        self,
        store: BaseDocumentStore,
        identity: BaseIdentityProvider,
        clock: Callable[[], datetime] | None = None,
        errors: ReadErrorLog | None = None,
        max_workers: int | None = None,
    ):
        self.store = store
        self.identity = identity
        self.clock = clock or timezone.now
        self.errors = errors if errors is not None else ReadErrorLog()
        if max_workers is None:
            max_workers = getattr(settings, "LOOKUP_MAX_WORKERS", 4)
        self.max_workers = max_workers

    def _sibling(self, service_cls):
        """同一上下文（store / 身份 / 时钟 / 错误通道）下的另一个 service。"""
        return service_cls(
            self.store,
            self.identity,
            clock=self.clock,
            errors=self.errors,
            max_workers=self.max_workers,
        )

    # ── 身份 ───────────────────────────────────────────────────────────────

    def _resolve_owner(self, owner_id: str | None) -> str | None:
        return owner_id or self.identity.current_user_id()

    def _require_actor(self, actor_id: str | None, action: str) -> str:
        actor = self._resolve_owner(actor_id)
        if not actor:
            raise NotAuthenticated(
                message=f"A caller identity is required to {action}.",
                detail={"action": action},
            )
        return actor

    # ── 读 ─────────────────────────────────────────────────────────────────

    def _fetch(self, query: Query, decode: Callable) -> list:
        return [decode(doc.data, doc.id) for doc in self.store.query(query)]

    def _fetch_ordered(self, query: Query, decode: Callable) -> list:
        """
        带排序的查询；缺索引时去掉 orderBy 重查一次，在内存里排序后再 decode。

        内存排序用的是原始文档字段和 store 同一套规则（sort_documents），
        所以两条路径返回同一批记录、同一顺序。limit 在排序之后才截。
        非索引错误照常抛出。
        """
        try:
            return self._fetch(query, decode)
        except StoreError as exc:
            if query.order_by is None or not _is_index_error(exc):
                raise
            logger.info(
                "[%s] index required on %s, fetching without orderBy: %s",
                type(self).__name__, query.collection, exc,
            )
        documents = self.store.query(replace(query, order_by=None, limit=None))
        documents = sort_documents(documents, query.order_by.field, descending=query.order_by.descending)
        if query.limit is not None:
            documents = documents[:query.limit]
        return [decode(doc.data, doc.id) for doc in documents]

    def _fetch_in(self, query: Query, field: str, values: Sequence[str], decode: Callable) -> list:
        """field in values，按 IN_QUERY_LIMIT 分批，结果按批次顺序拼接。"""
        records = []
        for start in range(0, len(values), IN_QUERY_LIMIT):
            chunk = list(values[start:start + IN_QUERY_LIMIT])
            records.extend(self._fetch(query.where(field, "in", chunk), decode))
        return records

    def _count(self, query: Query) -> int:
        return self.store.count(query)

    def _count_in(self, query: Query, field: str, values: Sequence[str]) -> int:
        total = 0
        for start in range(0, len(values), IN_QUERY_LIMIT):
            chunk = list(values[start:start + IN_QUERY_LIMIT])
            total += self.store.count(query.where(field, "in", chunk))
        return total

    def _lookup_profile(self, collection: str, uid: str, decode: Callable):
        """
        先按 uid 字段查（limit 1），没有再按文档 id 直接取。

        历史数据里两种 id 约定都有，两步都落空返回 None。
        """
        matches = self.store.query(Query(collection).where("uid", "==", uid).limited(1))
        if matches:
            return decode(matches[0].data, matches[0].id)
        doc = self.store.get(collection, uid)
        if doc is None:
            return None
        return decode(doc.data, doc.id)

    # ── 二次查询 ───────────────────────────────────────────────────────────

    def _display_name(self, collection: str, doc_id: str | None, default: str = UNKNOWN_NAME) -> str:
        """id → name。失败或不存在时返回 default，不影响外层列表。"""
        if not doc_id:
            return default
        try:
            doc = self.store.get(collection, doc_id)
        except Exception as exc:
            logger.warning("[%s] name lookup failed for %s/%s: %s",
                           type(self).__name__, collection, doc_id, exc)
            self.errors.record(f"{type(self).__name__}.display_name", exc)
            return default
        if doc is None:
            return default
        name = doc.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return default

    def _resolve_each(self, items: Iterable, resolve: Callable) -> list:
        """
        对每个元素执行 resolve，结果保持输入顺序。

        max_workers > 1 时用有界线程池并发；resolve 自己负责吞掉异常。
        """
        items = list(items)
        if self.max_workers <= 1 or len(items) <= 1:
            return [resolve(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as pool:
            return list(pool.map(resolve, items))

    # ── 写 ─────────────────────────────────────────────────────────────────

    def _update(self, collection: str, doc_id: str, data: dict, expect: dict | None = None) -> None:
        """store.update，把存储层的「不存在 / 前置条件失败」翻译成业务异常。"""
        try:
            self.store.update(collection, doc_id, data, expect=expect)
        except DocumentNotFound as exc:
            raise NotFoundError(
                message=f"{collection}/{doc_id} does not exist.",
                code="DOCUMENT_NOT_FOUND",
                detail={"collection": collection, "id": doc_id},
            ) from exc
        except PreconditionFailed as exc:
            raise ConflictError(
                message=f"{collection}/{doc_id} has {exc.field}={exc.actual!r}, expected {exc.expected!r}.",
                detail={"collection": collection, "id": doc_id, "field": exc.field,
                        "expected": exc.expected, "actual": exc.actual},
            ) from exc
