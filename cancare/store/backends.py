"""
具体 Document store 实现。

已注册 backend：
  memory  — InMemoryDocumentStore  (进程内 dict，测试 / 本地开发)
  django  — DjangoDocumentStore    (StoredDocument 表，跟随 DATABASE_URL)
  mongo   — MongoDocumentStore     (pymongo，MONGO_URL / MONGO_DATABASE)
"""

import copy
import threading
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timezone

from django.conf import settings
from django.db import DatabaseError, transaction
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import OperationFailure, PyMongoError

from ..timestamps import parse_timestamp
from .base import (
    BaseDocumentStore,
    apply_query,
    check_expectations,
    resolve_server_timestamps,
)
from .types import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    Filter,
    IndexRequiredError,
    PreconditionFailed,
    Query,
    StoreError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


# ── InMemoryDocumentStore ──────────────────────────────────────────────────
#
# 进程内存储。missing_indexes 里列出的 collection 在「过滤 + 另一字段排序」
# 时抛 IndexRequiredError，模拟托管数据库缺少组合索引的情况。

class InMemoryDocumentStore(BaseDocumentStore):
    name = "memory"

    def __init__(self, clock: Callable[[], datetime] | None = None, missing_indexes=()):
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._lock = threading.RLock()
        self._clock = clock or _utcnow
        self.missing_indexes = set(missing_indexes)

    def get(self, collection, doc_id):
        with self._lock:
            data = self._collections[collection].get(doc_id)
            if data is None:
                return None
            return Document(id=doc_id, data=copy.deepcopy(data))

    def query(self, query: Query):
        with self._lock:
            if self._needs_index(query):
                raise IndexRequiredError(
                    f"The query requires an index on {query.collection} "
                    f"({', '.join(f.field for f in query.filters)} + {query.order_by.field})"
                )
            documents = [
                Document(id=doc_id, data=copy.deepcopy(data))
                for doc_id, data in self._collections[query.collection].items()
            ]
        return apply_query(documents, query)

    def add(self, collection, data):
        doc_id = _new_id()
        with self._lock:
            self._collections[collection][doc_id] = resolve_server_timestamps(copy.deepcopy(data), self._clock())
        return doc_id

    def set(self, collection, doc_id, data, merge=True):
        with self._lock:
            values = resolve_server_timestamps(copy.deepcopy(data), self._clock())
            current = self._collections[collection].get(doc_id)
            if merge and current is not None:
                current.update(values)
            else:
                self._collections[collection][doc_id] = values

    def update(self, collection, doc_id, data, expect=None):
        with self._lock:
            current = self._collections[collection].get(doc_id)
            if current is None:
                raise DocumentNotFound(collection, doc_id)
            check_expectations(collection, doc_id, current, expect)
            current.update(resolve_server_timestamps(copy.deepcopy(data), self._clock()))

    def _needs_index(self, query: Query) -> bool:
        if query.order_by is None or query.collection not in self.missing_indexes:
            return False
        return any(f.field != query.order_by.field for f in query.filters)


# ── DjangoDocumentStore ────────────────────────────────────────────────────
#
# 一个文档一行 StoredDocument。字符串相等过滤推到 SQL（JSONField key lookup），
# 其余过滤、排序、limit 在 Python 侧用 apply_query 完成，语义与内存 backend 一致。

_DATE_KEY = "$date"


def _encode(value):
    if isinstance(value, datetime):
        return {_DATE_KEY: parse_timestamp(value).isoformat()}
    if isinstance(value, dict):
        return {key: _encode(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(item) for item in value]
    return value


def _decode(value):
    if isinstance(value, dict):
        if set(value) == {_DATE_KEY}:
            return parse_timestamp(value[_DATE_KEY])
        return {key: _decode(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_decode(item) for item in value]
    return value


class DjangoDocumentStore(BaseDocumentStore):
    name = "django"

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or _utcnow

    @staticmethod
    def _model():
        # 延迟导入，避免在 app registry 就绪前触发 models 加载
        from ..models import StoredDocument
        return StoredDocument

    def _to_document(self, row) -> Document:
        return Document(id=row.doc_id, data=_decode(row.data or {}))

    def get(self, collection, doc_id):
        try:
            row = self._model().objects.filter(collection=collection, doc_id=doc_id).first()
        except DatabaseError as exc:
            raise StoreError(str(exc)) from exc
        return self._to_document(row) if row is not None else None

    def query(self, query: Query):
        rows = self._model().objects.filter(collection=query.collection)
        for flt in query.filters:
            if flt.op == "==" and isinstance(flt.value, str):
                rows = rows.filter(**{f"data__{flt.field}": flt.value})
        try:
            documents = [self._to_document(row) for row in rows.order_by("id")]
        except DatabaseError as exc:
            raise StoreError(str(exc)) from exc
        return apply_query(documents, query)

    def add(self, collection, data):
        doc_id = _new_id()
        values = resolve_server_timestamps(data, self._clock())
        try:
            self._model().objects.create(collection=collection, doc_id=doc_id, data=_encode(values))
        except DatabaseError as exc:
            raise StoreError(str(exc)) from exc
        return doc_id

    def set(self, collection, doc_id, data, merge=True):
        values = _encode(resolve_server_timestamps(data, self._clock()))
        model = self._model()
        try:
            with transaction.atomic():
                row = model.objects.select_for_update().filter(collection=collection, doc_id=doc_id).first()
                if row is None:
                    model.objects.create(collection=collection, doc_id=doc_id, data=values)
                    return
                row.data = {**row.data, **values} if merge else values
                row.save(update_fields=["data", "updated_at"])
        except DatabaseError as exc:
            raise StoreError(str(exc)) from exc

    def update(self, collection, doc_id, data, expect=None):
        values = resolve_server_timestamps(data, self._clock())
        model = self._model()
        try:
            with transaction.atomic():
                row = model.objects.select_for_update().filter(collection=collection, doc_id=doc_id).first()
                if row is None:
                    raise DocumentNotFound(collection, doc_id)
                check_expectations(collection, doc_id, _decode(row.data), expect)
                row.data = {**row.data, **_encode(values)}
                row.save(update_fields=["data", "updated_at"])
        except DatabaseError as exc:
            raise StoreError(str(exc)) from exc


# ── MongoDocumentStore ─────────────────────────────────────────────────────
#
# 文档 id 存在 _id（字符串）。SERVER_TIMESTAMP 字段用 $currentDate 让服务端打时间。
# Mongo 升序排序会把 null 放在最前，所以取回后统一用 apply_query 重排（nulls last）。
# 时间范围过滤不下推：旧数据的时间可能是 {_seconds}、ISO 字符串或 epoch 数字，
# 服务端按 BSON 类型比较匹配不到，只能取回后在 Python 侧解析再过滤。

_MONGO_OPS = {">=": "$gte", "<=": "$lte", "in": "$in"}

# 292 = QueryExceededMemoryLimitNoDiskUseAllowed：排序字段没有索引且结果集过大
_INDEX_ERROR_CODES = {292}


def _evaluated_locally(flt: Filter) -> bool:
    return flt.op in (">=", "<=") and isinstance(flt.value, datetime)


def _has_local_filters(query: Query) -> bool:
    return any(_evaluated_locally(flt) for flt in query.filters)


def build_mongo_filter(query: Query) -> dict:
    spec: dict = {}
    for flt in query.filters:
        if _evaluated_locally(flt):
            continue
        condition = spec.setdefault(flt.field, {})
        if flt.op == "==":
            condition["$eq"] = flt.value
        elif flt.op == "is_null":
            condition["$eq"] = None
        elif flt.op == "array_contains":
            condition.setdefault("$all", []).append(flt.value)
        else:
            value = list(flt.value) if flt.op == "in" else flt.value
            condition[_MONGO_OPS[flt.op]] = value
    return spec


def _split_server_fields(data: dict) -> tuple[dict, dict]:
    plain = {key: value for key, value in data.items() if value is not SERVER_TIMESTAMP}
    server = {key: True for key, value in data.items() if value is SERVER_TIMESTAMP}
    return plain, server


class MongoDocumentStore(BaseDocumentStore):
    name = "mongo"

    def __init__(self, client: MongoClient | None = None, database: str | None = None):
        if client is None:
            client = MongoClient(settings.MONGO_URL, tz_aware=True)
        self._db = client[database or settings.MONGO_DATABASE]

    @staticmethod
    def _to_document(raw: dict) -> Document:
        doc_id = str(raw.pop("_id"))
        return Document(id=doc_id, data=raw)

    def get(self, collection, doc_id):
        try:
            raw = self._db[collection].find_one({"_id": doc_id})
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        return self._to_document(raw) if raw is not None else None

    def query(self, query: Query):
        cursor = self._db[query.collection].find(build_mongo_filter(query))
        if query.order_by is not None:
            direction = DESCENDING if query.order_by.descending else ASCENDING
            cursor = cursor.sort(query.order_by.field, direction)
        # 排序和本地过滤都可能改变前 N 条是谁，这两种情况 limit 留给 apply_query
        if query.limit is not None and query.order_by is None and not _has_local_filters(query):
            cursor = cursor.limit(query.limit)
        try:
            documents = [self._to_document(raw) for raw in cursor]
        except OperationFailure as exc:
            if exc.code in _INDEX_ERROR_CODES or "index" in str(exc).lower():
                raise IndexRequiredError(str(exc)) from exc
            raise StoreError(str(exc)) from exc
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
        return apply_query(documents, query)

    def count(self, query: Query):
        if _has_local_filters(query):
            return len(self.query(query.without_order()))
        try:
            return self._db[query.collection].count_documents(build_mongo_filter(query))
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc

    def add(self, collection, data):
        doc_id = _new_id()
        self._write(collection, doc_id, data, upsert=True)
        return doc_id

    def set(self, collection, doc_id, data, merge=True):
        if not merge:
            plain, _ = _split_server_fields(data)
            try:
                self._db[collection].replace_one({"_id": doc_id}, plain, upsert=True)
            except PyMongoError as exc:
                raise StoreError(str(exc)) from exc
        self._write(collection, doc_id, data, upsert=True)

    def update(self, collection, doc_id, data, expect=None):
        selector = {"_id": doc_id, **(expect or {})}
        result = self._write(collection, doc_id, data, selector=selector)
        if result.matched_count:
            return
        current = self.get(collection, doc_id)
        if current is None or not expect:
            # 没有 expect 时只可能是写的那一刻文档还不存在
            raise DocumentNotFound(collection, doc_id)
        # 文档存在但 selector 没匹配上：expect 不满足
        check_expectations(collection, doc_id, current.data, expect)
        # 两次读之间被并发改回去了，仍按冲突处理
        field, expected = next(iter(expect.items()))
        raise PreconditionFailed(collection, doc_id, field, expected, current.data.get(field))

    def _write(self, collection, doc_id, data, selector=None, upsert=False):
        plain, server = _split_server_fields(data)
        operations = {}
        if plain:
            operations["$set"] = plain
        if server:
            operations["$currentDate"] = server
        if not operations:
            raise ValueError(f"Empty write to {collection}/{doc_id}")
        try:
            return self._db[collection].update_one(selector or {"_id": doc_id}, operations, upsert=upsert)
        except PyMongoError as exc:
            raise StoreError(str(exc)) from exc
