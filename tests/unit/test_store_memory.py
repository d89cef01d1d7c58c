"""
Unit tests for the store port, using InMemoryDocumentStore.

覆盖：
1. 过滤算子（== / >= / <= / in / array_contains / is_null）
2. 排序 null 排最后、limit、同一字段混用多种时间写法
3. SERVER_TIMESTAMP 由 store 时钟填充（add / set / update 都是）
4. set(merge) / update(expect) 的 compare-and-set 语义
5. 缺索引时抛 IndexRequiredError
6. get_document_store 工厂
"""
import copy

import pytest

from cancare.store import (
    SERVER_TIMESTAMP,
    DocumentNotFound,
    Filter,
    IndexRequiredError,
    PreconditionFailed,
    Query,
    get_document_store,
)
from cancare.store.backends import InMemoryDocumentStore
from cancare.store.base import sort_nulls_last
from tests.conftest import NOW, days_ago


@pytest.fixture
def populated(store):
    store.set('items', 'a', {'n': 1, 'tags': ['x'], 'at': days_ago(3)})
    store.set('items', 'b', {'n': 2, 'tags': ['x', 'y'], 'at': days_ago(1)})
    store.set('items', 'c', {'n': 3, 'tags': [], 'at': None})
    # 2024-02-29 18:00 UTC，比 b 晚 6 小时
    store.set('items', 'd', {'n': 4, 'tags': ['y'], 'at': {'_seconds': 1709229600}})
    return store


def ids(documents):
    return [doc.id for doc in documents]


class TestFilters:

    def test_equality(self, populated):
        assert ids(populated.query(Query('items').where('n', '==', 2))) == ['b']

    def test_range_on_numbers(self, populated):
        docs = populated.query(Query('items').where('n', '>=', 2).where('n', '<=', 3))
        assert sorted(ids(docs)) == ['b', 'c']

    def test_range_on_mixed_timestamp_formats(self, populated):
        docs = populated.query(Query('items').where('at', '>=', days_ago(2)))
        # 导出格式的时间也会被解出来比较；None 不匹配
        assert sorted(ids(docs)) == ['b', 'd']

    def test_in(self, populated):
        assert sorted(ids(populated.query(Query('items').where('n', 'in', [1, 4])))) == ['a', 'd']

    def test_array_contains(self, populated):
        assert sorted(ids(populated.query(Query('items').where('tags', 'array_contains', 'y')))) == ['b', 'd']

    def test_is_null(self, populated):
        assert ids(populated.query(Query('items').where('at', 'is_null'))) == ['c']

    def test_unknown_op_rejected(self):
        with pytest.raises(ValueError):
            Filter('n', '!=', 1)

    def test_missing_collection_is_empty(self, store):
        assert store.query(Query('nothing')) == []


class TestOrdering:

    def test_ascending_nulls_last(self, populated):
        docs = populated.query(Query('items').ordered('at'))
        assert ids(docs) == ['a', 'b', 'd', 'c']

    def test_descending_nulls_still_last(self, populated):
        docs = populated.query(Query('items').ordered('at', descending=True))
        assert ids(docs) == ['d', 'b', 'a', 'c']

    def test_limit_after_order(self, populated):
        docs = populated.query(Query('items').ordered('n', descending=True).limited(2))
        assert ids(docs) == ['d', 'c']

    def test_count_ignores_order(self, populated):
        assert populated.count(Query('items').where('tags', 'array_contains', 'x').ordered('at')) == 2

    def test_mixed_encodings_sorted_as_time(self, store):
        store.set('items', 'dt-old', {'at': days_ago(3)})
        store.set('items', 'epoch-new', {'at': 1709290800})           # 2024-03-01 11:00 UTC
        store.set('items', 'iso-mid', {'at': '2024-02-29T00:00:00Z'})
        store.set('items', 'garbage', {'at': 'not a date'})

        docs = store.query(Query('items').ordered('at', descending=True))

        # 解不出来的值和 null 一样排最后
        assert ids(docs) == ['epoch-new', 'iso-mid', 'dt-old', 'garbage']

    def test_single_kind_compared_as_is(self, store):
        store.set('items', 'z', {'name': 'Zed'})
        store.set('items', 'a', {'name': 'Ali'})
        store.set('items', 'none', {'name': None})

        assert ids(store.query(Query('items').ordered('name'))) == ['a', 'z', 'none']

    def test_sort_nulls_last_is_stable(self):
        items = [('a', 2), ('b', None), ('c', 1), ('d', 2)]
        ranked = sort_nulls_last(items, key=lambda item: item[1], descending=True)
        assert [name for name, _ in ranked] == ['a', 'd', 'c', 'b']


class TestWrites:

    def test_add_generates_id_and_server_timestamp(self, store):
        doc_id = store.add('items', {'createdAt': SERVER_TIMESTAMP})

        assert doc_id
        assert store.get('items', doc_id).data['createdAt'] == NOW

    def test_server_timestamp_survives_copy(self):
        assert copy.copy(SERVER_TIMESTAMP) is SERVER_TIMESTAMP
        assert copy.deepcopy({'at': SERVER_TIMESTAMP})['at'] is SERVER_TIMESTAMP

    def test_set_and_update_resolve_server_timestamp(self, store):
        store.set('items', 'a', {'createdAt': SERVER_TIMESTAMP})
        store.update('items', 'a', {'approvedAt': SERVER_TIMESTAMP})

        assert store.get('items', 'a').data == {'createdAt': NOW, 'approvedAt': NOW}

    def test_get_returns_copy(self, store):
        store.set('items', 'a', {'tags': ['x']})
        store.get('items', 'a').data['tags'].append('mutated')
        assert store.get('items', 'a').data['tags'] == ['x']

    def test_set_merge_keeps_other_fields(self, store):
        store.set('items', 'a', {'n': 1, 'name': 'one'})
        store.set('items', 'a', {'n': 2})
        assert store.get('items', 'a').data == {'n': 2, 'name': 'one'}

    def test_set_without_merge_replaces(self, store):
        store.set('items', 'a', {'n': 1, 'name': 'one'})
        store.set('items', 'a', {'n': 2}, merge=False)
        assert store.get('items', 'a').data == {'n': 2}

    def test_update_missing_document(self, store):
        with pytest.raises(DocumentNotFound):
            store.update('items', 'ghost', {'n': 1})

    def test_update_with_matching_expectation(self, store):
        store.set('items', 'a', {'status': 'pending'})
        store.update('items', 'a', {'status': 'approved'}, expect={'status': 'pending'})
        assert store.get('items', 'a').data['status'] == 'approved'

    def test_update_with_stale_expectation_writes_nothing(self, store):
        store.set('items', 'a', {'status': 'rejected', 'by': 'd1'})

        with pytest.raises(PreconditionFailed) as exc_info:
            store.update('items', 'a', {'status': 'approved', 'by': 'd2'}, expect={'status': 'pending'})

        assert exc_info.value.actual == 'rejected'
        assert store.get('items', 'a').data == {'status': 'rejected', 'by': 'd1'}


class TestMissingIndexes:

    def test_filter_plus_other_order_raises(self):
        store = InMemoryDocumentStore(missing_indexes={'items'})
        with pytest.raises(IndexRequiredError):
            store.query(Query('items').where('n', '==', 1).ordered('at'))

    def test_unordered_query_fine(self):
        store = InMemoryDocumentStore(missing_indexes={'items'})
        assert store.query(Query('items').where('n', '==', 1)) == []

    def test_other_collections_unaffected(self):
        store = InMemoryDocumentStore(missing_indexes={'items'})
        assert store.query(Query('others').where('n', '==', 1).ordered('at')) == []


class TestFactory:

    def test_memory_backend(self):
        assert isinstance(get_document_store('memory'), InMemoryDocumentStore)

    def test_default_from_settings(self, settings):
        settings.DOCUMENT_STORE = 'memory'
        assert get_document_store().name == 'memory'

    def test_unknown_backend(self):
        with pytest.raises(ValueError) as exc_info:
            get_document_store('cassandra')
        assert 'cassandra' in str(exc_info.value)
