"""
工厂函数：根据 settings.DOCUMENT_STORE 返回对应的 Document store 实例。

新增 backend 只需：
  1. 在 backends.py 新建 XxxDocumentStore(BaseDocumentStore) 类
  2. 在此处 _build_registry 加一行
  不需要修改 services 或任何业务代码。
"""

from django.conf import settings

from .base import BaseDocumentStore


def _build_registry() -> dict[str, type[BaseDocumentStore]]:
    # 延迟导入，避免在 Django 启动前触发 pymongo / ORM import
    from .backends import DjangoDocumentStore, InMemoryDocumentStore, MongoDocumentStore

    return {
        "memory": InMemoryDocumentStore,
        "django": DjangoDocumentStore,
        "mongo":  MongoDocumentStore,
    }


def get_document_store(backend: str | None = None) -> BaseDocumentStore:
    """
    返回 backend 对应的 store 实例；不传时读 settings.DOCUMENT_STORE（默认 "django"）。

    Raises:
        ValueError: backend 未知
    """
    backend = backend or getattr(settings, "DOCUMENT_STORE", "django")
    registry = _build_registry()
    store_cls = registry.get(backend)

    if store_cls is None:
        raise ValueError(
            f"Unknown DOCUMENT_STORE: {backend!r}. "
            f"Known backends: {list(registry.keys())}"
        )

    return store_cls()
