import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class CanCareConfig(AppConfig):
    name = 'cancare'
    default_auto_field = 'django.db.models.BigAutoField'

    # 进程内共享的 document store，ready() 里按 settings.DOCUMENT_STORE 构建
    store = None

    def ready(self):
        from .store import get_document_store

        self.store = get_document_store()
        logger.info("[cancare] document store backend: %s", self.store.name)
