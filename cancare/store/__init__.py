from .base import BaseDocumentStore
from .factory import get_document_store
from .types import (
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    Filter,
    IndexRequiredError,
    OrderBy,
    PreconditionFailed,
    Query,
    StoreError,
)
