# offline_sync/sync_api/__init__.py
from .client import SyncAPIClient
from .exceptions import (
    TransportError, TransportConnectionError, TransportRequestError, TransportResponseError
)
from .schemas import ConflictBody, TablePage
from .utils import build_filter_expression, normalize_status

__all__ = [
    "SyncAPIClient",
    "TransportError", "TransportConnectionError", "TransportRequestError", "TransportResponseError",
    "ConflictBody", "TablePage",
    "build_filter_expression", "normalize_status",
]
