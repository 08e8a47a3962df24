"""Catalog - Persisted index of the asset files under a library root."""

from .models import ALL_TAG, CatalogItem
from .store import CatalogStore, INDEX_FILE_NAME
from .layout import LibraryLayout, safe_file_name
from .versions import DetectedVersion, DEFAULT_STRATEGIES, detect_version
from .indexer import IndexResult, LibraryIndexer
from .session import LibrarySession

__all__ = [
    "ALL_TAG",
    "CatalogItem",
    "CatalogStore",
    "INDEX_FILE_NAME",
    "LibraryLayout",
    "safe_file_name",
    "DetectedVersion",
    "DEFAULT_STRATEGIES",
    "detect_version",
    "IndexResult",
    "LibraryIndexer",
    "LibrarySession",
]
