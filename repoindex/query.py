"""
Query - Read-only facade over the package cache.

Combines the search engine and the file locator on one store connection.
Queries never create or repair the cache: a missing database raises
CacheMissingError so the caller can run an update first.
"""

import logging
from typing import List

from .config import get_config, IndexerConfig
from .locator import FileLocator
from .models import FileMatch, PackageDescriptor, SearchHit
from .search import SearchEngine
from .store import CacheStore


logger = logging.getLogger(__name__)


class PackageIndex:
    """
    Query entry point for callers that only read the cache.

    Usage:
        with PackageIndex() as index:
            for pkg in index.search("web browser", limit=5):
                print(pkg.repository, pkg.name, pkg.version)
            print(index.find_by_path("bin/firefox"))
    """

    def __init__(self, config: IndexerConfig | None = None):
        self.config = config or get_config()
        self._store = CacheStore(self.config, create=False)
        self._engine = SearchEngine(self.config, self._store)
        self._locator = FileLocator(self.config, self._store)

    def search(self, query: str, limit: int | None = None) -> List[PackageDescriptor]:
        return self._engine.search(query, limit)

    def search_scored(self, query: str, limit: int | None = None) -> List[SearchHit]:
        return self._engine.search_scored(query, limit)

    def find_by_path(self, fragment: str, exact: bool = False) -> List[FileMatch]:
        return self._locator.find_by_path(fragment, exact)

    def files_of(self, name: str, include_directories: bool = False) -> List[str]:
        return self._locator.files_of(name, include_directories)

    def describe(self, name: str) -> PackageDescriptor:
        return self._locator.describe(name)

    def resolve_repository(self, name: str) -> str | None:
        """Highest-priority repository carrying a package name."""
        return self._store.resolve_repository_for_name(name)

    def package_count(self) -> int:
        return self._store.package_count()

    def close(self):
        self._store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
