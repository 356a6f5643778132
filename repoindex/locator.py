"""
File Locator - Exact and suffix file-ownership lookup.

Answers "which package owns this path" and "which paths does this
package own". No ranking: results are precise and ordered by package
name, then path.
"""

import logging
from typing import List

from .config import get_config, IndexerConfig
from .errors import PackageNotFoundError
from .models import FileMatch, PackageDescriptor
from .store import CacheStore


logger = logging.getLogger(__name__)


class FileLocator:
    """Read-only lookups over the file ownership table."""

    def __init__(
        self,
        config: IndexerConfig | None = None,
        store: CacheStore | None = None,
    ):
        self.config = config or get_config()
        self._store = store or CacheStore(self.config, create=False)

    def find_by_path(self, fragment: str, exact: bool = False) -> List[FileMatch]:
        """
        Packages owning a path.

        Args:
            fragment: Path or path suffix; leading '/' is optional
            exact: Match the whole path instead of a suffix

        Returns:
            One FileMatch per (priority-resolved package, path)
        """
        matches = self._store.find_by_path(fragment, exact)
        logger.debug(f"find_by_path({fragment!r}, exact={exact}): {len(matches)} matches")
        return matches

    def files_of(self, name: str, include_directories: bool = False) -> List[str]:
        """Full paths owned by a package (directories optional)."""
        return self._store.files_for(name, include_directories)

    def describe(self, name: str) -> PackageDescriptor:
        """
        Descriptor of a package, resolved by repository priority.

        Raises:
            PackageNotFoundError: no repository carries the package
        """
        descriptor = self._store.describe(name)
        if descriptor is None:
            raise PackageNotFoundError(name)
        return descriptor

    def close(self):
        self._store.close()
