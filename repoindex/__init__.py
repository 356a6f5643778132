"""
Repository Index - Local, queryable cache of package-repository metadata.

Modules:
    - config: Centralized configuration
    - errors: Error policies and exceptions
    - archive: Streaming reader for <repository>.files archives
    - parser: desc/files record parsing
    - hasher: xxHash archive fingerprints (skip unchanged repositories)
    - store: SQLite cache of descriptors and file lists
    - progress: tqdm progress reporting for updates
    - updater: Incremental two-pass update (the only writer)
    - search: Fuzzy, relevance-ranked package search
    - locator: Exact and suffix file ownership lookup
    - watcher: Sync directory change detection
    - query: Read-only facade (search + locator)

Update Flow:
    Discover → Fingerprint (xxHash) → Descriptors (pass 1) → Files (pass 2) → Prune

Usage:
    from repoindex import Updater, PackageIndex

    updater = Updater()
    await updater.run_update()

    with PackageIndex() as index:
        index.search("web browser")
"""

from .query import PackageIndex
from .updater import Updater

__all__ = ["PackageIndex", "Updater"]
