"""
Updater - Incremental cache update from repository archives.

Implements a cascade of filters so repeated updates stay cheap:
- Filter 1: skip repositories whose archive fingerprint is unchanged (xxHash)
- Filter 2: skip package versions whose file list is already indexed
- Pass 1: upsert descriptors of the remaining desc entries
- Pass 2: replace file lists of the remaining files entries
"""

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .archive import ArchiveReader
from .config import get_config, IndexerConfig
from .errors import ArchiveError, ErrorAction, MalformedRecordError, handle_error
from .hasher import Hasher
from .models import (
    ArchiveEntry, EntryKind, PackageDescriptor, RepositoryArchive, UpdateStats
)
from .parser import parse_desc, parse_files
from .progress import ProgressReporter
from .store import CacheStore
from .watcher import AsyncWatcher


logger = logging.getLogger(__name__)


class Updater:
    """
    The only writer of the package cache.

    Each repository is an independent unit of work touching only its own
    rows; within a repository descriptors are always written before files.
    """

    def __init__(
        self,
        config: Optional[IndexerConfig] = None,
        store: Optional[CacheStore] = None,
    ):
        self.config = config or get_config()
        self._store = store or CacheStore(self.config, create=True)
        self._hasher = Hasher(self.config)
        self._watcher: Optional[AsyncWatcher] = None

    def discover_archives(self, sync_dir: Optional[Path] = None) -> List[RepositoryArchive]:
        """Archives in the sync directory, in repository priority order."""
        sync_dir = sync_dir or self.config.sync_dir
        suffix = self.config.archive_suffix

        archives = [
            RepositoryArchive(repository=path.name[:-len(suffix)], path=path)
            for path in sync_dir.iterdir()
            if path.is_file() and path.name.endswith(suffix) and path.name != suffix
        ]
        archives.sort(key=lambda a: self.config.priority_key(a.repository))
        return archives

    async def run_update(
        self,
        force: bool = False,
        repositories: Optional[Set[str]] = None,
    ) -> UpdateStats:
        """
        Bring the cache in line with the archives in the sync directory.

        Args:
            force: Re-read archives even if their fingerprint is unchanged
            repositories: Restrict the update to these repositories
                          (only these are pruned if their archive is gone)

        Returns:
            Statistics about the update
        """
        start_time = time.monotonic()
        stats = UpdateStats()
        sync_dir = self.config.sync_dir

        if not sync_dir.is_dir():
            logger.warning(f"Sync directory not found: {sync_dir}, nothing to update")
            return stats

        archives = self.discover_archives(sync_dir)
        if repositories is not None:
            archives = [a for a in archives if a.repository in repositories]
            vanished = set(repositories) - {a.repository for a in archives}
        else:
            vanished = self._store.repositories() - {a.repository for a in archives}

        logger.info(f"Updating package cache from {len(archives)} archives in {sync_dir}")

        # ═══════════════════════════════════════════════════════════════════
        # PHASE 1: FINGERPRINT (skip unchanged archives)
        # ═══════════════════════════════════════════════════════════════════
        digests = await self._hasher.hash_archives(archives)

        pending: List[RepositoryArchive] = []
        for archive in archives:
            digest = digests.get(archive.repository)
            if (
                not force
                and digest is not None
                and digest == self._store.get_fingerprint(archive.repository)
            ):
                logger.info(f"{archive.repository} is up to date")
                stats.repositories_skipped += 1
                continue
            pending.append(archive)

        # ═══════════════════════════════════════════════════════════════════
        # PHASE 2: COUNT (size the progress bar)
        # ═══════════════════════════════════════════════════════════════════
        sizes: Dict[str, int] = {}
        for archive in pending:
            try:
                sizes[archive.repository] = ArchiveReader(archive.path).count_entries()
            except ArchiveError as e:
                handle_error(e, archive.path, archive.repository)
                stats.repositories_failed += 1
                stats.failed.append(archive.repository)

        total_work = 2 * sum(sizes.values())

        # ═══════════════════════════════════════════════════════════════════
        # PHASE 3: PROCESS (two passes per repository)
        # ═══════════════════════════════════════════════════════════════════
        with ProgressReporter(
            total_work,
            style=self.config.progress_style,
            enabled=self.config.show_progress,
        ) as progress:
            for archive in pending:
                if archive.repository not in sizes:
                    continue

                try:
                    repo_stats = self.update_repository(archive, progress)
                except ArchiveError as e:
                    if handle_error(e, archive.path, archive.repository) == ErrorAction.PROPAGATE:
                        raise
                    progress.fail(f"caching {archive.repository}")
                    stats.repositories_failed += 1
                    stats.failed.append(archive.repository)
                    continue

                stats.merge(repo_stats)
                stats.repositories_updated += 1

                digest = digests.get(archive.repository)
                if digest is not None:
                    self._store.set_fingerprint(archive.repository, digest)

            progress.describe("caching done")

        # ═══════════════════════════════════════════════════════════════════
        # PHASE 4: PRUNE (repositories whose archive is gone)
        # ═══════════════════════════════════════════════════════════════════
        if self.config.prune_stale:
            for repository in sorted(vanished & self._store.repositories()):
                self._store.remove_repository(repository)
                stats.repositories_removed += 1

        stats.duration_seconds = time.monotonic() - start_time
        logger.info(f"Cache update complete: {stats}")

        return stats

    def update_repository(
        self,
        archive: RepositoryArchive,
        progress: Optional[ProgressReporter] = None,
    ) -> UpdateStats:
        """
        Two-pass update of a single repository.

        Raises:
            ArchiveError: the archive could not be opened or read
            CacheError: the store failed
        """
        repository = archive.repository
        reader = ArchiveReader(archive.path)
        progress = progress or ProgressReporter(0, enabled=False)
        stats = UpdateStats()

        cached = self._store.cached_identifiers(repository)

        # identifier -> package name, only for this repository's update
        id_to_name: Dict[str, str] = {}
        live_names: Set[str] = set()

        # Pass 1: descriptors
        progress.describe(f"caching {repository}: descriptions")
        batch: List[PackageDescriptor] = []

        for _, entry in reader.members():
            progress.advance()
            if entry is None or entry.kind != EntryKind.DESC:
                continue

            if entry.identifier in cached:
                live_names.add(cached[entry.identifier])
                stats.entries_cached += 1
                continue

            descriptor = self._read_descriptor(entry, archive)
            if descriptor is None:
                stats.rejected_records += 1
                continue

            id_to_name[entry.identifier] = descriptor.name
            live_names.add(descriptor.name)
            batch.append(descriptor)

            if len(batch) >= self.config.db_batch_size:
                stats.descriptors_written += self._store.upsert_descriptors(batch)
                batch = []

        stats.descriptors_written += self._store.upsert_descriptors(batch)

        if self.config.prune_stale:
            stats.packages_removed = self._store.remove_stale_packages(repository, live_names)

        # Pass 2: file lists
        progress.describe(f"caching {repository}: files")

        for _, entry in reader.members():
            progress.advance()
            if entry is None or entry.kind != EntryKind.FILES:
                continue

            if entry.identifier in cached:
                continue

            package_name = id_to_name.get(entry.identifier)
            if package_name is None:
                logger.warning(
                    f"Package {entry.identifier} found in files, but not in desc ({repository})"
                )
                stats.orphan_files += 1
                continue

            self._store.replace_files(repository, package_name, parse_files(entry.read()))
            stats.packages_indexed += 1

        logger.info(
            f"{repository}: {stats.descriptors_written} descriptors, "
            f"{stats.packages_indexed} file lists, {stats.entries_cached} cached"
        )
        return stats

    def _read_descriptor(
        self,
        entry: ArchiveEntry,
        archive: RepositoryArchive,
    ) -> Optional[PackageDescriptor]:
        """Parse a desc entry, or None if the record is rejected."""
        try:
            record = parse_desc(entry.read(), entry.identifier)
        except MalformedRecordError as e:
            handle_error(e, archive.path, archive.repository)
            return None

        return PackageDescriptor(
            name=record.name,
            version=record.version,
            description=record.description,
            repository=archive.repository,
            files_indexed=False,
        )

    async def run_incremental(self, repositories: Iterable[str]) -> UpdateStats:
        """
        Re-run the update for a subset of repositories.

        Repositories whose archive is gone are dropped from the cache.
        """
        repositories = set(repositories)
        if not repositories:
            return UpdateStats()

        logger.info(f"Incremental update: {', '.join(sorted(repositories))}")
        return await self.run_update(repositories=repositories)

    async def start_watching(self):
        """
        Update the cache whenever archives in the sync directory change.

        This runs indefinitely until stop_watching() is called.
        """
        self._watcher = AsyncWatcher(self.config)
        self._watcher.start()

        logger.info("Started archive watching")

        async for batch in self._watcher.changes():
            await self.run_incremental(change.repository for change in batch)

    def stop_watching(self):
        """Stop the archive watcher."""
        if self._watcher:
            self._watcher.stop()
            self._watcher = None

    def close(self):
        """Clean up resources."""
        self.stop_watching()
        self._hasher.close()
        self._store.close()


async def run_update(
    config: Optional[IndexerConfig] = None,
    force: bool = False,
) -> UpdateStats:
    """
    Convenience function to run a full update.

    Usage:
        stats = await run_update()
        print(stats)
    """
    updater = Updater(config)
    try:
        return await updater.run_update(force=force)
    finally:
        updater.close()
