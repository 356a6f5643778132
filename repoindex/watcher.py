"""
Watcher - Detect refreshed repository archives in the sync directory.

Uses watchdog to monitor the sync directory, with debouncing so that a
sync step rewriting several archives triggers a single update.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .config import get_config, IndexerConfig


logger = logging.getLogger(__name__)


class ChangeType(Enum):
    """Type of archive change."""
    UPDATED = "updated"     # Created, rewritten or moved into place
    DELETED = "deleted"


@dataclass
class ArchiveChange:
    """A pending archive change event."""
    repository: str
    path: Path
    change_type: ChangeType
    timestamp: float


class _ArchiveEventHandler(FileSystemEventHandler):
    def __init__(self, watcher: "Watcher"):
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher._queue_change(Path(event.src_path), ChangeType.UPDATED)

    def on_modified(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher._queue_change(Path(event.src_path), ChangeType.UPDATED)

    def on_deleted(self, event: FileSystemEvent):
        if not event.is_directory:
            self.watcher._queue_change(Path(event.src_path), ChangeType.DELETED)

    def on_moved(self, event: FileSystemEvent):
        if not event.is_directory:
            # Sync tools download to a temp name and rename over the archive
            self.watcher._queue_change(Path(event.src_path), ChangeType.DELETED)
            self.watcher._queue_change(Path(event.dest_path), ChangeType.UPDATED)


class Watcher:
    """
    Sync directory watcher with debouncing.

    Only files named <repository><archive_suffix> are tracked; the last
    event per repository within the debounce window wins.
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        on_changes: Optional[Callable[[List[ArchiveChange]], None]] = None,
    ):
        self.config = config or get_config()
        self.on_changes = on_changes

        self._observer = None
        self._pending_changes: Dict[str, ArchiveChange] = {}
        self._pending_lock = threading.Lock()
        self._debounce_task: Optional[asyncio.Task] = None
        self._running = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self, sync_dir: Path | None = None):
        """
        Start watching the sync directory.

        Must be called from a running event loop.
        """
        sync_dir = sync_dir or self.config.sync_dir
        self._loop = asyncio.get_running_loop()

        if not sync_dir.exists():
            logger.warning(f"Sync directory not found: {sync_dir}")
            return

        self._observer = Observer()
        self._observer.schedule(_ArchiveEventHandler(self), str(sync_dir), recursive=False)

        self._running = True
        self._observer.start()
        logger.info(f"Watching archives in {sync_dir}")

    def stop(self):
        """Stop watching."""
        self._running = False

        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=2)
            self._observer = None

        if self._debounce_task:
            self._debounce_task.cancel()
            self._debounce_task = None

    def repository_for(self, path: Path) -> Optional[str]:
        """Repository name of an archive path, or None if not an archive."""
        name = path.name
        suffix = self.config.archive_suffix
        if name.startswith(".") or not name.endswith(suffix) or name == suffix:
            return None
        return name[:-len(suffix)]

    def _queue_change(self, path: Path, change_type: ChangeType):
        """Queue a change for debounced processing (watchdog thread)."""
        repository = self.repository_for(path)
        if repository is None:
            return

        change = ArchiveChange(
            repository=repository,
            path=path,
            change_type=change_type,
            timestamp=time.monotonic(),
        )

        # Later events override earlier ones
        with self._pending_lock:
            self._pending_changes[repository] = change

        if self._loop and self._loop.is_running():
            self._loop.call_soon_threadsafe(self._schedule_flush)

    def _schedule_flush(self):
        """Schedule a debounced flush of pending changes."""
        if self._debounce_task and not self._debounce_task.done():
            return

        if self._loop:
            self._debounce_task = self._loop.create_task(self._flush_after_delay())

    async def _flush_after_delay(self):
        """Wait for debounce period then flush changes."""
        await asyncio.sleep(self.config.debounce_ms / 1000.0)
        self._flush_changes()

    def _flush_changes(self):
        """Hand all pending changes to the handler."""
        with self._pending_lock:
            changes = list(self._pending_changes.values())
            self._pending_changes.clear()

        if not changes:
            return

        logger.info(f"Detected changes in {len(changes)} archives")

        if self.on_changes:
            self.on_changes(changes)

    def get_pending_count(self) -> int:
        """Get number of pending changes."""
        return len(self._pending_changes)


class AsyncWatcher(Watcher):
    """
    Async-friendly version of the watcher.

    Provides an async generator interface for processing changes.
    """

    def __init__(self, config: IndexerConfig | None = None):
        super().__init__(config)
        self._change_queue: asyncio.Queue[List[ArchiveChange]] = asyncio.Queue()
        self.on_changes = self._enqueue_changes

    def _enqueue_changes(self, changes: List[ArchiveChange]):
        self._change_queue.put_nowait(changes)

    async def changes(self):
        """
        Async generator that yields batches of changes.

        Usage:
            watcher = AsyncWatcher()
            watcher.start()

            async for batch in watcher.changes():
                print({c.repository for c in batch})
        """
        while self._running:
            try:
                batch = await asyncio.wait_for(self._change_queue.get(), timeout=1.0)
                yield batch
            except asyncio.TimeoutError:
                continue
