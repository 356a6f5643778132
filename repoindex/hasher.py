"""
Hasher - Fast archive fingerprinting using xxHash.

A repository archive whose digest matches the one recorded after the
last successful update is skipped entirely, before any decompression.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List

import xxhash

from .config import get_config, IndexerConfig
from .models import RepositoryArchive
from .errors import handle_error


logger = logging.getLogger(__name__)


class Hasher:
    """
    Archive fingerprinting with xxHash.

    Hashing only reads raw bytes; it is the first filter of the update
    so unchanged repositories never reach the tar reader.
    """

    def __init__(self, config: IndexerConfig | None = None):
        self.config = config or get_config()
        self._executor: ThreadPoolExecutor | None = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.config.hasher_concurrency,
                thread_name_prefix="hasher"
            )
        return self._executor

    async def hash_archives(self, archives: List[RepositoryArchive]) -> Dict[str, str]:
        """
        Fingerprint archives in parallel.

        Returns:
            Mapping repository -> hex digest. Archives that could not be
            read are left out (the error is logged).
        """
        if not archives:
            return {}

        loop = asyncio.get_running_loop()
        executor = self._get_executor()

        tasks = [
            loop.run_in_executor(executor, self.compute_hash, archive.path)
            for archive in archives
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        digests: Dict[str, str] = {}
        for archive, result in zip(archives, results):
            if isinstance(result, OSError):
                handle_error(result, archive.path, "hash_archive")
            elif isinstance(result, BaseException):
                raise result
            else:
                digests[archive.repository] = result

        logger.debug(f"Hashed {len(digests)}/{len(archives)} archives")
        return digests

    def compute_hash(self, path: Path) -> str:
        """Compute the xxh64 digest of a file's bytes."""
        hasher = xxhash.xxh64()

        # Read in 64KB chunks for memory efficiency
        with open(path, "rb") as f:
            while chunk := f.read(65536):
                hasher.update(chunk)

        return hasher.hexdigest()

    def close(self):
        """Shutdown the thread pool."""
        if self._executor:
            self._executor.shutdown(wait=False)
            self._executor = None


async def hash_archives(
    archives: List[RepositoryArchive],
    config: IndexerConfig | None = None,
) -> Dict[str, str]:
    """
    Convenience function to fingerprint archives.

    Usage:
        digests = await hash_archives(archives)
        changed = [a for a in archives if digests.get(a.repository) != known.get(a.repository)]
    """
    hasher = Hasher(config)
    try:
        return await hasher.hash_archives(archives)
    finally:
        hasher.close()
