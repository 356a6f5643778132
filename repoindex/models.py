"""
Data Models - Type definitions for the repository index.

These dataclasses represent the data flowing between the archive reader,
the cache store and the query side.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, List


class EntryKind:
    """File kinds found inside a package directory of an archive."""
    DESC = "desc"
    FILES = "files"


@dataclass
class RepositoryArchive:
    """A <repository>.files archive found in the sync directory."""
    repository: str
    path: Path


@dataclass
class ArchiveEntry:
    """
    One regular member of a repository archive.

    The stream is only valid until the archive iterator advances.
    """
    identifier: str            # "<name>-<version>"
    kind: str                  # "desc", "files", ...
    stream: IO[bytes]

    def read(self) -> bytes:
        return self.stream.read()


@dataclass
class DescRecord:
    """Parsed contents of a desc entry."""
    name: str
    version: str
    description: str = ""


@dataclass
class PackageDescriptor:
    """
    A row of the descriptors table.

    One per (repository, name); files_indexed flips to True only when
    the complete file list of the package has been committed.
    """
    name: str
    version: str
    description: str
    repository: str
    files_indexed: bool = False

    @property
    def identifier(self) -> str:
        """Archive directory name for this package version."""
        return f"{self.name}-{self.version}"


@dataclass
class SearchHit:
    """A ranked search result."""
    descriptor: PackageDescriptor
    score: float


@dataclass
class FileMatch:
    """A package owning a path that matched a file lookup."""
    descriptor: PackageDescriptor
    path: str                  # Full path, with leading '/'


@dataclass
class UpdateStats:
    """Statistics from an update run."""
    repositories_updated: int = 0
    repositories_skipped: int = 0   # Fingerprint unchanged
    repositories_failed: int = 0
    repositories_removed: int = 0
    descriptors_written: int = 0
    packages_indexed: int = 0       # File lists committed
    entries_cached: int = 0         # Identifiers skipped as already indexed
    packages_removed: int = 0
    orphan_files: int = 0           # files entries with no desc
    rejected_records: int = 0
    failed: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    def merge(self, other: "UpdateStats") -> None:
        """Accumulate the counters of a single-repository run."""
        self.descriptors_written += other.descriptors_written
        self.packages_indexed += other.packages_indexed
        self.entries_cached += other.entries_cached
        self.packages_removed += other.packages_removed
        self.orphan_files += other.orphan_files
        self.rejected_records += other.rejected_records

    def __str__(self) -> str:
        return (
            f"Updated {self.repositories_updated} repositories "
            f"({self.repositories_skipped} unchanged, "
            f"{self.repositories_failed} failed): "
            f"{self.packages_indexed} packages indexed, "
            f"{self.entries_cached} cached, "
            f"{self.packages_removed} removed "
            f"in {self.duration_seconds:.1f}s"
        )
