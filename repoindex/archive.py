"""
Archive Reader - Streaming traversal of repository .files archives.

Each archive is a compressed tar with one directory per package version
(<name>-<version>/) holding a desc and a files entry. The reader never
extracts to disk; members are decompressed on the fly.
"""

import logging
import tarfile
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterator, Tuple

from .errors import ArchiveExtractError, ArchiveOpenError
from .models import ArchiveEntry


logger = logging.getLogger(__name__)

# Raised by the decompressors and the tar header parser on bad input
_EXTRACT_ERRORS = (tarfile.TarError, EOFError, zlib.error, OSError, ValueError)


class ArchiveReader:
    """
    Reads one repository archive.

    Supports any number of passes; each call to entries() or
    count_entries() reopens the file and streams it from the start.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _open(self) -> tarfile.TarFile:
        try:
            # Stream mode: sequential reads, compression auto-detected
            return tarfile.open(str(self.path), mode="r|*")
        except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
            raise ArchiveOpenError(self.path, e.strerror or str(e)) from e
        except _EXTRACT_ERRORS as e:
            raise ArchiveExtractError(self.path, str(e)) from e

    def count_entries(self) -> int:
        """
        Count every member of the archive (directories included).

        Cheap pass used to size progress reporting.
        """
        count = 0
        with self._open() as archive:
            try:
                for _ in archive:
                    count += 1
            except _EXTRACT_ERRORS as e:
                raise ArchiveExtractError(self.path, str(e)) from e
        return count

    def members(self) -> Iterator[Tuple[tarfile.TarInfo, ArchiveEntry | None]]:
        """
        Iterate over all members, pairing regular files with an ArchiveEntry.

        Non-file members (directories, links) are yielded with None so
        callers can still count them.
        """
        with self._open() as archive:
            iterator = iter(archive)
            while True:
                try:
                    member = next(iterator)
                except StopIteration:
                    return
                except _EXTRACT_ERRORS as e:
                    raise ArchiveExtractError(self.path, str(e)) from e

                if not member.isfile():
                    yield member, None
                    continue

                identifier, kind = self._parse_member_path(member.name)
                stream = archive.extractfile(member)
                if stream is None:
                    raise ArchiveExtractError(self.path, f"unreadable member {member.name}")

                yield member, ArchiveEntry(
                    identifier=identifier,
                    kind=kind,
                    stream=_GuardedStream(stream, self.path),
                )

    def entries(self) -> Iterator[ArchiveEntry]:
        """
        Lazily yield the regular file entries of the archive.

        Finite and not restartable: a new pass needs a new call.
        """
        for _, entry in self.members():
            if entry is not None:
                yield entry

    def _parse_member_path(self, name: str) -> Tuple[str, str]:
        """Split '<identifier>/<kind>' into its two components."""
        parts = [p for p in PurePosixPath(name).parts if p not in ("", ".")]
        if len(parts) < 2:
            raise ArchiveExtractError(self.path, f"unexpected member path {name!r}")
        return parts[0], parts[1]


class _GuardedStream:
    """File-like wrapper mapping decompression failures to ArchiveExtractError."""

    def __init__(self, stream, archive_path: Path):
        self._stream = stream
        self._archive_path = archive_path

    def read(self, size: int = -1) -> bytes:
        try:
            return self._stream.read(size)
        except _EXTRACT_ERRORS as e:
            raise ArchiveExtractError(self._archive_path, str(e)) from e

    def close(self) -> None:
        self._stream.close()


def count_archive_entries(path: Path) -> int:
    """
    Convenience function to size an archive.

    Usage:
        total = count_archive_entries(Path("/var/lib/pacman/sync/core.files"))
    """
    return ArchiveReader(path).count_entries()
