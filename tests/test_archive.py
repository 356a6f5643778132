"""
Archive Tests - Verify streaming traversal of .files archives.

Tests:
- Entry identifiers and kinds
- Multiple passes over one archive
- Open and extract failures
"""

import pytest

from repoindex.archive import ArchiveReader, count_archive_entries
from repoindex.errors import ArchiveExtractError, ArchiveOpenError
from repoindex.models import EntryKind


class TestArchiveReader:
    """Tests for the ArchiveReader class."""

    def test_yields_desc_and_files(self, make_archive, core_packages):
        """Each package directory yields a desc and a files entry."""
        path = make_archive("core", core_packages)

        seen = [(e.identifier, e.kind) for e in ArchiveReader(path).entries()]

        assert ("gcc-14.1.1-1", EntryKind.DESC) in seen
        assert ("gcc-14.1.1-1", EntryKind.FILES) in seen
        assert ("bash-5.2.026-2", EntryKind.DESC) in seen
        assert len(seen) == 4

    def test_entry_stream_contents(self, make_archive, core_packages):
        """Entry streams hold the member bytes."""
        path = make_archive("core", core_packages)

        for entry in ArchiveReader(path).entries():
            if entry.identifier == "bash-5.2.026-2" and entry.kind == EntryKind.FILES:
                assert entry.read().startswith(b"%FILES%\n")
                break
        else:
            pytest.fail("files entry not found")

    def test_count_includes_directories(self, make_archive, core_packages):
        """count_entries counts every member."""
        path = make_archive("core", core_packages)

        # One directory, desc and files per package
        assert count_archive_entries(path) == 6

    def test_members_pair_directories_with_none(self, make_archive, core_packages):
        """Directory members carry no entry."""
        path = make_archive("core", core_packages)

        members = list(ArchiveReader(path).members())
        directories = [m for m, entry in members if entry is None]
        assert len(directories) == 2
        assert all(m.isdir() for m in directories)

    def test_multiple_passes(self, make_archive, core_packages):
        """Each call to entries() streams the archive from the start."""
        reader = ArchiveReader(make_archive("core", core_packages))

        first = [e.identifier for e in reader.entries()]
        second = [e.identifier for e in reader.entries()]
        assert first == second

    def test_empty_archive(self, make_archive):
        """An archive without packages yields nothing."""
        path = make_archive("empty", [])
        assert list(ArchiveReader(path).entries()) == []


class TestArchiveErrors:
    """Tests for archive failure mapping."""

    def test_missing_archive(self, test_config):
        """A missing file raises ArchiveOpenError."""
        reader = ArchiveReader(test_config.sync_dir / "nope.files")
        with pytest.raises(ArchiveOpenError):
            list(reader.entries())

    def test_garbage_archive(self, test_config):
        """Bytes that are not a tar stream raise ArchiveExtractError."""
        path = test_config.sync_dir / "broken.files"
        path.write_bytes(b"this is not an archive at all" * 20)

        with pytest.raises(ArchiveExtractError):
            list(ArchiveReader(path).entries())

    def test_corrupt_compressed_stream(self, test_config):
        """A gzip header followed by invalid deflate data raises ArchiveExtractError."""
        path = test_config.sync_dir / "core.files"
        path.write_bytes(b"\x1f\x8b\x08\x00\x00\x00\x00\x00\x00\x03" + b"\xff" * 256)

        with pytest.raises(ArchiveExtractError):
            list(ArchiveReader(path).entries())
