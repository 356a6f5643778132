"""
Locator Tests - Verify file ownership lookups.

Tests:
- Exact and suffix lookups
- Listing files of a package
- Descriptor lookup and missing packages
"""

import pytest

from repoindex.errors import CacheMissingError, PackageNotFoundError
from repoindex.locator import FileLocator
from repoindex.models import PackageDescriptor
from repoindex.store import CacheStore


class TestFileLocator:
    """Tests for the FileLocator class."""

    @pytest.fixture
    def locator(self, test_config):
        with CacheStore(test_config) as store:
            for name, repository, paths in [
                ("gcc", "core", ["usr/", "usr/bin/", "usr/bin/gcc", "usr/bin/gcc-ar"]),
                ("cross-gcc", "extra", ["opt/cross/bin/gcc"]),
                ("gcc", "extra", ["usr/bin/gcc"]),
            ]:
                store.upsert_descriptor(PackageDescriptor(
                    name=name,
                    version="1.0-1",
                    description=f"{name} from {repository}",
                    repository=repository,
                ))
                store.replace_files(repository, name, paths)

        loc = FileLocator(test_config)
        yield loc
        loc.close()

    def test_exact_match_only(self, locator):
        """Exact lookup ignores paths that merely end with the fragment."""
        matches = locator.find_by_path("/usr/bin/gcc", exact=True)

        assert len(matches) == 1
        assert matches[0].descriptor.name == "gcc"
        assert matches[0].descriptor.repository == "core"
        assert matches[0].path == "/usr/bin/gcc"

    def test_suffix_match(self, locator):
        """Suffix lookup matches every owning package."""
        matches = locator.find_by_path("bin/gcc")

        assert [(m.descriptor.name, m.path) for m in matches] == [
            ("cross-gcc", "/opt/cross/bin/gcc"),
            ("gcc", "/usr/bin/gcc"),
        ]

    def test_suffix_does_not_match_partial_component(self, locator):
        """'cc' does not match 'gcc'."""
        assert locator.find_by_path("cc") == []

    def test_files_of(self, locator):
        """files_of lists the resolved package's files."""
        assert locator.files_of("gcc") == ["/usr/bin/gcc", "/usr/bin/gcc-ar"]

    def test_files_of_with_directories(self, locator):
        assert "/usr/bin/" in locator.files_of("gcc", include_directories=True)

    def test_describe(self, locator):
        """describe returns the priority-resolved descriptor."""
        descriptor = locator.describe("gcc")
        assert descriptor.repository == "core"
        assert descriptor.files_indexed

    def test_describe_missing(self, locator):
        with pytest.raises(PackageNotFoundError):
            locator.describe("nope")

    def test_files_of_missing(self, locator):
        with pytest.raises(PackageNotFoundError):
            locator.files_of("nope")


class TestMissingCache:
    """Tests for lookups without a cache."""

    def test_lookup_without_cache(self, test_config):
        locator = FileLocator(test_config)
        with pytest.raises(CacheMissingError):
            locator.find_by_path("usr/bin/gcc")
