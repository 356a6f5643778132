"""
Search Tests - Verify fuzzy, relevance-ranked search.

Tests:
- Bounded Levenshtein distance
- Tokenization and query expansion
- Relevance ordering and ties
- Repository tie-break
"""

import math

import pytest

from repoindex.errors import CacheMissingError
from repoindex.models import PackageDescriptor
from repoindex.search import (
    SearchEngine, levenshtein_cutoff, search_packages, tokenize
)
from repoindex.store import CacheStore


def _descriptor(name, description, repository="extra"):
    return PackageDescriptor(
        name=name,
        version="1.0-1",
        description=description,
        repository=repository,
    )


class TestLevenshtein:
    """Tests for the bounded edit distance."""

    def test_single_substitution(self):
        """gcc -> gcd is one edit."""
        assert levenshtein_cutoff("gcc", "gcd", 2) == 1

    def test_identical(self):
        assert levenshtein_cutoff("firefox", "firefox", 2) == 0

    def test_length_difference_rejected(self):
        """Strings too far apart in length are rejected outright."""
        assert levenshtein_cutoff("gcc", "zzzzzzzz", 2) is None

    def test_exceeds_cutoff(self):
        """kitten -> sitting is 3 edits."""
        assert levenshtein_cutoff("kitten", "sitting", 3) == 3
        assert levenshtein_cutoff("kitten", "sitting", 2) is None

    def test_insertion_and_deletion(self):
        assert levenshtein_cutoff("vim", "nvim", 2) == 1
        assert levenshtein_cutoff("nvim", "vim", 2) == 1

    def test_empty_strings(self):
        assert levenshtein_cutoff("", "ab", 2) == 2
        assert levenshtein_cutoff("", "", 2) == 0


class TestTokenize:
    """Tests for query tokenization."""

    def test_splits_and_lowercases(self):
        assert tokenize("Web-Browser, FAST") == ["web", "browser", "fast"]

    def test_underscores_split(self):
        assert tokenize("python_requests") == ["python", "requests"]

    def test_punctuation_only(self):
        assert tokenize("  ,;!  ") == []


class TestSearchEngine:
    """Tests for the SearchEngine class."""

    @pytest.fixture
    def store(self, test_config):
        s = CacheStore(test_config)
        s.upsert_descriptors([
            _descriptor("firefox", "web browser"),
            _descriptor("chromium", "web browser"),
        ])
        yield s
        s.close()

    @pytest.fixture
    def engine(self, test_config, store):
        return SearchEngine(test_config, store)

    def test_symmetric_description_match(self, engine):
        """Packages matching only through the same description score equally."""
        hits = engine.search_scored("browser")

        assert [h.descriptor.name for h in hits] == ["chromium", "firefox"]
        assert hits[0].score == pytest.approx(hits[1].score)
        assert hits[0].score > 0

    def test_name_match_ranks_first(self, engine):
        """A name match ranks strictly above packages without one."""
        hits = engine.search_scored("firefox browser")
        scores = {h.descriptor.name: h.score for h in hits}

        assert [h.descriptor.name for h in hits] == ["firefox", "chromium"]
        assert scores["firefox"] > scores["chromium"] > 0

    def test_fuzzy_match(self, engine):
        """A one-letter typo still finds the package."""
        hits = engine.search_scored("firefix")

        assert [h.descriptor.name for h in hits] == ["firefox"]
        assert hits[0].score == pytest.approx(2 * math.log(2))

    def test_no_match(self, engine):
        assert engine.search("xyzxyz") == []

    def test_empty_query(self, engine):
        assert engine.search("") == []
        assert engine.search("--") == []

    def test_limit(self, engine):
        assert len(engine.search("web browser", limit=1)) == 1

    def test_multi_token_query(self, engine, store):
        """Every query token contributes to the score."""
        store.upsert_descriptor(_descriptor("lynx", "text-mode web browser"))

        names = [p.name for p in engine.search("text browser")]

        assert names[0] == "lynx"
        assert set(names) == {"lynx", "firefox", "chromium"}

    def test_rarer_token_weighs_more(self, engine, store):
        """A token found in fewer candidates contributes more."""
        store.upsert_descriptor(_descriptor("w3m", "pager with web browsing"))
        store.upsert_descriptor(_descriptor("elinks", "advanced text browser"))

        hits = {h.descriptor.name: h.score for h in engine.search_scored("advanced web")}

        assert hits["elinks"] > hits["w3m"]

    def test_case_insensitive(self, engine):
        assert [p.name for p in engine.search("FIREFOX")] == ["firefox"]

    def test_expand_query(self, engine):
        """Expansion adds dictionary words within the cutoff."""
        expanded = engine.expand_query(["firefix"], {"firefox", "chromium", "fire"})
        assert expanded == {"firefix", "firefox"}


class TestSearchPriority:
    """Tests for repository tie-breaking in search results."""

    def test_same_name_resolves_to_priority_repository(self, test_config):
        """A name carried by two repositories is reported from the first."""
        with CacheStore(test_config) as store:
            store.upsert_descriptor(_descriptor("zstd", "fast compression", repository="extra"))
            store.upsert_descriptor(_descriptor("zstd", "fast compression", repository="core"))

            results = SearchEngine(test_config, store).search("zstd")

        assert len(results) == 1
        assert results[0].repository == "core"


class TestSearchPackages:
    """Tests for the convenience function."""

    def test_missing_cache(self, test_config):
        """Searching without a cache raises CacheMissingError."""
        with pytest.raises(CacheMissingError):
            search_packages("firefox", test_config)

    def test_search_packages(self, test_config):
        with CacheStore(test_config) as store:
            store.upsert_descriptor(_descriptor("firefox", "web browser"))

        assert [p.name for p in search_packages("firefox", test_config)] == ["firefox"]
