"""
Search Engine - Fuzzy, relevance-ranked package search over the cache.

Pipeline per query:
    Tokenize → Expand (bounded Levenshtein against package names)
    → Select candidates (substring match, one row per name)
    → Document frequency → Score → Rank

Stateless: every call reads a fresh snapshot of the cache.
"""

import logging
import math
import re
from typing import Dict, Iterable, List, Optional, Set

from .config import get_config, IndexerConfig
from .models import PackageDescriptor, SearchHit
from .store import CacheStore


logger = logging.getLogger(__name__)

_SPLIT_RE = re.compile(r"[\W_]+")

NAME_WEIGHT = 5.0
DESCRIPTION_WEIGHT = 1.5


def tokenize(text: str) -> List[str]:
    """Split on non-alphanumeric boundaries, lowercase, drop empties."""
    return [token.lower() for token in _SPLIT_RE.split(text) if token]


def levenshtein_cutoff(a: str, b: str, max_distance: int) -> Optional[int]:
    """
    Edit distance between a and b, or None if it exceeds max_distance.

    The length difference is a lower bound of the distance, so such
    pairs are rejected before any work. Rows whose minimum already
    exceeds the cutoff stop the computation early.
    """
    if abs(len(a) - len(b)) > max_distance:
        return None

    previous = list(range(len(b) + 1))

    for i, ca in enumerate(a):
        current = [i + 1] * (len(b) + 1)
        row_min = current[0]

        for j, cb in enumerate(b):
            cost = 0 if ca == cb else 1
            current[j + 1] = min(
                previous[j + 1] + 1,    # deletion
                current[j] + 1,         # insertion
                previous[j] + cost,     # substitution
            )
            row_min = min(row_min, current[j + 1])

        if row_min > max_distance:
            return None

        previous = current

    distance = previous[-1]
    return distance if distance <= max_distance else None


def fuzzy_weight(distance: int) -> float:
    """3 for an exact token, 2 at distance 1, 1 at distance 2."""
    return float(3 - distance)


class SearchEngine:
    """
    Relevance-ranked search over package names and descriptions.

    Scores are TF/IDF flavoured: a query token that appears in fewer
    candidates weighs more, name matches outweigh description matches,
    and near-miss spellings still contribute.
    """

    def __init__(
        self,
        config: IndexerConfig | None = None,
        store: CacheStore | None = None,
    ):
        self.config = config or get_config()
        self._store = store or CacheStore(self.config, create=False)

    def search(self, query: str, limit: int | None = None) -> List[PackageDescriptor]:
        """Ranked descriptors for a free-text query."""
        return [hit.descriptor for hit in self.search_scored(query, limit)]

    def search_scored(self, query: str, limit: int | None = None) -> List[SearchHit]:
        """
        Ranked hits (descriptor and score) for a free-text query.

        An empty query, or one made only of punctuation, returns [].
        """
        query_tokens = list(dict.fromkeys(tokenize(query)))
        if not query_tokens:
            return []

        expanded = self.expand_query(query_tokens, self._store.distinct_names())
        candidates = self._store.select_candidates(expanded)

        if not candidates:
            logger.debug(f"No candidates for {query!r}")
            return []

        df = self.compute_df(candidates, query_tokens)
        hits = self.score(candidates, query_tokens, df)

        hits.sort(key=lambda h: (
            -h.score,
            h.descriptor.name,
            self.config.priority_key(h.descriptor.repository),
        ))

        logger.debug(
            f"Search {query!r}: {len(expanded)} terms, "
            f"{len(candidates)} candidates, {len(hits)} hits"
        )

        if limit is not None:
            hits = hits[:limit]
        return hits

    def expand_query(self, query_tokens: List[str], dictionary: Iterable[str]) -> Set[str]:
        """Original tokens plus every dictionary word within the edit cutoff."""
        max_distance = self.config.max_distance
        max_length_difference = self.config.max_length_difference

        expanded = set(query_tokens)
        for word in dictionary:
            for token in query_tokens:
                if abs(len(word) - len(token)) > max_length_difference:
                    continue
                if levenshtein_cutoff(word, token, max_distance) is not None:
                    expanded.add(word)
                    break

        return expanded

    def compute_df(
        self,
        candidates: List[PackageDescriptor],
        query_tokens: List[str],
    ) -> Dict[str, int]:
        """Number of candidates containing each query token as a whole word."""
        df: Dict[str, int] = {}

        for descriptor in candidates:
            words = set(tokenize(f"{descriptor.name} {descriptor.description}"))
            for token in query_tokens:
                if token in words:
                    df[token] = df.get(token, 0) + 1

        return df

    def score(
        self,
        candidates: List[PackageDescriptor],
        query_tokens: List[str],
        df: Dict[str, int],
    ) -> List[SearchHit]:
        """Score every candidate, keeping only positive scores."""
        max_distance = self.config.max_distance
        max_length_difference = self.config.max_length_difference

        total = max(len(candidates), 1)
        idf = {
            token: math.log(1.0 + total / max(df.get(token, 0), 1))
            for token in query_tokens
        }

        hits: List[SearchHit] = []
        for descriptor in candidates:
            name = descriptor.name.lower()
            description_tokens = tokenize(descriptor.description)
            score = 0.0

            for token in query_tokens:
                weight = idf[token]

                if token in name:
                    score += NAME_WEIGHT * weight

                if token in description_tokens:
                    score += DESCRIPTION_WEIGHT * weight

                for word in [name, *description_tokens]:
                    if abs(len(word) - len(token)) > max_length_difference:
                        continue
                    distance = levenshtein_cutoff(word, token, max_distance)
                    if distance is not None:
                        score += fuzzy_weight(distance) * weight

            if score > 0:
                hits.append(SearchHit(descriptor=descriptor, score=score))

        return hits

    def close(self):
        self._store.close()


def search_packages(
    query: str,
    config: IndexerConfig | None = None,
    limit: int | None = None,
) -> List[PackageDescriptor]:
    """
    Convenience function to run one search.

    Usage:
        for pkg in search_packages("web browser", limit=10):
            print(pkg.name, pkg.description)
    """
    engine = SearchEngine(config)
    try:
        return engine.search(query, limit)
    finally:
        engine.close()
