"""
Indexing Configuration - Centralized settings for the repository index.

Uses environment variables with sensible defaults. All paths are resolved
to absolute paths for reliability.
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


@dataclass
class ProgressStyle:
    """
    Rendering options for the progress bar.

    Passed to the ProgressReporter when it is built, so no module
    holds a shared formatting object.
    """
    bar_format: str = "[{elapsed:>5}] [{bar:40}] {percentage:3.0f}% {desc} {n_fmt}/{total_fmt}"
    ascii: str = " >="
    colour: str | None = "cyan"
    failed_colour: str = "red"
    unit: str = "entry"


@dataclass
class IndexerConfig:
    """
    Configuration for the repository indexer.

    The database defaults to ~/.cache/repoindex, archives are read from
    the pacman sync directory.
    """

    # --- Paths ---
    db_path: Path = field(default_factory=lambda: Path.home() / ".cache" / "repoindex" / "cache.sqlite")
    sync_dir: Path = field(default_factory=lambda: Path("/var/lib/pacman/sync"))
    archive_suffix: str = ".files"

    # --- Repositories (order is priority, first wins) ---
    repositories: List[str] = field(default_factory=list)

    # --- Throughput ---
    db_batch_size: int = 500        # Descriptors per transaction in pass 1
    hasher_concurrency: int = 4     # Parallel archive fingerprinting

    # --- Search ---
    max_distance: int = 2           # Levenshtein cutoff for fuzzy matches
    max_length_difference: int = 2  # Pairs further apart are never compared
    search_term_batch: int = 200    # Expanded terms bound per candidate query

    # --- Maintenance ---
    prune_stale: bool = True        # Drop packages/repositories gone from the sync dir

    # --- Reporting ---
    show_progress: bool = True
    progress_style: ProgressStyle = field(default_factory=ProgressStyle)

    # --- Watcher ---
    debounce_ms: int = 2000

    def __post_init__(self):
        """Ensure all paths are absolute and the database directory exists."""
        self.db_path = Path(self.db_path).expanduser().resolve()
        self.sync_dir = Path(self.sync_dir).expanduser().resolve()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def priority_of(self, repository: str) -> int:
        """Position of a repository in the priority list (unlisted sort last)."""
        try:
            return self.repositories.index(repository)
        except ValueError:
            return len(self.repositories)

    def priority_key(self, repository: str) -> tuple[int, str]:
        """Total, stable ordering key for repositories."""
        return (self.priority_of(repository), repository)

    @classmethod
    def from_env(cls) -> "IndexerConfig":
        """
        Create config from environment variables.

        Supported env vars:
            REPOINDEX_DB_PATH: Path to the SQLite cache
            REPOINDEX_SYNC_DIR: Directory holding <repo>.files archives
            REPOINDEX_REPOSITORIES: Comma-separated repository priority list
            REPOINDEX_PACMAN_CONF: pacman.conf to read the priority list from
            REPOINDEX_DB_BATCH_SIZE: Descriptors per transaction
            REPOINDEX_HASHER_CONCURRENCY: Parallel archive hashing
            REPOINDEX_NO_PROGRESS: Disable the progress bar
        """
        config = cls()

        if db_path := os.environ.get("REPOINDEX_DB_PATH"):
            config.db_path = Path(db_path)

        if sync_dir := os.environ.get("REPOINDEX_SYNC_DIR"):
            config.sync_dir = Path(sync_dir)

        if repositories := os.environ.get("REPOINDEX_REPOSITORIES"):
            config.repositories = [r.strip() for r in repositories.split(",") if r.strip()]
        elif pacman_conf := os.environ.get("REPOINDEX_PACMAN_CONF"):
            config.repositories = repositories_from_pacman_conf(Path(pacman_conf))

        if batch := os.environ.get("REPOINDEX_DB_BATCH_SIZE"):
            config.db_batch_size = int(batch)

        if hasher := os.environ.get("REPOINDEX_HASHER_CONCURRENCY"):
            config.hasher_concurrency = int(hasher)

        if os.environ.get("REPOINDEX_NO_PROGRESS"):
            config.show_progress = False

        config.__post_init__()
        return config


def repositories_from_pacman_conf(path: Path) -> List[str]:
    """
    Read the repository priority list from a pacman-style config.

    Every section except [options] is a repository, in file order.
    """
    parser = configparser.ConfigParser(
        allow_no_value=True,
        strict=False,
        interpolation=None,
    )
    parser.read(path, encoding="utf-8")
    return [section for section in parser.sections() if section != "options"]


# Singleton default config
_default_config: IndexerConfig | None = None


def get_config() -> IndexerConfig:
    """Get the default configuration (singleton)."""
    global _default_config
    if _default_config is None:
        _default_config = IndexerConfig.from_env()
    return _default_config


def set_config(config: IndexerConfig) -> None:
    """Override the default configuration (for testing)."""
    global _default_config
    _default_config = config
