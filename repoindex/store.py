"""
Cache Store - SQLite persistence for package descriptors and file lists.

Two tables carry the data (descriptors, files) and a third records the
fingerprint of the last archive fully processed per repository. Every
file-list replacement is a single transaction, so readers see either
the previous or the new complete set.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .config import get_config, IndexerConfig
from .errors import CacheDatabaseError, CacheMissingError, PackageNotFoundError
from .models import FileMatch, PackageDescriptor


logger = logging.getLogger(__name__)

# Upper bound for a prefix range scan on TEXT columns
_MAX_CHAR = "\U0010ffff"

_DESCRIPTOR_COLUMNS = "name, version, description, repository, files_indexed"


def _reverse_full_path(path: str) -> str:
    """Reversed '/'-prefixed path, indexed so suffix lookups become range scans."""
    return ("/" + path)[::-1]


def _row_to_descriptor(row: sqlite3.Row) -> PackageDescriptor:
    return PackageDescriptor(
        name=row["name"],
        version=row["version"],
        description=row["description"] or "",
        repository=row["repository"],
        files_indexed=bool(row["files_indexed"]),
    )


class CacheStore:
    """
    Relational cache of repository metadata.

    The updater opens the store with create=True (schema is created on
    first use); query components open it with create=False so a missing
    database surfaces as CacheMissingError instead of an empty result.
    """

    def __init__(self, config: IndexerConfig | None = None, create: bool = True):
        self.config = config or get_config()
        self.create = create
        self._conn: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            db_path = self.config.db_path
            needs_init = not db_path.exists()

            if needs_init and not self.create:
                raise CacheMissingError(db_path)

            if needs_init:
                logger.warning(f"Creating the package cache from scratch at {db_path}")

            with self._db_errors("open cache"):
                self._conn = sqlite3.connect(str(db_path))
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA journal_mode = WAL")
                self._conn.execute("PRAGMA synchronous = NORMAL")
                self._conn.execute("PRAGMA cache_size = -64000")  # 64MB cache
                self._init_tables()
        return self._conn

    def _init_tables(self):
        """Create tables and indices if they don't exist."""
        conn = self._conn
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS descriptors (
                name TEXT NOT NULL,
                version TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                repository TEXT NOT NULL,
                files_indexed INTEGER NOT NULL DEFAULT 0,
                UNIQUE (repository, name)
            );

            CREATE INDEX IF NOT EXISTS idx_descriptors_name ON descriptors(name);

            CREATE TABLE IF NOT EXISTS files (
                repository TEXT NOT NULL,
                package_name TEXT NOT NULL,
                path TEXT NOT NULL,
                reversed_path TEXT NOT NULL,
                UNIQUE (repository, package_name, path)
            );

            CREATE INDEX IF NOT EXISTS idx_files_package ON files(repository, package_name);
            CREATE INDEX IF NOT EXISTS idx_files_path ON files(path);
            CREATE INDEX IF NOT EXISTS idx_files_reversed_path ON files(reversed_path);

            CREATE TABLE IF NOT EXISTS archive_state (
                repository TEXT PRIMARY KEY,
                fingerprint TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            );
        """)
        conn.commit()

    @contextmanager
    def _db_errors(self, operation: str) -> Iterator[None]:
        """Surface sqlite failures as CacheDatabaseError."""
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"Cache {operation} failed: {e}")
            raise CacheDatabaseError(f"{operation} failed: {e}") from e

    def _priority_order(self, column: str = "repository") -> str:
        """
        ORDER BY expression ranking repositories by configured priority.

        Repository names come from configuration, never from queries.
        """
        repositories = self.config.repositories
        if not repositories:
            return column

        whens = " ".join(
            "WHEN '{}' THEN {}".format(name.replace("'", "''"), i)
            for i, name in enumerate(repositories)
        )
        return f"CASE {column} {whens} ELSE {len(repositories)} END, {column}"

    # ------------------------------------------------------------------
    # Write path (Incremental Updater only)
    # ------------------------------------------------------------------

    def upsert_descriptor(self, descriptor: PackageDescriptor) -> None:
        """Insert or replace a descriptor keyed by (repository, name)."""
        self.upsert_descriptors([descriptor])

    def upsert_descriptors(self, descriptors: List[PackageDescriptor]) -> int:
        """
        Insert or replace many descriptors in a single transaction.

        Returns:
            Number of rows written
        """
        if not descriptors:
            return 0

        conn = self._get_connection()
        with self._db_errors("upsert descriptors"), conn:
            conn.executemany(
                """
                INSERT INTO descriptors (name, version, description, repository, files_indexed)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(repository, name) DO UPDATE SET
                    version = excluded.version,
                    description = excluded.description,
                    files_indexed = excluded.files_indexed
                """,
                [
                    (d.name, d.version, d.description, d.repository, int(d.files_indexed))
                    for d in descriptors
                ]
            )
        return len(descriptors)

    def replace_files(self, repository: str, name: str, paths: Iterable[str]) -> int:
        """
        Atomically replace the file list of a package.

        The old rows are deleted, the new rows inserted and the package
        flagged files_indexed in one transaction; any failure rolls all
        three back.

        Returns:
            Number of paths stored
        """
        conn = self._get_connection()
        with self._db_errors("replace files"), conn:
            conn.execute(
                "DELETE FROM files WHERE repository = ? AND package_name = ?",
                (repository, name)
            )
            cursor = conn.executemany(
                """
                INSERT OR IGNORE INTO files (repository, package_name, path, reversed_path)
                VALUES (?, ?, ?, ?)
                """,
                (
                    (repository, name, stored, _reverse_full_path(stored))
                    for stored in (p.lstrip("/") for p in paths)
                )
            )
            inserted = max(cursor.rowcount, 0)
            conn.execute(
                "UPDATE descriptors SET files_indexed = 1 WHERE repository = ? AND name = ?",
                (repository, name)
            )
        return inserted

    def remove_stale_packages(self, repository: str, live_names: Set[str]) -> int:
        """
        Remove packages of a repository that are no longer in its archive.

        Returns:
            Number of packages removed
        """
        conn = self._get_connection()
        with self._db_errors("list packages"):
            existing = {
                row[0] for row in conn.execute(
                    "SELECT name FROM descriptors WHERE repository = ?", (repository,)
                )
            }
        stale = existing - live_names

        if not stale:
            return 0

        with self._db_errors("remove stale packages"), conn:
            params = [(repository, name) for name in stale]
            conn.executemany(
                "DELETE FROM files WHERE repository = ? AND package_name = ?", params
            )
            conn.executemany(
                "DELETE FROM descriptors WHERE repository = ? AND name = ?", params
            )

        logger.info(f"Removed {len(stale)} stale packages from {repository}")
        return len(stale)

    def remove_repository(self, repository: str) -> None:
        """Drop every row belonging to a repository."""
        conn = self._get_connection()
        with self._db_errors("remove repository"), conn:
            conn.execute("DELETE FROM files WHERE repository = ?", (repository,))
            conn.execute("DELETE FROM descriptors WHERE repository = ?", (repository,))
            conn.execute("DELETE FROM archive_state WHERE repository = ?", (repository,))
        logger.info(f"Removed repository {repository} from the cache")

    def set_fingerprint(self, repository: str, fingerprint: str) -> None:
        """Record the digest of the archive that was just fully processed."""
        conn = self._get_connection()
        now = int(datetime.now().timestamp())
        with self._db_errors("store fingerprint"), conn:
            conn.execute(
                """
                INSERT INTO archive_state (repository, fingerprint, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(repository) DO UPDATE SET
                    fingerprint = excluded.fingerprint,
                    updated_at = excluded.updated_at
                """,
                (repository, fingerprint, now)
            )

    def get_fingerprint(self, repository: str) -> Optional[str]:
        conn = self._get_connection()
        with self._db_errors("read fingerprint"):
            row = conn.execute(
                "SELECT fingerprint FROM archive_state WHERE repository = ?", (repository,)
            ).fetchone()
        return row[0] if row else None

    def cached_identifiers(self, repository: str) -> Dict[str, str]:
        """
        Identifiers (name-version) whose file list is fully indexed.

        Returns:
            Mapping identifier -> package name
        """
        conn = self._get_connection()
        with self._db_errors("read cached identifiers"):
            cursor = conn.execute(
                f"SELECT {_DESCRIPTOR_COLUMNS} FROM descriptors WHERE repository = ? AND files_indexed = 1",
                (repository,)
            )
            descriptors = [_row_to_descriptor(row) for row in cursor]
        return {d.identifier: d.name for d in descriptors}

    def repositories(self) -> Set[str]:
        """Every repository with rows or state in the cache."""
        conn = self._get_connection()
        with self._db_errors("list repositories"):
            cursor = conn.execute(
                "SELECT repository FROM descriptors UNION SELECT repository FROM archive_state"
            )
            return {row[0] for row in cursor}

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def exists(self, name: str) -> bool:
        """True if any repository carries a package with this name."""
        conn = self._get_connection()
        with self._db_errors("lookup package"):
            row = conn.execute(
                "SELECT 1 FROM descriptors WHERE name = ? LIMIT 1", (name,)
            ).fetchone()
        return row is not None

    def resolve_repository_for_name(self, name: str) -> Optional[str]:
        """Highest-priority repository carrying this package, or None."""
        conn = self._get_connection()
        with self._db_errors("resolve repository"):
            row = conn.execute(
                f"""
                SELECT repository FROM descriptors
                WHERE name = ?
                ORDER BY {self._priority_order()}
                LIMIT 1
                """,
                (name,)
            ).fetchone()
        return row[0] if row else None

    def describe(self, name: str) -> Optional[PackageDescriptor]:
        """Descriptor of the priority-resolved row for a name, or None."""
        conn = self._get_connection()
        with self._db_errors("describe package"):
            row = conn.execute(
                f"""
                SELECT {_DESCRIPTOR_COLUMNS} FROM descriptors
                WHERE name = ?
                ORDER BY {self._priority_order()}
                LIMIT 1
                """,
                (name,)
            ).fetchone()
        return _row_to_descriptor(row) if row else None

    def get_descriptor(self, repository: str, name: str) -> Optional[PackageDescriptor]:
        """Descriptor of a specific (repository, name) row."""
        conn = self._get_connection()
        with self._db_errors("read descriptor"):
            row = conn.execute(
                f"SELECT {_DESCRIPTOR_COLUMNS} FROM descriptors WHERE repository = ? AND name = ?",
                (repository, name)
            ).fetchone()
        return _row_to_descriptor(row) if row else None

    def files_for(self, name: str, include_directories: bool = False) -> List[str]:
        """
        Full paths owned by the priority-resolved package.

        Directories are stored with a trailing '/' and only returned
        when include_directories is set.

        Raises:
            PackageNotFoundError: no repository carries the package
        """
        if not self.exists(name):
            raise PackageNotFoundError(name)

        directory_filter = "" if include_directories else "AND substr(path, -1) != '/'"

        conn = self._get_connection()
        with self._db_errors("list files"):
            cursor = conn.execute(
                f"""
                SELECT '/' || path FROM files
                WHERE package_name = ? AND repository = (
                    SELECT repository FROM descriptors
                    WHERE name = ?
                    ORDER BY {self._priority_order()}
                    LIMIT 1
                ) {directory_filter}
                ORDER BY path
                """,
                (name, name)
            )
            return [row[0] for row in cursor]

    def find_by_path(self, fragment: str, exact: bool = False) -> List[FileMatch]:
        """
        Packages owning a path equal to (exact) or ending with the fragment.

        The fragment is normalized to a single leading '/'. Only the
        priority-resolved row of each package name is considered.
        """
        normalized = "/" + fragment.lstrip("/")

        if exact:
            condition = "f.path = ?"
            params: tuple = (normalized[1:],)
        else:
            prefix = normalized[::-1]
            condition = "f.reversed_path >= ? AND f.reversed_path < ?"
            params = (prefix, prefix + _MAX_CHAR)

        conn = self._get_connection()
        with self._db_errors("find by path"):
            cursor = conn.execute(
                f"""
                SELECT d.name, d.version, d.description, d.repository, d.files_indexed,
                       '/' || f.path AS full_path
                FROM files AS f
                JOIN descriptors AS d
                  ON f.package_name = d.name AND f.repository = d.repository
                WHERE {condition}
                AND d.repository = (
                    SELECT d2.repository FROM descriptors AS d2
                    WHERE d2.name = d.name
                    ORDER BY {self._priority_order("d2.repository")}
                    LIMIT 1
                )
                ORDER BY d.name, f.path
                """,
                params
            )
            return [
                FileMatch(descriptor=_row_to_descriptor(row), path=row["full_path"])
                for row in cursor
            ]

    def distinct_names(self) -> Set[str]:
        """Lowercased package names across all repositories."""
        conn = self._get_connection()
        with self._db_errors("read names"):
            cursor = conn.execute("SELECT DISTINCT name FROM descriptors")
            return {row[0].lower() for row in cursor}

    def select_candidates(self, terms: Iterable[str]) -> List[PackageDescriptor]:
        """
        Descriptors whose lowercased name or description contains any term.

        Among the matching rows, one per package name is kept, chosen by
        repository priority. Terms are always bound as parameters.
        """
        terms = sorted(set(terms))
        if not terms:
            return []

        conn = self._get_connection()
        matched: Dict[str, PackageDescriptor] = {}
        batch_size = max(1, self.config.search_term_batch)

        for i in range(0, len(terms), batch_size):
            batch = terms[i:i + batch_size]
            where = " OR ".join(
                ["(instr(lower(name), ?) > 0 OR instr(lower(description), ?) > 0)"] * len(batch)
            )
            params = [value for term in batch for value in (term, term)]

            with self._db_errors("select candidates"):
                cursor = conn.execute(
                    f"SELECT {_DESCRIPTOR_COLUMNS} FROM descriptors WHERE {where}",
                    params
                )
                for row in cursor:
                    descriptor = _row_to_descriptor(row)
                    current = matched.get(descriptor.name)
                    if current is None or (
                        self.config.priority_key(descriptor.repository)
                        < self.config.priority_key(current.repository)
                    ):
                        matched[descriptor.name] = descriptor

        return [matched[name] for name in sorted(matched)]

    def package_count(self) -> int:
        conn = self._get_connection()
        with self._db_errors("count packages"):
            return conn.execute("SELECT COUNT(*) FROM descriptors").fetchone()[0]

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self._get_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
