"""
Test Configuration - Shared fixtures for repository index tests.

Uses pytest fixtures to create isolated sync directories and caches.
"""

import io
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, List

import pytest

from repoindex.config import IndexerConfig, set_config


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="repoindex_test_")
    # Resolve to handle macOS /var -> /private/var symlink
    resolved = Path(tmp).resolve()
    yield resolved
    shutil.rmtree(str(resolved), ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> IndexerConfig:
    """Create an isolated test configuration."""
    sync_dir = temp_dir / "sync"
    sync_dir.mkdir()

    config = IndexerConfig(
        db_path=temp_dir / "cache" / "test.sqlite",
        sync_dir=sync_dir,
        repositories=["core", "extra"],
        db_batch_size=2,
        hasher_concurrency=2,
        show_progress=False,
        debounce_ms=50,
    )
    set_config(config)
    return config


def _add_member(archive: tarfile.TarFile, name: str, data: bytes | None = None):
    info = tarfile.TarInfo(name)
    info.mtime = 1700000000
    if data is None:
        info.type = tarfile.DIRTYPE
        info.mode = 0o755
        archive.addfile(info)
    else:
        info.size = len(data)
        info.mode = 0o644
        archive.addfile(info, io.BytesIO(data))


def desc_text(name: str, version: str, description: str = "") -> str:
    """Render a desc entry the way repository tools write it."""
    text = f"%FILENAME%\n{name}-{version}-x86_64.pkg.tar.zst\n\n"
    text += f"%NAME%\n{name}\n\n%VERSION%\n{version}\n\n"
    if description:
        text += f"%DESC%\n{description}\n\n"
    text += "%ARCH%\nx86_64\n"
    return text


def files_text(paths: List[str]) -> str:
    """Render a files entry (header line then one path per line)."""
    return "%FILES%\n" + "".join(f"{p}\n" for p in paths)


@pytest.fixture
def make_archive(test_config: IndexerConfig) -> Callable[..., Path]:
    """
    Build a <repository>.files archive in the sync directory.

    Each package is a dict with name, version and optionally desc,
    files, desc_raw (raw desc text) and omit_desc/omit_files flags.
    """
    def _make(repository: str, packages: List[Dict], directory: Path | None = None) -> Path:
        directory = directory or test_config.sync_dir
        path = directory / f"{repository}{test_config.archive_suffix}"

        with tarfile.open(str(path), "w:gz") as archive:
            for pkg in packages:
                identifier = f"{pkg['name']}-{pkg['version']}"
                _add_member(archive, f"{identifier}/")

                if not pkg.get("omit_desc"):
                    raw = pkg.get("desc_raw")
                    if raw is None:
                        raw = desc_text(pkg["name"], pkg["version"], pkg.get("desc", ""))
                    _add_member(archive, f"{identifier}/desc", raw.encode("utf-8"))

                if not pkg.get("omit_files"):
                    content = files_text(pkg.get("files", []))
                    _add_member(archive, f"{identifier}/files", content.encode("utf-8"))

        return path

    return _make


@pytest.fixture
def core_packages() -> List[Dict]:
    """A small core repository."""
    return [
        {
            "name": "gcc",
            "version": "14.1.1-1",
            "desc": "The GNU Compiler Collection - C and C++ frontends",
            "files": ["usr/", "usr/bin/", "usr/bin/gcc", "usr/bin/gcc-ar", "usr/lib/libgcc_s.so"],
        },
        {
            "name": "bash",
            "version": "5.2.026-2",
            "desc": "The GNU Bourne Again shell",
            "files": ["usr/", "usr/bin/", "usr/bin/bash", "usr/bin/sh"],
        },
    ]


@pytest.fixture
def extra_packages() -> List[Dict]:
    """A small extra repository."""
    return [
        {
            "name": "firefox",
            "version": "128.0-1",
            "desc": "Fast, Private & Safe Web Browser",
            "files": ["usr/", "usr/bin/", "usr/bin/firefox", "usr/lib/firefox/firefox"],
        },
        {
            "name": "chromium",
            "version": "126.0.6478.126-1",
            "desc": "A web browser built for speed, simplicity, and security",
            "files": ["usr/", "usr/bin/", "usr/bin/chromium"],
        },
    ]
