"""
Progress - Thread-safe progress aggregation for cache updates.

A single counter spans both archive passes of every repository. The
rendering style is handed in by the caller, no module-level style state.
"""

import logging
import threading

from tqdm import tqdm

from .config import ProgressStyle


logger = logging.getLogger(__name__)


class ProgressReporter:
    """
    Monotonic progress counter with an optional tqdm bar.

    Purely observational: nothing in the update reads it back to make
    decisions.
    """

    def __init__(
        self,
        total: int,
        style: ProgressStyle | None = None,
        enabled: bool = True,
    ):
        self.total = total
        self.style = style or ProgressStyle()
        self._count = 0
        self._lock = threading.Lock()
        self._bar = tqdm(
            total=total,
            desc="caching",
            unit=self.style.unit,
            bar_format=self.style.bar_format,
            ascii=self.style.ascii,
            colour=self.style.colour,
            disable=not enabled,
            leave=True,
        )

    @property
    def count(self) -> int:
        return self._count

    def advance(self, n: int = 1) -> None:
        """Add n processed entries."""
        with self._lock:
            self._count += n
            self._bar.update(n)

    def describe(self, text: str) -> None:
        """Change the label shown next to the bar."""
        with self._lock:
            self._bar.set_description_str(text, refresh=False)

    def fail(self, text: str) -> None:
        """Mark the current unit of work as failed."""
        with self._lock:
            self._bar.colour = self.style.failed_colour
            self._bar.set_description_str(f"{text} [FAILED]", refresh=True)

    def close(self) -> None:
        with self._lock:
            self._bar.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
