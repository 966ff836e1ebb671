from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

Used by the CLI to show rows flowing through the batch inserter. In
non-TTY environments (CI, piped output) the bar is disabled to avoid ANSI
control sequence spam; the SUMMARY line is printed either way.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Row-level progress bar fed by batch_insert's on_batch hook."""

    def __init__(
        self, total_rows: int | None = None, *, description: str = "Importing assets"
    ) -> None:
        """total_rows may be None when the row count is not known up front."""
        self.total_rows = total_rows
        self.description = description
        self.processed = 0
        self.failed = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def on_batch(self, rows_in_batch: int, failed_in_batch: int) -> None:
        """Advance by one finished batch."""
        self.processed += rows_in_batch
        self.failed += failed_in_batch
        if self.pbar is not None:
            self.pbar.update(rows_in_batch)
            self.pbar.set_postfix(failed=self.failed)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
