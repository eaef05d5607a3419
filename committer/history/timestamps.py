"""
Timestamp Kernel: Vectorized per-index date and content assignment.

For entry i (1-based) with P entries per day:

    day_index  = (i - 1) // P
    day_start  = run_start + day_index * 86400
    P > 1:     offset = ((i - 1) % P) * 86400 / P  +  uniform(-1800, 1800)
    P == 1:    offset = uniform(0, 86400)
    timestamp  = clamp(day_start + floor(offset), day_start, day_start + 86399)
    selector   = i % K

Runs inside worker processes, so everything here is a pure function of
its arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from committer.core.types import IndexRange
from committer.core import constants as C


@dataclass(frozen=True)
class EntryArrays:
    """Column-wise entry specs for one sub-range."""
    indices: np.ndarray
    timestamps: np.ndarray
    selectors: np.ndarray

    def __len__(self) -> int:
        return int(self.indices.shape[0])

    def records(self) -> list[str]:
        """Spool lines: index|epoch|selector."""
        sep = C.SPOOL_FIELD_SEPARATOR
        return [
            f"{i}{sep}{t}{sep}{s}"
            for i, t, s in zip(
                self.indices.tolist(),
                self.timestamps.tolist(),
                self.selectors.tolist(),
            )
        ]


def job_seed(
    run_seed: Optional[int],
    worker_id: int,
    batch_start: int,
) -> Optional[Sequence[int]]:
    """Seed material for one job; None draws fresh OS entropy."""
    if run_seed is None:
        return None
    return [run_seed, batch_start, worker_id]


def day_starts(
    indices: np.ndarray,
    run_start: int,
    commits_per_day: int,
) -> np.ndarray:
    return run_start + ((indices - 1) // commits_per_day) * C.SECONDS_PER_DAY


def compute_entries(
    index_range: IndexRange,
    run_start: int,
    commits_per_day: int,
    seed: Optional[Sequence[int]] = None,
    modulus: int = C.CONTENT_MODULUS,
) -> EntryArrays:
    """
    Compute (index, timestamp, selector) for every index in range.

    Args:
        index_range: Inclusive sub-range of entry indices
        run_start: Epoch seconds of the first day's midnight
        commits_per_day: Entries per day (clamped to >= 1)
        seed: Seed material for the jitter stream
        modulus: Number of distinct content values
    """
    commits_per_day = max(1, commits_per_day)
    rng = np.random.default_rng(seed)

    indices = np.arange(index_range.start, index_range.end + 1, dtype=np.int64)
    starts = day_starts(indices, run_start, commits_per_day)

    if commits_per_day > 1:
        position = (indices - 1) % commits_per_day
        spacing = position * (C.SECONDS_PER_DAY / commits_per_day)
        jitter = (rng.random(indices.shape[0]) - 0.5) * C.JITTER_WINDOW_SECONDS
        offsets = spacing + jitter
    else:
        offsets = rng.random(indices.shape[0]) * C.SECONDS_PER_DAY

    timestamps = starts + np.floor(offsets).astype(np.int64)
    timestamps = np.clip(timestamps, starts, starts + C.SECONDS_PER_DAY - 1)

    return EntryArrays(
        indices=indices,
        timestamps=timestamps,
        selectors=indices % modulus,
    )
