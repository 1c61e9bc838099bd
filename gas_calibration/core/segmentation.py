"""Run-length segmentation of the flag stream and per-segment averaging."""

import logging
from dataclasses import dataclass
from typing import List

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class Run:
    """A maximal contiguous block of observations sharing one flag."""
    flag: float
    start_index: int
    length: int


def _run_starts(flags: np.ndarray) -> np.ndarray:
    """Boolean mask marking the first observation of every run."""
    starts = np.ones(flags.size, dtype=bool)
    if flags.size > 1:
        prev, cur = flags[:-1], flags[1:]
        same = (prev == cur) | (np.isnan(prev) & np.isnan(cur))
        starts[1:] = ~same
    return starts


def run_length_ids(flags) -> np.ndarray:
    """
    Assign a segment id to every observation.

    Ids start at 0, stay constant over each maximal run of equal flags and
    increase by one at every flag change. Adjacent NaN flags share a run.

    Args:
        flags: Sequence of flag values (length N)

    Returns:
        np.ndarray: Integer segment ids (length N)
    """
    flags = np.asarray(flags, dtype=float)
    if flags.size == 0:
        return np.empty(0, dtype=np.int64)
    return np.cumsum(_run_starts(flags)).astype(np.int64) - 1


def find_runs(flags) -> List[Run]:
    """Return the runs of ``flags`` in order."""
    flags = np.asarray(flags, dtype=float)
    if flags.size == 0:
        return []
    start_idx = np.flatnonzero(_run_starts(flags))
    lengths = np.diff(np.append(start_idx, flags.size))
    return [Run(flag=float(flags[s]), start_index=int(s), length=int(n))
            for s, n in zip(start_idx, lengths)]


def segment_means(segment_ids, values) -> np.ndarray:
    """
    Broadcast each segment's mean value back onto its observations.

    NaN values are ignored; a segment with no finite value gets NaN.

    Args:
        segment_ids: Output of :func:`run_length_ids`
        values: Measured values, same length as ``segment_ids``

    Returns:
        np.ndarray: Per-observation segment mean
    """
    ids = np.asarray(segment_ids, dtype=np.int64)
    values = np.asarray(values, dtype=float)
    if ids.size == 0:
        return np.empty(0, dtype=float)

    valid = ~np.isnan(values)
    n_seg = int(ids.max()) + 1
    sums = np.bincount(ids[valid], weights=values[valid], minlength=n_seg)
    counts = np.bincount(ids[valid], minlength=n_seg)

    means = np.full(n_seg, np.nan)
    has_data = counts > 0
    means[has_data] = sums[has_data] / counts[has_data]
    logger.debug(f"Averaged {n_seg} segments ({int((~has_data).sum())} without data)")
    return means[ids]
