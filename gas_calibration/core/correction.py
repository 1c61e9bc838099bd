"""Apply drift fits and screen the corrected rows against tolerances."""

import logging
from datetime import timedelta
from typing import Optional

import numpy as np
import pandas as pd

from .reference import ReferenceMatrices
from .regression import DriftFit

logger = logging.getLogger(__name__)


def _row_max(values: np.ndarray) -> np.ndarray:
    """Row-wise max ignoring NaN; all-NaN rows give NaN."""
    filled = np.where(np.isnan(values), -np.inf, values)
    out = filled.max(axis=1) if values.shape[1] else np.full(values.shape[0], -np.inf)
    return np.where(np.isneginf(out), np.nan, out)


def apply_correction(raw, fit: DriftFit) -> np.ndarray:
    """Corrected values ``(raw - b) / m``; NaN wherever no fit exists."""
    raw = np.asarray(raw, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        cal = (raw - fit.b) / fit.m
    cal[~np.isfinite(cal)] = np.nan
    return cal


def reference_deviation(refs: ReferenceMatrices, fit: DriftFit) -> np.ndarray:
    """
    Worst percent deviation of the corrected references from their known values.

    Each bracketing reference of a row is corrected with that row's own fit
    and compared with its known concentration. Standards with a known value
    of zero are skipped since a relative deviation is undefined for them.
    """
    with np.errstate(divide='ignore', invalid='ignore'):
        ref_cal = (refs.measured - fit.b[:, None]) / fit.m[:, None]
        dev = np.abs(ref_cal - refs.known) / np.abs(refs.known) * 100.0
    dev[~np.isfinite(dev)] = np.nan
    return _row_max(dev)


def time_since_reference(refs: ReferenceMatrices, times) -> np.ndarray:
    """Elapsed time from the most recent real reference measurement used by each row."""
    times = np.asarray(times, dtype=float)
    if refs.last_anchor_time is None:
        raise ValueError("Reference matrices have not been interpolated")
    return times - _row_max(refs.last_anchor_time)


def tolerance_seconds(dt_tol) -> Optional[float]:
    """Normalize a ``dt_tol`` given as a number or a timedelta to seconds."""
    if dt_tol is None:
        return None
    if isinstance(dt_tol, (timedelta, np.timedelta64, pd.Timedelta)):
        return float(pd.Timedelta(dt_tol).total_seconds())
    return float(dt_tol)


def apply_tolerances(keep, deviation, elapsed,
                     er_tol: Optional[float] = None,
                     dt_tol: Optional[float] = None) -> np.ndarray:
    """
    Narrow the ``keep`` mask to rows within both tolerances.

    Args:
        keep: Boolean mask of rows eligible for output
        deviation: Percent deviation per row (see ``reference_deviation``)
        elapsed: Seconds since the last real reference (see ``time_since_reference``)
        er_tol: Maximum percent deviation, None for unbounded
        dt_tol: Maximum elapsed seconds, None for unbounded

    Returns:
        np.ndarray: Updated boolean mask
    """
    keep = np.asarray(keep, dtype=bool).copy()
    deviation = np.asarray(deviation, dtype=float)
    elapsed = np.asarray(elapsed, dtype=float)

    if er_tol is not None:
        if er_tol < 0:
            raise ValueError(f"er_tol must be non-negative, got {er_tol}")
        # NaN deviations (undefined fits) never exceed the bound
        bad = keep & (deviation > er_tol)
        logger.info(f"er_tol={er_tol}%: removing {int(bad.sum())} rows")
        keep &= ~bad

    if dt_tol is not None:
        if dt_tol < 0:
            raise ValueError(f"dt_tol must be non-negative, got {dt_tol}")
        bad = keep & (elapsed > dt_tol)
        logger.info(f"dt_tol={dt_tol}s: removing {int(bad.sum())} rows")
        keep &= ~bad

    return keep
