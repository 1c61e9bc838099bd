"""Time interpolation of the measured reference columns."""

import logging

import numpy as np
from scipy.interpolate import interp1d

from .reference import ReferenceMatrices

logger = logging.getLogger(__name__)


def _interpolate_column(t_anchor: np.ndarray, v_anchor: np.ndarray,
                        t_query: np.ndarray) -> np.ndarray:
    """Linear interpolation between bracketing anchors, NaN outside their range."""
    if t_anchor.size == 1:
        return np.where(t_query == t_anchor[0], v_anchor[0], np.nan)
    f = interp1d(t_anchor, v_anchor, kind='linear', bounds_error=False,
                 fill_value=np.nan, assume_sorted=True)
    return f(t_query)


def interpolate_references(refs: ReferenceMatrices, times, target) -> ReferenceMatrices:
    """
    Fill measured reference values for the target rows of every standard.

    Each standard column is handled independently. Target rows (the
    atmospheric observations) lying between the first and last real
    measurement of a standard receive a value interpolated from the two
    nearest anchors; rows outside that range stay undefined. The known matrix
    is then defined exactly where the measured one is.

    Args:
        refs: Output of ``build_reference_matrices``
        times: Observation times as float seconds, non-decreasing
        target: Boolean mask of rows to interpolate

    Returns:
        ReferenceMatrices: New matrices with ``last_anchor_time`` populated
    """
    times = np.asarray(times, dtype=float)
    target = np.asarray(target, dtype=bool)
    measured = refs.measured.copy()
    last_anchor_time = np.full(measured.shape, np.nan)

    for j in range(refs.n_standards):
        rows = np.flatnonzero(refs.anchors[:, j])
        if rows.size == 0:
            continue
        # Rows of the same segment share one value; keep one anchor per time
        t_anchor, first = np.unique(times[rows], return_index=True)
        v_anchor = refs.measured[rows[first], j]

        fill = target & np.isnan(measured[:, j])
        measured[fill, j] = _interpolate_column(t_anchor, v_anchor, times[fill])

        prev = np.searchsorted(t_anchor, times, side='right') - 1
        has_prev = prev >= 0
        last_anchor_time[has_prev, j] = t_anchor[prev[has_prev]]

        n_filled = int(np.count_nonzero(~np.isnan(measured[fill, j])))
        if n_filled == 0 and np.any(fill):
            logger.warning(f"Standard {refs.standards[j]:g} does not bracket any target observation")
        logger.debug(f"Standard {refs.standards[j]:g}: {rows.size} anchors, {n_filled} rows interpolated")

    defined = ~np.isnan(measured)
    known = np.where(defined, refs.standards[None, :], np.nan)
    last_anchor_time[~defined] = np.nan

    return ReferenceMatrices(standards=refs.standards, measured=measured,
                             known=known, anchors=refs.anchors.copy(),
                             last_anchor_time=last_anchor_time)
