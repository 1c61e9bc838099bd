"""Per-observation linear drift fits against the interpolated references."""

import logging
from dataclasses import dataclass

import numpy as np

from .reference import ReferenceMatrices

logger = logging.getLogger(__name__)


@dataclass
class DriftFit:
    """Row-wise fit parameters, parallel to the observations.

    ``m`` and ``b`` follow ``measured = m * known + b``. Rows without any
    available standard have ``n == 0`` and NaN parameters.
    """
    m: np.ndarray
    b: np.ndarray
    n: np.ndarray
    r_sq: np.ndarray

    @property
    def fitted(self) -> np.ndarray:
        """Rows with at least one standard available."""
        return self.n > 0

    @property
    def degenerate(self) -> np.ndarray:
        """Rows that had standards but ended with an undefined fit."""
        return self.fitted & ~(np.isfinite(self.m) & np.isfinite(self.b))


def fit_drift(refs: ReferenceMatrices, rows) -> DriftFit:
    """
    Fit slope and intercept for every selected row independently.

    With two or more standards the closed-form ordinary least squares
    solution over the (known, measured) pairs is used. A single standard
    cannot determine both parameters, so that case uses ``m = known /
    measured`` and ``b = 0`` with an undefined ``r_sq``. A zero regression
    denominator gives NaN instead of raising.

    Args:
        refs: Interpolated reference matrices
        rows: Boolean mask of rows to fit (the atmospheric observations)

    Returns:
        DriftFit with one entry per observation
    """
    rows = np.asarray(rows, dtype=bool)
    defined = ~np.isnan(refs.measured) & ~np.isnan(refs.known) & rows[:, None]

    x = np.where(defined, refs.known, 0.0)
    y = np.where(defined, refs.measured, 0.0)
    n = defined.sum(axis=1)

    sx = x.sum(axis=1)
    sy = y.sum(axis=1)
    sxy = (x * y).sum(axis=1)
    sxx = (x * x).sum(axis=1)
    syy = (y * y).sum(axis=1)

    m = np.full(n.shape, np.nan)
    b = np.full(n.shape, np.nan)
    r_sq = np.full(n.shape, np.nan)

    with np.errstate(divide='ignore', invalid='ignore'):
        single = n == 1
        m[single] = sx[single] / sy[single]
        b[single] = 0.0

        multi = n >= 2
        nm = n[multi]
        den = nm * sxx[multi] - sx[multi] ** 2
        cov = nm * sxy[multi] - sx[multi] * sy[multi]
        m[multi] = np.where(den != 0, cov / den, np.nan)
        b[multi] = np.where(den != 0, (sxx[multi] * sy[multi] - sx[multi] * sxy[multi]) / den, np.nan)
        r_den = den * (nm * syy[multi] - sy[multi] ** 2)
        r_sq[multi] = np.where(r_den != 0, cov ** 2 / r_den, np.nan)

    m[~np.isfinite(m)] = np.nan
    b[~np.isfinite(b)] = np.nan

    fit = DriftFit(m=m, b=b, n=n.astype(np.int64), r_sq=r_sq)
    logger.debug(f"Fitted {int(fit.fitted.sum())} rows "
                 f"({int(single.sum())} single-standard, {int(multi.sum())} OLS)")
    n_degenerate = int(fit.degenerate.sum())
    if n_degenerate:
        logger.info(f"{n_degenerate} rows have a degenerate drift fit")
    return fit
