"""Standard gas detection and the [observation x standard] reference matrices."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..exceptions import NoReferenceData

logger = logging.getLogger(__name__)

ATMOSPHERE_FLAG = -10.0
FLUSH_FLAG = -99.0


@dataclass
class ReferenceMatrices:
    """Parallel measured/known reference tables.

    ``measured`` and ``known`` have shape (n_obs, n_standards) with NaN in
    every cell where that standard is not available. ``anchors`` marks the
    cells holding a real (not interpolated) measurement. ``last_anchor_time``
    is filled in by interpolation.
    """
    standards: np.ndarray
    measured: np.ndarray
    known: np.ndarray
    anchors: np.ndarray
    last_anchor_time: Optional[np.ndarray] = None

    @property
    def n_standards(self) -> int:
        return int(self.standards.size)


def find_standards(flags,
                   atmosphere_flag: float = ATMOSPHERE_FLAG,
                   flush_flag: float = FLUSH_FLAG) -> np.ndarray:
    """
    Distinct standard gas values in the stream, ascending.

    Every finite flag that is neither the atmosphere nor the flush sentinel is
    the known concentration of a standard. The column index of a standard in
    the reference matrices is its position in the returned array.
    """
    flags = np.asarray(flags, dtype=float)
    is_std = np.isfinite(flags) & (flags != atmosphere_flag) & (flags != flush_flag)
    return np.unique(flags[is_std])


def build_reference_matrices(flags, seg_means, standards) -> ReferenceMatrices:
    """
    Populate the measured/known matrices from segment-averaged readings.

    Args:
        flags: Flag per observation
        seg_means: Segment mean per observation (see ``segment_means``)
        standards: Known values of the standards (see ``find_standards``)

    Returns:
        ReferenceMatrices with cells defined only where the standard was sampled

    Raises:
        NoReferenceData: If there are no standards at all
    """
    flags = np.asarray(flags, dtype=float)
    seg_means = np.asarray(seg_means, dtype=float)
    standards = np.asarray(standards, dtype=float)

    if standards.size == 0:
        raise NoReferenceData("No reference gas observations found; cannot calibrate")

    sampled = flags[:, None] == standards[None, :]
    # A segment without any finite reading is not a measurement
    anchors = sampled & ~np.isnan(seg_means)[:, None]

    measured = np.where(anchors, seg_means[:, None], np.nan)
    known = np.where(anchors, standards[None, :], np.nan)

    empty = standards[~anchors.any(axis=0)]
    if empty.size:
        logger.warning(f"Standards with no usable readings: {empty.tolist()}")
    logger.debug(f"Reference matrices built: {measured.shape[0]} rows x {standards.size} standards")

    return ReferenceMatrices(standards=standards, measured=measured,
                             known=known, anchors=anchors)
