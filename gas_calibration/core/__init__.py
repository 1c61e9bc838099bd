"""Core drift calibration engine.

Modules:
- segmentation: run-length segment ids and segment means
- reference: standard detection and reference matrices
- interpolation: time interpolation of reference columns
- regression: per-row drift fits
- correction: applying fits and tolerance screening
- pipeline: end-to-end calibrate()
"""

from .segmentation import Run, run_length_ids, find_runs, segment_means
from .reference import (
    ReferenceMatrices,
    find_standards,
    build_reference_matrices,
)
from .interpolation import interpolate_references
from .regression import DriftFit, fit_drift
from .correction import (
    apply_correction,
    apply_tolerances,
    reference_deviation,
    time_since_reference,
)
from .pipeline import calibrate, validate_inputs
