"""End-to-end drift calibration of a flagged measurement stream.

segment -> average -> reference matrices -> interpolate -> fit -> correct -> screen
"""

import logging
from typing import Any, Dict, Optional, Tuple

import numpy as np
import pandas as pd

from config.config_loader import load_config
from ..exceptions import MalformedInput
from .segmentation import run_length_ids, segment_means
from .reference import (
    ATMOSPHERE_FLAG,
    FLUSH_FLAG,
    find_standards,
    build_reference_matrices,
)
from .interpolation import interpolate_references
from .regression import fit_drift
from .correction import (
    apply_correction,
    apply_tolerances,
    reference_deviation,
    time_since_reference,
    tolerance_seconds,
)

CONFIG = load_config()

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = ['time', 'cal', 'raw', 'm', 'b', 'n', 'r_sq']


def _calibration_settings(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    cfg = config if config is not None else CONFIG
    return (cfg or {}).get('calibration', {}) or {}


def _sentinel(settings: Dict[str, Any], key: str, default: float) -> float:
    """Configured flag sentinel; unset or null falls back to ``default``."""
    value = settings.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"calibration.{key} must be numeric, got {value!r}") from e


def _time_to_seconds(time: pd.Series) -> np.ndarray:
    """Float seconds for numeric, datetime64 or Timestamp time axes."""
    if pd.api.types.is_numeric_dtype(time) and not pd.api.types.is_bool_dtype(time):
        return time.to_numpy(dtype=float)
    try:
        stamps = pd.to_datetime(time, utc=True)
    except (TypeError, ValueError) as e:
        raise MalformedInput(f"Unsupported time values: {e}") from e
    return (stamps - pd.Timestamp(0, tz='UTC')).dt.total_seconds().to_numpy(dtype=float)


def validate_inputs(time, raw, flag) -> Tuple[pd.Series, np.ndarray, np.ndarray, np.ndarray]:
    """
    Check and normalize the three input vectors.

    Returns:
        (time as Series, time in float seconds, raw as float, flag as float)

    Raises:
        MalformedInput: On unequal lengths, non-numeric values, missing or
            decreasing timestamps
    """
    time_s = pd.Series(time).reset_index(drop=True)
    try:
        raw = np.asarray(raw, dtype=float)
        flag = np.asarray(flag, dtype=float)
    except (TypeError, ValueError) as e:
        raise MalformedInput(f"raw and flag must be numeric: {e}") from e

    if raw.ndim != 1 or flag.ndim != 1:
        raise MalformedInput("raw and flag must be one-dimensional")
    if not (len(time_s) == raw.size == flag.size):
        raise MalformedInput(
            f"Input lengths differ: time={len(time_s)}, raw={raw.size}, flag={flag.size}")

    seconds = _time_to_seconds(time_s)
    if np.isnan(seconds).any():
        raise MalformedInput("time contains missing values")
    if np.any(np.diff(seconds) < 0):
        raise MalformedInput("time must be non-decreasing")

    return time_s, seconds, raw, flag


def calibrate(time, raw, flag,
              er_tol: Optional[float] = None,
              dt_tol=None,
              config: Optional[Dict[str, Any]] = None) -> pd.DataFrame:
    """
    Correct atmospheric readings for drift using interleaved standard gases.

    Args:
        time: Non-decreasing timestamps (numeric seconds or datetimes)
        raw: Measured values (``gasm``)
        flag: Source codes (``gask``): the atmosphere sentinel, the flush
              sentinel, or the known value of the standard being sampled
        er_tol: Maximum percent deviation of the corrected references from
                their known values; rows beyond it are removed
        dt_tol: Maximum time since the last real reference measurement, in
                seconds or as a timedelta; rows beyond it are removed
        config: Configuration dict; defaults to the module level ``CONFIG``

    Returns:
        pd.DataFrame: Columns ``time, cal, raw, m, b, n, r_sq``, one row per
        calibrated atmospheric observation in input order

    Raises:
        MalformedInput: If the inputs are inconsistent
        NoReferenceData: If no standard gas was ever measured
    """
    settings = _calibration_settings(config)
    atmosphere_flag = _sentinel(settings, 'atmosphere_flag', ATMOSPHERE_FLAG)
    flush_flag = _sentinel(settings, 'flush_flag', FLUSH_FLAG)
    if er_tol is None:
        er_tol = settings.get('er_tol')
    if dt_tol is None:
        dt_tol = settings.get('dt_tol')
    dt_tol = tolerance_seconds(dt_tol)

    time_s, seconds, raw, flag = validate_inputs(time, raw, flag)

    seg_ids = run_length_ids(flag)
    seg_mean = segment_means(seg_ids, raw)

    standards = find_standards(flag, atmosphere_flag, flush_flag)
    refs = build_reference_matrices(flag, seg_mean, standards)
    logger.info(f"Calibrating {raw.size} observations against {standards.size} standards "
                f"({int(seg_ids[-1]) + 1} segments)")

    atmos = flag == atmosphere_flag
    refs = interpolate_references(refs, seconds, atmos)
    fit = fit_drift(refs, atmos)
    cal = apply_correction(raw, fit)

    keep = atmos & fit.fitted
    n_gaps = int((atmos & ~fit.fitted).sum())
    if n_gaps:
        logger.info(f"{n_gaps} atmospheric rows are not bracketed by any standard")

    keep = apply_tolerances(keep,
                            reference_deviation(refs, fit),
                            time_since_reference(refs, seconds),
                            er_tol=er_tol, dt_tol=dt_tol)

    result = pd.DataFrame({
        'time': time_s[keep].reset_index(drop=True),
        'cal': cal[keep],
        'raw': raw[keep],
        'm': fit.m[keep],
        'b': fit.b[keep],
        'n': fit.n[keep],
        'r_sq': fit.r_sq[keep],
    }, columns=OUTPUT_COLUMNS)
    logger.info(f"Calibrated {len(result)} of {int(atmos.sum())} atmospheric observations")
    return result
