"""
Config-driven front end to the calibration engine.
"""
from typing import Dict, Optional
import logging

import numpy as np
import pandas as pd

from config.config_loader import load_config
from .core.pipeline import calibrate
from .data_loader import split_vectors, standardize_columns

logger = logging.getLogger(__name__)


class DriftCalibrator:
    """Calibrates flagged gas measurement streams with configured tolerances."""

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize the calibrator.

        Args:
            config: Configuration dictionary
        """
        self.config = config or load_config()
        self.last_result: Optional[pd.DataFrame] = None

    @property
    def settings(self) -> Dict:
        return self.config.get('calibration', {}) if isinstance(self.config, dict) else {}

    def calibrate(self, time, raw, flag, er_tol: Optional[float] = None,
                  dt_tol=None) -> pd.DataFrame:
        """
        Calibrate three aligned vectors.

        Args:
            time: Observation timestamps
            raw: Measured values
            flag: Source flags
            er_tol: Percent deviation bound; None uses the configured value
            dt_tol: Staleness bound in seconds or a timedelta; None uses the configured value

        Returns:
            Calibrated observations
        """
        if er_tol is None:
            er_tol = self.settings.get('er_tol')
        if dt_tol is None:
            dt_tol = self.settings.get('dt_tol')
        self.last_result = calibrate(time, raw, flag, er_tol=er_tol,
                                     dt_tol=dt_tol, config=self.config)
        return self.last_result

    def calibrate_frame(self, data: pd.DataFrame, er_tol: Optional[float] = None,
                        dt_tol=None) -> pd.DataFrame:
        """Calibrate a DataFrame holding the configured time/raw/flag columns."""
        columns = self.config.get('data', {}).get('columns')
        frame = standardize_columns(data, columns)
        time, raw, flag = split_vectors(frame)
        return self.calibrate(time, raw, flag, er_tol=er_tol, dt_tol=dt_tol)

    def summary(self) -> Dict:
        """Fit diagnostics of the most recent calibration."""
        if self.last_result is None:
            raise RuntimeError("calibrate() has not been run")
        res = self.last_result
        r_sq = res['r_sq'].to_numpy(dtype=float)
        return {
            'n_calibrated': int(len(res)),
            'n_single_standard': int((res['n'] == 1).sum()),
            'mean_slope': float(np.nanmean(res['m'])) if len(res) else float('nan'),
            'mean_intercept': float(np.nanmean(res['b'])) if len(res) else float('nan'),
            'min_r_sq': float(np.nanmin(r_sq)) if np.isfinite(r_sq).any() else float('nan'),
        }
