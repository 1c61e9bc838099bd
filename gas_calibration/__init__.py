"""
Gas Drift Calibration Package
-------------------
Corrects gas sensor readings for instrument drift using interleaved
reference (standard) gas measurements.
"""

__version__ = "1.0.0"

# Import key components for easier access
from .exceptions import CalibrationError, NoReferenceData, MalformedInput
from .core.pipeline import calibrate
from .calibrator import DriftCalibrator
from .io_utils import write_delimited, pickle2csv

__all__ = [
    'calibrate',
    'DriftCalibrator',
    'CalibrationError',
    'NoReferenceData',
    'MalformedInput',
    'write_delimited',
    'pickle2csv',
]
