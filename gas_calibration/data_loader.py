import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, Optional, Tuple, Union
import logging
from config.config_loader import load_config

# Load configuration
config = load_config()

# Set up logging
logger = logging.getLogger(__name__)

STANDARD_COLUMNS = ('time', 'raw', 'flag')


def standardize_columns(data: pd.DataFrame,
                        columns: Optional[Dict[str, str]] = None) -> pd.DataFrame:
    """
    Rename instrument columns to ``time``, ``raw`` and ``flag``.

    Args:
        data: Raw log table
        columns: Mapping of standard name -> column name in ``data``

    Returns:
        pd.DataFrame: Copy with the three standard columns
    """
    if columns is None:
        columns = config['data']['columns']
    rename = {src: std for std, src in columns.items() if src in data.columns and src != std}
    frame = data.rename(columns=rename)
    missing = [c for c in STANDARD_COLUMNS if c not in frame.columns]
    if missing:
        raise KeyError(f"Missing columns {missing}; available: {list(data.columns)}")
    return frame


def load_raw_log(file_path: Union[str, Path],
                 columns: Optional[Dict[str, str]] = None,
                 time_format: Optional[str] = config['data']['time_format'],
                 sep: str = config['data']['sep'],
                 **kwargs) -> pd.DataFrame:
    """
    Load a raw sensor log with time, measured value and flag columns.

    Args:
        file_path: Path to the delimited log file
        columns: Mapping of standard name -> column name in the file
        time_format: Format passed to pd.to_datetime for non-numeric times
        sep: Field separator
        **kwargs: Additional arguments to pass to pd.read_csv

    Returns:
        pd.DataFrame: Log with columns ['time', 'raw', 'flag']
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise FileNotFoundError(f"Raw log not found: {file_path}")

    try:
        data = pd.read_csv(file_path, sep=sep, **kwargs)
        data = standardize_columns(data, columns)
        if not pd.api.types.is_numeric_dtype(data['time']):
            data['time'] = pd.to_datetime(data['time'], format=time_format)
        logger.info(f"Successfully loaded {len(data)} rows from {file_path}")
        return data[list(STANDARD_COLUMNS)]
    except Exception as e:
        logger.error(f"Error loading raw log from {file_path}: {str(e)}")
        raise


def split_vectors(data: pd.DataFrame) -> Tuple[pd.Series, np.ndarray, np.ndarray]:
    """Return (time, raw, flag) from a standardized log."""
    return (data['time'].reset_index(drop=True),
            data['raw'].to_numpy(dtype=float),
            data['flag'].to_numpy(dtype=float))
