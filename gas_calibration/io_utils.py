"""
Delimited text export of in-memory tables.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import pandas as pd

logger = logging.getLogger(__name__)


def write_delimited(table, file: Union[str, Path, object] = '', sep: str = ',',
                    **kwargs) -> Optional[Path]:
    """
    Write a table as delimited text.

    Parameters
    ----------
    table : pd.DataFrame or anything pd.DataFrame accepts
        Table to serialize
    file : str, Path or writable object
        Destination. An empty string writes to standard output.
    sep : str
        Field separator
    **kwargs
        Passed through to ``DataFrame.to_csv`` (``float_format``, ...).
        Missing values are written as ``NA`` unless ``na_rep`` is given.

    Returns
    -------
    Path or None
        Path written, or None when writing to a stream
    """
    if not isinstance(table, pd.DataFrame):
        table = pd.DataFrame(table)
    kwargs.setdefault('index', False)
    kwargs.setdefault('na_rep', 'NA')

    if isinstance(file, str) and file == '':
        table.to_csv(sys.stdout, sep=sep, **kwargs)
        return None
    if isinstance(file, (str, Path)):
        path = Path(file)
        path.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(path, sep=sep, **kwargs)
        logger.info(f"Wrote {len(table)} rows to {path}")
        return path

    table.to_csv(file, sep=sep, **kwargs)
    return None


def pickle2csv(source: Union[str, Path], file: Union[str, Path, object] = '',
               sep: str = ',', **kwargs) -> Optional[Path]:
    """
    Convert a pickled pandas table to delimited text.

    Parameters
    ----------
    source : str or Path
        Path to a file written with ``DataFrame.to_pickle``
    file, sep, **kwargs
        As for :func:`write_delimited`
    """
    source = Path(source)
    if not source.is_file():
        raise FileNotFoundError(f"Pickled table not found: {source}")
    table = pd.read_pickle(source)
    return write_delimited(table, file, sep=sep, **kwargs)
