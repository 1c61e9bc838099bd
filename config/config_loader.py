import copy
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

# Fallbacks for keys a user config leaves out
DEFAULT_CONFIG: Dict[str, Any] = {
    'calibration': {
        'atmosphere_flag': -10,
        'flush_flag': -99,
        'er_tol': None,
        'dt_tol': None,
    },
    'data': {
        'columns': {'time': 'time', 'raw': 'gasm', 'flag': 'gask'},
        'time_format': None,
        'sep': ',',
    },
    'export': {'sep': ',', 'na_rep': 'NA'},
    'logging': {'level': 'INFO'},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` onto a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load a calibration config and fill unset keys from ``DEFAULT_CONFIG``.

    Args:
        config_path: YAML file to read. If None, the `config.yaml` shipped
                     next to this module is used.

    Returns:
        Settings dict with ``calibration``, ``data``, ``export`` and
        ``logging`` sections always present.
    """
    path = Path(config_path) if config_path is not None else Path(__file__).resolve().parent / "config.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found at: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        user = yaml.safe_load(f) or {}
    if not isinstance(user, dict):
        raise ValueError(f"Configuration in {path} must be a mapping, got {type(user).__name__}")

    return _merge(DEFAULT_CONFIG, user)


def apply_overrides(config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Set dotted keys (``calibration.er_tol``) on a nested config dict in place."""
    for key, value in overrides.items():
        if value is None:
            continue
        parts = key.split('.')
        node = config
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
    return config
