import argparse
import logging
import sys
from typing import List, Optional

import yaml

from config.config_loader import load_config, apply_overrides
from .calibrator import DriftCalibrator
from .data_loader import load_raw_log
from .exceptions import CalibrationError
from .io_utils import write_delimited

logger = logging.getLogger(__name__)


def _parse_overrides(pairs: List[str], parser: argparse.ArgumentParser):
    overrides = {}
    for pair in pairs:
        if '=' not in pair:
            parser.error(f"--set expects key=value, got '{pair}'")
        key, value = pair.split('=', 1)
        overrides[key.strip()] = yaml.safe_load(value)
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Drift calibration of a gas sensor log: segment → interpolate standards → fit → correct"
    )
    parser.add_argument("--data", required=True, help="Raw log CSV with time, measured value and flag columns")
    parser.add_argument("--out", default="", help="Output path for calibrated data (default: standard output)")
    parser.add_argument("--er-tol", type=float, default=None, dest="er_tol",
                        help="Maximum percent deviation of corrected references from known values")
    parser.add_argument("--dt-tol", type=float, default=None, dest="dt_tol",
                        help="Maximum seconds since the last real reference measurement")
    parser.add_argument("--sep", default=None, help="Output field separator")
    parser.add_argument("--config", default=None, help="Path to a YAML configuration file")
    parser.add_argument("--set", action="append", default=[], dest="overrides", metavar="KEY=VALUE",
                        help="Override a config value with a dotted key, e.g. calibration.flush_flag=-98")
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, ...)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    apply_overrides(config, _parse_overrides(args.overrides, parser))
    apply_overrides(config, {
        'calibration.er_tol': args.er_tol,
        'calibration.dt_tol': args.dt_tol,
        'export.sep': args.sep,
        'logging.level': args.log_level,
    })

    level = str(config.get('logging', {}).get('level', 'INFO')).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                        stream=sys.stderr)

    data_cfg = config.get('data', {})
    export_cfg = config.get('export', {})
    try:
        log = load_raw_log(args.data,
                           columns=data_cfg.get('columns'),
                           time_format=data_cfg.get('time_format'),
                           sep=data_cfg.get('sep', ','))
        calibrator = DriftCalibrator(config)
        result = calibrator.calibrate_frame(log)
    except CalibrationError as e:
        logger.error(f"Calibration failed: {e}")
        return 2

    write_delimited(result, args.out,
                    sep=export_cfg.get('sep', ','),
                    na_rep=export_cfg.get('na_rep', 'NA'))

    stats = calibrator.summary()
    print("\nCalibration summary", file=sys.stderr)
    print("-------------------", file=sys.stderr)
    for k, v in stats.items():
        print(f"{k}: {v}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
