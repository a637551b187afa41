#!/usr/bin/env python3
"""
Metric bundle adjustment of BAL problem files
Refines cameras, views and points with the analytic Schur Jacobian
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from metricba.core.config import BundleAdjustmentConfig
from metricba.core.optimizer import MetricBundleAdjustment
from metricba.utils.io_utils import load_bal, save_bal, save_result_info

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Metric bundle adjustment for BAL problems")

    # Input/Output
    parser.add_argument(
        "--input", type=str, required=True, help="BAL problem file (.txt or .bz2)"
    )
    parser.add_argument(
        "--output", type=str, required=True, help="Where to write the refined BAL problem"
    )
    parser.add_argument(
        "--config", type=str, default=None, help="JSON file with a BundleAdjustmentConfig"
    )

    # Optimization
    parser.add_argument(
        "--method",
        type=str,
        choices=["trf", "dogbox", "lm"],
        default=None,
        help="least_squares method (default: from config, trf)",
    )
    parser.add_argument(
        "--loss",
        type=str,
        choices=["linear", "soft_l1", "huber", "cauchy", "arctan"],
        default=None,
        help="Robust loss (default: from config, linear)",
    )
    parser.add_argument(
        "--max_nfev", type=int, default=None, help="Maximum number of function evaluations"
    )
    parser.add_argument(
        "--rotation",
        type=str,
        choices=["rodrigues", "quaternion"],
        default=None,
        help="Rotation parameterization (default: from config, rodrigues)",
    )
    parser.add_argument(
        "--fix_first_view",
        action="store_true",
        help="Keep the first view and its camera fixed",
    )
    parser.add_argument(
        "--log_level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: from config, INFO)",
    )

    return parser.parse_args(argv)


def setup_logging(level: str):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_config(args) -> BundleAdjustmentConfig:
    """Config file first, then command line overrides"""
    config_dict = {}
    if args.config:
        with open(args.config) as f:
            config_dict = json.load(f)

    config_dict.setdefault("jacobian", {})
    config_dict.setdefault("optimizer", {})
    if args.rotation:
        config_dict["jacobian"]["rotation"] = args.rotation
    if args.method:
        config_dict["optimizer"]["method"] = args.method
    if args.loss:
        config_dict["optimizer"]["loss"] = args.loss
    if args.max_nfev is not None:
        config_dict["optimizer"]["max_nfev"] = args.max_nfev
    if args.log_level:
        config_dict["log_level"] = args.log_level

    return BundleAdjustmentConfig.from_dict(config_dict)


def main(argv=None):
    """Main entry point for command line usage"""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level)

    try:
        structure, observations = load_bal(args.input)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load {args.input}: {e}")
        return 1

    if args.fix_first_view and structure.views:
        structure.views[0].known = True
        structure.cameras[structure.views[0].camera].known = True

    result = MetricBundleAdjustment(config).optimize(structure, observations)

    output_path = Path(args.output)
    save_bal(output_path, structure, observations)
    save_result_info(output_path.with_suffix(output_path.suffix + ".json"), result, config)

    logger.info(f"Final cost: {result.final_cost:.6f} ({result.message})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
