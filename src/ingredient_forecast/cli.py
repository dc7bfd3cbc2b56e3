"""
Command-line entry point.

Usage:
    ingredient-forecast --data-dir ./exports --output-dir ./outputs
    ingredient-forecast --config run.json --ingredient-ids 27 291 --horizon 14
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from .config import PipelineConfig
from .exceptions import IngredientForecastError
from .pipeline import IngredientDemandPipeline
from .utils.logger import configure_package_logging, get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ingredient-forecast',
        description='Forecast daily per-store demand for one ingredient'
    )
    parser.add_argument('--data-dir', help='Directory with the input exports (CSV or Parquet)')
    parser.add_argument('--output-dir', help='Directory for the forecast outputs')
    parser.add_argument('--config', help='JSON run configuration')
    parser.add_argument(
        '--ingredient-ids', nargs='+', type=int,
        help='Catalog ids of the target ingredient (overrides the config)'
    )
    parser.add_argument('--horizon', type=int, help='Days to forecast ahead')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--verbose', action='store_true', help='Debug logging')
    return parser


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """Build the run configuration from a JSON file and CLI overrides."""
    config = PipelineConfig.from_json(args.config) if args.config else PipelineConfig()

    overrides = {}
    if args.data_dir:
        overrides['data_path'] = args.data_dir
    if args.output_dir:
        overrides['output_path'] = args.output_dir
    if args.ingredient_ids:
        overrides['ingredient_ids'] = args.ingredient_ids
    if args.horizon is not None:
        overrides['forecast'] = replace(config.forecast, horizon=args.horizon)

    return replace(config, **overrides) if overrides else config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_package_logging(
        log_file=args.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO
    )

    try:
        config = load_config(args)
        result = IngredientDemandPipeline(config).run_from_directory()
    except (IngredientForecastError, OSError) as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    for kind, path in result.exported_files.items():
        logger.info(f"{kind}: {path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
