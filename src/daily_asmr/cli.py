"""
Command-line interface for the daily age-standardized mortality pipeline.
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import yaml
from tqdm import tqdm

from .data_manager import DataManager
from .core.pipeline import PipelineResult, PipelineSettings, run_pipeline, summarize_excess
from .utils.config import Config
from .utils.validation import ValidationError


# Set up logging
logger = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Daily age-standardized mortality with season-matched expected baselines'
    )
    parser.add_argument(
        '--deaths',
        type=str,
        help='Weekly deaths by age category (.csv or .xlsx; default from config)',
        default=None
    )
    parser.add_argument(
        '--population',
        type=str,
        help='Quarterly population by age category (.csv or .xlsx; default from config)',
        default=None
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        help='Output directory (default from config)',
        default=None
    )
    parser.add_argument(
        '--config', '-c',
        type=str,
        help='YAML file merged over the default configuration',
        default=None
    )
    parser.add_argument(
        '--baseline-start',
        type=int,
        help='First calendar year of the baseline window',
        default=None
    )
    parser.add_argument(
        '--reference-date',
        type=str,
        help='Date of the reference population snapshot (default: latest available)',
        default=None
    )
    parser.add_argument(
        '--workers', '-w',
        type=int,
        help='Worker processes for the baseline regressions',
        default=None
    )
    parser.add_argument(
        '--format',
        choices=['csv', 'xlsx'],
        help='Output file format',
        default=None
    )
    parser.add_argument(
        '--excess-from',
        type=str,
        help='Log summed excess ASM from this date onwards',
        default=None
    )
    parser.add_argument(
        '--debug', '-d',
        action='store_true',
        help='Enable debug output'
    )
    parser.add_argument(
        '--visualize', '-v',
        action='store_true',
        help='Generate plots of actual and expected mortality'
    )
    return parser.parse_args(argv)


def configure_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    config = Config()
    log_config = config.get('logging', {})

    level = logging.DEBUG if debug else getattr(logging, str(log_config.get('level', 'INFO')).upper())
    format_str = log_config.get('format', '%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    # Reset the root logger
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_config.get('file'):
        handlers.append(logging.FileHandler(log_config['file']))

    logging.basicConfig(level=level, format=format_str, handlers=handlers)

    logging.getLogger('matplotlib').setLevel(logging.INFO)
    logging.getLogger('matplotlib.font_manager').setLevel(logging.INFO)
    logging.getLogger('PIL').setLevel(logging.INFO)


def initialize_data_manager(args: argparse.Namespace) -> DataManager:
    """Initialize the DataManager with configuration."""
    config = Config()
    deaths_file = args.deaths or config.get('data.deaths_file')
    population_file = args.population or config.get('data.population_file')
    if not deaths_file or not population_file:
        raise ValueError("Deaths and population files must be given in arguments or configuration")
    return DataManager(deaths_path=deaths_file, population_path=population_file)


def build_settings(args: argparse.Namespace) -> PipelineSettings:
    """Pipeline settings from configuration with command-line overrides."""
    overrides = {}
    if args.baseline_start is not None:
        overrides['baseline_start_year'] = args.baseline_start
    if args.reference_date is not None:
        overrides['reference_population_date'] = pd.Timestamp(args.reference_date)
    if args.workers is not None:
        overrides['workers'] = args.workers
    overrides['progress'] = True
    return PipelineSettings.from_config(Config(), **overrides)


def get_output_dir(args: argparse.Namespace) -> Path:
    """Get the output directory from args or config."""
    output_dir = args.output or Config().get('data.output_dir') or 'output'
    output_path = Path(output_dir)
    output_path.mkdir(exist_ok=True, parents=True)
    return output_path


def log_excess(result: PipelineResult, start: Optional[str]) -> Dict[str, float]:
    summary = summarize_excess(result.actual_vs_expected, start=start)
    logger.info(
        f"Excess ASM since {start or 'start'}: {summary['excess_asm']:,.1f} "
        f"({summary['excess_pct']:.2f}% over {summary['days']} days, "
        f"{summary['days_without_baseline']} without baseline)"
    )
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to compute and save daily ASMR with expected baselines."""
    try:
        args = parse_arguments(argv)
        if args.config:
            Config().update_from_file(args.config)
        configure_logging(args.debug)

        logger.info("Starting daily age-standardized mortality run")

        data_manager = initialize_data_manager(args)
        settings = build_settings(args)
        output_dir = get_output_dir(args)
        fmt = args.format or Config().get('data.output_format', 'csv')

        with tqdm(total=4, desc="Processing") as pbar:
            deaths = data_manager.death_observations()
            population = data_manager.population_observations()
            pbar.update(1)

            result = run_pipeline(deaths, population, settings)
            pbar.update(1)

            data_manager.save_results(result, output_dir, fmt=fmt)
            pbar.update(1)

            if args.visualize:
                from .utils.visualization import Visualization
                Visualization(output_dir / "visualizations").generate_all_plots(
                    result.actual_vs_expected, start=args.excess_from
                )
            pbar.update(1)

        log_excess(result, args.excess_from)
        logger.info("Process completed successfully!")
        return 0

    except (ValidationError, ValueError, OSError, yaml.YAMLError) as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
