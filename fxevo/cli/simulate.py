"""
Simulation CLI for fxevo.

Evolves a population of Investors over the configured date range and
writes the per-generation statistics and top Investors as JSON.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Tuple

from ..core.config import Config
from ..core.exceptions import FXEvoException
from ..core.logging import get_logger, log_with_correlation, setup_logging
from ..data.storage.csv_store import CSVDataStore
from ..data.subclasses import MetricCatalog
from ..optimization.backtesting.simulator import SimulationResult, Simulator
from ..utils.helpers import ensure_directory


def _load_config(parsed_args: argparse.Namespace) -> Config:
    """
    Load configuration and apply command-line overrides.

    Args:
        parsed_args: Parsed command-line arguments.
    Returns:
        Config: The validated configuration.
    """
    config = Config(config_file=parsed_args.config, env_file=parsed_args.env_file, validate=False)
    if getattr(parsed_args, 'data_path', None):
        config.data.data_path = str(parsed_args.data_path)
    if getattr(parsed_args, 'subclass_path', None):
        config.data.subclass_path = str(parsed_args.subclass_path)
    if getattr(parsed_args, 'population_size', None):
        config.simulation.population_size = parsed_args.population_size
    if getattr(parsed_args, 'generations', None):
        config.simulation.generations = parsed_args.generations
    if getattr(parsed_args, 'seed', None) is not None:
        config.simulation.seed = parsed_args.seed
    config.validate()
    return config


def load_inputs(config: Config) -> Tuple[MetricCatalog, CSVDataStore]:
    """Load the metric catalog and the econometrics data named by the config."""
    catalog = MetricCatalog.from_csv(Path(config.data.subclass_path))
    data = CSVDataStore(Path(config.data.data_path), window_size=config.data.rolling_window)
    return catalog, data


def write_json(payload: dict, output: Optional[Path]) -> None:
    """Write ``payload`` to ``output``, or to stdout when no path is given."""
    text = json.dumps(payload, indent=2, default=str)
    if output is None:
        print(text)
        return
    ensure_directory(output.parent)
    with open(output, 'w', encoding='utf-8') as f:
        f.write(text)


@log_with_correlation
def run_simulation(config: Config) -> SimulationResult:
    """Load inputs and run one simulation."""
    catalog, data = load_inputs(config)
    simulator = Simulator(config, catalog, data)
    return simulator.run()


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    # -- Configuration ------------------------------------
    config_group = parser.add_argument_group('Configuration')
    config_group.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to configuration file (JSON)'
    )
    config_group.add_argument(
        '--env-file', '-e',
        type=Path,
        help='Path to .env file with FXEVO_* overrides'
    )

    # -- Data Parameters ----------------------------------
    data_group = parser.add_argument_group('Data Parameters')
    data_group.add_argument(
        '--data-path',
        type=Path,
        help='Path to the econometrics CSV file'
    )
    data_group.add_argument(
        '--subclass-path',
        type=Path,
        help='Path to the metric influencer subclass CSV file'
    )

    # -- Output Parameters --------------------------------
    output_group = parser.add_argument_group('Output')
    output_group.add_argument(
        '--output', '-o',
        type=Path,
        help='Write the JSON summary here instead of stdout'
    )

    # -- Logging Parameters -------------------------------
    log_group = parser.add_argument_group('Logging')
    log_group.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level'
    )
    log_group.add_argument(
        '--log-file',
        type=Path,
        help='Path of the JSON log file (default logs/fxevo.log)'
    )


def simulate_command(args: Optional[list] = None) -> None:
    """
    Run an evolutionary simulation.

    Args:
        args: Command line arguments (if None, uses sys.argv)
    """
    parser = argparse.ArgumentParser(
        description="Evolve Investors against historical currency data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with a config file
  fxevo simulate --config sim.json --output results/sim.json

  # Quick run with a fixed seed
  fxevo simulate --config sim.json --population-size 10 --generations 3 --seed 42
        """
    )
    add_common_arguments(parser)

    # -- Simulation Parameters ----------------------------
    sim_group = parser.add_argument_group('Simulation')
    sim_group.add_argument(
        '--population-size', '-p',
        type=int,
        help='Investors per generation'
    )
    sim_group.add_argument(
        '--generations', '-g',
        type=int,
        help='Number of generations (ignored when a generation duration is configured)'
    )
    sim_group.add_argument(
        '--seed',
        type=int,
        help='Random seed for reproducible runs'
    )

    parsed_args = parser.parse_args(args)

    setup_logging(level=parsed_args.log_level, log_file=parsed_args.log_file)
    logger = get_logger(__name__)

    try:
        config = _load_config(parsed_args)
        logger.info(f"Starting simulation with {config}")
        result = run_simulation(config)
        write_json(result.to_dict(), parsed_args.output)
        logger.info("Simulation completed successfully")
    except KeyboardInterrupt:
        logger.info("Simulation interrupted by user")
        sys.exit(1)
    except FXEvoException as e:
        logger.error(f"Simulation failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    simulate_command()
