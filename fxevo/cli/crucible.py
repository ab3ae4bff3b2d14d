"""
Crucible CLI for fxevo.

Replays Investor DNA over the configured spans and reports each DNA's
annualized returns and consistency as JSON.
"""

import argparse
import sys
from typing import List, Optional

from ..core.config import Config
from ..core.exceptions import FXEvoException
from ..core.logging import get_logger, log_with_correlation, setup_logging
from ..optimization.backtesting.crucible import Crucible, CrucibleReport
from .simulate import _load_config, add_common_arguments, load_inputs, write_json


@log_with_correlation
def run_crucible(config: Config, dnas: Optional[List[str]] = None) -> List[CrucibleReport]:
    """Load inputs and replay every DNA over every span."""
    catalog, data = load_inputs(config)
    return Crucible(config, catalog, data).run(dnas)


def crucible_command(args: Optional[list] = None) -> None:
    """
    Run a crucible.

    Args:
        args: Command line arguments (if None, uses sys.argv)
    """
    parser = argparse.ArgumentParser(
        description="Replay Investor DNA over several date spans",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # DNA and spans from the config file
  fxevo crucible --config crucible.json

  # Extra DNA on the command line
  fxevo crucible --config crucible.json --dna "{Investor;Strategy=MajorityRules;...}"
        """
    )
    add_common_arguments(parser)
    parser.add_argument(
        '--dna',
        action='append',
        default=[],
        help='Investor DNA to test (repeatable, replaces crucible.dna)'
    )

    parsed_args = parser.parse_args(args)

    setup_logging(level=parsed_args.log_level, log_file=parsed_args.log_file)
    logger = get_logger(__name__)

    try:
        config = _load_config(parsed_args)
        reports = run_crucible(config, parsed_args.dna or None)
        write_json({"reports": [r.to_dict() for r in reports]}, parsed_args.output)
        logger.info("Crucible completed successfully")
    except KeyboardInterrupt:
        logger.info("Crucible interrupted by user")
        sys.exit(1)
    except FXEvoException as e:
        logger.error(f"Crucible failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    crucible_command()
