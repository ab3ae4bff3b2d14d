"""
Configuration management for the fxevo backtesting engine.

Settings are grouped into dataclass sections and loaded from an optional JSON
file whose top-level keys name the sections. A handful of paths and the
random seed may also come from environment variables (or a .env file).

There is no global configuration instance: a Config is built once and passed
explicitly to the Factory, Investors and the Simulator.
"""

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError, ValidationError
from .logging import get_logger


@dataclass
class SimulationConfig:
    """Date range, population and money settings for a run."""
    c1: str = "USD"
    c2: str = "JPY"
    dt_start: str = "2022-01-01"
    dt_stop: str = "2022-12-31"
    generations: int = 1
    generation_duration: str = ""
    loop_count: int = 1
    population_size: int = 20
    init_funds: float = 1000.0
    std_investment: float = 100.0
    txn_fee: float = 0.0
    txn_fee_factor: float = 0.0
    stop_loss: float = 0.12
    enforce_stop_date: bool = False
    worker_threads: int = 1
    seed: Optional[int] = None


@dataclass
class InvestorConfig:
    """Investor composition and decision settings."""
    min_influencers: int = 1
    max_influencers: int = 3
    inv_w1: float = 0.5
    inv_w2: float = 0.5
    std_dev_variation_factor: float = 0.0


@dataclass
class EvolutionConfig:
    """Genetic operator settings."""
    mutation_rate: int = 1
    preserve_elite: bool = False
    preserve_elite_pct: float = 5.0
    allow_duplicate_investors: bool = False
    max_breed_attempts: int = 25
    top_investor_count: int = 10
    gen0_elites: List[str] = field(default_factory=list)
    single_investor_mode: bool = False
    single_investor_dna: str = ""


@dataclass
class DataConfig:
    """Where the econometrics data and the metric catalog live."""
    data_path: str = "data/platodb.csv"
    subclass_path: str = "data/misubclasses.csv"
    rolling_window: int = 10


@dataclass
class FitnessConfig:
    """Annualized-return bonus steps as [threshold, multiplier] pairs."""
    bonus_steps: List[List[float]] = field(default_factory=list)


@dataclass
class CrucibleConfig:
    """Spans ([dt_start, dt_stop] pairs) and DNA strings to test."""
    spans: List[List[str]] = field(default_factory=list)
    dna: List[str] = field(default_factory=list)


class Config:
    """
    Main configuration class for fxevo.

    Sections are plain dataclasses so tests can build and tweak them
    directly; ``Config`` validates the combination.
    """

    SECTIONS = ("simulation", "investor", "evolution", "data", "fitness", "crucible")

    def __init__(self, config_file: Optional[Path] = None, env_file: Optional[Path] = None,
                 validate: bool = True):
        """
        Initialize configuration.

        Args:
            config_file: Path to JSON configuration file
            env_file: Path to .env file with path/seed overrides
            validate: Whether to validate immediately
        """
        self.logger = get_logger(__name__)

        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        self.simulation = SimulationConfig()
        self.investor = InvestorConfig()
        self.evolution = EvolutionConfig()
        self.data = DataConfig()
        self.fitness = FitnessConfig()
        self.crucible = CrucibleConfig()

        if config_file and Path(config_file).exists():
            self._load_from_file(Path(config_file))
        elif config_file:
            raise ConfigurationError(f"Config file not found: {config_file}")

        self._load_from_env()

        if validate:
            self.validate()

        self.logger.debug("Configuration loaded")

    @classmethod
    def from_dict(cls, data: Dict[str, Any], validate: bool = True) -> "Config":
        """Build a config from a section -> values mapping."""
        config = cls(validate=False)
        config.update(data)
        if validate:
            config.validate()
        return config

    def update(self, data: Dict[str, Any]) -> None:
        """Apply a section -> values mapping; unknown sections are rejected."""
        for section_name, section_data in data.items():
            if section_name not in self.SECTIONS:
                raise ConfigurationError(f"Unknown configuration section: {section_name}")
            section = getattr(self, section_name)
            for key, value in section_data.items():
                if not hasattr(section, key):
                    raise ConfigurationError(f"Unknown key {section_name}.{key}")
                setattr(section, key, value)

    def _load_from_file(self, config_file: Path):
        """Load configuration from JSON file."""
        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
            self.update(config_data)
            self.logger.info(f"Loaded configuration from {config_file}")
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to load config file {config_file}: {str(e)}")

    def _load_from_env(self):
        """Apply FXEVO_* environment overrides."""
        if os.getenv("FXEVO_DATA_PATH"):
            self.data.data_path = os.getenv("FXEVO_DATA_PATH")
        if os.getenv("FXEVO_SUBCLASS_PATH"):
            self.data.subclass_path = os.getenv("FXEVO_SUBCLASS_PATH")
        if os.getenv("FXEVO_SEED"):
            try:
                self.simulation.seed = int(os.getenv("FXEVO_SEED"))
            except ValueError:
                raise ConfigurationError("FXEVO_SEED must be an integer",
                                         details=os.getenv("FXEVO_SEED"))

    def validate(self):
        """
        Validate configuration settings.

        Raises:
            ConfigurationError: listing every problem found
        """
        # local import: utils.dates imports core.exceptions
        from ..utils.dates import parse_generation_duration, to_date

        errors = []
        sim = self.simulation
        inv = self.investor
        evo = self.evolution

        if sim.population_size < 2 and not evo.single_investor_mode:
            errors.append("Population size must be at least 2")
        if sim.population_size < 1:
            errors.append("Population size must be positive")
        if sim.generations < 1:
            errors.append("Generations must be at least 1")
        if sim.loop_count < 1:
            errors.append("Loop count must be at least 1")
        if sim.init_funds <= 0:
            errors.append("Initial funds must be positive")
        if sim.std_investment <= 0:
            errors.append("Standard investment must be positive")
        if sim.txn_fee < 0 or sim.txn_fee_factor < 0:
            errors.append("Transaction fees cannot be negative")
        if not 0 <= sim.stop_loss < 1:
            errors.append("Stop loss must be in [0, 1)")
        if sim.worker_threads < 0:
            errors.append("Worker threads cannot be negative")
        if not sim.c1 or not sim.c2:
            errors.append("Both currencies C1 and C2 are required")

        try:
            if to_date(sim.dt_start) > to_date(sim.dt_stop):
                errors.append("dt_start must not be after dt_stop")
        except ValidationError as e:
            errors.append(str(e))

        if sim.generation_duration:
            try:
                if parse_generation_duration(sim.generation_duration).is_empty():
                    errors.append("Generation duration must be non-zero")
            except ValidationError as e:
                errors.append(f"Invalid generation duration: {e}")

        if inv.min_influencers < 1:
            errors.append("Min influencers must be at least 1")
        if inv.max_influencers < inv.min_influencers:
            errors.append("Max influencers must be >= min influencers")
        if inv.inv_w1 < 0 or inv.inv_w2 < 0 or inv.inv_w1 + inv.inv_w2 > 1.0 + 1e-9:
            errors.append("Investor weights must be non-negative with W1 + W2 <= 1")
        if inv.std_dev_variation_factor < 0:
            errors.append("Std dev variation factor cannot be negative")

        if not 0 <= evo.mutation_rate <= 100:
            errors.append("Mutation rate must be a percentage between 0 and 100")
        if not 0 <= evo.preserve_elite_pct < 100:
            errors.append("Preserve elite percentage must be in [0, 100)")
        if evo.max_breed_attempts < 1:
            errors.append("Max breed attempts must be at least 1")
        if evo.top_investor_count < 0:
            errors.append("Top investor count cannot be negative")
        if evo.single_investor_mode and not evo.single_investor_dna:
            errors.append("Single investor mode requires single_investor_dna")

        if self.data.rolling_window < 1:
            errors.append("Rolling window must be at least 1")

        for step in self.fitness.bonus_steps:
            if len(step) != 2 or step[1] < 1:
                errors.append(f"Bonus step must be [threshold, multiplier>=1]: {step}")

        for span in self.crucible.spans:
            if len(span) != 2:
                errors.append(f"Crucible span must be [dt_start, dt_stop]: {span}")

        if errors:
            raise ConfigurationError("Configuration validation failed", details=errors)

    @property
    def dt_start(self) -> date:
        from ..utils.dates import to_date
        return to_date(self.simulation.dt_start)

    @property
    def dt_stop(self) -> date:
        from ..utils.dates import to_date
        return to_date(self.simulation.dt_stop)

    @property
    def elite_count(self) -> int:
        """Number of elites carried into each bred generation."""
        if not self.evolution.preserve_elite:
            return 0
        return int(self.evolution.preserve_elite_pct * self.simulation.population_size / 100 + 0.5)

    @property
    def exchange_rate_metric(self) -> str:
        return "EXClose"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {name: asdict(getattr(self, name)) for name in self.SECTIONS}

    def copy(self) -> "Config":
        return Config.from_dict(json.loads(json.dumps(self.to_dict())), validate=False)

    def save(self, config_file: Path):
        """Save configuration to JSON file."""
        try:
            config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(config_file, 'w') as f:
                json.dump(self.to_dict(), f, indent=2, default=str)
            self.logger.info(f"Configuration saved to {config_file}")
        except Exception as e:
            raise ConfigurationError(f"Failed to save config file {config_file}: {str(e)}")

    def __repr__(self) -> str:
        return (f"Config(pair={self.simulation.c1}{self.simulation.c2}, "
                f"population={self.simulation.population_size}, "
                f"dates={self.simulation.dt_start}..{self.simulation.dt_stop})")
