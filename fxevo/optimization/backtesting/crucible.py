"""
Crucible: stress-test known Investors over several date spans.

Each DNA is replayed as a single Investor over every configured span. The
annualized return of each span is recorded, and the spread of those
returns gives a consistency score: an Investor that makes 8% in every
span is preferred over one that swings between -20% and +40%.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ...core.config import Config
from ...core.exceptions import ConfigurationError
from ...core.logging import get_logger
from ...data.access import DataAccessPort
from ...data.subclasses import MetricCatalog
from ...utils.dates import to_date
from ...utils.helpers import format_percentage, sample_std
from .investor import Investor
from .metrics import annualized_return
from .simulator import Simulator

logger = get_logger(__name__)


@dataclass
class SpanResult:
    """One DNA replayed over one span."""
    dt_start: date
    dt_stop: date
    opening_value: float
    ending_value: float
    annualized_return: float
    daily_returns: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dt_start": self.dt_start.isoformat(),
            "dt_stop": self.dt_stop.isoformat(),
            "opening_value": self.opening_value,
            "ending_value": self.ending_value,
            "annualized_return": self.annualized_return,
        }


@dataclass
class CrucibleReport:
    """How one DNA fared across all spans."""
    dna: str
    spans: List[SpanResult] = field(default_factory=list)

    @property
    def returns(self) -> List[float]:
        return [span.annualized_return for span in self.spans]

    @property
    def mean_return(self) -> float:
        return float(np.mean(self.returns)) if self.spans else 0.0

    @property
    def consistency(self) -> float:
        """1 minus the sample standard deviation of the span returns."""
        return 1.0 - sample_std(self.returns)

    @property
    def success_coefficient(self) -> float:
        return self.mean_return * self.consistency

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dna": self.dna,
            "spans": [span.to_dict() for span in self.spans],
            "mean_return": self.mean_return,
            "consistency": self.consistency,
            "success_coefficient": self.success_coefficient,
        }


class Crucible:
    """Replays a list of DNA strings over a list of date spans."""

    def __init__(self, config: Config, catalog: MetricCatalog, data: DataAccessPort,
                 today: Optional[date] = None):
        self.config = config
        self.catalog = catalog
        self.data = data
        self.today = today

    def span_config(self, dna: str, dt_start: date, dt_stop: date) -> Config:
        """A single-investor, single-generation copy of the base config."""
        cfg = self.config.copy()
        sim = cfg.simulation
        sim.dt_start = dt_start.isoformat()
        sim.dt_stop = dt_stop.isoformat()
        sim.population_size = 1
        sim.generations = 1
        sim.generation_duration = ""
        sim.loop_count = 1
        evo = cfg.evolution
        evo.single_investor_mode = True
        evo.single_investor_dna = dna
        evo.allow_duplicate_investors = True
        evo.preserve_elite = False
        evo.gen0_elites = []
        cfg.validate()
        return cfg

    def run_span(self, dna: str, dt_start: date, dt_stop: date) -> SpanResult:
        """
        Replay ``dna`` from ``dt_start`` through ``dt_stop``.

        Raises:
            ValidationError: If the span is empty or outside the data
            GenomeError: If the DNA is invalid
        """
        cfg = self.span_config(dna, dt_start, dt_stop)
        init_funds = cfg.simulation.init_funds
        daily_returns: List[float] = []

        def record_day(t3: date, investors: List[Investor]) -> None:
            investor = investors[0]
            if t3 <= dt_start or (investor.balance_c2 != 0 and investor.exchange_rate(t3) is None):
                return
            daily_returns.append(annualized_return(init_funds, investor.portfolio_value(t3), dt_start, t3))

        simulator = Simulator(cfg, self.catalog, self.data, day_by_day=record_day, today=self.today)
        simulator.run()

        ending_value = simulator.investors[0].portfolio_value_c1
        return SpanResult(
            dt_start=dt_start,
            dt_stop=dt_stop,
            opening_value=init_funds,
            ending_value=ending_value,
            annualized_return=annualized_return(init_funds, ending_value, dt_start, dt_stop),
            daily_returns=daily_returns
        )

    def _spans(self) -> List[Sequence[date]]:
        spans = [(to_date(start), to_date(stop)) for start, stop in self.config.crucible.spans]
        if not spans:
            raise ConfigurationError("Crucible needs at least one span")
        return spans

    def run(self, dnas: Optional[List[str]] = None) -> List[CrucibleReport]:
        """
        Replay every DNA over every span.

        Args:
            dnas: DNA strings to test, defaults to ``crucible.dna``

        Returns:
            One report per DNA, in input order
        """
        dnas = list(dnas if dnas is not None else self.config.crucible.dna)
        if not dnas:
            raise ConfigurationError("Crucible needs at least one DNA string")
        spans = self._spans()

        reports = []
        for index, dna in enumerate(dnas, start=1):
            report = CrucibleReport(dna=dna)
            for dt_start, dt_stop in spans:
                result = self.run_span(dna, dt_start, dt_stop)
                report.spans.append(result)
                logger.info(f"DNA {index}/{len(dnas)} {dt_start} - {dt_stop}: "
                            f"{result.opening_value:9.2f} -> {result.ending_value:9.2f}, "
                            f"annualized {format_percentage(result.annualized_return)}")
            logger.info(f"DNA {index}/{len(dnas)} mean: {report.mean_return:.4f}  "
                        f"consistency: {report.consistency:.4f}", extra={
                            "extra_fields": {
                                "dna": dna,
                                "mean_return": report.mean_return,
                                "consistency": report.consistency,
                                "success_coefficient": report.success_coefficient,
                            }
                        })
            reports.append(report)
        return reports
