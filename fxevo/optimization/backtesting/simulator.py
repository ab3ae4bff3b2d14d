"""
Generational simulation of Investor populations.

The Simulator walks the configured date range one day at a time. Every
Investor makes its daily decision independently; at the end of a
generation portfolio values are snapshotted, fitness is computed,
statistics are recorded and the Factory breeds the next population. If any
Investor still holds foreign currency when a generation ends, the run winds
down: the daily loop continues with sells only until every position is
settled or the data runs out.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from ...core.config import Config
from ...core.exceptions import FXEvoException, GenomeError, OptimizationError, SimulationInvariantError
from ...core.logging import generate_correlation_id, get_logger, set_correlation_id
from ...data.access import DataAccessPort
from ...data.subclasses import MetricCatalog
from ...utils.dates import (
    GenerationDuration,
    add_days,
    add_duration,
    count_generations,
    parse_generation_duration,
)
from ...utils.helpers import default_worker_count
from ...utils.validators import validate_span
from ..genetic.factory import Factory
from ..genetic.fitness import bonus_policy_from_config
from .investor import MIN_TRADE_BALANCE, Investor
from .metrics import SimulationStatistics, TopInvestor, generation_statistics, update_top_investors

logger = get_logger(__name__)

DayCallback = Callable[[date, List[Investor]], None]


@dataclass
class SimulationResult:
    """Everything a finished run produced."""
    run_id: str
    generation_stats: List[SimulationStatistics] = field(default_factory=list)
    top_investors: List[TopInvestor] = field(default_factory=list)
    generations_completed: int = 0
    loops_completed: int = 0
    hash_duplicates: int = 0
    mutate_calls: int = 0
    mutations: int = 0
    breed_failures: int = 0
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "generations_completed": self.generations_completed,
            "loops_completed": self.loops_completed,
            "hash_duplicates": self.hash_duplicates,
            "mutate_calls": self.mutate_calls,
            "mutations": self.mutations,
            "breed_failures": self.breed_failures,
            "elapsed_seconds": self.elapsed_seconds,
            "generation_stats": [s.to_dict() for s in self.generation_stats],
            "top_investors": [t.to_dict() for t in self.top_investors],
        }


class Simulator:
    """
    Runs the evolutionary backtest.

    The Simulator owns the current population and the Factory that
    replaces it between generations.
    """

    def __init__(self, config: Config, catalog: MetricCatalog, data: DataAccessPort,
                 factory: Optional[Factory] = None, day_by_day: Optional[DayCallback] = None,
                 today: Optional[date] = None):
        """
        Initialize the simulator.

        Args:
            config: Run configuration
            catalog: Metric influencer subclasses
            data: Market data
            factory: Genetic operators, built from config when omitted
            day_by_day: Called with (t3, investors) after every simulated day
            today: Real-world date the simulation may not pass, defaults to today

        Raises:
            ValidationError: If the configured span lies outside the data
        """
        self.config = config
        self.catalog = catalog
        self.data = data
        self.factory = factory or Factory(
            config, catalog, data, bonus_policy=bonus_policy_from_config(config.fitness.bonus_steps)
        )
        self.day_by_day = day_by_day
        self.today = today or date.today()

        self.dt_start = config.dt_start
        self.dt_stop = config.dt_stop
        validate_span(self.dt_start, self.dt_stop, data.dt_start, data.dt_stop)

        self.duration: Optional[GenerationDuration] = None
        if config.simulation.generation_duration:
            self.duration = parse_generation_duration(config.simulation.generation_duration)
            self.generations = count_generations(self.dt_start, self.dt_stop, self.duration)
        else:
            self.generations = config.simulation.generations

        self.investors: List[Investor] = []
        self.wind_down_in_progress = False
        self.gens_completed = 0
        self.max_profit = 0.0
        self.generation_stats: List[SimulationStatistics] = []
        self.top_investors: List[TopInvestor] = []
        self.run_id = ""

    # ------------------------------------------------------------------
    # population
    # ------------------------------------------------------------------

    def init_population(self) -> None:
        """
        Build generation 0.

        In single-investor mode every member is built from the configured
        DNA. Otherwise any configured gen-0 elites come first and random
        Investors fill the rest. An elite whose DNA cannot be built is logged
        and skipped.

        Raises:
            GenomeError: If the single-investor DNA is invalid
            OptimizationError: If a unique random Investor cannot be built
        """
        size = self.config.simulation.population_size
        evo = self.config.evolution
        self.investors = []

        if evo.single_investor_mode:
            for _ in range(size):
                self.investors.append(self.factory.new_investor_from_dna(evo.single_investor_dna))
            return

        for dna in evo.gen0_elites[:size]:
            try:
                investor = self.factory.new_investor_from_dna(dna)
            except GenomeError as e:
                self.factory.breed_failures += 1
                logger.error(f"Skipping generation 0 elite: {e}", extra={"extra_fields": {"dna": dna}})
                continue
            self.factory.register(investor)
            self.investors.append(investor)

        while len(self.investors) < size:
            investor = self.factory.build_unique(self.factory.random_investor, "random")
            if investor is None:
                raise OptimizationError("Unable to build a random investor for generation 0")
            self.investors.append(investor)

        logger.info(f"Generation 0 population of {len(self.investors)} investors created",
                    extra={"extra_fields": {"gen0_elites": len(evo.gen0_elites[:size])}})

    def _elites(self) -> List[Investor]:
        """The best Investors of the generation, reset for another run."""
        count = self.config.elite_count
        for investor in self.investors:
            investor.elite = False
        if count == 0:
            return []
        ranked = sorted(self.investors, key=lambda inv: inv.portfolio_value_c1, reverse=True)
        elites = ranked[:count]
        for investor in elites:
            investor.reset()
            investor.elite = True
        return elites

    def next_population(self) -> None:
        """Replace the population with bred children plus any elites."""
        if self.config.evolution.single_investor_mode or len(self.investors) < 2:
            for investor in self.investors:
                investor.reset()
            return
        children = self.factory.new_population(self.investors)
        self.investors = children + self._elites()

    # ------------------------------------------------------------------
    # daily loop
    # ------------------------------------------------------------------

    def worker_pool_size(self) -> int:
        workers = self.config.simulation.worker_threads
        if workers < 1:
            workers = default_worker_count()
        return max(1, min(workers, len(self.investors)))

    def _daily_run(self, investor: Investor, t3: date) -> None:
        try:
            investor.daily_run(t3, self.wind_down_in_progress)
        except SimulationInvariantError:
            raise
        except FXEvoException as e:
            logger.error(f"Investor {investor.id[:12]} daily run failed on {t3}: {e}", extra={
                "extra_fields": {"investor": investor.id, "date": t3.isoformat()}
            })

    def run_day(self, t3: date, executor: Optional[ThreadPoolExecutor] = None) -> None:
        """
        Run every Investor for ``t3`` and wait for all of them.

        Raises:
            SimulationInvariantError: If the population size is wrong or any
                Investor hits an invariant violation
        """
        size = self.config.simulation.population_size
        if len(self.investors) != size:
            raise SimulationInvariantError(
                f"Population size should be {size}, found {len(self.investors)}",
                details={"date": t3.isoformat()}
            )

        if executor is None:
            for investor in self.investors:
                self._daily_run(investor, t3)
            return

        future_to_investor = {
            executor.submit(self._daily_run, investor, t3): investor
            for investor in self.investors
        }
        for future in as_completed(future_to_investor):
            future.result()

    def holders_count(self) -> int:
        """Investors still holding more than dust in C2."""
        return sum(1 for investor in self.investors if investor.balance_c2 > MIN_TRADE_BALANCE)

    def run_generation(self, gen_start: date, gen_end: date,
                       executor: Optional[ThreadPoolExecutor] = None) -> SimulationStatistics:
        """
        Simulate one generation from ``gen_start`` through ``gen_end``,
        plus any wind-down, then score it.

        Returns:
            The generation's statistics
        """
        horizon = min(self.today, add_days(self.data.dt_stop, 1))
        end_of_data_reached = False
        self.wind_down_in_progress = False

        for investor in self.investors:
            investor.dt_gen_start = gen_start

        t3 = gen_start
        while (t3 <= gen_end or self.wind_down_in_progress) and not end_of_data_reached:
            self.run_day(t3, executor)

            if self.wind_down_in_progress and self.holders_count() == 0:
                self.wind_down_in_progress = False

            if t3 == gen_end:
                for investor in self.investors:
                    investor.snapshot_portfolio(t3)

            if self.day_by_day is not None:
                self.day_by_day(t3, self.investors)

            t3 = add_days(t3, 1)

            if (not self.wind_down_in_progress and t3 >= gen_end
                    and not self.config.simulation.enforce_stop_date and self.holders_count() > 0):
                self.wind_down_in_progress = True

            if t3 >= horizon:
                if self.wind_down_in_progress or t3 <= gen_end:
                    logger.warning(f"Simulation stopped at the end of available data, {t3}")
                self.wind_down_in_progress = False
                end_of_data_reached = True

        last_day = add_days(t3, -1)
        dt_gen_stop = min(gen_end, last_day)
        self.gens_completed += 1

        self.calculate_max_vals(last_day)
        for investor in self.investors:
            investor.calculate_fitness_score()

        stats = generation_statistics(
            self.investors,
            self.config.simulation.init_funds,
            gen_start,
            dt_gen_stop,
            last_day,
            end_of_data_reached
        )
        self.generation_stats.append(stats)
        self.update_top_investors()

        logger.info(f"Completed generation {self.gens_completed}, {gen_start} - {dt_gen_stop}, "
                    f"unsettled = {stats.unsettled_c2:12.2f} {self.config.simulation.c2}", extra={
                        "extra_fields": {
                            "generation": self.gens_completed,
                            "profitable_investors": stats.profitable_investors,
                            "max_profit": stats.max_profit,
                            "end_of_data_reached": end_of_data_reached,
                        }
                    })
        return stats

    # ------------------------------------------------------------------
    # scoring
    # ------------------------------------------------------------------

    def calculate_max_vals(self, last_day: date) -> float:
        """
        Value every portfolio on ``last_day`` and share the population's
        best profit with every Investor for fitness normalisation.
        """
        for investor in self.investors:
            if investor.balance_c2 == 0:
                if investor.dt_portfolio_value is None or investor.portfolio_value_c1 != investor.balance_c1:
                    investor.dt_portfolio_value = last_day
                investor.portfolio_value_c1 = investor.balance_c1
                continue
            rate = investor.exchange_rate(last_day)
            if rate is None:
                logger.warning(f"No exchange rate on {last_day}; keeping portfolio snapshot for "
                               f"investor {investor.id[:12]}")
                continue
            investor.snapshot_portfolio(last_day)

        self.max_profit = max(
            investor.portfolio_value_c1 - self.config.simulation.init_funds
            for investor in self.investors
        )
        for investor in self.investors:
            investor.max_profit = self.max_profit
            investor.fitness_calculated = False
        return self.max_profit

    def update_top_investors(self) -> None:
        """Sort the population by portfolio value and merge into the top list."""
        self.investors.sort(key=lambda inv: inv.portfolio_value_c1, reverse=True)
        self.top_investors = update_top_investors(
            self.top_investors,
            self.investors,
            self.config.evolution.top_investor_count,
            self.gens_completed
        )

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    def _generation_end(self, gen_start: date) -> date:
        if self.duration is None:
            return self.dt_stop
        return min(add_duration(gen_start, self.duration), self.dt_stop)

    def run(self) -> SimulationResult:
        """
        Run ``loop_count`` passes of every generation.

        Returns:
            The run's statistics and top Investors

        Raises:
            SimulationInvariantError: On corrupt simulation state
            OptimizationError: If a population cannot be built
        """
        sim = self.config.simulation
        self.run_id = generate_correlation_id()
        set_correlation_id(self.run_id)
        started = time.time()

        logger.info(f"Starting simulation {sim.c1}/{sim.c2} {self.dt_start} - {self.dt_stop}", extra={
            "extra_fields": {
                "population_size": sim.population_size,
                "generations": self.generations,
                "loop_count": sim.loop_count,
                "generation_duration": sim.generation_duration or None,
            }
        })

        if not self.investors:
            self.init_population()

        workers = self.worker_pool_size()
        executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
        loops_completed = 0
        try:
            for loop in range(sim.loop_count):
                gen_start = self.dt_start
                for gen in range(self.generations):
                    gen_end = self._generation_end(gen_start)
                    self.run_generation(gen_start, gen_end, executor)
                    if self.duration is not None:
                        gen_start = gen_end

                    final = gen + 1 == self.generations and loop + 1 == sim.loop_count
                    if not final:
                        self.next_population()
                loops_completed += 1
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        result = SimulationResult(
            run_id=self.run_id,
            generation_stats=list(self.generation_stats),
            top_investors=list(self.top_investors),
            generations_completed=self.gens_completed,
            loops_completed=loops_completed,
            hash_duplicates=self.factory.hash_duplicates,
            mutate_calls=self.factory.mutate_calls,
            mutations=self.factory.mutations,
            breed_failures=self.factory.breed_failures,
            elapsed_seconds=time.time() - started
        )
        logger.info(f"Simulation completed: {result.generations_completed} generations "
                    f"in {result.elapsed_seconds:.1f}s", extra={
                        "extra_fields": {"run_id": self.run_id, "mutations": result.mutations}
                    })
        return result
