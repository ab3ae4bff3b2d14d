"""
Genetic operators for Investor populations.

The Factory builds Investors (at random, from DNA, or by breeding two
parents), mutates them and assembles whole next-generation populations.
All random draws come from the Factory's own ``random.Random`` so that a
run is reproducible under a fixed seed as long as breeding stays
sequential.
"""

import random
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from ...core.config import Config
from ...core.exceptions import (
    ConfigurationError,
    GenomeError,
    InvalidDeltaRangeError,
    MalformedDNAError,
    OptimizationError,
)
from ...core.logging import get_logger
from ...data.access import DataAccessPort
from ...data.subclasses import MetricCatalog, MInfluencerSubclass
from ..backtesting.influencer import Influencer
from ..backtesting.investor import Investor, Strategy
from .fitness import BonusPolicy, NoBonus, fitness_sum
from .genome import (
    KEY_INFLUENCERS,
    KEY_STRATEGY,
    KEY_W1,
    KEY_W2,
    InfluencerGene,
    InvestorGenome,
    format_influencer_fields,
    parse_influencer_dna,
    parse_investor_dna,
)

logger = get_logger(__name__)

PARENT_SELECTION_RETRIES = 10
WEIGHT_TOLERANCE = 1e-4


class Mutation(Enum):
    """Structural or in-place change to an Investor's Influencer set."""
    ADD = "add"
    DELETE = "delete"
    MODIFY = "modify"


class Factory:
    """
    Builds, breeds and mutates Investors.

    Construction failures caused by a bad genome raise GenomeError
    subclasses; ``new_population`` recovers from them per child so one bad
    genome never ends a run.
    """

    def __init__(self, config: Config, catalog: MetricCatalog, data: DataAccessPort,
                 bonus_policy: Optional[BonusPolicy] = None, rng: Optional[random.Random] = None):
        """
        Initialize the factory.

        Args:
            config: Run configuration
            catalog: Metric influencer subclasses available to Influencers
            data: Market data handed to every Investor and Influencer
            bonus_policy: Fitness bonus policy for new Investors
            rng: Random source, seeded from ``simulation.seed`` when omitted
        """
        self.config = config
        self.catalog = catalog
        self.data = data
        self.bonus_policy = bonus_policy or NoBonus()
        self.rng = rng or random.Random(config.simulation.seed)

        self.mutate_calls = 0
        self.mutations = 0
        self.hash_duplicates = 0
        self.breed_failures = 0
        self._seen_hashes: Set[str] = set()

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    def generate_deltas(self, subclass: MInfluencerSubclass, gene: InfluencerGene) -> Tuple[int, int]:
        """
        Validate the deltas a gene carries and draw the ones it lacks.

        Raises:
            InvalidDeltaRangeError: If a given delta is out of bounds, or the
                pair cannot satisfy ``delta1 < delta2``
        """
        bounds = {
            "Delta1": (gene.delta1, subclass.min_delta1, subclass.max_delta1),
            "Delta2": (gene.delta2, subclass.min_delta2, subclass.max_delta2),
        }
        for name, (value, low, high) in bounds.items():
            if value is not None and not low <= value <= high:
                raise InvalidDeltaRangeError(
                    f"invalid {name} value: {value}, it must be in the range {low} to {high}",
                    details={"metric": subclass.metric}
                )

        if gene.delta1 is not None and gene.delta2 is not None:
            if not gene.delta1 < gene.delta2:
                raise InvalidDeltaRangeError(
                    f"Delta1 ({gene.delta1}) must be less than Delta2 ({gene.delta2})",
                    details={"metric": subclass.metric}
                )
            return gene.delta1, gene.delta2

        lowest1 = gene.delta1 if gene.delta1 is not None else subclass.min_delta1
        highest2 = gene.delta2 if gene.delta2 is not None else subclass.max_delta2
        if lowest1 >= highest2:
            raise InvalidDeltaRangeError("Delta bounds cannot satisfy Delta1 < Delta2",
                                         details={"metric": subclass.metric})

        while True:
            delta1 = gene.delta1 if gene.delta1 is not None else \
                self.rng.randint(subclass.min_delta1, subclass.max_delta1)
            delta2 = gene.delta2 if gene.delta2 is not None else \
                self.rng.randint(subclass.min_delta2, subclass.max_delta2)
            if delta1 < delta2:
                return delta1, delta2

    def new_influencer(self, dna: str) -> Influencer:
        """
        Create an Influencer from DNA; absent deltas are drawn at random.

        Raises:
            MalformedDNAError: If the DNA cannot be decoded
            UnknownMetricError: If the metric is not in the catalog
            InvalidDeltaRangeError: If a delta is out of range
        """
        gene = InfluencerGene.from_dna(dna)
        subclass = self.catalog.get(gene.metric)
        delta1, delta2 = self.generate_deltas(subclass, gene)
        sim = self.config.simulation
        return Influencer(
            subclass=subclass,
            delta1=delta1,
            delta2=delta2,
            data=self.data,
            c1=sim.c1,
            c2=sim.c2,
            std_dev_factor=self.config.investor.std_dev_variation_factor
        )

    def _new_investor(self, strategy: Strategy, w1: Optional[float] = None,
                      w2: Optional[float] = None) -> Investor:
        return Investor(self.config, self.data, strategy=strategy, w1=w1, w2=w2,
                        bonus_policy=self.bonus_policy)

    def random_investor(self) -> Investor:
        """
        Create an Investor with a random strategy and a random set of
        unique-metric Influencers.

        Raises:
            ConfigurationError: If max_influencers exceeds the catalog size
        """
        inv_cfg = self.config.investor
        if inv_cfg.max_influencers > len(self.catalog):
            raise ConfigurationError(
                f"max_influencers is {inv_cfg.max_influencers} but only "
                f"{len(self.catalog)} metrics are available"
            )

        investor = self._new_investor(self.rng.choice(list(Strategy)))
        count = self.rng.randint(inv_cfg.min_influencers, inv_cfg.max_influencers)
        for metric in self.rng.sample(self.catalog.metric_names(), count):
            subclass = self.catalog.get(metric)
            investor.add_influencer(self.new_influencer(f"{{{subclass.subclass},Metric={metric}}}"))
        investor.compute_id()
        return investor

    def new_investor_from_dna(self, dna: str) -> Investor:
        """
        Recreate an Investor from its DNA. The ID in the DNA is ignored and
        recomputed from the canonical form.

        Raises:
            GenomeError: If the DNA or any of its Influencers is invalid
        """
        genome = InvestorGenome.from_dna(dna)
        try:
            strategy = Strategy(genome.strategy)
        except ValueError:
            raise MalformedDNAError(f"unknown strategy: {genome.strategy}", details=dna)
        if genome.w1 < 0 or genome.w2 < 0 or genome.w1 + genome.w2 > 1 + WEIGHT_TOLERANCE:
            raise MalformedDNAError("investor weights must be non-negative with W1 + W2 <= 1",
                                    details=dna)
        if not genome.influencers:
            raise MalformedDNAError("investor DNA has no influencers", details=dna)

        investor = self._new_investor(strategy, genome.w1, genome.w2)
        for influencer_dna in genome.influencers:
            influencer = self.new_influencer(influencer_dna)
            if influencer.metric in investor.metrics():
                raise MalformedDNAError(f"metric {influencer.metric} appears more than once",
                                        details=dna)
            investor.add_influencer(influencer)
        investor.compute_id()
        return investor

    # ------------------------------------------------------------------
    # identity
    # ------------------------------------------------------------------

    def register(self, investor: Investor) -> bool:
        """Record an Investor's hash; False if it has been seen before."""
        if investor.id in self._seen_hashes:
            return False
        self._seen_hashes.add(investor.id)
        return True

    def build_unique(self, build: Callable[[], Investor], description: str) -> Optional[Investor]:
        """
        Call ``build`` until it yields an Investor with an unseen hash.

        A GenomeError from ``build`` counts as a failed attempt. After
        ``max_breed_attempts`` the last duplicate is accepted, or None is
        returned when every attempt failed.
        """
        evo = self.config.evolution
        duplicate = None
        for attempt in range(1, evo.max_breed_attempts + 1):
            try:
                investor = build()
            except GenomeError as e:
                self.breed_failures += 1
                logger.warning(f"Failed to build {description} investor (attempt {attempt}): {e}")
                continue
            if evo.allow_duplicate_investors or self.register(investor):
                return investor
            self.hash_duplicates += 1
            duplicate = investor
        if duplicate is not None:
            logger.warning(f"Accepting duplicate {description} investor {duplicate.id[:12]} "
                           f"after {evo.max_breed_attempts} attempts")
        return duplicate

    # ------------------------------------------------------------------
    # selection and breeding
    # ------------------------------------------------------------------

    def roulette_select(self, population: Sequence[Investor], total_fitness: float, used: int = -1) -> int:
        """
        Fitness-proportionate selection.

        Spin in [0, total_fitness] and return the first index (skipping
        ``used``) whose cumulative fitness reaches the spin. When no
        Investor has any fitness the pick is uniform.
        """
        if total_fitness <= 0:
            return self.rng.choice([i for i in range(len(population)) if i != used])

        spin = self.rng.random() * total_fitness
        running = 0.0
        for i, investor in enumerate(population):
            if i == used:
                continue
            running += investor.calculate_fitness_score()
            if running >= spin:
                return i
        # floating point rounding
        return len(population) - 1

    def select_parents(self, population: Sequence[Investor], total_fitness: float) -> Tuple[int, int]:
        """Pick two distinct parent indices."""
        first = self.roulette_select(population, total_fitness)
        second = first
        for _ in range(PARENT_SELECTION_RETRIES):
            second = self.roulette_select(population, total_fitness, used=first)
            if second != first:
                break
        if second == first:
            second = next(i for i in range(len(population)) if i != first)
        return first, second

    def _influencer_dna_candidates(self, parent1: Investor, parent2: Investor,
                                   count: int) -> List[Tuple[str, Optional[str]]]:
        by_metric: Dict[str, List[str]] = {}
        for parent in (parent1, parent2):
            for influencer in parent.influencers:
                by_metric.setdefault(influencer.metric, []).append(influencer.dna())
        candidates = []
        for dnas in by_metric.values():
            if len(dnas) == 1:
                candidates.append((dnas[0], None))
                continue
            # either parent may lead the crossover
            if self.rng.randint(0, 1):
                dnas.reverse()
            candidates.append((dnas[0], dnas[1]))
        self.rng.shuffle(candidates)
        return candidates[:count]

    @staticmethod
    def crossover_influencer_dna(dna1: str, dna2: str) -> str:
        """
        Blend two Influencer DNAs for the same metric, alternating the parent
        each attribute is taken from: first key from dna1, second from dna2,
        and so on.
        """
        subclass, values1 = parse_influencer_dna(dna1)
        _, values2 = parse_influencer_dna(dna2)
        sources = (values1, values2)
        blended = {}
        toggle = 0
        for key in values1:
            blended[key] = sources[toggle].get(key, values1[key])
            toggle = 1 - toggle
        return format_influencer_fields(subclass, blended)

    def breed_new_investor(self, parent1: Investor, parent2: Investor) -> Investor:
        """
        Create a child from two parents, then maybe mutate it.

        Raises:
            GenomeError: If the blended genome is invalid
        """
        parents = (parent1, parent2)
        maps = [parse_investor_dna(p.dna()) for p in parents]

        if self.rng.randint(0, 1) == 0:
            w1 = float(self.rng.choice(maps)[KEY_W1])
            w2 = 1.0 - w1
        else:
            w2 = float(self.rng.choice(maps)[KEY_W2])
            w1 = 1.0 - w2
        strategy = self.rng.choice(parents).strategy

        counts = [len(p.influencers) for p in parents]
        count = self.rng.randint(min(counts), max(counts))

        child = self._new_investor(strategy, w1, w2)
        for dna1, dna2 in self._influencer_dna_candidates(parent1, parent2, count):
            dna = dna1 if dna2 is None else self.crossover_influencer_dna(dna1, dna2)
            child.add_influencer(self.new_influencer(dna))

        self.mutate(child)
        child.compute_id()
        return child

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------

    def _redraw_weight(self, current: float) -> float:
        weight = self.rng.random()
        while weight == current:
            weight = self.rng.random()
        return weight

    def mutate(self, investor: Investor) -> bool:
        """
        With probability ``mutation_rate`` percent, change one DNA field.

        Returns:
            True if a mutation was applied
        """
        self.mutate_calls += 1
        if self.rng.randint(1, 100) > self.config.evolution.mutation_rate:
            return False

        self.mutations += 1
        key = self.rng.choice([KEY_W1, KEY_W2, KEY_STRATEGY, KEY_INFLUENCERS])
        if key == KEY_W1:
            investor.w1 = self._redraw_weight(investor.w1)
            investor.w2 = 1.0 - investor.w1
        elif key == KEY_W2:
            investor.w2 = self._redraw_weight(investor.w2)
            investor.w1 = 1.0 - investor.w2
        elif key == KEY_STRATEGY:
            investor.strategy = self.rng.choice(list(Strategy))
        else:
            self.mutate_influencer(investor)
        return True

    def random_unused_metric(self, investor: Investor) -> Optional[str]:
        used = set(investor.metrics())
        available = [m for m in self.catalog.metric_names() if m not in used]
        if not available:
            return None
        return self.rng.choice(available)

    def mutate_influencer(self, investor: Investor, mutation: Optional[Mutation] = None) -> bool:
        """
        Add, delete or modify one Influencer.

        When ``mutation`` is omitted it is drawn: half the time a structural
        change (add or delete, equally likely), otherwise a modify.

        Returns:
            True if the Influencer set changed
        """
        if mutation is None:
            if self.rng.random() < 0.5:
                mutation = self.rng.choice([Mutation.ADD, Mutation.DELETE])
            else:
                mutation = Mutation.MODIFY

        inv_cfg = self.config.investor
        count = len(investor.influencers)

        if mutation is Mutation.ADD:
            if count >= inv_cfg.max_influencers or count >= len(self.catalog):
                return False
            metric = self.random_unused_metric(investor)
            if metric is None:
                return False
            subclass = self.catalog.get(metric)
            investor.add_influencer(self.new_influencer(f"{{{subclass.subclass},Metric={metric}}}"))
            return True

        if mutation is Mutation.DELETE:
            if count <= inv_cfg.min_influencers:
                return False
            del investor.influencers[self.rng.randrange(count)]
            return True

        if count == 0:
            return False
        index = self.rng.randrange(count)
        current = investor.influencers[index]
        replacement = self.new_influencer(f"{{{current.subclass.subclass},Metric={current.metric}}}")
        replacement.attach(investor)
        investor.influencers[index] = replacement
        return True

    # ------------------------------------------------------------------
    # populations
    # ------------------------------------------------------------------

    def new_population(self, population: List[Investor]) -> List[Investor]:
        """
        Breed ``population_size - elite_count`` children from ``population``.

        Raises:
            OptimizationError: If the population has fewer than two members
        """
        if len(population) < 2:
            raise OptimizationError("population size must be at least 2",
                                    details={"population": len(population)})

        child_count = self.config.simulation.population_size - self.config.elite_count
        total_fitness = fitness_sum(population)
        children: List[Investor] = []

        for _ in range(child_count):
            first, second = self.select_parents(population, total_fitness)
            parent1, parent2 = population[first], population[second]
            parent1.parented += 1
            parent2.parented += 1

            child = self.build_unique(lambda: self.breed_new_investor(parent1, parent2), "bred")
            if child is None:
                logger.warning("Breeding failed repeatedly; substituting a random investor")
                child = self.build_unique(self.random_investor, "random")
                if child is None:
                    raise OptimizationError("Unable to build a replacement investor")
            children.append(child)

        logger.debug(f"Bred {len(children)} investors", extra={
            "extra_fields": {
                "total_fitness": total_fitness,
                "mutate_calls": self.mutate_calls,
                "mutations": self.mutations,
                "hash_duplicates": self.hash_duplicates,
                "breed_failures": self.breed_failures,
            }
        })
        return children
