"""
Investors: vote aggregation, trading and the lot ledger.

An Investor holds a C1 (home) and C2 (foreign) balance. Each simulated day
it polls its Influencers, resolves their votes into a course of action with
its Strategy, and buys C2 or sells it back. Every buy is recorded as an
Investment lot; sells liquidate open lots in chunks, the biggest loss against its
purchase rate first.
"""

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import List, Optional

from ...core.config import Config
from ...core.exceptions import InvestorError, NilDataError, SimulationInvariantError
from ...core.logging import get_logger
from ...data.access import DataAccessPort, FieldSelector
from ...utils.helpers import generate_ref_no, is_finite, safe_divide
from ..genetic.fitness import BonusPolicy, NoBonus
from ..genetic.genome import InvestorGenome
from .influencer import Action, Influencer
from .metrics import annualized_return

logger = get_logger(__name__)

# C2 left in a lot (or still to sell) below this is treated as settled
SETTLE_EPSILON = 0.01
# balances below this are too small to trade
MIN_TRADE_BALANCE = 1.00
MIN_EXCHANGE_RATE = 0.0001


class Strategy(Enum):
    """How an Investor turns Influencer votes into a course of action."""
    DISTRIBUTED_DECISION = "DistributedDecision"
    MAJORITY_RULES = "MajorityRules"


@dataclass
class CourseOfAction:
    """An Investor's decision for one day, with the votes behind it."""
    action: Action = Action.ABSTAIN
    action_pct: float = 0.0
    buy_votes: float = 0.0
    hold_votes: float = 0.0
    sell_votes: float = 0.0
    total_votes: float = 0.0
    abstains: float = 0.0
    stop_loss: bool = False


@dataclass
class SellInfo:
    """One chunk of a lot sold back to C1."""
    t4: date
    ert4: float
    t4_c2_sold: float
    t4_c2_remaining: float
    t4_c1: float
    fee: float
    profitable: bool
    chunk_profit: float


@dataclass
class Investment:
    """A lot: one purchase of C2, possibly sold back over several chunks."""
    t3: date
    ert3: float
    t3_c1: float
    t3_c2_buy: float
    fee: float
    t3_balance_c1: float = 0.0
    t3_balance_c2: float = 0.0
    id: str = field(default_factory=generate_ref_no)
    t4: Optional[date] = None
    ert4: float = 0.0
    t4_c2_sold: float = 0.0
    t4_c1: float = 0.0
    t4_balance_c1: float = 0.0
    t4_balance_c2: float = 0.0
    chunks: List[SellInfo] = field(default_factory=list)
    completed: bool = False
    bookkeeping: bool = False

    @property
    def remaining_c2(self) -> float:
        return self.t3_c2_buy - self.t4_c2_sold


def resolve_course_of_action(coa: CourseOfAction, strategy: Strategy) -> CourseOfAction:
    """
    Resolve tallied votes into an action and the percentage to trade.

    Pure: returns a new CourseOfAction and leaves ``coa`` untouched.
    Abstentions are never part of the total. With no active votes at all
    the result is an abstain.
    """
    total = coa.buy_votes + coa.hold_votes + coa.sell_votes
    resolved = replace(coa, total_votes=total)
    if total == 0:
        resolved.action = Action.ABSTAIN
        resolved.action_pct = 0.0
        return resolved

    if strategy is Strategy.MAJORITY_RULES:
        resolved.action_pct = 1.0
        if coa.buy_votes > coa.sell_votes + coa.hold_votes:
            resolved.action = Action.BUY
        elif coa.sell_votes > coa.buy_votes + coa.hold_votes:
            resolved.action = Action.SELL
        else:
            resolved.action = Action.HOLD
        return resolved

    if coa.buy_votes == total:
        resolved.action, resolved.action_pct = Action.BUY, 1.0
    elif coa.hold_votes == total:
        resolved.action, resolved.action_pct = Action.HOLD, 1.0
    elif coa.sell_votes == total:
        resolved.action, resolved.action_pct = Action.SELL, 1.0
    elif coa.buy_votes > coa.sell_votes:
        resolved.action, resolved.action_pct = Action.BUY, coa.buy_votes / total
    elif coa.sell_votes > coa.buy_votes:
        resolved.action, resolved.action_pct = Action.SELL, coa.sell_votes / total
    else:
        resolved.action, resolved.action_pct = Action.HOLD, coa.hold_votes / total
    return resolved


class Investor:
    """
    A trader advised by a set of Influencers.

    Investors are built by the Factory (randomly, from DNA, or by breeding)
    and live for one generation. ``id`` is the hash of the canonical DNA and
    is refreshed by ``compute_id`` whenever the genome changes.
    """

    def __init__(self, config: Config, data: DataAccessPort,
                 strategy: Strategy = Strategy.DISTRIBUTED_DECISION,
                 w1: Optional[float] = None, w2: Optional[float] = None,
                 bonus_policy: Optional[BonusPolicy] = None):
        self.config = config
        self.data = data
        self.bonus_policy = bonus_policy or NoBonus()
        self.strategy = strategy
        self.w1 = config.investor.inv_w1 if w1 is None else w1
        self.w2 = config.investor.inv_w2 if w2 is None else w2
        self.influencers: List[Influencer] = []
        self.id = ""
        self.parented = 0
        self.elite = False
        self.max_profit = 0.0
        self.dt_gen_start: Optional[date] = None
        self.reset()

    def reset(self) -> None:
        """Return to the start-of-generation state; the genome is kept."""
        init_funds = self.config.simulation.init_funds
        self.balance_c1 = init_funds
        self.balance_c2 = 0.0
        self.stop_loss_threshold = (1 - self.config.simulation.stop_loss) * init_funds
        self.stop_loss_count = 0
        self.portfolio_value_c1 = 0.0
        self.dt_portfolio_value: Optional[date] = None
        self.investments: List[Investment] = []
        self.fitness = 0.0
        self.fitness_calculated = False
        for influencer in self.influencers:
            influencer.predictions = []
            influencer.nil_data_count = 0

    # ------------------------------------------------------------------
    # genome
    # ------------------------------------------------------------------

    def add_influencer(self, influencer: Influencer) -> None:
        influencer.attach(self)
        self.influencers.append(influencer)

    def sort_influencers(self) -> None:
        self.influencers.sort(key=lambda inf: inf.metric)

    def genome(self) -> InvestorGenome:
        return InvestorGenome(
            strategy=self.strategy.value,
            w1=self.w1,
            w2=self.w2,
            influencers=[inf.dna() for inf in self.influencers]
        )

    def compute_id(self) -> str:
        self.sort_influencers()
        self.id = self.genome().hash()
        return self.id

    def dna(self) -> str:
        return self.genome().to_dna()

    def metrics(self) -> List[str]:
        return [inf.metric for inf in self.influencers]

    # ------------------------------------------------------------------
    # market data
    # ------------------------------------------------------------------

    def _rate_selector(self) -> FieldSelector:
        sim = self.config.simulation
        return FieldSelector(self.config.exchange_rate_metric, sim.c1, sim.c2)

    def exchange_rate(self, day: date) -> Optional[float]:
        """C1C2 closing rate on ``day``, or None when there is no data."""
        selector = self._rate_selector()
        record = self.data.select(day, [selector])
        if record is None or not record.has(selector.fq_metric()):
            return None
        return record.value(selector.fq_metric())

    def _invariant(self, message: str, day: date) -> SimulationInvariantError:
        return SimulationInvariantError(message, details={
            "date": day.isoformat(),
            "investor": self.id,
            "field": self._rate_selector().fq_metric(),
        })

    def portfolio_value(self, day: date) -> float:
        """
        Value of both balances in C1 at the ``day`` rate.

        Raises:
            SimulationInvariantError: If C2 is held and the rate is missing or invalid
        """
        if self.balance_c2 == 0:
            return self.balance_c1
        rate = self.exchange_rate(day)
        if rate is None:
            raise self._invariant("Exchange rate not found for portfolio value", day)
        if rate < MIN_EXCHANGE_RATE:
            raise self._invariant(f"Invalid exchange rate {rate}", day)
        return self.balance_c1 + self.balance_c2 / rate

    # ------------------------------------------------------------------
    # daily decision
    # ------------------------------------------------------------------

    def decide_course_of_action(self, t3: date) -> CourseOfAction:
        """
        Decide what to do on ``t3``.

        A stop-loss sells all C2 and pre-empts voting. Otherwise every
        Influencer votes; missing data counts as an abstention.

        Raises:
            InvestorError: If this Investor has no Influencers
        """
        if not self.influencers:
            raise InvestorError("Investor has no influencers", details={"investor": self.id})

        # no rate means no valuation today, so the stop-loss waits
        pv = self.portfolio_value(t3) if self.balance_c2 == 0 or self.exchange_rate(t3) is not None \
            else None
        if pv is not None and pv < self.stop_loss_threshold:
            self.execute_sell(t3, 1.0)
            self.stop_loss_threshold = (1 - self.config.simulation.stop_loss) * self.balance_c1
            self.stop_loss_count += 1
            logger.info(f"Stop loss on {t3}: portfolio value {pv:.2f}, "
                        f"new threshold {self.stop_loss_threshold:.2f}", extra={
                            "extra_fields": {"investor": self.id, "stop_loss_count": self.stop_loss_count}
                        })
            return CourseOfAction(action=Action.SELL, action_pct=1.0, stop_loss=True)

        coa = CourseOfAction()
        for influencer in self.influencers:
            try:
                prediction = influencer.get_prediction(t3)
            except NilDataError:
                coa.abstains += 1
                continue
            vote = prediction.probability * prediction.weight
            if prediction.action is Action.BUY:
                coa.buy_votes += vote
            elif prediction.action is Action.SELL:
                coa.sell_votes += vote
            elif prediction.action is Action.HOLD:
                coa.hold_votes += vote
            else:
                coa.abstains += 1

        return resolve_course_of_action(coa, self.strategy)

    def daily_run(self, t3: date, winddown: bool = False) -> CourseOfAction:
        """
        Decide and act for one day. During wind-down buys are ignored.

        Returns:
            The course of action taken
        """
        coa = self.decide_course_of_action(t3)
        if coa.stop_loss:
            return coa
        if coa.action is Action.BUY and not winddown:
            self.execute_buy(t3, coa.action_pct)
        elif coa.action is Action.SELL:
            self.execute_sell(t3, coa.action_pct)
        return coa

    # ------------------------------------------------------------------
    # trading
    # ------------------------------------------------------------------

    def execute_buy(self, t3: date, pct: float) -> Optional[Investment]:
        """
        Exchange ``pct`` of the standard investment (or of the C1 balance, if
        smaller) for C2 at the ``t3`` rate.

        Returns:
            The new lot, or None when there was nothing to spend

        Raises:
            SimulationInvariantError: If the ``t3`` exchange rate is missing or below 0.0001
        """
        if self.balance_c1 < MIN_TRADE_BALANCE:
            return None

        sim = self.config.simulation
        c1 = min(self.balance_c1, sim.std_investment) * pct
        rate = self.exchange_rate(t3)
        if rate is None:
            raise self._invariant("Exchange rate not found for buy", t3)
        if rate < MIN_EXCHANGE_RATE:
            raise self._invariant(f"Invalid exchange rate {rate}", t3)

        fee = c1 * sim.txn_fee_factor + sim.txn_fee
        if c1 + fee > self.balance_c1:
            c1 = (self.balance_c1 - sim.txn_fee) / (1 + sim.txn_fee_factor)
            if c1 <= 0:
                return None
            fee = c1 * sim.txn_fee_factor + sim.txn_fee

        c2 = c1 * rate
        self.balance_c1 -= c1 + fee
        self.balance_c2 += c2
        investment = Investment(
            t3=t3,
            ert3=rate,
            t3_c1=c1,
            t3_c2_buy=c2,
            fee=fee,
            t3_balance_c1=self.balance_c1,
            t3_balance_c2=self.balance_c2
        )
        self.investments.append(investment)
        logger.debug(f"BUY {c1:.2f} {sim.c1} -> {c2:.2f} {sim.c2} at {rate} on {t3} (fee {fee:.2f})")
        return investment

    def execute_sell(self, t4: date, pct: float) -> float:
        """
        Sell ``pct`` of the C2 balance.

        Returns:
            C2 that could not be sold (0 when all of it settled)
        """
        if self.balance_c2 < MIN_TRADE_BALANCE:
            return 0.0
        return self.settle_investment(t4, pct * self.balance_c2)

    def settle_investment(self, t4: date, amount: float) -> float:
        """
        Sell ``amount`` of C2 from open lots, biggest loss first.

        Open lots are stamped with the ``t4`` rate and visited by ``ert4 / ert3``,
        highest first, so the lot bought at the lowest rate goes first. Each lot gives up its remainder or whatever is still
        to sell, producing one SellInfo chunk, and every Influencer is told
        whether the decision that opened the lot turned out profitable.

        Args:
            t4: Sale date
            amount: C2 to sell

        Returns:
            The part of ``amount`` left unsold

        Raises:
            SimulationInvariantError: If the ``t4`` rate is below 0.0001
        """
        sim = self.config.simulation
        rate = self.exchange_rate(t4)
        if rate is None:
            logger.error(f"Exchange rate not found on {t4}; sale of {amount:.2f} {sim.c2} skipped",
                         extra={"extra_fields": {"investor": self.id}})
            return amount
        if rate < MIN_EXCHANGE_RATE:
            raise self._invariant(f"Invalid exchange rate {rate}", t4)

        open_lots = [inv for inv in self.investments if not inv.completed]
        for investment in open_lots:
            investment.ert4 = rate
        # biggest loss relative to the purchase rate first
        open_lots.sort(key=lambda inv: inv.ert4 / inv.ert3, reverse=True)

        chunks_sold = 0
        for investment in open_lots:
            if amount <= SETTLE_EPSILON:
                break

            remaining = investment.remaining_c2
            sold = remaining if amount >= remaining else amount
            amount -= sold

            c1 = sold / investment.ert4
            fee = c1 * sim.txn_fee_factor
            investment.t4_c2_sold += sold
            investment.t4_c1 += c1
            self.balance_c1 += c1 - fee
            self.balance_c2 -= sold

            profitable = investment.ert4 < investment.ert3
            investment.chunks.append(SellInfo(
                t4=t4,
                ert4=investment.ert4,
                t4_c2_sold=sold,
                t4_c2_remaining=investment.remaining_c2,
                t4_c1=c1,
                fee=fee,
                profitable=profitable,
                chunk_profit=c1 - sold / investment.ert3 - fee
            ))
            investment.completed = investment.t4_c2_sold + SETTLE_EPSILON >= investment.t3_c2_buy
            investment.t4_balance_c1 = self.balance_c1
            investment.t4_balance_c2 = self.balance_c2
            investment.t4 = t4
            chunks_sold += 1

            for influencer in self.influencers:
                influencer.finalize_prediction(investment.t3, t4, profitable)

            logger.debug(f"SELL {sold:.2f} {sim.c2} -> {c1:.2f} {sim.c1} at {rate} on {t4} "
                         f"(lot {investment.id}, profitable={profitable})")

        if sim.txn_fee > 0 and chunks_sold:
            self.balance_c1 -= sim.txn_fee
            self.investments.append(Investment(
                t3=t4,
                ert3=rate,
                t3_c1=0.0,
                t3_c2_buy=0.0,
                fee=sim.txn_fee,
                t3_balance_c1=self.balance_c1,
                t3_balance_c2=self.balance_c2,
                t4=t4,
                ert4=rate,
                t4_balance_c1=self.balance_c1,
                t4_balance_c2=self.balance_c2,
                completed=True,
                bookkeeping=True
            ))

        return amount

    # ------------------------------------------------------------------
    # scoring
    # ------------------------------------------------------------------

    def snapshot_portfolio(self, day: date) -> float:
        self.portfolio_value_c1 = self.portfolio_value(day)
        self.dt_portfolio_value = day
        return self.portfolio_value_c1

    def correctness(self) -> float:
        """Share of chunks sold from completed lots that were profitable."""
        total = 0
        correct = 0
        for investment in self.investments:
            if not investment.completed:
                continue
            for chunk in investment.chunks:
                total += 1
                if chunk.profitable:
                    correct += 1
        return safe_divide(correct, total)

    def annualized_return(self) -> float:
        """Annualized return of this generation, 0 when it cannot be measured."""
        if (self.dt_gen_start is None or self.dt_portfolio_value is None
                or self.dt_portfolio_value <= self.dt_gen_start):
            return 0.0
        return annualized_return(self.config.simulation.init_funds, self.portfolio_value_c1,
                                 self.dt_gen_start, self.dt_portfolio_value)

    def calculate_fitness_score(self) -> float:
        """
        Fitness = W1 · profit / max_profit + W2 · correctness, floored at 0
        and then scaled by the bonus policy. Cached for the generation.

        Raises:
            SimulationInvariantError: If profit is not a finite number
        """
        if self.fitness_calculated:
            return self.fitness

        profit = self.portfolio_value_c1 - self.config.simulation.init_funds
        if not is_finite(profit):
            raise SimulationInvariantError("Investor profit is not finite", details={
                "investor": self.id,
                "portfolio_value_c1": self.portfolio_value_c1,
            })

        weighted_profit = self.w1 * profit / self.max_profit if self.max_profit > 0 else 0.0
        score = max(0.0, weighted_profit + self.w2 * self.correctness())
        self.fitness = self.bonus_policy.apply(score, self.annualized_return())
        self.fitness_calculated = True
        return self.fitness

    def __repr__(self) -> str:
        return (f"Investor(id={self.id[:12]}, strategy={self.strategy.value}, "
                f"influencers={self.metrics()})")
