"""
Tests for Investors: vote resolution, trading and fitness.
"""

from datetime import date, timedelta
from unittest.mock import Mock

import pytest

from fxevo.core.exceptions import InvestorError, SimulationInvariantError
from fxevo.data.access import InMemoryDataSource
from fxevo.optimization.backtesting.influencer import Action, Influencer
from fxevo.optimization.backtesting.investor import (
    SETTLE_EPSILON,
    CourseOfAction,
    Investor,
    Strategy,
    resolve_course_of_action,
)
from fxevo.optimization.genetic.fitness import StepBonusPolicy

pytestmark = [
    pytest.mark.unit,
    pytest.mark.optimization,
    pytest.mark.backtesting
]

D1 = date(2022, 2, 1)


def day(n):
    return D1 + timedelta(days=n)


def rates_source(*rates, extra=None):
    """One USDJPY close per day starting D1; None leaves the day out."""
    rows = {}
    for n, rate in enumerate(rates):
        if rate is None:
            continue
        rows[day(n)] = {"USDJPYEXClose": rate}
        rows[day(n)].update(extra or {})
    return InMemoryDataSource(rows, window_size=3)


def assert_conserved(investor):
    for lot in investor.investments:
        if lot.bookkeeping:
            continue
        sold = sum(chunk.t4_c2_sold for chunk in lot.chunks)
        assert sold <= lot.t3_c2_buy + SETTLE_EPSILON
        assert lot.completed == (sold >= lot.t3_c2_buy - SETTLE_EPSILON)


class TestResolveCourseOfAction:
    """Test turning vote tallies into an action."""

    def test_majority_rules_buy(self):
        """Test that two buy votes beat one hold."""
        coa = CourseOfAction(buy_votes=2.0, hold_votes=1.0)
        resolved = resolve_course_of_action(coa, Strategy.MAJORITY_RULES)

        assert resolved.action is Action.BUY
        assert resolved.action_pct == 1.0
        assert resolved.total_votes == 3.0
        assert coa.action is Action.ABSTAIN

    def test_majority_rules_needs_strict_majority(self):
        coa = CourseOfAction(buy_votes=1.0, sell_votes=1.0)
        assert resolve_course_of_action(coa, Strategy.MAJORITY_RULES).action is Action.HOLD

    @pytest.mark.parametrize("buy,hold,sell,action,pct", [
        (3.0, 0.0, 0.0, Action.BUY, 1.0),
        (0.0, 2.0, 0.0, Action.HOLD, 1.0),
        (0.0, 0.0, 1.0, Action.SELL, 1.0),
        (2.0, 0.0, 1.0, Action.BUY, 2.0 / 3.0),
        (1.0, 1.0, 2.0, Action.SELL, 0.5),
        (1.0, 2.0, 1.0, Action.HOLD, 0.5),
    ])
    def test_distributed_decision(self, buy, hold, sell, action, pct):
        coa = CourseOfAction(buy_votes=buy, hold_votes=hold, sell_votes=sell, abstains=4)
        resolved = resolve_course_of_action(coa, Strategy.DISTRIBUTED_DECISION)

        assert resolved.action is action
        assert resolved.action_pct == pytest.approx(pct)
        assert resolved.total_votes == buy + hold + sell

    @pytest.mark.parametrize("strategy", list(Strategy))
    def test_all_abstain(self, strategy):
        resolved = resolve_course_of_action(CourseOfAction(abstains=3), strategy)

        assert resolved.action is Action.ABSTAIN
        assert resolved.action_pct == 0.0


class TestTrading:
    """Test buys, sells and the lot ledger."""

    def test_buy_then_partial_sell(self, config):
        """Test buying at 150.21 and selling half at 149.30."""
        investor = Investor(config, rates_source(150.21, 150.00, 149.30))

        lot = investor.execute_buy(day(0), 1.0)
        assert lot.t3_c1 == pytest.approx(100.0)
        assert lot.t3_c2_buy == pytest.approx(15021.0)
        assert investor.balance_c1 == pytest.approx(900.0)
        assert investor.balance_c2 == pytest.approx(15021.0)

        unsold = investor.execute_sell(day(2), 0.5)
        chunk = lot.chunks[0]

        assert unsold == pytest.approx(0.0)
        assert chunk.t4_c2_sold == pytest.approx(7510.5)
        assert chunk.t4_c1 == pytest.approx(7510.5 / 149.30)
        assert chunk.profitable is True
        assert not lot.completed
        assert investor.balance_c1 == pytest.approx(900.0 + 7510.5 / 149.30)
        assert investor.balance_c2 == pytest.approx(7510.5)

    def test_fees(self, config):
        config.simulation.txn_fee = 1.0
        config.simulation.txn_fee_factor = 0.01
        investor = Investor(config, rates_source(100.0, 100.0))

        lot = investor.execute_buy(day(0), 1.0)
        assert lot.fee == pytest.approx(2.0)
        assert investor.balance_c1 == pytest.approx(898.0)

        investor.execute_sell(day(1), 1.0)
        bookkeeping = investor.investments[-1]

        assert investor.balance_c1 == pytest.approx(898.0 + 99.0 - 1.0)
        assert bookkeeping.bookkeeping and bookkeeping.completed
        assert bookkeeping.fee == pytest.approx(1.0)
        assert lot.completed

    def test_buy_capped_by_balance(self, config):
        config.simulation.txn_fee_factor = 0.01
        investor = Investor(config, rates_source(100.0))
        investor.balance_c1 = 50.0

        lot = investor.execute_buy(day(0), 1.0)

        assert lot.t3_c1 + lot.fee == pytest.approx(50.0)
        assert investor.balance_c1 == pytest.approx(0.0, abs=1e-9)

    def test_nothing_to_spend(self, config):
        investor = Investor(config, rates_source(100.0))
        investor.balance_c1 = 0.5

        assert investor.execute_buy(day(0), 1.0) is None
        assert investor.investments == []

    def test_buy_without_rate(self, config):
        investor = Investor(config, rates_source(100.0))
        with pytest.raises(SimulationInvariantError, match="Exchange rate not found"):
            investor.execute_buy(day(5), 1.0)

    def test_sell_without_rate_is_skipped(self, config):
        investor = Investor(config, rates_source(100.0))
        investor.execute_buy(day(0), 1.0)

        assert investor.execute_sell(day(3), 1.0) == pytest.approx(10000.0)
        assert investor.balance_c2 == pytest.approx(10000.0)

    def test_settlement_conserves_c2(self, config):
        investor = Investor(config, rates_source(100.0, 110.0, 120.0, 105.0, 105.0, 105.0, 105.0))
        for n in range(3):
            investor.execute_buy(day(n), 1.0)
        total_c2 = investor.balance_c2

        investor.execute_sell(day(3), 0.5)
        assert_conserved(investor)
        states = sorted((lot.completed, lot.t4_c2_sold > 0) for lot in investor.investments)
        assert states == [(False, False), (False, True), (True, True)]
        assert investor.balance_c2 == pytest.approx(total_c2 / 2)

        investor.execute_sell(day(4), 0.4)
        assert_conserved(investor)

        investor.execute_sell(day(5), 1.0)
        assert_conserved(investor)
        assert all(lot.completed for lot in investor.investments)
        assert investor.balance_c2 == pytest.approx(0.0, abs=SETTLE_EPSILON)

    def test_settlement_sells_biggest_loss_first(self, config):
        """Test that a partial sale draws only from the lot bought at the lower rate."""
        investor = Investor(config, rates_source(110.0, 100.0, 105.0))
        dear = investor.execute_buy(day(0), 1.0)
        cheap = investor.execute_buy(day(1), 1.0)

        unsold = investor.settle_investment(day(2), 5000.0)

        assert unsold == pytest.approx(0.0)
        assert cheap.t4_c2_sold == pytest.approx(5000.0)
        assert cheap.chunks[0].profitable is False
        assert dear.t4_c2_sold == 0.0
        assert dear.chunks == []
        assert investor.investments == [dear, cheap]
        assert_conserved(investor)

    def test_settlement_skips_completed_lots(self, config):
        investor = Investor(config, rates_source(100.0, 110.0, 105.0, 105.0))
        first = investor.execute_buy(day(0), 1.0)
        second = investor.execute_buy(day(1), 1.0)

        investor.settle_investment(day(2), 10000.0)
        assert first.completed and not second.chunks

        investor.settle_investment(day(3), 1000.0)
        assert len(first.chunks) == 1
        assert second.t4_c2_sold == pytest.approx(1000.0)

    @pytest.mark.parametrize("rate", [0.0, 0.00005])
    def test_buy_with_invalid_rate(self, config, rate):
        investor = Investor(config, rates_source(rate, 100.0))

        with pytest.raises(SimulationInvariantError, match="Invalid exchange rate") as exc_info:
            investor.execute_buy(day(0), 1.0)

        assert exc_info.value.details["date"] == day(0).isoformat()
        assert investor.investments == []
        assert investor.balance_c1 == 1000.0

    def test_chunk_profitability(self, config):
        investor = Investor(config, rates_source(100.0, 110.0, 105.0))
        investor.execute_buy(day(0), 1.0)
        investor.execute_buy(day(1), 1.0)
        investor.execute_sell(day(2), 1.0)

        by_rate = {lot.ert3: lot.chunks[0].profitable for lot in investor.investments}
        assert by_rate == {100.0: False, 110.0: True}
        assert investor.correctness() == 0.5

    def test_influencers_told_outcome(self, config):
        investor = Investor(config, rates_source(110.0, 105.0))
        influencer = Mock(spec=Influencer)
        investor.add_influencer(influencer)

        investor.execute_buy(day(0), 1.0)
        investor.execute_sell(day(1), 1.0)

        influencer.attach.assert_called_once_with(investor)
        influencer.finalize_prediction.assert_called_once_with(day(0), day(1), True)

    def test_portfolio_value(self, config):
        investor = Investor(config, rates_source(100.0, 200.0))
        assert investor.portfolio_value(day(9)) == 1000.0

        investor.execute_buy(day(0), 1.0)
        assert investor.portfolio_value(day(1)) == pytest.approx(900.0 + 10000.0 / 200.0)
        with pytest.raises(SimulationInvariantError):
            investor.portfolio_value(day(9))


class TestDailyDecision:
    """Test stop-loss and the daily run."""

    @pytest.fixture
    def voter(self, config, catalog):
        def build(data):
            investor = Investor(config, data, strategy=Strategy.MAJORITY_RULES)
            investor.add_influencer(Influencer(catalog.get("BC"), -2, -1, data, "USD", "JPY"))
            return investor
        return build

    def test_no_influencers(self, config):
        with pytest.raises(InvestorError):
            Investor(config, rates_source(100.0)).decide_course_of_action(day(0))

    def test_votes(self, voter):
        data = InMemoryDataSource({
            day(0): {"USDJPYEXClose": 100.0, "BC": 10.0},
            day(1): {"USDJPYEXClose": 100.0, "BC": 8.0},
            day(2): {"USDJPYEXClose": 100.0, "BC": 8.0},
        }, window_size=3)
        investor = voter(data)

        coa = investor.daily_run(day(2))

        assert coa.action is Action.BUY
        assert coa.buy_votes == 1.0
        assert len(investor.investments) == 1

    def test_missing_data_abstains(self, voter):
        coa = voter(rates_source(100.0, 100.0, 100.0)).decide_course_of_action(day(2))

        assert coa.action is Action.ABSTAIN
        assert coa.abstains == 1

    def test_stop_loss(self, config, voter):
        config.simulation.std_investment = 1000.0
        investor = voter(rates_source(100.0, 200.0))
        investor.execute_buy(day(0), 1.0)

        coa = investor.daily_run(day(1))

        assert coa.stop_loss and coa.action is Action.SELL
        assert investor.balance_c2 == pytest.approx(0.0)
        assert investor.balance_c1 == pytest.approx(500.0)
        assert investor.stop_loss_threshold == pytest.approx(0.88 * 500.0)
        assert investor.stop_loss_count == 1

    def test_stop_loss_waits_for_rate(self, config, voter):
        config.simulation.std_investment = 1000.0
        investor = voter(rates_source(100.0, None, 200.0))
        investor.execute_buy(day(0), 1.0)

        assert not investor.decide_course_of_action(day(1)).stop_loss
        assert investor.stop_loss_count == 0

    def test_wind_down_ignores_buys(self, config, mocker):
        investor = Investor(config, rates_source(100.0, 100.0))
        mocker.patch.object(investor, "decide_course_of_action",
                            return_value=CourseOfAction(action=Action.BUY, action_pct=1.0))

        investor.daily_run(day(0), winddown=True)
        assert investor.investments == []

        investor.daily_run(day(0))
        assert len(investor.investments) == 1

    def test_reset_keeps_genome(self, config, voter):
        investor = voter(rates_source(100.0))
        investor.execute_buy(day(0), 1.0)
        investor.reset()

        assert investor.balance_c1 == config.simulation.init_funds
        assert investor.balance_c2 == 0.0
        assert investor.investments == []
        assert investor.metrics() == ["BC"]


class TestFitness:
    """Test the fitness score."""

    @pytest.fixture
    def investor(self, config):
        return Investor(config, rates_source(100.0), w1=0.5, w2=0.5)

    def test_profit_share(self, investor):
        investor.portfolio_value_c1 = 1050.0
        investor.max_profit = 50.0

        assert investor.calculate_fitness_score() == pytest.approx(0.5)

    def test_floored_at_zero(self, investor):
        investor.portfolio_value_c1 = 900.0
        investor.max_profit = 50.0

        assert investor.calculate_fitness_score() == 0.0

    def test_no_profit_anywhere(self, investor):
        investor.portfolio_value_c1 = 990.0
        investor.max_profit = 0.0

        assert investor.calculate_fitness_score() == 0.0

    def test_cached(self, investor):
        investor.portfolio_value_c1 = 1050.0
        investor.max_profit = 50.0
        investor.calculate_fitness_score()
        investor.portfolio_value_c1 = 1000.0

        assert investor.calculate_fitness_score() == pytest.approx(0.5)

    def test_not_finite(self, investor):
        investor.portfolio_value_c1 = float("nan")
        with pytest.raises(SimulationInvariantError):
            investor.calculate_fitness_score()

    def test_bonus(self, config):
        investor = Investor(config, rates_source(100.0), w1=0.5, w2=0.5,
                            bonus_policy=StepBonusPolicy([(0.1, 2.0)]))
        investor.dt_gen_start = date(2021, 1, 1)
        investor.dt_portfolio_value = date(2022, 1, 1)
        investor.portfolio_value_c1 = 1200.0
        investor.max_profit = 200.0

        assert investor.annualized_return() == pytest.approx(0.2, abs=1e-3)
        assert investor.calculate_fitness_score() == pytest.approx(1.0)
