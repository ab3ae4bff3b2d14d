"""
Generation statistics and top-investor tracking.

This module summarises each simulated generation (profitability, buys,
nil-data requests, unsettled currency) and keeps the best Investors seen
across the whole run.
"""

from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from ...core.exceptions import ValidationError
from ...utils.dates import days_between

DAYS_PER_YEAR = 365.25


def annualized_return(start_value: float, end_value: float, dt_start: date, dt_stop: date) -> float:
    """
    Compound annual growth rate between two portfolio values.

    ``(end / start) ^ (1 / years) - 1`` where years = days / 365.25.

    Args:
        start_value: Portfolio value on dt_start, must be positive
        end_value: Portfolio value on dt_stop
        dt_start: First date of the period
        dt_stop: Last date of the period

    Returns:
        Annualized return as a fraction (0.12 is 12%)

    Raises:
        ValidationError: If the period is empty or start_value is not positive
    """
    if dt_start >= dt_stop:
        raise ValidationError(f"Start date {dt_start} must be before stop date {dt_stop}")
    if start_value <= 0:
        raise ValidationError(f"Start value must be positive, got {start_value}")
    if end_value <= 0:
        return -1.0
    years = days_between(dt_start, dt_stop) / DAYS_PER_YEAR
    return (end_value / start_value) ** (1.0 / years) - 1.0


@dataclass
class SimulationStatistics:
    """What happened in one generation."""
    profitable_investors: int
    avg_profit: float
    max_profit: float
    max_profit_dna: str
    total_buys: int
    profitable_buys: int
    total_nil_data_requests: int
    dt_gen_start: date
    dt_gen_stop: date
    dt_actual_stop: date
    total_holding_c2: int
    unsettled_c2: float
    end_of_data_reached: bool
    stop_loss_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("dt_gen_start", "dt_gen_stop", "dt_actual_stop"):
            data[key] = data[key].isoformat()
        return data


@dataclass
class TopInvestor:
    """Enough of an Investor to report on it and recreate it from DNA."""
    dt_pv: Optional[date]
    portfolio_value: float
    dna: str
    gen_no: int
    balance_c1: float
    balance_c2: float
    stop_loss_count: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["dt_pv"] = self.dt_pv.isoformat() if self.dt_pv else None
        return data


def generation_statistics(investors: Sequence, init_funds: float, dt_gen_start: date,
                          dt_gen_stop: date, dt_actual_stop: date,
                          end_of_data_reached: bool) -> SimulationStatistics:
    """
    Summarise a finished generation.

    Profit figures cover profitable Investors only. Buy counts describe the
    single most profitable Investor; a buy is profitable when the profitable
    chunks sold from it made money.
    """
    profitable = 0
    total_profit = 0.0
    max_profit = 0.0
    best = None
    total_holding_c2 = 0
    unsettled_c2 = 0.0

    for investor in investors:
        if investor.portfolio_value_c1 > init_funds:
            profitable += 1
            profit = investor.portfolio_value_c1 - init_funds
            total_profit += profit
            if profit > max_profit:
                max_profit = profit
                best = investor
        if investor.balance_c2 >= 1.0:
            total_holding_c2 += 1
            unsettled_c2 += investor.balance_c2

    total_buys = 0
    profitable_buys = 0
    if best is not None:
        buys = [inv for inv in best.investments if not inv.bookkeeping]
        total_buys = len(buys)
        for investment in buys:
            chunk_profit = sum(c.chunk_profit for c in investment.chunks if c.profitable)
            if chunk_profit > 0:
                profitable_buys += 1

    return SimulationStatistics(
        profitable_investors=profitable,
        avg_profit=total_profit / profitable if profitable else 0.0,
        max_profit=max_profit,
        max_profit_dna=best.dna() if best is not None else "",
        total_buys=total_buys,
        profitable_buys=profitable_buys,
        total_nil_data_requests=sum(inf.nil_data_count for i in investors for inf in i.influencers),
        dt_gen_start=dt_gen_start,
        dt_gen_stop=dt_gen_stop,
        dt_actual_stop=dt_actual_stop,
        total_holding_c2=total_holding_c2,
        unsettled_c2=unsettled_c2,
        end_of_data_reached=end_of_data_reached,
        stop_loss_count=sum(i.stop_loss_count for i in investors)
    )


def update_top_investors(top_investors: List[TopInvestor], ranked: Sequence, count: int,
                         gen_no: int) -> List[TopInvestor]:
    """
    Merge this generation's best into the run-wide top list.

    Args:
        top_investors: Current top list
        ranked: This generation's Investors, best portfolio value first
        count: How many to keep
        gen_no: Generation the ranked Investors came from

    Returns:
        The new top list, best first, at most ``count`` long
    """
    candidates = [
        TopInvestor(
            dt_pv=investor.dt_portfolio_value,
            portfolio_value=investor.portfolio_value_c1,
            dna=investor.dna(),
            gen_no=gen_no,
            balance_c1=investor.balance_c1,
            balance_c2=investor.balance_c2,
            stop_loss_count=investor.stop_loss_count
        )
        for investor in list(ranked)[:count]
    ]
    combined = sorted(top_investors + candidates, key=lambda t: t.portfolio_value, reverse=True)
    return combined[:count]
