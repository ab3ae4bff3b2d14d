"""
Metric-driven Influencers.

An Influencer watches one econometric metric. For a decision date T3 it
samples the metric at T1 = T3 + delta1 and T2 = T3 + delta2 and votes buy,
sell or hold. The per-metric behaviour (locale handling and which predictor
to apply) comes from the metric's MInfluencerSubclass; the predictor is
dispatched through a small function table rather than one class per metric.
"""

import weakref
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ...core.exceptions import InfluencerError, InvalidDeltaRangeError, NilDataError
from ...core.logging import get_logger
from ...data.access import DataAccessPort, FieldSelector, Record
from ...data.subclasses import LocaleType, MInfluencerSubclass, Predictor
from ...utils.dates import add_days
from ...utils.helpers import generate_ref_no
from ..genetic.genome import format_influencer_dna

logger = get_logger(__name__)


class Action(Enum):
    """A single vote, or an Investor's resolved course of action."""
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    ABSTAIN = "abstain"


@dataclass
class Prediction:
    """One Influencer's vote for one decision date."""
    t3: date
    delta1: int
    delta2: int
    influencer_id: str = ""
    metric: str = ""
    action: Action = Action.ABSTAIN
    probability: float = 1.0
    weight: float = 1.0
    fields: List[str] = field(default_factory=list)
    val1: float = 0.0
    val2: float = 0.0
    avg_delta: float = 0.0
    std_dev_squared: float = 0.0
    correct: bool = False
    completed: bool = False
    t4: Optional[date] = None


def clears_noise_bar(avg_delta: float, std_dev_squared: float, std_dev_factor: float) -> bool:
    """True when ``avg_delta² > (std_dev_factor · std_dev)²``."""
    return avg_delta * avg_delta > std_dev_factor * std_dev_factor * std_dev_squared


def polarity_action(delta: float, greater_than: bool) -> Action:
    """
    Map the direction of a change to a vote.

    Greater-than predictors transact opposite to the sign of the change:
    a falling value is a buy. Less-than predictors transact with it.
    """
    if delta == 0:
        return Action.HOLD
    if greater_than:
        return Action.BUY if delta < 0 else Action.SELL
    return Action.BUY if delta > 0 else Action.SELL


class Influencer:
    """
    Predictor for a single metric, owned by exactly one Investor.

    The Investor is held through a weak reference so the Influencer never
    keeps its owner alive.
    """

    def __init__(self, subclass: MInfluencerSubclass, delta1: int, delta2: int,
                 data: DataAccessPort, c1: str, c2: str, std_dev_factor: float = 0.0,
                 influencer_id: Optional[str] = None):
        """
        Args:
            subclass: Policy of the metric this Influencer watches
            delta1: Offset of T1 from T3, in days
            delta2: Offset of T2 from T3, in days
            data: Market data lookup
            c1: Home currency code
            c2: Foreign currency code
            std_dev_factor: Noise bar multiplier
            influencer_id: Reference id, generated when omitted

        Raises:
            InvalidDeltaRangeError: If the offsets are not ``delta1 < delta2 <= 0``
        """
        if not delta1 < delta2 <= 0:
            raise InvalidDeltaRangeError(
                "Delta1 must be earlier than Delta2 and neither in the future",
                details={"metric": subclass.metric, "delta1": delta1, "delta2": delta2}
            )
        self.id = influencer_id or generate_ref_no()
        self.subclass = subclass
        self.delta1 = delta1
        self.delta2 = delta2
        self.data = data
        self.c1 = c1
        self.c2 = c2
        self.std_dev_factor = std_dev_factor
        self.fitness = 0.0
        self.predictions: List[Prediction] = []
        self.nil_data_count = 0
        self._investor = None

    @property
    def metric(self) -> str:
        return self.subclass.metric

    @property
    def locale_type(self) -> LocaleType:
        return self.subclass.locale_type

    @property
    def predictor(self) -> Predictor:
        return self.subclass.predictor

    @property
    def hold_window_pos(self) -> float:
        return self.subclass.hold_window_pos

    @property
    def hold_window_neg(self) -> float:
        return self.subclass.hold_window_neg

    @property
    def investor(self):
        return self._investor() if self._investor is not None else None

    def attach(self, investor) -> None:
        self._investor = weakref.ref(investor)

    def dna(self) -> str:
        return format_influencer_dna(self.subclass.subclass, self.delta1, self.delta2, self.metric)

    def selectors(self) -> List[FieldSelector]:
        """Field selectors this Influencer reads, per its locale type."""
        if self.locale_type is LocaleType.NONE:
            return [FieldSelector(self.metric)]
        if self.locale_type is LocaleType.C1C2:
            return [FieldSelector(self.metric, self.c1), FieldSelector(self.metric, self.c2)]
        raise InfluencerError(f"Locale type {self.locale_type.value} is not supported",
                              details={"metric": self.metric})

    def _fetch(self, day: date, selectors: List[FieldSelector]) -> Record:
        record = self.data.select(day, selectors)
        if record is None:
            raise NilDataError(f"nildata: no record for {day}", details={"metric": self.metric})
        for selector in selectors:
            if not record.has(selector.fq_metric()):
                raise NilDataError(f"nildata: {selector.fq_metric()} missing on {day}",
                                   details={"metric": self.metric})
        return record

    def get_prediction(self, t3: date) -> Prediction:
        """
        Research the metric and vote for ``t3``.

        Returns:
            The Prediction, also appended to this Influencer's history

        Raises:
            NilDataError: If data is missing at T1 or T2 (the vote is an abstain)
            InfluencerError: If the locale type or predictor is unsupported
        """
        prediction = Prediction(
            t3=t3,
            delta1=self.delta1,
            delta2=self.delta2,
            influencer_id=self.id,
            metric=self.metric
        )
        selectors = self.selectors()
        prediction.fields = [s.fq_metric() for s in selectors]

        t1 = add_days(t3, self.delta1)
        t2 = add_days(t3, self.delta2)
        predict = _PREDICTORS[self.predictor]
        try:
            rec1 = self._fetch(t1, selectors)
            rec2 = self._fetch(t2, selectors)
            prediction.action = predict(self, rec1, rec2, prediction)
        except NilDataError:
            self.nil_data_count += 1
            raise

        self.predictions.append(prediction)
        return prediction

    def finalize_prediction(self, t3: date, t4: date, profitable: bool) -> None:
        """Mark the first open prediction made on ``t3`` as settled on ``t4``."""
        for prediction in self.predictions:
            if prediction.completed:
                continue
            if prediction.t3 == t3:
                prediction.correct = profitable
                prediction.completed = True
                prediction.t4 = t4
                return

    def calculate_fitness_score(self) -> float:
        """Share of settled predictions that were correct."""
        settled = [p for p in self.predictions if p.completed]
        self.fitness = sum(1 for p in settled if p.correct) / len(settled) if settled else 0.0
        return self.fitness

    def __repr__(self) -> str:
        return f"Influencer({self.dna()})"


def _component(record1: Record, record2: Record, name: str, span: int) -> Tuple[float, float, float, float]:
    val1 = record1.value(name)
    val2 = record2.value(name)
    avg_delta = (val2 - val1) / span
    return val1, val2, avg_delta, record2.fields[name].std_dev_squared


def _predict_single_value(influencer: Influencer, rec1: Record, rec2: Record,
                          prediction: Prediction) -> Action:
    name = prediction.fields[0]
    val1, val2, avg_delta, std_dev_squared = _component(
        rec1, rec2, name, influencer.delta2 - influencer.delta1
    )
    prediction.val1 = val1
    prediction.val2 = val2
    prediction.avg_delta = avg_delta
    prediction.std_dev_squared = std_dev_squared

    if not clears_noise_bar(avg_delta, std_dev_squared, influencer.std_dev_factor):
        return Action.HOLD
    return polarity_action(val2 - val1, influencer.predictor.is_gt)


def _predict_ratio(influencer: Influencer, rec1: Record, rec2: Record,
                   prediction: Prediction) -> Action:
    span = influencer.delta2 - influencer.delta1
    c1_name, c2_name = prediction.fields
    c1_val1, c1_val2, c1_avg, c1_var = _component(rec1, rec2, c1_name, span)
    c2_val1, c2_val2, c2_avg, c2_var = _component(rec1, rec2, c2_name, span)

    if c2_val1 == 0 or c2_val2 == 0:
        raise NilDataError(f"nildata: {c2_name} is zero, ratio undefined",
                           details={"metric": influencer.metric})

    prediction.val1 = c1_val1 / c2_val1
    prediction.val2 = c1_val2 / c2_val2
    prediction.avg_delta = (prediction.val2 - prediction.val1) / span
    prediction.std_dev_squared = c1_var

    factor = influencer.std_dev_factor
    if not (clears_noise_bar(c1_avg, c1_var, factor) and clears_noise_bar(c2_avg, c2_var, factor)):
        return Action.HOLD
    return polarity_action(prediction.val2 - prediction.val1, influencer.predictor.is_gt)


def _predict_custom(influencer: Influencer, rec1: Record, rec2: Record,
                    prediction: Prediction) -> Action:
    raise InfluencerError("Custom predictors are not supported", details={"metric": influencer.metric})


_PREDICTORS: Dict[Predictor, Callable[[Influencer, Record, Record, Prediction], Action]] = {
    Predictor.SINGLE_VAL_GT: _predict_single_value,
    Predictor.SINGLE_VAL_LT: _predict_single_value,
    Predictor.C1C2_RATIO_GT: _predict_ratio,
    Predictor.C1C2_RATIO_LT: _predict_ratio,
    Predictor.CUSTOM: _predict_custom,
}
