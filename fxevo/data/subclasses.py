"""
Metric Influencer subclass catalog.

Each row of the catalog is the read-only policy for one econometric metric:
the valid research-window offsets, how the metric is localised, and which
predictor turns its values into a buy/sell/hold signal.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Union

import pandas as pd

from ..core.exceptions import DataError, UnknownMetricError, ValidationError
from ..core.logging import get_logger
from ..utils.validators import validate_dataframe

logger = get_logger(__name__)

DEFAULT_SUBCLASS = "LSMInfluencer"


class LocaleType(Enum):
    """How an Influencer qualifies its metric with currency locales."""
    NONE = "LocaleNone"
    C1C2 = "LocaleC1C2"
    BLOC = "LocaleBloc"


class Predictor(Enum):
    """How an Influencer turns two samples of its metric into an action."""
    SINGLE_VAL_GT = "SingleValGT"
    SINGLE_VAL_LT = "SingleValLT"
    C1C2_RATIO_GT = "C1C2RatioGT"
    C1C2_RATIO_LT = "C1C2RatioLT"
    CUSTOM = "CustomPredict"

    @property
    def is_ratio(self) -> bool:
        return self in (Predictor.C1C2_RATIO_GT, Predictor.C1C2_RATIO_LT)

    @property
    def is_gt(self) -> bool:
        return self in (Predictor.SINGLE_VAL_GT, Predictor.C1C2_RATIO_GT)


@dataclass(frozen=True)
class MInfluencerSubclass:
    """Per-metric Influencer policy."""
    metric: str
    locale_type: LocaleType = LocaleType.NONE
    predictor: Predictor = Predictor.SINGLE_VAL_GT
    subclass: str = DEFAULT_SUBCLASS
    name: str = ""
    bloc_type: int = 0
    min_delta1: int = -30
    max_delta1: int = -2
    min_delta2: int = -1
    max_delta2: int = 0
    fitness_w1: float = 0.5
    fitness_w2: float = 0.5
    hold_window_pos: float = 0.0
    hold_window_neg: float = 0.0

    def __post_init__(self):
        if not self.metric:
            raise ValidationError("MInfluencerSubclass requires a metric")
        if self.min_delta1 > self.max_delta1 or self.min_delta2 > self.max_delta2:
            raise ValidationError(f"Delta bounds are inverted for {self.metric}")
        if self.max_delta1 > 0 or self.max_delta2 > 0:
            raise ValidationError(f"Delta offsets must not be in the future for {self.metric}")
        if self.locale_type is not LocaleType.BLOC and self.predictor is not Predictor.CUSTOM:
            if self.predictor.is_ratio != (self.locale_type is LocaleType.C1C2):
                raise ValidationError(
                    f"{self.predictor.value} cannot be used with {self.locale_type.value} for {self.metric}"
                )

    @property
    def display_name(self) -> str:
        return self.name or self.metric


_CSV_COLUMNS = {
    "Name": ("name", str),
    "Metric": ("metric", str),
    "BlocType": ("bloc_type", int),
    "LocaleType": ("locale_type", LocaleType),
    "Predictor": ("predictor", Predictor),
    "Subclass": ("subclass", str),
    "MinDelta1": ("min_delta1", int),
    "MaxDelta1": ("max_delta1", int),
    "MinDelta2": ("min_delta2", int),
    "MaxDelta2": ("max_delta2", int),
    "FitnessW1": ("fitness_w1", float),
    "FitnessW2": ("fitness_w2", float),
    "HoldWindowPos": ("hold_window_pos", float),
    "HoldWindowNeg": ("hold_window_neg", float),
}


class MetricCatalog:
    """
    Ordered mapping of metric name to MInfluencerSubclass.

    Metric order is the load order, which keeps random metric selection
    reproducible under a fixed seed.
    """

    def __init__(self, subclasses: Iterable[MInfluencerSubclass]):
        self._subclasses: Dict[str, MInfluencerSubclass] = {}
        for sc in subclasses:
            if sc.metric in self._subclasses:
                raise DataError(f"Duplicate metric in catalog: {sc.metric}")
            self._subclasses[sc.metric] = sc
        if not self._subclasses:
            raise DataError("Metric catalog is empty")

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "MetricCatalog":
        """Build from dicts keyed by either CSV column names or field names."""
        subclasses = []
        for raw in records:
            subclasses.append(MInfluencerSubclass(**_normalise_row(raw)))
        return cls(subclasses)

    @classmethod
    def from_csv(cls, path: Union[str, Path]) -> "MetricCatalog":
        """
        Load the catalog from a CSV file with a header row.

        Args:
            path: Path to misubclasses.csv

        Raises:
            DataError: If the file is missing or a row is invalid
        """
        path = Path(path)
        if not path.exists():
            raise DataError(f"Metric catalog not found: {path}")

        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        df.columns = [c.strip() for c in df.columns]
        try:
            validate_dataframe(df, required_columns=["Metric", "LocaleType", "Predictor"],
                               check_nulls=False, check_infinite=False)
        except ValidationError as e:
            raise DataError(f"Invalid metric catalog {path}", details=str(e))

        subclasses = []
        for line, row in enumerate(df.to_dict(orient="records"), start=2):
            try:
                subclasses.append(MInfluencerSubclass(**_normalise_row(row)))
            except (ValueError, ValidationError) as e:
                raise DataError(f"Bad metric catalog row in {path}, line {line}", details=str(e))

        logger.info(f"Loaded {len(subclasses)} metric influencer subclasses from {path}")
        return cls(subclasses)

    def get(self, metric: str) -> MInfluencerSubclass:
        try:
            return self._subclasses[metric]
        except KeyError:
            raise UnknownMetricError(f"unknown metric: {metric}")

    def metric_names(self) -> List[str]:
        return list(self._subclasses)

    def subclass_names(self) -> List[str]:
        return sorted({sc.subclass for sc in self._subclasses.values()})

    def __contains__(self, metric: str) -> bool:
        return metric in self._subclasses

    def __len__(self) -> int:
        return len(self._subclasses)

    def __iter__(self):
        return iter(self._subclasses.values())


def _normalise_row(raw: Mapping[str, Any]) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        if key in _CSV_COLUMNS:
            attr, kind = _CSV_COLUMNS[key]
        elif key in MInfluencerSubclass.__dataclass_fields__:
            attr = key
            kind = next((k for a, k in _CSV_COLUMNS.values() if a == key), str)
        else:
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                continue
        if kind in (LocaleType, Predictor) and not isinstance(value, kind):
            value = kind(value)
        elif kind is not str and kind not in (LocaleType, Predictor):
            value = kind(value)
        kwargs[attr] = value
    return kwargs
