"""
Data Access Port for historical econometric data.

The core engine never performs I/O. It asks a DataAccessPort for the values of
named fields on a given date. A missing row or a missing field is a normal,
expected outcome ("nildata") and is reported by omission, never by raising.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .rolling_stats import RollingStats
from ..core.exceptions import DataError
from ..core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldSelector:
    """
    Names a metric, optionally qualified by one or two locale codes.

    ``FieldSelector("EXClose", "USD", "JPY").fq_metric()`` is
    ``"USDJPYEXClose"``.
    """
    metric: str
    locale: str = ""
    locale2: str = ""

    def fq_metric(self) -> str:
        return f"{self.locale}{self.locale2}{self.metric}"


@dataclass(frozen=True)
class MetricInfo:
    """One field value plus its rolling statistics as of that date."""
    value: float
    mean: float = 0.0
    std_dev_squared: float = 0.0
    stats_valid: bool = False


@dataclass
class Record:
    """Values for one date, keyed by fully-qualified metric name."""
    date: date
    fields: Dict[str, MetricInfo] = field(default_factory=dict)

    def has(self, name: str) -> bool:
        return name in self.fields

    def value(self, name: str) -> float:
        return self.fields[name].value


class DataAccessPort(ABC):
    """
    Read-only lookup of market data by date and field selector.

    Implementations must be safe for concurrent readers.
    """

    @abstractmethod
    def select(self, day: date, selectors: Sequence[FieldSelector]) -> Optional[Record]:
        """
        Fetch the requested fields for ``day``.

        Returns:
            A Record holding the subset of requested fields that exist, or
            None when there is no data at all for ``day``.
        """
        pass

    @property
    @abstractmethod
    def dt_start(self) -> date:
        pass

    @property
    @abstractmethod
    def dt_stop(self) -> date:
        pass


class InMemoryDataSource(DataAccessPort):
    """
    DataAccessPort over rows held in memory.

    Rows are loaded in date order and each field's rolling mean/variance is
    computed as it is loaded, so every MetricInfo carries the stats of the
    window ending on its own date.
    """

    def __init__(self, rows: Mapping[date, Mapping[str, float]], window_size: int = 10):
        """
        Args:
            rows: date -> {fully-qualified field name: value}
            window_size: Rolling statistics lookback, in observations
        """
        if not rows:
            raise DataError("Data source has no rows")
        self.window_size = window_size
        self._records: Dict[date, Record] = {}
        self.nil_data = 0
        self._load(rows)

    def _load(self, rows: Mapping[date, Mapping[str, float]]) -> None:
        stats: Dict[str, RollingStats] = {}
        for day in sorted(rows):
            record = Record(date=day)
            for name, value in rows[day].items():
                if value is None:
                    continue
                if name not in stats:
                    stats[name] = RollingStats(self.window_size)
                mean, std_dev_squared, valid = stats[name].add_value(float(value))
                record.fields[name] = MetricInfo(
                    value=float(value),
                    mean=mean,
                    std_dev_squared=std_dev_squared,
                    stats_valid=valid
                )
            self._records[day] = record
        self._dates: List[date] = sorted(self._records)
        logger.debug(f"Loaded {len(self._dates)} records "
                     f"({self._dates[0]} .. {self._dates[-1]})")

    def select(self, day: date, selectors: Sequence[FieldSelector]) -> Optional[Record]:
        source = self._records.get(day)
        if source is None:
            return None
        subset = Record(date=day)
        for selector in selectors:
            name = selector.fq_metric()
            info = source.fields.get(name)
            if info is None:
                # unsynchronised counter, only used for reporting
                self.nil_data += 1
                continue
            subset.fields[name] = info
        return subset

    @property
    def dt_start(self) -> date:
        return self._dates[0]

    @property
    def dt_stop(self) -> date:
        return self._dates[-1]

    def field_names(self) -> Iterable[str]:
        names = set()
        for record in self._records.values():
            names.update(record.fields)
        return sorted(names)

    def __len__(self) -> int:
        return len(self._dates)
