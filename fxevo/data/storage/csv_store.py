"""
CSV-backed econometrics data store.

The file has one row per date. The first column must be ``Date``; every other
column is a fully-qualified field name such as ``USDJPYEXClose`` or
``USDCPI``. Empty cells mean "no data for that field on that date".
"""

from pathlib import Path
from typing import Dict, Union

import pandas as pd

from ..access import InMemoryDataSource
from ...core.exceptions import DataError, ValidationError
from ...core.logging import get_logger
from ...utils.validators import validate_dataframe

logger = get_logger(__name__)


class CSVDataStore(InMemoryDataSource):
    """
    DataAccessPort loaded from a CSV file.

    The whole file is read once at construction; lookups are served from
    memory and are safe for concurrent readers.
    """

    def __init__(self, path: Union[str, Path], window_size: int = 10):
        """
        Args:
            path: Path to the CSV file
            window_size: Rolling statistics lookback, in observations

        Raises:
            DataError: If the file is missing or malformed
        """
        self.path = Path(path)
        rows = self._read(self.path)
        super().__init__(rows, window_size=window_size)
        logger.info(f"Loaded {len(self)} days of data from {self.path}", extra={
            "extra_fields": {
                "path": str(self.path),
                "dt_start": str(self.dt_start),
                "dt_stop": str(self.dt_stop),
            }
        })

    @staticmethod
    def _read(path: Path) -> Dict:
        if not path.exists():
            raise DataError(f"Data file not found: {path}")

        try:
            df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataError(f"Failed to read data file {path}", details=str(e))

        df.columns = [str(c).strip() for c in df.columns]
        if len(df.columns) == 0 or df.columns[0] != "Date":
            raise DataError(f"First column of {path} must be 'Date'",
                            details=list(df.columns[:1]))
        try:
            validate_dataframe(df, required_columns=["Date"], check_nulls=False, check_infinite=False)
        except ValidationError as e:
            raise DataError(f"Invalid data file {path}", details=str(e))

        try:
            dates = pd.to_datetime(df["Date"].str.strip(), format="%Y-%m-%d").dt.date
        except ValueError as e:
            raise DataError(f"Bad date in {path}", details=str(e))

        rows: Dict = {}
        value_columns = [c for c in df.columns if c != "Date"]
        for day, (_, row) in zip(dates, df.iterrows()):
            values = {}
            for column in value_columns:
                cell = row[column].strip().replace(",", "")
                if not cell:
                    continue
                try:
                    values[column] = float(cell)
                except ValueError:
                    raise DataError(f"Non-numeric value in {path}",
                                    details=f"{day} {column}={row[column]!r}")
            if day in rows:
                logger.warning(f"Duplicate date {day} in {path}, keeping the last row")
            rows[day] = values
        return rows
