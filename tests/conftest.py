"""
Pytest configuration and common fixtures for fxevo testing.

This file contains shared fixtures and configuration that can be used
across all test modules.
"""

import math
import random
import shutil
import tempfile
from datetime import date, timedelta
from pathlib import Path

import pytest

# Add the project root to Python path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from fxevo.core import Config, setup_logging
from fxevo.core.logging import get_logger
from fxevo.data.access import InMemoryDataSource
from fxevo.data.subclasses import MetricCatalog
from fxevo.optimization.genetic.factory import Factory

DATA_START = date(2022, 1, 1)
DATA_DAYS = 120


@pytest.fixture(scope="session")
def test_logger():
    """Set up logging for tests."""
    # Configure logging for tests (console only, no files)
    setup_logging(level="DEBUG", enable_file=False, enable_console=True)
    return get_logger("test")


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    # Cleanup after test
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "simulation": {
            "c1": "USD",
            "c2": "JPY",
            "dt_start": "2022-02-01",
            "dt_stop": "2022-03-31",
            "generations": 2,
            "population_size": 6,
            "init_funds": 1000.0,
            "std_investment": 100.0,
            "stop_loss": 0.12,
            "worker_threads": 1,
            "seed": 7
        },
        "investor": {
            "min_influencers": 1,
            "max_influencers": 3,
            "inv_w1": 0.5,
            "inv_w2": 0.5
        },
        "evolution": {
            "mutation_rate": 10,
            "max_breed_attempts": 5,
            "top_investor_count": 3
        },
        "data": {
            "data_path": "platodb.csv",
            "subclass_path": "misubclasses.csv",
            "rolling_window": 5
        }
    }


@pytest.fixture
def config_file(temp_dir, sample_config_data):
    """Create a temporary config file for testing."""
    import json
    config_path = temp_dir / "test_config.json"
    with open(config_path, 'w') as f:
        json.dump(sample_config_data, f, indent=2)
    return config_path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove FXEVO_* overrides from the environment."""
    for name in ("FXEVO_DATA_PATH", "FXEVO_SUBCLASS_PATH", "FXEVO_SEED"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(sample_config_data, clean_env):
    """Validated config built from the sample data."""
    return Config.from_dict(sample_config_data)


@pytest.fixture
def catalog_records():
    """Metric influencer subclass rows, as they appear in misubclasses.csv."""
    return [
        {"Name": "Business Confidence", "Metric": "BC", "LocaleType": "LocaleNone",
         "Predictor": "SingleValGT", "MinDelta1": "-10", "MaxDelta1": "-2",
         "MinDelta2": "-1", "MaxDelta2": "0"},
        {"Name": "Consumer Price Index", "Metric": "CPI", "LocaleType": "LocaleC1C2",
         "Predictor": "C1C2RatioLT", "MinDelta1": "-10", "MaxDelta1": "-2",
         "MinDelta2": "-1", "MaxDelta2": "0"},
        {"Name": "Gross Domestic Product", "Metric": "GDP", "LocaleType": "LocaleNone",
         "Predictor": "SingleValLT", "MinDelta1": "-10", "MaxDelta1": "-2",
         "MinDelta2": "-1", "MaxDelta2": "0"},
        {"Name": "Unemployment Rate", "Metric": "UR", "LocaleType": "LocaleNone",
         "Predictor": "SingleValGT", "MinDelta1": "-10", "MaxDelta1": "-2",
         "MinDelta2": "-1", "MaxDelta2": "0"},
    ]


@pytest.fixture
def catalog(catalog_records):
    return MetricCatalog.from_records(catalog_records)


def build_market_rows(days: int = DATA_DAYS):
    """Deterministic daily market data starting 2022-01-01."""
    rows = {}
    for n in range(days):
        day = DATA_START + timedelta(days=n)
        rows[day] = {
            "USDJPYEXClose": 115.0 + 3.0 * math.sin(n / 7.0),
            "BC": 50.0 + 4.0 * math.sin(n / 5.0),
            "USDCPI": 280.0 + 0.3 * n + math.sin(n / 3.0),
            "JPYCPI": 102.0 + 0.05 * n + math.cos(n / 4.0),
            "GDP": 2.0 + math.cos(n / 6.0),
            "UR": 4.0 + 0.5 * math.sin(n / 9.0),
        }
    return rows


@pytest.fixture
def market_rows():
    return build_market_rows()


@pytest.fixture
def data_source(market_rows):
    return InMemoryDataSource(market_rows, window_size=5)


@pytest.fixture
def factory(config, catalog, data_source):
    return Factory(config, catalog, data_source, rng=random.Random(11))


@pytest.fixture
def sample_csv(temp_dir, market_rows):
    """Write the market rows to a CSV file in platodb layout."""
    columns = list(next(iter(market_rows.values())))
    lines = ["Date," + ",".join(columns)]
    for day, values in sorted(market_rows.items()):
        lines.append(day.isoformat() + "," + ",".join(f"{values[c]:.6f}" for c in columns))
    path = temp_dir / "platodb.csv"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def subclass_csv(temp_dir, catalog_records):
    """Write the catalog records to a misubclasses.csv file."""
    columns = list(catalog_records[0])
    lines = [",".join(columns)]
    for record in catalog_records:
        lines.append(",".join(record[c] for c in columns))
    path = temp_dir / "misubclasses.csv"
    path.write_text("\n".join(lines) + "\n")
    return path


# Test markers for organizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    for marker, description in (
        ("unit", "mark test as a unit test"),
        ("integration", "mark test as an integration test"),
        ("slow", "mark test as slow running"),
        ("core", "mark test as testing core functionality"),
        ("config", "mark test as testing configuration"),
        ("logging", "mark test as testing logging"),
        ("exceptions", "mark test as testing the exception hierarchy"),
        ("utils", "mark test as testing utilities"),
        ("helpers", "mark test as testing helper functions"),
        ("data", "mark test as testing the data layer"),
        ("optimization", "mark test as testing optimization"),
        ("genetic", "mark test as testing genetic operators"),
        ("backtesting", "mark test as testing the simulator"),
        ("cli", "mark test as testing the command line interface"),
    ):
        config.addinivalue_line("markers", f"{marker}: {description}")
