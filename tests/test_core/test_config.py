"""
Tests for fxevo configuration system.
"""

import json
from datetime import date

import pytest

from fxevo.core.config import Config
from fxevo.core.exceptions import ConfigurationError

pytestmark = [
    pytest.mark.unit,
    pytest.mark.core,
    pytest.mark.config
]


def _write(temp_dir, data, name="config.json"):
    path = temp_dir / name
    with open(path, 'w') as f:
        json.dump(data, f)
    return path


class TestConfigCreation:
    """Test configuration creation and initialization."""

    def test_default_config_creation(self, clean_env):
        """Test creating a config with default values."""
        config = Config()

        assert config.simulation.c1 == "USD"
        assert config.simulation.c2 == "JPY"
        assert config.simulation.population_size == 20
        assert config.investor.min_influencers == 1
        assert config.evolution.mutation_rate == 1
        assert config.fitness.bonus_steps == []

    def test_config_from_file(self, config_file, sample_config_data, clean_env):
        """Test creating a config from a JSON file."""
        config = Config(config_file=config_file)

        assert config.simulation.population_size == sample_config_data["simulation"]["population_size"]
        assert config.simulation.seed == 7
        assert config.data.rolling_window == 5
        assert config.evolution.top_investor_count == 3

    def test_missing_config_file(self, temp_dir, clean_env):
        """Test that a missing config file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            Config(config_file=temp_dir / "missing.json")

    def test_unknown_section_rejected(self, temp_dir, clean_env):
        """Test that unknown sections are rejected."""
        path = _write(temp_dir, {"trading": {"symbol": "SPY"}})
        with pytest.raises(ConfigurationError, match="Unknown configuration section"):
            Config(config_file=path)

    def test_unknown_key_rejected(self, clean_env):
        """Test that unknown keys inside a section are rejected."""
        with pytest.raises(ConfigurationError, match="simulation.symbol"):
            Config.from_dict({"simulation": {"symbol": "SPY"}})

    def test_env_overrides(self, monkeypatch, clean_env):
        """Test FXEVO_* environment overrides."""
        monkeypatch.setenv("FXEVO_DATA_PATH", "/data/plato.csv")
        monkeypatch.setenv("FXEVO_SEED", "99")
        config = Config()

        assert config.data.data_path == "/data/plato.csv"
        assert config.simulation.seed == 99

    def test_bad_seed_env(self, monkeypatch, clean_env):
        """Test a non-integer seed in the environment."""
        monkeypatch.setenv("FXEVO_SEED", "abc")
        with pytest.raises(ConfigurationError, match="FXEVO_SEED"):
            Config()


class TestConfigValidation:
    """Test configuration validation."""

    @pytest.mark.parametrize("section,values,message", [
        ("simulation", {"population_size": 1}, "Population size must be at least 2"),
        ("simulation", {"stop_loss": 1.0}, "Stop loss must be in [0, 1)"),
        ("simulation", {"dt_start": "2023-01-01", "dt_stop": "2022-01-01"}, "dt_start must not be after dt_stop"),
        ("simulation", {"generation_duration": "1 Y 2 Y"}, "Invalid generation duration"),
        ("investor", {"min_influencers": 3, "max_influencers": 2}, "Max influencers must be >= min influencers"),
        ("investor", {"inv_w1": 0.8, "inv_w2": 0.5}, "W1 + W2 <= 1"),
        ("evolution", {"mutation_rate": 101}, "Mutation rate"),
        ("evolution", {"preserve_elite_pct": 100}, "Preserve elite percentage"),
        ("evolution", {"single_investor_mode": True}, "single_investor_dna"),
        ("fitness", {"bonus_steps": [[0.1, 0.5]]}, "Bonus step"),
    ])
    def test_invalid_values(self, section, values, message, clean_env):
        """Test that each invalid setting is reported."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_dict({section: values})

        assert any(message in error for error in exc_info.value.details)

    def test_all_errors_collected(self, clean_env):
        """Test that validation reports every problem at once."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config.from_dict({
                "simulation": {"population_size": 1, "init_funds": 0},
                "evolution": {"mutation_rate": -1}
            })

        assert len(exc_info.value.details) >= 3

    def test_single_investor_population_of_one(self, clean_env):
        """Test that single-investor mode permits a population of one."""
        config = Config.from_dict({
            "simulation": {"population_size": 1},
            "evolution": {"single_investor_mode": True, "single_investor_dna": "{Investor}"}
        })
        assert config.simulation.population_size == 1


class TestConfigMethods:
    """Test configuration methods."""

    def test_dates(self, config):
        """Test date properties."""
        assert config.dt_start == date(2022, 2, 1)
        assert config.dt_stop == date(2022, 3, 31)

    @pytest.mark.parametrize("preserve,pct,population,expected", [
        (False, 50.0, 10, 0),
        (True, 5.0, 20, 1),
        (True, 10.0, 25, 3),
        (True, 2.0, 20, 0),
    ])
    def test_elite_count(self, preserve, pct, population, expected, clean_env):
        """Test rounding of the elite slice."""
        config = Config.from_dict({
            "simulation": {"population_size": population},
            "evolution": {"preserve_elite": preserve, "preserve_elite_pct": pct}
        })
        assert config.elite_count == expected

    def test_exchange_rate_metric(self, config):
        assert config.exchange_rate_metric == "EXClose"

    def test_to_dict(self, config):
        """Test converting config to dictionary."""
        config_dict = config.to_dict()

        assert set(config_dict) == set(Config.SECTIONS)
        assert config_dict["simulation"]["population_size"] == 6

    def test_copy_is_independent(self, config):
        """Test that a copy can be changed without touching the original."""
        copied = config.copy()
        copied.simulation.population_size = 1
        copied.crucible.dna.append("{Investor}")

        assert config.simulation.population_size == 6
        assert config.crucible.dna == []

    def test_save_and_load(self, temp_dir, config):
        """Test saving and loading configuration."""
        config_file = temp_dir / "saved" / "config.json"
        config.save(config_file)

        loaded = Config(config_file=config_file)
        assert loaded.to_dict() == config.to_dict()

    def test_repr(self, config):
        """Test string representation."""
        text = repr(config)

        assert "USDJPY" in text
        assert "population=6" in text
