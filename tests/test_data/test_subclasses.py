"""
Tests for the metric influencer subclass catalog.
"""

import pytest

from fxevo.core.exceptions import DataError, UnknownMetricError, ValidationError
from fxevo.data.subclasses import LocaleType, MetricCatalog, MInfluencerSubclass, Predictor

pytestmark = [
    pytest.mark.unit,
    pytest.mark.data
]


class TestMInfluencerSubclass:
    """Test per-metric policy validation."""

    def test_defaults(self):
        sc = MInfluencerSubclass(metric="GDP")

        assert sc.subclass == "LSMInfluencer"
        assert sc.locale_type is LocaleType.NONE
        assert sc.display_name == "GDP"

    def test_ratio_requires_c1c2_locale(self):
        """Test that a ratio predictor cannot be used on a single-valued metric."""
        with pytest.raises(ValidationError):
            MInfluencerSubclass(metric="CPI", locale_type=LocaleType.NONE,
                                predictor=Predictor.C1C2_RATIO_GT)

    def test_future_offsets_rejected(self):
        with pytest.raises(ValidationError):
            MInfluencerSubclass(metric="GDP", max_delta2=1)

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError):
            MInfluencerSubclass(metric="GDP", min_delta1=-2, max_delta1=-10)

    @pytest.mark.parametrize("predictor,is_ratio,is_gt", [
        (Predictor.SINGLE_VAL_GT, False, True),
        (Predictor.SINGLE_VAL_LT, False, False),
        (Predictor.C1C2_RATIO_GT, True, True),
        (Predictor.C1C2_RATIO_LT, True, False),
    ])
    def test_predictor_flags(self, predictor, is_ratio, is_gt):
        assert predictor.is_ratio is is_ratio
        assert predictor.is_gt is is_gt


class TestMetricCatalog:
    """Test catalog construction and lookup."""

    def test_from_records(self, catalog):
        """Test that rows keep their load order and typed values."""
        assert catalog.metric_names() == ["BC", "CPI", "GDP", "UR"]
        cpi = catalog.get("CPI")
        assert cpi.locale_type is LocaleType.C1C2
        assert cpi.predictor is Predictor.C1C2_RATIO_LT
        assert cpi.min_delta1 == -10
        assert cpi.name == "Consumer Price Index"

    def test_unknown_metric(self, catalog):
        with pytest.raises(UnknownMetricError, match="unknown metric: XYZ"):
            catalog.get("XYZ")

    def test_container_protocol(self, catalog):
        assert "GDP" in catalog
        assert "XYZ" not in catalog
        assert len(catalog) == 4
        assert [sc.metric for sc in catalog] == catalog.metric_names()
        assert catalog.subclass_names() == ["LSMInfluencer"]

    def test_duplicate_metric(self):
        with pytest.raises(DataError, match="Duplicate metric"):
            MetricCatalog([MInfluencerSubclass(metric="GDP"), MInfluencerSubclass(metric="GDP")])

    def test_empty_catalog(self):
        with pytest.raises(DataError):
            MetricCatalog([])

    def test_from_csv(self, subclass_csv):
        """Test loading misubclasses.csv."""
        catalog = MetricCatalog.from_csv(subclass_csv)

        assert catalog.metric_names() == ["BC", "CPI", "GDP", "UR"]
        assert catalog.get("UR").predictor is Predictor.SINGLE_VAL_GT

    def test_from_csv_missing_file(self, temp_dir):
        with pytest.raises(DataError, match="not found"):
            MetricCatalog.from_csv(temp_dir / "missing.csv")

    def test_from_csv_missing_columns(self, temp_dir):
        path = temp_dir / "bad.csv"
        path.write_text("Metric,Name\nGDP,Gross Domestic Product\n")

        with pytest.raises(DataError, match="Invalid metric catalog"):
            MetricCatalog.from_csv(path)

    def test_from_csv_bad_row(self, temp_dir):
        """Test that a bad enum value names the offending line."""
        path = temp_dir / "bad.csv"
        path.write_text("Metric,LocaleType,Predictor\nGDP,LocaleNone,SingleValGT\nUR,Nowhere,SingleValGT\n")

        with pytest.raises(DataError, match="line 3"):
            MetricCatalog.from_csv(path)
