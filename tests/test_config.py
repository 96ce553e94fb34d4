"""Tests for localizer configuration module."""

import json
import math
import os
import tempfile
import pytest

from localization.config import (
    ConfigurationError,
    GlobalSearchConfig,
    LocalSearchConfig,
    LocalizerConfig,
    ScoringConfig,
    SensorConfig,
    SourceConfig,
    load_config,
)


class TestSourceConfig:
    """Tests for SourceConfig dataclass."""

    def test_default_values(self):
        config = SourceConfig()
        assert config.scan_topic is None
        assert config.odom_topic is None

    def test_custom_values(self):
        config = SourceConfig(scan_topic="/scan", odom_topic="/odom")
        assert config.scan_topic == "/scan"
        assert config.odom_topic == "/odom"


class TestSearchConfigs:
    """Tests for search grid dataclasses."""

    def test_global_defaults(self):
        config = GlobalSearchConfig()
        assert config.x_min == -5.0
        assert config.x_max == 5.0
        assert config.y_min == -5.0
        assert config.y_max == 5.0
        assert config.xy_step == 0.2
        assert config.theta_min == 0.0
        assert config.theta_max == pytest.approx(2 * math.pi)
        assert config.theta_step == 0.1

    def test_local_defaults(self):
        config = LocalSearchConfig()
        assert config.xy_window == 0.3
        assert config.xy_step == 0.1
        assert config.theta_window == 1.0
        assert config.theta_step == 0.1

    def test_scoring_defaults(self):
        config = ScoringConfig()
        assert config.max_beams == 100
        assert config.error_cap == 0.3
        assert config.workers == 1


class TestLocalizerConfig:
    """Tests for LocalizerConfig dataclass."""

    def test_default_nested_configs(self):
        config = LocalizerConfig()
        assert isinstance(config.sources, SourceConfig)
        assert isinstance(config.sensor, SensorConfig)
        assert isinstance(config.global_search, GlobalSearchConfig)
        assert isinstance(config.local_search, LocalSearchConfig)
        assert isinstance(config.scoring, ScoringConfig)
        assert config.sensor.plane_height == 0.3

    def test_to_dict(self):
        config = LocalizerConfig()
        d = config.to_dict()

        assert "sources" in d
        assert "sensor" in d
        assert "global_search" in d
        assert "local_search" in d
        assert "scoring" in d

        assert d["scoring"]["max_beams"] == 100
        assert d["local_search"]["xy_window"] == 0.3

    def test_from_dict_keeps_defaults(self, sample_config_dict):
        config = LocalizerConfig.from_dict(sample_config_dict)

        assert config.sources.scan_topic == "/scan"
        assert config.sources.odom_topic == "/odom"
        assert config.sensor.plane_height == 0.25
        assert config.global_search.x_min == -2.0
        assert config.global_search.xy_step == 0.25
        assert config.scoring.workers == 4
        # Defaults should still be set for unspecified values
        assert config.global_search.y_min == -5.0
        assert config.local_search.theta_step == 0.1
        assert config.scoring.error_cap == 0.3

    def test_from_dict_ignores_unknown_keys(self):
        config = LocalizerConfig.from_dict({"scoring": {"bogus": 1}, "unknown": {}})
        assert not hasattr(config.scoring, "bogus")

    def test_from_file(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump({
                "sources": {"scan_topic": "/front_scan"},
                "local_search": {"xy_window": 0.5},
            }, f)
            f.flush()

            config = LocalizerConfig.from_file(f.name)

            assert config.sources.scan_topic == "/front_scan"
            assert config.local_search.xy_window == 0.5
            assert config.local_search.xy_step == 0.1

        os.unlink(f.name)

    def test_save_and_load_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = os.path.join(tmpdir, "nested", "config.json")

            original = LocalizerConfig()
            original.sources.scan_topic = "/scan"
            original.scoring.workers = 3
            original.save(config_path)

            loaded = LocalizerConfig.from_file(config_path)

            assert loaded.sources.scan_topic == "/scan"
            assert loaded.scoring.workers == 3


class TestValidate:
    """Tests for LocalizerConfig.validate."""

    @pytest.fixture
    def config(self):
        config = LocalizerConfig()
        config.sources.scan_topic = "/scan"
        return config

    def test_valid(self, config):
        config.validate()

    def test_missing_scan_source(self):
        with pytest.raises(ConfigurationError, match="scan_topic"):
            LocalizerConfig().validate()

    def test_odometry_is_optional(self, config):
        config.sources.odom_topic = None
        config.validate()

    def test_is_value_error(self):
        with pytest.raises(ValueError):
            LocalizerConfig().validate()

    @pytest.mark.parametrize("section,key", [
        ("global_search", "xy_step"),
        ("global_search", "theta_step"),
        ("local_search", "xy_step"),
        ("local_search", "theta_step"),
    ])
    def test_non_positive_step(self, config, section, key):
        setattr(getattr(config, section), key, 0.0)
        with pytest.raises(ConfigurationError, match=key):
            config.validate()

    @pytest.mark.parametrize("key,value", [
        ("max_beams", 0),
        ("error_cap", -0.1),
        ("workers", 0),
        ("max_batch_elements", 0),
    ])
    def test_invalid_scoring(self, config, key, value):
        setattr(config.scoring, key, value)
        with pytest.raises(ConfigurationError, match=key):
            config.validate()


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_nonexistent_returns_defaults(self):
        config = load_config("/nonexistent/path.json")
        assert isinstance(config, LocalizerConfig)
        assert config.scoring.max_beams == 100

    def test_load_existing_file(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".json", delete=False) as f:
            json.dump({"sources": {"scan_topic": "/loaded"}}, f)
            f.flush()

            config = load_config(f.name)
            assert config.sources.scan_topic == "/loaded"

        os.unlink(f.name)
