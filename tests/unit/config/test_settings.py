# tests/unit/config/test_settings.py — v2
"""Tests for config/settings.py — typed Settings and validation rules."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kgweave.config.settings import ConfigurationError, Settings, load_settings
from kgweave.graph.layers.models import DetectionOptions
from kgweave.rag.models import SearchOptions


class TestSettingsDefaults:
    def test_default_logging(self):
        s = Settings(_env_file=None)
        assert s.log_level == "INFO"
        assert s.log_format == "json"
        assert s.log_file is None

    def test_default_community(self):
        s = Settings(_env_file=None)
        assert s.community_seed == 0xDEADBEEF
        assert s.community_max_levels == 3
        assert s.community_use_largest_component is True

    def test_default_resolution(self):
        s = Settings(_env_file=None)
        assert s.resolution_enabled is True
        assert s.resolution_batch_size == 50

    def test_default_community_reports(self):
        s = Settings(_env_file=None)
        assert s.community_reports_enabled is False
        assert s.community_report_min_size == 2

    def test_default_search(self):
        s = Settings(_env_file=None)
        assert s.search_fuzzy_threshold == 0.7
        assert s.search_max_results == 20


class TestSettingsValidation:
    def test_non_positive_batch_size(self):
        with pytest.raises(ValidationError, match="resolution_batch_size"):
            Settings(_env_file=None, resolution_batch_size=0)

    def test_non_positive_report_min_size(self):
        with pytest.raises(ValidationError, match="community_report_min_size"):
            Settings(_env_file=None, community_report_min_size=0)

    def test_negative_retention(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_retention=-1)

    def test_resolution_must_be_positive(self):
        with pytest.raises(ConfigurationError, match="COMMUNITY_RESOLUTION"):
            Settings(_env_file=None, community_resolution=0.0)

    def test_pagerank_alpha_range(self):
        with pytest.raises(ConfigurationError, match="PAGERANK_ALPHA"):
            Settings(_env_file=None, pagerank_alpha=1.0)

    def test_fuzzy_threshold_range(self):
        with pytest.raises(ConfigurationError, match="SEARCH_FUZZY_THRESHOLD"):
            Settings(_env_file=None, search_fuzzy_threshold=1.5)

    def test_some_search_strategy_required(self):
        with pytest.raises(ConfigurationError, match="search strategy"):
            Settings(
                _env_file=None,
                search_use_bigram=False,
                search_use_keywords=False,
                search_use_fuzzy=False,
            )

    def test_bad_rotation_with_log_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="LOG_ROTATION"):
            Settings(_env_file=None, log_file=tmp_path / "kg.log", log_rotation="lots")

    def test_multiple_errors_joined(self):
        with pytest.raises(ConfigurationError, match="; "):
            Settings(_env_file=None, community_resolution=-1.0, pagerank_alpha=0.0)


class TestEnvironment:
    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("COMMUNITY_SEED", "42")
        monkeypatch.setenv("SEARCH_MAX_RESULTS", "5")
        s = Settings(_env_file=None)
        assert s.community_seed == 42
        assert s.search_max_results == 5

    def test_reads_env_file(self, tmp_path):
        env = tmp_path / ".env"
        env.write_text("LOG_FORMAT=text\nRESOLUTION_MAX_CONCURRENCY=8\n", encoding="utf-8")
        s = Settings(_env_file=env)
        assert s.log_format == "text"
        assert s.resolution_max_concurrency == 8


class TestHelpers:
    def test_to_detection_options(self):
        opts = Settings(_env_file=None, community_seed=7, community_max_levels=2).to_detection_options()
        assert isinstance(opts, DetectionOptions)
        assert opts.seed == 7
        assert opts.max_levels == 2

    def test_to_search_options(self):
        opts = Settings(_env_file=None, search_use_fuzzy=False, search_max_results=3).to_search_options()
        assert isinstance(opts, SearchOptions)
        assert opts.use_fuzzy is False
        assert opts.max_results == 3

    def test_load_settings_overrides(self):
        s = load_settings(_env_file=None, log_level="DEBUG")
        assert s.log_level == "DEBUG"
