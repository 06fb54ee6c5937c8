"""
Tests for engine configuration.

Covers:
- HOSTMETRICS_* environment settings parsing
- Adapter YAML loading, checksum determinism
- Validation errors block loading; warnings are logged
- get_engine_config wiring: catalog with custom channels, registry,
  ADAPTER_CONFIG_TRACE audit log
"""

import logging
from pathlib import Path

import pytest
import yaml

from hostmetrics_config import (
    EngineSettings,
    get_adapter_registry,
    get_engine_config,
    load_settings,
)
from hostmetrics_config.loader import compute_checksum, load_adapter_config, parse_adapter_config
from hostmetrics_config.settings import DEFAULT_ADAPTER_CONFIG
from hostmetrics_config.validator import validate_adapter_config
from hostmetrics_kernel.domain.platform import PlatformCatalog
from hostmetrics_kernel.exceptions import AdapterConfigError


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "adapters.yaml"
    path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
    return path


def _minimal(**overrides):
    data = {
        "config_id": "test-adapters",
        "version": 3,
        "adapters": [
            {"platform": "default", "version": 1, "chains": {"totalPayout": ["totalPayout"]}},
        ],
    }
    data.update(overrides)
    return data


class TestSettings:
    def test_defaults(self):
        settings = load_settings({})
        assert settings == EngineSettings()
        assert settings.adapter_config_path == DEFAULT_ADAPTER_CONFIG
        assert settings.log_level_number == logging.INFO

    def test_environment_values(self, tmp_path):
        settings = load_settings(
            {
                "HOSTMETRICS_DATABASE_URL": "postgresql://u@localhost/rules",
                "HOSTMETRICS_LOG_LEVEL": "debug",
                "HOSTMETRICS_FORMULA_CACHE_SIZE": "256",
                "HOSTMETRICS_RESOLUTION_WORKERS": "4",
                "HOSTMETRICS_ADAPTER_CONFIG": str(tmp_path / "a.yaml"),
                "HOSTMETRICS_CUSTOM_CHANNELS": "CottagesDirect, lakeside,,",
            }
        )
        assert settings.database_url == "postgresql://u@localhost/rules"
        assert settings.log_level == "DEBUG"
        assert settings.formula_cache_size == 256
        assert settings.resolution_workers == 4
        assert settings.adapter_config_path == tmp_path / "a.yaml"
        assert settings.custom_channels == ("cottagesdirect", "lakeside")

    @pytest.mark.parametrize(
        "env",
        [
            {"HOSTMETRICS_FORMULA_CACHE_SIZE": "many"},
            {"HOSTMETRICS_FORMULA_CACHE_SIZE": "0"},
            {"HOSTMETRICS_RESOLUTION_WORKERS": "-1"},
            {"HOSTMETRICS_LOG_LEVEL": "chatty"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ValueError):
            load_settings(env)


class TestLoader:
    def test_packaged_config_loads(self):
        config = load_adapter_config(DEFAULT_ADAPTER_CONFIG)
        assert config.config_id == "hostmetrics-platform-adapters"
        platforms = {a.platform for a in config.adapters}
        assert {"default", "hostaway", "airbnb"} <= platforms
        hostaway = next(a for a in config.adapters if a.platform == "hostaway")
        assert hostaway.derived[0].target_field == "nightlyRate"
        assert hostaway.derived[0].denominator == ("nights",)

    def test_checksum_deterministic_and_order_independent(self):
        a = {"version": 1, "adapters": [], "config_id": "x"}
        b = {"config_id": "x", "adapters": [], "version": 1}
        assert compute_checksum(a) == compute_checksum(b)
        assert compute_checksum(a) != compute_checksum({**a, "version": 2})

    def test_single_string_chain_accepted(self):
        config = parse_adapter_config(
            {"adapters": [{"platform": "default", "chains": {"gst": "gst_amount"}}]}
        )
        assert config.adapters[0].chains[0].raw_fields == ("gst_amount",)

    def test_malformed_chains_rejected(self):
        with pytest.raises(ValueError):
            parse_adapter_config({"adapters": [{"platform": "default", "chains": ["gst"]}]})


class TestValidator:
    def _validate(self, data, channels=()):
        return validate_adapter_config(parse_adapter_config(data), PlatformCatalog(channels))

    def test_packaged_config_valid(self):
        config = load_adapter_config(DEFAULT_ADAPTER_CONFIG)
        result = validate_adapter_config(config, PlatformCatalog(config.custom_channels))
        assert result.is_valid, result.errors
        assert result.warnings == []

    @pytest.mark.parametrize(
        "adapter, fragment",
        [
            ({"platform": "myspace", "chains": {"gst": ["gst"]}}, "unknown platform"),
            ({"platform": "ALL", "chains": {"gst": ["gst"]}}, "unknown platform"),
            ({"platform": "Airbnb", "chains": {"gst": ["gst"]}}, "must be written 'airbnb'"),
            ({"platform": "airbnb", "version": 0}, "version must be >= 1"),
            ({"platform": "airbnb", "chains": {"ownerBonus": ["x"]}}, "unknown field"),
            ({"platform": "airbnb", "chains": {"gst": []}}, "empty chain"),
            (
                {
                    "platform": "airbnb",
                    "derived": [{"target_field": "nightlyRate", "numerator": [], "denominator": ["n"]}],
                },
                "needs a numerator and a denominator",
            ),
            (
                {
                    "platform": "airbnb",
                    "derived": [
                        {"target_field": "nightlyRate", "numerator": ["p"], "denominator": ["n"], "places": 11}
                    ],
                },
                "places must be between 0 and 10",
            ),
        ],
    )
    def test_errors(self, adapter, fragment):
        data = _minimal()
        data["adapters"].append(adapter)
        result = self._validate(data)
        assert not result.is_valid
        assert any(fragment in e for e in result.errors), result.errors

    def test_duplicate_version(self):
        data = _minimal()
        data["adapters"] += [{"platform": "airbnb", "version": 1}, {"platform": "airbnb", "version": 1}]
        assert any("duplicate adapter version" in e for e in self._validate(data).errors)

    def test_custom_channel_platform_allowed(self):
        data = _minimal()
        data["adapters"].append({"platform": "lakeside", "chains": {"gst": ["gst"]}})
        assert not self._validate(data).is_valid
        assert self._validate(data, channels=["lakeside"]).is_valid

    def test_missing_default_is_warning(self):
        result = self._validate({"adapters": [{"platform": "airbnb", "chains": {"gst": ["gst"]}}]})
        assert result.is_valid
        assert result.warnings


class TestGetEngineConfig:
    def test_packaged_config(self):
        config = get_engine_config(EngineSettings())
        assert config.config_id == "hostmetrics-platform-adapters"
        assert len(config.checksum) == 64
        assert config.adapters.get_adapter("hostaway") is not None

    def test_custom_channels_from_settings_and_yaml(self, tmp_path):
        path = _write(tmp_path, _minimal(custom_channels=["lakeside"]))
        config = get_engine_config(EngineSettings(custom_channels=("cottagesdirect",)), path)
        assert config.catalog.custom_channels == frozenset({"lakeside", "cottagesdirect"})
        assert config.config_version == 3

    def test_same_file_same_checksum(self, tmp_path):
        path = _write(tmp_path, _minimal())
        assert get_engine_config(EngineSettings(), path).checksum == get_engine_config(
            EngineSettings(), path
        ).checksum

    def test_invalid_yaml_raises_config_error(self, tmp_path):
        path = _write(tmp_path, "adapters: [unclosed\n")
        with pytest.raises(AdapterConfigError) as exc_info:
            get_engine_config(EngineSettings(), path)
        assert exc_info.value.source == str(path)
        assert exc_info.value.code == "ADAPTER_CONFIG_INVALID"

    def test_non_mapping_document_raises_config_error(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(AdapterConfigError):
            get_engine_config(EngineSettings(), path)

    def test_validation_errors_raise(self, tmp_path):
        data = _minimal()
        data["adapters"].append({"platform": "myspace"})
        path = _write(tmp_path, data)
        with pytest.raises(AdapterConfigError) as exc_info:
            get_engine_config(EngineSettings(), path)
        assert any("myspace" in e for e in exc_info.value.errors)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_engine_config(EngineSettings(), tmp_path / "nope.yaml")

    def test_adapter_registry_shorthand(self, tmp_path):
        registry = get_adapter_registry(EngineSettings(), _write(tmp_path, _minimal()))
        assert registry.list_platforms() == ["default"]

    def test_trace_logged(self, tmp_path, captured_logs):
        path = _write(tmp_path, _minimal())
        config = get_engine_config(EngineSettings(), path)
        traces = [r for r in captured_logs() if r["message"] == "ADAPTER_CONFIG_TRACE"]
        assert len(traces) == 1
        assert traces[0]["checksum"] == config.checksum
        assert traces[0]["config_id"] == "test-adapters"
        assert traces[0]["adapter_count"] == 1

    def test_warning_logged(self, tmp_path, captured_logs):
        path = _write(tmp_path, {"adapters": [{"platform": "airbnb", "chains": {"gst": ["gst"]}}]})
        get_engine_config(EngineSettings(), path)
        assert any(r["message"] == "adapter_config_warning" for r in captured_logs())
