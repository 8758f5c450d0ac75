"""
Tests for starqc.config - configuration loading and logging setup
"""
import logging
from logging.handlers import RotatingFileHandler

import pytest

from starqc.config import (
    AnalysisConfig,
    ConfigManager,
    LoggingConfig,
    LogLevel,
    QualityThresholds,
    StarQCConfig,
    setup_logging,
)
from starqc.exceptions import ConfigurationError

ENV_PREFIX = "STARQCTEST"


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "starqc.ini")


class TestConfigManager:
    """Test file and environment configuration."""

    def test_defaults_without_file(self, config_path):
        config = ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()
        assert config.analysis == AnalysisConfig()
        assert config.quality == QualityThresholds()
        assert config.processing.max_threads == 4
        assert config.logging.level is LogLevel.INFO

    def test_load_from_file(self, config_path):
        with open(config_path, "w") as f:
            f.write("[analysis]\ncrop_size = 512\nk_sigma = 3.5\n\n"
                    "[quality]\nfwhm_max = 4.0\nstars_min = 80\n\n"
                    "[processing]\nmax_threads = 8\n\n"
                    "[logging]\nlevel = debug\nconsole_output = false\n")
        config = ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()
        assert config.analysis.crop_size == 512
        assert config.analysis.k_sigma == 3.5
        assert config.analysis.max_header_blocks == 4
        assert config.quality.fwhm_max == 4.0
        assert config.quality.stars_min == 80
        assert config.processing.max_threads == 8
        assert config.logging.level is LogLevel.DEBUG
        assert config.logging.console_output is False

    def test_environment_overrides_file(self, config_path, monkeypatch):
        with open(config_path, "w") as f:
            f.write("[analysis]\ncrop_size = 512\n")
        monkeypatch.setenv(f"{ENV_PREFIX}_CROP_SIZE", "256")
        monkeypatch.setenv(f"{ENV_PREFIX}_K_SIGMA", "5")
        monkeypatch.setenv(f"{ENV_PREFIX}_MAX_THREADS", "2")
        monkeypatch.setenv(f"{ENV_PREFIX}_LOG_LEVEL", "warning")
        config = ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()
        assert config.analysis.crop_size == 256
        assert config.analysis.k_sigma == 5.0
        assert config.processing.max_threads == 2
        assert config.logging.level is LogLevel.WARNING

    def test_config_is_cached(self, config_path):
        manager = ConfigManager(config_path, env_prefix=ENV_PREFIX)
        assert manager.load_config() is manager.load_config()

    def test_invalid_file_value(self, config_path):
        with open(config_path, "w") as f:
            f.write("[analysis]\ncrop_size = big\n")
        with pytest.raises(ConfigurationError):
            ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()

    def test_invalid_environment_value(self, config_path, monkeypatch):
        monkeypatch.setenv(f"{ENV_PREFIX}_K_SIGMA", "lots")
        with pytest.raises(ConfigurationError):
            ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()

    @pytest.mark.parametrize("section,body", [
        ("analysis", "crop_size = 4"),
        ("analysis", "k_sigma = 0"),
        ("analysis", "max_header_blocks = 0"),
        ("analysis", "min_tile_side = 2"),
        ("processing", "max_threads = 0"),
        ("quality", "stars_min = -1"),
        ("quality", "fwhm_max = 0"),
    ])
    def test_validation(self, config_path, section, body):
        with open(config_path, "w") as f:
            f.write(f"[{section}]\n{body}\n")
        with pytest.raises(ConfigurationError):
            ConfigManager(config_path, env_prefix=ENV_PREFIX).load_config()

    def test_save_and_reload(self, tmp_path):
        path = str(tmp_path / "nested" / "config.ini")
        config = StarQCConfig()
        config.analysis.crop_size = 300
        config.quality.noise_max = 0.05
        config.logging.level = LogLevel.ERROR
        ConfigManager(path, env_prefix=ENV_PREFIX).save_config(config)

        reloaded = ConfigManager(path, env_prefix=ENV_PREFIX).load_config()
        assert reloaded.analysis.crop_size == 300
        assert reloaded.quality.noise_max == 0.05
        assert reloaded.logging.level is LogLevel.ERROR


class TestSetupLogging:
    """Test root logger configuration."""

    def test_file_handler_writes(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "starqc.log"
        root = setup_logging(LoggingConfig(level=LogLevel.DEBUG, file_path=str(log_file),
                                           console_output=False))
        assert root.level == logging.DEBUG
        assert [type(h) for h in root.handlers] == [RotatingFileHandler]

        logging.getLogger("starqc.test").debug("tile analyzed")
        root.handlers[0].flush()
        assert "starqc.test - DEBUG - tile analyzed" in log_file.read_text(encoding="utf-8")

    def test_console_handler(self, tmp_path, restore_root_logging):
        root = setup_logging(LoggingConfig(file_path=str(tmp_path / "a.log"), console_output=True))
        assert len(root.handlers) == 2
        assert root.level == logging.INFO

    def test_repeated_setup_replaces_handlers(self, tmp_path, restore_root_logging):
        config = LoggingConfig(file_path=str(tmp_path / "b.log"), console_output=False)
        setup_logging(config)
        root = setup_logging(config)
        assert len(root.handlers) == 1
