"""
Configuration management for StarQC.

Provides environment-aware configuration with validation and type safety.
"""

import os
import sys
import logging
import configparser
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import ConfigurationError


class LogLevel(Enum):
    """Enumeration for log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class AnalysisConfig:
    """Star-field analysis settings."""
    crop_size: int = 768
    k_sigma: float = 4.0
    max_header_blocks: int = 4
    sample_limit: int = 20000
    min_tile_side: int = 8


@dataclass
class QualityThresholds:
    """Limits used to grade an analyzed frame."""
    fwhm_max: float = 5.0          # pixels
    stars_min: int = 50
    noise_max: float = 0.1
    tracking_max: float = 3.0


@dataclass
class ProcessingConfig:
    """Batch processing settings."""
    max_threads: int = 4


@dataclass
class LoggingConfig:
    """Logging configuration settings."""
    level: LogLevel = LogLevel.INFO
    file_path: str = "starqc.log"
    max_file_size_mb: int = 5
    backup_count: int = 3
    console_output: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class StarQCConfig:
    """Main application configuration."""
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    quality: QualityThresholds = field(default_factory=QualityThresholds)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigManager:
    """Configuration manager with environment support."""

    def __init__(self, config_file: Optional[str] = None, env_prefix: str = "STARQC"):
        self.config_file = config_file or self._find_config_file()
        self.env_prefix = env_prefix
        self._config: Optional[StarQCConfig] = None

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        possible_paths = [
            "starqc.ini",
            os.path.expanduser("~/.starqc/config.ini"),
            os.path.expanduser("~/.config/starqc.ini"),
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        return "starqc.ini"

    def load_config(self) -> StarQCConfig:
        """Load configuration from file and environment variables."""
        if self._config is not None:
            return self._config

        config = StarQCConfig()

        if os.path.exists(self.config_file):
            self._load_from_file(config)

        self._load_from_env(config)
        self._validate_config(config)

        self._config = config
        return config

    def _load_from_file(self, config: StarQCConfig):
        """Load configuration from INI file."""
        parser = configparser.ConfigParser()
        parser.read(self.config_file)

        try:
            if parser.has_section("analysis"):
                section = parser["analysis"]
                config.analysis.crop_size = section.getint("crop_size", config.analysis.crop_size)
                config.analysis.k_sigma = section.getfloat("k_sigma", config.analysis.k_sigma)
                config.analysis.max_header_blocks = section.getint(
                    "max_header_blocks", config.analysis.max_header_blocks)
                config.analysis.sample_limit = section.getint("sample_limit", config.analysis.sample_limit)
                config.analysis.min_tile_side = section.getint("min_tile_side", config.analysis.min_tile_side)

            if parser.has_section("quality"):
                section = parser["quality"]
                config.quality.fwhm_max = section.getfloat("fwhm_max", config.quality.fwhm_max)
                config.quality.stars_min = section.getint("stars_min", config.quality.stars_min)
                config.quality.noise_max = section.getfloat("noise_max", config.quality.noise_max)
                config.quality.tracking_max = section.getfloat("tracking_max", config.quality.tracking_max)

            if parser.has_section("processing"):
                section = parser["processing"]
                config.processing.max_threads = section.getint("max_threads", config.processing.max_threads)

            if parser.has_section("logging"):
                section = parser["logging"]
                config.logging.level = LogLevel(section.get("level", config.logging.level.value).upper())
                config.logging.file_path = section.get("file_path", config.logging.file_path)
                config.logging.max_file_size_mb = section.getint(
                    "max_file_size_mb", config.logging.max_file_size_mb)
                config.logging.backup_count = section.getint("backup_count", config.logging.backup_count)
                config.logging.console_output = section.getboolean(
                    "console_output", config.logging.console_output)
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in {self.config_file}: {e}")

    def _load_from_env(self, config: StarQCConfig):
        """Load configuration from environment variables."""
        try:
            if env_val := os.getenv(f"{self.env_prefix}_CROP_SIZE"):
                config.analysis.crop_size = int(env_val)
            if env_val := os.getenv(f"{self.env_prefix}_K_SIGMA"):
                config.analysis.k_sigma = float(env_val)
            if env_val := os.getenv(f"{self.env_prefix}_MAX_THREADS"):
                config.processing.max_threads = int(env_val)
            if env_val := os.getenv(f"{self.env_prefix}_LOG_LEVEL"):
                config.logging.level = LogLevel(env_val.upper())
        except ValueError as e:
            raise ConfigurationError(f"Invalid {self.env_prefix} environment override: {e}")

    def _validate_config(self, config: StarQCConfig):
        """Validate configuration settings."""
        if config.analysis.crop_size < config.analysis.min_tile_side:
            raise ConfigurationError(
                f"crop_size must be at least {config.analysis.min_tile_side}")
        if config.analysis.min_tile_side < 3:
            raise ConfigurationError("min_tile_side must be at least 3")
        if config.analysis.k_sigma <= 0:
            raise ConfigurationError("k_sigma must be positive")
        if config.analysis.max_header_blocks < 1:
            raise ConfigurationError("max_header_blocks must be at least 1")
        if config.analysis.sample_limit < 1:
            raise ConfigurationError("sample_limit must be at least 1")
        if config.processing.max_threads < 1:
            raise ConfigurationError("max_threads must be at least 1")
        if config.quality.stars_min < 0:
            raise ConfigurationError("stars_min cannot be negative")
        for name in ("fwhm_max", "noise_max", "tracking_max"):
            if getattr(config.quality, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")

    def save_config(self, config: StarQCConfig):
        """Save configuration to file."""
        parser = configparser.ConfigParser()

        parser.add_section("analysis")
        parser["analysis"]["crop_size"] = str(config.analysis.crop_size)
        parser["analysis"]["k_sigma"] = str(config.analysis.k_sigma)
        parser["analysis"]["max_header_blocks"] = str(config.analysis.max_header_blocks)
        parser["analysis"]["sample_limit"] = str(config.analysis.sample_limit)
        parser["analysis"]["min_tile_side"] = str(config.analysis.min_tile_side)

        parser.add_section("quality")
        parser["quality"]["fwhm_max"] = str(config.quality.fwhm_max)
        parser["quality"]["stars_min"] = str(config.quality.stars_min)
        parser["quality"]["noise_max"] = str(config.quality.noise_max)
        parser["quality"]["tracking_max"] = str(config.quality.tracking_max)

        parser.add_section("processing")
        parser["processing"]["max_threads"] = str(config.processing.max_threads)

        parser.add_section("logging")
        parser["logging"]["level"] = config.logging.level.value
        parser["logging"]["file_path"] = config.logging.file_path
        parser["logging"]["max_file_size_mb"] = str(config.logging.max_file_size_mb)
        parser["logging"]["backup_count"] = str(config.logging.backup_count)
        parser["logging"]["console_output"] = str(config.logging.console_output)

        directory = os.path.dirname(self.config_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.config_file, 'w') as f:
            parser.write(f)


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> StarQCConfig:
    """Get the current application configuration."""
    return config_manager.load_config()


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """
    Configure the root logger from a LoggingConfig.

    Installs a size-rotating file handler and, optionally, a console handler.
    Library modules only create named loggers; applications call this once.

    Returns:
        logging.Logger: The configured root logger
    """
    config = config or LoggingConfig()
    level = getattr(logging, config.level.value)
    formatter = logging.Formatter(config.format)

    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    try:
        log_path = Path(config.file_path)
        if log_path.parent != Path("."):
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_path),
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError as e:
        print(f"Warning: cannot open log file {config.file_path}: {e}", file=sys.stderr)

    if config.console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return root
