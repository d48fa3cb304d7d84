"""
Configuration loader for LeakScan.

Locates and parses a JSON or YAML config file, constructs all sub-configs,
and provides a single AppConfig object consumed by all modules.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from leakscan.detector import DetectConfig, build_detect_config
from leakscan.errors import ConfigError
from leakscan.findings import SEVERITY_ORDER
from leakscan.report import REPORT_FORMATS, ReportConfig, build_report_config
from leakscan.rules import parse_document
from leakscan.scanner import CANCEL_MODES, PerformanceConfig, build_performance_config
from leakscan.walker import PathFilter, WalkerConfig, build_walker_config

logger = logging.getLogger(__name__)

_CONFIG_NAMES = ("leakscan.yaml", "leakscan.yml", "leakscan.json")
_SEARCH_DIRS = (Path("."), Path("config"))


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration object aggregating all sub-configs."""

    scan: WalkerConfig = field(default_factory=WalkerConfig)
    detect: DetectConfig = field(default_factory=DetectConfig)
    report: ReportConfig = field(default_factory=ReportConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)


def validate_config(config: AppConfig) -> AppConfig:
    """Raise ConfigError for any setting the scanner cannot run with."""
    if not config.scan.paths:
        raise ConfigError("At least one scan path is required")
    if config.scan.max_file_size <= 0:
        raise ConfigError("max_file_size must be greater than 0")
    # Compiles both lists; invalid regexes raise ConfigError.
    PathFilter(config.scan.whitelist, config.scan.blacklist)

    if not 0 <= config.detect.entropy_threshold <= 8:
        raise ConfigError("entropy_threshold must be between 0 and 8")

    for fmt in config.report.formats:
        if fmt not in REPORT_FORMATS:
            raise ConfigError(f"Unsupported report format: {fmt}")
    if config.report.min_severity not in SEVERITY_ORDER:
        raise ConfigError(f"Invalid min_severity: {config.report.min_severity}")

    if config.performance.max_concurrency <= 0:
        raise ConfigError("max_concurrency must be greater than 0")
    if config.performance.scan_timeout <= 0:
        raise ConfigError("scan_timeout must be greater than 0")
    if config.performance.cancel_mode not in CANCEL_MODES:
        raise ConfigError(f"cancel_mode must be one of: {', '.join(CANCEL_MODES)}")
    return config


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be an object")
    return value


def build_config(raw: dict) -> AppConfig:
    """Build and validate an AppConfig from a parsed document."""
    if not isinstance(raw, dict):
        raise ConfigError("Config document must be an object")
    try:
        config = AppConfig(
            scan=build_walker_config(_section(raw, "scan")),
            detect=build_detect_config(_section(raw, "detect")),
            report=build_report_config(_section(raw, "report")),
            performance=build_performance_config(_section(raw, "performance")),
        )
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc
    return validate_config(config)


def find_config_file() -> Path | None:
    """Return the first leakscan config found in the working or config directory."""
    for directory in _SEARCH_DIRS:
        for name in _CONFIG_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Load and validate the configuration file.

    An explicit path must exist. Without one, the working directory and
    ./config are searched, falling back to built-in defaults.
    """
    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            logger.debug("No config file found, using defaults")
            return validate_config(AppConfig())
    elif not config_path.is_file():
        raise ConfigError(f"Config not found: {config_path}")

    try:
        raw = parse_document(config_path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse config {config_path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config {config_path}: {exc}") from exc

    logger.debug("Loaded config from %s", config_path)
    return build_config(raw or {})
