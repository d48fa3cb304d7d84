"""Tests for config discovery, parsing and validation."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from leakscan.config_loader import AppConfig, build_config, find_config_file, load_config, validate_config
from leakscan.detector import TypeState
from leakscan.errors import ConfigError

ROOT = Path(__file__).resolve().parent.parent


# ── defaults ───────────────────────────────────────────────────────────────


def test_defaults():
    config = AppConfig()
    assert config.scan.max_file_size == 100 * 1024 * 1024
    assert config.detect.entropy_threshold == 4.5
    assert config.detect.enable_builtin_rules
    assert config.report.formats == ("json",)
    assert config.performance.max_concurrency == 10
    assert config.performance.scan_timeout == 7200.0
    assert config.performance.cancel_mode == "soft"


def test_empty_document_gives_defaults():
    assert build_config({}) == AppConfig()


def test_load_without_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert find_config_file() is None
    assert load_config() == AppConfig()


# ── discovery and parsing ──────────────────────────────────────────────────


def test_shipped_config_loads():
    config = load_config(ROOT / "config" / "leakscan.yaml")
    assert config.detect.rule_files == ("config/rules.yaml",)
    assert r"/node_modules/" in config.scan.blacklist
    assert config.detect.type_state("api_key") is TypeState.ENABLED


def test_finds_config_in_config_dir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "leakscan.json").write_text(
        json.dumps({"performance": {"max_concurrency": 3}}), encoding="utf-8"
    )
    assert find_config_file() == Path("config") / "leakscan.json"
    assert load_config().performance.max_concurrency == 3


def test_working_dir_config_takes_precedence(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "leakscan.yml").write_text("report:\n  formats: [csv]\n", encoding="utf-8")
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "leakscan.yaml").write_text("report:\n  formats: [html]\n", encoding="utf-8")
    assert load_config().report.formats == ("csv",)


def test_yaml_sections_parsed(tmp_path):
    path = tmp_path / "leakscan.yaml"
    path.write_text(
        "scan:\n"
        "  paths: src\n"
        "  whitelist: ['\\.py$']\n"
        "detect:\n"
        "  enable_entropy_check: false\n"
        "  enabled_types: {email: false}\n"
        "report:\n"
        "  formats: [JSON, sarif]\n"
        "  min_severity: High\n"
        "performance:\n"
        "  cancel_mode: hard\n",
        encoding="utf-8",
    )
    config = load_config(path)
    assert config.scan.paths == ("src",)
    assert config.scan.whitelist == (r"\.py$",)
    assert not config.detect.enable_entropy_check
    assert config.detect.type_state("email") is TypeState.DISABLED
    assert config.report.formats == ("json", "sarif")
    assert config.report.min_severity == "high"
    assert config.performance.cancel_mode == "hard"


def test_empty_yaml_file_gives_defaults(tmp_path):
    path = tmp_path / "leakscan.yaml"
    path.write_text("", encoding="utf-8")
    assert load_config(path) == AppConfig()


# ── errors ─────────────────────────────────────────────────────────────────


def test_explicit_missing_path_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.yaml")


@pytest.mark.parametrize("text", ["{broken", "scan: [unclosed"])
def test_parse_error_raises_config_error(tmp_path, text):
    suffix = ".json" if text.startswith("{") else ".yaml"
    path = tmp_path / f"leakscan{suffix}"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize("raw", [
    {"scan": {"paths": []}},
    {"scan": {"max_file_size": 0}},
    {"scan": {"blacklist": ["(bad"]}},
    {"scan": "not-a-section"},
    {"detect": {"entropy_threshold": 9}},
    {"detect": {"entropy_threshold": "very"}},
    {"report": {"formats": ["pdf"]}},
    {"report": {"min_severity": "urgent"}},
    {"performance": {"max_concurrency": 0}},
    {"performance": {"scan_timeout": -1}},
    {"performance": {"cancel_mode": "abrupt"}},
    {"performance": {"max_concurrency": "many"}},
])
def test_invalid_values_rejected(raw):
    with pytest.raises(ConfigError):
        build_config(raw)


def test_non_object_document_rejected():
    with pytest.raises(ConfigError):
        build_config(["scan"])


def test_validate_config_after_override():
    config = AppConfig()
    bad = replace(config, performance=replace(config.performance, max_concurrency=-2))
    with pytest.raises(ConfigError):
        validate_config(bad)
    assert validate_config(config) is config
