"""
Rule-driven line detector for LeakScan.

Applies the active rule set to one line of text at a time and returns
scored findings. Pattern matches get an entropy-derived confidence;
keyword hits get a fixed one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from leakscan.entropy import mask_secret, shannon_entropy
from leakscan.errors import DetectionError, ScanCancelled
from leakscan.findings import Finding
from leakscan.rules import Rule, RuleSet

if TYPE_CHECKING:
    from leakscan.cancel import CancelToken

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 50

CONFIDENCE_HIGH_ENTROPY = 80
CONFIDENCE_LOW_ENTROPY = 30
CONFIDENCE_NO_ENTROPY_CHECK = 70
CONFIDENCE_KEYWORD = 50


class TypeState(Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"
    UNSPECIFIED = "unspecified"


@dataclass(frozen=True)
class DetectConfig:
    """Configuration for the line detector."""

    rule_files: tuple[str, ...] = ()
    enable_builtin_rules: bool = True
    entropy_threshold: float = 4.5
    enable_entropy_check: bool = True
    enabled_types: dict[str, bool] = field(default_factory=lambda: {
        "api_key": True,
        "password": True,
        "private_key": True,
        "token": True,
        "certificate": True,
        "database_url": True,
    }, hash=False)

    def type_state(self, rule_type: str) -> TypeState:
        """Explicit tri-state lookup of a rule type in the enabled-types map."""
        if rule_type not in self.enabled_types:
            return TypeState.UNSPECIFIED
        return TypeState.ENABLED if self.enabled_types[rule_type] else TypeState.DISABLED

    def is_type_enabled(self, rule_type: str) -> bool:
        """Unspecified types default to enabled; only an explicit False disables."""
        return self.type_state(rule_type) is not TypeState.DISABLED


def _context(line: str, start: int, end: int) -> str:
    return line[max(0, start - CONTEXT_CHARS):min(len(line), end + CONTEXT_CHARS)]


def _decode(raw: bytes) -> str:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        text = raw.decode("latin-1")
    return text.rstrip("\r\n")


class Detector:
    """Applies a RuleSet to lines and files. Read-only after construction."""

    def __init__(self, rule_set: RuleSet, config: DetectConfig | None = None) -> None:
        self.config = config or DetectConfig()
        self.rule_set = rule_set
        self._active_rules: tuple[Rule, ...] = tuple(
            r for r in rule_set.enabled_rules() if self.config.is_type_enabled(r.type)
        )

    @property
    def active_rules(self) -> tuple[Rule, ...]:
        return self._active_rules

    def detect_line(
        self,
        file_path: str,
        line: str,
        line_number: int,
        file_type: str = "text",
    ) -> list[Finding]:
        """Return every finding the active rules produce for one line."""
        findings: list[Finding] = []
        for rule in self._active_rules:
            if rule.pattern is not None:
                findings.extend(self._pattern_findings(rule, file_path, line, line_number, file_type))
            if rule.keywords:
                findings.extend(self._keyword_findings(rule, file_path, line, line_number, file_type))
        return findings

    def _pattern_findings(
        self,
        rule: Rule,
        file_path: str,
        line: str,
        line_number: int,
        file_type: str,
    ) -> list[Finding]:
        findings: list[Finding] = []
        for match in rule.pattern.finditer(line):
            start, end = match.span()
            matched = match.group(0)
            if not matched or rule.is_excluded(matched):
                continue

            entropy = 0.0
            if self.config.enable_entropy_check:
                entropy = shannon_entropy(matched)
                # A rule-level threshold is a hard filter, not a confidence hint.
                if rule.entropy_threshold > 0 and entropy < rule.entropy_threshold:
                    continue
                if entropy >= self.config.entropy_threshold:
                    confidence = CONFIDENCE_HIGH_ENTROPY
                else:
                    confidence = CONFIDENCE_LOW_ENTROPY
            else:
                confidence = CONFIDENCE_NO_ENTROPY_CHECK

            findings.append(
                Finding(
                    rule_id=rule.id,
                    description=rule.description,
                    file_path=file_path,
                    line_number=line_number,
                    column=start + 1,
                    match=matched,
                    secret=mask_secret(matched),
                    context=_context(line, start, end),
                    severity=rule.severity,
                    confidence=confidence,
                    entropy=entropy,
                    tags=rule.tags,
                    file_type=file_type,
                )
            )
        return findings

    def _keyword_findings(
        self,
        rule: Rule,
        file_path: str,
        line: str,
        line_number: int,
        file_type: str,
    ) -> list[Finding]:
        findings: list[Finding] = []
        lowered = line.lower()
        for keyword in rule.keywords:
            pos = lowered.find(keyword.lower())
            if pos < 0:
                continue
            findings.append(
                Finding(
                    rule_id=rule.id,
                    description=rule.description,
                    file_path=file_path,
                    line_number=line_number,
                    column=pos + 1,
                    match=keyword,
                    secret=mask_secret(keyword),
                    context=line,
                    severity=rule.severity,
                    confidence=CONFIDENCE_KEYWORD,
                    tags=rule.tags,
                    file_type=file_type,
                )
            )
        return findings

    def detect_file(
        self,
        path: str | Path,
        file_type: str = "text",
        cancel: "CancelToken | None" = None,
    ) -> list[Finding]:
        """
        Run line-by-line detection over a file, preserving line order.

        When a cancel token is given it is checked between lines. Read
        failures and cancellation raise DetectionError with the findings
        collected so far attached.
        """
        file_path = str(path)
        findings: list[Finding] = []
        try:
            with open(path, "rb") as f:
                for line_number, raw in enumerate(f, start=1):
                    findings.extend(self.detect_line(file_path, _decode(raw), line_number, file_type))
                    if cancel is not None:
                        cancel.raise_if_cancelled()
        except ScanCancelled as exc:
            raise DetectionError(file_path, str(exc), findings) from exc
        except OSError as exc:
            raise DetectionError(file_path, f"read failed: {exc}", findings) from exc
        return findings


def build_detect_config(detect_cfg: dict) -> DetectConfig:
    """Construct DetectConfig from the parsed config's detect block."""
    defaults = DetectConfig()
    enabled_types = detect_cfg.get("enabled_types")
    return DetectConfig(
        rule_files=tuple(detect_cfg.get("rule_files", defaults.rule_files)),
        enable_builtin_rules=bool(detect_cfg.get("enable_builtin_rules", True)),
        entropy_threshold=float(detect_cfg.get("entropy_threshold", 4.5)),
        enable_entropy_check=bool(detect_cfg.get("enable_entropy_check", True)),
        enabled_types=(
            {str(k): bool(v) for k, v in enabled_types.items()}
            if isinstance(enabled_types, dict)
            else dict(defaults.enabled_types)
        ),
    )
