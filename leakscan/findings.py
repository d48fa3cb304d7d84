"""
Finding and scan result models for LeakScan.

A ScanResult is the single cross-thread mutable object of a run: every
mutation goes through its lock, and finalize() freezes it for good.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal

from leakscan.errors import ResultFinalizedError

SeverityLevel = Literal["low", "medium", "high", "critical"]

SEVERITY_ORDER: dict[str, int] = {
    "low": 1,
    "medium": 2,
    "high": 3,
    "critical": 4,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Finding:
    """One potential sensitive-data match at a file/line/column."""

    rule_id: str
    description: str
    file_path: str
    line_number: int
    column: int
    match: str
    secret: str  # masked form of match, safe to display
    context: str
    severity: SeverityLevel
    confidence: int
    entropy: float = 0.0
    tags: tuple[str, ...] = ()
    file_type: str = "text"
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_now)

    @property
    def severity_rank(self) -> int:
        return SEVERITY_ORDER.get(self.severity, 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "description": self.description,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "column_number": self.column,
            "match": self.match,
            "secret": self.secret,
            "context": self.context,
            "severity": self.severity,
            "confidence": self.confidence,
            "entropy": round(self.entropy, 3),
            "tags": list(self.tags),
            "file_type": self.file_type,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class LargeFile:
    """Oversize notice: a file excluded from content scanning."""

    path: str
    size: int
    reason: str


@dataclass(frozen=True)
class ScanError:
    """A per-path failure recorded during traversal or detection."""

    path: str
    error: str
    timestamp: datetime = field(default_factory=_now)


@dataclass
class Statistics:
    by_severity: dict[str, int] = field(default_factory=dict)
    by_rule: dict[str, int] = field(default_factory=dict)
    by_file_type: dict[str, int] = field(default_factory=dict)
    high_entropy_count: int = 0

    def to_dict(self) -> dict:
        return {
            "by_severity": dict(self.by_severity),
            "by_rule": dict(self.by_rule),
            "by_file_type": dict(self.by_file_type),
            "high_entropy_count": self.high_entropy_count,
        }


@dataclass
class ScanResult:
    """Aggregated result of one scan run."""

    scan_paths: list[str]
    high_entropy_threshold: float = 4.5
    start_time: datetime = field(default_factory=_now)
    end_time: datetime | None = None
    duration: timedelta = timedelta(0)
    total_files: int = 0
    total_bytes: int = 0
    findings: list[Finding] = field(default_factory=list)
    large_files: list[LargeFile] = field(default_factory=list)
    errors: list[ScanError] = field(default_factory=list)
    statistics: Statistics = field(default_factory=Statistics)
    cancelled: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _finalized: bool = field(default=False, repr=False, compare=False)

    @property
    def finding_count(self) -> int:
        return len(self.findings)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    @property
    def is_clean(self) -> bool:
        return not self.findings

    def _check_open(self) -> None:
        if self._finalized:
            raise ResultFinalizedError("scan result is finalized and read-only")

    def add_findings(self, findings: list[Finding]) -> None:
        """Append findings in order and update statistics atomically."""
        with self._lock:
            self._check_open()
            stats = self.statistics
            for f in findings:
                self.findings.append(f)
                stats.by_severity[f.severity] = stats.by_severity.get(f.severity, 0) + 1
                stats.by_rule[f.rule_id] = stats.by_rule.get(f.rule_id, 0) + 1
                stats.by_file_type[f.file_type] = stats.by_file_type.get(f.file_type, 0) + 1
                if f.entropy >= self.high_entropy_threshold:
                    stats.high_entropy_count += 1

    def add_finding(self, finding: Finding) -> None:
        self.add_findings([finding])

    def record_file(self, size: int) -> None:
        """Count one fully scanned file."""
        with self._lock:
            self._check_open()
            self.total_files += 1
            self.total_bytes += size

    def add_large_file(self, path: str, size: int, reason: str) -> None:
        with self._lock:
            self._check_open()
            self.large_files.append(LargeFile(path=path, size=size, reason=reason))

    def add_error(self, path: str, message: str) -> None:
        with self._lock:
            self._check_open()
            self.errors.append(ScanError(path=path, error=message))

    def finalize(self, cancelled: bool = False) -> None:
        """Stamp end time and duration. Further mutation raises."""
        with self._lock:
            self._check_open()
            self.end_time = _now()
            self.duration = self.end_time - self.start_time
            self.cancelled = cancelled
            self._finalized = True

    def findings_by_severity(self, min_severity: str) -> list[Finding]:
        """Return findings at or above min_severity."""
        floor = SEVERITY_ORDER.get(min_severity, 0)
        return [f for f in self.findings if f.severity_rank >= floor]

    def highest_severity(self) -> str:
        """Return the highest finding severity, or "clean" with no findings."""
        if not self.findings:
            return "clean"
        return max(self.findings, key=lambda f: f.severity_rank).severity
