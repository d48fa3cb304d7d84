"""Exception types raised across LeakScan."""

from __future__ import annotations


class LeakScanError(Exception):
    """Base class for all LeakScan errors."""


class ConfigError(LeakScanError, ValueError):
    """Invalid or unreadable configuration. Fatal before scanning starts."""


class RuleError(LeakScanError, ValueError):
    """A rule document violates the schema or carries an invalid regex."""


class ScanCancelled(LeakScanError):
    """The run's deadline passed or the caller cancelled it."""


class DetectionError(LeakScanError):
    """Detection of a single file failed part-way through.

    Carries whatever findings were produced before the failure so the
    orchestrator can keep them.
    """

    def __init__(self, path: str, message: str, findings: list | None = None) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
        self.findings = findings or []


class ResultFinalizedError(LeakScanError, RuntimeError):
    """A finalized ScanResult was mutated."""
