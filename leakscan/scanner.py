"""
High-level scan orchestrator for LeakScan.

Collects file descriptors from the path walker, then dispatches detection
work to a thread pool behind a counting admission gate, merging every
outcome into one ScanResult. Timeout and external cancellation are soft:
dispatch stops, in-flight files finish, and the result is finalized.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from leakscan.cancel import CancelToken
from leakscan.detector import Detector
from leakscan.errors import DetectionError
from leakscan.findings import ScanResult
from leakscan.rules import RuleSet, load_rule_set
from leakscan.walker import FileDescriptor, PathWalker, WalkError

if TYPE_CHECKING:
    from leakscan.config_loader import AppConfig

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

CANCEL_MODES = ("soft", "hard")


class ScanState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    DISPATCHING = "dispatching"
    WAITING = "waiting"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class PerformanceConfig:
    """Concurrency and run-time limits."""

    max_concurrency: int = 10
    scan_timeout: float = 2 * 60 * 60  # seconds
    show_progress: bool = True
    cancel_mode: str = "soft"  # "soft" | "hard"


@dataclass(frozen=True)
class RunStats:
    """Run-scoped counters for progress and summary display."""

    files_processed: int = 0
    bytes_processed: int = 0
    skipped_files: int = 0
    oversize_files: int = 0


class Scanner:
    """Runs one scan over the configured roots. Single use."""

    def __init__(self, config: "AppConfig", rule_set: RuleSet | None = None) -> None:
        self.config = config
        if rule_set is None:
            rule_set = load_rule_set(
                config.detect.rule_files,
                include_builtin=config.detect.enable_builtin_rules,
            )
        self.rule_set = rule_set
        self.detector = Detector(rule_set, config.detect)
        self.walker = PathWalker(config.scan)
        self.state = ScanState.IDLE
        self.result: ScanResult | None = None
        self._progress_lock = threading.Lock()
        self._completed = 0

    def run(
        self,
        cancel: CancelToken | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> ScanResult:
        """Scan every configured root and return the finalized result."""
        if self.state is not ScanState.IDLE:
            raise RuntimeError(f"scanner already used (state={self.state.value})")

        perf = self.config.performance
        token = cancel or CancelToken()
        token.set_timeout(perf.scan_timeout)

        roots = list(self.config.scan.paths)
        result = ScanResult(
            scan_paths=roots,
            high_entropy_threshold=self.config.detect.entropy_threshold,
        )
        self.result = result
        logger.info("Starting scan of %s", ", ".join(roots))

        self.state = ScanState.COLLECTING
        walk = self.walker.walk(roots, token)
        descriptors = list(walk)
        self._drain_walk_errors(walk.errors, result)
        logger.info("Collected %d files", len(descriptors))

        self.state = ScanState.DISPATCHING
        try:
            self._dispatch(descriptors, token, result, progress_callback)
        finally:
            result.finalize(cancelled=token.cancelled)
            self.state = ScanState.FINALIZED
        logger.info(
            "Scan finished in %.2fs: %d files, %d findings, %d large files, %d errors",
            result.duration.total_seconds(),
            result.total_files,
            result.finding_count,
            len(result.large_files),
            len(result.errors),
        )
        return result

    def stats(self) -> RunStats:
        walk_stats = self.walker.stats()
        result = self.result
        return RunStats(
            files_processed=result.total_files if result else 0,
            bytes_processed=result.total_bytes if result else 0,
            skipped_files=walk_stats.skipped_files,
            oversize_files=walk_stats.large_files,
        )

    def _drain_walk_errors(self, errors: list[WalkError], result: ScanResult) -> None:
        for error in errors:
            if error.terminal:
                logger.warning("Traversal stopped early: %s", error.message)
                continue
            logger.warning("Traversal error: %s", error)
            result.add_error(error.path, error.message)

    def _dispatch(
        self,
        descriptors: list[FileDescriptor],
        token: CancelToken,
        result: ScanResult,
        progress_callback: ProgressCallback | None,
    ) -> None:
        limit = self.config.performance.max_concurrency
        gate = threading.BoundedSemaphore(limit)
        total = len(descriptors)
        futures: list[Future] = []

        with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="leakscan") as pool:
            for descriptor in descriptors:
                if token.cancelled:
                    logger.warning("Stopping dispatch: %s", token.reason)
                    break
                gate.acquire()
                # The wait for a slot may have outlived the deadline.
                if token.cancelled:
                    gate.release()
                    logger.warning("Stopping dispatch: %s", token.reason)
                    break
                try:
                    futures.append(
                        pool.submit(self._scan_one, descriptor, token, result, gate, progress_callback, total)
                    )
                except BaseException:
                    gate.release()
                    raise
            self.state = ScanState.WAITING

        for future in futures:
            future.result()

    def _scan_one(
        self,
        descriptor: FileDescriptor,
        token: CancelToken,
        result: ScanResult,
        gate: threading.BoundedSemaphore,
        progress_callback: ProgressCallback | None,
        total: int,
    ) -> None:
        try:
            if token.cancelled:
                return
            if descriptor.oversize:
                result.add_large_file(descriptor.path, descriptor.size, "file exceeds size limit")
                logger.debug("Skipping %s: %d bytes exceeds limit", descriptor.path, descriptor.size)
                return

            hard_cancel = token if self.config.performance.cancel_mode == "hard" else None
            try:
                findings = self.detector.detect_file(
                    descriptor.path,
                    descriptor.file_type.value,
                    cancel=hard_cancel,
                )
            except DetectionError as exc:
                if exc.findings:
                    result.add_findings(exc.findings)
                result.add_error(descriptor.path, exc.message)
                logger.warning("Detection failed for %s: %s", descriptor.path, exc.message)
                return

            if findings:
                result.add_findings(findings)
                logger.info("%d findings in %s", len(findings), descriptor.path)
            result.record_file(descriptor.size)
        finally:
            gate.release()
            self._report_progress(descriptor.path, total, progress_callback)

    def _report_progress(self, path: str, total: int, progress_callback: ProgressCallback | None) -> None:
        with self._progress_lock:
            self._completed += 1
            completed = self._completed
        if progress_callback is not None:
            progress_callback(path, completed, total)


def build_performance_config(perf_cfg: dict) -> PerformanceConfig:
    """Construct PerformanceConfig from the parsed config's performance block."""
    return PerformanceConfig(
        max_concurrency=int(perf_cfg.get("max_concurrency", 10)),
        scan_timeout=float(perf_cfg.get("scan_timeout", 2 * 60 * 60)),
        show_progress=bool(perf_cfg.get("show_progress", True)),
        cancel_mode=str(perf_cfg.get("cancel_mode", "soft")).lower(),
    )
