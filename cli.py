"""
LeakScan CLI: concurrent secret and sensitive-data scanner.

Commands:
  scan    Scan one or more paths and write reports
  rules   List the active detection rules
"""

from __future__ import annotations

import dataclasses
import logging
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from leakscan.cancel import CancelToken
from leakscan.config_loader import AppConfig, load_config, validate_config
from leakscan.errors import ConfigError, RuleError
from leakscan.findings import SEVERITY_ORDER
from leakscan.report import REPORT_FORMATS, TOOL_VERSION, generate_reports, print_findings, print_summary
from leakscan.rules import load_rule_set
from leakscan.scanner import Scanner

# stderr for progress/status, stdout for results (pipeable)
_stderr_console = Console(stderr=True)
_console = Console()

logger = logging.getLogger("leakscan")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=_stderr_console, show_path=False)],
        force=True,
    )


def _resolve_config(config_path: Path | None) -> AppConfig:
    """Load AppConfig, exiting with a user-friendly message on failure."""
    try:
        return load_config(config_path)
    except ConfigError as exc:
        _stderr_console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(2)


def _apply_overrides(
    cfg: AppConfig,
    paths: tuple[str, ...],
    output: str | None,
    formats: str | None,
    max_concurrency: int | None,
    max_file_size: int | None,
    timeout: float | None,
    verbose: bool,
    no_progress: bool,
) -> AppConfig:
    """Command-line flags take precedence over the config file."""
    scan = cfg.scan
    if paths:
        scan = dataclasses.replace(scan, paths=tuple(paths))
    if max_file_size:
        scan = dataclasses.replace(scan, max_file_size=max_file_size)

    report = cfg.report
    if output:
        report = dataclasses.replace(report, output_dir=output)
    if formats:
        report = dataclasses.replace(
            report, formats=tuple(f.strip().lower() for f in formats.split(",") if f.strip())
        )
    if verbose:
        report = dataclasses.replace(report, verbose=True)

    perf = cfg.performance
    if max_concurrency:
        perf = dataclasses.replace(perf, max_concurrency=max_concurrency)
    if timeout:
        perf = dataclasses.replace(perf, scan_timeout=timeout)
    if no_progress:
        perf = dataclasses.replace(perf, show_progress=False)

    return validate_config(dataclasses.replace(cfg, scan=scan, report=report, performance=perf))


_STOP_SIGNALS = tuple(s for s in (signal.SIGINT, getattr(signal, "SIGTERM", None)) if s is not None)


def _install_signal_handlers(token: CancelToken) -> dict:
    """SIGINT/SIGTERM request a soft stop. Returns the handlers replaced."""

    def _handler(signum, frame) -> None:
        _stderr_console.print("\n[yellow]Interrupt received, finishing in-flight files...[/yellow]")
        token.cancel(f"received signal {signal.Signals(signum).name}")

    return {sig: signal.signal(sig, _handler) for sig in _STOP_SIGNALS}


def _restore_signal_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        if handler is not None:
            signal.signal(sig, handler)


@click.group()
@click.version_option(TOOL_VERSION, prog_name="leakscan")
def cli() -> None:
    """LeakScan: find secrets and sensitive data in a filesystem tree."""


@cli.command("scan")
@click.argument("paths", nargs=-1, type=click.Path(exists=True))
@click.option("--config", "-c", default=None, type=click.Path(path_type=Path), help="Path to a leakscan config file")
@click.option("--output", "-o", default=None, help="Report output directory")
@click.option("--format", "-f", "formats", default=None,
              help=f"Comma-separated report formats ({', '.join(REPORT_FORMATS)})")
@click.option("--max-concurrency", type=click.IntRange(min=1), default=None, help="Maximum parallel file scans")
@click.option("--max-file-size", type=click.IntRange(min=1), default=None, help="Maximum file size in bytes")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Scan timeout in seconds")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging and context column")
@click.option("--no-progress", is_flag=True, default=False, help="Disable the progress bar")
@click.option("--block", "-b", default="high", show_default=True,
              type=click.Choice(["low", "medium", "high", "critical"]),
              help="Severity level that triggers a non-zero exit code")
def cmd_scan(
    paths: tuple[str, ...],
    config: Path | None,
    output: str | None,
    formats: str | None,
    max_concurrency: int | None,
    max_file_size: int | None,
    timeout: float | None,
    verbose: bool,
    no_progress: bool,
    block: str,
) -> None:
    """Scan PATHS (default: config paths) for secrets and sensitive information."""
    _setup_logging(verbose)
    cfg = _resolve_config(config)
    try:
        cfg = _apply_overrides(
            cfg, paths, output, formats, max_concurrency, max_file_size, timeout, verbose, no_progress
        )
        scanner = Scanner(cfg)
    except (ConfigError, RuleError) as exc:
        _stderr_console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(2)

    token = CancelToken()
    previous_handlers = _install_signal_handlers(token)

    _stderr_console.print(
        f"[bold]Scanning[/bold] [dim]{', '.join(cfg.scan.paths)}[/dim] "
        f"with {len(scanner.detector.active_rules)} rules, "
        f"concurrency {cfg.performance.max_concurrency}"
    )

    try:
        if cfg.performance.show_progress:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeElapsedColumn(),
                console=_stderr_console,
                transient=True,
            ) as progress:
                task_id = progress.add_task("Collecting files...", total=None)

                def on_progress(fpath: str, completed: int, total: int) -> None:
                    progress.update(task_id, total=total, completed=completed,
                                    description=f"Scanning {fpath[-60:]}")

                result = scanner.run(cancel=token, progress_callback=on_progress)
        else:
            result = scanner.run(cancel=token)
    except KeyboardInterrupt:
        _stderr_console.print("\n[yellow]Scan interrupted.[/yellow]")
        sys.exit(130)
    finally:
        _restore_signal_handlers(previous_handlers)

    print_findings(result, cfg.report, console=_console)
    print_summary(result, skipped_files=scanner.stats().skipped_files, console=_console)

    for report_path in generate_reports(result, cfg.report):
        _stderr_console.print(f"[dim]Report written to {report_path}[/dim]")

    overall = result.highest_severity()
    if SEVERITY_ORDER.get(overall, 0) >= SEVERITY_ORDER[block]:
        sys.exit(1)


@cli.command("rules")
@click.option("--config", "-c", default=None, type=click.Path(path_type=Path), help="Path to a leakscan config file")
@click.option("--all", "show_all", is_flag=True, default=False, help="Include disabled rules")
def cmd_rules(config: Path | None, show_all: bool) -> None:
    """List the detection rules the scanner would apply."""
    cfg = _resolve_config(config)
    try:
        rule_set = load_rule_set(cfg.detect.rule_files, include_builtin=cfg.detect.enable_builtin_rules)
    except RuleError as exc:
        _stderr_console.print(f"[bold red]Rule error:[/bold red] {exc}")
        sys.exit(2)

    table = Table(show_header=True, header_style="bold dim")
    table.add_column("ID", min_width=18)
    table.add_column("Type")
    table.add_column("Severity")
    table.add_column("Enabled")
    table.add_column("Description")
    rules = list(rule_set) if show_all else rule_set.enabled_rules()
    for rule in rules:
        enabled = rule.enabled and cfg.detect.is_type_enabled(rule.type)
        table.add_row(rule.id, rule.type, rule.severity, "yes" if enabled else "no", rule.description)
    _console.print(table)
    _console.print(f"[dim]{len(rules)} rules (rule set version {rule_set.version})[/dim]")


if __name__ == "__main__":
    cli()
