"""
Report generation for LeakScan scan results.

Handles console output (rich-formatted) and JSON, CSV, HTML and SARIF
report files. Reports only read the finalized ScanResult.
"""

from __future__ import annotations

import csv
import html
import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from leakscan.findings import Finding, ScanResult

TOOL_NAME = "leakscan"
TOOL_VERSION = "1.0.0"
REPORT_FORMATS = ("json", "csv", "html", "sarif")

_SEVERITY_COLORS: dict[str, str] = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "clean": "green",
}

_SEVERITY_LABELS: dict[str, str] = {
    "critical": "[!!]",
    "high": "[!] ",
    "medium": "[~] ",
    "low": "[-] ",
    "clean": "[+] ",
}

_SARIF_LEVELS: dict[str, str] = {
    "critical": "error",
    "high": "error",
    "medium": "warning",
    "low": "note",
}

_CSV_HEADER = [
    "id", "rule_id", "description", "file_path", "line", "column",
    "severity", "confidence", "entropy", "secret", "tags",
]

_console = Console(highlight=False)


@dataclass(frozen=True)
class ReportConfig:
    """Configuration for report output."""

    formats: tuple[str, ...] = ("json",)
    output_dir: str = "reports"
    file_prefix: str = "leakscan-scan"
    include_large_files: bool = True
    min_severity: str = "low"
    verbose: bool = False


def _severity_text(severity: str) -> Text:
    color = _SEVERITY_COLORS.get(severity, "white")
    label = _SEVERITY_LABELS.get(severity, "")
    return Text(f"{label} {severity.upper()}", style=color)


def print_findings(result: ScanResult, config: ReportConfig, console: Console | None = None) -> None:
    """Print a rich table of findings at or above the configured severity."""
    console = console or _console
    findings = result.findings_by_severity(config.min_severity)
    if not findings:
        return

    table = Table(
        box=box.SIMPLE,
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("File", min_width=24, overflow="fold")
    table.add_column("Line", style="dim", width=6, justify="right")
    table.add_column("Rule", min_width=18)
    table.add_column("Secret", min_width=12)
    table.add_column("Sev", width=10)
    table.add_column("Conf", width=5, justify="right")
    if config.verbose:
        table.add_column("Context", overflow="fold")

    for f in sorted(findings, key=lambda f: (f.file_path, f.line_number, f.column)):
        row = [
            f.file_path,
            str(f.line_number),
            f.rule_id,
            f.secret,
            Text(f.severity.upper(), style=_SEVERITY_COLORS.get(f.severity, "white")),
            str(f.confidence),
        ]
        if config.verbose:
            row.append(f.context.strip())
        table.add_row(*row)

    console.print(table)


def print_summary(result: ScanResult, skipped_files: int | None = None, console: Console | None = None) -> None:
    """Print a final scan summary."""
    console = console or _console
    overall = result.highest_severity()

    console.print()
    console.print("[bold]--- Scan Summary ---[/bold]")
    console.print(f"  Files scanned : [bold]{result.total_files}[/bold]")
    console.print(f"  Bytes scanned : [bold]{result.total_bytes}[/bold]")
    if skipped_files is not None:
        console.print(f"  Files skipped : [dim]{skipped_files}[/dim]")
    console.print(f"  Total findings: [bold]{result.finding_count}[/bold]")
    for severity in ("critical", "high", "medium", "low"):
        count = result.statistics.by_severity.get(severity, 0)
        if count:
            console.print("    ", _severity_text(severity), f": {count}", sep="")
    console.print("  Overall risk  : ", end="")
    console.print(_severity_text(overall))
    if result.large_files:
        console.print(f"  Large files   : [yellow]{len(result.large_files)}[/yellow] (not scanned)")
    if result.errors:
        console.print(f"  Errors        : [red]{len(result.errors)}[/red]")
    if result.cancelled:
        console.print("  [yellow]Scan stopped early (cancelled or timed out)[/yellow]")
    console.print(f"  Elapsed       : [dim]{result.duration.total_seconds():.2f}s[/dim]")
    console.print()


def build_json_report(result: ScanResult, config: ReportConfig) -> dict:
    """Construct a serializable JSON report structure."""
    return {
        "tool": TOOL_NAME,
        "version": TOOL_VERSION,
        "start_time": result.start_time.isoformat(),
        "end_time": result.end_time.isoformat() if result.end_time else None,
        "duration_seconds": round(result.duration.total_seconds(), 3),
        "scan_paths": list(result.scan_paths),
        "total_files": result.total_files,
        "total_bytes": result.total_bytes,
        "cancelled": result.cancelled,
        "overall_severity": result.highest_severity(),
        "findings": [f.to_dict() for f in result.findings_by_severity(config.min_severity)],
        "large_files": (
            [{"path": lf.path, "size": lf.size, "reason": lf.reason} for lf in result.large_files]
            if config.include_large_files
            else []
        ),
        "errors": [
            {"path": e.path, "error": e.error, "timestamp": e.timestamp.isoformat()}
            for e in result.errors
        ],
        "statistics": result.statistics.to_dict(),
    }


def build_sarif_report(result: ScanResult, config: ReportConfig) -> dict:
    """Construct a SARIF 2.1.0 log with one run."""
    return {
        "version": "2.1.0",
        "$schema": "https://raw.githubusercontent.com/oasis-tcs/sarif-spec/master/Schemata/sarif-schema-2.1.0.json",
        "runs": [
            {
                "tool": {"driver": {"name": TOOL_NAME, "version": TOOL_VERSION}},
                "results": [_sarif_result(f) for f in result.findings_by_severity(config.min_severity)],
            }
        ],
    }


def _sarif_result(finding: Finding) -> dict:
    return {
        "ruleId": finding.rule_id,
        "message": {"text": finding.description},
        "level": _SARIF_LEVELS.get(finding.severity, "note"),
        "locations": [
            {
                "physicalLocation": {
                    "artifactLocation": {"uri": finding.file_path},
                    "region": {"startLine": finding.line_number, "startColumn": finding.column},
                }
            }
        ],
    }


def _html_report(result: ScanResult, config: ReportConfig) -> str:
    by_severity = result.statistics.by_severity
    rows = "\n".join(
        "<tr><td>{}</td><td>{}</td><td>{}</td><td>{}</td><td class=\"{}\">{}</td><td>{}%</td></tr>".format(
            html.escape(f.file_path),
            f.line_number,
            html.escape(f.rule_id),
            html.escape(f.description),
            html.escape(f.severity),
            html.escape(f.severity),
            f.confidence,
        )
        for f in result.findings_by_severity(config.min_severity)
    )
    end = result.end_time.strftime("%Y-%m-%d %H:%M:%S") if result.end_time else ""
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="UTF-8">
<title>LeakScan report</title>
<style>
body {{ font-family: Arial, sans-serif; margin: 20px; background: #f5f5f5; }}
table {{ width: 100%; border-collapse: collapse; background: white; }}
th, td {{ padding: 8px; text-align: left; border-bottom: 1px solid #ddd; }}
th {{ background: #333; color: white; }}
.critical {{ color: #dc3545; font-weight: bold; }}
.high {{ color: #fd7e14; font-weight: bold; }}
.medium {{ color: #b38f00; font-weight: bold; }}
.low {{ color: #28a745; font-weight: bold; }}
</style>
</head>
<body>
<h1>LeakScan report</h1>
<p>Started: {result.start_time.strftime("%Y-%m-%d %H:%M:%S")} &middot; Duration: {result.duration.total_seconds():.2f}s</p>
<p>Files scanned: {result.total_files} &middot; Findings: {result.finding_count}
&middot; Critical: {by_severity.get("critical", 0)} &middot; High: {by_severity.get("high", 0)}</p>
<table>
<thead><tr><th>File</th><th>Line</th><th>Rule</th><th>Description</th><th>Severity</th><th>Confidence</th></tr></thead>
<tbody>
{rows}
</tbody>
</table>
<p><em>Generated {end}</em></p>
</body>
</html>
"""


def _report_path(config: ReportConfig, extension: str, stamp: str) -> Path:
    return Path(config.output_dir) / f"{config.file_prefix}-{stamp}.{extension}"


def write_json_report(result: ScanResult, config: ReportConfig, output_path: Path) -> None:
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(build_json_report(result, config), f, indent=2)


def write_csv_report(result: ScanResult, config: ReportConfig, output_path: Path) -> None:
    with open(output_path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(_CSV_HEADER)
        for finding in result.findings_by_severity(config.min_severity):
            writer.writerow([
                finding.id,
                finding.rule_id,
                finding.description,
                finding.file_path,
                finding.line_number,
                finding.column,
                finding.severity,
                finding.confidence,
                f"{finding.entropy:.2f}",
                finding.secret,
                ";".join(finding.tags),
            ])


def write_html_report(result: ScanResult, config: ReportConfig, output_path: Path) -> None:
    output_path.write_text(_html_report(result, config), encoding="utf-8")


def write_sarif_report(result: ScanResult, config: ReportConfig, output_path: Path) -> None:
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(build_sarif_report(result, config), f, indent=2)


_WRITERS = {
    "json": write_json_report,
    "csv": write_csv_report,
    "html": write_html_report,
    "sarif": write_sarif_report,
}


def generate_reports(result: ScanResult, config: ReportConfig, now: datetime | None = None) -> list[Path]:
    """Write one report per configured format and return their paths."""
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S")
    Path(config.output_dir).mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for fmt in config.formats:
        writer = _WRITERS.get(fmt)
        if writer is None:
            raise ValueError(f"Unsupported report format: {fmt}")
        path = _report_path(config, fmt, stamp)
        writer(result, config, path)
        written.append(path)
    return written


def build_report_config(report_cfg: dict) -> ReportConfig:
    """Construct ReportConfig from the parsed config's report block."""
    formats = report_cfg.get("formats", ["json"])
    if isinstance(formats, str):
        formats = [formats]
    return ReportConfig(
        formats=tuple(str(f).lower() for f in formats),
        output_dir=str(report_cfg.get("output_dir", "reports")),
        file_prefix=str(report_cfg.get("file_prefix", "leakscan-scan")),
        include_large_files=bool(report_cfg.get("include_large_files", True)),
        min_severity=str(report_cfg.get("min_severity", "low")).lower(),
        verbose=bool(report_cfg.get("verbose", False)),
    )
