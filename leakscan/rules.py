"""
Detection rules for LeakScan.

A RuleSet is an immutable, ordered collection of compiled rules. The
built-in catalogue is built once and passed explicitly to the detector;
user rule files are appended to it, never merged by id.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml

from leakscan.errors import RuleError
from leakscan.findings import SEVERITY_ORDER

logger = logging.getLogger(__name__)

RULESET_VERSION = "1.0.0"


@dataclass(frozen=True)
class Rule:
    """A single compiled detection rule."""

    id: str
    description: str
    type: str
    severity: str
    pattern: re.Pattern[str] | None = None
    keywords: tuple[str, ...] = ()
    enabled: bool = True
    entropy_threshold: float = 0.0
    exclusions: tuple[re.Pattern[str], ...] = ()
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def is_excluded(self, text: str) -> bool:
        """Return True if text matches any of the rule's exclusion patterns."""
        return any(ex.search(text) for ex in self.exclusions)


@dataclass(frozen=True)
class RuleSet:
    """Ordered rules. Duplicate ids are kept and evaluated independently."""

    rules: tuple[Rule, ...] = ()
    version: str = RULESET_VERSION

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)

    def enabled_rules(self) -> list[Rule]:
        return [r for r in self.rules if r.enabled]

    def get(self, rule_id: str) -> Rule | None:
        """Return the first rule with the given id."""
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None

    def by_type(self, rule_type: str) -> list[Rule]:
        """Return enabled rules of the given type."""
        return [r for r in self.rules if r.type == rule_type and r.enabled]

    def merge(self, other: RuleSet) -> RuleSet:
        """Concatenate other's rules after ours."""
        return RuleSet(rules=self.rules + other.rules, version=self.version)


def _compile(pattern: str, rule_id: str, what: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise RuleError(f"Invalid {what} regex in rule '{rule_id}': {exc}") from exc


def _string_list(value: object, rule_id: str, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise RuleError(f"Rule '{rule_id}': '{key}' must be a list of strings")
    return tuple(value)


def build_rule(entry: dict) -> Rule:
    """Validate one rule record and compile its patterns."""
    if not isinstance(entry, dict):
        raise RuleError("Each rule entry must be an object")

    missing = [key for key in ("id", "type", "severity") if not entry.get(key)]
    if missing:
        raise RuleError(f"Rule {entry.get('id', '?')!r} is missing keys: {', '.join(missing)}")

    rule_id = str(entry["id"])
    severity = str(entry["severity"]).lower()
    if severity not in SEVERITY_ORDER:
        raise RuleError(f"Rule '{rule_id}': unknown severity '{entry['severity']}'")

    raw_pattern = entry.get("pattern") or None
    if raw_pattern is not None and not isinstance(raw_pattern, str):
        raise RuleError(f"Rule '{rule_id}': 'pattern' must be a string")
    keywords = _string_list(entry.get("keywords"), rule_id, "keywords")
    if raw_pattern is None and not keywords:
        raise RuleError(f"Rule '{rule_id}' needs a pattern or keywords")

    try:
        threshold = float(entry.get("entropy_threshold") or 0.0)
    except (TypeError, ValueError) as exc:
        raise RuleError(f"Rule '{rule_id}': 'entropy_threshold' must be a number") from exc

    enabled = entry.get("enabled", True)
    if not isinstance(enabled, bool):
        raise RuleError(f"Rule '{rule_id}': 'enabled' must be true or false")

    metadata = entry.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise RuleError(f"Rule '{rule_id}': 'metadata' must be an object")

    return Rule(
        id=rule_id,
        description=str(entry.get("description", "")),
        type=str(entry["type"]),
        severity=severity,
        pattern=_compile(raw_pattern, rule_id, "pattern") if raw_pattern else None,
        keywords=keywords,
        enabled=enabled,
        entropy_threshold=threshold,
        exclusions=tuple(
            _compile(ex, rule_id, "exclusion")
            for ex in _string_list(entry.get("exclusions"), rule_id, "exclusions")
        ),
        tags=_string_list(entry.get("tags"), rule_id, "tags"),
        metadata=dict(metadata),
    )


def build_rules(document: dict) -> RuleSet:
    """Build a RuleSet from a parsed rule document ({"version", "rules"})."""
    if not isinstance(document, dict):
        raise RuleError("Rule document must be an object with a 'rules' list")
    entries = document.get("rules", [])
    if not isinstance(entries, list):
        raise RuleError("'rules' must be a list")
    return RuleSet(
        rules=tuple(build_rule(entry) for entry in entries),
        version=str(document.get("version", RULESET_VERSION)),
    )


def parse_document(path: Path) -> Any:
    """Parse a JSON or YAML document, choosing the parser by suffix."""
    with open(path, encoding="utf-8") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def load_rule_file(path: str | Path) -> RuleSet:
    """Load and compile one rule file. Parse and schema errors raise RuleError."""
    path = Path(path)
    try:
        document = parse_document(path)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise RuleError(f"Cannot parse rule file {path}: {exc}") from exc
    return build_rules(document)


def load_rule_set(rule_files: Iterable[str | Path], include_builtin: bool = True) -> RuleSet:
    """
    Assemble the active rule set: built-ins (optional) then each rule file.

    Missing rule files are skipped with a warning; any other failure is fatal.
    """
    active = builtin_rules() if include_builtin else RuleSet()
    for rule_file in rule_files:
        path = Path(rule_file)
        if not path.exists():
            logger.warning("Rule file not found, skipping: %s", path)
            continue
        try:
            loaded = load_rule_file(path)
        except OSError as exc:
            raise RuleError(f"Cannot read rule file {path}: {exc}") from exc
        logger.debug("Loaded %d rules from %s", len(loaded), path)
        active = active.merge(loaded)
    return active


_BUILTIN_DEFINITIONS: tuple[dict, ...] = (
    {
        "id": "api-key-generic",
        "description": "Generic API key",
        "type": "api_key",
        "pattern": r"""(?i)(api[_-]?key|apikey|api[_-]?secret)['":\s]*[=:]\s*['"]?([a-zA-Z0-9_\-]{20,})['"]?""",
        "severity": "high",
        "tags": ["api", "key", "secret"],
    },
    {
        "id": "aws-access-key",
        "description": "AWS access key ID",
        "type": "api_key",
        "pattern": r"(A3T[A-Z0-9]|AKIA|AGPA|AIDA|AROA|AIPA|ANPA|ANVA|ASIA)[A-Z0-9]{16}",
        "severity": "critical",
        "tags": ["aws", "access-key", "cloud"],
    },
    {
        "id": "aws-secret-key",
        "description": "AWS secret access key",
        "type": "api_key",
        "pattern": r"""(?i)aws[_-]?secret[_-]?access[_-]?key['":\s]*[=:]\s*['"]?([a-zA-Z0-9/+=]{40})['"]?""",
        "severity": "critical",
        "tags": ["aws", "secret-key", "cloud"],
    },
    {
        "id": "github-token",
        "description": "GitHub access token",
        "type": "token",
        "pattern": r"gh[pousr]_[a-zA-Z0-9]{36}",
        "severity": "critical",
        "tags": ["github", "token", "vcs"],
    },
    {
        "id": "private-key",
        "description": "RSA/SSH/PGP private key header",
        "type": "private_key",
        "pattern": r"-----BEGIN\s+(RSA|OPENSSH|DSA|EC|PGP)\s+PRIVATE\s+KEY-----",
        "severity": "critical",
        "tags": ["private-key", "ssh", "rsa"],
    },
    {
        "id": "password-in-code",
        "description": "Hardcoded password",
        "type": "password",
        "pattern": r"""(?i)(password|passwd|pwd)['":\s]*[=:]\s*['"]([^'"]{6,})['"]""",
        "severity": "medium",
        "tags": ["password", "credential"],
        "entropy_threshold": 3.0,
    },
    {
        "id": "jwt-token",
        "description": "JSON Web Token",
        "type": "token",
        "pattern": r"eyJ[a-zA-Z0-9_-]*\.eyJ[a-zA-Z0-9_-]*\.[a-zA-Z0-9_-]*",
        "severity": "high",
        "tags": ["jwt", "token", "auth"],
    },
    {
        "id": "database-url",
        "description": "Database connection string",
        "type": "database_url",
        "pattern": r"""(?i)(mongodb|mysql|postgresql|postgres|sqlite|redis|mssql|oracle)://[^\s'"]+""",
        "severity": "high",
        "tags": ["database", "connection-string"],
    },
    {
        "id": "email-address",
        "description": "Email address",
        "type": "email",
        "pattern": r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}",
        "severity": "low",
        "tags": ["email", "pii"],
    },
    {
        "id": "phone-number-cn",
        "description": "Mainland China mobile number",
        "type": "phone",
        "pattern": r"1[3-9][0-9]{9}",
        "severity": "low",
        "tags": ["phone", "pii", "china"],
    },
    {
        "id": "id-card-cn",
        "description": "Mainland China resident ID number",
        "type": "id_card",
        "pattern": r"[1-9][0-9]{5}(18|19|20)[0-9]{2}(0[1-9]|1[0-2])(0[1-9]|[12][0-9]|3[01])[0-9]{3}[0-9Xx]",
        "severity": "high",
        "tags": ["id-card", "pii", "china"],
    },
    {
        "id": "ip-address",
        "description": "IPv4 address",
        "type": "ip_address",
        "pattern": r"\b((25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}(25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b",
        "severity": "low",
        "tags": ["ip", "network"],
    },
    {
        "id": "slack-token",
        "description": "Slack token",
        "type": "token",
        "pattern": r"xox[baprs]-[0-9a-zA-Z]{10,48}",
        "severity": "high",
        "tags": ["slack", "token"],
    },
    {
        "id": "google-api-key",
        "description": "Google API key",
        "type": "api_key",
        "pattern": r"AIza[0-9A-Za-z\-_]{35}",
        "severity": "high",
        "tags": ["google", "api-key"],
    },
)


def builtin_rules() -> RuleSet:
    """Return a freshly compiled copy of the built-in rule catalogue."""
    return build_rules({"version": RULESET_VERSION, "rules": list(_BUILTIN_DEFINITIONS)})
