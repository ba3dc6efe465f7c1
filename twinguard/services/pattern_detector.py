"""
SQL injection pattern detector.

Pure, synchronous helpers: no I/O, no database, no logging. The rule table is
ordered by priority and the first matching rule wins.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Tuple

SQL_INJECTION_PREFIX = "SQL_INJECTION"

_FLAGS = re.IGNORECASE | re.DOTALL

# (rule name, severity, compiled pattern), highest priority first
SQL_INJECTION_RULES: List[Tuple[str, int, Pattern]] = [
    # ' OR '1'='1  /  admin' or 'a'='a  /  OR 1=1
    # Operands must be quoted literals or numbers, so "'fun' or boring like me" is prose
    ("ADMIN_BYPASS", 10, re.compile(
        r"['\"`]\s*\)?\s*or\s+(?:'[^']*'|\"[^\"]*\"|`[^`]*`|\d+)\s*(?:=|like)\s*['\"`\d]"
        r"|\b(?:or|and)\s+['\"]?(\d+)['\"]?\s*=\s*['\"]?\1\b",
        _FLAGS,
    )),
    ("DROP_TABLE", 10, re.compile(r"\bdrop\s+(?:table|database|schema)\b", _FLAGS)),
    ("TRUNCATE_TABLE", 10, re.compile(r"\btruncate\s+table\b", _FLAGS)),
    ("XP_CMDSHELL", 10, re.compile(r"\bxp_cmdshell\b", _FLAGS)),
    # Only in statement context, so "please delete from my list" stays benign
    ("DELETE_FROM", 9, re.compile(
        r"[;'\"]\s*delete\s+from\b|\bdelete\s+from\s+\w+\s+where\b",
        _FLAGS,
    )),
    ("STACKED_QUERY", 9, re.compile(
        r";\s*(?:insert\s+into|update\s+\w+\s+set|alter\s+table|create\s+(?:table|user)"
        r"|exec(?:ute)?\s+\w+|shutdown\b|select\s+.+\s+from\b)",
        _FLAGS,
    )),
    ("UNION_SELECT", 9, re.compile(
        r"\bunion(?:\s|/\*.*?\*/|\+)+(?:all(?:\s|/\*.*?\*/|\+)+)?select\b",
        _FLAGS,
    )),
    ("TIME_BASED", 9, re.compile(
        r"\b(?:sleep|pg_sleep)\s*\(\s*\d+(?:\.\d+)?\s*\)"
        r"|\bbenchmark\s*\(\s*\d+\s*,"
        r"|\bwaitfor\s+delay\s+['\"]",
        _FLAGS,
    )),
    ("INFORMATION_SCHEMA", 8, re.compile(r"\binformation_schema\b", _FLAGS)),
    # A trailing comment cuts off the rest of the query; mid-sentence dashes are prose
    ("COMMENT", 8, re.compile(r"['\";]\s*(?:--|#)\s*$|/\*.*?\*/", _FLAGS)),
    ("CONTROL_CHARACTER", 8, re.compile(r"\x00|%00", _FLAGS)),
]


@dataclass(frozen=True)
class PatternMatch:
    """Result of a positive scan."""
    type: str
    severity: int
    rule: str


def detect(value) -> Optional[PatternMatch]:
    """
    Scan one input string against the rule table.

    Returns the first (highest-priority) matching rule, or None. Never raises:
    non-string and empty input simply do not match.
    """
    if not isinstance(value, str) or not value:
        return None

    for rule, severity, pattern in SQL_INJECTION_RULES:
        if pattern.search(value):
            return PatternMatch(
                type=f"{SQL_INJECTION_PREFIX}:{rule}",
                severity=severity,
                rule=rule,
            )
    return None


def scan_values(values: Iterable) -> Optional[PatternMatch]:
    """Return the first match across several inputs, in iteration order."""
    for value in values:
        match = detect(value)
        if match is not None:
            return match
    return None
