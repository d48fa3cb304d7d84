"""
Shannon entropy and secret masking for LeakScan.

Entropy is computed per matched value and used as a randomness proxy
to raise or lower the confidence of a pattern finding.
"""

from __future__ import annotations

import math
from collections import Counter

MASK_PLACEHOLDER = "****"
SHORT_MASK = "***"
# Values up to this length are redacted completely.
_MASK_MIN_LENGTH = 8
_VISIBLE_CHARS = 4


def shannon_entropy(data: str) -> float:
    """
    Calculate Shannon entropy of a string in bits per character.

    Returns a value in [0, log2(number of distinct characters)].
    Higher values indicate more randomness.
    """
    if not data:
        return 0.0
    total = len(data)
    return -sum((c / total) * math.log2(c / total) for c in Counter(data).values())


def mask_secret(value: str) -> str:
    """
    Redact a matched value for display.

    Short values are replaced entirely; longer ones keep their first and
    last four characters around a fixed-width placeholder, regardless of
    how many characters were hidden.
    """
    if len(value) <= _MASK_MIN_LENGTH:
        return SHORT_MASK
    return value[:_VISIBLE_CHARS] + MASK_PLACEHOLDER + value[-_VISIBLE_CHARS:]
