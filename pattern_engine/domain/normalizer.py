"""Merchant name normalization - stable grouping keys for free-text descriptions"""

import re
from typing import Optional

_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9\s]")

MAX_KEY_TOKENS = 3


def normalize_merchant(name: Optional[str], max_tokens: int = MAX_KEY_TOKENS) -> str:
    """
    Canonicalize a merchant/description string into a grouping key.

    Lower-cases, strips punctuation, collapses whitespace and keeps the
    first `max_tokens` words. Blank input yields "" (ungroupable).

    Example:
        "NETFLIX.COM  Monthly Plan #1234" -> "netflixcom monthly plan"
    """
    if not name:
        return ""

    tokens = _NON_ALPHANUMERIC.sub("", name.lower()).split()
    return " ".join(tokens[:max_tokens])
