"""
Selector sanitizer.
Normalizes target references produced by the decision provider before they reach Playwright.
"""

import re


_ATTRIBUTE_RE = re.compile(r"\[([^\]=]+)=(['\"])(.*?)\2\]")


def _normalize_attribute(match: re.Match) -> str:
    attr = match.group(1).strip()
    value = match.group(3).replace('"', '\\"')
    return f'[{attr}="{value}"]'


def sanitize_selector(selector: str | None) -> str | None:
    """
    Clean up a CSS selector.

    Space-separated parts containing ``=`` that are not attribute
    brackets are dropped (bare ``key=value`` fragments such as
    ``data-id=3`` are not valid CSS), and quoted attribute values are normalized to
    double quotes.

    Args:
        selector: Raw selector

    Returns:
        Sanitized selector (empty or None passes through)
    """
    if not selector:
        return selector

    parts = [
        part for part in selector.split()
        if "=" not in part or part.startswith("[") or part.endswith("]")
    ]
    cleaned = " ".join(parts).strip()
    return _ATTRIBUTE_RE.sub(_normalize_attribute, cleaned)
