"""Browser module - Playwright management, snapshot extraction and selector cleanup."""

from .manager import BrowserManager
from .selectors import sanitize_selector

__all__ = [
    "BrowserManager",
    "sanitize_selector",
]
