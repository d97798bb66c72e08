"""
DOM Snapshot Extraction.
Collects visible actionable elements from the page and renders the canonical snapshot text.
"""

from typing import Any
from pydantic import BaseModel


# JavaScript evaluated in the page to collect actionable elements.
# Takes the ignore selectors; elements inside a match are left out.
EXTRACTION_SCRIPT = """
(ignoreSelectors) => {
    const interactiveSelectors = [
        'a[href]', 'button', 'input', 'textarea', 'select',
        '[role="button"]', '[role="link"]', '[onclick]'
    ];

    function isVisible(el) {
        if (el.getAttribute('aria-hidden') === 'true') return false;
        let current = el;
        while (current && current !== document.body) {
            const style = window.getComputedStyle(current);
            if (style.display === 'none' || style.visibility === 'hidden') return false;
            if (parseFloat(style.opacity || '1') < 0.01) return false;
            current = current.parentElement;
        }
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 && rect.height === 0) return false;
        if (rect.bottom < 0 || rect.top > window.innerHeight) return false;
        if (rect.right < 0 || rect.left > window.innerWidth) return false;
        return true;
    }

    function isIgnored(el) {
        for (const selector of ignoreSelectors || []) {
            try {
                if (el.closest(selector)) return true;
            } catch (e) {
                // invalid selector, skip it
            }
        }
        return false;
    }

    function isInModal(el) {
        let current = el;
        while (current && current !== document.body) {
            const cls = String(current.className || '').toLowerCase();
            if (current.getAttribute('role') === 'dialog' && current.getAttribute('aria-modal') === 'true') return true;
            if (cls.includes('dialog') || cls.includes('modal') || cls.includes('overlay') || cls.includes('popup')) return true;
            current = current.parentElement;
        }
        return false;
    }

    function selectorFor(el) {
        if (el.id) return '#' + el.id;
        for (const attr of ['data-cy', 'data-testid', 'name']) {
            const value = el.getAttribute(attr);
            if (value) return '[' + attr + '="' + value + '"]';
        }
        const classes = String(el.className || '')
            .split(' ')
            .filter(c => c && !c.includes('=') && !c.includes(':'))
            .map(c => c.replace(/[^a-zA-Z0-9_-]/g, ''))
            .filter(c => c.length > 0);
        return el.tagName.toLowerCase() + (classes.length ? '.' + classes.join('.') : '');
    }

    function labelFor(el) {
        const raw = (el.textContent || '').trim()
            || el.getAttribute('aria-label')
            || el.getAttribute('placeholder')
            || el.getAttribute('title')
            || '';
        return raw.replace(/\\s+/g, ' ').substring(0, 30);
    }

    const results = [];
    const seen = new Set();
    document.querySelectorAll(interactiveSelectors.join(', ')).forEach(el => {
        if (seen.has(el) || isIgnored(el) || !isVisible(el)) return;
        seen.add(el);
        const cls = String(el.className || '').toLowerCase();
        results.push({
            tag: el.tagName,
            text: labelFor(el) || '(no text)',
            selector: selectorFor(el),
            type: el.getAttribute('type'),
            role: el.getAttribute('role'),
            in_modal: isInModal(el),
            required: el.hasAttribute('required'),
            disabled: el.disabled === true || el.getAttribute('aria-disabled') === 'true' || cls.includes('disabled'),
        });
    });
    return results;
}
"""

EMPTY_SNAPSHOT = "No actionable elements found on this page."


class SimplifiedElement(BaseModel):
    """One actionable element as reported by the extraction script."""
    tag: str
    text: str = ""
    selector: str
    type: str | None = None
    role: str | None = None
    in_modal: bool = False
    required: bool = False
    disabled: bool = False

    def format(self, index: int) -> str:
        head = f"[{index}] {self.tag}"
        if self.in_modal:
            head += " [MODAL]"
        parts = [head]
        if self.text:
            # Quotes would break the Text: "..." field
            parts.append(f'Text: "{self.text.replace(chr(34), chr(39))}"')
        if self.type:
            parts.append(f"Type: {self.type}")
        if self.role:
            parts.append(f"Role: {self.role}")
        if self.required:
            parts.append("REQUIRED")
        if self.disabled:
            parts.append("DISABLED")
        parts.append(f"Selector: {self.selector}")
        return " | ".join(parts)


def format_snapshot(elements: list[SimplifiedElement]) -> str:
    """
    Render elements into the canonical snapshot text.

    Modal elements come first under their own header. The output depends
    only on the elements, so identical pages fingerprint identically.

    Args:
        elements: Extracted elements in document order

    Returns:
        Snapshot text
    """
    if not elements:
        return EMPTY_SNAPSHOT

    modal = [e for e in elements if e.in_modal]
    regular = [e for e in elements if not e.in_modal]
    lines = []

    if modal:
        lines.append(f"=== MODAL SECTION ({len(modal)} elements) - PRIORITIZE THESE ===")
        lines.extend(e.format(i) for i, e in enumerate(modal))
        lines.append("")

    if regular:
        lines.append(f"Actionable Elements ({len(regular)}):")
        lines.extend(e.format(i) for i, e in enumerate(regular))

    return "\n".join(lines)


async def extract_snapshot(page: Any, ignore_selectors: list[str] | None = None) -> str:
    """
    Extract the canonical snapshot of a Playwright page.

    Args:
        page: Playwright page object
        ignore_selectors: CSS selectors whose elements, and everything inside
            them, never appear in the snapshot

    Returns:
        Snapshot text
    """
    raw = await page.evaluate(EXTRACTION_SCRIPT, list(ignore_selectors or []))
    elements = [SimplifiedElement(**item) for item in raw or []]
    return format_snapshot(elements)
