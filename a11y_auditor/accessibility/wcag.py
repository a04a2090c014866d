"""WCAG success criteria referenced by keyboard issues and axe tags"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

_LEVEL_TAG_RE = re.compile(r"^wcag\d*(a{1,3})$")


@dataclass(frozen=True)
class WcagCriterion:
    id: str
    title: str
    level: str
    principle: str
    w3c_url: str


WCAG_CRITERIA: Dict[str, WcagCriterion] = {
    c.id: c
    for c in (
        WcagCriterion("1.4.11", "Non-text Contrast", "AA", "Perceivable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/non-text-contrast.html"),
        WcagCriterion("2.1.1", "Keyboard", "A", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/keyboard.html"),
        WcagCriterion("2.1.2", "No Keyboard Trap", "A", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/no-keyboard-trap.html"),
        WcagCriterion("2.1.4", "Character Key Shortcuts", "A", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/character-key-shortcuts.html"),
        WcagCriterion("2.4.1", "Bypass Blocks", "A", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/bypass-blocks.html"),
        WcagCriterion("2.4.3", "Focus Order", "A", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/focus-order.html"),
        WcagCriterion("2.4.7", "Focus Visible", "AA", "Operable",
                      "https://www.w3.org/WAI/WCAG22/Understanding/focus-visible.html"),
    )
}


def criteria_for(*ids: str) -> Tuple[WcagCriterion, ...]:
    return tuple(WCAG_CRITERIA[i] for i in ids if i in WCAG_CRITERIA)


def wcag_level_from_tags(tags: Iterable[str]) -> Optional[str]:
    """Conformance level named by axe tags (``wcag2aa`` -> ``AA``), lowest level first"""
    levels = set()
    for tag in tags:
        match = _LEVEL_TAG_RE.match(tag)
        if match:
            levels.add(match.group(1).upper())
    for level in ("A", "AA", "AAA"):
        if level in levels:
            return level
    return None
