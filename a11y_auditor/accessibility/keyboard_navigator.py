"""
Keyboard Navigation Tester

Drives the live page with real key presses and classifies keyboard defects:
- Tab order walk with focus-trap and loop detection
- Focus indicator audit
- Skip link audit
- Focus trap re-validation inside visible widgets
- Custom widget keyboard support
- Positive tabindex and duplicate accesskey audits
- Hidden focusable elements and visual versus DOM order
- Focus indicator contrast and modal Escape handling
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..config import KeyboardConfig
from ..core.page_scripts import ELEMENT_HELPERS
from ..errors import ScanCancelledError
from .compliance_checker import Severity
from .wcag import WcagCriterion, criteria_for

logger = logging.getLogger(__name__)

# Interactive ARIA roles checked on non-native elements
CUSTOM_WIDGET_ROLES = [
    "button",
    "tab",
    "tablist",
    "menu",
    "menubar",
    "tree",
    "grid",
    "listbox",
    "radiogroup",
    "slider",
    "spinbutton",
    "combobox",
]

FOCUSABLE_SELECTOR = (
    'a[href], button:not([disabled]), input:not([disabled]), select:not([disabled]), '
    'textarea:not([disabled]), [tabindex]:not([tabindex="-1"]), audio[controls], video[controls], '
    '[contenteditable]:not([contenteditable="false"])'
)

# Centres closer than this many pixels vertically share a visual row
ROW_TOLERANCE_PX = 10
# A stop moved further than this from its DOM position is out of order
MAX_ORDER_SHIFT = 2
# More out-of-order stops than this make the whole order illogical
MAX_ORDER_MISMATCHES = 3
# Minimum contrast of a focus indicator against its surroundings
MIN_FOCUS_CONTRAST = 3.0


def _page_script(params: str, body: str) -> str:
    return f"({params}) => {{{ELEMENT_HELPERS}{body}}}"


FOCUS_START_SCRIPT = """
() => {
    if (document.activeElement && document.activeElement !== document.body) {
        document.activeElement.blur();
    }
    document.body.focus();
}
"""

FOCUSED_ELEMENT_SCRIPT = _page_script("", """
    const el = document.activeElement;
    if (!el || el === document.body || el === document.documentElement) return null;
    const style = window.getComputedStyle(el);
    const outline = style.outlineStyle !== 'none' && parseFloat(style.outlineWidth) > 0;
    const shadow = !!style.boxShadow && style.boxShadow !== 'none';
    const text = (el.getAttribute('aria-label') || el.textContent || '').replace(/\\s+/g, ' ').trim();
    let indicatorColor = null;
    if (outline) {
        indicatorColor = style.outlineColor;
    } else if (shadow) {
        const match = style.boxShadow.match(/rgba?\\([^)]*\\)/);
        indicatorColor = match ? match[0] : null;
    }
    // Outlines and shadows are drawn over whatever lies behind the element
    let backgroundColor = null;
    for (let node = el.parentElement; node; node = node.parentElement) {
        const bg = window.getComputedStyle(node).backgroundColor;
        if (bg && bg !== 'transparent' && !/rgba\\([^)]*,\\s*0\\)$/.test(bg)) {
            backgroundColor = bg;
            break;
        }
    }
    return {
        selector: cssSelector(el),
        role: el.getAttribute('role') || el.tagName.toLowerCase(),
        hasFocusIndicator: outline || shadow,
        description: (el.tagName.toLowerCase() + (text ? ' "' + text.slice(0, 50) + '"' : '')),
        elementId: elementId(el),
        indicatorColor,
        backgroundColor: backgroundColor || 'rgb(255, 255, 255)',
    };
""")

SKIP_LINK_SCRIPT = _page_script("", """
    for (const link of document.querySelectorAll('a[href^="#"]')) {
        const text = (link.textContent || link.getAttribute('aria-label') || '').toLowerCase();
        if (!text.includes('skip')) continue;
        const href = link.getAttribute('href');
        let target = null;
        if (href && href.length > 1) {
            target = document.getElementById(decodeURIComponent(href.slice(1)));
        }
        return { found: true, selector: cssSelector(link), href, targetExists: !!target };
    }
    return { found: false };
""")

FOCUS_SELECTOR_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.focus();
    return document.activeElement === el;
}
"""

SKIP_LINK_RESULT_SCRIPT = """
(href) => {
    const target = document.getElementById(decodeURIComponent(href.slice(1)));
    if (!target) return false;
    const active = document.activeElement;
    return !!active && (target === active || target.contains(active));
}
"""

WIDGET_CONTAINER_SCRIPT = _page_script("", """
    const focusable = 'a[href], button:not([disabled]), input:not([disabled]), select:not([disabled]), ' +
        'textarea:not([disabled]), [tabindex]:not([tabindex="-1"]), [contenteditable="true"]';
    const selector = '[role="dialog"], [role="alertdialog"], dialog[open], [aria-modal="true"], ' +
        '[role="menu"], [role="listbox"], [role="tree"]';
    const results = [];
    for (const el of document.querySelectorAll(selector)) {
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        if (rect.width === 0 || rect.height === 0 || style.visibility === 'hidden' || style.display === 'none') continue;
        const items = Array.from(el.querySelectorAll(focusable));
        const role = el.getAttribute('role') || '';
        results.push({
            selector: cssSelector(el),
            elementId: elementId(el),
            role: role || el.tagName.toLowerCase(),
            isModal: role === 'dialog' || role === 'alertdialog' || el.tagName === 'DIALOG' ||
                el.getAttribute('aria-modal') === 'true',
            focusableCount: items.length,
        });
    }
    return results;
""")

FOCUS_FIRST_IN_SCRIPT = _page_script("id", """
    const container = elementById(id);
    if (!container) return false;
    const first = container.querySelector('a[href], button:not([disabled]), input:not([disabled]), ' +
        'select:not([disabled]), textarea:not([disabled]), [tabindex]:not([tabindex="-1"])');
    if (!first) return false;
    first.focus();
    return container.contains(document.activeElement);
""")

FOCUS_INSIDE_SCRIPT = _page_script("id", """
    const container = elementById(id);
    return !!container && container.contains(document.activeElement);
""")

CUSTOM_WIDGET_SCRIPT = _page_script("roles", """
    const native = new Set(['BUTTON', 'INPUT', 'SELECT', 'TEXTAREA', 'SUMMARY']);
    const reactProps = (el) => {
        const key = Object.keys(el).find((k) => k.startsWith('__reactProps'));
        return key ? el[key] || {} : {};
    };
    const results = [];
    for (const role of roles) {
        for (const el of document.querySelectorAll('[role="' + role + '"]')) {
            if (native.has(el.tagName) || (el.tagName === 'A' && el.hasAttribute('href'))) continue;
            const props = reactProps(el);
            const tabindex = el.getAttribute('tabindex');
            results.push({
                selector: cssSelector(el),
                role,
                elementId: elementId(el),
                hasTabStop: tabindex !== null && parseInt(tabindex, 10) >= 0,
                hasKeyboardHandler: el.onkeydown !== null || el.onkeyup !== null || el.onkeypress !== null ||
                    !!(props.onKeyDown || props.onKeyUp || props.onKeyPress),
                hasPointerHandler: el.onclick !== null || el.onmousedown !== null || el.onpointerdown !== null ||
                    !!(props.onClick || props.onMouseDown || props.onPointerDown),
            });
        }
    }
    return results;
""")

POSITIVE_TABINDEX_SCRIPT = _page_script("", """
    return Array.from(document.querySelectorAll('[tabindex]'))
        .filter((el) => el.tabIndex > 0)
        .map((el) => ({ selector: cssSelector(el), tabIndex: el.tabIndex }));
""")

ACCESSKEY_SCRIPT = _page_script("", """
    return Array.from(document.querySelectorAll('[accesskey]'))
        .map((el) => ({ selector: cssSelector(el), key: el.getAttribute('accesskey') || '' }));
""")

HIDDEN_FOCUSABLE_SCRIPT = _page_script("focusable", """
    const results = [];
    for (const el of document.querySelectorAll(focusable)) {
        if (el.tabIndex < 0 || el.getClientRects().length === 0) continue;
        let reason = null;
        if (el.closest('[aria-hidden="true"]')) {
            reason = 'aria-hidden';
        } else {
            let transparent = false;
            for (let node = el; node && node.nodeType === 1; node = node.parentElement) {
                if (window.getComputedStyle(node).opacity === '0') {
                    transparent = true;
                    break;
                }
            }
            const rect = el.getBoundingClientRect();
            if (transparent || rect.width === 0 || rect.height === 0) reason = 'invisible';
        }
        if (reason) results.push({ selector: cssSelector(el), reason });
    }
    return results;
""")

FOCUSABLE_POSITIONS_SCRIPT = _page_script("focusable", """
    const results = [];
    for (const el of document.querySelectorAll(focusable)) {
        if (el.tabIndex < 0) continue;
        const rect = el.getBoundingClientRect();
        if (rect.width === 0 || rect.height === 0) continue;
        if (window.getComputedStyle(el).visibility === 'hidden') continue;
        results.push({
            selector: cssSelector(el),
            x: rect.left + window.scrollX + rect.width / 2,
            y: rect.top + window.scrollY + rect.height / 2,
        });
    }
    return results;
""")

MODAL_DISMISSED_SCRIPT = _page_script("id", """
    const modal = elementById(id);
    if (!modal || !modal.isConnected) return true;
    const style = window.getComputedStyle(modal);
    const rect = modal.getBoundingClientRect();
    if (style.display === 'none' || style.visibility === 'hidden' || rect.width === 0 || rect.height === 0) return true;
    if (modal.tagName === 'DIALOG' && !modal.open) return true;
    return !modal.contains(document.activeElement);
""")


class KeyboardIssueType(Enum):
    FOCUS_TRAP = "focus-trap"
    NO_FOCUS_INDICATOR = "no-focus-indicator"
    TAB_ORDER_VIOLATION = "tab-order-violation"
    KEYBOARD_INACCESSIBLE = "keyboard-inaccessible"
    SKIP_LINK_BROKEN = "skip-link-broken"
    SHORTCUT_CONFLICT = "shortcut-conflict"


ISSUE_CRITERIA: Dict[KeyboardIssueType, Tuple[str, ...]] = {
    KeyboardIssueType.FOCUS_TRAP: ("2.1.2",),
    KeyboardIssueType.NO_FOCUS_INDICATOR: ("2.4.7",),
    KeyboardIssueType.TAB_ORDER_VIOLATION: ("2.4.3",),
    KeyboardIssueType.KEYBOARD_INACCESSIBLE: ("2.1.1",),
    KeyboardIssueType.SKIP_LINK_BROKEN: ("2.4.1",),
    KeyboardIssueType.SHORTCUT_CONFLICT: ("2.1.4",),
}


class WidgetSupport(Enum):
    FULL = "full"
    PARTIAL = "partial"
    NONE = "none"


@dataclass(frozen=True)
class TabOrderEntry:
    index: int
    selector: str
    role: str
    has_focus_indicator: bool
    description: str = ""
    element_id: Optional[str] = None
    indicator_color: Optional[str] = None
    background_color: Optional[str] = None


@dataclass(frozen=True)
class KeyboardIssue:
    type: KeyboardIssueType
    severity: Severity
    selector: str
    message: str
    description: str = ""
    wcag_criteria: Tuple[WcagCriterion, ...] = ()
    reproduction: Tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        issue_type: KeyboardIssueType,
        severity: Severity,
        selector: str,
        message: str,
        description: str = "",
        reproduction: Tuple[str, ...] = (),
        extra_criteria: Tuple[str, ...] = (),
    ) -> "KeyboardIssue":
        return cls(
            type=issue_type,
            severity=severity,
            selector=selector,
            message=message,
            description=description,
            wcag_criteria=criteria_for(*ISSUE_CRITERIA[issue_type], *extra_criteria),
            reproduction=reproduction,
        )


@dataclass(frozen=True)
class CustomWidget:
    selector: str
    role: str
    support: WidgetSupport
    issues: Tuple[str, ...] = ()
    element_id: Optional[str] = None


@dataclass(frozen=True)
class KeyboardSummary:
    critical_issues: int = 0
    serious_issues: int = 0
    moderate_issues: int = 0
    total_issues: int = 0


@dataclass(frozen=True)
class KeyboardTestReport:
    tab_order: Tuple[TabOrderEntry, ...] = ()
    issues: Tuple[KeyboardIssue, ...] = ()
    custom_widgets: Tuple[CustomWidget, ...] = ()
    summary: KeyboardSummary = field(default_factory=KeyboardSummary)
    errors: Tuple[str, ...] = ()


def summarize_keyboard_issues(issues: List[KeyboardIssue]) -> KeyboardSummary:
    return KeyboardSummary(
        critical_issues=sum(1 for i in issues if i.severity is Severity.CRITICAL),
        serious_issues=sum(1 for i in issues if i.severity is Severity.SERIOUS),
        moderate_issues=sum(1 for i in issues if i.severity is Severity.MODERATE),
        total_issues=len(issues),
    )


def classify_widget_support(has_tab_stop: bool, has_keyboard_handler: bool, has_pointer_handler: bool) -> Tuple[WidgetSupport, List[str]]:
    """
    Classify keyboard support of a custom widget

    Returns:
        (support level, human readable issues)
    """
    issues = []
    if not has_tab_stop:
        issues.append("Widget is not focusable (missing tabindex)")
    if not has_keyboard_handler:
        issues.append("No keyboard event handler detected")
    if has_pointer_handler and not has_keyboard_handler:
        issues.append("Has a click handler but no keyboard handler; Enter/Space activation is missing")

    if has_tab_stop and has_keyboard_handler:
        return WidgetSupport.FULL, issues
    if not has_tab_stop and not has_keyboard_handler:
        return WidgetSupport.NONE, issues
    return WidgetSupport.PARTIAL, issues


def audit_focus_indicators(tab_order: List[TabOrderEntry]) -> List[KeyboardIssue]:
    """One issue per tab stop without a visible focus indicator"""
    issues = []
    for entry in tab_order:
        if entry.has_focus_indicator:
            continue
        issues.append(KeyboardIssue.create(
            KeyboardIssueType.NO_FOCUS_INDICATOR,
            Severity.SERIOUS,
            entry.selector,
            f"No visible focus indicator on {entry.selector}",
            description=entry.description,
            reproduction=(
                "1. Navigate to the page",
                f"2. Press Tab {entry.index + 1} time(s)",
                "3. Focused element shows no outline or other focus style",
            ),
        ))
    return issues


_RGB_RE = re.compile(r"rgba?\(\s*([\d.]+)[\s,]+([\d.]+)[\s,]+([\d.]+)(?:\s*[,/]\s*([\d.]+)(%?))?\s*\)")
_HEX_RE = re.compile(r"#([0-9a-f]{6})\b", re.IGNORECASE)


def parse_css_color(value: Optional[str]) -> Optional[Tuple[float, float, float]]:
    """RGB triple from a computed CSS color; None for transparent or unparsable values"""
    if not value:
        return None
    match = _RGB_RE.search(value)
    if match:
        alpha = match.group(4)
        if alpha is not None:
            opacity = float(alpha) / (100.0 if match.group(5) else 1.0)
            if opacity == 0:
                return None
        return float(match.group(1)), float(match.group(2)), float(match.group(3))
    match = _HEX_RE.search(value)
    if match:
        digits = match.group(1)
        return tuple(float(int(digits[i:i + 2], 16)) for i in (0, 2, 4))
    return None


def relative_luminance(rgb: Tuple[float, float, float]) -> float:
    def channel(value: float) -> float:
        value = value / 255.0
        return value / 12.92 if value <= 0.03928 else ((value + 0.055) / 1.055) ** 2.4

    r, g, b = (channel(v) for v in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrast_ratio(first: Tuple[float, float, float], second: Tuple[float, float, float]) -> float:
    lighter, darker = sorted((relative_luminance(first), relative_luminance(second)), reverse=True)
    return (lighter + 0.05) / (darker + 0.05)


def audit_focus_indicator_contrast(
    tab_order: List[TabOrderEntry], minimum: float = MIN_FOCUS_CONTRAST
) -> List[KeyboardIssue]:
    """
    Flag visible focus indicators that blend into their surroundings

    Stops without an indicator are left to ``audit_focus_indicators``; stops
    whose colors cannot be read are skipped.
    """
    issues = []
    for entry in tab_order:
        if not entry.has_focus_indicator:
            continue
        indicator = parse_css_color(entry.indicator_color)
        background = parse_css_color(entry.background_color)
        if indicator is None or background is None:
            continue
        ratio = contrast_ratio(indicator, background)
        if ratio >= minimum:
            continue
        issues.append(KeyboardIssue.create(
            KeyboardIssueType.NO_FOCUS_INDICATOR,
            Severity.SERIOUS,
            entry.selector,
            f"Focus indicator on {entry.selector} has a contrast ratio of {ratio:.2f}:1, "
            f"below the {minimum:g}:1 minimum",
            description=entry.description,
            reproduction=(
                "1. Navigate to the page",
                f"2. Press Tab {entry.index + 1} time(s)",
                f"3. Focus style {entry.indicator_color} is hard to see against {entry.background_color}",
            ),
            extra_criteria=("1.4.11",),
        ))
    return issues


@dataclass(frozen=True)
class OrderMismatch:
    selector: str
    dom_index: int
    visual_index: int


def find_order_mismatches(
    positions: Sequence[Dict[str, Any]],
    row_tolerance: float = ROW_TOLERANCE_PX,
    max_shift: int = MAX_ORDER_SHIFT,
) -> List[OrderMismatch]:
    """
    Compare document order with reading order (rows top to bottom, then left to right)

    Args:
        positions: ``{selector, x, y}`` element centres in document order
        row_tolerance: Vertical distance within which centres share a row
        max_shift: Largest tolerated difference between the two positions

    Returns:
        Elements whose visual position is more than ``max_shift`` places away
        from their document position
    """
    by_y = sorted(range(len(positions)), key=lambda i: (positions[i]["y"], i))
    rows: List[List[int]] = []
    row_top = None
    for i in by_y:
        y = positions[i]["y"]
        if row_top is None or y - row_top > row_tolerance:
            rows.append([])
            row_top = y
        rows[-1].append(i)

    visual_order = [i for row in rows for i in sorted(row, key=lambda j: (positions[j]["x"], j))]
    mismatches = []
    for visual_index, dom_index in enumerate(visual_order):
        if abs(dom_index - visual_index) > max_shift:
            mismatches.append(OrderMismatch(positions[dom_index].get("selector") or "unknown", dom_index, visual_index))
    mismatches.sort(key=lambda m: m.dom_index)
    return mismatches


class KeyboardNavigationTester:
    """
    Keyboard accessibility testing against a live browser session

    Sub-procedures run in a fixed order and are isolated from each other: a
    failing one is logged and recorded in the report's ``errors`` while the
    rest still run.
    """

    def __init__(self, config: Optional[KeyboardConfig] = None, checkpoint: Optional[Callable[[], None]] = None):
        self.config = config or KeyboardConfig()
        self._checkpoint = checkpoint

    def _check(self):
        if self._checkpoint is not None:
            self._checkpoint()

    def _press_tab(self, session: Any):
        session.press_key("Tab")
        session.wait(self.config.tab_delay)

    def run(self, session: Any) -> KeyboardTestReport:
        logger.info("Starting keyboard accessibility tests")
        issues: List[KeyboardIssue] = []
        errors: List[str] = []
        tab_order: List[TabOrderEntry] = []
        widgets: List[CustomWidget] = []

        def run_step(name: str, step: Callable[[], Any]):
            self._check()
            try:
                return step()
            except ScanCancelledError:
                raise
            except Exception as e:
                logger.warning(f"Keyboard test '{name}' failed: {e}")
                errors.append(f"{name}: {e}")
                return None

        walked = run_step("tab-order", lambda: self.walk_tab_order(session))
        if walked is not None:
            tab_order, trap_issues = walked
            issues.extend(trap_issues)

        issues.extend(run_step("focus-indicator", lambda: audit_focus_indicators(tab_order)) or [])

        if self.config.test_skip_links:
            issues.extend(run_step("skip-link", lambda: self.audit_skip_link(session)) or [])

        issues.extend(run_step("focus-trap", lambda: self.revalidate_focus_traps(session)) or [])

        audited = run_step("custom-widgets", lambda: self.audit_custom_widgets(session))
        if audited is not None:
            widgets, widget_issues = audited
            issues.extend(widget_issues)

        issues.extend(run_step("tabindex", lambda: self.audit_positive_tabindex(session)) or [])
        issues.extend(run_step("accesskey", lambda: self.audit_access_keys(session)) or [])
        issues.extend(run_step("hidden-focusable", lambda: self.audit_hidden_focusable(session)) or [])
        issues.extend(run_step("visual-order", lambda: self.audit_visual_order(session)) or [])
        issues.extend(run_step("focus-contrast", lambda: audit_focus_indicator_contrast(tab_order)) or [])
        # Escape may close dialogs, so this runs last
        issues.extend(run_step("modal-escape", lambda: self.audit_modal_escape(session)) or [])

        summary = summarize_keyboard_issues(issues)
        logger.info(
            f"Keyboard tests complete: {summary.total_issues} issues "
            f"({summary.critical_issues} critical), {len(tab_order)} tab stops"
        )
        return KeyboardTestReport(
            tab_order=tuple(tab_order),
            issues=tuple(issues),
            custom_widgets=tuple(widgets),
            summary=summary,
            errors=tuple(errors),
        )

    def walk_tab_order(self, session: Any) -> Tuple[List[TabOrderEntry], List[KeyboardIssue]]:
        """
        Press Tab from the top of the page and record each focus stop

        The walk halts on a focus trap (the same selector focused
        ``focus_trap_threshold`` times in a row) or when focus returns to the
        first stop after at least three stops.
        """
        entries: List[TabOrderEntry] = []
        issues: List[KeyboardIssue] = []
        threshold = self.config.focus_trap_threshold

        session.evaluate(FOCUS_START_SCRIPT)
        last_selector = None
        repeat_count = 0

        for press in range(self.config.max_tab_presses):
            self._check()
            self._press_tab(session)
            focused = session.evaluate(FOCUSED_ELEMENT_SCRIPT)
            if not focused:
                last_selector = None
                repeat_count = 0
                continue

            selector = focused.get("selector") or ""
            if selector == last_selector:
                repeat_count += 1
            else:
                last_selector = selector
                repeat_count = 1

            if repeat_count >= threshold:
                logger.warning(f"Focus trap detected at {selector}")
                issues.append(KeyboardIssue.create(
                    KeyboardIssueType.FOCUS_TRAP,
                    Severity.CRITICAL,
                    selector,
                    f"Focus trap detected: focus stayed on {selector} after {threshold} Tab presses",
                    description=focused.get("description") or "",
                    reproduction=(
                        "1. Navigate to the page",
                        f"2. Press Tab until {selector} is focused",
                        "3. Press Tab again; focus does not move",
                    ),
                ))
                break

            if len(entries) >= 3 and selector == entries[0].selector:
                logger.debug(f"Tab order cycled back to the first element after {press + 1} presses")
                break

            if repeat_count > 1:
                continue

            entries.append(TabOrderEntry(
                index=len(entries),
                selector=selector,
                role=focused.get("role") or "",
                has_focus_indicator=bool(focused.get("hasFocusIndicator")),
                description=focused.get("description") or "",
                element_id=focused.get("elementId"),
                indicator_color=focused.get("indicatorColor"),
                background_color=focused.get("backgroundColor"),
            ))

        logger.debug(f"Tab order walk recorded {len(entries)} stops")
        return entries, issues

    def audit_skip_link(self, session: Any) -> List[KeyboardIssue]:
        skip_link = session.evaluate(SKIP_LINK_SCRIPT) or {}
        if not skip_link.get("found"):
            return [KeyboardIssue.create(
                KeyboardIssueType.SKIP_LINK_BROKEN,
                Severity.MODERATE,
                "body",
                "No skip link found on the page",
                description="Skip link",
                reproduction=(
                    "1. Navigate to the page",
                    "2. Press Tab once",
                    "3. No skip link appears",
                ),
            )]

        selector = skip_link.get("selector") or "unknown"
        href = skip_link.get("href") or "#"
        works = False
        if skip_link.get("targetExists"):
            if session.evaluate(FOCUS_SELECTOR_SCRIPT, selector):
                session.press_key("Enter")
                session.wait(self.config.tab_delay)
                works = bool(session.evaluate(SKIP_LINK_RESULT_SCRIPT, href))
                if not works:
                    # A target without tabindex only moves the sequential focus start point
                    self._press_tab(session)
                    works = bool(session.evaluate(SKIP_LINK_RESULT_SCRIPT, href))

        if works:
            logger.debug(f"Skip link {selector} moves focus to {href}")
            return []

        reason = "its target does not exist" if not skip_link.get("targetExists") else "activating it does not move focus"
        return [KeyboardIssue.create(
            KeyboardIssueType.SKIP_LINK_BROKEN,
            Severity.SERIOUS,
            selector,
            f"Skip link exists but does not work correctly: {reason}",
            description="Skip link",
            reproduction=(
                "1. Navigate to the page",
                "2. Press Tab to focus skip link",
                "3. Press Enter to activate",
                "4. Focus does not move to main content",
            ),
        )]

    def revalidate_focus_traps(self, session: Any) -> List[KeyboardIssue]:
        issues = []
        for widget in session.evaluate(WIDGET_CONTAINER_SCRIPT) or []:
            count = widget.get("focusableCount") or 0
            widget_id = widget.get("elementId")
            if count == 0 or widget_id is None:
                continue
            if not session.evaluate(FOCUS_FIRST_IN_SCRIPT, widget_id):
                continue

            escaped = False
            for _ in range(count + 1):
                self._check()
                self._press_tab(session)
                if not session.evaluate(FOCUS_INSIDE_SCRIPT, widget_id):
                    escaped = True
                    break

            if escaped:
                continue
            if widget.get("isModal"):
                logger.debug(f"Focus contained by modal {widget.get('selector')}, as expected")
                continue

            selector = widget.get("selector") or "unknown"
            issues.append(KeyboardIssue.create(
                KeyboardIssueType.FOCUS_TRAP,
                Severity.CRITICAL,
                selector,
                f"Improper focus trap detected at {selector}",
                description=f"{widget.get('role') or 'widget'} traps keyboard focus",
                reproduction=(
                    "1. Navigate to the page",
                    "2. Tab into the element",
                    "3. Cannot tab out without using mouse",
                ),
            ))
        return issues

    def audit_custom_widgets(self, session: Any) -> Tuple[List[CustomWidget], List[KeyboardIssue]]:
        widgets = []
        issues = []
        for widget in session.evaluate(CUSTOM_WIDGET_SCRIPT, CUSTOM_WIDGET_ROLES) or []:
            support, problems = classify_widget_support(
                bool(widget.get("hasTabStop")),
                bool(widget.get("hasKeyboardHandler")),
                bool(widget.get("hasPointerHandler")),
            )
            selector = widget.get("selector") or "unknown"
            role = widget.get("role") or ""
            widgets.append(CustomWidget(selector, role, support, tuple(problems), widget.get("elementId")))
            if support is WidgetSupport.FULL:
                continue

            severity = Severity.CRITICAL if support is WidgetSupport.NONE else Severity.SERIOUS
            issues.append(KeyboardIssue.create(
                KeyboardIssueType.KEYBOARD_INACCESSIBLE,
                severity,
                selector,
                f"Custom {role} widget has {support.value} keyboard support: {'; '.join(problems)}",
                description=f'Element with role="{role}"',
                reproduction=(
                    "1. Navigate to the page",
                    f"2. Try to reach {selector} with Tab",
                    "3. Try to operate it with Enter, Space or arrow keys",
                ),
            ))
        return widgets, issues

    def audit_positive_tabindex(self, session: Any) -> List[KeyboardIssue]:
        return [
            KeyboardIssue.create(
                KeyboardIssueType.TAB_ORDER_VIOLATION,
                Severity.SERIOUS,
                item["selector"],
                f'Element has tabindex="{item["tabIndex"]}". Positive tabindex values create an '
                f"unpredictable tab order; use tabindex=\"0\" or rely on DOM order.",
                reproduction=("1. Navigate to the page", "2. Press Tab and observe the focus order"),
            )
            for item in session.evaluate(POSITIVE_TABINDEX_SCRIPT) or []
        ]

    def audit_access_keys(self, session: Any) -> List[KeyboardIssue]:
        by_key: "OrderedDict[str, List[str]]" = OrderedDict()
        for item in session.evaluate(ACCESSKEY_SCRIPT) or []:
            key = (item.get("key") or "").strip().lower()
            if key:
                by_key.setdefault(key, []).append(item.get("selector") or "unknown")

        issues = []
        for key, selectors in by_key.items():
            if len(selectors) < 2:
                continue
            issues.append(KeyboardIssue.create(
                KeyboardIssueType.SHORTCUT_CONFLICT,
                Severity.MODERATE,
                selectors[0],
                f'accesskey "{key}" is assigned to {len(selectors)} elements: {", ".join(selectors)}',
                reproduction=("1. Navigate to the page", f"2. Press the access key combination for \"{key}\""),
            ))
        return issues

    def audit_hidden_focusable(self, session: Any) -> List[KeyboardIssue]:
        """Tab stops that sighted users cannot see or that assistive technology is told to ignore"""
        issues = []
        for item in session.evaluate(HIDDEN_FOCUSABLE_SCRIPT, FOCUSABLE_SELECTOR) or []:
            selector = item.get("selector") or "unknown"
            if item.get("reason") == "aria-hidden":
                detail = "is inside an aria-hidden region but still receives keyboard focus"
            else:
                detail = "is invisible but still receives keyboard focus"
            issues.append(KeyboardIssue.create(
                KeyboardIssueType.TAB_ORDER_VIOLATION,
                Severity.MODERATE,
                selector,
                f"{selector} {detail}",
                description="Hidden focusable element",
                reproduction=(
                    "1. Navigate to the page",
                    f"2. Press Tab until focus lands on {selector}",
                    "3. Focus is on an element that cannot be seen or is not announced",
                ),
            ))
        return issues

    def audit_visual_order(self, session: Any) -> List[KeyboardIssue]:
        positions = session.evaluate(FOCUSABLE_POSITIONS_SCRIPT, FOCUSABLE_SELECTOR) or []
        mismatches = find_order_mismatches(positions)
        if len(mismatches) <= MAX_ORDER_MISMATCHES:
            return []

        logger.debug(f"{len(mismatches)} of {len(positions)} focusable elements are out of visual order")
        examples = ", ".join(m.selector for m in mismatches[:5])
        return [KeyboardIssue.create(
            KeyboardIssueType.TAB_ORDER_VIOLATION,
            Severity.SERIOUS,
            "body",
            f"Tab order does not follow the visual layout: {len(mismatches)} elements are out of "
            f"logical order ({examples})",
            description="Illogical focus order",
            reproduction=(
                "1. Navigate to the page",
                "2. Press Tab repeatedly",
                "3. Focus jumps around the page instead of following reading order",
            ),
        )]

    def audit_modal_escape(self, session: Any) -> List[KeyboardIssue]:
        """Press Escape inside every visible modal and check that it closes or lets focus go"""
        issues = []
        for widget in session.evaluate(WIDGET_CONTAINER_SCRIPT) or []:
            widget_id = widget.get("elementId")
            if not widget.get("isModal") or widget_id is None:
                continue
            self._check()
            if not session.evaluate(FOCUS_FIRST_IN_SCRIPT, widget_id):
                continue

            session.press_key("Escape")
            session.wait(self.config.tab_delay)
            if session.evaluate(MODAL_DISMISSED_SCRIPT, widget_id):
                logger.debug(f"Modal {widget.get('selector')} closed on Escape")
                continue

            selector = widget.get("selector") or "unknown"
            issues.append(KeyboardIssue.create(
                KeyboardIssueType.KEYBOARD_INACCESSIBLE,
                Severity.SERIOUS,
                selector,
                f"Modal {selector} does not close on Escape",
                description=f"{widget.get('role') or 'dialog'} ignores the Escape key",
                reproduction=(
                    "1. Navigate to the page and open the dialog",
                    "2. Focus a control inside it",
                    "3. Press Escape; the dialog stays open and keeps focus",
                ),
            ))
        return issues
