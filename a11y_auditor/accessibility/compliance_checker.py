"""
Accessibility Checker

Wraps axe-core running inside the page. Rule evaluation (contrast maths, ARIA
validation, ...) belongs entirely to axe; this module only injects it, runs
it and converts its JSON into immutable findings.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_AXE_URL = "https://cdnjs.cloudflare.com/ajax/libs/axe-core/4.10.2/axe.min.js"

AXE_PRESENT_SCRIPT = "() => typeof window.axe !== 'undefined' && typeof window.axe.run === 'function'"

# History navigation is blocked while axe runs so a client-side router cannot
# destroy the execution context mid-scan.
AXE_RUN_SCRIPT = """
async (tags) => {
    const originalPushState = history.pushState;
    const originalReplaceState = history.replaceState;
    try {
        history.pushState = () => {};
        history.replaceState = () => {};
        const options = { resultTypes: ['violations', 'incomplete', 'passes', 'inapplicable'] };
        if (tags && tags.length) {
            options.runOnly = { type: 'tag', values: tags };
        }
        const res = await window.axe.run(document, options);
        return JSON.parse(JSON.stringify({
            violations: res.violations,
            passes: res.passes,
            incomplete: res.incomplete,
            inapplicable: res.inapplicable,
        }));
    } finally {
        history.pushState = originalPushState;
        history.replaceState = originalReplaceState;
    }
}
"""


class Severity(Enum):
    """Impact levels reported by axe-core and the keyboard engine"""
    CRITICAL = "critical"  # Blocks access to content or functionality
    SERIOUS = "serious"    # Significantly impacts usability
    MODERATE = "moderate"  # Some users affected
    MINOR = "minor"        # Annoyance

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Severity"]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


SEVERITY_ORDER = [Severity.CRITICAL, Severity.SERIOUS, Severity.MODERATE, Severity.MINOR]


@dataclass(frozen=True)
class CheckDetail:
    """One axe check (from a node's any/all/none lists)"""
    id: str
    impact: Optional[Severity]
    message: str
    related_targets: Tuple[str, ...] = ()

    @classmethod
    def from_axe(cls, data: Dict[str, Any]) -> "CheckDetail":
        related = tuple(
            target
            for node in data.get("relatedNodes") or []
            for target in (node.get("target") or [])[:1]
            if isinstance(target, str)
        )
        return cls(
            id=data.get("id", ""),
            impact=Severity.parse(data.get("impact")),
            message=data.get("message") or "",
            related_targets=related,
        )


@dataclass(frozen=True)
class RawInstance:
    """One location where a rule fired, as reported by the checker"""
    html: str
    target: Tuple[str, ...]
    failure_summary: str = ""
    any: Tuple[CheckDetail, ...] = ()
    all: Tuple[CheckDetail, ...] = ()
    none: Tuple[CheckDetail, ...] = ()

    @property
    def selector(self) -> Optional[str]:
        # axe lists the most specific selector first; nested entries are iframe hops
        for entry in self.target:
            if isinstance(entry, str):
                return entry
        return None

    @classmethod
    def from_axe(cls, data: Dict[str, Any]) -> "RawInstance":
        target = tuple(
            t if isinstance(t, str) else " ".join(t) for t in data.get("target") or []
        )
        return cls(
            html=data.get("html") or "",
            target=target,
            failure_summary=data.get("failureSummary") or "",
            any=tuple(CheckDetail.from_axe(c) for c in data.get("any") or []),
            all=tuple(CheckDetail.from_axe(c) for c in data.get("all") or []),
            none=tuple(CheckDetail.from_axe(c) for c in data.get("none") or []),
        )


@dataclass(frozen=True)
class RawFinding:
    """One rule result from the checker; immutable input to attribution"""
    id: str
    impact: Optional[Severity]
    description: str
    help: str = ""
    help_url: str = ""
    tags: Tuple[str, ...] = ()
    instances: Tuple[RawInstance, ...] = ()

    @classmethod
    def from_axe(cls, data: Dict[str, Any]) -> "RawFinding":
        return cls(
            id=data.get("id", ""),
            impact=Severity.parse(data.get("impact")),
            description=data.get("description") or "",
            help=data.get("help") or "",
            help_url=data.get("helpUrl") or "",
            tags=tuple(data.get("tags") or ()),
            instances=tuple(RawInstance.from_axe(n) for n in data.get("nodes") or []),
        )


@dataclass(frozen=True)
class CheckerResult:
    violations: Tuple[RawFinding, ...] = ()
    passes: Tuple[RawFinding, ...] = ()
    incomplete: Tuple[RawFinding, ...] = ()
    inapplicable: Tuple[RawFinding, ...] = ()

    @classmethod
    def from_axe(cls, data: Optional[Dict[str, Any]]) -> "CheckerResult":
        if not isinstance(data, dict):
            raise ValueError("No scan data returned from browser")

        def convert(key: str) -> Tuple[RawFinding, ...]:
            items = data.get(key)
            if items is None:
                return ()
            if not isinstance(items, list):
                logger.warning(f"Checker returned invalid {key} data")
                return ()
            return tuple(RawFinding.from_axe(item) for item in items)

        return cls(
            violations=convert("violations"),
            passes=convert("passes"),
            incomplete=convert("incomplete"),
            inapplicable=convert("inapplicable"),
        )


class AccessibilityChecker(Protocol):
    """Anything that can audit the current page of a browser session"""

    def run(self, session: Any, tags: Optional[Sequence[str]] = None) -> CheckerResult:
        ...


class AxeChecker:
    """
    Runs axe-core in the page

    The axe script is injected once per page from a local path or a URL. The
    call is idempotent and does not modify the DOM, so retries may simply
    call :meth:`run` again.
    """

    def __init__(self, script_path: Optional[str] = None, script_url: str = DEFAULT_AXE_URL):
        self.script_path = script_path
        self.script_url = script_url

    @classmethod
    def from_setting(cls, axe_script: Optional[str]) -> "AxeChecker":
        if axe_script and axe_script.startswith(("http://", "https://")):
            return cls(script_url=axe_script)
        if axe_script:
            return cls(script_path=axe_script)
        return cls()

    def inject(self, session: Any) -> None:
        if session.evaluate(AXE_PRESENT_SCRIPT):
            logger.debug("axe-core already injected, skipping")
            return
        session.add_script_tag(path=self.script_path, url=self.script_url)
        if not session.evaluate(AXE_PRESENT_SCRIPT):
            raise RuntimeError(
                "axe-core failed to load in page context. The page may block "
                "injected scripts; try a local --axe-script."
            )
        logger.debug("axe-core injected successfully")

    def run(self, session: Any, tags: Optional[Sequence[str]] = None) -> CheckerResult:
        self.inject(session)
        raw = session.evaluate(AXE_RUN_SCRIPT, list(tags) if tags else [])
        result = CheckerResult.from_axe(raw)
        logger.info(
            f"Checker found {len(result.violations)} violations, "
            f"{len(result.incomplete)} incomplete, {len(result.passes)} passes"
        )
        return result
