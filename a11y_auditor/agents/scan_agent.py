"""
Accessibility Scan Agent

Runs one scan per URL as an explicit state machine:

    Idle -> Launching -> Navigating -> Stabilizing -> Scanning -> Attributing -> Done

with Error reachable from every non-terminal state. The browser session is
closed exactly once on every exit path.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple
from urllib.parse import urlparse

from ..accessibility.compliance_checker import AxeChecker, CheckerResult
from ..accessibility.component_attribution import (
    AttributedFinding,
    DomComponentMap,
    ElementLocation,
    FrameworkFilter,
    attribute_findings,
    build_locations,
    collect_selectors,
)
from ..accessibility.keyboard_navigator import KeyboardNavigationTester, KeyboardTestReport
from ..accessibility.report_generator import (
    ScanNotice,
    ScanResult,
    StabilityCheckResult,
    aggregate_summary,
    evaluate_ci,
)
from ..config import ScannerConfig
from ..core.browser import BrowserSession
from ..core.react_plugin import ReactTreeProvider
from ..errors import (
    FrameworkNotDetectedError,
    InvalidUrlError,
    ScanCancelledError,
    ScanError,
    ScanStateError,
)
from ..utils.retry import with_retry

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "file")

# Default for AccessibilityScanAgent(tree_provider=...); None disables attribution
REACT_TREE_PROVIDER = object()


class ScanState(Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    NAVIGATING = "navigating"
    STABILIZING = "stabilizing"
    SCANNING = "scanning"
    ATTRIBUTING = "attributing"
    DONE = "done"
    ERROR = "error"


ALLOWED_TRANSITIONS: Dict[ScanState, Set[ScanState]] = {
    ScanState.IDLE: {ScanState.LAUNCHING, ScanState.ERROR},
    ScanState.LAUNCHING: {ScanState.NAVIGATING, ScanState.ERROR},
    ScanState.NAVIGATING: {ScanState.STABILIZING, ScanState.ERROR},
    ScanState.STABILIZING: {ScanState.SCANNING, ScanState.ERROR},
    ScanState.SCANNING: {ScanState.ATTRIBUTING, ScanState.ERROR},
    ScanState.ATTRIBUTING: {ScanState.DONE, ScanState.ERROR},
    ScanState.DONE: set(),
    ScanState.ERROR: set(),
}

TERMINAL_STATES = (ScanState.DONE, ScanState.ERROR)


def validate_url(url: str) -> str:
    """Reject URLs the browser cannot meaningfully scan"""
    if not url or not url.strip():
        raise InvalidUrlError(url, "URL is empty")
    parsed = urlparse(url.strip())
    if parsed.scheme not in SUPPORTED_SCHEMES:
        raise InvalidUrlError(url, f"unsupported scheme '{parsed.scheme}', use http, https or file")
    if parsed.scheme in ("http", "https") and not parsed.netloc:
        raise InvalidUrlError(url, "missing host")
    if parsed.scheme == "file" and not parsed.path:
        raise InvalidUrlError(url, "missing file path")
    return url.strip()


@dataclass
class ScanSession:
    """Mutable state of one scan; owned by the agent running it"""
    url: str
    browser_type: str
    headless: bool = True
    state: ScanState = ScanState.IDLE
    checker_attempts: int = 0
    navigation_count: int = 0
    history: List[ScanState] = field(default_factory=lambda: [ScanState.IDLE])
    errors: List[ScanNotice] = field(default_factory=list)
    timeout: Optional[float] = None
    deadline: Optional[float] = None
    failure: Optional[ScanError] = None
    clock: Callable[[], float] = time.monotonic

    def transition(self, new_state: ScanState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise ScanStateError(self.state.value, new_state.value)
        logger.debug(f"Scan state {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def record(self, kind: str, message: str):
        logger.warning(message)
        self.errors.append(ScanNotice(kind=kind, message=message, state=self.state.value))

    def checkpoint(self):
        """Raise ScanCancelledError once the overall deadline has passed"""
        if self.deadline is not None and self.clock() >= self.deadline:
            raise ScanCancelledError(self.state.value, self.timeout)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass(frozen=True)
class ScanOutcome:
    """Per-URL entry of a batch scan"""
    url: str
    result: Optional[ScanResult] = None
    error: Optional[ScanError] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class AccessibilityScanAgent:
    """
    Scans pages for accessibility defects and attributes them to components

    Collaborators are injectable so the state machine can run against fakes:
    ``session_factory`` builds a fresh browser session per scan, ``checker``
    audits the page and ``tree_provider`` serializes the component tree
    (pass None to skip attribution; the default is a ReactTreeProvider).
    """

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        session_factory: Callable[[], Any] = BrowserSession,
        checker: Optional[Any] = None,
        tree_provider: Optional[Any] = REACT_TREE_PROVIDER,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or ScannerConfig()
        self.session_factory = session_factory
        self.checker = checker or AxeChecker.from_setting(self.config.scan.axe_script)
        self.tree_provider = ReactTreeProvider() if tree_provider is REACT_TREE_PROVIDER else tree_provider
        self.framework_filter = FrameworkFilter(self.config.framework.patterns)
        self.clock = clock
        self.sessions: List[ScanSession] = []

    @property
    def last_session(self) -> Optional[ScanSession]:
        return self.sessions[-1] if self.sessions else None

    def scan(self, url: str) -> ScanResult:
        """
        Scan one URL

        Returns:
            Immutable ScanResult; degraded steps are listed in ``errors``

        Raises:
            ScanError: on any fatal fault, after the session moved to Error
        """
        url = validate_url(url)
        scan = ScanSession(
            url=url,
            browser_type=self.config.browser.browser_type,
            headless=self.config.browser.headless,
            timeout=self.config.scan.scan_timeout,
            clock=self.clock,
        )
        if scan.timeout:
            scan.deadline = self.clock() + scan.timeout
        self.sessions.append(scan)

        logger.info(f"Starting accessibility scan of {url} with {scan.browser_type}")
        browser = self.session_factory()
        try:
            return self._run(scan, browser)
        except ScanError as e:
            self._fail(scan, e)
            raise
        except KeyboardInterrupt:
            self._fail(scan, ScanCancelledError(scan.state.value, scan.timeout))
            raise
        except Exception as e:
            error = ScanError(
                f"Unexpected error during {scan.state.value}: {e}",
                kind="internal",
                context={"url": url, "state": scan.state.value},
            )
            self._fail(scan, error)
            raise error from e
        finally:
            self._close(browser)

    def scan_many(self, urls: Sequence[str]) -> List[ScanOutcome]:
        """Scan URLs one after another; a fatal error only ends that URL's scan"""
        outcomes = []
        for index, url in enumerate(urls, 1):
            logger.info(f"Scanning {index}/{len(urls)}: {url}")
            try:
                outcomes.append(ScanOutcome(url=url, result=self.scan(url)))
            except ScanError as e:
                outcomes.append(ScanOutcome(url=url, error=e))
        return outcomes

    def _fail(self, scan: ScanSession, error: ScanError):
        scan.failure = error
        if not scan.is_terminal:
            scan.transition(ScanState.ERROR)
        logger.error(f"Scan of {scan.url} failed ({error.kind}): {error.message}")

    def _close(self, browser: Any):
        try:
            browser.close()
        except Exception as e:
            logger.warning(f"Error during browser cleanup: {e}")

    def _run(self, scan: ScanSession, browser: Any) -> ScanResult:
        cfg = self.config

        scan.transition(ScanState.LAUNCHING)
        scan.checkpoint()
        browser.launch(scan.browser_type, scan.headless)

        scan.transition(ScanState.NAVIGATING)
        scan.checkpoint()
        browser.navigate(
            scan.url,
            timeout=cfg.browser.timeout,
            stabilization_delay=cfg.browser.stabilization_delay,
        )

        scan.transition(ScanState.STABILIZING)
        stability = self._wait_for_stability(scan, browser)

        scan.transition(ScanState.SCANNING)
        scan.checkpoint()
        framework_detected = self._detect_framework(scan, browser)
        if cfg.scan.require_react and not framework_detected:
            raise FrameworkNotDetectedError(scan.url)
        checker_result = self._run_checker(scan, browser)

        scan.transition(ScanState.ATTRIBUTING)
        scan.checkpoint()
        violations, incomplete, passes = self._attribute(scan, browser, checker_result, framework_detected)

        keyboard: Optional[KeyboardTestReport] = None
        if cfg.keyboard.enabled:
            keyboard = self._run_keyboard(scan, browser)

        summary = aggregate_summary(
            violations,
            passes,
            incomplete,
            checker_result.inapplicable,
            keyboard.issues if keyboard is not None else None,
        )
        ci = evaluate_ci(summary, cfg.scan.ci_threshold) if cfg.scan.ci_mode else None
        if ci is not None:
            logger.info(ci.message)

        scan.transition(ScanState.DONE)
        logger.info(
            f"Scan of {scan.url} complete: {summary.total_violations} violations "
            f"across {summary.total_instances} elements"
        )
        return ScanResult(
            url=scan.url,
            browser=scan.browser_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            framework_detected=framework_detected,
            violations=violations,
            incomplete=incomplete,
            passes=passes,
            inapplicable=checker_result.inapplicable,
            tab_order=keyboard.tab_order if keyboard is not None else (),
            keyboard_issues=keyboard.issues if keyboard is not None else (),
            keyboard_summary=keyboard.summary if keyboard is not None else None,
            custom_widgets=keyboard.custom_widgets if keyboard is not None else (),
            summary=summary,
            ci=ci,
            errors=tuple(scan.errors),
            stability=stability,
            checker_attempts=scan.checker_attempts,
        )

    def _wait_for_stability(self, scan: ScanSession, browser: Any) -> StabilityCheckResult:
        """
        Wait until the page stops navigating on its own

        Each round waits for network idle, pauses, then watches for another
        navigation. No navigation within the watch window means stable. The
        loop runs at most ``max_navigation_waits`` rounds; running out never
        fails the scan.
        """
        cfg = self.config.browser
        last_error = None

        for _ in range(cfg.max_navigation_waits):
            scan.checkpoint()
            if not browser.wait_for_load_state("networkidle", cfg.network_idle_timeout):
                logger.debug("Network did not go idle, continuing")
            browser.wait(cfg.post_navigation_delay)
            try:
                navigated = browser.wait_for_navigation(cfg.navigation_check_interval)
            except ScanCancelledError:
                raise
            except Exception as e:
                # A destroyed execution context means the page changed under us
                last_error = str(e)
                navigated = True

            if not navigated:
                logger.debug(f"Page stable after {scan.navigation_count} navigation(s)")
                return StabilityCheckResult(True, scan.navigation_count, last_error)

            scan.navigation_count += 1
            logger.info(
                f"Navigation detected ({scan.navigation_count}/{cfg.max_navigation_waits}), "
                "waiting for stability"
            )

        scan.record(
            "page-unstable",
            f"Page did not stabilize after {scan.navigation_count} navigation(s); scanning anyway",
        )
        return StabilityCheckResult(False, scan.navigation_count, last_error)

    def _detect_framework(self, scan: ScanSession, browser: Any) -> bool:
        try:
            if self.tree_provider is not None:
                detected = bool(self.tree_provider.detect(browser))
            else:
                detected = bool(browser.detect_react())
        except ScanCancelledError:
            raise
        except Exception as e:
            scan.record("framework-detection-failed", f"Framework detection failed: {e}")
            return False
        if not detected:
            logger.info("React not detected, component attribution will be unavailable")
        return detected

    def _run_checker(self, scan: ScanSession, browser: Any) -> CheckerResult:
        settings = self.config.scan

        def attempt() -> CheckerResult:
            scan.checkpoint()
            scan.checker_attempts += 1
            logger.debug(f"Running accessibility checker (attempt {scan.checker_attempts})")
            return self.checker.run(browser, settings.tags)

        return with_retry(attempt, settings.max_retries, settings.retry_delay_base)

    def _attribution_context(
        self, browser: Any, groups: Sequence[Sequence[Any]]
    ) -> Tuple[DomComponentMap, Dict[str, ElementLocation]]:
        snapshot = self.tree_provider.snapshot(browser)
        dom_map = DomComponentMap.from_snapshot(snapshot, self.framework_filter)
        selectors = collect_selectors(*groups)
        locations = build_locations(selectors, self.tree_provider.locate(browser, selectors))
        logger.info(f"Mapped {len(dom_map)} elements to components, located {len(locations)}/{len(selectors)} selectors")
        return dom_map, locations

    def _attribute(
        self,
        scan: ScanSession,
        browser: Any,
        result: CheckerResult,
        framework_detected: bool,
    ) -> Tuple[Tuple[AttributedFinding, ...], Tuple[AttributedFinding, ...], Tuple[AttributedFinding, ...]]:
        attribute_passes = self.config.framework.attribute_passes
        groups = [result.violations, result.incomplete]
        if attribute_passes:
            groups.append(result.passes)

        dom_map = None
        locations: Dict[str, ElementLocation] = {}
        if framework_detected and self.tree_provider is not None:
            try:
                dom_map, locations = self._attribution_context(browser, groups)
            except ScanCancelledError:
                raise
            except Exception as e:
                scan.record("attribution-failed", f"Component attribution failed: {e}")
                dom_map, locations = None, {}

        filt = self.framework_filter
        violations = attribute_findings(result.violations, dom_map, locations, filt)
        incomplete = attribute_findings(result.incomplete, dom_map, locations, filt)
        passes = attribute_findings(result.passes, dom_map if attribute_passes else None, locations, filt)
        return violations, incomplete, passes

    def _run_keyboard(self, scan: ScanSession, browser: Any) -> Optional[KeyboardTestReport]:
        tester = KeyboardNavigationTester(self.config.keyboard, checkpoint=scan.checkpoint)
        try:
            report = tester.run(browser)
        except ScanCancelledError:
            raise
        except Exception as e:
            scan.record("keyboard-test-failed", f"Keyboard testing failed: {e}")
            return None
        for message in report.errors:
            scan.record("keyboard-test-failed", f"Keyboard test step failed: {message}")
        return report
