"""Shared pytest fixtures for the a11y-auditor test suite."""

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import pytest

from a11y_auditor.accessibility.compliance_checker import CheckerResult
from a11y_auditor.accessibility.component_attribution import ComponentTreeSnapshot, ElementLocation
from a11y_auditor.config import ScannerConfig


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: drives a real browser against a fixture page")
    config.addinivalue_line("markers", "slow: takes seconds rather than milliseconds")


class FakeBrowserSession:
    """Stands in for BrowserSession; records every call.

    ``scripts`` maps a script string to a value, a list of values returned
    one per call (the last one repeats), or a callable taking the argument.
    """

    def __init__(
        self,
        scripts: Optional[Dict[str, Any]] = None,
        navigations: Optional[List[bool]] = None,
        react: bool = True,
        launch_error: Optional[BaseException] = None,
        navigate_error: Optional[BaseException] = None,
    ):
        self.scripts = dict(scripts or {})
        self.navigations = list(navigations or [])
        self.react = react
        self.launch_error = launch_error
        self.navigate_error = navigate_error
        self.calls: List[tuple] = []
        self.keys: List[str] = []
        self.close_count = 0

    def launch(self, browser_type="chromium", headless=True):
        self.calls.append(("launch", browser_type, headless))
        if self.launch_error is not None:
            raise self.launch_error

    def navigate(self, url, timeout=30000, wait_until="networkidle", stabilization_delay=0):
        self.calls.append(("navigate", url, timeout))
        if self.navigate_error is not None:
            raise self.navigate_error

    def wait_for_load_state(self, state="networkidle", timeout=None):
        self.calls.append(("wait_for_load_state", state))
        return True

    def wait_for_navigation(self, timeout):
        self.calls.append(("wait_for_navigation", timeout))
        if self.navigations:
            return self.navigations.pop(0)
        return False

    def wait(self, milliseconds):
        self.calls.append(("wait", milliseconds))

    def evaluate(self, script, arg=None):
        self.calls.append(("evaluate", script, arg))
        response = self.scripts.get(script)
        if callable(response):
            return response(arg)
        if isinstance(response, list):
            if len(response) > 1:
                return response.pop(0)
            return response[0] if response else None
        return response

    def press_key(self, key):
        self.keys.append(key)
        self.calls.append(("press_key", key))

    def add_script_tag(self, path=None, url=None):
        self.calls.append(("add_script_tag", path, url))

    def detect_react(self):
        return self.react

    def close(self):
        self.close_count += 1


class FakeChecker:
    """Returns (or raises) the queued outcomes in order."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls = 0

    def run(self, session, tags=None):
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeTreeProvider:
    name = "react"

    def __init__(
        self,
        snapshot: Optional[ComponentTreeSnapshot] = None,
        locations: Optional[Dict[str, ElementLocation]] = None,
        detected: bool = True,
        snapshot_error: Optional[BaseException] = None,
    ):
        self._snapshot = snapshot or ComponentTreeSnapshot(root=None)
        self.locations = locations or {}
        self.detected = detected
        self.snapshot_error = snapshot_error

    def detect(self, session):
        return self.detected

    def snapshot(self, session):
        if self.snapshot_error is not None:
            raise self.snapshot_error
        return self._snapshot

    def locate(self, session, selectors):
        return [self.locations.get(s) for s in selectors]


def axe_violation(rule_id: str, impact: str, selectors: List[str], tags=("wcag2a",)) -> Dict[str, Any]:
    return {
        "id": rule_id,
        "impact": impact,
        "description": f"{rule_id} description",
        "help": f"{rule_id} help",
        "helpUrl": f"https://dequeuniversity.com/rules/axe/4.10/{rule_id}",
        "tags": list(tags),
        "nodes": [
            {
                "html": f"<{s.split('#')[0] or 'div'} id=\"x\">",
                "target": [s],
                "failureSummary": f"Fix {rule_id}",
                "any": [{"id": f"{rule_id}-check", "impact": impact, "message": "check failed", "relatedNodes": []}],
                "all": [],
                "none": [],
            }
            for s in selectors
        ],
    }


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test file operations.

    Yields:
        Path: Path to a temporary directory that is cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_env_vars(monkeypatch) -> Dict[str, str]:
    """Provide a fixture for setting temporary environment variables.

    Example:
        def test_env_var(mock_env_vars):
            mock_env_vars["A11Y_AUDITOR_BROWSER_TIMEOUT"] = "1000"
    """
    env_vars = {}

    class EnvVarSetter(dict):
        def __setitem__(self, key: str, value: str) -> None:
            super().__setitem__(key, value)
            monkeypatch.setenv(key, value)

    return EnvVarSetter(env_vars)


@pytest.fixture
def fast_config() -> ScannerConfig:
    """Scanner config with every delay set to zero."""
    config = ScannerConfig()
    config.browser.stabilization_delay = 0
    config.browser.post_navigation_delay = 0
    config.browser.navigation_check_interval = 0
    config.browser.network_idle_timeout = 0
    config.scan.retry_delay_base = 0
    config.keyboard.tab_delay = 0
    return config


@pytest.fixture
def login_form_snapshot() -> ComponentTreeSnapshot:
    """App > Header > header > button and App > LoginForm > form > (img, input).

    Element ids are child-index paths from <html>; body is "0.1".
    """
    return ComponentTreeSnapshot.from_dict({
        "root": 0,
        "nodes": [
            {"kind": "composite", "child": 1},
            {"kind": "composite", "displayName": "App", "typeName": "App", "isFunction": True, "child": 2},
            {"kind": "composite", "typeName": "Header", "isFunction": True, "child": 3, "sibling": 5},
            {"kind": "host", "hostTag": "header", "elementId": "0.1.0", "child": 4},
            {"kind": "host", "hostTag": "button", "elementId": "0.1.0.0"},
            {"kind": "composite", "typeName": "LoginForm", "isFunction": True, "child": 6},
            {"kind": "host", "hostTag": "form", "elementId": "0.1.1", "child": 7},
            {"kind": "host", "hostTag": "img", "elementId": "0.1.1.0", "sibling": 8},
            {"kind": "host", "hostTag": "input", "elementId": "0.1.1.1"},
        ],
    })


@pytest.fixture
def login_form_checker_result() -> CheckerResult:
    return CheckerResult.from_axe({
        "violations": [
            axe_violation("image-alt", "critical", ["img"], tags=("cat.text-alternatives", "wcag2a", "wcag111")),
            axe_violation("label", "critical", ["input"], tags=("cat.forms", "wcag2a", "wcag412")),
        ],
        "passes": [axe_violation("button-name", "critical", ["button"])],
        "incomplete": [],
        "inapplicable": [{"id": "video-caption", "nodes": [], "tags": ["wcag2a"]}],
    })


@pytest.fixture
def login_form_locations() -> Dict[str, ElementLocation]:
    return {
        "img": ElementLocation("0.1.1.0", "form > img"),
        "input": ElementLocation("0.1.1.1", "form > input"),
        "button": ElementLocation("0.1.0.0", "header > button"),
    }


@pytest.fixture
def make_session() -> Callable[..., FakeBrowserSession]:
    return FakeBrowserSession


@pytest.fixture
def make_checker() -> Callable[..., FakeChecker]:
    return FakeChecker


@pytest.fixture
def make_provider() -> Callable[..., FakeTreeProvider]:
    return FakeTreeProvider


@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment state before and after each test.

    Preserves and restores the original working directory.
    """
    original_dir = os.getcwd()
    yield
    os.chdir(original_dir)


@pytest.fixture
def captured_logs(caplog):
    """Provide access to captured log messages during tests."""
    return caplog
