"""
a11y_auditor - component-attributed web accessibility scanning

Runs axe-core in a real browser, attributes every violation to the UI
component that rendered it and optionally exercises the page with the
keyboard.
"""

from .agents.scan_agent import AccessibilityScanAgent, ScanOutcome, ScanSession, ScanState
from .accessibility.report_generator import ScanResult
from .config import ScannerConfig, load_config
from .errors import ScanError

__version__ = "0.1.0"

__all__ = [
    'AccessibilityScanAgent',
    'ScanOutcome',
    'ScanResult',
    'ScanSession',
    'ScanState',
    'ScannerConfig',
    'ScanError',
    'load_config',
]
