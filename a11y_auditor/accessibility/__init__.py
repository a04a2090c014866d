"""
Accessibility testing for rendered web pages

This module provides:
- axe-core invocation and raw findings
- Component attribution of findings
- Keyboard navigation testing
- Result aggregation and reporting
"""

from .compliance_checker import AxeChecker, CheckerResult, RawFinding, Severity
from .component_attribution import DomComponentMap, FrameworkFilter, attribute_findings, walk_component_tree
from .keyboard_navigator import KeyboardNavigationTester
from .report_generator import HtmlReportGenerator, ScanResult

__all__ = [
    'AxeChecker',
    'CheckerResult',
    'RawFinding',
    'Severity',
    'DomComponentMap',
    'FrameworkFilter',
    'attribute_findings',
    'walk_component_tree',
    'KeyboardNavigationTester',
    'HtmlReportGenerator',
    'ScanResult',
]
