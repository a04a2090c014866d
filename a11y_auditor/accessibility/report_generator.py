"""
Accessibility Report Generator

Aggregates scan output into one immutable ScanResult and exports it:
- Summary counts by severity and WCAG level
- CI threshold evaluation
- JSON export
- HTML report rendered with jinja2
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from jinja2 import Template

from .compliance_checker import SEVERITY_ORDER, RawFinding
from .component_attribution import AttributedFinding
from .keyboard_navigator import CustomWidget, KeyboardIssue, KeyboardSummary, TabOrderEntry
from .wcag import wcag_level_from_tags

logger = logging.getLogger(__name__)

WCAG_LEVEL_KEYS = ("A", "AA", "AAA", "best-practice")


@dataclass(frozen=True)
class ScanNotice:
    """A non-fatal problem recorded during a scan"""
    kind: str
    message: str
    state: str


@dataclass(frozen=True)
class StabilityCheckResult:
    """Outcome of the post-navigation stability loop"""
    is_stable: bool
    navigation_count: int
    last_error: Optional[str] = None


@dataclass(frozen=True)
class ScanSummary:
    total_violations: int = 0
    total_instances: int = 0
    total_passes: int = 0
    total_incomplete: int = 0
    total_inapplicable: int = 0
    violations_by_severity: Mapping[str, int] = field(default_factory=dict)
    violations_by_level: Mapping[str, int] = field(default_factory=dict)
    components_with_violations: int = 0
    keyboard_issues: Optional[int] = None

    def __post_init__(self):
        # frozen=True does not reach the contents of the count tables
        object.__setattr__(self, "violations_by_severity", MappingProxyType(dict(self.violations_by_severity)))
        object.__setattr__(self, "violations_by_level", MappingProxyType(dict(self.violations_by_level)))


@dataclass(frozen=True)
class CiResult:
    passed: bool
    total_violations: int
    critical_violations: int
    threshold: int
    message: str


@dataclass(frozen=True)
class ScanResult:
    url: str
    browser: str
    timestamp: str
    framework_detected: bool = False
    violations: Tuple[AttributedFinding, ...] = ()
    incomplete: Tuple[AttributedFinding, ...] = ()
    passes: Tuple[AttributedFinding, ...] = ()
    inapplicable: Tuple[RawFinding, ...] = ()
    tab_order: Tuple[TabOrderEntry, ...] = ()
    keyboard_issues: Tuple[KeyboardIssue, ...] = ()
    keyboard_summary: Optional[KeyboardSummary] = None
    custom_widgets: Tuple[CustomWidget, ...] = ()
    summary: ScanSummary = field(default_factory=ScanSummary)
    ci: Optional[CiResult] = None
    errors: Tuple[ScanNotice, ...] = ()
    stability: Optional[StabilityCheckResult] = None
    checker_attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return to_jsonable(self)


def aggregate_summary(
    violations: Sequence[AttributedFinding],
    passes: Sequence[AttributedFinding] = (),
    incomplete: Sequence[AttributedFinding] = (),
    inapplicable: Sequence[RawFinding] = (),
    keyboard_issues: Optional[Sequence[KeyboardIssue]] = None,
) -> ScanSummary:
    """
    Count findings for the summary

    ``total_violations`` counts rules that failed; ``total_instances`` counts
    every failing element across those rules.
    """
    by_severity = {s.value: 0 for s in SEVERITY_ORDER}
    by_level = {key: 0 for key in WCAG_LEVEL_KEYS}
    components = set()

    for finding in violations:
        if finding.impact is not None:
            by_severity[finding.impact.value] += 1
        level = wcag_level_from_tags(finding.tags)
        if level is not None:
            by_level[level] += 1
        elif "best-practice" in finding.tags:
            by_level["best-practice"] += 1
        components.update(finding.components())

    return ScanSummary(
        total_violations=len(violations),
        total_instances=sum(len(f.instances) for f in violations),
        total_passes=len(passes),
        total_incomplete=len(incomplete),
        total_inapplicable=len(inapplicable),
        violations_by_severity=by_severity,
        violations_by_level=by_level,
        components_with_violations=len(components),
        keyboard_issues=len(keyboard_issues) if keyboard_issues is not None else None,
    )


def evaluate_ci(summary: ScanSummary, threshold: int = 0) -> CiResult:
    """A scan passes CI when its violation count does not exceed the threshold"""
    total = summary.total_violations
    critical = summary.violations_by_severity.get("critical", 0)
    passed = total <= threshold
    if passed:
        message = f"CI check passed: {total} violation(s) found (threshold: {threshold})"
    else:
        message = (
            f"CI check failed: {total} violation(s) found, {critical} critical "
            f"(threshold: {threshold})"
        )
    return CiResult(
        passed=passed,
        total_violations=total,
        critical_violations=critical,
        threshold=threshold,
        message=message,
    )


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums and tuples into JSON-compatible structures"""
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        data = {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
        if isinstance(value, AttributedFinding):
            finding = data.pop("finding")
            finding.pop("instances", None)
            data = {**finding, **data}
        return data
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    return value


def format_as_json(result: ScanResult, indent: int = 2) -> str:
    return json.dumps(result.to_dict(), indent=indent, ensure_ascii=False)


def format_many_as_json(results: Sequence[ScanResult], indent: int = 2) -> str:
    return json.dumps([r.to_dict() for r in results], indent=indent, ensure_ascii=False)


def write_json(results: Sequence[ScanResult], path: str) -> str:
    """Write one result as an object, several as a list"""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    content = format_as_json(results[0]) if len(results) == 1 else format_many_as_json(results)
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
    logger.info(f"JSON report generated: {path}")
    return path


HTML_TEMPLATE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Accessibility Report - {{ generated_date }}</title>
    <style>
        body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0; background: #f5f5f5; color: #222; }
        .container { max-width: 1100px; margin: 0 auto; padding: 24px; }
        .scan { background: #fff; border-radius: 8px; padding: 20px; margin-bottom: 24px; box-shadow: 0 1px 3px rgba(0,0,0,.1); }
        .stats { display: flex; gap: 16px; flex-wrap: wrap; }
        .stat { background: #fafafa; border-radius: 6px; padding: 12px 16px; min-width: 110px; }
        .stat-value { display: block; font-size: 1.6em; font-weight: bold; }
        .critical { color: #b00020; } .serious { color: #d35400; } .moderate { color: #b7950b; } .minor { color: #2471a3; }
        .finding { border-left: 4px solid #ccc; padding: 8px 12px; margin: 12px 0; }
        .finding.critical { border-color: #b00020; } .finding.serious { border-color: #d35400; }
        .finding.moderate { border-color: #b7950b; } .finding.minor { border-color: #2471a3; }
        code { background: #f0f0f0; padding: 1px 4px; border-radius: 3px; }
        table { border-collapse: collapse; width: 100%; }
        td, th { border-bottom: 1px solid #eee; padding: 6px; text-align: left; }
        .ci-passed { color: #1e8449; } .ci-failed { color: #b00020; }
    </style>
</head>
<body>
<div class="container">
    <h1>Accessibility Report</h1>
    <p>Generated {{ generated_date }}</p>
    {% for result in results %}
    <section class="scan">
        <h2>{{ result.url }}</h2>
        <p><strong>Browser:</strong> {{ result.browser }} &middot; <strong>Scanned:</strong> {{ result.timestamp }}
           &middot; <strong>React detected:</strong> {{ 'yes' if result.framework_detected else 'no' }}</p>
        {% if result.ci %}
        <p class="{{ 'ci-passed' if result.ci.passed else 'ci-failed' }}">{{ result.ci.message }}</p>
        {% endif %}
        <div class="stats">
            <div class="stat"><span class="stat-value">{{ result.summary.total_violations }}</span>Violations</div>
            <div class="stat"><span class="stat-value">{{ result.summary.total_instances }}</span>Elements</div>
            {% for severity, count in result.summary.violations_by_severity.items() %}
            <div class="stat {{ severity }}"><span class="stat-value">{{ count }}</span>{{ severity.title() }}</div>
            {% endfor %}
            <div class="stat"><span class="stat-value">{{ result.summary.total_passes }}</span>Passes</div>
            <div class="stat"><span class="stat-value">{{ result.summary.total_incomplete }}</span>Needs review</div>
        </div>

        <h3>Violations</h3>
        {% for finding in result.violations %}
        <div class="finding {{ finding.impact.value if finding.impact else '' }}">
            <h4>{{ finding.id }}: {{ finding.help }}</h4>
            <p>{{ finding.description }} <a href="{{ finding.help_url }}">Learn more</a></p>
            <table>
                <tr><th>Component</th><th>Element</th><th>Selector</th></tr>
                {% for instance in finding.instances %}
                <tr>
                    <td>{{ instance.user_component_path|join(' > ') if instance.user_component_path else (instance.component or 'unattributed') }}</td>
                    <td><code>{{ instance.html_snippet }}</code></td>
                    <td><code>{{ instance.css_selector or '' }}</code></td>
                </tr>
                {% endfor %}
            </table>
        </div>
        {% else %}
        <p>No violations found.</p>
        {% endfor %}

        {% if result.keyboard_summary %}
        <h3>Keyboard</h3>
        <p>{{ result.tab_order|length }} tab stops, {{ result.keyboard_summary.total_issues }} issue(s)</p>
        {% for issue in result.keyboard_issues %}
        <div class="finding {{ issue.severity.value }}">
            <h4>{{ issue.type.value }} <code>{{ issue.selector }}</code></h4>
            <p>{{ issue.message }}</p>
            <p>WCAG {% for c in issue.wcag_criteria %}<a href="{{ c.w3c_url }}">{{ c.id }} {{ c.title }} ({{ c.level }})</a>{% if not loop.last %}, {% endif %}{% endfor %}</p>
        </div>
        {% endfor %}
        {% endif %}

        {% if result.errors %}
        <h3>Scan notices</h3>
        <ul>
        {% for notice in result.errors %}
            <li><strong>{{ notice.kind }}</strong> ({{ notice.state }}): {{ notice.message }}</li>
        {% endfor %}
        </ul>
        {% endif %}
    </section>
    {% endfor %}
</div>
</body>
</html>
""", autoescape=True)


class HtmlReportGenerator:
    """Renders scan results to a standalone HTML file"""

    def __init__(self, template: Template = HTML_TEMPLATE):
        self.template = template

    def render(self, results: Sequence[ScanResult]) -> str:
        return self.template.render(
            results=list(results),
            generated_date=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        )

    def generate_html_report(self, results: Sequence[ScanResult], path: str) -> str:
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self.render(results))
        logger.info(f"HTML report generated: {path}")
        return path


def top_components(results: Sequence[ScanResult], limit: int = 5) -> List[Tuple[str, int]]:
    """Components with the most violating instances across results"""
    counts: Dict[str, int] = {}
    for result in results:
        for finding in result.violations:
            for instance in finding.instances:
                if instance.component:
                    name = " > ".join(instance.user_component_path) or instance.component
                    counts[name] = counts.get(name, 0) + 1
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
