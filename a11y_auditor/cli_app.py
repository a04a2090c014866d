#!/usr/bin/env python3
"""
Accessibility scanner CLI

Scans one or more URLs, prints a violation summary attributed to components
and optionally writes JSON and HTML reports.

Exit codes: 0 success, 1 runtime error or CI threshold exceeded,
2 invalid input or configuration.
"""

import argparse
import logging
import sys
import traceback
from typing import Any, Dict, List, Optional

from .accessibility.compliance_checker import SEVERITY_ORDER
from .accessibility.report_generator import HtmlReportGenerator, ScanResult, top_components, write_json
from .agents.scan_agent import AccessibilityScanAgent, ScanOutcome, validate_url
from .config import SUPPORTED_BROWSERS, apply_overrides, load_config
from .errors import ConfigurationError, InvalidUrlError

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_RUNTIME_ERROR = 1
EXIT_VALIDATION_ERROR = 2

SEVERITY_ICONS = {
    "critical": "🚨",
    "serious": "⚠️ ",
    "moderate": "🔶",
    "minor": "🔹",
}


def print_banner():
    """Print application banner"""
    print("=" * 70)
    print("🔍 A11Y AUDITOR - COMPONENT-ATTRIBUTED ACCESSIBILITY SCANNER")
    print("=" * 70)
    print()


def print_scan_result(result: ScanResult):
    """Print summary of one scan"""
    summary = result.summary
    print(f"\n🌐 {result.url} ({result.browser})")
    if not result.framework_detected:
        print("   ℹ️  React not detected, violations are not attributed to components")

    if summary.total_violations == 0:
        print("   ✅ No accessibility violations found!")
    else:
        print(f"   Found {summary.total_violations} violation(s) across {summary.total_instances} element(s):")
        for severity in SEVERITY_ORDER:
            count = summary.violations_by_severity.get(severity.value, 0)
            if count:
                print(f"   {SEVERITY_ICONS[severity.value]} {severity.value.title()}: {count}")

        print("\n   Violations:")
        for finding in result.violations:
            impact = finding.impact.value if finding.impact else "unknown"
            print(f"   • [{impact}] {finding.id}: {finding.help}")
            for instance in finding.instances[:3]:
                owner = " > ".join(instance.user_component_path) or instance.component or "unattributed"
                print(f"       {owner}: {instance.html_snippet}")
            if len(finding.instances) > 3:
                print(f"       ... and {len(finding.instances) - 3} more")

    if result.keyboard_summary is not None:
        kb = result.keyboard_summary
        print(f"\n   ⌨️  Keyboard: {len(result.tab_order)} tab stop(s), {kb.total_issues} issue(s) "
              f"({kb.critical_issues} critical, {kb.serious_issues} serious, {kb.moderate_issues} moderate)")
        for issue in result.keyboard_issues:
            print(f"   • [{issue.severity.value}] {issue.type.value}: {issue.message}")

    for notice in result.errors:
        print(f"   ⚠️  {notice.message}")

    if result.ci is not None:
        icon = "✅" if result.ci.passed else "❌"
        print(f"\n   {icon} {result.ci.message}")


def print_batch_summary(outcomes: List[ScanOutcome]):
    results = [o.result for o in outcomes if o.result is not None]
    failed = [o for o in outcomes if o.error is not None]
    print(f"\n📊 Scanned {len(outcomes)} URL(s): {len(results)} succeeded, {len(failed)} failed")
    for outcome in failed:
        print(f"   ❌ {outcome.url}: {outcome.error.message}")
    worst = top_components(results)
    if worst:
        print("\n   Components with the most violations:")
        for name, count in worst:
            print(f"   • {name}: {count}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="a11y-auditor",
        description="Scan web pages for accessibility violations and attribute them to UI components",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  a11y-auditor http://localhost:3000
  a11y-auditor http://localhost:3000 --keyboard --browser firefox
  a11y-auditor http://localhost:3000 http://localhost:3000/about --ci --threshold 5
  a11y-auditor http://localhost:3000 --output report.json --html-report report.html
        """,
    )
    parser.add_argument("urls", nargs="+", help="URL(s) to scan")
    parser.add_argument("--browser", choices=SUPPORTED_BROWSERS, help="Browser engine (default: chromium)")
    parser.add_argument(
        "--headless",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Run the browser headless (default: true)",
    )
    parser.add_argument("--tags", help="Comma-separated axe rule tags, e.g. wcag2a,wcag2aa")
    parser.add_argument("--keyboard", action="store_true", default=None, help="Run keyboard accessibility tests")
    parser.add_argument("--require-react", action="store_true", default=None,
                        help="Fail when React is not detected on the page")
    parser.add_argument("--ci", action="store_true", default=None,
                        help="CI mode: exit 1 when violations exceed the threshold")
    parser.add_argument("--threshold", type=int, help="Maximum allowed violations in CI mode (default: 0)")
    parser.add_argument("--output", "-o", help="Write results as JSON to this file")
    parser.add_argument("--html-report", help="Write an HTML report to this file")
    parser.add_argument("--timeout", type=int, help="Navigation timeout in milliseconds (default: 30000)")
    parser.add_argument("--scan-timeout", type=float, help="Overall timeout per URL in seconds")
    parser.add_argument("--axe-script", help="Local path or URL of the axe-core script to inject")
    parser.add_argument("--config", help="Path to a TOML config file (default: ./a11y-auditor.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    return parser


def cli_overrides(args: argparse.Namespace) -> Dict[str, Dict[str, Any]]:
    tags = [t.strip() for t in args.tags.split(",") if t.strip()] if args.tags else None
    return {
        "browser": {
            "browser_type": args.browser,
            "headless": args.headless,
            "timeout": args.timeout,
        },
        "scan": {
            "tags": tags,
            "require_react": args.require_react,
            "ci_mode": args.ci,
            "ci_threshold": args.threshold,
            "scan_timeout": args.scan_timeout,
            "axe_script": args.axe_script,
        },
        "keyboard": {
            "enabled": args.keyboard,
        },
    }


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
        apply_overrides(config, cli_overrides(args))
        config.validate()
        urls = [validate_url(url) for url in args.urls]
    except (ConfigurationError, InvalidUrlError) as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return EXIT_VALIDATION_ERROR

    print_banner()
    agent = AccessibilityScanAgent(config)

    try:
        outcomes = agent.scan_many(urls)
    except KeyboardInterrupt:
        print("\n\n🛑 Scan interrupted by user")
        return EXIT_RUNTIME_ERROR

    results = [o.result for o in outcomes if o.result is not None]
    for outcome in outcomes:
        if outcome.result is not None:
            print_scan_result(outcome.result)
        else:
            print(f"\n❌ {outcome.url}: {outcome.error.message}")
            if args.verbose and outcome.error.__cause__ is not None:
                traceback.print_exception(type(outcome.error.__cause__), outcome.error.__cause__,
                                          outcome.error.__cause__.__traceback__)
    if len(outcomes) > 1:
        print_batch_summary(outcomes)

    try:
        if args.output and results:
            write_json(results, args.output)
            print(f"\n📄 JSON results written to {args.output}")
        if args.html_report and results:
            HtmlReportGenerator().generate_html_report(results, args.html_report)
            print(f"📄 HTML report written to {args.html_report}")
    except OSError as e:
        print(f"❌ Could not write report: {e}", file=sys.stderr)
        return EXIT_RUNTIME_ERROR

    if any(o.error is not None for o in outcomes):
        failures = [o.error for o in outcomes if o.error is not None]
        if all(isinstance(e, (ConfigurationError, InvalidUrlError)) for e in failures):
            return EXIT_VALIDATION_ERROR
        return EXIT_RUNTIME_ERROR
    if config.scan.ci_mode and any(r.ci is not None and not r.ci.passed for r in results):
        return EXIT_RUNTIME_ERROR
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
