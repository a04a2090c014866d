import pytest

from a11y_auditor.accessibility.compliance_checker import Severity
from a11y_auditor.accessibility.keyboard_navigator import (
    ACCESSKEY_SCRIPT,
    CUSTOM_WIDGET_ROLES,
    CUSTOM_WIDGET_SCRIPT,
    FOCUS_FIRST_IN_SCRIPT,
    FOCUS_INSIDE_SCRIPT,
    FOCUS_SELECTOR_SCRIPT,
    FOCUSABLE_POSITIONS_SCRIPT,
    FOCUSABLE_SELECTOR,
    FOCUSED_ELEMENT_SCRIPT,
    HIDDEN_FOCUSABLE_SCRIPT,
    MODAL_DISMISSED_SCRIPT,
    POSITIVE_TABINDEX_SCRIPT,
    SKIP_LINK_SCRIPT,
    SKIP_LINK_RESULT_SCRIPT,
    WIDGET_CONTAINER_SCRIPT,
    KeyboardIssueType,
    KeyboardNavigationTester,
    TabOrderEntry,
    WidgetSupport,
    audit_focus_indicator_contrast,
    audit_focus_indicators,
    classify_widget_support,
    contrast_ratio,
    find_order_mismatches,
    parse_css_color,
)
from a11y_auditor.config import KeyboardConfig
from a11y_auditor.errors import ScanCancelledError


def _focus(selector, indicator=True, role="button"):
    return {
        "selector": selector,
        "role": role,
        "hasFocusIndicator": indicator,
        "description": f"{role} {selector}",
        "elementId": f"0.1.{selector.strip('#')}",
    }


@pytest.fixture
def tester():
    return KeyboardNavigationTester(KeyboardConfig(enabled=True, max_tab_presses=10, tab_delay=0))


def test_same_element_three_times_is_one_trap(tester, make_session):
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [_focus("#x"), _focus("#x"), _focus("#x")]})

    entries, issues = tester.walk_tab_order(session)

    assert len(issues) == 1
    assert issues[0].type is KeyboardIssueType.FOCUS_TRAP
    assert issues[0].severity is Severity.CRITICAL
    assert issues[0].selector == "#x"
    assert issues[0].wcag_criteria[0].id == "2.1.2"
    assert [e.selector for e in entries] == ["#x"]
    # Walk stops as soon as the trap is reported
    assert session.keys == ["Tab"] * 3


def test_two_repeats_then_move_is_not_a_trap(tester, make_session):
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [_focus("#x"), _focus("#x"), _focus("#y"), None]})

    entries, issues = tester.walk_tab_order(session)

    assert issues == []
    assert [e.selector for e in entries] == ["#x", "#y"]
    assert [e.index for e in entries] == [0, 1]
    assert len(session.keys) == 10


def test_trap_threshold_is_tunable(make_session):
    # Known heuristic limit: a widget slow to move focus looks trapped at the default threshold
    focus_sequence = [_focus("#slow"), _focus("#slow"), _focus("#slow"), _focus("#next"), None]
    tester = KeyboardNavigationTester(KeyboardConfig(max_tab_presses=6, tab_delay=0, focus_trap_threshold=4))

    entries, issues = tester.walk_tab_order(make_session({FOCUSED_ELEMENT_SCRIPT: focus_sequence}))

    assert issues == []
    assert [e.selector for e in entries] == ["#slow", "#next"]


def test_walk_stops_when_focus_cycles_to_first_stop(tester, make_session):
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [
        _focus("#a"), _focus("#b"), _focus("#c"), _focus("#a"), _focus("#b"),
    ]})

    entries, issues = tester.walk_tab_order(session)

    assert [e.selector for e in entries] == ["#a", "#b", "#c"]
    assert issues == []
    assert len(session.keys) == 4


def test_walk_respects_max_tab_presses(make_session):
    tester = KeyboardNavigationTester(KeyboardConfig(max_tab_presses=3, tab_delay=0))
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [_focus("#a"), _focus("#b"), _focus("#c"), _focus("#d")]})

    entries, _ = tester.walk_tab_order(session)

    assert [e.selector for e in entries] == ["#a", "#b", "#c"]
    assert len(session.keys) == 3


def test_walk_checks_cancellation_between_presses(make_session):
    def cancel():
        raise ScanCancelledError("attributing", 1)

    tester = KeyboardNavigationTester(KeyboardConfig(tab_delay=0), checkpoint=cancel)
    with pytest.raises(ScanCancelledError):
        tester.walk_tab_order(make_session())


def test_focus_indicator_audit_reports_every_entry():
    tab_order = [
        TabOrderEntry(0, "#a", "link", True),
        TabOrderEntry(1, "#b", "button", False),
        TabOrderEntry(2, "#b", "button", False),
        TabOrderEntry(3, "#c", "input", False),
    ]
    issues = audit_focus_indicators(tab_order)
    assert [i.selector for i in issues] == ["#b", "#b", "#c"]
    assert all(i.type is KeyboardIssueType.NO_FOCUS_INDICATOR for i in issues)
    assert all(i.severity is Severity.SERIOUS for i in issues)
    assert "Press Tab 2 time(s)" in issues[0].reproduction[1]
    assert "Press Tab 3 time(s)" in issues[1].reproduction[1]


def test_revisited_stop_without_indicator_is_reported_twice(tester, make_session):
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [
        _focus("#a", indicator=False), _focus("#b"), _focus("#a", indicator=False), _focus("#c"), None,
    ]})

    entries, _ = tester.walk_tab_order(session)
    issues = audit_focus_indicators(entries)

    assert [e.selector for e in entries] == ["#a", "#b", "#a", "#c"]
    assert [i.selector for i in issues] == ["#a", "#a"]


def test_missing_skip_link_is_moderate(tester, make_session):
    session = make_session({SKIP_LINK_SCRIPT: {"found": False}})
    issues = tester.audit_skip_link(session)
    assert len(issues) == 1
    assert issues[0].severity is Severity.MODERATE
    assert issues[0].selector == "body"
    assert issues[0].type is KeyboardIssueType.SKIP_LINK_BROKEN


def test_skip_link_with_missing_target_is_serious(tester, make_session):
    session = make_session({SKIP_LINK_SCRIPT: {
        "found": True, "selector": "a.skip", "href": "#main", "targetExists": False,
    }})
    issues = tester.audit_skip_link(session)
    assert len(issues) == 1
    assert issues[0].severity is Severity.SERIOUS
    assert "target does not exist" in issues[0].message
    assert session.keys == []


def test_skip_link_that_does_not_move_focus_is_serious(tester, make_session):
    session = make_session({
        SKIP_LINK_SCRIPT: {"found": True, "selector": "a.skip", "href": "#main", "targetExists": True},
        FOCUS_SELECTOR_SCRIPT: True,
        SKIP_LINK_RESULT_SCRIPT: False,
    })
    issues = tester.audit_skip_link(session)
    assert [i.severity for i in issues] == [Severity.SERIOUS]
    assert session.keys == ["Enter", "Tab"]


def test_skip_link_to_unfocusable_target_works_on_next_tab(tester, make_session):
    session = make_session({
        SKIP_LINK_SCRIPT: {"found": True, "selector": "a.skip", "href": "#main", "targetExists": True},
        FOCUS_SELECTOR_SCRIPT: True,
        SKIP_LINK_RESULT_SCRIPT: [False, True],
    })
    assert tester.audit_skip_link(session) == []
    assert session.keys == ["Enter", "Tab"]


def test_working_skip_link_has_no_issue(tester, make_session):
    session = make_session({
        SKIP_LINK_SCRIPT: {"found": True, "selector": "a.skip", "href": "#main", "targetExists": True},
        FOCUS_SELECTOR_SCRIPT: True,
        SKIP_LINK_RESULT_SCRIPT: True,
    })
    assert tester.audit_skip_link(session) == []


def _container(is_modal, role):
    return {"selector": "div.panel", "elementId": "0.1.2", "role": role, "isModal": is_modal, "focusableCount": 2}


def test_modal_containing_focus_is_not_a_trap(tester, make_session):
    session = make_session({
        WIDGET_CONTAINER_SCRIPT: [[_container(True, "dialog")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        FOCUS_INSIDE_SCRIPT: True,
    })
    assert tester.revalidate_focus_traps(session) == []
    assert len(session.keys) == 3


def test_non_modal_widget_keeping_focus_is_a_trap(tester, make_session):
    session = make_session({
        WIDGET_CONTAINER_SCRIPT: [[_container(False, "menu")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        FOCUS_INSIDE_SCRIPT: True,
    })
    issues = tester.revalidate_focus_traps(session)
    assert len(issues) == 1
    assert issues[0].type is KeyboardIssueType.FOCUS_TRAP
    assert issues[0].selector == "div.panel"


def test_widget_focus_escapes(tester, make_session):
    session = make_session({
        WIDGET_CONTAINER_SCRIPT: [[_container(False, "listbox")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        FOCUS_INSIDE_SCRIPT: [True, False],
    })
    assert tester.revalidate_focus_traps(session) == []
    assert len(session.keys) == 2


@pytest.mark.parametrize("tab_stop,keyboard,pointer,support,issue_count", [
    (True, True, True, WidgetSupport.FULL, 0),
    (False, False, False, WidgetSupport.NONE, 2),
    (False, False, True, WidgetSupport.NONE, 3),
    (True, False, True, WidgetSupport.PARTIAL, 2),
    (False, True, False, WidgetSupport.PARTIAL, 1),
])
def test_classify_widget_support(tab_stop, keyboard, pointer, support, issue_count):
    result, issues = classify_widget_support(tab_stop, keyboard, pointer)
    assert result is support
    assert len(issues) == issue_count


def test_custom_widget_audit(tester, make_session):
    found = [
        {"selector": "div.tabs", "role": "tablist", "elementId": "0.1.3",
         "hasTabStop": True, "hasKeyboardHandler": True, "hasPointerHandler": True},
        {"selector": "div.fake-button", "role": "button", "elementId": "0.1.4",
         "hasTabStop": False, "hasKeyboardHandler": False, "hasPointerHandler": True},
        {"selector": "div.slider", "role": "slider", "elementId": "0.1.5",
         "hasTabStop": True, "hasKeyboardHandler": False, "hasPointerHandler": False},
    ]
    session = make_session({CUSTOM_WIDGET_SCRIPT: lambda roles: found if roles == CUSTOM_WIDGET_ROLES else []})

    widgets, issues = tester.audit_custom_widgets(session)

    assert [w.support for w in widgets] == [WidgetSupport.FULL, WidgetSupport.NONE, WidgetSupport.PARTIAL]
    assert [(i.selector, i.severity) for i in issues] == [
        ("div.fake-button", Severity.CRITICAL),
        ("div.slider", Severity.SERIOUS),
    ]
    assert all(i.type is KeyboardIssueType.KEYBOARD_INACCESSIBLE for i in issues)


def test_positive_tabindex_audit(tester, make_session):
    session = make_session({POSITIVE_TABINDEX_SCRIPT: [[{"selector": "#promo", "tabIndex": 5}]]})
    issues = tester.audit_positive_tabindex(session)
    assert len(issues) == 1
    assert issues[0].type is KeyboardIssueType.TAB_ORDER_VIOLATION
    assert 'tabindex="5"' in issues[0].message


def test_duplicate_access_keys_conflict_case_insensitively(tester, make_session):
    session = make_session({ACCESSKEY_SCRIPT: [[
        {"selector": "#save", "key": "s"},
        {"selector": "#search", "key": "S"},
        {"selector": "#home", "key": "h"},
    ]]})
    issues = tester.audit_access_keys(session)
    assert len(issues) == 1
    assert issues[0].type is KeyboardIssueType.SHORTCUT_CONFLICT
    assert issues[0].severity is Severity.MODERATE
    assert issues[0].selector == "#save"


def test_run_isolates_failing_steps(tester, make_session):
    def broken(_):
        raise RuntimeError("boom")

    session = make_session({
        FOCUSED_ELEMENT_SCRIPT: [_focus("#a", indicator=False), _focus("#b"), None],
        SKIP_LINK_SCRIPT: {"found": False},
        POSITIVE_TABINDEX_SCRIPT: broken,
    })

    report = tester.run(session)

    assert report.errors == ("tabindex: boom",)
    assert [e.selector for e in report.tab_order] == ["#a", "#b"]
    types = [i.type for i in report.issues]
    assert KeyboardIssueType.NO_FOCUS_INDICATOR in types
    assert KeyboardIssueType.SKIP_LINK_BROKEN in types
    assert report.summary.total_issues == len(report.issues)
    assert report.summary.serious_issues == 1
    assert report.summary.moderate_issues == 1


def test_run_skips_skip_link_audit_when_disabled(make_session):
    tester = KeyboardNavigationTester(KeyboardConfig(max_tab_presses=1, tab_delay=0, test_skip_links=False))
    session = make_session()
    report = tester.run(session)
    assert report.issues == ()
    assert not any(c[0] == "evaluate" and c[1] == SKIP_LINK_SCRIPT for c in session.calls)


def test_hidden_focusable_audit(tester, make_session):
    items = [
        {"selector": "#offcanvas-link", "reason": "aria-hidden"},
        {"selector": "#ghost-button", "reason": "invisible"},
    ]
    session = make_session({HIDDEN_FOCUSABLE_SCRIPT: lambda focusable: items if focusable == FOCUSABLE_SELECTOR else []})

    issues = tester.audit_hidden_focusable(session)

    assert [i.selector for i in issues] == ["#offcanvas-link", "#ghost-button"]
    assert all(i.type is KeyboardIssueType.TAB_ORDER_VIOLATION for i in issues)
    assert all(i.severity is Severity.MODERATE for i in issues)
    assert "aria-hidden" in issues[0].message
    assert "invisible" in issues[1].message


def _position(selector, x, y):
    return {"selector": selector, "x": x, "y": y}


def test_order_mismatches_group_rows_within_tolerance():
    same_row = [_position("#right", 200, 100), _position("#left", 50, 105)]
    two_rows = [_position("#right", 200, 100), _position("#left", 50, 120)]

    assert [m.selector for m in find_order_mismatches(same_row, max_shift=0)] == ["#right", "#left"]
    assert find_order_mismatches(two_rows, max_shift=0) == []


def test_bottom_to_top_layout_is_an_illogical_order(tester, make_session):
    reversed_layout = [_position(f"#item{i}", 100, 600 - i * 100) for i in range(6)]
    session = make_session({FOCUSABLE_POSITIONS_SCRIPT: [reversed_layout]})

    issues = tester.audit_visual_order(session)

    assert len(issues) == 1
    assert issues[0].type is KeyboardIssueType.TAB_ORDER_VIOLATION
    assert issues[0].severity is Severity.SERIOUS
    assert "4 elements are out of logical order" in issues[0].message
    assert ("evaluate", FOCUSABLE_POSITIONS_SCRIPT, FOCUSABLE_SELECTOR) in session.calls


def test_reading_order_layout_has_no_order_issue(tester, make_session):
    grid = [_position(f"#cell{i}", 100 + (i % 3) * 100, 100 + (i // 3) * 50) for i in range(9)]
    session = make_session({FOCUSABLE_POSITIONS_SCRIPT: [grid]})
    assert tester.audit_visual_order(session) == []


@pytest.mark.parametrize("value,expected", [
    ("rgb(255, 0, 0)", (255.0, 0.0, 0.0)),
    ("rgba(16, 32, 48, 0.5)", (16.0, 32.0, 48.0)),
    ("rgb(16 32 48 / 50%)", (16.0, 32.0, 48.0)),
    ("#FFFFFF", (255.0, 255.0, 255.0)),
    ("rgba(0, 0, 0, 0)", None),
    ("auto", None),
    (None, None),
])
def test_parse_css_color(value, expected):
    assert parse_css_color(value) == expected


def test_contrast_ratio_bounds():
    assert contrast_ratio((0, 0, 0), (255, 255, 255)) == pytest.approx(21.0)
    assert contrast_ratio((255, 255, 255), (0, 0, 0)) == pytest.approx(21.0)
    assert contrast_ratio((120, 120, 120), (120, 120, 120)) == pytest.approx(1.0)


def test_low_contrast_focus_indicator_is_serious():
    white = "rgb(255, 255, 255)"
    tab_order = [
        TabOrderEntry(0, "#pale", "link", True, indicator_color="rgb(200, 200, 200)", background_color=white),
        TabOrderEntry(1, "#dark", "button", True, indicator_color="rgb(0, 0, 0)", background_color=white),
        TabOrderEntry(2, "#none", "button", False, indicator_color="rgb(250, 250, 250)", background_color=white),
        TabOrderEntry(3, "#unknown", "input", True, indicator_color=None, background_color=white),
    ]

    issues = audit_focus_indicator_contrast(tab_order)

    assert [i.selector for i in issues] == ["#pale"]
    assert issues[0].type is KeyboardIssueType.NO_FOCUS_INDICATOR
    assert issues[0].severity is Severity.SERIOUS
    assert [c.id for c in issues[0].wcag_criteria] == ["2.4.7", "1.4.11"]
    assert "below the 3:1 minimum" in issues[0].message


def test_walk_records_focus_colors(tester, make_session):
    focused = dict(_focus("#a"), indicatorColor="rgb(0, 95, 204)", backgroundColor="rgb(255, 255, 255)")
    session = make_session({FOCUSED_ELEMENT_SCRIPT: [focused, None]})

    entries, _ = tester.walk_tab_order(session)

    assert entries[0].indicator_color == "rgb(0, 95, 204)"
    assert entries[0].background_color == "rgb(255, 255, 255)"


def _modal(selector, element_id, is_modal=True, role="dialog"):
    return {"selector": selector, "elementId": element_id, "role": role, "isModal": is_modal, "focusableCount": 2}


def test_modal_ignoring_escape_is_serious(tester, make_session):
    session = make_session({
        WIDGET_CONTAINER_SCRIPT: [[_modal("#signup", "0.1.5"), _modal("#menu", "0.1.6", is_modal=False, role="menu")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        MODAL_DISMISSED_SCRIPT: False,
    })

    issues = tester.audit_modal_escape(session)

    assert [i.selector for i in issues] == ["#signup"]
    assert issues[0].type is KeyboardIssueType.KEYBOARD_INACCESSIBLE
    assert issues[0].severity is Severity.SERIOUS
    assert session.keys == ["Escape"]
    assert ("evaluate", MODAL_DISMISSED_SCRIPT, "0.1.5") in session.calls


def test_modal_closing_on_escape_has_no_issue(tester, make_session):
    session = make_session({
        WIDGET_CONTAINER_SCRIPT: [[_modal("#signup", "0.1.5")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        MODAL_DISMISSED_SCRIPT: True,
    })
    assert tester.audit_modal_escape(session) == []


def test_run_includes_extra_audits_with_escape_last(tester, make_session):
    session = make_session({
        FOCUSED_ELEMENT_SCRIPT: [_focus("#a"), None],
        SKIP_LINK_SCRIPT: {"found": True, "selector": "a.skip", "href": "#main", "targetExists": True},
        FOCUS_SELECTOR_SCRIPT: True,
        SKIP_LINK_RESULT_SCRIPT: True,
        HIDDEN_FOCUSABLE_SCRIPT: [[{"selector": "#ghost", "reason": "invisible"}]],
        WIDGET_CONTAINER_SCRIPT: [[_modal("#signup", "0.1.5")]],
        FOCUS_FIRST_IN_SCRIPT: True,
        FOCUS_INSIDE_SCRIPT: True,
        MODAL_DISMISSED_SCRIPT: False,
    })

    report = tester.run(session)

    assert report.errors == ()
    assert [(i.type, i.selector) for i in report.issues] == [
        (KeyboardIssueType.TAB_ORDER_VIOLATION, "#ghost"),
        (KeyboardIssueType.KEYBOARD_INACCESSIBLE, "#signup"),
    ]
    assert session.keys[-1] == "Escape"
    assert session.keys.count("Escape") == 1
