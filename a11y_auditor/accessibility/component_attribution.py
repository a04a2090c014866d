"""
Component Attribution

Maps each raw finding instance to the UI component that rendered it. The
component tree arrives as a serialized snapshot (an index-linked node list
produced in the page); everything below runs host-side on plain data.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from ..config import DEFAULT_FRAMEWORK_PATTERNS
from .compliance_checker import CheckDetail, RawFinding, RawInstance, Severity

logger = logging.getLogger(__name__)

MAX_TREE_NODES = 50000
SNIPPET_LENGTH = 100

_DEBUG_FILE_RE = re.compile(r"/([^/]+)\.(tsx?|jsx?)$")


class ComponentKind(Enum):
    HOST = "host"              # Rendered platform element (div, button, ...)
    COMPOSITE = "composite"    # User or framework component
    UNRESOLVED = "unresolved"  # No usable name


@dataclass(frozen=True)
class SnapshotNode:
    """One serialized tree node; ``child``/``sibling`` index into the snapshot"""
    kind: str = "composite"
    host_tag: Optional[str] = None
    display_name: Optional[str] = None
    type_name: Optional[str] = None
    context_name: Optional[str] = None
    debug_file: Optional[str] = None
    is_function: bool = False
    element_id: Optional[str] = None
    child: Optional[int] = None
    sibling: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SnapshotNode":
        return cls(
            kind=data.get("kind") or "composite",
            host_tag=data.get("hostTag"),
            display_name=data.get("displayName"),
            type_name=data.get("typeName"),
            context_name=data.get("contextName"),
            debug_file=data.get("debugFile"),
            is_function=bool(data.get("isFunction")),
            element_id=data.get("elementId"),
            child=data.get("child"),
            sibling=data.get("sibling"),
        )


@dataclass(frozen=True)
class ComponentTreeSnapshot:
    root: Optional[int]
    nodes: Tuple[SnapshotNode, ...] = ()

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ComponentTreeSnapshot":
        if not data:
            return cls(root=None)
        nodes = tuple(SnapshotNode.from_dict(n) for n in data.get("nodes") or [])
        return cls(root=data.get("root"), nodes=nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, index: Optional[int]) -> Optional[SnapshotNode]:
        if index is None or not isinstance(index, int) or not 0 <= index < len(self.nodes):
            return None
        return self.nodes[index]


# ---------------------------------------------------------------------------
# Name resolution
# ---------------------------------------------------------------------------

def _host_tag(node: SnapshotNode) -> Optional[str]:
    if node.kind == "host" and node.host_tag:
        return node.host_tag
    return None


def _display_name(node: SnapshotNode) -> Optional[str]:
    if node.display_name and len(node.display_name) > 1:
        return node.display_name
    return None


def _type_name(node: SnapshotNode) -> Optional[str]:
    if node.type_name and len(node.type_name) > 1:
        return node.type_name
    return None


def _minified_name(node: SnapshotNode) -> Optional[str]:
    return node.display_name or node.type_name or None


def _context_provider(node: SnapshotNode) -> Optional[str]:
    if node.context_name:
        return f"{node.context_name}.Provider"
    return None


def _debug_file_stem(node: SnapshotNode) -> Optional[str]:
    if not node.debug_file:
        return None
    match = _DEBUG_FILE_RE.search(node.debug_file)
    if match and len(match.group(1)) > 1:
        return match.group(1)
    return None


def _anonymous(node: SnapshotNode) -> Optional[str]:
    return "Anonymous" if node.is_function else None


NAME_STRATEGIES: Tuple[Callable[[SnapshotNode], Optional[str]], ...] = (
    _host_tag,
    _display_name,
    _type_name,
    _minified_name,
    _context_provider,
    _debug_file_stem,
    _anonymous,
)


def resolve_component_name(node: SnapshotNode) -> Optional[str]:
    """First strategy that yields a name wins; None means unresolved"""
    for strategy in NAME_STRATEGIES:
        name = strategy(node)
        if name:
            return name
    return None


def is_recordable_name(name: Optional[str]) -> bool:
    return bool(name) and name != "Anonymous" and not name.startswith("_")


# ---------------------------------------------------------------------------
# Framework filtering
# ---------------------------------------------------------------------------

class FrameworkFilter:
    """Decides which component names are framework plumbing rather than user code"""

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        self.patterns = tuple(DEFAULT_FRAMEWORK_PATTERNS if patterns is None else patterns)

    def is_framework_component(self, name: Optional[str]) -> bool:
        if not name:
            return False
        if len(name) <= 2 or name.startswith("_"):
            return True
        if "ErrorBoundary" in name or "Suspense" in name:
            return True
        return any(name == p or name.startswith(p + ".") for p in self.patterns)

    def filter_user_components(self, path: Sequence[str]) -> Tuple[str, ...]:
        return tuple(name for name in path if not self.is_framework_component(name))


DEFAULT_FILTER = FrameworkFilter()


@dataclass(frozen=True)
class ComponentNode:
    kind: ComponentKind
    name: Optional[str]
    path: Tuple[str, ...] = ()
    element_id: Optional[str] = None
    # Set from the FrameworkFilter in force when the node was recorded
    is_framework_internal: bool = False

    @classmethod
    def host(cls, tag: str, path: Tuple[str, ...], element_id: Optional[str]) -> "ComponentNode":
        return cls(ComponentKind.HOST, tag, path, element_id)

    @classmethod
    def composite(
        cls,
        name: str,
        path: Tuple[str, ...],
        element_id: Optional[str] = None,
        is_framework_internal: bool = False,
    ) -> "ComponentNode":
        return cls(ComponentKind.COMPOSITE, name, path, element_id, is_framework_internal)

    @classmethod
    def unresolved(cls, element_id: Optional[str] = None) -> "ComponentNode":
        return cls(ComponentKind.UNRESOLVED, None, (), element_id)


def _to_component(
    node: SnapshotNode, name: Optional[str], path: Tuple[str, ...], framework_filter: FrameworkFilter
) -> ComponentNode:
    if name is None:
        return ComponentNode.unresolved(node.element_id)
    if node.kind == "host":
        return ComponentNode.host(name, path, node.element_id)
    return ComponentNode.composite(name, path, node.element_id, framework_filter.is_framework_component(name))


def walk_component_tree(
    snapshot: ComponentTreeSnapshot,
    max_nodes: int = MAX_TREE_NODES,
    framework_filter: Optional[FrameworkFilter] = None,
) -> List[ComponentNode]:
    """
    Flatten the tree in depth-first pre-order

    A node's subtree is visited before its next sibling. Nodes with no
    recordable name are skipped without breaking the walk and add nothing
    to their descendants' paths.

    Args:
        snapshot: Serialized component tree
        max_nodes: Hard cap on visited nodes
        framework_filter: Marks composite nodes that are framework plumbing

    Returns:
        Recorded components, each with its root-to-node path
    """
    framework_filter = framework_filter or DEFAULT_FILTER
    recorded: List[ComponentNode] = []
    if snapshot.get(snapshot.root) is None:
        return recorded

    visited = set()
    stack: List[Tuple[int, Tuple[str, ...]]] = [(snapshot.root, ())]
    while stack:
        index, parent_path = stack.pop()
        if index in visited:
            logger.debug(f"Cycle detected at tree node {index}, skipping")
            continue
        if len(visited) >= max_nodes:
            logger.warning(f"Max tree node count ({max_nodes}) reached, stopping traversal")
            break
        visited.add(index)

        node = snapshot.nodes[index]
        name = resolve_component_name(node)
        if is_recordable_name(name):
            path = parent_path + (name,)
            recorded.append(_to_component(node, name, path, framework_filter))
        else:
            path = parent_path

        # Sibling pushed first so the child subtree is popped before it
        if snapshot.get(node.sibling) is not None:
            stack.append((node.sibling, parent_path))
        if snapshot.get(node.child) is not None:
            stack.append((node.child, path))

    logger.debug(f"Walked {len(visited)} tree nodes, recorded {len(recorded)} components")
    return recorded


def ancestor_element_ids(element_id: str) -> List[str]:
    """Parent chain of a structural element id, nearest first"""
    parts = element_id.split(".")
    return [".".join(parts[:i]) for i in range(len(parts) - 1, 0, -1)]


class DomComponentMap:
    """
    Read-only element-id to component map

    Each element id holds at most one component; the first node recorded for
    an id wins.
    """

    def __init__(self, components: Iterable[ComponentNode] = ()):
        entries: Dict[str, ComponentNode] = {}
        for component in components:
            if component.element_id is None or component.kind is ComponentKind.UNRESOLVED:
                continue
            entries.setdefault(component.element_id, component)
        self._entries = MappingProxyType(entries)

    @classmethod
    def from_snapshot(
        cls, snapshot: ComponentTreeSnapshot, framework_filter: Optional[FrameworkFilter] = None
    ) -> "DomComponentMap":
        return cls(walk_component_tree(snapshot, framework_filter=framework_filter))

    @property
    def entries(self) -> Mapping[str, ComponentNode]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._entries

    def get(self, element_id: str) -> Optional[ComponentNode]:
        return self._entries.get(element_id)

    def resolve(self, element_id: Optional[str]) -> Optional[ComponentNode]:
        """Nearest enclosing owner: the element itself, else its closest mapped ancestor"""
        if element_id is None:
            return None
        if element_id in self._entries:
            return self._entries[element_id]
        for ancestor in ancestor_element_ids(element_id):
            if ancestor in self._entries:
                return self._entries[ancestor]
        return None


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------

class ElementLocation(NamedTuple):
    """Where a checker selector landed in the live DOM"""
    element_id: str
    css_selector: str


def extract_html_snippet(html: str, max_length: int = SNIPPET_LENGTH) -> str:
    """Whitespace-normalized snippet, cut at the opening tag when the body is long"""
    if not html:
        return ""
    snippet = " ".join(html.split())
    if len(snippet) <= max_length:
        return snippet

    first_tag_end = snippet.find(">")
    if first_tag_end != -1 and first_tag_end < max_length - 3:
        after_tag = snippet[first_tag_end + 1:]
        if len(after_tag.strip()) > max_length - first_tag_end - 10:
            return snippet[:first_tag_end + 1] + "..."
    return snippet[:max_length - 3] + "..."


@dataclass(frozen=True)
class AttributedInstance:
    html: str
    target: Tuple[str, ...]
    failure_summary: str
    html_snippet: str
    css_selector: Optional[str]
    component: Optional[str] = None
    component_type: Optional[ComponentKind] = None
    component_path: Tuple[str, ...] = ()
    user_component_path: Tuple[str, ...] = ()
    is_framework_component: bool = False
    element_id: Optional[str] = None
    any: Tuple[CheckDetail, ...] = ()
    all: Tuple[CheckDetail, ...] = ()
    none: Tuple[CheckDetail, ...] = ()

    @property
    def is_attributed(self) -> bool:
        return self.component is not None


@dataclass(frozen=True)
class AttributedFinding:
    finding: RawFinding
    instances: Tuple[AttributedInstance, ...] = field(default_factory=tuple)

    @property
    def id(self) -> str:
        return self.finding.id

    @property
    def impact(self) -> Optional[Severity]:
        return self.finding.impact

    @property
    def description(self) -> str:
        return self.finding.description

    @property
    def help(self) -> str:
        return self.finding.help

    @property
    def help_url(self) -> str:
        return self.finding.help_url

    @property
    def tags(self) -> Tuple[str, ...]:
        return self.finding.tags

    def components(self) -> List[str]:
        """Distinct attributed component names in instance order"""
        names: List[str] = []
        for instance in self.instances:
            if instance.component and instance.component not in names:
                names.append(instance.component)
        return names


def _attribute_instance(
    instance: RawInstance,
    dom_map: Optional[DomComponentMap],
    locations: Mapping[str, ElementLocation],
    framework_filter: FrameworkFilter,
) -> AttributedInstance:
    selector = instance.selector
    location = locations.get(selector) if selector is not None else None
    owner = dom_map.resolve(location.element_id) if dom_map is not None and location is not None else None

    base = dict(
        html=instance.html,
        target=instance.target,
        failure_summary=instance.failure_summary,
        html_snippet=extract_html_snippet(instance.html),
        css_selector=location.css_selector if location is not None else selector,
        element_id=location.element_id if location is not None else None,
        any=instance.any,
        all=instance.all,
        none=instance.none,
    )
    if owner is None:
        return AttributedInstance(**base)
    return AttributedInstance(
        component=owner.name,
        component_type=owner.kind,
        component_path=owner.path,
        user_component_path=framework_filter.filter_user_components(owner.path),
        is_framework_component=framework_filter.is_framework_component(owner.name),
        **base,
    )


def attribute_findings(
    findings: Sequence[RawFinding],
    dom_map: Optional[DomComponentMap] = None,
    locations: Optional[Mapping[str, ElementLocation]] = None,
    framework_filter: Optional[FrameworkFilter] = None,
) -> Tuple[AttributedFinding, ...]:
    """
    Attribute every instance of every finding

    Exactly one attributed instance is produced per raw instance, in the
    same order. Instances whose element cannot be located or has no mapped
    owner keep ``component=None``.

    Args:
        findings: Raw checker findings
        dom_map: Element-id to component map, None for unattributed output
        locations: Selector to located element, as returned by the tree provider
        framework_filter: Filter used for ``user_component_path``

    Returns:
        Attributed findings in input order
    """
    locations = locations or {}
    framework_filter = framework_filter or DEFAULT_FILTER
    return tuple(
        AttributedFinding(
            finding=finding,
            instances=tuple(
                _attribute_instance(instance, dom_map, locations, framework_filter)
                for instance in finding.instances
            ),
        )
        for finding in findings
    )


def collect_selectors(*groups: Sequence[RawFinding]) -> List[str]:
    """Unique primary selectors across finding groups, in first-seen order"""
    seen: Dict[str, None] = {}
    for findings in groups:
        for finding in findings:
            for instance in finding.instances:
                if instance.selector is not None:
                    seen.setdefault(instance.selector, None)
    return list(seen)


def build_locations(selectors: Sequence[str], located: Sequence[Optional[ElementLocation]]) -> Dict[str, ElementLocation]:
    if len(selectors) != len(located):
        raise ValueError(f"Located {len(located)} elements for {len(selectors)} selectors")
    return {s: loc for s, loc in zip(selectors, located) if loc is not None}
