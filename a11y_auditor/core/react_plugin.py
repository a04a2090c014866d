"""
React component-tree provider

Serializes the live fiber tree into an index-linked node list that the
attribution engine walks host-side, and locates checker selectors as
structural element ids.
"""

import logging
from typing import Any, List, Optional, Sequence

from ..accessibility.component_attribution import MAX_TREE_NODES, ComponentTreeSnapshot, ElementLocation
from .page_scripts import ELEMENT_HELPERS, LOCATE_SCRIPT

logger = logging.getLogger(__name__)

FIBER_SNAPSHOT_SCRIPT = (
    "(maxNodes) => {"
    + ELEMENT_HELPERS
    + """
    const findRoot = () => {
        const hook = window.__REACT_DEVTOOLS_GLOBAL_HOOK__;
        if (hook && hook.getFiberRoots) {
            for (const id of (hook.renderers ? hook.renderers.keys() : [1])) {
                const roots = hook.getFiberRoots(id);
                if (roots && roots.size > 0) return Array.from(roots)[0].current;
            }
        }
        for (const element of document.querySelectorAll('*')) {
            const key = Object.keys(element).find((k) =>
                k.startsWith('__reactFiber') || k.startsWith('__reactInternalInstance'));
            if (key) {
                let fiber = element[key];
                const seen = new Set();
                while (fiber && fiber.return && !seen.has(fiber)) {
                    seen.add(fiber);
                    fiber = fiber.return;
                }
                if (fiber) return fiber;
            }
        }
        const container = document.getElementById('root') || document.getElementById('app');
        if (container) {
            for (const key of Object.keys(container)) {
                if (!key.startsWith('_react') && !key.startsWith('__react')) continue;
                const value = container[key];
                if (value && value.current) return value.current;
                if (value && value._internalRoot && value._internalRoot.current) return value._internalRoot.current;
            }
        }
        return null;
    };

    const describe = (fiber) => {
        const t = fiber.type;
        const node = {
            kind: typeof t === 'string' ? 'host' : 'composite',
            hostTag: typeof t === 'string' ? t : null,
            displayName: null,
            typeName: null,
            contextName: null,
            debugFile: (fiber._debugSource && fiber._debugSource.fileName) || null,
            isFunction: typeof t === 'function',
            elementId: fiber.stateNode instanceof Element ? elementId(fiber.stateNode) : null,
            child: null,
            sibling: null,
        };
        if (t && (typeof t === 'function' || typeof t === 'object')) {
            node.displayName = t.displayName || null;
            if (typeof t === 'function') {
                node.typeName = t.name || null;
            } else if (t.render) {
                node.typeName = t.render.displayName || t.render.name || null;
            } else if (t.type) {
                node.typeName = t.type.displayName || t.type.name || null;
            }
            if (t._context) node.contextName = t._context.displayName || 'Context';
        }
        return node;
    };

    const root = findRoot();
    if (!root) return { root: null, nodes: [] };

    const nodes = [];
    const indexOf = new Map();
    const fibers = [];
    const register = (fiber) => {
        if (!fiber) return null;
        if (indexOf.has(fiber)) return indexOf.get(fiber);
        if (nodes.length >= maxNodes) return null;
        const index = nodes.length;
        indexOf.set(fiber, index);
        nodes.push(describe(fiber));
        fibers.push(fiber);
        return index;
    };
    register(root);
    // fibers doubles as the breadth-first queue; a fiber's queue slot is its node index
    for (let index = 0; index < fibers.length; index++) {
        const fiber = fibers[index];
        nodes[index].child = register(fiber.child);
        nodes[index].sibling = register(fiber.sibling);
    }
    return { root: 0, nodes };
}
"""
)


class ReactTreeProvider:
    """Component-tree provider for React applications"""

    name = "react"

    def __init__(self, max_nodes: int = MAX_TREE_NODES):
        self.max_nodes = max_nodes

    def detect(self, session: Any) -> bool:
        return session.detect_react()

    def snapshot(self, session: Any) -> ComponentTreeSnapshot:
        data = session.evaluate(FIBER_SNAPSHOT_SCRIPT, self.max_nodes)
        snapshot = ComponentTreeSnapshot.from_dict(data)
        if snapshot.root is None:
            logger.warning("Could not find React root fiber")
        else:
            logger.debug(f"Serialized {len(snapshot)} fiber nodes")
        return snapshot

    def locate(self, session: Any, selectors: Sequence[str]) -> List[Optional[ElementLocation]]:
        if not selectors:
            return []
        results = session.evaluate(LOCATE_SCRIPT, list(selectors)) or []
        located: List[Optional[ElementLocation]] = []
        for entry in results:
            if entry and entry.get("elementId") is not None:
                located.append(ElementLocation(entry["elementId"], entry.get("cssSelector") or ""))
            else:
                located.append(None)
        return located
