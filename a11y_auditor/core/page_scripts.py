"""
JavaScript snippets shared by in-page checks

Each script is a self-contained function passed to ``page.evaluate``; nothing
is stored on ``window`` between calls. Elements travel back to Python as a
structural id: the child-index path from ``<html>`` joined by dots, so
``"0.1.3"`` is the fourth child of the second child of ``<html>``.
"""

ELEMENT_HELPERS = """
const elementId = (element) => {
    if (!element || element.nodeType !== 1) return null;
    const root = document.documentElement;
    const parts = [];
    let current = element;
    while (current && current !== root) {
        const parent = current.parentElement;
        if (!parent) return null;
        parts.unshift(Array.prototype.indexOf.call(parent.children, current));
        current = parent;
    }
    if (current !== root) return null;
    parts.unshift(0);
    return parts.join('.');
};
const elementById = (id) => {
    if (!id) return null;
    const parts = id.split('.').map(Number);
    let current = document.documentElement;
    for (const index of parts.slice(1)) {
        if (!current) return null;
        current = current.children[index] || null;
    }
    return current;
};
const cssSelector = (element) => {
    if (element.id) return '#' + CSS.escape(element.id);
    const path = [];
    let current = element;
    while (current && current !== document.documentElement) {
        let selector = current.tagName.toLowerCase();
        if (current.id) {
            path.unshift('#' + CSS.escape(current.id));
            break;
        }
        if (current.classList.length > 0) {
            selector += Array.from(current.classList).slice(0, 2).map((c) => '.' + CSS.escape(c)).join('');
        }
        const parent = current.parentElement;
        if (parent) {
            const same = Array.from(parent.children).filter((c) => c.tagName === current.tagName);
            if (same.length > 1) selector += ':nth-of-type(' + (same.indexOf(current) + 1) + ')';
        }
        path.unshift(selector);
        current = current.parentElement;
        if (path.length >= 4) break;
    }
    return path.join(' > ');
};
"""

LOCATE_SCRIPT = (
    "(selectors) => {"
    + ELEMENT_HELPERS
    + """
    return selectors.map((selector) => {
        let element = null;
        try {
            element = document.querySelector(selector);
        } catch (e) {
            return null;
        }
        if (!element) return null;
        const id = elementId(element);
        if (id === null) return null;
        return { elementId: id, cssSelector: cssSelector(element) };
    });
}
"""
)
