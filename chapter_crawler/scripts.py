"""
Page Snapshot Scripts
=====================
JavaScript evaluated inside the rendered page through ``PageDriver.evaluate``.

Each script is an arrow function taking a single JSON argument and returning
plain JSON (strings, booleans, arrays of records).  The scripts only *collect*
data; every heuristic decision (noise signatures, scoring, link strategies)
is made in Python by ``extractor`` and ``locator``.

``StaticPageDriver`` answers the same scripts from a BeautifulSoup tree, so
the constants double as dispatch keys.
"""

# Elements considered as main-content candidates.
CANDIDATE_SELECTOR = 'div, article, section, span, pre, li, blockquote, main'

# Subtrees never counted as content.
NOISE_SELECTOR = 'script, style, noscript, .confirm-dialog'
STRUCTURAL_SELECTOR = 'nav, footer, header, aside'

LINK_CONTAINER_SELECTOR = '.list, .chapter-list, .novel-list, ul, ol'

_VISIBILITY_HELPERS = r"""
    const hiddenCache = new Map();
    const isHidden = (el) => {
        if (hiddenCache.has(el)) return hiddenCache.get(el);
        const s = window.getComputedStyle(el);
        const hidden = el.hidden || s.display === 'none' || s.visibility === 'hidden' || s.opacity === '0';
        hiddenCache.set(el, hidden);
        return hidden;
    };
    // Hidden when the element or any ancestor up to <html> is hidden.
    const inHiddenTree = (el) => {
        for (let node = el; node; node = node.parentElement) {
            if (isHidden(node)) return true;
        }
        return false;
    };
    const visibleText = (root, skip) => {
        const walker = document.createTreeWalker(root, NodeFilter.SHOW_TEXT, null);
        const lines = [];
        while (walker.nextNode()) {
            const node = walker.currentNode;
            const parent = node.parentElement;
            if (!parent || parent.closest(skip) || inHiddenTree(parent)) continue;
            const t = (node.nodeValue || '').trim();
            if (t) lines.push(t);
        }
        return lines.join('\n');
    };
"""

CONTENT_BLOCKS = r"""
(args) => {
""" + _VISIBILITY_HELPERS + r"""
    const minLength = (args && args.minLength) || 0;
    const records = [];
    for (const el of document.querySelectorAll('""" + CANDIDATE_SELECTOR + r"""')) {
        if ((el.textContent || '').trim().length < minLength) continue;
        records.push({
            tag: el.tagName.toLowerCase(),
            id: el.id || '',
            cls: typeof el.className === 'string' ? el.className : '',
            hidden: inHiddenTree(el),
            excluded: !!el.closest('""" + NOISE_SELECTOR + ', ' + STRUCTURAL_SELECTOR + r"""'),
            text: visibleText(el, '""" + NOISE_SELECTOR + r"""'),
        });
    }
    return records;
}
"""

BODY_TEXT = r"""
(args) => {
""" + _VISIBILITY_HELPERS + r"""
    if (!document.body) return '';
    return visibleText(document.body, '""" + NOISE_SELECTOR + ', ' + STRUCTURAL_SELECTOR + r"""');
}
"""

PAGE_TEXT = r"""
(args) => {
""" + _VISIBILITY_HELPERS + r"""
    if (!document.body) return '';
    return visibleText(document.body, '""" + NOISE_SELECTOR + r"""').split('\n').join(' ');
}
"""

ANCHORS = r"""
(args) => Array.from(document.querySelectorAll('a')).map(a => ({
    href: a.href || '',
    text: (a.textContent || '').trim(),
    id: a.id || '',
    cls: typeof a.className === 'string' ? a.className : '',
    rel: a.getAttribute('rel') || '',
}))
"""

LINK_CONTAINERS = r"""
(args) => Array.from(document.querySelectorAll('""" + LINK_CONTAINER_SELECTOR + r"""')).map(c => {
    const links = c.querySelectorAll('a');
    const first = links[0];
    return {
        count: links.length,
        first: first ? {
            href: first.href || '',
            text: (first.textContent || '').trim(),
            id: first.id || '',
            cls: typeof first.className === 'string' ? first.className : '',
            rel: first.getAttribute('rel') || '',
        } : null,
    };
})
"""

HEADING_TITLE = r"""
(args) => {
    const pattern = /第\s*\d+\s*[章节回]|chapter\s*\d+/i;
    for (const h of document.querySelectorAll('h1, h2, h3')) {
        const text = (h.textContent || '').trim();
        if (pattern.test(text)) return text;
    }
    const body = document.body ? (document.body.innerText || document.body.textContent || '') : '';
    const match = body.match(/(第\s*\d+\s*[章节回]|chapter\s*\d+)[^\n]*/i);
    return match ? match[0].trim() : '';
}
"""

SCROLL_TO_BOTTOM = r"""
(args) => new Promise(resolve => {
    const duration = Math.max(0, (args && args.durationMs) || 0);
    const startTime = Date.now();
    const startScroll = window.scrollY;
    const distance = Math.max(0, document.body.scrollHeight - window.innerHeight) - startScroll;
    const ease = t => t < 0.5 ? 4 * t * t * t : (t - 1) * (2 * t - 2) * (2 * t - 2) + 1;
    const step = () => {
        const t = duration > 0 ? Math.min((Date.now() - startTime) / duration, 1) : 1;
        const wobble = t < 1 ? 1 + (Math.random() - 0.5) * 0.2 : 1;
        window.scrollTo(0, startScroll + distance * Math.min(ease(t) * wobble, 1));
        if (t < 1) requestAnimationFrame(step);
    };
    step();
    setTimeout(() => resolve(true), duration + 500);
})
"""

SEARCH_RESULTS = r"""
(args) => Array.from(document.querySelectorAll('h3.t a')).map(a => ({
    href: a.href || '',
    text: (a.innerText || a.textContent || '').trim(),
}))
"""

ALERT_TEXT = r"""
(args) => {
    const alert = document.querySelector('[role="alert"]');
    return alert ? (alert.innerText || alert.textContent || '') : '';
}
"""

# Races a snapshot script against a timer so a script that never settles
# rejects instead of blocking the caller. A synchronous busy loop cannot be
# interrupted this way.
_TIMED_TEMPLATE = r"""
async (args) => {
    const script = __SCRIPT__;
    let timer;
    const expired = new Promise((_, reject) => {
        timer = setTimeout(() => reject(new Error('script timed out after __MS__ms')), __MS__);
    });
    try {
        return await Promise.race([Promise.resolve().then(() => script(args)), expired]);
    } finally {
        clearTimeout(timer);
    }
}
"""


def with_timeout(script: str, seconds: float) -> str:
    """Wrap ``script`` so its evaluation rejects after ``seconds``."""
    ms = max(1, int(seconds * 1000))
    return _TIMED_TEMPLATE.replace('__SCRIPT__', script.strip()).replace('__MS__', str(ms))
