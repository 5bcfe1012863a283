# live.py
"""
Exploration of a page that stays open in the browser.

The rendered page is mirrored into a Document whose elements carry the rect
and computed style measured by the browser. An in-page MutationObserver,
bridged back through ``expose_binding``, keeps the mirror in step with what
page scripts render, and LivePage implements the driver coroutines by
evaluating them against the real elements.
"""
import weakref
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from playwright.async_api import async_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from .constants import logger, MUTATION_BINDING, NETWORKIDLE_TIMEOUT_MS, PAGE_TIMEOUT_MS, POST_LOAD_WAIT_MS
from .dom import ELEMENT_NODE, TEXT_NODE, DOMException, DOMRect, Document, Element, Node
from .extractors import STYLING_PROPERTIES

STYLE_PROPERTIES = ["display", "visibility", "opacity", "z-index", *STYLING_PROPERTIES.values()]

# Installed once per page. Nodes are numbered on first sight; snapshot() and
# inserted subtrees are serialised as flat pre-order lists (self, shadow
# content, children) so arbitrarily deep trees cross the wire unchanged.
INSTALL_SCRIPT = """
([binding, styleProperties]) => {
    if (window.__explorer) return;

    const ids = new WeakMap();
    const nodes = new Map();
    const watched = new WeakSet();
    const pending = new Set();
    let nextId = 1;

    const idOf = (node) => {
        let id = ids.get(node);
        if (id === undefined) {
            id = nextId++;
            ids.set(node, id);
        }
        nodes.set(id, node);
        return id;
    };

    const layout = (el) => {
        const r = el.getBoundingClientRect();
        const computed = getComputedStyle(el);
        const style = {};
        for (const name of styleProperties) style[name] = computed.getPropertyValue(name);
        return { rect: [r.x, r.y, r.width, r.height], style };
    };

    const send = (batch) => {
        if (!batch.length) return;
        const call = window[binding](batch).catch(() => {}).finally(() => pending.delete(call));
        pending.add(call);
    };

    const observer = new MutationObserver((records) => send(convert(records)));
    const watch = (root) => {
        if (watched.has(root)) return;
        watched.add(root);
        observer.observe(root, { childList: true, subtree: true, attributes: true, characterData: true });
    };

    const serialize = (root, parent, shadow) => {
        const out = [];
        const stack = [[root, parent, shadow]];
        while (stack.length) {
            const [node, parentId, inShadow] = stack.pop();
            const type = node.nodeType;
            if (type !== 1 && type !== 3 && type !== 8) continue;
            const record = { id: idOf(node), parent: parentId, shadow: inShadow, type };
            out.push(record);
            if (type !== 1) {
                record.data = node.data;
                continue;
            }
            record.tag = node.localName;
            record.attrs = Array.from(node.attributes, (a) => [a.name, a.value]);
            Object.assign(record, layout(node));
            const children = [];
            if (node.shadowRoot) {
                record.shadowMode = node.shadowRoot.mode;
                watch(node.shadowRoot);
                for (const child of node.shadowRoot.childNodes) children.push([child, record.id, true]);
            }
            for (const child of node.childNodes) children.push([child, record.id, false]);
            for (let i = children.length - 1; i >= 0; i--) stack.push(children[i]);
        }
        return out;
    };

    const containerRef = (container) => {
        if (!container || container === document) return { parent: null, shadow: false };
        if (container instanceof ShadowRoot) return { parent: idOf(container.host), shadow: true };
        return { parent: idOf(container), shadow: false };
    };

    const forget = (node) => {
        if (node.isConnected) return;
        const all = node.nodeType === 1 ? [node, ...node.querySelectorAll('*')] : [node];
        for (const n of all) {
            const id = ids.get(n);
            if (id !== undefined) nodes.delete(id);
        }
    };

    const convert = (records) => {
        const batch = [];
        for (const m of records) {
            if (m.type === 'childList') {
                const ref = containerRef(m.target);
                for (const n of m.removedNodes) {
                    const id = ids.get(n);
                    if (id === undefined || n.parentNode === m.target) continue;
                    batch.push({ op: 'remove', id, ...ref });
                    forget(n);
                }
                for (const n of m.addedNodes) {
                    if (n.parentNode !== m.target || !n.isConnected) continue;
                    let before = null;
                    for (let s = n.nextSibling; s; s = s.nextSibling) {
                        if (ids.has(s)) {
                            before = ids.get(s);
                            break;
                        }
                    }
                    batch.push({ op: 'insert', before, nodes: serialize(n, ref.parent, ref.shadow) });
                }
            } else if (m.type === 'attributes') {
                const id = ids.get(m.target);
                if (id !== undefined) {
                    batch.push({ op: 'attr', id, name: m.attributeName, value: m.target.getAttribute(m.attributeName) });
                }
            } else if (m.type === 'characterData') {
                const id = ids.get(m.target);
                if (id !== undefined) batch.push({ op: 'text', id, data: m.target.data });
            }
        }
        return batch;
    };

    const attachShadow = Element.prototype.attachShadow;
    Element.prototype.attachShadow = function (init) {
        const root = attachShadow.call(this, init);
        if (root.mode === 'open') {
            watch(root);
            const id = ids.get(this);
            if (id !== undefined) send([{ op: 'shadow', id, mode: root.mode }]);
        }
        return root;
    };

    const act = (id, name, args) => {
        const el = nodes.get(id);
        if (!el || !el.isConnected) return null;
        switch (name) {
            case 'focus':
                el.focus();
                return null;
            case 'click':
                el.click();
                return null;
            case 'dispatch': {
                const [type, mouse] = args;
                const init = { bubbles: true, cancelable: true, composed: true };
                el.dispatchEvent(mouse ? new MouseEvent(type, init) : new Event(type, init));
                return null;
            }
            case 'get':
                return el[args[0]];
            case 'set':
                el[args[0]] = args[1];
                return null;
            case 'removeAttribute':
                el.removeAttribute(args[0]);
                return null;
        }
        throw new Error(`Unknown action ${name}`);
    };

    const flush = async () => {
        send(convert(observer.takeRecords()));
        await Promise.all([...pending]);
        return location.href;
    };

    const layouts = () => {
        const out = {};
        for (const [id, node] of nodes) {
            if (node.nodeType === 1 && node.isConnected) out[id] = layout(node);
        }
        return out;
    };

    const snapshot = () => {
        watch(document);
        return serialize(document.documentElement, null, false);
    };

    const stop = () => {
        observer.disconnect();
        Element.prototype.attachShadow = attachShadow;
    };

    window.__explorer = { snapshot, act, flush, layouts, stop };
}
"""

SNAPSHOT_CALL = "() => window.__explorer.snapshot()"
ACT_CALL = "([id, name, args]) => window.__explorer.act(id, name, args)"
FLUSH_CALL = "() => window.__explorer.flush()"
LAYOUT_CALL = "() => window.__explorer.layouts()"
STOP_CALL = "() => window.__explorer.stop()"
USER_AGENT_CALL = "() => navigator.userAgent"


class LivePage:
    """Mirror of an open Playwright page, usable as the explorer's driver."""

    def __init__(self, page):
        self.page = page
        self.document: Optional[Document] = None
        self._nodes: "weakref.WeakValueDictionary[int, Node]" = weakref.WeakValueDictionary()
        self._ids: "weakref.WeakKeyDictionary[Node, int]" = weakref.WeakKeyDictionary()
        self._backlog: List[Dict[str, Any]] = []

    async def attach(self) -> Document:
        await self.page.expose_binding(MUTATION_BINDING, self._on_mutations)
        await self.page.evaluate(INSTALL_SCRIPT, [MUTATION_BINDING, STYLE_PROPERTIES])
        records = await self.page.evaluate(SNAPSHOT_CALL)

        # the mirror exists before any further await so binding calls land in it
        self.document = Document(url=self.page.url)
        self._graft(records)
        backlog, self._backlog = self._backlog, []
        self._on_mutations(None, backlog)

        self.document.title = await self.page.title()
        self.document.user_agent = await self.page.evaluate(USER_AGENT_CALL)
        viewport = self.page.viewport_size
        if viewport:
            self.document.viewport = (viewport["width"], viewport["height"])
        logger.info(f"Attached to {self.page.url} ({len(records)} nodes)")
        return self.document

    async def detach(self):
        try:
            await self.page.evaluate(STOP_CALL)
        except PlaywrightError as e:
            logger.debug(f"Could not stop page observer: {e}")

    # ---- mirror maintenance ----

    def _on_mutations(self, source, batch: List[Dict[str, Any]]):
        if self.document is None:
            self._backlog.extend(batch)
            return
        for op in batch:
            try:
                self._apply(op)
            except Exception as e:
                logger.warning(f"Could not mirror {op.get('op')} mutation: {e}")

    def _apply(self, op: Dict[str, Any]):
        kind = op["op"]
        if kind == "insert":
            self._graft(op["nodes"], op.get("before"))
        elif kind == "remove":
            node = self._nodes.get(op["id"])
            container = self._container(op)
            if node is not None and container is not None and node.parent is container:
                container.remove_child(node)
        elif kind == "attr":
            el = self._nodes.get(op["id"])
            if el is not None:
                if op.get("value") is None:
                    el.remove_attribute(op["name"])
                else:
                    el.set_attribute(op["name"], op["value"])
        elif kind == "text":
            node = self._nodes.get(op["id"])
            if node is not None:
                node.data = op["data"]
        elif kind == "shadow":
            host = self._nodes.get(op["id"])
            if host is not None and host.shadow_root is None:
                host.attach_shadow(op.get("mode", "open"))
        else:
            logger.debug(f"Ignoring unknown mutation {kind}")

    def _container(self, record: Dict[str, Any]) -> Optional[Node]:
        parent_id = record.get("parent")
        if parent_id is None:
            return self.document
        parent = self._nodes.get(parent_id)
        if parent is None:
            return None
        if record.get("shadow"):
            return parent.shadow_root or parent.attach_shadow()
        return parent

    def _create(self, record: Dict[str, Any]) -> Node:
        document = self.document
        kind = record["type"]
        if kind == ELEMENT_NODE:
            node = document.create_element(record["tag"], dict(record.get("attrs") or []))
            self._measure(node, record)
            if record.get("shadowMode"):
                node.attach_shadow(record["shadowMode"])
        elif kind == TEXT_NODE:
            node = document.create_text_node(record.get("data", ""))
        else:
            node = document.create_comment(record.get("data", ""))
        self._nodes[record["id"]] = node
        self._ids[node] = record["id"]
        return node

    @staticmethod
    def _measure(el: Element, data: Dict[str, Any]):
        rect = data.get("rect")
        if rect:
            el.layout = DOMRect(*rect)
        style = data.get("style")
        if style:
            el.computed_style = dict(style)

    def _graft(self, records: List[Dict[str, Any]], before: Optional[int] = None):
        """Place serialised nodes (pre-order, parents first) into the mirror, reusing known ones."""
        for index, record in enumerate(records):
            container = self._container(record)
            if container is None:
                continue
            node = self._nodes.get(record["id"])
            if node is None:
                node = self._create(record)
            else:
                if record["type"] == ELEMENT_NODE:
                    self._measure(node, record)
                if index > 0 and node.parent is container:
                    continue
            reference = self._nodes.get(before) if index == 0 and before is not None else None
            if reference is not None and reference.parent is container:
                container.insert_before(node, reference)
            else:
                container.append_child(node)

    # ---- driver ----

    async def _act(self, el: Element, name: str, *args):
        remote = self._ids.get(el)
        if remote is None:
            raise DOMException(f"{el!r} is not part of the rendered page", "NotFoundError")
        return await self.page.evaluate(ACT_CALL, [remote, name, list(args)])

    async def focus(self, el: Element) -> None:
        await self._act(el, "focus")

    async def click(self, el: Element) -> None:
        await self._act(el, "click")

    async def dispatch(self, el: Element, type: str, mouse: bool = False) -> None:
        await self._act(el, "dispatch", type, mouse)

    async def get_property(self, el: Element, name: str) -> Any:
        return await self._act(el, "get", name)

    async def set_property(self, el: Element, name: str, value: Any) -> None:
        await self._act(el, "set", name, value)

    async def remove_attribute(self, el: Element, name: str) -> None:
        await self._act(el, "removeAttribute", name)

    async def settle(self) -> None:
        """Deliver the page's pending mutations into the mirror and pick up fragment navigation."""
        url = await self.page.evaluate(FLUSH_CALL)
        if url:
            self.document.url = url

    async def refresh(self, document: Document) -> None:
        layouts = await self.page.evaluate(LAYOUT_CALL)
        for key, data in (layouts or {}).items():
            node = self._nodes.get(int(key))
            if node is not None and node.node_type == ELEMENT_NODE:
                self._measure(node, data)


@asynccontextmanager
async def open_page(url: str, headful: bool = False, post_load_wait: int = POST_LOAD_WAIT_MS):
    """Render ``url`` and keep it open, mirrored, for the duration of the block."""
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=not headful)
        try:
            page = await browser.new_page()
            await page.goto(url, wait_until='load', timeout=PAGE_TIMEOUT_MS)
            try:
                await page.wait_for_load_state('networkidle', timeout=NETWORKIDLE_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                logger.info("networkidle timeout, continuing")
            # 動的コンテンツの描画完了を待つ
            await page.wait_for_timeout(post_load_wait)

            live = LivePage(page)
            await live.attach()
            try:
                yield live
            finally:
                await live.detach()
        finally:
            await browser.close()
