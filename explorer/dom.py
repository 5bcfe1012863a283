# dom.py
"""
Live document model explored by the engine.

Nodes form a mutable tree. An element may host a shadow root, which the
walkers treat as one more child container. Structural changes are reported
to MutationObserver instances through the running asyncio loop, and event
listeners returning coroutines run as tasks on that loop (page scripts).
"""
import asyncio
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union
from urllib.parse import urldefrag, urljoin

from .constants import logger

ELEMENT_NODE = 1
TEXT_NODE = 3
COMMENT_NODE = 8
DOCUMENT_NODE = 9
DOCUMENT_FRAGMENT_NODE = 11

LABELABLE_TAGS = frozenset({"button", "input", "meter", "output", "progress", "select", "textarea"})
FOCUSABLE_TAGS = frozenset({"button", "input", "select", "textarea", "summary", "iframe"})
NON_RENDERED_TAGS = frozenset({"head", "script", "style", "template", "meta", "link", "title", "noscript", "base"})
INLINE_TAGS = frozenset({"a", "abbr", "b", "code", "em", "i", "label", "small", "span", "strong", "sub", "sup"})
INLINE_BLOCK_TAGS = frozenset({"button", "img", "input", "select", "textarea"})
TEXT_SKIP_TAGS = frozenset({"script", "style", "template", "noscript"})

DEFAULT_STYLE = {
    "display": "block",
    "visibility": "visible",
    "opacity": "1",
    "z-index": "auto",
    "color": "rgb(0, 0, 0)",
    "background-color": "rgba(0, 0, 0, 0)",
    "font-size": "16px",
    "font-family": "Times New Roman",
    "border": "0px none rgb(0, 0, 0)",
    "border-radius": "0px",
    "padding": "0px",
    "margin": "0px",
}

_WHITESPACE = re.compile(r"\s+")


class DOMException(Exception):
    def __init__(self, message: str, name: str = "Error"):
        super().__init__(f"{name}: {message}")
        self.name = name


@dataclass
class DOMRect:
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def top(self) -> float:
        return min(self.y, self.y + self.height)

    @property
    def left(self) -> float:
        return min(self.x, self.x + self.width)

    @property
    def right(self) -> float:
        return max(self.x, self.x + self.width)

    @property
    def bottom(self) -> float:
        return max(self.y, self.y + self.height)


class Event:
    def __init__(self, type: str, bubbles: bool = False):
        self.type = type
        self.bubbles = bubbles
        self.target: Optional["Node"] = None
        self.current_target: Optional["Node"] = None
        self.default_prevented = False
        self._stopped = False

    def prevent_default(self):
        self.default_prevented = True

    def stop_propagation(self):
        self._stopped = True


class MouseEvent(Event):
    pass


@dataclass
class MutationRecord:
    type: str
    target: "Node"
    added_nodes: List["Node"] = field(default_factory=list)
    removed_nodes: List["Node"] = field(default_factory=list)


class MutationObserver:
    """
    Child-list observer. Records are batched and handed to the callback from
    the event loop; without a running loop they stay pending until
    take_records() is called.
    """

    def __init__(self, callback: Callable[[List[MutationRecord], "MutationObserver"], None]):
        self._callback = callback
        self._records: List[MutationRecord] = []
        self._targets: List[Tuple["Node", bool, bool]] = []
        self._documents: List["Document"] = []
        self._scheduled = False

    def observe(self, target: "Node", subtree: bool = False, pierce: bool = False):
        """
        ``pierce`` extends ``subtree`` across shadow boundaries, so insertions
        inside shadow roots hosted under ``target`` are reported too.
        """
        document = target if target.node_type == DOCUMENT_NODE else target.owner_document
        if document is None:
            raise DOMException("target does not belong to a document", "NotSupportedError")
        self._targets.append((target, subtree, pierce))
        if self not in document._observers:
            document._observers.append(self)
            self._documents.append(document)

    def disconnect(self):
        for document in self._documents:
            if self in document._observers:
                document._observers.remove(self)
        self._documents.clear()
        self._targets.clear()
        self._records.clear()

    def take_records(self) -> List[MutationRecord]:
        records, self._records = self._records, []
        return records

    def _interested(self, node: "Node") -> bool:
        for target, subtree, pierce in self._targets:
            if node is target:
                return True
            if not subtree:
                continue
            current = node
            while current is not None:
                if current is target:
                    return True
                current = current._event_parent() if pierce else current.parent
        return False

    def _enqueue(self, record: MutationRecord):
        self._records.append(record)
        if self._scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._scheduled = True
        loop.call_soon(self._deliver)

    def _deliver(self):
        self._scheduled = False
        records = self.take_records()
        if records:
            self._callback(records, self)


class Node:
    node_type = 0
    node_name = "#node"

    def __init__(self, owner_document: Optional["Document"] = None):
        self.owner_document = owner_document
        self.parent: Optional[Node] = None
        self.child_nodes: List[Node] = []
        self._listeners: Dict[str, List[Callable]] = {}

    def __repr__(self):
        return f"<{type(self).__name__} {self.node_name}>"

    # ---- tree navigation ----

    @property
    def shadow_root(self) -> Optional["ShadowRoot"]:
        return None

    @property
    def parent_element(self) -> Optional["Element"]:
        if self.parent is not None and self.parent.node_type == ELEMENT_NODE:
            return self.parent
        return None

    @property
    def children(self) -> List["Element"]:
        return [child for child in self.child_nodes if child.node_type == ELEMENT_NODE]

    def get_root_node(self) -> "Node":
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def is_connected(self) -> bool:
        root = self.get_root_node()
        if root.node_type == DOCUMENT_NODE:
            return True
        host = getattr(root, "host", None)
        return host is not None and host.is_connected

    def contains(self, other: Optional["Node"]) -> bool:
        node = other
        while node is not None:
            if node is self:
                return True
            node = node.parent
        return False

    @property
    def text_content(self) -> str:
        return "".join(
            node.data for node in iter_tree(self, pierce=False) if node.node_type == TEXT_NODE
        )

    # ---- structural mutation ----

    def append_child(self, node: "Node") -> "Node":
        return self.insert_before(node, None)

    def insert_before(self, node: "Node", reference: Optional["Node"]) -> "Node":
        self._check_insertion(node)
        if reference is not None and reference.parent is not self:
            raise DOMException("reference node is not a child of this node", "NotFoundError")
        if node is reference:
            return node
        if node.parent is not None:
            node.parent.remove_child(node)
        index = len(self.child_nodes) if reference is None else self._index_of(reference)
        self.child_nodes.insert(index, node)
        node.parent = self
        if node.owner_document is None:
            node.owner_document = self._document()
        self._notify_child_list(added=[node], removed=[])
        return node

    def remove_child(self, node: "Node") -> "Node":
        if node.parent is not self:
            raise DOMException("node is not a child of this node", "NotFoundError")
        del self.child_nodes[self._index_of(node)]
        node.parent = None
        self._notify_child_list(added=[], removed=[node])
        return node

    def remove(self):
        if self.parent is not None:
            self.parent.remove_child(self)

    def _index_of(self, child: "Node") -> int:
        for index, node in enumerate(self.child_nodes):
            if node is child:
                return index
        raise DOMException("node is not a child of this node", "NotFoundError")

    def _check_insertion(self, node: "Node"):
        if self.node_type in (TEXT_NODE, COMMENT_NODE):
            raise DOMException(f"{self.node_name} cannot have children", "HierarchyRequestError")
        if node.node_type in (DOCUMENT_NODE, DOCUMENT_FRAGMENT_NODE):
            raise DOMException(f"{node.node_name} cannot be inserted", "HierarchyRequestError")
        if node.contains(self):
            raise DOMException("the new child is an ancestor of the parent", "HierarchyRequestError")

    def _document(self) -> Optional["Document"]:
        return self if self.node_type == DOCUMENT_NODE else self.owner_document

    def _notify_child_list(self, added: List["Node"], removed: List["Node"]):
        document = self._document()
        if document is None or not document._observers:
            return
        record = None
        for observer in list(document._observers):
            if observer._interested(self):
                if record is None:
                    record = MutationRecord("childList", self, list(added), list(removed))
                observer._enqueue(record)

    # ---- events ----

    def add_event_listener(self, type: str, listener: Callable):
        self._listeners.setdefault(type, []).append(listener)

    def remove_event_listener(self, type: str, listener: Callable):
        listeners = self._listeners.get(type, [])
        if listener in listeners:
            listeners.remove(listener)

    def dispatch_event(self, event: Event) -> bool:
        event.target = self
        path = [self]
        if event.bubbles:
            node = self._event_parent()
            while node is not None:
                path.append(node)
                node = node._event_parent()
        for node in path:
            if event._stopped:
                break
            event.current_target = node
            for listener in list(node._listeners.get(event.type, ())):
                node._invoke(listener, event)
        return not event.default_prevented

    def _event_parent(self) -> Optional["Node"]:
        return self.parent

    def _invoke(self, listener: Callable, event: Event):
        try:
            result = listener(event)
        except Exception:
            logger.exception(f"Uncaught error in '{event.type}' listener on {self!r}")
            return
        if asyncio.iscoroutine(result):
            document = self._document()
            if document is not None:
                document.schedule(result)
            else:
                result.close()


class Text(Node):
    node_type = TEXT_NODE
    node_name = "#text"

    def __init__(self, data: str, owner_document: Optional["Document"] = None):
        super().__init__(owner_document)
        self.data = data

    @property
    def text_content(self) -> str:
        return self.data


class Comment(Node):
    node_type = COMMENT_NODE
    node_name = "#comment"

    def __init__(self, data: str, owner_document: Optional["Document"] = None):
        super().__init__(owner_document)
        self.data = data

    @property
    def text_content(self) -> str:
        return self.data


class ShadowRoot(Node):
    node_type = DOCUMENT_FRAGMENT_NODE
    node_name = "#shadow-root"

    def __init__(self, host: "Element", mode: str = "open"):
        super().__init__(host.owner_document)
        self.host = host
        self.mode = mode

    def _event_parent(self) -> Optional[Node]:
        return self.host


class Element(Node):
    node_type = ELEMENT_NODE

    def __init__(self, tag_name: str, owner_document: Optional["Document"] = None,
                 attributes: Optional[Dict[str, str]] = None):
        super().__init__(owner_document)
        self.tag_name = tag_name.lower()
        self.attributes: Dict[str, str] = {}
        for name, value in (attributes or {}).items():
            self.attributes[name.lower()] = "" if value is None else str(value)
        self.layout: Optional[DOMRect] = None
        self.computed_style: Dict[str, str] = {}
        self._shadow_root: Optional[ShadowRoot] = None
        self._checked: Optional[bool] = None
        self._selected: Optional[bool] = None
        self._value: Optional[str] = None

    @property
    def node_name(self) -> str:
        return self.tag_name.upper()

    def __repr__(self):
        ident = f"#{self.id}" if self.id else ""
        return f"<Element {self.tag_name}{ident}>"

    # ---- shadow content ----

    @property
    def shadow_root(self) -> Optional[ShadowRoot]:
        return self._shadow_root

    def attach_shadow(self, mode: str = "open") -> ShadowRoot:
        if self._shadow_root is not None:
            raise DOMException(f"{self.tag_name} already hosts a shadow root", "NotSupportedError")
        self._shadow_root = ShadowRoot(self, mode)
        return self._shadow_root

    # ---- attributes ----

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name.lower())

    def set_attribute(self, name: str, value) -> None:
        self.attributes[name.lower()] = str(value)

    def remove_attribute(self, name: str) -> None:
        self.attributes.pop(name.lower(), None)

    def has_attribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    def get_attribute_names(self) -> List[str]:
        return list(self.attributes)

    def _attr(self, name: str) -> str:
        return self.attributes.get(name, "")

    def _int_attr(self, name: str, default: int) -> int:
        raw = self.attributes.get(name, "").strip()
        try:
            return int(raw)
        except ValueError:
            return default

    @property
    def id(self) -> str:
        return self._attr("id")

    @property
    def class_name(self) -> str:
        return self._attr("class")

    @property
    def class_list(self) -> Tuple[str, ...]:
        return tuple(self.class_name.split())

    @property
    def name(self) -> str:
        return self._attr("name")

    @property
    def title(self) -> str:
        return self._attr("title")

    @property
    def placeholder(self) -> str:
        return self._attr("placeholder")

    @property
    def target(self) -> str:
        return self._attr("target")

    @property
    def type(self) -> str:
        raw = self._attr("type").lower()
        if self.tag_name == "button":
            return raw if raw in ("submit", "reset", "button") else "submit"
        if self.tag_name == "input":
            return raw or "text"
        return raw

    @property
    def disabled(self) -> bool:
        return self.has_attribute("disabled")

    @property
    def required(self) -> bool:
        return self.has_attribute("required")

    @property
    def read_only(self) -> bool:
        return self.has_attribute("readonly")

    @property
    def multiple(self) -> bool:
        return self.has_attribute("multiple")

    @property
    def open(self) -> bool:
        return self.has_attribute("open")

    @open.setter
    def open(self, value: bool):
        if value:
            self.set_attribute("open", "")
        else:
            self.remove_attribute("open")

    @property
    def size(self) -> int:
        return max(self._int_attr("size", 0), 0)

    @size.setter
    def size(self, value: int):
        self.set_attribute("size", int(value))

    @property
    def href(self) -> str:
        if self.tag_name not in ("a", "area", "link") or not self.has_attribute("href"):
            return ""
        document = self.owner_document
        base = document.url if document is not None else ""
        return urljoin(base, self._attr("href").strip())

    @property
    def tab_index(self) -> int:
        if self.has_attribute("tabindex"):
            return self._int_attr("tabindex", -1)
        if self.tag_name in FOCUSABLE_TAGS:
            return 0
        if self.tag_name in ("a", "area") and self.has_attribute("href"):
            return 0
        if self._attr("contenteditable").lower() in ("", "true") and self.has_attribute("contenteditable"):
            return 0
        return -1

    # ---- input constraints ----

    @property
    def min(self) -> str:
        return self._attr("min")

    @property
    def max(self) -> str:
        return self._attr("max")

    @property
    def step(self) -> str:
        return self._attr("step")

    @property
    def pattern(self) -> str:
        return self._attr("pattern")

    @property
    def autocomplete(self) -> str:
        return self._attr("autocomplete")

    @property
    def max_length(self) -> int:
        return self._int_attr("maxlength", -1)

    @property
    def min_length(self) -> int:
        return self._int_attr("minlength", -1)

    @property
    def rows(self) -> int:
        return self._int_attr("rows", 2)

    @property
    def cols(self) -> int:
        return self._int_attr("cols", 20)

    @property
    def wrap(self) -> str:
        return self._attr("wrap")

    # ---- form control state ----

    @property
    def checked(self) -> bool:
        if self._checked is None:
            return self.has_attribute("checked")
        return self._checked

    @checked.setter
    def checked(self, value: bool):
        self._checked = bool(value)
        if self._checked and self._attr("type").lower() == "radio":
            for other in self.radio_group():
                if other is not self:
                    other._checked = False

    def radio_group(self) -> List["Element"]:
        if self.tag_name != "input" or self._attr("type").lower() != "radio" or not self.name:
            return [self]
        form = self.closest("form")
        scope = form if form is not None else self.get_root_node()
        return [
            el for el in iter_elements(scope, pierce=False)
            if el.tag_name == "input"
            and el._attr("type").lower() == "radio"
            and el.name == self.name
            and el.closest("form") is form
        ]

    @property
    def value(self) -> Optional[str]:
        tag = self.tag_name
        if tag == "input":
            if self._value is not None:
                return self._value
            if self.has_attribute("value"):
                return self._attr("value")
            return "on" if self.type in ("checkbox", "radio") else ""
        if tag == "textarea":
            return self._value if self._value is not None else self.text_content
        if tag == "select":
            options = self.options
            for option in options:
                if option.selected:
                    return option.value
            return options[0].value if options and not self.multiple else ""
        if tag == "option":
            return self._attr("value") if self.has_attribute("value") else self.text
        if tag == "button":
            return self._attr("value")
        return None

    @value.setter
    def value(self, value):
        if self.tag_name == "select":
            for option in self.options:
                option._selected = option.value == value
            return
        self._value = "" if value is None else str(value)

    @property
    def options(self) -> List["Element"]:
        if self.tag_name != "select":
            return []
        return [el for el in iter_elements(self, pierce=False) if el.tag_name == "option"]

    @property
    def selected(self) -> bool:
        if self._selected is None:
            return self.has_attribute("selected")
        return self._selected

    @selected.setter
    def selected(self, value: bool):
        self._selected = bool(value)
        select = self.closest("select")
        if self._selected and select is not None and not select.multiple:
            for option in select.options:
                if option is not self:
                    option._selected = False

    @property
    def text(self) -> str:
        return _WHITESPACE.sub(" ", self.text_content).strip()

    # ---- forms ----

    @property
    def action(self) -> str:
        document = self.owner_document
        base = document.url if document is not None else ""
        return urljoin(base, self._attr("action").strip()) if self.has_attribute("action") else base

    @property
    def method(self) -> str:
        method = self._attr("method").lower()
        return method if method in ("get", "post", "dialog") else "get"

    @property
    def enctype(self) -> str:
        enctype = self._attr("enctype").lower()
        if enctype in ("multipart/form-data", "text/plain"):
            return enctype
        return "application/x-www-form-urlencoded"

    @property
    def labels(self) -> List["Element"]:
        if self.tag_name not in LABELABLE_TAGS:
            return []
        if self.tag_name == "input" and self.type == "hidden":
            return []
        found: List[Element] = []
        if self.id:
            for el in iter_elements(self.get_root_node(), pierce=False):
                if el.tag_name == "label" and el.get_attribute("for") == self.id:
                    found.append(el)
        ancestor = self.parent_element
        while ancestor is not None:
            if ancestor.tag_name == "label" and not ancestor.has_attribute("for") and ancestor not in found:
                found.append(ancestor)
            ancestor = ancestor.parent_element
        return found

    def closest(self, selector: Union[str, Callable[["Element"], bool]]) -> Optional["Element"]:
        if isinstance(selector, str):
            tag = selector.lower()
            match = lambda el: el.tag_name == tag
        else:
            match = selector
        node: Optional[Element] = self
        while node is not None:
            if match(node):
                return node
            node = node.parent_element
        return None

    # ---- rendering ----

    @property
    def inner_text(self) -> str:
        parts: List[str] = []
        stack = list(reversed(self.child_nodes))
        while stack:
            child = stack.pop()
            if child.node_type == TEXT_NODE:
                parts.append(child.data)
            elif child.node_type == ELEMENT_NODE and child.tag_name not in TEXT_SKIP_TAGS:
                if child.tag_name == "br":
                    parts.append("\n")
                stack.extend(reversed(child.child_nodes))
        return _WHITESPACE.sub(" ", "".join(parts)).strip()

    def get_bounding_client_rect(self) -> DOMRect:
        return self.layout if self.layout is not None else DOMRect()

    def is_rendered(self) -> bool:
        document = self.owner_document
        node: Optional[Node] = self
        while node is not None:
            if node.node_type == ELEMENT_NODE and document is not None:
                if document.get_computed_style(node)["display"] == "none":
                    return False
            node = node._event_parent()
        return self.is_connected

    # ---- activation ----

    def focus(self):
        document = self.owner_document
        if document is None or not self.is_connected:
            return
        document.active_element = self
        self.dispatch_event(Event("focus"))

    def click(self):
        if self.disabled and self.tag_name in ("button", "input", "select", "textarea"):
            return
        toggles = self.tag_name == "input" and self.type in ("checkbox", "radio")
        previous = self.checked
        if toggles:
            self.checked = True if self.type == "radio" else not previous
        if not self.dispatch_event(MouseEvent("click", bubbles=True)):
            if toggles:
                self.checked = previous
            return
        if toggles:
            if self.checked != previous:
                self.dispatch_event(Event("input", bubbles=True))
                self.dispatch_event(Event("change", bubbles=True))
        elif self.tag_name == "summary":
            details = self.parent_element
            if details is not None and details.tag_name == "details":
                details.open = not details.open
        elif self.tag_name == "a" and self.has_attribute("href"):
            if self.owner_document is not None:
                self.owner_document.navigate(self.href)


class Document(Node):
    node_type = DOCUMENT_NODE
    node_name = "#document"

    def __init__(self, url: str = "about:blank", title: str = "", user_agent: str = "",
                 viewport: Tuple[int, int] = (1280, 720)):
        super().__init__(None)
        self.url = url
        self.user_agent = user_agent
        self.viewport = viewport
        self.active_element: Optional[Element] = None
        self.navigations: List[str] = []
        self._title = title
        self._observers: List[MutationObserver] = []
        self._tasks = set()

    def create_element(self, tag_name: str, attributes: Optional[Dict[str, str]] = None) -> Element:
        return Element(tag_name, self, attributes)

    def create_text_node(self, data: str) -> Text:
        return Text(data, self)

    def create_comment(self, data: str) -> Comment:
        return Comment(data, self)

    @property
    def document_element(self) -> Optional[Element]:
        children = self.children
        return children[0] if children else None

    def _section(self, tag: str) -> Optional[Element]:
        root = self.document_element
        if root is None:
            return None
        for child in root.children:
            if child.tag_name == tag:
                return child
        return None

    @property
    def head(self) -> Optional[Element]:
        return self._section("head")

    @property
    def body(self) -> Optional[Element]:
        return self._section("body")

    @property
    def title(self) -> str:
        if self._title:
            return self._title
        for el in iter_elements(self, pierce=False):
            if el.tag_name == "title":
                return el.text
        return ""

    @title.setter
    def title(self, value: str):
        self._title = value

    def get_element_by_id(self, element_id: str) -> Optional[Element]:
        for el in iter_elements(self, pierce=False):
            if el.id == element_id:
                return el
        return None

    def navigate(self, url: str):
        self.navigations.append(url)
        if urldefrag(url)[0] == urldefrag(self.url)[0]:
            self.url = url
        logger.debug(f"Navigation requested: {url}")

    def schedule(self, coro):
        """Run a page-script coroutine on the current loop."""
        try:
            task = asyncio.ensure_future(coro)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, page script dropped")
            return None
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def get_computed_style(self, el: Element) -> Dict[str, str]:
        style = dict(DEFAULT_STYLE)
        style["display"] = _default_display(el)
        style.update(parse_inline_style(el.get_attribute("style")))
        # values read from a rendered page already account for stylesheets and inline style
        style.update(el.computed_style)
        return style


def parse_inline_style(text: Optional[str]) -> Dict[str, str]:
    style: Dict[str, str] = {}
    for declaration in (text or "").split(";"):
        prop, sep, value = declaration.partition(":")
        if not sep or not prop.strip():
            continue
        value = value.replace("!important", "").strip()
        style[prop.strip().lower()] = value
    return style


def _default_display(el: Element) -> str:
    if el.tag_name in NON_RENDERED_TAGS or el.has_attribute("hidden"):
        return "none"
    parent = el.parent_element
    if parent is not None and parent.tag_name == "details" and not parent.open:
        summary = next((child for child in parent.children if child.tag_name == "summary"), None)
        if el is not summary:
            return "none"
    if el.tag_name in INLINE_TAGS:
        return "inline"
    if el.tag_name in INLINE_BLOCK_TAGS:
        return "inline-block"
    if el.tag_name == "li":
        return "list-item"
    return "block"


def iter_tree(root: Node, pierce: bool = True) -> Iterator[Node]:
    """Pre-order walk: the node, its shadow content, then its children."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.child_nodes))
        if pierce and node.shadow_root is not None:
            stack.append(node.shadow_root)


def iter_elements(root: Node, pierce: bool = True) -> Iterator[Element]:
    for node in iter_tree(root, pierce):
        if node.node_type == ELEMENT_NODE:
            yield node
