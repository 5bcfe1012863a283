# paths.py
import re
from typing import List, Optional

from .dom import ELEMENT_NODE, Element, Node

_CSS_SPECIAL = re.compile(r"([^a-zA-Z0-9_\-\u00a0-\U0010ffff])")


def css_escape(ident: str) -> str:
    if not ident:
        return ident
    escaped = _CSS_SPECIAL.sub(r"\\\1", ident)
    if escaped[0].isdigit():
        escaped = f"\\3{escaped[0]} {escaped[1:]}"
    elif escaped[0] == "-" and len(escaped) > 1 and escaped[1].isdigit():
        escaped = f"-\\3{escaped[1]} {escaped[2:]}"
    return escaped


def _segment(element: Element) -> str:
    selector = element.tag_name
    if element.id:
        return f"{selector}#{css_escape(element.id)}"
    classes = element.class_list
    if classes:
        selector += "." + ".".join(css_escape(c) for c in classes)
    parent = element.parent
    if parent is not None:
        siblings = [el for el in parent.children if el.tag_name == element.tag_name]
        if len(siblings) > 1:
            index = next(i for i, el in enumerate(siblings, 1) if el is element)
            selector += f":nth-of-type({index})"
    return selector


def element_path(node: Optional[Node]) -> str:
    """
    Human-readable structural locator for logs and error records.
    Two nodes can share a path after the tree changes, so this is never
    used as an identity.
    """
    if node is None:
        return "body"
    if node.node_type != ELEMENT_NODE:
        host = getattr(node, "host", None)
        if host is not None:
            return f"{element_path(host)} >> #shadow-root"
        return node.node_name
    document = node.owner_document
    if document is not None and node is document.body:
        return "body"

    path: List[str] = []
    current: Optional[Element] = node
    while current is not None:
        if document is not None and current in (document.body, document.document_element):
            break
        segment = _segment(current)
        path.insert(0, segment)
        if current.id:
            break
        current = current.parent_element

    joined = " > ".join(path) or "unknown"
    root = node.get_root_node()
    host = getattr(root, "host", None)
    if host is not None:
        return f"{element_path(host)} >> {joined}"
    return joined
