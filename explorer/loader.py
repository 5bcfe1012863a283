# loader.py
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup
from bs4.element import Comment as SoupComment, NavigableString, PreformattedString, Tag

from .constants import logger
from .dom import Document, Element, Node

HEAD_TAGS = frozenset({"base", "link", "meta", "style", "title"})


def _attributes(tag: Tag) -> Dict[str, str]:
    attrs = {}
    for name, value in tag.attrs.items():
        if isinstance(value, list):
            value = " ".join(value)
        attrs[name] = "" if value is None else value
    return attrs


def _build_node(document: Document, parent: Node, child) -> Optional[Node]:
    """Append one parsed node to ``parent`` and return the container for its children, if any."""
    if isinstance(child, SoupComment):
        parent.append_child(document.create_comment(str(child)))
    elif isinstance(child, PreformattedString):
        return None
    elif isinstance(child, NavigableString):
        parent.append_child(document.create_text_node(str(child)))
    elif isinstance(child, Tag):
        mode = child.get("shadowrootmode")
        if (child.name == "template" and mode and isinstance(parent, Element)
                and parent.shadow_root is None):
            return parent.attach_shadow(mode=str(mode).lower())
        element = document.create_element(child.name, _attributes(child))
        parent.append_child(element)
        return element
    return None


def _build(document: Document, parent: Node, sources: Iterable):
    # explicit stack, documents can nest deeper than the recursion limit
    stack = [(parent, child) for child in reversed(list(sources))]
    while stack:
        container, child = stack.pop()
        node = _build_node(document, container, child)
        if node is not None:
            stack.extend((node, grandchild) for grandchild in reversed(list(child.children)))


def parse_html(html: str, url: str = "about:blank", title: Optional[str] = None,
               user_agent: str = "", viewport: Tuple[int, int] = (1280, 720)) -> Document:
    soup = BeautifulSoup(html, "html.parser")
    document = Document(url=url, user_agent=user_agent, viewport=viewport)

    source_html = soup.find("html")
    root = document.create_element("html", _attributes(source_html) if source_html else None)
    head = document.create_element("head")
    body = document.create_element("body")
    document.append_child(root)
    root.append_child(head)
    root.append_child(body)

    # html.parser keeps the markup as written, so scaffolding is rebuilt here
    seen_body = False
    container = source_html if source_html is not None else soup
    for child in container.children:
        if isinstance(child, Tag) and child.name == "head":
            _build(document, head, child.children)
        elif isinstance(child, Tag) and child.name == "body":
            seen_body = True
            body.attributes.update(_attributes(child))
            _build(document, body, child.children)
        elif isinstance(child, Tag) and child.name in HEAD_TAGS and not seen_body:
            _build(document, head, [child])
        elif isinstance(child, NavigableString) and not isinstance(child, SoupComment) and not child.strip():
            continue
        else:
            _build(document, body, [child])

    if title is not None:
        document.title = title
    logger.debug(f"Parsed document {url}")
    return document


def parse_fragment(document: Document, html: str) -> List[Node]:
    """Parse markup into detached nodes owned by ``document``."""
    soup = BeautifulSoup(html, "html.parser")
    holder = document.create_element("template")
    _build(document, holder, soup.children)
    nodes = list(holder.child_nodes)
    for node in nodes:
        holder.remove_child(node)
    return nodes


def load_document(path: Union[str, Path]) -> Document:
    path = Path(path)
    html = path.read_text(encoding="utf-8")
    return parse_html(html, url=path.resolve().as_uri())
