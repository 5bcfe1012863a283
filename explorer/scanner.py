# scanner.py
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from .constants import logger
from .dom import ELEMENT_NODE, Element, Node
from .extractors import extract_details, resolve_form_context, resolve_label
from .models import CapturedElement, ElementDetails, ExplorationContext, FormContext
from .paths import element_path


def _or_none(value):
    return value if value else None


class Scanner:
    def __init__(
        self,
        context: ExplorationContext,
        extract: Callable[[Element], ElementDetails] = extract_details,
        label: Callable[[Element], Optional[str]] = resolve_label,
        form_context: Callable[[Element], Optional[FormContext]] = resolve_form_context,
    ):
        self.context = context
        self.extract = extract
        self.label = label
        self.form_context = form_context

    def scan(self, root: Optional[Node]) -> None:
        """Capture ``root`` and everything below it: self, shadow content, then children."""
        if root is None:
            return
        stack = [root]
        while stack:
            node = stack.pop()
            try:
                if node.node_type == ELEMENT_NODE:
                    self.capture(node)
                stack.extend(child for child in reversed(node.child_nodes) if child.node_type == ELEMENT_NODE)
                if node.shadow_root is not None:
                    stack.append(node.shadow_root)
            except Exception as e:
                self.context.add_error(e, node)

    def capture(self, el: Element) -> Optional[CapturedElement]:
        registry = self.context.registry
        if registry.has_captured(el):
            return None
        registry.mark_captured(el)

        try:
            record = self._serialise(el)
        except Exception as e:
            self.context.add_error(e, el)
            return None

        self.context.results.append(record)
        logger.debug(f"Serialized {record.tag} element {record.path}")
        return record

    def _serialise(self, el: Element) -> CapturedElement:
        tag = el.tag_name
        type_ = (el.get_attribute("type") or "").lower()
        toggles = type_ in ("checkbox", "radio")

        return CapturedElement(
            tag=tag,
            type=type_ or None,
            id=_or_none(el.id),
            name=_or_none(el.name),
            classes=el.class_list,
            label=self.label(el),
            inner_text=_or_none(el.inner_text),
            value=_or_none(el.value),
            placeholder=_or_none(el.placeholder),
            title=_or_none(el.title),
            required=el.required,
            disabled=el.disabled,
            readonly=el.read_only,
            checked=el.checked if toggles else None,
            selected=el.selected if tag == "option" else None,
            href=el.href if tag == "a" else None,
            target=_or_none(el.target) if tag == "a" else None,
            path=element_path(el),
            form_context=self.form_context(el),
            attributes={name: value for name, value in el.attributes.items()},
            details=self.extract(el),
            timestamp=datetime.now().isoformat(),
            extras=self._extras(el),
        )

    def _extras(self, el: Element) -> Dict[str, Any]:
        tag = el.tag_name
        if tag == "select":
            return {
                "options": [
                    {
                        "index": index,
                        "value": option.value,
                        "text": option.text,
                        "selected": option.selected,
                        "disabled": option.disabled,
                    }
                    for index, option in enumerate(el.options)
                ],
                "multiple": el.multiple,
                "size": el.size,
            }
        if tag == "input":
            return {
                "min": _or_none(el.min),
                "max": _or_none(el.max),
                "step": _or_none(el.step),
                "pattern": _or_none(el.pattern),
                "max_length": el.max_length if el.max_length > 0 else None,
                "min_length": el.min_length if el.min_length > 0 else None,
                "autocomplete": _or_none(el.autocomplete),
            }
        if tag == "textarea":
            return {
                "rows": el.rows,
                "cols": el.cols,
                "max_length": el.max_length if el.max_length > 0 else None,
                "wrap": _or_none(el.wrap),
            }
        return {}
