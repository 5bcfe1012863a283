# extractors.py
"""
Default collaborators used by the scanner.

Each one reads a single element and has no side effects. Failures are left to
propagate so the scanner can record them against the element.
"""
from typing import Optional

from .dom import Element, iter_elements
from .models import ElementDetails, FormContext

STYLING_PROPERTIES = {
    "color": "color",
    "background_color": "background-color",
    "font_size": "font-size",
    "font_family": "font-family",
    "border": "border",
    "border_radius": "border-radius",
    "padding": "padding",
    "margin": "margin",
}


def _opacity(value: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 1.0


def extract_details(el: Element) -> ElementDetails:
    rect = el.get_bounding_client_rect()
    style = el.owner_document.get_computed_style(el)

    # Without host-provided layout the box is inferred from the rendering state
    if el.layout is not None:
        has_box = rect.width > 0 and rect.height > 0
    else:
        has_box = el.is_rendered()

    return ElementDetails(
        position={
            "x": round(rect.x),
            "y": round(rect.y),
            "width": round(rect.width),
            "height": round(rect.height),
            "top": round(rect.top),
            "left": round(rect.left),
            "right": round(rect.right),
            "bottom": round(rect.bottom),
        },
        visibility={
            "visible": has_box and style["visibility"] != "hidden" and style["display"] != "none",
            "display": style["display"],
            "visibility": style["visibility"],
            "opacity": _opacity(style["opacity"]),
            "z_index": style["z-index"],
        },
        styling={key: style[prop] for key, prop in STYLING_PROPERTIES.items()},
        accessibility={
            "tab_index": el.tab_index,
            "aria_label": el.get_attribute("aria-label"),
            "aria_role": el.get_attribute("role"),
            "aria_expanded": el.get_attribute("aria-expanded"),
            "aria_hidden": el.get_attribute("aria-hidden"),
            "aria_disabled": el.get_attribute("aria-disabled"),
        },
    )


def resolve_label(el: Element) -> Optional[str]:
    labels = el.labels
    if labels:
        return labels[0].inner_text

    aria = el.get_attribute("aria-label")
    if aria:
        return aria.strip()

    if el.id:
        for candidate in iter_elements(el.get_root_node(), pierce=False):
            if candidate.tag_name == "label" and candidate.get_attribute("for") == el.id:
                return candidate.inner_text

    placeholder = el.get_attribute("placeholder")
    if placeholder:
        return f"[Placeholder: {placeholder}]"

    body = el.owner_document.body if el.owner_document is not None else None
    parent = el.parent_element
    while parent is not None and parent is not body:
        if parent.tag_name == "label":
            return parent.inner_text
        parent = parent.parent_element

    return None


def resolve_form_context(el: Element) -> Optional[FormContext]:
    form = el.closest("form")
    if form is None:
        return None
    return FormContext(
        action=form.action or None,
        method=form.method or "get",
        enctype=form.enctype or None,
        id=form.id or None,
        name=form.name or None,
        autocomplete=(form.get_attribute("autocomplete") or "on").lower(),
    )
