# triggers.py
from typing import Callable, List, Tuple

from .dom import Element, Node, iter_elements

TRIGGER_SELECTOR_VERSION = "1"

TRIGGER_ROLES = frozenset({"button", "link", "menuitem", "checkbox", "switch", "radio", "combobox"})


def _link(el: Element) -> bool:
    return el.tag_name == "a" and el.has_attribute("href") and not el.has_attribute("download")


def _button(el: Element) -> bool:
    return el.tag_name == "button"


def _summary(el: Element) -> bool:
    return el.tag_name == "summary"


def _input(el: Element) -> bool:
    return (el.tag_name == "input"
            and (el.get_attribute("type") or "").lower() != "hidden"
            and not el.disabled)


def _select(el: Element) -> bool:
    return el.tag_name == "select" and not el.disabled


def _textarea(el: Element) -> bool:
    return el.tag_name == "textarea" and not el.disabled


def _contenteditable(el: Element) -> bool:
    return el.get_attribute("contenteditable") == "true"


def _tabindex(el: Element) -> bool:
    return el.has_attribute("tabindex") and el.get_attribute("tabindex") != "-1"


def _haspopup(el: Element) -> bool:
    return el.has_attribute("aria-haspopup")


def _role(el: Element) -> bool:
    return bool(TRIGGER_ROLES.intersection((el.get_attribute("role") or "").split()))


# (selector, predicate) pairs; the selector text documents what each predicate matches
TRIGGER_SELECTORS: Tuple[Tuple[str, Callable[[Element], bool]], ...] = (
    ('a[href]:not([download])', _link),
    ('button', _button),
    ('summary', _summary),
    ('input:not([type="hidden" i]):not([disabled])', _input),
    ('select:not([disabled])', _select),
    ('textarea:not([disabled])', _textarea),
    ('[contenteditable="true"]', _contenteditable),
    ('[tabindex]:not([tabindex="-1"])', _tabindex),
    ('[aria-haspopup]', _haspopup),
    ('[role~="button"],[role~="link"],[role~="menuitem"],[role~="checkbox"],'
     '[role~="switch"],[role~="radio"],[role~="combobox"]', _role),
)


def is_trigger(el: Element) -> bool:
    return any(predicate(el) for _, predicate in TRIGGER_SELECTORS)


def find_triggers(root: Node) -> List[Element]:
    """Triggers under ``root`` (itself included) in tree order, shadow content included."""
    return [el for el in iter_elements(root) if is_trigger(el)]
