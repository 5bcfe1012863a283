# driver.py
"""
Primitive page operations used by the interactor and the normaliser.

DocumentDriver applies them to the in-memory document directly. The live
page (see live.py) implements the same coroutines by evaluating them in the
browser, where page scripts and layout run.
"""
import asyncio
from typing import Any

from .dom import Document, Element, Event, MouseEvent


class DocumentDriver:
    async def focus(self, el: Element) -> None:
        el.focus()

    async def click(self, el: Element) -> None:
        el.click()

    async def dispatch(self, el: Element, type: str, mouse: bool = False) -> None:
        event = MouseEvent(type, bubbles=True) if mouse else Event(type, bubbles=True)
        el.dispatch_event(event)

    async def get_property(self, el: Element, name: str) -> Any:
        return getattr(el, name)

    async def set_property(self, el: Element, name: str, value: Any) -> None:
        setattr(el, name, value)

    async def remove_attribute(self, el: Element, name: str) -> None:
        el.remove_attribute(name)

    async def settle(self) -> None:
        # one loop turn, so restorations due at the same instant run first
        await asyncio.sleep(0)

    async def refresh(self, document: Document) -> None:
        """Nothing to re-measure, the in-memory model has no layout engine."""
