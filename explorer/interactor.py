# interactor.py
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlsplit

from .constants import logger, MIN_SELECT_SIZE, SAMPLE_VALUE, TEXT_INPUT_TYPES
from .dom import Element
from .models import ExplorationContext
from .paths import element_path


class Action(Enum):
    DISCLOSURE_SUMMARY = "disclosure_summary"
    DISCLOSURE = "disclosure"
    SELECT = "select"
    ANCHOR = "anchor"
    TOGGLE = "toggle"
    TEXT_INPUT = "text_input"
    BUTTON = "button"
    GENERIC = "generic"


def classify(el: Element) -> Action:
    tag = el.tag_name
    type_ = (el.get_attribute("type") or "").lower()
    parent = el.parent_element

    if tag == "summary" and parent is not None and parent.tag_name == "details":
        return Action.DISCLOSURE_SUMMARY
    if tag == "details":
        return Action.DISCLOSURE
    if tag == "select":
        return Action.SELECT
    if tag == "a":
        return Action.ANCHOR
    if tag == "input" and type_ in ("checkbox", "radio"):
        return Action.TOGGLE
    if tag == "input" and type_ in TEXT_INPUT_TYPES:
        return Action.TEXT_INPUT
    if tag == "button" and el.type != "submit":
        return Action.BUTTON
    return Action.GENERIC


DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443}


def _origin(parts) -> Tuple[str, str, Optional[int]]:
    scheme = parts.scheme.lower()
    return scheme, (parts.hostname or "").lower(), parts.port or DEFAULT_PORTS.get(scheme)


class Interactor:
    """
    Performs the least invasive action that reveals a trigger's hidden state.

    Checkbox, radio and text input changes are reverted by deferred
    restorations scheduled one settle interval later. Every call ends with the
    settle wait, so page handlers can render before the next trigger.
    """

    def __init__(self, context: ExplorationContext):
        self.context = context
        self._handlers = {
            Action.DISCLOSURE_SUMMARY: self._open_summary,
            Action.DISCLOSURE: self._open_details,
            Action.SELECT: self._expand_select,
            Action.ANCHOR: self._follow_anchor,
            Action.TOGGLE: self._toggle,
            Action.TEXT_INPUT: self._fill_text,
            Action.BUTTON: self._press_button,
            Action.GENERIC: self._nudge_generic,
        }

    @property
    def driver(self):
        return self.context.driver

    @property
    def settle_seconds(self) -> float:
        return self.context.config.settle_seconds

    async def act(self, el: Element) -> None:
        if not el.is_connected:
            logger.debug(f"Skipping disconnected trigger {el!r}")
        else:
            try:
                action = classify(el)
                logger.debug(f"Acting on {el.tag_name} element ({action.value}) {element_path(el)}")
                await self._handlers[action](el)
            except Exception as e:
                self.context.add_error(e, el)

        await asyncio.sleep(self.settle_seconds)
        try:
            await self.driver.settle()
        except Exception as e:
            self.context.add_error(e)

    async def shutdown(self) -> None:
        """Drop restorations that have not started and wait for the running ones."""
        pending = list(self.context.deferred)
        self.context.deferred.clear()
        running = []
        for item in pending:
            if isinstance(item, asyncio.Future):
                running.append(item)
            else:
                item.cancel()
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        logger.debug(f"Cancelled {len(pending) - len(running)} pending restorations")

    # ---- actions ----

    async def _open_summary(self, el: Element):
        await self.driver.set_property(el.parent_element, "open", True)

    async def _open_details(self, el: Element):
        await self.driver.set_property(el, "open", True)

    async def _expand_select(self, el: Element):
        await self.driver.set_property(el, "size", max(len(el.options), MIN_SELECT_SIZE))
        await self.driver.focus(el)

    async def _follow_anchor(self, el: Element):
        document = el.owner_document
        try:
            target = urlsplit(el.href or document.url)
            current = urlsplit(document.url)
            same_page = _origin(target) == _origin(current) and target.path == current.path
        except ValueError:
            logger.debug(f"Invalid URL for link: {el.get_attribute('href')}")
            return
        # Only same-document links are clicked, anything else would navigate away
        if same_page:
            await self.driver.click(el)
        else:
            logger.debug(f"Not following {target.geturl()}")

    async def _toggle(self, el: Element):
        driver = self.driver
        snapshot = [(node, await driver.get_property(node, "checked")) for node in el.radio_group()]
        checked = await driver.get_property(el, "checked")
        await driver.set_property(el, "checked", not checked)
        await driver.dispatch(el, "change")
        self._defer(self._restore_checked, el, snapshot)

    async def _fill_text(self, el: Element):
        driver = self.driver
        await driver.focus(el)
        original = await driver.get_property(el, "value")
        await driver.set_property(el, "value", SAMPLE_VALUE)
        await driver.dispatch(el, "input")
        await driver.dispatch(el, "change")
        self._defer(self._restore_value, el, el, original)

    async def _press_button(self, el: Element):
        await self.driver.dispatch(el, "mousedown", mouse=True)
        await self.driver.dispatch(el, "click", mouse=True)

    async def _nudge_generic(self, el: Element):
        await self.driver.dispatch(el, "mousedown", mouse=True)
        await self.driver.dispatch(el, "focus")

    # ---- deferred restorations ----

    def _defer(self, restore: Callable[..., Awaitable[None]], el: Element, *args: Any):
        loop = asyncio.get_running_loop()
        deferred = self.context.deferred
        handle: Optional[asyncio.TimerHandle] = None

        def start():
            deferred.discard(handle)
            task = loop.create_task(self._run_restoration(restore, el, args))
            deferred.add(task)
            task.add_done_callback(deferred.discard)

        handle = loop.call_later(self.settle_seconds, start)
        deferred.add(handle)

    async def _run_restoration(self, restore: Callable[..., Awaitable[None]], el: Element, args: Tuple):
        try:
            await restore(*args)
        except Exception as e:
            self.context.add_error(e, el)

    async def _restore_checked(self, snapshot: List[Tuple[Element, bool]]):
        # unchecked first, so restoring a checked radio does not clear its group again
        for node, checked in sorted(snapshot, key=lambda item: item[1]):
            if node.is_connected:
                await self.driver.set_property(node, "checked", checked)

    async def _restore_value(self, el: Element, original: str):
        if el.is_connected:
            await self.driver.set_property(el, "value", original)
