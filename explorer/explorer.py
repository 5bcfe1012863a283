# explorer.py
import logging
import time
from typing import Any, Callable, Optional

from .constants import logger
from .dom import Document, Element, iter_elements
from .extractors import extract_details, resolve_form_context, resolve_label
from .interactor import Interactor
from .models import ElementDetails, ExplorationContext, ExplorationReport, ExplorerConfig, FormContext
from .report import build_report, summarize
from .scanner import Scanner
from .scheduler import Scheduler
from .watcher import ChangeWatcher


class DomExplorer:
    """
    One exploration run over a live document.

    normalise -> scan body -> seed triggers -> watch + drain -> report

    ``driver`` performs the page operations; by default they are applied to
    the in-memory document, a LivePage applies them in the browser.
    """

    def __init__(
        self,
        document: Document,
        config: Optional[ExplorerConfig] = None,
        extract: Callable[[Element], ElementDetails] = extract_details,
        label: Callable[[Element], Optional[str]] = resolve_label,
        form_context: Callable[[Element], Optional[FormContext]] = resolve_form_context,
        driver: Optional[Any] = None,
    ):
        self.document = document
        self.config = config or ExplorerConfig()
        self.context = ExplorationContext(document=document, config=self.config)
        if driver is not None:
            self.context.driver = driver
        self.scanner = Scanner(self.context, extract=extract, label=label, form_context=form_context)
        self.interactor = Interactor(self.context)
        self.scheduler = Scheduler(self.context, self.interactor)
        self.watcher = ChangeWatcher(self.context, self.scanner, self.scheduler)

    async def normalize(self):
        """Open closed disclosure widgets and unhide hidden elements."""
        driver = self.context.driver
        try:
            for el in list(iter_elements(self.document)):
                if el.tag_name == "details" and not el.open:
                    await driver.set_property(el, "open", True)
                    logger.debug("Opened details element")
                if el.has_attribute("hidden"):
                    await driver.remove_attribute(el, "hidden")
                    logger.debug(f"Revealed hidden element {el.tag_name}")
            await driver.settle()
            await driver.refresh(self.document)
        except Exception as e:
            self.context.add_error(e)

    async def run(self) -> ExplorationReport:
        package_logger = logging.getLogger("explorer")
        previous_level = package_logger.level
        if self.config.debug:
            package_logger.setLevel(logging.DEBUG)
        try:
            return await self._run()
        finally:
            package_logger.setLevel(previous_level)

    async def _run(self) -> ExplorationReport:
        context = self.context
        context.started_at = time.perf_counter()
        logger.debug("Starting DOM collection")

        await self.normalize()
        self.scanner.scan(self.document.body or self.document.document_element)
        self.scheduler.seed(self.document)
        logger.debug(f"Initial scan complete. Found {len(context.results)} elements, {len(context.queue)} triggers")

        self.watcher.start()
        try:
            await self.scheduler.drain()
        finally:
            self.watcher.stop()
            await self.interactor.shutdown()

        report = build_report(context)
        for line in summarize(report):
            logger.info(line)
        return report


async def explore(document: Document, config: Optional[ExplorerConfig] = None, **collaborators) -> ExplorationReport:
    return await DomExplorer(document, config, **collaborators).run()
