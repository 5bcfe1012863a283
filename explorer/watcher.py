# watcher.py
from typing import List, Optional

from .constants import logger
from .dom import ELEMENT_NODE, MutationObserver, MutationRecord, Node
from .models import ExplorationContext
from .scanner import Scanner
from .scheduler import Scheduler
from .triggers import find_triggers


class ChangeWatcher:
    """
    Scans subtrees inserted while the scheduler drains its queue and feeds
    their triggers back into it.
    """

    def __init__(self, context: ExplorationContext, scanner: Scanner, scheduler: Scheduler):
        self.context = context
        self.scanner = scanner
        self.scheduler = scheduler
        self._observer: Optional[MutationObserver] = None

    @property
    def active(self) -> bool:
        return self._observer is not None

    def start(self):
        if self._observer is not None:
            return
        self._observer = MutationObserver(self._on_mutations)
        self._observer.observe(self.context.document, subtree=True, pierce=True)
        self.scheduler.before_check = self.flush
        logger.debug("Watching document for inserted nodes")

    def stop(self):
        if self._observer is None:
            return
        self._observer.disconnect()
        self._observer = None
        self.scheduler.before_check = None
        logger.debug("Stopped watching document")

    def flush(self):
        if self._observer is None:
            return
        records = self._observer.take_records()
        if records:
            self._on_mutations(records, self._observer)

    def _on_mutations(self, records: List[MutationRecord], observer: MutationObserver):
        if observer is not self._observer:
            return
        try:
            for record in records:
                for node in record.added_nodes:
                    if node.node_type == ELEMENT_NODE:
                        self.handle_inserted(node)
        except Exception as e:
            self.context.add_error(e)

    def handle_inserted(self, node: Node) -> int:
        self.scanner.scan(node)
        queued = 0
        for el in find_triggers(node):
            if self.scheduler.enqueue(el):
                queued += 1
        if queued:
            logger.debug(f"Queued {queued} triggers from inserted {node!r}")
        return queued
