# scheduler.py
from typing import Callable, Optional

from .constants import logger, PROGRESS_EVERY
from .dom import Element, Node
from .interactor import Interactor
from .models import ExplorationContext
from .triggers import find_triggers


class Scheduler:
    def __init__(self, context: ExplorationContext, interactor: Interactor):
        self.context = context
        self.interactor = interactor
        # called before every emptiness check so pending observer records land in the queue first
        self.before_check: Optional[Callable[[], None]] = None

    def enqueue(self, el: Element) -> bool:
        if self.context.registry.has_done_trigger(el) or not el.is_connected:
            return False
        self.context.queue.append(el)
        return True

    def seed(self, root: Node) -> int:
        added = 0
        try:
            for el in find_triggers(root):
                if self.enqueue(el):
                    added += 1
        except Exception as e:
            self.context.add_error(e)
        self.context.initial_triggers += added
        return added

    def _has_work(self) -> bool:
        if self.before_check is not None:
            self.before_check()
        return bool(self.context.queue)

    async def drain(self) -> int:
        context = self.context
        registry = context.registry
        limit = context.config.max_iterations

        while context.iterations < limit and self._has_work():
            trigger = context.queue.popleft()

            if not trigger.is_connected or registry.has_done_trigger(trigger):
                context.iterations += 1
                continue

            registry.mark_done_trigger(trigger)
            await self.interactor.act(trigger)
            context.iterations += 1

            if context.iterations % PROGRESS_EVERY == 0:
                logger.debug(f"Progress: {context.iterations} interactions completed, {len(context.queue)} remaining")

        if context.queue and context.iterations >= limit:
            logger.warning(f"Reached max iterations limit {limit}, {len(context.queue)} triggers left in queue")
        return context.iterations
