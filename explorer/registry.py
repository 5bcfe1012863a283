# registry.py
import weakref

from .dom import Node


class VisitRegistry:
    """
    Identity-keyed membership for captured elements and acted-on triggers.

    Both sets hold weak references, so nodes dropped from the tree can be
    garbage collected. Membership only grows during a run.
    """

    def __init__(self):
        self._captured = weakref.WeakSet()
        self._done_triggers = weakref.WeakSet()

    def has_captured(self, node: Node) -> bool:
        return node in self._captured

    def mark_captured(self, node: Node) -> None:
        self._captured.add(node)

    def has_done_trigger(self, node: Node) -> bool:
        return node in self._done_triggers

    def mark_done_trigger(self, node: Node) -> None:
        self._done_triggers.add(node)

    @property
    def captured_count(self) -> int:
        return len(self._captured)

    @property
    def done_trigger_count(self) -> int:
        return len(self._done_triggers)
