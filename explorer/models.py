# models.py
import time
import traceback
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Deque, Dict, List, Mapping, Optional, Set, Tuple

from .constants import logger, DEBUG_MODE, MAX_ITERATIONS, WAIT_MS
from .dom import Document, Element, Node
from .driver import DocumentDriver
from .paths import element_path
from .registry import VisitRegistry


def _freeze(value):
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return _freeze(mapping or {})


def _plain(value):
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


@dataclass(frozen=True)
class FormContext:
    action: Optional[str] = None
    method: str = "get"
    enctype: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    autocomplete: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class ElementDetails:
    position: Mapping[str, int]
    visibility: Mapping[str, Any]
    styling: Mapping[str, str]
    accessibility: Mapping[str, Any]

    def __post_init__(self):
        for name in ("position", "visibility", "styling", "accessibility"):
            object.__setattr__(self, name, _frozen(getattr(self, name)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": _plain(self.position),
            "visibility": _plain(self.visibility),
            "styling": _plain(self.styling),
            "accessibility": _plain(self.accessibility),
        }


@dataclass(frozen=True)
class CapturedElement:
    """Snapshot of one element at capture time. Never mutated afterwards."""
    tag: str
    type: Optional[str]
    id: Optional[str]
    name: Optional[str]
    classes: Tuple[str, ...]
    label: Optional[str]
    inner_text: Optional[str]
    value: Optional[str]
    placeholder: Optional[str]
    title: Optional[str]
    required: bool
    disabled: bool
    readonly: bool
    checked: Optional[bool]
    selected: Optional[bool]
    href: Optional[str]
    target: Optional[str]
    path: str
    form_context: Optional[FormContext]
    attributes: Mapping[str, str]
    details: ElementDetails
    timestamp: str
    extras: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "classes", tuple(self.classes))
        object.__setattr__(self, "attributes", _frozen(self.attributes))
        object.__setattr__(self, "extras", _frozen(self.extras))

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "tag": self.tag,
            "type": self.type,
            "id": self.id,
            "name": self.name,
            "classes": list(self.classes),
            "label": self.label,
            "inner_text": self.inner_text,
            "value": self.value,
            "placeholder": self.placeholder,
            "title": self.title,
            "required": self.required,
            "disabled": self.disabled,
            "readonly": self.readonly,
            "checked": self.checked,
            "selected": self.selected,
            "href": self.href,
            "target": self.target,
            "path": self.path,
            "form_context": self.form_context.to_dict() if self.form_context else None,
            "attributes": dict(self.attributes),
            "details": self.details.to_dict(),
            "timestamp": self.timestamp,
        }
        data.update(_plain(self.extras))
        return data


@dataclass
class ErrorRecord:
    timestamp: str
    error: str
    element: Optional[str] = None
    stack: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class ExplorerConfig:
    max_iterations: int = MAX_ITERATIONS
    wait_ms: int = WAIT_MS
    debug: bool = DEBUG_MODE

    def __post_init__(self):
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, int) \
                or self.max_iterations < 1:
            raise ValueError(f"max_iterations must be a positive integer, got {self.max_iterations!r}")
        if isinstance(self.wait_ms, bool) or not isinstance(self.wait_ms, (int, float)) or self.wait_ms < 0:
            raise ValueError(f"wait_ms must be a non-negative number, got {self.wait_ms!r}")
        self.debug = bool(self.debug)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "ExplorerConfig":
        mapping = mapping or {}
        aliases = {"maxIterations": "max_iterations", "waitMs": "wait_ms", "debugMode": "debug"}
        values = {}
        for key, value in mapping.items():
            key = aliases.get(key, key)
            if key not in ("max_iterations", "wait_ms", "debug"):
                raise ValueError(f"Unknown configuration key: {key}")
            if value is not None:
                values[key] = value
        return cls(**values)

    @property
    def settle_seconds(self) -> float:
        return self.wait_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return {"max_iterations": self.max_iterations, "wait_ms": self.wait_ms, "debug": self.debug}


@dataclass
class ExplorationContext:
    """All mutable state of one run, shared by every component."""
    document: Document
    config: ExplorerConfig = field(default_factory=ExplorerConfig)
    registry: VisitRegistry = field(default_factory=VisitRegistry)
    queue: Deque[Element] = field(default_factory=deque)
    results: List[CapturedElement] = field(default_factory=list)
    errors: List[ErrorRecord] = field(default_factory=list)
    driver: Any = field(default_factory=DocumentDriver)
    # pending restoration timers and the tasks they started
    deferred: Set[Any] = field(default_factory=set)
    iterations: int = 0
    initial_triggers: int = 0
    started_at: float = field(default_factory=time.perf_counter)

    def add_error(self, error: BaseException, node: Optional[Node] = None) -> ErrorRecord:
        try:
            path = element_path(node) if node is not None else None
        except Exception:
            path = "unknown"
        record = ErrorRecord(
            timestamp=datetime.now().isoformat(),
            error=f"{type(error).__name__}: {error}",
            element=path,
            stack="".join(traceback.format_exception(type(error), error, error.__traceback__)) or None,
        )
        self.errors.append(record)
        logger.debug(f"Error: {error} ({path})")
        return record

    @property
    def elapsed_ms(self) -> int:
        return round((time.perf_counter() - self.started_at) * 1000)


@dataclass
class ExplorationReport:
    metadata: Dict[str, Any]
    elements: List[CapturedElement]
    errors: List[ErrorRecord]
    statistics: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata,
            "elements": [element.to_dict() for element in self.elements],
            "errors": [error.to_dict() for error in self.errors],
            "statistics": self.statistics,
        }
