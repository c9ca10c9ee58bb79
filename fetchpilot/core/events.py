"""
Run lifecycle events

Each stage of a run has its own frozen event type with a statically known
payload; all share the run's correlation id. Sinks implement a single
emit(event) method and are treated as fire-and-forget by the engine.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, ClassVar, Dict, List, Optional, Protocol, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Event:
    stage: ClassVar[str] = ""

    run_id: str
    timestamp: float = field(default_factory=time.time, kw_only=True)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['stage'] = self.stage
        return data


@dataclass(frozen=True)
class RunStarted(_Event):
    stage: ClassVar[str] = "run_start"

    start_url: str
    goal: str
    max_total_pages: int
    provider: Optional[str] = None


@dataclass(frozen=True)
class PageFetched(_Event):
    stage: ClassVar[str] = "page_fetch"

    url: str
    final_url: str
    status: Optional[int]
    html_length: int
    mode: str


@dataclass(frozen=True)
class PageFailed(_Event):
    stage: ClassVar[str] = "page_failed"

    url: str
    reason: str
    error: Optional[str] = None


@dataclass(frozen=True)
class DecisionMade(_Event):
    stage: ClassVar[str] = "page_decision"

    url: str
    rationale: Optional[str]
    action_count: int
    fallback: bool
    duration_ms: int


@dataclass(frozen=True)
class ExtractionCompleted(_Event):
    stage: ClassVar[str] = "page_extraction"

    url: str
    method: Optional[str]
    found: int
    added: int
    total: int
    errors: int = 0


@dataclass(frozen=True)
class PaginationFound(_Event):
    stage: ClassVar[str] = "pagination_links"

    url: str
    links: Tuple[str, ...]
    enqueued: int


@dataclass(frozen=True)
class RunCompleted(_Event):
    stage: ClassVar[str] = "run_complete"

    summary: Dict[str, Any]


RunEvent = Union[
    RunStarted,
    PageFetched,
    PageFailed,
    DecisionMade,
    ExtractionCompleted,
    PaginationFound,
    RunCompleted,
]


class EventSink(Protocol):
    def emit(self, event: RunEvent) -> None:
        ...


class LoggingEventSink:
    """Renders events through the standard logger"""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def emit(self, event: RunEvent) -> None:
        payload = {k: v for k, v in event.to_dict().items() if k not in ('stage', 'run_id', 'timestamp')}
        logger.log(self.level, f"[{event.run_id[:8]}] {event.stage}: {payload}")


class CollectingEventSink:
    """Keeps every event in memory (batch runs, tests)"""

    def __init__(self):
        self.events: List[RunEvent] = []

    def emit(self, event: RunEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> List[RunEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


class CallbackEventSink:
    """Adapts a plain callable to the sink interface"""

    def __init__(self, callback: Callable[[RunEvent], None]):
        self.callback = callback

    def emit(self, event: RunEvent) -> None:
        self.callback(event)


def emit_safely(sink: Optional[EventSink], event: RunEvent) -> None:
    """Deliver an event; sink failures are logged and never reach the run"""
    if sink is None:
        return
    try:
        sink.emit(event)
    except Exception as e:
        logger.debug(f"Event sink failed on {event.stage}: {e}")
