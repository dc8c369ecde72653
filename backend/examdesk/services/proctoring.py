"""
Proctoring service - turns browser signals into violation logs.

The browser reports raw signals (tab hidden, window blur, clipboard use,
right-click) to the API, which emits them on a per-session SignalBus. A
ProctoringMonitor subscribes to the bus only while it is active and reports
one ProctorLog per signal to its owner. It keeps no history of its own.
"""

import logging
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..models import ProctorEventType, ProctorLog
from ..utils import now_ms

logger = logging.getLogger(__name__)


class Signal(str, Enum):
    VISIBILITY_HIDDEN = "visibility_hidden"
    WINDOW_BLUR = "window_blur"
    COPY = "copy"
    PASTE = "paste"
    CONTEXT_MENU = "context_menu"


class BrowserEvent:
    """One occurrence of a signal. Handlers may suppress its default action."""

    def __init__(self, signal: Signal):
        self.signal = signal
        self.default_prevented = False

    def prevent_default(self):
        self.default_prevented = True


Handler = Callable[[BrowserEvent], None]


class SignalBus:
    """Synchronous publish/subscribe over the five browser signal channels."""

    def __init__(self):
        self._handlers: Dict[Signal, List[Handler]] = {signal: [] for signal in Signal}

    def subscribe(self, signal: Signal, handler: Handler) -> Callable[[], None]:
        """Register a handler; the returned callable removes it again."""
        self._handlers[signal].append(handler)

        def unsubscribe():
            if handler in self._handlers[signal]:
                self._handlers[signal].remove(handler)

        return unsubscribe

    def emit(self, signal: Signal) -> BrowserEvent:
        event = BrowserEvent(Signal(signal))
        for handler in list(self._handlers[event.signal]):
            handler(event)
        return event

    def subscriber_count(self, signal: Optional[Signal] = None) -> int:
        if signal is not None:
            return len(self._handlers[signal])
        return sum(len(handlers) for handlers in self._handlers.values())


# signal -> (log type, details, suppress default action)
VIOLATION_RULES = {
    Signal.VISIBILITY_HIDDEN: (
        ProctorEventType.TAB_SWITCH, "User switched tabs or minimized browser", False
    ),
    Signal.WINDOW_BLUR: (ProctorEventType.LOST_FOCUS, "Window lost focus", False),
    Signal.COPY: (ProctorEventType.COPY_ATTEMPT, None, True),
    Signal.PASTE: (ProctorEventType.PASTE_ATTEMPT, None, True),
    Signal.CONTEXT_MENU: (ProctorEventType.CONTEXT_MENU, "Right-click menu blocked", True),
}


class ProctoringMonitor:
    """Headless observer; activation is toggled by the owning exam session."""

    def __init__(
        self,
        bus: SignalBus,
        on_violation: Callable[[ProctorLog], None],
        clock: Callable[[], int] = now_ms,
    ):
        self.bus = bus
        self.on_violation = on_violation
        self.clock = clock
        self._unsubscribers: List[Callable[[], None]] = []

    @property
    def is_active(self) -> bool:
        return bool(self._unsubscribers)

    def set_active(self, active: bool):
        if active:
            self.activate()
        else:
            self.deactivate()

    def activate(self):
        if self.is_active:
            return
        for signal in Signal:
            self._unsubscribers.append(self.bus.subscribe(signal, self._handle))
        logger.debug("Proctoring monitor activated")

    def deactivate(self):
        while self._unsubscribers:
            self._unsubscribers.pop()()
        logger.debug("Proctoring monitor deactivated")

    def _handle(self, event: BrowserEvent):
        log_type, details, suppress = VIOLATION_RULES[event.signal]
        if suppress:
            event.prevent_default()
        self.on_violation(ProctorLog(timestamp=self.clock(), type=log_type, details=details))
