import pytest

from examdesk.models import ProctorEventType
from examdesk.services.proctoring import ProctoringMonitor, Signal, SignalBus


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def recorded():
    return []


@pytest.fixture
def monitor(bus, recorded):
    return ProctoringMonitor(bus, recorded.append, clock=lambda: 1_700_000_000_000)


def test_inactive_monitor_reports_nothing(bus, monitor, recorded):
    event = bus.emit(Signal.COPY)

    assert not monitor.is_active
    assert not event.default_prevented
    assert recorded == []


@pytest.mark.parametrize("signal, log_type, details, prevented", [
    (Signal.VISIBILITY_HIDDEN, ProctorEventType.TAB_SWITCH,
     "User switched tabs or minimized browser", False),
    (Signal.WINDOW_BLUR, ProctorEventType.LOST_FOCUS, "Window lost focus", False),
    (Signal.COPY, ProctorEventType.COPY_ATTEMPT, None, True),
    (Signal.PASTE, ProctorEventType.PASTE_ATTEMPT, None, True),
    (Signal.CONTEXT_MENU, ProctorEventType.CONTEXT_MENU, "Right-click menu blocked", True),
])
def test_signal_maps_to_violation(bus, monitor, recorded, signal, log_type, details, prevented):
    monitor.activate()
    event = bus.emit(signal)

    assert event.default_prevented is prevented
    assert len(recorded) == 1
    assert recorded[0].type == log_type
    assert recorded[0].details == details
    assert recorded[0].timestamp == 1_700_000_000_000


def test_one_log_per_signal_in_order(bus, monitor, recorded):
    monitor.activate()
    for signal in (Signal.WINDOW_BLUR, Signal.VISIBILITY_HIDDEN, Signal.PASTE):
        bus.emit(signal)

    assert [log.type for log in recorded] == [
        ProctorEventType.LOST_FOCUS,
        ProctorEventType.TAB_SWITCH,
        ProctorEventType.PASTE_ATTEMPT,
    ]


def test_activation_is_idempotent(bus, monitor, recorded):
    monitor.activate()
    monitor.set_active(True)
    assert bus.subscriber_count() == len(Signal)

    bus.emit(Signal.COPY)
    assert len(recorded) == 1


def test_deactivation_removes_every_subscription(bus, monitor, recorded):
    monitor.activate()
    monitor.set_active(False)

    assert not monitor.is_active
    assert bus.subscriber_count() == 0
    event = bus.emit(Signal.CONTEXT_MENU)
    assert not event.default_prevented
    assert recorded == []


def test_unsubscribe_leaves_other_handlers(bus):
    seen = []
    unsubscribe = bus.subscribe(Signal.COPY, lambda e: seen.append("a"))
    bus.subscribe(Signal.COPY, lambda e: seen.append("b"))

    unsubscribe()
    unsubscribe()
    bus.emit(Signal.COPY)

    assert seen == ["b"]
    assert bus.subscriber_count(Signal.COPY) == 1


def test_bus_accepts_raw_signal_names(bus, monitor, recorded):
    monitor.activate()
    bus.emit("paste")
    assert recorded[0].type == ProctorEventType.PASTE_ATTEMPT
