from stepflow.contracts import StateChangeEvent, WorkflowState
from stepflow.events import ListenerBus


def _event(event_type="progress_updated") -> StateChangeEvent:
    return StateChangeEvent(
        type=event_type,
        current_state=WorkflowState(workflow_id="wf", current_step="a"),
    )


def test_listeners_called_in_registration_order():
    bus = ListenerBus()
    calls = []
    bus.add_listener(lambda e: calls.append("first"))
    bus.add_listener(lambda e: calls.append("second"))

    bus.emit(_event())

    assert calls == ["first", "second"]


def test_failing_listener_is_isolated(caplog):
    bus = ListenerBus()
    calls = []

    def broken(event):
        raise RuntimeError("listener bug")

    bus.add_listener(broken)
    bus.add_listener(lambda e: calls.append(e.type))

    bus.emit(_event("data_updated"))

    assert calls == ["data_updated"]
    assert "listener bug" in caplog.text


def test_remove_listener():
    bus = ListenerBus()
    calls = []

    def listener(event):
        calls.append(event)

    bus.add_listener(listener)
    bus.remove_listener(listener)
    # removing twice is harmless
    bus.remove_listener(listener)
    bus.emit(_event())

    assert calls == []
    assert len(bus) == 0


def test_listener_may_unsubscribe_during_emit():
    bus = ListenerBus()
    calls = []

    def once(event):
        calls.append("once")
        bus.remove_listener(once)

    bus.add_listener(once)
    bus.add_listener(lambda e: calls.append("always"))

    bus.emit(_event())
    bus.emit(_event())

    assert calls == ["once", "always", "always"]
