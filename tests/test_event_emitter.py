import logging

import pytest

import controlsurface.event_emitter


def test_on_and_emit () -> None:

	"""Registered callbacks are called on emit with the event arguments."""

	emitter = controlsurface.event_emitter.EventEmitter()
	received: list[int] = []

	emitter.on("cc_change", lambda v: received.append(v))
	emitter.emit("cc_change", 42)

	assert received == [42]


def test_emit_calls_in_registration_order () -> None:

	emitter = controlsurface.event_emitter.EventEmitter()
	order: list[str] = []

	emitter.on("tick", lambda: order.append("a"))
	emitter.on("tick", lambda: order.append("b"))
	emitter.emit("tick")

	assert order == ["a", "b"]


def test_off_only_removes_target_callback () -> None:

	"""off() leaves other callbacks for the same event intact."""

	emitter = controlsurface.event_emitter.EventEmitter()
	a: list[int] = []
	b: list[int] = []

	def cb_a (v: int) -> None:
		a.append(v)

	def cb_b (v: int) -> None:
		b.append(v)

	emitter.on("tick", cb_a)
	emitter.on("tick", cb_b)
	emitter.off("tick", cb_a)
	emitter.emit("tick", 7)

	assert a == []
	assert b == [7]


def test_off_raises_for_unregistered_callback () -> None:

	"""off() raises ValueError when the callback was never registered."""

	emitter = controlsurface.event_emitter.EventEmitter()

	with pytest.raises(ValueError, match="tick"):
		emitter.off("tick", lambda: None)


def test_on_rejects_non_callable () -> None:

	emitter = controlsurface.event_emitter.EventEmitter()

	with pytest.raises(TypeError):
		emitter.on("tick", None)


def test_raising_listener_does_not_stop_others (caplog: pytest.LogCaptureFixture) -> None:

	"""A failing subscriber is logged and the remaining ones still run."""

	emitter = controlsurface.event_emitter.EventEmitter()
	received: list[int] = []

	def broken (v: int) -> None:
		raise RuntimeError("boom")

	emitter.on("tick", broken)
	emitter.on("tick", lambda v: received.append(v))

	with caplog.at_level(logging.ERROR):
		emitter.emit("tick", 3)

	assert received == [3]
	assert "tick" in caplog.text


def test_listener_may_unsubscribe_while_emitting () -> None:

	emitter = controlsurface.event_emitter.EventEmitter()
	calls: list[str] = []

	def once () -> None:
		calls.append("once")
		emitter.off("tick", once)

	emitter.on("tick", once)
	emitter.emit("tick")
	emitter.emit("tick")

	assert calls == ["once"]
	assert emitter.listener_count("tick") == 0


def test_clear_drops_everything () -> None:

	emitter = controlsurface.event_emitter.EventEmitter()
	emitter.on("a", lambda: None)
	emitter.on("b", lambda: None)

	emitter.clear()

	assert emitter.listener_count("a") == 0
	assert emitter.listener_count("b") == 0
