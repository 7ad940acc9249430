import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	Per-event-kind subscription registry.

	Listeners are called synchronously in registration order.  A listener
	that raises is logged and skipped so that one broken subscriber cannot
	break MIDI message handling for the others.
	"""

	def __init__ (self) -> None:

		"""
		Initialize an empty event registry.
		"""

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.

		Raises ``TypeError`` if the callback is not callable.
		"""

		if not callable(callback):
			raise TypeError(f"Callback for event {event_name!r} must be callable")

		if event_name not in self._listeners:
			self._listeners[event_name] = []

		self._listeners[event_name].append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Unregister a previously registered callback.

		Raises ``ValueError`` if the callback is not registered for the event.
		"""

		if event_name not in self._listeners or callback not in self._listeners[event_name]:
			raise ValueError(f"Callback not registered for event {event_name!r}")

		self._listeners[event_name].remove(callback)


	def listener_count (self, event_name: str) -> int:

		"""Return how many callbacks are registered for an event name."""

		return len(self._listeners.get(event_name, []))


	def clear (self) -> None:

		"""Drop every registered callback."""

		self._listeners = {}


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Emit an event and call its listeners immediately.
		"""

		if event_name not in self._listeners:
			return

		# Copy so listeners may unsubscribe themselves while being called.
		for callback in list(self._listeners[event_name]):

			try:
				callback(*args, **kwargs)
			except Exception:
				logger.exception(f"Listener for {event_name!r} raised")
