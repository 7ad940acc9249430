"""Host MIDI capability.

:class:`MidiHost` is everything the subsystem needs from the environment:
port enumeration, hot-plug notifications, raw per-port input and raw output.
:class:`MidoHost` provides it on top of mido.

mido names ports but has no ids, no manufacturer field and no hot-plug
events.  Ids are built as ``"<direction>:<name>"`` so that a device that is
unplugged and plugged back in keeps its id, and hot-plug is produced by
:meth:`MidoHost.rescan`, which compares the current port names with the last
known set.  :meth:`MidoHost.watch` runs the rescan periodically; that loop
belongs to the application, not to the MIDI core.

mido calls input callbacks on a backend thread.  Every message is handed to
the asyncio loop that was running when :meth:`MidoHost.request_access` was
awaited, so subscribers only ever run on the loop thread.
"""

import asyncio
import logging
import typing

import mido

import controlsurface.constants
import controlsurface.devices
import controlsurface.errors


logger = logging.getLogger(__name__)


InputListener = typing.Callable[[str, typing.Sequence[int]], None]
HotplugListener = typing.Callable[[controlsurface.devices.Port, controlsurface.devices.ConnectionState], None]


@typing.runtime_checkable
class MidiHost (typing.Protocol):

	"""
	Protocol for environments that can provide MIDI ports.
	"""

	def is_supported (self) -> bool:

		"""True when the environment has any MIDI capability."""

		...

	async def request_access (self, sysex: bool = False) -> None:

		"""Ask for MIDI access; raises AccessDenied or HostFailure."""

		...

	def list_ports (self) -> typing.List[controlsurface.devices.Port]:

		"""Enumerate ports, inputs first."""

		...

	def set_hotplug_listener (self, listener: typing.Optional[HotplugListener]) -> None:

		"""Install (or remove with None) the hot-plug callback."""

		...

	async def open_input (self, port_id: str, listener: InputListener) -> None:

		"""Open an input; raises DeviceNotAvailable."""

		...

	async def open_output (self, port_id: str) -> None:

		"""Open an output; raises DeviceNotAvailable."""

		...

	def send (self, port_id: str, data: typing.Sequence[int], timestamp: typing.Optional[float] = None) -> None:

		"""Write raw bytes to an open output."""

		...

	def close_port (self, port_id: str) -> None:

		"""Close one open port."""

		...

	def close (self) -> None:

		"""Close everything and drop listeners."""

		...


def make_port_id (direction: controlsurface.devices.PortDirection, name: str) -> str:

	"""Stable id for a mido port name."""

	return f"{direction.value}:{name}"


class MidoHost:

	"""
	:class:`MidiHost` backed by mido's default backend.
	"""

	def __init__ (self) -> None:

		self._loop: typing.Optional[asyncio.AbstractEventLoop] = None
		self._sysex = False
		self._hotplug_listener: typing.Optional[HotplugListener] = None

		# Ports seen on the last enumeration, keyed by id.
		self._known: typing.Dict[str, controlsurface.devices.Port] = {}

		self._inputs: typing.Dict[str, typing.Any] = {}
		self._outputs: typing.Dict[str, typing.Any] = {}


	def is_supported (self) -> bool:

		"""
		Check that mido's backend (python-rtmidi by default) can be loaded.
		"""

		try:
			mido.backend.module
		except ImportError as e:
			logger.warning(f"No MIDI backend available: {e}")
			return False

		return True


	async def request_access (self, sysex: bool = False) -> None:

		"""
		Capture the running loop and take the first port inventory.

		Desktop MIDI has no permission prompt, so the only failure is the
		backend itself failing to enumerate.
		"""

		self._loop = asyncio.get_running_loop()
		self._sysex = sysex

		try:
			self._known = {port.id: port for port in self._enumerate()}
		except Exception as e:
			raise controlsurface.errors.HostFailure(f"MIDI enumeration failed: {e}") from e

		logger.info(f"MIDI access granted ({len(self._known)} ports, sysex={'on' if sysex else 'off'})")


	def list_ports (self) -> typing.List[controlsurface.devices.Port]:

		return list(self._known.values())


	def set_hotplug_listener (self, listener: typing.Optional[HotplugListener]) -> None:

		self._hotplug_listener = listener


	def rescan (self) -> int:

		"""
		Re-enumerate ports and report differences as hot-plug events.

		Returns the number of events delivered.
		"""

		try:
			current = {port.id: port for port in self._enumerate()}
		except Exception:
			logger.exception("MIDI rescan failed")
			return 0

		events: typing.List[typing.Tuple[controlsurface.devices.Port, controlsurface.devices.ConnectionState]] = []

		for port_id, port in current.items():
			previous = self._known.get(port_id)
			if previous is None or not previous.connected:
				events.append((port, controlsurface.devices.ConnectionState.CONNECTED))

		for port_id, port in self._known.items():
			if port_id not in current and port.connected:
				gone = controlsurface.devices.Port(
					id = port.id,
					name = port.name,
					direction = port.direction,
					manufacturer = port.manufacturer,
					connection_state = controlsurface.devices.ConnectionState.DISCONNECTED
				)
				current[port_id] = gone
				events.append((gone, controlsurface.devices.ConnectionState.DISCONNECTED))

				self._close_handle(port_id)

		self._known = current

		if self._hotplug_listener is not None:
			for port, state in events:
				self._hotplug_listener(port, state)

		return len(events)


	async def watch (self, interval: float = 1.0) -> None:

		"""Rescan forever; cancel the task to stop."""

		while True:
			await asyncio.sleep(interval)
			self.rescan()


	async def open_input (self, port_id: str, listener: InputListener) -> None:

		name = self._name_for(port_id, controlsurface.devices.PortDirection.INPUT)

		def _callback (message: typing.Any) -> None:
			self._deliver(port_id, message, listener)

		try:
			self._inputs[port_id] = mido.open_input(name, callback=_callback)
		except Exception as e:
			raise controlsurface.errors.DeviceNotAvailable(port_id, f"could not be opened: {e}") from e


	async def open_output (self, port_id: str) -> None:

		name = self._name_for(port_id, controlsurface.devices.PortDirection.OUTPUT)

		try:
			self._outputs[port_id] = mido.open_output(name)
		except Exception as e:
			raise controlsurface.errors.DeviceNotAvailable(port_id, f"could not be opened: {e}") from e


	def send (self, port_id: str, data: typing.Sequence[int], timestamp: typing.Optional[float] = None) -> None:

		"""
		Send raw bytes.  mido sends immediately; *timestamp* is kept on the
		message's ``time`` attribute only.
		"""

		output = self._outputs.get(port_id)

		if output is None:
			raise controlsurface.errors.DeviceNotAvailable(port_id, "is not open")

		output.send(mido.Message.from_bytes(list(data), time=timestamp or 0))


	def close_port (self, port_id: str) -> None:

		port = self._inputs.pop(port_id, None) or self._outputs.pop(port_id, None)

		if port is not None:
			port.close()


	def _close_handle (self, port_id: str) -> None:

		"""Release the backend handle of a vanished device."""

		for handles in (self._inputs, self._outputs):
			handle = handles.pop(port_id, None)

			if handle is None:
				continue

			try:
				handle.close()
			except Exception:
				logger.exception(f"Failed to close vanished MIDI port {port_id!r}")


	def close (self) -> None:

		for port_id in list(self._inputs) + list(self._outputs):
			self.close_port(port_id)

		self._hotplug_listener = None
		self._known = {}
		self._loop = None


	def _enumerate (self) -> typing.List[controlsurface.devices.Port]:

		ports = []

		for direction, names in (
			(controlsurface.devices.PortDirection.INPUT, mido.get_input_names()),
			(controlsurface.devices.PortDirection.OUTPUT, mido.get_output_names()),
		):
			# Some backends list the same name twice for identical devices.
			for name in dict.fromkeys(names):
				ports.append(controlsurface.devices.Port(id=make_port_id(direction, name), name=name, direction=direction))

		return ports


	def _name_for (self, port_id: str, direction: controlsurface.devices.PortDirection) -> str:

		port = self._known.get(port_id)

		if port is None or port.direction != direction or not port.connected:
			raise controlsurface.errors.DeviceNotAvailable(port_id)

		return port.name


	def _deliver (self, port_id: str, message: typing.Any, listener: InputListener) -> None:

		"""Runs on mido's callback thread."""

		data = message.bytes()

		if not data:
			return

		if data[0] == controlsurface.constants.SYSEX_START and not self._sysex:
			return

		if self._loop is None or self._loop.is_closed():
			return

		self._loop.call_soon_threadsafe(listener, port_id, data)
