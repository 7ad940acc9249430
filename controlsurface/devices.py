"""Connected MIDI port tracking.

The registry owns one :class:`Port` record per port the host has ever
reported.  Records are never deleted while the subsystem runs: an unplugged
device is marked disconnected, and when the host reuses the same id on
reconnection the same record transitions back to connected.

Opening a port makes it the active read (input) or write (output) target.
Opening is idempotent, and an unknown or disconnected id simply fails with
``False`` so the caller can retry after a later hot-plug notification.
"""

import dataclasses
import enum
import logging
import typing

import controlsurface.errors
import controlsurface.event_emitter

if typing.TYPE_CHECKING:
	from controlsurface.host import InputListener, MidiHost


logger = logging.getLogger(__name__)


class PortDirection (str, enum.Enum):

	INPUT = "input"
	OUTPUT = "output"


class ConnectionState (str, enum.Enum):

	CONNECTED = "connected"
	DISCONNECTED = "disconnected"


@dataclasses.dataclass
class Port:

	"""
	A physical or virtual MIDI endpoint reported by the host.
	"""

	id: str
	name: str
	direction: PortDirection
	manufacturer: typing.Optional[str] = None
	connection_state: ConnectionState = ConnectionState.CONNECTED

	@property
	def connected (self) -> bool:

		return self.connection_state == ConnectionState.CONNECTED


class DeviceRegistry:

	"""
	Tracks input/output ports and which of them are open.

	Emits ``device_change`` with the full port list on the shared event bus
	whenever a hot-plug notification changes the registry.
	"""

	def __init__ (self, host: "MidiHost", events: typing.Optional[controlsurface.event_emitter.EventEmitter] = None) -> None:

		self._host = host
		self.events = events if events is not None else controlsurface.event_emitter.EventEmitter()

		# Dicts keep discovery order.
		self._ports: typing.Dict[str, Port] = {}
		self._open_inputs: typing.Set[str] = set()
		self._open_outputs: typing.Set[str] = set()


	def list_ports (self) -> typing.List[Port]:

		"""Return copies of every known port, in discovery order."""

		return [dataclasses.replace(port) for port in self._ports.values()]


	def get (self, port_id: str) -> typing.Optional[Port]:

		"""Return a copy of one port, or None when the id is unknown."""

		port = self._ports.get(port_id)
		return dataclasses.replace(port) if port is not None else None


	def register (self, port: Port) -> Port:

		"""
		Insert or update a port record without raising a notification.

		Used for the initial enumeration, where a single ``device_change`` is
		sent once every port is known.
		"""

		existing = self._ports.get(port.id)

		if existing is None:
			existing = dataclasses.replace(port)
			self._ports[port.id] = existing

		else:
			existing.name = port.name
			existing.manufacturer = port.manufacturer
			existing.direction = port.direction
			existing.connection_state = port.connection_state

		if not existing.connected:
			self._forget_open(existing.id)

		return existing


	def on_hotplug (self, port: Port, new_state: ConnectionState) -> None:

		"""
		Apply a host connect/disconnect notification and notify listeners.
		"""

		updated = dataclasses.replace(port, connection_state=new_state)
		self.register(updated)

		logger.info(f"MIDI {updated.direction.value} '{updated.name}' {new_state.value}")

		self.events.emit("device_change", self.list_ports())


	async def open_input (self, port_id: str, listener: "InputListener") -> bool:

		"""
		Open an input port and route its raw messages to *listener*.

		Returns False (and logs) when the port is unknown, disconnected, or not
		an input.
		"""

		if listener is None:
			raise TypeError("open_input() requires a message listener")

		if port_id in self._open_inputs:
			return True

		if not self._is_available(port_id, PortDirection.INPUT):
			return False

		try:
			await self._host.open_input(port_id, listener)
		except controlsurface.errors.MidiError as e:
			logger.warning(f"Could not open MIDI input {port_id!r}: {e}")
			return False

		self._open_inputs.add(port_id)
		logger.info(f"Opened MIDI input: {self._ports[port_id].name}")
		return True


	async def open_output (self, port_id: str) -> bool:

		"""
		Open an output port so that messages can be sent to it.
		"""

		if port_id in self._open_outputs:
			return True

		if not self._is_available(port_id, PortDirection.OUTPUT):
			return False

		try:
			await self._host.open_output(port_id)
		except controlsurface.errors.MidiError as e:
			logger.warning(f"Could not open MIDI output {port_id!r}: {e}")
			return False

		self._open_outputs.add(port_id)
		logger.info(f"Opened MIDI output: {self._ports[port_id].name}")
		return True


	def is_open (self, port_id: str) -> bool:

		"""True when the port is open and its device is still connected."""

		port = self._ports.get(port_id)

		if port is None or not port.connected:
			return False

		return port_id in self._open_inputs or port_id in self._open_outputs


	def open_port_ids (self) -> typing.List[str]:

		"""Ids of every open port, inputs first."""

		return [pid for pid in self._ports if pid in self._open_inputs] + [pid for pid in self._ports if pid in self._open_outputs]


	def close_all (self) -> None:

		"""Close every open port through the host."""

		for port_id in self.open_port_ids():
			self._close(port_id)

		self._open_inputs.clear()
		self._open_outputs.clear()


	def clear (self) -> None:

		"""Close all ports and forget every record."""

		self.close_all()
		self._ports.clear()


	def _is_available (self, port_id: str, direction: PortDirection) -> bool:

		port = self._ports.get(port_id)

		if port is None:
			logger.warning(f"MIDI port {port_id!r} is unknown")
			return False

		if port.direction != direction:
			logger.warning(f"MIDI port {port_id!r} is not an {direction.value}")
			return False

		if not port.connected:
			logger.warning(f"MIDI port {port_id!r} is disconnected")
			return False

		return True


	def _forget_open (self, port_id: str) -> None:

		if port_id in self._open_inputs or port_id in self._open_outputs:
			self._open_inputs.discard(port_id)
			self._open_outputs.discard(port_id)
			self._close(port_id)


	def _close (self, port_id: str) -> None:

		try:
			self._host.close_port(port_id)
		except Exception:
			logger.exception(f"Failed to close MIDI port {port_id!r}")
