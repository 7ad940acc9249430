"""The MIDI subsystem facade.

:class:`MidiManager` composes the device registry, CC mapping table, Learn
state machine and output sender, owns the current data snapshot, and
publishes every notification on one :class:`~controlsurface.event_emitter.EventEmitter`.

Message path for each raw packet from an open input::

	decode -> channel filter -> snapshot
	       -> CC: Learn first, then learned assignments, then static mappings
	       -> Program Change: notify

Everything runs synchronously inside the host's callback on the event-loop
thread.  Only :meth:`MidiManager.initialize` and the port ``open_*`` calls
are awaitable.

Example:
	```python
	manager = MidiManager(controlsurface.host.MidoHost(), parameter_sink=pattern)
	manager.on("parameter_change", lambda name, value: print(name, value))

	if await manager.initialize():
		manager.add_cc_mapping(ControlChangeMapping(0, 1, "gravity", 0.0, 10.0))
		manager.start_learning("noise_intensity")
	```
"""

import asyncio
import dataclasses
import enum
import logging
import typing

import controlsurface.constants
import controlsurface.devices
import controlsurface.errors
import controlsurface.event_emitter
import controlsurface.learn
import controlsurface.mapping
import controlsurface.messages
import controlsurface.output
import controlsurface.parameters

if typing.TYPE_CHECKING:
	from controlsurface.host import MidiHost


logger = logging.getLogger(__name__)


class State (str, enum.Enum):

	IDLE = "idle"
	REQUESTING = "requesting"
	ACTIVE = "active"
	UNSUPPORTED = "unsupported"
	ERROR = "error"


ChannelFilter = typing.Union[str, int]

CHANNEL_FILTER_ALL = "all"
CHANNEL_FILTER_OFF = "off"


@dataclasses.dataclass
class MidiSnapshot:

	"""
	Latest values seen on the wire.

	``cc`` maps ``"channel:cc"`` to the normalized value (0.0–1.0).
	"""

	cc: typing.Dict[str, float] = dataclasses.field(default_factory=dict)
	program_change: typing.Optional[int] = None
	clock: int = 0

	def copy (self) -> "MidiSnapshot":

		return MidiSnapshot(cc=dict(self.cc), program_change=self.program_change, clock=self.clock)


def parse_channel_filter (value: ChannelFilter) -> ChannelFilter:

	"""
	Normalize a channel filter to ``"all"``, ``"off"`` or an int 0–15.

	Numeric strings are accepted.  Anything else raises ``ValueError``.
	"""

	if isinstance(value, str):

		text = value.strip().lower()

		if text in (CHANNEL_FILTER_ALL, CHANNEL_FILTER_OFF):
			return text

		if not text.isdigit():
			raise ValueError(f"Invalid MIDI channel filter {value!r}")

		value = int(text)

	if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < controlsurface.constants.MIDI_CHANNELS:
		raise ValueError(f"Invalid MIDI channel filter {value!r}")

	return value


class MidiManager:

	"""
	One MIDI subsystem instance per application session.

	Parameters:
		host: The environment's MIDI capability.
		parameter_sink: Receives ``{name: NumberValue}`` whenever a CC or a
			completed Learn drives a parameter.
		param_meta_fn: Looks up a parameter's range for new Learn
			assignments; None means every Learn uses 0.0–1.0.
		input_names: Names of the inputs to open automatically.  None opens
			every connected input.
		output_names: Names of the outputs to open automatically.  None opens
			every connected output.
	"""

	def __init__ (
		self,
		host: "MidiHost",
		parameter_sink: typing.Optional[controlsurface.parameters.ParameterSink] = None,
		param_meta_fn: typing.Optional[controlsurface.parameters.ParameterMetaFn] = None,
		input_names: typing.Optional[typing.Iterable[str]] = None,
		output_names: typing.Optional[typing.Iterable[str]] = None
	) -> None:

		if host is None:
			raise TypeError("MidiManager requires a MIDI host")

		self.host = host
		self.events = controlsurface.event_emitter.EventEmitter()

		self.devices = controlsurface.devices.DeviceRegistry(host, self.events)
		self.mappings = controlsurface.mapping.CcMappingTable()
		self.learn = controlsurface.learn.LearnStateMachine(self.events, param_meta_fn)
		self.output = controlsurface.output.OutputSender(host, self.devices)

		self._parameter_sink = parameter_sink
		self._input_names: typing.Optional[typing.Set[str]] = set(input_names) if input_names is not None else None
		self._output_names: typing.Optional[typing.Set[str]] = set(output_names) if output_names is not None else None

		self._state = State.IDLE
		self._snapshot = MidiSnapshot()
		self._channel_filter: ChannelFilter = CHANNEL_FILTER_ALL

		self._pending: typing.Optional[asyncio.Future] = None
		self._open_tasks: typing.Set[asyncio.Task] = set()
		self._generation = 0


	# Subscriptions

	def on (self, event_name: str, callback: controlsurface.event_emitter.CallbackType) -> None:

		"""Subscribe to a notification (see module docs for event names)."""

		self.events.on(event_name, callback)


	def off (self, event_name: str, callback: controlsurface.event_emitter.CallbackType) -> None:

		self.events.off(event_name, callback)


	def set_parameter_sink (self, sink: typing.Optional[controlsurface.parameters.ParameterSink]) -> None:

		self._parameter_sink = sink


	def set_param_meta_fn (self, param_meta_fn: controlsurface.parameters.ParameterMetaFn) -> None:

		self.learn.set_param_meta_fn(param_meta_fn)


	# Lifecycle

	def get_state (self) -> State:

		return self._state


	async def initialize (self, request_sysex: bool = False) -> bool:

		"""
		Request MIDI access, enumerate ports and start listening.

		Returns True once the subsystem is ``active``.  Calling it again while
		active is a no-op returning True; concurrent calls while a request is
		in flight share its result.  An unsupported host moves to
		``unsupported`` for good, and an access or enumeration failure moves
		to ``error`` (call again to retry).  A :meth:`stop` while the request
		is pending wins: the startup is abandoned and False is returned.
		"""

		if self._state == State.ACTIVE:
			return True

		if self._state == State.UNSUPPORTED:
			return False

		if self._pending is not None:
			return await asyncio.shield(self._pending)

		if not self.host.is_supported():
			self._fail(State.UNSUPPORTED, controlsurface.errors.HostUnsupported("MIDI is not supported on this host"))
			return False

		pending = asyncio.get_running_loop().create_future()
		self._pending = pending
		result = False

		try:
			result = await self._connect(request_sysex)
		finally:
			self._pending = None
			pending.set_result(result)

		return result


	def stop (self) -> None:

		"""
		Close every port and reset to ``idle``.

		Static mappings, learned assignments and the snapshot are all
		cleared.  An ``unsupported`` subsystem stays ``unsupported``.
		"""

		for task in list(self._open_tasks):
			task.cancel()

		self._open_tasks.clear()

		# A pending initialize() checks this and backs out.
		self._generation += 1

		self._release_host()

		self.mappings.clear()
		self.learn.cancel_learning()
		self.learn.clear_all()
		self._snapshot = MidiSnapshot()

		if self._state != State.UNSUPPORTED:
			self._set_state(State.IDLE)

		logger.info("MIDI stopped")


	# Devices

	def get_devices (self) -> typing.List[controlsurface.devices.Port]:

		return self.devices.list_ports()


	async def open_input (self, port_id: str) -> bool:

		"""Open an input by id and route it through this manager."""

		if self._state != State.ACTIVE:
			return False

		return await self.devices.open_input(port_id, self._on_raw_message)


	async def open_output (self, port_id: str) -> bool:

		if self._state != State.ACTIVE:
			return False

		return await self.devices.open_output(port_id)


	# Data

	def get_data (self) -> MidiSnapshot:

		"""A copy of the current snapshot."""

		return self._snapshot.copy()


	def get_cc_value (self, channel: int, cc_number: int) -> float:

		"""Last normalized value for a CC, 0.0 if never received."""

		return self._snapshot.cc.get(controlsurface.mapping.snapshot_key(channel, cc_number), 0.0)


	def set_channel_filter (self, channel_filter: ChannelFilter) -> None:

		"""Listen to ``"all"`` channels, ``"off"`` (none), or one channel 0–15."""

		self._channel_filter = parse_channel_filter(channel_filter)
		logger.info(f"MIDI channel filter: {self._channel_filter}")


	def get_channel_filter (self) -> ChannelFilter:

		return self._channel_filter


	# Static mappings

	def add_cc_mapping (self, mapping: controlsurface.mapping.ControlChangeMapping) -> None:

		self.mappings.add_or_update(mapping)


	def remove_cc_mapping (self, channel: int, cc_number: int) -> None:

		self.mappings.remove(channel, cc_number)


	def get_cc_mappings (self) -> typing.List[controlsurface.mapping.ControlChangeMapping]:

		return self.mappings.list_all()


	# Learn

	def start_learning (self, parameter_name: str) -> None:

		self.learn.start_learning(parameter_name)


	def cancel_learning (self) -> None:

		self.learn.cancel_learning()


	def get_learn_state (self) -> controlsurface.learn.LearnState:

		return self.learn.get_state()


	def get_active_learning (self) -> typing.Optional[str]:

		return self.learn.get_active_parameter()


	def get_assignments (self) -> typing.List[controlsurface.learn.LearnAssignment]:

		return self.learn.get_assignments()


	def remove_learn_assignment (self, parameter_name: str) -> None:

		self.learn.remove_assignment(parameter_name)


	def set_learn_inverted (self, parameter_name: str, inverted: bool) -> bool:

		return self.learn.set_inverted(parameter_name, inverted)


	# Output

	def send_message (self, output_id: str, data: typing.Sequence[int], timestamp: typing.Optional[float] = None) -> bool:

		return self.output.send(output_id, data, timestamp)


	def send_cc (self, output_id: str, channel: int, cc_number: int, value: int) -> bool:

		return self.output.send_cc(output_id, channel, cc_number, value)


	# Incoming messages

	def process_message (self, data: typing.Sequence[int]) -> controlsurface.messages.MidiEvent:

		"""
		Run one raw packet through the pipeline and return its decoded form.

		Unknown and filtered messages are returned but have no effect.
		"""

		event = controlsurface.messages.decode(data)

		if isinstance(event, controlsurface.messages.Unknown) or not self._passes_filter(event):
			return event

		if isinstance(event, controlsurface.messages.Clock):
			self._snapshot.clock += 1

		elif isinstance(event, controlsurface.messages.ProgramChange):
			self._snapshot.program_change = event.program
			self.events.emit("program_change", event.program)

		elif isinstance(event, controlsurface.messages.ControlChange):
			self._handle_cc(event)

		return event


	def _on_raw_message (self, port_id: str, data: typing.Sequence[int]) -> None:

		if self._state != State.ACTIVE:
			return

		self.process_message(data)


	def _passes_filter (self, event: controlsurface.messages.MidiEvent) -> bool:

		if self._channel_filter == CHANNEL_FILTER_OFF:
			return False

		if self._channel_filter == CHANNEL_FILTER_ALL:
			return True

		channel = getattr(event, "channel", None)

		# Clock carries no channel.
		return channel is None or channel == self._channel_filter


	def _handle_cc (self, event: controlsurface.messages.ControlChange) -> None:

		channel = event.channel
		cc_number = event.controller
		normalized = event.normalized

		self._snapshot.cc[controlsurface.mapping.snapshot_key(channel, cc_number)] = normalized

		assignment = self.learn.handle_message(channel, cc_number)

		if assignment is not None:

			if (channel, cc_number) in self.mappings:
				logger.info(f"Static mapping Ch{channel} CC{cc_number} replaced by learned '{assignment.parameter_name}'")
				self.mappings.remove(channel, cc_number)

			self._drive(assignment.parameter_name, assignment.scale(event.value))
			return

		learned = self.learn.find_by_control(channel, cc_number)

		if learned is not None:

			value = learned.scale(event.value)

			self.events.emit("cc_change", controlsurface.mapping.ControlChangeMapping(
				channel = channel,
				cc_number = cc_number,
				parameter_path = learned.parameter_name,
				min = learned.min,
				max = learned.max,
				current_value = value
			))

			self._drive(learned.parameter_name, value)
			return

		value = self.mappings.resolve(channel, cc_number, normalized)

		if value is None:
			return

		mapping = typing.cast(controlsurface.mapping.ControlChangeMapping, self.mappings.get(channel, cc_number))
		self.events.emit("cc_change", mapping)
		self._drive(mapping.parameter_path, value)


	def _drive (self, parameter_name: str, value: float) -> None:

		self.events.emit("parameter_change", parameter_name, value)

		if self._parameter_sink is None:
			return

		try:
			self._parameter_sink.set_params({parameter_name: controlsurface.parameters.NumberValue(value)})
		except Exception:
			logger.exception(f"Parameter sink rejected {parameter_name!r}")


	# Host plumbing

	async def _connect (self, request_sysex: bool) -> bool:

		self._set_state(State.REQUESTING)
		generation = self._generation

		try:
			await self.host.request_access(request_sysex)

			if generation != self._generation:
				return self._abandon_startup()

			for port in self.host.list_ports():
				self.devices.register(port)

			self.host.set_hotplug_listener(self._on_hotplug)

			for port in self.devices.list_ports():
				if port.connected and self._wants(port):
					await self._open(port)

		except controlsurface.errors.HostUnsupported as e:
			self._release_host()

			if generation == self._generation:
				self._fail(State.UNSUPPORTED, e)

			return False

		except Exception as e:
			self._release_host()

			if generation == self._generation:
				self._fail(State.ERROR, e)

			return False

		if generation != self._generation:
			return self._abandon_startup()

		self._set_state(State.ACTIVE)
		self.events.emit("device_change", self.get_devices())

		return True


	def _abandon_startup (self) -> bool:

		"""stop() ran while access was pending; undo what the host set up since."""

		logger.info("MIDI startup abandoned by stop()")
		self._release_host()
		return False


	def _release_host (self) -> None:

		self.host.set_hotplug_listener(None)
		self.devices.clear()

		try:
			self.host.close()
		except Exception:
			logger.exception("MIDI host close failed")


	def _on_hotplug (self, port: controlsurface.devices.Port, new_state: controlsurface.devices.ConnectionState) -> None:

		self.devices.on_hotplug(port, new_state)

		if new_state != controlsurface.devices.ConnectionState.CONNECTED or self._state != State.ACTIVE:
			return

		if not self._wants(port):
			return

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			logger.warning(f"No running event loop; '{port.name}' must be opened manually")
			return

		task = loop.create_task(self._open(port))
		self._open_tasks.add(task)
		task.add_done_callback(self._open_tasks.discard)


	def _wants (self, port: controlsurface.devices.Port) -> bool:

		wanted = self._output_names if port.direction == controlsurface.devices.PortDirection.OUTPUT else self._input_names

		return wanted is None or port.name in wanted


	async def _open (self, port: controlsurface.devices.Port) -> bool:

		if port.direction == controlsurface.devices.PortDirection.INPUT:
			return await self.devices.open_input(port.id, self._on_raw_message)

		return await self.devices.open_output(port.id)


	def _set_state (self, state: State) -> None:

		if self._state == state:
			return

		self._state = state
		logger.info(f"MIDI state: {state.value}")
		self.events.emit("state_change", state)


	def _fail (self, state: State, error: Exception) -> None:

		logger.warning(f"MIDI unavailable: {error}")
		self._set_state(state)
		self.events.emit("error", error)
