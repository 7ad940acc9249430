import dataclasses
import typing

import mido
import pytest

import controlsurface.devices
import controlsurface.errors
import controlsurface.parameters


class FakeHost:

	"""In-memory MIDI host for tests."""

	def __init__ (self, supported: bool = True, access_error: typing.Optional[Exception] = None) -> None:

		self.supported = supported
		self.access_error = access_error
		self.sysex: typing.Optional[bool] = None

		self.ports: typing.Dict[str, controlsurface.devices.Port] = {}
		self.listeners: typing.Dict[str, typing.Callable] = {}
		self.open_outputs: typing.Set[str] = set()
		self.hotplug_listener: typing.Optional[typing.Callable] = None

		self.sent: typing.List[typing.Tuple[str, typing.List[int], typing.Optional[float]]] = []
		self.closed_ports: typing.List[str] = []
		self.fail_open: typing.Set[str] = set()
		self.fail_send = False
		self.closed = False


	def add_port (
		self,
		port_id: str,
		name: str,
		direction: controlsurface.devices.PortDirection = controlsurface.devices.PortDirection.INPUT,
		manufacturer: typing.Optional[str] = None
	) -> controlsurface.devices.Port:

		"""Make a port visible to the next enumeration."""

		port = controlsurface.devices.Port(id=port_id, name=name, direction=direction, manufacturer=manufacturer)
		self.ports[port_id] = port
		return port


	def inject (self, port_id: str, data: typing.Sequence[int]) -> None:

		"""Simulate a raw message arriving on an open input."""

		self.listeners[port_id](port_id, list(data))


	def hotplug (self, port_id: str, state: controlsurface.devices.ConnectionState) -> None:

		"""Simulate a device being unplugged or plugged back in."""

		port = self.ports[port_id]
		port.connection_state = state

		if state == controlsurface.devices.ConnectionState.DISCONNECTED:
			self.listeners.pop(port_id, None)
			self.open_outputs.discard(port_id)

		if self.hotplug_listener is not None:
			self.hotplug_listener(dataclasses.replace(port), state)


	# MidiHost

	def is_supported (self) -> bool:

		return self.supported


	async def request_access (self, sysex: bool = False) -> None:

		if self.access_error is not None:
			raise self.access_error

		self.sysex = sysex


	def list_ports (self) -> typing.List[controlsurface.devices.Port]:

		return [dataclasses.replace(port) for port in self.ports.values()]


	def set_hotplug_listener (self, listener: typing.Optional[typing.Callable]) -> None:

		self.hotplug_listener = listener


	async def open_input (self, port_id: str, listener: typing.Callable) -> None:

		if port_id in self.fail_open or port_id not in self.ports:
			raise controlsurface.errors.DeviceNotAvailable(port_id)

		self.listeners[port_id] = listener


	async def open_output (self, port_id: str) -> None:

		if port_id in self.fail_open or port_id not in self.ports:
			raise controlsurface.errors.DeviceNotAvailable(port_id)

		self.open_outputs.add(port_id)


	def send (self, port_id: str, data: typing.Sequence[int], timestamp: typing.Optional[float] = None) -> None:

		if self.fail_send:
			raise OSError("device vanished")

		if port_id not in self.open_outputs:
			raise controlsurface.errors.DeviceNotAvailable(port_id, "is not open")

		self.sent.append((port_id, list(data), timestamp))


	def close_port (self, port_id: str) -> None:

		self.closed_ports.append(port_id)
		self.listeners.pop(port_id, None)
		self.open_outputs.discard(port_id)


	def close (self) -> None:

		self.listeners.clear()
		self.open_outputs.clear()
		self.hotplug_listener = None
		self.closed = True


class RecordingSink:

	"""Parameter sink that keeps every batch it receives."""

	def __init__ (self) -> None:

		self.batches: typing.List[typing.Dict[str, controlsurface.parameters.ParameterValue]] = []


	def set_params (self, params: typing.Dict[str, controlsurface.parameters.ParameterValue]) -> None:

		self.batches.append(dict(params))


	def last (self, name: str) -> float:

		"""Most recent numeric value pushed for *name*."""

		for batch in reversed(self.batches):
			if name in batch:
				return typing.cast(controlsurface.parameters.NumberValue, batch[name]).value

		raise KeyError(name)


@pytest.fixture
def host () -> FakeHost:

	"""A host with one input ("Keyboard 1") and one output ("Synth")."""

	fake = FakeHost()
	fake.add_port("in-1", "Keyboard 1")
	fake.add_port("out-1", "Synth", controlsurface.devices.PortDirection.OUTPUT)
	return fake


@pytest.fixture
def sink () -> RecordingSink:

	return RecordingSink()


# --- mido fakes for MidoHost ---


class FakeMidiOut:

	"""MIDI output stub that records what it was sent."""

	def __init__ (self, name: str) -> None:

		self.name = name
		self.messages: typing.List[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		self.messages.append(message)


	def close (self) -> None:

		self.closed = True


class FakeMidiIn:

	"""MIDI input stub; ``inject`` plays the backend thread."""

	def __init__ (self, name: str, callback: typing.Optional[typing.Callable] = None) -> None:

		self.name = name
		self.callback = callback
		self.closed = False


	def close (self) -> None:

		self.closed = True


	def inject (self, message: mido.Message) -> None:

		"""Simulate receiving a MIDI message by calling the stored callback."""

		if self.callback is not None:
			self.callback(message)


class FakeBackend:

	"""Stands in for the loaded rtmidi backend."""

	module = None


class FakeMido:

	"""Mutable port inventory behind the patched mido functions."""

	def __init__ (self) -> None:

		self.input_names: typing.List[str] = ["Keyboard 1"]
		self.output_names: typing.List[str] = ["Synth"]
		self.inputs: typing.Dict[str, FakeMidiIn] = {}
		self.outputs: typing.Dict[str, FakeMidiOut] = {}


	def get_input_names (self) -> typing.List[str]:

		return list(self.input_names)


	def get_output_names (self) -> typing.List[str]:

		return list(self.output_names)


	def open_input (self, name: str, callback: typing.Optional[typing.Callable] = None) -> FakeMidiIn:

		if name not in self.input_names:
			raise OSError(f"unknown port {name!r}")

		port = FakeMidiIn(name, callback=callback)
		self.inputs[name] = port
		return port


	def open_output (self, name: str) -> FakeMidiOut:

		if name not in self.output_names:
			raise OSError(f"unknown port {name!r}")

		port = FakeMidiOut(name)
		self.outputs[name] = port
		return port


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> FakeMido:

	"""Patch mido's port functions with an in-memory inventory."""

	fake = FakeMido()

	monkeypatch.setattr(mido, "backend", FakeBackend())
	monkeypatch.setattr(mido, "get_input_names", fake.get_input_names)
	monkeypatch.setattr(mido, "get_output_names", fake.get_output_names)
	monkeypatch.setattr(mido, "open_input", fake.open_input)
	monkeypatch.setattr(mido, "open_output", fake.open_output)

	return fake
