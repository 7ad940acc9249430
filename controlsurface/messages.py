"""Raw MIDI packet decoding.

:func:`decode` classifies one raw packet (status byte + data bytes) into a
typed event.  It has no state and no side effects, so it is safe to call from
any thread.  Only the message kinds the control surface acts on are
recognised; everything else (notes, pitch bend, SysEx, truncated packets)
decodes to :class:`Unknown` and is dropped by the caller.
"""

import dataclasses
import typing

import controlsurface.constants


@dataclasses.dataclass (frozen=True)
class ControlChange:

	"""A Control Change message with its raw 7-bit value."""

	channel: int
	controller: int
	value: int

	@property
	def normalized (self) -> float:

		"""The value scaled to 0.0–1.0."""

		return normalize(self.value)


@dataclasses.dataclass (frozen=True)
class ProgramChange:

	"""A Program Change message."""

	channel: int
	program: int


@dataclasses.dataclass (frozen=True)
class Clock:

	"""A single MIDI timing clock tick (0xF8)."""


@dataclasses.dataclass (frozen=True)
class Unknown:

	"""Anything the control surface does not act on."""

	status: typing.Optional[int] = None


MidiEvent = typing.Union[ControlChange, ProgramChange, Clock, Unknown]


def normalize (raw_value: int) -> float:

	"""Scale a 7-bit MIDI value to 0.0–1.0 (127 maps to exactly 1.0)."""

	return (raw_value & controlsurface.constants.DATA_MASK) / controlsurface.constants.MAX_7BIT_VALUE


def decode (data: typing.Sequence[int]) -> MidiEvent:

	"""
	Classify one raw MIDI packet.

	Parameters:
		data: The packet bytes, status byte first.

	Returns:
		A :class:`ControlChange`, :class:`ProgramChange`, :class:`Clock` or
		:class:`Unknown`.  Data bytes are masked to 7 bits.

	Example:
		```python
		decode([0xB0, 1, 64])   # ControlChange(channel=0, controller=1, value=64)
		decode([0xF8])          # Clock()
		```
	"""

	if len(data) == 0:
		return Unknown()

	status = data[0]

	if status == controlsurface.constants.TIMING_CLOCK:
		return Clock()

	kind = status & controlsurface.constants.STATUS_MASK
	channel = status & controlsurface.constants.CHANNEL_MASK

	if kind == controlsurface.constants.CONTROL_CHANGE and len(data) >= 3:
		return ControlChange(
			channel = channel,
			controller = data[1] & controlsurface.constants.DATA_MASK,
			value = data[2] & controlsurface.constants.DATA_MASK
		)

	if kind == controlsurface.constants.PROGRAM_CHANGE and len(data) >= 2:
		return ProgramChange(
			channel = channel,
			program = data[1] & controlsurface.constants.DATA_MASK
		)

	return Unknown(status=status)
