"""Outgoing Control Change messages.

Sending never raises: an unknown, closed or vanished output turns into a
``False`` return so that a cable pulled mid-performance cannot take the
renderer down with it.
"""

import logging
import typing

import controlsurface.constants
import controlsurface.devices

if typing.TYPE_CHECKING:
	from controlsurface.host import MidiHost


logger = logging.getLogger(__name__)


def encode_cc (channel: int, cc_number: int, value: int) -> typing.List[int]:

	"""
	Build a 3-byte Control Change.

	Channel, controller and value are masked rather than validated, so
	out-of-range input is clamped into the wire format instead of failing.
	"""

	return [
		controlsurface.constants.CONTROL_CHANGE | (channel & controlsurface.constants.CHANNEL_MASK),
		cc_number & controlsurface.constants.DATA_MASK,
		value & controlsurface.constants.DATA_MASK,
	]


class OutputSender:

	"""
	Writes raw messages to open outputs known to the device registry.
	"""

	def __init__ (self, host: "MidiHost", registry: controlsurface.devices.DeviceRegistry) -> None:

		self._host = host
		self._registry = registry


	def send (self, output_id: str, data: typing.Sequence[int], timestamp: typing.Optional[float] = None) -> bool:

		"""
		Send raw bytes to an output.

		Returns False when the output is unknown, not an output, not open, or
		the host write fails.
		"""

		port = self._registry.get(output_id)

		if port is None or port.direction != controlsurface.devices.PortDirection.OUTPUT:
			return False

		if not self._registry.is_open(output_id):
			return False

		try:
			self._host.send(output_id, data, timestamp)
		except Exception:
			logger.exception(f"MIDI send to {output_id!r} failed (device may be disconnected)")
			return False

		return True


	def send_cc (self, output_id: str, channel: int, cc_number: int, value: int) -> bool:

		"""Send one Control Change."""

		return self.send(output_id, encode_cc(channel, cc_number, value))
