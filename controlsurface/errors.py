"""Error taxonomy for the MIDI subsystem.

These exceptions are raised by host adapters and caught by
:class:`controlsurface.manager.MidiManager`, which turns them into state
values (``unsupported`` / ``error``) or ``False`` return values.  Nothing here
crosses the public API for an expected runtime condition such as an
unplugged device.
"""


class MidiError (Exception):

	"""Base class for MIDI subsystem errors."""


class HostUnsupported (MidiError):

	"""The host has no MIDI capability at all."""


class AccessDenied (MidiError):

	"""The host refused access to MIDI (permission denied)."""


class HostFailure (MidiError):

	"""The host failed while enumerating or opening MIDI resources."""


class DeviceNotAvailable (MidiError):

	"""A port id is unknown or its device is disconnected."""

	def __init__ (self, port_id: str, reason: str = "not available") -> None:

		super().__init__(f"MIDI port {port_id!r} {reason}")
		self.port_id = port_id
