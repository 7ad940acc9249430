"""Static Control Change → parameter bindings.

Each binding is keyed by ``(channel, cc_number)``; there is at most one
binding per key and registering the same key again replaces the old binding
wholesale.  Incoming values are normalized to 0.0–1.0 and scaled linearly into
the binding's own ``[min, max]`` range.
"""

import dataclasses
import typing

import controlsurface.constants


@dataclasses.dataclass
class ControlChangeMapping:

	"""
	A binding from one controller on one channel to a parameter.

	``current_value`` is informational: it holds the last scaled value the
	binding produced.
	"""

	channel: int
	cc_number: int
	parameter_path: str
	min: float = 0.0
	max: float = 1.0
	current_value: float = 0.0

	def __post_init__ (self) -> None:

		validate_control(self.channel, self.cc_number)

		if self.min > self.max:
			raise ValueError(f"Mapping for {self.parameter_path!r} has min {self.min} greater than max {self.max}")

	@property
	def key (self) -> typing.Tuple[int, int]:

		return (self.channel, self.cc_number)

	def scale (self, normalized: float) -> float:

		"""Map a 0.0–1.0 value into this binding's range."""

		return scale(normalized, self.min, self.max)


def validate_control (channel: int, cc_number: int) -> None:

	"""Raise ``ValueError`` for a channel outside 0–15 or a CC outside 0–127."""

	if not 0 <= channel < controlsurface.constants.MIDI_CHANNELS:
		raise ValueError(f"MIDI channel must be 0-15, got {channel}")

	if not 0 <= cc_number <= controlsurface.constants.MAX_7BIT_VALUE:
		raise ValueError(f"CC number must be 0-127, got {cc_number}")


def scale (normalized: float, minimum: float, maximum: float) -> float:

	"""Linear interpolation from 0.0–1.0 into ``[minimum, maximum]``."""

	return minimum + normalized * (maximum - minimum)


def snapshot_key (channel: int, cc_number: int) -> str:

	"""The ``"channel:cc"`` key used in the CC value snapshot."""

	return f"{channel}:{cc_number}"


class CcMappingTable:

	"""
	Editable set of CC bindings with value resolution.
	"""

	def __init__ (self) -> None:

		self._mappings: typing.Dict[typing.Tuple[int, int], ControlChangeMapping] = {}


	def __len__ (self) -> int:

		return len(self._mappings)


	def __contains__ (self, key: typing.Tuple[int, int]) -> bool:

		return key in self._mappings


	def add_or_update (self, mapping: ControlChangeMapping) -> None:

		"""
		Register a binding, replacing any binding with the same key.

		The table stores its own copy, so later changes to *mapping* do not
		leak in.
		"""

		# A replaced key keeps its position.
		self._mappings[mapping.key] = dataclasses.replace(mapping)


	def remove (self, channel: int, cc_number: int) -> None:

		"""Remove a binding; no-op if absent."""

		self._mappings.pop((channel, cc_number), None)


	def get (self, channel: int, cc_number: int) -> typing.Optional[ControlChangeMapping]:

		"""Return a copy of one binding, or None."""

		mapping = self._mappings.get((channel, cc_number))
		return dataclasses.replace(mapping) if mapping is not None else None


	def resolve (self, channel: int, cc_number: int, normalized: float) -> typing.Optional[float]:

		"""
		Scale a normalized value through the binding for ``(channel, cc_number)``.

		Returns None when no binding exists.  The binding's ``current_value``
		is updated as a side record.
		"""

		mapping = self._mappings.get((channel, cc_number))

		if mapping is None:
			return None

		value = mapping.scale(normalized)
		mapping.current_value = value
		return value


	def list_all (self) -> typing.List[ControlChangeMapping]:

		"""Copies of every binding, in registration order."""

		return [dataclasses.replace(mapping) for mapping in self._mappings.values()]


	def clear (self) -> None:

		self._mappings.clear()
