"""Types exchanged with the consuming application's parameter space.

Visual patterns own their parameters; the MIDI subsystem only needs to know a
parameter's numeric range (for Learn) and somewhere to push new values.
Values cross the boundary as a tagged union so that colour parameters can
share the same sink as numeric ones.
"""

import dataclasses
import typing


@dataclasses.dataclass (frozen=True)
class NumberValue:

	"""A numeric parameter value."""

	value: float
	kind: typing.Literal["number"] = "number"


@dataclasses.dataclass (frozen=True)
class ColorValue:

	"""An RGB colour parameter value, each channel 0–255."""

	r: int
	g: int
	b: int
	kind: typing.Literal["color"] = "color"


ParameterValue = typing.Union[NumberValue, ColorValue]


@dataclasses.dataclass (frozen=True)
class ParameterMeta:

	"""Numeric range of a parameter, as reported by the active pattern."""

	min: float = 0.0
	max: float = 1.0
	step: float = 0.01


DEFAULT_META = ParameterMeta()

ParameterMetaFn = typing.Callable[[str], typing.Optional[ParameterMeta]]


@typing.runtime_checkable
class ParameterSink (typing.Protocol):

	"""
	Receiver of live parameter updates (usually the active visual pattern).
	"""

	def set_params (self, params: typing.Dict[str, ParameterValue]) -> None:

		"""Apply a batch of parameter values."""

		...


def no_meta (parameter_name: str) -> typing.Optional[ParameterMeta]:

	"""Metadata provider used until the application injects a real one."""

	return None
