"""MIDI Learn: bind the next incoming CC to a named parameter.

Learn is exclusive.  At most one parameter is ever being learned; starting a
Learn for a different parameter cancels the current one (the cancelled
parameter is announced with ``learn_cancel``), and starting it again for the
parameter already being learned toggles Learn off.

All transitions go through :func:`next_state`, a pure function over
``(state, active_parameter, command)``, so the rules can be tested without
any MIDI traffic::

	IDLE      + START(x)   -> LEARNING(x)
	LEARNING(a) + START(b) -> LEARNING(b), cancels a
	LEARNING(a) + START(a) -> IDLE, cancels a
	LEARNING(a) + CANCEL   -> IDLE, cancels a
	IDLE      + CANCEL     -> IDLE
	LEARNING(a) + RECEIVE  -> IDLE, completes a (message consumed)
	IDLE      + RECEIVE    -> IDLE (message not consumed)

Completed Learns become :class:`LearnAssignment` records, one per parameter.
A CC can drive only one learned parameter: learning a new parameter on a
``(channel, cc)`` already in use supersedes the older assignment.
"""

import dataclasses
import enum
import logging
import typing

import controlsurface.event_emitter
import controlsurface.mapping
import controlsurface.messages
import controlsurface.parameters


logger = logging.getLogger(__name__)


class LearnState (str, enum.Enum):

	IDLE = "idle"
	LEARNING = "learning"


class LearnCommand (str, enum.Enum):

	START = "start"
	CANCEL = "cancel"
	RECEIVE = "receive"


@dataclasses.dataclass (frozen=True)
class Transition:

	"""
	Result of applying one command to the Learn state.

	``started``, ``cancelled`` and ``completed`` name the parameter each
	notification should carry, or are None when that notification does not
	fire.
	"""

	state: LearnState
	active_parameter: typing.Optional[str]
	started: typing.Optional[str] = None
	cancelled: typing.Optional[str] = None
	completed: typing.Optional[str] = None

	@property
	def consumed (self) -> bool:

		return self.completed is not None


def next_state (
	state: LearnState,
	active_parameter: typing.Optional[str],
	command: LearnCommand,
	parameter: typing.Optional[str] = None
) -> Transition:

	"""
	The Learn transition table.

	Parameters:
		state: Current state.
		active_parameter: Parameter being learned (None when idle).
		command: What happened.
		parameter: Target parameter for ``START``.

	Raises:
		ValueError: for ``START`` without a parameter, or a state whose active
			parameter does not match it.
	"""

	if (state == LearnState.LEARNING) != (active_parameter is not None):
		raise ValueError(f"Inconsistent learn state {state.value!r} with active parameter {active_parameter!r}")

	if command == LearnCommand.START:

		if not parameter:
			raise ValueError("START requires a parameter name")

		if state == LearnState.LEARNING:

			if active_parameter == parameter:
				return Transition(LearnState.IDLE, None, cancelled=active_parameter)

			return Transition(LearnState.LEARNING, parameter, started=parameter, cancelled=active_parameter)

		return Transition(LearnState.LEARNING, parameter, started=parameter)

	if command == LearnCommand.CANCEL:

		if state == LearnState.LEARNING:
			return Transition(LearnState.IDLE, None, cancelled=active_parameter)

		return Transition(LearnState.IDLE, None)

	if command == LearnCommand.RECEIVE:

		if state == LearnState.LEARNING:
			return Transition(LearnState.IDLE, None, completed=active_parameter)

		return Transition(LearnState.IDLE, None)

	raise ValueError(f"Unknown learn command {command!r}")


@dataclasses.dataclass
class LearnAssignment:

	"""A parameter bound to a CC by Learn."""

	parameter_name: str
	channel: int
	cc_number: int
	min: float = 0.0
	max: float = 1.0
	inverted: bool = False

	@property
	def key (self) -> typing.Tuple[int, int]:

		return (self.channel, self.cc_number)

	def scale (self, raw_value: int) -> float:

		"""Map a raw 7-bit CC value into the assignment's range."""

		normalized = controlsurface.messages.normalize(raw_value)

		if self.inverted:
			normalized = 1.0 - normalized

		return controlsurface.mapping.scale(normalized, self.min, self.max)


class LearnStateMachine:

	"""
	Owns the Learn state and the learned assignments.

	Notifications go out on the shared event bus: ``learn_start(name)``,
	``learn_cancel(name)``, ``learn_complete(assignment)`` and
	``mapping_update(assignments)``.
	"""

	def __init__ (
		self,
		events: typing.Optional[controlsurface.event_emitter.EventEmitter] = None,
		param_meta_fn: typing.Optional[controlsurface.parameters.ParameterMetaFn] = None
	) -> None:

		self.events = events if events is not None else controlsurface.event_emitter.EventEmitter()
		self._param_meta_fn: controlsurface.parameters.ParameterMetaFn = param_meta_fn or controlsurface.parameters.no_meta

		self._state = LearnState.IDLE
		self._active_parameter: typing.Optional[str] = None

		# Keyed by parameter name, so re-learning a parameter replaces it.
		self._assignments: typing.Dict[str, LearnAssignment] = {}


	def set_param_meta_fn (self, param_meta_fn: controlsurface.parameters.ParameterMetaFn) -> None:

		"""Inject the provider used to size new assignments."""

		if param_meta_fn is None:
			raise TypeError("param_meta_fn must not be None")

		self._param_meta_fn = param_meta_fn


	def get_state (self) -> LearnState:

		return self._state


	def get_active_parameter (self) -> typing.Optional[str]:

		return self._active_parameter


	def is_learning (self) -> bool:

		return self._state == LearnState.LEARNING


	def start_learning (self, parameter_name: str) -> None:

		"""
		Start learning *parameter_name*.

		Cancels a Learn in progress for another parameter.  Calling it for the
		parameter already being learned cancels instead (toggle off).  An
		empty or non-string name is logged and ignored.
		"""

		if not isinstance(parameter_name, str) or not parameter_name:
			logger.warning(f"Ignoring Learn request for invalid parameter {parameter_name!r}")
			return

		self._apply(next_state(self._state, self._active_parameter, LearnCommand.START, parameter_name))


	def cancel_learning (self) -> None:

		"""Cancel the Learn in progress, if any."""

		self._apply(next_state(self._state, self._active_parameter, LearnCommand.CANCEL))


	def handle_message (self, channel: int, cc_number: int) -> typing.Optional[LearnAssignment]:

		"""
		Offer a decoded CC to Learn.

		Returns the new assignment when the message was consumed (a Learn was
		in progress), or None when the message should go on to normal mapping.
		"""

		transition = next_state(self._state, self._active_parameter, LearnCommand.RECEIVE)

		if not transition.consumed:
			return None

		parameter_name = typing.cast(str, transition.completed)
		meta = self._lookup_meta(parameter_name)

		assignment = LearnAssignment(
			parameter_name = parameter_name,
			channel = channel,
			cc_number = cc_number,
			min = meta.min,
			max = meta.max,
			inverted = False
		)

		self._state = transition.state
		self._active_parameter = transition.active_parameter

		for name, existing in list(self._assignments.items()):
			if existing.key == assignment.key and name != parameter_name:
				logger.info(f"Learn: Ch{channel} CC{cc_number} moved from '{name}' to '{parameter_name}'")
				del self._assignments[name]

		self._assignments.pop(parameter_name, None)
		self._assignments[parameter_name] = assignment

		logger.info(f"Learn complete: {parameter_name} -> Ch{channel} CC{cc_number} ({meta.min} to {meta.max})")

		self.events.emit("learn_complete", dataclasses.replace(assignment))
		self.events.emit("mapping_update", self.get_assignments())

		return dataclasses.replace(assignment)


	def get_assignment (self, parameter_name: str) -> typing.Optional[LearnAssignment]:

		assignment = self._assignments.get(parameter_name)
		return dataclasses.replace(assignment) if assignment is not None else None


	def get_assignments (self) -> typing.List[LearnAssignment]:

		"""Copies of every assignment, oldest first."""

		return [dataclasses.replace(a) for a in self._assignments.values()]


	def find_by_control (self, channel: int, cc_number: int) -> typing.Optional[LearnAssignment]:

		"""The assignment driven by ``(channel, cc_number)``, if any."""

		for assignment in self._assignments.values():
			if assignment.key == (channel, cc_number):
				return dataclasses.replace(assignment)

		return None


	def remove_assignment (self, parameter_name: str) -> None:

		"""Remove the assignment for a parameter; no-op if it has none."""

		if self._assignments.pop(parameter_name, None) is None:
			return

		logger.info(f"Learn assignment removed: {parameter_name}")
		self.events.emit("mapping_update", self.get_assignments())


	def set_inverted (self, parameter_name: str, inverted: bool) -> bool:

		"""Flip an assignment's direction.  Returns False if there is none."""

		assignment = self._assignments.get(parameter_name)

		if assignment is None:
			return False

		assignment.inverted = bool(inverted)
		self.events.emit("mapping_update", self.get_assignments())
		return True


	def clear_all (self) -> None:

		"""Drop every assignment."""

		self._assignments.clear()
		logger.info("All learn assignments cleared")
		self.events.emit("mapping_update", [])


	def _apply (self, transition: Transition) -> None:

		self._state = transition.state
		self._active_parameter = transition.active_parameter

		if transition.cancelled is not None:
			logger.info(f"Learn cancelled: {transition.cancelled}")
			self.events.emit("learn_cancel", transition.cancelled)

		if transition.started is not None:
			logger.info(f"Learn started: {transition.started}")
			self.events.emit("learn_start", transition.started)


	def _lookup_meta (self, parameter_name: str) -> controlsurface.parameters.ParameterMeta:

		try:
			meta = self._param_meta_fn(parameter_name)
		except Exception:
			logger.exception(f"Parameter metadata lookup failed for {parameter_name!r}")
			meta = None

		if meta is None:
			return controlsurface.parameters.DEFAULT_META

		if meta.min > meta.max:
			logger.warning(f"Ignoring metadata for {parameter_name!r}: min {meta.min} > max {meta.max}")
			return controlsurface.parameters.DEFAULT_META

		return meta
