import asyncio
import dataclasses
import json
import logging
import typing

import websockets
import websockets.asyncio.server
import websockets.exceptions

import controlsurface.learn
import controlsurface.manager
import controlsurface.parameters


logger = logging.getLogger(__name__)


class StatusFeed:

	"""
	Websocket feed for UIs and remote renderers.

	Broadcasts the MIDI subsystem state to connected clients at a fixed
	interval, pushes parameter values as they change (this object is a
	:class:`~controlsurface.parameters.ParameterSink`), and accepts JSON
	commands so a UI can drive Learn::

		{"action": "learn", "parameter": "gravity"}
		{"action": "cancel"}
		{"action": "remove", "parameter": "gravity"}
		{"action": "invert", "parameter": "gravity", "inverted": true}
		{"action": "channel", "filter": "all"}
		{"action": "state"}
	"""

	def __init__ (self, manager: controlsurface.manager.MidiManager, host: str = "0.0.0.0", port: int = 8765, interval: float = 0.1) -> None:

		self.manager = manager
		self.host = host
		self.port = port
		self.interval = interval

		self._ws_server: typing.Optional[websockets.asyncio.server.Server] = None
		self._broadcast_task: typing.Optional[asyncio.Task] = None
		self._clients: typing.Set[websockets.asyncio.server.ServerConnection] = set()

		self._subscriptions: typing.List[typing.Tuple[str, typing.Callable[..., None]]] = [
			("program_change", self._on_program_change),
			("learn_start", self._on_learn_start),
			("learn_cancel", self._on_learn_cancel),
			("learn_complete", self._on_learn_complete),
		]


	async def start (self) -> None:

		"""Start serving and subscribe to manager notifications."""

		self._ws_server = await websockets.asyncio.server.serve(self._handle_client, self.host, self.port)

		# Report the real port when 0 was requested.
		sockets = list(self._ws_server.sockets)

		if sockets:
			self.port = sockets[0].getsockname()[1]

		for event_name, callback in self._subscriptions:
			self.manager.on(event_name, callback)

		self._broadcast_task = asyncio.create_task(self._broadcast_loop())
		logger.info(f"Status feed on ws://{self.host}:{self.port}")


	async def stop (self) -> None:

		if self._broadcast_task:
			self._broadcast_task.cancel()
			self._broadcast_task = None

		if self._ws_server:
			for event_name, callback in self._subscriptions:
				self.manager.off(event_name, callback)

			self._ws_server.close()
			await self._ws_server.wait_closed()
			self._ws_server = None


	# ParameterSink

	def set_params (self, params: typing.Dict[str, controlsurface.parameters.ParameterValue]) -> None:

		self.broadcast({
			"type": "params",
			"params": {name: dataclasses.asdict(value) for name, value in params.items()},
		})


	def broadcast (self, payload: typing.Dict[str, typing.Any]) -> None:

		"""Send one JSON document to every connected client."""

		if not self._clients:
			return

		websockets.asyncio.server.broadcast(self._clients, json.dumps(payload))


	def get_state (self) -> typing.Dict[str, typing.Any]:

		manager = self.manager
		data = manager.get_data()

		return {
			"type": "state",
			"state": manager.get_state().value,
			"devices": [dataclasses.asdict(port) for port in manager.get_devices()],
			"channel_filter": manager.get_channel_filter(),
			"learn": {
				"state": manager.get_learn_state().value,
				"active": manager.get_active_learning(),
			},
			"assignments": [dataclasses.asdict(a) for a in manager.get_assignments()],
			"mappings": [dataclasses.asdict(m) for m in manager.get_cc_mappings()],
			"data": {
				"cc": data.cc,
				"program_change": data.program_change,
				"clock": data.clock,
			},
		}


	def handle_command (self, message: typing.Union[str, bytes]) -> typing.Dict[str, typing.Any]:

		"""Apply one client command and return the reply document."""

		try:
			command = json.loads(message)
		except (TypeError, ValueError):
			return {"type": "error", "message": "Command must be JSON"}

		if not isinstance(command, dict):
			return {"type": "error", "message": "Command must be a JSON object"}

		action = command.get("action")
		parameter = command.get("parameter")

		if action == "state":
			return self.get_state()

		if action == "cancel":
			self.manager.cancel_learning()

		elif action in ("learn", "remove", "invert"):

			if not isinstance(parameter, str) or not parameter:
				return {"type": "error", "message": f"'{action}' needs a parameter name"}

			if action == "learn":
				self.manager.start_learning(parameter)
			elif action == "remove":
				self.manager.remove_learn_assignment(parameter)
			elif not self.manager.set_learn_inverted(parameter, bool(command.get("inverted", True))):
				return {"type": "error", "message": f"No assignment for {parameter!r}"}

		elif action == "channel":

			try:
				self.manager.set_channel_filter(command.get("filter"))
			except ValueError as e:
				return {"type": "error", "message": str(e)}

		else:
			return {"type": "error", "message": f"Unknown action {action!r}"}

		return {"type": "ack", "action": action}


	async def _handle_client (self, websocket: websockets.asyncio.server.ServerConnection) -> None:

		self._clients.add(websocket)

		try:
			await websocket.send(json.dumps(self.get_state()))

			async for message in websocket:
				await websocket.send(json.dumps(self.handle_command(message)))

		except websockets.exceptions.ConnectionClosed:
			pass

		finally:
			self._clients.discard(websocket)


	async def _broadcast_loop (self) -> None:

		while True:
			await asyncio.sleep(self.interval)

			if not self._clients:
				continue

			try:
				self.broadcast(self.get_state())
			except Exception:
				logger.exception("Error broadcasting MIDI state")


	def _on_program_change (self, program: int) -> None:

		self.broadcast({"type": "program_change", "program": program})


	def _on_learn_start (self, parameter_name: str) -> None:

		self.broadcast({"type": "learn", "event": "start", "parameter": parameter_name})


	def _on_learn_cancel (self, parameter_name: str) -> None:

		self.broadcast({"type": "learn", "event": "cancel", "parameter": parameter_name})


	def _on_learn_complete (self, assignment: controlsurface.learn.LearnAssignment) -> None:

		self.broadcast({
			"type": "learn",
			"event": "complete",
			"parameter": assignment.parameter_name,
			"assignment": dataclasses.asdict(assignment),
		})
