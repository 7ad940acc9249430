"""Application configuration loaded from YAML.

Example ``config.yaml``::

	midi:
	  sysex: false
	  channel_filter: all        # all | off | 0-15
	  inputs: ["Arturia BeatStep"]   # omit to open every input
	  output: "Arturia BeatStep"
	  rescan_interval: 1.0

	mappings:
	  - {channel: 0, cc: 1, parameter: gravity, min: 0, max: 10}

	parameters:
	  gravity: {min: 0, max: 10, step: 0.1}
	  noise_intensity: {min: 0, max: 1}

	web_ui:
	  enabled: true
	  host: 0.0.0.0
	  port: 8765
	  interval: 0.1

	logging:
	  level: INFO

Every section is optional.
"""

import dataclasses
import logging
import os
import typing

import yaml

import controlsurface.manager
import controlsurface.mapping
import controlsurface.parameters


logger = logging.getLogger(__name__)


class ConfigError (ValueError):

	"""The configuration file is malformed."""


@dataclasses.dataclass
class MidiConfig:

	sysex: bool = False
	channel_filter: controlsurface.manager.ChannelFilter = controlsurface.manager.CHANNEL_FILTER_ALL
	inputs: typing.Optional[typing.List[str]] = None
	output: typing.Optional[str] = None
	rescan_interval: float = 1.0


@dataclasses.dataclass
class WebUiConfig:

	enabled: bool = False
	host: str = "0.0.0.0"
	port: int = 8765
	interval: float = 0.1


@dataclasses.dataclass
class Config:

	midi: MidiConfig = dataclasses.field(default_factory=MidiConfig)
	mappings: typing.List[controlsurface.mapping.ControlChangeMapping] = dataclasses.field(default_factory=list)
	parameters: typing.Dict[str, controlsurface.parameters.ParameterMeta] = dataclasses.field(default_factory=dict)
	web_ui: WebUiConfig = dataclasses.field(default_factory=WebUiConfig)
	log_level: str = "INFO"

	def param_meta (self, parameter_name: str) -> typing.Optional[controlsurface.parameters.ParameterMeta]:

		"""Metadata provider backed by the ``parameters`` section."""

		return self.parameters.get(parameter_name)


def load_config (config_path: str = "config.yaml") -> Config:

	"""
	Load configuration from a YAML file.

	A missing file is not an error: defaults are returned and a warning is
	logged.  Malformed content raises :class:`ConfigError`.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return Config()

	with open(config_path, "r") as f:
		try:
			data = yaml.safe_load(f)
		except yaml.YAMLError as e:
			raise ConfigError(f"Could not parse {config_path}: {e}") from e

	return parse_config(data or {})


def parse_config (data: typing.Dict[str, typing.Any]) -> Config:

	"""Build a :class:`Config` from already-parsed YAML."""

	if not isinstance(data, dict):
		raise ConfigError("Config root must be a mapping")

	return Config(
		midi = _parse_midi(_section(data, "midi")),
		mappings = _parse_mappings(data.get("mappings") or []),
		parameters = _parse_parameters(_section(data, "parameters")),
		web_ui = _parse_web_ui(_section(data, "web_ui")),
		log_level = _parse_log_level(_section(data, "logging"))
	)


def _section (data: typing.Dict[str, typing.Any], name: str) -> typing.Dict[str, typing.Any]:

	section = data.get(name) or {}

	if not isinstance(section, dict):
		raise ConfigError(f"'{name}' must be a mapping")

	return section


def _parse_log_level (section: typing.Dict[str, typing.Any]) -> str:

	level = str(section.get("level", "INFO")).upper()

	# getLevelName maps known names to ints and anything else to a string.
	if not isinstance(logging.getLevelName(level), int):
		raise ConfigError(f"Unknown 'logging.level': {level!r}")

	return level


def _flag (section: typing.Dict[str, typing.Any], key: str, name: str) -> bool:

	value = section.get(key, False)

	if not isinstance(value, bool):
		raise ConfigError(f"'{name}' must be true or false, not {value!r}")

	return value


def _parse_midi (section: typing.Dict[str, typing.Any]) -> MidiConfig:

	try:
		channel_filter = controlsurface.manager.parse_channel_filter(section.get("channel_filter", controlsurface.manager.CHANNEL_FILTER_ALL))
	except ValueError as e:
		raise ConfigError(str(e)) from e

	inputs = section.get("inputs")

	if inputs is not None and not isinstance(inputs, list):
		raise ConfigError("'midi.inputs' must be a list of port names")

	try:
		rescan_interval = float(section.get("rescan_interval", 1.0))
	except (TypeError, ValueError) as e:
		raise ConfigError(f"Invalid 'midi.rescan_interval': {e}") from e

	if rescan_interval <= 0:
		raise ConfigError("'midi.rescan_interval' must be positive")

	return MidiConfig(
		sysex = _flag(section, "sysex", "midi.sysex"),
		channel_filter = channel_filter,
		inputs = [str(name) for name in inputs] if inputs is not None else None,
		output = section.get("output"),
		rescan_interval = rescan_interval
	)


def _parse_mappings (entries: typing.Any) -> typing.List[controlsurface.mapping.ControlChangeMapping]:

	if not isinstance(entries, list):
		raise ConfigError("'mappings' must be a list")

	mappings = []

	for i, entry in enumerate(entries):

		if not isinstance(entry, dict):
			raise ConfigError(f"mappings[{i}] must be a mapping")

		try:
			mappings.append(controlsurface.mapping.ControlChangeMapping(
				channel = int(entry.get("channel", 0)),
				cc_number = int(entry["cc"]),
				parameter_path = str(entry["parameter"]),
				min = float(entry.get("min", 0.0)),
				max = float(entry.get("max", 1.0))
			))
		except KeyError as e:
			raise ConfigError(f"mappings[{i}] is missing {e}") from e
		except (TypeError, ValueError) as e:
			raise ConfigError(f"mappings[{i}]: {e}") from e

	return mappings


def _parse_parameters (section: typing.Dict[str, typing.Any]) -> typing.Dict[str, controlsurface.parameters.ParameterMeta]:

	parameters = {}

	for name, entry in section.items():

		if not isinstance(entry, dict):
			raise ConfigError(f"parameters.{name} must be a mapping")

		try:
			meta = controlsurface.parameters.ParameterMeta(
				min = float(entry.get("min", 0.0)),
				max = float(entry.get("max", 1.0)),
				step = float(entry.get("step", 0.01))
			)
		except (TypeError, ValueError) as e:
			raise ConfigError(f"parameters.{name}: {e}") from e

		if meta.min > meta.max:
			raise ConfigError(f"parameters.{name}: min {meta.min} is greater than max {meta.max}")

		parameters[str(name)] = meta

	return parameters


def _parse_web_ui (section: typing.Dict[str, typing.Any]) -> WebUiConfig:

	try:
		return WebUiConfig(
			enabled = _flag(section, "enabled", "web_ui.enabled"),
			host = str(section.get("host", "0.0.0.0")),
			port = int(section.get("port", 8765)),
			interval = float(section.get("interval", 0.1))
		)
	except (TypeError, ValueError) as e:
		raise ConfigError(f"Invalid 'web_ui' section: {e}") from e
