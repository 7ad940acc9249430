import argparse
import asyncio
import logging
import sys
import typing

import mido

import controlsurface.config
import controlsurface.host
import controlsurface.manager
import controlsurface.web_ui


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_manager (config: controlsurface.config.Config, host: "controlsurface.host.MidiHost") -> controlsurface.manager.MidiManager:

	"""
	Create a manager wired up from configuration.
	"""

	manager = controlsurface.manager.MidiManager(
		host,
		param_meta_fn = config.param_meta,
		input_names = config.midi.inputs,
		output_names = [config.midi.output] if config.midi.output else None
	)

	manager.set_channel_filter(config.midi.channel_filter)

	for mapping in config.mappings:
		manager.add_cc_mapping(mapping)

	manager.on("parameter_change", lambda name, value: logger.debug(f"{name} = {value:.4f}"))
	manager.on("learn_complete", lambda a: logger.info(f"Learned {a.parameter_name}: Ch{a.channel} CC{a.cc_number}"))

	return manager


def list_ports () -> None:

	"""Print the port names mido can see."""

	print("Inputs:")
	for name in mido.get_input_names():
		print(f"  {name}")

	print("Outputs:")
	for name in mido.get_output_names():
		print(f"  {name}")


async def run (config: controlsurface.config.Config) -> bool:

	"""
	Run until cancelled.  Returns False if MIDI could not be started.
	"""

	host = controlsurface.host.MidoHost()
	manager = build_manager(config, host)
	feed: typing.Optional[controlsurface.web_ui.StatusFeed] = None

	if config.web_ui.enabled:
		feed = controlsurface.web_ui.StatusFeed(manager, config.web_ui.host, config.web_ui.port, config.web_ui.interval)
		manager.set_parameter_sink(feed)
		await feed.start()

	watcher: typing.Optional[asyncio.Task] = None

	try:

		if not await manager.initialize(request_sysex=config.midi.sysex):
			logger.error(f"MIDI could not be started (state: {manager.get_state().value})")
			return False

		for port in manager.get_devices():
			logger.info(f"{port.direction.value}: {port.name}")

		watcher = asyncio.create_task(host.watch(config.midi.rescan_interval))

		await asyncio.Event().wait()

	finally:

		if watcher is not None:
			watcher.cancel()

		manager.stop()

		if feed is not None:
			await feed.stop()

	return True


def main (argv: typing.Optional[typing.List[str]] = None) -> int:

	"""
	Main entry point for the controlsurface application.
	"""

	parser = argparse.ArgumentParser(description="MIDI control surface bridge")
	parser.add_argument("--config", default="config.yaml", help="YAML config file (default: config.yaml)")
	parser.add_argument("--list-ports", action="store_true", help="List MIDI ports and exit")
	args = parser.parse_args(argv)

	if args.list_ports:
		list_ports()
		return 0

	try:
		config = controlsurface.config.load_config(args.config)
	except controlsurface.config.ConfigError as e:
		logger.error(str(e))
		return 1

	logging.getLogger().setLevel(config.log_level)

	logger.info("Controlsurface starting...")

	try:
		ok = asyncio.run(run(config))
	except KeyboardInterrupt:
		logger.info("Stopping...")
		ok = True

	return 0 if ok else 1


if __name__ == "__main__":
	sys.exit(main())
