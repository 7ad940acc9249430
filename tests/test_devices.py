import pytest

import conftest
import controlsurface.devices


CONNECTED = controlsurface.devices.ConnectionState.CONNECTED
DISCONNECTED = controlsurface.devices.ConnectionState.DISCONNECTED


def _registry (host: conftest.FakeHost) -> controlsurface.devices.DeviceRegistry:

	registry = controlsurface.devices.DeviceRegistry(host)

	for port in host.list_ports():
		registry.register(port)

	return registry


def _noop (port_id: str, data: list) -> None:

	return None


def test_register_lists_in_discovery_order (host: conftest.FakeHost) -> None:

	registry = _registry(host)

	assert [p.id for p in registry.list_ports()] == ["in-1", "out-1"]
	assert registry.get("in-1").name == "Keyboard 1"
	assert registry.get("missing") is None


@pytest.mark.asyncio
async def test_open_input_is_idempotent (host: conftest.FakeHost) -> None:

	registry = _registry(host)

	assert await registry.open_input("in-1", _noop) is True
	assert await registry.open_input("in-1", _noop) is True
	assert registry.is_open("in-1")


@pytest.mark.asyncio
async def test_open_unknown_or_wrong_direction_fails (host: conftest.FakeHost) -> None:

	registry = _registry(host)

	assert await registry.open_input("nope", _noop) is False
	assert await registry.open_input("out-1", _noop) is False
	assert await registry.open_output("in-1") is False


@pytest.mark.asyncio
async def test_open_input_requires_listener (host: conftest.FakeHost) -> None:

	registry = _registry(host)

	with pytest.raises(TypeError):
		await registry.open_input("in-1", None)


@pytest.mark.asyncio
async def test_host_open_failure_returns_false (host: conftest.FakeHost) -> None:

	host.fail_open.add("out-1")
	registry = _registry(host)

	assert await registry.open_output("out-1") is False
	assert not registry.is_open("out-1")


@pytest.mark.asyncio
async def test_disconnect_keeps_record_and_closes (host: conftest.FakeHost) -> None:

	"""An unplugged device is marked disconnected, not removed."""

	registry = _registry(host)
	changes: list = []
	registry.events.on("device_change", changes.append)

	await registry.open_input("in-1", _noop)
	port = registry.get("in-1")
	registry.on_hotplug(port, DISCONNECTED)

	assert registry.get("in-1").connection_state == DISCONNECTED
	assert not registry.is_open("in-1")
	assert "in-1" in host.closed_ports
	assert len(changes) == 1
	assert [p.id for p in changes[0]] == ["in-1", "out-1"]


@pytest.mark.asyncio
async def test_disconnected_port_cannot_open_until_reconnected (host: conftest.FakeHost) -> None:

	registry = _registry(host)
	port = registry.get("in-1")

	registry.on_hotplug(port, DISCONNECTED)
	assert await registry.open_input("in-1", _noop) is False

	registry.on_hotplug(port, CONNECTED)
	assert registry.get("in-1").connected
	assert await registry.open_input("in-1", _noop) is True


def test_hotplug_new_port_appends (host: conftest.FakeHost) -> None:

	registry = _registry(host)
	new_port = controlsurface.devices.Port(id="in-2", name="Pads", direction=controlsurface.devices.PortDirection.INPUT)

	registry.on_hotplug(new_port, CONNECTED)

	assert [p.id for p in registry.list_ports()] == ["in-1", "out-1", "in-2"]


def test_list_ports_returns_copies (host: conftest.FakeHost) -> None:

	registry = _registry(host)

	registry.list_ports()[0].name = "changed"

	assert registry.get("in-1").name == "Keyboard 1"


@pytest.mark.asyncio
async def test_clear_closes_and_forgets (host: conftest.FakeHost) -> None:

	registry = _registry(host)
	await registry.open_input("in-1", _noop)
	await registry.open_output("out-1")

	registry.clear()

	assert registry.list_ports() == []
	assert registry.open_port_ids() == []
	assert host.closed_ports == ["in-1", "out-1"]
