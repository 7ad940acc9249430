import pytest

import controlsurface.mapping


def _mapping (channel: int = 0, cc: int = 1, path: str = "gravity", lo: float = 0.0, hi: float = 10.0) -> controlsurface.mapping.ControlChangeMapping:

	return controlsurface.mapping.ControlChangeMapping(channel, cc, path, lo, hi)


def test_resolve_scales_into_range () -> None:

	"""0.0 gives min, 1.0 gives max, 0.5 gives the midpoint."""

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping(lo=0.0, hi=10.0))

	assert table.resolve(0, 1, 0.0) == 0.0
	assert table.resolve(0, 1, 1.0) == 10.0
	assert table.resolve(0, 1, 0.5) == pytest.approx(5.0)


def test_resolve_unmapped_returns_none () -> None:

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping())

	assert table.resolve(0, 2, 0.5) is None
	assert table.resolve(1, 1, 0.5) is None


def test_resolve_records_current_value () -> None:

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping(lo=-1.0, hi=1.0))

	table.resolve(0, 1, 0.25)

	assert table.get(0, 1).current_value == pytest.approx(-0.5)


def test_add_is_idempotent_per_key () -> None:

	"""Re-adding a key replaces the binding; the table never holds duplicates."""

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping(path="gravity"))
	table.add_or_update(_mapping(path="gravity"))
	table.add_or_update(_mapping(path="speed", lo=0.0, hi=2.0))

	assert len(table) == 1
	assert table.get(0, 1).parameter_path == "speed"
	assert table.resolve(0, 1, 1.0) == 2.0


def test_replaced_key_keeps_position () -> None:

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping(cc=1, path="a"))
	table.add_or_update(_mapping(cc=2, path="b"))
	table.add_or_update(_mapping(cc=1, path="c"))

	assert [m.parameter_path for m in table.list_all()] == ["c", "b"]


def test_same_cc_on_different_channels_is_distinct () -> None:

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping(channel=0, path="a"))
	table.add_or_update(_mapping(channel=1, path="b"))

	assert len(table) == 2


def test_remove_and_remove_missing () -> None:

	table = controlsurface.mapping.CcMappingTable()
	table.add_or_update(_mapping())

	table.remove(0, 1)
	table.remove(0, 1)

	assert len(table) == 0
	assert (0, 1) not in table


def test_table_stores_copies () -> None:

	"""Mutating the caller's object or a returned copy does not change the table."""

	table = controlsurface.mapping.CcMappingTable()
	mapping = _mapping()
	table.add_or_update(mapping)

	mapping.parameter_path = "changed"
	table.list_all()[0].parameter_path = "changed"

	assert table.get(0, 1).parameter_path == "gravity"


def test_min_greater_than_max_rejected () -> None:

	with pytest.raises(ValueError):
		_mapping(lo=5.0, hi=1.0)


@pytest.mark.parametrize("channel,cc", [(-1, 0), (16, 0), (0, -1), (0, 128)])
def test_out_of_range_control_rejected (channel: int, cc: int) -> None:

	with pytest.raises(ValueError):
		_mapping(channel=channel, cc=cc)


def test_snapshot_key () -> None:

	assert controlsurface.mapping.snapshot_key(2, 74) == "2:74"
