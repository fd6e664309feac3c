# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Binding table ownership states: moves, partial moves, reassignment."""

import pytest

from regionck.bindings import BindingState, BindingTable
from regionck.core.errors import (
	CannotMoveBorrowed,
	ConflictingBorrow,
	DanglingAfterDrop,
	UseAfterMove,
	UseOfPartiallyMoved,
)
from regionck.core.types_core import OwnedTy

STRING = OwnedTy("String")


def test_move_then_read_is_use_after_move():
	table = BindingTable()
	x = table.declare("x", 1, STRING)
	table.move_out(x)
	assert table.get(x).state is BindingState.MOVED
	with pytest.raises(UseAfterMove) as exc:
		table.read(x)
	assert exc.value.bindings == ["x"]


def test_double_move_is_use_after_move():
	table = BindingTable()
	x = table.declare("x", 1, STRING)
	table.move_out(x)
	with pytest.raises(UseAfterMove):
		table.move_out(x)


def test_uninitialized_read_is_use_after_move():
	table = BindingTable()
	x = table.declare("x", 1, STRING, initialized=False)
	assert table.get(x).state is BindingState.UNINIT
	with pytest.raises(UseAfterMove, match="before initialization"):
		table.read(x)
	table.assign(x)
	table.read(x)


def test_partial_move_blocks_field_and_whole_but_not_siblings():
	table = BindingTable()
	p = table.declare("p", 1, OwnedTy("Pair"))
	table.partial_move(p, "a")
	assert table.get(p).state is BindingState.PARTIALLY_MOVED
	table.read(p, ("b",))
	with pytest.raises(UseAfterMove):
		table.read(p, ("a",))
	with pytest.raises(UseAfterMove):
		table.read(p, ("a", "inner"))
	with pytest.raises(UseOfPartiallyMoved) as exc:
		table.read(p)
	assert exc.value.field == "a"
	with pytest.raises(UseOfPartiallyMoved):
		table.move_out(p)


def test_reassigning_moved_field_restores_live():
	table = BindingTable()
	p = table.declare("p", 1, OwnedTy("Pair"))
	table.partial_move(p, "a")
	table.assign(p, ("a",))
	assert table.get(p).state is BindingState.LIVE
	table.read(p)


def test_reassigning_whole_binding_clears_moves():
	table = BindingTable()
	x = table.declare("x", 1, STRING)
	table.move_out(x)
	table.assign(x)
	assert table.get(x).state is BindingState.LIVE
	table.read(x)


def test_field_assignment_to_moved_binding_is_rejected():
	table = BindingTable()
	p = table.declare("p", 1, OwnedTy("Pair"))
	table.move_out(p)
	with pytest.raises(UseAfterMove):
		table.assign(p, ("a",))


def test_move_and_assign_fail_while_borrowed():
	table = BindingTable()
	x = table.declare("x", 1, STRING)
	table.get(x).active_borrows.append(0)
	with pytest.raises(CannotMoveBorrowed):
		table.move_out(x)
	with pytest.raises(CannotMoveBorrowed):
		table.partial_move(x, "a")
	with pytest.raises(ConflictingBorrow):
		table.assign(x)


def test_drop_region_drops_in_reverse_order():
	table = BindingTable()
	a = table.declare("a", 1, STRING)
	b = table.declare("b", 1, STRING)
	c = table.declare("c", 2, STRING)
	assert table.drop_region(1) == [b, a]
	assert table.bindings_in(1) == []
	assert [x.id for x in table.bindings_in(2)] == [c]


def test_drop_while_borrowed_dangles():
	table = BindingTable()
	x = table.declare("x", 1, STRING)
	table.get(x).active_borrows.append(3)
	with pytest.raises(DanglingAfterDrop):
		table.drop(x)


def test_unknown_binding_is_an_internal_error():
	with pytest.raises(AssertionError):
		BindingTable().get(7)
