# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Binding Table: named value slots, their declaring region and ownership state.

A binding is Live, Moved, PartiallyMoved (field-granular) or Uninit (declared
with `let x;` and not assigned yet). Field-granular state is tracked as a set
of moved *paths* (`("a",)`, `("inner", "b")`): a path is unreadable when it or
one of its prefixes was moved, and a container is unreadable as a whole when
anything below it was moved.

The active-borrow multiset of each binding lives on the binding itself so that
move/drop checks can see it; `BorrowTracker` is the only writer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Union

from regionck.core.errors import (
	CannotMoveBorrowed,
	ConflictingBorrow,
	DanglingAfterDrop,
	UseAfterMove,
	UseOfPartiallyMoved,
)
from regionck.core.lifetimes import Lifetime, RegionId
from regionck.core.span import Span
from regionck.core.types_core import Ty

BindingId = int
BorrowId = int
# Where a reference value came from: a borrow issued in this fragment, or a
# symbolic lifetime of the enclosing signature ('static included).
Origin = Union[BorrowId, Lifetime]
FieldPath = Tuple[str, ...]


class BindingState(Enum):
	LIVE = auto()
	MOVED = auto()
	PARTIALLY_MOVED = auto()
	UNINIT = auto()


@dataclass
class Binding:
	id: BindingId
	name: str
	region: RegionId
	ty: Optional[Ty]
	state: BindingState = BindingState.LIVE
	mutable: bool = False
	moved_fields: Set[FieldPath] = field(default_factory=set)
	# Fields copied out by destructuring while the container stayed whole.
	copied_fields: Set[str] = field(default_factory=set)
	# Multiset of outstanding borrows of this binding (list, one entry per borrow).
	active_borrows: List[BorrowId] = field(default_factory=list)
	# Origins per lifetime position of the held value.
	slots: Tuple[FrozenSet[Origin], ...] = ()
	# Borrows captured by a closure value held in this binding.
	captures: FrozenSet[Origin] = frozenset()
	closure: Optional[object] = None
	declared_at: Span = field(default_factory=Span)
	dropped: bool = False

	def held_borrows(self) -> Set[BorrowId]:
		"""Borrow ids this binding keeps alive through its value."""
		held: Set[BorrowId] = set()
		for slot in self.slots:
			held.update(o for o in slot if isinstance(o, int))
		held.update(o for o in self.captures if isinstance(o, int))
		return held


def _fmt_path(name: str, path: FieldPath) -> str:
	return ".".join((name,) + tuple(path))


class BindingTable:
	"""All bindings of one fragment analysis, in declaration order."""

	def __init__(self) -> None:
		self._bindings: Dict[BindingId, Binding] = {}

	def __iter__(self):
		return iter(self._bindings.values())

	def __len__(self) -> int:
		return len(self._bindings)

	def get(self, binding: BindingId) -> Binding:
		try:
			return self._bindings[binding]
		except KeyError:
			raise AssertionError(f"unknown binding id {binding}") from None

	def declare(
		self,
		name: str,
		region: RegionId,
		ty: Optional[Ty],
		*,
		mutable: bool = False,
		initialized: bool = True,
		span: Optional[Span] = None,
	) -> BindingId:
		bid = len(self._bindings)
		self._bindings[bid] = Binding(
			id=bid,
			name=name,
			region=region,
			ty=ty,
			state=BindingState.LIVE if initialized else BindingState.UNINIT,
			mutable=mutable,
			declared_at=span or Span(),
		)
		return bid

	def bindings_in(self, region: RegionId) -> List[Binding]:
		return [b for b in self._bindings.values() if b.region == region and not b.dropped]

	def read(self, binding: BindingId, path: Iterable[str] = ()) -> None:
		"""
		Check that `binding` (or the field at `path`) can be read.

		Reading a moved field, or anything inside it, is a use after move; reading
		a container of a moved field is a use of a partially moved value.
		"""
		b = self.get(binding)
		path = tuple(path)
		if b.state is BindingState.UNINIT:
			raise UseAfterMove(
				f"used binding `{b.name}` before initialization",
				bindings=[b.name],
				regions=[b.region],
			)
		if b.state is BindingState.MOVED:
			raise UseAfterMove(
				f"use of moved value: `{_fmt_path(b.name, path)}`",
				bindings=[b.name],
				regions=[b.region],
			)
		for moved in sorted(b.moved_fields):
			if path[: len(moved)] == moved:
				raise UseAfterMove(
					f"use of moved value: `{_fmt_path(b.name, moved)}`",
					bindings=[b.name],
					regions=[b.region],
				)
			if moved[: len(path)] == path:
				raise UseOfPartiallyMoved(
					f"use of partially moved value: `{_fmt_path(b.name, path)}` "
					f"(field `{'.'.join(moved)}` was moved)",
					field=".".join(moved),
					bindings=[b.name],
					regions=[b.region],
				)

	def move_out(self, binding: BindingId) -> None:
		"""Live -> Moved. Fails while any borrow of the binding is outstanding."""
		b = self.get(binding)
		if b.state is BindingState.PARTIALLY_MOVED:
			field = ".".join(sorted(b.moved_fields)[0])
			raise UseOfPartiallyMoved(
				f"use of partially moved value: `{b.name}` (field `{field}` was moved)",
				field=field,
				bindings=[b.name],
				regions=[b.region],
			)
		self.read(binding)
		if b.active_borrows:
			raise CannotMoveBorrowed(
				f"cannot move out of `{b.name}` because it is borrowed",
				bindings=[b.name],
				regions=[b.region],
			)
		b.state = BindingState.MOVED

	def partial_move(self, binding: BindingId, fld: Union[str, FieldPath]) -> None:
		"""Live -> PartiallyMoved, tracking the moved field path."""
		b = self.get(binding)
		path: FieldPath = (fld,) if isinstance(fld, str) else tuple(fld)
		if not path:
			self.move_out(binding)
			return
		self.read(binding, path)
		if b.active_borrows:
			raise CannotMoveBorrowed(
				f"cannot move out of `{_fmt_path(b.name, path)}` because `{b.name}` is borrowed",
				bindings=[b.name],
				regions=[b.region],
			)
		b.moved_fields.add(path)
		b.state = BindingState.PARTIALLY_MOVED

	def assign(self, binding: BindingId, path: Iterable[str] = ()) -> None:
		"""(Re)initialize the binding or one of its fields."""
		b = self.get(binding)
		path = tuple(path)
		if b.active_borrows:
			raise ConflictingBorrow(
				f"cannot assign to `{_fmt_path(b.name, path)}` because it is borrowed",
				bindings=[b.name],
				regions=[b.region],
			)
		if not path:
			b.state = BindingState.LIVE
			b.moved_fields.clear()
			b.copied_fields.clear()
			return
		if b.state in (BindingState.UNINIT, BindingState.MOVED):
			raise UseAfterMove(
				f"assigned to field of `{b.name}`, which is not initialized",
				bindings=[b.name],
				regions=[b.region],
			)
		b.moved_fields = {m for m in b.moved_fields if m[: len(path)] != path}
		if not b.moved_fields:
			b.state = BindingState.LIVE

	def drop(self, binding: BindingId) -> None:
		"""Destroy the binding; a normal drop unless a borrow of it is outstanding."""
		b = self.get(binding)
		if b.active_borrows:
			raise DanglingAfterDrop(
				f"`{b.name}` dropped while still borrowed",
				bindings=[b.name],
				regions=[b.region],
			)
		b.dropped = True

	def drop_region(self, region: RegionId) -> List[BindingId]:
		"""Drop every binding declared in `region`, in reverse declaration order."""
		dropped = []
		for b in reversed(self.bindings_in(region)):
			self.drop(b.id)
			dropped.append(b.id)
		return dropped


__all__ = [
	"Binding",
	"BindingId",
	"BindingState",
	"BindingTable",
	"BorrowId",
	"FieldPath",
	"Origin",
]
