# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Borrow Tracker: outstanding borrows per binding and the exclusivity rule.

For a given binding, at every program point, the active multiset is either
zero or more shared borrows or exactly one exclusive borrow. Taking an
exclusive borrow while anything is active, or a shared borrow while an
exclusive one is active, is a `ConflictingBorrow`.

Borrows are not released at block exit. The body pass calls `release_unused`
before every step with the set of borrows still held by a binding that has a
later use, so a borrow's outstanding interval ends at its last use.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional, Set

from regionck.bindings import BindingId, BindingTable, BorrowId
from regionck.core.errors import ConflictingBorrow, UseAfterMove
from regionck.core.lifetimes import Lifetime, RegionId
from regionck.core.types_core import Mutability


class LoanKind(Enum):
	SHARED = auto()
	EXCLUSIVE = auto()


@dataclass
class Borrow:
	id: BorrowId
	binding: BindingId
	kind: LoanKind
	lifetime: Lifetime
	region: RegionId
	issued_at: Optional[int] = None
	released_at: Optional[int] = None

	@property
	def mutability(self) -> Mutability:
		return Mutability.EXCLUSIVE if self.kind is LoanKind.EXCLUSIVE else Mutability.SHARED

	@property
	def active(self) -> bool:
		return self.released_at is None


class BorrowTracker:
	"""Issues and releases borrows of bindings held in a `BindingTable`."""

	def __init__(self, bindings: BindingTable) -> None:
		self.bindings = bindings
		self._borrows: Dict[BorrowId, Borrow] = {}

	def __iter__(self):
		return iter(self._borrows.values())

	def get(self, borrow: BorrowId) -> Borrow:
		try:
			return self._borrows[borrow]
		except KeyError:
			raise AssertionError(f"unknown borrow id {borrow}") from None

	def active(self, binding: BindingId) -> List[Borrow]:
		return [self._borrows[b] for b in self.bindings.get(binding).active_borrows]

	def all_active(self) -> List[Borrow]:
		return [b for b in self._borrows.values() if b.active]

	def borrow_shared(self, binding: BindingId, region: RegionId, at: Optional[int] = None) -> BorrowId:
		b = self.bindings.get(binding)
		for loan in self.active(binding):
			if loan.kind is LoanKind.EXCLUSIVE:
				raise ConflictingBorrow(
					f"cannot borrow `{b.name}` as shared because it is also borrowed as exclusive",
					bindings=[b.name],
					regions=[region, loan.region],
				)
		return self._issue(binding, LoanKind.SHARED, region, at)

	def borrow_exclusive(self, binding: BindingId, region: RegionId, at: Optional[int] = None) -> BorrowId:
		b = self.bindings.get(binding)
		active = self.active(binding)
		if active:
			what = "exclusive" if active[0].kind is LoanKind.EXCLUSIVE else "shared"
			raise ConflictingBorrow(
				f"cannot borrow `{b.name}` as exclusive because it is also borrowed as {what}",
				bindings=[b.name],
				regions=[region] + [loan.region for loan in active],
			)
		return self._issue(binding, LoanKind.EXCLUSIVE, region, at)

	def borrow(self, binding: BindingId, mutability: Mutability, region: RegionId, at: Optional[int] = None) -> BorrowId:
		if mutability is Mutability.EXCLUSIVE:
			return self.borrow_exclusive(binding, region, at)
		return self.borrow_shared(binding, region, at)

	def _issue(self, binding: BindingId, kind: LoanKind, region: RegionId, at: Optional[int]) -> BorrowId:
		b = self.bindings.get(binding)
		if b.dropped:
			raise UseAfterMove(f"borrow of dropped value: `{b.name}`", bindings=[b.name], regions=[b.region])
		bid = len(self._borrows)
		self._borrows[bid] = Borrow(
			id=bid,
			binding=binding,
			kind=kind,
			lifetime=Lifetime.concrete(b.region),
			region=region,
			issued_at=at,
		)
		b.active_borrows.append(bid)
		return bid

	def release(self, borrow: BorrowId, at: Optional[int] = None) -> None:
		"""Remove exactly one entry from the owning binding's multiset."""
		loan = self.get(borrow)
		if not loan.active:
			raise AssertionError(f"borrow {borrow} released twice")
		self.bindings.get(loan.binding).active_borrows.remove(borrow)
		loan.released_at = at

	def release_unused(self, live: Iterable[BorrowId], at: Optional[int] = None) -> List[BorrowId]:
		"""Release every active borrow that is not in `live`."""
		keep: Set[BorrowId] = set(live)
		released = []
		for loan in self.all_active():
			if loan.id not in keep:
				self.release(loan.id, at)
				released.append(loan.id)
		return released


__all__ = ["Borrow", "BorrowTracker", "LoanKind"]
