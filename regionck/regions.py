# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Region Model: nested lexical extents as a tree.

Region 0 is the program scope (the root). A region opens when a block or a
function body opens and closes when it closes; once closed it is invalid for
further borrow checks. Extents of regions that are not ancestor/descendant of
each other are ordered by the sibling index at the point where their paths
from the root diverge.

Misuse by the caller (closing out of order, closing twice, opening under a
closed parent) is a `RegionContractViolation`, never a diagnostic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional

from regionck.core.errors import RegionContractViolation
from regionck.core.lifetimes import RegionId

ROOT_REGION: RegionId = 0


class Extent(Enum):
	A_CONTAINS_B = auto()
	B_CONTAINS_A = auto()
	DISJOINT = auto()


@dataclass
class Region:
	id: RegionId
	parent: Optional[RegionId]
	index: int
	depth: int
	children: List[RegionId] = field(default_factory=list)
	closed: bool = False
	opened_at: Optional[int] = None
	closed_at: Optional[int] = None


class RegionTree:
	"""Owns every region of one fragment analysis."""

	def __init__(self) -> None:
		self._regions: Dict[RegionId, Region] = {
			ROOT_REGION: Region(id=ROOT_REGION, parent=None, index=0, depth=0, opened_at=0)
		}

	@property
	def root(self) -> RegionId:
		return ROOT_REGION

	def __contains__(self, region: RegionId) -> bool:
		return region in self._regions

	def __iter__(self):
		return iter(self._regions.values())

	def get(self, region: RegionId) -> Region:
		try:
			return self._regions[region]
		except KeyError:
			raise RegionContractViolation(f"unknown region {region}") from None

	def open_region(self, parent: RegionId, at: Optional[int] = None) -> RegionId:
		par = self.get(parent)
		if par.closed:
			raise RegionContractViolation(f"cannot open a region under closed region {parent}")
		rid = len(self._regions)
		self._regions[rid] = Region(
			id=rid,
			parent=parent,
			index=len(par.children),
			depth=par.depth + 1,
			opened_at=at,
		)
		par.children.append(rid)
		return rid

	def close_region(self, region: RegionId, at: Optional[int] = None) -> None:
		reg = self.get(region)
		if reg.closed:
			raise RegionContractViolation(f"region {region} is already closed")
		open_children = [c for c in reg.children if not self._regions[c].closed]
		if open_children:
			raise RegionContractViolation(
				f"cannot close region {region}: child regions {open_children} are still open"
			)
		reg.closed = True
		reg.closed_at = at

	def is_open(self, region: RegionId) -> bool:
		return not self.get(region).closed

	def parent(self, region: RegionId) -> Optional[RegionId]:
		return self.get(region).parent

	def ancestors(self, region: RegionId) -> List[RegionId]:
		"""`region` itself followed by its ancestors up to the root."""
		chain = []
		cur: Optional[RegionId] = region
		while cur is not None:
			chain.append(cur)
			cur = self.get(cur).parent
		return chain

	def contains(self, outer: RegionId, inner: RegionId) -> bool:
		"""Reflexive-transitive ancestor test."""
		target = self.get(outer)
		cur = self.get(inner)
		while cur.depth > target.depth:
			cur = self._regions[cur.parent]  # type: ignore[index]
		return cur.id == target.id

	def compare_extent(self, a: RegionId, b: RegionId) -> Extent:
		if self.contains(a, b):
			return Extent.A_CONTAINS_B
		if self.contains(b, a):
			return Extent.B_CONTAINS_A
		return Extent.DISJOINT

	def precedes(self, a: RegionId, b: RegionId) -> bool:
		"""True when disjoint region `a` lies entirely before `b` in program order."""
		if self.compare_extent(a, b) is not Extent.DISJOINT:
			return False
		path_a = list(reversed(self.ancestors(a)))
		path_b = list(reversed(self.ancestors(b)))
		for ra, rb in zip(path_a, path_b):
			if ra != rb:
				return self._regions[ra].index < self._regions[rb].index
		raise AssertionError("disjoint regions must diverge below a common ancestor")

	def common_ancestor(self, a: RegionId, b: RegionId) -> RegionId:
		seen = set(self.ancestors(a))
		for r in self.ancestors(b):
			if r in seen:
				return r
		raise AssertionError("regions do not share the root")


__all__ = ["Extent", "ROOT_REGION", "Region", "RegionTree"]
