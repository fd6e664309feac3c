# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Outlives Checker: the partial order over lifetimes.

Named parameters are related by a directed graph; an edge `'b -> 'a` records
`'b: 'a` ("'b outlives 'a"). Concrete lifetimes are compared by region
containment, `'static` outlives everything, and a synthetic lifetime outlives
only itself. Inside a body, each parameter of the enclosing signature has a
*floor*: the body region. A parameter outlives every concrete lifetime whose
region lies within its floor, and nothing local outlives a parameter.

Call sites are concretized by `assign_call_site`: every parameter of the
callee is bound to the meet of the lifetimes supplied for it, parameters that
appear on the shorter side of a violated bound are shrunk when that is sound
(references are covariant in their lifetime), and then every declared bound
and every fixed position is verified under the substitution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from regionck.core.errors import OutlivesViolation
from regionck.core.lifetimes import STATIC, Lifetime, LifetimeKind, RegionId
from regionck.core.types_core import (
	OutlivesBound,
	RefTy,
	Signature,
	Ty,
	lifetime_positions,
	substitute_signature,
)
from regionck.regions import ROOT_REGION, RegionTree

ArgLifetimes = Union[Lifetime, Sequence[Lifetime], None]


@dataclass
class ResolvedSignature:
	"""A callee signature with its lifetime parameters bound at one call site."""

	signature: Signature
	substitution: Dict[Lifetime, Lifetime] = field(default_factory=dict)

	def resolve(self, lt: Lifetime) -> Lifetime:
		return self.substitution.get(lt, lt)


def _normalize(lt: Lifetime) -> Lifetime:
	if lt.kind is LifetimeKind.CONCRETE and lt.region == ROOT_REGION:
		return STATIC
	return lt


@dataclass
class OutlivesChecker:
	regions: RegionTree
	edges: Dict[Lifetime, Set[Lifetime]] = field(default_factory=dict)
	floors: Dict[Lifetime, RegionId] = field(default_factory=dict)

	@classmethod
	def for_signature(cls, sig: Signature, regions: RegionTree) -> "OutlivesChecker":
		"""Graph holding only the bounds a signature declares."""
		checker = cls(regions)
		for bound in sig.bounds:
			checker.declare_constraint(bound.longer, bound.shorter)
		return checker

	def declare_constraint(self, longer: Lifetime, shorter: Lifetime) -> None:
		self.edges.setdefault(_normalize(longer), set()).add(_normalize(shorter))

	def bind_floor(self, param: Lifetime, region: RegionId) -> None:
		self.floors[param] = region

	def add_implied_bounds(self, ty: Optional[Ty]) -> None:
		"""`&'x T<'a, …>` implies `'a: 'x` for every position inside the pointee."""
		while isinstance(ty, RefTy):
			for inner in lifetime_positions(ty.pointee):
				if inner != ty.lifetime:
					self.declare_constraint(inner, ty.lifetime)
			ty = ty.pointee

	def _reachable(self, start: Lifetime) -> Set[Lifetime]:
		seen = {start}
		todo = [start]
		while todo:
			cur = todo.pop()
			for nxt in self.edges.get(cur, ()):
				if nxt not in seen:
					seen.add(nxt)
					todo.append(nxt)
		return seen

	def check_outlives(self, longer: Lifetime, shorter: Lifetime) -> bool:
		"""True when `longer: shorter` holds."""
		longer = _normalize(longer)
		shorter = _normalize(shorter)
		if LifetimeKind.ELIDED in (longer.kind, shorter.kind):
			raise AssertionError("elided lifetime reached the outlives checker")
		if longer == shorter or longer.kind is LifetimeKind.STATIC:
			return True
		for lt in self._reachable(longer):
			if lt == shorter or lt.kind is LifetimeKind.STATIC:
				return True
			if shorter.kind is not LifetimeKind.CONCRETE:
				continue
			if lt.kind is LifetimeKind.CONCRETE and self.regions.contains(lt.region, shorter.region):
				return True
			floor = self.floors.get(lt)
			if floor is not None and self.regions.contains(floor, shorter.region):
				return True
		return False

	def meet(self, lifetimes: Iterable[Lifetime]) -> Optional[Lifetime]:
		"""The candidate every other candidate outlives, or None if there is none."""
		cands: List[Lifetime] = []
		for lt in lifetimes:
			lt = _normalize(lt)
			if lt not in cands:
				cands.append(lt)
		if not cands:
			return None
		for cand in cands:
			if all(self.check_outlives(other, cand) for other in cands):
				return cand
		return None

	def assign_call_site(
		self,
		signature: Signature,
		argument_lifetimes: Sequence[ArgLifetimes],
		*,
		call_region: Optional[RegionId] = None,
		arg_names: Optional[Sequence[str]] = None,
	) -> ResolvedSignature:
		"""
		Bind the callee's lifetime parameters from the supplied argument lifetimes.

		`argument_lifetimes[i]` lists the lifetimes of argument `i`, one per
		lifetime position of parameter `i` (a bare Lifetime is accepted for
		single-position parameters; None for arguments with no positions).
		"""
		if len(argument_lifetimes) != len(signature.params):
			raise AssertionError(
				f"call to `{signature.name}` expects {len(signature.params)} argument lifetimes, "
				f"got {len(argument_lifetimes)}"
			)
		declared = set(signature.declared)
		candidates: Dict[Lifetime, List[Lifetime]] = {p: [] for p in signature.declared}
		fixed: List[Tuple[Lifetime, Lifetime, str]] = []
		for idx, (param, supplied) in enumerate(zip(signature.params, argument_lifetimes)):
			if supplied is None:
				continue
			supplied_seq = (supplied,) if isinstance(supplied, Lifetime) else tuple(supplied)
			what = arg_names[idx] if arg_names and idx < len(arg_names) else param.name
			for pos, arg_lt in zip(lifetime_positions(param.ty), supplied_seq):
				if pos in declared:
					candidates[pos].append(arg_lt)
				else:
					fixed.append((arg_lt, pos, what))

		subst: Dict[Lifetime, Lifetime] = {}
		for param, cands in candidates.items():
			if not cands:
				subst[param] = Lifetime.concrete(call_region) if call_region is not None else STATIC
				continue
			m = self.meet(cands)
			if m is None and call_region is not None:
				floor = Lifetime.concrete(call_region)
				if all(self.check_outlives(c, floor) for c in cands):
					m = floor
			if m is None:
				raise OutlivesViolation(
					f"lifetime {param} of `{signature.name}` cannot be satisfied: "
					f"{', '.join(str(c) for c in cands)} are not comparable",
					lifetimes=[param] + cands,
					regions=[c.region for c in cands if c.region is not None],
				)
			subst[param] = m

		self._shrink(signature.bounds, subst, candidates)

		for bound in signature.bounds:
			longer = subst.get(bound.longer, bound.longer)
			shorter = subst.get(bound.shorter, bound.shorter)
			if not self.check_outlives(longer, shorter):
				raise OutlivesViolation(
					f"lifetime bound `{bound}` of `{signature.name}` is not satisfied: "
					f"{longer} does not outlive {shorter}",
					constraint=bound,
					lifetimes=[bound.longer, bound.shorter, longer, shorter],
					regions=[lt.region for lt in (longer, shorter) if lt.region is not None],
				)
		for arg_lt, pos, what in fixed:
			if not self.check_outlives(arg_lt, pos):
				raise OutlivesViolation(
					f"argument `{what}` of `{signature.name}` does not live long enough: "
					f"{arg_lt} must outlive {pos}",
					constraint=OutlivesBound(arg_lt, pos),
					lifetimes=[arg_lt, pos],
					regions=[arg_lt.region] if arg_lt.region is not None else [],
				)
		return ResolvedSignature(substitute_signature(signature, subst), subst)

	def _shrink(
		self,
		bounds: Sequence[OutlivesBound],
		subst: Dict[Lifetime, Lifetime],
		candidates: Mapping[Lifetime, List[Lifetime]],
	) -> None:
		"""Lower the shorter side of violated bounds to the longer side's binding."""
		for _ in range(len(bounds) + 1):
			changed = False
			for bound in bounds:
				if bound.shorter not in subst:
					continue
				longer = subst.get(bound.longer, bound.longer)
				shorter = subst[bound.shorter]
				if self.check_outlives(longer, shorter):
					continue
				if self.check_outlives(shorter, longer) and all(
					self.check_outlives(c, longer) for c in candidates.get(bound.shorter, ())
				):
					subst[bound.shorter] = longer
					changed = True
			if not changed:
				return


__all__ = ["OutlivesChecker", "ResolvedSignature"]
