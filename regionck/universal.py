# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Universal-Bound Checker: "works for every lifetime" bounds on callables.

A universally quantified callable type (`for<'a> fn(&'a str) -> &'a str`) is
checked by substituting a fresh synthetic lifetime for each quantified
parameter. A synthetic lifetime is comparable to nothing but itself and
`'static`, so the ordinary call-site check of the supplied callable against
the synthetic arguments only succeeds when it holds for an arbitrary lifetime.

Named functions are checked through their signature. Closures are checked
through the summary recorded while their body was analyzed: which lifetimes
each returned position was derived from. A reference captured from the
enclosing scope shows up as a concrete lifetime, which never outlives a
synthetic one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Tuple

from regionck.core.errors import OutlivesViolation, UnboundNotSatisfied
from regionck.core.lifetimes import Lifetime
from regionck.core.types_core import FnTy, Signature, lifetime_positions, substitute_signature
from regionck.elision import elide
from regionck.outlives import OutlivesChecker, ResolvedSignature
from regionck.regions import RegionTree


@dataclass
class ClosureSummary:
	"""Lifetime facts about one closure, gathered while analyzing its body."""

	closure_id: int
	# Lifetime positions of every parameter, in order.
	param_positions: Tuple[Tuple[Lifetime, ...], ...] = ()
	# Lifetimes each return position was derived from.
	ret_lifetimes: Tuple[FrozenSet[Lifetime], ...] = ()
	captures: FrozenSet[Lifetime] = field(default_factory=frozenset)

	@property
	def arity(self) -> int:
		return len(self.param_positions)


def instantiate(expected: Signature) -> Signature:
	"""Elide `expected` in callable scope and replace its quantified lifetimes by synthetic ones."""
	expected = elide(expected, universal=True)
	synthetic: Dict[Lifetime, Lifetime] = {u: Lifetime.synthetic() for u in expected.universal}
	return substitute_signature(expected, synthetic).with_changes(universal=())


def _arity_mismatch(expected: Signature, got: int) -> UnboundNotSatisfied:
	return UnboundNotSatisfied(
		f"expected a callable taking {len(expected.params)} argument(s), "
		f"the supplied one takes {got}",
	)


def check_signature(
	expected: Signature,
	supplied: Signature,
	checker: Optional[OutlivesChecker] = None,
) -> ResolvedSignature:
	"""Check a named callable against a universally quantified callable type."""
	inst = instantiate(expected)
	supplied = elide(supplied)
	if len(supplied.params) != len(inst.params):
		raise _arity_mismatch(inst, len(supplied.params))
	checker = checker or OutlivesChecker(RegionTree())
	args = [lifetime_positions(p.ty) for p in inst.params]
	try:
		resolved = checker.assign_call_site(supplied, args)
	except OutlivesViolation as err:
		raise UnboundNotSatisfied(
			f"`{supplied.name}` does not satisfy `{FnTy(expected)}` for every lifetime: {err.message}",
			lifetimes=err.lifetimes,
		) from err
	want = lifetime_positions(inst.ret)
	got = lifetime_positions(resolved.signature.ret)
	for got_lt, want_lt in zip(got, want):
		if not checker.check_outlives(got_lt, want_lt):
			raise UnboundNotSatisfied(
				f"`{supplied.name}` does not satisfy `{FnTy(expected)}` for every lifetime: "
				f"its result lives for {got_lt}, which is not tied to the required lifetime",
				lifetimes=[got_lt, want_lt],
			)
	return resolved


def check_closure(
	expected: Signature,
	summary: ClosureSummary,
	checker: Optional[OutlivesChecker] = None,
) -> None:
	"""Check an analyzed closure against a universally quantified callable type."""
	inst = instantiate(expected)
	if summary.arity != len(inst.params):
		raise _arity_mismatch(inst, summary.arity)
	checker = checker or OutlivesChecker(RegionTree())
	mapping: Dict[Lifetime, Lifetime] = {}
	for positions, param in zip(summary.param_positions, inst.params):
		for own, given in zip(positions, lifetime_positions(param.ty)):
			if own.is_closure_param:
				mapping[own] = given
			elif not checker.check_outlives(given, own):
				raise UnboundNotSatisfied(
					f"closure parameter requires {own}, but `{FnTy(expected)}` passes an arbitrary lifetime",
					lifetimes=[own, given],
				)
	want = lifetime_positions(inst.ret)
	for origins, want_lt in zip(summary.ret_lifetimes, want):
		for origin in sorted(origins, key=str):
			got = mapping.get(origin, origin)
			if checker.check_outlives(got, want_lt):
				continue
			if origin in summary.captures:
				message = (
					f"closure returns a captured reference ({got}) that is not valid "
					f"for every lifetime required by `{FnTy(expected)}`"
				)
			else:
				message = f"closure result lives for {got}, which does not satisfy `{FnTy(expected)}` for every lifetime"
			raise UnboundNotSatisfied(message, lifetimes=[got, want_lt])


__all__ = ["ClosureSummary", "check_closure", "check_signature", "instantiate"]
