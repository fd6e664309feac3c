# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Elision Engine: synthesize omitted lifetimes of a signature.

Rules, first match wins for the omitted output positions:

  1. every omitted input position gets a fresh, distinct parameter;
  2. exactly one input position overall: outputs take that lifetime;
  3. otherwise, a by-reference method receiver: outputs take its lifetime;
  4. otherwise `AmbiguousElision` (including "no input positions at all").

Callable types nested in a signature (`f: fn(&str) -> &str`) are elided in
their own scope: the fresh parameters they receive are universally quantified
on that callable instead of becoming parameters of the enclosing signature.

The result has no omitted positions, and eliding it again is a no-op.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set, Tuple

from regionck.core.errors import AmbiguousElision
from regionck.core.lifetimes import Lifetime
from regionck.core.types_core import (
	FnTy,
	Param,
	RefTy,
	Signature,
	StructTy,
	Ty,
	lifetime_positions,
	referenced_lifetimes,
)


class _Fresh:
	"""Hands out `'_0`, `'_1`, … skipping names already taken."""

	def __init__(self, taken: Set[str]) -> None:
		self._taken = taken
		self._next = 0

	def __call__(self) -> Lifetime:
		while f"_{self._next}" in self._taken:
			self._next += 1
		name = f"_{self._next}"
		self._taken.add(name)
		return Lifetime.param(name)


def _names_in(sig: Signature) -> Set[str]:
	names = {lt.name for lt in sig.declared}
	for p in sig.params:
		names.update(lt.name for lt in referenced_lifetimes(p.ty) if lt.is_param)
	names.update(lt.name for lt in referenced_lifetimes(sig.ret) if lt.is_param)
	return names


def has_elided(ty: Optional[Ty]) -> bool:
	return any(lt.is_elided for lt in lifetime_positions(ty))


def is_fully_annotated(sig: Signature) -> bool:
	if any(has_elided(p.ty) for p in sig.params) or has_elided(sig.ret):
		return False
	for ty in [p.ty for p in sig.params] + [sig.ret]:
		if isinstance(ty, FnTy) and not is_fully_annotated(ty.signature):
			return False
	return True


def _fill(ty: Optional[Ty], supply) -> Optional[Ty]:
	"""Replace omitted positions of `ty` (not inside callables) via `supply()`."""
	if ty is None:
		return None
	if isinstance(ty, RefTy):
		lt = supply() if ty.lifetime.is_elided else ty.lifetime
		return RefTy(lt, ty.mutability, _fill(ty.pointee, supply))
	if isinstance(ty, StructTy):
		return StructTy(ty.name, tuple(supply() if lt.is_elided else lt for lt in ty.lifetimes))
	return ty


def _elide_nested(ty: Optional[Ty], taken: Set[str], where: str) -> Optional[Ty]:
	"""Elide callable types found at the top of `ty` in their own scope."""
	if isinstance(ty, FnTy):
		return FnTy(_elide(ty.signature, taken, universal=True, where=where))
	if isinstance(ty, RefTy) and isinstance(ty.pointee, FnTy):
		return RefTy(ty.lifetime, ty.mutability, _elide_nested(ty.pointee, taken, where))
	return ty


def _elide(sig: Signature, taken: Set[str], *, universal: bool, where: str) -> Signature:
	fresh = _Fresh(taken)
	added: List[Lifetime] = []

	def supply() -> Lifetime:
		lt = fresh()
		added.append(lt)
		return lt

	params: List[Param] = []
	for p in sig.params:
		ty = _elide_nested(p.ty, taken, where)
		params.append(Param(p.name, _fill(ty, supply)))

	inputs: Tuple[Lifetime, ...] = tuple(lt for p in params for lt in lifetime_positions(p.ty))
	ret = _elide_nested(sig.ret, taken, where)
	if has_elided(ret):
		if len(inputs) == 1:
			output = inputs[0]
		elif sig.receiver is not None and isinstance(params[0].ty, RefTy):
			output = params[0].ty.lifetime
		elif not inputs:
			raise AmbiguousElision(
				f"missing lifetime specifier in return type of `{where}`: "
				"there are no input lifetimes to borrow from",
				lifetimes=["'_"],
			)
		else:
			raise AmbiguousElision(
				f"missing lifetime specifier in return type of `{where}`: "
				f"cannot tell which of {len(inputs)} input lifetimes it borrows from",
				lifetimes=[str(lt) for lt in inputs],
				notes=["annotate the signature with explicit lifetime parameters"],
			)
		ret = _fill(ret, lambda: output)

	if not added and params == list(sig.params) and ret == sig.ret:
		return sig
	if universal:
		return sig.with_changes(params=tuple(params), ret=ret, universal=sig.universal + tuple(added))
	return sig.with_changes(params=tuple(params), ret=ret, lifetime_params=sig.lifetime_params + tuple(added))


def elide(sig: Signature, *, universal: bool = False) -> Signature:
	"""
	Return `sig` with every omitted lifetime position filled in.

	`universal=True` elides a callable type: fresh parameters are added to its
	universally quantified set instead of its fixed parameters.
	"""
	return _elide(sig, _names_in(sig), universal=universal, where=sig.name or "fn")


def elide_type(ty: Optional[Ty], declared: Iterable[Lifetime], where: str) -> Optional[Ty]:
	"""Elide the callable types at the top of `ty` (a struct field, say) in their own scope."""
	taken = {lt.name for lt in declared}
	taken.update(lt.name for lt in referenced_lifetimes(ty) if lt.is_param)
	return _elide_nested(ty, taken, where)


__all__ = ["elide", "elide_type", "has_elided", "is_fully_annotated"]
