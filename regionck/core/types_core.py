# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Minimal type core shared by the signature checkers and the body pass.

Only the shape that matters for lifetimes is modeled: owned values, references
(lifetime + mutability + pointee), structs with lifetime arguments, and
callable types carrying a full signature. Everything is frozen so types and
signatures can be used as dict keys and compared structurally.

Lifetime positions
------------------
The lifetime *positions* of a type are enumerated left to right: a
reference's own lifetime first, then the positions of its pointee; a struct's
lifetime arguments in declaration order. Lifetimes inside a callable type are
scoped to that callable and are not positions of the enclosing type.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Callable, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple

from regionck.core.lifetimes import Lifetime


class Mutability(Enum):
	SHARED = auto()
	EXCLUSIVE = auto()


class SelfMode(Enum):
	SELF_BY_VALUE = auto()
	SELF_BY_REF = auto()
	SELF_BY_REF_MUT = auto()


class Ty:
	"""Base class for all types."""


@dataclass(frozen=True)
class OwnedTy(Ty):
	name: str

	def __str__(self) -> str:
		return self.name


@dataclass(frozen=True)
class RefTy(Ty):
	lifetime: Lifetime
	mutability: Mutability
	pointee: Ty

	@property
	def is_exclusive(self) -> bool:
		return self.mutability is Mutability.EXCLUSIVE

	def __str__(self) -> str:
		parts = ["&"]
		if not self.lifetime.is_elided:
			parts.append(f"{self.lifetime} ")
		if self.is_exclusive:
			parts.append("mut ")
		parts.append(str(self.pointee))
		return "".join(parts)


@dataclass(frozen=True)
class StructTy(Ty):
	name: str
	lifetimes: Tuple[Lifetime, ...] = ()

	def __str__(self) -> str:
		if not self.lifetimes:
			return self.name
		return f"{self.name}<{', '.join(str(lt) for lt in self.lifetimes)}>"


@dataclass(frozen=True)
class FnTy(Ty):
	"""Callable value type (function pointer or closure bound)."""

	signature: "Signature"

	def __str__(self) -> str:
		sig = self.signature
		head = ""
		if sig.universal:
			head = f"for<{', '.join(str(lt) for lt in sig.universal)}> "
		params = ", ".join(str(p.ty) for p in sig.params)
		ret = f" -> {sig.ret}" if sig.ret is not None else ""
		return f"{head}fn({params}){ret}"


@dataclass(frozen=True)
class Param:
	name: str
	ty: Ty


@dataclass(frozen=True)
class OutlivesBound:
	"""`'longer: 'shorter`"""

	longer: Lifetime
	shorter: Lifetime

	def __str__(self) -> str:
		return f"{self.longer}: {self.shorter}"


@dataclass(frozen=True)
class Signature:
	"""
	Function, method or closure signature.

	`lifetime_params` are fixed per definition (resolved at each call site);
	`universal` lists the parameters bound per invocation (`for<'a> fn(...)`).
	Methods carry their receiver as the first parameter, named `self`.
	"""

	name: str
	params: Tuple[Param, ...] = ()
	ret: Optional[Ty] = None
	lifetime_params: Tuple[Lifetime, ...] = ()
	bounds: Tuple[OutlivesBound, ...] = ()
	universal: Tuple[Lifetime, ...] = ()
	is_method: bool = False

	@property
	def receiver(self) -> Optional[Param]:
		if self.is_method and self.params and self.params[0].name == "self":
			return self.params[0]
		return None

	@property
	def self_mode(self) -> Optional[SelfMode]:
		recv = self.receiver
		if recv is None:
			return None
		if isinstance(recv.ty, RefTy):
			return SelfMode.SELF_BY_REF_MUT if recv.ty.is_exclusive else SelfMode.SELF_BY_REF
		return SelfMode.SELF_BY_VALUE

	@property
	def declared(self) -> Tuple[Lifetime, ...]:
		"""All lifetime names in scope for this signature."""
		return self.lifetime_params + self.universal

	def with_changes(self, **changes) -> "Signature":
		return replace(self, **changes)

	def __str__(self) -> str:
		generics = []
		for lt in self.lifetime_params:
			longer = [b.shorter for b in self.bounds if b.longer == lt]
			if longer:
				generics.append(f"{lt}: {' + '.join(str(s) for s in longer)}")
			else:
				generics.append(str(lt))
		head = f"fn {self.name}"
		if generics:
			head += f"<{', '.join(generics)}>"
		params = ", ".join(f"{p.name}: {p.ty}" for p in self.params)
		ret = f" -> {self.ret}" if self.ret is not None else ""
		return f"{head}({params}){ret}"


@dataclass(frozen=True)
class StructField:
	name: str
	ty: Ty


@dataclass(frozen=True)
class StructDef:
	"""Named aggregate with lifetime parameters and typed fields."""

	name: str
	lifetime_params: Tuple[Lifetime, ...] = ()
	fields: Tuple[StructField, ...] = ()

	def field(self, name: str) -> Optional[StructField]:
		for fld in self.fields:
			if fld.name == name:
				return fld
		return None

	def param_index(self, lifetime: Lifetime) -> Optional[int]:
		try:
			return self.lifetime_params.index(lifetime)
		except ValueError:
			return None

	def __str__(self) -> str:
		generics = f"<{', '.join(str(lt) for lt in self.lifetime_params)}>" if self.lifetime_params else ""
		fields = ", ".join(f"{f.name}: {f.ty}" for f in self.fields)
		return f"struct {self.name}{generics} {{ {fields} }}"


DEFAULT_COPY_TYPES: FrozenSet[str] = frozenset(
	{"i32", "i64", "u8", "u32", "u64", "usize", "isize", "bool", "char", "f32", "f64"}
)


def lifetime_positions(ty: Optional[Ty]) -> Tuple[Lifetime, ...]:
	"""Enumerate the lifetime positions of `ty` left to right."""
	if ty is None:
		return ()
	return tuple(_positions(ty))


def _positions(ty: Ty) -> Iterator[Lifetime]:
	if isinstance(ty, RefTy):
		yield ty.lifetime
		yield from _positions(ty.pointee)
	elif isinstance(ty, StructTy):
		yield from ty.lifetimes


def with_positions(ty: Ty, lifetimes: Iterable[Lifetime]) -> Ty:
	"""Rebuild `ty` with its lifetime positions replaced, in order."""
	it = iter(lifetimes)
	out = _rebuild(ty, it)
	if next(it, None) is not None:
		raise AssertionError(f"too many lifetimes supplied for {ty}")
	return out


def _rebuild(ty: Ty, it: Iterator[Lifetime]) -> Ty:
	if isinstance(ty, RefTy):
		lt = next(it)
		return RefTy(lt, ty.mutability, _rebuild(ty.pointee, it))
	if isinstance(ty, StructTy):
		return StructTy(ty.name, tuple(next(it) for _ in ty.lifetimes))
	return ty


def map_lifetimes(ty: Optional[Ty], fn: Callable[[Lifetime], Lifetime]) -> Optional[Ty]:
	"""
	Apply `fn` to every lifetime mentioned by `ty`.

	Callable types are descended into, skipping the lifetimes they quantify
	universally (those are bound by the callable, not by the enclosing scope).
	"""
	if ty is None:
		return None
	if isinstance(ty, RefTy):
		return RefTy(fn(ty.lifetime), ty.mutability, map_lifetimes(ty.pointee, fn))
	if isinstance(ty, StructTy):
		return StructTy(ty.name, tuple(fn(lt) for lt in ty.lifetimes))
	if isinstance(ty, FnTy):
		bound = set(ty.signature.universal)
		inner = lambda lt: lt if lt in bound else fn(lt)
		return FnTy(map_signature(ty.signature, inner))
	return ty


def map_signature(sig: Signature, fn: Callable[[Lifetime], Lifetime]) -> Signature:
	"""Apply `fn` to every lifetime of the signature's parameters, return and bounds."""
	return sig.with_changes(
		params=tuple(Param(p.name, map_lifetimes(p.ty, fn)) for p in sig.params),
		ret=map_lifetimes(sig.ret, fn),
		bounds=tuple(OutlivesBound(fn(b.longer), fn(b.shorter)) for b in sig.bounds),
	)


def substitute_signature(sig: Signature, mapping: Mapping[Lifetime, Lifetime]) -> Signature:
	"""Substitute lifetimes per `mapping`; unmapped lifetimes are kept."""
	return map_signature(sig, lambda lt: mapping.get(lt, lt))


def referenced_lifetimes(ty: Optional[Ty]) -> Iterator[Lifetime]:
	"""Every lifetime mentioned by `ty`, including free ones inside callable types."""
	if ty is None:
		return
	if isinstance(ty, RefTy):
		yield ty.lifetime
		yield from referenced_lifetimes(ty.pointee)
	elif isinstance(ty, StructTy):
		yield from ty.lifetimes
	elif isinstance(ty, FnTy):
		bound = set(ty.signature.universal)
		for p in ty.signature.params:
			for lt in referenced_lifetimes(p.ty):
				if lt not in bound:
					yield lt
		for lt in referenced_lifetimes(ty.signature.ret):
			if lt not in bound:
				yield lt


def is_copy(ty: Optional[Ty], copy_types: FrozenSet[str] = DEFAULT_COPY_TYPES) -> bool:
	"""
	Copy-vs-move decision for a value of type `ty`.

	Shared references and owned scalars are Copy; callable values are Copy.
	Exclusive references are not Copy but are reborrowed on use by the caller.
	"""
	if ty is None:
		return False
	if isinstance(ty, RefTy):
		return not ty.is_exclusive
	if isinstance(ty, OwnedTy):
		return ty.name in copy_types
	if isinstance(ty, FnTy):
		return True
	return False


def nominal_name(ty: Optional[Ty]) -> Optional[str]:
	"""Type name used for method lookup, looking through references."""
	while isinstance(ty, RefTy):
		ty = ty.pointee
	if isinstance(ty, (OwnedTy, StructTy)):
		return ty.name
	return None


__all__ = [
	"DEFAULT_COPY_TYPES",
	"FnTy",
	"Mutability",
	"OutlivesBound",
	"OwnedTy",
	"Param",
	"RefTy",
	"SelfMode",
	"Signature",
	"StructDef",
	"StructField",
	"StructTy",
	"Ty",
	"is_copy",
	"lifetime_positions",
	"map_lifetimes",
	"map_signature",
	"nominal_name",
	"referenced_lifetimes",
	"substitute_signature",
	"with_positions",
]
