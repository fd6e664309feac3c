# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Declaration registry: struct definitions and function/method signatures.

Declarations are registered in fragment order before any body is checked and
are read-only afterwards, so body checks of independent fragments can share
one registry.

Registration validates what the signature-level rules require:

  * a type naming a registered struct becomes a `StructTy`; omitted lifetime
    arguments (`-> Buf`) are elided positions;
  * every reference field of a struct must carry one of the struct's lifetime
    parameters (an untagged field is a missing lifetime specifier);
  * every lifetime named by a signature must be declared on it;
  * signatures are stored fully annotated (after elision).
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

from regionck.core.errors import AmbiguousElision, UndeclaredLifetime, UnresolvedName
from regionck.core.lifetimes import ELIDED, Lifetime, LifetimeKind
from regionck.core.types_core import (
	DEFAULT_COPY_TYPES,
	FnTy,
	OwnedTy,
	Param,
	RefTy,
	Signature,
	StructDef,
	StructField,
	StructTy,
	Ty,
	is_copy,
	referenced_lifetimes,
)
from regionck.elision import elide, elide_type


class Declarations:
	def __init__(self, copy_types: FrozenSet[str] = DEFAULT_COPY_TYPES) -> None:
		self.copy_types = copy_types
		self.structs: Dict[str, StructDef] = {}
		self.functions: Dict[str, Signature] = {}
		self.methods: Dict[Tuple[str, str], Signature] = {}
		# Names whose declaration failed; calls to them are reported, not guessed.
		self.rejected: Set[str] = set()

	# Types

	def normalize_ty(self, ty: Optional[Ty]) -> Optional[Ty]:
		"""Resolve struct names and check lifetime-argument counts."""
		if ty is None:
			return None
		if isinstance(ty, RefTy):
			return RefTy(ty.lifetime, ty.mutability, self.normalize_ty(ty.pointee))
		if isinstance(ty, OwnedTy):
			sdef = self.structs.get(ty.name)
			if sdef is not None:
				return StructTy(ty.name, (ELIDED,) * len(sdef.lifetime_params))
			return ty
		if isinstance(ty, StructTy):
			sdef = self.structs.get(ty.name)
			if sdef is None:
				if ty.lifetimes:
					raise UnresolvedName(f"cannot find struct `{ty.name}`")
				return OwnedTy(ty.name)
			if len(ty.lifetimes) != len(sdef.lifetime_params):
				raise UnresolvedName(
					f"struct `{ty.name}` takes {len(sdef.lifetime_params)} lifetime argument(s) "
					f"but {len(ty.lifetimes)} were supplied",
					lifetimes=ty.lifetimes,
				)
			return ty
		if isinstance(ty, FnTy):
			return FnTy(self.normalize_signature(ty.signature))
		raise AssertionError(f"unknown type {ty!r}")

	def normalize_signature(self, sig: Signature) -> Signature:
		return sig.with_changes(
			params=tuple(Param(p.name, self.normalize_ty(p.ty)) for p in sig.params),
			ret=self.normalize_ty(sig.ret),
		)

	def is_copy(self, ty: Optional[Ty]) -> bool:
		return is_copy(ty, self.copy_types)

	# Validation

	def _check_declared(self, lifetimes: Iterable[Lifetime], declared: Set[Lifetime], where: str) -> None:
		for lt in lifetimes:
			if lt.kind is LifetimeKind.PARAM and lt not in declared:
				raise UndeclaredLifetime(
					f"use of undeclared lifetime name {lt} in `{where}`",
					lifetimes=[lt],
				)

	def validate_struct(self, sdef: StructDef) -> StructDef:
		declared = set(sdef.lifetime_params)
		fields = []
		for fld in sdef.fields:
			ty = elide_type(self.normalize_ty(fld.ty), declared, f"{sdef.name}.{fld.name}")
			for lt in referenced_lifetimes(ty):
				if lt.is_elided:
					raise AmbiguousElision(
						f"missing lifetime specifier on field `{fld.name}` of struct `{sdef.name}`",
						notes=[f"declare a lifetime parameter on `{sdef.name}` and tag the reference with it"],
					)
			self._check_declared(referenced_lifetimes(ty), declared, sdef.name)
			fields.append(StructField(fld.name, ty))
		return StructDef(sdef.name, sdef.lifetime_params, tuple(fields))

	def validate_signature(self, sig: Signature, where: str) -> None:
		declared = set(sig.declared)
		for p in sig.params:
			self._check_declared(referenced_lifetimes(p.ty), declared, where)
		self._check_declared(referenced_lifetimes(sig.ret), declared, where)
		for bound in sig.bounds:
			self._check_declared((bound.longer, bound.shorter), declared, where)

	# Registration

	def register_struct(self, sdef: StructDef) -> StructDef:
		# Register the bare definition first so self-referential field types resolve.
		self.structs[sdef.name] = sdef
		try:
			checked = self.validate_struct(sdef)
		except Exception:
			del self.structs[sdef.name]
			self.rejected.add(sdef.name)
			raise
		self.structs[sdef.name] = checked
		return checked

	def register_function(self, sig: Signature, impl_type: Optional[str] = None) -> Signature:
		where = f"{impl_type}::{sig.name}" if impl_type else sig.name
		try:
			sig = self.normalize_signature(sig)
			self.validate_signature(sig, where)
			sig = elide(sig)
		except Exception:
			self.rejected.add(where)
			raise
		if impl_type:
			self.methods[(impl_type, sig.name)] = sig
		else:
			self.functions[sig.name] = sig
		return sig

	def lookup_method(self, type_name: Optional[str], name: str) -> Optional[Signature]:
		if type_name is None:
			return None
		return self.methods.get((type_name, name))


__all__ = ["Declarations"]
