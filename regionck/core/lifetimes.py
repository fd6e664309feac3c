# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Lifetimes: symbolic tags attached to references.

A lifetime is either tied to exactly one region (CONCRETE), a named parameter
introduced by a signature and only resolved at call sites (PARAM), the
program-wide `'static`, an omitted position awaiting elision (ELIDED), or a
fresh synthetic lifetime that is comparable to nothing but itself (SYNTHETIC).

Parameters are never unified with region ids: they stay symbolic until a call
site substitutes them (see `outlives.assign_call_site`).
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

RegionId = int


class LifetimeKind(Enum):
	CONCRETE = auto()
	PARAM = auto()
	STATIC = auto()
	ELIDED = auto()
	SYNTHETIC = auto()


@dataclass(frozen=True)
class Lifetime:
	"""
	Interned-by-value lifetime tag.

	`name` is the bare parameter name (`a` for `'a`); `region` is only set for
	CONCRETE lifetimes; `serial` distinguishes SYNTHETIC lifetimes.
	"""

	kind: LifetimeKind
	name: str = ""
	region: Optional[RegionId] = None
	serial: int = 0

	@classmethod
	def param(cls, name: str) -> "Lifetime":
		name = name[1:] if name.startswith("'") else name
		if name == "static":
			return STATIC
		if name == "_":
			return ELIDED
		return cls(LifetimeKind.PARAM, name)

	@classmethod
	def concrete(cls, region: RegionId) -> "Lifetime":
		return cls(LifetimeKind.CONCRETE, region=region)

	@classmethod
	def synthetic(cls) -> "Lifetime":
		return cls(LifetimeKind.SYNTHETIC, serial=next(_SYNTHETIC_SERIALS))

	@classmethod
	def closure_param(cls, closure: int, index: int, position: int) -> "Lifetime":
		"""Lifetime of position `position` of parameter `index` of closure `closure`."""
		# `|` cannot appear in a source lifetime name, so these never collide.
		return cls(LifetimeKind.PARAM, f"|{closure}.{index}.{position}")

	@property
	def is_param(self) -> bool:
		return self.kind is LifetimeKind.PARAM

	@property
	def is_elided(self) -> bool:
		return self.kind is LifetimeKind.ELIDED

	@property
	def is_closure_param(self) -> bool:
		return self.kind is LifetimeKind.PARAM and self.name.startswith("|")

	def __str__(self) -> str:
		if self.kind is LifetimeKind.PARAM:
			return f"'{self.name}"
		if self.kind is LifetimeKind.STATIC:
			return "'static"
		if self.kind is LifetimeKind.ELIDED:
			return "'_"
		if self.kind is LifetimeKind.CONCRETE:
			return f"'r{self.region}"
		return f"'?{self.serial}"


STATIC = Lifetime(LifetimeKind.STATIC, "static")
ELIDED = Lifetime(LifetimeKind.ELIDED, "_")

_SYNTHETIC_SERIALS = itertools.count(1)


__all__ = ["ELIDED", "Lifetime", "LifetimeKind", "RegionId", "STATIC"]
