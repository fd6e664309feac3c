# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Top-level fragments submitted to the analyzer, in declaration order.

- `StructFragment`: a struct definition.
- `FnFragment`: a function or method signature, optionally with a body.
  Methods of an `impl` block are flattened into one fragment each, named
  `Type::method`.
- `BlockFragment`: a named scoped block of statements (a lesson example).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

from regionck.core.span import Span
from regionck.core.types_core import Signature, StructDef
from regionck.hir_nodes import HBlock


@dataclass
class StructFragment:
	definition: StructDef
	loc: Span = field(default_factory=Span)

	@property
	def name(self) -> str:
		return self.definition.name


@dataclass
class FnFragment:
	signature: Signature
	body: Optional[HBlock] = None
	impl_type: Optional[str] = None
	loc: Span = field(default_factory=Span)

	@property
	def name(self) -> str:
		if self.impl_type:
			return f"{self.impl_type}::{self.signature.name}"
		return self.signature.name


@dataclass
class BlockFragment:
	name: str
	body: HBlock
	loc: Span = field(default_factory=Span)


Fragment = Union[StructFragment, FnFragment, BlockFragment]


def fragment_kind(fragment: Fragment) -> str:
	if isinstance(fragment, StructFragment):
		return "struct"
	if isinstance(fragment, FnFragment):
		return "method" if fragment.impl_type else "fn"
	if isinstance(fragment, BlockFragment):
		return "block"
	raise AssertionError(f"unknown fragment type {type(fragment).__name__}")


__all__ = ["BlockFragment", "FnFragment", "Fragment", "StructFragment", "fragment_kind"]
