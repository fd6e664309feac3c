# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
High-level Intermediate Representation (HIR) consumed by the analyzer.

The HIR is the "already parsed, simplified program representation": a small
sugar-free tree of statements and expressions with no control flow. Harnesses
may build it directly in Python (tests do) or through the fragment-language
parser in `regionck.parser`.

Guiding rules:
- Nodes are purely syntactic; names are resolved by the liveness pass, which
  records the resolved binding ordinal in `binding_id`.
- Places (borrow/move/assignment operands) are `HVar` optionally wrapped in
  `HField` projections.
- Method calls carry an explicit receiver.
- A block may end in a tail expression, which is the block's value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from regionck.core.span import Span
from regionck.core.types_core import Ty

# Ordinal of a binding within one fragment, assigned by name resolution.
BindingId = int


class HNode:
	"""Base class for all HIR nodes."""


class HExpr(HNode):
	"""Base class for all HIR expressions."""
	pass


class HStmt(HNode):
	"""Base class for all HIR statements."""
	pass


# Expressions

@dataclass(eq=False)
class HVar(HExpr):
	"""Reference to a local/parameter binding (resolved by the liveness pass)."""
	name: str
	binding_id: Optional[BindingId] = None
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HField(HExpr):
	"""Field access: subject.name"""
	subject: HExpr
	name: str
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HLiteralInt(HExpr):
	value: int
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HLiteralString(HExpr):
	value: str
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HBorrow(HExpr):
	"""Borrow a place: &subject or &mut subject."""
	subject: HExpr
	is_mut: bool = False
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HMove(HExpr):
	"""
	Explicit move out of a place: `move <place>`.

	Unlike a plain read, an explicit move never copies, so `move s.a` moves a
	field even when its type is Copy.
	"""
	subject: HExpr
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HPath(HExpr):
	"""Type-level qualified member reference: `Type::member` (only ever called)."""
	type_name: str
	member: str
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HCall(HExpr):
	"""
	Call: fn(args...).

	`fn` is an `HVar` (a named function, a builtin, or a binding holding a
	callable value) or an `HPath` (`String::from(...)`).
	"""
	fn: HExpr
	args: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HMethodCall(HExpr):
	"""
	Method call with explicit receiver.

	Example: `data.push_str(" World")` is
	    HMethodCall(receiver=HVar("data"), method_name="push_str", args=[HLiteralString(" World")])
	"""
	receiver: HExpr
	method_name: str
	args: List[HExpr]
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HFieldInit(HNode):
	name: str
	value: HExpr
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HStructInit(HExpr):
	"""Struct literal: `Name { field: value, ... }`."""
	struct_name: str
	fields: List[HFieldInit]
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HParam(HNode):
	"""Closure parameter; `type` is None when it is inferred from the call site."""
	name: str
	type: Optional[Ty] = None
	binding_id: Optional[BindingId] = None
	span: Span = field(default_factory=Span)


@dataclass(eq=False)
class HLambda(HExpr):
	"""
	Closure expression `|params| body`.

	Exactly one of `body_expr` / `body_block` is set. `closure_id` is assigned
	by the liveness pass and keys the closure's summary.
	"""
	params: List[HParam]
	ret_type: Optional[Ty] = None
	body_expr: Optional[HExpr] = None
	body_block: Optional["HBlock"] = None
	closure_id: Optional[int] = None
	span: Span = field(default_factory=Span)


# Statements

@dataclass(eq=False)
class HExprStmt(HStmt):
	"""Expression used as a statement (value discarded)."""
	expr: HExpr
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HLet(HStmt):
	"""
	Binding introduction: `let [mut] name [: T] [= value];`

	A `let` without a value declares an uninitialized binding; a later
	assignment initializes it.
	"""
	name: str
	value: Optional[HExpr] = None
	declared_type: Optional[Ty] = None
	binding_id: Optional[BindingId] = None
	is_mutable: bool = False
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HDestructure(HStmt):
	"""Destructuring let: `let Name { a, b } = value;`"""
	struct_name: str
	fields: List[str]
	value: HExpr
	binding_ids: List[Optional[BindingId]] = field(default_factory=list)
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HAssign(HStmt):
	"""Assignment to a place (`x = v;`, `x.f = v;`)."""
	target: HExpr
	value: HExpr
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HReturn(HStmt):
	value: Optional[HExpr] = None
	loc: Span = field(default_factory=Span)


@dataclass(eq=False)
class HBlock(HStmt):
	"""Ordered list of statements opening its own region; `tail` is its value."""
	statements: List[HStmt]
	tail: Optional[HExpr] = None
	loc: Span = field(default_factory=Span)


def place_of(expr: HExpr) -> Optional[Tuple[HVar, Tuple[str, ...]]]:
	"""
	Decompose a place expression into its base binding and field path.

	Returns None when `expr` is not addressable (calls, literals, borrows...).
	"""
	path: List[str] = []
	cur = expr
	while isinstance(cur, HField):
		path.append(cur.name)
		cur = cur.subject
	if isinstance(cur, HVar):
		return cur, tuple(reversed(path))
	return None


def node_span(node: HNode) -> Span:
	span = getattr(node, "loc", None) or getattr(node, "span", None)
	return span if isinstance(span, Span) else Span()


__all__ = [
	"BindingId",
	"HNode", "HExpr", "HStmt",
	"HVar", "HField", "HLiteralInt", "HLiteralString",
	"HBorrow", "HMove", "HPath", "HCall", "HMethodCall",
	"HFieldInit", "HStructInit", "HParam", "HLambda",
	"HExprStmt", "HLet", "HDestructure", "HAssign", "HReturn", "HBlock",
	"place_of", "node_span",
]
