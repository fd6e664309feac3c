# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Liveness: flatten a fragment body into a linear step list and compute, for
every binding, the index of its last use.

Borrows end at the last use of whatever holds them, not at the end of the
enclosing block. The body pass needs that information *before* it walks the
program, so this pass runs first:

  * the body is flattened into `OPEN` / `PARAM` / `STMT` / `CLOSE` steps;
  * names are resolved statically through a scope stack, and every binding
    gets an ordinal (stored on the HIR node as `binding_id`);
  * `last_use[ordinal]` is the index of the last step that reads the binding.

A whole-binding assignment (`x = v;`) is not a use of `x`; a field assignment
is. Closure bodies are flattened into their own step lists; a use of an outer
binding inside a closure counts as a use at the step of the statement that
creates the closure.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Sequence

from regionck import hir_nodes as H
from regionck.core.errors import LimitExceeded
from regionck.core.types_core import Param


class StepKind(Enum):
	OPEN = auto()
	CLOSE = auto()
	PARAM = auto()
	STMT = auto()


@dataclass
class Step:
	index: int
	kind: StepKind
	# HBlock / HLambda for OPEN and CLOSE, Param / HParam for PARAM, the statement
	# (or tail expression) for STMT.
	node: object = None
	binding: Optional[int] = None
	tail: bool = False


@dataclass
class FlatBody:
	"""Step list of one body (function, block, or closure) plus its last uses."""

	steps: List[Step] = field(default_factory=list)
	last_use: Dict[int, int] = field(default_factory=dict)
	# Ordinals declared directly in this body (not in nested closures).
	owned: List[int] = field(default_factory=list)

	def emit(self, kind: StepKind, node: object = None, *, binding: Optional[int] = None, tail: bool = False) -> Step:
		step = Step(index=len(self.steps), kind=kind, node=node, binding=binding, tail=tail)
		self.steps.append(step)
		return step

	@property
	def current(self) -> int:
		return len(self.steps) - 1

	def is_live_after(self, ordinal: int, index: int) -> bool:
		"""True when the binding is used at a step later than `index`."""
		return self.last_use.get(ordinal, -1) > index


@dataclass
class Liveness:
	"""Result of flattening one fragment."""

	body: FlatBody
	closures: Dict[int, FlatBody] = field(default_factory=dict)
	names: Dict[int, str] = field(default_factory=dict)

	@property
	def total_steps(self) -> int:
		return len(self.body.steps) + sum(len(c.steps) for c in self.closures.values())


class _Flattener:
	def __init__(self) -> None:
		self._ordinals = itertools.count()
		self._closure_ids = itertools.count()
		self._scopes: List[Dict[str, int]] = []
		self._owner: Dict[int, FlatBody] = {}
		self._flat: Optional[FlatBody] = None
		self.closures: Dict[int, FlatBody] = {}
		self.names: Dict[int, str] = {}

	# Scopes

	def _declare(self, name: str) -> int:
		ordinal = next(self._ordinals)
		self._scopes[-1][name] = ordinal
		self._owner[ordinal] = self._flat  # type: ignore[assignment]
		self._flat.owned.append(ordinal)  # type: ignore[union-attr]
		self.names[ordinal] = name
		return ordinal

	def _lookup(self, name: str) -> Optional[int]:
		for scope in reversed(self._scopes):
			if name in scope:
				return scope[name]
		return None

	def _use(self, ordinal: int) -> None:
		owner = self._owner[ordinal]
		owner.last_use[ordinal] = max(owner.last_use.get(ordinal, -1), owner.current)

	# Bodies

	def flatten_fn(self, block: H.HBlock, params: Sequence[Param]) -> FlatBody:
		flat = FlatBody()
		outer, self._flat = self._flat, flat
		flat.emit(StepKind.OPEN, block)
		self._scopes.append({})
		for param in params:
			ordinal = self._declare(param.name)
			flat.emit(StepKind.PARAM, param, binding=ordinal)
		self._statements(block)
		flat.emit(StepKind.CLOSE, block)
		self._scopes.pop()
		self._flat = outer
		return flat

	def _lambda(self, lam: H.HLambda) -> None:
		lam.closure_id = next(self._closure_ids)
		flat = FlatBody()
		outer, self._flat = self._flat, flat
		flat.emit(StepKind.OPEN, lam)
		self._scopes.append({})
		for param in lam.params:
			param.binding_id = self._declare(param.name)
			flat.emit(StepKind.PARAM, param, binding=param.binding_id)
		if lam.body_block is not None:
			self._statements(lam.body_block)
		elif lam.body_expr is not None:
			flat.emit(StepKind.STMT, lam.body_expr, tail=True)
			self._expr(lam.body_expr)
		flat.emit(StepKind.CLOSE, lam)
		self._scopes.pop()
		self._flat = outer
		self.closures[lam.closure_id] = flat

	def _statements(self, block: H.HBlock) -> None:
		for stmt in block.statements:
			self._stmt(stmt)
		if block.tail is not None:
			self._flat.emit(StepKind.STMT, block.tail, tail=True)  # type: ignore[union-attr]
			self._expr(block.tail)

	def _stmt(self, stmt: H.HStmt) -> None:
		flat = self._flat
		assert flat is not None
		if isinstance(stmt, H.HBlock):
			flat.emit(StepKind.OPEN, stmt)
			self._scopes.append({})
			self._statements(stmt)
			flat.emit(StepKind.CLOSE, stmt)
			self._scopes.pop()
			return
		flat.emit(StepKind.STMT, stmt)
		if isinstance(stmt, H.HLet):
			if stmt.value is not None:
				self._expr(stmt.value)
			stmt.binding_id = self._declare(stmt.name)
		elif isinstance(stmt, H.HDestructure):
			self._expr(stmt.value)
			stmt.binding_ids = [self._declare(name) for name in stmt.fields]
		elif isinstance(stmt, H.HAssign):
			self._expr(stmt.value)
			self._assign_target(stmt.target)
		elif isinstance(stmt, H.HExprStmt):
			self._expr(stmt.expr)
		elif isinstance(stmt, H.HReturn):
			if stmt.value is not None:
				self._expr(stmt.value)
		else:
			raise AssertionError(f"unsupported statement {type(stmt).__name__}")

	def _assign_target(self, target: H.HExpr) -> None:
		if isinstance(target, H.HVar):
			target.binding_id = self._lookup(target.name)
			return
		self._expr(target)

	def _expr(self, expr: Optional[H.HExpr]) -> None:
		if expr is None:
			return
		if isinstance(expr, H.HVar):
			expr.binding_id = self._lookup(expr.name)
			if expr.binding_id is not None:
				self._use(expr.binding_id)
		elif isinstance(expr, H.HField):
			self._expr(expr.subject)
		elif isinstance(expr, (H.HBorrow, H.HMove)):
			self._expr(expr.subject)
		elif isinstance(expr, H.HCall):
			self._expr(expr.fn)
			for arg in expr.args:
				self._expr(arg)
		elif isinstance(expr, H.HMethodCall):
			self._expr(expr.receiver)
			for arg in expr.args:
				self._expr(arg)
		elif isinstance(expr, H.HStructInit):
			for init in expr.fields:
				self._expr(init.value)
		elif isinstance(expr, H.HLambda):
			self._lambda(expr)
		elif isinstance(expr, (H.HLiteralInt, H.HLiteralString, H.HPath)):
			pass
		else:
			raise AssertionError(f"unsupported expression {type(expr).__name__}")


def compute_liveness(
	body: H.HBlock,
	params: Sequence[Param] = (),
	*,
	max_steps: Optional[int] = None,
) -> Liveness:
	"""Flatten `body` (with `params` declared first) and compute last uses."""
	flattener = _Flattener()
	flat = flattener.flatten_fn(body, params)
	live = Liveness(body=flat, closures=flattener.closures, names=flattener.names)
	if max_steps is not None and live.total_steps > max_steps:
		raise LimitExceeded(
			f"fragment flattens to {live.total_steps} steps, more than the limit of {max_steps}",
		)
	return live


__all__ = ["FlatBody", "Liveness", "Step", "StepKind", "compute_liveness"]
