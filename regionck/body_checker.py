# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Per-fragment body pass.

Threads Region Model -> Binding Table -> Borrow Tracker through the step list
produced by the liveness pass, and calls the signature-level checkers
(Outlives, Universal-Bound) at call sites.

Value model
-----------
Every evaluated value carries, per lifetime position of its type, the set of
*origins* it was derived from: borrow ids issued in this fragment, or
symbolic lifetimes (parameters of the enclosing function or closure).
`'static` data has no origins. A reference obtained through another
reference (a call whose result is tied to an argument, a field read through a
reference) carries the origins of the original borrow, so the original stays
outstanding for as long as any holder is still going to be used.

Release policy
--------------
Before every step, each borrow issued by the current body is released unless
it is held by a binding with a use at or after that step (or by a pending
closure result). Temporaries therefore end with the statement that created
them and named references end at their last use.

Errors are raised at the failure point (`LifetimeError`) and abort the
fragment; the analyzer turns them into diagnostics. Warnings are appended to
`self.diagnostics`.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from regionck import hir_nodes as H
from regionck.bindings import Binding, BindingId, BindingState, BindingTable, BorrowId, Origin
from regionck.borrow_tracker import BorrowTracker, LoanKind
from regionck.core.diagnostics import Diagnostic, DiagnosticKind
from regionck.core.errors import (
	CannotMoveBorrowed,
	ConflictingBorrow,
	DanglingAfterDrop,
	LifetimeError,
	OutlivesViolation,
	UnresolvedName,
)
from regionck.core.lifetimes import ELIDED, STATIC, Lifetime, LifetimeKind, RegionId
from regionck.core.span import Span
from regionck.core.types_core import (
	FnTy,
	Mutability,
	OwnedTy,
	Param,
	RefTy,
	SelfMode,
	Signature,
	StructTy,
	Ty,
	lifetime_positions,
	map_lifetimes,
	nominal_name,
	with_positions,
)
from regionck.declarations import Declarations
from regionck.elision import elide
from regionck.liveness import FlatBody, Liveness, Step, StepKind, compute_liveness
from regionck.outlives import OutlivesChecker
from regionck.regions import RegionTree
from regionck.universal import ClosureSummary, check_closure, check_signature

Slots = Tuple[FrozenSet[Origin], ...]


@dataclass
class Value:
	"""An evaluated expression: its type plus the origins of each lifetime position."""

	ty: Optional[Ty] = None
	slots: Slots = ()
	captures: FrozenSet[Origin] = frozenset()
	closure: Optional[ClosureSummary] = None
	# Signature of a callable value (function item, callable parameter, closure).
	signature: Optional[Signature] = None

	def borrow_ids(self) -> Set[BorrowId]:
		held = {o for slot in self.slots for o in slot if isinstance(o, int)}
		held.update(o for o in self.captures if isinstance(o, int))
		return held


@dataclass
class _Place:
	binding: Binding
	path: Tuple[str, ...]
	ty: Optional[Ty]
	slots: Slots
	# Reference the place is reached through (base binding is a reference and
	# the path is non-empty).
	through: Optional[RefTy] = None


@dataclass
class _Frame:
	flat: FlatBody
	kind: str  # "fn", "block", "closure"
	first_borrow: int
	first_binding: int
	parent_region: RegionId
	root_tail: Optional[H.HExpr] = None
	ret: Optional[Ty] = None
	fn_name: str = ""
	regions: List[RegionId] = field(default_factory=list)
	returned: List[Value] = field(default_factory=list)
	captured: Dict[BindingId, Mutability] = field(default_factory=dict)
	closure: Optional[H.HLambda] = None
	closure_params: List[Ty] = field(default_factory=list)
	owned: Set[int] = field(default_factory=set)

	@property
	def region(self) -> RegionId:
		return self.regions[-1]


@dataclass
class BindingInfo:
	name: str
	region: RegionId
	ty: str
	state: str


@dataclass
class BorrowInfo:
	id: BorrowId
	binding: str
	kind: str
	region: RegionId
	binding_region: RegionId
	issued_at: Optional[int]
	released_at: Optional[int]


@dataclass
class RegionInfo:
	id: RegionId
	parent: Optional[RegionId]
	opened_at: Optional[int]
	closed_at: Optional[int]


@dataclass
class AnnotatedBlock:
	"""Successful analysis of a scoped block: bindings, borrow intervals, region intervals."""

	name: str
	bindings: List[BindingInfo] = field(default_factory=list)
	borrows: List[BorrowInfo] = field(default_factory=list)
	regions: List[RegionInfo] = field(default_factory=list)


class BodyChecker:
	"""Checks one function body or scoped block. One instance per fragment."""

	def __init__(self, decls: Declarations, *, max_steps: Optional[int] = None) -> None:
		self.decls = decls
		self.max_steps = max_steps
		self.regions_tree = RegionTree()
		self.bindings = BindingTable()
		self.tracker = BorrowTracker(self.bindings)
		self.outlives = OutlivesChecker(self.regions_tree)
		self.diagnostics: List[Diagnostic] = []
		self._clock = itertools.count()
		self._now = 0
		self._by_ordinal: Dict[int, BindingId] = {}
		self._ordinal_of: Dict[BindingId, int] = {}
		self._frames: List[_Frame] = []
		self._warned: Set[BindingId] = set()
		self._live: Optional[Liveness] = None
		self._span = Span()
		self._sig_lifetimes: Tuple[Lifetime, ...] = ()
		# Signature of the callable value held by a binding, if any.
		self._signatures: Dict[BindingId, Optional[Signature]] = {}
		# Origins of every return position of each analyzed closure.
		self._closure_ret_origins: Dict[int, Tuple[FrozenSet[Origin], ...]] = {}

	# Entry points

	def check_function(self, sig: Signature, body: H.HBlock, *, name: Optional[str] = None) -> None:
		"""Check a function body against its (fully annotated) signature."""
		self._live = compute_liveness(body, sig.params, max_steps=self.max_steps)
		for bound in sig.bounds:
			self.outlives.declare_constraint(bound.longer, bound.shorter)
		for p in sig.params:
			self.outlives.add_implied_bounds(p.ty)
		frame = self._new_frame(self._live.body, "fn", body.tail)
		frame.ret = sig.ret
		frame.fn_name = name or sig.name
		self._sig_lifetimes = sig.declared
		self._run(frame)

	def check_block(self, name: str, body: H.HBlock) -> AnnotatedBlock:
		self._live = compute_liveness(body, (), max_steps=self.max_steps)
		self._sig_lifetimes = ()
		frame = self._new_frame(self._live.body, "block", body.tail)
		self._run(frame)
		return self.annotate(name)

	def annotate(self, name: str) -> AnnotatedBlock:
		out = AnnotatedBlock(name=name)
		for b in self.bindings:
			out.bindings.append(BindingInfo(b.name, b.region, str(b.ty) if b.ty else "?", b.state.name))
		for loan in self.tracker:
			owner = self.bindings.get(loan.binding)
			out.borrows.append(
				BorrowInfo(
					id=loan.id,
					binding=owner.name,
					kind=loan.kind.name,
					region=loan.region,
					binding_region=owner.region,
					issued_at=loan.issued_at,
					released_at=loan.released_at,
				)
			)
		for reg in self.regions_tree:
			out.regions.append(RegionInfo(reg.id, reg.parent, reg.opened_at, reg.closed_at))
		return out

	# Frames and steps

	def _new_frame(self, flat: FlatBody, kind: str, root_tail: Optional[H.HExpr]) -> _Frame:
		parent = self._frames[-1].region if self._frames else self.regions_tree.root
		return _Frame(
			flat=flat,
			kind=kind,
			first_borrow=len(list(self.tracker)),
			first_binding=len(self.bindings),
			parent_region=parent,
			root_tail=root_tail,
			owned=set(flat.owned),
		)

	def _run(self, frame: _Frame) -> None:
		self._frames.append(frame)
		try:
			for step in frame.flat.steps:
				self._now = next(self._clock)
				self._span = H.node_span(step.node) if isinstance(step.node, H.HNode) else Span()
				try:
					self._release(frame, step.index)
					self._step(frame, step)
				except LifetimeError as err:
					raise err.at(self._span)
			if len(self._frames) == 1:
				self.tracker.release_unused((), self._now)
		finally:
			self._frames.pop()

	def _release(self, frame: _Frame, index: int) -> None:
		live: Set[BorrowId] = set()
		for value in frame.returned:
			live |= value.borrow_ids()
		for b in self.bindings:
			if b.dropped:
				continue
			ordinal = self._ordinal_of.get(b.id)
			if ordinal in frame.owned and not frame.flat.last_use.get(ordinal, -1) >= index:
				continue
			live |= b.held_borrows()
		for loan in self.tracker.all_active():
			if loan.id >= frame.first_borrow and loan.id not in live:
				self.tracker.release(loan.id, self._now)

	def _step(self, frame: _Frame, step: Step) -> None:
		if step.kind is StepKind.OPEN:
			parent = frame.region if frame.regions else frame.parent_region
			frame.regions.append(self.regions_tree.open_region(parent, at=self._now))
			if step.index == 0 and frame.kind == "fn":
				for lt in self._sig_lifetimes:
					self.outlives.bind_floor(lt, frame.region)
		elif step.kind is StepKind.CLOSE:
			region = frame.regions.pop()
			self._drop_region(frame, region)
			self.regions_tree.close_region(region, at=self._now)
		elif step.kind is StepKind.PARAM:
			self._declare_param(frame, step)
		elif step.tail:
			value = self._eval(step.node)
			if step.node is frame.root_tail:
				self._return(frame, value)
		else:
			self._stmt(frame, step.node)

	def _drop_region(self, frame: _Frame, region: RegionId) -> None:
		for b in reversed(self.bindings.bindings_in(region)):
			if b.active_borrows:
				loans = set(b.active_borrows)
				holders = [
					h.name for h in self.bindings
					if not h.dropped and h.id != b.id and loans & h.held_borrows()
				]
				if frame.kind == "closure" and any(loans & v.borrow_ids() for v in frame.returned):
					message = f"closure returns a reference to `{b.name}`, which is owned by the closure body"
				else:
					message = f"`{b.name}` does not live long enough: dropped at the end of its block while still borrowed"
				raise DanglingAfterDrop(
					message,
					bindings=[b.name] + holders,
					regions=[region],
					notes=[f"borrow later used by `{h}`" for h in holders],
				)
			self.bindings.drop(b.id)

	def _bind(self, ordinal: Optional[int], binding: BindingId) -> None:
		if ordinal is not None:
			self._by_ordinal[ordinal] = binding
			self._ordinal_of[binding] = ordinal

	def _declare_param(self, frame: _Frame, step: Step) -> None:
		node = step.node
		if isinstance(node, Param):
			ty = node.ty
			slots = tuple(frozenset({lt}) for lt in lifetime_positions(ty))
			span = Span()
		else:
			idx = frame.closure.params.index(node)  # type: ignore[union-attr]
			ty = frame.closure_params[idx]
			slots = tuple(frozenset({lt}) for lt in lifetime_positions(ty))
			for lt in lifetime_positions(ty):
				if lt.is_closure_param:
					self.outlives.bind_floor(lt, frame.region)
			self.outlives.add_implied_bounds(ty)
			span = node.span
		bid = self.bindings.declare(node.name, frame.region, ty, span=span)
		b = self.bindings.get(bid)
		b.slots = slots
		self._bind(step.binding, bid)

	# Statements

	def _stmt(self, frame: _Frame, stmt: H.HStmt) -> None:
		if isinstance(stmt, H.HLet):
			declared = self.decls.normalize_ty(stmt.declared_type)
			value = self._eval(stmt.value, expected=declared) if stmt.value is not None else None
			ty = declared if declared is not None else (value.ty if value else None)
			if declared is not None and value is not None:
				ty = self._fill_elided(declared, value)
			bid = self.bindings.declare(
				stmt.name,
				frame.region,
				ty,
				mutable=stmt.is_mutable,
				initialized=value is not None,
				span=stmt.loc,
			)
			if value is not None:
				self._store(self.bindings.get(bid), value)
			self._bind(stmt.binding_id, bid)
		elif isinstance(stmt, H.HDestructure):
			self._destructure(frame, stmt)
		elif isinstance(stmt, H.HAssign):
			self._assign(stmt)
		elif isinstance(stmt, H.HExprStmt):
			self._eval(stmt.expr)
		elif isinstance(stmt, H.HReturn):
			value = self._eval(stmt.value) if stmt.value is not None else Value()
			self._return(frame, value)
		else:
			raise AssertionError(f"unsupported statement {type(stmt).__name__}")

	def _store(self, b: Binding, value: Value) -> None:
		b.slots = value.slots
		b.captures = value.captures
		b.closure = value.closure
		if value.signature is not None and b.ty is None:
			b.ty = FnTy(value.signature)
		if b.ty is None:
			b.ty = value.ty
		self._signatures[b.id] = value.signature

	def _fill_elided(self, declared: Ty, value: Value) -> Ty:
		"""Give the omitted positions of a `let` annotation the initializer's lifetimes."""
		positions = lifetime_positions(declared)
		if not any(lt.is_elided for lt in positions):
			return declared
		filled = []
		for k, lt in enumerate(positions):
			if lt.is_elided:
				lt = self._slot_lifetime(value.slots[k]) if k < len(value.slots) else STATIC
			filled.append(lt)
		return with_positions(declared, filled)

	def _destructure(self, frame: _Frame, stmt: H.HDestructure) -> None:
		sdef = self.decls.structs.get(stmt.struct_name)
		if sdef is None:
			raise UnresolvedName(f"cannot find struct `{stmt.struct_name}`")
		target = H.place_of(stmt.value)
		values: List[Value] = []
		if target is not None:
			place = self._place(*target)
			if nominal_name(place.ty) != sdef.name or isinstance(place.ty, RefTy):
				raise UnresolvedName(f"cannot destructure `{place.binding.name}` as `{sdef.name}`")
			copied = []
			for name in stmt.fields:
				fld = self._project(place, name)
				if self.decls.is_copy(fld.ty):
					self._read(fld)
					copied.append(name)
				else:
					self._move(fld)
				values.append(Value(fld.ty, fld.slots))
			place.binding.copied_fields.update(copied)
		else:
			whole = self._eval(stmt.value)
			tmp = _Place(binding=None, path=(), ty=whole.ty, slots=whole.slots)  # type: ignore[arg-type]
			for name in stmt.fields:
				fld = self._project(tmp, name)
				values.append(Value(fld.ty, fld.slots))
		for name, ordinal, value in zip(stmt.fields, stmt.binding_ids, values):
			bid = self.bindings.declare(name, frame.region, value.ty, span=stmt.loc)
			self._store(self.bindings.get(bid), value)
			self._bind(ordinal, bid)

	def _assign(self, stmt: H.HAssign) -> None:
		target = H.place_of(stmt.target)
		if target is None:
			raise UnresolvedName("invalid left-hand side of assignment")
		var, path = target
		if var.binding_id is None:
			raise UnresolvedName(f"cannot find value `{var.name}` in this scope")
		b = self.bindings.get(self._by_ordinal[var.binding_id])
		expected = None
		if path:
			expected = self._place(var, path).ty
		value = self._eval(stmt.value, expected=expected)
		if not path:
			self._note_capture(b, Mutability.EXCLUSIVE)
			self.bindings.assign(b.id)
			self._store(b, value)
			return
		place = self._place(var, path)
		if place.through is not None:
			if not place.through.is_exclusive:
				raise ConflictingBorrow(
					f"cannot assign to `{'.'.join((b.name,) + path)}`, which is behind a shared reference",
					bindings=[b.name],
				)
			self._note_capture(b, Mutability.SHARED)
			self.bindings.read(b.id)
			self._check_stored(place, value)
			return
		self._note_container_use(b)
		self._note_capture(b, Mutability.EXCLUSIVE)
		self.bindings.assign(b.id, path)
		# The container now also holds whatever the new field value borrows.
		slots = list(b.slots)
		for idx, origins in zip(self._slot_sources(b.ty, path), value.slots):
			if idx is not None and idx < len(slots):
				slots[idx] = slots[idx] | origins
		b.slots = tuple(slots)

	def _slot_sources(self, ty: Optional[Ty], path: Sequence[str]) -> List[Optional[int]]:
		"""For each lifetime position of the field at `path`, the container slot it maps to."""
		sources: List[Optional[int]] = list(range(len(lifetime_positions(ty))))
		for name in path:
			sdef = self.decls.structs.get(ty.name) if isinstance(ty, StructTy) else None
			fld = sdef.field(name) if sdef else None
			if fld is None:
				return []
			sources = [
				sources[idx] if idx is not None and idx < len(sources) else None
				for idx in (sdef.param_index(lt) for lt in lifetime_positions(fld.ty))
			]
			args = dict(zip(sdef.lifetime_params, ty.lifetimes))
			ty = map_lifetimes(fld.ty, lambda lt: args.get(lt, lt))
		return sources

	def _check_stored(self, place: _Place, value: Value) -> None:
		"""A value stored through a reference must outlive the target's lifetimes."""
		for want, origins in zip(lifetime_positions(place.ty), value.slots):
			if want.is_elided:
				continue
			for origin in origins:
				have = self._origin_lifetime(origin)
				if not self.outlives.check_outlives(have, want):
					raise OutlivesViolation(
						f"value assigned to `{'.'.join((place.binding.name,) + place.path)}` "
						f"does not live long enough: {have} must outlive {want}",
						bindings=[place.binding.name],
						lifetimes=[have, want],
					)

	# Returns

	def _return(self, frame: _Frame, value: Value) -> None:
		if frame.kind == "closure":
			frame.returned.append(value)
			return
		if frame.kind != "fn" or frame.ret is None:
			return
		for want, origins in zip(lifetime_positions(frame.ret), value.slots):
			for origin in sorted(origins, key=str):
				if isinstance(origin, int):
					owner = self.bindings.get(self.tracker.get(origin).binding)
					raise DanglingAfterDrop(
						f"`{frame.fn_name}` returns a reference to data owned by the function (`{owner.name}`)",
						bindings=[owner.name],
						regions=[owner.region],
						notes=[f"`{owner.name}` is dropped when `{frame.fn_name}` returns"],
					)
				if not self.outlives.check_outlives(origin, want):
					raise OutlivesViolation(
						f"`{frame.fn_name}` returns data with lifetime {origin} where {want} is required",
						lifetimes=[origin, want],
						notes=[f"consider declaring `{origin}: {want}`"],
					)

	# Places

	def _binding_of(self, var: H.HVar) -> Binding:
		if var.binding_id is None or var.binding_id not in self._by_ordinal:
			raise UnresolvedName(f"cannot find value `{var.name}` in this scope", bindings=[var.name])
		return self.bindings.get(self._by_ordinal[var.binding_id])

	def _place(self, var: H.HVar, path: Sequence[str]) -> _Place:
		b = self._binding_of(var)
		place = _Place(binding=b, path=(), ty=b.ty, slots=b.slots)
		for name in path:
			place = self._project(place, name)
		return place

	def _project(self, place: _Place, name: str) -> _Place:
		ty = place.ty
		slots = place.slots
		through = place.through
		while isinstance(ty, RefTy):
			through = through or ty
			ty = ty.pointee
			slots = slots[1:]
		sdef = self.decls.structs.get(ty.name) if isinstance(ty, StructTy) else None
		fld = sdef.field(name) if sdef else None
		if fld is None:
			raise UnresolvedName(f"no field `{name}` on type `{ty}`", bindings=[place.binding.name] if place.binding else [])
		args = dict(zip(sdef.lifetime_params, ty.lifetimes))
		field_ty = map_lifetimes(fld.ty, lambda lt: args.get(lt, lt))
		field_slots = []
		for lt in lifetime_positions(fld.ty):
			idx = sdef.param_index(lt)
			field_slots.append(slots[idx] if idx is not None and idx < len(slots) else frozenset())
		return _Place(
			binding=place.binding,
			path=place.path + (name,),
			ty=field_ty,
			slots=tuple(field_slots),
			through=through,
		)

	def _note_capture(self, b: Binding, mutability: Mutability) -> None:
		for frame in self._frames:
			if frame.kind == "closure" and b.id < frame.first_binding:
				prev = frame.captured.get(b.id)
				if prev is not Mutability.EXCLUSIVE:
					frame.captured[b.id] = mutability

	def _note_container_use(self, b: Binding) -> None:
		if b.copied_fields and b.id not in self._warned:
			self._warned.add(b.id)
			self.diagnostics.append(
				Diagnostic(
					message=(
						f"`{b.name}` is used after fields {sorted(b.copied_fields)} were destructured out of it; "
						"accepted because the fields are Copy, but the whole-value and per-field views disagree"
					),
					severity="warning",
					phase="borrowcheck",
					span=self._span,
					kind=DiagnosticKind.AMBIGUOUS_PARTIAL_MOVE,
					bindings=[b.name],
					regions=[b.region],
				)
			)

	def _check_not_exclusively_borrowed(self, b: Binding) -> None:
		for loan in self.tracker.active(b.id):
			if loan.kind is LoanKind.EXCLUSIVE:
				raise ConflictingBorrow(
					f"cannot use `{b.name}` because it is borrowed as exclusive",
					bindings=[b.name],
					regions=[loan.region],
				)

	def _read(self, place: _Place) -> None:
		b = place.binding
		self._note_container_use(b)
		self._note_capture(b, Mutability.SHARED)
		if place.through is None:
			self.bindings.read(b.id, place.path)
			self._check_not_exclusively_borrowed(b)
		else:
			self.bindings.read(b.id)

	def _move(self, place: _Place) -> None:
		b = place.binding
		self._note_container_use(b)
		self._note_capture(b, Mutability.EXCLUSIVE)
		if place.through is not None:
			raise CannotMoveBorrowed(
				f"cannot move out of `{'.'.join((b.name,) + place.path)}`, which is behind a reference",
				bindings=[b.name],
			)
		if place.path:
			self.bindings.partial_move(b.id, place.path)
		else:
			self.bindings.move_out(b.id)

	def _use_place(self, place: _Place) -> Value:
		"""Read a place as an rvalue: copy, reborrow, or move."""
		ty = place.ty
		value = Value(ty, place.slots)
		if not place.path:
			value.captures = place.binding.captures
			value.closure = place.binding.closure
			value.signature = self._signatures.get(place.binding.id)
		if self.decls.is_copy(ty) or (isinstance(ty, RefTy) and ty.is_exclusive):
			self._read(place)
		else:
			self._move(place)
		return value

	def _borrow_place(self, place: _Place, mutability: Mutability) -> Value:
		b = place.binding
		self._note_container_use(b)
		self._note_capture(b, mutability)
		if place.through is not None:
			if mutability is Mutability.EXCLUSIVE and not place.through.is_exclusive:
				raise ConflictingBorrow(
					f"cannot borrow `{'.'.join((b.name,) + place.path)}` as exclusive, "
					"as it is behind a shared reference",
					bindings=[b.name],
				)
			self.bindings.read(b.id)
			# Temporary loan on the reference itself; the result keeps the
			# origins of the reference it was reached through.
			self.tracker.borrow(b.id, mutability, self._frames[-1].region, at=self._now)
			first = b.slots[0] if b.slots else frozenset()
			ty = RefTy(self._slot_lifetime(first), mutability, place.ty)
			return Value(ty, (first,) + place.slots)
		self.bindings.read(b.id, place.path)
		loan = self.tracker.borrow(b.id, mutability, self._frames[-1].region, at=self._now)
		ty = RefTy(self.tracker.get(loan).lifetime, mutability, place.ty)
		return Value(ty, (frozenset({loan}),) + place.slots)

	# Lifetimes of origins

	def _origin_lifetime(self, origin: Origin) -> Lifetime:
		if isinstance(origin, int):
			return self.tracker.get(origin).lifetime
		return origin

	def _slot_lifetime(self, origins: FrozenSet[Origin]) -> Lifetime:
		lts = [self._origin_lifetime(o) for o in origins]
		if not lts:
			return STATIC
		m = self.outlives.meet(lts)
		if m is not None:
			return m
		return Lifetime.concrete(self._frames[-1].region)

	# Expressions

	def _eval(self, expr: Optional[H.HExpr], expected: Optional[Ty] = None) -> Value:
		if expr is None:
			return Value()
		if isinstance(expr, H.HLiteralString):
			return Value(RefTy(STATIC, Mutability.SHARED, OwnedTy("str")), (frozenset(),))
		if isinstance(expr, H.HLiteralInt):
			return Value(OwnedTy("i32"))
		if isinstance(expr, H.HVar) and expr.binding_id is None:
			sig = self.decls.functions.get(expr.name)
			if sig is not None:
				return Value(FnTy(sig), signature=sig)
			raise self._unresolved(expr.name)
		if isinstance(expr, (H.HVar, H.HField)):
			var, path = H.place_of(expr)  # type: ignore[misc]
			return self._use_place(self._place(var, path))
		if isinstance(expr, H.HBorrow):
			mutability = Mutability.EXCLUSIVE if expr.is_mut else Mutability.SHARED
			target = H.place_of(expr.subject)
			if target is None:
				inner = self._eval(expr.subject)
				return Value(RefTy(STATIC, mutability, inner.ty or OwnedTy("_")), (frozenset(),) + inner.slots)
			return self._borrow_place(self._place(*target), mutability)
		if isinstance(expr, H.HMove):
			target = H.place_of(expr.subject)
			if target is None:
				raise UnresolvedName("`move` needs a place operand")
			place = self._place(*target)
			value = Value(place.ty, place.slots)
			if not place.path:
				value.captures = place.binding.captures
				value.closure = place.binding.closure
				value.signature = self._signatures.get(place.binding.id)
			self._move(place)
			return value
		if isinstance(expr, H.HStructInit):
			return self._struct_init(expr)
		if isinstance(expr, H.HCall):
			return self._eval_call(expr)
		if isinstance(expr, H.HMethodCall):
			return self._eval_method(expr)
		if isinstance(expr, H.HLambda):
			sig = expected.signature if isinstance(expected, FnTy) else None
			return self._eval_lambda(expr, sig)
		if isinstance(expr, H.HPath):
			raise UnresolvedName(f"`{expr.type_name}::{expr.member}` must be called")
		raise AssertionError(f"unsupported expression {type(expr).__name__}")

	def _unresolved(self, name: str) -> UnresolvedName:
		if name in self.decls.rejected:
			return UnresolvedName(
				f"`{name}` cannot be used: its declaration was rejected",
				bindings=[name],
			)
		return UnresolvedName(f"cannot find `{name}` in this scope", bindings=[name])

	def _struct_init(self, expr: H.HStructInit) -> Value:
		sdef = self.decls.structs.get(expr.struct_name)
		if sdef is None:
			raise self._unresolved(expr.struct_name)
		given = {init.name: init for init in expr.fields}
		for init in expr.fields:
			if sdef.field(init.name) is None:
				raise UnresolvedName(f"struct `{sdef.name}` has no field named `{init.name}`")
		missing = [f.name for f in sdef.fields if f.name not in given]
		if missing:
			raise UnresolvedName(f"missing fields {missing} in initializer of `{sdef.name}`")
		slots: List[Set[Origin]] = [set() for _ in sdef.lifetime_params]
		for init in expr.fields:
			fld = sdef.field(init.name)
			value = self._eval(init.value, expected=fld.ty)
			for lt, origins in zip(lifetime_positions(fld.ty), value.slots):
				idx = sdef.param_index(lt)
				if idx is not None:
					slots[idx] |= origins
		frozen = tuple(frozenset(s) for s in slots)
		ty = StructTy(sdef.name, tuple(self._slot_lifetime(s) for s in frozen))
		return Value(ty, frozen)

	# Calls

	def _eval_call(self, call: H.HCall) -> Value:
		fn = call.fn
		if isinstance(fn, H.HPath):
			sig = self.decls.lookup_method(fn.type_name, fn.member)
			if sig is not None:
				return self._call(sig, call.args, name=f"{fn.type_name}::{fn.member}")
			for arg in call.args:
				self._eval_arg_as_temp(arg)
			sdef = self.decls.structs.get(fn.type_name)
			if sdef is not None and sdef.lifetime_params:
				raise UnresolvedName(f"no associated function `{fn.member}` on `{fn.type_name}`")
			return Value(OwnedTy(fn.type_name))
		if not isinstance(fn, H.HVar):
			raise AssertionError("call target must be a name or a path")
		if fn.binding_id is None:
			if fn.name in self.decls.functions:
				return self._call(self.decls.functions[fn.name], call.args, name=fn.name)
			if fn.name == "drop":
				if len(call.args) != 1:
					raise UnresolvedName(f"`drop` takes 1 argument but {len(call.args)} were supplied")
				self._eval(call.args[0])
				return Value()
			if fn.name == "print":
				for arg in call.args:
					self._eval_arg_as_temp(arg)
				return Value()
			raise self._unresolved(fn.name)
		callee = self._eval(fn)
		if callee.closure is not None:
			return self._call_closure(callee, call.args, fn.name)
		if callee.signature is None and isinstance(callee.ty, FnTy):
			callee.signature = callee.ty.signature
		if callee.signature is None:
			raise UnresolvedName(f"`{fn.name}` is not callable", bindings=[fn.name])
		return self._call(elide(callee.signature, universal=True), call.args, name=fn.name)

	def _eval_arg_as_temp(self, arg: H.HExpr) -> None:
		"""Evaluate a by-reference argument of a builtin: places are borrowed, not moved."""
		target = H.place_of(arg)
		if target is not None and not (isinstance(arg, H.HVar) and arg.binding_id is None):
			self._borrow_place(self._place(*target), Mutability.SHARED)
		else:
			self._eval(arg)

	def _eval_method(self, call: H.HMethodCall) -> Value:
		target = H.place_of(call.receiver)
		pre: Optional[Value] = None
		if target is not None:
			recv_ty = self._place(*target).ty
		else:
			pre = self._eval(call.receiver)
			recv_ty = pre.ty
		type_name = nominal_name(recv_ty)
		sig = self.decls.lookup_method(type_name, call.method_name)
		if sig is None or sig.receiver is None:
			raise UnresolvedName(
				f"no method named `{call.method_name}` found for `{recv_ty}`",
			)
		recv = self._receiver(sig, target, pre, recv_ty)
		return self._call(sig, call.args, name=f"{type_name}::{call.method_name}", receiver=recv)

	def _receiver(self, sig: Signature, target, pre: Optional[Value], recv_ty: Optional[Ty]) -> Value:
		mode = sig.self_mode
		if mode is SelfMode.SELF_BY_VALUE:
			if pre is not None:
				return pre
			place = self._place(*target)
			if isinstance(place.ty, RefTy) and not self.decls.is_copy(place.ty.pointee):
				raise CannotMoveBorrowed(
					f"cannot move out of `*{place.binding.name}`, which is behind a reference",
					bindings=[place.binding.name],
				)
			return self._use_place(place)
		mutability = Mutability.EXCLUSIVE if mode is SelfMode.SELF_BY_REF_MUT else Mutability.SHARED
		if pre is not None:
			if isinstance(pre.ty, RefTy):
				if mutability is Mutability.EXCLUSIVE and not pre.ty.is_exclusive:
					raise ConflictingBorrow("cannot borrow a shared reference's target as exclusive")
				return pre
			return Value(RefTy(STATIC, mutability, pre.ty or OwnedTy("_")), (frozenset(),) + pre.slots)
		place = self._place(*target)
		if isinstance(place.ty, RefTy):
			# Auto-deref: the receiver is a reference binding, reborrow it.
			if mutability is Mutability.EXCLUSIVE and not place.ty.is_exclusive:
				raise ConflictingBorrow(
					f"cannot borrow `*{'.'.join((place.binding.name,) + place.path)}` as exclusive, "
					"as it is behind a shared reference",
					bindings=[place.binding.name],
				)
			self._read(place)
			return Value(place.ty, place.slots)
		return self._borrow_place(place, mutability)

	def _call(
		self,
		sig: Signature,
		args: Sequence[H.HExpr],
		*,
		name: str,
		receiver: Optional[Value] = None,
	) -> Value:
		supplied = len(args) + (1 if receiver is not None else 0)
		if supplied != len(sig.params):
			raise UnresolvedName(
				f"`{name}` takes {len(sig.params)} argument(s) but {supplied} were supplied",
			)
		values: List[Value] = [receiver] if receiver is not None else []
		params = sig.params[len(values):]
		for param, arg in zip(params, args):
			values.append(self._eval_argument(param, arg))
		arg_lts = []
		for param, value in zip(sig.params, values):
			positions = lifetime_positions(param.ty)
			arg_lts.append(tuple(self._slot_lifetime(s) for s in value.slots[: len(positions)]))
		names = [p.name for p in sig.params]
		resolved = self.outlives.assign_call_site(
			sig, arg_lts, call_region=self._frames[-1].region, arg_names=names
		)
		callee = OutlivesChecker.for_signature(sig, self.regions_tree)
		for p in sig.params:
			callee.add_implied_bounds(p.ty)
		ret_slots: List[FrozenSet[Origin]] = []
		for want in lifetime_positions(sig.ret):
			if want.kind is LifetimeKind.STATIC:
				ret_slots.append(frozenset())
				continue
			flows: Set[Origin] = set()
			for param, value in zip(sig.params, values):
				for pos, origins in zip(lifetime_positions(param.ty), value.slots):
					if callee.check_outlives(pos, want):
						flows |= origins
			ret_slots.append(frozenset(flows))
		ret_ty = resolved.signature.ret
		return Value(ret_ty, tuple(ret_slots), signature=ret_ty.signature if isinstance(ret_ty, FnTy) else None)

	def _eval_argument(self, param: Param, arg: H.HExpr) -> Value:
		expected = param.ty
		fnty = expected if isinstance(expected, FnTy) else None
		value = self._eval(arg, expected=expected)
		if fnty is None:
			return value
		if value.closure is not None:
			check_closure(fnty.signature, value.closure, self.outlives)
		elif value.signature is not None and fnty.signature.universal:
			check_signature(fnty.signature, value.signature, self.outlives)
		return value

	def _call_closure(self, callee: Value, args: Sequence[H.HExpr], name: str) -> Value:
		summary = callee.closure
		sig = callee.signature
		if sig is None and isinstance(callee.ty, FnTy):
			sig = callee.ty.signature
		if sig is None:
			raise AssertionError(f"closure `{name}` has no signature")
		if len(args) != summary.arity:
			raise UnresolvedName(f"closure `{name}` takes {summary.arity} argument(s) but {len(args)} were supplied")
		values = [self._eval(arg, expected=p.ty) for p, arg in zip(sig.params, args)]
		by_lifetime: Dict[Lifetime, FrozenSet[Origin]] = {}
		for positions, value in zip(summary.param_positions, values):
			for lt, origins in zip(positions, value.slots):
				by_lifetime[lt] = origins
		ret_slots = []
		for origins in self._closure_ret_origins.get(summary.closure_id, ()):
			flows: Set[Origin] = set()
			for o in origins:
				if isinstance(o, Lifetime) and o.is_closure_param:
					flows |= by_lifetime.get(o, frozenset())
				else:
					flows.add(o)
			ret_slots.append(frozenset(flows))
		return Value(sig.ret, tuple(ret_slots))

	# Closures

	def _closure_param_ty(self, lam: H.HLambda, idx: int, expected: Optional[Signature]) -> Ty:
		param = lam.params[idx]
		universal: Set[Lifetime] = set(expected.universal) if expected is not None else set()
		if param.type is not None:
			ty = self.decls.normalize_ty(param.type)
		elif expected is not None and idx < len(expected.params):
			ty = expected.params[idx].ty
		else:
			ty = RefTy(ELIDED, Mutability.SHARED, OwnedTy("_"))
		positions = [
			Lifetime.closure_param(lam.closure_id, idx, j) if (lt.is_elided or lt in universal) else lt
			for j, lt in enumerate(lifetime_positions(ty))
		]
		return with_positions(ty, positions)

	def _eval_lambda(self, lam: H.HLambda, expected: Optional[Signature]) -> Value:
		flat = self._live.closures[lam.closure_id]
		frame = self._new_frame(flat, "closure", lam.body_expr if lam.body_block is None else lam.body_block.tail)
		frame.closure = lam
		frame.closure_params = [self._closure_param_ty(lam, i, expected) for i in range(len(lam.params))]
		outer_span = self._span
		self._run(frame)
		self._span = outer_span

		ret_origins: List[Set[Origin]] = []
		ret_ty = self.decls.normalize_ty(lam.ret_type)
		for value in frame.returned:
			if ret_ty is None:
				ret_ty = value.ty
			for k, slot in enumerate(value.slots):
				while len(ret_origins) <= k:
					ret_origins.append(set())
				ret_origins[k] |= slot
		frozen = tuple(frozenset(s) for s in ret_origins)
		self._closure_ret_origins[lam.closure_id] = frozen

		captures: Set[Origin] = set()
		for bid, mutability in frame.captured.items():
			b = self.bindings.get(bid)
			if b.dropped or b.state is BindingState.MOVED:
				continue
			if isinstance(b.ty, (RefTy, FnTy)):
				captures |= {o for slot in b.slots for o in slot}
				captures |= b.captures
			else:
				captures.add(self.tracker.borrow(bid, mutability, self._frames[-1].region, at=self._now))
		for slot in frozen:
			captures |= {o for o in slot if isinstance(o, int) or not (isinstance(o, Lifetime) and o.is_closure_param)}

		captured_lts = frozenset(self._origin_lifetime(o) for o in captures)
		summary = ClosureSummary(
			closure_id=lam.closure_id,
			param_positions=tuple(lifetime_positions(t) for t in frame.closure_params),
			ret_lifetimes=tuple(frozenset(self._origin_lifetime(o) for o in slot) for slot in frozen),
			captures=captured_lts,
		)
		sig = Signature(
			name=f"closure#{lam.closure_id}",
			params=tuple(Param(p.name, t) for p, t in zip(lam.params, frame.closure_params)),
			ret=ret_ty,
		)
		return Value(FnTy(sig), (), frozenset(captures), summary, sig)


def check_function(
	decls: Declarations,
	sig: Signature,
	body: H.HBlock,
	*,
	name: Optional[str] = None,
	max_steps: Optional[int] = None,
) -> List[Diagnostic]:
	"""Check one function body; returns warnings, raises `LifetimeError` on failure."""
	checker = BodyChecker(decls, max_steps=max_steps)
	checker.check_function(sig, body, name=name)
	return checker.diagnostics


def check_block(
	decls: Declarations,
	name: str,
	body: H.HBlock,
	*,
	max_steps: Optional[int] = None,
) -> Tuple[AnnotatedBlock, List[Diagnostic]]:
	checker = BodyChecker(decls, max_steps=max_steps)
	block = checker.check_block(name, body)
	return block, checker.diagnostics


__all__ = [
	"AnnotatedBlock",
	"BindingInfo",
	"BodyChecker",
	"BorrowInfo",
	"RegionInfo",
	"Value",
	"check_block",
	"check_function",
]
