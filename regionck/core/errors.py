# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Exception taxonomy raised by the analyzer components.

User-facing failures are `LifetimeError` subclasses: they are raised at the
failure point (binding table, borrow tracker, signature checkers) and turned
into `Diagnostic` records at the fragment boundary by the reporter. Each one
aborts analysis of the current fragment only.

Region Model misuse is not a program error. `RegionContractViolation` is an
`AssertionError` so that fragment isolation never swallows it.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from regionck.core.diagnostics import DiagnosticKind
from regionck.core.span import Span


class LifetimeError(Exception):
	"""Base class for user-facing analyzer failures."""

	kind: DiagnosticKind

	def __init__(
		self,
		message: str,
		*,
		bindings: Iterable[str] = (),
		lifetimes: Iterable[object] = (),
		regions: Iterable[int] = (),
		span: Optional[Span] = None,
		notes: Optional[Sequence[str]] = None,
	) -> None:
		super().__init__(message)
		self.message = message
		self.bindings: List[str] = list(bindings)
		self.lifetimes: List[str] = [str(lt) for lt in lifetimes]
		self.regions: List[int] = list(regions)
		self.span = span
		self.notes: List[str] = list(notes or ())

	def at(self, span: Optional[Span]) -> "LifetimeError":
		"""Attach `span` unless a more precise one is already set."""
		if span is not None and (self.span is None or not self.span.known):
			self.span = span
		return self


class UseAfterMove(LifetimeError):
	kind = DiagnosticKind.USE_AFTER_MOVE


class UseOfPartiallyMoved(LifetimeError):
	kind = DiagnosticKind.USE_OF_PARTIALLY_MOVED

	def __init__(self, message: str, *, field: str = "", **kwargs) -> None:
		super().__init__(message, **kwargs)
		self.field = field


class ConflictingBorrow(LifetimeError):
	kind = DiagnosticKind.CONFLICTING_BORROW


class CannotMoveBorrowed(LifetimeError):
	kind = DiagnosticKind.CANNOT_MOVE_BORROWED


class DanglingAfterDrop(LifetimeError):
	kind = DiagnosticKind.DANGLING_AFTER_DROP


class AmbiguousElision(LifetimeError):
	kind = DiagnosticKind.AMBIGUOUS_ELISION


class OutlivesViolation(LifetimeError):
	kind = DiagnosticKind.OUTLIVES_VIOLATION

	def __init__(self, message: str, *, constraint: object = None, **kwargs) -> None:
		super().__init__(message, **kwargs)
		self.constraint = constraint


class UnboundNotSatisfied(LifetimeError):
	kind = DiagnosticKind.UNBOUND_NOT_SATISFIED


class UndeclaredLifetime(LifetimeError):
	kind = DiagnosticKind.UNDECLARED_LIFETIME


class UnresolvedName(LifetimeError):
	kind = DiagnosticKind.UNRESOLVED_NAME


class LimitExceeded(LifetimeError):
	kind = DiagnosticKind.LIMIT_EXCEEDED


class RegionContractViolation(AssertionError):
	"""Region Model misused by its caller (harness bug, fatal)."""


__all__ = [
	"AmbiguousElision",
	"CannotMoveBorrowed",
	"ConflictingBorrow",
	"DanglingAfterDrop",
	"LifetimeError",
	"LimitExceeded",
	"OutlivesViolation",
	"RegionContractViolation",
	"UnboundNotSatisfied",
	"UndeclaredLifetime",
	"UnresolvedName",
	"UseAfterMove",
	"UseOfPartiallyMoved",
]
