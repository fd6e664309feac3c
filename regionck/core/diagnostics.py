# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common diagnostic structure for the analyzer passes.

A diagnostic is a message plus the structured facts a harness needs to act on
it: the stable kind, the offending bindings and lifetimes, and the regions
involved. Passes never print; they append `Diagnostic` records to a sink and
the driver decides how to render them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .span import Span


class DiagnosticKind(Enum):
	"""Stable error taxonomy. Values are what JSON output and tests see."""

	USE_AFTER_MOVE = "UseAfterMove"
	USE_OF_PARTIALLY_MOVED = "UseOfPartiallyMoved"
	CONFLICTING_BORROW = "ConflictingBorrow"
	CANNOT_MOVE_BORROWED = "CannotMoveBorrowed"
	DANGLING_AFTER_DROP = "DanglingAfterDrop"
	AMBIGUOUS_ELISION = "AmbiguousElision"
	OUTLIVES_VIOLATION = "OutlivesViolation"
	UNBOUND_NOT_SATISFIED = "UnboundNotSatisfied"
	UNDECLARED_LIFETIME = "UndeclaredLifetime"
	UNRESOLVED_NAME = "UnresolvedName"
	LIMIT_EXCEEDED = "LimitExceeded"
	SYNTAX_ERROR = "SyntaxError"
	AMBIGUOUS_PARTIAL_MOVE = "AmbiguousPartialMove"


# Short codes in the `E-…`/`W-…` style used across the front end.
KIND_CODES = {
	DiagnosticKind.USE_AFTER_MOVE: "E-USE-AFTER-MOVE",
	DiagnosticKind.USE_OF_PARTIALLY_MOVED: "E-USE-PARTIALLY-MOVED",
	DiagnosticKind.CONFLICTING_BORROW: "E-BORROW-CONFLICT",
	DiagnosticKind.CANNOT_MOVE_BORROWED: "E-MOVE-WHILE-BORROWED",
	DiagnosticKind.DANGLING_AFTER_DROP: "E-DANGLING",
	DiagnosticKind.AMBIGUOUS_ELISION: "E-ELISION",
	DiagnosticKind.OUTLIVES_VIOLATION: "E-OUTLIVES",
	DiagnosticKind.UNBOUND_NOT_SATISFIED: "E-UNIVERSAL-BOUND",
	DiagnosticKind.UNDECLARED_LIFETIME: "E-LIFETIME-UNDECLARED",
	DiagnosticKind.UNRESOLVED_NAME: "E-UNRESOLVED",
	DiagnosticKind.LIMIT_EXCEEDED: "E-LIMIT",
	DiagnosticKind.SYNTAX_ERROR: "E-SYNTAX",
	DiagnosticKind.AMBIGUOUS_PARTIAL_MOVE: "W-PARTIAL-MOVE",
}


@dataclass
class Diagnostic:
	"""Represents an analyzer diagnostic (error/warning)."""

	message: str
	code: str | None = None
	# Which pass produced the diagnostic: "parser", "signature", "borrowcheck".
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Span() denotes unknown.
	notes: list[str] = field(default_factory=list)
	kind: Optional[DiagnosticKind] = None
	bindings: List[str] = field(default_factory=list)
	lifetimes: List[str] = field(default_factory=list)
	regions: List[int] = field(default_factory=list)

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()
		if self.code is None and self.kind is not None:
			self.code = KIND_CODES.get(self.kind)

	@property
	def is_error(self) -> bool:
		return self.severity == "error"


__all__ = ["Diagnostic", "DiagnosticKind", "KIND_CODES"]
