# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Source spans attached to HIR nodes and diagnostics.

A Span is best-effort: fragments built directly in Python (tests, harnesses
that do not come from text) carry the sentinel `Span()`, while fragments
produced by the lark front end carry file/line/column of the construct.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""Represents a source span (best-effort file/line/column)."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None
	end_line: Optional[int] = None
	end_column: Optional[int] = None

	@classmethod
	def from_meta(cls, meta: Any, *, file: Optional[str] = None) -> "Span":
		"""
		Construct a Span from a lark tree `meta` or token.

		Trees built with `propagate_positions=True` expose `line`/`column` on
		their meta; empty rules have no position and yield the sentinel span.
		"""
		if meta is None:
			return cls(file=file)
		if isinstance(meta, cls):
			return meta
		if getattr(meta, "empty", False):
			return cls(file=file)
		return cls(
			file=file,
			line=getattr(meta, "line", None),
			column=getattr(meta, "column", None),
			end_line=getattr(meta, "end_line", None),
			end_column=getattr(meta, "end_column", None),
		)

	@property
	def known(self) -> bool:
		return self.line is not None

	def render(self) -> str:
		"""`file:line:col` with `?` for unknown parts."""
		file = self.file or "<fragment>"
		line = "?" if self.line is None else str(self.line)
		col = "?" if self.column is None else str(self.column)
		return f"{file}:{line}:{col}"


__all__ = ["Span"]
