# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Diagnostic Reporter: stable error taxonomy to structured diagnostics.

Components raise `LifetimeError` subclasses at the failure point; the analyzer
converts them here, at the fragment boundary, into `Diagnostic` records. The
CLI renders those records as text (stderr) or JSON (stdout).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Optional

from regionck.core.diagnostics import Diagnostic, DiagnosticKind
from regionck.core.errors import LifetimeError
from regionck.core.span import Span


def to_diagnostic(err: LifetimeError, phase: str) -> Diagnostic:
	"""Convert a raised analyzer error into a `Diagnostic` record."""
	return Diagnostic(
		message=err.message,
		phase=phase,
		severity="error",
		span=err.span or Span(),
		notes=list(err.notes),
		kind=err.kind,
		bindings=list(err.bindings),
		lifetimes=list(err.lifetimes),
		regions=list(err.regions),
	)


def syntax_diagnostic(message: str, span: Optional[Span]) -> Diagnostic:
	return Diagnostic(
		message=message,
		phase="parser",
		span=span or Span(),
		kind=DiagnosticKind.SYNTAX_ERROR,
	)


def kind_name(diag: Diagnostic) -> str:
	return diag.kind.value if diag.kind is not None else (diag.code or "Error")


def format_diagnostic(diag: Diagnostic, source: Optional[Path] = None) -> str:
	"""`file:line:col: error[Kind]: message`, followed by indented notes."""
	span = diag.span
	if span.file is None and source is not None:
		span = Span(str(source), span.line, span.column, span.end_line, span.end_column)
	lines = [f"{span.render()}: {diag.severity}[{kind_name(diag)}]: {diag.message}"]
	for note in diag.notes:
		lines.append(f"  note: {note}")
	return "\n".join(lines)


def diag_to_json(diag: Diagnostic, source: Optional[Path] = None) -> dict:
	"""Render a Diagnostic to a structured JSON-friendly dict."""
	file = diag.span.file
	if file is None and source is not None:
		file = str(source)
	return {
		"phase": diag.phase,
		"kind": kind_name(diag),
		"code": diag.code,
		"message": diag.message,
		"severity": diag.severity,
		"file": file,
		"line": diag.span.line,
		"column": diag.span.column,
		"notes": list(diag.notes),
		"bindings": list(diag.bindings),
		"lifetimes": list(diag.lifetimes),
		"regions": list(diag.regions),
	}


def has_errors(diags: Iterable[Diagnostic]) -> bool:
	return any(d.is_error for d in diags)


def sort_diagnostics(diags: Iterable[Diagnostic]) -> List[Diagnostic]:
	"""Errors before warnings; otherwise keep emission order."""
	return sorted(diags, key=lambda d: 0 if d.is_error else 1)


__all__ = [
	"diag_to_json",
	"format_diagnostic",
	"has_errors",
	"kind_name",
	"sort_diagnostics",
	"syntax_diagnostic",
	"to_diagnostic",
]
