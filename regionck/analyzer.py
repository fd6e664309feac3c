# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Analyzer entry point: fragment isolation over a shared declaration registry.

Fragments are processed in two phases:

  1. declarations: struct definitions, then function and method signatures,
     are validated and registered in submission order;
  2. bodies: function bodies and scoped blocks are checked independently
     (optionally on a thread pool; the registry is read-only by then).

A `LifetimeError` aborts the fragment that raised it and becomes a
diagnostic on that fragment's result; other fragments are unaffected.
Internal invariant breaches (`AssertionError`, including
`RegionContractViolation`) propagate to the caller.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional

from regionck.body_checker import check_block, check_function
from regionck.core.diagnostics import Diagnostic
from regionck.core.errors import LifetimeError
from regionck.core.types_core import DEFAULT_COPY_TYPES
from regionck.declarations import Declarations
from regionck.fragments import BlockFragment, FnFragment, Fragment, StructFragment, fragment_kind
from regionck.parser import ParseError, parse_fragments
from regionck.reporter import has_errors, syntax_diagnostic, to_diagnostic

PRELUDE_PATH = Path(__file__).with_name("prelude.rck")


@dataclass
class AnalyzerConfig:
	jobs: int = 1
	# Refuse inputs with more fragments than this (ValueError before analysis).
	max_fragments: Optional[int] = None
	# Per-fragment bound on the flattened step list (LimitExceeded diagnostic).
	max_steps: Optional[int] = None
	copy_types: FrozenSet[str] = DEFAULT_COPY_TYPES
	prelude: bool = True


@dataclass
class FragmentResult:
	"""
	Outcome of one fragment.

	`value` is the validated `StructDef`, the resolved (fully annotated)
	`Signature`, or the `AnnotatedBlock` of a scoped block; it is None when the
	fragment failed before producing one.
	"""

	fragment: Optional[Fragment]
	kind: str
	value: object = None
	diagnostics: List[Diagnostic] = field(default_factory=list)

	@property
	def ok(self) -> bool:
		return not has_errors(self.diagnostics)

	@property
	def name(self) -> str:
		return getattr(self.fragment, "name", "") if self.fragment is not None else ""

	@property
	def errors(self) -> List[Diagnostic]:
		return [d for d in self.diagnostics if d.is_error]

	@property
	def warnings(self) -> List[Diagnostic]:
		return [d for d in self.diagnostics if not d.is_error]


class Analyzer:
	def __init__(self, config: Optional[AnalyzerConfig] = None) -> None:
		self.config = config or AnalyzerConfig()
		if self.config.jobs < 1:
			raise ValueError(f"jobs must be at least 1, got {self.config.jobs}")
		self.decls = Declarations(self.config.copy_types)
		if self.config.prelude:
			self._load_prelude()

	def _load_prelude(self) -> None:
		for frag in parse_fragments(PRELUDE_PATH.read_text(), file=str(PRELUDE_PATH)):
			if isinstance(frag, StructFragment):
				self.decls.register_struct(frag.definition)
			elif isinstance(frag, FnFragment):
				self.decls.register_function(frag.signature, frag.impl_type)

	# Entry points

	def analyze(self, fragments: Iterable[Fragment]) -> List[FragmentResult]:
		fragments = list(fragments)
		limit = self.config.max_fragments
		if limit is not None and len(fragments) > limit:
			raise ValueError(f"{len(fragments)} fragments submitted, more than the limit of {limit}")
		results = [FragmentResult(fragment=f, kind=fragment_kind(f)) for f in fragments]

		# Struct fields may name structs declared further down.
		for res in results:
			if isinstance(res.fragment, StructFragment):
				self.decls.structs.setdefault(res.fragment.name, res.fragment.definition)
		for res in results:
			if isinstance(res.fragment, StructFragment):
				self._guard(res, "signature", lambda r=res: self.decls.register_struct(r.fragment.definition))
		for res in results:
			if isinstance(res.fragment, FnFragment):
				self._guard(
					res,
					"signature",
					lambda r=res: self.decls.register_function(r.fragment.signature, r.fragment.impl_type),
				)

		pending = [
			res for res in results
			if isinstance(res.fragment, BlockFragment)
			or (isinstance(res.fragment, FnFragment) and res.fragment.body is not None and res.ok)
		]
		if self.config.jobs > 1 and len(pending) > 1:
			with ThreadPoolExecutor(max_workers=self.config.jobs) as pool:
				list(pool.map(self._check_body, pending))
		else:
			for res in pending:
				self._check_body(res)
		return results

	def analyze_source(self, text: str, file: Optional[str] = None) -> List[FragmentResult]:
		"""Parse fragment-language `text` and analyze it; a syntax error is one failed result."""
		try:
			fragments = parse_fragments(text, file=file)
		except ParseError as err:
			return [FragmentResult(fragment=None, kind="source", diagnostics=[syntax_diagnostic(err.message, err.loc)])]
		return self.analyze(fragments)

	# Phases

	def _guard(self, res: FragmentResult, phase: str, action) -> None:
		try:
			res.value = action()
		except LifetimeError as err:
			res.diagnostics.append(to_diagnostic(err.at(res.fragment.loc), phase))

	def _check_body(self, res: FragmentResult) -> None:
		frag = res.fragment
		try:
			if isinstance(frag, BlockFragment):
				res.value, warnings = check_block(self.decls, frag.name, frag.body, max_steps=self.config.max_steps)
			else:
				warnings = check_function(
					self.decls,
					res.value,
					frag.body,
					name=frag.name,
					max_steps=self.config.max_steps,
				)
		except LifetimeError as err:
			res.diagnostics.append(to_diagnostic(err.at(frag.loc), "borrowcheck"))
			return
		res.diagnostics.extend(warnings)


def analyze(fragments: Iterable[Fragment], config: Optional[AnalyzerConfig] = None) -> List[FragmentResult]:
	return Analyzer(config).analyze(fragments)


def analyze_source(text: str, file: Optional[str] = None, config: Optional[AnalyzerConfig] = None) -> List[FragmentResult]:
	return Analyzer(config).analyze_source(text, file)


__all__ = [
	"Analyzer",
	"AnalyzerConfig",
	"FragmentResult",
	"analyze",
	"analyze_source",
]
