# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Command-line driver: analyze fragment-language files and print verdicts.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Tuple

from regionck.analyzer import Analyzer, AnalyzerConfig, FragmentResult
from regionck.reporter import diag_to_json, format_diagnostic, sort_diagnostics


def _result_to_json(res: FragmentResult, source: Path) -> dict:
	return {
		"name": res.name,
		"kind": res.kind,
		"ok": res.ok,
		"diagnostics": [diag_to_json(d, source) for d in sort_diagnostics(res.diagnostics)],
	}


def main(argv: list[str] | None = None) -> int:
	"""
	Analyze each source file and report per-fragment results.

	With --json, prints `{"exit_code", "results"}` to stdout; otherwise prints
	one line per diagnostic to stderr and a verdict per fragment to stdout.
	Exit status is 1 when any fragment has an error.
	"""
	parser = argparse.ArgumentParser(prog="regionck", description="static lifetime and borrow analyzer")
	parser.add_argument("source", type=Path, nargs="+", help="Path(s) to fragment source file(s)")
	parser.add_argument(
		"--json",
		action="store_true",
		help="Emit results as JSON (phase/kind/message/severity/file/line/column/...)",
	)
	parser.add_argument("--jobs", type=int, default=1, help="Check independent fragments on N threads")
	parser.add_argument("--max-fragments", type=int, default=None, help="Reject inputs with more fragments than this")
	parser.add_argument("--max-steps", type=int, default=None, help="Per-fragment limit on analysis steps")
	parser.add_argument(
		"--no-prelude",
		dest="prelude",
		action="store_false",
		help="Do not load the built-in String/str method declarations",
	)
	args = parser.parse_args(argv)

	config = AnalyzerConfig(
		jobs=args.jobs,
		max_fragments=args.max_fragments,
		max_steps=args.max_steps,
		prelude=args.prelude,
	)
	collected: List[Tuple[Path, FragmentResult]] = []
	for source in args.source:
		try:
			text = source.read_text()
		except OSError as err:
			print(f"{source}: error: cannot read file: {err.strerror}", file=sys.stderr)
			return 2
		try:
			results = Analyzer(config).analyze_source(text, file=str(source))
		except ValueError as err:
			print(f"{source}: error: {err}", file=sys.stderr)
			return 2
		collected.extend((source, res) for res in results)

	exit_code = 0 if all(res.ok for _, res in collected) else 1
	if args.json:
		payload = {
			"exit_code": exit_code,
			"results": [_result_to_json(res, source) for source, res in collected],
		}
		print(json.dumps(payload))
		return exit_code

	for source, res in collected:
		for diag in sort_diagnostics(res.diagnostics):
			print(format_diagnostic(diag, source), file=sys.stderr)
		label = f"{res.kind} {res.name}".strip()
		print(f"{label}: {'ok' if res.ok else 'rejected'}")
	return exit_code


if __name__ == "__main__":
	sys.exit(main())
