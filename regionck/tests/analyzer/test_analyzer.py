# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Fragment isolation, limits, worker pool and programmatic entry points."""

import pytest

from regionck import analyze, analyze_source
from regionck import hir_nodes as H
from regionck.analyzer import Analyzer, AnalyzerConfig
from regionck.body_checker import AnnotatedBlock
from regionck.core.lifetimes import ELIDED
from regionck.core.types_core import Mutability, OwnedTy, Param, RefTy, Signature, StructDef
from regionck.fragments import BlockFragment, FnFragment, StructFragment

SOURCE = """
struct Wrapper<'a> { inner: &'a Inner }
struct Inner { n: i32 }

fn broken(x: &str, y: &str) -> &str { x }

block uses_broken_name {
	let a = 1;
	print(a);
}

block dangling {
	let r;
	{
		let x = 5;
		r = &x;
	}
	print(r);
}

block fine {
	let inner = Inner { n: 1 };
	let w = Wrapper { inner: &inner };
	print(w);
}
"""


def test_one_failure_does_not_affect_other_fragments(check, kinds):
	results = check(SOURCE)
	assert kinds(results["broken"]) == ["AmbiguousElision"]
	assert kinds(results["dangling"]) == ["DanglingAfterDrop"]
	assert results["uses_broken_name"].ok
	assert results["fine"].ok
	assert results["Wrapper"].ok
	assert results["Inner"].ok


def test_results_keep_submission_order():
	results = analyze_source(SOURCE)
	assert [res.kind for res in results] == ["struct", "struct", "fn", "block", "block", "block"]
	assert [res.name for res in results][:3] == ["Wrapper", "Inner", "broken"]


def test_block_result_is_an_annotated_block(check):
	block = check(SOURCE)["fine"].value
	assert isinstance(block, AnnotatedBlock)
	assert block.name == "fine"
	assert [b.name for b in block.bindings] == ["inner", "w"]


def test_worker_pool_gives_the_same_verdicts(check, kinds):
	serial = {name: kinds(res) for name, res in check(SOURCE).items()}
	pooled = {name: kinds(res) for name, res in check(SOURCE, jobs=4).items()}
	assert pooled == serial


def test_fragment_limit_is_checked_before_analysis():
	with pytest.raises(ValueError, match="more than the limit of 2"):
		Analyzer(AnalyzerConfig(max_fragments=2)).analyze_source(SOURCE)


def test_step_limit_is_a_fragment_diagnostic(check, kinds):
	results = check(SOURCE, max_steps=6)
	assert kinds(results["dangling"]) == ["LimitExceeded"]
	assert results["uses_broken_name"].ok


def test_invalid_jobs():
	with pytest.raises(ValueError):
		Analyzer(AnalyzerConfig(jobs=0))


def test_syntax_error_is_a_single_parser_diagnostic():
	(res,) = analyze_source("block broken { let x = ; }", file="bad.rck")
	assert res.kind == "source"
	assert not res.ok
	(diag,) = res.errors
	assert diag.kind.value == "SyntaxError"
	assert diag.phase == "parser"
	assert diag.span.file == "bad.rck"
	assert diag.span.line == 1


def test_without_prelude_string_methods_are_unknown(check, kinds):
	source = """
	block uses_method {
		let s = String::from("a");
		print(s.len());
	}
	"""
	assert check(source)["uses_method"].ok
	assert kinds(check(source, prelude=False)["uses_method"]) == ["UnresolvedName"]


def test_configured_copy_types(check, kinds):
	source = """
	block copy_token {
		let t = Token::new();
		let u = t;
		print(t, u);
	}
	"""
	assert kinds(check(source)["copy_token"]) == ["UseAfterMove"]
	assert check(source, copy_types=frozenset({"Token"}))["copy_token"].ok


def test_fragments_built_without_the_parser():
	a = H.HLet(name="s", value=H.HCall(H.HPath("String", "from"), [H.HLiteralString("x")]))
	r = H.HLet(name="r", value=H.HBorrow(H.HVar("s")))
	move = H.HLet(name="t", value=H.HVar("s"))
	use = H.HExprStmt(H.HCall(H.HVar("print"), [H.HVar("r")]))
	ref = RefTy(ELIDED, Mutability.SHARED, OwnedTy("str"))
	fragments = [
		StructFragment(StructDef("Unit")),
		FnFragment(Signature("id", params=(Param("s", ref),), ret=ref), body=H.HBlock([], tail=H.HVar("s"))),
		BlockFragment("moves", H.HBlock([a, r, move, use])),
	]
	results = analyze(fragments)
	assert [res.ok for res in results] == [True, True, False]
	(err,) = results[2].errors
	assert err.kind.value == "CannotMoveBorrowed"
	# No source text: the span is the unknown sentinel.
	assert not err.span.known
