# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Lesson 3: lifetime subtyping, elision limits and universally quantified callables."""

import pytest

LESSON = """
fn shortest_length<'a>(x: &'a String, y: &'a String, z: &'a String) -> &'a String {
	print(y, z);
	x
}

fn shortest_length_with_lifetime_subtyping<'a, 'b: 'a>(x: &'a String, y: &'b String, z: &'b String) -> &'a String {
	print(x, z);
	y
}

fn shortest_length_broken<'a>(x: &'a String, y: &String, z: &String) -> &'a str {
	print(x, y, z);
	x.as_str()
}

fn do_something1(x: String, y: &String) -> &String {
	print(x);
	y
}

struct HoldingStruct {
	text: String,
}

fn hold_and_ref<'a>(holding: &'a mut HoldingStruct, text: String) -> &'a String {
	holding.text = text;
	&holding.text
}

block all_in_one_scope {
	let x = String::from("x");
	let y = String::from("yy");
	let z = String::from("zzz");
	let shortest = shortest_length(&x, &y, &z);
	print(shortest);
}

block z_in_inner_scope {
	let x = String::from("x");
	let y = String::from("yy");
	let shortest;
	{
		let z = String::from("zzz");
		shortest = shortest_length(&x, &y, &z);
	}
	print(shortest);
}

block subtyping_inner_x {
	let y = String::from("yy");
	let z = String::from("zzz");
	{
		let x = String::from("x");
		let shortest = shortest_length_with_lifetime_subtyping(&x, &y, &z);
		print(shortest);
	}
}

block subtyping_outer_x {
	let x = String::from("x");
	let shortest;
	{
		let y = String::from("yy");
		let z = String::from("zzz");
		shortest = shortest_length_with_lifetime_subtyping(&x, &y, &z);
		print(shortest);
	}
}

block broken_only_needs_x {
	let x = String::from("x");
	let shortest;
	{
		let y = String::from("yy");
		let z = String::from("zzz");
		shortest = shortest_length_broken(&x, &y, &z);
	}
	print(shortest);
}

block moved_argument {
	let x = String::from("x");
	let y = String::from("y");
	let result = do_something1(x, &y);
	print(result);
	print(x);
}

block holding {
	let mut holding = HoldingStruct { text: String::from("Hello") };
	print(holding.text);
	print(hold_and_ref(&mut holding, String::from("world")));
	print(holding.text);
}

block holding_ref_kept {
	let mut holding = HoldingStruct { text: String::from("Hello") };
	let text_ref = hold_and_ref(&mut holding, String::from("world"));
	print(holding.text);
	print(text_ref);
}
"""


def test_lesson_verdicts(check, kinds):
	results = check(LESSON)
	verdicts = {name: kinds(res) for name, res in results.items()}
	assert verdicts == {
		"shortest_length": [],
		"shortest_length_with_lifetime_subtyping": [],
		"shortest_length_broken": [],
		"do_something1": [],
		"HoldingStruct": [],
		"hold_and_ref": [],
		"all_in_one_scope": [],
		"z_in_inner_scope": ["DanglingAfterDrop"],
		"subtyping_inner_x": [],
		"subtyping_outer_x": [],
		"broken_only_needs_x": [],
		"moved_argument": ["UseAfterMove"],
		"holding": [],
		"holding_ref_kept": ["ConflictingBorrow"],
	}


@pytest.mark.parametrize(
	"source",
	[
		"fn shortest(x: &String, y: &String) -> &String { x }",
		"fn get_str() -> &str { \"text\" }",
	],
)
def test_ambiguous_elision_is_a_signature_error(check, kinds, source):
	(res,) = check(source).values()
	assert kinds(res) == ["AmbiguousElision"]
	assert res.errors[0].phase == "signature"
	assert res.value is None


def test_calls_to_rejected_signatures_are_reported(check, kinds):
	results = check(
		"""
		fn shortest(x: &String, y: &String) -> &String { x }
		block caller {
			let a = String::from("a");
			print(shortest(&a, &a));
		}
		"""
	)
	assert kinds(results["shortest"]) == ["AmbiguousElision"]
	assert kinds(results["caller"]) == ["UnresolvedName"]
	assert "declaration was rejected" in results["caller"].errors[0].message


HRTB = """
fn apply_to_str(text: &str, f: for<'a, 'goober> fn(&'a str, &'goober str) -> &'a str) -> &str {
	f(text, "goober")
}

fn first_of<'x, 'y>(s: &'x str, t: &'y str) -> &'x str { s }
fn second_of<'x, 'y>(s: &'x str, t: &'y str) -> &'y str { t }

block closure_returns_first {
	let result = apply_to_str("Hello", |s, g| s);
	print(result);
}

block closure_returns_second {
	let result = apply_to_str("Hello", |s, g| g);
	print(result);
}

block closure_returns_captured {
	let outer = String::from("captured");
	let r = outer.as_str();
	let result = apply_to_str("Hello", |s, g| r);
	print(result);
}

block closure_returns_literal {
	let result = apply_to_str("Hello", |s, g| "literal");
	print(result);
}

block named_first {
	let result = apply_to_str("Hello", first_of);
	print(result);
}

block named_second {
	let result = apply_to_str("Hello", second_of);
	print(result);
}

block result_tied_to_text {
	let result;
	{
		let text = String::from("Hello");
		result = apply_to_str(text.as_str(), |s, g| s);
	}
	print(result);
}
"""


def test_universal_bounds(check, kinds):
	results = check(HRTB)
	verdicts = {name: kinds(res) for name, res in results.items()}
	assert verdicts == {
		"apply_to_str": [],
		"first_of": [],
		"second_of": [],
		"closure_returns_first": [],
		"closure_returns_second": ["UnboundNotSatisfied"],
		"closure_returns_captured": ["UnboundNotSatisfied"],
		"closure_returns_literal": [],
		"named_first": [],
		"named_second": ["UnboundNotSatisfied"],
		"result_tied_to_text": ["DanglingAfterDrop"],
	}
	assert "captured reference" in results["closure_returns_captured"].errors[0].message


def test_callable_parameter_elision_stays_on_the_callable(check):
	sig = check(HRTB)["apply_to_str"].value
	assert [str(lt) for lt in sig.lifetime_params] == ["'_0"]
	assert sig.ret.lifetime == sig.params[0].ty.lifetime
	assert [str(lt) for lt in sig.params[1].ty.signature.universal] == ["'a", "'goober"]
