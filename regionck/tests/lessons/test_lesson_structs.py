# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Lesson 2: structs holding references with two independent lifetimes."""

LESSON = """
struct split_struct<'a, 'b> {
	a: &'a str,
	b: &'b str,
}

fn some_strange_function<'a, 'b>(d: split_struct<'a, 'b>) -> &'a str {
	let split_struct { a, b } = d;
	print(a, b);
	a
}

impl<'a, 'b> split_struct<'a, 'b> {
	fn consume(self) {
		print(self.a, self.b);
	}
	fn consume_return_a(self) -> &'a str {
		self.a
	}
	fn consume_return_b(self) -> &'b str {
		self.b
	}
	fn process_a(&self) -> &str {
		self.a
	}
	fn process_b(&self) -> &str {
		self.b
	}
	fn update_a(&mut self, a: &'a str) -> &str {
		self.a = a;
		a
	}
	fn update_b(&mut self, b: &'b str) -> &str {
		self.b = b;
		b
	}
}

block strange_function {
	let a_string = String::from("aaa");
	let a_ref;
	{
		let b_string = String::from("bbb");
		let data = split_struct { a: &a_string, b: &b_string };
		print(&data);
		a_ref = some_strange_function(data);
	}
	print(a_ref);
}

block keep_a {
	let a_string = String::from("aaa");
	let a_ref;
	{
		let b_string = String::from("bbb");
		let data = split_struct { a: &a_string, b: &b_string };
		a_ref = data.consume_return_a();
	}
	print(a_ref);
}

block keep_b {
	let a_string = String::from("aaa");
	let a_ref;
	{
		let b_string = String::from("bbb");
		let data = split_struct { a: &a_string, b: &b_string };
		a_ref = data.consume_return_b();
	}
	print(a_ref);
}

block keep_processed {
	let a_string = String::from("aaa");
	let a_ref;
	{
		let b_string = String::from("bbb");
		let data = split_struct { a: &a_string, b: &b_string };
		a_ref = data.process_a();
	}
	print(a_ref);
}

block use_after_consume {
	let a_string = String::from("aaa");
	let b_string = String::from("bbb");
	let data = split_struct { a: &a_string, b: &b_string };
	data.consume();
	print(data.a);
}

block updates {
	let a_string = String::from("aaa");
	let b_string = String::from("bbb");
	let mut data = split_struct { a: &a_string, b: &b_string };
	let c_string = String::from("ccc");
	let updated = data.update_a(&c_string);
	print(updated);
	print(data.process_a());
}

block questionable_practice {
	let a_string = String::from("aaa");
	let a_ref;
	{
		let b_string = String::from("bbb");
		let mut data = split_struct { a: &a_string, b: &b_string };
		let split_struct { a, b } = data;
		a_ref = a;
		print(data.a, data.b);
		data.a = "";
		let b_ref = data.process_b();
		print(b_ref);
		let x_ref = data.process_a();
		print(x_ref);
		print(&data);
		let x = data.consume_return_b();
		print(x);
	}
	print(a_ref);
}
"""


def test_lesson_verdicts(check, kinds):
	results = check(LESSON)
	verdicts = {name: kinds(res) for name, res in results.items()}
	assert verdicts == {
		"split_struct": [],
		"some_strange_function": [],
		"split_struct::consume": [],
		"split_struct::consume_return_a": [],
		"split_struct::consume_return_b": [],
		"split_struct::process_a": [],
		"split_struct::process_b": [],
		"split_struct::update_a": [],
		"split_struct::update_b": [],
		"strange_function": [],
		"keep_a": [],
		"keep_b": ["DanglingAfterDrop"],
		"keep_processed": ["DanglingAfterDrop"],
		"use_after_consume": ["UseAfterMove"],
		"updates": [],
		"questionable_practice": [],
	}


def test_returning_the_other_lifetime_dangles_on_that_referent(check):
	res = check(LESSON)["keep_b"]
	(err,) = res.errors
	assert err.bindings[0] == "b_string"
	assert "borrow later used by `a_ref`" in err.notes


def test_processed_reference_keeps_the_struct_borrowed(check):
	res = check(LESSON)["keep_processed"]
	(err,) = res.errors
	assert err.bindings[0] == "data"


def test_questionable_practice_warns_once(check):
	res = check(LESSON)["questionable_practice"]
	assert res.ok
	(warning,) = res.warnings
	assert warning.kind.value == "AmbiguousPartialMove"
	assert warning.code == "W-PARTIAL-MOVE"
	assert "`data`" in warning.message


def test_method_fragments_carry_impl_lifetimes(check):
	res = check(LESSON)["split_struct::process_a"]
	sig = res.value
	assert [str(lt) for lt in sig.lifetime_params] == ["'a", "'b", "'_0"]
	assert sig.ret.lifetime == sig.params[0].ty.lifetime
	assert res.kind == "method"
