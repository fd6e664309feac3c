# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Elision rules: single input, receiver, ambiguity, nested callables."""

import random

import pytest

from regionck.core.errors import AmbiguousElision
from regionck.core.lifetimes import ELIDED, Lifetime
from regionck.core.types_core import (
	FnTy,
	Mutability,
	OwnedTy,
	Param,
	RefTy,
	Signature,
	StructTy,
	lifetime_positions,
)
from regionck.elision import elide, has_elided, is_fully_annotated

STR = OwnedTy("str")


def _ref(lt=ELIDED, pointee=STR, mut=False):
	return RefTy(lt, Mutability.EXCLUSIVE if mut else Mutability.SHARED, pointee)


def test_single_input_lifetime_flows_to_output():
	sig = Signature("first", params=(Param("s", _ref()),), ret=_ref())
	out = elide(sig)
	(fresh,) = out.lifetime_params
	assert fresh == Lifetime.param("_0")
	assert out.params[0].ty.lifetime == fresh
	assert out.ret.lifetime == fresh
	assert is_fully_annotated(out)


def test_each_omitted_input_gets_a_distinct_parameter():
	sig = Signature("two", params=(Param("a", _ref()), Param("b", _ref())))
	out = elide(sig)
	assert out.lifetime_params == (Lifetime.param("_0"), Lifetime.param("_1"))


def test_fresh_names_skip_declared_ones():
	sig = Signature(
		"f",
		params=(Param("a", _ref(Lifetime.param("_0"))), Param("b", _ref())),
		lifetime_params=(Lifetime.param("_0"),),
	)
	out = elide(sig)
	assert out.params[1].ty.lifetime == Lifetime.param("_1")


def test_receiver_lifetime_flows_to_output():
	pair = StructTy("Pair", (Lifetime.param("a"),))
	sig = Signature(
		"get",
		params=(Param("self", _ref(pointee=pair)), Param("other", _ref())),
		ret=_ref(),
		lifetime_params=(Lifetime.param("a"),),
		is_method=True,
	)
	out = elide(sig)
	assert out.ret.lifetime == out.params[0].ty.lifetime
	assert out.ret.lifetime != out.params[1].ty.lifetime


def test_two_inputs_without_receiver_are_ambiguous():
	sig = Signature("pick", params=(Param("a", _ref()), Param("b", _ref())), ret=_ref())
	with pytest.raises(AmbiguousElision, match="cannot tell which of 2"):
		elide(sig)


def test_output_without_inputs_is_ambiguous():
	sig = Signature("make", params=(Param("n", OwnedTy("i32")),), ret=_ref())
	with pytest.raises(AmbiguousElision, match="no input lifetimes"):
		elide(sig)


def test_struct_input_positions_count():
	holder = StructTy("Holder", (ELIDED,))
	sig = Signature("inner", params=(Param("h", holder),), ret=_ref())
	out = elide(sig)
	assert out.ret.lifetime == out.params[0].ty.lifetimes[0]


def test_elision_is_idempotent():
	sig = Signature("first", params=(Param("s", _ref()),), ret=_ref())
	once = elide(sig)
	assert elide(once) is once


NAMED = (Lifetime.param("a"), Lifetime.param("b"))


def _random_lifetime(rng):
	return ELIDED if rng.random() < 0.6 else rng.choice(NAMED)


def _random_ty(rng, callables=True):
	roll = rng.random()
	if roll < 0.15:
		return OwnedTy(rng.choice(["i32", "String"]))
	if roll < 0.3:
		return StructTy("Pair", (_random_lifetime(rng), _random_lifetime(rng)))
	if roll < 0.45 and callables:
		return FnTy(_random_signature(rng, callables=False))
	pointee = StructTy("Holder", (_random_lifetime(rng),)) if rng.random() < 0.3 else STR
	return _ref(_random_lifetime(rng), pointee, mut=rng.random() < 0.3)


def _random_signature(rng, callables=True):
	params = [Param(f"p{i}", _random_ty(rng, callables)) for i in range(rng.randint(0, 3))]
	is_method = callables and rng.random() < 0.3
	if is_method:
		buf = OwnedTy("Buf")
		receiver = rng.choice([_ref(_random_lifetime(rng), buf), _ref(ELIDED, buf, mut=True), buf])
		params.insert(0, Param("self", receiver))
	ret = _random_ty(rng, callables) if rng.random() < 0.8 else None
	return Signature(
		"f" if callables else "",
		params=tuple(params),
		ret=ret,
		lifetime_params=NAMED if callables else (),
		is_method=is_method,
	)


@pytest.mark.parametrize("seed", range(12))
def test_random_signatures_elide_idempotently(seed):
	rng = random.Random(seed)
	checked = 0
	for _ in range(40):
		sig = _random_signature(rng)
		try:
			once = elide(sig)
		except AmbiguousElision:
			continue
		checked += 1
		assert is_fully_annotated(once)
		assert elide(once) == once
		assert set(once.lifetime_params) >= set(sig.lifetime_params)
	assert checked > 0


def test_fully_annotated_signature_is_unchanged():
	a = Lifetime.param("a")
	sig = Signature("id", params=(Param("s", _ref(a)),), ret=_ref(a), lifetime_params=(a,))
	assert elide(sig) is sig


def test_nested_callable_is_elided_in_its_own_scope():
	inner = Signature("", params=(Param("arg0", _ref()),), ret=_ref())
	sig = Signature(
		"apply",
		params=(Param("text", _ref()), Param("f", FnTy(inner))),
		ret=_ref(),
	)
	out = elide(sig)
	# The callable's fresh lifetime is quantified on the callable, not on `apply`.
	assert out.lifetime_params == (Lifetime.param("_0"),)
	f_sig = out.params[1].ty.signature
	assert len(f_sig.universal) == 1
	assert f_sig.ret.lifetime == f_sig.universal[0]
	assert f_sig.universal[0] not in out.lifetime_params
	# Only `text` counts as an input, so the output borrows from it.
	assert out.ret.lifetime == out.params[0].ty.lifetime


def test_has_elided():
	assert has_elided(_ref())
	assert not has_elided(_ref(Lifetime.param("a")))
	assert lifetime_positions(_ref(Lifetime.param("a"), _ref())) == (Lifetime.param("a"), ELIDED)
