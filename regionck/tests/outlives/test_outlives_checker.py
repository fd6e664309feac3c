# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Outlives relation, meets and call-site concretization."""

import pytest

from regionck.core.errors import OutlivesViolation
from regionck.core.lifetimes import ELIDED, STATIC, Lifetime
from regionck.core.types_core import Mutability, OutlivesBound, OwnedTy, Param, RefTy, Signature, StructTy
from regionck.outlives import OutlivesChecker
from regionck.regions import ROOT_REGION, RegionTree

A = Lifetime.param("a")
B = Lifetime.param("b")
STRING = OwnedTy("String")


def _ref(lt):
	return RefTy(lt, Mutability.SHARED, STRING)


def _nested():
	tree = RegionTree()
	outer = tree.open_region(ROOT_REGION)
	inner = tree.open_region(outer)
	return tree, outer, inner


def test_static_outlives_everything():
	tree, outer, _inner = _nested()
	checker = OutlivesChecker(tree)
	assert checker.check_outlives(STATIC, A)
	assert checker.check_outlives(STATIC, Lifetime.concrete(outer))
	assert not checker.check_outlives(A, STATIC)


def test_concrete_lifetimes_follow_region_containment():
	tree, outer, inner = _nested()
	checker = OutlivesChecker(tree)
	assert checker.check_outlives(Lifetime.concrete(outer), Lifetime.concrete(inner))
	assert not checker.check_outlives(Lifetime.concrete(inner), Lifetime.concrete(outer))


def test_root_region_counts_as_static():
	tree, _outer, _inner = _nested()
	checker = OutlivesChecker(tree)
	assert checker.check_outlives(Lifetime.concrete(ROOT_REGION), A)


def test_declared_constraints_are_transitive():
	checker = OutlivesChecker(RegionTree())
	c = Lifetime.param("c")
	checker.declare_constraint(A, B)
	checker.declare_constraint(B, c)
	assert checker.check_outlives(A, c)
	assert not checker.check_outlives(c, A)


def test_reflexive():
	checker = OutlivesChecker(RegionTree())
	assert checker.check_outlives(A, A)
	syn = Lifetime.synthetic()
	assert checker.check_outlives(syn, syn)
	assert not checker.check_outlives(syn, A)


def test_floor_makes_parameter_outlive_body_locals():
	tree, outer, inner = _nested()
	checker = OutlivesChecker(tree)
	checker.bind_floor(A, outer)
	assert checker.check_outlives(A, Lifetime.concrete(inner))
	assert not checker.check_outlives(Lifetime.concrete(inner), A)


def test_elided_lifetime_is_an_internal_error():
	with pytest.raises(AssertionError):
		OutlivesChecker(RegionTree()).check_outlives(ELIDED, A)


def test_implied_bounds_of_nested_references():
	checker = OutlivesChecker(RegionTree())
	checker.add_implied_bounds(RefTy(A, Mutability.SHARED, StructTy("Holder", (B,))))
	assert checker.check_outlives(B, A)


def test_meet_picks_the_shortest_candidate():
	tree, outer, inner = _nested()
	checker = OutlivesChecker(tree)
	got = checker.meet([Lifetime.concrete(outer), Lifetime.concrete(inner), STATIC])
	assert got == Lifetime.concrete(inner)
	assert checker.meet([]) is None
	assert checker.meet([A, B]) is None


def test_call_site_binds_parameter_to_meet_of_arguments():
	tree, outer, inner = _nested()
	sig = Signature(
		"longest",
		params=(Param("x", _ref(A)), Param("y", _ref(A))),
		ret=_ref(A),
		lifetime_params=(A,),
	)
	resolved = OutlivesChecker(tree).assign_call_site(
		sig, [Lifetime.concrete(outer), Lifetime.concrete(inner)]
	)
	assert resolved.resolve(A) == Lifetime.concrete(inner)
	assert resolved.signature.ret.lifetime == Lifetime.concrete(inner)


def test_call_site_rejects_short_argument_for_static_parameter():
	tree, outer, _inner = _nested()
	sig = Signature("keep", params=(Param("s", _ref(STATIC)),))
	with pytest.raises(OutlivesViolation, match="argument `s` of `keep` does not live long enough"):
		OutlivesChecker(tree).assign_call_site(sig, [Lifetime.concrete(outer)])


def test_call_site_shrinks_shorter_side_of_declared_bound():
	tree, outer, inner = _nested()
	# fn f<'a, 'b: 'a>(x: &'a String, y: &'b String) -> &'a String
	sig = Signature(
		"f",
		params=(Param("x", _ref(A)), Param("y", _ref(B))),
		ret=_ref(A),
		lifetime_params=(A, B),
		bounds=(OutlivesBound(B, A),),
	)
	resolved = OutlivesChecker(tree).assign_call_site(
		sig, [Lifetime.concrete(outer), Lifetime.concrete(inner)], call_region=inner
	)
	assert resolved.resolve(A) == Lifetime.concrete(inner)
	assert resolved.resolve(B) == Lifetime.concrete(inner)


def test_call_site_reports_unsatisfiable_bound():
	tree, outer, inner = _nested()
	# fn g<'a, 'b: 'a>(x: &'a String, y: &'b String, z: &'a String)
	sig = Signature(
		"g",
		params=(Param("x", _ref(A)), Param("y", _ref(B)), Param("z", _ref(A))),
		lifetime_params=(A, B),
		bounds=(OutlivesBound(B, A),),
	)
	# `y` lives in a region disjoint from the one `x` and `z` live in.
	sibling = tree.open_region(outer)
	with pytest.raises(OutlivesViolation, match="lifetime bound `'b: 'a` of `g` is not satisfied"):
		OutlivesChecker(tree).assign_call_site(
			sig,
			[Lifetime.concrete(inner), Lifetime.concrete(sibling), Lifetime.concrete(inner)],
		)


def test_call_site_rejects_wrong_argument_count():
	sig = Signature("one", params=(Param("x", _ref(A)),), lifetime_params=(A,))
	with pytest.raises(AssertionError):
		OutlivesChecker(RegionTree()).assign_call_site(sig, [])
