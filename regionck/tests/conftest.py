# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
import pytest

from regionck.analyzer import Analyzer, AnalyzerConfig


@pytest.fixture
def check():
	"""
	Analyze fragment-language text and index the results by fragment name.

	The returned callable accepts `AnalyzerConfig` keyword overrides.
	"""

	def _check(source: str, **config):
		results = Analyzer(AnalyzerConfig(**config)).analyze_source(source, file="<test>")
		return {res.name: res for res in results}

	return _check


@pytest.fixture
def kinds():
	"""Stable kind names of a fragment result's errors, in emission order."""

	def _kinds(result) -> list[str]:
		return [d.kind.value for d in result.errors]

	return _kinds
