# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
regionck: static lifetime-and-borrow analyzer.

Components, leaf-first:
  regions         Region Model (nested lexical extents)
  bindings        Binding Table (ownership state per binding)
  borrow_tracker  Borrow Tracker (exclusivity, last-use release)
  elision         Elision Engine
  outlives        Outlives Checker and call-site concretization
  universal       Universal-Bound Checker
  reporter        Diagnostic Reporter
  analyzer        fragment isolation over a shared declaration registry
"""

from regionck.analyzer import Analyzer, AnalyzerConfig, FragmentResult, analyze, analyze_source

__all__ = ["Analyzer", "AnalyzerConfig", "FragmentResult", "analyze", "analyze_source"]
