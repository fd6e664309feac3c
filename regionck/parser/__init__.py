# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Fragment-language parser.

Parses lesson-style source text (structs, functions, impl blocks, scoped
blocks) into the fragments and HIR the analyzer consumes.
"""

from __future__ import annotations

from .parser import ParseError, parse_fragments

__all__ = ["ParseError", "parse_fragments"]
