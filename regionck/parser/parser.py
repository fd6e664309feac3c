# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Fragment-language front end: lark LALR parse + hand-written HIR builder.

The builder walks the parse tree directly (no Transformer) the same way for
every construct: pick children by rule name, build the HIR node, attach a
`Span` from the tree meta. `impl` blocks are flattened into one `FnFragment`
per method; the impl's lifetime generics are merged into each method's
signature and `Self` resolves to the impl's target type.
"""

from __future__ import annotations

import codecs
from pathlib import Path
from typing import List, Optional, Tuple

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedEOF, UnexpectedInput, UnexpectedToken

from regionck import hir_nodes as H
from regionck.core.lifetimes import ELIDED, Lifetime
from regionck.core.span import Span
from regionck.core.types_core import (
	FnTy,
	Mutability,
	OutlivesBound,
	OwnedTy,
	Param,
	RefTy,
	Signature,
	StructDef,
	StructField,
	StructTy,
	Ty,
)
from regionck.fragments import BlockFragment, FnFragment, Fragment, StructFragment

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="start",
	propagate_positions=True,
	maybe_placeholders=False,
)


class ParseError(ValueError):
	"""
	User-facing syntax error.

	The analyzer converts this into a parser-phase `SyntaxError` diagnostic; it
	is never an internal bug.
	"""

	def __init__(self, message: str, *, loc: Optional[Span] = None) -> None:
		super().__init__(message)
		self.message = message
		self.loc = loc or Span()


def parse_fragments(source: str, *, file: Optional[str] = None) -> List[Fragment]:
	"""Parse fragment-language text into fragments, in declaration order."""
	try:
		tree = _PARSER.parse(source)
	except UnexpectedInput as err:
		raise ParseError(_describe(err), loc=Span(file, _pos(err, "line"), _pos(err, "column"))) from None
	return _Builder(file).build_start(tree)


def _pos(err: UnexpectedInput, attr: str) -> Optional[int]:
	value = getattr(err, attr, None)
	return value if isinstance(value, int) and value > 0 else None


def _describe(err: UnexpectedInput) -> str:
	if isinstance(err, UnexpectedEOF):
		return "unexpected end of input"
	if isinstance(err, UnexpectedToken):
		tok = err.token
		if tok.type == "$END":
			return "unexpected end of input"
		expected = ", ".join(sorted(err.expected)[:6])
		return f"unexpected token {tok.value!r}; expected one of: {expected}"
	if isinstance(err, UnexpectedCharacters):
		return f"unexpected character {err.char!r}"
	return str(err)


def _decode_string_token(tok: Token) -> str:
	content = tok.value[1:-1]  # strip quotes
	return codecs.decode(content, "unicode_escape")


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	if isinstance(node, Token):
		return node.type
	return str(node)


def _trees(tree: Tree, name: Optional[str] = None) -> List[Tree]:
	return [c for c in tree.children if isinstance(c, Tree) and (name is None or _name(c) == name)]


def _tokens(tree: Tree, kind: str) -> List[Token]:
	return [c for c in tree.children if isinstance(c, Token) and c.type == kind]


def _child(tree: Tree, name: str) -> Optional[Tree]:
	found = _trees(tree, name)
	return found[0] if found else None


_TYPE_RULES = {"ref_type", "named_type", "for_type", "fn_type"}


class _Builder:
	def __init__(self, file: Optional[str]) -> None:
		self.file = file
		# Target type of the enclosing impl block; `Self` resolves to it.
		self.self_ty: Optional[Ty] = None

	def _loc(self, node: Tree | Token) -> Span:
		meta = node.meta if isinstance(node, Tree) else node
		return Span.from_meta(meta, file=self.file)

	# Items

	def build_start(self, tree: Tree) -> List[Fragment]:
		fragments: List[Fragment] = []
		for item in _trees(tree):
			kind = _name(item)
			if kind == "struct_def":
				fragments.append(self.build_struct(item))
			elif kind == "fn_def":
				fragments.append(self.build_fn(item))
			elif kind == "impl_def":
				fragments.extend(self.build_impl(item))
			elif kind == "block_def":
				name = _tokens(item, "NAME")[0].value
				fragments.append(BlockFragment(name, self.build_block(_child(item, "block")), loc=self._loc(item)))
			else:
				raise AssertionError(f"unexpected item {kind}")
		return fragments

	def build_generics(self, tree: Optional[Tree]) -> Tuple[Tuple[Lifetime, ...], Tuple[OutlivesBound, ...]]:
		if tree is None:
			return (), ()
		params: List[Lifetime] = []
		bounds: List[OutlivesBound] = []
		for gp in _trees(tree, "generic_param"):
			lts = [Lifetime.param(t.value) for t in _tokens(gp, "LIFETIME")]
			params.append(lts[0])
			bounds.extend(OutlivesBound(lts[0], shorter) for shorter in lts[1:])
		return tuple(params), tuple(bounds)

	def build_struct(self, tree: Tree) -> StructFragment:
		name = _tokens(tree, "NAME")[0].value
		params, _ = self.build_generics(_child(tree, "generics"))
		fields: List[StructField] = []
		body = _child(tree, "struct_fields")
		if body is not None:
			for f in _trees(body, "struct_field"):
				fname = _tokens(f, "NAME")[0].value
				fields.append(StructField(fname, self.build_type(self._type_child(f))))
		return StructFragment(StructDef(name, params, tuple(fields)), loc=self._loc(tree))

	def build_fn(self, tree: Tree, *, impl_type: Optional[str] = None, impl_generics=((), ())) -> FnFragment:
		name = _tokens(tree, "NAME")[0].value
		lifetime_params, bounds = self.build_generics(_child(tree, "generics"))
		lifetime_params = tuple(impl_generics[0]) + lifetime_params
		bounds = tuple(impl_generics[1]) + bounds
		params: List[Param] = []
		params_node = _child(tree, "params")
		if params_node is not None:
			for p in _trees(params_node):
				params.append(self.build_param(p))
		is_method = bool(params) and params[0].name == "self"
		ret_node = _child(tree, "ret_type")
		ret = self.build_type(self._type_child(ret_node)) if ret_node is not None else None
		where = _child(tree, "where_clause")
		if where is not None:
			for wb in _trees(where, "where_bound"):
				lts = [Lifetime.param(t.value) for t in _tokens(wb, "LIFETIME")]
				bounds = bounds + tuple(OutlivesBound(lts[0], shorter) for shorter in lts[1:])
		block = _child(tree, "block")
		sig = Signature(
			name=name,
			params=tuple(params),
			ret=ret,
			lifetime_params=lifetime_params,
			bounds=bounds,
			is_method=is_method,
		)
		return FnFragment(
			signature=sig,
			body=self.build_block(block) if block is not None else None,
			impl_type=impl_type,
			loc=self._loc(tree),
		)

	def build_param(self, tree: Tree) -> Param:
		kind = _name(tree)
		if kind == "typed_param":
			return Param(_tokens(tree, "NAME")[0].value, self.build_type(self._type_child(tree)))
		if self.self_ty is None:
			raise ParseError("`self` parameter outside of an impl block", loc=self._loc(tree))
		if kind == "self_value":
			return Param("self", self.self_ty)
		if kind == "self_ref":
			lts = _tokens(tree, "LIFETIME")
			lt = Lifetime.param(lts[0].value) if lts else ELIDED
			mutability = Mutability.EXCLUSIVE if _tokens(tree, "MUT") else Mutability.SHARED
			return Param("self", RefTy(lt, mutability, self.self_ty))
		raise AssertionError(f"unexpected parameter {kind}")

	def build_impl(self, tree: Tree) -> List[FnFragment]:
		type_name = _tokens(tree, "NAME")[0].value
		generics = self.build_generics(_child(tree, "generics"))
		args = _child(tree, "type_args")
		if args is not None:
			self_ty: Ty = StructTy(type_name, tuple(Lifetime.param(t.value) for t in _tokens(args, "LIFETIME")))
		else:
			self_ty = OwnedTy(type_name)
		outer, self.self_ty = self.self_ty, self_ty
		try:
			return [
				self.build_fn(fn, impl_type=type_name, impl_generics=generics)
				for fn in _trees(tree, "fn_def")
			]
		finally:
			self.self_ty = outer

	# Types

	def _type_child(self, tree: Tree) -> Tree:
		for c in tree.children:
			if isinstance(c, Tree) and _name(c) in _TYPE_RULES:
				return c
		raise AssertionError(f"{_name(tree)} has no type")

	def build_type(self, tree: Tree) -> Ty:
		kind = _name(tree)
		if kind == "ref_type":
			lts = _tokens(tree, "LIFETIME")
			lt = Lifetime.param(lts[0].value) if lts else ELIDED
			mutability = Mutability.EXCLUSIVE if _tokens(tree, "MUT") else Mutability.SHARED
			return RefTy(lt, mutability, self.build_type(self._type_child(tree)))
		if kind == "named_type":
			name = _tokens(tree, "NAME")[0].value
			args = _child(tree, "type_args")
			if name == "Self":
				if self.self_ty is None:
					raise ParseError("`Self` outside of an impl block", loc=self._loc(tree))
				return self.self_ty
			if args is not None:
				return StructTy(name, tuple(Lifetime.param(t.value) for t in _tokens(args, "LIFETIME")))
			return OwnedTy(name)
		if kind == "fn_type":
			return FnTy(self.build_fn_type(tree, ()))
		if kind == "for_type":
			universal = tuple(Lifetime.param(t.value) for t in _tokens(tree, "LIFETIME"))
			return FnTy(self.build_fn_type(_child(tree, "fn_type"), universal))
		raise AssertionError(f"unexpected type rule {kind}")

	def build_fn_type(self, tree: Tree, universal: Tuple[Lifetime, ...]) -> Signature:
		params: List[Param] = []
		plist = _child(tree, "fn_type_params")
		if plist is not None:
			for idx, t in enumerate(_trees(plist)):
				params.append(Param(f"arg{idx}", self.build_type(t)))
		ret_nodes = [c for c in _trees(tree) if _name(c) in _TYPE_RULES]
		ret = self.build_type(ret_nodes[0]) if ret_nodes else None
		return Signature(name="", params=tuple(params), ret=ret, universal=universal)

	# Statements

	def build_block(self, tree: Tree) -> H.HBlock:
		statements: List[H.HStmt] = []
		tail: Optional[H.HExpr] = None
		children = _trees(tree)
		for idx, child in enumerate(children):
			if idx == len(children) - 1 and self._is_expr(child):
				tail = self.build_expr(child)
			else:
				statements.append(self.build_stmt(child))
		return H.HBlock(statements=statements, tail=tail, loc=self._loc(tree))

	_STMT_RULES = {"let_stmt", "destructure_stmt", "assign_stmt", "expr_stmt", "return_stmt", "block"}

	def _is_expr(self, tree: Tree) -> bool:
		return _name(tree) not in self._STMT_RULES

	def build_stmt(self, tree: Tree) -> H.HStmt:
		kind = _name(tree)
		loc = self._loc(tree)
		if kind == "let_stmt":
			name = _tokens(tree, "NAME")[0].value
			type_nodes = [c for c in _trees(tree) if _name(c) in _TYPE_RULES]
			exprs = [c for c in _trees(tree) if _name(c) not in _TYPE_RULES]
			return H.HLet(
				name=name,
				value=self.build_expr(exprs[0]) if exprs else None,
				declared_type=self.build_type(type_nodes[0]) if type_nodes else None,
				is_mutable=bool(_tokens(tree, "MUT")),
				loc=loc,
			)
		if kind == "destructure_stmt":
			names = [t.value for t in _tokens(tree, "NAME")]
			return H.HDestructure(
				struct_name=names[0],
				fields=names[1:],
				value=self.build_expr(_trees(tree)[0]),
				loc=loc,
			)
		if kind == "assign_stmt":
			target, value = _trees(tree)
			return H.HAssign(target=self.build_expr(target), value=self.build_expr(value), loc=loc)
		if kind == "expr_stmt":
			return H.HExprStmt(expr=self.build_expr(_trees(tree)[0]), loc=loc)
		if kind == "return_stmt":
			exprs = _trees(tree)
			return H.HReturn(value=self.build_expr(exprs[0]) if exprs else None, loc=loc)
		if kind == "block":
			return self.build_block(tree)
		raise AssertionError(f"unexpected statement {kind}")

	# Expressions

	def build_expr(self, node: Tree | Token) -> H.HExpr:
		loc = self._loc(node)
		kind = _name(node)
		if kind == "var":
			return H.HVar(node.children[0].value, loc=loc)
		if kind == "self_var":
			return H.HVar("self", loc=loc)
		if kind == "string":
			return H.HLiteralString(_decode_string_token(node.children[0]), loc=loc)
		if kind == "int":
			return H.HLiteralInt(int(node.children[0].value), loc=loc)
		if kind == "borrow":
			return H.HBorrow(self.build_expr(_trees(node)[0]), is_mut=bool(_tokens(node, "MUT")), loc=loc)
		if kind == "move":
			return H.HMove(self.build_expr(_trees(node)[0]), loc=loc)
		if kind == "field":
			subject = node.children[0]
			return H.HField(self.build_expr(subject), _tokens(node, "NAME")[-1].value, loc=loc)
		if kind == "method_call":
			receiver = node.children[0]
			method = [c for c in node.children[1:] if isinstance(c, Token) and c.type == "NAME"][0].value
			return H.HMethodCall(self.build_expr(receiver), method, self._args(node), loc=loc)
		if kind == "call":
			name = _tokens(node, "NAME")[0]
			return H.HCall(H.HVar(name.value, loc=self._loc(name)), self._args(node), loc=loc)
		if kind == "path_call":
			type_name, member = (t.value for t in _tokens(node, "NAME"))
			return H.HCall(H.HPath(type_name, member, loc=loc), self._args(node), loc=loc)
		if kind == "struct_init":
			name = _tokens(node, "NAME")[0].value
			inits: List[H.HFieldInit] = []
			body = _child(node, "field_inits")
			if body is not None:
				for fi in _trees(body, "field_init"):
					inits.append(
						H.HFieldInit(_tokens(fi, "NAME")[0].value, self.build_expr(_trees(fi)[0]), loc=self._loc(fi))
					)
			return H.HStructInit(name, inits, loc=loc)
		if kind in ("lambda_expr", "lambda_block", "lambda_typed"):
			return self.build_lambda(node)
		raise AssertionError(f"unexpected expression {kind}")

	def _args(self, node: Tree) -> List[H.HExpr]:
		args = _child(node, "args")
		if args is None:
			return []
		return [self.build_expr(c) for c in args.children if isinstance(c, (Tree, Token))]

	def build_lambda(self, node: Tree) -> H.HLambda:
		kind = _name(node)
		params: List[H.HParam] = []
		plist = _child(node, "lambda_params")
		if plist is not None:
			for lp in _trees(plist, "lambda_param"):
				type_nodes = [c for c in _trees(lp) if _name(c) in _TYPE_RULES]
				params.append(
					H.HParam(
						name=_tokens(lp, "NAME")[0].value,
						type=self.build_type(type_nodes[0]) if type_nodes else None,
						span=self._loc(lp),
					)
				)
		rest = [c for c in node.children if isinstance(c, (Tree, Token)) and not (isinstance(c, Tree) and _name(c) == "lambda_params")]
		lam = H.HLambda(params=params, span=self._loc(node))
		if kind == "lambda_typed":
			ret_node, block = rest[0], rest[-1]
			lam.ret_type = self.build_type(ret_node)
			lam.body_block = self.build_block(block)
		elif kind == "lambda_block":
			lam.body_block = self.build_block(rest[-1])
		else:
			lam.body_expr = self.build_expr(rest[-1])
		return lam


__all__ = ["ParseError", "parse_fragments"]
