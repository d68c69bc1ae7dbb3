"""JavaScript syntax trees for the detector.

Sources are parsed with tree-sitter and exposed through a small set of typed
node views shaped after ESTree (CallExpression, MemberExpression, Identifier,
Literal, TemplateLiteral, ...). Grammar wrappers that ESTree does not have
(parentheses, argument lists, template substitutions) are transparent: they
are never yielded by `walk` and never returned as a parent.

Any syntax error in the source, including recovered ones, makes `parse` raise
ParseError.
"""
import re
from typing import Iterator, List, Optional, Union

import tree_sitter_javascript as tsjs
from tree_sitter import Language, Node, Parser

from gnash.core.errors import ParseError
from gnash.core.model import SourceSpan

JS_LANGUAGE = Language(tsjs.language())
_parser = Parser(JS_LANGUAGE)

_TRANSPARENT = {"parenthesized_expression", "arguments", "template_substitution"}
_SKIPPED = {"comment", "html_comment", "hash_bang_line"}
_LOGICAL_OPERATORS = {"&&", "||", "??"}

_SIMPLE_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}
_LINE_CONTINUATIONS = {"\n", "\r", "\r\n", "\u2028", "\u2029"}
_ESCAPE_RE = re.compile(r"\\(u\{[0-9a-fA-F]+\}|u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|\r\n|[\s\S])")


def _unescape(raw: str) -> str:
    def replace(match):
        esc = match.group(1)
        if esc[0] in "ux" and len(esc) > 1:
            code = int(esc[1:].strip("{}"), 16)
            if code > 0x10FFFF:
                return match.group(0)
            return chr(code)
        if esc in _LINE_CONTINUATIONS:
            return ""
        return _SIMPLE_ESCAPES.get(esc, esc)

    return _ESCAPE_RE.sub(replace, raw)


def _number_value(raw: str) -> Union[int, float, None]:
    text = raw.replace("_", "").rstrip("n")
    try:
        return int(text, 0)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def _number_to_string(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return str(value)


def _unwrap(ts: Optional[Node]) -> Optional[Node]:
    while ts is not None and ts.type == "parenthesized_expression":
        inner = [c for c in ts.named_children if c.type not in _SKIPPED]
        ts = inner[0] if inner else None
    return ts


def _named(ts: Node) -> List[Node]:
    return [c for c in ts.named_children if c.type not in _SKIPPED]


class JsNode:
    """Generic syntax node; `kind` is the tree-sitter node type."""

    __slots__ = ("ts",)

    def __init__(self, ts: Node):
        self.ts = ts

    @property
    def kind(self) -> str:
        return self.ts.type

    @property
    def text(self) -> str:
        return self.ts.text.decode("utf-8", errors="replace")

    @property
    def span(self) -> SourceSpan:
        start, end = self.ts.start_point, self.ts.end_point
        return SourceSpan(start[0] + 1, end[0] + 1, start[1], end[1])

    @property
    def parent(self) -> Optional["JsNode"]:
        ts = self.ts.parent
        while ts is not None and ts.type in _TRANSPARENT:
            ts = ts.parent
        return wrap(ts) if ts is not None else None

    def _field(self, name: str) -> Optional["JsNode"]:
        ts = _unwrap(self.ts.child_by_field_name(name))
        return wrap(ts) if ts is not None else None

    def __eq__(self, other) -> bool:
        return isinstance(other, JsNode) and self.ts == other.ts

    def __hash__(self) -> int:
        return hash((self.ts.start_byte, self.ts.end_byte, self.ts.type))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.text[:40]!r} @ {self.span})"


class Program(JsNode):
    __slots__ = ()


class Identifier(JsNode):
    __slots__ = ()

    @property
    def name(self) -> str:
        return self.text


class Literal(JsNode):
    __slots__ = ()

    @property
    def value(self):
        kind = self.kind
        if kind == "string":
            return _unescape(self.text[1:-1])
        if kind == "number":
            return _number_value(self.text)
        if kind == "true":
            return True
        if kind == "false":
            return False
        if kind == "null":
            return None
        return self.text

    def to_js_string(self) -> Optional[str]:
        """String form of the literal, or None when the literal is falsy."""
        value = self.value
        if self.kind == "number":
            if value is None:
                return self.text
            return _number_to_string(value) if value else None
        if value is True:
            return "true"
        if not value:
            return None
        return value


class TemplateLiteral(JsNode):
    __slots__ = ()

    @property
    def substitutions(self) -> List[Node]:
        return [c for c in self.ts.named_children if c.type == "template_substitution"]

    @property
    def quasis(self) -> List[str]:
        """Raw static text around the substitutions, always len(expressions) + 1 items."""
        raw = self.ts.text
        base = self.ts.start_byte
        start = 1
        parts = []
        for sub in self.substitutions:
            parts.append(raw[start:sub.start_byte - base].decode("utf-8", errors="replace"))
            start = sub.end_byte - base
        parts.append(raw[start:len(raw) - 1].decode("utf-8", errors="replace"))
        return parts

    @property
    def expressions(self) -> List[JsNode]:
        found = []
        for sub in self.substitutions:
            inner = _named(sub)
            if inner:
                found.append(wrap(_unwrap(inner[0])))
        return found


class _Invocation(JsNode):
    __slots__ = ()

    @property
    def arguments(self) -> List[JsNode]:
        args = self.ts.child_by_field_name("arguments")
        if args is None:
            return []
        return [wrap(_unwrap(c)) for c in _named(args)]


class CallExpression(_Invocation):
    __slots__ = ()

    @property
    def callee(self) -> Optional[JsNode]:
        return self._field("function")


class NewExpression(_Invocation):
    __slots__ = ()

    @property
    def callee(self) -> Optional[JsNode]:
        return self._field("constructor")


class MemberExpression(JsNode):
    """Both `a.b` (member_expression) and `a[b]` (subscript_expression)."""

    __slots__ = ()

    @property
    def computed(self) -> bool:
        return self.kind == "subscript_expression"

    @property
    def object(self) -> Optional[JsNode]:
        return self._field("object")

    @property
    def property_name(self) -> Optional[str]:
        if self.computed:
            return None
        prop = self.ts.child_by_field_name("property")
        return prop.text.decode("utf-8") if prop is not None else None

    # Shadows the builtin for the rest of the class body, keep it last
    @property
    def property(self) -> Optional[JsNode]:
        if self.computed:
            return self._field("index")
        return self._field("property")


class VariableDeclarator(JsNode):
    __slots__ = ()

    @property
    def id(self) -> Optional[JsNode]:
        return self._field("name")

    @property
    def init(self) -> Optional[JsNode]:
        return self._field("value")


class _LeftRight(JsNode):
    __slots__ = ()

    @property
    def left(self) -> Optional[JsNode]:
        return self._field("left")

    @property
    def right(self) -> Optional[JsNode]:
        return self._field("right")

    @property
    def operator(self) -> str:
        op = self.ts.child_by_field_name("operator")
        return op.type if op is not None else "="


class AssignmentExpression(_LeftRight):
    __slots__ = ()


class BinaryExpression(_LeftRight):
    __slots__ = ()


class LogicalExpression(_LeftRight):
    __slots__ = ()


class ConditionalExpression(JsNode):
    __slots__ = ()

    @property
    def test(self) -> Optional[JsNode]:
        return self._field("condition")

    @property
    def consequent(self) -> Optional[JsNode]:
        return self._field("consequence")

    @property
    def alternate(self) -> Optional[JsNode]:
        return self._field("alternative")


class ReturnStatement(JsNode):
    __slots__ = ()

    @property
    def argument(self) -> Optional[JsNode]:
        inner = _named(self.ts)
        return wrap(_unwrap(inner[0])) if inner else None


_VIEWS = {
    "program": Program,
    "identifier": Identifier,
    "string": Literal,
    "number": Literal,
    "true": Literal,
    "false": Literal,
    "null": Literal,
    "regex": Literal,
    "template_string": TemplateLiteral,
    "call_expression": CallExpression,
    "new_expression": NewExpression,
    "member_expression": MemberExpression,
    "subscript_expression": MemberExpression,
    "variable_declarator": VariableDeclarator,
    "assignment_expression": AssignmentExpression,
    "augmented_assignment_expression": AssignmentExpression,
    "ternary_expression": ConditionalExpression,
    "return_statement": ReturnStatement,
}


def wrap(ts: Node) -> JsNode:
    kind = ts.type
    if kind == "binary_expression":
        op = ts.child_by_field_name("operator")
        if op is not None and op.type in _LOGICAL_OPERATORS:
            return LogicalExpression(ts)
        return BinaryExpression(ts)
    if kind == "call_expression":
        args = ts.child_by_field_name("arguments")
        if args is not None and args.type == "template_string":
            # tagged template, not a call
            return JsNode(ts)
    return _VIEWS.get(kind, JsNode)(ts)


def walk(node: JsNode) -> Iterator[JsNode]:
    """Pre-order traversal in source order."""
    stack = [node.ts]
    while stack:
        ts = stack.pop()
        if ts.type in _SKIPPED:
            continue
        if ts.is_named and ts.type not in _TRANSPARENT:
            yield wrap(ts)
        stack.extend(reversed(ts.named_children))


def _first_error(root: Node) -> Optional[Node]:
    stack = [root]
    while stack:
        ts = stack.pop()
        if ts.type == "ERROR" or ts.is_missing:
            return ts
        if ts.has_error:
            stack.extend(reversed(ts.children))
    return None


class SyntaxTree:
    def __init__(self, tree):
        self.tree = tree
        self.root = Program(tree.root_node)
        self._nodes: Optional[List[JsNode]] = None

    @property
    def nodes(self) -> List[JsNode]:
        if self._nodes is None:
            self._nodes = list(walk(self.root))
        return self._nodes


def parse(source: Union[str, bytes]) -> SyntaxTree:
    if isinstance(source, str):
        source = source.encode("utf-8")
    tree = _parser.parse(source)
    if tree.root_node.has_error:
        bad = _first_error(tree.root_node)
        where = f" at line {bad.start_point[0] + 1}" if bad is not None else ""
        raise ParseError(f"Unexpected token{where}")
    return SyntaxTree(tree)
