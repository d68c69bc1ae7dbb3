"""Detection rules for suspicious JavaScript patterns.

Every rule has the signature ``rule(tree, file_id, config) -> List[Finding]``
and is pure. `detect` runs the rules in the fixed order of RULES; findings
within a rule follow source order.

The obfuscation rules are heuristics over the immediate parent of an
identifier. They flag a sensitive identifier that is assigned, passed as an
argument, returned, or used as an operand of a logical, conditional or `+`
expression.
"""
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Tuple

from gnash.core.model import Category, Finding, SourceSpan
from gnash.core.syntax import (
    AssignmentExpression,
    BinaryExpression,
    CallExpression,
    ConditionalExpression,
    Identifier,
    JsNode,
    Literal,
    LogicalExpression,
    MemberExpression,
    NewExpression,
    ReturnStatement,
    SyntaxTree,
    TemplateLiteral,
    VariableDeclarator,
)

IO_MODULES = ("http", "fs", "https", "http2", "net", "datagram")
EXECUTION_MODULES = ("child_process", "repl", "vm", "module")
GLOBAL_WATCH_LIST = ("Function", "require", "eval")


@dataclass(frozen=True)
class DetectorConfig:
    io_modules: FrozenSet[str] = frozenset(IO_MODULES)
    execution_modules: FrozenSet[str] = frozenset(EXECUTION_MODULES)
    global_watch_list: FrozenSet[str] = frozenset(GLOBAL_WATCH_LIST)


DEFAULT_CONFIG = DetectorConfig()

Rule = Callable[[SyntaxTree, str, DetectorConfig], List[Finding]]


def literal_value(node: Optional[JsNode]) -> Optional[str]:
    """
    Statically resolves a string argument or property.

    Returns None when the value depends on anything other than a literal:
    'http', `http` and `${'http'}` all resolve to "http".
    """
    if isinstance(node, Literal):
        return node.to_js_string()
    if isinstance(node, TemplateLiteral):
        quasis = node.quasis
        expressions = node.expressions
        if len(expressions) == 1 and len(quasis) == 2 and quasis[0] == "" and quasis[1] == "":
            if isinstance(expressions[0], Literal):
                return expressions[0].to_js_string()
            return None
        if len(quasis) == 1:
            return quasis[0]
    return None


def _is_identifier(node: Optional[JsNode], name: str) -> bool:
    return isinstance(node, Identifier) and node.name == name


def _calls_to(tree: SyntaxTree, name: str) -> List[CallExpression]:
    return [n for n in tree.nodes if isinstance(n, CallExpression) and _is_identifier(n.callee, name)]


def _require_arguments(tree: SyntaxTree) -> List[Tuple[JsNode, Optional[str]]]:
    found = []
    for call in _calls_to(tree, "require"):
        args = call.arguments
        if args:
            found.append((args[0], literal_value(args[0])))
        else:
            found.append((call, None))
    return found


def _find_modules(tree: SyntaxTree, file_id: str, modules: FrozenSet[str], category: Category) -> List[Finding]:
    return [
        Finding(category, file_id, arg.span, subject=name)
        for arg, name in _require_arguments(tree)
        if name is not None and name in modules
    ]


def _obfuscates(parent: Optional[JsNode], node: JsNode) -> bool:
    if isinstance(parent, (VariableDeclarator, AssignmentExpression, LogicalExpression, ConditionalExpression)):
        return True
    if isinstance(parent, BinaryExpression):
        return parent.operator == "+"
    if isinstance(parent, (CallExpression, NewExpression)):
        return node in parent.arguments
    if isinstance(parent, ReturnStatement):
        return parent.argument == node
    return False


def _obfuscated_uses(tree: SyntaxTree, file_id: str, name: str, category: Category) -> List[Finding]:
    found = []
    for node in tree.nodes:
        if not _is_identifier(node, name):
            continue
        parent = node.parent
        if _obfuscates(parent, node):
            found.append(Finding(category, file_id, parent.span))
    return found


def _property_accesses_of(tree: SyntaxTree, file_id: str, name: str, category: Category) -> List[Finding]:
    found = []
    for node in tree.nodes:
        if not _is_identifier(node, name):
            continue
        parent = node.parent
        if isinstance(parent, MemberExpression) and parent.object == node:
            found.append(Finding(category, file_id, parent.span))
    return found


def _member_accesses(tree: SyntaxTree, obj: str) -> List[MemberExpression]:
    return [n for n in tree.nodes if isinstance(n, MemberExpression) and _is_identifier(n.object, obj)]


def _property_of(member: MemberExpression) -> Optional[str]:
    if member.computed:
        return literal_value(member.property)
    return member.property_name


# -- require ---------------------------------------------------------------

def io_modules(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _find_modules(tree, file_id, config.io_modules, Category.REQUIRED_IO_MODULE)


def execution_modules(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _find_modules(tree, file_id, config.execution_modules, Category.ARBITRARY_EXECUTION_MODULE)


def dynamic_require_arguments(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return [
        Finding(Category.DYNAMIC_REQUIRE_ARGUMENT, file_id, arg.span)
        for arg, name in _require_arguments(tree)
        if name is None
    ]


def obfuscated_require_identifiers(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _obfuscated_uses(tree, file_id, "require", Category.OBFUSCATED_REQUIRE_IDENTIFIER)


def require_property_accesses(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _property_accesses_of(tree, file_id, "require", Category.REQUIRE_PROPERTY_ACCESS)


# -- eval ------------------------------------------------------------------

def eval_calls(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return [Finding(Category.EVAL_CALL, file_id, call.span) for call in _calls_to(tree, "eval")]


def obfuscated_eval_identifiers(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _obfuscated_uses(tree, file_id, "eval", Category.OBFUSCATED_EVAL_IDENTIFIER)


def eval_property_accesses(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _property_accesses_of(tree, file_id, "eval", Category.EVAL_PROPERTY_ACCESS)


# -- process ---------------------------------------------------------------

def process_env_accesses(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return [
        Finding(Category.PROCESS_ENV_ACCESS, file_id, member.span)
        for member in _member_accesses(tree, "process")
        if _property_of(member) == "env"
    ]


def obscured_process_properties(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return [
        Finding(Category.OBSCURED_PROCESS_PROPERTY, file_id, member.span)
        for member in _member_accesses(tree, "process")
        if member.computed and literal_value(member.property) is None
    ]


def obscured_process_objects(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _obfuscated_uses(tree, file_id, "process", Category.OBSCURED_PROCESS_OBJECT)


# -- Function --------------------------------------------------------------

def function_constructor_usages(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return [
        Finding(Category.FUNCTION_CONSTRUCTOR_USAGE, file_id, n.span)
        for n in tree.nodes
        if isinstance(n, (CallExpression, NewExpression)) and _is_identifier(n.callee, "Function")
    ]


def obfuscated_function_identifiers(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _obfuscated_uses(tree, file_id, "Function", Category.OBFUSCATED_FUNCTION_IDENTIFIER)


def function_property_accesses(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    return _property_accesses_of(tree, file_id, "Function", Category.FUNCTION_PROPERTY_ACCESS)


# -- global ----------------------------------------------------------------

def global_property_accesses(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    found = []
    for member in _member_accesses(tree, "global"):
        prop = _property_of(member)
        if prop is not None and prop in config.global_watch_list:
            found.append(Finding(Category.ACCESS_TO_GLOBAL_PROPERTY, file_id, member.span, subject=prop))
    return found


RULES: Tuple[Rule, ...] = (
    io_modules,
    execution_modules,
    obfuscated_require_identifiers,
    require_property_accesses,
    dynamic_require_arguments,
    eval_calls,
    obfuscated_eval_identifiers,
    eval_property_accesses,
    process_env_accesses,
    obscured_process_properties,
    obscured_process_objects,
    function_constructor_usages,
    obfuscated_function_identifiers,
    function_property_accesses,
    global_property_accesses,
)


def detect(tree: SyntaxTree, file_id: str, config: DetectorConfig = DEFAULT_CONFIG) -> List[Finding]:
    findings: List[Finding] = []
    for rule in RULES:
        findings.extend(rule(tree, file_id, config))
    return findings


def syntax_error(file_id: str) -> Finding:
    return Finding(Category.SYNTAX_ERROR, file_id, SourceSpan())
