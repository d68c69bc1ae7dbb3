from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class Category(str, Enum):
    REQUIRED_IO_MODULE = "RequiredIOModule"
    ARBITRARY_EXECUTION_MODULE = "ArbitraryExecutionModule"
    DYNAMIC_REQUIRE_ARGUMENT = "DynamicRequireArgument"
    OBFUSCATED_REQUIRE_IDENTIFIER = "ObfuscatedRequireIdentifier"
    OBFUSCATED_EVAL_IDENTIFIER = "ObfuscatedEvalIdentifier"
    OBFUSCATED_FUNCTION_IDENTIFIER = "ObfuscatedFunctionIdentifier"
    REQUIRE_PROPERTY_ACCESS = "RequirePropertyAccess"
    EVAL_PROPERTY_ACCESS = "EvalPropertyAccess"
    FUNCTION_PROPERTY_ACCESS = "FunctionPropertyAccess"
    EVAL_CALL = "EvalCall"
    FUNCTION_CONSTRUCTOR_USAGE = "FunctionConstructorUsage"
    PROCESS_ENV_ACCESS = "ProcessEnvAccess"
    OBSCURED_PROCESS_PROPERTY = "ObscuredProcessProperty"
    OBSCURED_PROCESS_OBJECT = "ObscuredProcessObject"
    ACCESS_TO_GLOBAL_PROPERTY = "AccessToGlobalProperty"
    SYNTAX_ERROR = "SyntaxError"


TITLES = {
    Category.DYNAMIC_REQUIRE_ARGUMENT: "Dynamic require arg",
    Category.OBFUSCATED_REQUIRE_IDENTIFIER: "Obfuscated require identifier",
    Category.OBFUSCATED_EVAL_IDENTIFIER: "Obfuscated eval identifier",
    Category.OBFUSCATED_FUNCTION_IDENTIFIER: "Obfuscated Function identifier",
    Category.REQUIRE_PROPERTY_ACCESS: "Access to a property of require",
    Category.EVAL_PROPERTY_ACCESS: "Access to a property of eval",
    Category.FUNCTION_PROPERTY_ACCESS: "Access to a property of Function",
    Category.EVAL_CALL: "Eval call",
    Category.FUNCTION_CONSTRUCTOR_USAGE: "Function constructor usage",
    Category.PROCESS_ENV_ACCESS: "Access to process.env",
    Category.OBSCURED_PROCESS_PROPERTY: "Obscured process property",
    Category.OBSCURED_PROCESS_OBJECT: "Obscured process object",
    Category.ACCESS_TO_GLOBAL_PROPERTY: "Access to global property",
    Category.SYNTAX_ERROR: "Syntax error",
}


@dataclass(frozen=True)
class SourceSpan:
    line_start: int = 0
    line_end: int = 0
    col_start: int = 0
    col_end: int = 0

    def __str__(self) -> str:
        return f"{self.line_start}:{self.col_start}-{self.line_end}:{self.col_end}"


@dataclass(frozen=True)
class Finding:
    """A single detected pattern occurrence (a "point of interest")."""

    category: Category
    source_file: str
    location: SourceSpan = field(default_factory=SourceSpan)
    # Module name for module findings, property name for global accesses
    subject: Optional[str] = None

    @property
    def label(self) -> str:
        if self.category in (Category.REQUIRED_IO_MODULE, Category.ARBITRARY_EXECUTION_MODULE):
            return self.subject or ""
        if self.category == Category.ACCESS_TO_GLOBAL_PROPERTY and self.subject:
            return f"Access to global.{self.subject}"
        return TITLES[self.category]

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "category": self.category.value,
            "label": self.label,
            "file": self.source_file,
            "location": {
                "line_start": self.location.line_start,
                "line_end": self.location.line_end,
                "col_start": self.location.col_start,
                "col_end": self.location.col_end,
            },
        }
        if self.subject:
            d["subject"] = self.subject
        return d


# eq=False: nodes are shared between parents and compared by identity
@dataclass(eq=False)
class DependencyNode:
    name: str
    version: str
    children: List['DependencyNode'] = field(default_factory=list)

    # Set by resolve_paths
    install_path: Optional[str] = None

    # Set by scan_package
    findings: Optional[List[Finding]] = None

    @property
    def key(self) -> str:
        return f"{self.name} {self.version}"

    def add_child(self, child: 'DependencyNode') -> None:
        """Appends child unless a node with the same name+version is already there."""
        for existing in self.children:
            if existing.name == child.name and existing.version == child.version:
                return
        self.children.append(child)

    def __repr__(self) -> str:
        return f"DependencyNode({self.name!r}, {self.version!r}, children={len(self.children)})"
