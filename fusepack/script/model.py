from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union


Value = Union[int, float, str, bool]
DefaultValue = Union[Value, List[Value]]


class VariableKind(Enum):
    SCALAR = "scalar"
    LIST = "list"


@dataclass
class Variable:
    name: str
    kind: VariableKind = VariableKind.SCALAR
    is_global: bool = False
    export_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.export_name or self.name

    @property
    def is_list(self) -> bool:
        return self.kind is VariableKind.LIST

    def empty_default(self) -> DefaultValue:
        return [] if self.is_list else 0


@dataclass
class Declaration:
    """A variable together with its initial value."""
    variable: Variable
    default: Any = 0


# ============================================================================
# Syntax tree
# ============================================================================

@dataclass
class NamespaceDecl:
    name: str
    externs: Dict[str, str] = field(default_factory=dict)
    functions: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    variables: List[Declaration] = field(default_factory=list)
    children: List["NamespaceDecl"] = field(default_factory=list)
    line: int = 0


@dataclass
class VariableDecl:
    declaration: Declaration
    line: int = 0

    @property
    def variable(self) -> Variable:
        return self.declaration.variable


@dataclass
class FunctionDecl:
    name: str
    params: Tuple[str, ...] = ()
    body: List[str] = field(default_factory=list)
    line: int = 0


@dataclass
class EventHandler:
    event: str
    argument: Optional[str] = None
    body: List[str] = field(default_factory=list)
    line: int = 0


@dataclass
class ImportDecl:
    spec: str
    line: int = 0


Node = Union[NamespaceDecl, VariableDecl, FunctionDecl, EventHandler, ImportDecl]


class Program:
    def __init__(self, body: List[Node], path: Optional[str] = None) -> None:
        self.body = body
        self.path = path

    def of_type(self, kind: type) -> Iterator[Any]:
        return (node for node in self.body if isinstance(node, kind))


# ============================================================================
# Compiled form
# ============================================================================

@dataclass
class Statement:
    text: str
    line: int = 0


@dataclass
class CompiledFunction:
    name: str
    params: Tuple[str, ...] = ()
    statements: List[Statement] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"function {self.name}"


@dataclass
class CompiledScript:
    event: str
    argument: Optional[str] = None
    statements: List[Statement] = field(default_factory=list)

    @property
    def label(self) -> str:
        if self.argument is not None:
            return f"script 'when {self.event} \"{self.argument}\"'"
        return f"script 'when {self.event}'"


CompiledUnit = Union[CompiledFunction, CompiledScript]


@dataclass
class InstructionGraph:
    functions: List[CompiledFunction] = field(default_factory=list)
    scripts: List[CompiledScript] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.functions and not self.scripts


@dataclass
class CompileResult:
    graph: InstructionGraph
    variables: List[Declaration] = field(default_factory=list)


class Scope:
    """Read-only view of the variables visible to one compilation."""

    def __init__(self, variables: Optional[Mapping[str, Variable]] = None) -> None:
        self._variables: Dict[str, Variable] = dict(variables or {})

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __iter__(self) -> Iterator[str]:
        return iter(self._variables)

    def __len__(self) -> int:
        return len(self._variables)

    def lookup(self, name: str) -> Optional[Variable]:
        return self._variables.get(name)

    def names(self) -> List[str]:
        return list(self._variables)
