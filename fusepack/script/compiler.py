"""
Reference compiler: checks a parsed program against its scope and lowers
function and event bodies into an :class:`InstructionGraph`.

Statement bodies stay opaque; only two things are checked per line:

- the target of an assignment (``x = ...``, ``x += ...``) must be a visible
  variable or a parameter;
- every dotted reference whose head is not a variable or parameter must
  resolve to a member of the namespace tree.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Set

from ..errors import CompileError
from ..namespace import NamespaceNode
from .model import (
    CompiledFunction,
    CompiledScript,
    CompileResult,
    Declaration,
    EventHandler,
    FunctionDecl,
    InstructionGraph,
    Program,
    Scope,
    Statement,
    VariableDecl,
)
from .parser import assignment_target, find_references


def _discover_variables(program: Program) -> List[Declaration]:
    seen: Dict[str, VariableDecl] = {}
    found: List[Declaration] = []
    for node in program.of_type(VariableDecl):
        name = node.variable.name
        if name in seen:
            raise CompileError(
                f"Variable '{name}' declared twice (first on line {seen[name].line})",
                line=node.line,
            )
        seen[name] = node
        found.append(node.declaration)
    return found


def _check_body(
    body: Sequence[str],
    line: int,
    visible: Set[str],
    params: Iterable[str],
    namespaces: NamespaceNode,
) -> List[Statement]:
    names = visible | set(params)
    statements: List[Statement] = []
    for text in body:
        target = assignment_target(text)
        if target is not None and target not in names:
            raise CompileError(f"Assignment to undeclared variable '{target}'", line=line, context=text.strip())
        for ref in find_references(text):
            head = ref.split(".", 1)[0]
            if head in names:
                continue
            if not namespaces.resolve(ref):
                raise CompileError(f"Unresolved reference '{ref}'", line=line, context=text.strip())
        statements.append(Statement(text, line))
    return statements


def compile_program(program: Program, scope: Scope, namespaces: NamespaceNode) -> CompileResult:
    variables = _discover_variables(program)
    visible = set(scope.names()) | {d.variable.name for d in variables}

    graph = InstructionGraph()
    defined: Dict[str, int] = {}
    for fn in program.of_type(FunctionDecl):
        if fn.name in defined:
            raise CompileError(f"Function '{fn.name}' defined twice (first on line {defined[fn.name]})", line=fn.line)
        defined[fn.name] = fn.line
        statements = _check_body(fn.body, fn.line, visible, fn.params, namespaces)
        graph.functions.append(CompiledFunction(fn.name, tuple(fn.params), statements))

    for handler in program.of_type(EventHandler):
        statements = _check_body(handler.body, handler.line, visible, (), namespaces)
        graph.scripts.append(CompiledScript(handler.event, handler.argument, statements))

    return CompileResult(graph=graph, variables=variables)
