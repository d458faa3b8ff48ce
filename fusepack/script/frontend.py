"""
Script front-end interface.

The packaging pipeline never looks inside scripts itself: parsing, lowering,
block serialization and pretty printing all go through a :class:`Frontend`.
:class:`ReferenceFrontend` implements the interface for the bundled script
language.
"""
from __future__ import annotations

from typing import Any, Dict, List, Union

from ..errors import ScriptError
from ..namespace import NamespaceNode, from_declarations
from . import compiler, parser, printer, serializer
from .model import (
    CompiledFunction,
    CompiledUnit,
    CompileResult,
    EventHandler,
    FunctionDecl,
    ImportDecl,
    InstructionGraph,
    NamespaceDecl,
    Program,
    Scope,
)


DeclarationNode = Union[FunctionDecl, EventHandler]


class Frontend:
    """Contract between the pipeline and a script language implementation."""

    def parse(self, source: str, path: str | None = None) -> Program:
        raise NotImplementedError

    def collect_namespaces(self, program: Program) -> NamespaceNode:
        raise NotImplementedError

    def imports(self, program: Program) -> List[str]:
        raise NotImplementedError

    def compile(self, program: Program, scope: Scope, namespaces: NamespaceNode) -> CompileResult:
        raise NotImplementedError

    def to_storage_format(self, graph: InstructionGraph) -> Dict[str, Any]:
        raise NotImplementedError

    def units(self, blocks: Dict[str, Any]) -> List[str]:
        raise NotImplementedError

    def from_storage_format(self, blocks: Dict[str, Any], top_id: str) -> CompiledUnit:
        raise NotImplementedError

    def decompile_unit(self, unit: CompiledUnit) -> DeclarationNode:
        raise NotImplementedError

    def references(self, node: DeclarationNode) -> List[str]:
        raise NotImplementedError

    def to_source(self, program: Program) -> str:
        raise NotImplementedError


class ReferenceFrontend(Frontend):

    def parse(self, source: str, path: str | None = None) -> Program:
        try:
            return parser.parse_program(source, path=path)
        except ScriptError as e:
            e.path = e.path or path
            raise

    def collect_namespaces(self, program: Program) -> NamespaceNode:
        return from_declarations(list(program.of_type(NamespaceDecl)))

    def imports(self, program: Program) -> List[str]:
        return [d.spec for d in program.of_type(ImportDecl)]

    def compile(self, program: Program, scope: Scope, namespaces: NamespaceNode) -> CompileResult:
        try:
            return compiler.compile_program(program, scope, namespaces)
        except ScriptError as e:
            e.path = e.path or program.path
            raise

    def to_storage_format(self, graph: InstructionGraph) -> Dict[str, Any]:
        return serializer.to_storage_format(graph)

    def units(self, blocks: Dict[str, Any]) -> List[str]:
        return serializer.units(blocks)

    def from_storage_format(self, blocks: Dict[str, Any], top_id: str) -> CompiledUnit:
        return serializer.from_storage_format(blocks, top_id)

    def decompile_unit(self, unit: CompiledUnit) -> DeclarationNode:
        body = [s.text for s in unit.statements]
        if isinstance(unit, CompiledFunction):
            return FunctionDecl(name=unit.name, params=tuple(unit.params), body=body)
        return EventHandler(event=unit.event, argument=unit.argument, body=body)

    def references(self, node: DeclarationNode) -> List[str]:
        params = set(node.params) if isinstance(node, FunctionDecl) else set()
        refs: List[str] = []
        for line in node.body:
            for ref in parser.find_references(line):
                if ref.split(".", 1)[0] not in params and ref not in refs:
                    refs.append(ref)
        return refs

    def to_source(self, program: Program) -> str:
        return printer.to_source(program)
