"""
Cross-target scope reconciliation.

Targets compile one at a time in order: the stage, then every sprite as
declared. Each compilation sees the globals established so far plus the
target's own declarations. Whatever a sprite declares ``global`` becomes
visible to the sprites after it, never to the ones before: visibility
follows declaration order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from ..config import Project, StageSpec, TargetSpec
from ..errors import ScriptError, SymbolConflict
from ..namespace import NamespaceNode, merge
from ..script.frontend import Frontend
from ..script.model import Declaration, InstructionGraph, Scope, Variable
from .imports import ImportResolver, read_source


logger = logging.getLogger(__name__)

STAGE_NAME = "Stage"


class GlobalScope:
    """Project-wide variables of one run. Entries are only ever added."""

    def __init__(self) -> None:
        self._entries: Dict[str, Declaration] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, name: str) -> Optional[Declaration]:
        return self._entries.get(name)

    def declarations(self) -> List[Declaration]:
        return list(self._entries.values())

    def variables(self) -> Dict[str, Variable]:
        return {name: d.variable for name, d in self._entries.items()}

    def declare(self, decl: Declaration, target: str) -> Optional[SymbolConflict]:
        """Add ``decl`` as a global. The first declaration of a name wins."""
        name = decl.variable.name
        existing = self._entries.get(name)
        if existing is None:
            self._entries[name] = Declaration(replace(decl.variable, is_global=True), decl.default)
            return None
        if existing.variable.kind is not decl.variable.kind:
            return SymbolConflict(name, target, f"already global as {existing.variable.kind.value}")
        return None


@dataclass
class CompiledTarget:
    name: str
    is_stage: bool
    spec: Union[StageSpec, TargetSpec]
    variables: List[Declaration] = field(default_factory=list)
    blocks: Dict[str, Any] = field(default_factory=dict)
    entry: Optional[Path] = None


@dataclass
class ReconcileResult:
    targets: List[CompiledTarget]
    global_scope: GlobalScope
    conflicts: List[SymbolConflict] = field(default_factory=list)

    @property
    def stage(self) -> CompiledTarget:
        return self.targets[0]


class ScopeReconciler:

    def __init__(self, frontend: Frontend, namespaces: NamespaceNode, resolver: ImportResolver) -> None:
        self.frontend = frontend
        self.namespaces = namespaces
        self.resolver = resolver
        self.global_scope = GlobalScope()
        self.conflicts: List[SymbolConflict] = []

    def _conflict(self, conflict: Optional[SymbolConflict]) -> None:
        if conflict is not None:
            logger.warning(str(conflict))
            self.conflicts.append(conflict)

    def _compile(self, target: CompiledTarget, project: Project):
        entry = target.spec.entry
        if entry is None:
            logger.debug(f"{target.name}: no entry script")
            target.blocks = self.frontend.to_storage_format(InstructionGraph())
            return []
        path = project.resolve(entry)
        target.entry = path
        try:
            program = self.frontend.parse(read_source(path), str(path))
            namespaces = merge(self.namespaces, self.resolver.collect(program, path))
            scope = Scope(self.global_scope.variables())
            result = self.frontend.compile(program, scope, namespaces)
        except ScriptError as e:
            e.path = e.path or str(path)
            raise
        target.blocks = self.frontend.to_storage_format(result.graph)
        return result.variables

    def compile_stage(self, project: Project) -> CompiledTarget:
        logger.info("Compiling stage...")
        target = CompiledTarget(STAGE_NAME, True, project.spec.stage)
        for decl in self._compile(target, project):
            self._conflict(self.global_scope.declare(decl, STAGE_NAME))
        return target

    def compile_sprite(self, project: Project, spec: TargetSpec) -> CompiledTarget:
        logger.info(f"Compiling sprite: {spec.name}")
        target = CompiledTarget(spec.name, False, spec)
        for decl in self._compile(target, project):
            var = decl.variable
            if var.is_global:
                self._conflict(self.global_scope.declare(decl, spec.name))
            elif var.name in self.global_scope:
                self._conflict(SymbolConflict(var.name, spec.name, "name is already global"))
            else:
                target.variables.append(decl)
        return target

    def reconcile(self, project: Project) -> ReconcileResult:
        stage = self.compile_stage(project)
        targets = [stage]
        for spec in project.spec.targets:
            targets.append(self.compile_sprite(project, spec))
        # the stage owns every global, including those declared by sprites
        stage.variables = self.global_scope.declarations()
        return ReconcileResult(targets, self.global_scope, list(self.conflicts))
